# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for PackageAnalyzer.

Test Coverage:
- Inter-package view (several packages) and intra-package view (one package)
- Self edge dropping and deduplication
- Used-types-only node filtering
- Cluster and color assignment
- Partial failure tolerance (skipped modules)
- Cancellation and configuration preconditions
"""

import logging

import pytest

from packviz.analyzers import PackageAnalyzer
from packviz.analyzers.package_analyzer import (
    NODE_COLORS,
    REFERENCE_EDGE_COLOR,
    STRUCTURAL_EDGE_COLOR,
    edge_color,
    node_color,
)
from packviz.cancellation import AnalysisCancelledError, CancellationToken
from packviz.config import Config, ConfigurationError
from packviz.models import EdgeKind
from packviz.packaging import Package, SystemPackaging


def _edges(document):
    return {(e.source, e.target, e.kind) for e in document.edges}


def _node_ids(document):
    return {n.id for n in document.nodes}


def _owner(type_id, packaging):
    return next(p.name for p in packaging.packages if type_id.startswith(p.name.lower() + "."))


class TestColors:
    """Tests for the color mappings."""

    @pytest.mark.parametrize(
        "kind, expected",
        [
            (EdgeKind.DERIVES_FROM, STRUCTURAL_EDGE_COLOR),
            (EdgeKind.IMPLEMENTS, STRUCTURAL_EDGE_COLOR),
            (EdgeKind.CALLS, None),
            (EdgeKind.REFERENCES, REFERENCE_EDGE_COLOR),
        ],
    )
    def test_edge_color(self, kind, expected):
        assert edge_color(kind) == expected

    def test_node_color_cycles(self):
        assert node_color(0) == "LightBlue"
        assert node_color(1) == "LightGreen"
        assert node_color(len(NODE_COLORS)) == node_color(0)


class TestInterPackageAnalysis:
    """Tests for analyzing several packages together."""

    def test_core_and_ui(self, core_ui_packaging):
        """Test that only edges between different packages are kept."""
        document = PackageAnalyzer().execute(core_ui_packaging)

        assert _node_ids(document) == {
            "core.a.A",
            "core.base.B",
            "core.helper.Helper",
            "ui.view.C",
        }
        # A -> B is intra-package and dropped
        assert _edges(document) == {
            ("ui.view.C", "core.a.A", EdgeKind.REFERENCES),
            ("ui.view.C", "core.a.A", EdgeKind.CALLS),
        }

    def test_every_edge_crosses_packages(self, core_ui_packaging):
        document = PackageAnalyzer().execute(core_ui_packaging)

        for edge in document.edges:
            assert _owner(edge.source, core_ui_packaging) != _owner(
                edge.target, core_ui_packaging
            )

    def test_node_colors_follow_declared_package_order(self, core_ui_packaging):
        document = PackageAnalyzer().execute(core_ui_packaging)

        assert document.node_colors["core.a.A"] == NODE_COLORS[0]
        assert document.node_colors["core.base.B"] == NODE_COLORS[0]
        assert document.node_colors["ui.view.C"] == NODE_COLORS[1]

    def test_edge_colors(self, core_ui_packaging):
        document = PackageAnalyzer().execute(core_ui_packaging)
        by_kind = {e.kind: e for e in document.edges}

        assert document.get_edge_color(by_kind[EdgeKind.REFERENCES]) == REFERENCE_EDGE_COLOR
        assert document.get_edge_color(by_kind[EdgeKind.CALLS]) is None

    def test_used_types_only(self, core_ui_packaging):
        full = PackageAnalyzer().execute(core_ui_packaging)
        used = PackageAnalyzer(used_types_only=True).execute(core_ui_packaging)

        assert _node_ids(used) == {"core.a.A", "ui.view.C"}
        assert _edges(used) == _edges(full)
        assert _node_ids(used) < _node_ids(full)

        touched = {e.source for e in used.edges} | {e.target for e in used.edges}
        assert _node_ids(used) <= touched

    def test_package_filter_is_case_insensitive(self, core_ui_packaging):
        document = PackageAnalyzer(packages_to_analyze=["ui", "CORE"]).execute(core_ui_packaging)

        assert "ui.view.C" in _node_ids(document)
        assert len(document.edges) == 2

    def test_targets_outside_analyzed_packages_dropped(self, core_ui_packaging):
        """Test that UI edges into an unanalyzed package disappear."""
        core_ui_packaging.packages.append(Package(name="Data", includes=["data/**/*.py"]))
        document = PackageAnalyzer(packages_to_analyze=["UI", "Data"]).execute(core_ui_packaging)

        assert _node_ids(document) == {"ui.view.C"}
        assert document.edges == []


class TestIntraPackageAnalysis:
    """Tests for analyzing a single package."""

    def test_core_alone(self, core_ui_packaging):
        document = PackageAnalyzer(packages_to_analyze=["Core"]).execute(core_ui_packaging)

        assert _node_ids(document) == {"core.a.A", "core.base.B", "core.helper.Helper"}
        assert _edges(document) == {("core.a.A", "core.base.B", EdgeKind.DERIVES_FROM)}
        edge = document.edges[0]
        assert document.get_edge_color(edge) == STRUCTURAL_EDGE_COLOR

    def test_no_node_colors_for_single_package(self, core_ui_packaging):
        document = PackageAnalyzer(packages_to_analyze=["Core"]).execute(core_ui_packaging)
        assert document.node_colors == {}

    def test_first_matching_cluster_wins(self, core_ui_packaging):
        """Test that the first declared cluster is used for types matching several."""
        for _ in range(3):
            document = PackageAnalyzer(packages_to_analyze=["Core"]).execute(core_ui_packaging)
            assert document.node_clusters == {
                "core.a.A": "Everything",
                "core.base.B": "Everything",
                "core.helper.Helper": "Everything",
            }

    def test_second_cluster_used_when_first_does_not_match(self, core_ui_packaging):
        core = core_ui_packaging.packages[0]
        core.clusters.reverse()

        document = PackageAnalyzer(packages_to_analyze=["Core"]).execute(core_ui_packaging)

        assert document.node_clusters["core.a.A"] == "Inheritance"
        assert document.node_clusters["core.helper.Helper"] == "Everything"

    def test_self_edges_dropped(self, tmp_path, write_module):
        write_module(
            "tree/node.py",
            """
            class Node:
                parent: "Node"

                def clone(self) -> "Node":
                    return Node()
            """,
        )
        packaging = SystemPackaging(tmp_path, [Package("Tree", includes=["tree/*.py"])])

        document = PackageAnalyzer().execute(packaging)

        assert _node_ids(document) == {"tree.node.Node"}
        assert document.edges == []


class TestRobustness:
    """Tests for determinism, failures and cancellation."""

    def test_repeated_runs_are_identical(self, core_ui_packaging):
        first = PackageAnalyzer().execute(core_ui_packaging)
        second = PackageAnalyzer(max_workers=1).execute(core_ui_packaging)
        third = PackageAnalyzer(max_workers=8).execute(core_ui_packaging)

        assert _node_ids(first) == _node_ids(second) == _node_ids(third)
        assert _edges(first) == _edges(second) == _edges(third)
        assert [e.key for e in first.edges] == [e.key for e in third.edges]

    def test_corrupted_module_is_skipped(self, core_ui_project, core_ui_packaging):
        broken = core_ui_project / "core" / "broken.py"
        broken.write_text("class Broken(:\n    pass\n")

        analyzer = PackageAnalyzer(packages_to_analyze=["Core"])
        document = analyzer.execute(core_ui_packaging)

        assert len(analyzer.skipped_modules) == 1
        assert analyzer.skipped_modules[0].path == str(broken.resolve())
        assert document.failed_items == []
        assert _node_ids(document) == {"core.a.A", "core.base.B", "core.helper.Helper"}
        assert len(document.edges) == 1

    def test_skipped_modules_reset_per_run(self, core_ui_project, core_ui_packaging):
        broken = core_ui_project / "core" / "broken.py"
        broken.write_text("def f(:\n")
        analyzer = PackageAnalyzer()
        analyzer.execute(core_ui_packaging)

        broken.unlink()
        analyzer.execute(core_ui_packaging)

        assert analyzer.skipped_modules == []

    def test_package_without_files(self, core_ui_packaging):
        core_ui_packaging.packages.append(Package(name="Empty", includes=["nothing/*.py"]))

        document = PackageAnalyzer(packages_to_analyze=["Empty"]).execute(core_ui_packaging)

        assert document.nodes == []
        assert document.edges == []

    def test_cancelled_before_loading(self, core_ui_packaging):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(AnalysisCancelledError):
            PackageAnalyzer().execute(core_ui_packaging, token)

    def test_cancelled_while_analyzing(self, core_ui_packaging, monkeypatch):
        """Test that a cancellation during extraction discards the run."""
        token = CancellationToken()
        original = PackageAnalyzer._analyze_type

        def cancelling_analyze_type(self, resolver, package, type_):
            token.cancel()
            return original(self, resolver, package, type_)

        monkeypatch.setattr(PackageAnalyzer, "_analyze_type", cancelling_analyze_type)

        with pytest.raises(AnalysisCancelledError):
            PackageAnalyzer(max_workers=1).execute(core_ui_packaging, token)

    def test_missing_module_root(self, tmp_path):
        packaging = SystemPackaging(tmp_path / "missing", [Package("Core", ["*.py"])])

        with pytest.raises(ConfigurationError):
            PackageAnalyzer().execute(packaging)

    def test_summary_is_logged(self, core_ui_packaging, caplog):
        with caplog.at_level(logging.INFO, logger="packviz"):
            PackageAnalyzer().execute(core_ui_packaging)

        summary = [r for r in caplog.records if r.getMessage().startswith("Analysis complete")]
        assert len(summary) == 1
        assert summary[0].extra_fields["edges"] == 2
        assert summary[0].extra_fields["packages"] == ["Core", "UI"]

    def test_from_config(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text("used_types_only: true\nmax_workers: 2\n")

        analyzer = PackageAnalyzer.from_config(Config(config_path), packages_to_analyze=["Core"])

        assert analyzer.used_types_only is True
        assert analyzer.max_workers == 2
        assert analyzer.ignore_platform_types is True
        assert analyzer.packages_to_analyze == ["Core"]
