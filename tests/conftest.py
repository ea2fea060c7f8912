# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures.

Provides small Python projects written to tmp_path and the matching
package definitions.
"""

import logging
import textwrap
from pathlib import Path
from typing import Callable, Optional

import pytest

from packviz.packaging import Cluster, Package, SystemPackaging

WriteModule = Callable[..., Path]


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by setup_logging()."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture
def write_module(tmp_path: Path) -> WriteModule:
    """Return a helper writing dedented source to a path below a root.

    Usage:
        write_module("core/models.py", '''
            class User:
                pass
        ''')
    """

    def _write(relative: str, source: str = "", root: Optional[Path] = None) -> Path:
        path = (root or tmp_path) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def core_ui_project(tmp_path: Path, write_module: WriteModule) -> Path:
    """Create a two-package project.

    - core: B, A (A inherits B), Helper (no relationships)
    - ui: C (C uses A through an annotation and a constructor call)

    Returns:
        Path to the module root
    """
    root = tmp_path / "project"
    write_module("core/__init__.py", "", root=root)
    write_module(
        "core/base.py",
        """
        class B:
            pass
        """,
        root=root,
    )
    write_module(
        "core/a.py",
        """
        from core.base import B


        class A(B):
            pass
        """,
        root=root,
    )
    write_module(
        "core/helper.py",
        """
        class Helper:
            def run(self) -> int:
                return 1
        """,
        root=root,
    )
    write_module("ui/__init__.py", "", root=root)
    write_module(
        "ui/view.py",
        """
        from core.a import A


        class C:
            def __init__(self, a: A) -> None:
                self.a = a

            def reset(self) -> None:
                self.a = A()
        """,
        root=root,
    )
    return root


@pytest.fixture
def core_ui_packaging(core_ui_project: Path) -> SystemPackaging:
    """Package definitions for core_ui_project, Core first."""
    return SystemPackaging(
        module_root=core_ui_project,
        packages=[
            Package(
                name="Core",
                includes=["core/**/*.py"],
                clusters=[
                    Cluster("Everything", ["core.*"]),
                    Cluster("Inheritance", ["core.a.*", "core.base.*"]),
                ],
            ),
            Package(name="UI", includes=["ui/**/*.py"]),
        ],
    )
