# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Package dependency analysis.

Pipeline:
1. Load: resolve each selected package's files under the module root and
   load them, building a package -> types mapping (sequential, cancellable
   before each package)
2. Analyze: run the Reflector over every (package, type) pair on a thread
   pool (fork-join over partitions), keeping only edges that pass the
   visibility rule:
   - one package: intra-package edges only
   - several packages: edges into a different analyzed package only
3. Assemble: nodes, cluster membership, package colors and edge colors in
   an AnalysisDocument

Loaded modules and the package mapping are built once and only read by the
workers. Each worker collects into its own list; lists are merged and
deduplicated after the join.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from packviz.cancellation import CancellationToken
from packviz.config import Config, ConfigurationError
from packviz.documents import AnalysisDocument
from packviz.models import Edge, EdgeKind, SkippedModule
from packviz.packaging import Package, SystemPackaging
from packviz.patterns import first_match, select_files
from packviz.reflection import LoadedModule, ModuleLoader, Reflector, TypeEntity, TypeResolver

logger = logging.getLogger(__name__)

NODE_COLORS = ("LightBlue", "LightGreen", "LightGray", "LightCoral", "Brown")
STRUCTURAL_EDGE_COLOR = "Blue"
REFERENCE_EDGE_COLOR = "Gray"

PackageType = Tuple[Package, TypeEntity]


def edge_color(kind: EdgeKind) -> Optional[str]:
    """Color of an edge by kind; None keeps the default rendering (calls)."""
    if kind.is_structural:
        return STRUCTURAL_EDGE_COLOR
    if kind is EdgeKind.CALLS:
        return None
    return REFERENCE_EDGE_COLOR


def node_color(package_index: int) -> str:
    """Color of the nodes of the package at package_index (declaration order)."""
    return NODE_COLORS[package_index % len(NODE_COLORS)]


class PackageAnalyzer:
    """Builds dependency graphs within one package or between packages.

    Usage:
        analyzer = PackageAnalyzer(packages_to_analyze=["Core", "UI"])
        document = analyzer.execute(packaging, token)
        for skipped in analyzer.skipped_modules:
            ...

    Error Recovery:
    - Unloadable modules are skipped and listed in skipped_modules
    - Packages without matching files contribute no types
    - A missing module root raises ConfigurationError before any work
    - Cancellation raises AnalysisCancelledError; no partial document is returned
    """

    def __init__(
        self,
        packages_to_analyze: Optional[Sequence[str]] = None,
        used_types_only: bool = False,
        ignore_platform_types: bool = True,
        max_workers: Optional[int] = None,
        max_file_lines: int = ModuleLoader.MAX_FILE_LINES,
        max_file_size_bytes: int = ModuleLoader.MAX_FILE_SIZE_BYTES,
    ):
        """Initialize the analyzer.

        Args:
            packages_to_analyze: Package names (case-insensitive). If empty, the
                dependencies between all packages are analyzed.
            used_types_only: Drop nodes that are not touched by any edge.
            ignore_platform_types: Ignore builtin and standard library targets.
            max_workers: Worker threads for edge extraction (None: pool default).
            max_file_lines: Loader limit per file.
            max_file_size_bytes: Loader limit per file.
        """
        self.packages_to_analyze: List[str] = list(packages_to_analyze or [])
        self.used_types_only = used_types_only
        self.ignore_platform_types = ignore_platform_types
        self.max_workers = max_workers
        self.max_file_lines = max_file_lines
        self.max_file_size_bytes = max_file_size_bytes

        self._loader: Optional[ModuleLoader] = None
        self._relevant_packages: List[Package] = []
        self._package_types: Dict[str, List[TypeEntity]] = {}
        self._type_packages: Dict[str, Set[str]] = {}

    @classmethod
    def from_config(
        cls, config: Config, packages_to_analyze: Optional[Sequence[str]] = None
    ) -> "PackageAnalyzer":
        return cls(
            packages_to_analyze=packages_to_analyze,
            used_types_only=config.used_types_only,
            ignore_platform_types=config.ignore_platform_types,
            max_workers=config.max_workers,
            max_file_lines=config.max_file_lines,
            max_file_size_bytes=config.max_file_size_bytes,
        )

    @property
    def skipped_modules(self) -> List[SkippedModule]:
        """Files skipped by the loader during the last run."""
        if self._loader is None:
            return []
        return self._loader.skipped_modules

    def execute(
        self,
        packaging: SystemPackaging,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> AnalysisDocument:
        """Run the analysis.

        Args:
            packaging: Module root and package definitions.
            cancellation_token: Polled before each package, before each type
                and after the worker join.

        Returns:
            The assembled AnalysisDocument.

        Raises:
            ConfigurationError: If the module root is not a directory.
            AnalysisCancelledError: If cancellation was requested.
        """
        root = packaging.module_root
        if not root.is_dir():
            raise ConfigurationError(f"Module root is not a directory: {root}")

        token = cancellation_token or CancellationToken()

        self._loader = ModuleLoader(
            root,
            max_file_lines=self.max_file_lines,
            max_file_size_bytes=self.max_file_size_bytes,
        )
        self._relevant_packages = packaging.select(self.packages_to_analyze)
        self._package_types = {}
        self._type_packages = {}

        logger.info(f"Module root {root.resolve()}")
        self._load(root, token)

        logger.info("Analyzing ...")
        edges = self._analyze(token)

        skipped = self._loader.skipped_modules
        if skipped:
            logger.warning(f"Skipped {len(skipped)} module(s):")
            for module in skipped:
                logger.warning(f"  {module}")

        logger.info("Building graph ...")
        token.raise_if_cancellation_requested()
        document = self._generate_document(edges)

        logger.info(
            f"Analysis complete: {len(document.nodes)} nodes, {len(document.edges)} edges",
            extra={
                "extra_fields": {
                    "packages": [p.name for p in self._relevant_packages],
                    "nodes": len(document.nodes),
                    "edges": len(document.edges),
                    "skipped_modules": len(skipped),
                }
            },
        )
        return document

    # ------------------------------------------------------------------
    # Step 1: Load
    # ------------------------------------------------------------------

    def _load(self, root, token: CancellationToken) -> None:
        for package in self._relevant_packages:
            token.raise_if_cancellation_requested()

            types = [t for module in self._load_package(root, package) for t in module.types]
            self._package_types[package.name] = types
            for type_ in types:
                self._type_packages.setdefault(type_.full_name, set()).add(package.name)

    def _load_package(self, root, package: Package) -> List[LoadedModule]:
        assert self._loader is not None
        logger.info(f"Loading package {package.name}")

        files = select_files(root, package.includes, package.excludes)
        if not files:
            logger.info(f"Package {package.name} matches no files")

        modules = []
        for path in files:
            module = self._loader.load(path)
            if module is not None:
                modules.append(module)
        return modules

    # ------------------------------------------------------------------
    # Step 2: Analyze
    # ------------------------------------------------------------------

    def _worker_count(self, work_items: int) -> int:
        workers = self.max_workers or min(32, (os.cpu_count() or 1) + 4)
        return max(1, min(workers, work_items))

    def _analyze(self, token: CancellationToken) -> Set[Edge]:
        assert self._loader is not None
        pairs: List[PackageType] = [
            (package, type_)
            for package in self._relevant_packages
            for type_ in self._package_types[package.name]
        ]
        if not pairs:
            return set()

        resolver = TypeResolver(self._loader.modules)
        worker_count = self._worker_count(len(pairs))
        partitions = [pairs[i::worker_count] for i in range(worker_count)]

        with ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix="packviz-analyze"
        ) as executor:
            futures = [
                executor.submit(self._analyze_partition, resolver, partition, token)
                for partition in partitions
            ]
            results = [future.result() for future in futures]

        token.raise_if_cancellation_requested()

        edges: Set[Edge] = set()
        for result in results:
            edges.update(result)
        return edges

    def _analyze_partition(
        self,
        resolver: TypeResolver,
        partition: List[PackageType],
        token: CancellationToken,
    ) -> List[Edge]:
        edges: List[Edge] = []
        for package, type_ in partition:
            if token.is_cancellation_requested:
                break
            edges.extend(self._analyze_type(resolver, package, type_))
        return edges

    def _analyze_type(
        self, resolver: TypeResolver, package: Package, type_: TypeEntity
    ) -> Iterator[Edge]:
        # if only one package is given we analyse the deps within the package,
        # otherwise between the packages
        focused = len(self._relevant_packages) == 1

        reflector = Reflector(resolver, type_, self.ignore_platform_types)
        for target, kind in reflector.get_used_types():
            if target.full_name == type_.full_name:
                continue

            owners = self._type_packages.get(target.full_name, set())
            if focused:
                visible = package.name in owners
            else:
                visible = any(owner != package.name for owner in owners)

            if visible:
                yield Edge(source=type_.id, target=target.id, kind=kind)

    # ------------------------------------------------------------------
    # Step 3: Assemble
    # ------------------------------------------------------------------

    def _generate_document(self, edges: Set[Edge]) -> AnalysisDocument:
        document = AnalysisDocument()

        used_nodes: Set[str] = set()
        if self.used_types_only:
            for edge in edges:
                used_nodes.add(edge.source)
                used_nodes.add(edge.target)

        multiple_packages = len(self._relevant_packages) > 1

        for index, package in enumerate(self._relevant_packages):
            for type_ in self._package_types[package.name]:
                if self.used_types_only and type_.id not in used_nodes:
                    continue

                if not document.add_node(type_.descriptor()):
                    # Already added by an earlier package
                    continue

                cluster = first_match(type_.full_name, package.clusters)
                if cluster is not None:
                    document.add_to_cluster(type_.id, cluster.name)

                if multiple_packages:
                    # color coding of nodes is only needed if multiple packages are analyzed
                    document.add_node_color(type_.id, node_color(index))

        for edge in sorted(edges, key=lambda e: e.key):
            document.add_edge(edge)

            color = edge_color(edge.kind)
            if color is not None:
                document.add_edge_color(edge, color)

        return document
