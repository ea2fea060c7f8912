# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Inheritance focus analysis.

Answers "what inherits from / implements what" around one seed type: every
module under a directory is loaded, only structural edges (derives_from,
implements) are collected, and the neighborhood reachable from the seed is
written into a TypeRelationshipDocument. The neighborhood is every type
connected to the seed through structural edges in either direction, so
ancestors, descendants and siblings sharing a base are all included.

Broken modules never block the run; each becomes a FailedItem.
"""

import logging
from collections import deque
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from packviz.cancellation import CancellationToken
from packviz.config import ConfigurationError
from packviz.documents import TypeRelationshipDocument
from packviz.models import Edge, FailedItem, TypeDescriptor
from packviz.reflection import (
    LoadedModule,
    ModuleLoader,
    ModuleLoadError,
    Reflector,
    TypeResolver,
    is_python_module,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def discover_modules(directory: Path) -> List[Path]:
    """Find every Python source module below directory (recursive, sorted)."""
    candidates: Set[Path] = set()
    for suffix in ("*.py", "*.pyw"):
        candidates.update(directory.rglob(suffix))
    return [path for path in sorted(candidates) if is_python_module(path)]


def format_load_failure(error: ModuleLoadError) -> str:
    """Human-readable failure reason listing every cause of a load error."""
    if len(error.causes) > 1:
        lines = ["Failed to load module"]
        lines += [f"  LoadError ({type(cause).__name__}) {cause}" for cause in error.causes]
        return "\n".join(lines)

    cause = error.causes[0] if error.causes else error
    return f"Failed to load module: {cause}"


class InheritanceGraphBuilder:
    """Collects modules and writes the structural neighborhood of a seed.

    Edges are resolved in write_to() against every processed module, so a
    base class declared in a later module is still found.
    """

    def __init__(self, ignore_platform_types: bool = True) -> None:
        self.ignore_platform_types = ignore_platform_types
        self._modules: List[LoadedModule] = []

    def process(self, module: LoadedModule) -> None:
        self._modules.append(module)

    def write_to(self, seed_type_id: str, document: TypeRelationshipDocument) -> None:
        """Write the types connected to the seed with their edges."""
        resolver = TypeResolver(self._modules)

        descriptors: Dict[str, TypeDescriptor] = {}
        edges: Set[Edge] = set()
        for module in self._modules:
            for type_ in module.types:
                reflector = Reflector(resolver, type_, self.ignore_platform_types)
                for target, kind in reflector.get_base_types():
                    if target.id == type_.id:
                        continue
                    descriptors[type_.id] = type_.descriptor()
                    descriptors[target.id] = target.descriptor()
                    edges.add(Edge(source=type_.id, target=target.id, kind=kind))

        if seed_type_id not in descriptors:
            seed = resolver.lookup(seed_type_id)
            if seed is None:
                logger.warning(f"⚠️ Seed type {seed_type_id} not found in any loaded module")
                return
            descriptors[seed.id] = seed.descriptor()

        neighborhood = self._neighborhood(seed_type_id, edges)

        document.add_node(descriptors[seed_type_id])
        for node_id in sorted(neighborhood - {seed_type_id}):
            document.add_node(descriptors[node_id])

        for edge in sorted(edges, key=lambda e: e.key):
            if edge.source in neighborhood and edge.target in neighborhood:
                document.add_edge(edge)

    @staticmethod
    def _neighborhood(seed_id: str, edges: Iterable[Edge]) -> Set[str]:
        """Ids of every type connected to the seed, edges taken in both directions."""
        adjacency: Dict[str, Set[str]] = {}
        for edge in edges:
            adjacency.setdefault(edge.source, set()).add(edge.target)
            adjacency.setdefault(edge.target, set()).add(edge.source)

        visited = {seed_id}
        queue = deque([seed_id])
        while queue:
            current = queue.popleft()
            for neighbor in adjacency.get(current, ()):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return visited


class InheritanceGraphInspector:
    """Builds the inheritance neighborhood of a seed type.

    Usage:
        inspector = InheritanceGraphInspector(Path("src"), "shapes.base.Shape")
        document = inspector.execute(token, progress=bar.update)
        if document is None:
            ...  # cancelled
    """

    def __init__(
        self,
        module_directory: Path,
        seed_type: str,
        ignore_platform_types: bool = True,
    ) -> None:
        """Initialize the inspector.

        Args:
            module_directory: Directory to scan. A file path selects its
                parent directory.
            seed_type: Fully-qualified name of the type to focus on.
            ignore_platform_types: Ignore builtin and standard library bases.
        """
        self.module_directory = Path(module_directory)
        self.seed_type = seed_type
        self.ignore_platform_types = ignore_platform_types

    def execute(
        self,
        cancellation_token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Optional[TypeRelationshipDocument]:
        """Run the analysis.

        Returns:
            The document, or None if cancellation was requested.

        Raises:
            ValueError: If no seed type is given.
            ConfigurationError: If the module directory does not exist.
        """
        if not self.seed_type:
            raise ValueError("A seed type is required")

        directory = self.module_directory
        if directory.is_file():
            directory = directory.parent
        if not directory.is_dir():
            raise ConfigurationError(f"Module directory is not a directory: {directory}")

        token = cancellation_token or CancellationToken()

        module_files = discover_modules(directory)
        logger.info(f"Inspecting {len(module_files)} module(s) under {directory}")
        self._report(progress, 0.0)

        if token.is_cancellation_requested:
            return None

        document = TypeRelationshipDocument()
        builder = InheritanceGraphBuilder(self.ignore_platform_types)
        loader = ModuleLoader(directory)

        for index, path in enumerate(module_files):
            self._process_module(loader, builder, document, path)
            self._report(progress, (index + 1) / len(module_files))

            if token.is_cancellation_requested:
                return None

        if not module_files:
            self._report(progress, 1.0)

        builder.write_to(self.seed_type, document)

        if token.is_cancellation_requested:
            return None

        logger.info(
            f"Inheritance graph of {self.seed_type}: {len(document.nodes)} nodes, "
            f"{len(document.edges)} edges, {len(document.failed_items)} failed module(s)"
        )
        return document

    def _process_module(
        self,
        loader: ModuleLoader,
        builder: InheritanceGraphBuilder,
        document: TypeRelationshipDocument,
        path: Path,
    ) -> None:
        try:
            module = loader.load_strict(path)
        except ModuleLoadError as e:
            logger.warning(f"⚠️ {e}")
            document.add_failed_item(
                FailedItem(item=str(e.path), failure_reason=format_load_failure(e))
            )
            return

        builder.process(module)

    @staticmethod
    def _report(progress: Optional[ProgressCallback], value: float) -> None:
        if progress is not None:
            progress(value)
