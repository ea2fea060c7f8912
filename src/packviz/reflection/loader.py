# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Module loading for type analysis.

This module turns Python source files into LoadedModule objects:
- File validation (source suffix, no binary content, no native extensions)
- File size limits
- Reading with UTF-8/latin-1 fallback encoding
- AST parsing with error recovery
- Collection of the classes (TypeEntity) a module declares
- Import alias collection for later name resolution

A ModuleLoader is scoped to one analysis run and caches every module it
loaded by resolved path, so repeated loads return the same instance.
"""

import ast
import io
import logging
import tokenize
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from packviz.models import SkippedModule, TypeDescriptor

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = frozenset({".py", ".pyw"})
NATIVE_SUFFIXES = frozenset({".so", ".pyd", ".dll", ".dylib"})

# Bytes inspected when sniffing for binary content
_SNIFF_BYTES = 8192


class ModuleLoadError(Exception):
    """Raised when a module fails structural loading.

    Carries every underlying cause, not only the first one.
    """

    def __init__(self, path: Path, causes: List[BaseException]) -> None:
        self.path = path
        self.causes = causes
        summary = "; ".join(str(c) for c in causes) or "unknown error"
        super().__init__(f"Failed to load {path}: {summary}")


@dataclass(frozen=True)
class TypeEntity:
    """A class declared in a loaded module, or a platform type.

    Equality and hashing only consider the fully-qualified name, so entities
    can be compared across threads and resolver instances.
    """

    full_name: str
    name: str = field(compare=False)
    module_name: str = field(compare=False)
    is_interface: bool = field(default=False, compare=False)
    is_platform: bool = field(default=False, compare=False)
    node: Optional[ast.ClassDef] = field(default=None, compare=False, repr=False)
    module: Optional["LoadedModule"] = field(default=None, compare=False, repr=False)

    @property
    def id(self) -> str:
        return self.full_name

    @property
    def qualname(self) -> str:
        """Name relative to the owning module (e.g. Outer.Inner)."""
        return self.full_name[len(self.module_name) + 1 :]

    def descriptor(self) -> TypeDescriptor:
        return TypeDescriptor(id=self.id, name=self.name, full_name=self.full_name)


@dataclass(eq=False)
class LoadedModule:
    """A parsed Python module and the types it declares."""

    path: Path
    name: str
    is_package: bool
    tree: ast.Module
    types: List[TypeEntity] = field(default_factory=list)
    # Local binding -> fully-qualified dotted target
    imports: Dict[str, str] = field(default_factory=dict)

    def get_type(self, qualname: str) -> Optional[TypeEntity]:
        for type_ in self.types:
            if type_.qualname == qualname:
                return type_
        return None


def is_python_module(path: Path) -> bool:
    """Check whether a file looks like a Python source module.

    Rejects missing files, non-source suffixes and binary content.
    """
    if not path.is_file() or path.suffix.lower() not in SOURCE_SUFFIXES:
        return False
    try:
        with open(path, "rb") as f:
            head = f.read(_SNIFF_BYTES)
    except OSError:
        return False
    return b"\0" not in head


def module_name_for(path: Path, root: Path) -> Tuple[str, bool]:
    """Derive the dotted module name of a file below root.

    Returns:
        Tuple of (module name, whether the module is a package __init__).
    """
    try:
        parts = list(path.resolve().relative_to(root.resolve()).with_suffix("").parts)
    except ValueError:
        parts = [path.stem]

    is_package = bool(parts) and parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    if not parts:
        # __init__.py directly in root
        parts = [root.resolve().name or "__init__"]
    return ".".join(parts), is_package


def _is_abstract_method(node: ast.AST) -> bool:
    if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return False
    for decorator in node.decorator_list:
        if isinstance(decorator, ast.Name) and decorator.id == "abstractmethod":
            return True
        if isinstance(decorator, ast.Attribute) and decorator.attr == "abstractmethod":
            return True
    return False


def is_interface_class(node: ast.ClassDef) -> bool:
    """Decide whether a class statement declares an interface.

    Protocol classes are interfaces, as are classes whose declared methods
    are all abstract (with at least one method).
    """
    for base in node.bases:
        target = base.value if isinstance(base, ast.Subscript) else base
        if isinstance(target, ast.Name) and target.id == "Protocol":
            return True
        if isinstance(target, ast.Attribute) and target.attr == "Protocol":
            return True

    methods = [n for n in node.body if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef))]
    return bool(methods) and all(_is_abstract_method(m) for m in methods)


def _iter_class_defs(
    body: List[ast.stmt], prefix: str
) -> Iterator[Tuple[str, ast.ClassDef]]:
    """Yield (qualname, node) for classes in a module or class body, recursively."""
    for node in body:
        if isinstance(node, ast.ClassDef):
            qualname = f"{prefix}.{node.name}" if prefix else node.name
            yield qualname, node
            yield from _iter_class_defs(node.body, qualname)
        elif isinstance(node, (ast.If, ast.Try)):
            # Conditionally defined classes still belong to the module
            nested: List[ast.stmt] = list(node.body) + list(node.orelse)
            if isinstance(node, ast.Try):
                nested += list(node.finalbody)
                for handler in node.handlers:
                    nested += list(handler.body)
            yield from _iter_class_defs(nested, prefix)


def _package_of(module_name: str, is_package: bool) -> str:
    if is_package:
        return module_name
    return module_name.rpartition(".")[0]


def collect_imports(tree: ast.Module, module_name: str, is_package: bool) -> Dict[str, str]:
    """Map names bound by import statements to fully-qualified dotted targets.

    Handles 'import a.b', 'import a.b as c', 'from x import y as z' and
    relative imports. Wildcard imports cannot bind specific names and are
    skipped.
    """
    imports: Dict[str, str] = {}
    package = _package_of(module_name, is_package)

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    imports[alias.asname] = alias.name
                else:
                    # 'import a.b' binds 'a'
                    head = alias.name.split(".")[0]
                    imports[head] = head

        elif isinstance(node, ast.ImportFrom):
            level = node.level or 0
            if level > 0:
                base_parts = package.split(".") if package else []
                if level - 1 > len(base_parts):
                    logger.debug(
                        f"Relative import level {level} exceeds package depth in {module_name}"
                    )
                    continue
                base_parts = base_parts[: len(base_parts) - (level - 1)]
                if node.module:
                    base_parts += node.module.split(".")
                source = ".".join(base_parts)
            else:
                source = node.module or ""

            for alias in node.names:
                if alias.name == "*":
                    continue
                bound = alias.asname or alias.name
                imports[bound] = f"{source}.{alias.name}" if source else alias.name

    return imports


class ModuleLoader:
    """Run-scoped loader and cache of Python modules.

    Error Recovery:
    - load(): never raises for bad files; records a SkippedModule and returns None
    - load_strict(): raises ModuleLoadError with every cause for callers that
      report failures themselves

    Thread Safety:
    - NOT thread-safe: load modules from one thread, then share the loaded
      modules read-only
    """

    MAX_FILE_LINES = 10000
    MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

    def __init__(
        self,
        root: Path,
        max_file_lines: int = MAX_FILE_LINES,
        max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        """Initialize the loader.

        Args:
            root: Module root used to derive dotted module names.
            max_file_lines: Files with more lines are skipped.
            max_file_size_bytes: Files with more bytes are skipped.
        """
        self.root = root
        self.max_file_lines = max_file_lines
        self.max_file_size_bytes = max_file_size_bytes
        self._modules: Dict[Path, LoadedModule] = {}
        self._skipped: Dict[Path, SkippedModule] = {}

    @property
    def modules(self) -> List[LoadedModule]:
        return list(self._modules.values())

    @property
    def skipped_modules(self) -> List[SkippedModule]:
        return list(self._skipped.values())

    def load(self, path: Path) -> Optional[LoadedModule]:
        """Load a module, recording a skip reason instead of raising.

        Returns:
            The cached or newly loaded module, or None if the file was skipped.
        """
        resolved = path.resolve()
        cached = self._modules.get(resolved)
        if cached is not None:
            return cached
        if resolved in self._skipped:
            return None

        reason = self._reject_reason(path)
        if reason is not None:
            self._skip(resolved, reason)
            return None

        try:
            return self.load_strict(path)
        except ModuleLoadError as e:
            self._skip(resolved, "; ".join(f"{type(c).__name__}: {c}" for c in e.causes))
            return None

    def load_strict(self, path: Path) -> LoadedModule:
        """Load a module or raise ModuleLoadError with all causes.

        Raises:
            ModuleLoadError: If the file cannot be read, decoded or parsed.
        """
        resolved = path.resolve()
        cached = self._modules.get(resolved)
        if cached is not None:
            return cached

        name, is_package = module_name_for(resolved, self.root)
        tree = self._parse(resolved)

        module = LoadedModule(
            path=resolved,
            name=name,
            is_package=is_package,
            tree=tree,
            imports=collect_imports(tree, name, is_package),
        )
        for qualname, node in _iter_class_defs(tree.body, ""):
            module.types.append(
                TypeEntity(
                    full_name=f"{name}.{qualname}",
                    name=node.name,
                    module_name=name,
                    is_interface=is_interface_class(node),
                    node=node,
                    module=module,
                )
            )

        self._modules[resolved] = module
        logger.debug(f"Loaded module {name} with {len(module.types)} type(s) from {resolved}")
        return module

    def _reject_reason(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return "not a file"
        if path.suffix.lower() in NATIVE_SUFFIXES:
            return "native extension module"
        if not is_python_module(path):
            return "not a Python source module"
        return None

    def _skip(self, resolved: Path, reason: str) -> None:
        logger.warning(f"⚠️ Skipping {resolved}: {reason}")
        self._skipped[resolved] = SkippedModule(path=str(resolved), reason=reason)

    def _read_bytes(self, path: Path) -> bytes:
        try:
            file_size = path.stat().st_size
            if file_size > self.max_file_size_bytes:
                raise ValueError(
                    f"{file_size} bytes exceeds limit ({self.max_file_size_bytes})"
                )
            data = path.read_bytes()
        except (OSError, ValueError) as e:
            raise ModuleLoadError(path, [e]) from e

        line_count = data.count(b"\n") + 1
        if line_count > self.max_file_lines:
            error = ValueError(f"{line_count} lines exceeds limit ({self.max_file_lines})")
            raise ModuleLoadError(path, [error])
        return data

    def _parse(self, path: Path) -> ast.Module:
        """Decode and parse a module.

        The declared (PEP 263) or default UTF-8 encoding is tried first; only a
        decoding failure falls back to latin-1. Every failed attempt is kept as
        a cause.
        """
        data = self._read_bytes(path)
        causes: List[BaseException] = []

        try:
            encoding, _ = tokenize.detect_encoding(io.BytesIO(data).readline)
        except SyntaxError as e:
            causes.append(e)
            encoding = "utf-8"

        attempts = [encoding]
        for attempt in attempts:
            try:
                source = data.decode(attempt)
            except (UnicodeDecodeError, LookupError) as e:
                causes.append(e)
                if "latin-1" not in attempts:
                    logger.warning(
                        f"⚠️ File {path} is not {attempt}, using latin-1 fallback encoding"
                    )
                    attempts.append("latin-1")
                continue

            try:
                return ast.parse(source, filename=str(path), mode="exec")
            except (SyntaxError, ValueError, RecursionError) as e:
                causes.append(e)
                break

        raise ModuleLoadError(path, causes)
