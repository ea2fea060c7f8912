# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Name resolution over a set of loaded modules.

The TypeResolver answers "which type does this expression name?" for code
inside one module. It is the metadata reader behind the Reflector.

Resolution order for a dotted name used in module M:
1. Local scope: a class nested in the enclosing class body, then a class
   declared in M (including Outer.Inner chains)
2. Imported names: follow M's import bindings, then re-exports through
   other loaded modules
3. Built-in classes: materialized as platform types (builtins.X)
4. Standard library: dotted names into stdlib modules become platform types
5. Unresolved: None (third-party or dynamic names)

The resolver only reads loaded modules after construction, so one instance
can be shared by concurrent workers.
"""

import ast
import builtins
import logging
import sys
from typing import Dict, Iterable, Optional

from packviz.reflection.loader import LoadedModule, TypeEntity

logger = logging.getLogger(__name__)

# Re-export chains longer than this are treated as unresolved
MAX_REEXPORT_DEPTH = 10


class TypeResolver:
    """Resolves names in a module to TypeEntity objects."""

    # Python built-in classes (object, Exception, dict, ...)
    BUILTIN_CLASSES = frozenset(
        name for name in dir(builtins) if isinstance(getattr(builtins, name), type)
    )

    STDLIB_MODULES = frozenset(sys.stdlib_module_names) | {"builtins"}

    # Platform modules whose classes act as interfaces
    INTERFACE_MODULES = frozenset({"collections.abc", "typing", "typing_extensions"})
    NON_INTERFACE_TYPING_NAMES = frozenset({"Generic", "NamedTuple", "TypedDict", "Any"})

    def __init__(self, modules: Iterable[LoadedModule]) -> None:
        self._modules: Dict[str, LoadedModule] = {}
        self._types: Dict[str, TypeEntity] = {}
        for module in modules:
            self._modules[module.name] = module
            for type_ in module.types:
                self._types[type_.full_name] = type_

    @property
    def types(self) -> Dict[str, TypeEntity]:
        return dict(self._types)

    def lookup(self, full_name: str) -> Optional[TypeEntity]:
        """Find a loaded (non-platform) type by fully-qualified name."""
        return self._types.get(full_name)

    def resolve_expression(
        self, module: LoadedModule, expr: ast.expr, scope: Optional[str] = None
    ) -> Optional[TypeEntity]:
        """Resolve a Name or Attribute chain expression used in module."""
        dotted = dotted_name(expr)
        if dotted is None:
            return None
        return self.resolve_name(module, dotted, scope)

    def resolve_name(
        self, module: LoadedModule, dotted: str, scope: Optional[str] = None
    ) -> Optional[TypeEntity]:
        """Resolve a dotted name as written in module.

        Args:
            module: Module the name is used in.
            dotted: The name as written (e.g. "Order" or "models.Order").
            scope: Qualified name of the class whose body the name appears in.

        Returns:
            The resolved type, or None if the name is not a known type.
        """
        head, _, rest = dotted.partition(".")

        # 1. Local scope
        if scope:
            nested = self._types.get(f"{module.name}.{scope}.{dotted}")
            if nested is not None:
                return nested
        local = self._types.get(f"{module.name}.{dotted}")
        if local is not None:
            return local

        # 2. Imported names
        if head in module.imports:
            target = module.imports[head]
            return self._resolve_qualified(f"{target}.{rest}" if rest else target, 0)

        # 3. Built-in classes
        if not rest and head in self.BUILTIN_CLASSES:
            return self.platform_type(f"builtins.{head}")

        return None

    def _resolve_qualified(self, full_name: str, depth: int) -> Optional[TypeEntity]:
        if depth > MAX_REEXPORT_DEPTH:
            logger.debug(f"Re-export chain too deep while resolving {full_name}")
            return None

        found = self._types.get(full_name)
        if found is not None:
            return found

        # Follow re-exports: find the longest loaded module prefix
        parts = full_name.split(".")
        for cut in range(len(parts) - 1, 0, -1):
            module = self._modules.get(".".join(parts[:cut]))
            if module is None:
                continue
            first, remainder = parts[cut], parts[cut + 1 :]
            if first in module.imports:
                target = module.imports[first]
                if remainder:
                    target = ".".join([target] + remainder)
                if target != full_name:
                    return self._resolve_qualified(target, depth + 1)
            # A loaded module that neither declares nor imports the name
            return None

        if parts[0] in self.STDLIB_MODULES and len(parts) > 1:
            return self.platform_type(full_name)

        return None

    def platform_type(self, full_name: str) -> TypeEntity:
        """Materialize a builtin or standard library type."""
        module_name, _, name = full_name.rpartition(".")
        if module_name in self.INTERFACE_MODULES:
            is_interface = name not in self.NON_INTERFACE_TYPING_NAMES
        else:
            is_interface = False
        return TypeEntity(
            full_name=full_name,
            name=name,
            module_name=module_name,
            is_interface=is_interface,
            is_platform=True,
        )


def dotted_name(expr: ast.expr) -> Optional[str]:
    """Build "a.b.C" from a Name or Attribute chain, or None for other nodes."""
    parts = []
    current: ast.expr = expr
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if not isinstance(current, ast.Name):
        return None
    parts.append(current.id)
    return ".".join(reversed(parts))
