# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Static reflection over Python modules.

Components:
- ModuleLoader: Run-scoped loading and caching of Python source modules
- TypeResolver: Resolution of names inside a module to declared types
- Reflector: Extraction of the types one class uses, classified by EdgeKind

Layering:
- Layer 1: Module loading (files -> LoadedModule with TypeEntity list)
- Layer 2: Name resolution (expressions -> TypeEntity)
- Layer 3: Relationship extraction (TypeEntity -> (TypeEntity, EdgeKind) pairs)
"""

from packviz.reflection.loader import (
    LoadedModule,
    ModuleLoader,
    ModuleLoadError,
    TypeEntity,
    is_python_module,
)
from packviz.reflection.reflector import Reflector
from packviz.reflection.resolver import TypeResolver

__all__ = [
    "LoadedModule",
    "ModuleLoader",
    "ModuleLoadError",
    "TypeEntity",
    "is_python_module",
    "Reflector",
    "TypeResolver",
]
