# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Listing of the types declared in one module."""

import logging
from pathlib import Path
from typing import List, Optional

from packviz.models import TypeDescriptor
from packviz.reflection import ModuleLoader

logger = logging.getLogger(__name__)


class AllTypesInspector:
    """Lists every class a module declares, e.g. to pick an inheritance seed.

    Type names are derived relative to module_root (default: the module's own
    directory), matching the names InheritanceGraphInspector produces for the
    same directory.
    """

    def __init__(self, module_path: Path, module_root: Optional[Path] = None) -> None:
        self.module_path = Path(module_path)
        self.module_root = Path(module_root) if module_root is not None else self.module_path.parent

    def execute(self) -> List[TypeDescriptor]:
        """Return the module's types sorted by full name.

        Raises:
            ModuleLoadError: If the module cannot be loaded.
        """
        loader = ModuleLoader(self.module_root)
        module = loader.load_strict(self.module_path)
        descriptors = sorted((t.descriptor() for t in module.types), key=lambda d: d.full_name)
        logger.debug(f"Found {len(descriptors)} type(s) in {self.module_path}")
        return descriptors
