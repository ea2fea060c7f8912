# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Analysis engines.

- PackageAnalyzer: dependencies within one package or between packages
- InheritanceGraphInspector: inheritance neighborhood of one seed type
- AllTypesInspector: types declared in one module
"""

from packviz.analyzers.all_types_inspector import AllTypesInspector
from packviz.analyzers.inheritance_inspector import (
    InheritanceGraphBuilder,
    InheritanceGraphInspector,
)
from packviz.analyzers.package_analyzer import PackageAnalyzer

__all__ = [
    "AllTypesInspector",
    "InheritanceGraphBuilder",
    "InheritanceGraphInspector",
    "PackageAnalyzer",
]
