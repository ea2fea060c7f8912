# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Type dependency and inheritance graphs for Python code bases."""

from .analyzers import (
    AllTypesInspector,
    InheritanceGraphBuilder,
    InheritanceGraphInspector,
    PackageAnalyzer,
)
from .background import BackgroundAnalysis, run_async
from .cancellation import AnalysisCancelledError, CancellationToken
from .config import Config, ConfigurationError
from .documents import AnalysisDocument, GraphDocument, TypeRelationshipDocument
from .models import Edge, EdgeKind, FailedItem, SkippedModule, TypeDescriptor
from .packaging import Cluster, Package, SystemPackaging, load_system_packaging

__version__ = "0.1.0"

__all__ = [
    "AllTypesInspector",
    "InheritanceGraphBuilder",
    "InheritanceGraphInspector",
    "PackageAnalyzer",
    "BackgroundAnalysis",
    "run_async",
    "AnalysisCancelledError",
    "CancellationToken",
    "Config",
    "ConfigurationError",
    "AnalysisDocument",
    "GraphDocument",
    "TypeRelationshipDocument",
    "Edge",
    "EdgeKind",
    "FailedItem",
    "SkippedModule",
    "TypeDescriptor",
    "Cluster",
    "Package",
    "SystemPackaging",
    "load_system_packaging",
]
