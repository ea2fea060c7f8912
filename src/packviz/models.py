# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for type dependency analysis.

This module defines the value objects shared by the analysis engines and the
documents they produce:
- EdgeKind: Classification of a relationship between two types
- TypeDescriptor: Node projection of a type (id, display name, full name)
- Edge: Directed relationship between two node ids
- FailedItem: A module or type that could not be processed
- SkippedModule: A file the module loader refused to load

All models use JSON-compatible primitives in their to_dict() exports.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple


class EdgeKind(Enum):
    """Kinds of relationships between two types."""

    DERIVES_FROM = "derives_from"  # class Child(Parent)
    IMPLEMENTS = "implements"  # class Impl(SomeProtocol)
    CALLS = "calls"  # Target() or target.method() inside a method body
    REFERENCES = "references"  # annotations, generic arguments, metaclass

    @property
    def is_structural(self) -> bool:
        """Whether this kind describes inheritance rather than usage."""
        return self in (EdgeKind.DERIVES_FROM, EdgeKind.IMPLEMENTS)


# Highest precedence first
EDGE_KIND_PRECEDENCE: Tuple[EdgeKind, ...] = (
    EdgeKind.DERIVES_FROM,
    EdgeKind.IMPLEMENTS,
    EdgeKind.CALLS,
    EdgeKind.REFERENCES,
)


def collapse_edge_kinds(kinds: Iterable[EdgeKind]) -> EdgeKind:
    """Pick the single display kind for a source/target pair.

    Args:
        kinds: All kinds discovered for the pair.

    Returns:
        The kind with the highest precedence.

    Raises:
        ValueError: If kinds is empty.
    """
    collected = list(kinds)
    if not collected:
        raise ValueError("Cannot collapse an empty set of edge kinds")
    return min(collected, key=EDGE_KIND_PRECEDENCE.index)


@dataclass(frozen=True)
class TypeDescriptor:
    """Node projection of a type."""

    id: str
    name: str
    full_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "full_name": self.full_name}


@dataclass(frozen=True)
class Edge:
    """A directed relationship between two nodes.

    Identity (and therefore deduplication) covers source, target and kind.
    """

    source: str
    target: str
    kind: EdgeKind

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.kind.value)

    @property
    def is_self_edge(self) -> bool:
        return self.source == self.target

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target, "kind": self.kind.value}


@dataclass(frozen=True)
class FailedItem:
    """A module or type that could not be processed, with a readable reason."""

    item: str
    failure_reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"item": self.item, "failure_reason": self.failure_reason}


@dataclass(frozen=True)
class SkippedModule:
    """A file the module loader did not load."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path} ({self.reason})"
