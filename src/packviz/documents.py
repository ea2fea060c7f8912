# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Graph documents produced by the analysis engines.

The documents are in-process object graphs handed to a presentation layer.
Both documents guarantee that:
- A node appears at most once
- Every edge connects two nodes already present in the document
- Self edges never enter the document
- Identical edges (source, target, kind) are stored once
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from packviz.models import Edge, EdgeKind, FailedItem, TypeDescriptor, collapse_edge_kinds

logger = logging.getLogger(__name__)


class GraphDocument:
    """Nodes, edges and failed items shared by all document kinds."""

    def __init__(self) -> None:
        self._nodes: Dict[str, TypeDescriptor] = {}
        self._edges: Dict[Tuple[str, str, str], Edge] = {}
        self.failed_items: List[FailedItem] = []

    @property
    def nodes(self) -> List[TypeDescriptor]:
        """Nodes in insertion order."""
        return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        """Edges in insertion order."""
        return list(self._edges.values())

    def get_node(self, node_id: str) -> Optional[TypeDescriptor]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def add_node(self, node: TypeDescriptor) -> bool:
        """Add a node unless a node with the same id already exists.

        Returns:
            True if the node was added, False if it was already present.
        """
        if node.id in self._nodes:
            return False
        self._nodes[node.id] = node
        return True

    def add_edge(self, edge: Edge) -> bool:
        """Add an edge between two existing nodes.

        Args:
            edge: Edge to add.

        Returns:
            True if the edge was added, False for duplicates and self edges.

        Raises:
            ValueError: If the source or target node is not in the document.
        """
        if edge.is_self_edge:
            logger.debug(f"Dropping self edge on {edge.source}")
            return False

        for endpoint in (edge.source, edge.target):
            if endpoint not in self._nodes:
                raise ValueError(f"Edge endpoint '{endpoint}' is not a node of the document")

        if edge.key in self._edges:
            return False
        self._edges[edge.key] = edge
        return True

    def add_failed_item(self, item: FailedItem) -> None:
        self.failed_items.append(item)

    def collapsed_edges(self) -> Dict[Tuple[str, str], EdgeKind]:
        """Collapse edges to one display kind per (source, target) pair."""
        kinds: Dict[Tuple[str, str], List[EdgeKind]] = {}
        for edge in self._edges.values():
            kinds.setdefault((edge.source, edge.target), []).append(edge.kind)
        return {pair: collapse_edge_kinds(pair_kinds) for pair, pair_kinds in kinds.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Export to a JSON-compatible dict."""
        return {
            "metadata": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "document_type": type(self).__name__,
                "total_nodes": len(self._nodes),
                "total_edges": len(self._edges),
            },
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values()],
            "failed_items": [item.to_dict() for item in self.failed_items],
        }


class AnalysisDocument(GraphDocument):
    """Output of a package dependency analysis.

    Adds cluster membership (at most one cluster per node) and color
    annotations for nodes and edges.
    """

    def __init__(self) -> None:
        super().__init__()
        self.node_clusters: Dict[str, str] = {}
        self.node_colors: Dict[str, str] = {}
        self.edge_colors: Dict[Tuple[str, str, str], str] = {}

    @property
    def clusters(self) -> Dict[str, List[str]]:
        """Cluster name -> member node ids, in node insertion order."""
        result: Dict[str, List[str]] = {}
        for node_id, cluster in self.node_clusters.items():
            result.setdefault(cluster, []).append(node_id)
        return result

    def add_to_cluster(self, node_id: str, cluster_name: str) -> None:
        """Assign a node to a cluster. The first assignment wins."""
        if node_id not in self._nodes:
            raise ValueError(f"Cannot cluster unknown node '{node_id}'")
        self.node_clusters.setdefault(node_id, cluster_name)

    def add_node_color(self, node_id: str, color: str) -> None:
        if node_id not in self._nodes:
            raise ValueError(f"Cannot color unknown node '{node_id}'")
        self.node_colors[node_id] = color

    def add_edge_color(self, edge: Edge, color: str) -> None:
        if edge.key not in self._edges:
            raise ValueError(f"Cannot color unknown edge {edge.source} -> {edge.target}")
        self.edge_colors[edge.key] = color

    def get_edge_color(self, edge: Edge) -> Optional[str]:
        return self.edge_colors.get(edge.key)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["clusters"] = self.clusters
        result["node_colors"] = dict(self.node_colors)
        result["edge_colors"] = [
            {"source": source, "target": target, "kind": kind, "color": color}
            for (source, target, kind), color in self.edge_colors.items()
        ]
        return result


class TypeRelationshipDocument(GraphDocument):
    """Output of an inheritance focus analysis.

    Edges only carry structural kinds (derives_from, implements).
    """

    @property
    def edge_types(self) -> Dict[Tuple[str, str], EdgeKind]:
        """(source, target) -> kind, for presentation styling."""
        return self.collapsed_edges()

    def add_edge(self, edge: Edge) -> bool:
        if not edge.kind.is_structural:
            raise ValueError(f"Inheritance documents only hold structural edges, got {edge.kind}")
        return super().add_edge(edge)
