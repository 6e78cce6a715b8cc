"""
Subgraph views and export data sources.

A subgraph is a ``GraphStore`` restricted to an explicit node and
relationship set. Schema information still comes from the parent store,
limited to the labels and types present in the subgraph.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from graph.model import (
    ConstraintInfo,
    Direction,
    GraphNode,
    GraphRelationship,
    IndexInfo,
)
from graph.store import GraphStore, labels_of


class NodesAndRelsSubGraph(GraphStore):
    """
    A store view over a fixed set of nodes and relationships.

    Args:
        parent: Store the entities came from; consulted for schema only
        nodes: Nodes in the view
        relationships: Relationships in the view
    """

    def __init__(
        self,
        parent: GraphStore,
        nodes: Sequence[GraphNode],
        relationships: Sequence[GraphRelationship],
    ):
        self.parent = parent
        self._nodes: Dict[Any, GraphNode] = {}
        for node in nodes:
            self._nodes.setdefault(node.id, node)
        self._relationships: Dict[Any, GraphRelationship] = {}
        for rel in relationships:
            self._relationships.setdefault(rel.id, rel)

        self._outgoing: Dict[Any, List[GraphRelationship]] = {}
        self._incoming: Dict[Any, List[GraphRelationship]] = {}
        for rel in self._relationships.values():
            self._outgoing.setdefault(rel.start_node.id, []).append(rel)
            self._incoming.setdefault(rel.end_node.id, []).append(rel)

    def all_labels_in_use(self) -> List[str]:
        return labels_of(self._nodes.values())

    def all_relationship_types_in_use(self) -> List[str]:
        types: Dict[str, None] = {}
        for rel in self._relationships.values():
            types.setdefault(rel.type, None)
        return list(types)

    def property_key_count(self) -> Optional[int]:
        keys = set()
        for entity in list(self._nodes.values()) + list(self._relationships.values()):
            keys.update(entity.properties)
        return len(keys)

    def count_nodes(self, label: Optional[str] = None) -> Optional[int]:
        if label is None:
            return len(self._nodes)
        return sum(1 for node in self._nodes.values() if label in node.labels)

    def count_relationships(
        self,
        rel_type: Optional[str] = None,
        start_label: Optional[str] = None,
        end_label: Optional[str] = None,
    ) -> Optional[int]:
        return sum(
            1 for rel in self._relationships.values()
            if (rel_type is None or rel.type == rel_type)
            and (start_label is None or start_label in rel.start_node.labels)
            and (end_label is None or end_label in rel.end_node.labels)
        )

    def find_nodes(self, label: str) -> Iterator[GraphNode]:
        return (node for node in self._nodes.values() if label in node.labels)

    def all_nodes(self) -> Iterator[GraphNode]:
        return iter(self._nodes.values())

    def all_relationships(self) -> Iterator[GraphRelationship]:
        return iter(self._relationships.values())

    def get_relationships(
        self,
        node: GraphNode,
        direction: Direction = Direction.BOTH,
        rel_type: Optional[str] = None,
    ) -> Iterator[GraphRelationship]:
        rels: List[GraphRelationship] = []
        if direction in (Direction.OUTGOING, Direction.BOTH):
            rels.extend(self._outgoing.get(node.id, []))
        if direction in (Direction.INCOMING, Direction.BOTH):
            rels.extend(
                r for r in self._incoming.get(node.id, [])
                if direction is Direction.INCOMING or r.start_node.id != r.end_node.id
            )
        return (r for r in rels if rel_type is None or r.type == rel_type)

    def get_constraints(self) -> List[ConstraintInfo]:
        labels = set(self.all_labels_in_use())
        types = set(self.all_relationship_types_in_use())
        return [
            c for c in self.parent.get_constraints()
            if c.label_or_type in (labels if c.type.is_node else types)
        ]

    def get_indexes(self) -> List[IndexInfo]:
        labels = set(self.all_labels_in_use())
        types = set(self.all_relationship_types_in_use())
        return [
            i for i in self.parent.get_indexes()
            if set(i.labels_or_types) & (types if i.for_relationships else labels)
        ]


# ============================================================================
# Export data sources
# ============================================================================

@dataclass
class DatabaseSource:
    """Export the whole store."""

    def describe(self, store: GraphStore) -> str:
        return f"database: nodes({store.count_nodes()}), rels({store.count_relationships()})"


@dataclass
class NodesAndRelsSource:
    """Export an explicit collection of nodes and relationships."""
    nodes: List[GraphNode] = field(default_factory=list)
    relationships: List[GraphRelationship] = field(default_factory=list)

    def describe(self, store: GraphStore) -> str:
        return f"data: nodes({len(self.nodes)}), rels({len(self.relationships)})"


@dataclass
class QuerySource:
    """
    Export what a Cypher statement returns.

    Graph formats collect the returned nodes and relationships. CSV writes
    the result table as-is.
    """
    statement: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def describe(self, store: GraphStore) -> str:
        return f"statement: {self.statement.strip()[:60]}"
