"""
Read-mostly graph store interface.

The metadata and export layers never talk to a database directly; they
go through ``GraphStore``. Two implementations ship with graphmeta:
``MemoryGraphStore`` (in-process, used by tests and offline tooling) and
``Neo4jGraphStore`` (a live server through the official driver).

Write batches are only used by the CSV loader. Each batch is atomic: it
is applied completely or not at all.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from graph.exceptions import MalformedInputError, StoreUnavailableError
from graph.model import (
    ConstraintInfo,
    Direction,
    GraphNode,
    GraphRelationship,
    IndexInfo,
)


class GraphStore(ABC):
    """Capability interface over a property graph."""

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @abstractmethod
    def all_labels_in_use(self) -> List[str]:
        """Labels carried by at least one node."""

    @abstractmethod
    def all_relationship_types_in_use(self) -> List[str]:
        """Relationship types carried by at least one relationship."""

    @abstractmethod
    def property_key_count(self) -> Optional[int]:
        """Number of distinct property keys in the store."""

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    @abstractmethod
    def count_nodes(self, label: Optional[str] = None) -> Optional[int]:
        """Count nodes, optionally restricted to one label."""

    @abstractmethod
    def count_relationships(
        self,
        rel_type: Optional[str] = None,
        start_label: Optional[str] = None,
        end_label: Optional[str] = None,
    ) -> Optional[int]:
        """Count relationships matching ``(:start_label)-[:rel_type]->(:end_label)``; None means any."""

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    @abstractmethod
    def find_nodes(self, label: str) -> Iterator[GraphNode]:
        """Iterate nodes carrying ``label``."""

    @abstractmethod
    def all_nodes(self) -> Iterator[GraphNode]:
        """Iterate every node."""

    @abstractmethod
    def all_relationships(self) -> Iterator[GraphRelationship]:
        """Iterate every relationship."""

    @abstractmethod
    def get_relationships(
        self,
        node: GraphNode,
        direction: Direction = Direction.BOTH,
        rel_type: Optional[str] = None,
    ) -> Iterator[GraphRelationship]:
        """Iterate the relationships of ``node`` in ``direction``, optionally of one type."""

    def get_degree(
        self,
        node: GraphNode,
        rel_type: Optional[str] = None,
        direction: Direction = Direction.BOTH,
    ) -> int:
        return sum(1 for _ in self.get_relationships(node, direction, rel_type))

    def get_relationship_types(self, node: GraphNode) -> List[str]:
        types: Dict[str, None] = {}
        for rel in self.get_relationships(node, Direction.BOTH):
            types.setdefault(rel.type, None)
        return list(types)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @abstractmethod
    def get_constraints(self) -> List[ConstraintInfo]:
        """Every constraint defined in the store."""

    @abstractmethod
    def get_indexes(self) -> List[IndexInfo]:
        """Every index defined in the store, constraint-backing ones included."""

    def node_constraints(self, label: Optional[str] = None) -> List[ConstraintInfo]:
        return [
            c for c in self.get_constraints()
            if c.type.is_node and (label is None or c.label_or_type == label)
        ]

    def relationship_constraints(self, rel_type: Optional[str] = None) -> List[ConstraintInfo]:
        return [
            c for c in self.get_constraints()
            if not c.type.is_node and (rel_type is None or c.label_or_type == rel_type)
        ]

    def node_indexes(self, label: Optional[str] = None) -> List[IndexInfo]:
        return [
            i for i in self.get_indexes()
            if not i.for_relationships and (label is None or label in i.labels_or_types)
        ]

    def relationship_indexes(self, rel_type: Optional[str] = None) -> List[IndexInfo]:
        return [
            i for i in self.get_indexes()
            if i.for_relationships and (rel_type is None or rel_type in i.labels_or_types)
        ]

    # ------------------------------------------------------------------
    # Queries and writes
    # ------------------------------------------------------------------

    def query_subgraph(
        self,
        statement: str,
        parameters: Optional[Dict[str, Any]] = None,
        rels_in_between: bool = False,
    ) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        """Run ``statement`` and collect the nodes and relationships it returns."""
        raise MalformedInputError(f"{type(self).__name__} cannot run queries")

    def run_query(
        self,
        statement: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        """Run ``statement`` and return ``(columns, rows)``."""
        raise MalformedInputError(f"{type(self).__name__} cannot run queries")

    def create_nodes(self, batch: List[Dict[str, Any]]) -> List[Any]:
        """
        Create nodes atomically.

        Args:
            batch: ``{"labels": [...], "properties": {...}}`` entries

        Returns:
            Store ids of the created nodes, in batch order
        """
        raise MalformedInputError(f"{type(self).__name__} is read-only")

    def create_relationships(self, batch: List[Dict[str, Any]]) -> int:
        """
        Create relationships atomically.

        Args:
            batch: ``{"type": ..., "start": id, "end": id, "properties": {...}}`` entries

        Returns:
            Number of relationships created
        """
        raise MalformedInputError(f"{type(self).__name__} is read-only")

    def clear(self) -> int:
        """Delete every node and relationship; schema is kept. Returns the number of nodes deleted."""
        raise MalformedInputError(f"{type(self).__name__} is read-only")


# ============================================================================
# Helper Functions
# ============================================================================

def require_count(value: Optional[int], what: str) -> int:
    """
    Reject a missing count.

    A store that cannot answer a count is treated as unavailable rather
    than as empty.
    """
    if value is None:
        raise StoreUnavailableError(f"Store returned no count for {what}")
    return value


def labels_of(nodes: Iterable[GraphNode]) -> List[str]:
    """Distinct labels of ``nodes`` in first-seen order."""
    seen: Dict[str, None] = {}
    for node in nodes:
        for label in node.labels:
            seen.setdefault(label, None)
    return list(seen)
