"""
GraphStore backed by a live Neo4j server.

Reads go through the queries in ``graph.queries``; writes go through the
UNWIND batches in ``graph.batch_operations``. Driver connectivity errors
surface as ``StoreUnavailableError``.
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

from neo4j.exceptions import ServiceUnavailable, SessionExpired
from neo4j.graph import Node, Relationship

from graph import queries
from graph.batch_operations import create_nodes_batch, create_relationships_batch
from graph.connection import Neo4jConnection
from graph.exceptions import StoreUnavailableError
from graph.model import (
    ConstraintInfo,
    ConstraintType,
    Direction,
    GraphNode,
    GraphRelationship,
    IndexInfo,
    IndexType,
)
from graph.store import GraphStore
from utils.logger import get_logger

logger = get_logger(__name__)

_DRIVER_ERRORS = (ServiceUnavailable, SessionExpired)


# ============================================================================
# Helper Functions
# ============================================================================

def to_graph_node(node: Node) -> GraphNode:
    """Convert a driver node into a ``GraphNode``."""
    return GraphNode(node.element_id, tuple(sorted(node.labels)), dict(node.items()))


def to_graph_relationship(rel: Relationship, start: Node, end: Node) -> GraphRelationship:
    return GraphRelationship(
        rel.element_id,
        rel.type,
        to_graph_node(start),
        to_graph_node(end),
        dict(rel.items()),
    )


def _to_constraint(record: Dict[str, Any]) -> Optional[ConstraintInfo]:
    try:
        constraint_type = ConstraintType(record["type"])
    except ValueError:
        # property type constraints carry no key semantics
        logger.debug(f"Skipping constraint {record['name']} of type {record['type']}")
        return None
    return ConstraintInfo(
        name=record["name"],
        type=constraint_type,
        label_or_type=record["labelsOrTypes"][0],
        properties=tuple(record["properties"] or ()),
    )


def _to_index(record: Dict[str, Any]) -> Optional[IndexInfo]:
    try:
        index_type = IndexType(record["type"])
    except ValueError:
        logger.debug(f"Skipping index {record['name']} of type {record['type']}")
        return None
    return IndexInfo(
        name=record["name"],
        type=index_type,
        labels_or_types=tuple(record["labelsOrTypes"] or ()),
        properties=tuple(record["properties"] or ()),
        for_relationships=record["entityType"] == "RELATIONSHIP",
        owning_constraint=record.get("owningConstraint"),
    )


class Neo4jGraphStore(GraphStore):
    """
    ``GraphStore`` over a ``Neo4jConnection``.

    Args:
        connection: An open connection
    """

    def __init__(self, connection: Neo4jConnection):
        self.connection = connection

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------

    def _read(self, query_and_params: Tuple[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
        query, params = query_and_params
        try:
            return self.connection.execute_query(query, params)
        except _DRIVER_ERRORS as e:
            logger.error(f"Store read failed: {e}", exc_info=True)
            raise StoreUnavailableError(str(e)) from e

    def _stream(self, query_and_params: Tuple[str, Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        query, params = query_and_params
        try:
            yield from self.connection.stream_query(query, params)
        except _DRIVER_ERRORS as e:
            logger.error(f"Store read failed: {e}", exc_info=True)
            raise StoreUnavailableError(str(e)) from e

    def _single_count(self, query_and_params, key: str = "count") -> Optional[int]:
        records = self._read(query_and_params)
        if not records:
            return None
        return records[0].get(key)

    # ------------------------------------------------------------------
    # GraphStore
    # ------------------------------------------------------------------

    def all_labels_in_use(self) -> List[str]:
        return [r["label"] for r in self._read(queries.labels_in_use())]

    def all_relationship_types_in_use(self) -> List[str]:
        return [r["type"] for r in self._read(queries.relationship_types_in_use())]

    def property_key_count(self) -> Optional[int]:
        return self._single_count(queries.property_key_count())

    def count_nodes(self, label: Optional[str] = None) -> Optional[int]:
        return self._single_count(queries.count_nodes(label))

    def count_relationships(
        self,
        rel_type: Optional[str] = None,
        start_label: Optional[str] = None,
        end_label: Optional[str] = None,
    ) -> Optional[int]:
        return self._single_count(queries.count_relationships(rel_type, start_label, end_label))

    def find_nodes(self, label: str) -> Iterator[GraphNode]:
        return (to_graph_node(r["n"]) for r in self._stream(queries.nodes_by_label(label)))

    def all_nodes(self) -> Iterator[GraphNode]:
        return (to_graph_node(r["n"]) for r in self._stream(queries.all_nodes()))

    def all_relationships(self) -> Iterator[GraphRelationship]:
        return (
            to_graph_relationship(r["r"], r["s"], r["e"])
            for r in self._stream(queries.all_relationships())
        )

    def get_relationships(
        self,
        node: GraphNode,
        direction: Direction = Direction.BOTH,
        rel_type: Optional[str] = None,
    ) -> Iterator[GraphRelationship]:
        return (
            to_graph_relationship(r["r"], r["s"], r["e"])
            for r in self._stream(queries.node_relationships(node.id, direction, rel_type))
        )

    def get_degree(
        self,
        node: GraphNode,
        rel_type: Optional[str] = None,
        direction: Direction = Direction.BOTH,
    ) -> int:
        return self._single_count(queries.node_degree(node.id, direction, rel_type), "degree") or 0

    def get_relationship_types(self, node: GraphNode) -> List[str]:
        return [r["type"] for r in self._read(queries.node_relationship_types(node.id))]

    def get_constraints(self) -> List[ConstraintInfo]:
        constraints = (_to_constraint(r) for r in self._read(queries.show_constraints()))
        return [c for c in constraints if c is not None]

    def get_indexes(self) -> List[IndexInfo]:
        indexes = (_to_index(r) for r in self._read(queries.show_indexes()))
        return [i for i in indexes if i is not None]

    # ------------------------------------------------------------------
    # Queries and writes
    # ------------------------------------------------------------------

    def query_subgraph(
        self,
        statement: str,
        parameters: Optional[Dict[str, Any]] = None,
        rels_in_between: bool = False,
    ) -> Tuple[List[GraphNode], List[GraphRelationship]]:
        """
        Run ``statement`` and collect every node, relationship and path it returns.

        Args:
            statement: Cypher statement
            parameters: Statement parameters
            rels_in_between: Also collect relationships connecting the returned nodes
        """
        nodes: Dict[Any, GraphNode] = {}
        rels: Dict[Any, GraphRelationship] = {}

        def collect(value):
            if isinstance(value, Node):
                nodes.setdefault(value.element_id, to_graph_node(value))
            elif isinstance(value, Relationship):
                for end in (value.start_node, value.end_node):
                    collect(end)
                rels.setdefault(
                    value.element_id,
                    to_graph_relationship(value, value.start_node, value.end_node),
                )
            elif hasattr(value, "nodes") and hasattr(value, "relationships"):
                for node in value.nodes:
                    collect(node)
                for rel in value.relationships:
                    collect(rel)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    collect(item)
            elif isinstance(value, dict):
                for item in value.values():
                    collect(item)

        for record in self._read((statement, parameters or {})):
            for value in record.values():
                collect(value)

        if rels_in_between and nodes:
            for r in self._read(queries.relationships_between(list(nodes))):
                rels.setdefault(r["r"].element_id, to_graph_relationship(r["r"], r["s"], r["e"]))

        logger.debug(f"Query subgraph: {len(nodes)} nodes, {len(rels)} relationships")
        return list(nodes.values()), list(rels.values())

    def run_query(
        self,
        statement: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        try:
            return self.connection.execute_read_columns(statement, parameters or {})
        except _DRIVER_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e

    def create_nodes(self, batch: List[Dict[str, Any]]) -> List[Any]:
        try:
            return create_nodes_batch(self.connection, batch)
        except _DRIVER_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e

    def create_relationships(self, batch: List[Dict[str, Any]]) -> int:
        try:
            return create_relationships_batch(self.connection, batch)
        except _DRIVER_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e

    def clear(self) -> int:
        try:
            return self.connection.clear_database()["nodes_deleted"]
        except _DRIVER_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e
