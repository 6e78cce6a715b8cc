"""
In-process graph store.

``MemoryGraphStore`` keeps nodes and relationships in insertion order with
per-node adjacency lists. It honours uniqueness and key constraints on
writes and registers a backing RANGE index for each of them, matching what
a Neo4j server reports through ``SHOW INDEXES``.
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence

from graph.exceptions import MalformedInputError, SchemaConflictError
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


class MemoryGraphStore(GraphStore):
    """
    Mutable in-memory property graph.

    Example:
        >>> store = MemoryGraphStore()
        >>> alice = store.create_node("Person", name="Alice")
        >>> bob = store.create_node("Person", name="Bob")
        >>> store.create_relationship(alice, "KNOWS", bob, since=2016)
    """

    def __init__(self):
        self._nodes: Dict[int, GraphNode] = {}
        self._relationships: Dict[int, GraphRelationship] = {}
        self._outgoing: Dict[int, List[GraphRelationship]] = {}
        self._incoming: Dict[int, List[GraphRelationship]] = {}
        self._constraints: List[ConstraintInfo] = []
        self._indexes: List[IndexInfo] = []
        self._next_node_id = 0
        self._next_rel_id = 0

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def create_node(self, *labels: str, **properties: Any) -> GraphNode:
        """Create one node; uniqueness constraints are checked first."""
        self._check_unique(labels, properties, pending=[])
        return self._add_node(labels, properties)

    def create_relationship(
        self,
        start: GraphNode,
        rel_type: str,
        end: GraphNode,
        **properties: Any,
    ) -> GraphRelationship:
        """Create one relationship between two existing nodes."""
        for node in (start, end):
            if node.id not in self._nodes:
                raise MalformedInputError(f"Node {node.id} does not exist")
        return self._add_relationship(self._nodes[start.id], rel_type, self._nodes[end.id], properties)

    def clear(self) -> int:
        deleted = len(self._nodes)
        self._nodes.clear()
        self._relationships.clear()
        self._outgoing.clear()
        self._incoming.clear()
        return deleted

    def delete_node(self, node: GraphNode) -> None:
        """Detach-delete a node."""
        for rel in list(self._outgoing.get(node.id, [])) + list(self._incoming.get(node.id, [])):
            self._remove_relationship(rel)
        self._nodes.pop(node.id, None)
        self._outgoing.pop(node.id, None)
        self._incoming.pop(node.id, None)

    def create_constraint(
        self,
        label_or_type: str,
        properties: Sequence[str],
        constraint_type: ConstraintType = ConstraintType.UNIQUENESS,
        name: Optional[str] = None,
    ) -> ConstraintInfo:
        """
        Register a constraint.

        Uniqueness and key constraints also register their backing index.

        Raises:
            SchemaConflictError: If existing data already violates a uniqueness constraint
        """
        props = tuple(properties)
        name = name or f"constraint_{label_or_type}_{'_'.join(props)}".lower()
        constraint = ConstraintInfo(name, constraint_type, label_or_type, props)

        if constraint_type.implies_uniqueness:
            seen = set()
            entities = (
                self.find_nodes(label_or_type) if constraint_type.is_node
                else (r for r in self._relationships.values() if r.type == label_or_type)
            )
            for entity in entities:
                if all(p in entity.properties for p in props):
                    key = tuple(_freeze(entity.properties[p]) for p in props)
                    if key in seen:
                        raise SchemaConflictError(
                            f"Cannot create {name}: duplicate value {key} for {label_or_type}"
                        )
                    seen.add(key)
            self._indexes.append(IndexInfo(
                name=name,
                type=IndexType.RANGE,
                labels_or_types=(label_or_type,),
                properties=props,
                for_relationships=not constraint_type.is_node,
                owning_constraint=name,
            ))

        self._constraints.append(constraint)
        logger.debug(f"Created constraint {name} ({constraint_type.value})")
        return constraint

    def create_index(
        self,
        labels_or_types: Sequence[str],
        properties: Sequence[str],
        index_type: IndexType = IndexType.RANGE,
        name: Optional[str] = None,
        for_relationships: bool = False,
    ) -> IndexInfo:
        if isinstance(labels_or_types, str):
            labels_or_types = [labels_or_types]
        name = name or f"index_{'_'.join(labels_or_types)}_{'_'.join(properties)}".lower()
        index = IndexInfo(
            name=name,
            type=index_type,
            labels_or_types=tuple(labels_or_types),
            properties=tuple(properties),
            for_relationships=for_relationships,
        )
        self._indexes.append(index)
        return index

    def create_nodes(self, batch: List[Dict[str, Any]]) -> List[Any]:
        pending: List[GraphNode] = []
        for item in batch:
            labels = tuple(item.get("labels") or ())
            properties = dict(item.get("properties") or {})
            self._check_unique(labels, properties, pending)
            pending.append(GraphNode(None, labels, properties))
        return [self._add_node(node.labels, node.properties).id for node in pending]

    def create_relationships(self, batch: List[Dict[str, Any]]) -> int:
        for item in batch:
            for side in ("start", "end"):
                if item.get(side) not in self._nodes:
                    raise MalformedInputError(f"Relationship {side} node {item.get(side)!r} does not exist")
            if not item.get("type"):
                raise MalformedInputError("Relationship type is required")
        for item in batch:
            self._add_relationship(
                self._nodes[item["start"]],
                item["type"],
                self._nodes[item["end"]],
                dict(item.get("properties") or {}),
            )
        return len(batch)

    # ------------------------------------------------------------------
    # GraphStore
    # ------------------------------------------------------------------

    def all_labels_in_use(self) -> List[str]:
        return sorted({label for node in self._nodes.values() for label in node.labels})

    def all_relationship_types_in_use(self) -> List[str]:
        return sorted({rel.type for rel in self._relationships.values()})

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
        count = 0
        for rel in self._relationships.values():
            if rel_type is not None and rel.type != rel_type:
                continue
            if start_label is not None and start_label not in rel.start_node.labels:
                continue
            if end_label is not None and end_label not in rel.end_node.labels:
                continue
            count += 1
        return count

    def find_nodes(self, label: str) -> Iterator[GraphNode]:
        return (node for node in list(self._nodes.values()) if label in node.labels)

    def all_nodes(self) -> Iterator[GraphNode]:
        return iter(list(self._nodes.values()))

    def all_relationships(self) -> Iterator[GraphRelationship]:
        return iter(list(self._relationships.values()))

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
            # self loops are already listed as outgoing
            rels.extend(
                r for r in self._incoming.get(node.id, [])
                if direction is Direction.INCOMING or r.start_node.id != r.end_node.id
            )
        return (r for r in rels if rel_type is None or r.type == rel_type)

    def get_constraints(self) -> List[ConstraintInfo]:
        return list(self._constraints)

    def get_indexes(self) -> List[IndexInfo]:
        return list(self._indexes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _add_node(self, labels, properties) -> GraphNode:
        node = GraphNode(self._next_node_id, tuple(labels), dict(properties))
        self._next_node_id += 1
        self._nodes[node.id] = node
        self._outgoing[node.id] = []
        self._incoming[node.id] = []
        return node

    def _add_relationship(self, start, rel_type, end, properties) -> GraphRelationship:
        rel = GraphRelationship(self._next_rel_id, rel_type, start, end, dict(properties))
        self._next_rel_id += 1
        self._relationships[rel.id] = rel
        self._outgoing[start.id].append(rel)
        self._incoming[end.id].append(rel)
        return rel

    def _remove_relationship(self, rel: GraphRelationship) -> None:
        self._relationships.pop(rel.id, None)
        if rel in self._outgoing.get(rel.start_node.id, []):
            self._outgoing[rel.start_node.id].remove(rel)
        if rel in self._incoming.get(rel.end_node.id, []):
            self._incoming[rel.end_node.id].remove(rel)

    def _check_unique(self, labels, properties, pending: List[GraphNode]) -> None:
        for constraint in self._constraints:
            if not constraint.type.is_node or not constraint.type.implies_uniqueness:
                continue
            if constraint.label_or_type not in labels:
                continue
            if not all(p in properties for p in constraint.properties):
                if constraint.type is ConstraintType.NODE_KEY:
                    raise SchemaConflictError(
                        f"Node key {constraint.name} requires {list(constraint.properties)}"
                    )
                continue
            key = tuple(_freeze(properties[p]) for p in constraint.properties)
            for other in list(self.find_nodes(constraint.label_or_type)) + pending:
                if constraint.label_or_type not in other.labels:
                    continue
                if all(p in other.properties for p in constraint.properties) and key == tuple(
                    _freeze(other.properties[p]) for p in constraint.properties
                ):
                    raise SchemaConflictError(
                        f"Node({constraint.label_or_type}) already exists with "
                        f"{dict(zip(constraint.properties, key))}"
                    )


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value
