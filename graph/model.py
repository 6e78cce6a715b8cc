"""
Value types shared by the store, metadata and export layers.

Store entities (``GraphNode``, ``GraphRelationship``) are what a
``GraphStore`` hands out. Virtual entities (``VirtualNode``,
``VirtualRelationship``) are built by the meta-graph and are never written
back to a store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Direction(str, Enum):
    """Relationship direction as seen from a node."""
    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"
    BOTH = "BOTH"

    def reverse(self) -> "Direction":
        if self is Direction.OUTGOING:
            return Direction.INCOMING
        if self is Direction.INCOMING:
            return Direction.OUTGOING
        return Direction.BOTH


@dataclass(eq=False)
class GraphNode:
    """A node read from a store. Identity is the store id."""
    id: Any
    labels: Tuple[str, ...] = ()
    properties: Dict[str, Any] = field(default_factory=dict)

    def has_label(self, label: str) -> bool:
        return label in self.labels

    def __eq__(self, other):
        return isinstance(other, GraphNode) and other.id == self.id

    def __hash__(self):
        return hash(("node", self.id))


@dataclass(eq=False)
class GraphRelationship:
    """A relationship read from a store, carrying both endpoint nodes."""
    id: Any
    type: str
    start_node: GraphNode
    end_node: GraphNode
    properties: Dict[str, Any] = field(default_factory=dict)

    def other_node(self, node: GraphNode) -> GraphNode:
        return self.end_node if node.id == self.start_node.id else self.start_node

    def __eq__(self, other):
        return isinstance(other, GraphRelationship) and other.id == self.id

    def __hash__(self):
        return hash(("rel", self.id))


# ============================================================================
# Schema
# ============================================================================

class ConstraintType(str, Enum):
    """Constraint kinds as reported by ``SHOW CONSTRAINTS``."""
    UNIQUENESS = "UNIQUENESS"
    NODE_KEY = "NODE_KEY"
    NODE_PROPERTY_EXISTENCE = "NODE_PROPERTY_EXISTENCE"
    RELATIONSHIP_UNIQUENESS = "RELATIONSHIP_UNIQUENESS"
    RELATIONSHIP_KEY = "RELATIONSHIP_KEY"
    RELATIONSHIP_PROPERTY_EXISTENCE = "RELATIONSHIP_PROPERTY_EXISTENCE"

    @property
    def is_node(self) -> bool:
        return not self.value.startswith("RELATIONSHIP")

    @property
    def implies_uniqueness(self) -> bool:
        return self in (
            ConstraintType.UNIQUENESS,
            ConstraintType.NODE_KEY,
            ConstraintType.RELATIONSHIP_UNIQUENESS,
            ConstraintType.RELATIONSHIP_KEY,
        )

    @property
    def implies_existence(self) -> bool:
        return self in (
            ConstraintType.NODE_KEY,
            ConstraintType.NODE_PROPERTY_EXISTENCE,
            ConstraintType.RELATIONSHIP_KEY,
            ConstraintType.RELATIONSHIP_PROPERTY_EXISTENCE,
        )


@dataclass(frozen=True)
class ConstraintInfo:
    name: str
    type: ConstraintType
    label_or_type: str
    properties: Tuple[str, ...]


class IndexType(str, Enum):
    RANGE = "RANGE"
    TEXT = "TEXT"
    POINT = "POINT"
    FULLTEXT = "FULLTEXT"
    LOOKUP = "LOOKUP"
    VECTOR = "VECTOR"


@dataclass(frozen=True)
class IndexInfo:
    """
    An index as reported by ``SHOW INDEXES``.

    ``owning_constraint`` is set for the index backing a uniqueness or key
    constraint. Full-text indexes may span several labels or types.
    """
    name: str
    type: IndexType
    labels_or_types: Tuple[str, ...]
    properties: Tuple[str, ...]
    for_relationships: bool = False
    owning_constraint: Optional[str] = None

    @property
    def is_constraint_index(self) -> bool:
        return self.owning_constraint is not None


# ============================================================================
# Virtual entities
# ============================================================================

@dataclass
class VirtualNode:
    """A node that only exists in a computed result, such as the meta-graph."""
    id: int
    labels: Tuple[str, ...]
    properties: Dict[str, Any] = field(default_factory=dict)
    materialized: bool = False


@dataclass
class VirtualRelationship:
    """A relationship between two virtual nodes."""
    id: int
    type: str
    start_node: VirtualNode
    end_node: VirtualNode
    properties: Dict[str, Any] = field(default_factory=dict)
    materialized: bool = False
