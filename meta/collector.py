"""
Sampled metadata collection.

``MetaItemCollector`` walks a sample of each label's nodes and records,
per label and per relationship type:

* property keys with their value type, array flag and schema flags
  (indexed, unique, existence)
* for each relationship type leaving the label: how many sampled nodes
  had it, average out/in degree, whether any node had more than one, and
  the labels found at the far end

Collection mutates ``MetaItem`` builders; callers only ever see the frozen
``MetaResult`` snapshot.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from graph.model import ConstraintInfo, ConstraintType, Direction, GraphNode, GraphRelationship, IndexType
from graph.store import GraphStore, require_count
from meta.sampling import MetaConfig, is_sampled, sample_stride
from meta.types import Types
from utils.logger import get_logger
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)


class ElementType(str, Enum):
    NODE = "node"
    RELATIONSHIP = "relationship"


@dataclass(frozen=True)
class MetadataKey:
    """Tagged key so a label and a relationship type with the same name never collide."""
    kind: ElementType
    name: str


@dataclass(frozen=True)
class MetaResult:
    """One frozen metadata row."""
    label: str
    property: str
    count: int = 0
    unique: bool = False
    index: bool = False
    existence: bool = False
    type: Optional[str] = None
    array: bool = False
    sample: Optional[Any] = None
    left: int = 0
    right: int = 0
    other: Tuple[str, ...] = ()
    other_labels: Tuple[str, ...] = ()
    element_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "property": self.property,
            "count": self.count,
            "unique": self.unique,
            "index": self.index,
            "existence": self.existence,
            "type": self.type,
            "array": self.array,
            "sample": self.sample,
            "left": self.left,
            "right": self.right,
            "other": list(self.other),
            "otherLabels": list(self.other_labels),
            "elementType": self.element_type,
        }


class MetaItem:
    """Mutable accumulator behind one ``MetaResult``."""

    def __init__(self, label: str, property_name: str):
        self.label = label
        self.property = property_name
        self.count = 0
        self.unique = False
        self.index = False
        self.existence = False
        self.type: Optional[str] = None
        self.array = False
        self.left = 0
        self.right = 0
        self.other: Dict[str, None] = {}
        self.other_labels: Dict[str, None] = {}
        self.element_type: Optional[ElementType] = None
        self._left_total = 0
        self._right_total = 0

    def inc(self) -> "MetaItem":
        self.count += 1
        return self

    def rel(self, out_degree: int, in_degree: int) -> "MetaItem":
        """Fold one sampled node's degrees into the running averages."""
        self.type = Types.RELATIONSHIP.value
        if out_degree > 1:
            self.array = True
        self._left_total += out_degree
        self._right_total += in_degree
        self.left = self._left_total // self.count
        self.right = self._right_total // self.count
        return self

    def add_other(self, labels: Iterable[str]) -> None:
        for label in labels:
            self.other.setdefault(label, None)

    def freeze(self) -> MetaResult:
        return MetaResult(
            label=self.label,
            property=self.property,
            count=self.count,
            unique=self.unique,
            index=self.index,
            existence=self.existence,
            type=self.type,
            array=self.array,
            left=self.left,
            right=self.right,
            other=tuple(self.other),
            other_labels=tuple(self.other_labels),
            element_type=self.element_type.value if self.element_type else None,
        )


@dataclass
class _Bucket:
    """Items gathered for one label or type, properties and relationships kept apart."""
    properties: Dict[str, MetaItem] = field(default_factory=dict)
    relationships: Dict[str, MetaItem] = field(default_factory=dict)

    def freeze(self) -> Tuple[MetaResult, ...]:
        return tuple(item.freeze() for item in list(self.properties.values()) + list(self.relationships.values()))


class MetaItemCollector:
    """
    Collect per-label and per-type metadata from a sample of the store.

    Args:
        store: Graph store to scan
        config: Label/type filters and sampling options
        guard: Cancellation guard checked per sampled node
        rng: Random source for stride jitter
    """

    def __init__(
        self,
        store: GraphStore,
        config: Optional[MetaConfig] = None,
        guard: TerminationGuard = NEVER_TERMINATED,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.config = config or MetaConfig()
        self.guard = guard
        self.rng = rng
        self._buckets: Dict[MetadataKey, _Bucket] = {}

    def collect(self) -> Mapping[MetadataKey, Tuple[MetaResult, ...]]:
        """
        Scan the store and return a frozen snapshot.

        Returns:
            Read-only mapping from ``MetadataKey`` to its rows
        """
        store = self.store
        self._buckets = {}

        labels = [l for l in store.all_labels_in_use() if self.config.accepts_label(l)]
        rel_types = [t for t in store.all_relationship_types_in_use() if self.config.accepts_rel(t)]
        self._rel_types: Set[str] = set(rel_types)

        logger.info(
            f"Collecting metadata for {len(labels)} labels, {len(rel_types)} relationship types "
            f"(sample={self.config.sampling.sample})"
        )

        self._rel_constraints: Dict[str, List[ConstraintInfo]] = {}
        self._rel_indexed: Dict[str, Set[str]] = {}
        for rel_type in rel_types:
            self._bucket(ElementType.RELATIONSHIP, rel_type)
            self._rel_constraints[rel_type] = store.relationship_constraints(rel_type)
            self._rel_indexed[rel_type] = _indexed_properties(store.relationship_indexes(rel_type))

        for label in labels:
            self.guard.check()
            node_bucket = self._bucket(ElementType.NODE, label)
            constraints = store.node_constraints(label)
            indexed = _indexed_properties(store.node_indexes(label))

            population = require_count(store.count_nodes(label), f"label {label}")
            if population == 0:
                continue

            stride = sample_stride(population, self.config.sampling.sample, self.rng)
            logger.debug(f"Label {label}: {population} nodes, stride {stride}")

            position = 1
            for node in store.find_nodes(label):
                if is_sampled(position, stride):
                    self.guard.check()
                    self._add_relationships(node_bucket, label, node)
                    self._add_properties(node_bucket.properties, label, constraints, indexed, node, node)
                position += 1

        snapshot = {key: bucket.freeze() for key, bucket in self._buckets.items()}
        logger.info(f"Collected {sum(len(rows) for rows in snapshot.values())} metadata rows")
        return MappingProxyType(snapshot)

    def rows(self) -> List[MetaResult]:
        """Collect and flatten the snapshot into rows."""
        return [row for rows in self.collect().values() for row in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bucket(self, kind: ElementType, name: str) -> _Bucket:
        return self._buckets.setdefault(MetadataKey(kind, name), _Bucket())

    def _add_relationships(self, node_bucket: _Bucket, label: str, node: GraphNode) -> None:
        store = self.store
        for rel_type in store.get_relationship_types(node):
            if rel_type not in self._rel_types:
                continue
            out_degree = store.get_degree(node, rel_type, Direction.OUTGOING)
            if out_degree == 0:
                continue
            in_degree = store.get_degree(node, rel_type, Direction.INCOMING)

            type_bucket = self._bucket(ElementType.RELATIONSHIP, rel_type)
            rel_meta = node_bucket.relationships.setdefault(rel_type, MetaItem(label, rel_type))
            rel_node_meta = type_bucket.relationships.setdefault(label, MetaItem(rel_type, label))

            rel_meta.element_type = ElementType.NODE
            rel_node_meta.element_type = ElementType.RELATIONSHIP
            rel_meta.inc().rel(out_degree, in_degree)
            rel_node_meta.inc().rel(out_degree, in_degree)

            for rel in store.get_relationships(node, Direction.OUTGOING, rel_type):
                end_labels = rel.end_node.labels
                rel_meta.add_other(end_labels)
                rel_node_meta.add_other(end_labels)
                self._add_properties(
                    type_bucket.properties,
                    rel_type,
                    self._rel_constraints.get(rel_type, []),
                    self._rel_indexed.get(rel_type, set()),
                    rel,
                    node,
                )

    def _add_properties(
        self,
        items: Dict[str, MetaItem],
        owner: str,
        constraints: List[ConstraintInfo],
        indexed: Set[str],
        entity,
        node: GraphNode,
    ) -> None:
        # first sampled value wins for each key
        for key, value in entity.properties.items():
            if key in items:
                continue
            item = MetaItem(owner, key)
            items[key] = item
            item.type = Types.of(value).value
            item.element_type = (
                ElementType.RELATIONSHIP if isinstance(entity, GraphRelationship) else ElementType.NODE
            )
            if Types.of(value) is Types.LIST:
                item.array = True
            _add_schema_info(item, key, constraints, indexed, node)


# ============================================================================
# Helper Functions
# ============================================================================

def _indexed_properties(indexes) -> Set[str]:
    indexed: Set[str] = set()
    for index in indexes:
        if index.type is not IndexType.LOOKUP:
            indexed.update(index.properties)
    return indexed


def _add_schema_info(
    item: MetaItem,
    key: str,
    constraints: List[ConstraintInfo],
    indexed: Set[str],
    node: GraphNode,
) -> None:
    if key in indexed:
        item.index = True
    for constraint in constraints:
        if key not in constraint.properties:
            continue
        if constraint.type.implies_uniqueness:
            item.unique = True
            if constraint.type in (ConstraintType.UNIQUENESS, ConstraintType.NODE_KEY):
                for label in node.labels:
                    if label != item.label:
                        item.other_labels.setdefault(label, None)
        if constraint.type.implies_existence:
            item.existence = True
