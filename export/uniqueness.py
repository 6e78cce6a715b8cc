"""
Identity resolution for Cypher export.

Every exported node must be findable again when its relationships are
replayed. A node whose label carries a uniqueness constraint, with all
constrained properties present, is addressed by that natural key. Any
other node gets a synthetic id stored under ``UNIQUE IMPORT ID`` with the
``UNIQUE IMPORT LABEL`` label, both removed again by the cleanup phase.

Relationships normally need no key. When several relationships of one
type connect the same two nodes in the same direction and the script
merges instead of creating, each of them gets a synthetic id too.
"""

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from graph.exceptions import SchemaConflictError
from graph.model import GraphNode, GraphRelationship, IndexType
from graph.schema import UniqueImport
from graph.store import GraphStore
from utils.logger import get_logger

logger = get_logger(__name__)

NaturalKey = Tuple[str, Tuple[str, ...]]


class UniqueConstraintIndex:
    """
    Smallest uniqueness-constrained property set per label.

    Built once per export from the store's constraint-backing indexes; a
    point-in-time snapshot.
    """

    def __init__(self, keys: Optional[Dict[str, Tuple[str, ...]]] = None):
        self._keys: Dict[str, Tuple[str, ...]] = dict(keys or {})

    @classmethod
    def from_store(cls, store: GraphStore) -> "UniqueConstraintIndex":
        keys: Dict[str, Tuple[str, ...]] = {}
        for index in store.node_indexes():
            if index.type is IndexType.LOOKUP or not index.is_constraint_index:
                continue
            label = ":".join(index.labels_or_types)
            current = keys.get(label)
            if current is None or len(index.properties) < len(current):
                keys[label] = tuple(index.properties)
        logger.debug(f"Unique constraint keys: {keys}")
        return cls(keys)

    def key_for_label(self, label: str) -> Optional[Tuple[str, ...]]:
        return self._keys.get(label)

    def __len__(self) -> int:
        return len(self._keys)


@dataclass
class ExportCounters:
    """Synthetic identities still to be cleaned up."""
    artificial_unique_nodes: int = 0
    artificial_unique_rels: int = 0

    def drain_nodes(self, batch_size: int) -> int:
        step = min(batch_size, self.artificial_unique_nodes)
        self.artificial_unique_nodes -= step
        return step

    def drain_rels(self, batch_size: int) -> int:
        step = min(batch_size, self.artificial_unique_rels)
        self.artificial_unique_rels -= step
        return step


class UniquenessTracker:
    """
    Decides how each exported entity is identified.

    Args:
        index: Unique constraint keys of the source store
        relationships: Every relationship of the exported subgraph, scanned once for duplicates
    """

    def __init__(self, index: UniqueConstraintIndex, relationships: Iterable[GraphRelationship] = ()):
        self.index = index
        self.counters = ExportCounters()
        self._occurrences: Counter = Counter(_rel_signature(rel) for rel in relationships)
        self._node_ids: Dict[Any, int] = {}
        self._rel_ids: Dict[Any, int] = {}
        self._lock = threading.Lock()

    def natural_key(self, node: GraphNode) -> Optional[NaturalKey]:
        """First label of ``node`` whose constrained properties are all set, with those properties."""
        for label in node.labels:
            keys = self.index.key_for_label(label)
            if keys and all(node.properties.get(key) is not None for key in keys):
                return label, keys
        return None

    def is_naturally_unique(self, entity: Union[GraphNode, GraphRelationship]) -> bool:
        if isinstance(entity, GraphRelationship):
            return self._occurrences[_rel_signature(entity)] <= 1
        return self.natural_key(entity) is not None

    def assign_synthetic_id(self, entity: Union[GraphNode, GraphRelationship]) -> int:
        """
        Give ``entity`` a synthetic id; calling it again returns the same id.

        Raises:
            SchemaConflictError: If the entity already has a property under the synthetic id key
        """
        if isinstance(entity, GraphRelationship):
            ids, key = self._rel_ids, UniqueImport.REL_ID_PROPERTY
        else:
            ids, key = self._node_ids, UniqueImport.ID_PROPERTY

        with self._lock:
            if entity.id in ids:
                return ids[entity.id]
            if key in entity.properties:
                raise SchemaConflictError(
                    f"Entity {entity.id} already has a '{key}' property; it cannot be given a synthetic id"
                )

            synthetic = len(ids)
            ids[entity.id] = synthetic
            if isinstance(entity, GraphRelationship):
                self.counters.artificial_unique_rels += 1
            else:
                self.counters.artificial_unique_nodes += 1
            return synthetic

    def synthetic_id(self, entity: Union[GraphNode, GraphRelationship]) -> Optional[int]:
        ids = self._rel_ids if isinstance(entity, GraphRelationship) else self._node_ids
        return ids.get(entity.id)

    def node_key(self, node: GraphNode) -> Tuple[str, Dict[str, Any]]:
        """
        Label and property map that identify ``node`` in the exported script.

        A node without a natural key is assigned a synthetic id on first use.
        """
        natural = self.natural_key(node)
        if natural is not None:
            label, keys = natural
            return label, {key: node.properties[key] for key in keys}
        return UniqueImport.LABEL, {UniqueImport.ID_PROPERTY: self.assign_synthetic_id(node)}


def _rel_signature(rel: GraphRelationship) -> Tuple[Any, Any, str]:
    return rel.start_node.id, rel.end_node.id, rel.type
