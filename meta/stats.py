"""
Count-store statistics for a graph.

``StatsAggregator`` gathers per-label node counts, per-type relationship
counts and per-(label, type, direction) relationship counts. Only count
queries are issued; no node or relationship is visited.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from graph.store import GraphStore, require_count
from utils.logger import get_logger
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)


def outgoing_pattern(label: str, rel_type: str) -> str:
    return f"(:{label})-[:{rel_type}]->()"


def incoming_pattern(label: str, rel_type: str) -> str:
    return f"()-[:{rel_type}]->(:{label})"


def any_pattern(rel_type: str) -> str:
    return f"()-[:{rel_type}]->()"


@dataclass(frozen=True)
class MetaStats:
    """
    Immutable statistics snapshot.

    ``rel_types`` is keyed by rendered patterns: ``(:L)-[:T]->()`` for
    outgoing counts, ``()-[:T]->(:L)`` for incoming counts and
    ``()-[:T]->()`` for the global count of a type.
    """
    label_count: int
    rel_type_count: int
    property_key_count: int
    node_count: int
    rel_count: int
    labels: Mapping[str, int] = field(default_factory=dict)
    rel_types: Mapping[str, int] = field(default_factory=dict)
    rel_types_count: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labelCount": self.label_count,
            "relTypeCount": self.rel_type_count,
            "propertyKeyCount": self.property_key_count,
            "nodeCount": self.node_count,
            "relCount": self.rel_count,
            "labels": dict(self.labels),
            "relTypes": dict(self.rel_types),
            "relTypesCount": dict(self.rel_types_count),
        }


class StatsAggregator:
    """
    Collect ``MetaStats`` from a store.

    Args:
        store: Graph store to count
        guard: Cancellation guard checked once per label
    """

    def __init__(self, store: GraphStore, guard: TerminationGuard = NEVER_TERMINATED):
        self.store = store
        self.guard = guard

    def collect(
        self,
        labels: Optional[Iterable[str]] = None,
        rel_types: Optional[Iterable[str]] = None,
    ) -> MetaStats:
        """
        Gather statistics.

        Args:
            labels: Restrict to these labels (default: all labels in use)
            rel_types: Restrict to these types (default: all types in use)

        Returns:
            Immutable ``MetaStats``; zero counts are left out of the maps

        Raises:
            StoreUnavailableError: If the store returns no count
        """
        store = self.store
        labels = list(labels) if labels is not None else store.all_labels_in_use()
        rel_types = list(rel_types) if rel_types is not None else store.all_relationship_types_in_use()

        logger.info(f"Collecting stats for {len(labels)} labels and {len(rel_types)} relationship types")

        label_counts: Dict[str, int] = {}
        pattern_counts: Dict[str, int] = {}
        type_counts: Dict[str, int] = {}

        for label in labels:
            self.guard.check()
            count = require_count(store.count_nodes(label), f"label {label}")
            if count:
                label_counts[label] = count

            for rel_type in rel_types:
                out_count = require_count(
                    store.count_relationships(rel_type, start_label=label),
                    outgoing_pattern(label, rel_type),
                )
                if out_count:
                    pattern_counts[outgoing_pattern(label, rel_type)] = out_count

                in_count = require_count(
                    store.count_relationships(rel_type, end_label=label),
                    incoming_pattern(label, rel_type),
                )
                if in_count:
                    pattern_counts[incoming_pattern(label, rel_type)] = in_count

        for rel_type in rel_types:
            self.guard.check()
            count = require_count(store.count_relationships(rel_type), f"type {rel_type}")
            if count:
                type_counts[rel_type] = count
                pattern_counts[any_pattern(rel_type)] = count

        stats = MetaStats(
            label_count=len(label_counts),
            rel_type_count=len(type_counts),
            property_key_count=require_count(store.property_key_count(), "property keys"),
            node_count=require_count(store.count_nodes(), "all nodes"),
            rel_count=require_count(store.count_relationships(), "all relationships"),
            labels=MappingProxyType(label_counts),
            rel_types=MappingProxyType(pattern_counts),
            rel_types_count=MappingProxyType(type_counts),
        )

        logger.info(f"Stats: {stats.node_count} nodes, {stats.rel_count} relationships")
        return stats
