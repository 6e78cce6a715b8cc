"""
Meta-graph construction.

The meta-graph has one virtual node per label and one virtual
relationship per ``(:Start)-[:TYPE]->(:End)`` pattern the count store
suggests. Because the count store only knows ``(:Start)-[:TYPE]->()`` and
``()-[:TYPE]->(:End)`` separately, every pairing of the two is a
candidate. When pruning is requested, ambiguous candidates are confirmed
against actual data with a sampled existence check.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from graph.model import Direction, VirtualNode, VirtualRelationship
from graph.store import GraphStore, require_count
from meta.sampling import MetaConfig, SampleMetaConfig
from utils.logger import get_logger
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)

# (degree ratio on the start side, degree ratio on the end side) -> scan from the start label?
DirectionPolicy = Callable[[float, float], bool]


def lower_degree_ratio(degree_from: float, degree_to: float) -> bool:
    """Scan from the start label when its side has the lower degree ratio."""
    return degree_from < degree_to


def relationship_exists(
    store: GraphStore,
    from_label: str,
    to_label: str,
    rel_type: str,
    direction: Direction,
    config: SampleMetaConfig,
    guard: TerminationGuard = NEVER_TERMINATED,
) -> bool:
    """
    Look for one concrete ``from_label`` node linked to a ``to_label`` node.

    Every ``config.sample``-th node of ``from_label`` is checked; a
    non-positive sample checks every node. At most ``config.max_rels + 1``
    relationships are looked at per checked node (``-1`` for no cap).

    A False result means the sample found nothing, not that no such
    relationship exists.
    """
    skip = config.sample if config.sample > 0 else 1
    count = 0
    for node in store.find_nodes(from_label):
        if count % skip == 0:
            guard.check()
            max_rels = config.max_rels
            for rel in store.get_relationships(node, direction, rel_type):
                other = rel.end_node if direction is Direction.OUTGOING else rel.start_node
                if to_label in other.labels:
                    return True
                if max_rels != -1:
                    if max_rels == 0:
                        break
                    max_rels -= 1
        count += 1
    return False


@dataclass(frozen=True)
class Pattern:
    start_label: str
    rel_type: str
    end_label: str


@dataclass
class MetaGraph:
    nodes: List[VirtualNode] = field(default_factory=list)
    relationships: List[VirtualRelationship] = field(default_factory=list)

    def patterns(self) -> Set[Pattern]:
        return {
            Pattern(r.start_node.labels[0], r.type, r.end_node.labels[0])
            for r in self.relationships
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [
                {"id": n.id, "labels": list(n.labels), "properties": dict(n.properties)}
                for n in self.nodes
            ],
            "relationships": [
                {
                    "id": r.id,
                    "type": r.type,
                    "start": r.start_node.id,
                    "end": r.end_node.id,
                    "properties": dict(r.properties),
                }
                for r in self.relationships
            ],
        }


class MetaGraphBuilder:
    """
    Build the label/type meta-graph of a store.

    Args:
        store: Graph store to describe
        config: Label/type filters and existence-check sampling
        guard: Cancellation guard
        direction_policy: Chooses which end of a pattern the existence check scans from
    """

    def __init__(
        self,
        store: GraphStore,
        config: Optional[MetaConfig] = None,
        guard: TerminationGuard = NEVER_TERMINATED,
        direction_policy: DirectionPolicy = lower_degree_ratio,
    ):
        self.store = store
        self.config = config or MetaConfig()
        self.guard = guard
        self.direction_policy = direction_policy

    def build(self, prune: bool = True) -> MetaGraph:
        """
        Build the meta-graph.

        Args:
            prune: Check ambiguous candidate patterns and drop the ones not found

        Returns:
            ``MetaGraph`` with virtual nodes sorted by label name
        """
        store = self.store
        labels = [l for l in store.all_labels_in_use() if self.config.accepts_label(l)]
        rel_types = [t for t in store.all_relationship_types_in_use() if self.config.accepts_rel(t)]

        label_counts: Dict[str, int] = {}
        for label in labels:
            count = require_count(store.count_nodes(label), f"label {label}")
            if count > 0:
                label_counts[label] = count

        virtual_nodes: Dict[str, VirtualNode] = {}
        for position, label in enumerate(sorted(label_counts), start=1):
            virtual_nodes[label] = VirtualNode(
                id=-position,
                labels=(label,),
                properties={"name": label, "count": label_counts[label]},
            )

        candidates: Dict[Pattern, Dict[str, int]] = {}
        for rel_type in rel_types:
            self.guard.check()
            total = require_count(store.count_relationships(rel_type), f"type {rel_type}")
            out_counts = {
                label: require_count(store.count_relationships(rel_type, start_label=label), f"(:{label})-[:{rel_type}]->()")
                for label in virtual_nodes
            }
            in_counts = {
                label: require_count(store.count_relationships(rel_type, end_label=label), f"()-[:{rel_type}]->(:{label})")
                for label in virtual_nodes
            }
            for start_label, out_count in out_counts.items():
                if out_count == 0:
                    continue
                for end_label, in_count in in_counts.items():
                    if in_count == 0:
                        continue
                    candidates[Pattern(start_label, rel_type, end_label)] = {
                        "type": rel_type,
                        "out": out_count,
                        "in": in_count,
                        "count": total,
                    }

        logger.info(f"Meta-graph: {len(virtual_nodes)} labels, {len(candidates)} candidate patterns")

        if prune:
            for pattern in self._ambiguous(candidates):
                if not self._pattern_exists(pattern, candidates[pattern], label_counts):
                    logger.debug(f"Pruned {pattern}")
                    del candidates[pattern]

        graph = MetaGraph(nodes=list(virtual_nodes.values()))
        for position, (pattern, props) in enumerate(candidates.items(), start=1):
            graph.relationships.append(VirtualRelationship(
                id=-position,
                type=pattern.rel_type,
                start_node=virtual_nodes[pattern.start_label],
                end_node=virtual_nodes[pattern.end_label],
                properties=props,
            ))

        logger.info(f"Meta-graph built with {len(graph.relationships)} relationships")
        return graph

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    @staticmethod
    def _ambiguous(candidates: Dict[Pattern, Any]) -> List[Pattern]:
        """Candidates sharing a start projection or an end projection with another candidate."""
        groups: Dict[Tuple[str, str, str], List[Pattern]] = {}
        for pattern in candidates:
            groups.setdefault(("start", pattern.start_label, pattern.rel_type), []).append(pattern)
            groups.setdefault(("end", pattern.rel_type, pattern.end_label), []).append(pattern)

        ambiguous: Dict[Pattern, None] = {}
        for members in groups.values():
            if len(members) > 1:
                for pattern in members:
                    ambiguous.setdefault(pattern, None)
        return list(ambiguous)

    def _pattern_exists(self, pattern: Pattern, props: Dict[str, int], label_counts: Dict[str, int]) -> bool:
        degree_from = props["out"] / label_counts[pattern.start_label]
        degree_to = props["in"] / label_counts[pattern.end_label]
        sampling = self.config.sampling

        if self.direction_policy(degree_from, degree_to):
            return relationship_exists(
                self.store, pattern.start_label, pattern.end_label, pattern.rel_type,
                Direction.OUTGOING, sampling, self.guard,
            )
        return relationship_exists(
            self.store, pattern.end_label, pattern.start_label, pattern.rel_type,
            Direction.INCOMING, sampling, self.guard,
        )
