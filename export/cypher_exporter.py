"""
Cypher script export.

The exporter walks a fixed sequence of phases:

    INIT -> SCHEMA -> NODES -> RELATIONSHIPS -> CLEANUP -> DONE

INIT resolves every entity's identity up front, so the schema phase
knows whether the temporary synthetic-id constraint is needed and the
cleanup phase knows how many entities to clean.

Without optimizations each entity gets its own statement. With
UNWIND optimizations entities are grouped by shape and written as
multi-row statements; the rendering of those statements may run on a
thread pool, but blocks are always written in order.
"""

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from export.config import ExportConfig
from export.cypher_formatter import CypherFormatter, formatter_for
from export.files import ExportFileManager
from export.progress import ProgressReporter
from export.uniqueness import UniqueConstraintIndex, UniquenessTracker
from graph.model import IndexType
from graph.schema import (
    constraint_statement,
    drop_unique_import_constraint_statement,
    node_index_statement,
    relationship_index_statement,
    unique_import_constraint_statement,
)
from graph.store import GraphStore
from utils.logger import get_logger
from utils.monitoring import MemoryMonitor
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)


class ExportPhase(str, Enum):
    INIT = "INIT"
    SCHEMA = "SCHEMA_EMITTED"
    NODES = "NODES_EMITTED"
    RELATIONSHIPS = "RELATIONSHIPS_EMITTED"
    CLEANUP = "CLEANUP_EMITTED"
    DONE = "DONE"


# ============================================================================
# Helper Functions
# ============================================================================

def group_entities(entities: Iterable[Any], key_func: Callable[[Any], Any]) -> Dict[Any, List[Any]]:
    """Group entities by ``key_func``; groups and members keep first-seen order."""
    groups: Dict[Any, List[Any]] = {}
    for entity in entities:
        groups.setdefault(key_func(entity), []).append(entity)
    return groups


def plan_blocks(
    groups: Dict[Any, List[Any]],
    batch_size: int,
    unwind_batch_size: int,
) -> Iterator[List[Tuple[Any, List[Any]]]]:
    """
    Split grouped entities into transaction blocks of UNWIND statements.

    A block holds ``batch_size`` entities (the last one possibly fewer). A
    statement holds at most ``unwind_batch_size`` rows of one group and
    never spans two blocks.

    Yields:
        Lists of ``(group key, rows)`` statements, one list per block
    """
    block: List[Tuple[Any, List[Any]]] = []
    in_block = 0
    for key, members in groups.items():
        rows: List[Any] = []
        for entity in members:
            rows.append(entity)
            in_block += 1
            if len(rows) == unwind_batch_size or in_block == batch_size:
                block.append((key, rows))
                rows = []
            if in_block == batch_size:
                yield block
                block = []
                in_block = 0
        if rows:
            block.append((key, rows))
    if block:
        yield block


class CypherExporter:
    """
    Writes a Cypher script recreating a (sub)graph.

    Args:
        store: Graph or subgraph to export
        config: Export options
        files: Output sink
        reporter: Progress accumulator
        guard: Cancellation guard, checked per batch
        memory_monitor: Optional monitor checked per batch
    """

    def __init__(
        self,
        store: GraphStore,
        config: ExportConfig,
        files: ExportFileManager,
        reporter: ProgressReporter,
        guard: TerminationGuard = NEVER_TERMINATED,
        memory_monitor: Optional[MemoryMonitor] = None,
    ):
        self.store = store
        self.config = config
        self.files = files
        self.reporter = reporter
        self.guard = guard
        self.memory_monitor = memory_monitor
        self.phase = ExportPhase.INIT
        self.tracker: Optional[UniquenessTracker] = None
        self.formatter: Optional[CypherFormatter] = None
        self._pool: Optional[ThreadPoolExecutor] = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def export(self) -> None:
        """Run every phase."""
        logger.info("=" * 60)
        logger.info(
            f"Cypher export: format={self.config.format.value}, "
            f"cypherFormat={self.config.cypher_format.value}, "
            f"optimization={self.config.optimization_type.value}, batchSize={self.config.batch_size}"
        )
        logger.info("=" * 60)

        self._initialize(precount=True)
        if self.config.parallel and self.config.optimized:
            self._pool = ThreadPoolExecutor(max_workers=self.config.workers)
        try:
            self._emit_schema()
            self._emit_nodes()
            self._emit_relationships()
            self._emit_cleanup()
        finally:
            if self._pool is not None:
                self._pool.shutdown(wait=True)
                self._pool = None
        self.phase = ExportPhase.DONE
        self.files.flush()

    def export_schema(self) -> None:
        """Write only the index and constraint statements."""
        self._initialize(precount=False)
        self._emit_schema()
        self.phase = ExportPhase.DONE
        self.files.flush()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _initialize(self, precount: bool) -> None:
        index = UniqueConstraintIndex.from_store(self.store)
        relationships = list(self.store.all_relationships()) if precount else []
        self.tracker = UniquenessTracker(index, relationships)
        self.formatter = formatter_for(self.config, self.tracker)
        if not precount:
            return

        for node in self.store.all_nodes():
            self.guard.check()
            if self.tracker.natural_key(node) is None:
                self.tracker.assign_synthetic_id(node)
        for rel in relationships:
            self.guard.check()
            # endpoints outside the node set are matched by key as well
            for endpoint in (rel.start_node, rel.end_node):
                if self.tracker.natural_key(endpoint) is None:
                    self.tracker.assign_synthetic_id(endpoint)
            if self.formatter.needs_rel_id(rel):
                self.tracker.assign_synthetic_id(rel)

        counters = self.tracker.counters
        logger.info(
            f"Identity resolved: {len(index)} constrained labels, "
            f"{counters.artificial_unique_nodes} synthetic node ids, "
            f"{counters.artificial_unique_rels} synthetic relationship ids"
        )

    def _schema_statements(self) -> List[str]:
        config = self.config
        statements: List[str] = []
        if not self.formatter.emits_schema:
            return statements

        for index in sorted(self.store.node_indexes(), key=lambda i: (i.labels_or_types, i.properties)):
            if index.type is IndexType.LOOKUP or index.is_constraint_index:
                continue
            statements.append(node_index_statement(index, config.if_not_exists, config.save_index_names))
        for index in sorted(self.store.relationship_indexes(), key=lambda i: (i.labels_or_types, i.properties)):
            if index.type is IndexType.LOOKUP or index.is_constraint_index:
                continue
            statements.append(relationship_index_statement(index, config.if_not_exists, config.save_index_names))
        for constraint in sorted(self.store.get_constraints(), key=lambda c: (c.label_or_type, c.name)):
            statements.append(constraint_statement(constraint, config.if_not_exists))

        if self.tracker.counters.artificial_unique_nodes > 0:
            statements.append(unique_import_constraint_statement(config.if_not_exists))
        return statements

    def _emit_schema(self) -> None:
        statements = self._schema_statements()
        if statements:
            fmt = self.config.format
            writer = self.files.get_writer("schema")
            writer.write(fmt.begin)
            for statement in statements:
                writer.write(statement + "\n")
            writer.write(fmt.commit)
            writer.write(fmt.index_await(self.config.await_for_indexes))
            logger.info(f"Schema: {len(statements)} statements")
        self.phase = ExportPhase.SCHEMA
        self.files.flush()

    def _emit_nodes(self) -> None:
        if self.formatter.emits_nodes:
            nodes = self.store.all_nodes()
            if self.config.optimized:
                groups = group_entities(nodes, self.formatter.node_group_key)
                self._write_unwind_blocks(
                    "nodes", groups, self._render_node_statement, is_node=True,
                )
            else:
                self._write_single_statements("nodes", nodes, self.formatter.node_statement, is_node=True)
        self.phase = ExportPhase.NODES
        self.files.flush()

    def _emit_relationships(self) -> None:
        rels = self.store.all_relationships()
        if self.config.optimized:
            groups = group_entities(rels, self.formatter.rel_group_key)
            self._write_unwind_blocks(
                "relationships", groups, self._render_rel_statement, is_node=False,
            )
        else:
            self._write_single_statements(
                "relationships", rels, self.formatter.relationship_statement, is_node=False,
            )
        self.phase = ExportPhase.RELATIONSHIPS
        self.files.flush()

    def _emit_cleanup(self) -> None:
        counters = self.tracker.counters
        fmt = self.config.format
        batch_size = self.config.batch_size
        writer = self.files.get_writer("cleanup")

        had_nodes = counters.artificial_unique_nodes > 0
        while counters.artificial_unique_nodes > 0:
            self.guard.check()
            statement = self.formatter.cleanup_nodes_statement(batch_size)
            if statement:
                writer.write(fmt.begin + statement + "\n" + fmt.commit)
            counters.drain_nodes(batch_size)
        if had_nodes and self.formatter.emits_schema:
            writer.write(fmt.begin + drop_unique_import_constraint_statement() + "\n" + fmt.commit)

        while counters.artificial_unique_rels > 0:
            self.guard.check()
            statement = self.formatter.cleanup_rels_statement(batch_size)
            if statement:
                writer.write(fmt.begin + statement + "\n" + fmt.commit)
            counters.drain_rels(batch_size)

        self.phase = ExportPhase.CLEANUP
        self.files.flush()

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def _write_single_statements(self, name: str, entities, render, is_node: bool) -> None:
        """One statement per entity, a new transaction every ``batch_size`` entities."""
        fmt = self.config.format
        batch_size = self.config.batch_size
        writer = self.files.get_writer(name)

        count = 0
        in_batch = 0
        properties = 0
        for entity in entities:
            if count == 0:
                self.guard.check()
                writer.write(fmt.begin)
            elif count % batch_size == 0:
                writer.write(fmt.commit)
                self._batch_done(in_batch, properties, is_node)
                in_batch = properties = 0
                writer.write(fmt.begin)
            statement = render(entity)
            if statement:
                writer.write(statement + "\n")
            count += 1
            in_batch += 1
            properties += len(entity.properties)

        if count > 0:
            writer.write(fmt.commit)
            self._batch_done(in_batch, properties, is_node)
        logger.info(f"Wrote {count} {name}")

    def _write_unwind_blocks(self, name: str, groups, render, is_node: bool) -> None:
        fmt = self.config.format
        writer = self.files.get_writer(name)

        count = 0
        for block in plan_blocks(groups, self.config.batch_size, self.config.unwind_batch_size):
            if self._pool is not None:
                statements = list(self._pool.map(render, block))
            else:
                statements = [render(item) for item in block]

            writer.write(fmt.begin)
            for statement in statements:
                writer.write(statement)
            writer.write(fmt.commit)

            entities = [entity for _, rows in block for entity in rows]
            count += len(entities)
            self._batch_done(len(entities), sum(len(e.properties) for e in entities), is_node)
        logger.info(f"Wrote {count} {name} in {len(groups)} groups")

    def _render_node_statement(self, item: Tuple[Any, Sequence[Any]]) -> str:
        key, nodes = item
        return self.formatter.unwind_node_statement(key, [self.formatter.node_row(n) for n in nodes])

    def _render_rel_statement(self, item: Tuple[Any, Sequence[Any]]) -> str:
        key, rels = item
        return self.formatter.unwind_rel_statement(key, [self.formatter.rel_row(r) for r in rels])

    def _batch_done(self, entities: int, properties: int, is_node: bool) -> None:
        self.guard.check()
        if is_node:
            self.reporter.update(nodes=entities, properties=properties)
        else:
            self.reporter.update(relationships=entities, properties=properties)
        if self.memory_monitor is not None:
            self.memory_monitor.check_and_warn(f"{self.phase.value} export")
        logger.debug(f"Closed batch of {entities} {'nodes' if is_node else 'relationships'}")
