"""
Export orchestrator.

``GraphExportEngine.export`` resolves what to export (the whole store,
an explicit node/relationship set, or a query), picks the output sink,
runs the CSV, JSON or Cypher exporter and returns either the final progress
row or, for streaming exports, an iterable of progress rows.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from config.settings import get_settings
from export.config import ExportConfig
from export.csv_format import CsvExporter
from export.cypher_exporter import CypherExporter
from export.json_format import JsonExporter
from export.files import ExportFileManager, FileExportManager, StringExportFileManager
from export.progress import ProgressInfo, ProgressReporter
from export.streaming import ExportStream
from graph.exceptions import MalformedInputError
from graph.store import GraphStore
from graph.subgraph import DatabaseSource, NodesAndRelsSource, NodesAndRelsSubGraph, QuerySource
from utils.logger import get_logger
from utils.monitoring import MemoryMonitor
from utils.termination import TerminationGuard

logger = get_logger(__name__)

EXPORT_TYPES = ("csv", "cypher", "json")

ExportSource = Union[DatabaseSource, NodesAndRelsSource, QuerySource]
Destination = Optional[Union[str, Path]]


def _data_supplier(files: ExportFileManager) -> Callable[[], Any]:
    """In-memory output drained since the previous row: text, or a map when files are separated."""
    def supply():
        drained = files.drain()
        if not drained:
            return None
        if files.separate_files:
            return drained
        return "".join(drained.values())
    return supply


class GraphExportEngine:
    """
    Runs CSV, JSON and Cypher exports against one store.

    Args:
        store: Store to export from
        guard: Cancellation guard for synchronous exports; streaming exports get their own
        memory_monitor: Monitor checked between batches (default from settings)
    """

    def __init__(
        self,
        store: GraphStore,
        guard: Optional[TerminationGuard] = None,
        memory_monitor: Optional[MemoryMonitor] = None,
    ):
        self.store = store
        self.settings = get_settings()
        self.guard = guard or TerminationGuard()
        self.memory_monitor = memory_monitor or MemoryMonitor(max_percent=self.settings.max_memory_percent)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_destination(self, destination: Destination) -> Optional[Path]:
        """Relative destinations are placed under the configured export directory."""
        if destination is None:
            return None
        path = Path(destination)
        if not path.is_absolute():
            path = Path(self.settings.export_dir) / path
        return path

    def resolve_subgraph(self, source: ExportSource, config: ExportConfig) -> GraphStore:
        if isinstance(source, DatabaseSource):
            return self.store
        if isinstance(source, NodesAndRelsSource):
            return NodesAndRelsSubGraph(self.store, source.nodes, source.relationships)
        if isinstance(source, QuerySource):
            nodes, rels = self.store.query_subgraph(
                source.statement,
                source.parameters,
                rels_in_between=config.nodes_of_relationships,
            )
            return NodesAndRelsSubGraph(self.store, nodes, rels)
        raise MalformedInputError(f"Unsupported export source: {source!r}")

    def _files(self, path: Optional[Path], config: ExportConfig) -> ExportFileManager:
        if path is None:
            return StringExportFileManager(config.separate_files)
        return FileExportManager(path, config.separate_files)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(
        self,
        source: ExportSource,
        export_type: str,
        destination: Destination = None,
        config: Union[ExportConfig, Dict[str, Any], None] = None,
    ) -> Union[ProgressInfo, ExportStream]:
        """
        Export ``source`` as CSV, JSON or Cypher.

        Args:
            source: What to export
            export_type: ``"csv"``, ``"json"`` or ``"cypher"``
            destination: Output file, or None to return the output in the progress rows' ``data``
            config: ``ExportConfig`` or its camelCase option map

        Returns:
            The final progress row, or an ``ExportStream`` when ``stream`` is set

        Raises:
            MalformedInputError: On an unknown export type or invalid options, before any store access
        """
        if export_type not in EXPORT_TYPES:
            raise MalformedInputError(f"Unknown export type {export_type!r}; expected one of {EXPORT_TYPES}")
        if not isinstance(config, ExportConfig):
            config = ExportConfig.from_dict(config, export_type)

        path = self.resolve_destination(destination)
        files = self._files(path, config)
        info = ProgressInfo(
            file=str(path) if path else None,
            source=source.describe(self.store),
            format=export_type,
            batch_size=config.batch_size,
        )
        reporter = ProgressReporter(info, data_supplier=_data_supplier(files) if path is None else None)
        guard = TerminationGuard() if config.stream else self.guard

        def run() -> ProgressInfo:
            logger.info("=" * 80)
            logger.info(f"Starting {export_type} export")
            logger.info(f"Source: {info.source}")
            logger.info(f"Destination: {info.file or '<in memory>'}")
            logger.info(f"Batch size: {config.batch_size}")
            logger.info("=" * 80)
            try:
                if export_type in ("csv", "json"):
                    self._run_tabular(export_type, source, config, files, reporter, guard)
                else:
                    subgraph = self.resolve_subgraph(source, config)
                    CypherExporter(subgraph, config, files, reporter, guard, self.memory_monitor).export()
                final = reporter.done()
            except Exception as e:
                logger.error(f"Export failed: {str(e)}", exc_info=True)
                raise
            finally:
                files.close()
            logger.info("=" * 80)
            logger.info("Export completed successfully!")
            logger.info(f"Nodes: {final.nodes}, relationships: {final.relationships}, properties: {final.properties}")
            logger.info(f"Peak memory usage: {self.memory_monitor.peak_percent:.1f}%")
            logger.info("=" * 80)
            return final

        if config.stream:
            return ExportStream(
                run,
                reporter,
                guard,
                capacity=config.stream_queue_capacity,
                timeout_seconds=config.timeout_seconds,
            )
        return run()

    def _run_tabular(self, export_type, source, config, files, reporter, guard) -> None:
        exporter_cls = CsvExporter if export_type == "csv" else JsonExporter
        if isinstance(source, QuerySource):
            columns, rows = self.store.run_query(source.statement, source.parameters)
            exporter_cls(None, config, files, reporter, guard, self.memory_monitor).export_table(columns, rows)
            return
        subgraph = self.resolve_subgraph(source, config)
        exporter_cls(subgraph, config, files, reporter, guard, self.memory_monitor).export()

    def export_schema(
        self,
        destination: Destination = None,
        config: Union[ExportConfig, Dict[str, Any], None] = None,
    ) -> ProgressInfo:
        """Write the store's index and constraint statements only."""
        if not isinstance(config, ExportConfig):
            config = ExportConfig.from_dict(config, "cypher")
        path = self.resolve_destination(destination)
        files = self._files(path, config)
        info = ProgressInfo(
            file=str(path) if path else None,
            source="database: schema",
            format="cypher",
            batch_size=config.batch_size,
        )
        reporter = ProgressReporter(info, data_supplier=_data_supplier(files) if path is None else None)
        try:
            CypherExporter(self.store, config, files, reporter, self.guard, self.memory_monitor).export_schema()
            return reporter.done()
        finally:
            files.close()
