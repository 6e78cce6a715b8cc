"""
JSON export.

Every layout writes the same records:

* node: ``{"type": "node", "id", "labels", "properties"}``
* relationship: ``{"type": "relationship", "id", "label", "start", "end", "properties"}``
  where ``start`` and ``end`` carry the endpoint id and labels, plus the
  endpoint properties with ``writeNodeProperties``

``properties`` is left out when an entity has none. ``jsonFormat``
chooses the layout: ``JSON_LINES`` (one record per line, the default),
``ARRAY_JSON`` (one array of records) or ``JSON`` (``{"nodes": [...],
"rels": [...]}``, query results under ``"data"``).
"""

import json
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, TextIO

from neo4j.graph import Node, Path, Relationship
from neo4j.spatial import Point

from export.config import ExportConfig, JsonFormat
from export.csv_format import point_map
from export.files import ExportFileManager
from export.progress import ProgressReporter
from graph.model import GraphNode, GraphRelationship
from graph.neo4j_store import to_graph_node, to_graph_relationship
from graph.store import GraphStore
from utils.logger import get_logger
from utils.monitoring import MemoryMonitor
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)


# ============================================================================
# Records
# ============================================================================

def node_record(node: GraphNode) -> Dict[str, Any]:
    record: Dict[str, Any] = {"type": "node", "id": str(node.id), "labels": list(node.labels)}
    if node.properties:
        record["properties"] = json_value(node.properties)
    return record


def _endpoint(node: GraphNode, write_properties: bool) -> Dict[str, Any]:
    record: Dict[str, Any] = {"id": str(node.id), "labels": list(node.labels)}
    if write_properties and node.properties:
        record["properties"] = json_value(node.properties)
    return record


def relationship_record(rel: GraphRelationship, write_node_properties: bool = False) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "type": "relationship",
        "id": str(rel.id),
        "label": rel.type,
        "start": _endpoint(rel.start_node, write_node_properties),
        "end": _endpoint(rel.end_node, write_node_properties),
    }
    if rel.properties:
        record["properties"] = json_value(rel.properties)
    return record


def json_value(value: Any, write_node_properties: bool = False) -> Any:
    """
    JSON-ready form of a property or query result value.

    Entities become node and relationship records, paths become
    ``{"length", "nodes", "rels"}``, points become coordinate maps and
    temporal values their ISO strings.
    """
    if isinstance(value, Node):
        value = to_graph_node(value)
    elif isinstance(value, Relationship):
        value = to_graph_relationship(value, value.start_node, value.end_node)

    if isinstance(value, GraphNode):
        return node_record(value)
    if isinstance(value, GraphRelationship):
        return relationship_record(value, write_node_properties)
    if isinstance(value, Path):
        return {
            "length": len(value.relationships),
            "nodes": [json_value(node) for node in value.nodes],
            "rels": [json_value(rel, write_node_properties) for rel in value.relationships],
        }
    # Point is a tuple subclass
    if isinstance(value, Point):
        return point_map(value)
    if isinstance(value, (list, tuple)):
        return [json_value(item, write_node_properties) for item in value]
    if isinstance(value, dict):
        return {str(key): json_value(item, write_node_properties) for key, item in value.items()}
    if hasattr(value, "iso_format"):
        return value.iso_format()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


# ============================================================================
# Record Writer
# ============================================================================

class JsonRecordWriter:
    """
    Writes records in one of the ``JsonFormat`` layouts.

    Call ``open_section`` before each group of records and ``finish``
    once at the end; JSON_LINES ignores both.
    """

    def __init__(self, stream: TextIO, json_format: JsonFormat = JsonFormat.JSON_LINES):
        self.stream = stream
        self.json_format = json_format
        self._opened = False
        self._first = True

    def open_section(self, name: str) -> None:
        if self.json_format is JsonFormat.ARRAY_JSON and not self._opened:
            self.stream.write("[")
        elif self.json_format is JsonFormat.JSON:
            self.stream.write(("\n]," if self._opened else "{") + json.dumps(name) + ":[")
            self._first = True
        self._opened = True

    def write(self, record: Dict[str, Any]) -> None:
        text = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)
        if self.json_format is JsonFormat.JSON_LINES:
            self.stream.write(text + "\n")
            return
        self.stream.write(("\n" if self._first else ",\n") + text)
        self._first = False

    def finish(self) -> None:
        if self.json_format is JsonFormat.ARRAY_JSON:
            self.stream.write("\n]\n")
        elif self.json_format is JsonFormat.JSON:
            self.stream.write("\n]}\n")


# ============================================================================
# Exporter
# ============================================================================

class JsonExporter:
    """
    Writes a (sub)graph or a query result as JSON.

    Args:
        store: Graph or subgraph to export; None for query tables
        config: Export options
        files: Output sink
        reporter: Progress accumulator
        guard: Cancellation guard, checked per batch
        memory_monitor: Optional monitor checked per batch
    """

    def __init__(
        self,
        store: Optional[GraphStore],
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

    def _writer(self) -> JsonRecordWriter:
        return JsonRecordWriter(self.files.get_writer("json"), self.config.json_format)

    def export(self) -> None:
        logger.info(
            f"JSON export: jsonFormat={self.config.json_format.value}, "
            f"writeNodeProperties={self.config.write_node_properties}, batchSize={self.config.batch_size}"
        )
        out = self._writer()
        write_node_properties = self.config.write_node_properties

        out.open_section("nodes")
        self._write_entities(self.store.all_nodes(), node_record, out, is_node=True)
        out.open_section("rels")
        self._write_entities(
            self.store.all_relationships(),
            lambda rel: relationship_record(rel, write_node_properties),
            out, is_node=False,
        )
        out.finish()
        self.files.flush()

    def export_table(self, columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> None:
        """Write a query result: one object per record, keyed by column."""
        out = self._writer()
        out.open_section("data")
        write_node_properties = self.config.write_node_properties
        count = 0
        for row in rows:
            if count % self.config.batch_size == 0:
                self.guard.check()
            nodes = rels = props = 0
            record = {}
            for column in columns:
                value = row.get(column)
                record[column] = json_value(value, write_node_properties)
                if isinstance(value, (GraphNode, Node)):
                    nodes += 1
                elif isinstance(value, (GraphRelationship, Relationship)):
                    rels += 1
                else:
                    props += 1
            out.write(record)
            self.reporter.update(nodes=nodes, relationships=rels, properties=props)
            self.reporter.next_row()
            count += 1
        out.finish()
        self.files.flush()
        logger.info(f"Wrote {count} result records in {len(columns)} columns")

    def _write_entities(
        self,
        entities: Iterable[Any],
        render: Callable[[Any], Dict[str, Any]],
        out: JsonRecordWriter,
        is_node: bool,
    ) -> None:
        batch_size = self.config.batch_size
        in_batch = properties = 0
        for entity in entities:
            out.write(render(entity))
            in_batch += 1
            properties += len(entity.properties)
            if in_batch == batch_size:
                self._batch_done(in_batch, properties, is_node)
                in_batch = properties = 0
        if in_batch:
            self._batch_done(in_batch, properties, is_node)

    def _batch_done(self, entities: int, properties: int, is_node: bool) -> None:
        self.guard.check()
        if is_node:
            self.reporter.update(nodes=entities, properties=properties)
        else:
            self.reporter.update(relationships=entities, properties=properties)
        if self.memory_monitor is not None:
            self.memory_monitor.check_and_warn("JSON export")
