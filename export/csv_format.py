"""
CSV export.

Single-file mode writes one header row covering both entity kinds:

    _id:id,_labels:label,<node props...>,_start:id,_end:id,_type:label,<rel props...>

followed by one row per node and one row per relationship; each row
leaves the other kind's columns empty. Without ``useTypes`` the
``:id`` / ``:label`` suffixes are dropped and property columns carry no
type.

Bulk-import mode writes neo4j-admin files instead: one
``nodes.<Label1.Label2>`` file per label combination (``:ID``, typed
property columns, ``:LABEL``) and one ``relationships.<TYPE>`` file per
relationship type (``:START_ID``, ``:END_ID``, ``:TYPE``, typed property
columns). Array values are joined with ``arrayDelim`` there so the loader
can split them again.
"""

import csv
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from neo4j.graph import Node, Path, Relationship
from neo4j.spatial import Point, WGS84Point

from export.config import ExportConfig, Quotes
from export.files import ExportFileManager
from export.progress import ProgressReporter
from graph.model import GraphNode, GraphRelationship
from graph.neo4j_store import to_graph_node, to_graph_relationship
from graph.store import GraphStore
from meta.sampling import is_sampled, sample_stride
from meta.types import Types
from utils.logger import get_logger
from utils.monitoring import MemoryMonitor
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)

NODE_HEADER_FIXED_COLUMNS = ("_id:id", "_labels:label")
REL_HEADER_FIXED_COLUMNS = ("_start:id", "_end:id", "_type:label")

CSV_TYPE_NAMES = {
    Types.INTEGER: "long",
    Types.FLOAT: "double",
    Types.BOOLEAN: "boolean",
    Types.STRING: "string",
    Types.DATE: "date",
    Types.DATE_TIME: "datetime",
    Types.LOCAL_DATE_TIME: "localdatetime",
    Types.TIME: "time",
    Types.LOCAL_TIME: "localtime",
    Types.DURATION: "duration",
    Types.POINT: "point",
}


# ============================================================================
# Value Conversion
# ============================================================================

def csv_type(value: Any) -> str:
    """Column type for ``value``: ``long``, ``double``, ``string[]`` and so on."""
    value_type = Types.of(value)
    if value_type is Types.LIST:
        items = [item for item in value if item is not None]
        element = csv_type(items[0]) if items else "string"
        return element if element.endswith("[]") else element + "[]"
    return CSV_TYPE_NAMES.get(value_type, "string")


def merge_types(current: Optional[str], new: str) -> str:
    """Type of a column seen with both ``current`` and ``new`` values."""
    if current is None or current == new:
        return new
    if {current, new} == {"long", "double"}:
        return "double"
    if {current, new} == {"long[]", "double[]"}:
        return "double[]"
    return "string"


def _json_default(value: Any) -> Any:
    if isinstance(value, (GraphNode, GraphRelationship, Node, Relationship, Path)):
        return _jsonable(entity_map(value))
    if hasattr(value, "iso_format"):
        return value.iso_format()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _jsonable(value: Any) -> Any:
    # json encodes tuples natively, which would flatten points into arrays
    if isinstance(value, Point):
        return point_map(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    return value


def to_json(value: Any) -> str:
    return json.dumps(_jsonable(value), separators=(",", ":"), default=_json_default, ensure_ascii=False)


def point_map(point: Point) -> Dict[str, Any]:
    keys = ("longitude", "latitude", "height") if isinstance(point, WGS84Point) else ("x", "y", "z")
    result: Dict[str, Any] = dict(zip(keys, point))
    result["srid"] = getattr(point, "srid", None)
    return result


def entity_map(value: Any) -> Any:
    """JSON-ready map of a node, relationship or path."""
    if isinstance(value, Node):
        value = to_graph_node(value)
    elif isinstance(value, Relationship):
        value = to_graph_relationship(value, value.start_node, value.end_node)
    elif isinstance(value, Path):
        return [entity_map(item) for item in _path_items(value)]

    if isinstance(value, GraphNode):
        return {"id": value.id, "labels": list(value.labels), "properties": value.properties}
    return {
        "id": value.id,
        "type": value.type,
        "start": value.start_node.id,
        "end": value.end_node.id,
        "properties": value.properties,
    }


def _path_items(path: Path) -> List[Any]:
    items: List[Any] = []
    for node, rel in zip(path.nodes, path.relationships):
        items.extend((node, rel))
    items.append(path.end_node)
    return items


def csv_value(value: Any, keep_nulls: bool = False, array_delim: Optional[str] = None) -> Optional[str]:
    """
    Render ``value`` as a CSV cell.

    Args:
        value: Property or result value
        keep_nulls: Return None for None (written unquoted) instead of ""
        array_delim: Join lists with this delimiter instead of writing them as JSON

    Returns:
        Cell text, or None for a null cell
    """
    if value is None:
        return None if keep_nulls else ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value) if isinstance(value, float) else str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Point):
        return to_json(point_map(value))
    if isinstance(value, (list, tuple)):
        if array_delim is not None:
            return array_delim.join(csv_value(item) for item in value)
        return to_json(list(value))
    if isinstance(value, (dict, GraphNode, GraphRelationship, Node, Relationship, Path)):
        return to_json(value)
    if hasattr(value, "iso_format"):
        return value.iso_format()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def labels_cell(labels: Iterable[str]) -> str:
    """``:A:B`` with labels sorted; empty for an unlabeled node."""
    labels = sorted(labels)
    return ":" + ":".join(labels) if labels else ""


# ============================================================================
# Row Writer
# ============================================================================

class CsvRowWriter:
    """
    ``csv.writer`` configured for one of three quoting policies.

    * ``always``: every non-null cell is quoted (``QUOTE_NOTNULL``)
    * ``ifNeeded``: cells containing the delimiter, a quote or a line break are quoted
    * ``none``: nothing is quoted; delimiters and line breaks are backslash-escaped

    A None cell is always written as nothing at all. With
    ``differentiate_nulls`` and ``ifNeeded`` every non-null cell is quoted,
    so ``""`` and null stay distinguishable.
    """

    def __init__(
        self,
        stream: TextIO,
        delim: str = ",",
        quotes: Quotes = Quotes.ALWAYS,
        differentiate_nulls: bool = False,
        quote_char: str = '"',
        line_end: str = "\n",
    ):
        self.quotes = quotes
        self.differentiate_nulls = differentiate_nulls
        if quotes is Quotes.NONE:
            self._writer = csv.writer(
                stream,
                delimiter=delim,
                quoting=csv.QUOTE_NONE,
                quotechar=None,
                escapechar="\\",
                lineterminator=line_end,
            )
        else:
            quote_all = quotes is Quotes.ALWAYS or differentiate_nulls
            self._writer = csv.writer(
                stream,
                delimiter=delim,
                quoting=csv.QUOTE_NOTNULL if quote_all else csv.QUOTE_MINIMAL,
                quotechar=quote_char,
                lineterminator=line_end,
            )

    def write_row(self, cells: Sequence[Optional[str]]) -> None:
        self._writer.writerow(cells)


# ============================================================================
# Exporter
# ============================================================================

class CsvExporter:
    """
    Writes a (sub)graph or a query result as CSV.

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

    def _row_writer(self, name: str) -> CsvRowWriter:
        return CsvRowWriter(
            self.files.get_writer(name),
            delim=self.config.delim,
            quotes=self.config.quotes,
            differentiate_nulls=self.config.differentiate_nulls,
        )

    def _write_header(self, name: str, header: Sequence[str]) -> CsvRowWriter:
        out = self._row_writer(name)
        if self.config.separate_header:
            self._row_writer(f"header.{name}").write_row(header)
        else:
            out.write_row(header)
        return out

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def export(self) -> None:
        logger.info(
            f"CSV export: bulkImport={self.config.bulk_import}, quotes={self.config.quotes.value}, "
            f"useTypes={self.config.use_types}, batchSize={self.config.batch_size}"
        )
        if self.config.bulk_import:
            self._write_bulk_import()
        else:
            self._write_all()
        self.files.flush()

    def export_table(self, columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> None:
        """Write a query result: one column per returned key, one row per record."""
        out = self._write_header("csv", list(columns))
        keep_nulls = self.config.differentiate_nulls
        count = 0
        for row in rows:
            if count % self.config.batch_size == 0:
                self.guard.check()
            cells = []
            nodes = rels = props = 0
            for column in columns:
                value = row.get(column)
                cells.append(csv_value(value, keep_nulls))
                value_type = Types.of(value)
                if value_type is Types.NODE:
                    nodes += 1
                elif value_type is Types.RELATIONSHIP:
                    rels += 1
                else:
                    props += 1
            out.write_row(cells)
            self.reporter.update(nodes=nodes, relationships=rels, properties=props)
            self.reporter.next_row()
            count += 1
        self.files.flush()
        logger.info(f"Wrote {count} result rows in {len(columns)} columns")

    # ------------------------------------------------------------------
    # Header typing
    # ------------------------------------------------------------------

    def _sampled(self, entities: List[Any]) -> List[Any]:
        if not self.config.sampling:
            return entities
        stride = sample_stride(len(entities), self.config.sampling_config.sample)
        return [e for position, e in enumerate(entities, start=1) if is_sampled(position, stride)]

    def property_types(self, entities: List[Any]) -> Dict[str, str]:
        """Property name to column type, in first-seen order."""
        types: Dict[str, str] = {}
        for entity in self._sampled(entities):
            for key, value in entity.properties.items():
                if value is None:
                    types.setdefault(key, "string")
                    continue
                types[key] = merge_types(types.get(key), csv_type(value))
        return types

    def header_columns(self, prop_types: Dict[str, str], fixed: Sequence[str]) -> List[str]:
        use_types = self.config.use_types
        columns = list(fixed) if use_types else [c.split(":")[0] for c in fixed]
        # ordered by key so the header lines up with the cells
        props = [
            key if not use_types or prop_types[key] == "string" else f"{key}:{prop_types[key]}"
            for key in sorted(prop_types)
        ]
        return columns + props

    # ------------------------------------------------------------------
    # Single file
    # ------------------------------------------------------------------

    def _write_all(self) -> None:
        nodes = list(self.store.all_nodes())
        rels = list(self.store.all_relationships())
        node_types = self.property_types(nodes)
        rel_types = self.property_types(rels)
        node_header = self.header_columns(node_types, NODE_HEADER_FIXED_COLUMNS)
        rel_header = self.header_columns(rel_types, REL_HEADER_FIXED_COLUMNS)

        out = self._write_header("csv", node_header + rel_header)
        width = len(node_header) + len(rel_header)
        node_props = sorted(node_types)
        rel_props = sorted(rel_types)

        self._write_entities(
            nodes,
            lambda node: [str(node.id), labels_cell(node.labels)] + self._cells(node, node_props),
            out, width, offset=0, is_node=True,
        )
        self._write_entities(
            rels,
            lambda rel: [str(rel.start_node.id), str(rel.end_node.id), rel.type] + self._cells(rel, rel_props),
            out, width, offset=len(node_header), is_node=False,
        )

    def _cells(self, entity, keys: Sequence[str]) -> List[Optional[str]]:
        keep_nulls = self.config.differentiate_nulls
        cells: List[Optional[str]] = []
        for key in keys:
            if key in entity.properties:
                cells.append(csv_value(entity.properties[key], keep_nulls))
            else:
                cells.append(None if keep_nulls else "")
        return cells

    def _write_entities(self, entities, render, out: CsvRowWriter, width: int, offset: int, is_node: bool) -> None:
        batch_size = self.config.batch_size
        in_batch = properties = 0
        for entity in entities:
            row: List[Optional[str]] = [None] * width
            cells = render(entity)
            row[offset:offset + len(cells)] = cells
            out.write_row(row)
            in_batch += 1
            properties += len(entity.properties)
            if in_batch == batch_size:
                self._batch_done(in_batch, properties, is_node)
                in_batch = properties = 0
        if in_batch:
            self._batch_done(in_batch, properties, is_node)

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------

    def _write_bulk_import(self) -> None:
        node_groups: Dict[Tuple[str, ...], List[GraphNode]] = {}
        for node in self.store.all_nodes():
            node_groups.setdefault(tuple(node.labels), []).append(node)
        rel_groups: Dict[str, List[GraphRelationship]] = {}
        for rel in self.store.all_relationships():
            rel_groups.setdefault(rel.type, []).append(rel)

        array_delim = self.config.array_delim
        keep_nulls = self.config.differentiate_nulls

        for labels, nodes in node_groups.items():
            prop_types = self.property_types(nodes)
            header = [":ID"] + [_bulk_column(k, t) for k, t in prop_types.items()] + [":LABEL"]
            out = self._write_header(f"nodes.{'.'.join(labels)}", header)
            label_cell = array_delim.join(labels)
            self._write_bulk_rows(
                nodes,
                lambda node: [str(node.id)]
                + [_bulk_cell(node.properties, key, keep_nulls, array_delim) for key in prop_types]
                + [label_cell],
                out, is_node=True,
            )

        for rel_type, rels in rel_groups.items():
            prop_types = self.property_types(rels)
            header = [":START_ID", ":END_ID", ":TYPE"] + [_bulk_column(k, t) for k, t in prop_types.items()]
            out = self._write_header(f"relationships.{rel_type}", header)
            self._write_bulk_rows(
                rels,
                lambda rel: [str(rel.start_node.id), str(rel.end_node.id), rel.type]
                + [_bulk_cell(rel.properties, key, False, array_delim) for key in prop_types],
                out, is_node=False,
            )
        logger.info(f"Bulk import files: {len(node_groups)} node groups, {len(rel_groups)} relationship types")

    def _write_bulk_rows(self, entities, render, out: CsvRowWriter, is_node: bool) -> None:
        batch_size = self.config.batch_size
        in_batch = properties = 0
        for entity in entities:
            out.write_row(render(entity))
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
            self.memory_monitor.check_and_warn("CSV export")


def _bulk_column(key: str, prop_type: str) -> str:
    return key if prop_type == "string" else f"{key}:{prop_type}"


def _bulk_cell(properties: Dict[str, Any], key: str, keep_nulls: bool, array_delim: str) -> Optional[str]:
    if key not in properties:
        return None if keep_nulls else ""
    return csv_value(properties[key], keep_nulls, array_delim)
