"""
Import of neo4j-admin style CSV files.

Node files carry an ``:ID`` column (optionally named and with an id
space, ``code:ID(Country)``), typed property columns (``age:long``,
``tags:string[]``) and an optional ``:LABEL`` column. Relationship files
carry ``:START_ID`` / ``:END_ID`` (with the id space of the nodes they
point to), an optional ``:TYPE`` column and typed property columns.
``:IGNORE`` columns are skipped.

Rows are written in batches; each batch is one atomic store write.
"""

import csv
import datetime
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, TextIO, Tuple, Union

from graph.batch_operations import process_in_batches
from graph.exceptions import DuplicateIdentityError, MalformedInputError
from graph.store import GraphStore
from export.progress import ProgressInfo, ProgressReporter
from utils.logger import get_logger
from utils.termination import NEVER_TERMINATED, TerminationGuard

logger = get_logger(__name__)

DEFAULT_ID_SPACE = "__default__"

ID_FIELD = "ID"
START_ID_FIELD = "START_ID"
END_ID_FIELD = "END_ID"
LABEL_FIELD = "LABEL"
TYPE_FIELD = "TYPE"
IGNORE_FIELD = "IGNORE"

_HEADER_PATTERN = re.compile(
    r"^(?P<name>[^:]*)(?::(?P<type>[A-Za-z_]+)(?P<array>\[\])?(?:\((?P<space>[^)]*)\))?(?P<options>\{.*\})?)?$"
)

CsvSource = Union[str, Path, TextIO]


@dataclass
class CsvLoaderConfig:
    """Options for one import call."""
    delimiter: str = ","
    array_delimiter: str = ";"
    quotation_character: str = '"'
    ignore_duplicate_nodes: bool = False
    string_ids: bool = True
    skip_lines: int = 1
    ignore_blank_string: bool = False
    ignore_empty_cell_array: bool = False
    batch_size: int = 2000

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]] = None) -> "CsvLoaderConfig":
        config = dict(config or {})
        result = cls(
            delimiter=str(config.get("delimiter", ",")),
            array_delimiter=str(config.get("arrayDelimiter", ";")),
            quotation_character=str(config.get("quotationCharacter", '"')),
            ignore_duplicate_nodes=bool(config.get("ignoreDuplicateNodes", False)),
            string_ids=bool(config.get("stringIds", True)),
            skip_lines=int(config.get("skipLines", 1)),
            ignore_blank_string=bool(config.get("ignoreBlankString", False)),
            ignore_empty_cell_array=bool(config.get("ignoreEmptyCellArray", False)),
            batch_size=int(config.get("batchSize", 2000)),
        )
        if len(result.delimiter) != 1 or len(result.quotation_character) != 1:
            raise MalformedInputError("delimiter and quotationCharacter must be single characters")
        if result.batch_size <= 0:
            raise MalformedInputError(f"batchSize must be greater than 0, got {result.batch_size}")
        if result.skip_lines < 1:
            raise MalformedInputError(f"skipLines must be at least 1, got {result.skip_lines}")
        return result


@dataclass
class HeaderField:
    """One parsed header cell."""
    index: int
    name: str
    type: str = "string"
    array: bool = False
    id_space: str = DEFAULT_ID_SPACE

    @property
    def is_meta(self) -> bool:
        return self.type in (ID_FIELD, START_ID_FIELD, END_ID_FIELD, LABEL_FIELD, TYPE_FIELD, IGNORE_FIELD)


def parse_header(cells: Sequence[str]) -> List[HeaderField]:
    """
    Parse a header row.

    Raises:
        MalformedInputError: On a cell that is not ``name[:type[[]][(idSpace)]]``
    """
    fields = []
    for index, cell in enumerate(cells):
        match = _HEADER_PATTERN.match(cell.strip())
        if match is None:
            raise MalformedInputError(f"Invalid CSV header field {cell!r}")
        raw_type = match.group("type")
        field_type = "string"
        if raw_type:
            field_type = raw_type.upper() if raw_type.upper() in (
                ID_FIELD, START_ID_FIELD, END_ID_FIELD, LABEL_FIELD, TYPE_FIELD, IGNORE_FIELD
            ) else raw_type.lower()
        if field_type not in _CONVERTERS and field_type not in (
            ID_FIELD, START_ID_FIELD, END_ID_FIELD, LABEL_FIELD, TYPE_FIELD, IGNORE_FIELD
        ):
            raise MalformedInputError(f"Unknown CSV column type {raw_type!r} in {cell!r}")
        fields.append(HeaderField(
            index=index,
            name=match.group("name"),
            type=field_type,
            array=bool(match.group("array")),
            id_space=match.group("space") or DEFAULT_ID_SPACE,
        ))
    return fields


# ============================================================================
# Value Conversion
# ============================================================================

def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() == "true"


def _parse_datetime(raw: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(raw.replace("Z", "+00:00"))


_CONVERTERS = {
    "string": str,
    "char": str,
    "int": int,
    "long": int,
    "short": int,
    "byte": int,
    "float": float,
    "double": float,
    "boolean": _parse_bool,
    "date": datetime.date.fromisoformat,
    "datetime": _parse_datetime,
    "localdatetime": datetime.datetime.fromisoformat,
    "time": datetime.time.fromisoformat,
    "localtime": datetime.time.fromisoformat,
    # kept as their textual form
    "duration": str,
    "point": str,
}


def convert_value(field: HeaderField, raw: Optional[str], config: CsvLoaderConfig) -> Tuple[bool, Any]:
    """
    Convert one cell.

    Returns:
        ``(present, value)``; ``present`` is False when the property should not be set

    Raises:
        MalformedInputError: If the cell does not parse as the column type
    """
    if raw is None or raw == "":
        if field.array and not config.ignore_empty_cell_array and raw == "":
            return True, []
        return False, None
    if config.ignore_blank_string and field.type == "string" and not raw.strip():
        return False, None

    converter = _CONVERTERS[field.type]
    try:
        if field.array:
            return True, [converter(item) for item in raw.split(config.array_delimiter)]
        return True, converter(raw)
    except ValueError as e:
        raise MalformedInputError(f"Cannot read {raw!r} as {field.type} for column {field.name!r}") from e


@contextmanager
def _open(source: CsvSource) -> Iterator[TextIO]:
    if hasattr(source, "read"):
        yield source
    else:
        with open(source, "r", encoding="utf-8", newline="") as handle:
            yield handle


def _describe(source: CsvSource) -> str:
    return str(source) if isinstance(source, (str, Path)) else "<stream>"


# ============================================================================
# Loader
# ============================================================================

class CsvLoader:
    """
    Loads node and relationship CSV files into a store.

    Node ids seen in the files are mapped per id space to the store ids of
    the created nodes; relationship files resolve their endpoints through
    that mapping, so node files must be loaded first.

    Args:
        store: Writable graph store
        config: Loader options
        reporter: Progress accumulator
        guard: Cancellation guard, checked per batch
    """

    def __init__(
        self,
        store: GraphStore,
        config: Optional[CsvLoaderConfig] = None,
        reporter: Optional[ProgressReporter] = None,
        guard: TerminationGuard = NEVER_TERMINATED,
    ):
        self.store = store
        self.config = config or CsvLoaderConfig()
        self.reporter = reporter or ProgressReporter(
            ProgressInfo(file="progress.csv", source="file", format="csv", batch_size=self.config.batch_size)
        )
        self.guard = guard
        self.id_mapping: Dict[str, Dict[str, Any]] = {}

    def load(
        self,
        nodes: Sequence[Dict[str, Any]] = (),
        relationships: Sequence[Dict[str, Any]] = (),
    ) -> ProgressInfo:
        """
        Load every node file, then every relationship file.

        Args:
            nodes: ``{"fileName": path or stream, "labels": [...]}`` entries
            relationships: ``{"fileName": path or stream, "type": "T"}`` entries

        Returns:
            Final progress row
        """
        for entry in nodes:
            if "fileName" not in entry:
                raise MalformedInputError("Every node file entry needs a fileName")
            self.load_nodes(entry["fileName"], entry.get("labels") or [])
        for entry in relationships:
            if "fileName" not in entry:
                raise MalformedInputError("Every relationship file entry needs a fileName")
            self.load_relationships(entry["fileName"], entry.get("type"))
        return self.reporter.done()

    def _rows(self, handle: TextIO) -> Tuple[List[str], Iterator[List[str]]]:
        reader = csv.reader(
            handle,
            delimiter=self.config.delimiter,
            quotechar=self.config.quotation_character,
        )
        header = next(reader, None)
        if header is None:
            raise MalformedInputError("CSV file is empty")
        for _ in range(self.config.skip_lines - 1):
            next(reader, None)
        return header, reader

    def load_nodes(self, source: CsvSource, labels: Sequence[str] = ()) -> int:
        """
        Load one node file.

        Raises:
            DuplicateIdentityError: On a repeated id unless duplicates are ignored
        """
        logger.info(f"Loading nodes from {_describe(source)} with labels {list(labels)}")
        with _open(source) as handle:
            header, reader = self._rows(handle)
            fields = parse_header(header)
            id_field = next((f for f in fields if f.type == ID_FIELD), None)
            if id_field is None:
                logger.warning(
                    "No :ID column; nodes are imported but no relationship can reference them"
                )
            id_space = id_field.id_space if id_field else DEFAULT_ID_SPACE
            mapping = self.id_mapping.setdefault(id_space, {})

            pending: List[Tuple[Optional[str], Dict[str, Any]]] = []
            seen = set()
            skipped = 0
            for line_no, line in enumerate(reader, start=self.config.skip_lines + 1):
                csv_id = line[id_field.index] if id_field else None
                if csv_id is not None and (csv_id in mapping or csv_id in seen):
                    if self.config.ignore_duplicate_nodes:
                        skipped += 1
                        continue
                    raise DuplicateIdentityError(csv_id, id_space, line_no)
                if csv_id is not None:
                    seen.add(csv_id)
                pending.append((csv_id, self._node_spec(fields, line, labels)))

        def write(batch: List[Tuple[Optional[str], Dict[str, Any]]]) -> int:
            self.guard.check()
            store_ids = self.store.create_nodes([item for _, item in batch])
            for (csv_id, _), store_id in zip(batch, store_ids):
                if csv_id is not None:
                    mapping[csv_id] = store_id
            self.reporter.update(nodes=len(batch), properties=sum(len(s["properties"]) for _, s in batch))
            return len(batch)

        created = sum(process_in_batches(pending, self.config.batch_size, write, "node import"))
        if skipped:
            logger.info(f"Skipped {skipped} duplicate node rows")
        logger.info(f"Created {created} nodes")
        return created

    def _node_spec(self, fields: List[HeaderField], line: List[str], labels: Sequence[str]) -> Dict[str, Any]:
        node_labels = list(labels)
        properties: Dict[str, Any] = {}
        for field in fields:
            raw = line[field.index] if field.index < len(line) else None
            if field.type == LABEL_FIELD:
                for label in (raw or "").split(self.config.array_delimiter):
                    if label and label not in node_labels:
                        node_labels.append(label)
            elif field.type == ID_FIELD:
                if field.name and raw:
                    properties[field.name] = raw if self.config.string_ids else int(raw)
            elif field.type == IGNORE_FIELD:
                continue
            else:
                present, value = convert_value(field, raw, self.config)
                if present:
                    properties[field.name] = value
        return {"labels": node_labels, "properties": properties}

    def load_relationships(self, source: CsvSource, rel_type: Optional[str] = None) -> int:
        """
        Load one relationship file.

        Raises:
            MalformedInputError: On an endpoint id that no loaded node file defined, or a row with no type
        """
        logger.info(f"Loading relationships from {_describe(source)} with type {rel_type}")
        with _open(source) as handle:
            header, reader = self._rows(handle)
            fields = parse_header(header)
            start_field = next((f for f in fields if f.type == START_ID_FIELD), None)
            end_field = next((f for f in fields if f.type == END_ID_FIELD), None)
            if start_field is None or end_field is None:
                raise MalformedInputError("Relationship files need :START_ID and :END_ID columns")
            type_field = next((f for f in fields if f.type == TYPE_FIELD), None)

            pending: List[Dict[str, Any]] = []
            for line_no, line in enumerate(reader, start=self.config.skip_lines + 1):
                start = self._resolve(start_field, line[start_field.index], line_no)
                end = self._resolve(end_field, line[end_field.index], line_no)
                current_type = rel_type
                if type_field is not None and line[type_field.index]:
                    current_type = line[type_field.index]
                if not current_type:
                    raise MalformedInputError(f"No relationship type for line {line_no}")
                properties = {}
                for field in fields:
                    if field.is_meta:
                        continue
                    raw = line[field.index] if field.index < len(line) else None
                    present, value = convert_value(field, raw, self.config)
                    if present:
                        properties[field.name] = value
                pending.append({"type": current_type, "start": start, "end": end, "properties": properties})

        def write(batch: List[Dict[str, Any]]) -> int:
            self.guard.check()
            created = self.store.create_relationships(batch)
            self.reporter.update(relationships=created, properties=sum(len(r["properties"]) for r in batch))
            return created

        created = sum(process_in_batches(pending, self.config.batch_size, write, "relationship import"))
        logger.info(f"Created {created} relationships")
        return created

    def _resolve(self, field: HeaderField, csv_id: str, line_no: int) -> Any:
        store_id = self.id_mapping.get(field.id_space, {}).get(csv_id)
        if store_id is None:
            space = "" if field.id_space == DEFAULT_ID_SPACE else f" in id space '{field.id_space}'"
            raise MalformedInputError(f"Node with id {csv_id!r}{space} not found (line {line_no})")
        return store_id
