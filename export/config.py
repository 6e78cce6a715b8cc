"""
Export configuration.

``ExportConfig.from_dict`` accepts the camelCase option maps used by the
CLI and by library callers, applies defaults from the global settings
and rejects invalid combinations before any store access.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from config.settings import get_settings
from export.formats import ExportFormat
from graph.exceptions import MalformedInputError
from meta.sampling import SampleMetaConfig


class CypherFormat(str, Enum):
    """How node and relationship statements are written."""
    CREATE = "create"
    UPDATE_ALL = "updateAll"
    ADD_STRUCTURE = "addStructure"
    UPDATE_STRUCTURE = "updateStructure"


class OptimizationType(str, Enum):
    """One statement per entity, or multi-row UNWIND statements."""
    NONE = "NONE"
    UNWIND_BATCH = "UNWIND_BATCH"
    UNWIND_BATCH_PARAMS = "UNWIND_BATCH_PARAMS"


class Quotes(str, Enum):
    ALWAYS = "always"
    NONE = "none"
    IF_NEEDED = "ifNeeded"


class JsonFormat(str, Enum):
    """Layout of a JSON export."""
    JSON_LINES = "JSON_LINES"
    ARRAY_JSON = "ARRAY_JSON"
    JSON = "JSON"


def _enum_value(enum_cls, value, option: str):
    if isinstance(value, enum_cls):
        return value
    for member in enum_cls:
        if str(value) == member.value or str(value).upper() == member.name:
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise MalformedInputError(f"Invalid value {value!r} for {option}; expected one of: {choices}")


def _parse_quotes(value: Any) -> Quotes:
    if isinstance(value, bool):
        return Quotes.ALWAYS if value else Quotes.NONE
    return _enum_value(Quotes, value, "quotes")


def _positive_int(config: Dict[str, Any], key: str, default: int) -> int:
    value = config.get(key, default)
    try:
        value = int(value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"{key} must be an integer, got {value!r}") from e
    if value <= 0:
        raise MalformedInputError(f"{key} must be greater than 0, got {value}")
    return value


@dataclass
class ExportConfig:
    """Options for one export call."""
    batch_size: int = 20000
    format: ExportFormat = ExportFormat.CYPHER_SHELL
    cypher_format: CypherFormat = CypherFormat.CREATE
    optimization_type: OptimizationType = OptimizationType.UNWIND_BATCH
    unwind_batch_size: int = 20
    separate_files: bool = False
    separate_header: bool = False
    bulk_import: bool = False
    quotes: Quotes = Quotes.ALWAYS
    differentiate_nulls: bool = False
    use_types: bool = False
    delim: str = ","
    array_delim: str = ";"
    json_format: JsonFormat = JsonFormat.JSON_LINES
    write_node_properties: bool = False
    sampling: bool = False
    sampling_config: SampleMetaConfig = field(default_factory=SampleMetaConfig)
    multiple_relationships_with_type: bool = False
    if_not_exists: bool = False
    save_index_names: bool = False
    await_for_indexes: int = 300
    stream: bool = False
    timeout_seconds: int = 100
    nodes_of_relationships: bool = False
    parallel: bool = False
    workers: int = 4
    stream_queue_capacity: int = 1000

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]] = None, export_type: str = "cypher") -> "ExportConfig":
        """
        Build and validate a config from an option map.

        Args:
            config: camelCase options
            export_type: ``"cypher"``, ``"csv"`` or ``"json"``; some checks only apply to one of them

        Raises:
            MalformedInputError: On unknown enum values or inconsistent options
        """
        config = dict(config or {})
        settings = get_settings()

        optimizations = config.get("useOptimizations") or {}
        if not isinstance(optimizations, dict):
            raise MalformedInputError(f"useOptimizations must be a map, got {optimizations!r}")

        delim = str(config.get("delim", ","))
        if len(delim) != 1:
            raise MalformedInputError(f"delim must be a single character, got {delim!r}")

        sampling_config = config.get("samplingConfig") or {}
        if not isinstance(sampling_config, dict):
            raise MalformedInputError(f"samplingConfig must be a map, got {sampling_config!r}")

        result = cls(
            batch_size=_positive_int(config, "batchSize", settings.batch_size),
            format=_enum_value(ExportFormat, config.get("format", ExportFormat.CYPHER_SHELL.value), "format"),
            cypher_format=_enum_value(CypherFormat, config.get("cypherFormat", CypherFormat.CREATE.value), "cypherFormat"),
            optimization_type=_enum_value(
                OptimizationType,
                optimizations.get("type", OptimizationType.UNWIND_BATCH.value),
                "useOptimizations.type",
            ),
            unwind_batch_size=_positive_int(optimizations, "unwindBatchSize", settings.unwind_batch_size),
            separate_files=bool(config.get("separateFiles", False)),
            separate_header=bool(config.get("separateHeader", False)),
            bulk_import=bool(config.get("bulkImport", False)),
            quotes=_parse_quotes(config.get("quotes", Quotes.ALWAYS.value)),
            differentiate_nulls=bool(config.get("differentiateNulls", False)),
            use_types=bool(config.get("useTypes", False)),
            delim=delim,
            array_delim=str(config.get("arrayDelim", ";")),
            json_format=_enum_value(JsonFormat, config.get("jsonFormat", JsonFormat.JSON_LINES.value), "jsonFormat"),
            write_node_properties=bool(config.get("writeNodeProperties", False)),
            sampling=bool(config.get("sampling", False)),
            sampling_config=SampleMetaConfig.from_dict(sampling_config),
            multiple_relationships_with_type=bool(config.get("multipleRelationshipsWithType", False)),
            if_not_exists=bool(config.get("ifNotExists", False)),
            save_index_names=bool(config.get("saveIndexNames", False)),
            await_for_indexes=_positive_int(config, "awaitForIndexes", 300),
            stream=bool(config.get("stream", False)),
            timeout_seconds=_positive_int(config, "timeoutSeconds", settings.stream_timeout_seconds),
            nodes_of_relationships=bool(config.get("nodesOfRelationships", False)),
            parallel=bool(config.get("parallel", settings.enable_parallel)),
            workers=_positive_int(config, "workers", settings.max_workers),
            stream_queue_capacity=settings.stream_queue_capacity,
        )
        result.validate(export_type)
        return result

    def validate(self, export_type: str = "cypher") -> None:
        if export_type == "cypher" and self.optimized and self.unwind_batch_size > self.batch_size:
            raise MalformedInputError(
                f"unwindBatchSize must be <= batchSize, but got {self.unwind_batch_size} > {self.batch_size}"
            )
        if (
            export_type == "cypher"
            and self.optimization_type is OptimizationType.UNWIND_BATCH_PARAMS
            and self.format is not ExportFormat.CYPHER_SHELL
        ):
            raise MalformedInputError("UNWIND_BATCH_PARAMS is only supported with the cypher-shell format")
        if export_type == "csv" and self.bulk_import and not self.separate_files:
            # bulk import is one file per label combination / type by definition
            self.separate_files = True
        if export_type == "json":
            # one JSON document per export
            self.separate_files = False

    @property
    def optimized(self) -> bool:
        return self.optimization_type is not OptimizationType.NONE

    @property
    def is_update(self) -> bool:
        return self.cypher_format is not CypherFormat.CREATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchSize": self.batch_size,
            "format": self.format.value,
            "cypherFormat": self.cypher_format.value,
            "useOptimizations": {
                "type": self.optimization_type.value,
                "unwindBatchSize": self.unwind_batch_size,
            },
            "separateFiles": self.separate_files,
            "bulkImport": self.bulk_import,
            "quotes": self.quotes.value,
            "differentiateNulls": self.differentiate_nulls,
            "useTypes": self.use_types,
            "jsonFormat": self.json_format.value,
            "stream": self.stream,
        }
