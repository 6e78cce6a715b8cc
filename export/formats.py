"""
Cypher script dialects and literal formatting.

A dialect decides how transaction blocks and index waits are spelled:
``cypher-shell`` uses ``:begin`` / ``:commit``, ``neo4j-shell`` uses
``BEGIN`` / ``COMMIT``, and ``plain`` emits bare statements.
"""

import datetime
import json
import math
from enum import Enum
from typing import Any, Dict, Iterable, Mapping

from neo4j import time as neo4j_time
from neo4j.spatial import Point, WGS84Point

from graph.schema import quote


class ExportFormat(str, Enum):
    CYPHER_SHELL = "cypher-shell"
    NEO4J_SHELL = "neo4j-shell"
    PLAIN = "plain"

    @property
    def begin(self) -> str:
        return _BEGIN[self]

    @property
    def commit(self) -> str:
        return _COMMIT[self]

    def index_await(self, seconds: int) -> str:
        if self is ExportFormat.CYPHER_SHELL:
            return f"CALL db.awaitIndexes({seconds});\n"
        if self is ExportFormat.NEO4J_SHELL:
            return "SCHEMA AWAIT\n"
        return ""


_BEGIN = {
    ExportFormat.CYPHER_SHELL: ":begin\n",
    ExportFormat.NEO4J_SHELL: "BEGIN\n",
    ExportFormat.PLAIN: "",
}

_COMMIT = {
    ExportFormat.CYPHER_SHELL: ":commit\n",
    ExportFormat.NEO4J_SHELL: "COMMIT\n",
    ExportFormat.PLAIN: "",
}


# ============================================================================
# Literal Formatting
# ============================================================================

def format_string(value: str) -> str:
    """Double-quoted Cypher string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "0.0/0.0"
    if math.isinf(value):
        return "1.0/0.0" if value > 0 else "-1.0/0.0"
    # Cypher exponents take no plus sign
    return repr(value).replace("e+", "e")


def _format_point(point: Point) -> str:
    srid = getattr(point, "srid", None)
    keys = ("longitude", "latitude", "height") if isinstance(point, WGS84Point) else ("x", "y", "z")
    parts = [f"{key}: {_format_float(float(coordinate))}" for key, coordinate in zip(keys, point)]
    parts.append(f"srid: {srid}")
    return "point({" + ", ".join(parts) + "})"


def format_value(value: Any) -> str:
    """
    Render a property value as a Cypher literal.

    Temporal values use their constructor functions, e.g.
    ``date('2018-10-30')``; points use ``point({...})``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return format_string(value)
    if isinstance(value, Point):
        return _format_point(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return format_map(value)
    return _format_temporal(value)


def _format_temporal(value: Any) -> str:
    if isinstance(value, (neo4j_time.DateTime, datetime.datetime)):
        function = "datetime" if value.tzinfo is not None else "localdatetime"
        return f"{function}('{value.isoformat()}')"
    if isinstance(value, (neo4j_time.Date, datetime.date)):
        return f"date('{value.isoformat()}')"
    if isinstance(value, (neo4j_time.Time, datetime.time)):
        function = "time" if value.tzinfo is not None else "localtime"
        return f"{function}('{value.isoformat()}')"
    if isinstance(value, neo4j_time.Duration):
        return f"duration('{value.iso_format()}')"
    if isinstance(value, datetime.timedelta):
        return f"duration({{seconds: {value.days * 86400 + value.seconds}, nanoseconds: {value.microseconds * 1000}}})"
    return format_string(json.dumps(value, default=str))


def format_map(properties: Mapping[str, Any], key_order: Iterable[str] = None) -> str:
    """``{a:1, b:"x"}`` with keys in ``key_order`` (default: sorted)."""
    keys = list(key_order) if key_order is not None else sorted(properties)
    return "{" + ", ".join(f"{quote(key)}:{format_value(properties[key])}" for key in keys) + "}"


def format_properties(properties: Dict[str, Any], extra: Dict[str, Any] = None) -> str:
    """Sorted entity properties followed by ``extra`` entries, or "" when both are empty."""
    parts = [f"{quote(key)}:{format_value(properties[key])}" for key in sorted(properties)]
    for key, value in (extra or {}).items():
        parts.append(f"{quote(key)}:{format_value(value)}")
    if not parts:
        return ""
    return "{" + ", ".join(parts) + "}"
