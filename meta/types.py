"""
Runtime value to Cypher type-name mapping.

Understands plain Python values, graphmeta entities, and the temporal and
spatial values returned by the Neo4j driver.
"""

import datetime
from enum import Enum
from typing import Any, Dict, Union

from neo4j import time as neo4j_time
from neo4j.graph import Node, Path, Relationship
from neo4j.spatial import Point

from graph.model import GraphNode, GraphRelationship, VirtualNode, VirtualRelationship


class Types(str, Enum):
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    RELATIONSHIP = "RELATIONSHIP"
    NODE = "NODE"
    PATH = "PATH"
    NULL = "NULL"
    ANY = "ANY"
    MAP = "MAP"
    LIST = "LIST"
    POINT = "POINT"
    DATE = "DATE"
    DATE_TIME = "DATE_TIME"
    LOCAL_TIME = "LOCAL_TIME"
    LOCAL_DATE_TIME = "LOCAL_DATE_TIME"
    TIME = "TIME"
    DURATION = "DURATION"

    @classmethod
    def of(cls, value: Any) -> "Types":
        """Classify a single value."""
        if value is None:
            return cls.NULL
        # bool is an int subclass
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.FLOAT
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, (GraphNode, VirtualNode, Node)):
            return cls.NODE
        if isinstance(value, (GraphRelationship, VirtualRelationship, Relationship)):
            return cls.RELATIONSHIP
        if isinstance(value, Path):
            return cls.PATH
        # Point is a tuple subclass
        if isinstance(value, Point):
            return cls.POINT
        if isinstance(value, (list, tuple)):
            return cls.LIST
        if isinstance(value, dict):
            return cls.MAP
        return _temporal_type(value)


def _temporal_type(value: Any) -> Types:
    if isinstance(value, (neo4j_time.DateTime, datetime.datetime)):
        return Types.DATE_TIME if value.tzinfo is not None else Types.LOCAL_DATE_TIME
    if isinstance(value, (neo4j_time.Date, datetime.date)):
        return Types.DATE
    if isinstance(value, (neo4j_time.Time, datetime.time)):
        return Types.TIME if value.tzinfo is not None else Types.LOCAL_TIME
    if isinstance(value, (neo4j_time.Duration, datetime.timedelta)):
        return Types.DURATION
    return Types.ANY


def type_name(value: Any) -> str:
    """
    Cypher-style name of a value's type.

    Lists are described by their element type, e.g. ``LIST OF STRING``;
    mixed or empty lists become ``LIST OF ANY``.
    """
    kind = Types.of(value)
    if kind is not Types.LIST:
        return kind.value
    element_types = {Types.of(item) for item in value}
    if len(element_types) == 1:
        return f"LIST OF {element_types.pop().value}"
    return "LIST OF ANY"


def is_type(value: Any, name: str) -> bool:
    name = name.strip().upper()
    return type_name(value) == name or Types.of(value).value == name


def types_of(entity: Union[GraphNode, GraphRelationship, Dict[str, Any]]) -> Dict[str, str]:
    """Map every property of a node, relationship or plain map to its type name."""
    properties = entity if isinstance(entity, dict) else entity.properties
    return {key: type_name(value) for key, value in properties.items()}
