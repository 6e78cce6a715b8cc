"""
Schema definitions for Cypher export and import.

This module defines:
- The synthetic identity used for nodes without a natural key
- Identifier quoting
- Index and constraint DDL statements
"""

import re
from typing import Iterable, Optional

from graph.model import ConstraintInfo, ConstraintType, IndexInfo, IndexType


# ============================================================================
# Synthetic Identity
# ============================================================================

class UniqueImport:
    """Names used to give nodes and relationships a temporary import key."""
    LABEL = "UNIQUE IMPORT LABEL"
    ID_PROPERTY = "UNIQUE IMPORT ID"
    REL_ID_PROPERTY = "UNIQUE IMPORT ID REL"
    CONSTRAINT_NAME = "UNIQUE_IMPORT_NAME"


# ============================================================================
# Identifier Quoting
# ============================================================================

_SIMPLE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote(name: str) -> str:
    """
    Quote a label, type or property key for use in Cypher.

    Simple identifiers pass through; anything else is wrapped in backticks
    with embedded backticks doubled.
    """
    if _SIMPLE_IDENTIFIER.match(name):
        return name
    return "`" + name.replace("`", "``") + "`"


def label_string(labels: Iterable[str]) -> str:
    """``[A, B]`` -> ``:A:B``"""
    return "".join(":" + quote(label) for label in labels)


def _props(variable: str, keys: Iterable[str]) -> str:
    return ", ".join(f"{variable}.{quote(key)}" for key in keys)


# ============================================================================
# Index Statements
# ============================================================================

def _name_part(name: Optional[str], if_not_exists: bool) -> str:
    part = f" {quote(name)}" if name else ""
    if if_not_exists:
        part += " IF NOT EXISTS"
    return part


def node_index_statement(index: IndexInfo, if_not_exists: bool = False, with_name: bool = False) -> str:
    """
    Build the statement recreating a node index.

    Returns:
        Cypher statement terminated by ``;``
    """
    name = _name_part(index.name if with_name else None, if_not_exists)
    if index.type is IndexType.FULLTEXT:
        labels = "|".join(quote(label) for label in index.labels_or_types)
        return f"CREATE FULLTEXT INDEX{name} FOR (n:{labels}) ON EACH [{_props('n', index.properties)}];"
    label = quote(index.labels_or_types[0])
    return f"CREATE {index.type.value} INDEX{name} FOR (n:{label}) ON ({_props('n', index.properties)});"


def relationship_index_statement(index: IndexInfo, if_not_exists: bool = False, with_name: bool = False) -> str:
    """Build the statement recreating a relationship index."""
    name = _name_part(index.name if with_name else None, if_not_exists)
    if index.type is IndexType.FULLTEXT:
        types = "|".join(quote(t) for t in index.labels_or_types)
        return f"CREATE FULLTEXT INDEX{name} FOR ()-[rel:{types}]-() ON EACH [{_props('rel', index.properties)}];"
    rel_type = quote(index.labels_or_types[0])
    return f"CREATE {index.type.value} INDEX{name} FOR ()-[rel:{rel_type}]-() ON ({_props('rel', index.properties)});"


# ============================================================================
# Constraint Statements
# ============================================================================

_PREDICATES = {
    ConstraintType.UNIQUENESS: "IS UNIQUE",
    ConstraintType.NODE_KEY: "IS NODE KEY",
    ConstraintType.NODE_PROPERTY_EXISTENCE: "IS NOT NULL",
    ConstraintType.RELATIONSHIP_UNIQUENESS: "IS UNIQUE",
    ConstraintType.RELATIONSHIP_KEY: "IS RELATIONSHIP KEY",
    ConstraintType.RELATIONSHIP_PROPERTY_EXISTENCE: "IS NOT NULL",
}


def constraint_statement(constraint: ConstraintInfo, if_not_exists: bool = False) -> str:
    """Build the statement recreating ``constraint``."""
    name = _name_part(constraint.name, if_not_exists)
    predicate = _PREDICATES[constraint.type]
    target = quote(constraint.label_or_type)
    if constraint.type.is_node:
        return f"CREATE CONSTRAINT{name} FOR (node:{target}) REQUIRE ({_props('node', constraint.properties)}) {predicate};"
    return f"CREATE CONSTRAINT{name} FOR ()-[rel:{target}]-() REQUIRE ({_props('rel', constraint.properties)}) {predicate};"


def unique_import_constraint_statement(if_not_exists: bool = False) -> str:
    """The temporary constraint backing synthetic node identities."""
    return constraint_statement(
        ConstraintInfo(
            UniqueImport.CONSTRAINT_NAME,
            ConstraintType.UNIQUENESS,
            UniqueImport.LABEL,
            (UniqueImport.ID_PROPERTY,),
        ),
        if_not_exists,
    )


def drop_unique_import_constraint_statement() -> str:
    return f"DROP CONSTRAINT {UniqueImport.CONSTRAINT_NAME};"
