"""
Cypher queries used by the Neo4j store.

Every function returns a ``(query, parameters)`` tuple. Counting queries
are shaped so the server answers them from its count store instead of
scanning: a single label, or a single relationship type with at most one
labelled endpoint.
"""

from typing import Any, Dict, Optional

from graph.model import Direction
from graph.schema import quote


# ============================================================================
# Catalog Queries
# ============================================================================

def labels_in_use() -> tuple[str, Dict]:
    """
    List labels that at least one node carries.

    Returns:
        Tuple of (query, parameters)
    """
    query = """
        CALL db.labels() YIELD label
        RETURN label
        ORDER BY label
    """
    return query, {}


def relationship_types_in_use() -> tuple[str, Dict]:
    query = """
        CALL db.relationshipTypes() YIELD relationshipType
        RETURN relationshipType AS type
        ORDER BY type
    """
    return query, {}


def property_key_count() -> tuple[str, Dict]:
    query = """
        CALL db.propertyKeys() YIELD propertyKey
        RETURN count(propertyKey) AS count
    """
    return query, {}


# ============================================================================
# Count Queries
# ============================================================================

def count_nodes(label: Optional[str] = None) -> tuple[str, Dict]:
    """
    Count nodes, optionally for one label.

    Returns:
        Tuple of (query, parameters)
    """
    pattern = f"(n:{quote(label)})" if label else "(n)"
    return f"MATCH {pattern} RETURN count(n) AS count", {}


def count_relationships(
    rel_type: Optional[str] = None,
    start_label: Optional[str] = None,
    end_label: Optional[str] = None,
) -> tuple[str, Dict]:
    """
    Count relationships for ``(:start_label)-[:rel_type]->(:end_label)``.

    Returns:
        Tuple of (query, parameters)
    """
    start = f"(:{quote(start_label)})" if start_label else "()"
    end = f"(:{quote(end_label)})" if end_label else "()"
    rel = f"[r:{quote(rel_type)}]" if rel_type else "[r]"
    return f"MATCH {start}-{rel}->{end} RETURN count(r) AS count", {}


# ============================================================================
# Traversal Queries
# ============================================================================

def nodes_by_label(label: str) -> tuple[str, Dict]:
    return f"MATCH (n:{quote(label)}) RETURN n", {}


def all_nodes() -> tuple[str, Dict]:
    return "MATCH (n) RETURN n", {}


def all_relationships() -> tuple[str, Dict]:
    query = """
        MATCH (s)-[r]->(e)
        RETURN r, s, e
    """
    return query, {}


def node_relationships(node_id: Any, direction: Direction, rel_type: Optional[str] = None) -> tuple[str, Dict[str, Any]]:
    """
    Relationships of one node, each returned with both endpoints.

    Returns:
        Tuple of (query, parameters)
    """
    rel = f"[r:{quote(rel_type)}]" if rel_type else "[r]"
    if direction is Direction.OUTGOING:
        pattern = f"(n)-{rel}->(m)"
    elif direction is Direction.INCOMING:
        pattern = f"(n)<-{rel}-(m)"
    else:
        pattern = f"(n)-{rel}-(m)"
    query = f"""
        MATCH {pattern}
        WHERE elementId(n) = $id
        RETURN DISTINCT r, startNode(r) AS s, endNode(r) AS e
    """
    return query, {"id": node_id}


def node_degree(node_id: Any, direction: Direction, rel_type: Optional[str] = None) -> tuple[str, Dict[str, Any]]:
    rel = f"[:{quote(rel_type)}]" if rel_type else "[]"
    if direction is Direction.OUTGOING:
        pattern = f"(n)-{rel}->()"
    elif direction is Direction.INCOMING:
        pattern = f"(n)<-{rel}-()"
    else:
        pattern = f"(n)-{rel}-()"
    query = f"""
        MATCH (n) WHERE elementId(n) = $id
        RETURN COUNT {{ {pattern} }} AS degree
    """
    return query, {"id": node_id}


def node_relationship_types(node_id: Any) -> tuple[str, Dict[str, Any]]:
    query = """
        MATCH (n)-[r]-() WHERE elementId(n) = $id
        RETURN DISTINCT type(r) AS type
    """
    return query, {"id": node_id}


def relationships_between(node_ids: list) -> tuple[str, Dict[str, Any]]:
    """
    Relationships whose both endpoints are in ``node_ids``.

    Returns:
        Tuple of (query, parameters)
    """
    query = """
        MATCH (s)-[r]->(e)
        WHERE elementId(s) IN $ids AND elementId(e) IN $ids
        RETURN r, s, e
    """
    return query, {"ids": node_ids}


# ============================================================================
# Schema Queries
# ============================================================================

def show_constraints() -> tuple[str, Dict]:
    query = """
        SHOW CONSTRAINTS
        YIELD name, type, entityType, labelsOrTypes, properties
        RETURN name, type, entityType, labelsOrTypes, properties
    """
    return query, {}


def show_indexes() -> tuple[str, Dict]:
    query = """
        SHOW INDEXES
        YIELD name, type, entityType, labelsOrTypes, properties, owningConstraint
        RETURN name, type, entityType, labelsOrTypes, properties, owningConstraint
    """
    return query, {}
