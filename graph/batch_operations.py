"""
Batch operations for loading nodes and relationships into Neo4j.

Each batch is written with UNWIND inside one write transaction, so a
failing batch leaves nothing behind. Labels and relationship types cannot
be parameters in Cypher, so rows are grouped by label set or type and
each group gets its own statement.
"""

from typing import Any, Callable, Dict, List, Sequence, Tuple

from graph.schema import label_string, quote
from utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Helper Functions
# ============================================================================

def _group_by(rows: Sequence[Dict[str, Any]], key_func) -> Dict[Any, List[Tuple[int, Dict[str, Any]]]]:
    """Group rows by ``key_func`` keeping their original position."""
    groups: Dict[Any, List[Tuple[int, Dict[str, Any]]]] = {}
    for position, row in enumerate(rows):
        groups.setdefault(key_func(row), []).append((position, row))
    return groups


def create_nodes_query(labels: Sequence[str]) -> str:
    return f"""
        UNWIND $batch AS row
        CREATE (n{label_string(labels)})
        SET n = row.properties
        RETURN elementId(n) AS id
    """


def create_relationships_query(rel_type: str) -> str:
    return f"""
        UNWIND $batch AS row
        MATCH (s) WHERE elementId(s) = row.start
        MATCH (e) WHERE elementId(e) = row.end
        CREATE (s)-[r:{quote(rel_type)}]->(e)
        SET r = row.properties
        RETURN count(r) AS created
    """


# ============================================================================
# Batch Writes
# ============================================================================

def create_nodes_batch(connection, batch: List[Dict[str, Any]]) -> List[Any]:
    """
    Create nodes in one transaction.

    Args:
        connection: Neo4jConnection instance
        batch: ``{"labels": [...], "properties": {...}}`` entries

    Returns:
        Element ids of the created nodes, in batch order
    """
    if not batch:
        return []

    groups = _group_by(batch, lambda row: tuple(row.get("labels") or ()))

    def work(tx):
        ids: List[Any] = [None] * len(batch)
        for labels, rows in groups.items():
            params = [{"properties": row.get("properties") or {}} for _, row in rows]
            records = list(tx.run(create_nodes_query(labels), {"batch": params}))
            for (position, _), record in zip(rows, records):
                ids[position] = record["id"]
        return ids

    ids = connection.execute_write_records(work)
    logger.debug(f"Created {len(ids)} nodes in {len(groups)} label groups")
    return ids


def create_relationships_batch(connection, batch: List[Dict[str, Any]]) -> int:
    """
    Create relationships in one transaction.

    Args:
        connection: Neo4jConnection instance
        batch: ``{"type": ..., "start": id, "end": id, "properties": {...}}`` entries

    Returns:
        Number of relationships created
    """
    if not batch:
        return 0

    groups = _group_by(batch, lambda row: row["type"])

    def work(tx):
        created = 0
        for rel_type, rows in groups.items():
            params = [
                {"start": row["start"], "end": row["end"], "properties": row.get("properties") or {}}
                for _, row in rows
            ]
            record = tx.run(create_relationships_query(rel_type), {"batch": params}).single()
            created += record["created"] if record else 0
        return created

    created = connection.execute_write_records(work)
    logger.debug(f"Created {created} relationships in {len(groups)} type groups")
    return created


def process_in_batches(
    items: Sequence[Any],
    batch_size: int,
    operation_func: Callable[[List[Any]], Any],
    operation_name: str,
) -> List[Any]:
    """
    Process items in batches using a specified operation function.

    Args:
        items: Items to process
        batch_size: Number of items per batch
        operation_func: Function called with each batch
        operation_name: Name for logging

    Returns:
        The result of each ``operation_func`` call, in order
    """
    if not items:
        logger.debug(f"No items to process for {operation_name}")
        return []

    total_batches = (len(items) + batch_size - 1) // batch_size
    logger.info(f"Processing {len(items)} items in {total_batches} batches for {operation_name}")

    results = []
    for i in range(0, len(items), batch_size):
        batch = list(items[i:i + batch_size])
        logger.debug(f"Processing batch {i // batch_size + 1}/{total_batches} ({len(batch)} items)")
        results.append(operation_func(batch))

    return results
