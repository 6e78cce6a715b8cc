"""
Schema view folded from collected metadata and statistics.

The result maps each label and relationship type to a description:

    {
        "Person": {
            "type": "node", "count": 2, "labels": [],
            "properties": {"name": {"type": "STRING", "indexed": True, ...}},
            "relationships": {"KNOWS": {"direction": "out", "count": 1, "labels": ["Person"], "properties": {...}}},
        },
        "KNOWS": {"type": "relationship", "count": 1, "properties": {...}},
    }
"""

from typing import Any, Dict, Mapping, Tuple

from meta.collector import ElementType, MetadataKey, MetaResult
from meta.stats import MetaStats, incoming_pattern, outgoing_pattern


def _property_info(row: MetaResult) -> Dict[str, Any]:
    return {
        "type": row.type,
        "indexed": row.index,
        "unique": row.unique,
        "existence": row.existence,
        "array": row.array,
    }


def build_schema(
    metadata: Mapping[MetadataKey, Tuple[MetaResult, ...]],
    stats: MetaStats,
) -> Dict[str, Dict[str, Any]]:
    """
    Combine a metadata snapshot and statistics into a schema description.

    Args:
        metadata: Output of ``MetaItemCollector.collect``
        stats: Output of ``StatsAggregator.collect``

    Returns:
        Schema map keyed by label or relationship type name
    """
    rel_properties: Dict[str, Dict[str, Any]] = {}
    for key, rows in metadata.items():
        if key.kind is ElementType.RELATIONSHIP:
            rel_properties[key.name] = {
                row.property: _property_info(row) for row in rows if row.type != "RELATIONSHIP"
            }

    schema: Dict[str, Dict[str, Any]] = {}

    for key, rows in metadata.items():
        if key.kind is not ElementType.NODE:
            continue
        other_labels: Dict[str, None] = {}
        properties: Dict[str, Any] = {}
        relationships: Dict[str, Any] = {}
        for row in rows:
            if row.type == "RELATIONSHIP":
                relationships[row.property] = {
                    "direction": "out",
                    "count": stats.rel_types.get(outgoing_pattern(key.name, row.property), 0),
                    "labels": list(row.other),
                    "properties": rel_properties.get(row.property, {}),
                }
            else:
                properties[row.property] = _property_info(row)
                for label in row.other_labels:
                    other_labels.setdefault(label, None)
        schema[key.name] = {
            "type": ElementType.NODE.value,
            "count": stats.labels.get(key.name, 0),
            "labels": list(other_labels),
            "properties": properties,
            "relationships": relationships,
        }

    # incoming sides, derived from the type buckets' far-end labels
    for key, rows in metadata.items():
        if key.kind is not ElementType.RELATIONSHIP:
            continue
        for row in rows:
            if row.type != "RELATIONSHIP":
                continue
            for end_label in row.other:
                node_entry = schema.get(end_label)
                if node_entry is None:
                    continue
                existing = node_entry["relationships"].get(key.name)
                if existing is not None:
                    if existing["direction"] == "in" and row.property not in existing["labels"]:
                        existing["labels"].append(row.property)
                    continue
                node_entry["relationships"][key.name] = {
                    "direction": "in",
                    "count": stats.rel_types.get(incoming_pattern(end_label, key.name), 0),
                    "labels": [row.property],
                    "properties": rel_properties.get(key.name, {}),
                }

    for rel_type, properties in rel_properties.items():
        if rel_type in schema:
            # a label with the same name already owns the key
            continue
        schema[rel_type] = {
            "type": ElementType.RELATIONSHIP.value,
            "count": stats.rel_types_count.get(rel_type, 0),
            "properties": properties,
        }

    return schema
