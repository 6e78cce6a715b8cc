"""
Cypher statement builders, one per Cypher format.

* ``create``: CREATE nodes and relationships, recreate schema, clean up
  synthetic identities afterwards
* ``updateAll``: MERGE on identity, SET every property
* ``addStructure``: MERGE nodes setting properties only on creation,
  CREATE relationships; no schema and no cleanup
* ``updateStructure``: no node statements, MERGE relationships and SET
  their properties; no schema and no cleanup

Single statements (one per entity) and UNWIND statements (one per group
of rows) are both built here.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from export.config import CypherFormat, ExportConfig, OptimizationType
from export.formats import format_map, format_properties, format_value
from export.uniqueness import UniquenessTracker
from graph.model import GraphNode, GraphRelationship
from graph.schema import UniqueImport, label_string, quote

# (labels of the node, key label, key property names)
NodeGroupKey = Tuple[Tuple[str, ...], str, Tuple[str, ...]]
# (type, start key label, start key props, end key label, end key props, has synthetic id)
RelGroupKey = Tuple[str, str, Tuple[str, ...], str, Tuple[str, ...], bool]


def _set_clause(variable: str, properties: Dict[str, Any]) -> List[str]:
    return [f"{variable}.{quote(key)}={format_value(properties[key])}" for key in sorted(properties)]


def _key_lookup(variable: str, label: str, keys: Sequence[str], row_path: str) -> str:
    """``(start:Person{name: row.start.name})``"""
    lookups = ", ".join(f"{quote(key)}: {row_path}.{_row_field(key)}" for key in keys)
    return f"({variable}:{quote(label)}{{{lookups}}})"


def _row_field(key: str) -> str:
    if key == UniqueImport.ID_PROPERTY:
        return "_id"
    return quote(key)


def _row_key_map(key_props: Dict[str, Any]) -> str:
    return ", ".join(f"{_row_field(key)}:{format_value(value)}" for key, value in key_props.items())


class CypherFormatter:
    """
    Base formatter; the class attributes describe the format.

    Args:
        config: Export options
        tracker: Identity resolution for the exported subgraph
    """

    cypher_format = CypherFormat.CREATE
    node_verb = "CREATE"
    rel_verb = "CREATE"
    on_create_only = False
    emits_nodes = True
    emits_schema = True

    def __init__(self, config: ExportConfig, tracker: UniquenessTracker):
        self.config = config
        self.tracker = tracker

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def needs_rel_id(self, rel: GraphRelationship) -> bool:
        """Whether ``rel`` is merged by a synthetic id instead of by its endpoints and type."""
        return (
            self.rel_verb == "MERGE"
            and self.config.multiple_relationships_with_type
            and not self.tracker.is_naturally_unique(rel)
        )

    def _node_match(self, variable: str, node: GraphNode) -> str:
        label, key_props = self.tracker.node_key(node)
        return f"({variable}:{quote(label)}{format_map(key_props, key_props.keys())})"

    # ------------------------------------------------------------------
    # One statement per entity
    # ------------------------------------------------------------------

    def node_statement(self, node: GraphNode) -> str:
        if not self.emits_nodes:
            return ""
        label, key_props = self.tracker.node_key(node)
        if self.node_verb == "CREATE":
            labels = list(node.labels)
            extra = {}
            if label == UniqueImport.LABEL:
                labels.append(UniqueImport.LABEL)
                extra = key_props
            props = format_properties(node.properties, extra)
            return f"CREATE ({label_string(labels)}{' ' + props if props else ''});"

        merge = f"MERGE (n:{quote(label)}{format_map(key_props, key_props.keys())})"
        to_set = {k: v for k, v in node.properties.items() if k not in key_props}
        assignments = _set_clause("n", to_set)
        other_labels = [l for l in node.labels if l != label]
        if other_labels:
            assignments.append(f"n{label_string(other_labels)}")
        if not assignments:
            return merge + ";"
        keyword = "ON CREATE SET" if self.on_create_only else "SET"
        return f"{merge} {keyword} {', '.join(assignments)};"

    def relationship_statement(self, rel: GraphRelationship) -> str:
        match = f"MATCH {self._node_match('n1', rel.start_node)}, {self._node_match('n2', rel.end_node)}"
        rel_type = quote(rel.type)
        if self.rel_verb == "CREATE":
            props = format_properties(rel.properties)
            return f"{match} CREATE (n1)-[r:{rel_type}{' ' + props if props else ''}]->(n2);"

        id_part = ""
        if self.needs_rel_id(rel):
            rel_id = self.tracker.assign_synthetic_id(rel)
            id_part = f"{{{quote(UniqueImport.REL_ID_PROPERTY)}:{rel_id}}}"
        assignments = _set_clause("r", rel.properties)
        statement = f"{match} MERGE (n1)-[r:{rel_type}{id_part}]->(n2)"
        if assignments:
            statement += f" SET {', '.join(assignments)}"
        return statement + ";"

    # ------------------------------------------------------------------
    # UNWIND statements
    # ------------------------------------------------------------------

    def node_group_key(self, node: GraphNode) -> NodeGroupKey:
        label, key_props = self.tracker.node_key(node)
        return tuple(node.labels), label, tuple(key_props)

    def node_row(self, node: GraphNode) -> str:
        _, key_props = self.tracker.node_key(node)
        properties = {k: v for k, v in node.properties.items() if k not in key_props}
        return f"{{{_row_key_map(key_props)}, properties:{format_map(properties)}}}"

    def unwind_node_statement(self, group: NodeGroupKey, rows: Sequence[str]) -> str:
        if not self.emits_nodes:
            return ""
        labels, key_label, keys = group
        lookup = _key_lookup("n", key_label, keys, "row")
        set_keyword = "ON CREATE SET" if self.on_create_only else "SET"
        statement = f"{self._unwind_header(rows)}{self.node_verb} {lookup} {set_keyword} n += row.properties"
        other_labels = [l for l in labels if l != key_label]
        if other_labels:
            statement += f" SET n{label_string(other_labels)}"
        return statement + ";\n"

    def rel_group_key(self, rel: GraphRelationship) -> RelGroupKey:
        start_label, start_key = self.tracker.node_key(rel.start_node)
        end_label, end_key = self.tracker.node_key(rel.end_node)
        return rel.type, start_label, tuple(start_key), end_label, tuple(end_key), self.needs_rel_id(rel)

    def rel_row(self, rel: GraphRelationship) -> str:
        _, start_key = self.tracker.node_key(rel.start_node)
        _, end_key = self.tracker.node_key(rel.end_node)
        id_part = ""
        if self.needs_rel_id(rel):
            id_part = f" id: {self.tracker.assign_synthetic_id(rel)},"
        return (
            f"{{start: {{{_row_key_map(start_key)}}},{id_part} "
            f"end: {{{_row_key_map(end_key)}}}, properties:{format_map(rel.properties)}}}"
        )

    def unwind_rel_statement(self, group: RelGroupKey, rows: Sequence[str]) -> str:
        rel_type, start_label, start_keys, end_label, end_keys, has_id = group
        id_part = f"{{{quote(UniqueImport.REL_ID_PROPERTY)}: row.id}}" if has_id else ""
        return (
            f"{self._unwind_header(rows)}"
            f"MATCH {_key_lookup('start', start_label, start_keys, 'row.start')}\n"
            f"MATCH {_key_lookup('end', end_label, end_keys, 'row.end')}\n"
            f"{self.rel_verb} (start)-[r:{quote(rel_type)}{id_part}]->(end) SET r += row.properties;\n"
        )

    def _unwind_header(self, rows: Sequence[str]) -> str:
        joined = ", ".join(rows)
        if self.config.optimization_type is OptimizationType.UNWIND_BATCH_PARAMS:
            return f":param rows => [{joined}]\nUNWIND $rows AS row\n"
        return f"UNWIND [{joined}] AS row\n"

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_nodes_statement(self, batch_size: int) -> str:
        if not self.emits_schema:
            return ""
        label = quote(UniqueImport.LABEL)
        prop = quote(UniqueImport.ID_PROPERTY)
        return f"MATCH (n:{label})  WITH n LIMIT {batch_size} REMOVE n:{label} REMOVE n.{prop};"

    def cleanup_rels_statement(self, batch_size: int) -> str:
        if not self.emits_schema:
            return ""
        prop = quote(UniqueImport.REL_ID_PROPERTY)
        return f"MATCH ()-[r]->() WHERE r.{prop} IS NOT NULL WITH r LIMIT {batch_size} REMOVE r.{prop};"


class UpdateAllFormatter(CypherFormatter):
    cypher_format = CypherFormat.UPDATE_ALL
    node_verb = "MERGE"
    rel_verb = "MERGE"


class AddStructureFormatter(CypherFormatter):
    cypher_format = CypherFormat.ADD_STRUCTURE
    node_verb = "MERGE"
    rel_verb = "CREATE"
    on_create_only = True
    emits_schema = False


class UpdateStructureFormatter(CypherFormatter):
    cypher_format = CypherFormat.UPDATE_STRUCTURE
    node_verb = "MERGE"
    rel_verb = "MERGE"
    emits_nodes = False
    emits_schema = False


_FORMATTERS = {
    CypherFormat.CREATE: CypherFormatter,
    CypherFormat.UPDATE_ALL: UpdateAllFormatter,
    CypherFormat.ADD_STRUCTURE: AddStructureFormatter,
    CypherFormat.UPDATE_STRUCTURE: UpdateStructureFormatter,
}


def formatter_for(config: ExportConfig, tracker: UniquenessTracker) -> CypherFormatter:
    return _FORMATTERS[config.cypher_format](config, tracker)
