"""
Graph store module for graphmeta.

This module handles access to property graphs:
- Value types for nodes, relationships and schema
- The GraphStore interface with in-memory and Neo4j implementations
- Subgraph views and export data sources
- Cypher identifier quoting and schema statements

Exports:
- GraphStore, MemoryGraphStore, Neo4jGraphStore, NodesAndRelsSubGraph
- Neo4jConnection: Connection manager
- Error taxonomy rooted at GraphMetaError
"""

from graph.connection import Neo4jConnection
from graph.exceptions import (
    DuplicateIdentityError,
    GraphMetaError,
    MalformedInputError,
    SchemaConflictError,
    StoreUnavailableError,
    TerminatedError,
)
from graph.memory_store import MemoryGraphStore
from graph.model import (
    ConstraintInfo,
    ConstraintType,
    Direction,
    GraphNode,
    GraphRelationship,
    IndexInfo,
    IndexType,
    VirtualNode,
    VirtualRelationship,
)
from graph.neo4j_store import Neo4jGraphStore
from graph.store import GraphStore
from graph.subgraph import DatabaseSource, NodesAndRelsSource, NodesAndRelsSubGraph, QuerySource

__all__ = [
    "ConstraintInfo",
    "ConstraintType",
    "DatabaseSource",
    "Direction",
    "DuplicateIdentityError",
    "GraphMetaError",
    "GraphNode",
    "GraphRelationship",
    "GraphStore",
    "IndexInfo",
    "IndexType",
    "MalformedInputError",
    "MemoryGraphStore",
    "Neo4jConnection",
    "Neo4jGraphStore",
    "NodesAndRelsSource",
    "NodesAndRelsSubGraph",
    "QuerySource",
    "SchemaConflictError",
    "StoreUnavailableError",
    "TerminatedError",
    "VirtualNode",
    "VirtualRelationship",
]
