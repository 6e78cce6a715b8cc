"""
Error taxonomy for graphmeta.

All failures raised by the store, metadata and export layers derive from
``GraphMetaError`` so callers can catch the whole family at one seam.
"""

from typing import Optional


class GraphMetaError(Exception):
    """Base class for graphmeta errors."""


class StoreUnavailableError(GraphMetaError):
    """The graph store could not answer: connection lost, read failed or a count came back empty."""


class SchemaConflictError(GraphMetaError):
    """Data contradicts the schema the operation relies on (e.g. a property clashes with a synthetic id key)."""


class DuplicateIdentityError(GraphMetaError):
    """An import saw the same entity id twice and duplicates are not being ignored."""

    def __init__(self, entity_id, id_space: Optional[str] = None, line: Optional[int] = None):
        self.entity_id = entity_id
        self.id_space = id_space
        self.line = line
        where = f" at line {line}" if line is not None else ""
        space = f" in id space '{id_space}'" if id_space else ""
        super().__init__(f"Duplicate node id {entity_id!r}{space}{where}")


class TerminatedError(GraphMetaError):
    """The running operation was cancelled by the caller or timed out."""


class MalformedInputError(GraphMetaError, ValueError):
    """A configuration or input value is not acceptable."""
