"""
Output sinks for exports.

Exporters ask for writers by logical name (``schema``, ``nodes``,
``relationships``, ``cleanup``, ``nodes.Person``, ``header.nodes.Person``
and so on). The manager decides whether the names share one physical
destination or get one each.
"""

import io
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, TextIO, Union

from utils.logger import get_logger

logger = get_logger(__name__)

SINGLE = "all"


class ExportFileManager(ABC):
    """Maps logical output names to writers."""

    def __init__(self, separate_files: bool = False):
        self.separate_files = separate_files

    @abstractmethod
    def get_writer(self, name: str) -> TextIO:
        """Writer for logical ``name``."""

    @abstractmethod
    def flush(self) -> None:
        """Flush every open writer."""

    @abstractmethod
    def close(self) -> None:
        """Flush and release every writer."""

    @property
    def destination(self) -> Optional[str]:
        return None

    def drain(self) -> Dict[str, str]:
        """Text written since the last drain, per name; empty for file sinks."""
        return {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class FileExportManager(ExportFileManager):
    """
    Writes to ``path``, or to ``<stem>.<name><suffix>`` siblings when files are separated.

    Example:
        ``exports/graph.cypher`` with separate files gives ``exports/graph.nodes.cypher``,
        ``exports/graph.schema.cypher`` and so on.
    """

    def __init__(self, path: Union[str, Path], separate_files: bool = False):
        super().__init__(separate_files)
        self.path = Path(path)
        self._handles: Dict[str, TextIO] = {}
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def destination(self) -> Optional[str]:
        return str(self.path)

    def path_for(self, name: str) -> Path:
        if not self.separate_files:
            return self.path
        return self.path.with_name(f"{self.path.stem}.{name}{self.path.suffix}")

    def get_writer(self, name: str) -> TextIO:
        key = name if self.separate_files else SINGLE
        handle = self._handles.get(key)
        if handle is None:
            target = self.path_for(name)
            logger.debug(f"Opening {target} for '{name}'")
            handle = open(target, "w", encoding="utf-8", newline="")
            self._handles[key] = handle
        return handle

    def file_names(self) -> List[str]:
        return [handle.name for handle in self._handles.values()]

    def flush(self) -> None:
        for handle in self._handles.values():
            handle.flush()

    def close(self) -> None:
        for handle in self._handles.values():
            handle.close()
        self._handles = {}


class StringExportFileManager(ExportFileManager):
    """In-memory sink used when an export has no file destination."""

    def __init__(self, separate_files: bool = False):
        super().__init__(separate_files)
        self._buffers: Dict[str, io.StringIO] = {}

    def get_writer(self, name: str) -> TextIO:
        key = name if self.separate_files else SINGLE
        return self._buffers.setdefault(key, io.StringIO())

    def drain(self) -> Dict[str, str]:
        drained = {}
        for name, buffer in self._buffers.items():
            text = buffer.getvalue()
            if text:
                drained[name] = text
            buffer.seek(0)
            buffer.truncate(0)
        return drained

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass
