"""
Export progress accounting.

``ProgressReporter`` accumulates node, relationship and property counts.
When a consumer is attached (streaming), each ``update`` that closes a
batch hands the consumer a snapshot row; ``done`` always emits the final
row.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional

from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressInfo:
    """One progress row."""
    file: Optional[str] = None
    source: str = ""
    format: str = ""
    nodes: int = 0
    relationships: int = 0
    properties: int = 0
    time: int = 0
    rows: int = 0
    batch_size: int = -1
    batches: int = 0
    done: bool = False
    data: Optional[Any] = None
    failed: bool = False
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "file": self.file,
            "source": self.source,
            "format": self.format,
            "nodes": self.nodes,
            "relationships": self.relationships,
            "properties": self.properties,
            "time": self.time,
            "rows": self.rows,
            "batchSize": self.batch_size,
            "batches": self.batches,
            "done": self.done,
            "data": self.data,
        }
        if self.failed:
            result["failed"] = True
            result["error"] = self.error
        result.update(self.extra)
        return result


class ProgressReporter:
    """
    Accumulates export counts and emits snapshot rows.

    Args:
        info: Template row carrying file, source, format and batch size
        consumer: Called with a snapshot per closed batch and at the end; None for synchronous exports
        data_supplier: Returns the ``data`` payload for each emitted row (drained in-memory output)
    """

    def __init__(
        self,
        info: ProgressInfo,
        consumer: Optional[Callable[[ProgressInfo], None]] = None,
        data_supplier: Optional[Callable[[], Any]] = None,
    ):
        self.info = info
        self.consumer = consumer
        self.data_supplier = data_supplier
        self._start = time.monotonic()
        self._last_batch = 0

    @property
    def total(self) -> int:
        return self.info.nodes + self.info.relationships

    def update(self, nodes: int = 0, relationships: int = 0, properties: int = 0) -> "ProgressReporter":
        """Add counts; emit a row if a batch boundary was crossed."""
        self.info.nodes += nodes
        self.info.relationships += relationships
        self.info.properties += properties
        self.info.rows += nodes + relationships
        self.info.time = self._elapsed_ms()
        self._accept_batch()
        return self

    def next_row(self) -> None:
        self.info.rows += 1

    def _accept_batch(self) -> None:
        batch_size = self.info.batch_size
        if self.consumer is None or batch_size <= 0:
            return
        current = self.total // batch_size
        if current > self._last_batch:
            self._last_batch = current
            self.info.batches = current
            self._emit()

    def done(self) -> ProgressInfo:
        """Mark the export complete and return (and emit) the final row."""
        self.info.time = self._elapsed_ms()
        self.info.done = True
        if self.info.batch_size > 0:
            self.info.batches = -(-self.total // self.info.batch_size) if self.total else 0
        final = self._emit()
        logger.info(
            f"Export done: {self.info.nodes} nodes, {self.info.relationships} relationships, "
            f"{self.info.properties} properties in {self.info.time}ms"
        )
        return final

    def _emit(self) -> ProgressInfo:
        snapshot = replace(self.info, extra=dict(self.info.extra))
        if self.data_supplier is not None:
            snapshot.data = self.data_supplier()
        if self.consumer is not None:
            self.consumer(snapshot)
        return snapshot

    def _elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)
