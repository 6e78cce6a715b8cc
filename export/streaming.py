"""
Streaming exports.

The export runs on a worker thread and hands progress rows to the caller
through a bounded queue. A tombstone object marks the end of the stream;
the consumer stops as soon as it sees it. A worker failure becomes one
final row with ``failed=True`` carrying the counts reached so far.
"""

import queue
import threading
from dataclasses import replace
from typing import Any, Callable, Iterator, Optional

from export.progress import ProgressInfo, ProgressReporter
from graph.exceptions import TerminatedError
from utils.logger import get_logger
from utils.termination import TerminationGuard

logger = get_logger(__name__)


class _Tombstone:
    def __repr__(self) -> str:
        return "TOMBSTONE"


TOMBSTONE = _Tombstone()


class _Failure:
    def __init__(self, error: BaseException):
        self.error = error


class ExportStream:
    """
    Iterable of progress rows produced by a background export.

    Args:
        run: Performs the export; called on the worker thread
        reporter: The export's reporter; its consumer is replaced by the queue
        guard: Cancellation guard shared with the export
        capacity: Queue capacity
        timeout_seconds: Longest wait for the next row before the export is cancelled

    Example:
        >>> for row in engine.export(source, "cypher", None, {"stream": True}):
        ...     print(row.data)
    """

    def __init__(
        self,
        run: Callable[[], Any],
        reporter: ProgressReporter,
        guard: TerminationGuard,
        capacity: int = 1000,
        timeout_seconds: float = 100,
    ):
        self.run = run
        self.reporter = reporter
        self.guard = guard
        self.timeout_seconds = timeout_seconds
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=capacity)
        self._thread: Optional[threading.Thread] = None
        reporter.consumer = self._offer

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def _offer(self, item: Any) -> None:
        """Put ``item`` on the queue, giving up once the export is cancelled."""
        while True:
            try:
                self._queue.put(item, timeout=0.1)
                return
            except queue.Full:
                self.guard.check()

    def _offer_terminal(self, item: Any) -> None:
        try:
            self._offer(item)
        except TerminatedError:
            logger.debug("Consumer is gone; dropping end of stream marker")

    def _work(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.error(f"Streaming export failed: {e}", exc_info=True)
            self._offer_terminal(_Failure(e))
        finally:
            self._offer_terminal(TOMBSTONE)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def _failed_row(self, error: BaseException) -> ProgressInfo:
        row = replace(self.reporter.info, extra=dict(self.reporter.info.extra), failed=True, error=str(error))
        if self.reporter.data_supplier is not None:
            row.data = self.reporter.data_supplier()
        return row

    def __iter__(self) -> Iterator[ProgressInfo]:
        self._thread = threading.Thread(target=self._work, name="graphmeta-export", daemon=True)
        self._thread.start()
        finished = False
        try:
            while True:
                try:
                    item = self._queue.get(timeout=self.timeout_seconds)
                except queue.Empty:
                    logger.warning(f"No export row within {self.timeout_seconds}s; cancelling")
                    self.guard.terminate("stream timeout exceeded")
                    yield self._failed_row(TerminatedError("stream timeout exceeded"))
                    return
                if item is TOMBSTONE:
                    finished = True
                    return
                if isinstance(item, _Failure):
                    yield self._failed_row(item.error)
                    continue
                yield item
        finally:
            if not finished:
                self.guard.terminate("stream closed by consumer")
                self._drain()
            self._thread.join(timeout=self.timeout_seconds)

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return
