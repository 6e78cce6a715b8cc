"""
Cooperative cancellation for scans and exports.

Long loops call ``TerminationGuard.check()`` once per sampled node or per
batch. When another thread (a CLI signal handler, a stream consumer that
gave up, a timeout) calls ``terminate()``, the next check raises
``TerminatedError`` and the running operation unwinds.
"""

import threading
import time
from typing import Optional

from graph.exceptions import TerminatedError


class TerminationGuard:
    """
    Thread-safe cancellation flag with an optional deadline.

    Args:
        timeout_seconds: Optional wall-clock budget; once exceeded, ``check()``
            raises as if ``terminate()`` had been called
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._reason = ""
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def terminate(self, reason: str = "terminated by request") -> None:
        self._reason = reason
        self._event.set()

    def is_terminated(self) -> bool:
        if not self._event.is_set() and self._deadline is not None and time.monotonic() > self._deadline:
            self.terminate("timeout exceeded")
        return self._event.is_set()

    def check(self) -> None:
        """Raise ``TerminatedError`` if cancellation was requested."""
        if self.is_terminated():
            raise TerminatedError(self._reason)


# Guard used when the caller does not care about cancellation
NEVER_TERMINATED = TerminationGuard()
