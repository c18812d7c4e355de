"""Usage reporting for the remote backend.

Each successful API call becomes a UsageEvent. Events wait in a bounded
queue and a daemon thread posts them. When the queue is full the event
is lost, and a failed post is logged at debug and forgotten. Tool calls
never wait on any of this.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UsageEvent:
    endpoint: str
    method: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_payload(self) -> dict:
        """Body for POST /usage/track. The timestamp stays local."""
        return {"endpoint": self.endpoint, "method": self.method}


class UsageTracker:
    """Bounded queue of UsageEvents drained by a background thread through ``send``."""

    def __init__(
        self,
        send: Callable[[UsageEvent], None],
        queue_max: int = 1_000,
        flush_interval: float = 1.0,
    ):
        self._send = send
        self._queue: queue.Queue[UsageEvent] = queue.Queue(maxsize=queue_max)
        self._flush_interval = flush_interval
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def track(self, event: UsageEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.debug("Usage queue full, dropping %s %s", event.method, event.endpoint)

    def flush(self) -> int:
        """Post whatever is queued now. Returns how many events were taken off the queue."""
        taken = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return taken
            taken += 1
            try:
                self._send(event)
            except Exception:
                logger.debug("Usage report %s %s failed", event.method, event.endpoint, exc_info=True)

    def start(self) -> None:
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="taskmem-usage", daemon=True)
        self._thread.start()
        logger.debug("Usage reporting thread started")

    def stop(self) -> None:
        """Stop the thread after one last flush. Safe to call when never started."""
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._stopping.set()
        thread.join(timeout=STOP_TIMEOUT)
        if thread.is_alive():
            logger.warning("Usage reporting thread still running after %.0fs", STOP_TIMEOUT)

    def _run(self) -> None:
        while True:
            self.flush()
            if self._stopping.wait(timeout=self._flush_interval):
                break
        self.flush()
