"""
Persistence Writer

Fire-and-forget write path in front of a PersistenceAdapter. Callers finish
their in-memory mutation, then submit a snapshot of the new state; the write
happens on a background worker thread and never blocks or raises into the
caller. Pending writes for the same key are coalesced so only the latest
snapshot is written.
"""

import copy
import logging
import threading
from typing import Any

from .persistence_adapter import PersistenceAdapter

logger = logging.getLogger(__name__)


class PersistenceWriter:
    """Background writer that hands snapshots to a persistence adapter"""

    def __init__(self, adapter: PersistenceAdapter, synchronous: bool = False):
        """
        Args:
            adapter: The storage adapter to write to
            synchronous: Write inline on submit instead of on the worker thread
        """
        self.adapter = adapter
        self.synchronous = synchronous
        self._pending: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._in_flight: dict[str, Any] = {}
        self._closed = False
        self._thread: threading.Thread | None = None

    def load(self, key: str) -> Any | None:
        """
        Read the latest value for key.

        A write that is still queued or being written wins over what the
        adapter holds. Adapter failures degrade to None.
        """
        with self._lock:
            for unwritten in (self._pending, self._in_flight):
                if key in unwritten:
                    return copy.deepcopy(unwritten[key])
        try:
            return self.adapter.load(key)
        except Exception as e:
            logger.error(f"Error loading {key}: {e}")
            return None

    def submit(self, key: str, value: Any) -> None:
        """
        Schedule value to be written under key.

        The value is deep-copied before this returns, so later mutations of the
        caller's objects never leak into the write.
        """
        snapshot = copy.deepcopy(value)

        if self.synchronous:
            self._write(key, snapshot)
            return

        with self._wakeup:
            if self._closed:
                logger.warning(f"Writer closed, dropping write for {key}")
                return
            self._pending[key] = snapshot
            self._ensure_worker()
            self._wakeup.notify_all()

    def flush(self, timeout: float | None = 5.0) -> bool:
        """
        Wait until every submitted write has been handed to the adapter.

        Returns:
            bool: True if the writer is idle, False if the timeout expired
        """
        with self._wakeup:
            return self._wakeup.wait_for(
                lambda: not self._pending and not self._in_flight, timeout=timeout
            )

    def close(self, timeout: float | None = 5.0) -> None:
        """Flush outstanding writes and stop the worker thread."""
        self.flush(timeout)
        with self._wakeup:
            self._closed = True
            self._wakeup.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)

    def _ensure_worker(self) -> None:
        # Caller holds the lock
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(
                target=self._run, name="annotation-persistence", daemon=True
            )
            self._thread.start()

    def _run(self) -> None:
        while True:
            with self._wakeup:
                self._wakeup.wait_for(lambda: self._pending or self._closed)
                if not self._pending:
                    return
                self._in_flight = self._pending
                self._pending = {}

            for key, value in self._in_flight.items():
                self._write(key, value)

            with self._wakeup:
                self._in_flight = {}
                self._wakeup.notify_all()

    def _write(self, key: str, value: Any) -> None:
        try:
            if not self.adapter.save(key, value):
                logger.error(f"Persistence write failed for {key}")
        except Exception as e:
            logger.error(f"Error persisting {key}: {e}")
