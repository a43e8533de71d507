"""
Background expiration of stored sessions.

Reads only ever treat expired records as absent; the sweeper is what actually
removes them. It runs on its own daemon thread: a first sweep shortly after
startup, then one sweep per interval for the life of the process.
"""

import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from sessionstore.core.logging_config import get_logger
from sessionstore.db.backend import StorageBackend
from sessionstore.db.models import SessionRecord

logger = get_logger(__name__)

SWEEP_INTERVAL_SECONDS = 86400
SWEEP_WARMUP_SECONDS = 10


class SweeperState(str, Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"


class ExpirationSweeper:
    """Periodically deletes every record whose expiry has passed."""

    def __init__(
        self,
        backend: StorageBackend,
        interval: float = SWEEP_INTERVAL_SECONDS,
        warmup: float = SWEEP_WARMUP_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.interval = interval
        self.warmup = warmup
        self.clock = clock
        self.state = SweeperState.IDLE
        self._stop_event = threading.Event()
        self._start_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweep loop. Calling it again is a no-op."""
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name="session-sweeper", daemon=True
            )
            self._thread.start()
        logger.info(
            "Session sweeper started (warmup=%ss, interval=%ss)", self.warmup, self.interval
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop. A sweep in progress finishes its current page first."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        delay = self.warmup
        while not self._stop_event.wait(delay):
            try:
                self.sweep()
            except Exception:
                # Retried next interval
                logger.exception("Session sweep failed")
            delay = self.interval

    def sweep(self) -> int:
        """
        Scan the whole table once and delete expired records.

        Returns:
            Number of records deleted

        Raises:
            SessionStoreError: If the scan itself fails
        """
        deleted = 0
        skipped = 0

        def handle_page(records: List[SessionRecord]) -> bool:
            nonlocal deleted, skipped
            now = self.clock()
            for record in records:
                if record.expires is None:
                    skipped += 1
                    continue
                if record.expires > now:
                    continue
                try:
                    self.backend.delete_item(record.id)
                    deleted += 1
                except Exception as e:
                    # Picked up again by the next sweep
                    logger.warning(
                        "Failed to delete expired session record: %s", e,
                        extra={"session_id": record.id, "error_type": type(e).__name__},
                    )
            return not self._stop_event.is_set()

        self.state = SweeperState.SWEEPING
        started = time.monotonic()
        try:
            self.backend.scan_all(handle_page)
        finally:
            self.state = SweeperState.IDLE

        if skipped:
            logger.warning("Session sweep skipped %d records without a valid expiry", skipped)
        logger.info(
            "Session sweep deleted %d expired records in %.2fs",
            deleted, time.monotonic() - started,
        )
        return deleted
