"""
Unit tests for background expiration
"""

import threading
from unittest.mock import MagicMock

import pytest

from sessionstore.core.exceptions import BackendError
from sessionstore.db.memory import MemoryBackend
from sessionstore.db.models import SessionRecord
from sessionstore.sweeper import ExpirationSweeper, SweeperState

pytestmark = pytest.mark.unit


def fill(backend, clock, expired, live):
    """Store ``expired`` past-expiry records and ``live`` future-expiry records"""
    now = int(clock())
    expired_ids = {f"EXPIRED{i}" for i in range(expired)}
    live_ids = {f"LIVE{i}" for i in range(live)}
    for offset, session_id in enumerate(sorted(expired_ids)):
        backend.put_item(SessionRecord(id=session_id, data=b"x", expires=now - offset))
    for offset, session_id in enumerate(sorted(live_ids)):
        backend.put_item(SessionRecord(id=session_id, data=b"x", expires=now + 1 + offset))
    return expired_ids, live_ids


class TestSweep:
    """One full pass over the table"""

    @pytest.mark.parametrize("page_size,expired,live", [
        (1, 5, 5),
        (3, 7, 4),
        (100, 10, 0),
        (2, 0, 6),
        (4, 0, 0),
    ])
    def test_deletes_exactly_expired(self, clock, page_size, expired, live):
        backend = MemoryBackend(page_size=page_size)
        expired_ids, live_ids = fill(backend, clock, expired, live)
        sweeper = ExpirationSweeper(backend, clock=clock)

        deleted = sweeper.sweep()

        assert deleted == expired
        assert all(session_id not in backend for session_id in expired_ids)
        assert all(session_id in backend for session_id in live_ids)
        assert sweeper.state == SweeperState.IDLE

    def test_expiry_equal_to_now_is_expired(self, memory_backend, clock):
        memory_backend.put_item(SessionRecord(id="EDGE", expires=int(clock())))

        assert ExpirationSweeper(memory_backend, clock=clock).sweep() == 1

    def test_records_without_expiry_skipped(self, memory_backend, clock):
        memory_backend.put_item(SessionRecord(id="BROKEN", expires=None))
        memory_backend.put_item(SessionRecord(id="OLD", expires=int(clock()) - 10))

        assert ExpirationSweeper(memory_backend, clock=clock).sweep() == 1
        assert "BROKEN" in memory_backend

    def test_delete_failure_does_not_abort(self, clock):
        backend = MemoryBackend(page_size=2)
        expired_ids, live_ids = fill(backend, clock, 6, 2)
        failing = sorted(expired_ids)[0]
        wrapped = MagicMock(wraps=backend)

        def delete(session_id):
            if session_id == failing:
                raise BackendError("throttled")
            backend.delete_item(session_id)

        wrapped.delete_item.side_effect = delete

        deleted = ExpirationSweeper(wrapped, clock=clock).sweep()

        assert deleted == 5
        assert failing in backend
        assert all(session_id in backend for session_id in live_ids)

    def test_scan_failure_propagates(self, clock):
        backend = MagicMock()
        backend.scan_all.side_effect = BackendError("table missing")
        sweeper = ExpirationSweeper(backend, clock=clock)

        with pytest.raises(BackendError):
            sweeper.sweep()
        assert sweeper.state == SweeperState.IDLE

    def test_double_delete_is_noop(self, memory_backend, clock):
        memory_backend.put_item(SessionRecord(id="OLD", expires=int(clock()) - 1))
        memory_backend.delete_item("OLD")

        assert ExpirationSweeper(memory_backend, clock=clock).sweep() == 0
        memory_backend.delete_item("OLD")


class TestSweepLoop:
    """Background thread scheduling"""

    def test_first_sweep_after_warmup_then_interval(self, clock, wait_for):
        backend = MagicMock()
        sweeps = []
        backend.scan_all.side_effect = lambda callback: sweeps.append(callback([]))
        sweeper = ExpirationSweeper(backend, interval=0.05, warmup=0.01, clock=clock)

        sweeper.start()
        try:
            assert wait_for(lambda: len(sweeps) >= 3, timeout=5)
        finally:
            sweeper.stop(timeout=5)

        assert not sweeper.running

    def test_loop_survives_failures(self, clock, wait_for):
        backend = MagicMock()
        backend.scan_all.side_effect = BackendError("unavailable")
        sweeper = ExpirationSweeper(backend, interval=0.01, warmup=0, clock=clock)

        sweeper.start()
        try:
            assert wait_for(lambda: backend.scan_all.call_count >= 2, timeout=5)
            assert sweeper.running
        finally:
            sweeper.stop(timeout=5)

    def test_no_sweep_before_warmup(self, clock):
        backend = MagicMock()
        sweeper = ExpirationSweeper(backend, warmup=60, clock=clock)

        sweeper.start()
        sweeper.stop(timeout=5)

        backend.scan_all.assert_not_called()

    def test_start_is_idempotent(self, clock):
        sweeper = ExpirationSweeper(MagicMock(), warmup=60, clock=clock)

        sweeper.start()
        first_thread = sweeper._thread
        sweeper.start()
        try:
            assert sweeper._thread is first_thread
            assert first_thread.daemon
        finally:
            sweeper.stop(timeout=5)

    def test_concurrent_with_requests(self, clock):
        backend = MemoryBackend(page_size=5)
        expired_ids, _ = fill(backend, clock, 50, 0)
        sweeper = ExpirationSweeper(backend, clock=clock)
        writers_done = threading.Event()

        def write_live():
            for i in range(200):
                backend.put_item(SessionRecord(id=f"NEW{i}", expires=int(clock()) + 100))
            writers_done.set()

        writer = threading.Thread(target=write_live)
        writer.start()
        sweeper.sweep()
        writer.join()

        assert writers_done.is_set()
        assert all(session_id not in backend for session_id in expired_ids)
        assert all(f"NEW{i}" in backend for i in range(200))
