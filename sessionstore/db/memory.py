"""In-process storage backend for development and tests.

Not suitable for production: records are lost on restart and not shared
across processes.
"""

import threading
from dataclasses import replace
from typing import Dict, Optional

from sessionstore.db.backend import PageCallback
from sessionstore.db.models import SessionRecord


class MemoryBackend:
    """Thread-safe dictionary of session records with a paginated scan."""

    def __init__(self, page_size: int = 100):
        self.page_size = page_size
        self.table_created = False
        self._lock = threading.Lock()
        self._records: Dict[str, SessionRecord] = {}

    def create_table_if_absent(self, read_capacity: int, write_capacity: int) -> bool:
        with self._lock:
            if self.table_created:
                return False
            self.table_created = True
            return True

    def get_item(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
            # Copies keep callers from mutating stored state
            return replace(record) if record else None

    def put_item(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.id] = replace(record)

    def delete_item(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def scan_all(self, callback: PageCallback) -> None:
        with self._lock:
            snapshot = [replace(record) for record in self._records.values()]
        for start in range(0, len(snapshot), self.page_size):
            if not callback(snapshot[start:start + self.page_size]):
                break

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._records
