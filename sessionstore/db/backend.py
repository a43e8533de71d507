"""
Storage backend contract.

The session store only needs five operations from its table. Implementations
must be safe to call concurrently from request threads, cleanup workers and the
expiration sweeper.
"""

from typing import Callable, List, Optional, Protocol, runtime_checkable

from sessionstore.db.models import SessionRecord

# Receives one page of records; returns False to stop the scan
PageCallback = Callable[[List[SessionRecord]], bool]


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for session record storage."""

    def create_table_if_absent(self, read_capacity: int, write_capacity: int) -> bool:
        """Create the session table unless it exists. Returns True if it was created."""
        ...

    def get_item(self, session_id: str) -> Optional[SessionRecord]:
        """Fetch a record by id, or None when no such record is stored."""
        ...

    def put_item(self, record: SessionRecord) -> None:
        """Write a record, replacing any record with the same id."""
        ...

    def delete_item(self, session_id: str) -> None:
        """Delete a record. Deleting an unknown id is not an error."""
        ...

    def scan_all(self, callback: PageCallback) -> None:
        """Feed every stored record to ``callback`` one page at a time."""
        ...
