from dataclasses import dataclass
from typing import Optional

from sessionstore.core.exceptions import RecordIntegrityError


@dataclass
class SessionRecord:
    """Persisted session: id, serialized values and absolute expiry."""

    id: str
    data: bytes = b""
    # Unix timestamp in seconds; None only when the stored item is damaged
    expires: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        """A record is live only while its expiry lies strictly in the future."""
        if self.expires is None:
            raise RecordIntegrityError("Session record has no valid expiry")
        return self.expires <= now

    def __repr__(self) -> str:
        return f"<SessionRecord(expires={self.expires!r}, size={len(self.data)})>"
