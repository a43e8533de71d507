"""
Exception hierarchy for the session store.

Backend and codec failures are wrapped in these types so callers can handle
them without importing botocore or cryptography.
"""

from typing import Any, Optional


class SessionStoreError(Exception):
    """Base class for all session store errors.

    When raised from ``DynamoDBStore.new`` or ``DynamoDBStore.get`` the
    ``session`` attribute holds the fresh handle that the caller may keep
    using as a new session.
    """

    def __init__(self, message: str = "", session: Optional[Any] = None):
        super().__init__(message)
        self.session = session


class BackendError(SessionStoreError):
    """Raised when the storage backend call fails (network, throttling, missing table)"""
    pass


class RecordIntegrityError(SessionStoreError):
    """Raised when a stored record is missing its expiry or has a malformed one"""
    pass


class SerializationError(SessionStoreError):
    """Raised when session values cannot be serialized or deserialized"""
    pass


class TokenError(SessionStoreError):
    """Raised when a session id cannot be encoded into a cookie token"""
    pass


class TokenDecodeError(TokenError):
    """Raised when a cookie token fails verification with every codec"""
    pass
