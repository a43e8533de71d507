"""Server-side sessions for Starlette/FastAPI applications, stored in DynamoDB.

The browser keeps an authenticated token carrying a random session id; values
and expiry live in the table. Expired records are swept in the background.
"""

from sessionstore.core.exceptions import (
    BackendError,
    RecordIntegrityError,
    SerializationError,
    SessionStoreError,
    TokenDecodeError,
    TokenError,
)
from sessionstore.serializers import JSONSerializer, PickleSerializer, SessionSerializer
from sessionstore.sessions import Session, SessionOptions, save_sessions
from sessionstore.store import DynamoDBStore, generate_session_id
from sessionstore.sweeper import ExpirationSweeper

__all__ = [
    "BackendError",
    "DynamoDBStore",
    "ExpirationSweeper",
    "JSONSerializer",
    "PickleSerializer",
    "RecordIntegrityError",
    "SerializationError",
    "Session",
    "SessionOptions",
    "SessionSerializer",
    "SessionStoreError",
    "TokenDecodeError",
    "TokenError",
    "generate_session_id",
    "save_sessions",
]
