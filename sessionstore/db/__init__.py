"""Session record storage backends"""

from sessionstore.db.backend import PageCallback, StorageBackend
from sessionstore.db.dynamodb import DynamoDBBackend
from sessionstore.db.memory import MemoryBackend
from sessionstore.db.models import SessionRecord

__all__ = [
    "DynamoDBBackend",
    "MemoryBackend",
    "PageCallback",
    "SessionRecord",
    "StorageBackend",
]
