"""Server-side session storage on DynamoDB.

The browser only holds an authenticated token wrapping a random session id;
the session values live in the table together with their expiry. Expired
records are ignored on read, removed in the background when a read finds
them, and swept periodically by ``ExpirationSweeper``.
"""
from __future__ import annotations

import base64
import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from starlette.requests import Request
from starlette.responses import Response

from sessionstore.core.codecs import apply_max_age, codecs_from_keys, decode_multi, encode_multi
from sessionstore.core.config import DEFAULT_BACKGROUND_MAX_AGE, Settings, settings
from sessionstore.core.exceptions import SessionStoreError, TokenDecodeError
from sessionstore.core.logging_config import get_logger, init_logging
from sessionstore.db.backend import StorageBackend
from sessionstore.db.dynamodb import DynamoDBBackend
from sessionstore.db.models import SessionRecord
from sessionstore.serializers import PickleSerializer, SessionSerializer
from sessionstore.sessions import (
    Session,
    SessionOptions,
    clear_session_cookie,
    get_registry,
    set_session_cookie,
)
from sessionstore.sweeper import SWEEP_INTERVAL_SECONDS, SWEEP_WARMUP_SECONDS, ExpirationSweeper

logger = get_logger(__name__)

SESSION_ID_BYTES = 32


def generate_session_id(random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Return 32 random bytes as unpadded base32 (52 characters, A-Z and 2-7)."""
    return base64.b32encode(random_bytes(SESSION_ID_BYTES)).decode('ascii').rstrip("=")


class DynamoDBStore:
    """Stores sessions in a DynamoDB table.

    Creating a store makes sure the table exists and starts the expiration
    sweeper. All methods may be called concurrently from request threads.
    """

    def __init__(
        self,
        backend: StorageBackend,
        codecs: Sequence,
        default_max_age: int = DEFAULT_BACKGROUND_MAX_AGE,
        options: Optional[SessionOptions] = None,
        serializer: Optional[SessionSerializer] = None,
        read_capacity: int = 5,
        write_capacity: int = 5,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        sweep_warmup: float = SWEEP_WARMUP_SECONDS,
        cleanup_workers: int = 4,
        clock: Callable[[], float] = time.time,
        start_sweeper: bool = True,
    ):
        """
        Args:
            backend: Record storage; its table is created here if absent
            codecs: Token codecs, newest key first
            default_max_age: Storage lifetime in seconds of sessions whose
                cookie has max_age 0
            options: Cookie defaults copied into every new session
            serializer: Session value serializer, pickle by default
            read_capacity: Provisioned read capacity for a newly created table
            write_capacity: Provisioned write capacity for a newly created table
            sweep_interval: Seconds between expiration sweeps
            sweep_warmup: Seconds before the first sweep
            cleanup_workers: Threads deleting expired records found on read
            clock: Source of the current unix time
            start_sweeper: Start the background sweeper immediately

        Raises:
            SessionStoreError: If the table cannot be created
        """
        backend.create_table_if_absent(read_capacity, write_capacity)

        self.backend = backend
        self.codecs: List = list(codecs)
        self.options = options or SessionOptions()
        self.default_max_age = default_max_age
        self.serializer: SessionSerializer = serializer or PickleSerializer()
        self.clock = clock

        self._cleanup_pool = ThreadPoolExecutor(
            max_workers=cleanup_workers, thread_name_prefix="session-cleanup"
        )
        self.sweeper = ExpirationSweeper(
            backend, interval=sweep_interval, warmup=sweep_warmup, clock=clock
        )
        if start_sweeper:
            self.sweeper.start()

        # Keep the token validity window in line with the cookie lifetime
        apply_max_age(self.codecs, self.options.max_age)

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        backend: Optional[StorageBackend] = None,
        **kwargs,
    ) -> "DynamoDBStore":
        """
        Build a store from configuration.

        Raises:
            ValueError: If no secret keys are configured
        """
        config = config or settings
        secret_keys = config.secret_key_list
        if not secret_keys:
            raise ValueError("SESSION_SECRET_KEYS must contain at least one secret")
        init_logging(config)

        return cls(
            backend or DynamoDBBackend.from_settings(config),
            codecs_from_keys(*secret_keys, max_age=config.max_age),
            default_max_age=config.default_max_age,
            options=SessionOptions(
                path=config.cookie_path,
                domain=config.cookie_domain,
                max_age=config.max_age,
                secure=config.cookie_secure,
                http_only=config.cookie_http_only,
                same_site=config.cookie_same_site,
            ),
            read_capacity=config.read_capacity_units,
            write_capacity=config.write_capacity_units,
            sweep_interval=config.sweep_interval_seconds,
            sweep_warmup=config.sweep_warmup_seconds,
            cleanup_workers=config.cleanup_workers,
            **kwargs,
        )

    def set_serializer(self, serializer: SessionSerializer) -> None:
        self.serializer = serializer

    def set_max_age(self, max_age: int) -> int:
        """
        Change the default session lifetime for the table and the browser.

        Token codecs carry their own validity window, so change the lifetime
        here rather than on ``options`` directly. To end one session set
        ``session.options.max_age = -1`` and save it instead.

        Returns:
            Number of codecs that have no max age and were left unchanged
        """
        self.options.max_age = max_age
        skipped = apply_max_age(self.codecs, max_age)
        if skipped:
            logger.warning("Max age not applied to %d token codecs", skipped)
        return skipped

    def get(self, request: Request, name: str) -> Session:
        """Return the session ``name`` for this request, registering it on first use."""
        return get_registry(request).get(self, name)

    def new(self, request: Request, name: str) -> Session:
        """
        Return a session for ``name`` without registering it.

        A missing, forged or expired cookie yields a new empty session.

        Raises:
            SessionStoreError: If the backend fails or the stored record cannot
                be read. The new empty session is attached as ``session``.
        """
        session = Session(self, name, self.options.copy())
        token = request.cookies.get(name)
        if not token:
            return session

        try:
            session.id = decode_multi(name, token, self.codecs)
        except TokenDecodeError:
            logger.debug("Ignoring session cookie that failed verification",
                         extra={"cookie_name": name})
            return session

        try:
            found = self.load(session)
        except SessionStoreError as e:
            logger.warning("Failed to load session: %s", e,
                           extra={"error_type": type(e).__name__})
            self._reset(session)
            e.session = session
            raise

        if found:
            session.is_new = False
        else:
            self._reset(session)
        return session

    def save(self, request: Request, response: Response, session: Session) -> None:
        """
        Persist ``session`` and set or clear its cookie on ``response``.

        A negative ``max_age`` deletes the stored record and clears the cookie.

        Raises:
            SessionStoreError: If serialization, token encoding or the backend fails
        """
        if session.options.max_age < 0:
            if session.id:
                self.delete(session.id)
            clear_session_cookie(response, session.name, session.options)
            return

        data = self.serializer.serialize(session.values)
        session_id = session.id or generate_session_id()
        token = encode_multi(session.name, session_id, self.codecs)

        age = session.options.max_age
        if age == 0:
            # Browser session cookie; the record still expires server-side
            age = self.default_max_age
        self.backend.put_item(
            SessionRecord(id=session_id, data=data, expires=int(self.clock() + age))
        )

        session.id = session_id
        set_session_cookie(response, session.name, token, session.options)

    def load(self, session: Session) -> bool:
        """
        Read the stored values of ``session.id`` into ``session.values``.

        Returns:
            True if a live record was found, False if it is missing or expired

        Raises:
            BackendError: If the backend read fails
            RecordIntegrityError: If the record has no valid expiry
            SerializationError: If the stored payload is corrupt
        """
        record = self.backend.get_item(session.id)
        if record is None:
            return False

        if record.is_expired(self.clock()):
            self._schedule_delete(record.id)
            return False

        session.values = self.serializer.deserialize(record.data)
        return True

    def delete(self, session_id: str) -> None:
        """Delete a stored session. Unknown ids are not an error."""
        self.backend.delete_item(session_id)

    def close(self) -> None:
        """Stop the sweeper and wait for pending cleanup deletes."""
        self.sweeper.stop()
        self._cleanup_pool.shutdown(wait=True)

    def _schedule_delete(self, session_id: str) -> None:
        try:
            self._cleanup_pool.submit(self._delete_quietly, session_id)
        except RuntimeError:
            # Pool already shut down; the sweeper will remove the record
            logger.debug("Cleanup pool closed, leaving expired record to the sweeper")

    def _delete_quietly(self, session_id: str) -> None:
        try:
            self.delete(session_id)
        except Exception as e:
            logger.warning(
                "Failed to delete expired session record: %s", e,
                extra={"session_id": session_id, "error_type": type(e).__name__},
            )

    @staticmethod
    def _reset(session: Session) -> None:
        session.id = ""
        session.values = {}
        session.is_new = True
