"""
Request-scoped session handles.

A ``Session`` is created for one request, mutated by the application and
discarded when the response is written. Handles are cached per request on
``request.state`` by a ``SessionRegistry`` so that repeated lookups of the
same session name within one request return the same object.
"""

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from starlette.requests import Request
from starlette.responses import Response

from sessionstore.core.config import DEFAULT_MAX_AGE
from sessionstore.core.exceptions import SessionStoreError

if TYPE_CHECKING:
    from sessionstore.store import DynamoDBStore

FLASHES_KEY = "_flash"
REGISTRY_ATTR = "session_registry"


@dataclass
class SessionOptions:
    """Cookie attributes and lifetime of one session.

    ``max_age`` > 0 is a persistent cookie living that many seconds, 0 is a
    browser session cookie and < 0 deletes the session on save.
    """

    path: str = "/"
    domain: Optional[str] = None
    max_age: int = DEFAULT_MAX_AGE
    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = "lax"

    def copy(self) -> "SessionOptions":
        return replace(self)


class Session:
    """Transient handle on a stored session."""

    def __init__(self, store: "DynamoDBStore", name: str, options: SessionOptions):
        self.store = store
        self.name = name
        self.id = ""
        self.values: Dict[Any, Any] = {}
        self.options = options
        self.is_new = True

    def save(self, request: Request, response: Response) -> None:
        """Persist this session and set its cookie on ``response``."""
        self.store.save(request, response, self)

    def add_flash(self, value: Any, key: str = FLASHES_KEY) -> None:
        """Queue a one-time message, read back by ``flashes``."""
        self.values.setdefault(key, []).append(value)

    def flashes(self, key: str = FLASHES_KEY) -> List[Any]:
        """Return and remove queued flash messages."""
        return self.values.pop(key, [])

    def __repr__(self) -> str:
        return f"<Session(name={self.name!r}, is_new={self.is_new})>"


class SessionRegistry:
    """Sessions already resolved for one request, keyed by name."""

    def __init__(self, request: Request):
        self.request = request
        self._sessions: Dict[str, Tuple[Session, Optional[SessionStoreError]]] = {}

    def get(self, store: "DynamoDBStore", name: str) -> Session:
        """
        Return the registered session for ``name``, creating it with ``store.new``.

        Raises:
            SessionStoreError: The error ``store.new`` raised for this name. It is
                raised again on every lookup; its ``session`` attribute holds the
                registered handle.
        """
        if name in self._sessions:
            session, error = self._sessions[name]
        else:
            try:
                session, error = store.new(self.request, name), None
            except SessionStoreError as e:
                if e.session is None:
                    raise
                session, error = e.session, e
            self._sessions[name] = (session, error)

        if error is not None:
            raise error
        return session

    def save_all(self, response: Response) -> None:
        """
        Save every registered session onto ``response``.

        Raises:
            SessionStoreError: The first save failure, after all saves were attempted
        """
        first_error: Optional[SessionStoreError] = None
        for session, _ in self._sessions.values():
            try:
                session.save(self.request, response)
            except SessionStoreError as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


def get_registry(request: Request) -> SessionRegistry:
    """Return the session registry attached to ``request``, creating it on first use."""
    registry = getattr(request.state, REGISTRY_ATTR, None)
    if registry is None:
        registry = SessionRegistry(request)
        setattr(request.state, REGISTRY_ATTR, registry)
    return registry


def save_sessions(request: Request, response: Response) -> None:
    """Save all sessions registered on ``request``."""
    get_registry(request).save_all(response)


def set_session_cookie(response: Response, name: str, value: str, options: SessionOptions) -> None:
    # max_age 0 leaves out Max-Age and Expires, which makes a browser session cookie
    lifetime = options.max_age if options.max_age > 0 else None
    response.set_cookie(
        name,
        value,
        max_age=lifetime,
        expires=lifetime,
        path=options.path,
        domain=options.domain,
        secure=options.secure,
        httponly=options.http_only,
        samesite=options.same_site,
    )


def clear_session_cookie(response: Response, name: str, options: SessionOptions) -> None:
    response.delete_cookie(
        name,
        path=options.path,
        domain=options.domain,
        secure=options.secure,
        httponly=options.http_only,
        samesite=options.same_site,
    )
