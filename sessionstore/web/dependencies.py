"""FastAPI dependencies for resolving sessions inside route handlers."""

from typing import Callable

from fastapi import Request

from sessionstore.core.exceptions import SessionStoreError
from sessionstore.core.logging_config import get_logger
from sessionstore.sessions import Session
from sessionstore.store import DynamoDBStore

logger = get_logger(__name__)


def session_dependency(
    store: DynamoDBStore, name: str, fallback_on_error: bool = False
) -> Callable[[Request], Session]:
    """
    Build a dependency returning the request's session called ``name``.

    Handlers save the session themselves with ``session.save(request, response)``
    using an injected ``Response``.

    Args:
        store: Session store to resolve from
        name: Cookie and session name
        fallback_on_error: Hand out the fresh session attached to a load error
            instead of raising it
    """

    def get_session(request: Request) -> Session:
        try:
            return store.get(request, name)
        except SessionStoreError as e:
            if not fallback_on_error or e.session is None:
                raise
            logger.warning("Using a new session after load failure: %s", e)
            return e.session

    return get_session
