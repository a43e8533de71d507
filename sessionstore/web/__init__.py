"""Web framework integration."""

from sessionstore.web.dependencies import session_dependency

__all__ = ["session_dependency"]
