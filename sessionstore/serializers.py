"""
Session value serializers.

A serializer maps a handle's ``values`` dictionary to the bytes stored in the
record's ``data`` attribute and back. The store accepts any object with the
two methods of ``SessionSerializer``.
"""

import json
import pickle
from abc import ABC, abstractmethod
from typing import Any, Dict

from sessionstore.core.exceptions import SerializationError


class SessionSerializer(ABC):
    """Two-way mapping between session values and a byte payload."""

    @abstractmethod
    def serialize(self, values: Dict[Any, Any]) -> bytes:
        """
        Encode session values.

        Raises:
            SerializationError: If a key or value cannot be encoded
        """

    @abstractmethod
    def deserialize(self, data: bytes) -> Dict[Any, Any]:
        """
        Decode a payload produced by ``serialize``.

        Raises:
            SerializationError: If the payload is corrupt
        """


class PickleSerializer(SessionSerializer):
    """Default serializer; supports arbitrary hashable keys and picklable values."""

    def serialize(self, values: Dict[Any, Any]) -> bytes:
        try:
            return pickle.dumps(dict(values), protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise SerializationError(f"Cannot serialize session values: {e}") from e

    def deserialize(self, data: bytes) -> Dict[Any, Any]:
        try:
            values = pickle.loads(data)
        except Exception as e:
            # Unpickling corrupt bytes can raise nearly anything
            raise SerializationError(f"Corrupt session payload: {e}") from e
        if not isinstance(values, dict):
            raise SerializationError(
                f"Session payload decoded to {type(values).__name__}, expected dict"
            )
        return values


class JSONSerializer(SessionSerializer):
    """Schema-stable serializer readable across versions and languages.

    Only values that come back unchanged are accepted: string keys at every
    level, lists rather than tuples, and JSON scalars.
    """

    def serialize(self, values: Dict[Any, Any]) -> bytes:
        _check_json_value(values, "values")
        try:
            return json.dumps(values, separators=(",", ":")).encode('utf-8')
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize session values: {e}") from e

    def deserialize(self, data: bytes) -> Dict[Any, Any]:
        try:
            values = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise SerializationError(f"Corrupt session payload: {e}") from e
        if not isinstance(values, dict):
            raise SerializationError(
                f"Session payload decoded to {type(values).__name__}, expected dict"
            )
        return values


def _check_json_value(value: Any, path: str) -> None:
    """Raise SerializationError for anything json would silently convert."""
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializationError(
                    f"JSON session keys must be strings, got {type(key).__name__} at {path}"
                )
            _check_json_value(item, f"{path}[{key!r}]")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
    elif isinstance(value, tuple):
        raise SerializationError(f"Tuple at {path} would be restored as a list")
