"""
Cookie token codecs.

A codec turns a session id into an authenticated, tamper-evident token that is
safe to hand to the browser, and verifies tokens coming back. Several codecs
can be configured at once for key rotation: tokens are always encoded with the
first codec and decoded with the first codec that accepts them.
"""

import base64
import hashlib
import hmac
import json
from typing import List, Optional, Sequence

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sessionstore.core.config import DEFAULT_MAX_AGE
from sessionstore.core.exceptions import TokenDecodeError, TokenError
from sessionstore.core.logging_config import get_logger

logger = get_logger(__name__)

KDF_ITERATIONS = 300_000
KDF_SALT = b"sessionstore.cookie-token"


class FernetCodec:
    """Encrypts and authenticates session ids with a Fernet key.

    Fernet tokens carry their creation time, so ``max_age`` bounds how long a
    token verifies. A max age of 0 disables the age check.
    """

    def __init__(self, key: bytes, max_age: int = DEFAULT_MAX_AGE):
        self.cipher = Fernet(key)
        self.max_age = max_age

    @classmethod
    def from_secret(
        cls,
        secret: str,
        max_age: int = DEFAULT_MAX_AGE,
        salt: bytes = KDF_SALT,
        iterations: int = KDF_ITERATIONS,
    ) -> "FernetCodec":
        """Derive a Fernet key from an application secret."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret.encode('utf-8')))
        return cls(key, max_age=max_age)

    def set_max_age(self, max_age: int) -> None:
        self.max_age = max_age

    def encode(self, name: str, value: str) -> str:
        payload = json.dumps({"name": name, "value": value}).encode('utf-8')
        # Padding is restored on decode; unpadded tokens need no cookie quoting
        return self.cipher.encrypt(payload).decode('ascii').rstrip("=")

    def decode(self, name: str, token: str) -> str:
        ttl = self.max_age if self.max_age > 0 else None
        try:
            padded = token + "=" * (-len(token) % 4)
            data = self.cipher.decrypt(padded.encode('ascii'), ttl=ttl)
            payload = json.loads(data)
        except (InvalidToken, UnicodeEncodeError, ValueError) as e:
            raise TokenDecodeError("Invalid or expired token") from e

        # A token minted for one cookie must not unlock another
        if not isinstance(payload, dict) or payload.get("name") != name:
            raise TokenDecodeError("Token was issued for a different cookie")
        value = payload.get("value")
        if not isinstance(value, str):
            raise TokenDecodeError("Token does not carry a session id")
        return value


class HMACCodec:
    """Signs session ids with HMAC-SHA256.

    Tokens are signed but not encrypted and carry no timestamp, so this codec
    has no max age to adjust.
    """

    def __init__(self, secret: str):
        self.secret = secret.encode('utf-8')

    def _signature(self, name: str, value: str) -> str:
        digest = hmac.new(
            self.secret,
            json.dumps([name, value]).encode('utf-8'),
            hashlib.sha256,
        ).digest()
        return base64.urlsafe_b64encode(digest).decode('ascii').rstrip("=")

    def encode(self, name: str, value: str) -> str:
        encoded = base64.urlsafe_b64encode(value.encode('utf-8')).decode('ascii').rstrip("=")
        return f"{encoded}.{self._signature(name, value)}"

    def decode(self, name: str, token: str) -> str:
        encoded, _, signature = token.rpartition(".")
        if not encoded or not signature:
            raise TokenDecodeError("Malformed token")
        try:
            padding = "=" * (-len(encoded) % 4)
            value = base64.urlsafe_b64decode(encoded + padding).decode('utf-8')
        except (ValueError, UnicodeDecodeError) as e:
            raise TokenDecodeError("Malformed token") from e
        if not hmac.compare_digest(signature, self._signature(name, value)):
            raise TokenDecodeError("Token signature mismatch")
        return value


def codecs_from_keys(*secrets: str, max_age: int = DEFAULT_MAX_AGE) -> List[FernetCodec]:
    """Build one Fernet codec per secret, newest secret first."""
    return [FernetCodec.from_secret(secret, max_age=max_age) for secret in secrets]


def encode_multi(name: str, value: str, codecs: Sequence) -> str:
    """Encode with the first codec that succeeds."""
    if not codecs:
        raise TokenError("No token codecs configured")
    last_error: Optional[Exception] = None
    for codec in codecs:
        try:
            return codec.encode(name, value)
        except Exception as e:
            last_error = e
            logger.debug("Codec %s failed to encode token: %s", type(codec).__name__, e)
    raise TokenError("No codec could encode the token") from last_error


def decode_multi(name: str, token: str, codecs: Sequence) -> str:
    """Decode with the first codec that verifies the token."""
    if not codecs:
        raise TokenDecodeError("No token codecs configured")
    last_error: Optional[Exception] = None
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except TokenDecodeError as e:
            last_error = e
    raise TokenDecodeError("Token rejected by every codec") from last_error


def apply_max_age(codecs: Sequence, max_age: int) -> int:
    """Propagate ``max_age`` to every codec that supports it.

    Returns:
        Number of codecs left unchanged because they have no ``set_max_age``
    """
    skipped = 0
    for codec in codecs:
        set_max_age = getattr(codec, "set_max_age", None)
        if callable(set_max_age):
            set_max_age(max_age)
        else:
            skipped += 1
    return skipped
