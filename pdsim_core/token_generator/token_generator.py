from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional, Protocol
import time

import jwt


TOKEN_VERSION = 0
MAX_UID_LENGTH = 256
MAX_TOKEN_LENGTH = 1024

# Legacy option names mapped to their JWT claim names
_OPTION_CLAIMS = {
    "expires": "exp",
    "notBefore": "nbf",
    "admin": "admin",
    "debug": "debug",
    "simulate": "simulate",
}


class TokenGenerator(Protocol):
    """Protocol for turning a claims object into a signed custom token."""
    def create_token(self, claims: Mapping, options: Optional[Mapping] = None) -> str:
        ...


def _to_timestamp(value: Any) -> int:
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    raise TypeError(f"Expected a datetime or a number of seconds, got {type(value).__name__}")


class LegacyTokenGenerator:
    """Mints custom tokens signed with a legacy database secret.

    Tokens use the legacy layout (``v``, ``iat``, ``d`` plus option claims)
    and are signed with HS256.

    Example:
        generator = LegacyTokenGenerator(secret)
        token = generator.create_token({"uid": "abc"}, {"simulate": True, "debug": True})
    """

    def __init__(self, secret: str):
        if not isinstance(secret, str) or not secret:
            raise ValueError("LegacyTokenGenerator: secret must be a non-empty string")
        self._secret = secret

    def _validate_claims(self, claims: Any, options: Mapping) -> None:
        if not isinstance(claims, Mapping):
            raise TypeError("LegacyTokenGenerator.create_token: claims must be a mapping")
        if options.get("admin"):
            return
        uid = claims.get("uid")
        if not isinstance(uid, str):
            raise ValueError("LegacyTokenGenerator.create_token: claims must contain a string 'uid'")
        if len(uid) > MAX_UID_LENGTH:
            raise ValueError(
                f"LegacyTokenGenerator.create_token: 'uid' must be at most {MAX_UID_LENGTH} characters"
            )

    def create_token(self, claims: Mapping, options: Optional[Mapping] = None) -> str:
        """Create a signed token for ``claims``.

        Args:
            claims: Data exposed to security rules as ``auth`` (must hold ``uid``
                unless the ``admin`` option is set)
            options: Optional legacy options: ``simulate``, ``debug``, ``admin``,
                ``expires`` and ``notBefore``

        Returns:
            Encoded token

        Raises:
            TypeError: If claims is not a mapping or an option has the wrong type
            ValueError: If claims lack a valid uid, an option is unknown, or the
                token is too long
        """
        options = dict(options or {})
        self._validate_claims(claims, options)

        payload: dict[str, Any] = {"v": TOKEN_VERSION, "iat": int(time.time()), "d": dict(claims)}
        for name, value in options.items():
            if name not in _OPTION_CLAIMS:
                raise ValueError(f"LegacyTokenGenerator.create_token: unknown option {name!r}")
            if name in ("expires", "notBefore"):
                value = _to_timestamp(value)
            elif not isinstance(value, bool):
                raise TypeError(f"LegacyTokenGenerator.create_token: option {name!r} must be a bool")
            payload[_OPTION_CLAIMS[name]] = value

        token = jwt.encode(payload, self._secret, algorithm="HS256")
        if len(token) > MAX_TOKEN_LENGTH:
            raise ValueError(
                f"LegacyTokenGenerator.create_token: generated token is longer than "
                f"{MAX_TOKEN_LENGTH} characters; reduce the size of the claims"
            )
        return token
