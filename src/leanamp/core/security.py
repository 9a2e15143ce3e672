"""Credential providers and session identity.

The remote client never looks up a global auth flag: it is handed a
CredentialProvider, and the presence of a token gates every remote call.

Tokens are issued by the backend (`/api/auth/login`) as HS256 JWTs carrying
`sub` (email), `role` and `name`. The client cannot verify them (it does not
hold the secret); claims are read unverified and only used for display
attribution such as a record's assignedTo.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from jose import JWTError, jwt

from src.leanamp.core.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_AUTH_TOKEN_KEY = "leanampAuthToken"
DEFAULT_CURRENT_USER_KEY = "leanampCurrentUser"


@runtime_checkable
class CredentialProvider(Protocol):
    """Source of the bearer credential for remote calls."""

    def get_token(self) -> str | None:
        """Return the bearer token, or None when unauthenticated."""
        ...


class StaticCredentials:
    """Fixed token (or none); used by scripts and tests."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token


class StoredCredentials:
    """Token read from a key-value store on every call.

    Reading on every call means a logout (key deleted) takes effect for the
    next remote operation without rebuilding the client.
    """

    def __init__(self, storage: KeyValueStore, key: str = DEFAULT_AUTH_TOKEN_KEY) -> None:
        self._storage = storage
        self._key = key

    def get_token(self) -> str | None:
        return self._storage.get(self._key) or None

    def store_token(self, token: str) -> None:
        self._storage.set(self._key, token)

    def clear(self) -> None:
        self._storage.delete(self._key)


def read_token_claims(token: str) -> dict[str, Any]:
    """Decode JWT claims without verifying the signature.

    Returns an empty dict for malformed tokens.
    """
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        logger.debug("Unable to read claims from bearer token")
        return {}


def resolve_current_user(
    credentials: CredentialProvider,
    storage: KeyValueStore | None = None,
    key: str = DEFAULT_CURRENT_USER_KEY,
    fallback: str = "Unassigned",
) -> str:
    """Name used for assignedTo on new records.

    Prefers the stored current-user entry, then the token's name/sub claims,
    then fallback.
    """
    if storage is not None:
        stored = (storage.get(key) or "").strip()
        if stored:
            return stored

    token = credentials.get_token()
    if token:
        claims = read_token_claims(token)
        for claim in ("name", "sub"):
            value = claims.get(claim)
            if isinstance(value, str) and value.strip():
                return value.strip()

    return fallback
