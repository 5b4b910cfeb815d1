"""
Bearer token authentication for the Task Manager service.

- keys: JWKS key cache (fetch, snapshot publish, refresh policy).
- verifier: local token verification against the cached keys.
- gate: FastAPI dependency guarding protected routes.
"""

from .errors import (
    InvalidTokenError,
    MalformedTokenError,
    MissingTokenError,
    TokenRejectedError,
    UnknownKeyError,
)
from .gate import TokenGate
from .keys import JWKSKeyCache, KeyRefreshError, KeySet, SigningKey, parse_key_set
from .verifier import TokenVerifier, VerifiedIdentity

__all__ = [
    "InvalidTokenError",
    "JWKSKeyCache",
    "KeyRefreshError",
    "KeySet",
    "MalformedTokenError",
    "MissingTokenError",
    "SigningKey",
    "TokenGate",
    "TokenRejectedError",
    "TokenVerifier",
    "UnknownKeyError",
    "VerifiedIdentity",
    "parse_key_set",
]
