"""
Token verification failures.

Clients only ever see two shapes: 401 ``MISSING_TOKEN`` and a generic 403
``INVALID_TOKEN``. The concrete reason travels in ``details`` for the log.
"""

from typing import Any, Dict, Optional

from shared.errors import AccessLayerException, AuthenticationError


class MissingTokenError(AuthenticationError):
    """No ``Bearer <token>`` credential was presented."""

    expose_details = False

    def __init__(self, reason: str = "missing bearer token"):
        super().__init__("Authentication token required", details={"reason": reason})
        self.code = "MISSING_TOKEN"
        self.reason = reason


class TokenRejectedError(AccessLayerException):
    """A credential was presented but cannot be accepted."""

    status_code = 403
    expose_details = False

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_TOKEN", "Invalid or expired token", {"reason": reason, **(details or {})})
        self.reason = reason


class MalformedTokenError(TokenRejectedError):
    """The token is not a structurally valid signed JWT."""


class UnknownKeyError(TokenRejectedError):
    """The token names a signing key that is not in the key cache."""

    def __init__(self, kid: str):
        super().__init__("unknown signing key", {"kid": kid})
        self.kid = kid


class InvalidTokenError(TokenRejectedError):
    """Signature, algorithm or claim validation failed."""
