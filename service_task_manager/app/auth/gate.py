"""
FastAPI dependency that guards protected routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector
from .errors import MalformedTokenError, MissingTokenError, TokenRejectedError, UnknownKeyError
from .keys import JWKSKeyCache
from .verifier import TokenVerifier, VerifiedIdentity


class TokenGate:
    """Verifies the request's bearer token before any handler code runs.

    Rejections propagate as ``MissingTokenError`` (401) or a
    ``TokenRejectedError`` subclass (403) and are rendered by the service's
    exception handler.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        key_cache: JWKSKeyCache,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.verifier = verifier
        self.key_cache = key_cache
        self.metrics = metrics
        self.logger = get_logger("task-manager.auth.gate")

    async def __call__(self, request: Request) -> VerifiedIdentity:
        authorization = request.headers.get("Authorization")
        try:
            identity = await self._verify(authorization)
        except MissingTokenError:
            self._record("missing_token")
            raise
        except MalformedTokenError:
            self._record("malformed_token")
            raise
        except UnknownKeyError:
            self._record("unknown_key")
            raise
        except TokenRejectedError:
            self._record("invalid_token")
            raise

        self._record("success")
        request.state.identity = identity
        set_user_context(identity.subject)
        return identity

    async def _verify(self, authorization: Optional[str]) -> VerifiedIdentity:
        try:
            return self.verifier.verify(authorization)
        except UnknownKeyError as exc:
            # The provider may have rotated keys since the last refresh.
            if await self.key_cache.refresh_on_miss(exc.kid) is None:
                raise
        return self.verifier.verify(authorization)

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_token_verification(outcome)
