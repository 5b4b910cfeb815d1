"""
Bearer token verification against the cached JWKS.

Verification is local and synchronous: the only network access happens
when the key cache is refreshed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Tuple

from jose import jwk, jwt
from jose.constants import ALGORITHMS
from jose.exceptions import ExpiredSignatureError, JWKError, JWTClaimsError, JWTError

from shared.logging import get_logger
from .errors import InvalidTokenError, MalformedTokenError, MissingTokenError, TokenRejectedError, UnknownKeyError
from .keys import JWKSKeyCache


@dataclass(frozen=True)
class VerifiedIdentity:
    """Caller identity established by a verified token, valid for one request."""

    subject: str
    email: Optional[str]
    username: Optional[str]
    claims: Mapping[str, Any] = field(repr=False)
    token: str = field(repr=False)


class TokenVerifier:
    """Validates JWTs signed by keys in a ``JWKSKeyCache``."""

    def __init__(
        self,
        key_cache: JWKSKeyCache,
        *,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        token_use: Optional[str] = None,
        allowed_algorithms: Iterable[str] = (ALGORITHMS.RS256, ALGORITHMS.RS384, ALGORITHMS.RS512),
        leeway: int = 0,
    ) -> None:
        allowed = frozenset(allowed_algorithms)
        unsupported = allowed - ALGORITHMS.RSA_DS
        if unsupported or not allowed:
            raise ValueError(f"Only RSA signature algorithms can be allowed, got {sorted(allowed)}")

        self.key_cache = key_cache
        self.issuer = issuer
        self.audience = audience
        self.token_use = token_use
        self.allowed_algorithms = allowed
        self.leeway = leeway
        self.logger = get_logger("task-manager.auth.verifier")

    def verify(self, authorization: Optional[str]) -> VerifiedIdentity:
        """Verify the raw ``Authorization`` header value and return the caller identity."""
        token = self.extract_token(authorization)
        try:
            return self.verify_token(token)
        except TokenRejectedError as exc:
            self.logger.warning("Token rejected", **exc.details)
            raise

    @staticmethod
    def extract_token(authorization: Optional[str]) -> str:
        if not authorization:
            raise MissingTokenError()
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer":
            raise MissingTokenError("authorization scheme is not Bearer")
        token = token.strip()
        if not token:
            raise MissingTokenError("empty bearer token")
        return token

    @staticmethod
    def read_header(token: str) -> Tuple[str, str]:
        """Return the unverified ``(kid, alg)`` pair from the token header."""
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedTokenError("undecodable token header", {"error": str(exc)}) from exc

        kid = header.get("kid")
        alg = header.get("alg")
        if not isinstance(kid, str) or not kid:
            raise MalformedTokenError("token header missing kid")
        if not isinstance(alg, str) or not alg:
            raise MalformedTokenError("token header missing alg", {"kid": kid})
        return kid, alg

    def verify_token(self, token: str) -> VerifiedIdentity:
        kid, alg = self.read_header(token)
        self._require_claims_segment(token, kid)

        # Checked before the key lookup so HS256/none never reach a key.
        if alg not in self.allowed_algorithms:
            raise InvalidTokenError("disallowed signing algorithm", {"kid": kid, "alg": alg})

        signing_key = self.key_cache.get(kid)
        if signing_key is None:
            raise UnknownKeyError(kid)
        if signing_key.alg is not None and signing_key.alg != alg:
            raise InvalidTokenError(
                "algorithm does not match signing key",
                {"kid": kid, "alg": alg, "key_alg": signing_key.alg},
            )

        try:
            public_key = jwk.construct(dict(signing_key.jwk), alg)
        except JWKError as exc:
            raise InvalidTokenError("unusable signing key", {"kid": kid, "error": str(exc)}) from exc

        try:
            claims = jwt.decode(
                token,
                public_key,
                algorithms=[alg],
                issuer=self.issuer,
                options={
                    "verify_aud": False,
                    # ID tokens carry at_hash; no access token is presented with them.
                    "verify_at_hash": False,
                    "require_exp": True,
                    "leeway": self.leeway,
                },
            )
        except ExpiredSignatureError as exc:
            raise InvalidTokenError("token expired", {"kid": kid}) from exc
        except JWTClaimsError as exc:
            raise InvalidTokenError("claim validation failed", {"kid": kid, "error": str(exc)}) from exc
        except JWTError as exc:
            raise InvalidTokenError("signature verification failed", {"kid": kid, "error": str(exc)}) from exc

        self._check_audience(claims, kid)
        if self.token_use is not None and claims.get("token_use") != self.token_use:
            raise InvalidTokenError(
                "unexpected token_use",
                {"kid": kid, "token_use": claims.get("token_use")},
            )

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidTokenError("token missing subject claim", {"kid": kid})

        return VerifiedIdentity(
            subject=subject,
            email=_string_claim(claims, "email"),
            username=_string_claim(claims, "username", "cognito:username", "preferred_username"),
            claims=claims,
            token=token,
        )

    @staticmethod
    def _require_claims_segment(token: str, kid: str) -> None:
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError("undecodable token claims", {"kid": kid, "error": str(exc)}) from exc

    def _check_audience(self, claims: Mapping[str, Any], kid: str) -> None:
        """Match ``aud``, or Cognito's ``client_id`` on access tokens."""
        if self.audience is None:
            return
        audience = claims.get("aud", claims.get("client_id"))
        if isinstance(audience, str):
            audience = [audience]
        if not isinstance(audience, list) or self.audience not in audience:
            raise InvalidTokenError("audience mismatch", {"kid": kid})


def _string_claim(claims: Mapping[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if isinstance(value, str) and value:
            return value
    return None
