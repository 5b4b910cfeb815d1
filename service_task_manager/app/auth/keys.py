"""
JWKS key cache for bearer token verification.

The cache holds an immutable ``KeySet`` snapshot. A refresh builds a new
snapshot completely and publishes it with a single assignment, so readers
never take a lock and never see a half-built key set. Refreshes themselves
are serialized.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import httpx
from jose import jwk
from jose.constants import ALGORITHMS
from jose.exceptions import JWKError

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry


class KeyRefreshError(Exception):
    """The discovery document could not be fetched or parsed."""


@dataclass(frozen=True)
class SigningKey:
    """One RSA public key published by the identity provider."""

    kid: str
    kty: str
    alg: Optional[str]
    jwk: Mapping[str, Any]


@dataclass(frozen=True)
class KeySet:
    """Immutable ``kid -> SigningKey`` snapshot."""

    keys: Mapping[str, SigningKey] = field(default_factory=lambda: MappingProxyType({}))
    fetched_at: Optional[float] = None

    def get(self, kid: str) -> Optional[SigningKey]:
        return self.keys.get(kid)

    def __contains__(self, kid: object) -> bool:
        return kid in self.keys

    def __len__(self) -> int:
        return len(self.keys)


def parse_key_set(document: Any, logger=None) -> Dict[str, SigningKey]:
    """Parse a JWKS document into signing keys.

    Entries that are not usable RSA signature keys are skipped. Raises
    ``KeyRefreshError`` if the document has no ``keys`` list or nothing
    usable is left.
    """
    logger = logger or get_logger("task-manager.auth.jwks")
    if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
        raise KeyRefreshError("JWKS response missing 'keys' array")

    keys: Dict[str, SigningKey] = {}
    for entry in document["keys"]:
        if not isinstance(entry, dict):
            logger.warning("Skipping non-object JWKS entry")
            continue

        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            logger.warning("Skipping JWKS entry without kid")
            continue
        if entry.get("kty") != "RSA":
            logger.info("Skipping non-RSA JWKS entry", kid=kid, kty=entry.get("kty"))
            continue
        if entry.get("use", "sig") != "sig":
            logger.info("Skipping non-signing JWKS entry", kid=kid, use=entry.get("use"))
            continue

        alg = entry.get("alg")
        if alg is not None and alg not in ALGORITHMS.RSA_DS:
            logger.info("Skipping JWKS entry with unsupported alg", kid=kid, alg=alg)
            continue

        try:
            jwk.construct(entry, alg or ALGORITHMS.RS256)
        except (JWKError, ValueError, TypeError, AttributeError, KeyError) as exc:
            logger.warning("Skipping malformed JWKS entry", kid=kid, error=str(exc))
            continue

        if kid in keys:
            logger.warning("Duplicate kid in JWKS response; keeping first", kid=kid)
            continue

        keys[kid] = SigningKey(kid=kid, kty="RSA", alg=alg, jwk=MappingProxyType(dict(entry)))

    if not keys:
        raise KeyRefreshError("JWKS response contained no usable RSA signing keys")
    return keys


class JWKSKeyCache:
    """Fetches, caches and refreshes the identity provider's signing keys."""

    def __init__(
        self,
        jwks_url: str,
        *,
        http_timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        refresh_interval: int = 3600,
        min_refresh_interval: int = 30,
        metrics: Optional[MetricsCollector] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.jwks_url = jwks_url
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
        self.refresh_interval = refresh_interval
        self.min_refresh_interval = min_refresh_interval
        self.metrics = metrics
        self.logger = get_logger("task-manager.auth.jwks")

        self._snapshot = KeySet()
        self._lock = asyncio.Lock()
        self._last_attempt: Optional[float] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    @property
    def snapshot(self) -> KeySet:
        """The currently published key set."""
        return self._snapshot

    def get(self, kid: str) -> Optional[SigningKey]:
        return self._snapshot.get(kid)

    async def refresh(self) -> KeySet:
        """Fetch the discovery document and publish a new key set.

        On failure the previous key set stays published and
        ``KeyRefreshError`` is raised.
        """
        async with self._lock:
            return await self._refresh_locked()

    async def warmup(self) -> bool:
        """Best-effort startup load; never raises."""
        try:
            await self.refresh()
        except KeyRefreshError as exc:
            self.logger.warning(
                "JWKS warmup failed; all tokens will be rejected until a refresh succeeds",
                jwks_url=self.jwks_url,
                error=str(exc),
            )
            return False
        return True

    async def refresh_on_miss(self, kid: str) -> Optional[SigningKey]:
        """Refresh once for an unknown ``kid``, at most every ``min_refresh_interval`` seconds."""
        key = self.get(kid)
        if key is not None:
            return key

        async with self._lock:
            # A refresh that ran while we waited may already have it.
            key = self.get(kid)
            if key is not None:
                return key

            if self._last_attempt is not None and time.monotonic() - self._last_attempt < self.min_refresh_interval:
                self.logger.debug("Skipping JWKS refresh for unknown kid; refreshed recently", kid=kid)
                return None

            self.logger.info("Unknown kid; refreshing JWKS", kid=kid)
            try:
                await self._refresh_locked()
            except KeyRefreshError:
                return None

        return self.get(kid)

    def start_background_refresh(self) -> None:
        """Refresh every ``refresh_interval`` seconds until ``stop()``."""
        if self.refresh_interval <= 0 or self._refresh_task is not None:
            return
        self._refresh_task = asyncio.create_task(self._refresh_periodically(), name="jwks-refresh")

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None
        if self._owns_client:
            await self._client.aclose()

    async def check_health(self) -> str:
        return "ok" if len(self._snapshot) else "empty"

    async def _refresh_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except KeyRefreshError as exc:
                self.logger.warning("Periodic JWKS refresh failed; keeping previous key set", error=str(exc))

    async def _refresh_locked(self) -> KeySet:
        self._last_attempt = time.monotonic()
        started = time.monotonic()
        try:
            document = await call_with_retry(
                self._fetch_document,
                operation="jwks_fetch",
                exceptions=(httpx.HTTPError, ValueError),
                config=self.retry_config,
            )
            keys = parse_key_set(document, self.logger)
        except (RetryError, KeyRefreshError) as exc:
            cause = exc.last_exception if isinstance(exc, RetryError) else exc
            self.logger.error(
                "JWKS refresh failed",
                jwks_url=self.jwks_url,
                error=str(cause),
                cached_keys=len(self._snapshot),
            )
            if self.metrics:
                self.metrics.record_jwks_refresh("error")
            raise KeyRefreshError(str(cause)) from exc

        snapshot = KeySet(keys=MappingProxyType(keys), fetched_at=time.time())
        self._snapshot = snapshot

        duration = time.monotonic() - started
        self.logger.info(
            "JWKS refreshed successfully",
            keys_count=len(snapshot),
            kids=sorted(keys),
            duration_ms=round(duration * 1000, 2),
        )
        if self.metrics:
            self.metrics.record_jwks_refresh("success", key_count=len(snapshot))
            self.metrics.get_metric("jwks_refresh_duration_seconds").observe(duration)
        return snapshot

    async def _fetch_document(self) -> Any:
        response = await self._client.get(self.jwks_url)
        response.raise_for_status()
        return response.json()
