"""
Shared pytest fixtures.
"""

import time
from types import MappingProxyType

import httpx
import pytest

from service_task_manager.app.auth.keys import JWKSKeyCache, KeySet, parse_key_set
from shared.retry import RetryConfig
from shared.test_helpers import TEST_JWKS_URL, generate_signing_key, jwks_document, jwks_transport

FAST_RETRY = RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


def install_key_set(cache: JWKSKeyCache, document) -> None:
    """Publish ``document`` into ``cache`` without network access."""
    cache._snapshot = KeySet(keys=MappingProxyType(parse_key_set(document)), fetched_at=time.time())


def make_key_cache(transport: httpx.MockTransport, **kwargs) -> JWKSKeyCache:
    kwargs.setdefault("retry_config", FAST_RETRY)
    kwargs.setdefault("min_refresh_interval", 0)
    return JWKSKeyCache(TEST_JWKS_URL, client=httpx.AsyncClient(transport=transport), **kwargs)


@pytest.fixture(scope="session")
def key_a():
    return generate_signing_key("kid-A")


@pytest.fixture(scope="session")
def key_b():
    return generate_signing_key("kid-B")


@pytest.fixture
def key_cache(key_a):
    """Cache with ``kid-A`` published; the discovery endpoint serves the same set."""
    cache = make_key_cache(jwks_transport(jwks_document(key_a)))
    install_key_set(cache, jwks_document(key_a))
    return cache


@pytest.fixture
def cache_factory():
    return make_key_cache


@pytest.fixture
def install_keys():
    return install_key_set
