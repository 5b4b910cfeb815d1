"""
Shared utilities for the Task Manager API.

- base_service: FastAPI app factory with request context, health and metrics
- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Bounded retry with backoff for external calls
- test_helpers: Signing keys, tokens and JWKS fixtures for tests

Do not import from service packages into shared/.
"""
