"""
Task Manager service package.

- app.main: FastAPI application, routes and lifecycle.
- app.auth: JWKS key cache, token verifier and the route gate.
- app.persistence: task stores (PostgreSQL, in-memory).
- app.storage: pre-signed S3 upload URLs for attachments.

Module import performs no network calls; the key cache and the database
pool are opened in the application's startup hook.
"""
