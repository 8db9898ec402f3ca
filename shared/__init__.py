"""
Shared utilities for the edge cache proxy.

This package aggregates common building blocks consumed by the service:

- config: Proxy configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Error envelope and exception types
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
