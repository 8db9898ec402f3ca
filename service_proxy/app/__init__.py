"""
Edge caching proxy service package.

The proxy fronts a single upstream pipeline API, enforcing:
- Request validation: token presence, HTTPS, method, body and content type
- Response caching: content-addressed Redis entries for 200 responses
- Error normalization: every handled failure becomes one JSON envelope

Structure:
- app.main: FastAPI app, catch-all route and wiring.
- app.models: Request and response value types.
- app.validation: Request validator.
- app.caching: Cache key derivation and Redis response cache.
- app.adapters: HTTP client for the upstream API.
- app.domain: Response normalizer and per-request pipeline.
"""
