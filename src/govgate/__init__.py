"""
govgate - resilience and dispatch layer for a compliance API gateway.

Fronts the Indian government compliance providers (VAHAN vehicle and
driving-licence lookups, NIC and Whitebooks e-way bills, Whitebooks
e-invoices) behind one HTTP surface with retry, circuit breaking,
credential caching, idempotency and per-tenant usage accounting.

Packages:
    core         Errors, logging, settings, persistence, usage accounting
    resilience   Retry, circuit breaker, idempotency cache, rate limiting
    providers    Provider clients, crypto envelopes, credential manager
    dispatch     Provider selection and the call pipeline
    api          FastAPI application, middleware and routers
    cli          Typer command line
"""

__version__ = "0.3.0"
