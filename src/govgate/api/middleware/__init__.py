"""API middleware package.

Manifesto:
    Request ids, dispatcher authentication, rate limiting and
    idempotency are cross-cutting, so routers never see them.
"""
