"""
Settlement services -- the request boundary.

The FastAPI application (``api.create_app``), its routers and pydantic
schemas, the request-context and idempotency middlewares, and the
idempotency stores.
"""
