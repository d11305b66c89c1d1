"""FastAPI routers, one module per settlement module."""
