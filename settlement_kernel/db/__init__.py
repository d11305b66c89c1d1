"""Database layer - engine, base classes and types."""

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
)
from settlement_kernel.db.types import round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "round_money",
]
