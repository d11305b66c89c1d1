"""
Module: settlement_kernel.db.base
Responsibility: Declarative bases shared by every settlement table.
Architecture position: Kernel > DB.  Imported by the ORM modules of
    settlement_modules and settlement_services; imports nothing above db/.

Conventions:
    - Every row has a uuid4 ``id`` stored as a 36-character string, so the
      same schema runs on PostgreSQL and SQLite.
    - ``Decimal`` annotations map to Numeric(18, 2).  Money is never a float.
    - ``datetime`` annotations are timezone-aware.
    - Foreign keys, primary keys and plain indexes get deterministic names;
      CHECK and UNIQUE constraints are always named explicitly at the table.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "ix": "ix_%(table_name)s_%(column_0_name)s",
}


class UUIDString(TypeDecorator):
    """UUID held as String(36); converted on the way in and out."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds row timestamps and the acting user.

    ``created_at``/``updated_at`` come from the database clock.  The actor
    columns stay NULL for system jobs such as the overdue sweep.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    created_by_id: Mapped[UUID | None] = mapped_column(default=None)
    updated_by_id: Mapped[UUID | None] = mapped_column(default=None)
