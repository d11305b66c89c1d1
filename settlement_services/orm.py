"""
Idempotency ORM Model (``settlement_services.orm``).

Persisted variant of the idempotency cache, for deployments where several
processes serve the same tenants.  The unique constraint on
(tenant_id, idempotency_key, method, path) is what makes reservation an
atomic insert-if-absent.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base

STATE_IN_FLIGHT = "IN_FLIGHT"
STATE_COMPLETED = "COMPLETED"


class IdempotencyRecordModel(Base):
    __tablename__ = "idempotency_records"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "idempotency_key",
            "method",
            "path",
            name="uq_idempotency_records_scope",
        ),
        Index("idx_idempotency_records_expires_at", "expires_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=STATE_IN_FLIGHT)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecordModel {self.method} {self.path} "
            f"key={self.idempotency_key} state={self.state}>"
        )
