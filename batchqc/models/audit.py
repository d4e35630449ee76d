"""AuditEvent ORM model: append-only trail of record lifecycle changes."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Enum, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchqc.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from batchqc.models.enums import AuditActionEnum


class AuditEvent(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Who did what to which batch record."""

    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_resource", "resource_type", "resource_id"),)

    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[AuditActionEnum] = mapped_column(
        Enum(
            AuditActionEnum,
            name="audit_action",
            create_constraint=False,
            native_enum=True,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditEvent id={self.id} action={self.action} resource={self.resource_id}>"
