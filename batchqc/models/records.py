"""BatchRecord and LotSequence ORM models: the persisted Record Store.

``batch_records`` holds one row per operator submission.  The lot
identifier is derived at submission time and never rewritten; the
``lot_sequences`` table is the atomic per-(branch, product, date) counter
that feeds the numeric lot suffix.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    Enum,
    Float,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchqc.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from batchqc.models.enums import OverallStatusEnum, SensoryCheckEnum


def _enum_values(enum_cls: type) -> list[str]:
    return [member.value for member in enum_cls]


# ═══════════════════════════════════════════════════════════════════════════
# BatchRecord
# ═══════════════════════════════════════════════════════════════════════════


class BatchRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One manufactured batch with its measurements and derived disposition.

    ``overall_status`` and ``failed_parameters`` are computed over solids,
    pH and appearance at submission time and re-derived on admin edits.
    ``lot_id`` is unique across the table.
    """

    __tablename__ = "batch_records"
    __table_args__ = (
        UniqueConstraint("lot_id", name="uq_batch_records_lot_id"),
        Index(
            "ix_batch_records_lot_key",
            "branch",
            "product_code",
            "manufacture_date",
        ),
        Index("ix_batch_records_created_at", "created_at"),
        CheckConstraint("ph IS NULL OR ph BETWEEN 0 AND 14", name="ph_range"),
        CheckConstraint("batch_size > 0", name="batch_size_positive"),
    )

    branch: Mapped[str] = mapped_column(String(100), nullable=False)
    preparer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    manufacture_date: Mapped[date] = mapped_column(Date, nullable=False)
    product_code: Mapped[str] = mapped_column(String(20), nullable=False)
    product_family: Mapped[str | None] = mapped_column(String(150), nullable=True)
    batch_size: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    ph: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    solids_reading_1: Mapped[float | None] = mapped_column(Float, nullable=True)
    solids_temperature_1: Mapped[float | None] = mapped_column(Float, nullable=True)
    solids_reading_2: Mapped[float | None] = mapped_column(Float, nullable=True)
    solids_temperature_2: Mapped[float | None] = mapped_column(Float, nullable=True)
    appearance: Mapped[str | None] = mapped_column(String(100), nullable=True)
    color: Mapped[SensoryCheckEnum] = mapped_column(
        Enum(
            SensoryCheckEnum,
            name="sensory_check",
            create_constraint=False,
            native_enum=True,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    aroma: Mapped[SensoryCheckEnum] = mapped_column(
        Enum(
            SensoryCheckEnum,
            name="sensory_check",
            create_constraint=False,
            native_enum=True,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")

    lot_id: Mapped[str] = mapped_column(String(64), nullable=False)
    overall_status: Mapped[OverallStatusEnum] = mapped_column(
        Enum(
            OverallStatusEnum,
            name="overall_status",
            create_constraint=False,
            native_enum=True,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    failed_parameters: Mapped[list[str]] = mapped_column(
        JSONB, nullable=False, default=list, server_default="[]"
    )
    submitted_by: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<BatchRecord id={self.id} lot={self.lot_id!r} "
            f"status={self.overall_status}>"
        )


# ═══════════════════════════════════════════════════════════════════════════
# LotSequence
# ═══════════════════════════════════════════════════════════════════════════


class LotSequence(Base):
    """Last reserved lot suffix per (branch, product code, manufacture date)."""

    __tablename__ = "lot_sequences"

    branch: Mapped[str] = mapped_column(String(100), primary_key=True)
    product_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    manufacture_date: Mapped[date] = mapped_column(Date, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LotSequence {self.branch}/{self.product_code}/"
            f"{self.manufacture_date} last={self.last_value}>"
        )
