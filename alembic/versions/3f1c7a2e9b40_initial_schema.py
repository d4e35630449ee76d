"""initial_schema

Revision ID: 3f1c7a2e9b40
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the batch logbook tables, their PostgreSQL enum types and indexes.
Requires the uuid-ossp extension for server-side UUID defaults.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c7a2e9b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# ── Enum type names (PostgreSQL CREATE TYPE) ────────────────────────────────
ENUM_SENSORY_CHECK = postgresql.ENUM(
    "CONFORME", "NO CONFORME", name="sensory_check", create_type=False
)
ENUM_OVERALL_STATUS = postgresql.ENUM(
    "CONFORME", "RETENER", "NO CONFORME", name="overall_status", create_type=False
)
ENUM_AUDIT_ACTION = postgresql.ENUM(
    "CREATE_RECORD",
    "UPDATE_RECORD",
    "DELETE_RECORD",
    name="audit_action",
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── 1. Create enum types ────────────────────────────────────────────
    ENUM_SENSORY_CHECK.create(op.get_bind(), checkfirst=True)
    ENUM_OVERALL_STATUS.create(op.get_bind(), checkfirst=True)
    ENUM_AUDIT_ACTION.create(op.get_bind(), checkfirst=True)

    # ── 2. Tables ───────────────────────────────────────────────────────

    # batch_records
    op.create_table(
        "batch_records",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("uuid_generate_v4()"),
            nullable=False,
        ),
        sa.Column("branch", sa.String(100), nullable=False),
        sa.Column("preparer_name", sa.String(200), nullable=False),
        sa.Column("manufacture_date", sa.Date(), nullable=False),
        sa.Column("product_code", sa.String(20), nullable=False),
        sa.Column("product_family", sa.String(150), nullable=True),
        sa.Column("batch_size", sa.Numeric(12, 3), nullable=False),
        sa.Column("ph", sa.SmallInteger(), nullable=True),
        sa.Column("solids_reading_1", sa.Float(), nullable=True),
        sa.Column("solids_temperature_1", sa.Float(), nullable=True),
        sa.Column("solids_reading_2", sa.Float(), nullable=True),
        sa.Column("solids_temperature_2", sa.Float(), nullable=True),
        sa.Column("appearance", sa.String(100), nullable=True),
        sa.Column("color", ENUM_SENSORY_CHECK, nullable=False),
        sa.Column("aroma", ENUM_SENSORY_CHECK, nullable=False),
        sa.Column("notes", sa.Text(), server_default=sa.text("''"), nullable=False),
        sa.Column("lot_id", sa.String(64), nullable=False),
        sa.Column("overall_status", ENUM_OVERALL_STATUS, nullable=False),
        sa.Column(
            "failed_parameters",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("submitted_by", sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_batch_records")),
        sa.UniqueConstraint("lot_id", name="uq_batch_records_lot_id"),
        sa.CheckConstraint("ph IS NULL OR ph BETWEEN 0 AND 14", name="ck_batch_records_ph_range"),
        sa.CheckConstraint("batch_size > 0", name="ck_batch_records_batch_size_positive"),
    )
    op.create_index(
        "ix_batch_records_lot_key",
        "batch_records",
        ["branch", "product_code", "manufacture_date"],
    )
    op.create_index("ix_batch_records_created_at", "batch_records", ["created_at"])

    # lot_sequences
    op.create_table(
        "lot_sequences",
        sa.Column("branch", sa.String(100), nullable=False),
        sa.Column("product_code", sa.String(20), nullable=False),
        sa.Column("manufacture_date", sa.Date(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("branch", "product_code", "manufacture_date", name=op.f("pk_lot_sequences")),
    )

    # audit_events
    op.create_table(
        "audit_events",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("uuid_generate_v4()"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("action", ENUM_AUDIT_ACTION, nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_events")),
    )
    op.create_index(
        "ix_audit_events_resource", "audit_events", ["resource_type", "resource_id"]
    )

    # role_permissions
    op.create_table(
        "role_permissions",
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("module_key", sa.String(50), nullable=False),
        sa.Column("can_view", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("can_create", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("can_edit", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("can_delete", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("can_export", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("role", "module_key", name=op.f("pk_role_permissions")),
    )


def downgrade() -> None:
    # ── Drop tables in reverse dependency order ─────────────────────────
    op.drop_table("role_permissions")
    op.drop_index("ix_audit_events_resource", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("lot_sequences")
    op.drop_index("ix_batch_records_created_at", table_name="batch_records")
    op.drop_index("ix_batch_records_lot_key", table_name="batch_records")
    op.drop_table("batch_records")

    # ── Drop enum types ─────────────────────────────────────────────────
    ENUM_AUDIT_ACTION.drop(op.get_bind(), checkfirst=True)
    ENUM_OVERALL_STATUS.drop(op.get_bind(), checkfirst=True)
    ENUM_SENSORY_CHECK.drop(op.get_bind(), checkfirst=True)
