"""ORM model registry: importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from batchqc.models import BatchRecord, LotSequence, ...
"""

# ── Audit trail ─────────────────────────────────────────────────────────────
from batchqc.models.audit import AuditEvent

# ── Base & Mixins ───────────────────────────────────────────────────────────
from batchqc.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# ── Enums ───────────────────────────────────────────────────────────────────
from batchqc.models.enums import (
    AppearanceEnum,
    AuditActionEnum,
    BatchSizeUnitEnum,
    ConformanceVerdict,
    OverallStatusEnum,
    QualityParameterEnum,
    SensoryCheckEnum,
)

# ── Permissions ─────────────────────────────────────────────────────────────
from batchqc.models.permissions import RolePermission

# ── Batch records ───────────────────────────────────────────────────────────
from batchqc.models.records import BatchRecord, LotSequence

__all__ = [
    "AppearanceEnum",
    "AuditActionEnum",
    "AuditEvent",
    # Base & mixins
    "Base",
    # Batch records
    "BatchRecord",
    "BatchSizeUnitEnum",
    "ConformanceVerdict",
    "LotSequence",
    "OverallStatusEnum",
    "QualityParameterEnum",
    # Permissions
    "RolePermission",
    "SensoryCheckEnum",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
]
