"""Enum types shared by the ORM models, the API schemas and the quality engine.

Each StrEnum backing a column maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM.
``ConformanceVerdict`` is engine-only and never persisted as a column type.
"""

from enum import StrEnum

# ── Conformance enums ───────────────────────────────────────────────────────


class ConformanceVerdict(StrEnum):
    """Per-parameter classification result."""

    success = "success"
    warning = "warning"
    error = "error"
    not_applicable = "not-applicable"


class OverallStatusEnum(StrEnum):
    """Batch disposition: accept, hold for review, reject."""

    conforme = "CONFORME"
    retener = "RETENER"
    no_conforme = "NO CONFORME"


class SensoryCheckEnum(StrEnum):
    """Operator self-report for color and aroma."""

    conforme = "CONFORME"
    no_conforme = "NO CONFORME"


class QualityParameterEnum(StrEnum):
    """Evaluated parameters, declared in evaluation order."""

    solids = "solids"
    ph = "ph"
    appearance = "appearance"


class AppearanceEnum(StrEnum):
    """Appearance descriptions an operator may select."""

    cristalino = "CRISTALINO"
    opaco = "OPACO"
    aperlado = "APERLADO"
    turbio = "TURBIO"
    particulas_suspendidas = "PARTICULAS SUSPENDIDAS"
    separacion_de_componentes = "SEPARACION DE COMPONENTES"


class BatchSizeUnitEnum(StrEnum):
    """Unit in which a product family measures batch size."""

    volume = "volume"
    pieces = "pieces"


# ── Audit enums ─────────────────────────────────────────────────────────────


class AuditActionEnum(StrEnum):
    """Record lifecycle events written to the audit trail."""

    create_record = "CREATE_RECORD"
    update_record = "UPDATE_RECORD"
    delete_record = "DELETE_RECORD"
