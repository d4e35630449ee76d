"""RolePermission ORM model: data-driven permission table for route guards.

Rows are maintained by administrators outside this service.  The route
layer reads the row for ``(principal.role, module_key)`` before calling
into the record service; the quality engine never consults it.
"""

from __future__ import annotations

from sqlalchemy import String, text
from sqlalchemy.orm import Mapped, mapped_column

from batchqc.models.base import Base, TimestampMixin


class RolePermission(Base, TimestampMixin):
    """Action flags granted to a role on one module (e.g. ``bitacora``)."""

    __tablename__ = "role_permissions"

    role: Mapped[str] = mapped_column(String(50), primary_key=True)
    module_key: Mapped[str] = mapped_column(String(50), primary_key=True)
    can_view: Mapped[bool] = mapped_column(
        default=False, server_default=text("false"), nullable=False
    )
    can_create: Mapped[bool] = mapped_column(
        default=False, server_default=text("false"), nullable=False
    )
    can_edit: Mapped[bool] = mapped_column(
        default=False, server_default=text("false"), nullable=False
    )
    can_delete: Mapped[bool] = mapped_column(
        default=False, server_default=text("false"), nullable=False
    )
    can_export: Mapped[bool] = mapped_column(
        default=False, server_default=text("false"), nullable=False
    )

    def allows(self, action: str) -> bool:
        return bool(getattr(self, f"can_{action}", False))

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role!r} module={self.module_key!r}>"
