"""Authentication dependencies: get_principal, require_permission."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.auth.jwt import AuthError, decode_token
from batchqc.database import get_db
from batchqc.models.permissions import RolePermission

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"
LOGBOOK_MODULE = "bitacora"


@dataclass(slots=True)
class Principal:
	subject: str
	role: str
	display_name: str | None = None
	branch: str | None = None

	@property
	def is_admin(self) -> bool:
		return self.role == ADMIN_ROLE


def _raise_auth(exc: AuthError) -> HTTPException:
	return HTTPException(
		status_code=exc.status_code,
		detail={"error": exc.code, "message": exc.detail},
	)


def bearer_token(request: Request) -> str | None:
	auth_header = request.headers.get("authorization", "")
	scheme, _, token = auth_header.partition(" ")
	if scheme.lower() != "bearer" or not token.strip():
		return None
	return token.strip()


def _principal_from_credentials(credentials: HTTPAuthorizationCredentials | None) -> Principal:
	if credentials is None or credentials.scheme.lower() != "bearer":
		raise _raise_auth(AuthError(code="auth_required", detail="Bearer token is required"))
	try:
		payload = decode_token(credentials.credentials)
	except AuthError as exc:
		raise _raise_auth(exc) from exc
	return Principal(
		subject=payload["sub"],
		role=payload["role"],
		display_name=payload.get("name"),
		branch=payload.get("branch"),
	)


async def get_principal(request: Request) -> Principal:
	credentials = await bearer_scheme(request)
	return _principal_from_credentials(credentials)


async def has_permission(db: AsyncSession, principal: Principal, action: str, module_key: str = LOGBOOK_MODULE) -> bool:
	if principal.is_admin:
		return True
	row = await db.execute(
		select(RolePermission).where(
			RolePermission.role == principal.role,
			RolePermission.module_key == module_key,
		)
	)
	permission = row.scalar_one_or_none()
	return permission is not None and permission.allows(action)


def require_permission(action: str, module_key: str = LOGBOOK_MODULE) -> Callable[..., Principal]:
	async def dependency(
		principal: Principal = Depends(get_principal),
		db: AsyncSession = Depends(get_db),
	) -> Principal:
		if not await has_permission(db, principal, action, module_key):
			raise HTTPException(
				status_code=status.HTTP_403_FORBIDDEN,
				detail={"error": "forbidden", "message": f"Role {principal.role!r} may not {action} {module_key}"},
			)
		return principal

	return dependency
