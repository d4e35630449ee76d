"""JWT access token creation and validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from batchqc.config import get_settings

REQUIRED_CLAIMS = ("sub", "role")


@dataclass(slots=True)
class AuthError(Exception):
	"""Structured authentication error for consistent mapping at the edge."""

	code: str
	detail: str
	status_code: int = 401


def create_access_token(
	subject: str,
	role: str,
	name: str | None = None,
	branch: str | None = None,
	expires_minutes: int | None = None,
) -> str:
	"""Issue a token with the claims the identity provider puts in its tokens."""
	settings = get_settings()
	ttl = expires_minutes or settings.jwt_access_token_expire_minutes
	now = datetime.now(UTC)
	claims: dict[str, Any] = {
		"sub": subject,
		"typ": "access",
		"role": role,
		"iat": int(now.timestamp()),
		"exp": int((now + timedelta(minutes=ttl)).timestamp()),
	}
	if name:
		claims["name"] = name
	if branch:
		claims["branch"] = branch
	return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
	"""Verify signature and expiry; the identity claims must be non-empty strings."""
	settings = get_settings()
	try:
		payload = jwt.decode(
			token,
			settings.jwt_secret,
			algorithms=[settings.jwt_algorithm],
			options={"require_exp": True, "require_sub": True},
		)
	except ExpiredSignatureError as exc:
		raise AuthError(code="token_expired", detail="Authentication token has expired") from exc
	except JWTError as exc:
		raise AuthError(code="token_invalid", detail="Invalid authentication token") from exc

	for claim in REQUIRED_CLAIMS:
		value = payload.get(claim)
		if not isinstance(value, str) or not value.strip():
			raise AuthError(code="token_invalid", detail=f"Token claim {claim!r} is missing")
	return payload
