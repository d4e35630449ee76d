"""Redis-backed submission rate limiting middleware."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from batchqc.auth.dependencies import bearer_token
from batchqc.auth.jwt import AuthError, decode_token
from batchqc.config import get_settings

SUBMISSION_PATHS = ("/api/v1/records", "/api/v1/records/evaluate")


def _identity_key(request: Request) -> str:
	"""Quota owner: the token subject, or the client address for anonymous or bad tokens."""
	token = bearer_token(request)
	if token is not None:
		try:
			subject = decode_token(token)["sub"]
		except AuthError:
			# Rejected later by the route; count it against the address.
			subject = None
		if subject:
			return f"sub:{subject}"
	client = request.client.host if request.client else "unknown"
	return f"ip:{client}"


class RateLimitMiddleware(BaseHTTPMiddleware):
	"""Per-identity, per-minute quota on record submissions."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		if request.method != "POST" or request.url.path.rstrip("/") not in SUBMISSION_PATHS:
			return await call_next(request)

		redis_client = getattr(request.app.state, "redis", None)
		if redis_client is None:
			return await call_next(request)

		quota = get_settings().rate_limit_submissions_per_minute
		minute_bucket = datetime.now(UTC).strftime("%Y%m%d%H%M")
		key = f"ratelimit:submissions:{_identity_key(request)}:{minute_bucket}"
		current = await redis_client.incr(key)
		if current == 1:
			await redis_client.expire(key, 65)

		if current > quota:
			return JSONResponse(
				status_code=429,
				content={
					"detail": {
						"error": "rate_limited",
						"message": "Submission quota exceeded, retry in a minute",
						"quota": quota,
						"retryable": True,
					}
				},
			)

		return await call_next(request)
