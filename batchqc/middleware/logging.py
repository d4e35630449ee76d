"""structlog setup and per-request logging with request ID propagation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from batchqc.config import LogFormat, get_settings

REQUEST_ID_HEADER = "x-request-id"
# Health checks hit these every few seconds; they are logged at debug.
QUIET_PATHS = frozenset({"/health", "/health/ready"})

_configured = False


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
	event_dict.setdefault("service", "batchqc")
	return event_dict


def configure_structured_logging() -> None:
	global _configured
	if _configured:
		return

	settings = get_settings()
	level = logging.getLevelName(settings.log_level.upper())
	if not isinstance(level, int):
		level = logging.INFO

	if settings.log_format is LogFormat.console:
		renderer: Any = structlog.dev.ConsoleRenderer()
	else:
		renderer = structlog.processors.JSONRenderer()
	# uvicorn and sqlalchemy keep logging through the stdlib root logger.
	logging.basicConfig(level=level, format="%(message)s")

	structlog.configure(
		processors=[
			structlog.contextvars.merge_contextvars,
			_add_service,
			structlog.processors.add_log_level,
			structlog.processors.TimeStamper(fmt="iso", utc=True),
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(level),
		logger_factory=structlog.PrintLoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Bind a request id to every log line of the request and echo it back."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
		request.state.request_id = request_id
		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(
			request_id=request_id,
			method=request.method,
			path=request.url.path,
		)

		logger = structlog.get_logger("batchqc.request")
		started = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception:
			logger.exception("request_failed", elapsed_ms=_elapsed_ms(started))
			raise

		response.headers[REQUEST_ID_HEADER] = request_id
		log = logger.debug if request.url.path in QUIET_PATHS else logger.info
		log("request_completed", status_code=response.status_code, elapsed_ms=_elapsed_ms(started))
		return response


def _elapsed_ms(started: float) -> float:
	return round((time.perf_counter() - started) * 1000.0, 2)
