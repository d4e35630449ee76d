"""Append-only audit trail for batch record changes."""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.models.audit import AuditEvent
from batchqc.models.enums import AuditActionEnum

RESOURCE_BATCH_RECORD = "batch_record"


async def append_audit_event(
	db: AsyncSession,
	*,
	actor_id: str,
	action: AuditActionEnum,
	resource_id: str,
	details: dict[str, Any] | None = None,
	resource_type: str = RESOURCE_BATCH_RECORD,
) -> AuditEvent:
	"""Stage an audit row in the caller's transaction."""
	event = AuditEvent(
		actor_id=actor_id,
		action=action,
		resource_type=resource_type,
		resource_id=resource_id,
		details=json.loads(json.dumps(details, default=str)) if details is not None else None,
	)
	db.add(event)
	await db.flush()
	return event
