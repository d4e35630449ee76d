"""Batch record lifecycle: validate, evaluate, assign a lot id, persist, audit."""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.auth.dependencies import Principal
from batchqc.config import LotAssignmentStrategy, Settings, get_settings
from batchqc.models.enums import AuditActionEnum
from batchqc.models.records import BatchRecord
from batchqc.quality.aggregator import BatchMeasurements, RecordEvaluation, evaluate_record
from batchqc.quality.catalog import ProductFamily, StandardsCatalog, get_catalog
from batchqc.quality.errors import RecordValidationError
from batchqc.quality.lots import LotDraft, assign_lot_id, reserve_lot_id
from batchqc.quality.reporting import RecordFilters
from batchqc.schemas.records import BatchRecordCreate, BatchRecordUpdate
from batchqc.services.audit_service import append_audit_event
from batchqc.services.record_store import RecordStore, SqlRecordStore

logger = structlog.get_logger("batchqc.services.record_service")

REPORTS_VERSION_KEY = "reports:version"
EDITABLE_FIELDS = ("ph", "solids_reading_1", "solids_reading_2", "appearance", "color", "aroma")
_SOLIDS_REQUIRED = (
	("solids_reading_1", "first solids reading"),
	("solids_temperature_1", "first solids temperature"),
	("solids_reading_2", "second solids reading"),
	("solids_temperature_2", "second solids temperature"),
)


class RecordService:
	def __init__(
		self,
		db: AsyncSession,
		redis_client: Redis | None = None,
		catalog: StandardsCatalog | None = None,
		store: RecordStore | None = None,
		settings: Settings | None = None,
	):
		self.db = db
		self.redis_client = redis_client
		self.catalog = catalog or get_catalog()
		self.store = store or SqlRecordStore(db)
		self.settings = settings or get_settings()

	# ── Validation & evaluation ─────────────────────────────────────────────

	def validate_submission(self, payload: BatchRecordCreate) -> ProductFamily:
		"""Business rules beyond the request shape; raises ``RecordValidationError``.

		Returns the catalog family of the product, which is what gets stored.
		"""
		if not self.catalog.is_known_branch(payload.branch):
			raise RecordValidationError("branch", f"unknown branch {payload.branch!r}")
		family = self.catalog.family_for(payload.product_code)
		if family is None:
			raise RecordValidationError("product_code", f"unknown product {payload.product_code!r}")
		if payload.product_family and payload.product_family.casefold() != family.name.casefold():
			raise RecordValidationError(
				"product_family",
				f"{payload.product_code} belongs to {family.name!r}, not {payload.product_family!r}",
			)

		applicability = self.catalog.applicability_for(payload.product_code)
		if applicability.solids:
			for field, label in _SOLIDS_REQUIRED:
				if getattr(payload, field) is None:
					raise RecordValidationError(field, f"{label} is required for {payload.product_code}")
		if applicability.ph and payload.ph is None:
			raise RecordValidationError("ph", f"pH is required for {payload.product_code}")
		if not payload.appearance:
			raise RecordValidationError("appearance", "appearance is required")
		return family

	def evaluate(self, measurements: BatchMeasurements) -> RecordEvaluation:
		return evaluate_record(
			measurements,
			self.catalog,
			dashboard_parameters=self.settings.dashboard_status_parameters,
		)

	def evaluate_submission(self, payload: BatchRecordCreate) -> RecordEvaluation:
		"""Live preview: validate and classify without touching the store."""
		self.validate_submission(payload)
		return self.evaluate(BatchMeasurements.from_record(payload))

	# ── Lifecycle ───────────────────────────────────────────────────────────

	async def submit(
		self,
		payload: BatchRecordCreate,
		principal: Principal,
	) -> tuple[BatchRecord, RecordEvaluation]:
		family = self.validate_submission(payload)
		evaluation = self.evaluate(BatchMeasurements.from_record(payload))

		draft = LotDraft(
			branch=payload.branch,
			product_code=payload.product_code,
			manufacture_date=payload.manufacture_date,
			batch_size=payload.batch_size,
		)
		if self.settings.lot_assignment_strategy is LotAssignmentStrategy.counted:
			lot_id = await assign_lot_id(draft, self.store, self.catalog)
		else:
			lot_id = await reserve_lot_id(draft, self.store, self.catalog)

		values = payload.model_dump()
		values.update(
			product_family=family.name,
			lot_id=lot_id,
			overall_status=evaluation.overall_status,
			failed_parameters=list(evaluation.failed_parameters),
			submitted_by=principal.subject,
		)
		record = await self.store.insert(values)
		await append_audit_event(
			self.db,
			actor_id=principal.subject,
			action=AuditActionEnum.create_record,
			resource_id=str(record.id),
			details={
				"lot_id": lot_id,
				"product_code": payload.product_code,
				"branch": payload.branch,
				"overall_status": evaluation.overall_status.value,
			},
		)
		await self._commit_and_invalidate()
		logger.info(
			"record_submitted",
			record_id=str(record.id),
			lot_id=lot_id,
			overall_status=evaluation.overall_status.value,
			failed_parameters=evaluation.failed_parameters,
			actor=principal.subject,
		)
		return record, evaluation

	async def get_record(self, record_id: uuid.UUID) -> BatchRecord:
		record = await self.store.get(record_id)
		if record is None:
			raise LookupError(f"record {record_id} not found")
		return record

	async def list_records(self, filters: RecordFilters, limit: int | None = None) -> list[BatchRecord]:
		return await self.store.query(filters, limit=limit, newest_first=True)

	async def update_record(
		self,
		record_id: uuid.UUID,
		payload: BatchRecordUpdate,
		principal: Principal,
	) -> tuple[BatchRecord, RecordEvaluation]:
		"""Apply admin corrections and re-derive the status; the lot id stays."""
		record = await self.get_record(record_id)
		changes: dict[str, Any] = {
			field: value
			for field, value in payload.model_dump(exclude_unset=True).items()
			if field in EDITABLE_FIELDS
		}
		if "appearance" in changes and not changes["appearance"]:
			raise RecordValidationError("appearance", "appearance is required")

		merged = {field: getattr(record, field) for field in EDITABLE_FIELDS} | changes
		evaluation = self.evaluate(
			BatchMeasurements(
				product_code=record.product_code,
				ph=merged["ph"],
				solids_reading_1=merged["solids_reading_1"],
				solids_reading_2=merged["solids_reading_2"],
				appearance=merged["appearance"],
			)
		)
		previous = {field: _plain(getattr(record, field)) for field in changes}
		changes.update(
			overall_status=evaluation.overall_status,
			failed_parameters=list(evaluation.failed_parameters),
		)
		updated = await self.store.update(record_id, changes)
		await append_audit_event(
			self.db,
			actor_id=principal.subject,
			action=AuditActionEnum.update_record,
			resource_id=str(record_id),
			details={
				"lot_id": updated.lot_id,
				"before": previous,
				"after": {field: _plain(value) for field, value in changes.items()},
			},
		)
		await self._commit_and_invalidate()
		logger.info(
			"record_updated",
			record_id=str(record_id),
			lot_id=updated.lot_id,
			fields=sorted(previous),
			overall_status=evaluation.overall_status.value,
			actor=principal.subject,
		)
		return updated, evaluation

	async def delete_record(self, record_id: uuid.UUID, principal: Principal) -> None:
		record = await self.get_record(record_id)
		lot_id = record.lot_id
		await self.store.delete(record_id)
		await append_audit_event(
			self.db,
			actor_id=principal.subject,
			action=AuditActionEnum.delete_record,
			resource_id=str(record_id),
			details={"lot_id": lot_id},
		)
		await self._commit_and_invalidate()
		logger.info("record_deleted", record_id=str(record_id), lot_id=lot_id, actor=principal.subject)

	async def _commit_and_invalidate(self) -> None:
		"""Commit before bumping the report version.

		A dashboard that reads the new version must already see the new rows,
		otherwise it would cache the old ones under the new key.
		"""
		await self.db.commit()
		await self._invalidate_reports()

	async def _invalidate_reports(self) -> None:
		if self.redis_client is None:
			return
		try:
			await self.redis_client.incr(REPORTS_VERSION_KEY)
		except RedisError as exc:
			logger.warning("report_cache_invalidation_failed", error=str(exc))


def _plain(value: Any) -> Any:
	return getattr(value, "value", value)
