"""Record Store: durable, queryable batch records backed by PostgreSQL."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Protocol

import structlog
from sqlalchemy import Select, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.models.records import BatchRecord, LotSequence
from batchqc.quality.errors import RecordStoreError
from batchqc.quality.lots import UNASSIGNED_LOT_MARKERS, LotKey
from batchqc.quality.reporting import RecordFilters, date_range_start

logger = structlog.get_logger("batchqc.services.record_store")

MAX_QUERY_LIMIT = 1000
LOT_ID_CONSTRAINT = "uq_batch_records_lot_id"


class RecordStore(Protocol):
	async def count_assigned_lots(self, key: LotKey) -> int: ...

	async def reserve_lot_sequence(self, key: LotKey) -> int: ...

	async def insert(self, values: dict[str, Any]) -> BatchRecord: ...

	async def query(
		self,
		filters: RecordFilters,
		limit: int | None = None,
		newest_first: bool = True,
		today: date | None = None,
	) -> list[BatchRecord]: ...

	async def query_all(self, filters: RecordFilters, today: date | None = None) -> list[BatchRecord]: ...

	async def get(self, record_id: uuid.UUID) -> BatchRecord | None: ...

	async def update(self, record_id: uuid.UUID, values: dict[str, Any]) -> BatchRecord: ...

	async def delete(self, record_id: uuid.UUID) -> None: ...


def filtered_select(filters: RecordFilters, today: date | None = None) -> Select:
	"""``SELECT`` over batch records narrowed by the store-level filters."""
	stmt = select(BatchRecord)
	if filters.branch:
		stmt = stmt.where(BatchRecord.branch == filters.branch)
	if filters.family:
		stmt = stmt.where(BatchRecord.product_family == filters.family)
	if filters.product_code:
		stmt = stmt.where(BatchRecord.product_code == filters.product_code)
	start = date_range_start(filters.date_range, today or date.today())
	if start is not None:
		stmt = stmt.where(BatchRecord.manufacture_date >= start)
	if filters.search:
		pattern = f"%{filters.search.strip()}%"
		stmt = stmt.where(
			or_(
				BatchRecord.lot_id.ilike(pattern),
				BatchRecord.product_code.ilike(pattern),
				BatchRecord.branch.ilike(pattern),
			)
		)
	return stmt


class SqlRecordStore:
	"""``RecordStore`` over an ``AsyncSession``; the caller owns the transaction."""

	def __init__(self, db: AsyncSession):
		self.db = db

	async def count_assigned_lots(self, key: LotKey) -> int:
		stmt = (
			select(func.count())
			.select_from(BatchRecord)
			.where(
				BatchRecord.branch == key.branch,
				BatchRecord.product_code == key.product_code,
				BatchRecord.manufacture_date == key.manufacture_date,
				BatchRecord.lot_id.is_not(None),
				BatchRecord.lot_id.not_in(UNASSIGNED_LOT_MARKERS),
			)
		)
		try:
			return int((await self.db.execute(stmt)).scalar_one())
		except SQLAlchemyError as exc:
			logger.error("lot_count_failed", error=str(exc), branch=key.branch)
			raise RecordStoreError(f"could not count lots: {exc.__class__.__name__}") from exc

	async def reserve_lot_sequence(self, key: LotKey) -> int:
		"""Atomically take the next sequence value for ``key``.

		The first reservation for a key is seeded from the count of lots
		already assigned, so keys that predate the counter continue from
		their existing records.
		"""
		seed = await self.count_assigned_lots(key) + 1
		stmt = pg_insert(LotSequence).values(
			branch=key.branch,
			product_code=key.product_code,
			manufacture_date=key.manufacture_date,
			last_value=seed,
		)
		stmt = stmt.on_conflict_do_update(
			index_elements=[
				LotSequence.branch,
				LotSequence.product_code,
				LotSequence.manufacture_date,
			],
			set_={
				"last_value": func.greatest(LotSequence.last_value + 1, stmt.excluded.last_value),
			},
		).returning(LotSequence.last_value)
		try:
			return int((await self.db.execute(stmt)).scalar_one())
		except SQLAlchemyError as exc:
			logger.error("lot_reservation_failed", error=str(exc), branch=key.branch)
			raise RecordStoreError(f"could not reserve lot sequence: {exc.__class__.__name__}") from exc

	async def insert(self, values: dict[str, Any]) -> BatchRecord:
		record = BatchRecord(**values)
		self.db.add(record)
		try:
			await self.db.flush()
			await self.db.refresh(record)
		except IntegrityError as exc:
			if LOT_ID_CONSTRAINT not in str(exc.orig):
				logger.error("record_insert_rejected", error=str(exc.orig))
				raise RecordStoreError(f"record rejected by the database: {exc.orig}", retryable=False) from exc
			logger.warning("record_insert_conflict", lot_id=values.get("lot_id"))
			raise RecordStoreError(
				f"lot id {values.get('lot_id')!r} is already assigned",
				code="duplicate_lot_id",
			) from exc
		except SQLAlchemyError as exc:
			logger.error("record_insert_failed", error=str(exc))
			raise RecordStoreError(f"could not insert record: {exc.__class__.__name__}") from exc
		return record

	async def query(
		self,
		filters: RecordFilters,
		limit: int | None = None,
		newest_first: bool = True,
		today: date | None = None,
	) -> list[BatchRecord]:
		order = BatchRecord.created_at.desc() if newest_first else BatchRecord.created_at.asc()
		stmt = filtered_select(filters, today).order_by(order)
		return await self._fetch(stmt.limit(min(limit or MAX_QUERY_LIMIT, MAX_QUERY_LIMIT)))

	async def query_all(self, filters: RecordFilters, today: date | None = None) -> list[BatchRecord]:
		"""Every matching record, oldest first; reports aggregate over all of them."""
		return await self._fetch(filtered_select(filters, today).order_by(BatchRecord.created_at.asc()))

	async def _fetch(self, stmt: Select) -> list[BatchRecord]:
		try:
			rows = await self.db.execute(stmt)
		except SQLAlchemyError as exc:
			logger.error("record_query_failed", error=str(exc))
			raise RecordStoreError(f"could not query records: {exc.__class__.__name__}") from exc
		return list(rows.scalars().all())

	async def get(self, record_id: uuid.UUID) -> BatchRecord | None:
		try:
			return await self.db.get(BatchRecord, record_id)
		except SQLAlchemyError as exc:
			raise RecordStoreError(f"could not load record: {exc.__class__.__name__}") from exc

	async def update(self, record_id: uuid.UUID, values: dict[str, Any]) -> BatchRecord:
		record = await self.get(record_id)
		if record is None:
			raise LookupError(f"record {record_id} not found")
		for field, value in values.items():
			setattr(record, field, value)
		try:
			await self.db.flush()
			await self.db.refresh(record)
		except SQLAlchemyError as exc:
			logger.error("record_update_failed", record_id=str(record_id), error=str(exc))
			raise RecordStoreError(f"could not update record: {exc.__class__.__name__}") from exc
		return record

	async def delete(self, record_id: uuid.UUID) -> None:
		record = await self.get(record_id)
		if record is None:
			raise LookupError(f"record {record_id} not found")
		try:
			await self.db.delete(record)
			await self.db.flush()
		except SQLAlchemyError as exc:
			logger.error("record_delete_failed", record_id=str(record_id), error=str(exc))
			raise RecordStoreError(f"could not delete record: {exc.__class__.__name__}") from exc
