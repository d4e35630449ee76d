"""Dashboard and production reports, cached in Redis per filter set."""

from __future__ import annotations

import hashlib
import json
from datetime import date
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.config import Settings, get_settings
from batchqc.quality.catalog import StandardsCatalog, get_catalog
from batchqc.quality.reporting import (
	DashboardReport,
	ProductionSummary,
	RecordFilters,
	build_dashboard,
	build_production_summary,
)
from batchqc.services.record_service import REPORTS_VERSION_KEY
from batchqc.services.record_store import RecordStore, SqlRecordStore

logger = structlog.get_logger("batchqc.services.report_service")


class ReportService:
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

	async def get_dashboard(self, filters: RecordFilters, today: date | None = None) -> DashboardReport:
		cache_key = await self._cache_key("dashboard", filters, today)
		cached = await self._read_cache(cache_key)
		if cached is not None:
			return DashboardReport.model_validate(cached)

		records = await self.store.query_all(filters, today=today)
		report = build_dashboard(
			records,
			self.catalog,
			product_code=filters.product_code,
			status=filters.status,
			dashboard_parameters=self.settings.dashboard_status_parameters,
		)
		await self._write_cache(cache_key, report.model_dump(mode="json"))
		return report

	async def get_production_summary(
		self,
		filters: RecordFilters,
		top_n: int | None = None,
		today: date | None = None,
	) -> ProductionSummary:
		cache_key = await self._cache_key(f"production:{top_n or 'all'}", filters, today)
		cached = await self._read_cache(cache_key)
		if cached is not None:
			return ProductionSummary.model_validate(cached)

		records = await self.store.query_all(filters, today=today)
		summary = build_production_summary(records, self.catalog, top_n=top_n)
		await self._write_cache(cache_key, summary.model_dump(mode="json"))
		return summary

	async def _cache_key(self, kind: str, filters: RecordFilters, today: date | None) -> str | None:
		if self.redis_client is None:
			return None
		try:
			version = await self.redis_client.get(REPORTS_VERSION_KEY)
		except RedisError as exc:
			logger.warning("report_cache_unavailable", error=str(exc))
			return None
		if isinstance(version, bytes):
			version = version.decode("utf-8")
		fingerprint = json.dumps(
			{
				"branch": filters.branch,
				"family": filters.family,
				"product_code": filters.product_code,
				"date_range": str(filters.date_range),
				"search": filters.search,
				"status": filters.status.value if filters.status else None,
				"today": (today or date.today()).isoformat(),
			},
			sort_keys=True,
		)
		digest = hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:16]
		return f"reports:v{version or 0}:{kind}:{digest}"

	async def _read_cache(self, cache_key: str | None) -> Any | None:
		if cache_key is None or self.redis_client is None:
			return None
		try:
			cached = await self.redis_client.get(cache_key)
		except RedisError as exc:
			logger.warning("report_cache_read_failed", error=str(exc))
			return None
		if cached is None:
			return None
		logger.debug("report_cache_hit", cache_key=cache_key)
		return json.loads(cached)

	async def _write_cache(self, cache_key: str | None, payload: Any) -> None:
		if cache_key is None or self.redis_client is None:
			return
		try:
			await self.redis_client.setex(cache_key, self.settings.report_cache_ttl_seconds, json.dumps(payload))
		except RedisError as exc:
			logger.warning("report_cache_write_failed", error=str(exc))
