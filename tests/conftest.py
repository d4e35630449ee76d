"""Shared pytest fixtures: async test client, synthetic catalog, in-memory store and fakes."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from batchqc.auth.dependencies import Principal, get_principal
from batchqc.auth.jwt import create_access_token
from batchqc.database import get_db
from batchqc.main import app
from batchqc.models.enums import OverallStatusEnum, SensoryCheckEnum
from batchqc.models.records import BatchRecord
from batchqc.quality.catalog import StandardsCatalog, get_catalog
from batchqc.quality.errors import RecordStoreError
from batchqc.quality.lots import UNASSIGNED_LOT_MARKERS, LotKey
from batchqc.quality.reporting import RecordFilters


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()
		self.flush = AsyncMock()
		self.add = MagicMock()
		self.added: list[Any] = []
		self.add.side_effect = self.added.append


class FakeRedis:
	def __init__(self) -> None:
		self._values: dict[str, Any] = {}
		self._counter: dict[str, int] = {}
		self.get = AsyncMock(side_effect=self._get)
		self.setex = AsyncMock(side_effect=self._setex)
		self.incr = AsyncMock(side_effect=self._incr)
		self.expire = AsyncMock(return_value=True)
		self.ping = AsyncMock(return_value=True)

	async def _get(self, key: str) -> Any:
		if key in self._counter:
			return str(self._counter[key])
		return self._values.get(key)

	async def _setex(self, key: str, _ttl: int, value: Any) -> bool:
		self._values[key] = value
		return True

	async def _incr(self, key: str) -> int:
		value = self._counter.get(key, 0) + 1
		self._counter[key] = value
		return value


class InMemoryRecordStore:
	"""RecordStore double that enforces the unique lot id like the real table."""

	def __init__(self, yield_on_count: bool = False) -> None:
		self.records: dict[uuid.UUID, BatchRecord] = {}
		self.sequences: dict[LotKey, int] = {}
		self.yield_on_count = yield_on_count
		self.fail_inserts = False

	def _count(self, key: LotKey) -> int:
		return sum(
			1
			for record in self.records.values()
			if record.branch == key.branch
			and record.product_code == key.product_code
			and record.manufacture_date == key.manufacture_date
			and record.lot_id is not None
			and record.lot_id not in UNASSIGNED_LOT_MARKERS
		)

	async def count_assigned_lots(self, key: LotKey) -> int:
		count = self._count(key)
		if self.yield_on_count:
			# Let a concurrent submission read the same count.
			await asyncio.sleep(0)
		return count

	async def reserve_lot_sequence(self, key: LotKey) -> int:
		# No await between read and write, like the single upsert statement.
		value = max(self.sequences.get(key, 0) + 1, self._count(key) + 1)
		self.sequences[key] = value
		return value

	async def insert(self, values: dict[str, Any]) -> BatchRecord:
		if self.fail_inserts:
			raise RecordStoreError("database unavailable")
		if any(record.lot_id == values["lot_id"] for record in self.records.values()):
			raise RecordStoreError(f"lot id {values['lot_id']!r} is already assigned", code="duplicate_lot_id")
		now = datetime.now(UTC)
		record = BatchRecord(id=uuid.uuid4(), created_at=now, updated_at=now, **values)
		self.records[record.id] = record
		return record

	async def query(
		self,
		filters: RecordFilters,
		limit: int | None = None,
		newest_first: bool = True,
		today: date | None = None,
	) -> list[BatchRecord]:
		rows = [r for r in self.records.values() if filters.matches(r, today or date.today())]
		if newest_first:
			rows.reverse()
		return rows[:limit] if limit else rows

	async def query_all(self, filters: RecordFilters, today: date | None = None) -> list[BatchRecord]:
		return [r for r in self.records.values() if filters.matches(r, today or date.today())]

	async def get(self, record_id: uuid.UUID) -> BatchRecord | None:
		return self.records.get(record_id)

	async def update(self, record_id: uuid.UUID, values: dict[str, Any]) -> BatchRecord:
		record = self.records.get(record_id)
		if record is None:
			raise LookupError(f"record {record_id} not found")
		for field, value in values.items():
			setattr(record, field, value)
		return record

	async def delete(self, record_id: uuid.UUID) -> None:
		if self.records.pop(record_id, None) is None:
			raise LookupError(f"record {record_id} not found")


def build_catalog() -> StandardsCatalog:
	return StandardsCatalog.model_validate(
		{
			"branches": {"Matriz": "MTZ", "Sucursal Norte": "NTE"},
			"families": [
				{"name": "Limpiadores Liquidos", "group": "Hogar", "unit": "volume", "products": ["LIMP", "DRCOL"]},
				{"name": "Gel Antibacterial", "group": "Antibacterial", "unit": "volume", "products": ["GEL"]},
				{
					"name": "Bases limpiadores liquidos multiusos",
					"group": "Hogar",
					"unit": "pieces",
					"products": ["BLIMP"],
				},
				{"name": "Aromatizantes", "group": "Hogar", "unit": "volume", "products": ["AROMA"]},
			],
			"solids_standards": [
				{"product_code": "LIMP", "solids_min": "10", "solids_max": "20"},
				{"product_code": "DRCOL", "solids_min": "28", "solids_max": "32"},
				{"product_code": "BLIMP", "solids_min": "20", "solids_max": "24"},
			],
			"ph_standards": [
				{"product_code": "LIMP", "ph_min": "6", "ph_max": "8"},
				{"product_code": "DRCOL", "ph_min": "7", "ph_max": "8"},
				{"product_code": "GEL", "ph_min": "6", "ph_max": "8"},
				{"product_code": "BLIMP", "ph_min": "6", "ph_max": "8"},
			],
			"appearance_standards": [
				{"product_code": "LIMP", "appearance": "CRISTALINO"},
				{"product_code": "DRCOL", "appearance": "OPACO"},
				{"product_code": "GEL", "appearance": "CRISTALINO"},
				{"product_code": "BLIMP", "appearance": "OPACO"},
			],
			"applicability": [
				{"product_code": "LIMP", "solids": True, "ph": True},
				{"product_code": "DRCOL", "solids": True, "ph": True},
				{"product_code": "GEL", "solids": False, "ph": True},
				{"product_code": "BLIMP", "solids": True, "ph": True},
				{"product_code": "AROMA", "solids": True, "ph": False},
			],
		}
	)


def make_record(**overrides: Any) -> BatchRecord:
	"""A persisted-looking record for reporting and API tests."""
	now = datetime.now(UTC)
	values: dict[str, Any] = {
		"id": uuid.uuid4(),
		"branch": "Matriz",
		"preparer_name": "Ana Lopez",
		"manufacture_date": date(2025, 3, 14),
		"product_code": "LIMP",
		"product_family": "Limpiadores Liquidos",
		"batch_size": Decimal("200"),
		"ph": 7,
		"solids_reading_1": 15.0,
		"solids_temperature_1": 25.0,
		"solids_reading_2": 15.0,
		"solids_temperature_2": 25.0,
		"appearance": "CRISTALINO",
		"color": SensoryCheckEnum.conforme,
		"aroma": SensoryCheckEnum.conforme,
		"notes": "",
		"lot_id": "250314-MTZ-LIMP200-01",
		"overall_status": OverallStatusEnum.conforme,
		"failed_parameters": [],
		"submitted_by": "user-1",
		"created_at": now,
		"updated_at": now,
	}
	values.update(overrides)
	return BatchRecord(**values)


@pytest.fixture
def catalog() -> StandardsCatalog:
	return build_catalog()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
	return InMemoryRecordStore()


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides in API tests."""
	return FakeAsyncSession()


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@pytest.fixture
def admin_principal() -> Principal:
	return Principal(subject="admin-1", role="admin", display_name="Admin", branch="Matriz")


@pytest.fixture
def operator_principal() -> Principal:
	return Principal(subject="operator-1", role="preparador", display_name="Ana Lopez", branch="Matriz")


@pytest.fixture
def submission_payload() -> dict[str, Any]:
	return {
		"branch": "Matriz",
		"preparer_name": "Ana Lopez",
		"manufacture_date": "2025-03-14",
		"product_code": "LIMP",
		"batch_size": "200",
		"ph": 7,
		"solids_reading_1": 15.0,
		"solids_temperature_1": 25.0,
		"solids_reading_2": 15.5,
		"solids_temperature_2": 25.0,
		"appearance": "Cristalino",
		"color": "CONFORME",
		"aroma": "CONFORME",
		"notes": "",
	}


@asynccontextmanager
async def _noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
	yield


@pytest.fixture
async def client(
	fake_db_session: FakeAsyncSession,
	catalog: StandardsCatalog,
	admin_principal: Principal,
) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled, DB mocked and an admin caller."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	async def override_principal() -> Principal:
		return admin_principal

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_principal] = override_principal
	app.dependency_overrides[get_catalog] = lambda: catalog
	original_lifespan = app.router.lifespan_context
	app.router.lifespan_context = _noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
	if hasattr(app.state, "redis"):
		del app.state.redis


@pytest.fixture
async def auth_client(
	fake_db_session: FakeAsyncSession,
	catalog: StandardsCatalog,
) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with DB override only (real auth dependencies active)."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_catalog] = lambda: catalog
	original_lifespan = app.router.lifespan_context
	app.router.lifespan_context = _noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()


@pytest.fixture
def access_token() -> str:
	return create_access_token("operator-1", role="preparador", name="Ana Lopez", branch="Matriz")
