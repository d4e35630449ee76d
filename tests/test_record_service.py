from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from redis.exceptions import RedisError

from batchqc.config import LotAssignmentStrategy, Settings
from batchqc.models.enums import AuditActionEnum, OverallStatusEnum
from batchqc.models.records import BatchRecord
from batchqc.quality.errors import RecordStoreError, RecordValidationError
from batchqc.quality.lots import LotKey
from batchqc.quality.reporting import RecordFilters
from batchqc.schemas.records import BatchRecordCreate, BatchRecordUpdate
from batchqc.services.record_service import REPORTS_VERSION_KEY, RecordService
from batchqc.services.record_store import MAX_QUERY_LIMIT
from batchqc.services.report_service import ReportService
from tests.conftest import make_record

LIMP_KEY = LotKey("Matriz", "LIMP", date(2025, 3, 14))


@pytest.fixture
def service(fake_db_session, fake_redis, catalog, record_store) -> RecordService:
    return RecordService(
        fake_db_session,
        redis_client=fake_redis,
        catalog=catalog,
        store=record_store,
        settings=Settings(),
    )


def _payload(submission_payload, **overrides) -> BatchRecordCreate:
    return BatchRecordCreate.model_validate({**submission_payload, **overrides})


@pytest.mark.asyncio
async def test_submit_assigns_lot_and_persists(
    service, submission_payload, admin_principal, fake_db_session, fake_redis, record_store
) -> None:
    record, evaluation = await service.submit(_payload(submission_payload), admin_principal)

    assert record.lot_id == "250314-MTZ-LIMP200-01"
    assert record.product_family == "Limpiadores Liquidos"
    assert record.overall_status is OverallStatusEnum.conforme
    assert record.failed_parameters == []
    assert record.submitted_by == "admin-1"
    assert evaluation.solids_average == Decimal("15.25")
    assert record.id in record_store.records

    audit = fake_db_session.added[0]
    assert audit.action is AuditActionEnum.create_record
    assert audit.details["lot_id"] == record.lot_id
    fake_redis.incr.assert_awaited_once_with(REPORTS_VERSION_KEY)


@pytest.mark.asyncio
async def test_sequential_submissions_get_consecutive_lots(service, submission_payload, admin_principal) -> None:
    first, _ = await service.submit(_payload(submission_payload), admin_principal)
    second, _ = await service.submit(_payload(submission_payload), admin_principal)
    other_day, _ = await service.submit(
        _payload(submission_payload, manufacture_date="2025-03-15"), admin_principal
    )
    assert (first.lot_id, second.lot_id) == ("250314-MTZ-LIMP200-01", "250314-MTZ-LIMP200-02")
    assert other_day.lot_id == "250315-MTZ-LIMP200-01"


@pytest.mark.asyncio
async def test_failed_parameters_are_persisted(service, submission_payload, admin_principal) -> None:
    record, evaluation = await service.submit(
        _payload(submission_payload, ph=10, solids_reading_1=20.5, solids_reading_2=20.5),
        admin_principal,
    )
    assert record.overall_status is OverallStatusEnum.no_conforme
    assert record.failed_parameters == ["solids", "ph"]
    assert evaluation.dashboard_status is OverallStatusEnum.retener


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"branch": "Sucursal Desconocida"}, "branch"),
        ({"product_code": "ZZZ999"}, "product_code"),
        ({"product_family": "Bases limpiadores liquidos multiusos"}, "product_family"),
        ({"solids_reading_1": None}, "solids_reading_1"),
        ({"solids_temperature_2": None}, "solids_temperature_2"),
        ({"ph": None}, "ph"),
    ],
)
@pytest.mark.asyncio
async def test_submission_rules(service, submission_payload, admin_principal, record_store, overrides, field) -> None:
    with pytest.raises(RecordValidationError) as excinfo:
        await service.submit(_payload(submission_payload, **overrides), admin_principal)
    assert excinfo.value.field == field
    assert record_store.records == {}


@pytest.mark.asyncio
async def test_family_and_appearance_come_from_catalog(service, submission_payload, admin_principal) -> None:
    record, _ = await service.submit(
        _payload(submission_payload, product_family="limpiadores liquidos", appearance=" cristalino "),
        admin_principal,
    )
    assert record.product_family == "Limpiadores Liquidos"
    assert record.appearance == "CRISTALINO"


@pytest.mark.asyncio
async def test_report_version_moves_after_commit(
    service, submission_payload, admin_principal, fake_db_session, fake_redis
) -> None:
    events: list[str] = []
    fake_db_session.commit.side_effect = lambda: events.append("commit")
    original_incr = fake_redis.incr.side_effect

    async def tracking_incr(key: str) -> int:
        events.append("incr")
        return await original_incr(key)

    fake_redis.incr.side_effect = tracking_incr

    record, _ = await service.submit(_payload(submission_payload), admin_principal)
    await service.update_record(record.id, BatchRecordUpdate(ph=8), admin_principal)
    await service.delete_record(record.id, admin_principal)

    assert events == ["commit", "incr"] * 3


@pytest.mark.asyncio
async def test_products_without_solids_skip_solids_readings(service, submission_payload, admin_principal) -> None:
    payload = _payload(
        submission_payload,
        product_code="gel",
        solids_reading_1=None,
        solids_temperature_1=None,
        solids_reading_2=None,
        solids_temperature_2=None,
    )
    record, evaluation = await service.submit(payload, admin_principal)
    assert record.product_code == "GEL"
    assert record.lot_id == "250314-MTZ-GEL200-01"
    assert evaluation.solids_average is None


def test_preview_does_not_touch_the_store(service, submission_payload, record_store, fake_db_session) -> None:
    evaluation = service.evaluate_submission(_payload(submission_payload, appearance="Turbio"))
    assert evaluation.overall_status is OverallStatusEnum.no_conforme
    assert evaluation.failed_parameters == ["appearance"]
    assert record_store.records == {}
    assert fake_db_session.added == []


@pytest.mark.asyncio
async def test_store_failure_propagates_without_audit(
    service, submission_payload, admin_principal, record_store, fake_db_session, fake_redis
) -> None:
    record_store.fail_inserts = True
    with pytest.raises(RecordStoreError):
        await service.submit(_payload(submission_payload), admin_principal)
    assert fake_db_session.added == []
    fake_redis.incr.assert_not_awaited()


@pytest.mark.asyncio
async def test_strategy_selects_sequence_source(
    fake_db_session, catalog, record_store, submission_payload, admin_principal
) -> None:
    record_store.sequences[LIMP_KEY] = 5

    counted = RecordService(
        fake_db_session,
        catalog=catalog,
        store=record_store,
        settings=Settings(lot_assignment_strategy=LotAssignmentStrategy.counted),
    )
    record, _ = await counted.submit(_payload(submission_payload), admin_principal)
    assert record.lot_id == "250314-MTZ-LIMP200-01"

    reserved = RecordService(fake_db_session, catalog=catalog, store=record_store, settings=Settings())
    record, _ = await reserved.submit(_payload(submission_payload), admin_principal)
    assert record.lot_id == "250314-MTZ-LIMP200-06"


@pytest.mark.asyncio
async def test_cache_invalidation_failure_is_tolerated(
    service, submission_payload, admin_principal, fake_redis
) -> None:
    fake_redis.incr.side_effect = RedisError("connection refused")
    record, _ = await service.submit(_payload(submission_payload), admin_principal)
    assert record.lot_id == "250314-MTZ-LIMP200-01"


@pytest.mark.asyncio
async def test_update_rederives_status_and_keeps_lot(
    service, submission_payload, admin_principal, fake_db_session
) -> None:
    record, _ = await service.submit(_payload(submission_payload), admin_principal)

    updated, evaluation = await service.update_record(
        record.id, BatchRecordUpdate(ph=9), admin_principal
    )
    assert updated.lot_id == "250314-MTZ-LIMP200-01"
    assert updated.ph == 9
    assert updated.overall_status is OverallStatusEnum.no_conforme
    assert updated.failed_parameters == ["ph"]
    assert evaluation.dashboard_status is OverallStatusEnum.conforme

    audit = fake_db_session.added[-1]
    assert audit.action is AuditActionEnum.update_record
    assert audit.details["before"] == {"ph": 7}
    assert audit.details["after"]["ph"] == 9


@pytest.mark.asyncio
async def test_update_rejects_blank_appearance(service, record_store, admin_principal) -> None:
    record = make_record()
    record_store.records[record.id] = record
    with pytest.raises(RecordValidationError):
        await service.update_record(record.id, BatchRecordUpdate.model_construct(appearance=""), admin_principal)


@pytest.mark.asyncio
async def test_missing_record_raises_lookup_error(service, admin_principal) -> None:
    with pytest.raises(LookupError):
        await service.get_record(uuid.uuid4())
    with pytest.raises(LookupError):
        await service.update_record(uuid.uuid4(), BatchRecordUpdate(ph=7), admin_principal)
    with pytest.raises(LookupError):
        await service.delete_record(uuid.uuid4(), admin_principal)


@pytest.mark.asyncio
async def test_delete_removes_and_audits(service, record_store, admin_principal, fake_db_session, fake_redis) -> None:
    record = make_record()
    record_store.records[record.id] = record
    await service.delete_record(record.id, admin_principal)

    assert record.id not in record_store.records
    assert fake_db_session.added[-1].action is AuditActionEnum.delete_record
    assert fake_db_session.added[-1].details == {"lot_id": record.lot_id}
    fake_redis.incr.assert_awaited_once_with(REPORTS_VERSION_KEY)


@pytest.mark.asyncio
async def test_list_records_filters_newest_first(service, record_store) -> None:
    older: BatchRecord = make_record(lot_id="250314-MTZ-LIMP200-01")
    newer: BatchRecord = make_record(lot_id="250314-MTZ-LIMP200-02")
    other = make_record(lot_id="250314-NTE-LIMP200-01", branch="Sucursal Norte")
    for record in (older, newer, other):
        record_store.records[record.id] = record

    rows = await service.list_records(RecordFilters(branch="Matriz"))
    assert [row.lot_id for row in rows] == ["250314-MTZ-LIMP200-02", "250314-MTZ-LIMP200-01"]


# ── Report caching ──────────────────────────────────────────────────────────


@pytest.fixture
def report_service(fake_db_session, fake_redis, catalog, record_store) -> ReportService:
    return ReportService(
        fake_db_session,
        redis_client=fake_redis,
        catalog=catalog,
        store=record_store,
        settings=Settings(),
    )


@pytest.mark.asyncio
async def test_dashboard_is_cached_until_records_change(
    report_service, service, record_store, fake_redis, submission_payload, admin_principal
) -> None:
    today = date(2025, 3, 20)
    record = make_record()
    record_store.records[record.id] = record

    first = await report_service.get_dashboard(RecordFilters(), today=today)
    assert first.kpis.total == 1
    fake_redis.setex.assert_awaited_once()

    # A new row is invisible until the version key moves.
    extra = make_record(lot_id="250314-MTZ-LIMP200-09")
    record_store.records[extra.id] = extra
    cached = await report_service.get_dashboard(RecordFilters(), today=today)
    assert cached.kpis.total == 1

    await service.submit(BatchRecordCreate.model_validate(submission_payload), admin_principal)
    fresh = await report_service.get_dashboard(RecordFilters(), today=today)
    assert fresh.kpis.total == 3


@pytest.mark.asyncio
async def test_reports_work_without_redis(fake_db_session, catalog, record_store) -> None:
    record = make_record()
    record_store.records[record.id] = record
    reports = ReportService(fake_db_session, catalog=catalog, store=record_store, settings=Settings())

    summary = await reports.get_production_summary(RecordFilters(), top_n=5, today=date(2025, 3, 20))
    assert summary.total_liters == 200.0


@pytest.mark.asyncio
async def test_redis_read_failure_falls_back_to_store(report_service, record_store, fake_redis) -> None:
    record = make_record()
    record_store.records[record.id] = record
    fake_redis.get.side_effect = RedisError("timeout")

    report = await report_service.get_dashboard(RecordFilters(), today=date(2025, 3, 20))
    assert report.kpis.total == 1
    fake_redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_reports_cover_every_matching_record(report_service, record_store) -> None:
    for index in range(MAX_QUERY_LIMIT + 5):
        record = make_record(lot_id=f"250314-MTZ-LIMP200-{index + 1:02d}")
        record_store.records[record.id] = record
    newest = make_record(lot_id="250314-MTZ-LIMP200-9999", solids_reading_1=40.0, solids_reading_2=40.0)
    record_store.records[newest.id] = newest

    report = await report_service.get_dashboard(RecordFilters(), today=date(2025, 3, 20))
    assert report.kpis.total == MAX_QUERY_LIMIT + 6
    assert report.kpis.rejected == 1

    summary = await report_service.get_production_summary(RecordFilters(), today=date(2025, 3, 20))
    assert summary.total_liters == 200.0 * (MAX_QUERY_LIMIT + 6)
