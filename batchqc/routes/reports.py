"""Quality dashboard and production report routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.auth.dependencies import Principal, require_permission
from batchqc.database import get_db
from batchqc.models.enums import OverallStatusEnum
from batchqc.quality.catalog import StandardsCatalog, get_catalog
from batchqc.quality.errors import RecordStoreError
from batchqc.quality.reporting import DashboardReport, DateRangePreset, ProductionSummary, RecordFilters
from batchqc.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, RecordStoreError):
		return HTTPException(
			status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
			detail={"error": exc.code, "message": exc.detail, "retryable": True},
		)
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="report failure")


def _filters(
	branch: str | None = Query(default=None),
	family: str | None = Query(default=None),
	product_code: str | None = Query(default=None),
	date_range: DateRangePreset = Query(default=DateRangePreset.all),
	search: str | None = Query(default=None, max_length=100),
	status_filter: OverallStatusEnum | None = Query(default=None, alias="status"),
) -> RecordFilters:
	return RecordFilters(
		branch=branch,
		family=family,
		product_code=product_code,
		date_range=date_range,
		search=search,
		status=status_filter,
	)


@router.get("/dashboard", response_model=DashboardReport)
async def get_dashboard(
	request: Request,
	filters: RecordFilters = Depends(_filters),
	_: Principal = Depends(require_permission("view")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> DashboardReport:
	service = ReportService(db, getattr(request.app.state, "redis", None), catalog=catalog)
	try:
		return await service.get_dashboard(filters)
	except Exception as exc:
		raise _map_error(exc) from exc


@router.get("/production", response_model=ProductionSummary)
async def get_production_summary(
	request: Request,
	filters: RecordFilters = Depends(_filters),
	top_n: int | None = Query(default=None, ge=1, le=100),
	_: Principal = Depends(require_permission("view")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> ProductionSummary:
	service = ReportService(db, getattr(request.app.state, "redis", None), catalog=catalog)
	try:
		return await service.get_production_summary(filters, top_n=top_n)
	except Exception as exc:
		raise _map_error(exc) from exc
