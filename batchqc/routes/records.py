"""Batch record routes: submit, preview, list, read, admin edit, delete."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from batchqc.auth.dependencies import Principal, require_permission
from batchqc.database import get_db
from batchqc.quality.catalog import StandardsCatalog, get_catalog
from batchqc.quality.errors import LotAssignmentError, RecordStoreError, RecordValidationError
from batchqc.quality.reporting import DateRangePreset, RecordFilters
from batchqc.schemas.records import (
	BatchRecordCreate,
	BatchRecordList,
	BatchRecordRead,
	BatchRecordSubmitted,
	BatchRecordUpdate,
	EvaluationRead,
)
from batchqc.services.record_service import RecordService
from batchqc.services.record_store import MAX_QUERY_LIMIT

router = APIRouter(prefix="/records", tags=["records"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, RecordValidationError):
		return HTTPException(
			status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
			detail={"error": "validation_error", "field": exc.field, "message": exc.detail, "retryable": False},
		)
	if isinstance(exc, (LotAssignmentError, RecordStoreError)):
		return HTTPException(
			status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
			detail={"error": exc.code, "message": exc.detail, "retryable": True},
		)
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(
		status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
		detail="Unexpected record service failure",
	)


def _service(request: Request, db: AsyncSession, catalog: StandardsCatalog) -> RecordService:
	return RecordService(db, getattr(request.app.state, "redis", None), catalog=catalog)


@router.post("", response_model=BatchRecordSubmitted, status_code=status.HTTP_201_CREATED)
async def submit_record(
	payload: BatchRecordCreate,
	request: Request,
	principal: Principal = Depends(require_permission("create")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> BatchRecordSubmitted:
	service = _service(request, db, catalog)
	try:
		record, evaluation = await service.submit(payload, principal)
	except Exception as exc:
		raise _map_error(exc) from exc
	return BatchRecordSubmitted(
		record=BatchRecordRead.model_validate(record),
		evaluation=EvaluationRead.from_evaluation(evaluation),
	)


@router.post("/evaluate", response_model=EvaluationRead)
async def evaluate_record(
	payload: BatchRecordCreate,
	request: Request,
	_: Principal = Depends(require_permission("create")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> EvaluationRead:
	service = _service(request, db, catalog)
	try:
		return EvaluationRead.from_evaluation(service.evaluate_submission(payload))
	except Exception as exc:
		raise _map_error(exc) from exc


@router.get("", response_model=BatchRecordList)
async def list_records(
	request: Request,
	branch: str | None = Query(default=None),
	family: str | None = Query(default=None),
	product_code: str | None = Query(default=None),
	date_range: DateRangePreset = Query(default=DateRangePreset.all),
	search: str | None = Query(default=None, max_length=100),
	limit: int = Query(default=100, ge=1, le=MAX_QUERY_LIMIT),
	_: Principal = Depends(require_permission("view")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> BatchRecordList:
	filters = RecordFilters(
		branch=branch,
		family=family,
		product_code=product_code,
		date_range=date_range,
		search=search,
	)
	service = _service(request, db, catalog)
	try:
		records = await service.list_records(filters, limit=limit)
	except Exception as exc:
		raise _map_error(exc) from exc
	items = [BatchRecordRead.model_validate(record) for record in records]
	return BatchRecordList(items=items, count=len(items))


@router.get("/{record_id}", response_model=BatchRecordRead)
async def get_record(
	record_id: uuid.UUID,
	request: Request,
	_: Principal = Depends(require_permission("view")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> BatchRecordRead:
	service = _service(request, db, catalog)
	try:
		return BatchRecordRead.model_validate(await service.get_record(record_id))
	except Exception as exc:
		raise _map_error(exc) from exc


@router.patch("/{record_id}", response_model=BatchRecordSubmitted)
async def update_record(
	record_id: uuid.UUID,
	payload: BatchRecordUpdate,
	request: Request,
	principal: Principal = Depends(require_permission("edit")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> BatchRecordSubmitted:
	service = _service(request, db, catalog)
	try:
		record, evaluation = await service.update_record(record_id, payload, principal)
	except Exception as exc:
		raise _map_error(exc) from exc
	return BatchRecordSubmitted(
		record=BatchRecordRead.model_validate(record),
		evaluation=EvaluationRead.from_evaluation(evaluation),
	)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
	record_id: uuid.UUID,
	request: Request,
	principal: Principal = Depends(require_permission("delete")),
	db: AsyncSession = Depends(get_db),
	catalog: StandardsCatalog = Depends(get_catalog),
) -> Response:
	service = _service(request, db, catalog)
	try:
		await service.delete_record(record_id, principal)
	except Exception as exc:
		raise _map_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)
