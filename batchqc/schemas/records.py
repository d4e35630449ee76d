"""Pydantic schemas for batch record endpoints."""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from batchqc.models.enums import (
	AppearanceEnum,
	ConformanceVerdict,
	OverallStatusEnum,
	QualityParameterEnum,
	SensoryCheckEnum,
)
from batchqc.quality.aggregator import RecordEvaluation

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

PREPARER_NAME_MAX = 200
NOTES_MAX = 1000


def strip_markup(value: str) -> str:
	"""Drop HTML tags and null bytes from free text."""
	return _TAG_RE.sub("", value).replace("\x00", "")


def clean_short_text(value: str, max_length: int) -> str:
	return _WHITESPACE_RE.sub(" ", strip_markup(value)).strip()[:max_length]


def clean_long_text(value: str, max_length: int) -> str:
	return strip_markup(value).strip()[:max_length]


def normalize_appearance(value: object) -> object:
	"""Match a selected description case-insensitively; blank means not given."""
	if not isinstance(value, str):
		return value
	cleaned = clean_short_text(value, 100).upper()
	return cleaned or None


class BatchRecordCreate(BaseModel):
	branch: str = Field(min_length=1, max_length=100)
	preparer_name: str = Field(min_length=1)
	manufacture_date: date
	product_code: str = Field(min_length=1, max_length=20, pattern=r"^[A-Z0-9]+$")
	product_family: str | None = Field(default=None, max_length=150)
	batch_size: Decimal = Field(gt=0, max_digits=12, decimal_places=3)
	ph: int | None = Field(default=None, ge=0, le=14)
	solids_reading_1: float | None = Field(default=None, ge=0, allow_inf_nan=False)
	solids_temperature_1: float | None = Field(default=None, allow_inf_nan=False)
	solids_reading_2: float | None = Field(default=None, ge=0, allow_inf_nan=False)
	solids_temperature_2: float | None = Field(default=None, allow_inf_nan=False)
	appearance: AppearanceEnum
	color: SensoryCheckEnum
	aroma: SensoryCheckEnum
	notes: str = ""

	@field_validator("branch", mode="before")
	@classmethod
	def _clean_short(cls, value: object) -> object:
		return clean_short_text(value, 100) if isinstance(value, str) else value

	@field_validator("appearance", mode="before")
	@classmethod
	def _clean_appearance(cls, value: object) -> object:
		return normalize_appearance(value)

	@field_validator("preparer_name", mode="before")
	@classmethod
	def _clean_preparer(cls, value: object) -> object:
		return clean_short_text(value, PREPARER_NAME_MAX) if isinstance(value, str) else value

	@field_validator("notes", mode="before")
	@classmethod
	def _clean_notes(cls, value: object) -> object:
		if value is None:
			return ""
		return clean_long_text(value, NOTES_MAX) if isinstance(value, str) else value

	@field_validator("product_code", mode="before")
	@classmethod
	def _normalize_code(cls, value: object) -> object:
		return value.strip().upper() if isinstance(value, str) else value


class BatchRecordUpdate(BaseModel):
	"""Admin corrections; the lot id is never re-derived."""

	ph: int | None = Field(default=None, ge=0, le=14)
	solids_reading_1: float | None = Field(default=None, ge=0, allow_inf_nan=False)
	solids_reading_2: float | None = Field(default=None, ge=0, allow_inf_nan=False)
	appearance: AppearanceEnum | None = None
	color: SensoryCheckEnum | None = None
	aroma: SensoryCheckEnum | None = None

	@field_validator("appearance", mode="before")
	@classmethod
	def _clean_appearance(cls, value: object) -> object:
		return normalize_appearance(value)


class ParameterVerdictRead(BaseModel):
	parameter: QualityParameterEnum
	verdict: ConformanceVerdict
	value: str | float | None = None


class EvaluationRead(BaseModel):
	product_code: str
	overall_status: OverallStatusEnum
	dashboard_status: OverallStatusEnum
	failed_parameters: list[str] = Field(default_factory=list)
	solids_average: float | None = None
	verdicts: list[ParameterVerdictRead] = Field(default_factory=list)

	@classmethod
	def from_evaluation(cls, evaluation: RecordEvaluation) -> "EvaluationRead":
		return cls(
			product_code=evaluation.product_code,
			overall_status=evaluation.overall_status,
			dashboard_status=evaluation.dashboard_status,
			failed_parameters=list(evaluation.failed_parameters),
			solids_average=(
				float(evaluation.solids_average) if evaluation.solids_average is not None else None
			),
			verdicts=[
				ParameterVerdictRead(
					parameter=item.parameter,
					verdict=item.verdict,
					value=float(item.value) if isinstance(item.value, Decimal) else item.value,
				)
				for item in evaluation.verdicts
			],
		)


class BatchRecordRead(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: uuid.UUID
	branch: str
	preparer_name: str
	manufacture_date: date
	product_code: str
	product_family: str | None = None
	batch_size: Decimal
	ph: int | None = None
	solids_reading_1: float | None = None
	solids_temperature_1: float | None = None
	solids_reading_2: float | None = None
	solids_temperature_2: float | None = None
	appearance: str | None = None
	color: SensoryCheckEnum
	aroma: SensoryCheckEnum
	notes: str = ""
	lot_id: str
	overall_status: OverallStatusEnum
	failed_parameters: list[str] = Field(default_factory=list)
	submitted_by: str
	created_at: datetime
	updated_at: datetime


class BatchRecordSubmitted(BaseModel):
	record: BatchRecordRead
	evaluation: EvaluationRead


class BatchRecordList(BaseModel):
	items: list[BatchRecordRead] = Field(default_factory=list)
	count: int = 0
