"""Typed failures raised by the quality engine and the record store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RecordValidationError(ValueError):
	"""A submission or edit failed a field-level rule."""

	field: str
	detail: str
	code: str = "invalid_record"

	def __str__(self) -> str:
		return f"{self.field}: {self.detail}"


@dataclass(slots=True)
class LotAssignmentError(Exception):
	"""A lot identifier could not be derived or reserved."""

	detail: str
	code: str = "lot_assignment_failed"
	retryable: bool = False

	def __str__(self) -> str:
		return self.detail


@dataclass(slots=True)
class RecordStoreError(Exception):
	"""The record store rejected or failed an operation."""

	detail: str
	code: str = "record_store_failure"
	retryable: bool = True

	def __str__(self) -> str:
		return self.detail
