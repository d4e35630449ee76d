"""Per-parameter conformance classification.

Solids use a three-tier scheme: inside the nominal range is ``success``,
inside the range widened by 5 % of each limit is ``warning``, anything
else is ``error``.  pH and appearance are binary.  Classifiers never
raise on malformed business data; unreadable values map to ``error`` and
missing values or standards map to ``not-applicable``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from batchqc.models.enums import ConformanceVerdict, QualityParameterEnum
from batchqc.quality.catalog import (
	AppearanceStandard,
	PhStandard,
	SolidsStandard,
	StandardsCatalog,
)

logger = structlog.get_logger("batchqc.quality.classifier")

SOLIDS_LOWER_TOLERANCE = Decimal("0.95")
SOLIDS_UPPER_TOLERANCE = Decimal("1.05")
PH_DOMAIN_MIN = Decimal("0")
PH_DOMAIN_MAX = Decimal("14")


class UnreadableValue(ValueError):
	"""A measurement that cannot be interpreted as a finite number."""


def to_decimal(value: Any) -> Decimal | None:
	"""Coerce a measurement to ``Decimal``; ``None`` and blank strings mean absent."""
	if value is None:
		return None
	if isinstance(value, bool):
		raise UnreadableValue(repr(value))
	if isinstance(value, Decimal):
		result = value
	elif isinstance(value, (int, float)):
		result = Decimal(str(value))
	elif isinstance(value, str):
		if not value.strip():
			return None
		try:
			result = Decimal(value.strip())
		except InvalidOperation as exc:
			raise UnreadableValue(value) from exc
	else:
		raise UnreadableValue(repr(value))
	if not result.is_finite():
		raise UnreadableValue(repr(value))
	return result


def average_solids(reading_1: Any, reading_2: Any) -> Decimal | None:
	"""Mean of both readings, the single reading present, or ``None``."""
	first = to_decimal(reading_1)
	second = to_decimal(reading_2)
	if first is not None and second is not None:
		return (first + second) / 2
	return first if first is not None else second


def classify_solids(average: Any, standard: SolidsStandard | None) -> ConformanceVerdict:
	if standard is None or not standard.is_complete:
		return ConformanceVerdict.not_applicable
	try:
		value = to_decimal(average)
	except UnreadableValue:
		return ConformanceVerdict.error
	if value is None:
		return ConformanceVerdict.not_applicable

	if standard.solids_min <= value <= standard.solids_max:
		return ConformanceVerdict.success
	tolerance_min = standard.solids_min * SOLIDS_LOWER_TOLERANCE
	tolerance_max = standard.solids_max * SOLIDS_UPPER_TOLERANCE
	if tolerance_min <= value <= tolerance_max:
		return ConformanceVerdict.warning
	return ConformanceVerdict.error


def classify_ph(value: Any, standard: PhStandard | None) -> ConformanceVerdict:
	if standard is None or not standard.is_complete:
		return ConformanceVerdict.not_applicable
	try:
		reading = to_decimal(value)
	except UnreadableValue:
		return ConformanceVerdict.error
	if reading is None:
		return ConformanceVerdict.not_applicable
	if not PH_DOMAIN_MIN <= reading <= PH_DOMAIN_MAX:
		return ConformanceVerdict.error
	if standard.ph_min <= reading <= standard.ph_max:
		return ConformanceVerdict.success
	return ConformanceVerdict.error


def classify_appearance(
	observed: str | None,
	expected: AppearanceStandard | str | None,
) -> ConformanceVerdict:
	if isinstance(expected, AppearanceStandard):
		expected = expected.appearance.value
	if not observed or not expected or not str(observed).strip() or not expected.strip():
		return ConformanceVerdict.not_applicable
	if str(observed).strip().casefold() == expected.strip().casefold():
		return ConformanceVerdict.success
	return ConformanceVerdict.error


# ── Tagged inputs ───────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SolidsInput:
	reading_1: Any = None
	reading_2: Any = None
	parameter = QualityParameterEnum.solids


@dataclass(frozen=True, slots=True)
class PhInput:
	value: Any = None
	parameter = QualityParameterEnum.ph


@dataclass(frozen=True, slots=True)
class AppearanceInput:
	observed: str | None = None
	parameter = QualityParameterEnum.appearance


ParameterInput = SolidsInput | PhInput | AppearanceInput


@dataclass(frozen=True, slots=True)
class ParameterVerdict:
	parameter: QualityParameterEnum
	verdict: ConformanceVerdict
	value: Decimal | str | None = None


def classify(
	parameter_input: ParameterInput,
	catalog: StandardsCatalog,
	product_code: str,
) -> ParameterVerdict:
	"""Classify one tagged input against the product's standard in ``catalog``."""
	if isinstance(parameter_input, SolidsInput):
		standard = catalog.solids_standard(product_code)
		missing = standard is None or not standard.is_complete
		_log_gap(QualityParameterEnum.solids, product_code, missing)
		try:
			average = average_solids(parameter_input.reading_1, parameter_input.reading_2)
		except UnreadableValue:
			verdict = ConformanceVerdict.not_applicable if missing else ConformanceVerdict.error
			return ParameterVerdict(QualityParameterEnum.solids, verdict)
		return ParameterVerdict(
			QualityParameterEnum.solids, classify_solids(average, standard), average
		)

	if isinstance(parameter_input, PhInput):
		standard = catalog.ph_standard(product_code)
		_log_gap(QualityParameterEnum.ph, product_code, standard is None or not standard.is_complete)
		# The recorded value is kept only when it parses; the verdict covers the rest.
		try:
			value = to_decimal(parameter_input.value)
		except UnreadableValue:
			value = None
		return ParameterVerdict(
			QualityParameterEnum.ph, classify_ph(parameter_input.value, standard), value
		)

	if isinstance(parameter_input, AppearanceInput):
		standard = catalog.appearance_standard(product_code)
		_log_gap(QualityParameterEnum.appearance, product_code, standard is None)
		return ParameterVerdict(
			QualityParameterEnum.appearance,
			classify_appearance(parameter_input.observed, standard),
			parameter_input.observed,
		)

	raise TypeError(f"unsupported parameter input: {type(parameter_input).__name__}")


def _log_gap(parameter: QualityParameterEnum, product_code: str, missing: bool) -> None:
	if missing:
		logger.debug("classification_gap", parameter=parameter.value, product_code=product_code)
