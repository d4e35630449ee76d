"""Roll per-parameter verdicts up into a batch disposition."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from batchqc.models.enums import ConformanceVerdict, OverallStatusEnum, QualityParameterEnum
from batchqc.quality.catalog import StandardsCatalog
from batchqc.quality.classifier import (
	AppearanceInput,
	ParameterVerdict,
	PhInput,
	SolidsInput,
	classify,
)

EVALUATION_ORDER: tuple[QualityParameterEnum, ...] = tuple(QualityParameterEnum)
SUBMISSION_PARAMETERS: frozenset[str] = frozenset(p.value for p in EVALUATION_ORDER)
DEFAULT_DASHBOARD_PARAMETERS: frozenset[str] = frozenset({QualityParameterEnum.solids.value})

_FAILING = (ConformanceVerdict.warning, ConformanceVerdict.error)


def aggregate(
	verdicts: Iterable[tuple[str, ConformanceVerdict]],
	counted: Collection[str] | None = None,
) -> tuple[OverallStatusEnum, list[str]]:
	"""Return ``(overall_status, failed_parameters)`` for one record.

	``not-applicable`` verdicts are ignored.  Any ``error`` wins over any
	``warning``; with neither the batch is ``CONFORME``.  ``counted``
	restricts the parameters that take part (all of them when ``None``).
	"""
	rank = {p.value: i for i, p in enumerate(EVALUATION_ORDER)}
	considered = [
		(str(parameter), ConformanceVerdict(verdict))
		for parameter, verdict in verdicts
		if counted is None or str(parameter) in counted
	]
	considered.sort(key=lambda item: rank.get(item[0], len(rank)))

	failed = [parameter for parameter, verdict in considered if verdict in _FAILING]
	if any(verdict is ConformanceVerdict.error for _, verdict in considered):
		return OverallStatusEnum.no_conforme, failed
	if failed:
		return OverallStatusEnum.retener, failed
	return OverallStatusEnum.conforme, failed


@dataclass(frozen=True, slots=True)
class BatchMeasurements:
	"""The measured inputs of one record, independent of how it is stored."""

	product_code: str
	ph: Any = None
	solids_reading_1: Any = None
	solids_reading_2: Any = None
	appearance: str | None = None

	@classmethod
	def from_record(cls, record: Any) -> "BatchMeasurements":
		return cls(
			product_code=record.product_code,
			ph=record.ph,
			solids_reading_1=record.solids_reading_1,
			solids_reading_2=record.solids_reading_2,
			appearance=record.appearance,
		)


@dataclass(frozen=True, slots=True)
class RecordEvaluation:
	product_code: str
	verdicts: Sequence[ParameterVerdict]
	solids_average: Decimal | None
	overall_status: OverallStatusEnum
	failed_parameters: list[str] = field(default_factory=list)
	dashboard_status: OverallStatusEnum = OverallStatusEnum.conforme

	def verdict_for(self, parameter: QualityParameterEnum | str) -> ConformanceVerdict:
		parameter = QualityParameterEnum(parameter)
		for item in self.verdicts:
			if item.parameter is parameter:
				return item.verdict
		return ConformanceVerdict.not_applicable


def evaluate_record(
	measurements: BatchMeasurements,
	catalog: StandardsCatalog,
	dashboard_parameters: Collection[str] = DEFAULT_DASHBOARD_PARAMETERS,
) -> RecordEvaluation:
	"""Classify every applicable parameter and aggregate at both scopes."""
	applicability = catalog.applicability_for(measurements.product_code)
	inputs = {
		QualityParameterEnum.solids: SolidsInput(
			measurements.solids_reading_1, measurements.solids_reading_2
		),
		QualityParameterEnum.ph: PhInput(measurements.ph),
		QualityParameterEnum.appearance: AppearanceInput(measurements.appearance),
	}

	verdicts: list[ParameterVerdict] = []
	for parameter in EVALUATION_ORDER:
		if applicability.applies(parameter):
			verdicts.append(classify(inputs[parameter], catalog, measurements.product_code))
		else:
			verdicts.append(ParameterVerdict(parameter, ConformanceVerdict.not_applicable))

	pairs = [(item.parameter.value, item.verdict) for item in verdicts]
	overall_status, failed = aggregate(pairs)
	dashboard_status, _ = aggregate(pairs, counted=dashboard_parameters)

	solids = verdicts[EVALUATION_ORDER.index(QualityParameterEnum.solids)]
	solids_average = solids.value if isinstance(solids.value, Decimal) else None
	return RecordEvaluation(
		product_code=measurements.product_code,
		verdicts=tuple(verdicts),
		solids_average=solids_average,
		overall_status=overall_status,
		failed_parameters=failed,
		dashboard_status=dashboard_status,
	)
