"""Dashboard aggregation over a filtered, creation-ordered list of batch records.

Records are re-evaluated against the current catalog, so a dashboard
always reflects today's standards even for batches submitted earlier.
Status KPIs and the per-branch breakdown use the dashboard scope (solids
only by default); the Pareto uses the failed parameters of the full
submission scope.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from batchqc.models.enums import OverallStatusEnum, QualityParameterEnum
from batchqc.quality.aggregator import (
	DEFAULT_DASHBOARD_PARAMETERS,
	BatchMeasurements,
	RecordEvaluation,
	evaluate_record,
)
from batchqc.quality.catalog import StandardsCatalog
from batchqc.quality.classifier import (
	SOLIDS_LOWER_TOLERANCE,
	SOLIDS_UPPER_TOLERANCE,
	UnreadableValue,
	average_solids,
	to_decimal,
)

UNKNOWN_BRANCH_LABEL = "Sin Sucursal"
UNKNOWN_FAMILY_LABEL = "Otros"

PARETO_LABELS: dict[QualityParameterEnum, str] = {
	QualityParameterEnum.ph: "pH",
	QualityParameterEnum.solids: "Sólidos",
	QualityParameterEnum.appearance: "Apariencia",
}

SOLIDS_AXIS_PADDING_RATIO = Decimal("0.05")
PH_AXIS_PADDING = Decimal("0.5")


class DateRangePreset(StrEnum):
	last_7_days = "7d"
	last_30_days = "30d"
	last_3_months = "3m"
	last_6_months = "6m"
	last_year = "1y"
	all = "all"


_PRESET_DAYS = {
	DateRangePreset.last_7_days: 7,
	DateRangePreset.last_30_days: 30,
	DateRangePreset.last_3_months: 90,
	DateRangePreset.last_6_months: 180,
	DateRangePreset.last_year: 365,
}


def date_range_start(preset: DateRangePreset | str, today: date) -> date | None:
	"""Earliest manufacture date kept by ``preset`` (``None`` keeps everything)."""
	days = _PRESET_DAYS.get(DateRangePreset(preset))
	return None if days is None else today - timedelta(days=days)


@dataclass(frozen=True, slots=True)
class RecordFilters:
	branch: str | None = None
	family: str | None = None
	product_code: str | None = None
	date_range: DateRangePreset = DateRangePreset.all
	search: str | None = None
	status: OverallStatusEnum | None = None

	def matches(self, record: Any, today: date) -> bool:
		"""Store-level predicate; ``status`` is applied after evaluation."""
		if self.branch and record.branch != self.branch:
			return False
		if self.family and record.product_family != self.family:
			return False
		if self.product_code and record.product_code != self.product_code:
			return False
		start = date_range_start(self.date_range, today)
		if start is not None and record.manufacture_date < start:
			return False
		if self.search:
			needle = self.search.strip().casefold()
			haystack = (record.lot_id or "", record.product_code or "", record.branch or "")
			if not any(needle in value.casefold() for value in haystack):
				return False
		return True


def round_half_up(value: Decimal | float | int, places: int) -> float:
	quantum = Decimal(1).scaleb(-places)
	return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percentage(part: int, whole: int, places: int = 1) -> float:
	if whole <= 0:
		return 0.0
	return round_half_up(Decimal(part) * 100 / Decimal(whole), places)


# ── Report models ───────────────────────────────────────────────────────────


class KpiSummary(BaseModel):
	total: int = 0
	conforming: int = 0
	held: int = 0
	rejected: int = 0
	percent_conforming: float = 0.0
	percent_held: float = 0.0
	percent_rejected: float = 0.0
	total_volume: float = 0.0
	total_pieces: float = 0.0
	piece_yield_liters: float = 0.0


class ParetoRow(BaseModel):
	parameter: QualityParameterEnum
	label: str
	count: int
	cumulative_percent: int


class ChartPoint(BaseModel):
	index: int
	lot_id: str
	value: float | None = None


class ReferenceLimits(BaseModel):
	spec_min: float
	spec_max: float
	tolerance_min: float | None = None
	tolerance_max: float | None = None


class ControlChart(BaseModel):
	parameter: QualityParameterEnum
	points: list[ChartPoint] = Field(default_factory=list)
	limits: ReferenceLimits | None = None
	# None means the consumer picks the axis range automatically.
	axis_bounds: tuple[float, float] | None = None


class BranchStatusRow(BaseModel):
	branch: str
	conforming: int = 0
	held: int = 0
	rejected: int = 0

	@computed_field
	@property
	def total(self) -> int:
		return self.conforming + self.held + self.rejected


class DashboardReport(BaseModel):
	kpis: KpiSummary
	pareto: list[ParetoRow]
	ph_chart: ControlChart
	solids_chart: ControlChart
	branches: list[BranchStatusRow]


class ProductionRow(BaseModel):
	name: str
	liters: float = 0.0
	pieces: float = 0.0


class ProductRanking(BaseModel):
	product_code: str
	family: str
	value: float
	unit: str


class ProductionSummary(BaseModel):
	total_liters: float = 0.0
	total_pieces: float = 0.0
	branches: list[ProductionRow] = Field(default_factory=list)
	families: list[ProductionRow] = Field(default_factory=list)
	products: list[ProductRanking] = Field(default_factory=list)


# ── Evaluation ──────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class EvaluatedRecord:
	lot_id: str
	branch: str
	product_code: str
	family: str
	is_piece: bool
	batch_size: Decimal
	ph: Decimal | None
	solids_average: Decimal | None
	evaluation: RecordEvaluation


def _safe_decimal(value: Any) -> Decimal | None:
	try:
		return to_decimal(value)
	except UnreadableValue:
		return None


def evaluate_records(
	records: Iterable[Any],
	catalog: StandardsCatalog,
	dashboard_parameters: Collection[str] = DEFAULT_DASHBOARD_PARAMETERS,
) -> list[EvaluatedRecord]:
	evaluated: list[EvaluatedRecord] = []
	for record in records:
		# Family membership comes from the catalog; the stored column is only
		# used for codes the catalog no longer lists.
		known = catalog.family_for(record.product_code)
		family = known.name if known else (record.product_family or UNKNOWN_FAMILY_LABEL)
		try:
			solids = average_solids(record.solids_reading_1, record.solids_reading_2)
		except UnreadableValue:
			solids = None
		evaluated.append(
			EvaluatedRecord(
				lot_id=record.lot_id or "",
				branch=record.branch or UNKNOWN_BRANCH_LABEL,
				product_code=record.product_code,
				family=family,
				is_piece=catalog.is_piece_family(family),
				batch_size=_safe_decimal(record.batch_size) or Decimal(0),
				ph=_safe_decimal(record.ph),
				solids_average=solids,
				evaluation=evaluate_record(
					BatchMeasurements.from_record(record), catalog, dashboard_parameters
				),
			)
		)
	return evaluated


# ── KPIs ────────────────────────────────────────────────────────────────────


def build_kpis(evaluated: Sequence[EvaluatedRecord], catalog: StandardsCatalog) -> KpiSummary:
	statuses = [item.evaluation.dashboard_status for item in evaluated]
	total = len(statuses)
	conforming = statuses.count(OverallStatusEnum.conforme)
	held = statuses.count(OverallStatusEnum.retener)
	rejected = statuses.count(OverallStatusEnum.no_conforme)

	volume = sum((item.batch_size for item in evaluated if not item.is_piece), Decimal(0))
	pieces = sum((item.batch_size for item in evaluated if item.is_piece), Decimal(0))
	return KpiSummary(
		total=total,
		conforming=conforming,
		held=held,
		rejected=rejected,
		percent_conforming=percentage(conforming, total),
		percent_held=percentage(held, total),
		percent_rejected=percentage(rejected, total),
		total_volume=float(volume),
		total_pieces=float(pieces),
		piece_yield_liters=float(pieces * catalog.liters_per_piece),
	)


# ── Pareto ──────────────────────────────────────────────────────────────────


def build_pareto(evaluated: Sequence[EvaluatedRecord]) -> list[ParetoRow]:
	"""Defect counts per parameter, descending, with cumulative percentages.

	Ties keep the order pH, solids, appearance.  With no defects every
	cumulative percentage is 0; otherwise the last row reaches 100.
	"""
	counts = {parameter: 0 for parameter in PARETO_LABELS}
	for item in evaluated:
		for parameter in item.evaluation.failed_parameters:
			key = QualityParameterEnum(parameter)
			if key in counts:
				counts[key] += 1

	ordered = sorted(counts.items(), key=lambda entry: -entry[1])
	total_defects = sum(counts.values())
	rows: list[ParetoRow] = []
	accumulated = 0
	for parameter, count in ordered:
		accumulated += count
		cumulative = 0
		if total_defects > 0:
			cumulative = int(round_half_up(Decimal(accumulated) * 100 / total_defects, 0))
		rows.append(
			ParetoRow(
				parameter=parameter,
				label=PARETO_LABELS[parameter],
				count=count,
				cumulative_percent=cumulative,
			)
		)
	return rows


# ── Control charts ──────────────────────────────────────────────────────────


def _axis_bounds(
	values: Iterable[Decimal | None],
	limits: Sequence[Decimal],
	padding: Decimal | None,
	places: int,
) -> tuple[float, float]:
	candidates = [v for v in values if v is not None] + list(limits)
	low, high = min(candidates), max(candidates)
	pad = padding if padding is not None else (high - low) * SOLIDS_AXIS_PADDING_RATIO
	return (round_half_up(low - pad, places), round_half_up(high + pad, places))


def _points(evaluated: Sequence[EvaluatedRecord], attribute: str) -> list[ChartPoint]:
	points = []
	for index, item in enumerate(evaluated, start=1):
		value = getattr(item, attribute)
		points.append(
			ChartPoint(index=index, lot_id=item.lot_id, value=None if value is None else float(value))
		)
	return points


def build_solids_chart(
	evaluated: Sequence[EvaluatedRecord],
	catalog: StandardsCatalog,
	product_code: str | None = None,
) -> ControlChart:
	chart = ControlChart(
		parameter=QualityParameterEnum.solids,
		points=_points(evaluated, "solids_average"),
	)
	standard = catalog.solids_standard(product_code) if product_code else None
	if standard is None or not standard.is_complete:
		return chart

	tolerance_min = standard.solids_min * SOLIDS_LOWER_TOLERANCE
	tolerance_max = standard.solids_max * SOLIDS_UPPER_TOLERANCE
	chart.limits = ReferenceLimits(
		spec_min=float(standard.solids_min),
		spec_max=float(standard.solids_max),
		tolerance_min=float(tolerance_min),
		tolerance_max=float(tolerance_max),
	)
	chart.axis_bounds = _axis_bounds(
		(item.solids_average for item in evaluated),
		[tolerance_min, tolerance_max, standard.solids_min, standard.solids_max],
		None,
		2,
	)
	return chart


def build_ph_chart(
	evaluated: Sequence[EvaluatedRecord],
	catalog: StandardsCatalog,
	product_code: str | None = None,
) -> ControlChart:
	chart = ControlChart(parameter=QualityParameterEnum.ph, points=_points(evaluated, "ph"))
	standard = catalog.ph_standard(product_code) if product_code else None
	if standard is None or not standard.is_complete:
		return chart

	chart.limits = ReferenceLimits(spec_min=float(standard.ph_min), spec_max=float(standard.ph_max))
	chart.axis_bounds = _axis_bounds(
		(item.ph for item in evaluated),
		[standard.ph_min, standard.ph_max],
		PH_AXIS_PADDING,
		1,
	)
	return chart


# ── Breakdowns ──────────────────────────────────────────────────────────────


def build_branch_breakdown(evaluated: Sequence[EvaluatedRecord]) -> list[BranchStatusRow]:
	rows: dict[str, BranchStatusRow] = {}
	for item in evaluated:
		row = rows.setdefault(item.branch, BranchStatusRow(branch=item.branch))
		status = item.evaluation.dashboard_status
		if status is OverallStatusEnum.conforme:
			row.conforming += 1
		elif status is OverallStatusEnum.retener:
			row.held += 1
		else:
			row.rejected += 1
	return sorted(rows.values(), key=lambda row: -row.total)


def build_dashboard(
	records: Iterable[Any],
	catalog: StandardsCatalog,
	product_code: str | None = None,
	status: OverallStatusEnum | None = None,
	dashboard_parameters: Collection[str] = DEFAULT_DASHBOARD_PARAMETERS,
) -> DashboardReport:
	"""Assemble the quality dashboard for records already filtered by the store."""
	evaluated = evaluate_records(records, catalog, dashboard_parameters)
	if status is not None:
		evaluated = [item for item in evaluated if item.evaluation.dashboard_status is status]
	return DashboardReport(
		kpis=build_kpis(evaluated, catalog),
		pareto=build_pareto(evaluated),
		ph_chart=build_ph_chart(evaluated, catalog, product_code),
		solids_chart=build_solids_chart(evaluated, catalog, product_code),
		branches=build_branch_breakdown(evaluated),
	)


def build_production_summary(
	records: Iterable[Any],
	catalog: StandardsCatalog,
	top_n: int | None = None,
) -> ProductionSummary:
	"""Litres and pieces produced per branch, per family and per product."""
	evaluated = evaluate_records(records, catalog)
	branches: dict[str, ProductionRow] = {}
	families: dict[str, ProductionRow] = {}
	products: dict[str, ProductRanking] = {}
	total_liters = Decimal(0)
	total_pieces = Decimal(0)

	for item in evaluated:
		size = item.batch_size
		branch_row = branches.setdefault(item.branch, ProductionRow(name=item.branch))
		family_row = families.setdefault(item.family, ProductionRow(name=item.family))
		if item.is_piece:
			total_pieces += size
			branch_row.pieces += float(size)
			family_row.pieces += float(size)
		else:
			total_liters += size
			branch_row.liters += float(size)
			family_row.liters += float(size)
		ranking = products.setdefault(
			item.product_code,
			ProductRanking(
				product_code=item.product_code,
				family=item.family,
				value=0.0,
				unit="pieces" if item.is_piece else "liters",
			),
		)
		ranking.value += float(size)

	ranked = sorted(products.values(), key=lambda row: -row.value)
	return ProductionSummary(
		total_liters=float(total_liters),
		total_pieces=float(total_pieces),
		branches=sorted(branches.values(), key=lambda row: -row.liters),
		families=sorted(families.values(), key=lambda row: -(row.liters + row.pieces)),
		products=ranked[:top_n] if top_n else ranked,
	)
