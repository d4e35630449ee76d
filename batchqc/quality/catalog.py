"""Standards catalog: branches, product families and per-product quality standards.

The catalog is static reference data loaded once from JSON.  Every lookup
returns ``None`` (or the placeholder acronym) for unknown keys rather than
raising, so callers decide whether a gap is an error.
"""

from __future__ import annotations

import json
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from batchqc.config import get_settings
from batchqc.models.enums import AppearanceEnum, BatchSizeUnitEnum, QualityParameterEnum

_BUNDLED_CATALOG = Path(__file__).resolve().parent / "data" / "standards.json"


class ProductFamily(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: str
	group: str
	unit: BatchSizeUnitEnum = BatchSizeUnitEnum.volume
	products: tuple[str, ...] = ()


class SolidsStandard(BaseModel):
	"""Nominal solids range (percent) for one product."""

	model_config = ConfigDict(frozen=True)

	product_code: str
	solids_min: Decimal | None = None
	solids_max: Decimal | None = None

	@property
	def is_complete(self) -> bool:
		return self.solids_min is not None and self.solids_max is not None

	@model_validator(mode="after")
	def _check_range(self) -> "SolidsStandard":
		if self.is_complete and self.solids_min > self.solids_max:
			raise ValueError(f"{self.product_code}: solids_min exceeds solids_max")
		return self


class PhStandard(BaseModel):
	"""Inclusive pH range for one product."""

	model_config = ConfigDict(frozen=True)

	product_code: str
	ph_min: Decimal | None = None
	ph_max: Decimal | None = None

	@property
	def is_complete(self) -> bool:
		return self.ph_min is not None and self.ph_max is not None

	@model_validator(mode="after")
	def _check_range(self) -> "PhStandard":
		if self.is_complete and self.ph_min > self.ph_max:
			raise ValueError(f"{self.product_code}: ph_min exceeds ph_max")
		return self


class AppearanceStandard(BaseModel):
	model_config = ConfigDict(frozen=True)

	product_code: str
	appearance: AppearanceEnum


class ParameterApplicability(BaseModel):
	"""Which numeric parameters are measured for a product."""

	model_config = ConfigDict(frozen=True)

	product_code: str = ""
	solids: bool = False
	ph: bool = False

	def applies(self, parameter: QualityParameterEnum | str) -> bool:
		parameter = QualityParameterEnum(parameter)
		if parameter is QualityParameterEnum.appearance:
			return True
		return self.solids if parameter is QualityParameterEnum.solids else self.ph


class StandardsCatalog(BaseModel):
	model_config = ConfigDict(frozen=True)

	placeholder_branch_acronym: str = "NA"
	liters_per_piece: Decimal = Decimal("20")
	branches: dict[str, str] = Field(default_factory=dict)
	families: tuple[ProductFamily, ...] = ()
	solids_standards: tuple[SolidsStandard, ...] = ()
	ph_standards: tuple[PhStandard, ...] = ()
	appearance_standards: tuple[AppearanceStandard, ...] = ()
	applicability: tuple[ParameterApplicability, ...] = ()

	_family_by_product: dict[str, ProductFamily] = PrivateAttr(default_factory=dict)
	_family_by_name: dict[str, ProductFamily] = PrivateAttr(default_factory=dict)
	_solids: dict[str, SolidsStandard] = PrivateAttr(default_factory=dict)
	_ph: dict[str, PhStandard] = PrivateAttr(default_factory=dict)
	_appearance: dict[str, AppearanceStandard] = PrivateAttr(default_factory=dict)
	_applicability: dict[str, ParameterApplicability] = PrivateAttr(default_factory=dict)

	@model_validator(mode="after")
	def _check_unique_products(self) -> "StandardsCatalog":
		seen: dict[str, str] = {}
		for family in self.families:
			for code in family.products:
				if code in seen:
					raise ValueError(
						f"product {code} listed in both {seen[code]!r} and {family.name!r}"
					)
				seen[code] = family.name
		return self

	def model_post_init(self, __context) -> None:
		for family in self.families:
			self._family_by_name[family.name] = family
			for code in family.products:
				self._family_by_product[code] = family
		self._solids.update({s.product_code: s for s in self.solids_standards})
		self._ph.update({s.product_code: s for s in self.ph_standards})
		self._appearance.update({s.product_code: s for s in self.appearance_standards})
		self._applicability.update({a.product_code: a for a in self.applicability})

	# ── Branches ────────────────────────────────────────────────────────────

	def branch_acronym(self, branch: str) -> str:
		return self.branches.get(branch, self.placeholder_branch_acronym)

	def is_known_branch(self, branch: str) -> bool:
		return branch in self.branches

	# ── Families ────────────────────────────────────────────────────────────

	@property
	def product_codes(self) -> list[str]:
		return list(self._family_by_product)

	def family_for(self, product_code: str) -> ProductFamily | None:
		return self._family_by_product.get(product_code)

	def family_named(self, name: str) -> ProductFamily | None:
		return self._family_by_name.get(name)

	def is_piece_family(self, family_name: str | None) -> bool:
		family = self._family_by_name.get(family_name or "")
		return family is not None and family.unit is BatchSizeUnitEnum.pieces

	# ── Standards ───────────────────────────────────────────────────────────

	def solids_standard(self, product_code: str) -> SolidsStandard | None:
		return self._solids.get(product_code)

	def ph_standard(self, product_code: str) -> PhStandard | None:
		return self._ph.get(product_code)

	def appearance_standard(self, product_code: str) -> AppearanceStandard | None:
		return self._appearance.get(product_code)

	def applicability_for(self, product_code: str) -> ParameterApplicability:
		found = self._applicability.get(product_code)
		if found is None:
			return ParameterApplicability(product_code=product_code)
		return found


def load_catalog(path: str | Path | None = None) -> StandardsCatalog:
	"""Read and validate a catalog JSON file (the bundled one by default)."""
	source = Path(path) if path else _BUNDLED_CATALOG
	with source.open(encoding="utf-8") as handle:
		return StandardsCatalog.model_validate(json.load(handle))


@lru_cache
def get_catalog() -> StandardsCatalog:
	return load_catalog(get_settings().standards_catalog_path or None)
