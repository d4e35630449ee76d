"""Standards catalog read route."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from batchqc.models.enums import AppearanceEnum
from batchqc.quality.catalog import StandardsCatalog, get_catalog

router = APIRouter(prefix="/catalog", tags=["catalog"])


class CatalogRead(BaseModel):
	catalog: StandardsCatalog
	appearance_options: list[str] = Field(default_factory=list)
	product_codes: list[str] = Field(default_factory=list)


@router.get("", response_model=CatalogRead)
async def read_catalog(catalog: StandardsCatalog = Depends(get_catalog)) -> CatalogRead:
	return CatalogRead(
		catalog=catalog,
		appearance_options=[option.value for option in AppearanceEnum],
		product_codes=sorted(catalog.product_codes),
	)
