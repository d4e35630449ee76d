"""Lot identifier derivation: ``YYMMDD-ACR-PRODUCTSIZE-SEQ``.

The sequence is per (branch, product code, manufacture date) and starts
at 1.  ``assign_lot_id`` derives it from a count of already-assigned
records, which two concurrent submissions can both observe; use
``reserve_lot_id`` wherever the store offers an atomic counter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Protocol

import structlog

from batchqc.quality.catalog import StandardsCatalog
from batchqc.quality.errors import LotAssignmentError, RecordStoreError

logger = structlog.get_logger("batchqc.quality.lots")

# Lot values that count as "no lot assigned yet".
UNASSIGNED_LOT_MARKERS: tuple[str, ...] = ("", "EMPTY")
SEQUENCE_MIN_WIDTH = 2

_LOT_PATTERN = re.compile(r"^(?P<date>\d{6})-(?P<acronym>[^-]+)-(?P<product>.+)-(?P<seq>\d+)$")


@dataclass(frozen=True, slots=True)
class LotKey:
	branch: str
	product_code: str
	manufacture_date: date


@dataclass(frozen=True, slots=True)
class LotDraft:
	"""The subset of a submission needed to derive its lot identifier."""

	branch: str
	product_code: str
	manufacture_date: date | None
	batch_size: Any

	@property
	def key(self) -> LotKey:
		return LotKey(self.branch, self.product_code, self.manufacture_date)


@dataclass(frozen=True, slots=True)
class LotIdParts:
	manufacture_date: date
	branch_acronym: str
	product_code: str
	size: int
	sequence: int
	branch: str | None = None


class LotSequenceSource(Protocol):
	async def count_assigned_lots(self, key: LotKey) -> int: ...

	async def reserve_lot_sequence(self, key: LotKey) -> int: ...


def format_date_part(value: date) -> str:
	return value.strftime("%y%m%d")


def round_batch_size(batch_size: Any) -> int:
	"""Round half-up to an integer (``2.5`` -> ``3``)."""
	try:
		size = Decimal(str(batch_size))
	except InvalidOperation as exc:
		raise LotAssignmentError(f"batch size is not numeric: {batch_size!r}") from exc
	return int(size.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_sequence(sequence: int) -> str:
	return str(sequence).zfill(SEQUENCE_MIN_WIDTH)


def compose_lot_id(
	manufacture_date: date,
	branch_acronym: str,
	product_code: str,
	size: int,
	sequence: int,
) -> str:
	if sequence < 1:
		raise LotAssignmentError(f"sequence must start at 1, got {sequence}")
	return (
		f"{format_date_part(manufacture_date)}-{branch_acronym}-"
		f"{product_code}{size}-{format_sequence(sequence)}"
	)


def parse_lot_id(
	lot_id: str,
	product_code: str | None = None,
	catalog: StandardsCatalog | None = None,
) -> LotIdParts:
	"""Split a lot identifier back into its parts.

	The product code and size share one segment.  When ``product_code`` is
	given it is stripped as a prefix; otherwise the trailing digits are
	taken as the size.  With a ``catalog`` the branch name is resolved from
	the acronym (first match wins).
	"""
	match = _LOT_PATTERN.match(lot_id.strip())
	if match is None:
		raise ValueError(f"malformed lot id: {lot_id!r}")

	product_segment = match["product"]
	if product_code is not None:
		if not product_segment.startswith(product_code):
			raise ValueError(f"lot id {lot_id!r} does not belong to product {product_code!r}")
		code, size_text = product_code, product_segment[len(product_code):]
	else:
		size_match = re.match(r"^(?P<code>.*?)(?P<size>\d+)$", product_segment)
		if size_match is None:
			raise ValueError(f"lot id {lot_id!r} carries no batch size")
		code, size_text = size_match["code"], size_match["size"]
	if not size_text.isdigit():
		raise ValueError(f"lot id {lot_id!r} carries no batch size")

	branch = None
	if catalog is not None:
		branch = next(
			(name for name, acronym in catalog.branches.items() if acronym == match["acronym"]),
			None,
		)
	return LotIdParts(
		manufacture_date=datetime.strptime(match["date"], "%y%m%d").date(),
		branch_acronym=match["acronym"],
		product_code=code,
		size=int(size_text),
		sequence=int(match["seq"]),
		branch=branch,
	)


def _check_draft(draft: LotDraft) -> int:
	if not draft.branch or not draft.branch.strip():
		raise LotAssignmentError("branch is required to assign a lot id")
	if not draft.product_code or not draft.product_code.strip():
		raise LotAssignmentError("product code is required to assign a lot id")
	if draft.manufacture_date is None:
		raise LotAssignmentError("manufacture date is required to assign a lot id")
	try:
		size = Decimal(str(draft.batch_size))
		positive = size.is_finite() and size > 0
	except InvalidOperation:
		positive = False
	if not positive:
		raise LotAssignmentError(f"batch size must be positive, got {draft.batch_size!r}")
	return round_batch_size(draft.batch_size)


async def assign_lot_id(
	draft: LotDraft,
	store: LotSequenceSource,
	catalog: StandardsCatalog,
) -> str:
	"""Derive the next lot id from a count of lots already assigned under the key."""
	size = _check_draft(draft)
	try:
		count = await store.count_assigned_lots(draft.key)
	except RecordStoreError as exc:
		raise LotAssignmentError(f"could not count existing lots: {exc}", retryable=True) from exc

	lot_id = compose_lot_id(
		draft.manufacture_date,
		catalog.branch_acronym(draft.branch),
		draft.product_code,
		size,
		count + 1,
	)
	logger.info("lot_id_assigned", lot_id=lot_id, strategy="counted")
	return lot_id


async def reserve_lot_id(
	draft: LotDraft,
	store: LotSequenceSource,
	catalog: StandardsCatalog,
) -> str:
	"""Derive the next lot id from an atomically reserved sequence value."""
	size = _check_draft(draft)
	try:
		sequence = await store.reserve_lot_sequence(draft.key)
	except RecordStoreError as exc:
		raise LotAssignmentError(f"could not reserve a lot sequence: {exc}", retryable=True) from exc

	lot_id = compose_lot_id(
		draft.manufacture_date,
		catalog.branch_acronym(draft.branch),
		draft.product_code,
		size,
		sequence,
	)
	logger.info("lot_id_assigned", lot_id=lot_id, strategy="reserved")
	return lot_id
