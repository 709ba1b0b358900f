from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Dict, Iterable, Tuple

from pharmamarket.domain.contracts import OfferDraft, OfferLineItemDraft
from pharmamarket.errors import ValidationError
from pharmamarket.marketplace.values import (
    ZERO,
    ensure_utc,
    parse_datetime,
    to_decimal,
    to_optional_decimal,
    to_quantity,
)


class OfferType(str, Enum):
    PACK = "pack"
    THRESHOLD = "threshold"


def parse_offer_type(value) -> OfferType:
    try:
        return OfferType(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError(code="offer_type_invalid", payload={"type": value}) from None


@dataclass(frozen=True)
class OfferLineItem:
    id: str
    product_id: str
    quantity: int
    unit_price: Decimal
    is_priority: bool = False
    free_units_percentage: Decimal | None = None
    priority_message: str | None = None

    def __post_init__(self) -> None:
        if not str(self.product_id or "").strip():
            raise ValidationError(code="validation_error", payload={"field": "product_id"})
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(code="quantity_invalid", payload={"product_id": self.product_id})
        if not isinstance(self.unit_price, Decimal) or not self.unit_price.is_finite() or self.unit_price < ZERO:
            raise ValidationError(code="amount_invalid", payload={"product_id": self.product_id})
        pct = self.free_units_percentage
        if pct is not None and (not pct.is_finite() or pct < ZERO or pct > Decimal("100")):
            raise ValidationError(code="free_units_invalid", payload={"product_id": self.product_id})

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def free_units(self) -> int:
        if not self.free_units_percentage:
            return 0
        units = (Decimal(self.quantity) * self.free_units_percentage / Decimal("100")).to_integral_value(
            rounding=ROUND_FLOOR
        )
        return int(units)


@dataclass(frozen=True)
class Offer:
    """A published promotional offer.

    Immutable: an edit by the seller builds a brand new ``Offer`` that
    replaces the stored one. Expiry is derived from ``end_date`` at read
    time and never stored.
    """

    id: str
    seller_id: str
    name: str
    type: OfferType
    start_date: datetime
    end_date: datetime
    line_items: Tuple[OfferLineItem, ...] = field(default_factory=tuple)
    min_purchase_amount: Decimal | None = None
    custom_total_price: Decimal | None = None
    max_quota_selections: int | None = None
    comment: str | None = None
    free_text_products: str | None = None
    is_public: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.type, OfferType):
            object.__setattr__(self, "type", parse_offer_type(self.type))
        object.__setattr__(self, "line_items", tuple(self.line_items))
        object.__setattr__(self, "start_date", ensure_utc(self.start_date))
        object.__setattr__(self, "end_date", ensure_utc(self.end_date))

        if not str(self.name or "").strip():
            raise ValidationError(code="offer_name_required")
        if self.end_date <= self.start_date:
            raise ValidationError(code="offer_dates_invalid")
        if self.type is OfferType.THRESHOLD:
            if self.min_purchase_amount is None or self.min_purchase_amount <= ZERO:
                raise ValidationError(code="min_purchase_amount_required")
        for amount_field in ("min_purchase_amount", "custom_total_price"):
            amount = getattr(self, amount_field)
            if amount is not None and (not amount.is_finite() or amount < ZERO):
                raise ValidationError(code="amount_invalid", payload={"field": amount_field})
        if self.max_quota_selections is not None and self.max_quota_selections < 1:
            raise ValidationError(code="quota_invalid")

        seen: set[str] = set()
        for item in self.line_items:
            if item.product_id in seen:
                raise ValidationError(code="offer_duplicate_product", payload={"product_id": item.product_id})
            seen.add(item.product_id)

    @property
    def regular_items(self) -> Tuple[OfferLineItem, ...]:
        return tuple(item for item in self.line_items if not item.is_priority)

    @property
    def priority_items(self) -> Tuple[OfferLineItem, ...]:
        return tuple(item for item in self.line_items if item.is_priority)

    @property
    def has_priority_items(self) -> bool:
        return any(item.is_priority for item in self.line_items)

    def priority_items_by_product(self) -> Dict[str, OfferLineItem]:
        return {item.product_id: item for item in self.priority_items}

    @property
    def effective_quota(self) -> int | None:
        """Upper bound on priority picks; an offer without a quota is an exclusive choice."""
        if not self.has_priority_items:
            return None
        if self.max_quota_selections is None:
            return 1
        return self.max_quota_selections

    @property
    def selection_mode(self) -> str | None:
        quota = self.effective_quota
        if quota is None:
            return None
        return "single" if quota <= 1 else "multiple"

    def has_started(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.start_date

    def is_expired(self, now: datetime) -> bool:
        return ensure_utc(now) > self.end_date

    def is_active(self, now: datetime) -> bool:
        return self.has_started(now) and not self.is_expired(now)

    def status(self, now: datetime) -> str:
        if self.is_expired(now):
            return "expired"
        if not self.has_started(now):
            return "scheduled"
        return "active"


def build_line_item(draft: OfferLineItemDraft, *, item_id: str | None = None) -> OfferLineItem:
    return OfferLineItem(
        id=item_id or uuid.uuid4().hex,
        product_id=str(draft.product_id or "").strip(),
        quantity=to_quantity(draft.quantity, field="quantity"),
        unit_price=to_decimal(draft.unit_price, field="unit_price"),
        is_priority=bool(draft.is_priority),
        free_units_percentage=to_optional_decimal(
            draft.free_units_percentage,
            field="free_units_percentage",
            error_code="free_units_invalid",
        ),
        priority_message=(draft.priority_message or "").strip() or None,
    )


def _parse_quota(value) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return to_quantity(value, field="max_quota_selections")
    except ValidationError:
        raise ValidationError(code="quota_invalid") from None


def build_offer(draft: OfferDraft, *, offer_id: str, seller_id: str) -> Offer:
    """Validate a seller's draft and produce the immutable ``Offer``."""
    offer_type = parse_offer_type(draft.type)
    line_items: Iterable[OfferLineItem] = [build_line_item(item) for item in draft.line_items or []]
    if not line_items:
        raise ValidationError(code="offer_products_required")
    return Offer(
        id=offer_id,
        seller_id=seller_id,
        name=(draft.name or "").strip(),
        type=offer_type,
        start_date=parse_datetime(draft.start_date, field="start_date"),
        end_date=parse_datetime(draft.end_date, field="end_date"),
        line_items=tuple(line_items),
        min_purchase_amount=(
            to_optional_decimal(draft.min_purchase_amount, field="min_purchase_amount")
            if offer_type is OfferType.THRESHOLD
            else None
        ),
        custom_total_price=to_optional_decimal(draft.custom_total_price, field="custom_total_price"),
        max_quota_selections=_parse_quota(draft.max_quota_selections),
        comment=(draft.comment or "").strip() or None,
        free_text_products=(draft.free_text_products or "").strip() or None,
        is_public=bool(draft.is_public),
    )
