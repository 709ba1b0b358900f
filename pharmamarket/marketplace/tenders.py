from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Tuple

from pharmamarket.domain.contracts import TenderCreateInput
from pharmamarket.errors import ValidationError
from pharmamarket.marketplace.values import ensure_utc, parse_datetime, to_quantity


class TenderStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class TenderItem:
    id: str
    tender_id: str
    product_id: str
    quantity: int


@dataclass(frozen=True)
class Tender:
    id: str
    buyer_id: str
    title: str
    wilaya: str
    deadline: datetime
    is_public: bool
    status: TenderStatus
    public_link: str
    items: Tuple[TenderItem, ...] = field(default_factory=tuple)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, TenderStatus):
            object.__setattr__(self, "status", TenderStatus(str(self.status)))
        object.__setattr__(self, "deadline", ensure_utc(self.deadline))
        object.__setattr__(self, "items", tuple(self.items))

    def item(self, tender_item_id: str) -> TenderItem | None:
        return next((item for item in self.items if item.id == tender_item_id), None)


@dataclass(frozen=True)
class TenderResponseItem:
    id: str
    tender_response_id: str
    tender_item_id: str
    price: Decimal
    delivery_date: date
    free_units_percentage: Decimal | None = None
    expiry_date: date | None = None

    def free_units_for(self, quantity: int) -> int:
        if not self.free_units_percentage:
            return 0
        units = (Decimal(quantity) * self.free_units_percentage / Decimal("100")).to_integral_value(
            rounding=ROUND_FLOOR
        )
        return int(units)


@dataclass(frozen=True)
class TenderResponse:
    id: str
    tender_id: str
    seller_id: str
    version: int
    created_at: datetime
    updated_at: datetime
    items: Tuple[TenderResponseItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TenderMessage:
    id: str
    tender_id: str
    user_id: str
    message: str
    created_at: datetime


def new_public_link() -> str:
    return secrets.token_urlsafe(12)


def build_tender(
    create_input: TenderCreateInput,
    *,
    buyer_id: str,
    now: datetime,
    tender_id: str | None = None,
) -> Tender:
    """Validate a buyer's wishlist and produce a new open ``Tender``."""
    title = (create_input.title or "").strip()
    if not title:
        raise ValidationError(code="tender_title_required")
    deadline = parse_datetime(create_input.deadline, field="deadline")
    if deadline <= ensure_utc(now):
        raise ValidationError(code="tender_deadline_invalid")
    wilaya = (create_input.wilaya or "").strip()
    if not wilaya:
        raise ValidationError(code="tender_wilaya_required")
    if not create_input.items:
        raise ValidationError(code="tender_items_required")

    resolved_id = tender_id or uuid.uuid4().hex
    items = []
    seen: set[str] = set()
    for draft in create_input.items:
        product_id = str(draft.product_id or "").strip()
        if not product_id:
            raise ValidationError(code="validation_error", payload={"field": "product_id"})
        if product_id in seen:
            raise ValidationError(code="tender_duplicate_product", payload={"product_id": product_id})
        seen.add(product_id)
        items.append(
            TenderItem(
                id=uuid.uuid4().hex,
                tender_id=resolved_id,
                product_id=product_id,
                quantity=to_quantity(draft.quantity, field="quantity"),
            )
        )

    return Tender(
        id=resolved_id,
        buyer_id=buyer_id,
        title=title,
        wilaya=wilaya,
        deadline=deadline,
        is_public=bool(create_input.is_public),
        status=TenderStatus.OPEN,
        public_link=new_public_link(),
        items=tuple(items),
        created_at=ensure_utc(now),
        updated_at=ensure_utc(now),
    )
