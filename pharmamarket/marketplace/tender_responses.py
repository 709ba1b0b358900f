"""Seller bids against a tender wishlist.

A draft without a positive price or without a delivery date means the
seller declines that line: it is dropped, never stored as a zero price.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

from pharmamarket.domain.contracts import ResponseItemDraft
from pharmamarket.errors import EmptyResponse, ValidationError
from pharmamarket.marketplace.tenders import Tender, TenderResponse, TenderResponseItem
from pharmamarket.marketplace.values import ZERO, parse_optional_date, to_optional_decimal


@dataclass(frozen=True)
class PricedResponseLine:
    item: TenderResponseItem
    product_id: str
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.item.price * self.quantity


def _is_bid(draft: ResponseItemDraft) -> bool:
    price = to_optional_decimal(draft.price, field="price")
    if price is None or price <= ZERO:
        return False
    return parse_optional_date(draft.delivery_date, field="delivery_date") is not None


def filter_bid_drafts(drafts: Iterable[ResponseItemDraft]) -> List[ResponseItemDraft]:
    return [draft for draft in drafts or () if _is_bid(draft)]


def build_response_items(
    tender: Tender,
    drafts: Sequence[ResponseItemDraft],
    *,
    tender_response_id: str,
    today: date,
) -> Tuple[TenderResponseItem, ...]:
    """Validate a submission and return the item set that replaces the stored one."""
    kept = filter_bid_drafts(drafts)
    if not kept:
        raise EmptyResponse(payload={"tender_id": tender.id})

    items = []
    seen: set[str] = set()
    for draft in kept:
        tender_item_id = str(draft.tender_item_id or "").strip()
        if tender.item(tender_item_id) is None:
            raise ValidationError(code="response_item_unknown", payload={"tender_item_id": tender_item_id})
        if tender_item_id in seen:
            raise ValidationError(code="response_item_duplicate", payload={"tender_item_id": tender_item_id})
        seen.add(tender_item_id)

        delivery_date = parse_optional_date(draft.delivery_date, field="delivery_date")
        if delivery_date < today:
            raise ValidationError(code="delivery_date_in_past", payload={"tender_item_id": tender_item_id})
        free_units = to_optional_decimal(
            draft.free_units_percentage,
            field="free_units_percentage",
            error_code="free_units_invalid",
        )
        if free_units is not None and (free_units < ZERO or free_units > Decimal("100")):
            raise ValidationError(code="free_units_invalid", payload={"tender_item_id": tender_item_id})

        items.append(
            TenderResponseItem(
                id=uuid.uuid4().hex,
                tender_response_id=tender_response_id,
                tender_item_id=tender_item_id,
                price=to_optional_decimal(draft.price, field="price"),
                delivery_date=delivery_date,
                free_units_percentage=free_units,
                expiry_date=parse_optional_date(draft.expiry_date, field="expiry_date"),
            )
        )
    return tuple(items)


def priced_lines(tender: Tender, response: TenderResponse) -> List[PricedResponseLine]:
    lines = []
    for response_item in response.items:
        tender_item = tender.item(response_item.tender_item_id)
        if tender_item is None:
            raise ValidationError(
                code="response_item_unknown",
                payload={"tender_item_id": response_item.tender_item_id},
            )
        lines.append(
            PricedResponseLine(
                item=response_item,
                product_id=tender_item.product_id,
                quantity=tender_item.quantity,
            )
        )
    return lines


def response_total(tender: Tender, response: TenderResponse) -> Decimal:
    return sum((line.line_total for line in priced_lines(tender, response)), ZERO)


def visible_responses(
    tender: Tender,
    responses: Iterable[TenderResponse],
    *,
    viewer_id: str,
    is_admin: bool = False,
) -> List[TenderResponse]:
    """Sealed bidding: sellers never see each other's responses."""
    if is_admin or viewer_id == tender.buyer_id:
        return list(responses)
    return [response for response in responses if response.seller_id == viewer_id]
