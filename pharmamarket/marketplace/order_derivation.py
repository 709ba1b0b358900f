"""Turn an accepted offer purchase or tender response into an order.

Every derived order satisfies ``total_amount == sum(quantity * unit_price)``
over its lines, to the cent. Offer-level pricing rules that do not belong to
a single product (threshold top-up, pack price override) are carried by one
``adjustment`` line so that the invariant holds without rewriting the
sellers' unit prices.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from pharmamarket.errors import ReconciliationMismatch, ValidationError
from pharmamarket.marketplace.offers import Offer, OfferLineItem, OfferType
from pharmamarket.marketplace.pricing import price_offer
from pharmamarket.marketplace.tender_responses import priced_lines
from pharmamarket.marketplace.tenders import Tender, TenderResponse
from pharmamarket.marketplace.values import ZERO, ensure_utc, quantize_money


class OrderSource(str, Enum):
    OFFER = "offer"
    TENDER = "tender"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class LineKind(str, Enum):
    REGULAR = "regular"
    PRIORITY = "priority"
    FREE_UNITS = "free_units"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class OrderLine:
    id: str
    order_id: str
    position: int
    line_kind: LineKind
    product_id: str | None
    quantity: int
    unit_price: Decimal
    source_ref: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    id: str
    buyer_id: str
    seller_id: str
    source: OrderSource
    status: OrderStatus
    total_amount: Decimal
    currency: str
    created_at: datetime
    lines: Tuple[OrderLine, ...] = field(default_factory=tuple)
    offer_id: str | None = None
    tender_id: str | None = None
    tender_response_id: str | None = None
    delivery_date: date | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def lines_total(lines: Iterable[OrderLine]) -> Decimal:
    return sum((line.line_total for line in lines), ZERO)


def reconcile(order_id: str, total_amount: Decimal, lines: Sequence[OrderLine]) -> None:
    computed = quantize_money(lines_total(lines))
    expected = quantize_money(total_amount)
    if computed != expected:
        raise ReconciliationMismatch(
            details=f"order {order_id}: total {expected} != lines {computed}",
            payload={"order_id": order_id},
        )


def reconcile_order(order: Order) -> Order:
    reconcile(order.id, order.total_amount, order.lines)
    return order


class _LineCollector:
    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        self.lines: List[OrderLine] = []

    def add(
        self,
        kind: LineKind,
        product_id: str | None,
        quantity: int,
        unit_price: Decimal,
        source_ref: str | None,
    ) -> None:
        self.lines.append(
            OrderLine(
                id=uuid.uuid4().hex,
                order_id=self.order_id,
                position=len(self.lines) + 1,
                line_kind=kind,
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                source_ref=source_ref,
            )
        )

    def add_with_free_units(
        self,
        kind: LineKind,
        product_id: str,
        quantity: int,
        unit_price: Decimal,
        free_units: int,
        source_ref: str,
    ) -> None:
        self.add(kind, product_id, quantity, unit_price, source_ref)
        if free_units > 0:
            self.add(LineKind.FREE_UNITS, product_id, free_units, ZERO, source_ref)


def _adjustment_ref(offer: Offer) -> str:
    if offer.type is OfferType.PACK:
        return "pack_custom_total"
    return "threshold_minimum"


def derive_order_from_offer(
    offer: Offer,
    *,
    buyer_id: str,
    selected_priority_items: Sequence[OfferLineItem],
    now: datetime,
    currency: str,
    free_text_products: str | None = None,
    order_id: str | None = None,
) -> Order:
    """Build a pending order for an offer purchase.

    The selection must already have been validated; line unit prices are
    copied from the offer line items.
    """
    resolved_id = order_id or uuid.uuid4().hex
    selected_ids = [item.product_id for item in selected_priority_items]
    breakdown = price_offer(offer, selected_ids)

    collector = _LineCollector(resolved_id)
    for item in offer.regular_items:
        collector.add_with_free_units(
            LineKind.REGULAR, item.product_id, item.quantity, item.unit_price, item.free_units, item.id
        )
    for item in breakdown.selected_priority_items:
        collector.add_with_free_units(
            LineKind.PRIORITY, item.product_id, item.quantity, item.unit_price, item.free_units, item.id
        )
    if breakdown.adjustment != ZERO:
        collector.add(LineKind.ADJUSTMENT, None, 1, breakdown.adjustment, _adjustment_ref(offer))

    metadata: Dict[str, Any] = {
        "offer_name": offer.name,
        "offer_type": offer.type.value,
        "selected_priority_product_ids": selected_ids,
    }
    if free_text_products:
        metadata["free_text_products"] = free_text_products

    order = Order(
        id=resolved_id,
        buyer_id=buyer_id,
        seller_id=offer.seller_id,
        source=OrderSource.OFFER,
        status=OrderStatus.PENDING,
        total_amount=quantize_money(breakdown.total),
        currency=currency,
        created_at=ensure_utc(now),
        lines=tuple(collector.lines),
        offer_id=offer.id,
        metadata=metadata,
    )
    return reconcile_order(order)


def derive_order_from_tender_response(
    tender: Tender,
    response: TenderResponse,
    *,
    now: datetime,
    currency: str,
    order_id: str | None = None,
) -> Order:
    """Build the accepted order for the winning bid.

    The order delivery date is the first response item's delivery date.
    """
    if response.tender_id != tender.id:
        raise ValidationError(code="tender_response_not_found", http_status=404)
    if not response.items:
        raise ValidationError(code="empty_response", http_status=422)

    resolved_id = order_id or uuid.uuid4().hex
    collector = _LineCollector(resolved_id)
    total = ZERO
    for line in priced_lines(tender, response):
        total += line.line_total
        collector.add_with_free_units(
            LineKind.REGULAR,
            line.product_id,
            line.quantity,
            line.item.price,
            line.item.free_units_for(line.quantity),
            line.item.id,
        )

    order = Order(
        id=resolved_id,
        buyer_id=tender.buyer_id,
        seller_id=response.seller_id,
        source=OrderSource.TENDER,
        status=OrderStatus.ACCEPTED,
        total_amount=quantize_money(total),
        currency=currency,
        created_at=ensure_utc(now),
        lines=tuple(collector.lines),
        tender_id=tender.id,
        tender_response_id=response.id,
        delivery_date=response.items[0].delivery_date,
        metadata={"tender_title": tender.title},
    )
    return reconcile_order(order)
