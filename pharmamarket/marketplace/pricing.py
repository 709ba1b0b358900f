"""Offer total computation.

Pure and synchronous: callers validate the priority selection first
(see ``priority_selection``); unknown product ids simply contribute nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from pharmamarket.marketplace.offers import Offer, OfferLineItem, OfferType
from pharmamarket.marketplace.values import ZERO


@dataclass(frozen=True)
class PriceBreakdown:
    regular_total: Decimal
    base_total: Decimal
    priority_total: Decimal
    selected_priority_items: Tuple[OfferLineItem, ...]

    @property
    def total(self) -> Decimal:
        return self.base_total + self.priority_total

    @property
    def adjustment(self) -> Decimal:
        """Offer-level difference between the base price and the regular lines."""
        return self.base_total - self.regular_total


def selected_priority_items(offer: Offer, selected_product_ids: Iterable[str]) -> Tuple[OfferLineItem, ...]:
    wanted = set(selected_product_ids or ())
    return tuple(item for item in offer.priority_items if item.product_id in wanted)


def price_offer(offer: Offer, selected_product_ids: Iterable[str] = ()) -> PriceBreakdown:
    regular_total = sum((item.line_total for item in offer.regular_items), ZERO)

    base_total = regular_total
    if offer.type is OfferType.THRESHOLD and offer.min_purchase_amount is not None:
        base_total = max(base_total, offer.min_purchase_amount)
    if offer.type is OfferType.PACK and offer.custom_total_price is not None:
        base_total = offer.custom_total_price

    chosen = selected_priority_items(offer, selected_product_ids)
    priority_total = sum((item.line_total for item in chosen), ZERO)
    return PriceBreakdown(
        regular_total=regular_total,
        base_total=base_total,
        priority_total=priority_total,
        selected_priority_items=chosen,
    )


def compute_offer_total(offer: Offer, selected_product_ids: Iterable[str] = ()) -> Decimal:
    return price_offer(offer, selected_product_ids).total
