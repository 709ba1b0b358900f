from pharmamarket.marketplace.offers import Offer, OfferLineItem, OfferType, build_offer
from pharmamarket.marketplace.order_derivation import (
    Order,
    OrderLine,
    derive_order_from_offer,
    derive_order_from_tender_response,
    reconcile_order,
)
from pharmamarket.marketplace.pricing import PriceBreakdown, compute_offer_total, price_offer
from pharmamarket.marketplace.priority_selection import validate_priority_selection
from pharmamarket.marketplace.tender_lifecycle import (
    cancel_tender,
    clone_tender,
    close_tender,
    display_status,
    is_expired,
    reopen_tender,
)
from pharmamarket.marketplace.tender_responses import build_response_items, response_total
from pharmamarket.marketplace.tenders import Tender, TenderItem, TenderResponse, TenderStatus, build_tender

__all__ = [
    "Offer",
    "OfferLineItem",
    "OfferType",
    "build_offer",
    "PriceBreakdown",
    "price_offer",
    "compute_offer_total",
    "validate_priority_selection",
    "Tender",
    "TenderItem",
    "TenderResponse",
    "TenderStatus",
    "build_tender",
    "close_tender",
    "cancel_tender",
    "reopen_tender",
    "clone_tender",
    "is_expired",
    "display_status",
    "build_response_items",
    "response_total",
    "Order",
    "OrderLine",
    "derive_order_from_offer",
    "derive_order_from_tender_response",
    "reconcile_order",
]
