from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from pharmamarket.marketplace.offers import Offer, OfferLineItem
from pharmamarket.marketplace.order_derivation import Order, OrderLine
from pharmamarket.marketplace.pricing import PriceBreakdown
from pharmamarket.marketplace.tender_lifecycle import allowed_actions, display_status, is_expired
from pharmamarket.marketplace.tender_responses import priced_lines, response_total
from pharmamarket.marketplace.tenders import Tender, TenderResponse
from pharmamarket.marketplace.values import isoformat, money_str
from pharmamarket.ui_strings import status_label


def _decimal_str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def offer_line_item_to_dict(item: OfferLineItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "unit_price": _decimal_str(item.unit_price),
        "is_priority": item.is_priority,
        "free_units_percentage": _decimal_str(item.free_units_percentage),
        "free_units": item.free_units,
        "priority_message": item.priority_message,
    }


def offer_to_dict(offer: Offer, now: datetime) -> Dict[str, Any]:
    status = offer.status(now)
    return {
        "id": offer.id,
        "seller_id": offer.seller_id,
        "name": offer.name,
        "type": offer.type.value,
        "start_date": isoformat(offer.start_date),
        "end_date": isoformat(offer.end_date),
        "min_purchase_amount": money_str(offer.min_purchase_amount),
        "custom_total_price": money_str(offer.custom_total_price),
        "max_quota_selections": offer.max_quota_selections,
        "selection_mode": offer.selection_mode,
        "comment": offer.comment,
        "free_text_products": offer.free_text_products,
        "is_public": offer.is_public,
        "status": status,
        "status_label": status_label("offer", status),
        "is_active": offer.is_active(now),
        "is_expired": offer.is_expired(now),
        "line_items": [offer_line_item_to_dict(item) for item in offer.line_items],
    }


def breakdown_to_dict(breakdown: PriceBreakdown) -> Dict[str, Any]:
    return {
        "regular_total": money_str(breakdown.regular_total),
        "base_total": money_str(breakdown.base_total),
        "priority_total": money_str(breakdown.priority_total),
        "total_amount": money_str(breakdown.total),
        "selected_priority_product_ids": [item.product_id for item in breakdown.selected_priority_items],
    }


def order_line_to_dict(line: OrderLine) -> Dict[str, Any]:
    return {
        "id": line.id,
        "position": line.position,
        "line_kind": line.line_kind.value,
        "product_id": line.product_id,
        "quantity": line.quantity,
        "unit_price": _decimal_str(line.unit_price),
        "line_total": money_str(line.line_total),
        "source_ref": line.source_ref,
    }


def order_to_dict(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "buyer_id": order.buyer_id,
        "seller_id": order.seller_id,
        "source": order.source.value,
        "status": order.status.value,
        "status_label": status_label("order", order.status.value),
        "offer_id": order.offer_id,
        "tender_id": order.tender_id,
        "tender_response_id": order.tender_response_id,
        "delivery_date": isoformat(order.delivery_date),
        "total_amount": money_str(order.total_amount),
        "currency": order.currency,
        "created_at": isoformat(order.created_at),
        "metadata": dict(order.metadata),
        "lines": [order_line_to_dict(line) for line in order.lines],
    }


def tender_to_dict(tender: Tender, now: datetime, *, include_actions: bool = False) -> Dict[str, Any]:
    status = display_status(tender, now)
    payload: Dict[str, Any] = {
        "id": tender.id,
        "buyer_id": tender.buyer_id,
        "title": tender.title,
        "wilaya": tender.wilaya,
        "deadline": isoformat(tender.deadline),
        "is_public": tender.is_public,
        "status": tender.status.value,
        "display_status": status,
        "status_label": status_label("tender", status),
        "is_expired": is_expired(tender, now),
        "public_link": tender.public_link,
        "created_at": isoformat(tender.created_at),
        "updated_at": isoformat(tender.updated_at),
        "items": [
            {"id": item.id, "product_id": item.product_id, "quantity": item.quantity}
            for item in tender.items
        ],
    }
    if include_actions:
        payload["allowed_actions"] = allowed_actions(tender)
    return payload


def response_to_dict(tender: Tender, response: TenderResponse) -> Dict[str, Any]:
    return {
        "id": response.id,
        "tender_id": response.tender_id,
        "seller_id": response.seller_id,
        "version": response.version,
        "created_at": isoformat(response.created_at),
        "updated_at": isoformat(response.updated_at),
        "total_amount": money_str(response_total(tender, response)),
        "items": [
            {
                "id": line.item.id,
                "tender_item_id": line.item.tender_item_id,
                "product_id": line.product_id,
                "quantity": line.quantity,
                "price": _decimal_str(line.item.price),
                "line_total": money_str(line.line_total),
                "free_units_percentage": _decimal_str(line.item.free_units_percentage),
                "free_units": line.item.free_units_for(line.quantity),
                "delivery_date": isoformat(line.item.delivery_date),
                "expiry_date": isoformat(line.item.expiry_date),
            }
            for line in priced_lines(tender, response)
        ],
    }


def responses_to_list(tender: Tender, responses: Iterable[TenderResponse]) -> List[Dict[str, Any]]:
    return [response_to_dict(tender, response) for response in responses]
