from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify

from pharmamarket.application.registry import get_services
from pharmamarket.db import get_db
from pharmamarket.domain.contracts import OfferDraft, OfferLineItemDraft, OfferOrderInput
from pharmamarket.identity import resolve_acting_user
from pharmamarket.routes.request_parsing import as_bool, dict_list, json_body, string_list


offer_bp = Blueprint("offers", __name__)


def _offer_draft(payload: Dict[str, Any]) -> OfferDraft:
    line_items = []
    for raw in dict_list(payload.get("line_items"), field="line_items"):
        line_items.append(
            OfferLineItemDraft(
                product_id=str(raw.get("product_id") or "").strip(),
                quantity=raw.get("quantity"),
                unit_price=raw.get("unit_price"),
                is_priority=as_bool(raw.get("is_priority")),
                free_units_percentage=raw.get("free_units_percentage"),
                priority_message=raw.get("priority_message"),
            )
        )
    return OfferDraft(
        name=str(payload.get("name") or ""),
        type=str(payload.get("type") or ""),
        start_date=payload.get("start_date"),
        end_date=payload.get("end_date"),
        line_items=line_items,
        min_purchase_amount=payload.get("min_purchase_amount"),
        custom_total_price=payload.get("custom_total_price"),
        max_quota_selections=payload.get("max_quota_selections"),
        comment=payload.get("comment"),
        free_text_products=payload.get("free_text_products"),
        is_public=as_bool(payload.get("is_public"), default=True),
    )


@offer_bp.route("/api/offers", methods=["GET"])
def list_offers():
    result = get_services().offers.list_offers(get_db(), user=resolve_acting_user())
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/offers", methods=["POST"])
def create_offer():
    result = get_services().offers.create_offer(
        get_db(),
        user=resolve_acting_user(),
        draft=_offer_draft(json_body()),
    )
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/offers/<offer_id>", methods=["GET"])
def get_offer(offer_id: str):
    result = get_services().offers.get_offer(get_db(), user=resolve_acting_user(), offer_id=offer_id)
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/offers/<offer_id>", methods=["PUT"])
def replace_offer(offer_id: str):
    result = get_services().offers.replace_offer(
        get_db(),
        user=resolve_acting_user(),
        offer_id=offer_id,
        draft=_offer_draft(json_body()),
    )
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/offers/<offer_id>/quote", methods=["POST"])
def quote_offer(offer_id: str):
    payload = json_body()
    result = get_services().offers.get_offer_quote(
        get_db(),
        user=resolve_acting_user(),
        offer_id=offer_id,
        selected_priority_product_ids=string_list(
            payload.get("selected_priority_product_ids"),
            field="selected_priority_product_ids",
        ),
        without_priority=as_bool(payload.get("without_priority")),
    )
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/offers/<offer_id>/orders", methods=["POST"])
def place_offer_order(offer_id: str):
    payload = json_body()
    result = get_services().offers.place_offer_order(
        get_db(),
        user=resolve_acting_user(),
        order_input=OfferOrderInput(
            offer_id=offer_id,
            selected_priority_product_ids=string_list(
                payload.get("selected_priority_product_ids"),
                field="selected_priority_product_ids",
            ),
            without_priority=as_bool(payload.get("without_priority")),
            free_text_products=payload.get("free_text_products"),
        ),
    )
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/orders", methods=["GET"])
def list_orders():
    result = get_services().orders.list_orders(get_db(), user=resolve_acting_user())
    return jsonify(result.payload), result.status_code


@offer_bp.route("/api/orders/<order_id>", methods=["GET"])
def get_order(order_id: str):
    result = get_services().orders.get_order(get_db(), user=resolve_acting_user(), order_id=order_id)
    return jsonify(result.payload), result.status_code
