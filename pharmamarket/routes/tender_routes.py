from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify

from pharmamarket.application.registry import get_services
from pharmamarket.db import get_db
from pharmamarket.domain.contracts import (
    ResponseItemDraft,
    ResponseSubmitInput,
    TenderAcceptInput,
    TenderCreateInput,
    TenderItemDraft,
)
from pharmamarket.errors import ValidationError
from pharmamarket.identity import resolve_acting_user
from pharmamarket.routes.request_parsing import as_bool, dict_list, json_body


tender_bp = Blueprint("tenders", __name__)


def _tender_create_input(payload: Dict[str, Any]) -> TenderCreateInput:
    return TenderCreateInput(
        title=str(payload.get("title") or ""),
        wilaya=str(payload.get("wilaya") or ""),
        deadline=payload.get("deadline"),
        items=[
            TenderItemDraft(product_id=str(raw.get("product_id") or "").strip(), quantity=raw.get("quantity"))
            for raw in dict_list(payload.get("items"), field="items")
        ],
        is_public=as_bool(payload.get("is_public"), default=True),
    )


def _expected_version(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(code="validation_error", payload={"field": "expected_version"}) from None


def _response_submit_input(tender_id: str, payload: Dict[str, Any]) -> ResponseSubmitInput:
    return ResponseSubmitInput(
        tender_id=tender_id,
        items=[
            ResponseItemDraft(
                tender_item_id=str(raw.get("tender_item_id") or "").strip(),
                price=raw.get("price"),
                delivery_date=raw.get("delivery_date"),
                free_units_percentage=raw.get("free_units_percentage"),
                expiry_date=raw.get("expiry_date"),
            )
            for raw in dict_list(payload.get("items"), field="items")
        ],
        expected_version=_expected_version(payload.get("expected_version")),
    )


@tender_bp.route("/api/tenders", methods=["GET"])
def list_tenders():
    result = get_services().tenders.list_tenders(get_db(), user=resolve_acting_user())
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders", methods=["POST"])
def create_tender():
    result = get_services().tenders.create_tender(
        get_db(),
        user=resolve_acting_user(),
        create_input=_tender_create_input(json_body()),
    )
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/<tender_id>", methods=["GET"])
def get_tender(tender_id: str):
    result = get_services().tenders.get_tender_snapshot(get_db(), user=resolve_acting_user(), tender_id=tender_id)
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/public/<public_link>", methods=["GET"])
def get_public_tender(public_link: str):
    result = get_services().tenders.get_public_tender(get_db(), public_link=public_link)
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/<tender_id>/<action>", methods=["POST"])
def tender_action(tender_id: str, action: str):
    service = get_services().tenders
    handlers = {
        "close": service.close_tender,
        "cancel": service.cancel_tender,
        "reopen": service.reopen_tender,
        "clone": service.clone_tender,
    }
    handler = handlers.get(action)
    if handler is None:
        raise ValidationError(code="validation_error", http_status=404, payload={"action": action})
    result = handler(get_db(), user=resolve_acting_user(), tender_id=tender_id)
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/<tender_id>/messages", methods=["POST"])
def post_tender_message(tender_id: str):
    payload = json_body()
    result = get_services().tenders.post_tender_message(
        get_db(),
        user=resolve_acting_user(),
        tender_id=tender_id,
        message=str(payload.get("message") or ""),
    )
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/<tender_id>/responses", methods=["PUT"])
def submit_tender_response(tender_id: str):
    result = get_services().tenders.submit_or_update_response(
        get_db(),
        user=resolve_acting_user(),
        submit_input=_response_submit_input(tender_id, json_body()),
    )
    return jsonify(result.payload), result.status_code


@tender_bp.route("/api/tenders/<tender_id>/responses/<tender_response_id>/accept", methods=["POST"])
def accept_tender_response(tender_id: str, tender_response_id: str):
    result = get_services().tenders.accept_response(
        get_db(),
        user=resolve_acting_user(),
        accept_input=TenderAcceptInput(tender_id=tender_id, tender_response_id=tender_response_id),
    )
    return jsonify(result.payload), result.status_code
