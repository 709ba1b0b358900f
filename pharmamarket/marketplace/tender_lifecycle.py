from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Tuple

from pharmamarket.errors import TenderAlreadyClosed, TenderNotOpen, ValidationError
from pharmamarket.marketplace.tenders import Tender, TenderItem, TenderStatus, new_public_link
from pharmamarket.marketplace.values import ensure_utc


REOPEN_EXTENSION = timedelta(days=7)
CLONE_DEADLINE = timedelta(days=14)
CLONE_TITLE_SUFFIX = " (copy)"


# action -> (allowed source statuses, target status)
TENDER_TRANSITIONS: Dict[str, Tuple[frozenset, TenderStatus]] = {
    "close": (frozenset({TenderStatus.OPEN}), TenderStatus.CLOSED),
    "cancel": (frozenset({TenderStatus.OPEN}), TenderStatus.CANCELED),
    "accept_response": (frozenset({TenderStatus.OPEN}), TenderStatus.CLOSED),
    "reopen": (frozenset({TenderStatus.CLOSED, TenderStatus.CANCELED}), TenderStatus.OPEN),
}

# Actions that never change the status but are gated on it.
OPEN_ONLY_ACTIONS = ("submit_response", "post_message")
ALWAYS_ALLOWED_ACTIONS = ("view", "clone")


def is_expired(tender: Tender, now: datetime) -> bool:
    """Open past its deadline. Display only; never blocks an action."""
    return tender.status is TenderStatus.OPEN and ensure_utc(now) > tender.deadline


def display_status(tender: Tender, now: datetime) -> str:
    if is_expired(tender, now):
        return "expired"
    return tender.status.value


def allowed_actions(tender: Tender) -> List[str]:
    actions = [action for action, (sources, _target) in TENDER_TRANSITIONS.items() if tender.status in sources]
    if tender.status is TenderStatus.OPEN:
        actions.extend(OPEN_ONLY_ACTIONS)
    actions.extend(ALWAYS_ALLOWED_ACTIONS)
    return actions


def ensure_open(tender: Tender, action: str) -> None:
    if tender.status is TenderStatus.OPEN:
        return
    error_cls = TenderAlreadyClosed if action == "accept_response" and tender.status is TenderStatus.CLOSED else TenderNotOpen
    raise error_cls(payload={"tender_id": tender.id, "status": tender.status.value, "action": action})


def _transition(tender: Tender, action: str, now: datetime, **changes) -> Tender:
    sources, target = TENDER_TRANSITIONS[action]
    if tender.status not in sources:
        if TenderStatus.OPEN in sources:
            ensure_open(tender, action)
        raise ValidationError(
            code="action_not_allowed_for_status",
            http_status=409,
            payload={
                "tender_id": tender.id,
                "status": tender.status.value,
                "action": action,
                "allowed_actions": allowed_actions(tender),
            },
        )
    return replace(tender, status=target, updated_at=ensure_utc(now), **changes)


def close_tender(tender: Tender, now: datetime) -> Tender:
    return _transition(tender, "close", now)


def cancel_tender(tender: Tender, now: datetime) -> Tender:
    return _transition(tender, "cancel", now)


def close_for_acceptance(tender: Tender, now: datetime) -> Tender:
    return _transition(tender, "accept_response", now)


def reopen_tender(tender: Tender, now: datetime, *, extension: timedelta = REOPEN_EXTENSION) -> Tender:
    current = ensure_utc(now)
    deadline = tender.deadline
    if deadline < current:
        deadline = current + extension
    return _transition(tender, "reopen", current, deadline=deadline)


def clone_tender(
    tender: Tender,
    now: datetime,
    *,
    buyer_id: str | None = None,
    deadline_in: timedelta = CLONE_DEADLINE,
) -> Tender:
    """Build a fresh open tender with the same wishlist; responses and messages stay behind."""
    current = ensure_utc(now)
    clone_id = uuid.uuid4().hex
    items = tuple(
        TenderItem(id=uuid.uuid4().hex, tender_id=clone_id, product_id=item.product_id, quantity=item.quantity)
        for item in tender.items
    )
    return Tender(
        id=clone_id,
        buyer_id=buyer_id or tender.buyer_id,
        title=f"{tender.title}{CLONE_TITLE_SUFFIX}",
        wilaya=tender.wilaya,
        deadline=current + deadline_in,
        is_public=tender.is_public,
        status=TenderStatus.OPEN,
        public_link=new_public_link(),
        items=items,
        created_at=current,
        updated_at=current,
    )
