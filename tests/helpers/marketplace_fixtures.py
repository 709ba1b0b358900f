from __future__ import annotations

import dataclasses
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pharmamarket.domain.contracts import ActingUser, OfferDraft, OfferLineItemDraft, TenderCreateInput, TenderItemDraft
from pharmamarket.infrastructure.repositories.order_repository import OrderRepository
from pharmamarket.marketplace.offers import Offer, OfferLineItem, OfferType


NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

BUYER = ActingUser(id="pharma-1", role="pharmacist", company_name="Pharmacie Centrale", email="pharma1@example.dz")
OTHER_BUYER = ActingUser(id="pharma-2", role="pharmacist", company_name="Pharmacie du Port")
SELLER = ActingUser(id="grossiste-1", role="wholesaler", company_name="Grossiste Atlas", email="atlas@example.dz")
OTHER_SELLER = ActingUser(id="grossiste-2", role="wholesaler", company_name="Grossiste Sahel")
ADMIN = ActingUser(id="admin-1", role="admin")


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def line_item(product_id: str, unit_price, quantity: int, *, priority: bool = False, free_units=None) -> OfferLineItem:
    return OfferLineItem(
        id=uuid.uuid4().hex,
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal(str(unit_price)),
        is_priority=priority,
        free_units_percentage=None if free_units is None else Decimal(str(free_units)),
    )


def make_offer(offer_type: OfferType, items, **overrides) -> Offer:
    attrs = {
        "id": uuid.uuid4().hex,
        "seller_id": SELLER.id,
        "name": "Promo automne",
        "type": offer_type,
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
        "line_items": tuple(items),
    }
    attrs.update(overrides)
    return Offer(**attrs)


def pack_draft(**overrides) -> OfferDraft:
    attrs = {
        "name": "Pack hiver",
        "type": "pack",
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=30),
        "line_items": [
            OfferLineItemDraft(product_id="doliprane-1g", quantity=2, unit_price="500"),
            OfferLineItemDraft(product_id="augmentin-1g", quantity=1, unit_price="300"),
            OfferLineItemDraft(
                product_id="insuline-glargine",
                quantity=1,
                unit_price="200",
                is_priority=True,
                priority_message="Stock limite",
            ),
        ],
    }
    attrs.update(overrides)
    return OfferDraft(**attrs)


def tender_input(**overrides) -> TenderCreateInput:
    attrs = {
        "title": "Besoins novembre",
        "wilaya": "Alger",
        "deadline": NOW + timedelta(days=5),
        "items": [
            TenderItemDraft(product_id="doliprane-1g", quantity=10),
            TenderItemDraft(product_id="augmentin-1g", quantity=4),
            TenderItemDraft(product_id="ventoline", quantity=6),
        ],
    }
    attrs.update(overrides)
    return TenderCreateInput(**attrs)


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    def notify(self, event_type, recipient_address, fields) -> None:
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((event_type, recipient_address, dict(fields)))


class HeaderOnlyOrderRepository(OrderRepository):
    """Writes the order header, then fails like a driver would on the lines."""

    def insert(self, db, order) -> None:
        super().insert(db, dataclasses.replace(order, lines=()))
        raise sqlite3.IntegrityError("UNIQUE constraint failed: order_lines.id")
