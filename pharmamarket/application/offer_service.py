from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable

from pharmamarket.application.presenters import breakdown_to_dict, offer_to_dict, order_to_dict
from pharmamarket.core import EventBus, OfferOrderPlaced, get_event_bus
from pharmamarket.domain.contracts import ActingUser, OfferDraft, OfferOrderInput, ServiceOutput
from pharmamarket.errors import NotFoundError, OfferNotActive, SelectionRequired
from pharmamarket.identity import DictUserDirectory, UserDirectory
from pharmamarket.infrastructure.repositories import OfferRepository, OrderRepository, StatusEventRepository
from pharmamarket.marketplace.offers import Offer, build_offer
from pharmamarket.marketplace.order_derivation import derive_order_from_offer, reconcile
from pharmamarket.marketplace.pricing import price_offer, selected_priority_items
from pharmamarket.marketplace.priority_selection import validate_priority_selection
from pharmamarket.marketplace.values import money_str, utc_now
from pharmamarket.notifications import EVENT_ORDER_PLACED, LoggingNotifier, Notifier, notify_best_effort
from pharmamarket.policies import ROLE_ADMIN, ROLE_PHARMACIST, ROLE_WHOLESALER, require_owner, require_roles


class OfferService:
    """Offer authoring, quoting and ordering."""

    def __init__(
        self,
        repository: OfferRepository | None = None,
        order_repository: OrderRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
        notifier: Notifier | None = None,
        directory: UserDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
        currency: str = "DZD",
    ) -> None:
        self.repository = repository or OfferRepository()
        self.order_repository = order_repository or OrderRepository()
        self.status_events = status_events or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()
        self.notifier = notifier or LoggingNotifier()
        self.directory = directory or DictUserDirectory()
        self.clock = clock
        self.currency = currency
        self._logger = logging.getLogger("pharmamarket")

    def _load_visible_offer(self, db, user: ActingUser, offer_id: str) -> Offer:
        offer = self.repository.get_by_id(db, offer_id)
        if offer is None:
            raise NotFoundError(code="offer_not_found", payload={"offer_id": offer_id})
        if not offer.is_public and not (user.is_admin or user.id == offer.seller_id):
            raise NotFoundError(code="offer_not_found", payload={"offer_id": offer_id})
        return offer

    def create_offer(self, db, *, user: ActingUser, draft: OfferDraft) -> ServiceOutput:
        require_roles(user, ROLE_WHOLESALER, ROLE_ADMIN)
        now = self.clock()
        offer = build_offer(draft, offer_id=uuid.uuid4().hex, seller_id=user.id)
        with db.transaction():
            self.repository.insert(db, offer, now=now)
        self._logger.info("offer_created", extra={"offer_id": offer.id, "seller_id": user.id})
        return ServiceOutput(payload=offer_to_dict(offer, now), status_code=201)

    def replace_offer(self, db, *, user: ActingUser, offer_id: str, draft: OfferDraft) -> ServiceOutput:
        require_roles(user, ROLE_WHOLESALER, ROLE_ADMIN)
        now = self.clock()
        with db.transaction():
            current = self.repository.get_by_id(db, offer_id)
            if current is None:
                raise NotFoundError(code="offer_not_found", payload={"offer_id": offer_id})
            require_owner(user, current.seller_id)
            offer = build_offer(draft, offer_id=current.id, seller_id=current.seller_id)
            self.repository.replace(db, offer, now=now)
        self._logger.info("offer_replaced", extra={"offer_id": offer.id, "seller_id": offer.seller_id})
        return ServiceOutput(payload=offer_to_dict(offer, now))

    def get_offer(self, db, *, user: ActingUser, offer_id: str) -> ServiceOutput:
        offer = self._load_visible_offer(db, user, offer_id)
        now = self.clock()
        payload = offer_to_dict(offer, now)
        payload["pricing"] = breakdown_to_dict(price_offer(offer))
        return ServiceOutput(payload=payload)

    def list_offers(self, db, *, user: ActingUser) -> ServiceOutput:
        if user.is_seller:
            rows = self.repository.list_summary(db, seller_id=user.id)
        elif user.is_admin:
            rows = self.repository.list_summary(db)
        else:
            rows = self.repository.list_summary(db, public_only=True)
        return ServiceOutput(payload={"items": rows})

    def get_offer_quote(
        self,
        db,
        *,
        user: ActingUser,
        offer_id: str,
        selected_priority_product_ids: Iterable[str] = (),
        without_priority: bool = False,
    ) -> ServiceOutput:
        """Price a candidate selection without placing the order.

        Quota and unknown-product errors are raised; a missing selection is
        reported as ``selection_required`` so the buyer can still see the base.
        """
        offer = self._load_visible_offer(db, user, offer_id)
        now = self.clock()
        selection_required = False
        try:
            picked = validate_priority_selection(
                offer,
                selected_priority_product_ids,
                without_priority=without_priority,
            )
        except SelectionRequired:
            picked = ()
            selection_required = True
        breakdown = price_offer(offer, picked)
        payload = breakdown_to_dict(breakdown)
        payload.update(
            {
                "offer_id": offer.id,
                "currency": self.currency,
                "selection_mode": offer.selection_mode,
                "max_quota_selections": offer.max_quota_selections,
                "selection_required": selection_required,
                "is_active": offer.is_active(now),
                "is_expired": offer.is_expired(now),
            }
        )
        return ServiceOutput(payload=payload)

    def place_offer_order(self, db, *, user: ActingUser, order_input: OfferOrderInput) -> ServiceOutput:
        require_roles(user, ROLE_PHARMACIST, ROLE_ADMIN)
        now = self.clock()
        offer = self._load_visible_offer(db, user, order_input.offer_id)
        if not offer.is_active(now):
            raise OfferNotActive(payload={"offer_id": offer.id, "status": offer.status(now)})

        picked = validate_priority_selection(
            offer,
            order_input.selected_priority_product_ids,
            without_priority=order_input.without_priority,
        )
        order = derive_order_from_offer(
            offer,
            buyer_id=user.id,
            selected_priority_items=selected_priority_items(offer, picked),
            now=now,
            currency=self.currency,
            free_text_products=(order_input.free_text_products or "").strip() or None,
        )

        with db.transaction():
            self.order_repository.insert(db, order)
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order.id,
                from_status=None,
                to_status=order.status.value,
                reason="offer_order_placed",
                actor_id=user.id,
                occurred_at=now,
            )
            reconcile(order.id, order.total_amount, self.order_repository.lines_for_order(db, order.id))

        self._logger.info(
            "offer_order_placed",
            extra={"offer_id": offer.id, "order_id": order.id, "total_amount": money_str(order.total_amount)},
        )
        self.event_bus.publish(
            OfferOrderPlaced(
                actor_id=user.id,
                offer_id=offer.id,
                order_id=order.id,
                buyer_id=user.id,
                seller_id=offer.seller_id,
                total_amount=money_str(order.total_amount),
            )
        )
        seller = self.directory.contact_for(offer.seller_id)
        notify_best_effort(
            self.notifier,
            EVENT_ORDER_PLACED,
            seller.email if seller else None,
            {
                "order_id": order.id,
                "offer_name": offer.name,
                "buyer_company": user.company_name,
                "total_amount": money_str(order.total_amount),
                "currency": order.currency,
            },
        )
        return ServiceOutput(payload=order_to_dict(order), status_code=201)
