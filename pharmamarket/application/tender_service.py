from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from pharmamarket.application.presenters import order_to_dict, response_to_dict, responses_to_list, tender_to_dict
from pharmamarket.core import (
    EventBus,
    TenderMessageCreated,
    TenderOrderAccepted,
    TenderResponseCreated,
    TenderResponseUpdated,
    TenderStatusChanged,
    get_event_bus,
)
from pharmamarket.db import INTEGRITY_ERRORS
from pharmamarket.domain.contracts import (
    ActingUser,
    ResponseSubmitInput,
    ServiceOutput,
    TenderAcceptInput,
    TenderCreateInput,
)
from pharmamarket.errors import (
    NotFoundError,
    PermissionError as AppPermissionError,
    StaleResponse,
    TenderAlreadyClosed,
    TenderNotOpen,
    ValidationError,
)
from pharmamarket.identity import DictUserDirectory, UserDirectory
from pharmamarket.infrastructure.repositories import (
    OrderRepository,
    StatusEventRepository,
    TenderMessageRepository,
    TenderRepository,
    TenderResponseRepository,
)
from pharmamarket.marketplace.order_derivation import derive_order_from_tender_response, reconcile
from pharmamarket.marketplace.tender_lifecycle import (
    CLONE_DEADLINE,
    REOPEN_EXTENSION,
    cancel_tender,
    clone_tender,
    close_for_acceptance,
    close_tender,
    ensure_open,
    reopen_tender,
)
from pharmamarket.marketplace.tender_responses import build_response_items, response_total, visible_responses
from pharmamarket.marketplace.tenders import Tender, TenderMessage, TenderStatus, build_tender
from pharmamarket.marketplace.values import isoformat, money_str, utc_now
from pharmamarket.notifications import (
    EVENT_TENDER_ORDER_ACCEPTED,
    EVENT_TENDER_RESPONSE_RECEIVED,
    LoggingNotifier,
    Notifier,
    notify_best_effort,
)
from pharmamarket.policies import ROLE_ADMIN, ROLE_PHARMACIST, ROLE_WHOLESALER, require_owner, require_roles


MAX_MESSAGE_LENGTH = 4000


class TenderService:
    """Tender negotiation workflow: wishlist, sealed bids, acceptance."""

    def __init__(
        self,
        repository: TenderRepository | None = None,
        response_repository: TenderResponseRepository | None = None,
        message_repository: TenderMessageRepository | None = None,
        order_repository: OrderRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
        notifier: Notifier | None = None,
        directory: UserDirectory | None = None,
        clock: Callable[[], datetime] = utc_now,
        currency: str = "DZD",
        reopen_extension: timedelta = REOPEN_EXTENSION,
        clone_deadline: timedelta = CLONE_DEADLINE,
    ) -> None:
        self.repository = repository or TenderRepository()
        self.response_repository = response_repository or TenderResponseRepository()
        self.message_repository = message_repository or TenderMessageRepository()
        self.order_repository = order_repository or OrderRepository()
        self.status_events = status_events or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()
        self.notifier = notifier or LoggingNotifier()
        self.directory = directory or DictUserDirectory()
        self.clock = clock
        self.currency = currency
        self.reopen_extension = reopen_extension
        self.clone_deadline = clone_deadline
        self._logger = logging.getLogger("pharmamarket")

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _get_tender(self, db, tender_id: str) -> Tender:
        tender = self.repository.get_by_id(db, tender_id)
        if tender is None:
            raise NotFoundError(code="tender_not_found", payload={"tender_id": tender_id})
        return tender

    @staticmethod
    def _can_view(user: ActingUser, tender: Tender) -> bool:
        # Unlisted tenders are reachable by id or public link; ids are unguessable.
        return user.is_admin or user.is_seller or user.id == tender.buyer_id or tender.is_public

    def _get_visible_tender(self, db, user: ActingUser, tender_id: str) -> Tender:
        tender = self._get_tender(db, tender_id)
        if not self._can_view(user, tender):
            raise NotFoundError(code="tender_not_found", payload={"tender_id": tender_id})
        return tender

    def _record_status(self, db, *, tender: Tender, to_status: TenderStatus, reason: str, actor_id: str, now: datetime) -> None:
        self.status_events.add_event(
            db,
            entity="tender",
            entity_id=tender.id,
            from_status=tender.status.value,
            to_status=to_status.value,
            reason=reason,
            actor_id=actor_id,
            occurred_at=now,
        )

    def _raise_lost_transition(self, db, tender_id: str, action: str) -> None:
        status = self.repository.get_status(db, tender_id)
        payload = {"tender_id": tender_id, "status": status, "action": action}
        if action == "accept_response" and status == TenderStatus.CLOSED.value:
            raise TenderAlreadyClosed(payload=payload)
        raise TenderNotOpen(payload=payload)

    # ------------------------------------------------------------------
    # authoring and reads
    # ------------------------------------------------------------------
    def create_tender(self, db, *, user: ActingUser, create_input: TenderCreateInput) -> ServiceOutput:
        require_roles(user, ROLE_PHARMACIST, ROLE_ADMIN)
        now = self.clock()
        tender = build_tender(create_input, buyer_id=user.id, now=now)
        with db.transaction():
            self.repository.insert(db, tender)
            self.status_events.add_event(
                db,
                entity="tender",
                entity_id=tender.id,
                from_status=None,
                to_status=tender.status.value,
                reason="tender_created",
                actor_id=user.id,
                occurred_at=now,
            )
        self._logger.info("tender_created", extra={"tender_id": tender.id, "buyer_id": user.id})
        return ServiceOutput(payload=tender_to_dict(tender, now, include_actions=True), status_code=201)

    def get_tender_snapshot(self, db, *, user: ActingUser, tender_id: str) -> ServiceOutput:
        tender = self._get_visible_tender(db, user, tender_id)
        now = self.clock()
        is_owner = user.is_admin or user.id == tender.buyer_id
        responses = visible_responses(
            tender,
            self.response_repository.list_for_tender(db, tender.id),
            viewer_id=user.id,
            is_admin=user.is_admin,
        )
        payload = tender_to_dict(tender, now, include_actions=is_owner)
        payload["responses"] = responses_to_list(tender, responses)
        payload["messages"] = self.message_repository.list_for_tender(db, tender.id)
        if is_owner:
            payload["responses_count"] = self.response_repository.count_for_tender(db, tender.id)
            payload["orders"] = self.order_repository.list_for_tender(db, tender.id)
        return ServiceOutput(payload=payload)

    def get_public_tender(self, db, *, public_link: str) -> ServiceOutput:
        tender = self.repository.get_by_public_link(db, str(public_link or "").strip())
        if tender is None:
            raise NotFoundError(code="tender_not_found")
        return ServiceOutput(payload=tender_to_dict(tender, self.clock()))

    def list_tenders(self, db, *, user: ActingUser) -> ServiceOutput:
        if user.is_admin:
            rows = self.repository.list_summary(db)
        elif user.is_buyer:
            rows = self.repository.list_summary(db, buyer_id=user.id)
        else:
            rows = self.repository.list_summary(db, public_only=True, status=TenderStatus.OPEN.value)
        return ServiceOutput(payload={"items": rows})

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def _apply_transition(self, db, *, user: ActingUser, tender_id: str, action: str, transition) -> ServiceOutput:
        require_roles(user, ROLE_PHARMACIST, ROLE_ADMIN)
        now = self.clock()
        with db.transaction():
            tender = self._get_tender(db, tender_id)
            require_owner(user, tender.buyer_id)
            updated = transition(tender, now)
            won = self.repository.compare_and_set_status(
                db,
                tender.id,
                expected=tender.status,
                target=updated.status,
                updated_at=now,
                deadline=updated.deadline if updated.deadline != tender.deadline else None,
            )
            if not won:
                self._raise_lost_transition(db, tender.id, action)
            self._record_status(db, tender=tender, to_status=updated.status, reason=action, actor_id=user.id, now=now)

        self._logger.info(
            "tender_status_changed",
            extra={"tender_id": tender.id, "from_status": tender.status.value, "to_status": updated.status.value},
        )
        self.event_bus.publish(
            TenderStatusChanged(
                actor_id=user.id,
                tender_id=tender.id,
                from_status=tender.status.value,
                to_status=updated.status.value,
                action=action,
            )
        )
        return ServiceOutput(payload=tender_to_dict(updated, now, include_actions=True))

    def close_tender(self, db, *, user: ActingUser, tender_id: str) -> ServiceOutput:
        return self._apply_transition(db, user=user, tender_id=tender_id, action="close", transition=close_tender)

    def cancel_tender(self, db, *, user: ActingUser, tender_id: str) -> ServiceOutput:
        return self._apply_transition(db, user=user, tender_id=tender_id, action="cancel", transition=cancel_tender)

    def reopen_tender(self, db, *, user: ActingUser, tender_id: str) -> ServiceOutput:
        return self._apply_transition(
            db,
            user=user,
            tender_id=tender_id,
            action="reopen",
            transition=lambda tender, now: reopen_tender(tender, now, extension=self.reopen_extension),
        )

    def clone_tender(self, db, *, user: ActingUser, tender_id: str) -> ServiceOutput:
        require_roles(user, ROLE_PHARMACIST, ROLE_ADMIN)
        now = self.clock()
        source = self._get_tender(db, tender_id)
        require_owner(user, source.buyer_id)
        clone = clone_tender(source, now, deadline_in=self.clone_deadline)
        with db.transaction():
            self.repository.insert(db, clone)
            self.status_events.add_event(
                db,
                entity="tender",
                entity_id=clone.id,
                from_status=None,
                to_status=clone.status.value,
                reason=f"cloned_from:{source.id}",
                actor_id=user.id,
                occurred_at=now,
            )
        self._logger.info("tender_cloned", extra={"tender_id": clone.id, "source_tender_id": source.id})
        return ServiceOutput(payload=tender_to_dict(clone, now, include_actions=True), status_code=201)

    # ------------------------------------------------------------------
    # negotiation
    # ------------------------------------------------------------------
    def post_tender_message(self, db, *, user: ActingUser, tender_id: str, message: str) -> ServiceOutput:
        text = str(message or "").strip()
        if not text:
            raise ValidationError(code="message_required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(code="validation_error", payload={"field": "message"})
        now = self.clock()
        record = TenderMessage(
            id=uuid.uuid4().hex,
            tender_id=tender_id,
            user_id=user.id,
            message=text,
            created_at=now,
        )
        with db.transaction():
            tender = self._get_visible_tender(db, user, tender_id)
            if not (user.is_admin or user.is_seller or user.id == tender.buyer_id):
                raise NotFoundError(code="tender_not_found", payload={"tender_id": tender_id})
            ensure_open(tender, "post_message")
            self.message_repository.add(db, record)

        self.event_bus.publish(
            TenderMessageCreated(
                actor_id=user.id,
                tender_id=tender_id,
                tender_message_id=record.id,
                user_id=user.id,
            )
        )
        return ServiceOutput(
            payload={
                "id": record.id,
                "tender_id": tender_id,
                "user_id": user.id,
                "message": text,
                "created_at": isoformat(record.created_at),
            },
            status_code=201,
        )

    def submit_or_update_response(self, db, *, user: ActingUser, submit_input: ResponseSubmitInput) -> ServiceOutput:
        """Upsert the seller's single bid on a tender.

        The stored item set is replaced as a whole. When ``expected_version``
        is given and no longer matches, the update is refused with
        ``StaleResponse`` instead of overwriting a newer bid.
        """
        require_roles(user, ROLE_WHOLESALER, ROLE_ADMIN)
        now = self.clock()
        with db.transaction():
            tender = self._get_tender(db, submit_input.tender_id)
            if user.id == tender.buyer_id:
                raise AppPermissionError(code="permission_denied")
            ensure_open(tender, "submit_response")

            existing = self.response_repository.get_for_seller(db, tender_id=tender.id, seller_id=user.id)
            response_id = existing.id if existing else uuid.uuid4().hex
            items = build_response_items(
                tender,
                submit_input.items,
                tender_response_id=response_id,
                today=now.date(),
            )
            if existing is None:
                try:
                    self.response_repository.create(
                        db,
                        response_id=response_id,
                        tender_id=tender.id,
                        seller_id=user.id,
                        now=now,
                    )
                except INTEGRITY_ERRORS as exc:
                    # Another submission by the same seller created the row first.
                    raise StaleResponse(
                        payload={
                            "tender_id": tender.id,
                            "expected_version": submit_input.expected_version,
                            "current_version": None,
                        }
                    ) from exc
            else:
                expected = submit_input.expected_version
                if expected is None:
                    expected = existing.version
                if int(expected) != existing.version or not self.response_repository.bump_version(
                    db, existing.id, expected_version=int(expected), now=now
                ):
                    raise StaleResponse(
                        payload={
                            "tender_response_id": existing.id,
                            "expected_version": expected,
                            "current_version": existing.version,
                        }
                    )
            self.response_repository.replace_items(db, response_id, items, now=now)
            response = self.response_repository.get_by_id(db, response_id)

        total = money_str(response_total(tender, response))
        self._logger.info(
            "tender_response_saved",
            extra={
                "tender_id": tender.id,
                "tender_response_id": response.id,
                "version": response.version,
                "items_count": len(response.items),
            },
        )
        if existing is None:
            self.event_bus.publish(
                TenderResponseCreated(
                    actor_id=user.id,
                    tender_id=tender.id,
                    tender_response_id=response.id,
                    seller_id=user.id,
                    items_count=len(response.items),
                )
            )
        else:
            self.event_bus.publish(
                TenderResponseUpdated(
                    actor_id=user.id,
                    tender_id=tender.id,
                    tender_response_id=response.id,
                    seller_id=user.id,
                    version=response.version,
                    items_count=len(response.items),
                )
            )
        buyer = self.directory.contact_for(tender.buyer_id)
        notify_best_effort(
            self.notifier,
            EVENT_TENDER_RESPONSE_RECEIVED,
            buyer.email if buyer else None,
            {
                "tender_id": tender.id,
                "tender_title": tender.title,
                "seller_company": user.company_name,
                "total_amount": total,
                "currency": self.currency,
            },
        )
        return ServiceOutput(payload=response_to_dict(tender, response), status_code=201 if existing is None else 200)

    def accept_response(self, db, *, user: ActingUser, accept_input: TenderAcceptInput) -> ServiceOutput:
        """Accept one bid: close the tender and write the order in one transaction.

        The close is a compare-and-set on ``status = 'open'``; of two
        concurrent acceptances only one wins, the other gets
        ``TenderAlreadyClosed``.
        """
        require_roles(user, ROLE_PHARMACIST, ROLE_ADMIN)
        now = self.clock()
        tender = self._get_tender(db, accept_input.tender_id)
        require_owner(user, tender.buyer_id)
        close_for_acceptance(tender, now)

        with db.transaction():
            response = self.response_repository.get_by_id(db, accept_input.tender_response_id)
            if response is None or response.tender_id != tender.id:
                raise NotFoundError(
                    code="tender_response_not_found",
                    payload={"tender_response_id": accept_input.tender_response_id},
                )
            won = self.repository.compare_and_set_status(
                db,
                tender.id,
                expected=TenderStatus.OPEN,
                target=TenderStatus.CLOSED,
                updated_at=now,
            )
            if not won:
                self._raise_lost_transition(db, tender.id, "accept_response")
            order = derive_order_from_tender_response(tender, response, now=now, currency=self.currency)
            self.order_repository.insert(db, order)
            reconcile(order.id, order.total_amount, self.order_repository.lines_for_order(db, order.id))
            self._record_status(
                db,
                tender=tender,
                to_status=TenderStatus.CLOSED,
                reason=f"response_accepted:{response.id}",
                actor_id=user.id,
                now=now,
            )
            self.status_events.add_event(
                db,
                entity="order",
                entity_id=order.id,
                from_status=None,
                to_status=order.status.value,
                reason="tender_response_accepted",
                actor_id=user.id,
                occurred_at=now,
            )

        total = money_str(order.total_amount)
        self._logger.info(
            "tender_response_accepted",
            extra={"tender_id": tender.id, "tender_response_id": response.id, "order_id": order.id, "total_amount": total},
        )
        self.event_bus.publish(
            TenderStatusChanged(
                actor_id=user.id,
                tender_id=tender.id,
                from_status=TenderStatus.OPEN.value,
                to_status=TenderStatus.CLOSED.value,
                action="accept_response",
            )
        )
        self.event_bus.publish(
            TenderOrderAccepted(
                actor_id=user.id,
                tender_id=tender.id,
                tender_response_id=response.id,
                order_id=order.id,
                seller_id=response.seller_id,
                total_amount=total,
            )
        )
        seller = self.directory.contact_for(response.seller_id)
        notify_best_effort(
            self.notifier,
            EVENT_TENDER_ORDER_ACCEPTED,
            seller.email if seller else None,
            {
                "tender_id": tender.id,
                "tender_title": tender.title,
                "order_id": order.id,
                "buyer_company": user.company_name,
                "total_amount": total,
                "currency": order.currency,
                "delivery_date": isoformat(order.delivery_date) or "",
            },
        )
        return ServiceOutput(payload=order_to_dict(order), status_code=201)
