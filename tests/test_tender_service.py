import threading
import unittest
from datetime import timedelta
from decimal import Decimal

from pharmamarket.application.tender_service import TenderService
from pharmamarket.core import (
    EventBus,
    TenderMessageCreated,
    TenderOrderAccepted,
    TenderResponseCreated,
    TenderResponseUpdated,
)
from pharmamarket.db import connect_database, init_db
from pharmamarket.domain.contracts import ResponseItemDraft, ResponseSubmitInput, TenderAcceptInput, UserContact
from pharmamarket.errors import (
    EmptyResponse,
    NotFoundError,
    PersistenceFailure,
    StaleResponse,
    TenderAlreadyClosed,
    TenderNotOpen,
    ValidationError,
)
from pharmamarket.errors import PermissionError as AppPermissionError
from pharmamarket.identity import DictUserDirectory
from pharmamarket.infrastructure.repositories import TenderResponseRepository
from pharmamarket.notifications import EVENT_TENDER_ORDER_ACCEPTED, EVENT_TENDER_RESPONSE_RECEIVED
from tests.helpers.marketplace_fixtures import (
    ADMIN,
    BUYER,
    OTHER_BUYER,
    OTHER_SELLER,
    SELLER,
    FixedClock,
    HeaderOnlyOrderRepository,
    RecordingNotifier,
    tender_input,
)
from tests.helpers.temp_db import TempDbSandbox


class _UnseenResponseRepository(TenderResponseRepository):
    """Misses the seller's existing bid, as a concurrent first submission would."""

    def get_for_seller(self, db, *, tender_id, seller_id):
        return None


class TenderServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="tender_service")
        self.db = connect_database(self._temp_db.db_path)
        init_db(self.db)
        self.clock = FixedClock()
        self.bus = EventBus()
        self.notifier = RecordingNotifier()
        self.directory = DictUserDirectory(
            {
                BUYER.id: UserContact(BUYER.id, BUYER.email, BUYER.company_name),
                SELLER.id: UserContact(SELLER.id, SELLER.email, SELLER.company_name),
            }
        )
        self.service = self._service(self.notifier)

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def _service(self, notifier) -> TenderService:
        return TenderService(event_bus=self.bus, notifier=notifier, directory=self.directory, clock=self.clock)

    def _create_tender(self, **overrides) -> dict:
        result = self.service.create_tender(self.db, user=BUYER, create_input=tender_input(**overrides))
        self.assertEqual(result.status_code, 201)
        return result.payload

    def _drafts(self, tender: dict, prices: dict) -> list:
        delivery = self.clock.now.date() + timedelta(days=3)
        return [
            ResponseItemDraft(
                tender_item_id=item["id"],
                price=prices.get(item["product_id"]),
                delivery_date=delivery if item["product_id"] in prices else None,
            )
            for item in tender["items"]
        ]

    def _submit(self, tender: dict, prices: dict, *, user=SELLER, expected_version=None, service=None):
        return (service or self.service).submit_or_update_response(
            self.db,
            user=user,
            submit_input=ResponseSubmitInput(
                tender_id=tender["id"],
                items=self._drafts(tender, prices),
                expected_version=expected_version,
            ),
        )


class TenderResponseLedgerServiceTest(TenderServiceTestCase):
    def test_partial_bid_stores_only_priced_lines(self) -> None:
        tender = self._create_tender()

        result = self._submit(tender, {"doliprane-1g": Decimal("120"), "ventoline": Decimal("310.50")})

        self.assertEqual(result.status_code, 201)
        self.assertEqual(result.payload["version"], 1)
        self.assertEqual([item["product_id"] for item in result.payload["items"]], ["doliprane-1g", "ventoline"])
        self.assertEqual(result.payload["total_amount"], "3063.00")

    def test_resubmission_replaces_item_set(self) -> None:
        tender = self._create_tender()
        prices = {"doliprane-1g": Decimal("120")}

        first = self._submit(tender, prices)
        second = self._submit(tender, prices)
        third = self._submit(tender, {"augmentin-1g": Decimal("75")})

        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.payload["id"], first.payload["id"])
        self.assertEqual(len(second.payload["items"]), 1)
        self.assertEqual(third.payload["version"], 3)
        self.assertEqual([item["product_id"] for item in third.payload["items"]], ["augmentin-1g"])

        count = self.db.execute("SELECT COUNT(*) AS total FROM tender_responses").fetchone()["total"]
        items = self.db.execute("SELECT COUNT(*) AS total FROM tender_response_items").fetchone()["total"]
        self.assertEqual((count, items), (1, 1))

    def test_stale_version_is_refused(self) -> None:
        tender = self._create_tender()
        self._submit(tender, {"doliprane-1g": Decimal("120")})
        self._submit(tender, {"doliprane-1g": Decimal("118")}, expected_version=1)

        with self.assertRaises(StaleResponse) as ctx:
            self._submit(tender, {"doliprane-1g": Decimal("99")}, expected_version=1)
        self.assertEqual(ctx.exception.payload["current_version"], 2)

        snapshot = self.service.get_tender_snapshot(self.db, user=SELLER, tender_id=tender["id"]).payload
        self.assertEqual(snapshot["responses"][0]["items"][0]["price"], "118")

    def test_racing_first_submission_is_stale(self) -> None:
        tender = self._create_tender()
        self._submit(tender, {"doliprane-1g": Decimal("120")})
        racing = TenderService(
            response_repository=_UnseenResponseRepository(),
            event_bus=self.bus,
            notifier=self.notifier,
            directory=self.directory,
            clock=self.clock,
        )

        with self.assertRaises(StaleResponse) as ctx:
            self._submit(tender, {"doliprane-1g": Decimal("99")}, service=racing)
        self.assertEqual(ctx.exception.http_status, 409)

        snapshot = self.service.get_tender_snapshot(self.db, user=SELLER, tender_id=tender["id"]).payload
        self.assertEqual(len(snapshot["responses"]), 1)
        self.assertEqual(snapshot["responses"][0]["version"], 1)
        self.assertEqual(snapshot["responses"][0]["items"][0]["price"], "120")

    def test_blank_submission_is_empty(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(EmptyResponse):
            self._submit(tender, {})

    def test_buyer_cannot_bid_on_own_tender(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(AppPermissionError):
            self._submit(tender, {"doliprane-1g": Decimal("1")}, user=BUYER)

    def test_closed_tender_refuses_bids_and_messages(self) -> None:
        tender = self._create_tender()
        self.service.close_tender(self.db, user=BUYER, tender_id=tender["id"])

        with self.assertRaises(TenderNotOpen):
            self._submit(tender, {"doliprane-1g": Decimal("120")})
        with self.assertRaises(TenderNotOpen):
            self.service.post_tender_message(self.db, user=SELLER, tender_id=tender["id"], message="Disponible ?")

    def test_expired_but_open_tender_still_accepts_bids(self) -> None:
        tender = self._create_tender()
        self.clock.advance(days=6)

        result = self._submit(tender, {"doliprane-1g": Decimal("120")})

        self.assertEqual(result.status_code, 201)
        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual(snapshot["display_status"], "expired")
        self.assertEqual(snapshot["status"], "open")

    def test_sealed_bids_in_snapshot(self) -> None:
        tender = self._create_tender()
        self._submit(tender, {"doliprane-1g": Decimal("120")})
        self._submit(tender, {"doliprane-1g": Decimal("115")}, user=OTHER_SELLER)

        owner_view = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        seller_view = self.service.get_tender_snapshot(self.db, user=OTHER_SELLER, tender_id=tender["id"]).payload

        self.assertEqual(owner_view["responses_count"], 2)
        self.assertEqual([row["seller_id"] for row in seller_view["responses"]], [OTHER_SELLER.id])
        self.assertNotIn("responses_count", seller_view)

    def test_response_events_carry_ids(self) -> None:
        tender = self._create_tender()
        created, updated = [], []
        self.bus.subscribe(TenderResponseCreated, created.append)
        self.bus.subscribe(TenderResponseUpdated, updated.append)

        first = self._submit(tender, {"doliprane-1g": Decimal("120")})
        self._submit(tender, {"doliprane-1g": Decimal("110")})

        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].tender_id, tender["id"])
        self.assertEqual(created[0].tender_response_id, first.payload["id"])
        self.assertEqual(updated[0].version, 2)
        self.assertEqual(self.notifier.sent[0][0], EVENT_TENDER_RESPONSE_RECEIVED)
        self.assertEqual(self.notifier.sent[0][1], BUYER.email)

    def test_notification_failure_is_swallowed(self) -> None:
        tender = self._create_tender()
        service = self._service(RecordingNotifier(fail=True))

        with self.assertLogs("pharmamarket.notifications", level="ERROR"):
            result = self._submit(tender, {"doliprane-1g": Decimal("120")}, service=service)

        self.assertEqual(result.status_code, 201)


class TenderMessagesTest(TenderServiceTestCase):
    def test_participants_can_post_messages(self) -> None:
        tender = self._create_tender()
        received = []
        self.bus.subscribe(TenderMessageCreated, received.append)

        result = self.service.post_tender_message(self.db, user=SELLER, tender_id=tender["id"], message="  Livraison J+2 ")

        self.assertEqual(result.status_code, 201)
        self.assertEqual(result.payload["message"], "Livraison J+2")
        self.assertEqual(received[0].tender_message_id, result.payload["id"])
        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual([row["message"] for row in snapshot["messages"]], ["Livraison J+2"])

    def test_empty_message_is_rejected(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(ValidationError) as ctx:
            self.service.post_tender_message(self.db, user=SELLER, tender_id=tender["id"], message="   ")
        self.assertEqual(ctx.exception.code, "message_required")

    def test_other_pharmacist_cannot_post(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(NotFoundError):
            self.service.post_tender_message(self.db, user=OTHER_BUYER, tender_id=tender["id"], message="Bonjour")


class TenderLifecycleServiceTest(TenderServiceTestCase):
    def test_only_owner_changes_status(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(AppPermissionError):
            self.service.close_tender(self.db, user=OTHER_BUYER, tender_id=tender["id"])
        result = self.service.cancel_tender(self.db, user=ADMIN, tender_id=tender["id"])
        self.assertEqual(result.payload["status"], "canceled")

    def test_reopen_extends_expired_deadline(self) -> None:
        tender = self._create_tender()
        self.service.close_tender(self.db, user=BUYER, tender_id=tender["id"])
        self.clock.advance(days=10)

        result = self.service.reopen_tender(self.db, user=BUYER, tender_id=tender["id"])

        self.assertEqual(result.payload["status"], "open")
        expected = (self.clock.now + timedelta(days=7)).isoformat().replace("+00:00", "Z")
        self.assertEqual(result.payload["deadline"], expected)
        stored = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual(stored["deadline"], expected)

    def test_reopen_of_open_tender_conflicts(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(ValidationError) as ctx:
            self.service.reopen_tender(self.db, user=BUYER, tender_id=tender["id"])
        self.assertEqual(ctx.exception.http_status, 409)

    def test_status_history_is_recorded(self) -> None:
        tender = self._create_tender()
        self.service.close_tender(self.db, user=BUYER, tender_id=tender["id"])
        self.service.reopen_tender(self.db, user=BUYER, tender_id=tender["id"])

        rows = self.db.execute(
            "SELECT from_status, to_status, reason FROM status_events WHERE entity_id = ? ORDER BY occurred_at, rowid",
            (tender["id"],),
        ).fetchall()
        self.assertEqual(
            [(row["from_status"], row["to_status"], row["reason"]) for row in rows],
            [(None, "open", "tender_created"), ("open", "closed", "close"), ("closed", "open", "reopen")],
        )

    def test_clone_starts_fresh(self) -> None:
        tender = self._create_tender()
        self._submit(tender, {"doliprane-1g": Decimal("120")})
        self.service.post_tender_message(self.db, user=SELLER, tender_id=tender["id"], message="Question")

        clone = self.service.clone_tender(self.db, user=BUYER, tender_id=tender["id"])

        self.assertEqual(clone.status_code, 201)
        self.assertEqual(clone.payload["title"], "Besoins novembre (copy)")
        self.assertEqual(
            [(item["product_id"], item["quantity"]) for item in clone.payload["items"]],
            [(item["product_id"], item["quantity"]) for item in tender["items"]],
        )
        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=clone.payload["id"]).payload
        self.assertEqual(snapshot["responses"], [])
        self.assertEqual(snapshot["messages"], [])

    def test_unlisted_tender_reachable_by_public_link(self) -> None:
        tender = self._create_tender(is_public=False)

        result = self.service.get_public_tender(self.db, public_link=tender["public_link"])
        self.assertEqual(result.payload["id"], tender["id"])
        with self.assertRaises(NotFoundError):
            self.service.get_tender_snapshot(self.db, user=OTHER_BUYER, tender_id=tender["id"])
        listed = self.service.list_tenders(self.db, user=SELLER).payload["items"]
        self.assertEqual(listed, [])


class TenderAcceptanceTest(TenderServiceTestCase):
    def test_accept_creates_order_and_closes_tender(self) -> None:
        tender = self._create_tender()
        response = self._submit(tender, {"doliprane-1g": Decimal("120"), "ventoline": Decimal("310.50")}).payload

        result = self.service.accept_response(
            self.db,
            user=BUYER,
            accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id=response["id"]),
        )

        self.assertEqual(result.status_code, 201)
        self.assertEqual(result.payload["total_amount"], "3063.00")
        self.assertEqual(result.payload["status"], "accepted")
        self.assertEqual(result.payload["seller_id"], SELLER.id)
        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual(snapshot["status"], "closed")
        self.assertEqual(len(snapshot["orders"]), 1)
        self.assertEqual(self.notifier.sent[-1][0], EVENT_TENDER_ORDER_ACCEPTED)
        self.assertEqual(self.notifier.sent[-1][1], SELLER.email)

    def test_second_acceptance_reports_already_closed(self) -> None:
        tender = self._create_tender()
        first = self._submit(tender, {"doliprane-1g": Decimal("120")}).payload
        second = self._submit(tender, {"doliprane-1g": Decimal("115")}, user=OTHER_SELLER).payload
        self.service.accept_response(
            self.db,
            user=BUYER,
            accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id=first["id"]),
        )

        with self.assertRaises(TenderAlreadyClosed):
            self.service.accept_response(
                self.db,
                user=BUYER,
                accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id=second["id"]),
            )

    def test_unknown_response_leaves_tender_open(self) -> None:
        tender = self._create_tender()

        with self.assertRaises(NotFoundError):
            self.service.accept_response(
                self.db,
                user=BUYER,
                accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id="absent"),
            )
        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual(snapshot["status"], "open")

    def test_failed_order_write_rolls_back_acceptance(self) -> None:
        tender = self._create_tender()
        response = self._submit(tender, {"doliprane-1g": Decimal("120")}).payload
        service = TenderService(
            order_repository=HeaderOnlyOrderRepository(),
            event_bus=self.bus,
            notifier=self.notifier,
            directory=self.directory,
            clock=self.clock,
        )
        accepted = []
        self.bus.subscribe(TenderOrderAccepted, accepted.append)

        with self.assertRaises(PersistenceFailure):
            service.accept_response(
                self.db,
                user=BUYER,
                accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id=response["id"]),
            )

        snapshot = self.service.get_tender_snapshot(self.db, user=BUYER, tender_id=tender["id"]).payload
        self.assertEqual(snapshot["status"], "open")
        for table in ("orders", "order_lines"):
            count = self.db.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()["total"]
            self.assertEqual(count, 0, table)
        closed_events = self.db.execute(
            "SELECT COUNT(*) AS total FROM status_events WHERE entity = 'tender' AND to_status = 'closed'"
        ).fetchone()["total"]
        self.assertEqual(closed_events, 0)
        self.assertEqual(accepted, [])
        self.assertEqual(self.notifier.sent[-1][0], EVENT_TENDER_RESPONSE_RECEIVED)

    def test_concurrent_acceptances_book_one_order(self) -> None:
        tender = self._create_tender()
        responses = [
            self._submit(tender, {"doliprane-1g": Decimal("120")}).payload["id"],
            self._submit(tender, {"doliprane-1g": Decimal("115")}, user=OTHER_SELLER).payload["id"],
        ]
        barrier = threading.Barrier(len(responses))
        outcomes = []
        lock = threading.Lock()

        def _accept(response_id: str) -> None:
            db = connect_database(self._temp_db.db_path)
            try:
                barrier.wait(timeout=5)
                self.service.accept_response(
                    db,
                    user=BUYER,
                    accept_input=TenderAcceptInput(tender_id=tender["id"], tender_response_id=response_id),
                )
                outcome = "accepted"
            except TenderAlreadyClosed:
                outcome = "already_closed"
            finally:
                db.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=_accept, args=(response_id,)) for response_id in responses]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(outcomes), ["accepted", "already_closed"])
        orders = self.db.execute("SELECT COUNT(*) AS total FROM orders WHERE tender_id = ?", (tender["id"],)).fetchone()
        self.assertEqual(orders["total"], 1)


if __name__ == "__main__":
    unittest.main()
