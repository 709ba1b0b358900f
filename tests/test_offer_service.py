import unittest
from datetime import timedelta
from decimal import Decimal

from pharmamarket.application.offer_service import OfferService
from pharmamarket.application.order_service import OrderService
from pharmamarket.core import EventBus, OfferOrderPlaced
from pharmamarket.db import connect_database, init_db
from pharmamarket.domain.contracts import OfferLineItemDraft, OfferOrderInput, UserContact
from pharmamarket.errors import NotFoundError, OfferNotActive, PersistenceFailure, QuotaExceeded, SelectionRequired
from pharmamarket.errors import PermissionError as AppPermissionError
from pharmamarket.identity import DictUserDirectory
from pharmamarket.notifications import EVENT_ORDER_PLACED
from tests.helpers.marketplace_fixtures import (
    ADMIN,
    BUYER,
    OTHER_BUYER,
    OTHER_SELLER,
    SELLER,
    FixedClock,
    HeaderOnlyOrderRepository,
    RecordingNotifier,
    pack_draft,
)
from tests.helpers.temp_db import TempDbSandbox


class OfferServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="offer_service")
        self.db = connect_database(self._temp_db.db_path)
        init_db(self.db)
        self.clock = FixedClock()
        self.bus = EventBus()
        self.notifier = RecordingNotifier()
        self.directory = DictUserDirectory({SELLER.id: UserContact(SELLER.id, SELLER.email, SELLER.company_name)})
        self.service = self._service(self.notifier)

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def _service(self, notifier) -> OfferService:
        return OfferService(
            event_bus=self.bus,
            notifier=notifier,
            directory=self.directory,
            clock=self.clock,
        )

    def _create(self, **overrides) -> str:
        result = self.service.create_offer(self.db, user=SELLER, draft=pack_draft(**overrides))
        self.assertEqual(result.status_code, 201)
        return result.payload["id"]

    def test_only_wholesalers_publish_offers(self) -> None:
        with self.assertRaises(AppPermissionError):
            self.service.create_offer(self.db, user=BUYER, draft=pack_draft())

    def test_offer_round_trips_through_storage(self) -> None:
        offer_id = self._create(custom_total_price="1100.50", max_quota_selections=2)

        payload = self.service.get_offer(self.db, user=BUYER, offer_id=offer_id).payload

        self.assertEqual(payload["custom_total_price"], "1100.50")
        self.assertEqual(payload["status"], "active")
        self.assertEqual(payload["selection_mode"], "multiple")
        self.assertEqual(len(payload["line_items"]), 3)
        self.assertEqual(payload["pricing"]["base_total"], "1100.50")

    def test_private_offer_is_hidden_from_other_users(self) -> None:
        offer_id = self._create(is_public=False)

        with self.assertRaises(NotFoundError):
            self.service.get_offer(self.db, user=BUYER, offer_id=offer_id)
        self.service.get_offer(self.db, user=SELLER, offer_id=offer_id)
        self.service.get_offer(self.db, user=ADMIN, offer_id=offer_id)

        listed = self.service.list_offers(self.db, user=BUYER).payload["items"]
        self.assertFalse(any(row["id"] == offer_id for row in listed))

    def test_replace_is_owner_only(self) -> None:
        offer_id = self._create()

        with self.assertRaises(AppPermissionError):
            self.service.replace_offer(self.db, user=OTHER_SELLER, offer_id=offer_id, draft=pack_draft(name="Pirate"))

        result = self.service.replace_offer(self.db, user=SELLER, offer_id=offer_id, draft=pack_draft(name="Pack v2"))
        self.assertEqual(result.payload["name"], "Pack v2")
        self.assertEqual(self.service.get_offer(self.db, user=SELLER, offer_id=offer_id).payload["name"], "Pack v2")

    def test_quote_reports_missing_selection(self) -> None:
        offer_id = self._create()

        quote = self.service.get_offer_quote(self.db, user=BUYER, offer_id=offer_id).payload

        self.assertTrue(quote["selection_required"])
        self.assertEqual(quote["total_amount"], "1300.00")

        quote = self.service.get_offer_quote(
            self.db,
            user=BUYER,
            offer_id=offer_id,
            selected_priority_product_ids=["insuline-glargine"],
        ).payload
        self.assertFalse(quote["selection_required"])
        self.assertEqual(quote["total_amount"], "1500.00")

    def test_order_is_persisted_with_reconciled_lines(self) -> None:
        offer_id = self._create()
        received = []
        self.bus.subscribe(OfferOrderPlaced, received.append)

        result = self.service.place_offer_order(
            self.db,
            user=BUYER,
            order_input=OfferOrderInput(offer_id=offer_id, selected_priority_product_ids=["insuline-glargine"]),
        )

        self.assertEqual(result.status_code, 201)
        self.assertEqual(result.payload["total_amount"], "1500.00")
        self.assertEqual(result.payload["status"], "pending")
        self.assertEqual(len(result.payload["lines"]), 3)

        stored = OrderService().get_order(self.db, user=SELLER, order_id=result.payload["id"]).payload
        self.assertEqual(stored["total_amount"], "1500.00")
        self.assertEqual(sum(Decimal(line["line_total"]) for line in stored["lines"]), Decimal("1500.00"))
        self.assertEqual(stored["status_events"][0]["to_status"], "pending")

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].order_id, result.payload["id"])
        self.assertEqual(received[0].seller_id, SELLER.id)
        self.assertEqual(self.notifier.sent[0][0], EVENT_ORDER_PLACED)
        self.assertEqual(self.notifier.sent[0][1], SELLER.email)

    def test_order_requires_explicit_priority_choice(self) -> None:
        offer_id = self._create()

        with self.assertRaises(SelectionRequired):
            self.service.place_offer_order(self.db, user=BUYER, order_input=OfferOrderInput(offer_id=offer_id))

        result = self.service.place_offer_order(
            self.db,
            user=BUYER,
            order_input=OfferOrderInput(offer_id=offer_id, without_priority=True),
        )
        self.assertEqual(result.payload["total_amount"], "1300.00")

    def test_quota_is_enforced_on_order(self) -> None:
        draft = pack_draft(max_quota_selections=1)
        offer_id = self._create(
            max_quota_selections=1,
            line_items=[
                *draft.line_items,
                OfferLineItemDraft(product_id="lovenox", quantity=1, unit_price="900", is_priority=True),
            ],
        )

        with self.assertRaises(QuotaExceeded):
            self.service.place_offer_order(
                self.db,
                user=BUYER,
                order_input=OfferOrderInput(
                    offer_id=offer_id,
                    selected_priority_product_ids=["insuline-glargine", "lovenox"],
                ),
            )
        rows = self.db.execute("SELECT COUNT(*) AS total FROM orders").fetchone()
        self.assertEqual(rows["total"], 0)

    def test_failed_order_write_leaves_no_rows(self) -> None:
        offer_id = self._create()
        service = OfferService(
            order_repository=HeaderOnlyOrderRepository(),
            event_bus=self.bus,
            notifier=self.notifier,
            directory=self.directory,
            clock=self.clock,
        )
        received = []
        self.bus.subscribe(OfferOrderPlaced, received.append)

        with self.assertRaises(PersistenceFailure):
            service.place_offer_order(
                self.db,
                user=BUYER,
                order_input=OfferOrderInput(offer_id=offer_id, selected_priority_product_ids=["insuline-glargine"]),
            )

        for table in ("orders", "order_lines", "status_events"):
            count = self.db.execute(f"SELECT COUNT(*) AS total FROM {table}").fetchone()["total"]
            self.assertEqual(count, 0, table)
        self.assertEqual(received, [])
        self.assertEqual(self.notifier.sent, [])

    def test_expired_offer_cannot_be_ordered(self) -> None:
        offer_id = self._create()
        self.clock.advance(days=45)

        with self.assertRaises(OfferNotActive):
            self.service.place_offer_order(
                self.db,
                user=BUYER,
                order_input=OfferOrderInput(offer_id=offer_id, without_priority=True),
            )

    def test_notification_failure_does_not_abort_order(self) -> None:
        offer_id = self._create()
        service = self._service(RecordingNotifier(fail=True))

        with self.assertLogs("pharmamarket.notifications", level="ERROR"):
            result = service.place_offer_order(
                self.db,
                user=BUYER,
                order_input=OfferOrderInput(offer_id=offer_id, without_priority=True),
            )

        self.assertEqual(result.status_code, 201)
        self.assertIsNotNone(OrderService().get_order(self.db, user=BUYER, order_id=result.payload["id"]))

    def test_orders_are_private_to_both_parties(self) -> None:
        offer_id = self._create()
        order_id = self.service.place_offer_order(
            self.db,
            user=BUYER,
            order_input=OfferOrderInput(offer_id=offer_id, without_priority=True),
        ).payload["id"]

        with self.assertRaises(NotFoundError):
            OrderService().get_order(self.db, user=OTHER_BUYER, order_id=order_id)
        listed = OrderService().list_orders(self.db, user=BUYER).payload["items"]
        self.assertEqual([row["id"] for row in listed], [order_id])

    def test_scheduled_offer_cannot_be_ordered(self) -> None:
        offer_id = self._create(start_date=self.clock.now + timedelta(days=2))

        with self.assertRaises(OfferNotActive):
            self.service.place_offer_order(
                self.db,
                user=BUYER,
                order_input=OfferOrderInput(offer_id=offer_id, without_priority=True),
            )


if __name__ == "__main__":
    unittest.main()
