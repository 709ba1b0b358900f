import unittest
from datetime import datetime, timezone

from pharmamarket.core import EventBus, TenderMessageCreated, TenderResponseCreated, TenderStatusChanged
from pharmamarket.observability import metrics_snapshot, reset_metrics_for_tests


class EventBusTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def test_handler_execution_order_is_predictable(self) -> None:
        bus = EventBus()
        execution_trace = []

        bus.subscribe(TenderResponseCreated, lambda _event: execution_trace.append("first"))
        bus.subscribe(TenderResponseCreated, lambda _event: execution_trace.append("second"))
        bus.publish(TenderResponseCreated(tender_id="t-1", tender_response_id="r-1", seller_id="s-1"))

        self.assertEqual(execution_trace, ["first", "second"])

    def test_handlers_only_receive_their_event_type(self) -> None:
        bus = EventBus()
        messages = []
        bus.subscribe(TenderMessageCreated, messages.append)

        bus.publish(TenderResponseCreated(tender_id="t-1", tender_response_id="r-1", seller_id="s-1"))
        bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-1", user_id="u-1"))

        self.assertEqual([event.tender_message_id for event in messages], ["m-1"])

    def test_failing_handler_does_not_block_others(self) -> None:
        bus = EventBus()
        received = []

        def broken_handler(_event):
            raise RuntimeError("socket closed")

        bus.subscribe(TenderMessageCreated, broken_handler)
        bus.subscribe(TenderMessageCreated, received.append)

        with self.assertLogs("pharmamarket", level="ERROR"):
            bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-1", user_id="u-1"))

        self.assertEqual(len(received), 1)

    def test_unsubscribe_and_clear(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(TenderMessageCreated, received.append)
        bus.unsubscribe(TenderMessageCreated, received.append)
        bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-1", user_id="u-1"))

        bus.subscribe(TenderMessageCreated, received.append)
        bus.clear()
        bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-2", user_id="u-1"))

        self.assertEqual(received, [])

    def test_published_events_are_counted(self) -> None:
        bus = EventBus()
        bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-1", user_id="u-1"))
        bus.publish(TenderMessageCreated(tender_id="t-1", tender_message_id="m-2", user_id="u-1"))

        self.assertEqual(metrics_snapshot()["domain_events"]["TenderMessageCreated"], 2)

    def test_event_metadata_is_normalized(self) -> None:
        naive = datetime(2026, 10, 19, 12, 30)
        event = TenderStatusChanged(
            event_id="  ",
            occurred_at=naive,
            actor_id=" pharma-1 ",
            tender_id="t-1",
            from_status="open",
            to_status="closed",
            action="close",
        )

        self.assertTrue(event.event_id)
        self.assertEqual(event.occurred_at.tzinfo, timezone.utc)
        self.assertEqual(event.actor_id, "pharma-1")

    def test_serialized_payload_is_json_friendly(self) -> None:
        event = TenderResponseCreated(
            occurred_at=datetime(2026, 10, 19, 12, 30, tzinfo=timezone.utc),
            tender_id="t-1",
            tender_response_id="r-1",
            seller_id="s-1",
            items_count=2,
        )

        payload = EventBus.serialize_event_payload(event)

        self.assertEqual(payload["event_type"], "TenderResponseCreated")
        self.assertEqual(payload["occurred_at"], "2026-10-19T12:30:00Z")
        self.assertEqual(payload["tender_response_id"], "r-1")
        self.assertEqual(payload["items_count"], 2)


if __name__ == "__main__":
    unittest.main()
