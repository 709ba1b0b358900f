from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from threading import RLock
from typing import Callable, Dict, List, Type

from pharmamarket.observability import observe_domain_event_emitted


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)
    actor_id: str = ""

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)
        object.__setattr__(self, "actor_id", str(self.actor_id or "").strip())


@dataclass(frozen=True, kw_only=True)
class OfferOrderPlaced(DomainEvent):
    offer_id: str
    order_id: str
    buyer_id: str
    seller_id: str
    total_amount: str


@dataclass(frozen=True, kw_only=True)
class TenderResponseCreated(DomainEvent):
    tender_id: str
    tender_response_id: str
    seller_id: str
    items_count: int = 0


@dataclass(frozen=True, kw_only=True)
class TenderResponseUpdated(DomainEvent):
    tender_id: str
    tender_response_id: str
    seller_id: str
    version: int
    items_count: int = 0


@dataclass(frozen=True, kw_only=True)
class TenderMessageCreated(DomainEvent):
    tender_id: str
    tender_message_id: str
    user_id: str


@dataclass(frozen=True, kw_only=True)
class TenderStatusChanged(DomainEvent):
    tender_id: str
    from_status: str
    to_status: str
    action: str


@dataclass(frozen=True, kw_only=True)
class TenderOrderAccepted(DomainEvent):
    tender_id: str
    tender_response_id: str
    order_id: str
    seller_id: str
    total_amount: str


class EventBus:
    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("pharmamarket")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            handlers.append(handler)

    def unsubscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        event_type = type(event).__name__
        observe_domain_event_emitted(event_type)
        self._logger.info(
            "domain_event_published",
            extra={"event_type": event_type, "event_id": event.event_id},
        )
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._logger.exception("event_handler_failed", extra={"event_type": event_type})

    @staticmethod
    def serialize_event_payload(event: DomainEvent) -> Dict[str, object]:
        raw = asdict(event)
        payload: Dict[str, object] = {"event_type": type(event).__name__}
        for key, value in raw.items():
            if isinstance(value, datetime):
                resolved = value
                if resolved.tzinfo is None:
                    resolved = resolved.replace(tzinfo=timezone.utc)
                payload[key] = resolved.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
            elif isinstance(value, (date, Decimal)):
                payload[key] = str(value)
            else:
                payload[key] = value

        json.loads(json.dumps(payload, default=str))
        return payload

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS


def reset_event_bus_for_tests() -> None:
    _DEFAULT_EVENT_BUS.clear()
