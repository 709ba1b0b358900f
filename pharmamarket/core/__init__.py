from pharmamarket.core.event_bus import (
    DomainEvent,
    EventBus,
    OfferOrderPlaced,
    TenderMessageCreated,
    TenderOrderAccepted,
    TenderResponseCreated,
    TenderResponseUpdated,
    TenderStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "OfferOrderPlaced",
    "TenderResponseCreated",
    "TenderResponseUpdated",
    "TenderMessageCreated",
    "TenderStatusChanged",
    "TenderOrderAccepted",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
