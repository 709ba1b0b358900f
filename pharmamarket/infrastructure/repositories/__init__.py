from pharmamarket.infrastructure.repositories.offer_repository import OfferRepository
from pharmamarket.infrastructure.repositories.order_repository import OrderRepository
from pharmamarket.infrastructure.repositories.status_event_repository import StatusEventRepository
from pharmamarket.infrastructure.repositories.tender_message_repository import TenderMessageRepository
from pharmamarket.infrastructure.repositories.tender_repository import TenderRepository
from pharmamarket.infrastructure.repositories.tender_response_repository import TenderResponseRepository

__all__ = [
    "OfferRepository",
    "OrderRepository",
    "StatusEventRepository",
    "TenderMessageRepository",
    "TenderRepository",
    "TenderResponseRepository",
]
