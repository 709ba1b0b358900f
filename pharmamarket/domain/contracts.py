from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class ActingUser:
    id: str
    role: str
    company_name: str = ""
    email: str | None = None

    @property
    def is_buyer(self) -> bool:
        return self.role == "pharmacist"

    @property
    def is_seller(self) -> bool:
        return self.role == "wholesaler"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class UserContact:
    user_id: str
    email: str
    company_name: str = ""


@dataclass(frozen=True)
class OfferLineItemDraft:
    product_id: str
    quantity: Any
    unit_price: Any
    is_priority: bool = False
    free_units_percentage: Any = None
    priority_message: str | None = None


@dataclass(frozen=True)
class OfferDraft:
    name: str
    type: str
    start_date: datetime
    end_date: datetime
    line_items: List[OfferLineItemDraft]
    min_purchase_amount: Any = None
    custom_total_price: Any = None
    max_quota_selections: int | None = None
    comment: str | None = None
    free_text_products: str | None = None
    is_public: bool = True


@dataclass(frozen=True)
class OfferOrderInput:
    offer_id: str
    selected_priority_product_ids: List[str] = field(default_factory=list)
    without_priority: bool = False
    free_text_products: str | None = None


@dataclass(frozen=True)
class TenderItemDraft:
    product_id: str
    quantity: Any


@dataclass(frozen=True)
class TenderCreateInput:
    title: str
    wilaya: str
    deadline: datetime
    items: List[TenderItemDraft]
    is_public: bool = True


@dataclass(frozen=True)
class ResponseItemDraft:
    """One line of a seller's bid form; blank lines are dropped on submit."""

    tender_item_id: str
    price: Decimal | None = None
    delivery_date: date | None = None
    free_units_percentage: Decimal | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class ResponseSubmitInput:
    tender_id: str
    items: List[ResponseItemDraft]
    expected_version: int | None = None


@dataclass(frozen=True)
class TenderAcceptInput:
    tender_id: str
    tender_response_id: str
