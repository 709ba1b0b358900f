from __future__ import annotations

from pharmamarket.application.presenters import order_to_dict
from pharmamarket.domain.contracts import ActingUser, ServiceOutput
from pharmamarket.errors import NotFoundError
from pharmamarket.infrastructure.repositories import OrderRepository, StatusEventRepository


class OrderService:
    """Read side of orders; orders are written once by offer and tender flows."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        status_events: StatusEventRepository | None = None,
    ) -> None:
        self.repository = repository or OrderRepository()
        self.status_events = status_events or StatusEventRepository()

    def get_order(self, db, *, user: ActingUser, order_id: str) -> ServiceOutput:
        order = self.repository.get_by_id(db, order_id)
        if order is None or not (user.is_admin or user.id in {order.buyer_id, order.seller_id}):
            raise NotFoundError(code="not_found", payload={"order_id": order_id})
        payload = order_to_dict(order)
        payload["status_events"] = self.status_events.list_for_entity(db, entity="order", entity_id=order.id)
        return ServiceOutput(payload=payload)

    def list_orders(self, db, *, user: ActingUser) -> ServiceOutput:
        return ServiceOutput(payload={"items": self.repository.list_for_user(db, user.id)})
