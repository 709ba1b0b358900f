from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

from flask import current_app

from pharmamarket.application.offer_service import OfferService
from pharmamarket.application.order_service import OrderService
from pharmamarket.application.tender_service import TenderService
from pharmamarket.core import get_event_bus
from pharmamarket.identity import DictUserDirectory, UserDirectory
from pharmamarket.notifications import Notifier, build_notifier


EXTENSION_KEY = "pharmamarket.services"


@dataclass(frozen=True)
class ServiceRegistry:
    offers: OfferService
    orders: OrderService
    tenders: TenderService


def build_services(
    config: Mapping,
    *,
    notifier: Notifier | None = None,
    directory: UserDirectory | None = None,
) -> ServiceRegistry:
    notifier = notifier or build_notifier(config)
    directory = directory or DictUserDirectory.from_config(config.get("USER_DIRECTORY"))
    currency = str(config.get("CURRENCY") or "DZD")
    event_bus = get_event_bus()
    return ServiceRegistry(
        offers=OfferService(event_bus=event_bus, notifier=notifier, directory=directory, currency=currency),
        orders=OrderService(),
        tenders=TenderService(
            event_bus=event_bus,
            notifier=notifier,
            directory=directory,
            currency=currency,
            reopen_extension=timedelta(days=int(config.get("TENDER_REOPEN_EXTENSION_DAYS") or 7)),
            clone_deadline=timedelta(days=int(config.get("TENDER_CLONE_DEADLINE_DAYS") or 14)),
        ),
    )


def register_services(app, registry: ServiceRegistry | None = None) -> ServiceRegistry:
    resolved = registry or build_services(app.config)
    app.extensions[EXTENSION_KEY] = resolved
    return resolved


def get_services() -> ServiceRegistry:
    return current_app.extensions[EXTENSION_KEY]
