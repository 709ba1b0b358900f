from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Mapping, Protocol

from pharmamarket.observability import current_request_id, observe_notification


_LOGGER = logging.getLogger("pharmamarket.notifications")

EVENT_ORDER_PLACED = "order_placed"
EVENT_TENDER_ORDER_ACCEPTED = "tender_order_accepted"
EVENT_TENDER_RESPONSE_RECEIVED = "tender_response_received"


class NotificationError(RuntimeError):
    pass


class Notifier(Protocol):
    def notify(self, event_type: str, recipient_address: str, fields: Mapping[str, str]) -> None:
        ...


class LoggingNotifier:
    def notify(self, event_type: str, recipient_address: str, fields: Mapping[str, str]) -> None:
        _LOGGER.info(
            "notification_sent",
            extra={"event_type": event_type, "recipient": recipient_address, "fields": dict(fields)},
        )


class NullNotifier:
    def notify(self, event_type: str, recipient_address: str, fields: Mapping[str, str]) -> None:
        return None


class WebhookNotifier:
    def __init__(self, url: str, timeout: int = 10) -> None:
        if not url:
            raise ValueError("NOTIFICATION_WEBHOOK_URL non definie.")
        self.url = url
        self.timeout = timeout

    def notify(self, event_type: str, recipient_address: str, fields: Mapping[str, str]) -> None:
        payload = {
            "event_type": event_type,
            "recipient": recipient_address,
            "fields": {key: str(value) for key, value in fields.items()},
        }
        data = json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Request-Id": current_request_id(),
        }
        request = urllib.request.Request(self.url, data=data, headers=headers, method="POST")
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                response.read()
        except urllib.error.HTTPError as exc:  # noqa: PERF203
            error_body = exc.read().decode("utf-8") if exc.fp else ""
            raise NotificationError(f"Webhook HTTP {exc.code}: {error_body[:200]}") from exc
        except urllib.error.URLError as exc:
            raise NotificationError(f"Erreur de connexion webhook: {exc.reason}") from exc


def build_notifier(config: Mapping) -> Notifier:
    mode = str(config.get("NOTIFICATIONS_MODE") or "log").strip().lower()
    if mode == "disabled":
        return NullNotifier()
    if mode == "webhook":
        return WebhookNotifier(
            str(config.get("NOTIFICATION_WEBHOOK_URL") or ""),
            timeout=int(config.get("NOTIFICATION_TIMEOUT_SECONDS") or 10),
        )
    return LoggingNotifier()


def notify_best_effort(
    notifier: Notifier,
    event_type: str,
    recipient_address: str | None,
    fields: Mapping[str, object],
) -> bool:
    """Deliver a notification; never lets a failure reach the caller."""
    if not recipient_address:
        observe_notification(event_type, "skipped")
        _LOGGER.info("notification_skipped_no_recipient", extra={"event_type": event_type})
        return False
    try:
        notifier.notify(event_type, recipient_address, {key: str(value) for key, value in fields.items()})
    except Exception:  # noqa: BLE001
        observe_notification(event_type, "failed")
        _LOGGER.exception("notification_failed", extra={"event_type": event_type})
        return False
    observe_notification(event_type, "sent")
    return True
