from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict

from flask import g, has_request_context, request


_LOG_REQUEST_ID_CTX: contextvars.ContextVar[str] = contextvars.ContextVar("log_request_id", default="")


def _normalize_request_id(value: str | None) -> str:
    return str(value or "").strip() or "n/a"


def set_log_request_id(request_id: str | None) -> None:
    _LOG_REQUEST_ID_CTX.set(_normalize_request_id(request_id))


def _background_request_id(default: str | None = None) -> str:
    request_id = str(_LOG_REQUEST_ID_CTX.get() or "").strip()
    if request_id:
        return request_id
    return default or "n/a"


class JsonLogFormatter(logging.Formatter):
    _base_keys = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if has_request_context():
            payload["request_id"] = current_request_id(default="n/a")
            payload["path"] = request.path
            payload["method"] = request.method
        else:
            record_request_id = str(getattr(record, "request_id", "") or "").strip()
            payload["request_id"] = record_request_id or _background_request_id(default="n/a")

        for key, value in record.__dict__.items():
            if key in self._base_keys or key.startswith("_"):
                continue
            if key in payload or callable(value):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).strip().upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if request_id:
        set_log_request_id(request_id)
        return request_id
    incoming = str(request.headers.get("X-Request-Id") or "").strip()
    request_id = incoming or str(uuid.uuid4())
    g.request_id = request_id
    set_log_request_id(request_id)
    return request_id


def current_request_id(default: str | None = None) -> str:
    if has_request_context():
        request_id = str(getattr(g, "request_id", "") or "").strip()
        if request_id:
            return request_id
    return _background_request_id(default=default)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_total = 0
        self._errors_total = 0
        self._by_route: Dict[str, Dict[str, float]] = {}
        self._domain_event_emitted_total: Dict[str, int] = {}
        self._notifications_total: Dict[tuple[str, str], int] = {}

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        key = f"{str(method or 'GET').upper()} {str(route or 'unknown')}"
        with self._lock:
            bucket = self._by_route.setdefault(
                key,
                {"requests": 0.0, "errors": 0.0, "latency_sum_ms": 0.0, "latency_max_ms": 0.0},
            )
            bucket["requests"] += 1
            bucket["latency_sum_ms"] += max(0.0, float(duration_ms))
            bucket["latency_max_ms"] = max(bucket["latency_max_ms"], max(0.0, float(duration_ms)))
            self._requests_total += 1
            if int(status_code) >= 400:
                bucket["errors"] += 1
                self._errors_total += 1

    def observe_domain_event_emitted(self, event_type: str) -> None:
        key = str(event_type or "unknown").strip() or "unknown"
        with self._lock:
            self._domain_event_emitted_total[key] = int(self._domain_event_emitted_total.get(key, 0)) + 1

    def observe_notification(self, event_type: str, outcome: str) -> None:
        key = (str(event_type or "unknown"), str(outcome or "unknown"))
        with self._lock:
            self._notifications_total[key] = int(self._notifications_total.get(key, 0)) + 1

    def snapshot(self) -> dict:
        with self._lock:
            routes = {}
            for key, bucket in self._by_route.items():
                requests = int(bucket["requests"])
                routes[key] = {
                    "requests": requests,
                    "errors": int(bucket["errors"]),
                    "latency_avg_ms": round(bucket["latency_sum_ms"] / requests, 2) if requests else 0.0,
                    "latency_max_ms": round(bucket["latency_max_ms"], 2),
                }
            return {
                "requests_total": self._requests_total,
                "errors_total": self._errors_total,
                "routes": routes,
                "domain_events": dict(self._domain_event_emitted_total),
                "notifications": {f"{event}:{outcome}": count for (event, outcome), count in self._notifications_total.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._requests_total = 0
            self._errors_total = 0
            self._by_route.clear()
            self._domain_event_emitted_total.clear()
            self._notifications_total.clear()


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = float(getattr(g, "_request_started_at", 0.0) or 0.0)
    elapsed_ms = 0.0
    if started > 0.0:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
    route = request.url_rule.rule if request.url_rule is not None else request.path
    _METRICS.observe_http(request.method, route, int(response.status_code), elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.observe_domain_event_emitted(event_type)


def observe_notification(event_type: str, outcome: str) -> None:
    _METRICS.observe_notification(event_type, outcome)


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
