from __future__ import annotations

from typing import Any, Dict, List

from flask import request

from pharmamarket.errors import ValidationError


def json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(code="validation_error", payload={"field": "body"})
    return payload


def as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def string_list(value, *, field: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(code="validation_error", payload={"field": field})
    return [str(item) for item in value]


def dict_list(value, *, field: str) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValidationError(code="validation_error", payload={"field": field})
    return value
