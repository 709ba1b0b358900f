"""Money and time coercion shared by the marketplace rules."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pharmamarket.errors import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any, *, field: str, error_code: str = "amount_invalid") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(code=error_code, payload={"field": field})
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(code=error_code, payload={"field": field}) from None
    if not parsed.is_finite():
        raise ValidationError(code=error_code, payload={"field": field})
    return parsed


def to_optional_decimal(value: Any, *, field: str, error_code: str = "amount_invalid") -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_decimal(value, field=field, error_code=error_code)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(quantize_money(value))


def to_quantity(value: Any, *, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(code="quantity_invalid", payload={"field": field})
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(code="quantity_invalid", payload={"field": field}) from None
    if not parsed.is_finite() or parsed != parsed.to_integral_value() or parsed <= 0:
        raise ValidationError(code="quantity_invalid", payload={"field": field})
    return int(parsed)


def parse_datetime(value: Any, *, field: str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raw = str(value or "").strip()
    if not raw:
        raise ValidationError(code="validation_error", payload={"field": field})
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(code="validation_error", payload={"field": field}) from None
    return ensure_utc(parsed)


def parse_optional_date(value: Any, *, field: str) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        raise ValidationError(code="validation_error", payload={"field": field}) from None


def isoformat(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat().replace("+00:00", "Z")
    return value.isoformat()
