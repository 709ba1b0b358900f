from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

from pharmamarket.marketplace.values import isoformat, money_str


class BaseRepository:
    """Shared row helpers. Repositories take the ``Database`` per call so
    that several of them can share one transaction."""

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return dict(row) if row else None

    @staticmethod
    def affected_rows(cursor) -> int:
        return int(getattr(cursor, "rowcount", 0) or 0)

    @staticmethod
    def to_db_decimal(value: Decimal | None) -> str | None:
        return None if value is None else str(value)

    @staticmethod
    def to_db_money(value: Decimal | None) -> str | None:
        return money_str(value)

    @staticmethod
    def to_db_time(value) -> str | None:
        return isoformat(value)

    @staticmethod
    def from_db_decimal(value: Any) -> Decimal | None:
        if value is None or value == "":
            return None
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))

    @staticmethod
    def from_db_flag(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "t", "yes"}
        return bool(value)
