from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from pharmamarket.infrastructure.repositories.base import BaseRepository
from pharmamarket.marketplace.tenders import TenderResponse, TenderResponseItem
from pharmamarket.marketplace.values import parse_datetime, parse_optional_date


class TenderResponseRepository(BaseRepository):
    def create(self, db, *, response_id: str, tender_id: str, seller_id: str, now: datetime) -> None:
        stamp = self.to_db_time(now)
        db.execute(
            """
            INSERT INTO tender_responses (id, tender_id, seller_id, version, created_at, updated_at)
            VALUES (?, ?, ?, 1, ?, ?)
            """,
            (response_id, tender_id, seller_id, stamp, stamp),
        )

    def bump_version(self, db, response_id: str, *, expected_version: int, now: datetime) -> bool:
        cursor = db.execute(
            """
            UPDATE tender_responses
            SET version = version + 1, updated_at = ?
            WHERE id = ? AND version = ?
            """,
            (self.to_db_time(now), response_id, int(expected_version)),
        )
        return self.affected_rows(cursor) == 1

    def replace_items(self, db, response_id: str, items: Iterable[TenderResponseItem], *, now: datetime) -> int:
        db.execute("DELETE FROM tender_response_items WHERE tender_response_id = ?", (response_id,))
        stamp = self.to_db_time(now)
        count = 0
        for position, item in enumerate(items, start=1):
            db.execute(
                """
                INSERT INTO tender_response_items (
                    id, tender_response_id, tender_item_id, position, price,
                    free_units_percentage, delivery_date, expiry_date, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    response_id,
                    item.tender_item_id,
                    position,
                    self.to_db_decimal(item.price),
                    self.to_db_decimal(item.free_units_percentage),
                    self.to_db_time(item.delivery_date),
                    self.to_db_time(item.expiry_date),
                    stamp,
                ),
            )
            count += 1
        return count

    def get_by_id(self, db, response_id: str) -> TenderResponse | None:
        row = db.execute(
            "SELECT * FROM tender_responses WHERE id = ? LIMIT 1",
            (response_id,),
        ).fetchone()
        return self._to_response(db, dict(row)) if row else None

    def get_for_seller(self, db, *, tender_id: str, seller_id: str) -> TenderResponse | None:
        row = db.execute(
            """
            SELECT *
            FROM tender_responses
            WHERE tender_id = ? AND seller_id = ?
            LIMIT 1
            """,
            (tender_id, seller_id),
        ).fetchone()
        return self._to_response(db, dict(row)) if row else None

    def list_for_tender(self, db, tender_id: str) -> List[TenderResponse]:
        rows = db.execute(
            """
            SELECT *
            FROM tender_responses
            WHERE tender_id = ?
            ORDER BY created_at, id
            """,
            (tender_id,),
        ).fetchall()
        return [self._to_response(db, dict(row)) for row in rows]

    def count_for_tender(self, db, tender_id: str) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM tender_responses WHERE tender_id = ?",
            (tender_id,),
        ).fetchone()
        return int(row["total"]) if row else 0

    def _to_response(self, db, row: dict) -> TenderResponse:
        item_rows = db.execute(
            """
            SELECT *
            FROM tender_response_items
            WHERE tender_response_id = ?
            ORDER BY position, id
            """,
            (row["id"],),
        ).fetchall()
        return TenderResponse(
            id=row["id"],
            tender_id=row["tender_id"],
            seller_id=row["seller_id"],
            version=int(row["version"]),
            created_at=parse_datetime(row["created_at"], field="created_at"),
            updated_at=parse_datetime(row["updated_at"], field="updated_at"),
            items=tuple(
                TenderResponseItem(
                    id=item["id"],
                    tender_response_id=item["tender_response_id"],
                    tender_item_id=item["tender_item_id"],
                    price=self.from_db_decimal(item["price"]),
                    delivery_date=parse_optional_date(item["delivery_date"], field="delivery_date"),
                    free_units_percentage=self.from_db_decimal(item["free_units_percentage"]),
                    expiry_date=parse_optional_date(item["expiry_date"], field="expiry_date"),
                )
                for item in (dict(raw) for raw in item_rows)
            ),
        )
