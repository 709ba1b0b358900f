from __future__ import annotations

from datetime import datetime
from typing import List

from pharmamarket.infrastructure.repositories.base import BaseRepository
from pharmamarket.marketplace.offers import Offer, OfferLineItem
from pharmamarket.marketplace.values import parse_datetime


class OfferRepository(BaseRepository):
    def insert(self, db, offer: Offer, *, now: datetime) -> None:
        stamp = self.to_db_time(now)
        db.execute(
            """
            INSERT INTO offers (
                id, seller_id, name, type, start_date, end_date, min_purchase_amount,
                custom_total_price, max_quota_selections, comment, free_text_products,
                is_public, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                offer.id,
                offer.seller_id,
                offer.name,
                offer.type.value,
                self.to_db_time(offer.start_date),
                self.to_db_time(offer.end_date),
                self.to_db_decimal(offer.min_purchase_amount),
                self.to_db_decimal(offer.custom_total_price),
                offer.max_quota_selections,
                offer.comment,
                offer.free_text_products,
                1 if offer.is_public else 0,
                stamp,
                stamp,
            ),
        )
        self._insert_line_items(db, offer)

    def replace(self, db, offer: Offer, *, now: datetime) -> None:
        """Full replace of the offer header and its line items."""
        db.execute(
            """
            UPDATE offers
            SET name = ?, type = ?, start_date = ?, end_date = ?, min_purchase_amount = ?,
                custom_total_price = ?, max_quota_selections = ?, comment = ?,
                free_text_products = ?, is_public = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                offer.name,
                offer.type.value,
                self.to_db_time(offer.start_date),
                self.to_db_time(offer.end_date),
                self.to_db_decimal(offer.min_purchase_amount),
                self.to_db_decimal(offer.custom_total_price),
                offer.max_quota_selections,
                offer.comment,
                offer.free_text_products,
                1 if offer.is_public else 0,
                self.to_db_time(now),
                offer.id,
            ),
        )
        db.execute("DELETE FROM offer_line_items WHERE offer_id = ?", (offer.id,))
        self._insert_line_items(db, offer)

    def _insert_line_items(self, db, offer: Offer) -> None:
        for position, item in enumerate(offer.line_items, start=1):
            db.execute(
                """
                INSERT INTO offer_line_items (
                    id, offer_id, position, product_id, quantity, unit_price,
                    is_priority, free_units_percentage, priority_message
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    offer.id,
                    position,
                    item.product_id,
                    item.quantity,
                    self.to_db_decimal(item.unit_price),
                    1 if item.is_priority else 0,
                    self.to_db_decimal(item.free_units_percentage),
                    item.priority_message,
                ),
            )

    def get_by_id(self, db, offer_id: str) -> Offer | None:
        row = db.execute(
            """
            SELECT *
            FROM offers
            WHERE id = ?
            LIMIT 1
            """,
            (offer_id,),
        ).fetchone()
        if not row:
            return None
        return self._to_offer(dict(row), self._line_item_rows(db, offer_id))

    def list_summary(self, db, *, seller_id: str | None = None, public_only: bool = False, limit: int = 120) -> list[dict]:
        clauses = []
        params: list = []
        if seller_id:
            clauses.append("seller_id = ?")
            params.append(seller_id)
        if public_only:
            clauses.append("is_public = 1")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT id, seller_id, name, type, start_date, end_date, is_public, created_at, updated_at
            FROM offers
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def _line_item_rows(self, db, offer_id: str) -> List[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM offer_line_items
            WHERE offer_id = ?
            ORDER BY position, id
            """,
            (offer_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def _to_offer(self, row: dict, item_rows: List[dict]) -> Offer:
        return Offer(
            id=row["id"],
            seller_id=row["seller_id"],
            name=row["name"],
            type=row["type"],
            start_date=parse_datetime(row["start_date"], field="start_date"),
            end_date=parse_datetime(row["end_date"], field="end_date"),
            line_items=tuple(
                OfferLineItem(
                    id=item["id"],
                    product_id=item["product_id"],
                    quantity=int(item["quantity"]),
                    unit_price=self.from_db_decimal(item["unit_price"]),
                    is_priority=self.from_db_flag(item["is_priority"]),
                    free_units_percentage=self.from_db_decimal(item["free_units_percentage"]),
                    priority_message=item["priority_message"],
                )
                for item in item_rows
            ),
            min_purchase_amount=self.from_db_decimal(row["min_purchase_amount"]),
            custom_total_price=self.from_db_decimal(row["custom_total_price"]),
            max_quota_selections=(
                int(row["max_quota_selections"]) if row["max_quota_selections"] is not None else None
            ),
            comment=row["comment"],
            free_text_products=row["free_text_products"],
            is_public=self.from_db_flag(row["is_public"]),
        )
