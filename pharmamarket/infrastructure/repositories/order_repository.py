from __future__ import annotations

import json
from typing import List

from pharmamarket.infrastructure.repositories.base import BaseRepository
from pharmamarket.marketplace.order_derivation import LineKind, Order, OrderLine, OrderSource, OrderStatus
from pharmamarket.marketplace.values import parse_datetime, parse_optional_date


class OrderRepository(BaseRepository):
    def insert(self, db, order: Order) -> None:
        """Write the order header and every line; callers hold the transaction."""
        stamp = self.to_db_time(order.created_at)
        db.execute(
            """
            INSERT INTO orders (
                id, buyer_id, seller_id, source, offer_id, tender_id, tender_response_id,
                status, delivery_date, total_amount, currency, metadata, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                order.id,
                order.buyer_id,
                order.seller_id,
                order.source.value,
                order.offer_id,
                order.tender_id,
                order.tender_response_id,
                order.status.value,
                self.to_db_time(order.delivery_date),
                self.to_db_money(order.total_amount),
                order.currency,
                json.dumps(order.metadata, ensure_ascii=True, default=str),
                stamp,
                stamp,
            ),
        )
        for line in order.lines:
            db.execute(
                """
                INSERT INTO order_lines (
                    id, order_id, position, line_kind, product_id, quantity, unit_price, source_ref, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    line.id,
                    order.id,
                    line.position,
                    line.line_kind.value,
                    line.product_id,
                    line.quantity,
                    self.to_db_decimal(line.unit_price),
                    line.source_ref,
                    stamp,
                ),
            )

    def get_by_id(self, db, order_id: str) -> Order | None:
        row = db.execute("SELECT * FROM orders WHERE id = ? LIMIT 1", (order_id,)).fetchone()
        return self._to_order(dict(row), self.lines_for_order(db, order_id)) if row else None

    def lines_for_order(self, db, order_id: str) -> List[OrderLine]:
        rows = db.execute(
            """
            SELECT *
            FROM order_lines
            WHERE order_id = ?
            ORDER BY position, id
            """,
            (order_id,),
        ).fetchall()
        return [
            OrderLine(
                id=row["id"],
                order_id=row["order_id"],
                position=int(row["position"]),
                line_kind=LineKind(row["line_kind"]),
                product_id=row["product_id"],
                quantity=int(row["quantity"]),
                unit_price=self.from_db_decimal(row["unit_price"]),
                source_ref=row["source_ref"],
            )
            for row in (dict(raw) for raw in rows)
        ]

    def list_for_tender(self, db, tender_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, buyer_id, seller_id, tender_response_id, status, total_amount, currency, created_at
            FROM orders
            WHERE tender_id = ?
            ORDER BY created_at, id
            """,
            (tender_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_for_user(self, db, user_id: str, *, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, buyer_id, seller_id, source, offer_id, tender_id, status, total_amount, currency, created_at
            FROM orders
            WHERE buyer_id = ? OR seller_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, user_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def _to_order(self, row: dict, lines: List[OrderLine]) -> Order:
        try:
            metadata = json.loads(row.get("metadata") or "{}")
        except (TypeError, ValueError):
            metadata = {}
        return Order(
            id=row["id"],
            buyer_id=row["buyer_id"],
            seller_id=row["seller_id"],
            source=OrderSource(row["source"]),
            status=OrderStatus(row["status"]),
            total_amount=self.from_db_decimal(row["total_amount"]),
            currency=row["currency"],
            created_at=parse_datetime(row["created_at"], field="created_at"),
            lines=tuple(lines),
            offer_id=row["offer_id"],
            tender_id=row["tender_id"],
            tender_response_id=row["tender_response_id"],
            delivery_date=parse_optional_date(row["delivery_date"], field="delivery_date"),
            metadata=metadata if isinstance(metadata, dict) else {},
        )
