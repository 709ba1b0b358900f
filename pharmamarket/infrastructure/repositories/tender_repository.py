from __future__ import annotations

from datetime import datetime

from pharmamarket.infrastructure.repositories.base import BaseRepository
from pharmamarket.marketplace.tenders import Tender, TenderItem, TenderStatus
from pharmamarket.marketplace.values import parse_datetime


class TenderRepository(BaseRepository):
    def insert(self, db, tender: Tender) -> None:
        created_at = self.to_db_time(tender.created_at)
        db.execute(
            """
            INSERT INTO tenders (
                id, buyer_id, title, wilaya, deadline, is_public, status, public_link, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                tender.id,
                tender.buyer_id,
                tender.title,
                tender.wilaya,
                self.to_db_time(tender.deadline),
                1 if tender.is_public else 0,
                tender.status.value,
                tender.public_link,
                created_at,
                self.to_db_time(tender.updated_at or tender.created_at),
            ),
        )
        for position, item in enumerate(tender.items, start=1):
            db.execute(
                """
                INSERT INTO tender_items (id, tender_id, position, product_id, quantity, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (item.id, tender.id, position, item.product_id, item.quantity, created_at),
            )

    def get_by_id(self, db, tender_id: str) -> Tender | None:
        row = db.execute(
            """
            SELECT *
            FROM tenders
            WHERE id = ?
            LIMIT 1
            """,
            (tender_id,),
        ).fetchone()
        return self._to_tender(db, dict(row)) if row else None

    def get_by_public_link(self, db, public_link: str) -> Tender | None:
        row = db.execute(
            """
            SELECT *
            FROM tenders
            WHERE public_link = ?
            LIMIT 1
            """,
            (public_link,),
        ).fetchone()
        return self._to_tender(db, dict(row)) if row else None

    def get_status(self, db, tender_id: str) -> str | None:
        row = db.execute("SELECT status FROM tenders WHERE id = ?", (tender_id,)).fetchone()
        return str(row["status"]) if row else None

    def compare_and_set_status(
        self,
        db,
        tender_id: str,
        *,
        expected: TenderStatus,
        target: TenderStatus,
        updated_at: datetime,
        deadline: datetime | None = None,
    ) -> bool:
        """Move the tender only if it is still in ``expected``; False when another writer won."""
        if deadline is not None:
            cursor = db.execute(
                """
                UPDATE tenders
                SET status = ?, deadline = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (target.value, self.to_db_time(deadline), self.to_db_time(updated_at), tender_id, expected.value),
            )
        else:
            cursor = db.execute(
                """
                UPDATE tenders
                SET status = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (target.value, self.to_db_time(updated_at), tender_id, expected.value),
            )
        return self.affected_rows(cursor) == 1

    def list_summary(
        self,
        db,
        *,
        buyer_id: str | None = None,
        public_only: bool = False,
        status: str | None = None,
        limit: int = 120,
    ) -> list[dict]:
        clauses = []
        params: list = []
        if buyer_id:
            clauses.append("buyer_id = ?")
            params.append(buyer_id)
        if public_only:
            clauses.append("is_public = 1")
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT id, buyer_id, title, wilaya, deadline, is_public, status, created_at, updated_at
            FROM tenders
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def _to_tender(self, db, row: dict) -> Tender:
        item_rows = db.execute(
            """
            SELECT id, tender_id, product_id, quantity
            FROM tender_items
            WHERE tender_id = ?
            ORDER BY position, id
            """,
            (row["id"],),
        ).fetchall()
        return Tender(
            id=row["id"],
            buyer_id=row["buyer_id"],
            title=row["title"],
            wilaya=row["wilaya"],
            deadline=parse_datetime(row["deadline"], field="deadline"),
            is_public=self.from_db_flag(row["is_public"]),
            status=TenderStatus(row["status"]),
            public_link=row["public_link"],
            items=tuple(
                TenderItem(
                    id=item["id"],
                    tender_id=item["tender_id"],
                    product_id=item["product_id"],
                    quantity=int(item["quantity"]),
                )
                for item in item_rows
            ),
            created_at=parse_datetime(row["created_at"], field="created_at"),
            updated_at=parse_datetime(row["updated_at"], field="updated_at"),
        )
