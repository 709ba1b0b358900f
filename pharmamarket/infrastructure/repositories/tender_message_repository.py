from __future__ import annotations

from pharmamarket.infrastructure.repositories.base import BaseRepository
from pharmamarket.marketplace.tenders import TenderMessage


class TenderMessageRepository(BaseRepository):
    def add(self, db, message: TenderMessage) -> None:
        db.execute(
            """
            INSERT INTO tender_messages (id, tender_id, user_id, message, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (message.id, message.tender_id, message.user_id, message.message, self.to_db_time(message.created_at)),
        )

    def list_for_tender(self, db, tender_id: str, *, limit: int = 200) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, tender_id, user_id, message, created_at
            FROM tender_messages
            WHERE tender_id = ?
            ORDER BY created_at, id
            LIMIT ?
            """,
            (tender_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
