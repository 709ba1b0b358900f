from __future__ import annotations

import uuid
from datetime import datetime

from pharmamarket.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: str,
        from_status: str | None,
        to_status: str | None,
        reason: str | None,
        actor_id: str | None,
        occurred_at: datetime,
    ) -> str:
        event_id = uuid.uuid4().hex
        db.execute(
            """
            INSERT INTO status_events (id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (event_id, entity, entity_id, from_status, to_status, reason, actor_id, self.to_db_time(occurred_at)),
        )
        return event_id

    def list_for_entity(self, db, *, entity: str, entity_id: str, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ?
            ORDER BY occurred_at DESC, id DESC
            LIMIT ?
            """,
            (entity, entity_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
