from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from duel_ledger.db.models.meta.meta_entry import MetaEntry
from duel_ledger.db.repos.base import BaseRepository


class MetaRepository(BaseRepository[MetaEntry]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, MetaEntry)

    def get_value(self, key: str) -> dict[str, Any] | None:
        entry = self.get(key)
        return None if entry is None else dict(entry.value)

    def put_value(self, key: str, value: dict[str, Any], *, at: datetime | None = None) -> MetaEntry:
        now = at or datetime.now(tz=UTC)
        entry = self.get(key)
        if entry is None:
            return self.add(MetaEntry(key=key, value=value, updated_at=now))
        entry.value = value
        entry.updated_at = now
        self.session.flush()
        return entry
