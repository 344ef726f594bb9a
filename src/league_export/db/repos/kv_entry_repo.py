from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from league_export.db.models.kv_entry import KeyValueEntry
from league_export.db.repos.base import BaseRepository


class KeyValueEntryRepository(BaseRepository[KeyValueEntry]):
    def __init__(self, session: Session) -> None:
        super().__init__(session=session, model=KeyValueEntry)

    def upsert(self, key: str, value: Any) -> KeyValueEntry:
        entry = self.get(key)
        if entry is None:
            return self.add(KeyValueEntry(key=key, value_json=value))
        entry.value_json = value
        self.session.flush()
        return entry
