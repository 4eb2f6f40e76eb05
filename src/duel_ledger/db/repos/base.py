from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from duel_ledger.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)

# Keeps IN (...) lists below SQLite's bound-parameter limit.
BULK_CHUNK_SIZE = 500


class BaseRepository(Generic[ModelT]):
    def __init__(self, session: Session, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def add(self, obj: ModelT, *, flush: bool = True) -> ModelT:
        self.session.add(obj)
        if flush:
            self.session.flush()
        return obj

    def get(self, id_: Any) -> ModelT | None:
        return self.session.get(self.model, id_)

    def bulk_get(self, column: Any, keys: Iterable[Any]) -> list[ModelT]:
        """Fetch rows whose `column` is in `keys`, chunked."""

        unique = list(dict.fromkeys(keys))
        rows: list[ModelT] = []
        for start in range(0, len(unique), BULK_CHUNK_SIZE):
            chunk = unique[start : start + BULK_CHUNK_SIZE]
            stmt = select(self.model).where(column.in_(chunk))
            rows.extend(self.session.execute(stmt).scalars().all())
        return rows
