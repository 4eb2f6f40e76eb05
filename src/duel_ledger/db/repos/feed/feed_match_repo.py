from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from duel_ledger.db.models.feed.feed_match import FeedMatch
from duel_ledger.db.repos.base import BaseRepository


class FeedMatchRepository(BaseRepository[FeedMatch]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, FeedMatch)

    def list_newest_first(self) -> list[FeedMatch]:
        stmt = select(FeedMatch).order_by(FeedMatch.played_at.desc(), FeedMatch.match_id)
        return list(self.session.execute(stmt).scalars().all())
