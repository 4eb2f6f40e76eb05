from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.orm import Session

from duel_ledger.db.models.details.detail_player import DetailPlayer
from duel_ledger.db.models.details.game_detail import GameDetail
from duel_ledger.db.repos.base import BaseRepository


class GameDetailRepository(BaseRepository[GameDetail]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, GameDetail)

    def bulk_get_by_match_id(self, match_ids: list[str]) -> dict[str, GameDetail]:
        return {d.match_id: d for d in self.bulk_get(GameDetail.match_id, match_ids)}

    def delete_players(self, match_id: str) -> None:
        self.session.execute(delete(DetailPlayer).where(DetailPlayer.match_id == match_id))
