from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from duel_ledger.db.models.details.round import Round
from duel_ledger.db.models.details.round_player import RoundPlayer
from duel_ledger.db.repos.base import BULK_CHUNK_SIZE, BaseRepository


class RoundRepository(BaseRepository[Round]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Round)

    def list_for_match(self, match_id: str) -> list[Round]:
        stmt = select(Round).where(Round.match_id == match_id).order_by(Round.round_number)
        return list(self.session.execute(stmt).scalars().all())

    def count_by_match(self, match_ids: Iterable[str]) -> dict[str, int]:
        unique = list(dict.fromkeys(match_ids))
        counts: dict[str, int] = {}
        for start in range(0, len(unique), BULK_CHUNK_SIZE):
            chunk = unique[start : start + BULK_CHUNK_SIZE]
            stmt = (
                select(Round.match_id, func.count(Round.id))
                .where(Round.match_id.in_(chunk))
                .group_by(Round.match_id)
            )
            for match_id, n in self.session.execute(stmt).all():
                counts[match_id] = int(n)
        return counts

    def delete_for_match(self, match_id: str) -> None:
        self.session.execute(delete(RoundPlayer).where(RoundPlayer.match_id == match_id))
        self.session.execute(delete(Round).where(Round.match_id == match_id))


class RoundPlayerRepository(BaseRepository[RoundPlayer]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, RoundPlayer)

    def list_for_match(self, match_id: str) -> list[tuple[int, RoundPlayer]]:
        """(round_number, player row) pairs for one match."""

        stmt = (
            select(Round.round_number, RoundPlayer)
            .join(Round, Round.id == RoundPlayer.round_id)
            .where(RoundPlayer.match_id == match_id)
            .order_by(Round.round_number, RoundPlayer.id)
        )
        return [(int(rn), rp) for rn, rp in self.session.execute(stmt).all()]

    def list_missing_guess_country(self, *, after_id: int, limit: int) -> list[RoundPlayer]:
        stmt = (
            select(RoundPlayer)
            .where(
                RoundPlayer.id > after_id,
                RoundPlayer.guess_country.is_(None),
            )
            .order_by(RoundPlayer.id)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())
