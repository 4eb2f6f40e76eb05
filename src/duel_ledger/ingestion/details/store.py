from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from duel_ledger.core.config import settings
from duel_ledger.db.enums import DetailStatusEnum, RoleEnum
from duel_ledger.db.models.details.detail_player import DetailPlayer
from duel_ledger.db.models.details.game_detail import GameDetail
from duel_ledger.db.models.details.round import Round
from duel_ledger.db.models.details.round_player import RoundPlayer
from duel_ledger.db.repos.details import (
    GameDetailRepository,
    RoundPlayerRepository,
    RoundRepository,
)
from duel_ledger.db.repos.feed.feed_match_repo import FeedMatchRepository
from duel_ledger.ingestion.details.types import (
    MatchRef,
    NormalizedDetail,
    NormalizedMatch,
    NormalizedRound,
    StoredDetailState,
    is_detail_candidate,
)

logger = logging.getLogger(__name__)


class DetailStore(Protocol):
    """What detail ingestion needs from persistence. Every call is its own transaction."""

    def load_candidates(self, *, limit: int | None = None) -> list[MatchRef]: ...

    def bulk_get_details(self, match_ids: Sequence[str]) -> dict[str, StoredDetailState]: ...

    def round_counts(self, match_ids: Sequence[str]) -> dict[str, int]: ...

    def put_placeholders(self, matches: Sequence[MatchRef]) -> int: ...

    def prior_guess_countries(self, match_id: str) -> dict[tuple[int, RoleEnum], str]: ...

    def save_normalized(self, normalized: NormalizedMatch) -> None: ...

    def record_failure(
        self, match: MatchRef, *, status: DetailStatusEnum, message: str, at: datetime
    ) -> None: ...


def _state_of(row: GameDetail) -> StoredDetailState:
    return StoredDetailState(
        match_id=row.match_id,
        status=row.status,
        fetched_at=row.fetched_at,
        total_rounds=row.total_rounds,
        missing_fields=tuple(row.missing_fields) if row.missing_fields else None,
        missing_fields_checked_at=row.missing_fields_checked_at,
    )


class SqlDetailStore:
    """
    DetailStore on top of SQLAlchemy.

    Each method opens a short-lived session from `session_factory`, so one instance
    can be shared by all fetcher threads.
    """

    def __init__(
        self, session_factory: sessionmaker[Session], *, store_raw: bool | None = None
    ) -> None:
        self.session_factory = session_factory
        self.store_raw = settings.store_raw_payloads if store_raw is None else store_raw

    def load_candidates(self, *, limit: int | None = None) -> list[MatchRef]:
        with self.session_factory() as session:
            rows = FeedMatchRepository(session).list_newest_first()
        refs = [
            MatchRef(
                match_id=r.match_id,
                family=r.family,
                played_at=r.played_at,
                mode_label=r.mode_label,
            )
            for r in rows
        ]
        refs = [r for r in refs if is_detail_candidate(r)]
        return refs[:limit] if limit is not None else refs

    def bulk_get_details(self, match_ids: Sequence[str]) -> dict[str, StoredDetailState]:
        with self.session_factory() as session:
            rows = GameDetailRepository(session).bulk_get_by_match_id(list(match_ids))
            return {match_id: _state_of(row) for match_id, row in rows.items()}

    def round_counts(self, match_ids: Sequence[str]) -> dict[str, int]:
        with self.session_factory() as session:
            return RoundRepository(session).count_by_match(match_ids)

    def put_placeholders(self, matches: Sequence[MatchRef]) -> int:
        """Insert a `missing` row (no fetched_at) for each match that has none yet."""

        if not matches:
            return 0
        created = 0
        with self.session_factory.begin() as session:
            repo = GameDetailRepository(session)
            seen = set(repo.bulk_get_by_match_id([m.match_id for m in matches]))
            for m in matches:
                if m.match_id in seen:
                    continue
                seen.add(m.match_id)
                repo.add(
                    GameDetail(
                        match_id=m.match_id,
                        status=DetailStatusEnum.MISSING,
                        family=m.family,
                        mode_label=m.mode_label,
                        damage_multiplier_rounds=[],
                        healing_rounds=[],
                    ),
                    flush=False,
                )
                created += 1
        logger.debug("created %d placeholder detail rows", created)
        return created

    def prior_guess_countries(self, match_id: str) -> dict[tuple[int, RoleEnum], str]:
        with self.session_factory() as session:
            pairs = RoundPlayerRepository(session).list_for_match(match_id)
            return {
                (round_number, rp.role): rp.guess_country
                for round_number, rp in pairs
                if rp.guess_country
            }

    def save_normalized(self, normalized: NormalizedMatch) -> None:
        """Write detail, its players, its rounds and their players in one transaction."""

        d = normalized.detail
        with self.session_factory.begin() as session:
            details = GameDetailRepository(session)
            rounds = RoundRepository(session)

            details.delete_players(d.match_id)
            rounds.delete_for_match(d.match_id)

            row = details.get(d.match_id)
            if row is None:
                row = details.add(
                    GameDetail(match_id=d.match_id, status=DetailStatusEnum.OK, family=d.family),
                    flush=False,
                )
            self._apply_detail(row, d)
            session.flush()

            session.add_all(
                DetailPlayer(
                    match_id=d.match_id,
                    role=p.role,
                    player_id=p.player_id,
                    team_id=p.team_id,
                    nick=p.nick,
                    country_code=p.country_code,
                    rating_before=p.rating_before,
                    rating_after=p.rating_after,
                    victory=p.victory,
                    final_health=p.final_health,
                )
                for p in d.players
            )
            self._write_rounds(session, normalized.rounds)

    def _apply_detail(self, row: GameDetail, d: NormalizedDetail) -> None:
        row.status = DetailStatusEnum.OK
        row.fetched_at = d.fetched_at
        row.error = None
        row.endpoint = d.endpoint
        row.family = d.family
        row.mode_label = d.mode_label or row.mode_label
        row.map_name = d.map_name
        row.map_slug = d.map_slug
        row.is_rated = d.is_rated
        row.total_rounds = d.total_rounds
        row.damage_multiplier_rounds = list(d.damage_multiplier_rounds)
        row.healing_rounds = list(d.healing_rounds)
        row.started_at = d.started_at
        row.movement_mode = d.movement_mode
        row.winning_team_id = d.winning_team_id
        row.missing_fields = list(d.missing_fields) if d.missing_fields else None
        row.missing_fields_checked_at = d.missing_fields_checked_at
        row.raw = d.raw if self.store_raw else None

    def _write_rounds(self, session: Session, rounds: Sequence[NormalizedRound]) -> None:
        for r in rounds:
            session.add(
                Round(
                    id=r.round_id,
                    match_id=r.match_id,
                    round_number=r.round_number,
                    true_lat=r.true_lat,
                    true_lng=r.true_lng,
                    true_country=r.true_country,
                    damage_multiplier=r.damage_multiplier,
                    is_healing_round=r.is_healing_round,
                    start_time=r.start_time,
                    end_time=r.end_time,
                    duration_seconds=r.duration_seconds,
                    health_diff_after=r.health_diff_after,
                    raw=r.raw if self.store_raw else None,
                    players=[
                        RoundPlayer(
                            match_id=r.match_id,
                            role=p.role,
                            player_id=p.player_id,
                            team_id=p.team_id,
                            guess_lat=p.guess_lat,
                            guess_lng=p.guess_lng,
                            guess_country=p.guess_country,
                            distance_km=p.distance_km,
                            score=p.score,
                            health_after=p.health_after,
                            is_best_guess=p.is_best_guess,
                        )
                        for p in r.participants
                    ],
                )
            )
        session.flush()

    def record_failure(
        self, match: MatchRef, *, status: DetailStatusEnum, message: str, at: datetime
    ) -> None:
        """
        Persist a failed attempt on the detail row only.

        A row that is already `ok` keeps its status, rounds and payload; only the
        error text is updated.
        """
        with self.session_factory.begin() as session:
            repo = GameDetailRepository(session)
            row = repo.get(match.match_id)
            if row is None:
                repo.add(
                    GameDetail(
                        match_id=match.match_id,
                        status=status,
                        fetched_at=at,
                        error=message,
                        family=match.family,
                        mode_label=match.mode_label,
                        damage_multiplier_rounds=[],
                        healing_rounds=[],
                    ),
                    flush=False,
                )
                return
            if row.status == DetailStatusEnum.OK:
                row.error = message
                return
            row.status = status
            row.error = message
            row.fetched_at = at
