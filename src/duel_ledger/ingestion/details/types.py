from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from duel_ledger.db.enums import DetailStatusEnum, ModeFamilyEnum, MovementModeEnum, RoleEnum

Json = dict[str, Any]

# (round_number, role) -> already resolved guess country
PriorGuessCountries = Mapping[tuple[int, RoleEnum], str]


@dataclass(frozen=True)
class MatchRef:
    """A feed match as seen by the planner, queue and workers."""

    match_id: str
    family: ModeFamilyEnum
    played_at: datetime | None = None
    mode_label: str | None = None


@dataclass(frozen=True)
class StoredDetailState:
    match_id: str
    status: DetailStatusEnum
    fetched_at: datetime | None = None
    total_rounds: int | None = None
    missing_fields: tuple[str, ...] | None = None
    missing_fields_checked_at: datetime | None = None


@dataclass(frozen=True)
class PlayerSummary:
    role: RoleEnum
    player_id: str | None
    team_id: str | None
    nick: str | None = None
    country_code: str | None = None
    rating_before: float | None = None
    rating_after: float | None = None
    victory: bool | None = None
    final_health: int | None = None


@dataclass(frozen=True)
class RoundParticipant:
    role: RoleEnum
    player_id: str | None
    team_id: str | None
    guess_lat: float | None = None
    guess_lng: float | None = None
    guess_country: str | None = None
    distance_km: float | None = None
    score: int | None = None
    health_after: int | None = None
    is_best_guess: bool | None = None


@dataclass(frozen=True)
class NormalizedRound:
    round_id: str
    match_id: str
    round_number: int
    true_lat: float | None
    true_lng: float | None
    true_country: str | None
    damage_multiplier: float | None
    is_healing_round: bool
    start_time: datetime | None
    end_time: datetime | None
    duration_seconds: float | None
    health_diff_after: int | None
    participants: tuple[RoundParticipant, ...]
    raw: Json | None = None

    def participant(self, role: RoleEnum) -> RoundParticipant | None:
        for p in self.participants:
            if p.role == role:
                return p
        return None


@dataclass(frozen=True)
class NormalizedDetail:
    match_id: str
    fetched_at: datetime
    endpoint: str
    family: ModeFamilyEnum
    mode_label: str | None
    map_name: str | None
    map_slug: str | None
    is_rated: bool | None
    total_rounds: int
    damage_multiplier_rounds: tuple[int, ...]
    healing_rounds: tuple[int, ...]
    started_at: datetime | None
    movement_mode: MovementModeEnum | None
    winning_team_id: str | None
    missing_fields: tuple[str, ...] | None
    missing_fields_checked_at: datetime | None
    players: tuple[PlayerSummary, ...]
    raw: Json | None = None

    def player(self, role: RoleEnum) -> PlayerSummary | None:
        for p in self.players:
            if p.role == role:
                return p
        return None


@dataclass(frozen=True)
class NormalizedMatch:
    detail: NormalizedDetail
    rounds: tuple[NormalizedRound, ...]


def is_detail_candidate(match: MatchRef) -> bool:
    """Only head-to-head and team matches have a detail payload worth fetching."""

    if match.family in (ModeFamilyEnum.DUELS, ModeFamilyEnum.TEAM_DUELS):
        return True
    return "duel" in (match.mode_label or "").lower()
