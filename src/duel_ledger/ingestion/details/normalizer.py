from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from duel_ledger.core.fields import (
    Json,
    as_bool,
    as_dict,
    as_float,
    as_id,
    as_int,
    as_list,
    as_str,
    at,
    first_of,
)
from duel_ledger.core.text import normalize_iso2
from duel_ledger.db.enums import ModeFamilyEnum, MovementModeEnum, RoleEnum
from duel_ledger.db.models.details.round import round_key
from duel_ledger.geo.resolver import CountryResolver
from duel_ledger.ingestion.dates import parse_api_datetime, seconds_between
from duel_ledger.ingestion.details.profiles import ProfileDirectory
from duel_ledger.ingestion.details.types import (
    MatchRef,
    NormalizedDetail,
    NormalizedMatch,
    NormalizedRound,
    PlayerSummary,
    PriorGuessCountries,
    RoundParticipant,
)

logger = logging.getLogger(__name__)

OWN_SIDE_ROLES = (RoleEnum.SELF, RoleEnum.MATE)
OTHER_SIDE_ROLES = (RoleEnum.OPPONENT, RoleEnum.OPPONENT_MATE)

PLAYER_ID_ACCESSORS = (at("playerId"), at("id"), at("userId"), at("user", "id"))

# Newest shape first; the last one is the legacy rating block.
RATING_SHAPES = (
    at("progressChange", "rankedSystemProgress"),
    at("progressChange", "rankedTeamDuelsProgress"),
    at("progressChange", "rankedProgress"),
    at("progressChange", "ratingProgress"),
)

GUESS_LAT_ACCESSORS = (
    at("lat"),
    at("latitude"),
    at("location", "lat"),
    at("position", "lat"),
    at("coordinates", 1),
)
GUESS_LNG_ACCESSORS = (
    at("lng"),
    at("lon"),
    at("longitude"),
    at("location", "lng"),
    at("location", "lon"),
    at("position", "lng"),
    at("position", "lon"),
    at("coordinates", 0),
)
GUESS_COUNTRY_ACCESSORS = (at("countryCode"), at("country_code"), at("country"))
GUESS_DISTANCE_ACCESSORS = (at("distance"), at("distance", "meters", "amount"))

MOVEMENT_OPTIONS_ACCESSORS = (at("options", "movementOptions"), at("movementOptions"))

MAP_NAME = at("options", "map", "name")
MAP_SLUG = at("options", "map", "slug")
IS_RATED = at("options", "isRated")


def read_player_id(player: Any) -> str | None:
    return first_of(player, PLAYER_ID_ACCESSORS, as_id)


def _rating_pair(value: Any) -> tuple[float | None, float | None] | None:
    if not isinstance(value, dict):
        return None
    before = as_float(value.get("ratingBefore"))
    after = as_float(value.get("ratingAfter"))
    if before is None and after is None:
        return None
    return before, after


def extract_rating_change(player: Any) -> tuple[float | None, float | None]:
    """(before, after) from the first known progress shape carrying either value."""

    pair = first_of(player, RATING_SHAPES, _rating_pair)
    return pair if pair is not None else (None, None)


def detect_movement_mode(payload: Json) -> MovementModeEnum | None:
    options = first_of(
        payload, MOVEMENT_OPTIONS_ACCESSORS, lambda v: v if isinstance(v, dict) else None
    )
    if options is None:
        return None
    forbid_moving = options.get("forbidMoving") is True
    forbid_zooming = options.get("forbidZooming") is True
    forbid_rotating = options.get("forbidRotating") is True
    if not (forbid_moving or forbid_zooming or forbid_rotating):
        return MovementModeEnum.MOVING
    if forbid_moving and not forbid_zooming and not forbid_rotating:
        return MovementModeEnum.NO_MOVE
    if forbid_moving and forbid_zooming and forbid_rotating:
        return MovementModeEnum.NMPZ
    return None


def _health_by_round(team: Json) -> dict[int, int]:
    out: dict[int, int] = {}
    for row in as_list(team.get("roundResults")):
        rn = as_int(as_dict(row).get("roundNumber"))
        health = as_int(as_dict(row).get("healthAfter"))
        if rn is not None and health is not None:
            out[rn] = health
    return out


def _guess_by_round(player: Json) -> dict[int, Json]:
    out: dict[int, Json] = {}
    for guess in as_list(player.get("guesses")):
        if not isinstance(guess, dict):
            continue
        rn = as_int(guess.get("roundNumber"))
        if rn is not None:
            out[rn] = guess
    return out


def _rounds_by_number(payload: Json) -> dict[int, Json]:
    """Rounds keyed by number (position when absent); a repeated number keeps the last entry."""

    out: dict[int, Json] = {}
    for index, r in enumerate(as_list(payload.get("rounds"))):
        if not isinstance(r, dict):
            continue
        rn = as_int(r.get("roundNumber"))
        out[rn if rn is not None else index + 1] = r
    return out


@dataclass(frozen=True)
class PlayerSlot:
    role: RoleEnum
    player: Json
    team_id: str | None
    victory: bool | None
    final_health: int | None
    health_by_round: dict[int, int] = field(default_factory=dict)

    @property
    def player_id(self) -> str | None:
        return read_player_id(self.player)


def order_players(
    payload: Json, *, own_player_id: str | None, match_id: str = "?"
) -> list[PlayerSlot]:
    """
    Assign canonical roles to the payload's players.

    The team holding `own_player_id` is the own side (team index 0 when it cannot be
    found). Own side players take self/mate with the own user first; players of the
    remaining teams take opponent/opponent_mate in payload order. Python's sort is
    stable, so the same payload and id always yield the same roles.
    """
    teams = [t for t in as_list(payload.get("teams")) if isinstance(t, dict)]
    if not teams:
        return []

    def players_of(team: Json) -> list[Json]:
        return [p for p in as_list(team.get("players")) if isinstance(p, dict)]

    own_index = 0
    if own_player_id:
        found = next(
            (
                i
                for i, team in enumerate(teams)
                if any(read_player_id(p) == own_player_id for p in players_of(team))
            ),
            None,
        )
        if found is None:
            logger.warning(
                "match %s: own player %s not found in teams %s, using team 0",
                match_id,
                own_player_id,
                [[read_player_id(p) for p in players_of(t)] for t in teams],
            )
        else:
            own_index = found
    else:
        logger.debug("match %s: no own player id, using team 0 as own side", match_id)

    winning_team_id = as_id(at("result", "winningTeamId")(payload))

    def slots_for(team: Json, players: list[Json], roles: tuple[RoleEnum, ...]) -> list[PlayerSlot]:
        team_id = as_id(team.get("id"))
        victory = None if not winning_team_id or not team_id else team_id == winning_team_id
        health = _health_by_round(team)
        return [
            PlayerSlot(
                role=role,
                player=player,
                team_id=team_id,
                victory=victory,
                final_health=as_int(team.get("health")),
                health_by_round=health,
            )
            for role, player in zip(roles, players)
        ]

    own_team = teams[own_index]
    own_players = players_of(own_team)
    if own_player_id:
        own_players.sort(key=lambda p: 0 if read_player_id(p) == own_player_id else 1)
    slots = slots_for(own_team, own_players, OWN_SIDE_ROLES)

    other_roles = list(OTHER_SIDE_ROLES)
    for i, team in enumerate(teams):
        if i == own_index or not other_roles:
            continue
        taken = slots_for(team, players_of(team)[: len(other_roles)], tuple(other_roles))
        slots.extend(taken)
        other_roles = other_roles[len(taken) :]

    return slots


class PayloadNormalizer:
    """
    Raw match payload -> canonical detail + rounds.

    Never raises for malformed data: missing arrays become empty, unparsable numbers
    become None. Only a failed country-boundary load escapes (BoundaryDatasetError).
    """

    def __init__(
        self,
        *,
        resolver: CountryResolver | None = None,
        profiles: ProfileDirectory | None = None,
    ) -> None:
        self.resolver = resolver
        self.profiles = profiles

    def _guess_country(
        self,
        guess: Json | None,
        *,
        round_number: int,
        role: RoleEnum,
        lat: float | None,
        lng: float | None,
        prior: PriorGuessCountries,
    ) -> str | None:
        explicit = first_of(guess, GUESS_COUNTRY_ACCESSORS, normalize_iso2) if guess else None
        if explicit:
            return explicit
        known = normalize_iso2(prior.get((round_number, role)))
        if known:
            return known
        if lat is None or lng is None or self.resolver is None:
            return None
        return self.resolver.resolve_country(lat, lng)

    def _player_summary(self, slot: PlayerSlot) -> PlayerSummary:
        player_id = slot.player_id
        profile = self.profiles.lookup(player_id) if self.profiles is not None else None
        rating_before, rating_after = extract_rating_change(slot.player)
        return PlayerSummary(
            role=slot.role,
            player_id=player_id,
            team_id=slot.team_id,
            nick=(profile.nick if profile else None) or as_str(slot.player.get("nick")),
            country_code=(profile.country_code if profile else None)
            or normalize_iso2(slot.player.get("countryCode")),
            rating_before=rating_before,
            rating_after=rating_after,
            victory=slot.victory,
            final_health=slot.final_health,
        )

    def normalize(
        self,
        match: MatchRef,
        payload: Json,
        endpoint: str,
        *,
        own_player_id: str | None = None,
        prior_guess_countries: PriorGuessCountries | None = None,
        now: datetime | None = None,
    ) -> NormalizedMatch:
        now = now or datetime.now(tz=UTC)
        prior = prior_guess_countries or {}
        payload = as_dict(payload)

        raw_rounds = _rounds_by_number(payload)
        slots = order_players(payload, own_player_id=own_player_id, match_id=match.match_id)
        guesses = [_guess_by_round(s.player) for s in slots]
        is_team = match.family == ModeFamilyEnum.TEAM_DUELS or len(slots) > 2

        rounds: list[NormalizedRound] = []
        damage_rounds: list[int] = []
        healing_rounds: list[int] = []
        for rn, r in raw_rounds.items():
            multiplier = as_float(r.get("damageMultiplier"))
            is_healing = r.get("isHealingRound") is True
            if (multiplier or 1) > 1:
                damage_rounds.append(rn)
            if is_healing:
                healing_rounds.append(rn)

            participants: list[RoundParticipant] = []
            for slot, by_round in zip(slots, guesses):
                guess = by_round.get(rn)
                lat = first_of(guess, GUESS_LAT_ACCESSORS, as_float) if guess else None
                lng = first_of(guess, GUESS_LNG_ACCESSORS, as_float) if guess else None
                distance_m = first_of(guess, GUESS_DISTANCE_ACCESSORS, as_float) if guess else None
                participants.append(
                    RoundParticipant(
                        role=slot.role,
                        player_id=slot.player_id,
                        team_id=slot.team_id,
                        guess_lat=lat,
                        guess_lng=lng,
                        guess_country=self._guess_country(
                            guess, round_number=rn, role=slot.role, lat=lat, lng=lng, prior=prior
                        ),
                        distance_km=distance_m / 1e3 if distance_m is not None else None,
                        score=as_int(guess.get("score")) if guess else None,
                        health_after=slot.health_by_round.get(rn),
                        is_best_guess=(
                            guess.get("isTeamsBestGuessOnRound") is True
                            if is_team and guess
                            else None
                        ),
                    )
                )

            health_diff = None
            if not is_team:
                by_role = {p.role: p.health_after for p in participants}
                own = by_role.get(RoleEnum.SELF)
                other = by_role.get(RoleEnum.OPPONENT)
                if own is not None and other is not None:
                    health_diff = own - other

            start = parse_api_datetime(r.get("startTime"))
            end = parse_api_datetime(r.get("endTime"))
            panorama = as_dict(r.get("panorama"))
            rounds.append(
                NormalizedRound(
                    round_id=round_key(match.match_id, rn),
                    match_id=match.match_id,
                    round_number=rn,
                    true_lat=as_float(panorama.get("lat")),
                    true_lng=as_float(panorama.get("lng")),
                    true_country=normalize_iso2(panorama.get("countryCode")),
                    damage_multiplier=multiplier,
                    is_healing_round=is_healing,
                    start_time=start,
                    end_time=end,
                    duration_seconds=seconds_between(start, end),
                    health_diff_after=health_diff,
                    participants=tuple(participants),
                    raw=r,
                )
            )

        map_name = as_str(MAP_NAME(payload))
        map_slug = as_str(MAP_SLUG(payload))
        is_rated = as_bool(IS_RATED(payload))
        missing = tuple(
            name
            for name, value in (("mapName", map_name), ("mapSlug", map_slug), ("isRated", is_rated))
            if value is None
        )

        total_rounds = as_int(payload.get("currentRoundNumber"))
        detail = NormalizedDetail(
            match_id=match.match_id,
            fetched_at=now,
            endpoint=endpoint,
            family=match.family,
            mode_label=match.mode_label,
            map_name=map_name,
            map_slug=map_slug,
            is_rated=is_rated,
            total_rounds=total_rounds if total_rounds is not None else len(raw_rounds),
            damage_multiplier_rounds=tuple(damage_rounds),
            healing_rounds=tuple(healing_rounds),
            started_at=rounds[0].start_time if rounds else None,
            movement_mode=detect_movement_mode(payload),
            winning_team_id=as_id(at("result", "winningTeamId")(payload)),
            missing_fields=missing or None,
            missing_fields_checked_at=now if missing else None,
            players=tuple(self._player_summary(s) for s in slots),
            raw=payload,
        )
        return NormalizedMatch(detail=detail, rounds=tuple(rounds))
