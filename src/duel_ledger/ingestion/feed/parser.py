from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from duel_ledger.core.fields import Json, as_list, as_str, at, first_of
from duel_ledger.core.text import normalize_mode_label
from duel_ledger.db.enums import ModeFamilyEnum
from duel_ledger.ingestion.dates import parse_api_datetime

GAME_ID_ACCESSORS = (at("payload", "gameId"), at("gameId"), at("id"), at("payload", "id"))
TIME_ACCESSORS = (at("time"), at("createdAt"), at("payload", "time"))
EVENT_MODE_ACCESSORS = (
    at("payload", "gameMode"),
    at("payload", "competitiveGameMode"),
    at("gameMode"),
    at("competitiveGameMode"),
    at("mode"),
)
ENTRY_MODE_ACCESSORS = (
    at("payload", "gameMode"),
    at("payload", "competitiveGameMode"),
    at("gameMode"),
)
TYPE_HINT_ACCESSORS = (
    at("type"),
    at("__typename"),
    at("payload", "type"),
    at("payload", "__typename"),
    at("payload", "gameType"),
    at("payload", "mode"),
    at("payload", "slug"),
)


@dataclass(frozen=True)
class ParsedFeedMatch:
    match_id: str
    family: ModeFamilyEnum
    played_at: datetime
    mode_label: str | None
    raw: Json


def classify_mode_label(label: str | None) -> ModeFamilyEnum:
    m = (label or "").lower()
    if "teamduels" in m or "team_duels" in m or "team-duels" in m:
        return ModeFamilyEnum.TEAM_DUELS
    if "duel" in m:
        return ModeFamilyEnum.DUELS
    return ModeFamilyEnum.OTHER


def classify_event(event: Json, mode_label: str | None) -> ModeFamilyEnum:
    """Mode label first; fall back to type hints carried by the event."""

    family = classify_mode_label(mode_label)
    if family != ModeFamilyEnum.OTHER:
        return family
    hint = (first_of(event, TYPE_HINT_ACCESSORS, as_str) or "").lower()
    if "team" in hint and "duel" in hint:
        return ModeFamilyEnum.TEAM_DUELS
    if "duel" in hint:
        return ModeFamilyEnum.DUELS
    return ModeFamilyEnum.OTHER


def _payload_events(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, str):
        try:
            parsed = json.loads(payload)
        except ValueError:
            return []
        if isinstance(parsed, list):
            return parsed
    return []


def extract_events(entry: Any) -> list[Json]:
    """A feed entry either bundles several events in `payload` or is one event itself."""

    if not isinstance(entry, dict):
        return []
    events = [e for e in _payload_events(entry.get("payload")) if isinstance(e, dict)]
    return events or [entry]


def parse_feed_entries(entries: Any, *, fallback_time: datetime) -> list[ParsedFeedMatch]:
    """
    Flatten one feed page into matches, newest event per match id.

    Events without a game id are ignored; events without a parseable time get
    `fallback_time`.
    """
    by_id: dict[str, ParsedFeedMatch] = {}
    for entry in as_list(entries):
        for event in extract_events(entry):
            match_id = first_of(event, GAME_ID_ACCESSORS, as_str)
            if match_id is None:
                continue
            played_at = (
                first_of(event, TIME_ACCESSORS, parse_api_datetime)
                or parse_api_datetime(entry.get("time"))
                or fallback_time
            )
            mode_label = first_of(event, EVENT_MODE_ACCESSORS, normalize_mode_label) or first_of(
                entry, ENTRY_MODE_ACCESSORS, normalize_mode_label
            )
            parsed = ParsedFeedMatch(
                match_id=match_id,
                family=classify_event(event, mode_label),
                played_at=played_at,
                mode_label=mode_label,
                raw=event,
            )
            prev = by_id.get(match_id)
            if prev is None or parsed.played_at > prev.played_at:
                by_id[match_id] = parsed
    return list(by_id.values())
