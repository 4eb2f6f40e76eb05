from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
import sqlalchemy as sa
from sqlalchemy.orm import Session

import duel_ledger.db.models  # noqa: F401
from duel_ledger.db.base import Base
from duel_ledger.db.enums import ModeFamilyEnum
from duel_ledger.db.models.feed.feed_match import FeedMatch
from duel_ledger.db.repos.meta.meta_repo import MetaRepository
from duel_ledger.ingestion.dates import as_utc
from duel_ledger.ingestion.feed.parser import classify_event, parse_feed_entries
from duel_ledger.ingestion.feed.sync import SYNC_META_KEY, sync_feed
from duel_ledger.ingestion.providers.base.client import BaseHttpClient
from duel_ledger.ingestion.providers.base.errors import ProviderRateLimited, ProviderRequestError
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

SITE = "https://site.test"
NOW = datetime(2026, 2, 10, tzinfo=UTC)


def _make_session() -> Session:
    engine = sa.create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    return Session(engine)


def _event(game_id: str, time: str, mode: str | None = "Duels") -> dict[str, Any]:
    payload: dict[str, Any] = {"gameId": game_id}
    if mode is not None:
        payload["gameMode"] = mode
    return {"type": 6, "time": time, "payload": payload}


def _bundle(*events: dict[str, Any]) -> dict[str, Any]:
    """Grouped feed entry: the events arrive as a JSON string."""

    return {"type": 7, "time": events[0]["time"], "payload": json.dumps(list(events))}


class FeedApi:
    def __init__(self, pages: dict[str | None, dict[str, Any]]) -> None:
        self.pages = pages
        self.tokens: list[str | None] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v4/feed/private"
        token = request.url.params.get("paginationToken")
        self.tokens.append(token)
        return httpx.Response(200, json=self.pages.get(token, {"entries": []}))


def _make_client(api: FeedApi) -> GameApiClient:
    return GameApiClient(
        http=BaseHttpClient(transport=httpx.MockTransport(api.handler)),
        ncfa="test-cookie",
        site_base_url=SITE,
    )


def test_parse_feed_entries_flattens_bundles_and_keeps_newest_event() -> None:
    entries = [
        _bundle(
            _event("M2", "2026-02-02T10:00:00Z"),
            _event("M1", "2026-02-01T10:00:00Z", mode="TeamDuels"),
        ),
        _event("M1", "2026-02-01T09:00:00Z", mode="TeamDuels"),
        _event("S1", "2026-02-03T10:00:00Z", mode="Standard"),
        {"type": 7, "time": "2026-02-04T10:00:00Z", "payload": "{not json"},
        "garbage",
        {"type": 6, "payload": {"gameId": "M9", "gameMode": "Duels"}},
    ]

    parsed = {p.match_id: p for p in parse_feed_entries(entries, fallback_time=NOW)}

    assert set(parsed) == {"M1", "M2", "S1", "M9"}
    assert parsed["M1"].family == ModeFamilyEnum.TEAM_DUELS
    assert parsed["M1"].played_at == datetime(2026, 2, 1, 10, 0, tzinfo=UTC)
    assert parsed["M2"].family == ModeFamilyEnum.DUELS
    assert parsed["M2"].mode_label == "Duels"
    assert parsed["S1"].family == ModeFamilyEnum.OTHER
    assert parsed["M9"].played_at == NOW


def test_classify_event_falls_back_to_type_hints() -> None:
    assert classify_event({"__typename": "TeamDuelGame"}, None) == ModeFamilyEnum.TEAM_DUELS
    assert classify_event({"payload": {"gameType": "duel"}}, None) == ModeFamilyEnum.DUELS
    assert classify_event({"type": 1}, None) == ModeFamilyEnum.OTHER
    assert classify_event({"__typename": "Standard"}, "team_duels") == ModeFamilyEnum.TEAM_DUELS


def test_sync_feed_pages_until_last_page_and_records_watermark() -> None:
    session = _make_session()
    api = FeedApi(
        {
            None: {
                "entries": [
                    _event("M3", "2026-02-03T10:00:00Z"),
                    _event("M2", "2026-02-02T10:00:00Z", mode="TeamDuels"),
                ],
                "paginationToken": "p2",
            },
            "p2": {"entries": [_event("M1", "2026-02-01T10:00:00Z")]},
        }
    )
    sleeps: list[float] = []

    result = sync_feed(session, client=_make_client(api), sleep=sleeps.append, now=NOW)

    assert api.tokens == [None, "p2"]
    assert sleeps == [0.15]
    assert result.pages == 2
    assert result.upserted == 3
    assert result.total == 3
    assert result.reached_last_seen is False
    assert result.last_seen == datetime(2026, 2, 3, 10, 0, tzinfo=UTC)

    stored = MetaRepository(session).get_value(SYNC_META_KEY)
    assert stored == {"lastSeenTime": "2026-02-03T10:00:00+00:00"}
    assert session.get(FeedMatch, "M2").family == ModeFamilyEnum.TEAM_DUELS


def test_sync_feed_stops_at_previously_seen_period() -> None:
    session = _make_session()
    first = FeedApi({None: {"entries": [_event("M3", "2026-02-03T10:00:00Z")]}})
    sync_feed(session, client=_make_client(first), sleep=lambda s: None, now=NOW)

    second = FeedApi(
        {
            None: {
                "entries": [
                    _event("M4", "2026-02-04T10:00:00Z"),
                    _event("M3", "2026-02-03T10:00:00Z", mode=None),
                ],
                "paginationToken": "p2",
            },
            "p2": {"entries": [_event("M0", "2026-01-01T10:00:00Z")]},
        }
    )
    result = sync_feed(session, client=_make_client(second), sleep=lambda s: None, now=NOW)

    assert second.tokens == [None]
    assert result.reached_last_seen is True
    assert result.pages == 1
    assert result.total == 2
    assert as_utc(result.last_seen) == datetime(2026, 2, 4, 10, 0, tzinfo=UTC)

    m3 = session.get(FeedMatch, "M3")
    assert m3.family == ModeFamilyEnum.DUELS
    assert m3.mode_label == "Duels"


def test_sync_feed_respects_max_pages() -> None:
    session = _make_session()
    api = FeedApi(
        {
            None: {"entries": [_event("M2", "2026-02-02T10:00:00Z")], "paginationToken": "p2"},
            "p2": {"entries": [_event("M1", "2026-02-01T10:00:00Z")], "paginationToken": "p3"},
        }
    )

    result = sync_feed(session, client=_make_client(api), max_pages=1, sleep=lambda s: None)

    assert api.tokens == [None]
    assert result.pages == 1
    assert result.total == 1


def test_feed_request_errors_propagate() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "unauthorized"})

    client = GameApiClient(
        http=BaseHttpClient(transport=httpx.MockTransport(handler)),
        ncfa="expired",
        site_base_url=SITE,
    )

    with pytest.raises(ProviderRequestError):
        sync_feed(_make_session(), client=client, sleep=lambda s: None)


def test_feed_rate_limit_is_reported_as_such() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(429, json={"message": "slow down"})

    client = GameApiClient(
        http=BaseHttpClient(transport=httpx.MockTransport(handler)),
        ncfa="test-cookie",
        site_base_url=SITE,
    )

    with pytest.raises(ProviderRateLimited):
        client.fetch_feed_page("tok-1")
    assert seen == [("GET", "/api/v4/feed/private")]
