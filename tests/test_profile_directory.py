from __future__ import annotations

from datetime import UTC, datetime

import httpx

from duel_ledger.db.enums import ModeFamilyEnum, RoleEnum
from duel_ledger.ingestion.details.normalizer import PayloadNormalizer
from duel_ledger.ingestion.details.profiles import PlayerProfile, ProfileDirectory
from duel_ledger.ingestion.details.types import MatchRef
from duel_ledger.ingestion.providers.base.client import BaseHttpClient
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

SITE = "https://site.test"


class FakeSite:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if request.url.path == "/api/v3/users/p-me":
            return httpx.Response(200, json={"nick": "  me  ", "countryCode": "SE"})
        if request.url.path == "/api/v3/users/p-broken":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(404, json={"message": "not found"})


def _directory(site: FakeSite) -> ProfileDirectory:
    client = GameApiClient(
        http=BaseHttpClient(transport=httpx.MockTransport(site.handler)),
        ncfa="test-cookie",
        site_base_url=SITE,
        game_server_base_url="https://game-server.test",
    )
    return ProfileDirectory(client=client)


def test_lookup_parses_and_caches_profiles() -> None:
    site = FakeSite()
    profiles = _directory(site)

    assert profiles.lookup("p-me") == PlayerProfile(nick="me", country_code="se")
    assert profiles.lookup("p-me") == PlayerProfile(nick="me", country_code="se")
    assert site.calls == ["/api/v3/users/p-me"]


def test_misses_and_transport_errors_are_cached_as_empty() -> None:
    site = FakeSite()
    profiles = _directory(site)

    assert profiles.lookup("p-gone") == PlayerProfile()
    assert profiles.lookup("p-broken") == PlayerProfile()
    profiles.lookup("p-gone")
    profiles.lookup("p-broken")

    assert site.calls == ["/api/v3/users/p-gone", "/api/v3/users/p-broken"]


def test_lookup_without_client_or_id_makes_no_calls() -> None:
    assert ProfileDirectory(client=None).lookup("p-me") == PlayerProfile()

    site = FakeSite()
    assert _directory(site).lookup(None) == PlayerProfile()
    assert site.calls == []


def test_normalizer_prefers_profile_data_over_payload() -> None:
    site = FakeSite()
    normalizer = PayloadNormalizer(profiles=_directory(site))
    payload = {
        "teams": [
            {"id": "t-me", "players": [{"playerId": "p-me", "nick": "old", "guesses": []}]},
            {
                "id": "t-them",
                "players": [{"playerId": "p-them", "nick": "rival", "countryCode": "NO"}],
            },
        ],
        "rounds": [{"roundNumber": 1}],
    }

    result = normalizer.normalize(
        MatchRef(match_id="M1", family=ModeFamilyEnum.DUELS),
        payload,
        f"{SITE}/api/duels/M1",
        own_player_id="p-me",
        now=datetime(2026, 1, 6, tzinfo=UTC),
    )

    me = result.detail.player(RoleEnum.SELF)
    them = result.detail.player(RoleEnum.OPPONENT)
    assert (me.nick, me.country_code) == ("me", "se")
    assert (them.nick, them.country_code) == ("rival", "no")
