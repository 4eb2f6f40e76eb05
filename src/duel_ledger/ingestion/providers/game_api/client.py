from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from duel_ledger.core.config import settings
from duel_ledger.core.fields import Json, as_id, at, first_of
from duel_ledger.db.enums import ModeFamilyEnum
from duel_ledger.ingestion.providers.base.client import BaseHttpClient, HttpResponse
from duel_ledger.ingestion.providers.base.errors import (
    AllEndpointsFailedError,
    EndpointAttempt,
    ProviderRequestError,
    ProviderResponseError,
)
from duel_ledger.ingestion.providers.game_api.endpoints import build_detail_candidates

logger = logging.getLogger(__name__)

OWN_PROFILE_PATHS = ("/api/v3/profiles", "/api/v4/profiles", "/api/v3/users/me")

_OWN_ID_ACCESSORS = (
    at("user", "id"),
    at("id"),
    at("player", "id"),
    at("playerId"),
    at("user", "userId"),
)


@dataclass(frozen=True)
class DetailResponse:
    match_id: str
    endpoint: str
    payload: Json


class GameApiClient:
    """Authenticated access to the game site + game server (detail, feed, profiles)."""

    def __init__(
        self,
        *,
        http: BaseHttpClient,
        ncfa: str | None = None,
        site_base_url: str | None = None,
        game_server_base_url: str | None = None,
    ) -> None:
        self.http = http
        self.ncfa = ncfa if ncfa is not None else settings.require_ncfa()
        self.site_base_url = (site_base_url or settings.site_base_url).rstrip("/")
        self.game_server_base_url = (
            game_server_base_url or settings.game_server_base_url
        ).rstrip("/")

    def _auth_headers(self) -> dict[str, str]:
        return {"Cookie": f"_ncfa={self.ncfa}"} if self.ncfa else {}

    def get(self, url: str, *, params: dict[str, Any] | None = None) -> HttpResponse:
        return self.http.get_response(url, params=params, headers=self._auth_headers())

    def detail_candidates(self, match_id: str, family: ModeFamilyEnum) -> list[str]:
        return build_detail_candidates(
            match_id,
            family,
            site_base_url=self.site_base_url,
            game_server_base_url=self.game_server_base_url,
        )

    def fetch_match_detail(self, match_id: str, family: ModeFamilyEnum) -> DetailResponse:
        """
        Try each candidate URL in order; the first 2xx JSON object wins.

        Raises AllEndpointsFailedError listing every attempt when none works.
        """
        attempts: list[EndpointAttempt] = []
        for url in self.detail_candidates(match_id, family):
            try:
                resp = self.get(url)
            except ProviderRequestError as e:
                attempts.append(EndpointAttempt(url=url, reason=str(e)))
                logger.debug("detail %s: %s failed: %s", match_id, url, e)
                continue

            if not resp.ok:
                attempts.append(EndpointAttempt(url=url, reason=f"HTTP {resp.status}"))
                logger.debug("detail %s: %s -> HTTP %s", match_id, url, resp.status)
                continue

            if not isinstance(resp.data, dict):
                attempts.append(
                    EndpointAttempt(url=url, reason=f"unexpected payload {type(resp.data).__name__}")
                )
                continue

            return DetailResponse(match_id=match_id, endpoint=url, payload=resp.data)

        raise AllEndpointsFailedError(match_id, attempts)

    def fetch_feed_page(self, pagination_token: str | None = None) -> Json:
        params = {"paginationToken": pagination_token} if pagination_token else None
        return self.http.get_json(
            f"{self.site_base_url}/api/v4/feed/private",
            params=params,
            headers=self._auth_headers(),
        )

    def fetch_user(self, player_id: str) -> HttpResponse:
        return self.get(f"{self.site_base_url}/api/v3/users/{player_id}")

    def discover_own_player_id(self) -> str:
        """Ask the profile endpoints who the credential belongs to."""

        reasons: list[str] = []
        for path in OWN_PROFILE_PATHS:
            url = self.site_base_url + path
            try:
                resp = self.get(url)
            except ProviderRequestError as e:
                reasons.append(f"{url} -> {e}")
                continue
            if not resp.ok:
                reasons.append(f"{url} -> HTTP {resp.status}")
                continue
            player_id = first_of(resp.data, _OWN_ID_ACCESSORS, as_id)
            if player_id:
                return player_id
            reasons.append(f"{url} -> no player id in payload")

        raise ProviderResponseError("Could not determine own player id: " + " | ".join(reasons))
