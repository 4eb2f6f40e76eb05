from __future__ import annotations

import logging
from dataclasses import dataclass

from duel_ledger.core.fields import as_str
from duel_ledger.core.text import normalize_iso2
from duel_ledger.ingestion.providers.base.errors import ProviderRequestError
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerProfile:
    nick: str | None = None
    country_code: str | None = None


EMPTY_PROFILE = PlayerProfile()


class ProfileDirectory:
    """Player id -> public profile, cached for the lifetime of the instance (misses included)."""

    def __init__(self, *, client: GameApiClient | None) -> None:
        self.client = client
        self._cache: dict[str, PlayerProfile] = {}

    def lookup(self, player_id: str | None) -> PlayerProfile:
        if not player_id or self.client is None:
            return EMPTY_PROFILE
        cached = self._cache.get(player_id)
        if cached is not None:
            return cached

        profile = EMPTY_PROFILE
        try:
            resp = self.client.fetch_user(player_id)
        except ProviderRequestError as e:
            logger.debug("profile lookup failed for %s: %s", player_id, e)
        else:
            if resp.ok and isinstance(resp.data, dict):
                profile = PlayerProfile(
                    nick=as_str(resp.data.get("nick")),
                    country_code=normalize_iso2(resp.data.get("countryCode")),
                )

        self._cache[player_id] = profile
        return profile
