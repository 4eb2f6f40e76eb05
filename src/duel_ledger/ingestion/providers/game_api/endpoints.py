from __future__ import annotations

from urllib.parse import quote

from duel_ledger.db.enums import ModeFamilyEnum

# Resource paths on the main site, per family, in preference order.
TEAM_DUELS_PATHS = (
    "/api/team-duels/{id}",
    "/api/v3/team-duels/{id}",
    "/api/v4/team-duels/{id}",
    "/api/v4/competitive-games/{id}",
    "/api/v3/games/{id}",
)
DUELS_PATHS = (
    "/api/duels/{id}",
    "/api/v3/duels/{id}",
    "/api/v4/duels/{id}",
    "/api/v4/competitive-games/{id}",
    "/api/v3/games/{id}",
)
GAME_SERVER_PATH = "/api/duels/{id}"


def build_detail_candidates(
    match_id: str,
    family: ModeFamilyEnum,
    *,
    site_base_url: str,
    game_server_base_url: str,
) -> list[str]:
    """
    Ordered detail URLs for one match.

    Team matches try team-oriented resources first and head-to-head ones after,
    head-to-head (and unknown) matches the other way round. Both orders cover the
    same set of URLs; duplicates keep their first position.
    """
    mid = quote(match_id, safe="")
    site = site_base_url.rstrip("/")
    game_server = [game_server_base_url.rstrip("/") + GAME_SERVER_PATH.format(id=mid)]

    team = game_server + [site + p.format(id=mid) for p in TEAM_DUELS_PATHS]
    duels = game_server + [site + p.format(id=mid) for p in DUELS_PATHS]

    ordered = team + duels if family == ModeFamilyEnum.TEAM_DUELS else duels + team
    return list(dict.fromkeys(ordered))
