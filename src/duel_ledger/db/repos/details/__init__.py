from __future__ import annotations

from duel_ledger.db.repos.details.game_detail_repo import GameDetailRepository
from duel_ledger.db.repos.details.round_repo import RoundPlayerRepository, RoundRepository

__all__ = [
    "GameDetailRepository",
    "RoundPlayerRepository",
    "RoundRepository",
]
