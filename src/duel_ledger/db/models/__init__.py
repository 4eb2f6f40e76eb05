from duel_ledger.db.models.details.detail_player import DetailPlayer
from duel_ledger.db.models.details.game_detail import GameDetail
from duel_ledger.db.models.details.round import Round
from duel_ledger.db.models.details.round_player import RoundPlayer
from duel_ledger.db.models.feed.feed_match import FeedMatch
from duel_ledger.db.models.meta.meta_entry import MetaEntry

__all__ = [
    "DetailPlayer",
    "FeedMatch",
    "GameDetail",
    "MetaEntry",
    "Round",
    "RoundPlayer",
]
