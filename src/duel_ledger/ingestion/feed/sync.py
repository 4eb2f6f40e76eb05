from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from duel_ledger.core.config import settings
from duel_ledger.core.fields import as_str
from duel_ledger.db.enums import ModeFamilyEnum
from duel_ledger.db.models.feed.feed_match import FeedMatch
from duel_ledger.db.repos.feed.feed_match_repo import FeedMatchRepository
from duel_ledger.db.repos.meta.meta_repo import MetaRepository
from duel_ledger.ingestion.dates import as_utc, parse_api_datetime
from duel_ledger.ingestion.feed.parser import ParsedFeedMatch, parse_feed_entries
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

logger = logging.getLogger(__name__)

SYNC_META_KEY = "sync"


@dataclass(frozen=True)
class SyncFeedResult:
    pages: int
    upserted: int
    total: int
    last_seen: datetime | None
    reached_last_seen: bool


def _upsert_page(repo: FeedMatchRepository, rows: list[ParsedFeedMatch]) -> int:
    found = repo.bulk_get(FeedMatch.match_id, [r.match_id for r in rows])
    existing = {m.match_id: m for m in found}
    for r in rows:
        raw = r.raw if settings.store_raw_payloads else None
        match = existing.get(r.match_id)
        if match is None:
            repo.add(
                FeedMatch(
                    match_id=r.match_id,
                    family=r.family,
                    played_at=r.played_at,
                    mode_label=r.mode_label,
                    raw=raw,
                ),
                flush=False,
            )
            continue
        # Older rows may gain mode info once a later event carries it; never lose it.
        if r.family != ModeFamilyEnum.OTHER:
            match.family = r.family
        match.played_at = r.played_at
        match.mode_label = r.mode_label or match.mode_label
        match.raw = raw
    repo.session.flush()
    return len(rows)


def sync_feed(
    session: Session,
    *,
    client: GameApiClient,
    max_pages: int = 120,
    delay_seconds: float = 0.15,
    sleep: Callable[[float], None] = time.sleep,
    now: datetime | None = None,
) -> SyncFeedResult:
    """
    Page through the private activity feed and upsert matches into `feed_matches`.

    Stops at the last page, after `max_pages`, or once a page reaches the newest
    match time recorded by the previous sync.
    """
    now = now or datetime.now(tz=UTC)
    repo = FeedMatchRepository(session)
    meta = MetaRepository(session)

    previous = meta.get_value(SYNC_META_KEY) or {}
    last_seen = parse_api_datetime(previous.get("lastSeenTime"))
    newest = last_seen

    token: str | None = None
    pages = 0
    upserted = 0
    reached = False

    for page in range(1, max_pages + 1):
        data = client.fetch_feed_page(token)
        pages = page
        rows = parse_feed_entries(data.get("entries"), fallback_time=now)
        if not rows:
            break

        upserted += _upsert_page(repo, rows)

        page_newest = max(as_utc(r.played_at) for r in rows)
        page_oldest = min(as_utc(r.played_at) for r in rows)
        if newest is None or page_newest > newest:
            newest = page_newest
        meta.put_value(SYNC_META_KEY, {"lastSeenTime": newest.isoformat()}, at=now)
        logger.info("feed page %d/%d: %d matches (%d so far)", page, max_pages, len(rows), upserted)

        token = as_str(data.get("paginationToken"))
        if token is None:
            break
        if last_seen is not None and page_oldest <= last_seen:
            reached = True
            logger.info("reached previously synced period (%s)", last_seen.isoformat())
            break
        if delay_seconds > 0:
            sleep(delay_seconds)

    total = session.execute(select(func.count()).select_from(FeedMatch)).scalar_one()
    return SyncFeedResult(
        pages=pages,
        upserted=upserted,
        total=int(total),
        last_seen=newest,
        reached_last_seen=reached,
    )
