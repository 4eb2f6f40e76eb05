from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from duel_ledger.db.repos.details import RoundPlayerRepository
from duel_ledger.db.repos.meta.meta_repo import MetaRepository
from duel_ledger.geo.resolver import CountryResolver, normalize_lat_lng
from duel_ledger.ingestion.dates import parse_api_datetime

logger = logging.getLogger(__name__)

BACKFILL_META_KEY = "guess_country_backfill"


@dataclass(frozen=True)
class BackfillGuessCountriesResult:
    scanned: int
    attempted: int
    filled: int
    no_coordinates: int
    resolve_failed: int
    skipped: bool = False


def backfill_guess_countries(
    session: Session,
    *,
    resolver: CountryResolver,
    force: bool = False,
    batch_size: int = 500,
    min_interval: timedelta = timedelta(hours=24),
    now: datetime | None = None,
) -> BackfillGuessCountriesResult:
    """
    Fill `round_players.guess_country` where a guess has coordinates but no country.

    Only the local polygon index is consulted, so a bulk pass makes no geocoding calls.
    Runs at most once per `min_interval` unless forced; the last run is recorded in
    the meta table. Changes are flushed per batch and committed by the caller.
    """
    now = now or datetime.now(tz=UTC)
    meta = MetaRepository(session)

    last = meta.get_value(BACKFILL_META_KEY)
    last_run = parse_api_datetime(last.get("ranAt")) if last else None
    if not force and last_run is not None and now - last_run < min_interval:
        logger.info("guess country backfill ran at %s, skipping", last_run.isoformat())
        return BackfillGuessCountriesResult(
            scanned=0, attempted=0, filled=0, no_coordinates=0, resolve_failed=0, skipped=True
        )

    repo = RoundPlayerRepository(session)
    scanned = attempted = filled = no_coordinates = resolve_failed = 0
    after_id = 0
    while True:
        rows = repo.list_missing_guess_country(after_id=after_id, limit=batch_size)
        if not rows:
            break
        for rp in rows:
            scanned += 1
            if rp.guess_lat is None or rp.guess_lng is None:
                no_coordinates += 1
                continue
            attempted += 1
            norm = normalize_lat_lng(rp.guess_lat, rp.guess_lng)
            iso2 = resolver.locate(*norm) if norm is not None else None
            if iso2 is None:
                resolve_failed += 1
                continue
            rp.guess_country = iso2
            filled += 1
        after_id = rows[-1].id
        session.flush()
        logger.info("guess country backfill: scanned %d, filled %d", scanned, filled)

    meta.put_value(
        BACKFILL_META_KEY,
        {"ranAt": now.isoformat(), "filled": filled, "attempted": attempted},
        at=now,
    )
    return BackfillGuessCountriesResult(
        scanned=scanned,
        attempted=attempted,
        filled=filled,
        no_coordinates=no_coordinates,
        resolve_failed=resolve_failed,
    )
