from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from duel_ledger.db.enums import DetailStatusEnum
from duel_ledger.ingestion.dates import as_utc
from duel_ledger.ingestion.details.fetcher import (
    DEFAULT_CONCURRENCY,
    DetailFetcher,
    StatusCallback,
)
from duel_ledger.ingestion.details.normalizer import PayloadNormalizer
from duel_ledger.ingestion.details.store import DetailStore
from duel_ledger.ingestion.details.types import MatchRef, StoredDetailState, is_detail_candidate
from duel_ledger.ingestion.details.work_queue import MatchQueue
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

logger = logging.getLogger(__name__)


class FetchReason(StrEnum):
    NEW = "new"
    INCOMPLETE = "incomplete"
    ENRICHMENT = "enrichment"
    MISSING_RETRY = "missing_retry"
    ERROR_RETRY = "error_retry"


@dataclass(frozen=True)
class PlanOptions:
    retry_errors: bool = True
    verify_completeness: bool = True
    missing_retry_after: timedelta = timedelta(days=7)
    enrichment_retry_after: timedelta = timedelta(days=30)


@dataclass(frozen=True)
class WorkPlan:
    to_fetch: tuple[MatchRef, ...]
    to_mark_missing: tuple[MatchRef, ...]
    reasons: Mapping[str, FetchReason]
    skipped: int


def _older_than(ts: datetime | None, age: timedelta, now: datetime) -> bool:
    return ts is None or now - as_utc(ts) > age


def decide(
    stored: StoredDetailState | None,
    round_count: int,
    *,
    options: PlanOptions,
    now: datetime,
) -> FetchReason | None:
    """Why a match needs fetching this pass, or None to skip it."""

    if stored is None:
        return FetchReason.NEW

    if stored.status == DetailStatusEnum.OK:
        if options.verify_completeness and (
            round_count == 0
            or (stored.total_rounds is not None and round_count < stored.total_rounds)
        ):
            return FetchReason.INCOMPLETE
        if stored.missing_fields and _older_than(
            stored.missing_fields_checked_at, options.enrichment_retry_after, now
        ):
            return FetchReason.ENRICHMENT
        return None

    if stored.status == DetailStatusEnum.MISSING:
        if _older_than(stored.fetched_at, options.missing_retry_after, now):
            return FetchReason.MISSING_RETRY
        return None

    if stored.status == DetailStatusEnum.ERROR and options.retry_errors:
        return FetchReason.ERROR_RETRY
    return None


def plan_work(
    candidates: Iterable[MatchRef],
    stored_details: Mapping[str, StoredDetailState],
    stored_round_counts: Mapping[str, int],
    *,
    options: PlanOptions | None = None,
    now: datetime | None = None,
) -> WorkPlan:
    """
    Decide which candidate matches to (re)fetch this pass.

    Non head-to-head/team matches are dropped and each match id is considered once.
    Matches without a stored detail are both enqueued and returned in `to_mark_missing`
    so a placeholder row exists before any fetch starts.
    """
    options = options or PlanOptions()
    now = as_utc(now or datetime.now(tz=UTC))

    to_fetch: list[MatchRef] = []
    to_mark_missing: list[MatchRef] = []
    reasons: dict[str, FetchReason] = {}
    seen: set[str] = set()
    skipped = 0

    for match in candidates:
        if match.match_id in seen or not is_detail_candidate(match):
            continue
        seen.add(match.match_id)

        reason = decide(
            stored_details.get(match.match_id),
            stored_round_counts.get(match.match_id, 0),
            options=options,
            now=now,
        )
        if reason is None:
            skipped += 1
            continue
        if reason == FetchReason.NEW:
            to_mark_missing.append(match)
        to_fetch.append(match)
        reasons[match.match_id] = reason

    return WorkPlan(
        to_fetch=tuple(to_fetch),
        to_mark_missing=tuple(to_mark_missing),
        reasons=reasons,
        skipped=skipped,
    )


@dataclass(frozen=True)
class IngestMatchDetailsResult:
    candidates: int
    placeholders_created: int
    queued: int
    ok: int
    fail: int
    missing: int
    skipped: int
    up_to_date: int


def ingest_match_details(
    store: DetailStore,
    *,
    client: GameApiClient,
    normalizer: PayloadNormalizer,
    own_player_id: str | None = None,
    limit: int | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    options: PlanOptions | None = None,
    on_status: StatusCallback | None = None,
    cancel: threading.Event | None = None,
    now: datetime | None = None,
) -> IngestMatchDetailsResult:
    """One detail pass: load candidates, plan, write placeholders, fetch the queue."""

    candidates = store.load_candidates(limit=limit)
    ids = [c.match_id for c in candidates]
    plan = plan_work(
        candidates,
        store.bulk_get_details(ids),
        store.round_counts(ids),
        options=options,
        now=now,
    )

    by_reason: dict[str, int] = {}
    for reason in plan.reasons.values():
        by_reason[reason.value] = by_reason.get(reason.value, 0) + 1
    logger.info(
        "planned %d of %d candidates (%s), %d up to date",
        len(plan.to_fetch),
        len(candidates),
        ", ".join(f"{k}={v}" for k, v in sorted(by_reason.items())) or "nothing to do",
        plan.skipped,
    )

    placeholders = store.put_placeholders(plan.to_mark_missing)

    fetcher = DetailFetcher(
        client=client,
        normalizer=normalizer,
        store=store,
        own_player_id=own_player_id,
        concurrency=concurrency,
    )
    summary = fetcher.run(MatchQueue(plan.to_fetch), on_status=on_status, cancel=cancel)

    return IngestMatchDetailsResult(
        candidates=len(candidates),
        placeholders_created=placeholders,
        queued=summary.queued,
        ok=summary.ok,
        fail=summary.fail,
        missing=summary.missing,
        skipped=summary.skipped,
        up_to_date=plan.skipped,
    )
