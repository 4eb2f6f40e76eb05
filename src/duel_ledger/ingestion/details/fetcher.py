from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime

from duel_ledger.db.enums import DetailStatusEnum, ModeFamilyEnum
from duel_ledger.ingestion.details.normalizer import PayloadNormalizer
from duel_ledger.ingestion.details.store import DetailStore
from duel_ledger.ingestion.details.types import MatchRef
from duel_ledger.ingestion.details.work_queue import MatchQueue
from duel_ledger.ingestion.progress import FetchProgress, estimate_eta
from duel_ledger.ingestion.providers.base.errors import AllEndpointsFailedError
from duel_ledger.ingestion.providers.game_api.client import GameApiClient

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4

# The match's data source is gone rather than temporarily failing.
_GONE_RE = re.compile(r"HTTP (403|404|410)\b")

StatusCallback = Callable[[FetchProgress], None]


def classify_failure(message: str) -> DetailStatusEnum:
    return DetailStatusEnum.MISSING if _GONE_RE.search(message) else DetailStatusEnum.ERROR


def _format_failure_reason(exc: Exception) -> str:
    text = str(exc).strip()
    return text if text else type(exc).__name__


def fetch_family(match: MatchRef) -> ModeFamilyEnum:
    if match.family == ModeFamilyEnum.TEAM_DUELS:
        return ModeFamilyEnum.TEAM_DUELS
    return ModeFamilyEnum.DUELS


@dataclass(frozen=True)
class FetchSummary:
    queued: int
    ok: int
    fail: int
    missing: int
    skipped: int


class _RunState:
    def __init__(self, *, total: int, clock: Callable[[], float]) -> None:
        self.total = total
        self.ok = 0
        self.fail = 0
        self.missing = 0
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()

    @property
    def done(self) -> int:
        return self.ok + self.fail + self.missing

    def record(self, status: DetailStatusEnum) -> FetchProgress:
        with self._lock:
            if status == DetailStatusEnum.OK:
                self.ok += 1
            elif status == DetailStatusEnum.MISSING:
                self.missing += 1
            else:
                self.fail += 1
            done = self.done
            return FetchProgress(
                done=done,
                total=self.total,
                ok=self.ok,
                fail=self.fail,
                eta_seconds=estimate_eta(
                    elapsed_s=self._clock() - self._started, done=done, total=self.total
                ),
            )


class DetailFetcher:
    """
    Worker pool that drains a MatchQueue.

    Each job fetches the match from its ordered endpoint candidates, normalizes it and
    saves detail + rounds in one transaction. A failed job becomes a `missing` or `error`
    detail row and never stops the other workers. A set `cancel` event lets running jobs
    finish and stops workers from starting new ones.
    """

    def __init__(
        self,
        *,
        client: GameApiClient,
        normalizer: PayloadNormalizer,
        store: DetailStore,
        own_player_id: str | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.client = client
        self.normalizer = normalizer
        self.store = store
        self.own_player_id = own_player_id
        self.concurrency = concurrency
        self._clock = clock
        self._now = now

    def process(self, match: MatchRef) -> DetailStatusEnum:
        """Fetch, normalize and persist one match; returns the resulting detail status."""

        try:
            resp = self.client.fetch_match_detail(match.match_id, fetch_family(match))
            normalized = self.normalizer.normalize(
                match,
                resp.payload,
                resp.endpoint,
                own_player_id=self.own_player_id,
                prior_guess_countries=self.store.prior_guess_countries(match.match_id),
                now=self._now(),
            )
            self.store.save_normalized(normalized)
        except AllEndpointsFailedError as exc:
            message = _format_failure_reason(exc)
            return self._record_failure(match, classify_failure(message), message)
        except Exception as exc:
            # Failures after a detail endpoint answered are always retryable errors.
            return self._record_failure(match, DetailStatusEnum.ERROR, _format_failure_reason(exc))

        logger.debug("match %s -> ok via %s", match.match_id, resp.endpoint)
        return DetailStatusEnum.OK

    def _record_failure(
        self, match: MatchRef, status: DetailStatusEnum, message: str
    ) -> DetailStatusEnum:
        logger.info("match %s -> %s: %s", match.match_id, status.value, message)
        self.store.record_failure(match, status=status, message=message, at=self._now())
        return status

    def _emit(self, on_status: StatusCallback | None, progress: FetchProgress) -> None:
        if on_status is None:
            return
        try:
            on_status(progress)
        except Exception:
            logger.exception("status callback failed")

    def _worker(
        self,
        queue: MatchQueue,
        state: _RunState,
        cancel: threading.Event | None,
        on_status: StatusCallback | None,
    ) -> None:
        while cancel is None or not cancel.is_set():
            match = queue.pop()
            if match is None:
                return
            try:
                status = self.process(match)
            except Exception:
                # Only reachable when persisting the failure itself failed.
                logger.exception("match %s: could not record failure", match.match_id)
                status = DetailStatusEnum.ERROR
            self._emit(on_status, state.record(status))

    def run(
        self,
        queue: MatchQueue,
        *,
        on_status: StatusCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> FetchSummary:
        total = len(queue)
        state = _RunState(total=total, clock=self._clock)
        if total == 0:
            return FetchSummary(queued=0, ok=0, fail=0, missing=0, skipped=0)

        workers = min(self.concurrency, total)
        logger.info("fetching %d match details with %d workers", total, workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="detail") as pool:
            futures = [
                pool.submit(self._worker, queue, state, cancel, on_status) for _ in range(workers)
            ]
            for future in futures:
                future.result()

        summary = FetchSummary(
            queued=total,
            ok=state.ok,
            fail=state.fail,
            missing=state.missing,
            skipped=total - state.done,
        )
        logger.info(
            "details done: ok=%d fail=%d missing=%d skipped=%d",
            summary.ok,
            summary.fail,
            summary.missing,
            summary.skipped,
        )
        return summary
