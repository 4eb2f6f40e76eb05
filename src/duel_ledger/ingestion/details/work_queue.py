from __future__ import annotations

import queue
import threading
from collections.abc import Iterable

from duel_ledger.ingestion.details.types import MatchRef


class MatchQueue:
    """
    FIFO of matches for one planning pass: one producer, any number of worker threads.

    A match id is accepted at most once per queue, so no two workers can fetch
    the same match during the pass.
    """

    def __init__(self, matches: Iterable[MatchRef] = ()) -> None:
        self._queue: queue.Queue[MatchRef] = queue.Queue()
        self._seen: set[str] = set()
        self._lock = threading.Lock()
        for match in matches:
            self.put(match)

    def put(self, match: MatchRef) -> bool:
        with self._lock:
            if match.match_id in self._seen:
                return False
            self._seen.add(match.match_id)
        self._queue.put(match)
        return True

    def pop(self) -> MatchRef | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    @property
    def enqueued(self) -> int:
        """Matches accepted over the queue's lifetime."""

        with self._lock:
            return len(self._seen)

    def __len__(self) -> int:
        return self._queue.qsize()
