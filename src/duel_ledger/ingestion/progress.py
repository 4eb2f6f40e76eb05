from __future__ import annotations

from dataclasses import dataclass


def format_eta(seconds: float | None) -> str:
    if seconds is None:
        return "?"
    total = max(0, int(round(seconds)))
    minutes, secs = divmod(total, 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


@dataclass(frozen=True)
class FetchProgress:
    done: int
    total: int
    ok: int
    fail: int
    eta_seconds: float | None

    def label(self) -> str:
        return (
            f"Details {self.done}/{self.total} (ok {self.ok}, fail {self.fail}) "
            f"ETA ~{format_eta(self.eta_seconds)}"
        )


def estimate_eta(*, elapsed_s: float, done: int, total: int) -> float | None:
    """Remaining time from the average job duration so far."""

    if done <= 0:
        return None
    return (elapsed_s / done) * max(0, total - done)
