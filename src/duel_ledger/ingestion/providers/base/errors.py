from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class ProviderError(RuntimeError):
    """Base exception for provider-related failures."""


class ProviderRequestError(ProviderError):
    """HTTP/network/transport layer failures (timeouts, connection errors, non-2xx, etc.)."""


class ProviderRateLimited(ProviderRequestError):
    """Provider throttled the request (e.g., HTTP 429)."""


class ProviderResponseError(ProviderError):
    """Provider returned a well-formed response that does not carry what we asked for."""


@dataclass(frozen=True)
class EndpointAttempt:
    url: str
    reason: str  # "HTTP 404" or the transport error text

    def __str__(self) -> str:
        return f"{self.url} -> {self.reason}"


class AllEndpointsFailedError(ProviderRequestError):
    """Every candidate endpoint for a match failed; carries each attempt for diagnosis."""

    def __init__(self, match_id: str, attempts: Sequence[EndpointAttempt]) -> None:
        self.match_id = match_id
        self.attempts = list(attempts)
        joined = " | ".join(str(a) for a in self.attempts) or "no candidates"
        super().__init__(f"No endpoint worked for {match_id}: {joined}")


class BoundaryDatasetError(ProviderError):
    """No mirror could serve the country boundary dataset."""
