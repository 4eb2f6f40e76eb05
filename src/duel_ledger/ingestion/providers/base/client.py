from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from .errors import ProviderRateLimited, ProviderRequestError

Json = dict[str, Any]


@dataclass(frozen=True)
class HttpResponse:
    """Status + decoded body. `data` is None when a non-2xx body is not JSON."""

    status: int
    data: Any
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class BaseHttpClient:
    """
    Provider-agnostic HTTP client wrapper.

    - Uses a single underlying httpx.Client for connection pooling (safe to share across threads).
    - Provides consistent error handling.
    - Provider-specific clients wrap it and add convenience methods / auth.
    - `base_url` is optional; absolute URLs are passed through untouched.
    """

    base_url: str = ""
    timeout_s: float = 30.0
    connect_timeout_s: float = 10.0
    headers: Mapping[str, str] = field(default_factory=dict)

    transport: httpx.BaseTransport | None = None

    def __post_init__(self) -> None:
        kwargs: dict[str, Any] = {}
        if self.base_url:
            kwargs["base_url"] = self.base_url.rstrip("/") + "/"
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.timeout_s, connect=self.connect_timeout_s),
            headers=dict(self.headers),
            transport=self.transport,
            follow_redirects=True,
            **kwargs,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BaseHttpClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")) or not self.base_url:
            return path
        return path.lstrip("/")

    def get_response(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        """
        GET `url` and return status + decoded JSON without raising on non-2xx.

        Raises ProviderRequestError on transport issues or when a 2xx body is not JSON.
        """
        try:
            resp = self._client.get(self._url(url), params=params, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderRequestError(f"{type(e).__name__}: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            if resp.is_success:
                raise ProviderRequestError(
                    f"Response was not valid JSON for GET {resp.request.url}"
                ) from e
            data = None

        return HttpResponse(status=resp.status_code, data=data, url=str(resp.request.url))

    def get_json(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Json:
        """
        GET `path` and return the parsed JSON object.
        Raises ProviderRequestError (including ProviderRateLimited) on transport issues / non-2xx.
        """
        try:
            resp = self._client.get(self._url(path), params=params, headers=headers)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise ProviderRequestError(str(e)) from e

        if resp.status_code == 429:
            raise ProviderRateLimited("Provider rate limited the request (HTTP 429).")

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderRequestError(f"HTTP {resp.status_code} for GET {resp.request.url}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderRequestError("Response was not valid JSON.") from e

        if not isinstance(data, dict):
            raise ProviderRequestError(f"Expected JSON object, got {type(data)}")

        return data
