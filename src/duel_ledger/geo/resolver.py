from __future__ import annotations

import logging
import math
import threading
from collections.abc import Sequence

from duel_ledger.core.config import settings
from duel_ledger.core.fields import at, first_of
from duel_ledger.core.text import normalize_iso2
from duel_ledger.geo.boundaries import CountryFeature, locate, parse_feature_collection
from duel_ledger.ingestion.providers.base.client import BaseHttpClient
from duel_ledger.ingestion.providers.base.errors import BoundaryDatasetError, ProviderRequestError

logger = logging.getLogger(__name__)

CACHE_PRECISION = 5  # ~1.1 m

_REVERSE_ISO_ACCESSORS = (at("countryCode"), at("country_code"), at("countryCodeAlpha2"))


def normalize_lat_lng(lat: float | None, lng: float | None) -> tuple[float, float] | None:
    """
    Fix an accidental (lng, lat) argument order and reject out-of-range input.

    Returns None when the coordinate cannot be a valid (lat, lng) pair.
    """
    if lat is None or lng is None:
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    if 90 < abs(lat) <= 180 and abs(lng) <= 90:
        lat, lng = lng, lat
    if abs(lat) > 90 or abs(lng) > 180:
        return None
    return lat, lng


def _in_range(lat: float, lng: float) -> bool:
    return abs(lat) <= 90 and abs(lng) <= 180


class CountryResolver:
    """
    Resolve a coordinate to a lower-case ISO2 country code.

    Lookup order: per-instance cache, local polygon index, reverse-geocoding endpoint,
    then the same two with lat/lng swapped. The outcome, including "no country",
    is cached under the rounded input coordinate.

    The polygon dataset is loaded lazily, at most once per instance. If every mirror
    fails, BoundaryDatasetError propagates to the caller that triggered the load and
    the next call retries. Anything else degrades to None.
    """

    def __init__(
        self,
        *,
        http: BaseHttpClient,
        boundary_urls: Sequence[str] | None = None,
        reverse_geocode_url: str | None = None,
        features: Sequence[CountryFeature] | None = None,
    ) -> None:
        self.http = http
        self.boundary_urls = list(
            boundary_urls if boundary_urls is not None else settings.country_boundaries_urls
        )
        self.reverse_geocode_url = reverse_geocode_url or settings.reverse_geocode_url

        self._features: list[CountryFeature] | None = (
            list(features) if features is not None else None
        )
        self._load_lock = threading.Lock()
        # Writes are idempotent per key; a racing duplicate computation is harmless.
        self._cache: dict[tuple[float, float], str | None] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def features(self) -> list[CountryFeature]:
        features = self._features
        if features is not None:
            return features
        with self._load_lock:
            if self._features is None:
                self._features = self._load_features()
            return self._features

    def _load_features(self) -> list[CountryFeature]:
        failures: list[str] = []
        for url in self.boundary_urls:
            try:
                resp = self.http.get_response(url)
            except ProviderRequestError as e:
                failures.append(f"{url} -> {e}")
                continue
            if not resp.ok:
                failures.append(f"{url} -> HTTP {resp.status}")
                continue

            features = parse_feature_collection(resp.data)
            if not features:
                failures.append(f"{url} -> no usable country features")
                continue

            logger.info("loaded %d country features from %s", len(features), url)
            return features

        raise BoundaryDatasetError(
            "Country boundary dataset unavailable: " + (" | ".join(failures) or "no mirrors")
        )

    def locate(self, lat: float, lng: float) -> str | None:
        """Local polygon test only."""

        return locate(self.features(), lat, lng)

    def reverse_geocode(self, lat: float, lng: float) -> str | None:
        params = {"latitude": str(lat), "longitude": str(lng), "localityLanguage": "en"}
        try:
            resp = self.http.get_response(self.reverse_geocode_url, params=params)
        except ProviderRequestError as e:
            logger.debug("reverse geocode failed for %s,%s: %s", lat, lng, e)
            return None
        if not resp.ok:
            return None
        return first_of(resp.data, _REVERSE_ISO_ACCESSORS, normalize_iso2)

    def _lookup(self, lat: float, lng: float) -> str | None:
        return self.locate(lat, lng) or self.reverse_geocode(lat, lng)

    def resolve_country(self, lat: float | None, lng: float | None) -> str | None:
        norm = normalize_lat_lng(lat, lng)
        if norm is None:
            return None
        lat, lng = norm

        key = (round(lat, CACHE_PRECISION), round(lng, CACHE_PRECISION))
        if key in self._cache:
            return self._cache[key]

        iso2 = self._lookup(lat, lng)
        if iso2 is None and lat != lng and _in_range(lng, lat):
            iso2 = self._lookup(lng, lat)

        self._cache[key] = iso2
        return iso2
