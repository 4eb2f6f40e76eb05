from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from duel_ledger.core.fields import as_float, as_list
from duel_ledger.core.text import normalize_iso2

Point = tuple[float, float]  # (lng, lat), GeoJSON order
Ring = tuple[Point, ...]
Polygon = tuple[Ring, ...]  # outer ring first, holes after
BBox = tuple[float, float, float, float]  # min_lng, min_lat, max_lng, max_lat

ISO_PROPERTY_KEYS = ("ISO_A2", "ISO_A2_EH", "iso_a2", "ISO3166-1-Alpha-2")

# Tolerance for "exactly on an edge" in degree units.
_EDGE_EPS = 1e-12

_INSIDE = 1
_BOUNDARY = 0
_OUTSIDE = -1


@dataclass(frozen=True)
class CountryFeature:
    iso2: str
    geometry_type: str  # "Polygon" | "MultiPolygon"
    polygons: tuple[Polygon, ...]
    bbox: BBox

    @property
    def bbox_area(self) -> float:
        min_lng, min_lat, max_lng, max_lat = self.bbox
        return (max_lng - min_lng) * (max_lat - min_lat)

    def bbox_contains(self, lng: float, lat: float) -> bool:
        min_lng, min_lat, max_lng, max_lat = self.bbox
        return min_lng <= lng <= max_lng and min_lat <= lat <= max_lat

    def contains(self, lng: float, lat: float) -> bool:
        if not self.bbox_contains(lng, lat):
            return False
        return any(polygon_contains(polygon, lng, lat) for polygon in self.polygons)


def _on_segment(x: float, y: float, a: Point, b: Point) -> bool:
    ax, ay = a
    bx, by = b
    cross = (bx - ax) * (y - ay) - (by - ay) * (x - ax)
    if abs(cross) > _EDGE_EPS:
        return False
    return (
        min(ax, bx) - _EDGE_EPS <= x <= max(ax, bx) + _EDGE_EPS
        and min(ay, by) - _EDGE_EPS <= y <= max(ay, by) + _EDGE_EPS
    )


def ring_location(ring: Ring, x: float, y: float) -> int:
    """Ray casting with an explicit edge check: 1 inside, 0 on an edge, -1 outside."""

    inside = False
    n = len(ring)
    j = n - 1
    for i in range(n):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if _on_segment(x, y, ring[j], ring[i]):
            return _BOUNDARY
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return _INSIDE if inside else _OUTSIDE


def polygon_contains(polygon: Polygon, lng: float, lat: float) -> bool:
    """Boundary-inclusive test on the outer ring; points strictly inside a hole are excluded."""

    if not polygon:
        return False
    if ring_location(polygon[0], lng, lat) == _OUTSIDE:
        return False
    # A point on a hole's edge is still on the polygon's boundary.
    return not any(ring_location(hole, lng, lat) == _INSIDE for hole in polygon[1:])


def _parse_ring(raw: Any) -> Ring | None:
    points: list[Point] = []
    for pos in as_list(raw):
        if not isinstance(pos, list) or len(pos) < 2:
            continue
        lng = as_float(pos[0])
        lat = as_float(pos[1])
        if lng is None or lat is None:
            continue
        points.append((lng, lat))
    if len(points) < 3:
        return None
    return tuple(points)


def _parse_polygon(raw: Any) -> Polygon | None:
    rings = as_list(raw)
    if not rings:
        return None
    outer = _parse_ring(rings[0])
    if outer is None:
        return None
    holes = [r for r in (_parse_ring(h) for h in rings[1:]) if r is not None]
    return (outer, *holes)


def _bbox(polygons: Iterable[Polygon]) -> BBox:
    lngs: list[float] = []
    lats: list[float] = []
    for polygon in polygons:
        for lng, lat in polygon[0]:
            lngs.append(lng)
            lats.append(lat)
    return (min(lngs), min(lats), max(lngs), max(lats))


def feature_iso2(properties: Mapping[str, Any]) -> str | None:
    for key in ISO_PROPERTY_KEYS:
        iso2 = normalize_iso2(properties.get(key))
        if iso2 is not None:
            return iso2
    return None


def parse_feature(raw: Any) -> CountryFeature | None:
    if not isinstance(raw, dict):
        return None
    properties = raw.get("properties")
    geometry = raw.get("geometry")
    if not isinstance(properties, dict) or not isinstance(geometry, dict):
        return None

    iso2 = feature_iso2(properties)
    if iso2 is None:
        return None

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if geometry_type == "Polygon":
        parsed = [_parse_polygon(coordinates)]
    elif geometry_type == "MultiPolygon":
        parsed = [_parse_polygon(p) for p in as_list(coordinates)]
    else:
        return None

    polygons = tuple(p for p in parsed if p is not None)
    if not polygons:
        return None

    return CountryFeature(
        iso2=iso2,
        geometry_type=geometry_type,
        polygons=polygons,
        bbox=_bbox(polygons),
    )


def parse_feature_collection(data: Any) -> list[CountryFeature]:
    """
    Parse a GeoJSON FeatureCollection into country features.

    Features are ordered by ascending bounding-box area (ties broken by iso2), so the
    scan order does not depend on which mirror served the file and enclaves / small
    states win over their larger neighbours on shared borders.
    """
    features = [f for f in (parse_feature(raw) for raw in as_list(_features_of(data))) if f]
    features.sort(key=lambda f: (f.bbox_area, f.iso2))
    return features


def _features_of(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("features")
    return None


def locate(features: Iterable[CountryFeature], lat: float, lng: float) -> str | None:
    for feature in features:
        if feature.contains(lng, lat):
            return feature.iso2
    return None
