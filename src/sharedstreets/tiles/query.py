"""Polygon intersection over indexed street geometries."""

from __future__ import annotations

from typing import Any, Iterable

from shapely.geometry import LineString
from shapely.prepared import prep

from ..identity.models import GeometryRecord
from ..utils.geo import bounds_overlap, to_shape


def line_feature(geometry: GeometryRecord) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [[x, y] for x, y in geometry.coordinates]},
        "properties": {"id": geometry.id},
    }


def feature_collection(features: list[dict[str, Any]]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": features}


def intersecting_geometries(polygon: Any, geometries: Iterable[GeometryRecord]) -> list[GeometryRecord]:
    """Geometries touching a polygon, one per id, sorted by id.

    Candidates are prefiltered by bounding box before the exact test (a vertex
    inside the polygon or an edge crossing its boundary).
    """
    shape = to_shape(polygon)
    poly_bounds = shape.bounds
    prepared = prep(shape)

    found: dict[str, GeometryRecord] = {}
    for geometry in geometries:
        if geometry.id in found:
            continue
        if not bounds_overlap(geometry.bounds, poly_bounds):
            continue
        if prepared.intersects(LineString(geometry.coordinates)):
            found[geometry.id] = geometry
    return [found[k] for k in sorted(found)]


def intersects(polygon: Any, geometries: Iterable[GeometryRecord]) -> dict[str, Any]:
    """FeatureCollection of LineStrings (``properties.id``) intersecting a polygon."""
    return feature_collection([line_feature(g) for g in intersecting_geometries(polygon, geometries)])
