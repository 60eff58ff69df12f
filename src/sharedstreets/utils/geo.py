"""Coordinate extraction and geodesic measurement helpers."""

from __future__ import annotations

from typing import Any, Sequence

from pyproj import Geod
from shapely.geometry import LineString, Point, shape
from shapely.geometry.base import BaseGeometry

from .errors import InvalidGeometryError

WGS84 = Geod(ellps="WGS84")

Coordinate = tuple[float, float]


def to_shape(obj: Any) -> BaseGeometry:
    """Return a shapely geometry for a GeoJSON geometry/Feature dict or a shapely object."""
    if isinstance(obj, BaseGeometry):
        return obj
    if isinstance(obj, dict):
        if obj.get("type") == "Feature":
            obj = obj.get("geometry")
        if obj is None:
            raise InvalidGeometryError("Feature has no geometry")
        if obj.get("type") == "FeatureCollection":
            raise InvalidGeometryError("Expected a single geometry, got a FeatureCollection")
        try:
            return shape(obj)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise InvalidGeometryError(f"Invalid GeoJSON geometry: {e}") from e
    raise InvalidGeometryError(f"Unsupported geometry input: {type(obj).__name__}")


def get_coords(line: Any) -> list[Coordinate]:
    """Coordinates of a line given as positions, GeoJSON or shapely."""
    if isinstance(line, (list, tuple)):
        try:
            return [(float(c[0]), float(c[1])) for c in line]
        except (TypeError, IndexError, ValueError) as e:
            raise InvalidGeometryError(f"Invalid coordinate sequence: {e}") from e
    geom = to_shape(line)
    if not isinstance(geom, LineString):
        raise InvalidGeometryError(f"Expected a LineString, got {geom.geom_type}")
    return [(x, y) for x, y, *_ in geom.coords]


def get_coord(pt: Any) -> Coordinate:
    """Coordinate of a point given as ``[lon, lat]``, GeoJSON or shapely."""
    if isinstance(pt, (list, tuple)):
        if len(pt) < 2:
            raise InvalidGeometryError(f"Invalid position: {pt!r}")
        return float(pt[0]), float(pt[1])
    geom = to_shape(pt)
    if not isinstance(geom, Point):
        raise InvalidGeometryError(f"Expected a Point, got {geom.geom_type}")
    return geom.x, geom.y


def edge_lengths(coords: Sequence[Coordinate]) -> list[float]:
    """Geodesic length in meters of each edge of a polyline."""
    if len(coords) < 2:
        return []
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return list(WGS84.line_lengths(lons, lats))


def line_length(coords: Sequence[Coordinate]) -> float:
    return float(sum(edge_lengths(coords)))


def bounds_overlap(a: tuple[float, float, float, float], b: tuple[float, float, float, float]) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])
