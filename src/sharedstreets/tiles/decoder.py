"""Resolve a (reference, offset) pair to a coordinate along the street geometry."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from shapely.geometry import LineString, Point
from shapely.ops import substring

from ..identity.models import GeometryRecord, LocationReference, ReferenceRecord
from ..utils.errors import OffsetOutOfRangeError
from ..utils.geo import Coordinate, edge_lengths

logger = logging.getLogger('ReferenceDecoder')


def interpolate_along(path: Sequence[Coordinate], fraction: float) -> Coordinate:
    """Point at ``fraction`` (0..1) of the geodesic length of a polyline.

    Vertices are walked edge by edge; inside the bounding edge the position is
    interpolated linearly in lon/lat.
    """
    if len(path) == 1:
        return path[0]
    lengths = edge_lengths(path)
    total = sum(lengths)
    if total <= 0:
        return path[0]

    target = min(max(fraction, 0.0), 1.0) * total
    if target >= total:
        return path[-1]
    walked = 0.0
    for (a, b), length in zip(zip(path, path[1:]), lengths):
        if length > 0 and walked + length >= target:
            t = (target - walked) / length
            if t >= 1:
                return b
            return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)
        walked += length
    return path[-1]


def segment_path(
    reference: ReferenceRecord,
    geometry: GeometryRecord | None,
    start: LocationReference,
    end: LocationReference,
) -> list[Coordinate]:
    """Vertices of the street geometry between two consecutive location references.

    The geometry is stored in the direction of its forward reference, so it is
    reversed for the back reference. A closed geometry (roundabout) starts and
    ends on the same point, so its closing location reference is measured at
    the end of the line. Without a geometry the chord is used.
    """
    chord = [start.coordinate, end.coordinate]
    if geometry is None:
        logger.warning(
            f"Geometry {reference.geometry_id or '?'} for reference {reference.id} "
            f"is not indexed; interpolating along the chord"
        )
        return chord

    coords = list(geometry.coordinates)
    if reference.id and reference.id == geometry.back_reference_id:
        coords.reverse()

    lrs = reference.location_references
    if start is lrs[0] and end is lrs[-1]:
        return [start.coordinate, *coords[1:-1], end.coordinate]

    line = LineString(coords)
    start_dist = line.project(Point(start.coordinate))
    end_dist = line.project(Point(end.coordinate))
    if end_dist <= start_dist and line.is_closed:
        end_dist = line.length
    if end_dist <= start_dist:
        return chord

    sub = substring(line, start_dist, end_dist)
    if not isinstance(sub, LineString) or len(sub.coords) < 2:
        return chord

    inner = [(x, y) for x, y, *_ in sub.coords][1:-1]
    # the location references are the authoritative segment ends
    return [start.coordinate, *inner, end.coordinate]


def locate(
    reference: ReferenceRecord,
    offset: float,
    geometry: GeometryRecord | None = None,
) -> Coordinate:
    """
    Coordinate ``offset`` meters along a reference.

    Args:
        reference: The reference to walk
        offset: Distance in meters from the first location reference
        geometry: Street geometry the reference follows (``reference.geometry_id``)

    Raises:
        OffsetOutOfRangeError: offset < 0 or offset > reference length
    """
    length = reference.length
    if offset < 0 or offset > length:
        raise OffsetOutOfRangeError(reference.id, offset, length)

    lrs = reference.location_references
    if offset == 0:
        return lrs[0].coordinate
    if offset == length:
        return lrs[-1].coordinate

    running = 0.0
    for start, end in zip(lrs, lrs[1:]):
        segment = start.outbound.distance_m if start.outbound else 0.0
        if segment <= 0:
            continue
        if running <= offset < running + segment:
            fraction = (offset - running) / segment
            return interpolate_along(segment_path(reference, geometry, start, end), fraction)
        running += segment

    return lrs[-1].coordinate


def point_feature(reference_id: str, offset: float, coordinate: Coordinate, **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [coordinate[0], coordinate[1]]},
        "properties": {"referenceId": reference_id, "offset": offset, **properties},
    }
