"""
Canonical SharedStreets identifiers.

Every id is the MD5 digest of a text message built from rounded coordinates,
so the formatting here has to be bit-exact: a different rounding mode silently
changes every identifier in the system.

Reference messages:
    Geometry      "Geometry {x} {y} {x} {y} ..."
    Intersection  "Intersection {x} {y}"
    Reference     "Reference {formOfWay} {lon} {lat} [{bearing} {distance}] ..."
"""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP
from hashlib import md5
from typing import Any, Iterable, Optional, Sequence

from ..utils.errors import InvalidGeometryError, LocationReferenceInvariantError
from ..utils.geo import Coordinate, get_coord, get_coords
from .enums import FormOfWay, get_form_of_way_number, get_form_of_way_string
from .models import LocationReference, OutboundLeg


def round(num: float, decimal_places: int = 6) -> str:
    """
    Format a number with exactly ``decimal_places`` fractional digits.

    The float's shortest round-trip decimal form is rounded half away from
    zero, not the binary value, so ``-74.00482177734375`` gives ``-74.004822``
    and ``round(0.000005, 5)`` gives ``0.00001``.
    """
    value = float(num)
    if not math.isfinite(value):
        raise InvalidGeometryError(f"Cannot format non-finite coordinate {num!r}")
    if value == 0:
        value = 0.0  # "-0" is not a valid message token
    quantum = Decimal(1).scaleb(-decimal_places)
    return format(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP), "f")


def generate_hash(message: str) -> str:
    """
    Base16 MD5 hash of a message.

    Example:
        generate_hash('Intersection -74.004822 40.741642')
        → '5c88d4fa3900a083355c46c54da8f584'
    """
    return md5(message.encode("utf-8")).hexdigest()


def geometry_message(line: Any) -> str:
    coords = get_coords(line)
    if len(coords) < 2:
        raise InvalidGeometryError(f"Geometry needs at least 2 coordinates, got {len(coords)}")
    return "Geometry " + " ".join(f"{round(x)} {round(y)}" for x, y in coords)


def geometry_id(line: Any) -> str:
    """
    SharedStreets Geometry Id.

    Args:
        line: LineString as positions ``[[lon, lat], ...]``, GeoJSON
            LineString/Feature, or shapely LineString

    Example:
        geometry_id([[110, 45], [115, 50], [120, 55]])
        → 'ce9c0ec1472c0a8bab3190ab075e9b21'
    """
    return generate_hash(geometry_message(line))


def intersection_message(pt: Any) -> str:
    x, y = get_coord(pt)
    return f"Intersection {round(x)} {round(y)}"


def intersection_id(pt: Any) -> str:
    """
    SharedStreets Intersection Id.

    Example:
        intersection_id([110, 45]) → '71f34691f182a467137b3d37265cb3b6'
    """
    return generate_hash(intersection_message(pt))


def reference_message(location_references: Sequence[LocationReference], form_of_way: FormOfWay | int | str | None) -> str:
    if isinstance(form_of_way, str) or form_of_way is None:
        form_of_way = get_form_of_way_number(form_of_way)
    else:
        get_form_of_way_string(form_of_way)  # raises on codes outside FormOfWay
    message = f"Reference {int(form_of_way)}"
    for lr in location_references:
        message += f" {round(lr.lon)} {round(lr.lat)}"
        # distance without a bearing only exists in decoded data and is not hashed
        if lr.outbound is not None and lr.outbound.bearing is not None:
            message += f" {math.floor(lr.outbound.bearing)}"
            message += f" {math.floor(lr.outbound.distance_to_next_ref)}"  # centimeters
    return message


def reference_id(location_references: Sequence[LocationReference], form_of_way: FormOfWay | int | str | None) -> str:
    """
    SharedStreets Reference Id.

    Example:
        refs = [
            location_reference([-74.0048213, 40.7416415], outbound_bearing=208, distance_to_next_ref=9279),
            location_reference([-74.0051265, 40.7408505], inbound_bearing=188),
        ]
        reference_id(refs, 'MultipleCarriageway')
    """
    return generate_hash(reference_message(location_references, form_of_way))


def location_reference(
    pt: Any,
    intersection_id: Optional[str] = None,
    inbound_bearing: Optional[float] = None,
    outbound_bearing: Optional[float] = None,
    distance_to_next_ref: Optional[float] = None,
) -> LocationReference:
    """
    Build a Location Reference.

    Args:
        pt: Point as ``[lon, lat]``, GeoJSON Point/Feature or shapely Point
        intersection_id: Falls back to the point's Intersection Id
        inbound_bearing: Bearing of the street arriving at this point
        outbound_bearing: Bearing of the street leaving this point
        distance_to_next_ref: Distance to the next location reference, in centimeters

    Raises:
        LocationReferenceInvariantError: outbound bearing given without a distance
    """
    lon, lat = get_coord(pt)
    if outbound_bearing is not None and distance_to_next_ref is None:
        raise LocationReferenceInvariantError("distance_to_next_ref is required if outbound_bearing is present")

    outbound = None
    if distance_to_next_ref is not None:
        outbound = OutboundLeg(distance_to_next_ref=distance_to_next_ref, bearing=outbound_bearing)

    return LocationReference(
        intersection_id=intersection_id or _intersection_id((lon, lat)),
        lon=lon,
        lat=lat,
        inbound_bearing=inbound_bearing,
        outbound=outbound,
    )


_intersection_id = intersection_id


def lonlats_to_coords(lonlats: Iterable[float]) -> list[Coordinate]:
    """
    Pair a flat ``[lon, lat, lon, lat, ...]`` sequence into coordinates.

    Example:
        lonlats_to_coords([110, 45, 120, 55]) → [(110, 45), (120, 55)]
    """
    flat = list(lonlats)
    if len(flat) % 2:
        raise InvalidGeometryError(f"Odd number of lon/lat values ({len(flat)})")
    return list(zip(flat[0::2], flat[1::2]))
