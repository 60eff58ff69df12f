"""
Core records of the SharedStreets data model.

These immutable, frozen dataclasses are produced by tile decoding (or by the
builders in ``hashing``) and are never mutated once indexed, so they can be
read from several threads without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..utils.errors import InvalidGeometryError
from ..utils.geo import Coordinate, line_length
from .enums import FormOfWay, RoadClass


@dataclass(frozen=True)
class OutboundLeg:
    """
    Outbound part of a non-terminal location reference.

    ``distance_to_next_ref`` is in centimeters. ``bearing`` may be missing in
    decode-only data, but a bearing can never exist without a distance.
    """
    distance_to_next_ref: float
    bearing: Optional[float] = None

    @property
    def distance_m(self) -> float:
        return self.distance_to_next_ref / 100.0


@dataclass(frozen=True)
class LocationReference:
    """One waypoint of a reference chain."""
    intersection_id: str
    lon: float
    lat: float
    inbound_bearing: Optional[float] = None
    outbound: Optional[OutboundLeg] = None

    @property
    def coordinate(self) -> Coordinate:
        return (self.lon, self.lat)

    @property
    def outbound_bearing(self) -> Optional[float]:
        return self.outbound.bearing if self.outbound else None

    @property
    def distance_to_next_ref(self) -> Optional[float]:
        return self.outbound.distance_to_next_ref if self.outbound else None

    @property
    def is_terminal(self) -> bool:
        return self.outbound is None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "intersectionId": self.intersection_id,
            "lon": self.lon,
            "lat": self.lat,
        }
        if self.inbound_bearing is not None:
            out["inboundBearing"] = self.inbound_bearing
        if self.outbound is not None:
            if self.outbound.bearing is not None:
                out["outboundBearing"] = self.outbound.bearing
            out["distanceToNextRef"] = self.outbound.distance_to_next_ref
        return out


@dataclass(frozen=True)
class GeometryRecord:
    id: str
    coordinates: tuple[Coordinate, ...]
    from_intersection_id: str = ""
    to_intersection_id: str = ""
    forward_reference_id: str = ""
    back_reference_id: str = ""
    road_class: RoadClass = RoadClass.Other
    length: float = field(init=False)  # meters

    def __post_init__(self) -> None:
        if len(self.coordinates) < 2:
            raise InvalidGeometryError(f"Geometry {self.id} has fewer than 2 coordinates")
        object.__setattr__(self, "length", line_length(self.coordinates))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        lons = [c[0] for c in self.coordinates]
        lats = [c[1] for c in self.coordinates]
        return (min(lons), min(lats), max(lons), max(lats))

    def properties(self) -> dict[str, Any]:
        """Properties of this geometry as published in extract output."""
        return {
            "id": self.id,
            "fromIntersectionId": self.from_intersection_id,
            "toIntersectionId": self.to_intersection_id,
            "forwardReferenceId": self.forward_reference_id,
            "backReferenceId": self.back_reference_id,
            "roadClass": self.road_class.name,
        }


@dataclass(frozen=True)
class IntersectionRecord:
    id: str
    lon: float
    lat: float
    node_id: int = 0
    inbound_reference_ids: tuple[str, ...] = ()
    outbound_reference_ids: tuple[str, ...] = ()

    @property
    def coordinate(self) -> Coordinate:
        return (self.lon, self.lat)

    def properties(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nodeId": self.node_id,
            "inboundReferenceIds": list(self.inbound_reference_ids),
            "outboundReferenceIds": list(self.outbound_reference_ids),
        }


@dataclass(frozen=True)
class ReferenceRecord:
    id: str
    form_of_way: FormOfWay
    location_references: tuple[LocationReference, ...]
    geometry_id: str = ""
    length: float = field(init=False)  # meters

    def __post_init__(self) -> None:
        if len(self.location_references) < 2:
            raise InvalidGeometryError(f"Reference {self.id} has fewer than 2 location references")
        total_cm = sum(lr.outbound.distance_to_next_ref for lr in self.location_references if lr.outbound)
        object.__setattr__(self, "length", total_cm / 100.0)

    def properties(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "geometryId": self.geometry_id,
            "formOfWay": self.form_of_way.name,
            "locationReferences": [lr.to_dict() for lr in self.location_references],
        }
