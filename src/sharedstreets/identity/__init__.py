"""
- Models: immutable records (GeometryRecord, ReferenceRecord, LocationReference, ...)
- Enums: RoadClass / FormOfWay codecs
- Hashing: canonical Geometry, Intersection and Reference ids
"""

from .enums import (
    RoadClass,
    FormOfWay,
    get_road_class_string,
    get_road_class_number,
    get_form_of_way_string,
    get_form_of_way_number,
)

from .models import (
    OutboundLeg,
    LocationReference,
    GeometryRecord,
    IntersectionRecord,
    ReferenceRecord,
)

from .hashing import (
    round,
    generate_hash,
    geometry_message,
    geometry_id,
    intersection_message,
    intersection_id,
    reference_message,
    reference_id,
    location_reference,
    lonlats_to_coords,
)

__all__ = [
    # Enums
    "RoadClass",
    "FormOfWay",
    "get_road_class_string",
    "get_road_class_number",
    "get_form_of_way_string",
    "get_form_of_way_number",
    # Models
    "OutboundLeg",
    "LocationReference",
    "GeometryRecord",
    "IntersectionRecord",
    "ReferenceRecord",
    # Hashing
    "round",
    "generate_hash",
    "geometry_message",
    "geometry_id",
    "intersection_message",
    "intersection_id",
    "reference_message",
    "reference_id",
    "location_reference",
    "lonlats_to_coords",
]
