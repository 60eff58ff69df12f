"""
Tile payload codec.

A SharedStreets tile is a concatenation of varint-length-prefixed protobuf
messages, one message type per tile type (package ``SharedStreets``). The
message classes are built once at import time from a descriptor of the
published schema, so no generated ``_pb2`` module is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Union

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError, Message

from ..identity.enums import FormOfWay, RoadClass
from ..identity.hashing import lonlats_to_coords
from ..identity.models import (
    GeometryRecord,
    IntersectionRecord,
    LocationReference,
    OutboundLeg,
    ReferenceRecord,
)
from .paths import TileType

logger = logging.getLogger('TileCodec')

_F = descriptor_pb2.FieldDescriptorProto

PACKAGE = "SharedStreets"


def _enum(fdp: descriptor_pb2.FileDescriptorProto, name: str, members: Iterable[tuple[str, int]]) -> None:
    enum = fdp.enum_type.add(name=name)
    for member, number in members:
        # proto3 enum values share the package scope, so prefix them
        enum.value.add(name=f"{name}_{member}", number=number)


def _message(
    fdp: descriptor_pb2.FileDescriptorProto,
    name: str,
    fields: Iterable[tuple],
    oneofs: Iterable[str] = (),
) -> None:
    """Add a message; each field is (name, number, type, label[, type_name[, oneof_index]])."""
    msg = fdp.message_type.add(name=name)
    for oneof in oneofs:
        msg.oneof_decl.add(name=oneof)
    for entry in fields:
        field_name, number, ftype, label, *rest = entry
        field = msg.field.add(name=field_name, number=number, type=ftype, label=label)
        if rest and rest[0]:
            field.type_name = f".{PACKAGE}.{rest[0]}"
        if len(rest) > 1:
            field.oneof_index = rest[1]


def _build_schema() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name="sharedstreets.proto", package=PACKAGE, syntax="proto3")

    _enum(fdp, "RoadClass", ((m.name, m.value) for m in RoadClass))
    _enum(fdp, "FormOfWay", ((m.name, m.value) for m in FormOfWay))

    OPT, REP = _F.LABEL_OPTIONAL, _F.LABEL_REPEATED

    _message(fdp, "SharedStreetsGeometry", [
        ("id", 1, _F.TYPE_STRING, OPT),
        ("fromIntersectionId", 2, _F.TYPE_STRING, OPT),
        ("toIntersectionId", 3, _F.TYPE_STRING, OPT),
        ("forwardReferenceId", 4, _F.TYPE_STRING, OPT),
        ("backReferenceId", 5, _F.TYPE_STRING, OPT),
        ("roadClass", 6, _F.TYPE_ENUM, OPT, "RoadClass"),
        ("lonlats", 7, _F.TYPE_DOUBLE, REP),
    ])
    _message(fdp, "LocationReference", [
        ("intersectionId", 1, _F.TYPE_STRING, OPT),
        ("lon", 2, _F.TYPE_DOUBLE, OPT),
        ("lat", 3, _F.TYPE_DOUBLE, OPT),
        ("inboundBearing", 4, _F.TYPE_UINT32, OPT, None, 0),
        ("outboundBearing", 5, _F.TYPE_UINT32, OPT, None, 1),
        ("distanceToNextRef", 6, _F.TYPE_UINT32, OPT, None, 2),
    ], oneofs=("inboundBearing_oneof", "outboundBearing_oneof", "distanceToNextRef_oneof"))
    _message(fdp, "SharedStreetsReference", [
        ("id", 1, _F.TYPE_STRING, OPT),
        ("geometryId", 2, _F.TYPE_STRING, OPT),
        ("formOfWay", 3, _F.TYPE_ENUM, OPT, "FormOfWay"),
        ("locationReferences", 4, _F.TYPE_MESSAGE, REP, "LocationReference"),
    ])
    _message(fdp, "SharedStreetsIntersection", [
        ("id", 1, _F.TYPE_STRING, OPT),
        ("nodeId", 2, _F.TYPE_UINT64, OPT),
        ("lon", 3, _F.TYPE_DOUBLE, OPT),
        ("lat", 4, _F.TYPE_DOUBLE, OPT),
        ("inboundReferenceIds", 5, _F.TYPE_STRING, REP),
        ("outboundReferenceIds", 6, _F.TYPE_STRING, REP),
    ])
    _message(fdp, "WaySection", [
        ("wayId", 1, _F.TYPE_UINT64, OPT),
        ("roadClass", 2, _F.TYPE_ENUM, OPT, "RoadClass"),
        ("oneWay", 3, _F.TYPE_BOOL, OPT),
        ("roundabout", 4, _F.TYPE_BOOL, OPT),
        ("link", 5, _F.TYPE_BOOL, OPT),
        ("nodeIds", 6, _F.TYPE_UINT64, REP),
        ("name", 7, _F.TYPE_STRING, OPT),
    ])
    _message(fdp, "OSMMetadata", [
        ("waySections", 1, _F.TYPE_MESSAGE, REP, "WaySection"),
        ("name", 2, _F.TYPE_STRING, OPT),
    ])
    _message(fdp, "SharedStreetsMetadata", [
        ("geometryId", 1, _F.TYPE_STRING, OPT),
        ("osmMetadata", 2, _F.TYPE_MESSAGE, OPT, "OSMMetadata"),
    ])
    return fdp


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_schema().SerializeToString())


def _message_class(name: str) -> type[Message]:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


SharedStreetsGeometry = _message_class("SharedStreetsGeometry")
LocationReferenceMessage = _message_class("LocationReference")
SharedStreetsReference = _message_class("SharedStreetsReference")
SharedStreetsIntersection = _message_class("SharedStreetsIntersection")
SharedStreetsMetadata = _message_class("SharedStreetsMetadata")

MESSAGE_TYPES: dict[TileType, type[Message]] = {
    TileType.GEOMETRY: SharedStreetsGeometry,
    TileType.REFERENCE: SharedStreetsReference,
    TileType.INTERSECTION: SharedStreetsIntersection,
    TileType.METADATA: SharedStreetsMetadata,
}

TileRecord = Union[GeometryRecord, ReferenceRecord, IntersectionRecord, dict]


# --- Framing ---------------------------------------------------------------

def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise DecodeError("Truncated varint length prefix")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if not b & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise DecodeError("Varint length prefix too long")


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        bits = value & 0x7F
        value >>= 7
        if value:
            out.append(bits | 0x80)
        else:
            out.append(bits)
            return bytes(out)


def iter_delimited(data: bytes, message_cls: type[Message]) -> Iterator[Message]:
    """Yield each length-delimited message of ``message_cls`` in ``data``."""
    pos = 0
    while pos < len(data):
        size, pos = _read_varint(data, pos)
        end = pos + size
        if end > len(data):
            raise DecodeError(f"Message of {size} bytes truncated at offset {pos}")
        msg = message_cls()
        msg.ParseFromString(data[pos:end])
        yield msg
        pos = end


def write_delimited(messages: Iterable[Message]) -> bytes:
    """Serialize messages the way tiles are published."""
    chunks = []
    for msg in messages:
        body = msg.SerializeToString()
        chunks.append(_varint(len(body)))
        chunks.append(body)
    return b"".join(chunks)


# --- Messages -> records ---------------------------------------------------

def _geometry(msg: Any) -> GeometryRecord:
    return GeometryRecord(
        id=msg.id,
        coordinates=tuple(lonlats_to_coords(msg.lonlats)),
        from_intersection_id=msg.fromIntersectionId,
        to_intersection_id=msg.toIntersectionId,
        forward_reference_id=msg.forwardReferenceId,
        back_reference_id=msg.backReferenceId,
        road_class=RoadClass(msg.roadClass),
    )


def _location_reference(msg: Any) -> LocationReference:
    outbound = None
    if msg.HasField("distanceToNextRef"):
        bearing = msg.outboundBearing if msg.HasField("outboundBearing") else None
        outbound = OutboundLeg(distance_to_next_ref=msg.distanceToNextRef, bearing=bearing)
    return LocationReference(
        intersection_id=msg.intersectionId,
        lon=msg.lon,
        lat=msg.lat,
        inbound_bearing=msg.inboundBearing if msg.HasField("inboundBearing") else None,
        outbound=outbound,
    )


def _reference(msg: Any) -> ReferenceRecord:
    return ReferenceRecord(
        id=msg.id,
        form_of_way=FormOfWay(msg.formOfWay),
        location_references=tuple(_location_reference(lr) for lr in msg.locationReferences),
        geometry_id=msg.geometryId,
    )


def _intersection(msg: Any) -> IntersectionRecord:
    return IntersectionRecord(
        id=msg.id,
        lon=msg.lon,
        lat=msg.lat,
        node_id=msg.nodeId,
        inbound_reference_ids=tuple(msg.inboundReferenceIds),
        outbound_reference_ids=tuple(msg.outboundReferenceIds),
    )


def _metadata(msg: Any) -> dict[str, Any]:
    osm = msg.osmMetadata
    return {
        "geometryId": msg.geometryId,
        "osmMetadata": {
            "name": osm.name,
            "waySections": [
                {
                    "wayId": ws.wayId,
                    "roadClass": RoadClass(ws.roadClass).name,
                    "oneWay": ws.oneWay,
                    "roundabout": ws.roundabout,
                    "link": ws.link,
                    "nodeIds": list(ws.nodeIds),
                    "name": ws.name,
                }
                for ws in osm.waySections
            ],
        },
    }


_CONVERTERS = {
    TileType.GEOMETRY: _geometry,
    TileType.REFERENCE: _reference,
    TileType.INTERSECTION: _intersection,
    TileType.METADATA: _metadata,
}


def decode_tile(data: bytes, tile_type: TileType) -> list[TileRecord]:
    """
    Decode raw tile bytes into records.

    Raises:
        google.protobuf.message.DecodeError: malformed framing or message
        ValueError: message content violating the data model (e.g. a
            geometry with a single vertex or an unknown enum code)
    """
    message_cls = MESSAGE_TYPES[tile_type]
    convert = _CONVERTERS[tile_type]
    records = [convert(msg) for msg in iter_delimited(data, message_cls)]
    logger.debug(f"Decoded {len(records)} {tile_type.value} records ({len(data)} bytes)")
    return records
