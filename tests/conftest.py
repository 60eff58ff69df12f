from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from pathlib import Path

import mercantile
import pytest
import requests

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


from sharedstreets.identity import geometry_id, intersection_id, location_reference, reference_id
from sharedstreets.identity.enums import FormOfWay, RoadClass
from sharedstreets.tiles.codec import (
    LocationReferenceMessage,
    SharedStreetsGeometry,
    SharedStreetsIntersection,
    SharedStreetsMetadata,
    SharedStreetsReference,
    write_delimited,
)
from sharedstreets.tiles.paths import TilePath, TilePathParams, TileType
from sharedstreets.tiles.store import TileStore
from sharedstreets.utils.geo import line_length

BASE_URL = "https://tiles.example.test/"
SOURCE = "osm/planet-181224"
HIERARCHY = 6

# A street crossing the east edge of the z12 tile holding (-74.0, 40.74), so
# its geometry is published in two neighbouring tiles.
_TILE = mercantile.tile(-74.0, 40.74, 12)
_BOUNDS = mercantile.bounds(_TILE)
_EDGE = _BOUNDS.east
_LAT = (_BOUNDS.south + _BOUNDS.north) / 2

TILE_IDS = [f"12-{_TILE.x}-{_TILE.y}", f"12-{_TILE.x + 1}-{_TILE.y}"]


@dataclass
class Street:
    coordinates: list[tuple[float, float]]
    geometry_id: str
    forward_reference_id: str
    back_reference_id: str
    from_intersection_id: str
    to_intersection_id: str
    distance_cm: int
    polygon: dict


def _street() -> Street:
    coords = [
        (_EDGE - 0.002, _LAT),
        (_EDGE + 0.001, _LAT + 0.0005),
        (_EDGE + 0.002, _LAT + 0.001),
    ]
    distance_cm = int(line_length(coords) * 100)
    forward = [
        location_reference(coords[0], outbound_bearing=80, distance_to_next_ref=distance_cm),
        location_reference(coords[-1], inbound_bearing=60),
    ]
    back = [
        location_reference(coords[-1], outbound_bearing=240, distance_to_next_ref=distance_cm),
        location_reference(coords[0], inbound_bearing=260),
    ]
    west, south = _EDGE - 0.003, _LAT - 0.001
    east, north = _EDGE + 0.003, _LAT + 0.002
    return Street(
        coordinates=coords,
        geometry_id=geometry_id(coords),
        forward_reference_id=reference_id(forward, FormOfWay.SingleCarriageway),
        back_reference_id=reference_id(back, FormOfWay.SingleCarriageway),
        from_intersection_id=intersection_id(coords[0]),
        to_intersection_id=intersection_id(coords[-1]),
        distance_cm=distance_cm,
        polygon={
            "type": "Polygon",
            "coordinates": [[[west, south], [east, south], [east, north], [west, north], [west, south]]],
        },
    )


STREET = _street()


def _lr_message(intersection, coord, outbound_bearing=None, distance_cm=None, inbound_bearing=None):
    msg = LocationReferenceMessage(intersectionId=intersection, lon=coord[0], lat=coord[1])
    if inbound_bearing is not None:
        msg.inboundBearing = inbound_bearing
    if outbound_bearing is not None:
        msg.outboundBearing = outbound_bearing
    if distance_cm is not None:
        msg.distanceToNextRef = distance_cm
    return msg


def street_tiles(street: Street = STREET) -> dict[TileType, bytes]:
    """Encoded payloads of every tile type for the test street."""
    first, last = street.coordinates[0], street.coordinates[-1]
    geometry = SharedStreetsGeometry(
        id=street.geometry_id,
        fromIntersectionId=street.from_intersection_id,
        toIntersectionId=street.to_intersection_id,
        forwardReferenceId=street.forward_reference_id,
        backReferenceId=street.back_reference_id,
        roadClass=int(RoadClass.Residential),
        lonlats=[v for coord in street.coordinates for v in coord],
    )
    references = [
        SharedStreetsReference(
            id=street.forward_reference_id,
            geometryId=street.geometry_id,
            formOfWay=int(FormOfWay.SingleCarriageway),
            locationReferences=[
                _lr_message(street.from_intersection_id, first, outbound_bearing=80, distance_cm=street.distance_cm),
                _lr_message(street.to_intersection_id, last, inbound_bearing=60),
            ],
        ),
        SharedStreetsReference(
            id=street.back_reference_id,
            geometryId=street.geometry_id,
            formOfWay=int(FormOfWay.SingleCarriageway),
            locationReferences=[
                _lr_message(street.to_intersection_id, last, outbound_bearing=240, distance_cm=street.distance_cm),
                _lr_message(street.from_intersection_id, first, inbound_bearing=260),
            ],
        ),
    ]
    intersections = [
        SharedStreetsIntersection(
            id=street.from_intersection_id, nodeId=1, lon=first[0], lat=first[1],
            outboundReferenceIds=[street.forward_reference_id],
            inboundReferenceIds=[street.back_reference_id],
        ),
        SharedStreetsIntersection(
            id=street.to_intersection_id, nodeId=2, lon=last[0], lat=last[1],
            outboundReferenceIds=[street.back_reference_id],
            inboundReferenceIds=[street.forward_reference_id],
        ),
    ]
    metadata = SharedStreetsMetadata(geometryId=street.geometry_id)
    metadata.osmMetadata.name = "Test Street"
    section = metadata.osmMetadata.waySections.add()
    section.wayId = 42
    section.roadClass = int(RoadClass.Residential)
    section.nodeIds.extend([1, 2])

    return {
        TileType.GEOMETRY: write_delimited([geometry]),
        TileType.REFERENCE: write_delimited(references),
        TileType.INTERSECTION: write_delimited(intersections),
        TileType.METADATA: write_delimited([metadata]),
    }


def tile_path(tile_id: str, tile_type: TileType) -> TilePath:
    return TilePath(tile_id=tile_id, tile_type=tile_type, params=TilePathParams(source=SOURCE, tile_hierarchy=HIERARCHY))


@pytest.fixture
def tile_dir(tmp_path) -> Path:
    """Local tile source holding the test street in both of its tiles."""
    root = tmp_path / "tiles"
    payloads = street_tiles()
    for tid in TILE_IDS:
        for tile_type, data in payloads.items():
            target = root / tile_path(tid, tile_type).to_path()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
    return root


@pytest.fixture
def local_store(tile_dir):
    store = TileStore(base_url=str(tile_dir), use_cache=False, max_workers=4, retry_delay_s=0)
    yield store
    store.close()


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Stands in for ``requests.Session``; serves tiles by locator.

    ``script`` maps a locator to outcomes returned before the tile itself: an
    HTTP status code or an exception instance to raise.
    """

    def __init__(self, tiles: dict[str, bytes] | None = None, script: dict[str, list] | None = None):
        self.tiles = dict(tiles or {})
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: list[str] = []
        self.gate: threading.Event | None = None
        self.started = threading.Event()
        self._lock = threading.Lock()

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        locator = url[len(BASE_URL):]
        with self._lock:
            self.calls.append(locator)
            outcome = self.script[locator].pop(0) if self.script.get(locator) else None
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return FakeResponse(status_code=outcome)
        if locator not in self.tiles:
            return FakeResponse(status_code=404)
        return FakeResponse(content=self.tiles[locator])

    def close(self) -> None:
        pass


@pytest.fixture
def fake_session() -> FakeSession:
    payloads = street_tiles()
    return FakeSession(tiles={
        tile_path(tid, tile_type).to_path(): data
        for tid in TILE_IDS
        for tile_type, data in payloads.items()
    })
