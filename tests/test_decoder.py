from __future__ import annotations

import pytest
from shapely.geometry import LineString, Point

from sharedstreets.identity import location_reference
from sharedstreets.identity.enums import FormOfWay
from sharedstreets.identity.models import GeometryRecord, ReferenceRecord
from sharedstreets.tiles.decoder import interpolate_along, locate, point_feature
from sharedstreets.utils.errors import OffsetOutOfRangeError
from sharedstreets.utils.geo import line_length


def test_interpolate_along_walks_edges():
    path = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001)]
    assert interpolate_along(path, 0) == path[0]
    assert interpolate_along(path, 1) == path[-1]

    x, y = interpolate_along(path, 0.25)
    assert y == 0.0
    assert 0 < x < 0.001


def test_locate_without_geometry_uses_chord(caplog):
    a, b = (0.0, 0.0), (0.001, 0.0)
    cm = line_length([a, b]) * 100
    reference = ReferenceRecord(
        id="r",
        form_of_way=FormOfWay.Undefined,
        location_references=(
            location_reference(a, outbound_bearing=90, distance_to_next_ref=cm),
            location_reference(b),
        ),
    )

    with caplog.at_level("WARNING", logger="ReferenceDecoder"):
        x, y = locate(reference, reference.length / 2)

    assert x == pytest.approx(0.0005)
    assert y == 0.0
    assert "chord" in caplog.text


def test_locate_skips_zero_length_segments():
    a, b = (0.0, 0.0), (0.001, 0.0)
    reference = ReferenceRecord(
        id="r",
        form_of_way=FormOfWay.Undefined,
        location_references=(
            location_reference(a, outbound_bearing=0, distance_to_next_ref=0),
            location_reference(a, outbound_bearing=90, distance_to_next_ref=10000),
            location_reference(b),
        ),
    )
    assert reference.length == 100
    x, _ = locate(reference, 50)
    assert 0 < x < 0.001


def test_locate_rejects_out_of_range():
    reference = ReferenceRecord(
        id="r",
        form_of_way=FormOfWay.Undefined,
        location_references=(
            location_reference((0, 0), distance_to_next_ref=100),
            location_reference((0.001, 0)),
        ),
    )
    with pytest.raises(OffsetOutOfRangeError):
        locate(reference, -0.5)
    with pytest.raises(OffsetOutOfRangeError):
        locate(reference, 1.5)


def test_point_feature():
    assert point_feature("r", 12.5, (1.0, 2.0)) == {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [1.0, 2.0]},
        "properties": {"referenceId": "r", "offset": 12.5},
    }


LOOP = [(0.0, 0.0), (0.001, 0.0), (0.001, 0.001), (0.0, 0.001), (0.0, 0.0)]


def loop_geometry() -> GeometryRecord:
    return GeometryRecord(id="loop", coordinates=tuple(LOOP), forward_reference_id="roundabout")


def on_loop(coordinate) -> bool:
    return LineString(LOOP).distance(Point(coordinate)) < 1e-9


def test_locate_follows_closed_geometry():
    cm = line_length(LOOP) * 100
    reference = ReferenceRecord(
        id="roundabout",
        form_of_way=FormOfWay.Roundabout,
        location_references=(
            location_reference(LOOP[0], outbound_bearing=90, distance_to_next_ref=cm),
            location_reference(LOOP[-1], inbound_bearing=180),
        ),
        geometry_id="loop",
    )

    halfway = locate(reference, reference.length / 2, loop_geometry())

    assert on_loop(halfway)
    assert Point(halfway).distance(Point(0.001, 0.001)) < 1e-5


def test_locate_closing_segment_of_loop():
    first_half = line_length(LOOP[:3]) * 100
    second_half = line_length(LOOP[2:]) * 100
    reference = ReferenceRecord(
        id="roundabout",
        form_of_way=FormOfWay.Roundabout,
        location_references=(
            location_reference(LOOP[0], outbound_bearing=90, distance_to_next_ref=first_half),
            location_reference(LOOP[2], outbound_bearing=270, distance_to_next_ref=second_half),
            location_reference(LOOP[-1], inbound_bearing=180),
        ),
        geometry_id="loop",
    )

    x, y = locate(reference, (first_half + second_half / 2) / 100, loop_geometry())

    assert on_loop((x, y))
    # past the far corner, on the way back along the top and left edges
    assert Point(x, y).distance(Point(0.0, 0.001)) < 1e-5
