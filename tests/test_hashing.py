from __future__ import annotations

import pytest

from sharedstreets.identity import (
    generate_hash,
    geometry_id,
    geometry_message,
    intersection_id,
    intersection_message,
    location_reference,
    lonlats_to_coords,
    reference_id,
    reference_message,
    round,
)
from sharedstreets.identity.enums import FormOfWay
from sharedstreets.utils.errors import (
    InvalidGeometryError,
    LocationReferenceInvariantError,
    UnknownEnumValueError,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (-74.00482177734375, "-74.00482"),
        (40.741641998291016, "40.74164"),
        (110, "110.00000"),
        (0.000005, "0.00001"),
        (-0.0, "0.00000"),
        (1.234565, "1.23457"),
    ],
)
def test_round_five_places(value, expected):
    assert round(value, 5) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (-74.00482177734375, "-74.004822"),
        (40.741641998291016, "40.741642"),
        (110, "110.000000"),
        (0.0000005, "0.000001"),
        (-0.0, "0.000000"),
    ],
)
def test_round_defaults_to_six_places(value, expected):
    assert round(value) == expected


def test_round_respects_decimal_places():
    assert round(12.3456, 2) == "12.35"


def test_round_rejects_non_finite():
    with pytest.raises(InvalidGeometryError):
        round(float("nan"))


def test_generate_hash():
    assert generate_hash("Intersection -74.004822 40.741642") == "5c88d4fa3900a083355c46c54da8f584"


def test_geometry_id_golden():
    line = [[110, 45], [115, 50], [120, 55]]
    assert geometry_message(line) == "Geometry 110.000000 45.000000 115.000000 50.000000 120.000000 55.000000"
    assert geometry_id(line) == "ce9c0ec1472c0a8bab3190ab075e9b21"


def test_geometry_id_accepts_geojson_feature():
    feature = {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [[110, 45], [115, 50], [120, 55]]},
        "properties": {},
    }
    assert geometry_id(feature) == "ce9c0ec1472c0a8bab3190ab075e9b21"


def test_geometry_id_needs_two_coordinates():
    with pytest.raises(InvalidGeometryError):
        geometry_id([[110, 45]])


def test_intersection_id_golden():
    assert intersection_message([110, 45]) == "Intersection 110.000000 45.000000"
    assert intersection_id([110, 45]) == "71f34691f182a467137b3d37265cb3b6"


def test_intersection_id_accepts_geojson_point():
    assert intersection_id({"type": "Point", "coordinates": [110, 45]}) == "71f34691f182a467137b3d37265cb3b6"


def test_reference_message_layout():
    refs = [
        location_reference([-74.0048213, 40.7416415], outbound_bearing=208, distance_to_next_ref=9279),
        location_reference([-74.0051265, 40.7408505], inbound_bearing=188),
    ]
    expected = "Reference 2 -74.004821 40.741642 208 9279 -74.005127 40.740851"

    assert reference_message(refs, "MultipleCarriageway") == expected
    assert reference_id(refs, FormOfWay.MultipleCarriageway) == generate_hash(expected)
    assert reference_id(refs, 2) == reference_id(refs, "MultipleCarriageway")


def test_reference_message_floors_bearing_and_distance():
    refs = [
        location_reference([0, 0], outbound_bearing=45.9, distance_to_next_ref=100.7),
        location_reference([0.001, 0.001]),
    ]
    assert reference_message(refs, None) == "Reference 0 0.000000 0.000000 45 100 0.001000 0.001000"


def test_location_reference_defaults_intersection_id():
    lr = location_reference([110, 45])
    assert lr.intersection_id == "71f34691f182a467137b3d37265cb3b6"
    assert lr.is_terminal


def test_location_reference_bearing_requires_distance():
    with pytest.raises(LocationReferenceInvariantError):
        location_reference([110, 45], outbound_bearing=208)


def test_location_reference_zero_bearing_is_kept():
    lr = location_reference([110, 45], outbound_bearing=0, distance_to_next_ref=500)
    assert lr.outbound_bearing == 0
    assert lr.distance_to_next_ref == 500


def test_lonlats_to_coords():
    assert lonlats_to_coords([110, 45, 120, 55]) == [(110, 45), (120, 55)]
    with pytest.raises(InvalidGeometryError):
        lonlats_to_coords([110, 45, 120])


def test_location_reference_intersection_id_vector():
    lr = location_reference([-74.00482177734375, 40.741641998291016])
    assert lr.intersection_id == "5c88d4fa3900a083355c46c54da8f584"


@pytest.mark.parametrize("form_of_way", [42, -1, 8, True, 2.5])
def test_reference_id_rejects_unknown_form_of_way_codes(form_of_way):
    refs = [
        location_reference([110, 45], outbound_bearing=45, distance_to_next_ref=100),
        location_reference([110.001, 45.001]),
    ]
    with pytest.raises(UnknownEnumValueError):
        reference_id(refs, form_of_way)
