"""
Closed enumerations of the SharedStreets schema and their codecs.

Both enumerations are stored as small integer codes in tiles and hashed
messages, and exposed as names (``'Motorway'``, ``'SlipRoad'``...) to users.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Type

from ..utils.errors import UnknownEnumValueError


class RoadClass(IntEnum):
    Motorway = 0
    Trunk = 1
    Primary = 2
    Secondary = 3
    Tertiary = 4
    Residential = 5
    Unclassified = 6
    Service = 7
    Other = 8


class FormOfWay(IntEnum):
    Undefined = 0
    Motorway = 1
    MultipleCarriageway = 2
    SingleCarriageway = 3
    Roundabout = 4
    TrafficSquare = 5
    SlipRoad = 6
    Other = 7


def _to_name(enum_cls: Type[IntEnum], value: Any) -> str:
    # bool is an int subclass; True must not decode as code 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise UnknownEnumValueError(f"{enum_cls.__name__} Number", value)
    try:
        return enum_cls(value).name
    except ValueError as e:
        raise UnknownEnumValueError(f"{enum_cls.__name__} Number", value) from e


def _to_code(enum_cls: Type[IntEnum], value: Any) -> int:
    if not isinstance(value, str):
        raise UnknownEnumValueError(f"{enum_cls.__name__} String", value)
    try:
        return int(enum_cls[value])
    except KeyError as e:
        raise UnknownEnumValueError(f"{enum_cls.__name__} String", value) from e


def get_road_class_string(value: int) -> str:
    """
    Get RoadClass name from its code.

    Examples:
        get_road_class_string(0) → 'Motorway'
        get_road_class_string(5) → 'Residential'
    """
    return _to_name(RoadClass, value)


def get_road_class_number(value: str) -> int:
    """
    Get RoadClass code from its name.

    Examples:
        get_road_class_number('Motorway') → 0
        get_road_class_number('Residential') → 5
    """
    return _to_code(RoadClass, value)


def get_form_of_way_string(value: int | None) -> str:
    """
    Get FormOfWay name from its code. ``None`` maps to ``'Undefined'``.

    Examples:
        get_form_of_way_string(0) → 'Undefined'
        get_form_of_way_string(5) → 'TrafficSquare'
    """
    if value is None:
        return FormOfWay.Undefined.name
    return _to_name(FormOfWay, value)


def get_form_of_way_number(value: str | None) -> int:
    """
    Get FormOfWay code from its name. ``None`` maps to ``0``.

    Examples:
        get_form_of_way_number('Undefined') → 0
        get_form_of_way_number('TrafficSquare') → 5
    """
    if value is None:
        return int(FormOfWay.Undefined)
    return _to_code(FormOfWay, value)
