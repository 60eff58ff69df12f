"""Tile addressing, loading and querying.

This module exposes the tile store and the session index built on top of it.
"""

from .paths import (
    TileType,
    TilePathParams,
    TilePath,
    TilePathGroup,
    tile_ids_for_bounds,
    tile_ids_for_polygon,
)
from .store import TileStore, TileLoadResult, TileFailure
from .index import TileIndex
from .batch import LocateRequest, parse_locate_requests

__all__ = [
    'TileType',
    'TilePathParams',
    'TilePath',
    'TilePathGroup',
    'tile_ids_for_bounds',
    'tile_ids_for_polygon',
    'TileStore',
    'TileLoadResult',
    'TileFailure',
    'TileIndex',
    'LocateRequest',
    'parse_locate_requests',
]
