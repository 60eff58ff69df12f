"""SharedStreets linear referencing: canonical ids, tiles and reference lookup."""

from .identity import geometry_id, intersection_id, reference_id, location_reference
from .tiles import TileIndex, TileStore, TileType

__version__ = '0.1.0'

__all__ = [
    'geometry_id',
    'intersection_id',
    'reference_id',
    'location_reference',
    'TileIndex',
    'TileStore',
    'TileType',
]
