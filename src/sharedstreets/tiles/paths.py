"""Tile addressing: locators for tile payloads and covering tile ids."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import mercantile
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..settings import settings
from ..utils.geo import to_shape


class TileType(StrEnum):
    GEOMETRY = "geometry"
    REFERENCE = "reference"
    INTERSECTION = "intersection"
    METADATA = "metadata"


class TilePathParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str = Field(default_factory=lambda: settings.tile_source)
    tile_hierarchy: int = Field(default_factory=lambda: settings.tile_hierarchy, ge=0)


class TilePath(BaseModel):
    """A single (tile id, tile type) under one source and hierarchy."""
    model_config = ConfigDict(frozen=True)

    tile_id: str
    tile_type: TileType
    params: TilePathParams = Field(default_factory=TilePathParams)

    def to_path(self) -> str:
        """Relative locator, shared by the remote store and the local cache.

        Example:
            'osm/planet-181224/12-1171-1566.geometry.6.pbf'
        """
        source = self.params.source.strip("/")
        return f"{source}/{self.tile_id}.{self.tile_type.value}.{self.params.tile_hierarchy}.pbf"

    def __str__(self) -> str:
        return self.to_path()


class TilePathGroup(BaseModel):
    """Batch of tile ids x tile types sharing one set of params."""

    tile_ids: list[str] = Field(default_factory=list)
    tile_types: list[TileType] = Field(default_factory=list)
    params: TilePathParams = Field(default_factory=TilePathParams)

    @field_validator("tile_ids", "tile_types", mode="after")
    @classmethod
    def _dedupe(cls, v: list) -> list:
        return list(dict.fromkeys(v))

    def add_tile_type(self, tile_type: TileType) -> None:
        if tile_type not in self.tile_types:
            self.tile_types.append(tile_type)

    def paths(self) -> list[TilePath]:
        return [
            TilePath(tile_id=tile_id, tile_type=tile_type, params=self.params)
            for tile_type in self.tile_types
            for tile_id in self.tile_ids
        ]


def tile_id(tile: mercantile.Tile) -> str:
    return f"{tile.z}-{tile.x}-{tile.y}"


def tile_ids_for_bounds(bounds: tuple[float, float, float, float], zoom: int | None = None) -> list[str]:
    """Tile ids covering a (west, south, east, north) box at the given zoom."""
    zoom = settings.tile_zoom if zoom is None else zoom
    west, south, east, north = bounds
    return sorted({tile_id(t) for t in mercantile.tiles(west, south, east, north, zooms=[zoom])})


def tile_ids_for_polygon(polygon: Any, zoom: int | None = None) -> list[str]:
    """Tile ids covering the bounding box of a polygon (GeoJSON or shapely)."""
    return tile_ids_for_bounds(to_shape(polygon).bounds, zoom)
