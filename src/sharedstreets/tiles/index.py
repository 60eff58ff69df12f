"""
Session-scoped spatial index over SharedStreets tiles.

A TileIndex owns everything loaded during one query session: the set of
loaded tile locators and the records decoded from them. Records are inserted
once and never retracted, so lookups need no locking.

Usage:
    with TileIndex() as index:
        streets = index.intersects(polygon)
        point = index.geom(reference_id, 42.0)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from ..identity.models import GeometryRecord, IntersectionRecord, ReferenceRecord
from ..settings import settings
from ..utils.errors import OffsetOutOfRangeError, ReferenceNotFoundError, TileFetchError
from ..utils.geo import to_shape
from . import decoder, query
from .batch import parse_locate_requests
from .codec import TileRecord
from .paths import TilePath, TilePathGroup, TilePathParams, TileType, tile_ids_for_polygon
from .store import TileFailure, TileLoadResult, TileStore

logger = logging.getLogger('TileIndex')


class TileIndex:
    """Aggregate of geometry, reference, intersection and metadata records.

    Args:
        store: Tile store to load through (a private one is created if omitted)
        params: Default source / hierarchy for queries
        **store_kwargs: Passed to ``TileStore`` when no store is given
    """

    def __init__(
        self,
        store: TileStore | None = None,
        params: TilePathParams | None = None,
        **store_kwargs: Any,
    ):
        self._owns_store = store is None
        self.store = store if store is not None else TileStore(**store_kwargs)
        self.params = params or TilePathParams()

        self.tiles: set[str] = set()
        self.geometry_index: dict[str, GeometryRecord] = {}
        self.reference_index: dict[str, ReferenceRecord] = {}
        self.intersection_index: dict[str, IntersectionRecord] = {}
        self.object_index: dict[str, dict[str, Any]] = {}
        self.metadata_index: dict[str, dict[str, Any]] = {}
        self.failed_tiles: dict[str, TileFailure] = {}

        self.additional_tile_types: list[TileType] = []
        self._lock = threading.Lock()

    def close(self) -> None:
        if self._owns_store:
            self.store.close()

    def __enter__(self) -> "TileIndex":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def add_tile_type(self, tile_type: TileType) -> None:
        """Load ``tile_type`` alongside every later query (e.g. METADATA)."""
        if tile_type not in self.additional_tile_types:
            self.additional_tile_types.append(tile_type)

    def is_indexed(self, path: TilePath) -> bool:
        return path.to_path() in self.tiles

    # --- Loading -------------------------------------------------------------

    def index_tiles_by_path_group(
        self,
        group: TilePathGroup,
        force: bool = False,
        show_progress: bool = False,
    ) -> TileLoadResult:
        """Load every tile of a group that is not indexed yet and index its records.

        Args:
            group: Tile ids x tile types to load
            force: Re-fetch tiles even if already indexed or cached
            show_progress: Show a progress bar while loading

        Returns:
            TileLoadResult with the loaded tiles and the per-tile failures

        Raises:
            TileFetchError: a tile could not be fetched (raised after the whole
                group finished, successfully loaded tiles stay indexed)
        """
        pending = [p for p in group.paths() if force or not self.is_indexed(p)]
        skipped = len(group.paths()) - len(pending)
        if skipped:
            logger.debug(f"Skipping {skipped} already indexed tiles")

        result = self.store.load(pending, force=force, show_progress=show_progress)

        for path in result.loaded:
            self._insert(path, result.records[path])
        for failure in result.failures:
            self.failed_tiles[failure.path.to_path()] = failure

        if result.decode_failures:
            logger.warning(
                f"Partial coverage: {len(result.decode_failures)} tile(s) could not be decoded: "
                f"{', '.join(str(f.path) for f in result.decode_failures)}"
            )
        result.raise_for_fetch_errors()
        return result

    def index_tiles(
        self,
        tile_ids: Iterable[str],
        tile_types: Iterable[TileType] = (TileType.GEOMETRY, TileType.REFERENCE),
        params: TilePathParams | None = None,
        **kwargs: Any,
    ) -> TileLoadResult:
        group = TilePathGroup(tile_ids=list(tile_ids), tile_types=list(tile_types), params=params or self.params)
        return self.index_tiles_by_path_group(group, **kwargs)

    def _insert(self, path: TilePath, records: list[TileRecord]) -> None:
        with self._lock:
            for record in records:
                if isinstance(record, GeometryRecord):
                    self.geometry_index.setdefault(record.id, record)
                    self.object_index.setdefault(record.id, record.properties())
                elif isinstance(record, ReferenceRecord):
                    self.reference_index.setdefault(record.id, record)
                    self.object_index.setdefault(record.id, record.properties())
                elif isinstance(record, IntersectionRecord):
                    self.intersection_index.setdefault(record.id, record)
                    self.object_index.setdefault(record.id, record.properties())
                else:
                    self.metadata_index.setdefault(record["geometryId"], record)
            self.tiles.add(path.to_path())
            self.failed_tiles.pop(path.to_path(), None)
        logger.debug(f"Indexed {len(records)} records from {path}")

    # --- Queries -------------------------------------------------------------

    def intersects(
        self,
        polygon: Any,
        tile_type: TileType = TileType.GEOMETRY,
        hierarchy_zoom_delta: int = 0,
        params: TilePathParams | None = None,
        show_progress: bool = False,
    ) -> dict[str, Any]:
        """
        Street features intersecting a polygon.

        Args:
            polygon: GeoJSON Polygon/MultiPolygon (or Feature), or shapely geometry
            tile_type: GEOMETRY for LineStrings, INTERSECTION for Points
            hierarchy_zoom_delta: Added to the tile zoom when covering the polygon
            params: Source / hierarchy (defaults to the index params)

        Returns:
            FeatureCollection, one feature per id with ``properties.id``
        """
        if tile_type not in (TileType.GEOMETRY, TileType.INTERSECTION):
            raise ValueError(f"Cannot search {tile_type.value} tiles by polygon")

        shape = to_shape(polygon)
        zoom = settings.tile_zoom + hierarchy_zoom_delta
        group = TilePathGroup(
            tile_ids=tile_ids_for_polygon(shape, zoom),
            tile_types=[tile_type],
            params=params or self.params,
        )
        for extra in self.additional_tile_types:
            group.add_tile_type(extra)

        logger.info(f"Searching {len(group.tile_ids)} tiles at zoom {zoom}")
        self.index_tiles_by_path_group(group, show_progress=show_progress)

        if tile_type == TileType.INTERSECTION:
            return self._intersections_within(shape)
        return query.intersects(shape, list(self.geometry_index.values()))

    def _intersections_within(self, shape: Any) -> dict[str, Any]:
        from shapely.geometry import Point
        from shapely.prepared import prep

        prepared = prep(shape)
        features = [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [i.lon, i.lat]},
                "properties": {"id": i.id},
            }
            for i in sorted(self.intersection_index.values(), key=lambda i: i.id)
            if prepared.intersects(Point(i.lon, i.lat))
        ]
        return query.feature_collection(features)

    def geom(self, reference_id: str, offset: float) -> dict[str, Any]:
        """
        Point ``offset`` meters along an indexed reference.

        Raises:
            ReferenceNotFoundError: the reference is not indexed
            OffsetOutOfRangeError: offset < 0 or offset > reference length
        """
        reference = self.reference_index.get(reference_id)
        if reference is None:
            raise ReferenceNotFoundError(reference_id)
        geometry = self.geometry_index.get(reference.geometry_id)
        coordinate = decoder.locate(reference, offset, geometry)
        return decoder.point_feature(reference_id, offset, coordinate)

    def locate_batch(
        self,
        collection: dict[str, Any],
        params: TilePathParams | None = None,
        source: str = "batch",
        show_progress: bool = False,
    ) -> dict[str, Any]:
        """
        Locate every feature of a batch input (``shst_ref``, ``shst_offset``,
        ``shst_tile_ids``). Lookup errors, including tiles that could not be
        fetched, are reported per feature in ``properties.error`` and never
        abort the rest of the batch.
        """
        requests = parse_locate_requests(collection, source=source)

        tile_ids = sorted({t for r in requests for t in r.shst_tile_ids})
        if tile_ids:
            try:
                self.index_tiles(tile_ids, params=params, show_progress=show_progress)
            except TileFetchError as e:
                logger.warning(f"Batch tiles incomplete: {e}")
        unfetched = {
            f.tile_id for f in self.failed_tiles.values() if isinstance(f.error, TileFetchError)
        }

        features = []
        for request in requests:
            props = request.model_dump()
            try:
                features.append(self.geom(request.shst_ref, request.shst_offset))
                features[-1]["properties"].update(props)
            except (ReferenceNotFoundError, OffsetOutOfRangeError) as e:
                error = str(e)
                missing = sorted(unfetched.intersection(request.shst_tile_ids))
                if isinstance(e, ReferenceNotFoundError) and missing:
                    error = f"{error} (tiles not fetched: {', '.join(missing)})"
                logger.warning(f"Could not locate {request.shst_ref} @ {request.shst_offset}: {error}")
                features.append({"type": "Feature", "geometry": None, "properties": {**props, "error": error}})
        return query.feature_collection(features)
