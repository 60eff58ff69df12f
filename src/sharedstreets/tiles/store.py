"""Fetching, caching and decoding of SharedStreets tiles.

The store resolves a TilePath to bytes (local cache first, then the remote
tile source), writes fetched bytes back to the cache, and decodes them into
records. Concurrent requests for the same locator share one in-flight fetch.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import requests
from google.protobuf.message import DecodeError
from tqdm import tqdm

from ..settings import settings
from ..utils.errors import SharedStreetsError, TileDecodeError, TileFetchError
from .codec import TileRecord, decode_tile
from .paths import TilePath, TilePathGroup

logger = logging.getLogger('TileStore')

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class _TransientFetchError(Exception):
    """A fetch failure worth retrying (connection error, 5xx, 429)."""


@dataclass(frozen=True)
class TileFailure:
    path: TilePath
    error: SharedStreetsError

    @property
    def tile_id(self) -> str:
        return self.path.tile_id


@dataclass
class TileLoadResult:
    """Outcome of loading a batch of tiles; every member either loaded or failed."""
    loaded: list[TilePath] = field(default_factory=list)
    failures: list[TileFailure] = field(default_factory=list)
    records: dict[TilePath, list[TileRecord]] = field(default_factory=dict)

    @property
    def fetch_failures(self) -> list[TileFailure]:
        return [f for f in self.failures if isinstance(f.error, TileFetchError)]

    @property
    def decode_failures(self) -> list[TileFailure]:
        return [f for f in self.failures if isinstance(f.error, TileDecodeError)]

    @property
    def failed_tile_ids(self) -> list[str]:
        return sorted({f.tile_id for f in self.failures})

    def raise_for_fetch_errors(self) -> None:
        failures = self.fetch_failures
        if failures:
            raise failures[0].error


class TileStore:
    """Fetch tiles from a remote source (or local directory) through a disk cache.

    Args:
        base_url: Root of the tile source, ``http(s)://...`` or a local directory
        cache_dir: Local cache root (default: settings.cache_dir)
        use_cache: If False, never read or write the local cache
        max_workers: Size of the worker pool used for batch loads
        max_retries: Attempts per locator before giving up
        retry_delay_s: Base delay of the exponential backoff between attempts
        timeout: HTTP request timeout in seconds
        session: Optional preconfigured ``requests.Session``

    Example:
        with TileStore(cache_dir='./tile_cache') as store:
            result = store.load(TilePathGroup(tile_ids=['12-1205-1539'], tile_types=[TileType.GEOMETRY]))
    """

    def __init__(
        self,
        base_url: str | None = None,
        cache_dir: Path | str | None = None,
        use_cache: bool = True,
        max_workers: int | None = None,
        max_retries: int | None = None,
        retry_delay_s: float | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.tile_base_url
        cache_dir = cache_dir if cache_dir is not None else settings.cache_dir
        self.cache_dir = Path(cache_dir).expanduser() if use_cache else None
        self.max_workers = max_workers or settings.max_workers
        self.max_retries = max(1, max_retries if max_retries is not None else settings.max_retries)
        self.retry_delay_s = settings.retry_delay_s if retry_delay_s is None else retry_delay_s
        self.timeout = timeout or settings.request_timeout

        self._owns_session = session is None
        self.session = session if session is not None else self._make_session()

        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="shst-tiles")

        logger.info(
            f"Initialized TileStore: {self.base_url}, cache={self.cache_dir}, "
            f"workers={self.max_workers}, retries={self.max_retries}"
        )

    def _make_session(self) -> requests.Session:
        session = requests.Session()
        # Connection pool large enough for every worker
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=self.max_workers,
            pool_maxsize=self.max_workers * 2,
        )
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        return session

    def close(self) -> None:
        """Release the worker pool and HTTP connections.

        Fetches already running are allowed to finish so their tiles land in the cache.
        """
        self._executor.shutdown(wait=True)
        if self._owns_session and self.session is not None:
            self.session.close()

    def __enter__(self) -> "TileStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- Locators ------------------------------------------------------------

    @property
    def is_remote(self) -> bool:
        return self.base_url.startswith(("http://", "https://"))

    def url_for(self, path: TilePath) -> str:
        if self.is_remote:
            return f"{self.base_url.rstrip('/')}/{path.to_path()}"
        return str(Path(self.base_url).expanduser() / path.to_path())

    def cache_path_for(self, path: TilePath) -> Path | None:
        if not self.cache_dir:
            return None
        return self.cache_dir / path.to_path()

    # --- Fetching ------------------------------------------------------------

    def fetch(self, path: TilePath, force: bool = False) -> bytes:
        """Return the raw bytes of a tile.

        Only one fetch per locator is ever in flight; concurrent callers for the
        same locator wait for it and receive the same bytes (or the same error).

        Raises:
            TileFetchError: the tile could not be retrieved after all retries
        """
        locator = path.to_path()
        with self._inflight_lock:
            future = self._inflight.get(locator)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[locator] = future

        if not owner:
            logger.debug(f"Joining in-flight fetch: {locator}")
            return future.result()

        try:
            data = self._fetch_uncoordinated(path, force)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(data)
            return data
        finally:
            with self._inflight_lock:
                self._inflight.pop(locator, None)

    def _fetch_uncoordinated(self, path: TilePath, force: bool) -> bytes:
        cache_path = self.cache_path_for(path)

        if cache_path and not force and cache_path.is_file():
            logger.debug(f"Loading tile from cache: {cache_path}")
            try:
                return cache_path.read_bytes()
            except OSError as e:
                logger.warning(f"Unreadable cache file {cache_path}, fetching again: {e}")

        data = self._fetch_with_retries(path)

        if cache_path:
            self._write_cache(cache_path, data)
        return data

    def _fetch_with_retries(self, path: TilePath) -> bytes:
        url = self.url_for(path)
        last_error: BaseException | None = None

        for attempt in range(self.max_retries):
            try:
                return self._read_source(url)
            except _TransientFetchError as e:
                last_error = e.__cause__ or e
                logger.warning(f"Attempt {attempt+1}/{self.max_retries} failed for {url}: {last_error}")
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay_s * (2 ** attempt))  # exponential backoff
        logger.error(f"Giving up on {url} after {self.max_retries} attempts")
        raise TileFetchError(url, self.max_retries, last_error)

    def _read_source(self, url: str) -> bytes:
        """Read one locator once. Raises _TransientFetchError when a retry may help."""
        if not self.is_remote:
            try:
                return Path(url).read_bytes()
            except FileNotFoundError as e:
                raise TileFetchError(url, 1, e) from e
            except OSError as e:
                raise _TransientFetchError(str(e)) from e

        logger.debug(f"Fetching tile: {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise _TransientFetchError(str(e)) from e

        if response.status_code in RETRYABLE_STATUS:
            raise _TransientFetchError(f"HTTP {response.status_code}") from requests.HTTPError(
                f"{response.status_code} for url: {url}", response=response
            )
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise TileFetchError(url, 1, e) from e
        return response.content

    def _write_cache(self, cache_path: Path, data: bytes) -> None:
        try:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            # write-then-rename so readers never see a partial tile
            with tempfile.NamedTemporaryFile(dir=cache_path.parent, delete=False, suffix=".part") as tmp:
                tmp.write(data)
            os.replace(tmp.name, cache_path)
            logger.debug(f"Cached tile to: {cache_path}")
        except OSError as e:
            logger.warning(f"Could not cache tile to {cache_path}: {e}")

    def evict(self, path: TilePath) -> None:
        cache_path = self.cache_path_for(path)
        if cache_path and cache_path.is_file():
            cache_path.unlink(missing_ok=True)
            logger.debug(f"Evicted cached tile: {cache_path}")

    # --- Decoding ------------------------------------------------------------

    def load_tile(self, path: TilePath, force: bool = False) -> list[TileRecord]:
        """Fetch and decode one tile.

        Raises:
            TileFetchError: see ``fetch``
            TileDecodeError: the payload is not a valid tile of ``path.tile_type``
        """
        data = self.fetch(path, force=force)
        try:
            return decode_tile(data, path.tile_type)
        except (DecodeError, ValueError) as e:
            # a corrupt cache entry would otherwise poison every later session
            self.evict(path)
            raise TileDecodeError(path, e) from e

    def submit(self, path: TilePath, force: bool = False) -> Future:
        return self._executor.submit(self.load_tile, path, force)

    def load(
        self,
        paths: TilePathGroup | Iterable[TilePath],
        force: bool = False,
        show_progress: bool = False,
    ) -> TileLoadResult:
        """Load many tiles on the worker pool.

        Returns once every member has either been decoded or failed. Fetch and
        decode failures are collected per tile instead of aborting the batch.
        """
        path_list = paths.paths() if isinstance(paths, TilePathGroup) else list(paths)
        result = TileLoadResult()
        if not path_list:
            return result

        future_to_path = {self.submit(path, force): path for path in path_list}

        with tqdm(total=len(future_to_path), desc="Loading tiles", disable=not show_progress) as pbar:
            for future in as_completed(future_to_path):
                path = future_to_path[future]
                try:
                    result.records[path] = future.result()
                    result.loaded.append(path)
                except (TileFetchError, TileDecodeError) as e:
                    logger.warning(f"Tile {path} failed: {e}")
                    result.failures.append(TileFailure(path=path, error=e))
                pbar.set_postfix({'failed': len(result.failures)})
                pbar.update(1)

        logger.info(f"Loaded {len(result.loaded)}/{len(path_list)} tiles ({len(result.failures)} failed)")
        return result
