# Command line entry point: `shst extract` and `shst locate`
from __future__ import annotations

import json
import logging
import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any

from colorama import Fore, Style
from shapely.ops import unary_union

from .settings import settings
from .tiles import TileIndex, TilePathParams, TileType
from .utils.errors import BatchInputValidationError, SharedStreetsError
from .utils.geo import to_shape

logger = logging.getLogger('shst')


def _info(msg: str) -> None:
    print(f"{Fore.CYAN}{msg}{Style.RESET_ALL}")


def _success(msg: str) -> None:
    print(f"{Fore.GREEN}✓ {msg}{Style.RESET_ALL}")


def _warn(msg: str) -> None:
    print(f"{Fore.YELLOW}! {msg}{Style.RESET_ALL}", file=sys.stderr)


def _fail(msg: str) -> None:
    print(f"{Fore.RED}✗ {msg}{Style.RESET_ALL}", file=sys.stderr)


def _read_json(path: Path) -> dict[str, Any]:
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f)


def _params(args: Namespace) -> TilePathParams:
    return TilePathParams(source=args.tile_source, tile_hierarchy=args.tile_hierarchy)


def _load_polygon(path: Path) -> Any:
    data = _read_json(path)
    if data.get('type') == 'FeatureCollection':
        return unary_union([to_shape(f) for f in data.get('features') or []])
    return to_shape(data)


def _out_prefix(path: Path) -> Path:
    return path.with_suffix('') if path.suffix == '.geojson' else path


def _report_partial_coverage(index: TileIndex) -> None:
    for locator, failure in sorted(index.failed_tiles.items()):
        _warn(f"Partial coverage, tile skipped: {locator} ({failure.error})")


def extract(args: Namespace) -> int:
    prefix = _out_prefix(args.out if args.out is not None else args.polygon)
    polygon = _load_polygon(args.polygon)

    with TileIndex(params=_params(args)) as index:
        if args.metadata:
            index.add_tile_type(TileType.METADATA)

        _info(f"Extracting streets within {args.polygon}..")
        result = index.intersects(polygon, show_progress=True)

        features = []
        for feature in result['features']:
            geometry_id = feature['properties']['id']
            properties = dict(index.object_index.get(geometry_id, {'id': geometry_id}))
            if args.metadata and geometry_id in index.metadata_index:
                properties['metadata'] = index.metadata_index[geometry_id]
            features.append({**feature, 'properties': properties})

        out_path = Path(f"{prefix}.out.geojson")
        _write_json(out_path, {'type': 'FeatureCollection', 'features': features})
        _success(f"{len(features)} streets written to {out_path}")

        if args.tiles:
            tiles_path = Path(f"{prefix}.tiles.txt")
            tiles_path.write_text(''.join(f"{t}\n" for t in sorted(index.tiles)), encoding='utf-8')
            _success(f"{len(index.tiles)} tile paths written to {tiles_path}")

        _report_partial_coverage(index)
    return 0


def locate(args: Namespace) -> int:
    with TileIndex(params=_params(args)) as index:
        if args.batch is not None:
            result = index.locate_batch(_read_json(args.batch), source=str(args.batch), show_progress=True)
            errors = [f for f in result['features'] if 'error' in f['properties']]
            if errors:
                _warn(f"{len(errors)} of {len(result['features'])} features could not be located")
        else:
            if args.ref is None or args.offset is None:
                _fail("--ref and --offset are required without --batch")
                return 2
            tile_ids = json.loads(args.tile_ids) if args.tile_ids else []
            if tile_ids:
                index.index_tiles(tile_ids)
            result = index.geom(args.ref, args.offset)

        _report_partial_coverage(index)

    if args.out is not None:
        out_path = Path(f"{_out_prefix(args.out)}.out.geojson")
        _write_json(out_path, result)
        _success(f"Located points written to {out_path}")
    else:
        print(json.dumps(result))
    return 0


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog='shst', description='SharedStreets linear referencing tools')
    parser.add_argument('--verbose', '-v', action='store_true')
    subparsers = parser.add_subparsers(dest='command', required=True)

    def tile_options(p: ArgumentParser) -> None:
        p.add_argument('--tile-source', type=str, default=settings.tile_source)
        p.add_argument('--tile-hierarchy', type=int, default=settings.tile_hierarchy)
        p.add_argument('--out', '-o', type=Path, default=None)

    p_extract = subparsers.add_parser('extract', help='Extract street geometries within a polygon')
    p_extract.add_argument('polygon', type=Path)
    p_extract.add_argument('--metadata', action='store_true')
    p_extract.add_argument('--tiles', action='store_true')
    tile_options(p_extract)
    p_extract.set_defaults(func=extract)

    p_locate = subparsers.add_parser('locate', help='Point at an offset along a reference')
    p_locate.add_argument('--ref', type=str)
    p_locate.add_argument('--offset', type=float)
    p_locate.add_argument('--tile-ids', type=str, help='JSON list of tile ids, e.g. \'["12-1205-1539"]\'')
    p_locate.add_argument('--batch', type=Path, default=None)
    tile_options(p_locate)
    p_locate.set_defaults(func=locate)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        return args.func(args)
    except BatchInputValidationError as e:
        _fail(str(e))
        print(e.summary(), file=sys.stderr)
        return 1
    except (SharedStreetsError, OSError, json.JSONDecodeError) as e:
        logger.debug("Command failed", exc_info=True)
        _fail(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
