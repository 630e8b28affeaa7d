from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from dem.codec import SUPPORTED_DEM_FORMATS
from dem.raster import GSI_DEM_URL_TEMPLATE
from voxel.config import (
    DEFAULT_VOXELIZER_CONFIG_ENV,
    VoxelizerConfig,
    get_voxelizer_config,
    load_voxelizer_config,
)
from voxel.generator import (
    SUPPORTED_AGGREGATIONS,
    GeoBounds,
    VoxelGenerator,
    target_z_for,
)


def _parse_bbox(value: str) -> GeoBounds:
    parts = [item.strip() for item in (value or "").split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError(
            f"Expected west,south,east,north; got {value!r}"
        )
    try:
        west, south, east, north = (float(item) for item in parts)
        return GeoBounds(west=west, south=south, east=east, north=north)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _load_config(path: str | None) -> VoxelizerConfig:
    if path:
        return load_voxelizer_config(path)
    if os.environ.get(DEFAULT_VOXELIZER_CONFIG_ENV):
        return get_voxelizer_config()
    # Without an explicit path the config file is optional.
    try:
        return get_voxelizer_config()
    except FileNotFoundError:
        return VoxelizerConfig()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m voxel",
        description="Generate spatial ID voxels for a bounding box from DEM tiles.",
    )
    parser.add_argument(
        "--bbox",
        required=True,
        type=_parse_bbox,
        help="Bounding box as west,south,east,north in degrees",
    )
    parser.add_argument(
        "--zoom", required=True, type=float, help="Viewport zoom level"
    )
    parser.add_argument(
        "--resolution-offset",
        type=int,
        default=None,
        help="Added to floor(zoom) to pick the voxel resolution (default: from config)",
    )
    parser.add_argument(
        "--url",
        default=GSI_DEM_URL_TEMPLATE,
        help="DEM tile URL template with {z}/{x}/{y} placeholders",
    )
    parser.add_argument(
        "--aggregation",
        choices=SUPPORTED_AGGREGATIONS,
        default="max",
        help="Elevation reducer per voxel (default: max)",
    )
    parser.add_argument(
        "--dem-format",
        choices=SUPPORTED_DEM_FORMATS,
        default="gsi",
        help="Pixel encoding of the DEM tiles (default: gsi)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=(
            "Path to a voxelizer.yaml config file "
            "(default: $TERRAIN_VOXELIZER_CONFIG, then config/voxelizer.yaml if present)"
        ),
    )
    parser.add_argument(
        "--output", default=None, help="Write JSON here instead of stdout"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level (default: WARNING)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    config = _load_config(args.config)
    offset = (
        args.resolution_offset
        if args.resolution_offset is not None
        else config.default_resolution_offset
    )
    target_z = target_z_for(
        args.zoom,
        offset,
        min_z=config.min_target_z,
        max_z=config.max_target_z,
    )

    generator = VoxelGenerator(config=config)
    result = generator.generate(
        args.bbox,
        target_z=target_z,
        viewport_zoom=args.zoom,
        url_template=args.url,
        aggregation=args.aggregation,
        dem_format=args.dem_format,
    )

    payload = {
        "schema_version": 1,
        "target_z": result.target_z,
        "dem_zoom": result.dem_zoom,
        "tile_count": result.tile_count,
        "failed_tiles": result.failed_tiles,
        "skipped_reason": result.skipped_reason,
        "voxels": [voxel.to_dict() for voxel in result.voxels],
    }
    text = json.dumps(payload, ensure_ascii=True, separators=(",", ":"), sort_keys=True)
    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0
