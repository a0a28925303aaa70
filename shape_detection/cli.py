"""Command-line interface for shape detection."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import ShapeFinderConfig, load_config
from .detect import detect_shapes_from_file, detection_to_dict, save_detection_json
from .errors import InvalidConfiguration
from .shapes import CloudShapeType

# command-line flag -> (config section, field)
_OVERRIDES = {
    "num_plane": ("normals", "num_plane"),
    "num_neighbors": ("normals", "num_neighbors"),
    "max_distance_neighbor": ("normals", "max_distance_neighbor"),
    "min_support": ("detector", "min_support"),
    "distance_tolerance": ("detector", "distance_tolerance"),
    "angle_tolerance": ("detector", "angle_tolerance_degrees"),
    "draws_per_round": ("detector", "draws_per_round"),
    "max_rounds": ("detector", "max_rounds"),
    "seed": ("detector", "seed"),
    "overlap_threshold": ("merge", "overlap_threshold"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect planes, spheres and cylinders in a point cloud")
    parser.add_argument("point_cloud", type=Path, help="Path to the input point cloud (.ply)")
    parser.add_argument(
        "--output-json",
        type=Path,
        help="Optional path to write the detection result as JSON",
    )
    parser.add_argument("--config", type=Path, help="JSON file with pipeline settings")
    parser.add_argument(
        "--shapes",
        nargs="+",
        choices=[shape.value for shape in CloudShapeType],
        help="Shape types to search for, in tie-break priority order",
    )
    parser.add_argument("--num-plane", type=int, help="Points used to fit each local plane")
    parser.add_argument("--num-neighbors", type=int, help="Neighbors searched per point")
    parser.add_argument(
        "--max-distance-neighbor",
        type=float,
        help="Maximum distance between neighboring points (in scene units)",
    )
    parser.add_argument("--min-support", type=int, help="Minimum inliers required for acceptance")
    parser.add_argument(
        "--distance-tolerance",
        type=float,
        help="Maximum distance of an inlier from the shape surface (in scene units)",
    )
    parser.add_argument(
        "--angle-tolerance",
        type=float,
        help="Maximum angle in degrees between a point normal and the surface normal",
    )
    parser.add_argument("--draws-per-round", type=int, help="Minimal samples drawn per round")
    parser.add_argument("--max-rounds", type=int, help="Upper bound on detection rounds")
    parser.add_argument(
        "--overlap-threshold",
        type=float,
        help="Support fraction above which two detections are merged",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed used for RANSAC sampling")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at debug level")
    return parser


def setup_logger(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def resolve_config(args: argparse.Namespace) -> ShapeFinderConfig:
    """Combine the optional config file with command-line overrides."""

    config = load_config(args.config) if args.config is not None else ShapeFinderConfig()
    if args.shapes:
        config.shapes = list(args.shapes)
    for flag, (section, name) in _OVERRIDES.items():
        value = getattr(args, flag)
        if value is not None:
            setattr(getattr(config, section), name, value)
    config.validate()
    return config


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(args.verbose)

    point_cloud_path: Path = args.point_cloud
    if not point_cloud_path.exists():
        parser.error(f"Point cloud file '{point_cloud_path}' does not exist")
    if args.config is not None and not args.config.exists():
        parser.error(f"Config file '{args.config}' does not exist")

    try:
        config = resolve_config(args)
    except InvalidConfiguration as exc:
        parser.error(str(exc))

    result = detect_shapes_from_file(point_cloud_path, config)

    if not result.shapes:
        print("No shapes detected", file=sys.stderr)
        return 1

    payload = detection_to_dict(result)
    if args.output_json is not None:
        save_detection_json(args.output_json, result)

    json.dump(payload, sys.stdout, indent=2, allow_nan=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
