"""Visualization helpers for shape detection results.

This script renders a point cloud with every detected shape in its own
colour and the unmatched points in grey, so that a detection run can be
checked by eye.

Example
-------
.. code-block:: bash

	MPLBACKEND=Agg python3 -m shape_detection.visualize \
		scans/room.ply \
		scans/room_shapes.json \
		--output scans/room_shapes.png

"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np

from .cloud_io import load_point_cloud

PALETTE = [
	"#1a237e",
	"#c62828",
	"#2e7d32",
	"#6a1b9a",
	"#ff8f00",
]


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		description="Visualise shape detection results",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	parser.add_argument("point_cloud", type=Path, help="Path to the input point cloud (.ply)")
	parser.add_argument("detection", type=Path, help="JSON file produced by the detection CLI")
	parser.add_argument(
		"--output",
		type=Path,
		help="Optional path to save the rendered figure instead of showing it",
	)
	parser.add_argument(
		"--point-size",
		type=float,
		default=2.0,
		help="Scatter point size for matplotlib",
	)
	parser.add_argument(
		"--hide-unmatched",
		action="store_true",
		help="Do not draw points that belong to no shape",
	)
	return parser


def main(argv: Optional[list[str]] = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)

	if not args.point_cloud.exists():
		parser.error(f"Point cloud file '{args.point_cloud}' does not exist")

	if not args.detection.exists():
		parser.error(f"Detection file '{args.detection}' does not exist")

	point_cloud = load_point_cloud(args.point_cloud)

	with open(args.detection, "r", encoding="utf8") as fp:
		detection = json.load(fp)

	shapes = detection.get("shapes") if isinstance(detection, dict) else None
	if not shapes:
		parser.error("Detection JSON contains no shapes")

	for idx, shape in enumerate(shapes):
		missing_keys = {"type", "indexes"} - shape.keys()
		if missing_keys:
			parser.error(
				f"Detection JSON shape {idx} missing required keys: {sorted(missing_keys)}"
			)
		if shape["indexes"] and max(shape["indexes"]) >= point_cloud.shape[0]:
			parser.error(f"Detection JSON shape {idx} indexes points outside the cloud")

	fig = render_detection(point_cloud, shapes, args.point_size, show_unmatched=not args.hide_unmatched)

	if args.output:
		args.output.parent.mkdir(parents=True, exist_ok=True)
		fig.savefig(args.output, dpi=200)
	else:
		plt.show()

	return 0


def render_detection(
	points: np.ndarray,
	shapes: List[dict],
	point_size: float = 2.0,
	*,
	show_unmatched: bool = True,
):
	"""Draw ``points`` coloured by the shape each one belongs to."""

	fig = plt.figure(figsize=(10, 10))
	ax = fig.add_subplot(111, projection="3d")

	matched = np.zeros(points.shape[0], dtype=bool)
	for idx, shape in enumerate(shapes):
		indexes = np.asarray(shape["indexes"], dtype=np.int64)
		matched[indexes] = True
		colour = PALETTE[idx % len(PALETTE)]
		plot_shape_points(ax, points[indexes], colour, point_size, label=f"{shape['type']} #{idx}")
		if shape["type"] == "sphere" and "parameters" in shape:
			plot_center(ax, shape["parameters"]["center"], colour)

	if show_unmatched:
		plot_unmatched(ax, points[~matched], point_size)

	configure_axes(ax, points)
	fig.tight_layout()
	return fig


def plot_shape_points(ax, points: np.ndarray, color: str, point_size: float, label: Optional[str] = None) -> None:
	ax.scatter(
		points[:, 0],
		points[:, 1],
		points[:, 2],
		s=point_size * 2.0,
		c=color,
		alpha=0.6,
		linewidths=0,
		label=label,
	)


def plot_unmatched(ax, points: np.ndarray, point_size: float) -> None:
	ax.scatter(
		points[:, 0],
		points[:, 1],
		points[:, 2],
		s=point_size,
		c="#b0b0b0",
		alpha=0.15,
		linewidths=0,
	)


def plot_center(ax, center, color: str) -> None:
	ax.scatter([center[0]], [center[1]], [center[2]], s=40.0, c=color, marker="x")


def configure_axes(ax, points: np.ndarray) -> None:
	ax.set_xlabel("X")
	ax.set_ylabel("Y")
	ax.set_zlabel("Z")
	extent = np.maximum(np.ptp(points, axis=0), 1e-6)
	ax.set_box_aspect(tuple(extent))
	ax.view_init(elev=20.0, azim=-60.0)
	ax.grid(False)
	ax.legend(loc="upper right")


if __name__ == "__main__":  # pragma: no cover
	raise SystemExit(main())
