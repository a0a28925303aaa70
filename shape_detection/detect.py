"""High-level detection helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from .cloud_io import load_point_cloud
from .config import ShapeFinderConfig
from .finder import Shape, ShapeFinder


@dataclass
class DetectionResult:
    """Shapes found in a cloud together with the points left over."""

    shapes: List[Shape]
    unmatched: np.ndarray
    total_points: int
    config: Optional[ShapeFinderConfig] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation of the detection."""

        matched = self.total_points - int(self.unmatched.size)
        payload = {
            "total_points": int(self.total_points),
            "matched_points": matched,
            "matched_ratio": float(matched / max(1, self.total_points)),
            "shapes": [shape.to_dict() for shape in self.shapes],
            "unmatched": [int(i) for i in self.unmatched],
        }
        if self.config is not None:
            payload["config"] = self.config.to_dict()
        return payload


def detection_to_dict(result: DetectionResult) -> dict:
    """Return a dictionary representation of a detection result."""

    return result.to_dict()


def detect_shapes_from_points(
    points: np.ndarray,
    config: Optional[ShapeFinderConfig] = None,
) -> DetectionResult:
    """Run the full pipeline on an in-memory point cloud."""

    config = config if config is not None else ShapeFinderConfig()
    finder = ShapeFinder.from_config(config)
    finder.process(points)
    return DetectionResult(
        shapes=list(finder.get_found()),
        unmatched=finder.get_unmatched_indexes(),
        total_points=int(np.asarray(points).shape[0]),
        config=config,
    )


def detect_shapes_from_file(
    path: Path | str,
    config: Optional[ShapeFinderConfig] = None,
    *,
    fields: Sequence[str] = ("x", "y", "z"),
) -> DetectionResult:
    """Load a PLY point cloud and detect the shapes in it."""

    points = load_point_cloud(path, fields)
    return detect_shapes_from_points(points, config)


def save_detection_json(path: Path | str, result: DetectionResult) -> None:
    """Persist a detection result to JSON."""

    with open(path, "w", encoding="utf8") as fp:
        json.dump(result.to_dict(), fp, indent=2, allow_nan=False)
