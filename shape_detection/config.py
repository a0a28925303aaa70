"""Configuration for the shape detection pipeline.

Each component has its own dataclass. :class:`ShapeFinderConfig` groups them
and can be read from a JSON document such as::

    {
        "shapes": ["plane", "sphere"],
        "normals": {"num_plane": 4, "num_neighbors": 12, "max_distance_neighbor": 0.5},
        "detector": {"min_support": 150, "distance_tolerance": 0.02},
        "merge": {"overlap_threshold": 0.6}
    }

Missing keys keep their defaults. Unknown keys are rejected.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidConfiguration
from .shapes import CloudShapeType


@dataclass
class NormalConfig:
    """Neighborhood settings of the normal estimator.

    ``max_distance_neighbor`` is unbounded by default. It is written as
    ``null`` in JSON and ``None`` is read back as unbounded.
    """

    num_plane: int = 4
    num_neighbors: int = 12
    max_distance_neighbor: float = math.inf

    def __post_init__(self) -> None:
        if self.max_distance_neighbor is None:
            self.max_distance_neighbor = math.inf

    def validate(self) -> None:
        if self.num_plane <= 2:
            raise InvalidConfiguration("normals.num_plane must be greater than 2")
        if self.num_neighbors < self.num_plane:
            raise InvalidConfiguration("normals.num_neighbors must be at least normals.num_plane")
        if not self.max_distance_neighbor > 0:
            raise InvalidConfiguration("normals.max_distance_neighbor must be positive")


@dataclass
class DetectorConfig:
    """Parameters of the RANSAC search.

    Attributes
    ----------
    min_support:
        Smallest number of inliers a shape needs to be accepted.
    distance_tolerance:
        Maximum point-to-surface distance of an inlier (scene units).
    angle_tolerance_degrees:
        Maximum angle between a point normal and the surface normal.
    draws_per_round:
        Minimal samples drawn per round before the best candidate is chosen.
    max_rounds:
        Upper bound on the number of rounds, and so on accepted shapes.
    octree_max_points:
        Leaf capacity of the octree used for local sampling.
    max_radius_ratio:
        Curved shapes with a radius above this multiple of the bounding cube
        side are rejected.
    refine_iterations:
        Least-squares refinement passes applied to the best candidate.
    seed:
        Seed of the random generator. ``None`` draws fresh entropy.
    """

    min_support: int = 100
    distance_tolerance: float = 0.05
    angle_tolerance_degrees: float = 20.0
    draws_per_round: int = 50
    max_rounds: int = 50
    octree_max_points: int = 20
    max_radius_ratio: float = 1.0
    refine_iterations: int = 3
    seed: Optional[int] = None

    @property
    def angle_tolerance(self) -> float:
        return math.radians(self.angle_tolerance_degrees)

    def validate(self) -> None:
        if self.min_support < 1:
            raise InvalidConfiguration("detector.min_support must be at least 1")
        if not self.distance_tolerance > 0:
            raise InvalidConfiguration("detector.distance_tolerance must be positive")
        if not 0 < self.angle_tolerance_degrees <= 90:
            raise InvalidConfiguration("detector.angle_tolerance_degrees must be in (0, 90]")
        if self.draws_per_round < 1:
            raise InvalidConfiguration("detector.draws_per_round must be at least 1")
        if self.max_rounds < 1:
            raise InvalidConfiguration("detector.max_rounds must be at least 1")
        if self.octree_max_points < 1:
            raise InvalidConfiguration("detector.octree_max_points must be at least 1")
        if not self.max_radius_ratio > 0:
            raise InvalidConfiguration("detector.max_radius_ratio must be positive")
        if self.refine_iterations < 0:
            raise InvalidConfiguration("detector.refine_iterations must not be negative")


@dataclass
class MergeConfig:
    """Parameters of the duplicate-shape merge.

    ``distance_tolerance`` and ``angle_tolerance_degrees`` fall back to the
    detector's values when left as ``None``.
    """

    overlap_threshold: float = 0.6
    distance_tolerance: Optional[float] = None
    angle_tolerance_degrees: Optional[float] = None

    def validate(self) -> None:
        if not 0 < self.overlap_threshold <= 1:
            raise InvalidConfiguration("merge.overlap_threshold must be in (0, 1]")
        if self.distance_tolerance is not None and not self.distance_tolerance > 0:
            raise InvalidConfiguration("merge.distance_tolerance must be positive")
        if self.angle_tolerance_degrees is not None and not 0 < self.angle_tolerance_degrees <= 90:
            raise InvalidConfiguration("merge.angle_tolerance_degrees must be in (0, 90]")


def _default_shapes() -> List[str]:
    return [shape.value for shape in CloudShapeType]


@dataclass
class ShapeFinderConfig:
    shapes: List[str] = field(default_factory=_default_shapes)
    normals: NormalConfig = field(default_factory=NormalConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)

    def shape_types(self) -> List[CloudShapeType]:
        types = []
        for name in self.shapes:
            try:
                types.append(CloudShapeType(name))
            except ValueError as exc:
                available = [shape.value for shape in CloudShapeType]
                raise InvalidConfiguration(
                    f"Unknown shape: {name}. Available: {available}"
                ) from exc
        return types

    def validate(self) -> None:
        if not self.shapes:
            raise InvalidConfiguration("At least one shape type must be configured")
        types = self.shape_types()
        if len(set(types)) != len(types):
            raise InvalidConfiguration("Shape types must not repeat")
        self.normals.validate()
        self.detector.validate()
        self.merge.validate()

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if math.isinf(self.normals.max_distance_neighbor):
            payload["normals"]["max_distance_neighbor"] = None
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ShapeFinderConfig":
        _reject_unknown("config", payload, {f.name for f in fields(cls)})
        config = cls(
            shapes=list(payload.get("shapes", _default_shapes())),
            normals=_section(NormalConfig, "normals", payload.get("normals", {})),
            detector=_section(DetectorConfig, "detector", payload.get("detector", {})),
            merge=_section(MergeConfig, "merge", payload.get("merge", {})),
        )
        config.validate()
        return config


def load_config(path: Path | str) -> ShapeFinderConfig:
    """Read a :class:`ShapeFinderConfig` from a JSON file."""

    with open(path, "r", encoding="utf8") as fp:
        try:
            payload = json.load(fp)
        except json.JSONDecodeError as exc:
            raise InvalidConfiguration(f"Config file '{path}' is not valid JSON: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise InvalidConfiguration(f"Config file '{path}' must contain a JSON object")
    return ShapeFinderConfig.from_dict(payload)


def _section(cls, name: str, payload: Any):
    if not isinstance(payload, Mapping):
        raise InvalidConfiguration(f"'{name}' must be a JSON object")
    _reject_unknown(name, payload, {f.name for f in fields(cls)})
    return cls(**payload)


def _reject_unknown(name: str, payload: Mapping[str, Any], allowed: set) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise InvalidConfiguration(f"Unknown keys in '{name}': {unknown}")
