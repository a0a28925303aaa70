"""Caller-facing entry point of the shape detection pipeline.

:class:`ShapeFinder` runs normal estimation, RANSAC detection and duplicate
merging on one cloud and converts the internal results into :class:`Shape`
records that only reference the caller's points and their indices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Hashable, List, Optional, Sequence

import numpy as np

from .config import ShapeFinderConfig
from .detector import FoundShape, ShapeDetector
from .errors import InvalidConfiguration
from .geometry import Cube, as_cloud, bounding_cube
from .merge import ShapeMerger
from .normals import SurfaceNormalEstimator
from .shapes import create_shape_model

logger = logging.getLogger(__name__)


@dataclass
class Shape:
    """A detected shape in caller terms.

    Attributes
    ----------
    type:
        The caller's tag for the shape type.
    parameters:
        Fitted parameters (``PlaneParams``, ``SphereParams`` or ``CylinderParams``).
    points:
        Supporting points, views into the caller's cloud.
    indexes:
        Cloud indices of the supporting points.
    """

    type: Hashable
    parameters: Any
    points: List[np.ndarray] = field(default_factory=list)
    indexes: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation of the shape."""

        tag = getattr(self.type, "value", self.type)
        return {
            "type": tag,
            "parameters": self.parameters.to_dict(),
            "num_points": len(self.indexes),
            "indexes": [int(i) for i in self.indexes],
        }


class ShapeFinder:
    """Find primitive shapes in a point cloud.

    Parameters
    ----------
    surface_normals:
        Estimates the per-point normals.
    detector:
        RANSAC detector run on the points with normals.
    merger:
        Merges duplicate detections.
    shape_list:
        Caller-facing tag for each of the detector's shape models, in the
        same order.
    """

    def __init__(
        self,
        surface_normals: SurfaceNormalEstimator,
        detector: ShapeDetector,
        merger: ShapeMerger,
        shape_list: Sequence[Hashable],
    ) -> None:
        if len(shape_list) != len(detector.shapes):
            raise InvalidConfiguration(
                f"{len(detector.shapes)} shape models need {len(detector.shapes)} shape tags, "
                f"got {len(shape_list)}"
            )
        if len(merger.shapes) != len(detector.shapes):
            raise InvalidConfiguration("The merger and the detector must share the same shape models")

        self.surface_normals = surface_normals
        self.detector = detector
        self.merger = merger
        self.shape_list = list(shape_list)
        self.bounding_box: Optional[Cube] = None

        self._cloud = np.zeros((0, 3))
        self._output: List[Shape] = []
        self._unmatched = np.zeros(0, dtype=np.int64)

    @classmethod
    def from_config(cls, config: Optional[ShapeFinderConfig] = None) -> "ShapeFinder":
        config = config if config is not None else ShapeFinderConfig()
        config.validate()

        shape_types = config.shape_types()
        surface_normals = SurfaceNormalEstimator(
            config.normals.num_plane,
            config.normals.num_neighbors,
            config.normals.max_distance_neighbor,
        )
        detector = ShapeDetector.from_config(config.detector, shape_types)

        merge_distance = config.merge.distance_tolerance
        if merge_distance is None:
            merge_distance = config.detector.distance_tolerance
        merge_angle = config.merge.angle_tolerance_degrees
        if merge_angle is None:
            merge_angle = config.detector.angle_tolerance_degrees
        merge_models = [
            create_shape_model(shape_type, merge_distance, np.radians(merge_angle))
            for shape_type in shape_types
        ]
        merger = ShapeMerger(merge_models, config.merge.overlap_threshold)
        return cls(surface_normals, detector, merger, shape_types)

    def process(self, cloud: np.ndarray, bounding_box: Optional[Cube] = None) -> None:
        """Find shapes in ``cloud``.

        When ``bounding_box`` is omitted the smallest cube enclosing the cloud
        is used. Otherwise every point must lie inside it. Results are read
        with :meth:`get_found` and :meth:`get_unmatched`.
        """

        self._cloud = as_cloud(cloud)
        num_points = self._cloud.shape[0]
        self._output = []
        self._unmatched = np.arange(num_points)

        if bounding_box is None:
            if num_points == 0:
                return
            self.bounding_box = bounding_cube(self._cloud)
        else:
            self.bounding_box = bounding_box.copy()

        point_normals = self.surface_normals.process(self._cloud)
        found = self.detector.process(point_normals, self.bounding_box)
        result = self.merger.merge(found, num_points)

        self._output = [self._convert(shape) for shape in result.shapes]
        self._unmatched = result.unmatched
        logger.info(
            "Found %d shapes in %d points, %d unmatched",
            len(self._output),
            num_points,
            self._unmatched.size,
        )

    def get_found(self) -> List[Shape]:
        return self._output

    def get_unmatched(self, unmatched: List[np.ndarray]) -> List[np.ndarray]:
        """Append the points no shape claims to ``unmatched``."""

        unmatched.extend(self._cloud[i] for i in self._unmatched)
        return unmatched

    def get_unmatched_indexes(self) -> np.ndarray:
        return self._unmatched.copy()

    def get_shapes_list(self) -> List[Hashable]:
        return self.shape_list

    def _convert(self, found: FoundShape) -> Shape:
        return Shape(
            type=self.shape_list[found.shape_index],
            parameters=found.params,
            points=[self._cloud[p.index] for p in found.points],
            indexes=[int(p.index) for p in found.points],
        )


def create_shape_finder(config: Optional[ShapeFinderConfig] = None) -> ShapeFinder:
    """Build a :class:`ShapeFinder` from ``config`` (defaults when ``None``)."""

    return ShapeFinder.from_config(config)
