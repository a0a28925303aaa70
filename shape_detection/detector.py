"""Efficient RANSAC shape detection.

The detector repeatedly draws minimal samples, builds a candidate for every
configured shape model, scores the candidates against the points that are
still unclaimed and accepts the best one if it has enough support. Accepted
support is removed from the pool, so a point belongs to at most one shape.

Samples are drawn from octree cells rather than from the whole cloud: the
first point is chosen at random, the rest come from one of the cells that
contain it, picked uniformly among the levels between its leaf and the root.
Points drawn this way tend to lie on the same surface, which is what keeps
the number of draws needed small on large clouds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import DetectorConfig
from .errors import InvalidConfiguration
from .geometry import Cube
from .normals import PointNormal
from .octree import Octree
from .shapes import CloudShapeType, ShapeModel, create_shape_model

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FoundShape:
    """A shape accepted by the detector.

    Attributes
    ----------
    shape_index:
        Position of the shape's model in the detector's model list.
    params:
        Fitted parameters, a dataclass specific to the shape model.
    points:
        Supporting points, in increasing cloud index order.
    """

    shape_index: int
    params: Any
    points: List[PointNormal] = field(default_factory=list)

    def support(self) -> int:
        return len(self.points)

    def indexes(self) -> np.ndarray:
        return np.array([p.index for p in self.points], dtype=np.int64)


@dataclass
class _Candidate:
    support: int
    shape_index: int
    draw: int
    params: Any
    mask: np.ndarray

    def key(self) -> tuple:
        # more support first, then earlier shape model, then earlier draw
        return (self.support, -self.shape_index, -self.draw)


class ShapeDetector:
    """Greedy efficient-RANSAC search over a cloud with normals.

    Parameters
    ----------
    shapes:
        Shape models, in priority order for tie-breaking.
    min_support:
        Smallest support a candidate needs to be accepted.
    draws_per_round:
        Number of minimal samples drawn per round.
    max_rounds:
        Maximum number of rounds per call to :meth:`process`.
    octree_max_points:
        Leaf capacity of the sampling octree.
    refine_iterations:
        Refit-and-rescore passes applied to the best candidate of a round.
    max_radius_ratio:
        When set, spheres and cylinders whose radius exceeds this multiple
        of the bounding cube's side are rejected.
    seed:
        Seed for the random generator used by :meth:`process`.
    """

    def __init__(
        self,
        shapes: Sequence[ShapeModel],
        min_support: int = 100,
        draws_per_round: int = 50,
        max_rounds: int = 50,
        octree_max_points: int = 20,
        refine_iterations: int = 3,
        max_radius_ratio: Optional[float] = None,
        seed: Optional[int] = None,
    ) -> None:
        if not shapes:
            raise InvalidConfiguration("At least one shape model is required")
        if min_support < 1 or draws_per_round < 1 or max_rounds < 1:
            raise InvalidConfiguration("min_support, draws_per_round and max_rounds must be positive")

        self.shapes = list(shapes)
        self.min_support = int(min_support)
        self.draws_per_round = int(draws_per_round)
        self.max_rounds = int(max_rounds)
        self.refine_iterations = int(refine_iterations)
        self.max_radius_ratio = max_radius_ratio
        self.seed = seed
        self.sample_size = max(model.sample_size for model in self.shapes)
        self.octree = Octree(octree_max_points)

        self.found: List[FoundShape] = []
        self._point_normals: List[PointNormal] = []
        self._points = np.zeros((0, 3))
        self._normals = np.zeros((0, 3))
        self._claimed = np.zeros(0, dtype=bool)
        self._cell_indices: Dict[int, np.ndarray] = {}
        self._rng = np.random.default_rng(seed)

    @classmethod
    def from_config(
        cls,
        config: DetectorConfig,
        shape_types: Sequence[CloudShapeType],
    ) -> "ShapeDetector":
        models = [
            create_shape_model(shape_type, config.distance_tolerance, config.angle_tolerance)
            for shape_type in shape_types
        ]
        return cls(
            models,
            min_support=config.min_support,
            draws_per_round=config.draws_per_round,
            max_rounds=config.max_rounds,
            octree_max_points=config.octree_max_points,
            refine_iterations=config.refine_iterations,
            max_radius_ratio=config.max_radius_ratio,
            seed=config.seed,
        )

    def process(self, point_normals: Sequence[PointNormal], bounding_cube: Cube) -> List[FoundShape]:
        """Detect shapes in ``point_normals`` which all lie inside ``bounding_cube``."""

        self._setup(point_normals, bounding_cube)
        num_points = len(self._point_normals)

        rounds = 0
        while rounds < self.max_rounds:
            remaining = num_points - int(np.count_nonzero(self._claimed))
            if remaining < max(self.sample_size, self.min_support):
                logger.debug("Stopping: only %d unclaimed points left", remaining)
                break

            rounds += 1
            best = self._search_round()
            if best is None or best.support < self.min_support:
                logger.debug("Stopping: no candidate reached %d inliers in round %d", self.min_support, rounds)
                break

            self._accept(best)

        logger.info(
            "Detected %d shapes in %d rounds, %d of %d points unmatched",
            len(self.found),
            rounds,
            num_points - int(np.count_nonzero(self._claimed)),
            num_points,
        )
        return self.found

    def find_unmatched_points(self, output: Optional[List[PointNormal]] = None) -> List[PointNormal]:
        """Append every point not claimed by an accepted shape to ``output``."""

        if output is None:
            output = []
        output.extend(self._point_normals[i] for i in np.flatnonzero(~self._claimed))
        return output

    def unmatched_indexes(self) -> np.ndarray:
        return np.flatnonzero(~self._claimed)

    def _setup(self, point_normals: Sequence[PointNormal], bounding_cube: Cube) -> None:
        self.found = []
        self._point_normals = list(point_normals)
        self._rng = np.random.default_rng(self.seed)
        self._cell_indices = {}

        num_points = len(self._point_normals)
        if num_points:
            self._points = np.array([pn.point for pn in self._point_normals], dtype=np.float64)
            self._normals = np.array([pn.normal for pn in self._point_normals], dtype=np.float64)
        else:
            self._points = np.zeros((0, 3))
            self._normals = np.zeros((0, 3))
        self._claimed = np.zeros(num_points, dtype=bool)

        if self.max_radius_ratio is not None:
            for model in self.shapes:
                model.max_radius = self.max_radius_ratio * bounding_cube.side()

        self.octree.initialize(bounding_cube)
        for i, point_normal in enumerate(self._point_normals):
            self.octree.add_point(point_normal.point, point_normal, i)

    def _search_round(self) -> Optional[_Candidate]:
        best: Optional[_Candidate] = None
        for draw in range(self.draws_per_round):
            sample = self._draw_sample()
            if sample is None:
                continue

            for shape_index, model in enumerate(self.shapes):
                chosen = sample[:model.sample_size]
                params = model.fit_sample(self._points[chosen], self._normals[chosen])
                if params is None:
                    continue

                mask = self._score(model, params)
                candidate = _Candidate(int(np.count_nonzero(mask)), shape_index, draw, params, mask)
                if best is None or candidate.key() > best.key():
                    best = candidate

        if best is not None:
            self._refine(best)
        return best

    def _draw_sample(self) -> Optional[np.ndarray]:
        unclaimed = np.flatnonzero(~self._claimed)
        if unclaimed.size < self.sample_size:
            return None

        seed_index = int(self._rng.choice(unclaimed))
        path = self.octree.path_to_root(self.octree.leaf_of(seed_index))
        level = int(self._rng.integers(len(path)))

        needed = self.sample_size - 1
        for node_id in path[level:]:
            cell = self._cell(node_id)
            pool = cell[(~self._claimed[cell]) & (cell != seed_index)]
            if pool.size >= needed:
                others = self._rng.choice(pool, size=needed, replace=False)
                return np.concatenate([[seed_index], others]).astype(np.int64)
        return None

    def _cell(self, node_id: int) -> np.ndarray:
        indices = self._cell_indices.get(node_id)
        if indices is None:
            node = self.octree.node(node_id)
            indices = np.fromiter((entry.index for entry in node.entries), dtype=np.int64,
                                  count=len(node.entries))
            self._cell_indices[node_id] = indices
        return indices

    def _score(self, model: ShapeModel, params: Any) -> np.ndarray:
        mask = np.zeros(len(self._point_normals), dtype=bool)
        free = np.flatnonzero(~self._claimed)
        mask[free] = model.inlier_mask(self._points[free], self._normals[free], params)
        return mask

    def _refine(self, candidate: _Candidate) -> None:
        model = self.shapes[candidate.shape_index]
        for _ in range(self.refine_iterations):
            params = model.refit(self._points[candidate.mask], self._normals[candidate.mask],
                                 candidate.params)
            if params is None:
                return
            mask = self._score(model, params)
            support = int(np.count_nonzero(mask))
            if support < candidate.support:
                return
            improved = support > candidate.support
            candidate.params, candidate.mask, candidate.support = params, mask, support
            if not improved:
                return

    def _accept(self, candidate: _Candidate) -> None:
        indices = np.flatnonzero(candidate.mask)
        self._claimed[indices] = True
        shape = FoundShape(
            shape_index=candidate.shape_index,
            params=candidate.params,
            points=[self._point_normals[i] for i in indices],
        )
        self.found.append(shape)
        logger.debug(
            "Accepted %s with %d inliers",
            self.shapes[candidate.shape_index].shape_type.value,
            candidate.support,
        )
