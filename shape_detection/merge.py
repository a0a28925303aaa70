"""Merge shapes that were detected more than once.

Greedy RANSAC can split one physical surface into several shapes, e.g. when
an early candidate only covered part of a plane. Two shapes of the same type
are considered duplicates when at least ``overlap_threshold`` of one shape's
support is either shared with the other shape or lies on the other shape's
surface. Duplicates are grouped transitively and every group becomes a
single shape carrying the union of the supports and the parameters of its
largest member.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .detector import FoundShape
from .errors import InvalidConfiguration
from .shapes import ShapeModel

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class MergeResult:
    """Deduplicated shapes and the cloud indices no shape claims."""

    shapes: List[FoundShape] = field(default_factory=list)
    unmatched: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))


class ShapeMerger:
    """Merge duplicate detections.

    Parameters
    ----------
    shapes:
        The detector's shape models, indexed by ``FoundShape.shape_index``.
        Their tolerances decide whether a point lies on a shape's surface.
    overlap_threshold:
        Fraction of a shape's support that must be explained by another
        shape of the same type for the two to be merged.
    """

    def __init__(self, shapes: Sequence[ShapeModel], overlap_threshold: float = 0.6) -> None:
        if not 0 < overlap_threshold <= 1:
            raise InvalidConfiguration("overlap_threshold must be in (0, 1]")
        self.shapes = list(shapes)
        self.overlap_threshold = float(overlap_threshold)
        self.output = MergeResult()

    def merge(self, candidates: Sequence[FoundShape], cloud_size: int) -> MergeResult:
        """Merge ``candidates`` whose points index a cloud of ``cloud_size`` points.

        Merging is idempotent and never drops a point: every point supporting
        an input shape supports exactly one output shape.
        """

        for candidate in candidates:
            if not 0 <= candidate.shape_index < len(self.shapes):
                raise InvalidConfiguration(
                    f"Shape index {candidate.shape_index} is out of range for {len(self.shapes)} shape models"
                )

        owner = np.full(cloud_size, -1, dtype=np.int64)
        current = self._assign_owners(candidates, owner)

        passes = 0
        while True:
            merged = self._merge_pass(current)
            if merged is None:
                break
            current = merged
            passes += 1

        if len(current) != len(candidates):
            logger.info("Merged %d shapes into %d (%d passes)", len(candidates), len(current), passes)

        self.output = MergeResult(shapes=current, unmatched=np.flatnonzero(owner < 0))
        return self.output

    def _assign_owners(self, candidates: Sequence[FoundShape], owner: np.ndarray) -> List[FoundShape]:
        """Give every point to the first shape listing it and drop emptied shapes."""

        result = []
        for candidate in candidates:
            keep = []
            for point in candidate.points:
                if owner[point.index] < 0:
                    owner[point.index] = len(result)
                    keep.append(point)
            if not keep:
                continue
            if len(keep) == len(candidate.points):
                result.append(candidate)
            else:
                result.append(FoundShape(candidate.shape_index, candidate.params, keep))
        return result

    def _merge_pass(self, shapes: List[FoundShape]) -> Optional[List[FoundShape]]:
        count = len(shapes)
        parent = list(range(count))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        merged_any = False
        for i in range(count):
            for j in range(i + 1, count):
                if shapes[i].shape_index != shapes[j].shape_index:
                    continue
                root_i, root_j = find(i), find(j)
                if root_i == root_j:
                    continue
                if self._overlaps(shapes[i], shapes[j]):
                    parent[max(root_i, root_j)] = min(root_i, root_j)
                    merged_any = True

        if not merged_any:
            return None

        groups: dict = {}
        for i in range(count):
            groups.setdefault(find(i), []).append(i)

        result = []
        for root in sorted(groups):
            members = groups[root]
            if len(members) == 1:
                result.append(shapes[members[0]])
                continue

            largest = max(members, key=lambda k: (shapes[k].support(), -k))
            points = {}
            for k in members:
                for point in shapes[k].points:
                    points.setdefault(point.index, point)
            union = [points[index] for index in sorted(points)]
            result.append(FoundShape(shapes[largest].shape_index, shapes[largest].params, union))
        return result

    def _overlaps(self, a: FoundShape, b: FoundShape) -> bool:
        return (self._explained_fraction(a, b) >= self.overlap_threshold
                or self._explained_fraction(b, a) >= self.overlap_threshold)

    def _explained_fraction(self, shape: FoundShape, other: FoundShape) -> float:
        """Fraction of ``shape``'s support shared with or lying on ``other``."""

        if not shape.points:
            return 0.0
        model = self.shapes[other.shape_index]
        points = np.array([p.point for p in shape.points], dtype=np.float64)
        normals = np.array([p.normal for p in shape.points], dtype=np.float64)
        shared = np.isin(shape.indexes(), other.indexes())
        on_surface = model.inlier_mask(points, normals, other.params)
        return float(np.count_nonzero(shared | on_surface)) / len(shape.points)
