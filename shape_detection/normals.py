"""Approximate surface normals from local neighborhoods.

Each point's normal is the normal of a plane fitted to the point and its
closest neighbors. The direction of every normal is arbitrary: no attempt is
made to orient normals consistently across the cloud, so consumers must treat
them as axes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .errors import InvalidConfiguration
from .geometry import as_cloud, fit_plane_svd, spans_plane
from .neighbors import NearestNeighbor

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PointNormal:
    """A cloud point with its neighbors and estimated surface normal.

    Attributes
    ----------
    point:
        View of the point's row in the caller's cloud.
    index:
        Position of the point in the cloud.
    normal:
        Unit normal, or the zero vector when it could not be estimated.
    neighbors:
        Nearest neighbors found within the search radius, closest first.
    """

    point: np.ndarray
    index: int
    normal: np.ndarray = field(default_factory=lambda: np.zeros(3))
    neighbors: List["PointNormal"] = field(default_factory=list)

    def has_normal(self) -> bool:
        return bool(np.any(self.normal != 0.0))


class SurfaceNormalEstimator:
    """Estimate a normal for every point of a cloud.

    Parameters
    ----------
    num_plane:
        Number of points (the point itself included) used to fit the local
        plane. Must be greater than 2.
    num_neighbors:
        Number of neighbors searched for. Must be at least ``num_plane``.
    max_distance_neighbor:
        Two points further apart than this are never neighbors.
    nn:
        Nearest-neighbor index to use. A k-d tree is created when omitted.
    """

    def __init__(
        self,
        num_plane: int,
        num_neighbors: int,
        max_distance_neighbor: float,
        nn: Optional[NearestNeighbor] = None,
    ) -> None:
        if num_plane <= 2:
            raise InvalidConfiguration("Can't compute a plane from less than 3 points; num_plane must be > 2")
        if num_neighbors < num_plane:
            raise InvalidConfiguration(
                "The number of neighbors found must be at least the number used to compute the plane"
            )
        if not max_distance_neighbor > 0:
            raise InvalidConfiguration("max_distance_neighbor must be positive")

        self.num_plane = int(num_plane)
        self.num_neighbors = int(num_neighbors)
        self.max_distance_neighbor = float(max_distance_neighbor)
        self.nn = nn if nn is not None else NearestNeighbor()

    def process(self, cloud: np.ndarray) -> List[PointNormal]:
        """Return one :class:`PointNormal` per point of ``cloud``.

        Points with fewer than two neighbors inside ``max_distance_neighbor``,
        or whose neighbors all lie on one line with them, get a zero normal.
        """

        cloud = as_cloud(cloud)
        output = [PointNormal(point=cloud[i], index=i) for i in range(cloud.shape[0])]
        if not output:
            return output

        self.nn.init(3)
        self.nn.set_points(cloud, output)
        # +1 since every point is returned as its own closest neighbor
        _, indices = self.nn.find_nearest_batch(
            cloud, self.max_distance_neighbor, self.num_neighbors + 1
        )

        undetermined = 0
        for i, point_normal in enumerate(output):
            found = indices[i] >= 0
            keep = found & (indices[i] != i)
            neighbor_idx = indices[i][keep][:self.num_neighbors]

            point_normal.neighbors = [output[j] for j in neighbor_idx]
            self._compute_surface_normal(point_normal, cloud, neighbor_idx)
            if not point_normal.has_normal():
                undetermined += 1

        logger.debug(
            "Estimated normals for %d points (%d undetermined)", len(output), undetermined
        )
        return output

    def _compute_surface_normal(
        self,
        point_normal: PointNormal,
        cloud: np.ndarray,
        neighbor_idx: np.ndarray,
    ) -> None:
        """Fit a plane to the point and its closest neighbors.

        ``neighbor_idx`` is sorted by distance. When the closest neighbors
        are collinear with the point, further neighbors are added until the
        set spans a plane. A neighborhood that never does gets a zero normal.
        """

        # a plane needs three points: the point itself and two neighbors
        if neighbor_idx.size < 2:
            point_normal.normal = np.zeros(3)
            return

        if neighbor_idx.size - 1 < self.num_plane:
            count = neighbor_idx.size
        else:
            count = self.num_plane - 1

        fit_points = np.vstack([point_normal.point[None, :], cloud[neighbor_idx[:count]]])
        while not spans_plane(fit_points):
            if count == neighbor_idx.size:
                point_normal.normal = np.zeros(3)
                return
            fit_points = np.vstack([fit_points, cloud[neighbor_idx[count]][None, :]])
            count += 1

        _, normal = fit_plane_svd(fit_points)
        point_normal.normal = normal
