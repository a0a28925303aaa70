"""Nearest-neighbor search backed by :class:`scipy.spatial.cKDTree`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree


@dataclass
class NnResult:
    """One neighbor returned by :meth:`NearestNeighbor.find_nearest`."""

    index: int
    data: Any
    distance: float


class NearestNeighbor:
    """K-nearest-neighbor index over a fixed set of points.

    Usage follows three steps: :meth:`init` with the dimension of the space,
    :meth:`set_points` with the coordinates and their associated data, then
    any number of :meth:`find_nearest` queries.
    """

    def __init__(self) -> None:
        self.dim: Optional[int] = None
        self._tree: Optional[cKDTree] = None
        self._data: Optional[Sequence[Any]] = None

    def init(self, dim: int) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim
        self._tree = None
        self._data = None

    def set_points(self, coords: np.ndarray, data: Optional[Sequence[Any]] = None) -> None:
        if self.dim is None:
            raise RuntimeError("init() must be called before set_points()")

        coords = np.asarray(coords, dtype=np.float64)
        if coords.ndim != 2 or coords.shape[1] != self.dim:
            raise ValueError(f"coords must be an array with shape (N, {self.dim})")
        if data is not None and len(data) != coords.shape[0]:
            raise ValueError("data must have one element per point")

        self._tree = cKDTree(coords)
        self._data = data

    @property
    def size(self) -> int:
        return 0 if self._tree is None else int(self._tree.n)

    def find_nearest(self, query: np.ndarray, max_distance: float, count: int) -> List[NnResult]:
        """Return up to ``count`` neighbors of ``query`` sorted by distance."""

        distances, indices = self.find_nearest_batch(
            np.asarray(query, dtype=np.float64).reshape(1, -1), max_distance, count
        )
        results = []
        for distance, index in zip(distances[0], indices[0]):
            if index < 0:
                break
            data = None if self._data is None else self._data[index]
            results.append(NnResult(index=int(index), data=data, distance=float(distance)))
        return results

    def find_nearest_batch(
        self,
        queries: np.ndarray,
        max_distance: float,
        count: int,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Query many points at once.

        Returns
        -------
        tuple
            ``(distances, indices)``, both of shape ``(M, k)`` with
            ``k = min(count, size)``. Missing neighbors have distance
            ``inf`` and index ``-1``.
        """

        if self._tree is None:
            raise RuntimeError("set_points() must be called before querying")

        queries = np.asarray(queries, dtype=np.float64)
        if queries.ndim != 2 or queries.shape[1] != self.dim:
            raise ValueError(f"queries must be an array with shape (M, {self.dim})")

        k = min(int(count), self.size)
        if k <= 0:
            empty = np.empty((queries.shape[0], 0))
            return empty, empty.astype(np.int64)

        distances, indices = self._tree.query(queries, k=k, distance_upper_bound=max_distance)
        distances = np.asarray(distances, dtype=np.float64).reshape(queries.shape[0], k)
        indices = np.asarray(indices, dtype=np.int64).reshape(queries.shape[0], k)
        indices[~np.isfinite(distances)] = -1
        return distances, indices
