"""Reusable geometry utilities for the shape detection pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np


@dataclass
class Cube:
    """Axis-aligned box given by its ``lower`` and ``upper`` corners."""

    lower: np.ndarray
    upper: np.ndarray

    def __post_init__(self) -> None:
        self.lower = np.asarray(self.lower, dtype=np.float64).reshape(3)
        self.upper = np.asarray(self.upper, dtype=np.float64).reshape(3)

    def center(self) -> np.ndarray:
        return (self.lower + self.upper) / 2.0

    def side(self) -> float:
        """Return the longest edge of the box."""

        return float(np.max(self.upper - self.lower))

    def contains(self, point: Sequence[float] | np.ndarray) -> bool:
        point = np.asarray(point, dtype=np.float64)
        return bool(np.all(point >= self.lower) and np.all(point <= self.upper))

    def octant(self, index: int, divider: np.ndarray) -> "Cube":
        """Return the sub-box for octant ``index`` split at ``divider``.

        Bit 0 selects the upper half along x, bit 1 along y and bit 2 along z.
        """

        lower = self.lower.copy()
        upper = self.upper.copy()
        for axis in range(3):
            if index & (1 << axis):
                lower[axis] = divider[axis]
            else:
                upper[axis] = divider[axis]
        return Cube(lower, upper)

    def copy(self) -> "Cube":
        return Cube(self.lower.copy(), self.upper.copy())


def bounding_cube(points: np.ndarray) -> Cube:
    """Return the smallest axis-aligned cube enclosing ``points``."""

    points = as_cloud(points)
    if points.shape[0] == 0:
        raise ValueError("Cannot compute the bounding cube of an empty cloud")

    lower = points.min(axis=0).astype(np.float64)
    extent = points.max(axis=0).astype(np.float64) - lower
    side = float(np.max(extent))
    return Cube(lower, lower + side)


def as_cloud(points: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Return ``points`` as a float64 ``(N, 3)`` array or raise ``ValueError``."""

    cloud = np.asarray(points, dtype=np.float64)
    if cloud.ndim != 2 or cloud.shape[1] != 3:
        raise ValueError("points must be an array with shape (N, 3)")
    return cloud


def normalize(vector: np.ndarray) -> Optional[np.ndarray]:
    """Return a unit-length copy of ``vector`` or ``None`` if zero-length."""

    norm = np.linalg.norm(vector)
    if not np.isfinite(norm) or norm == 0.0:
        return None
    return vector / norm


def orthonormal_basis(axis_dir: Sequence[float] | np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return two unit vectors perpendicular to ``axis_dir`` and to each other."""

    axis_dir = normalize(np.asarray(axis_dir, dtype=np.float64))
    if axis_dir is None:
        raise ValueError("Cannot build a basis around a zero-length vector")

    if abs(axis_dir[2]) < 0.9:
        arbitrary = np.array([0.0, 0.0, 1.0])
    else:
        arbitrary = np.array([1.0, 0.0, 0.0])

    basis_u = np.cross(axis_dir, arbitrary)
    basis_u /= np.linalg.norm(basis_u)
    basis_v = np.cross(axis_dir, basis_u)
    basis_v /= np.linalg.norm(basis_v)
    return basis_u, basis_v


def fit_plane_svd(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Fit a plane to ``points`` by total least squares.

    Parameters
    ----------
    points:
        Array of shape ``(N, 3)`` with ``N >= 3``.

    Returns
    -------
    tuple
        ``(centroid, normal)`` where ``normal`` is unit length. Its sign is
        arbitrary.

    Raises
    ------
    ValueError
        If fewer than three points are supplied.
    """

    points = as_cloud(points)
    if points.shape[0] < 3:
        raise ValueError("At least three points are required to fit a plane")

    centroid = points.mean(axis=0)
    _, _, vt = np.linalg.svd(points - centroid, full_matrices=False)
    normal = vt[-1]
    return centroid, normal / np.linalg.norm(normal)


def spans_plane(points: np.ndarray, tolerance: float = 1e-6) -> bool:
    """Return True if ``points`` are not all on one line (or one point)."""

    centered = points - points.mean(axis=0)
    singular = np.linalg.svd(centered, compute_uv=False)
    if singular.size < 2 or singular[0] == 0.0:
        return False
    return bool(singular[1] > tolerance * singular[0])


def axis_alignment(normals: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Return ``|cos|`` of the angle between each normal and its reference.

    Normals are treated as axes, so opposite directions count as aligned.
    Zero-length normals yield zero.
    """

    normals = np.atleast_2d(normals)
    reference = np.atleast_2d(reference)
    dots = np.abs(np.sum(normals * reference, axis=1))
    norms = np.linalg.norm(normals, axis=1) * np.linalg.norm(reference, axis=1)
    out = np.zeros(dots.shape[0], dtype=np.float64)
    valid = norms > 0.0
    out[valid] = dots[valid] / norms[valid]
    return out
