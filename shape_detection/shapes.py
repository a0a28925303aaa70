"""Primitive shape models used by the RANSAC detector.

Every model knows how to build a candidate from a minimal sample of points
with normals, how far points are from its surface, which way the surface
faces at a point, and how to refine itself by least squares once inliers are
known.
"""

from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from .geometry import axis_alignment, fit_plane_svd, normalize, orthonormal_basis


class CloudShapeType(enum.Enum):
    """Caller-facing tags for the supported primitives."""

    PLANE = "plane"
    SPHERE = "sphere"
    CYLINDER = "cylinder"


@dataclass
class PlaneParams:
    point: np.ndarray
    normal: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        return {"point": self.point.tolist(), "normal": self.normal.tolist()}


@dataclass
class SphereParams:
    center: np.ndarray
    radius: float

    def to_dict(self) -> Dict[str, Any]:
        return {"center": self.center.tolist(), "radius": float(self.radius)}


@dataclass
class CylinderParams:
    """Infinite cylinder around the line ``axis_point + t * axis_direction``."""

    axis_point: np.ndarray
    axis_direction: np.ndarray
    radius: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "axis_point": self.axis_point.tolist(),
            "axis_direction": self.axis_direction.tolist(),
            "radius": float(self.radius),
        }


class ShapeModel(ABC):
    """Base class for shape models.

    Parameters
    ----------
    distance_tolerance:
        Maximum distance from the surface for a point to count as an inlier.
    angle_tolerance:
        Maximum angle, in radians, between a point's normal and the surface
        normal. Normals are compared as axes.
    max_radius:
        Upper bound on the radius of curved shapes.
    """

    shape_type: CloudShapeType
    sample_size: int = 3

    def __init__(self, distance_tolerance: float, angle_tolerance: float,
                 max_radius: float = math.inf) -> None:
        self.distance_tolerance = float(distance_tolerance)
        self.angle_tolerance = float(angle_tolerance)
        self.min_alignment = math.cos(self.angle_tolerance)
        self.max_radius = float(max_radius)

    @abstractmethod
    def fit_sample(self, points: np.ndarray, normals: np.ndarray) -> Optional[Any]:
        """Build a candidate from ``sample_size`` points, or ``None`` on failure."""

    @abstractmethod
    def distances(self, points: np.ndarray, params: Any) -> np.ndarray:
        """Unsigned distances from ``points`` to the surface."""

    @abstractmethod
    def surface_normals(self, points: np.ndarray, params: Any) -> np.ndarray:
        """Surface normal at the projection of each point."""

    @abstractmethod
    def refit(self, points: np.ndarray, normals: np.ndarray, params: Any) -> Optional[Any]:
        """Least-squares estimate from inliers, or ``None`` if it fails."""

    def inlier_mask(self, points: np.ndarray, normals: np.ndarray, params: Any) -> np.ndarray:
        """Points close to the surface whose normal agrees with it."""

        if points.shape[0] == 0:
            return np.zeros(0, dtype=bool)
        close = self.distances(points, params) <= self.distance_tolerance
        aligned = axis_alignment(normals, self.surface_normals(points, params)) >= self.min_alignment
        return close & aligned

    def sample_agrees(self, points: np.ndarray, normals: np.ndarray, params: Any) -> bool:
        aligned = axis_alignment(normals, self.surface_normals(points, params))
        return bool(np.all(aligned >= self.min_alignment))

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(distance_tolerance={self.distance_tolerance}, "
                f"angle_tolerance={self.angle_tolerance:.3f})")


class PlaneModel(ShapeModel):
    shape_type = CloudShapeType.PLANE

    def fit_sample(self, points: np.ndarray, normals: np.ndarray) -> Optional[PlaneParams]:
        normal = normalize(np.cross(points[1] - points[0], points[2] - points[0]))
        if normal is None:
            return None
        params = PlaneParams(point=points.mean(axis=0), normal=normal)
        if not self.sample_agrees(points, normals, params):
            return None
        return params

    def distances(self, points: np.ndarray, params: PlaneParams) -> np.ndarray:
        return np.abs((points - params.point) @ params.normal)

    def surface_normals(self, points: np.ndarray, params: PlaneParams) -> np.ndarray:
        return np.broadcast_to(params.normal, points.shape)

    def refit(self, points: np.ndarray, normals: np.ndarray, params: PlaneParams) -> Optional[PlaneParams]:
        if points.shape[0] < 3:
            return None
        centroid, normal = fit_plane_svd(points)
        return PlaneParams(point=centroid, normal=normal)


class SphereModel(ShapeModel):
    """Sphere built from two points and their normals.

    The centre is the midpoint of the shortest segment between the two normal
    lines. The remaining sample points only have to agree with the result.
    """

    shape_type = CloudShapeType.SPHERE

    def fit_sample(self, points: np.ndarray, normals: np.ndarray) -> Optional[SphereParams]:
        closest = _closest_points_between_lines(points[0], normals[0], points[1], normals[1])
        if closest is None:
            return None

        center = (closest[0] + closest[1]) / 2.0
        radius = float(np.mean(np.linalg.norm(points[:2] - center, axis=1)))
        if not np.isfinite(radius) or radius <= 0.0 or radius > self.max_radius:
            return None

        params = SphereParams(center=center, radius=radius)
        if not self.sample_agrees(points, normals, params):
            return None
        return params

    def distances(self, points: np.ndarray, params: SphereParams) -> np.ndarray:
        return np.abs(np.linalg.norm(points - params.center, axis=1) - params.radius)

    def surface_normals(self, points: np.ndarray, params: SphereParams) -> np.ndarray:
        return _unit_rows(points - params.center)

    def refit(self, points: np.ndarray, normals: np.ndarray, params: SphereParams) -> Optional[SphereParams]:
        if points.shape[0] < 4:
            return None

        # |p|^2 = 2 c.p + (r^2 - |c|^2) is linear in c and the constant term
        design = np.hstack([2.0 * points, np.ones((points.shape[0], 1))])
        target = np.sum(points * points, axis=1)
        solution, _, rank, _ = np.linalg.lstsq(design, target, rcond=None)
        if rank < 4:
            return None

        center = solution[:3]
        radius_sq = solution[3] + float(center @ center)
        if not np.isfinite(radius_sq) or radius_sq <= 0.0:
            return None
        radius = math.sqrt(radius_sq)
        if radius > self.max_radius:
            return None
        return SphereParams(center=center, radius=radius)


class CylinderModel(ShapeModel):
    """Cylinder built from two points and their normals.

    The axis is perpendicular to both normals. Projected onto the plane
    orthogonal to the axis, the two normal lines meet at the axis.
    """

    shape_type = CloudShapeType.CYLINDER

    def fit_sample(self, points: np.ndarray, normals: np.ndarray) -> Optional[CylinderParams]:
        axis = normalize(np.cross(normals[0], normals[1]))
        if axis is None:
            return None

        flat = points[:2] - np.outer(points[:2] @ axis, axis)
        closest = _closest_points_between_lines(flat[0], normals[0], flat[1], normals[1])
        if closest is None:
            return None

        axis_point = (closest[0] + closest[1]) / 2.0
        radius = float(np.mean(np.linalg.norm(flat - axis_point, axis=1)))
        if not np.isfinite(radius) or radius <= 0.0 or radius > self.max_radius:
            return None

        params = CylinderParams(axis_point=axis_point, axis_direction=axis, radius=radius)
        if not self.sample_agrees(points, normals, params):
            return None
        return params

    def distances(self, points: np.ndarray, params: CylinderParams) -> np.ndarray:
        return np.abs(np.linalg.norm(self._radial(points, params), axis=1) - params.radius)

    def surface_normals(self, points: np.ndarray, params: CylinderParams) -> np.ndarray:
        return _unit_rows(self._radial(points, params))

    def refit(self, points: np.ndarray, normals: np.ndarray,
              params: CylinderParams) -> Optional[CylinderParams]:
        if points.shape[0] < 4:
            return None

        # the axis is the direction the inlier normals are most orthogonal to
        usable = normals[np.linalg.norm(normals, axis=1) > 0.0]
        axis = params.axis_direction
        if usable.shape[0] >= 3:
            _, eigvecs = np.linalg.eigh(usable.T @ usable)
            axis = eigvecs[:, 0]

        basis_u, basis_v = orthonormal_basis(axis)
        coords = np.stack([points @ basis_u, points @ basis_v], axis=1)
        circle = _fit_circle_2d(coords)
        if circle is None:
            return None

        center_2d, radius = circle
        if radius > self.max_radius:
            return None
        axial = float(np.mean(points @ axis))
        axis_point = center_2d[0] * basis_u + center_2d[1] * basis_v + axial * axis
        return CylinderParams(axis_point=axis_point, axis_direction=axis, radius=radius)

    @staticmethod
    def _radial(points: np.ndarray, params: CylinderParams) -> np.ndarray:
        rel = points - params.axis_point
        return rel - np.outer(rel @ params.axis_direction, params.axis_direction)


SHAPE_MODELS = {
    CloudShapeType.PLANE: PlaneModel,
    CloudShapeType.SPHERE: SphereModel,
    CloudShapeType.CYLINDER: CylinderModel,
}


def create_shape_model(shape_type: CloudShapeType, distance_tolerance: float,
                       angle_tolerance: float, max_radius: float = math.inf) -> ShapeModel:
    return SHAPE_MODELS[shape_type](distance_tolerance, angle_tolerance, max_radius)


def _closest_points_between_lines(p1: np.ndarray, d1: np.ndarray, p2: np.ndarray,
                                  d2: np.ndarray) -> Optional[tuple]:
    """Closest points of the lines ``p1 + t d1`` and ``p2 + s d2``."""

    d1 = normalize(d1)
    d2 = normalize(d2)
    if d1 is None or d2 is None:
        return None

    w0 = p1 - p2
    b = float(d1 @ d2)
    d = float(d1 @ w0)
    e = float(d2 @ w0)
    denom = 1.0 - b * b
    if denom < 1e-10:
        return None

    t = (b * e - d) / denom
    s = (e - b * d) / denom
    return p1 + t * d1, p2 + s * d2


def _fit_circle_2d(coords: np.ndarray) -> Optional[tuple]:
    design = np.hstack([2.0 * coords, np.ones((coords.shape[0], 1))])
    target = np.sum(coords * coords, axis=1)
    solution, _, rank, _ = np.linalg.lstsq(design, target, rcond=None)
    if rank < 3:
        return None
    center = solution[:2]
    radius_sq = solution[2] + float(center @ center)
    if not np.isfinite(radius_sq) or radius_sq <= 0.0:
        return None
    return center, math.sqrt(radius_sq)


def _unit_rows(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    out = np.zeros_like(vectors)
    np.divide(vectors, norms, out=out, where=norms > 0.0)
    return out
