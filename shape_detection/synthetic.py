"""Synthetic point clouds of primitive shapes for tests and demos."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .geometry import orthonormal_basis


@dataclass
class PlaneSpec:
    """A rectangular grid of ``rows x cols`` points on a plane."""

    center: np.ndarray
    normal: np.ndarray
    rows: int
    cols: int
    spacing: float


@dataclass
class SphereSpec:
    center: np.ndarray
    radius: float


@dataclass
class CylinderSpec:
    """Defines the geometry of a synthetic cylinder."""

    center: np.ndarray
    axis_direction: np.ndarray
    radius: float
    height: float


def generate_plane_grid(
    spec: PlaneSpec,
    noise_std: float = 0.0,
    random_state: Optional[int] = None,
) -> np.ndarray:
    """Generate a regular grid on a plane, perturbed by Gaussian noise."""

    if spec.rows <= 0 or spec.cols <= 0:
        raise ValueError("rows and cols must be positive")

    rng = np.random.default_rng(random_state)
    basis_u, basis_v = orthonormal_basis(spec.normal)

    u = (np.arange(spec.cols) - (spec.cols - 1) / 2.0) * spec.spacing
    v = (np.arange(spec.rows) - (spec.rows - 1) / 2.0) * spec.spacing
    uu, vv = np.meshgrid(u, v)
    points = (
        np.asarray(spec.center, dtype=np.float64)
        + uu.reshape(-1, 1) * basis_u
        + vv.reshape(-1, 1) * basis_v
    )
    if noise_std > 0:
        points += rng.normal(scale=noise_std, size=points.shape)
    return points


def generate_sphere_point_cloud(
    spec: SphereSpec,
    num_points: int,
    noise_std: float = 0.0,
    random_state: Optional[int] = None,
    method: str = "random",
) -> np.ndarray:
    """Sample points on the surface of a sphere.

    ``method`` is ``"random"`` for independent uniform samples or
    ``"fibonacci"`` for an evenly spread spiral lattice.
    """

    if num_points <= 0:
        raise ValueError("num_points must be positive")

    rng = np.random.default_rng(random_state)
    if method == "random":
        phi = rng.uniform(0.0, 2.0 * np.pi, size=num_points)
        cos_theta = rng.uniform(-1.0, 1.0, size=num_points)
    elif method == "fibonacci":
        steps = np.arange(num_points) + 0.5
        phi = np.pi * (1.0 + np.sqrt(5.0)) * steps
        cos_theta = 1.0 - 2.0 * steps / num_points
    else:
        raise ValueError(f"Unknown sampling method: {method}")
    sin_theta = np.sqrt(1.0 - cos_theta ** 2)

    directions = np.stack([sin_theta * np.cos(phi), sin_theta * np.sin(phi), cos_theta], axis=1)
    points = np.asarray(spec.center, dtype=np.float64) + spec.radius * directions
    if noise_std > 0:
        points += rng.normal(scale=noise_std, size=points.shape)
    return points


def generate_cylinder_point_cloud(
    spec: CylinderSpec,
    num_points: int,
    noise_std: float = 0.01,
    outlier_ratio: float = 0.0,
    outlier_bounds: tuple = (-2.0, 2.0),
    random_state: Optional[int] = None,
) -> np.ndarray:
    """Generate a noisy point cloud of a cylinder with optional outliers."""

    if num_points <= 0:
        raise ValueError("num_points must be positive")
    if not (0.0 <= outlier_ratio < 1.0):
        raise ValueError("outlier_ratio must be in [0, 1)")

    rng = np.random.default_rng(random_state)

    axis_dir = spec.axis_direction / np.linalg.norm(spec.axis_direction)

    n_inliers = int(num_points * (1.0 - outlier_ratio))
    n_outliers = num_points - n_inliers

    angles = rng.uniform(0.0, 2.0 * np.pi, size=n_inliers)
    axial_positions = rng.uniform(-spec.height / 2.0, spec.height / 2.0, size=n_inliers)

    a, b = orthonormal_basis(axis_dir)
    circle_points = (
        spec.radius * np.cos(angles)[:, None] * a
        + spec.radius * np.sin(angles)[:, None] * b
    )
    axial_vector = axial_positions[:, None] * axis_dir
    inliers = np.asarray(spec.center, dtype=np.float64) + circle_points + axial_vector
    if noise_std > 0:
        inliers += rng.normal(scale=noise_std, size=inliers.shape)

    if n_outliers > 0:
        low, high = outlier_bounds
        outliers = rng.uniform(low=low, high=high, size=(n_outliers, 3))
        points = np.vstack([inliers, outliers])
    else:
        points = inliers

    rng.shuffle(points)
    return points
