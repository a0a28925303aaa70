"""Unit tests for the primitive shape models."""

from __future__ import annotations

import math
import unittest

import numpy as np

from shape_detection.shapes import CylinderModel, CylinderParams, PlaneModel, SphereModel
from shape_detection.synthetic import (
    CylinderSpec,
    SphereSpec,
    generate_cylinder_point_cloud,
    generate_sphere_point_cloud,
)

TOLERANCE = 0.01
ANGLE = math.radians(10)


class TestPlaneModel(unittest.TestCase):
    def setUp(self) -> None:
        self.model = PlaneModel(TOLERANCE, ANGLE)

    def test_fit_sample(self) -> None:
        points = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]])
        normals = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, -1.0], [0.0, 0.0, 1.0]])

        params = self.model.fit_sample(points, normals)

        self.assertIsNotNone(params)
        self.assertAlmostEqual(abs(float(params.normal[2])), 1.0)
        queries = np.array([[5.0, -3.0, 1.005], [0.0, 0.0, 1.5]])
        np.testing.assert_allclose(self.model.distances(queries, params), [0.005, 0.5], atol=1e-12)

    def test_rejects_disagreeing_normals(self) -> None:
        points = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]])
        normals = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        self.assertIsNone(self.model.fit_sample(points, normals))

    def test_rejects_collinear_sample(self) -> None:
        points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [2.0, 2.0, 2.0]])
        normals = np.tile([0.0, 0.0, 1.0], (3, 1))
        self.assertIsNone(self.model.fit_sample(points, normals))

    def test_inlier_mask_ignores_undetermined_normals(self) -> None:
        points = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [0.0, 1.0, 1.0]])
        normals = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
        params = self.model.refit(points, normals, None)

        mask = self.model.inlier_mask(points, normals, params)

        np.testing.assert_array_equal(mask, [True, False, False])


class TestSphereModel(unittest.TestCase):
    def setUp(self) -> None:
        self.model = SphereModel(TOLERANCE, ANGLE)
        self.center = np.array([1.0, 2.0, 3.0])

    def test_fit_sample(self) -> None:
        directions = np.eye(3)
        points = self.center + 2.0 * directions
        normals = directions * np.array([[-1.0], [1.0], [1.0]])

        params = self.model.fit_sample(points, normals)

        self.assertIsNotNone(params)
        np.testing.assert_allclose(params.center, self.center, atol=1e-9)
        self.assertAlmostEqual(params.radius, 2.0)

    def test_rejects_parallel_normals(self) -> None:
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
        normals = np.tile([0.0, 0.0, 1.0], (3, 1))
        self.assertIsNone(self.model.fit_sample(points, normals))

    def test_rejects_radius_above_limit(self) -> None:
        model = SphereModel(TOLERANCE, ANGLE, max_radius=1.0)
        directions = np.eye(3)
        points = self.center + 2.0 * directions
        self.assertIsNone(model.fit_sample(points, directions))

    def test_refit(self) -> None:
        spec = SphereSpec(center=self.center, radius=0.75)
        points = generate_sphere_point_cloud(spec, 60, random_state=3)

        params = self.model.refit(points, np.zeros_like(points), None)

        np.testing.assert_allclose(params.center, self.center, atol=1e-9)
        self.assertAlmostEqual(params.radius, 0.75)
        self.assertLess(float(np.max(self.model.distances(points, params))), 1e-9)


class TestCylinderModel(unittest.TestCase):
    def setUp(self) -> None:
        self.model = CylinderModel(TOLERANCE, ANGLE)

    def test_fit_sample(self) -> None:
        points = np.array([[0.5, 0.0, 1.0], [0.0, 0.5, -1.0], [-0.5, 0.0, 0.3]])
        normals = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])

        params = self.model.fit_sample(points, normals)

        self.assertIsNotNone(params)
        self.assertAlmostEqual(abs(float(params.axis_direction[2])), 1.0)
        self.assertAlmostEqual(params.radius, 0.5)
        np.testing.assert_allclose(self.model.distances(points, params), 0.0, atol=1e-12)

    def test_refit(self) -> None:
        spec = CylinderSpec(
            center=np.array([0.2, -0.1, 0.3]),
            axis_direction=np.array([0.0, 1.0, 1.0]),
            radius=0.4,
            height=2.0,
        )
        points = generate_cylinder_point_cloud(spec, 200, noise_std=0.0, random_state=1)
        axis = spec.axis_direction / np.linalg.norm(spec.axis_direction)
        rel = points - spec.center
        normals = rel - np.outer(rel @ axis, axis)
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        rough = self.model.fit_sample(points[:3], normals[:3])

        params = self.model.refit(points, normals, rough)

        self.assertGreater(abs(float(params.axis_direction @ axis)), 0.9999)
        self.assertAlmostEqual(params.radius, 0.4, places=6)
        self.assertTrue(np.all(self.model.inlier_mask(points, normals, params)))

    def test_refit_reestimates_axis_from_normals(self) -> None:
        spec = CylinderSpec(center=np.zeros(3), axis_direction=np.array([0.0, 0.0, 1.0]), radius=0.5, height=1.0)
        points = generate_cylinder_point_cloud(spec, 100, noise_std=0.0, random_state=6)
        normals = points * np.array([1.0, 1.0, 0.0])
        normals /= np.linalg.norm(normals, axis=1, keepdims=True)
        wrong = CylinderParams(axis_point=np.zeros(3), axis_direction=np.array([1.0, 0.0, 0.0]), radius=0.5)

        params = self.model.refit(points, normals, wrong)

        self.assertGreater(abs(float(params.axis_direction[2])), 0.9999)
        self.assertAlmostEqual(params.radius, 0.5, places=6)


if __name__ == "__main__":
    unittest.main()
