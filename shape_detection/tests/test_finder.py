"""End-to-end tests for the shape finder."""

from __future__ import annotations

import unittest

import numpy as np

from shape_detection.config import DetectorConfig, NormalConfig, ShapeFinderConfig
from shape_detection.detect import detect_shapes_from_points
from shape_detection.errors import InvalidConfiguration
from shape_detection.finder import ShapeFinder, create_shape_finder
from shape_detection.geometry import Cube
from shape_detection.shapes import CloudShapeType
from shape_detection.synthetic import PlaneSpec, SphereSpec, generate_plane_grid, generate_sphere_point_cloud


def plane_and_sphere_cloud() -> np.ndarray:
    plane = PlaneSpec(
        center=np.array([1.0, 0.5, 0.0]),
        normal=np.array([0.0, 0.0, 1.0]),
        rows=10,
        cols=20,
        spacing=0.1,
    )
    sphere = SphereSpec(center=np.array([4.0, 0.5, 1.5]), radius=0.6)
    return np.vstack([
        generate_plane_grid(plane, noise_std=0.002, random_state=1),
        generate_sphere_point_cloud(sphere, 200, noise_std=0.002, random_state=2, method="fibonacci"),
    ])


def plane_and_sphere_config(num_plane: int = 5, num_neighbors: int = 12) -> ShapeFinderConfig:
    return ShapeFinderConfig(
        shapes=["plane", "sphere"],
        normals=NormalConfig(num_plane=num_plane, num_neighbors=num_neighbors, max_distance_neighbor=1.0),
        detector=DetectorConfig(
            min_support=50,
            distance_tolerance=0.05,
            angle_tolerance_degrees=30.0,
            draws_per_round=60,
            max_rounds=10,
            seed=1234,
        ),
    )


class TestShapeFinder(unittest.TestCase):
    def test_finds_plane_and_sphere(self) -> None:
        cloud = plane_and_sphere_cloud()

        for num_plane, num_neighbors in ((3, 10), (3, 15), (4, 10), (5, 12), (5, 15)):
            finder = create_shape_finder(plane_and_sphere_config(num_plane, num_neighbors))
            finder.process(cloud)

            found = finder.get_found()
            self.assertEqual(len(found), 2)
            self.assertEqual({shape.type for shape in found}, {CloudShapeType.PLANE, CloudShapeType.SPHERE})
            for shape in found:
                self.assertGreaterEqual(len(shape.points), 190)
                self.assertEqual(len(shape.points), len(shape.indexes))
            self.assertLess(len(finder.get_unmatched([])), 10)

            sphere = next(s for s in found if s.type is CloudShapeType.SPHERE)
            np.testing.assert_allclose(sphere.parameters.center, [4.0, 0.5, 1.5], atol=0.02)
            self.assertAlmostEqual(sphere.parameters.radius, 0.6, delta=0.02)

    def test_points_reference_the_callers_cloud(self) -> None:
        cloud = plane_and_sphere_cloud()
        finder = create_shape_finder(plane_and_sphere_config())

        finder.process(cloud)

        for shape in finder.get_found():
            for point, index in zip(shape.points, shape.indexes):
                self.assertTrue(np.shares_memory(point, cloud))
                np.testing.assert_array_equal(point, cloud[index])

    def test_unmatched_complements_found(self) -> None:
        cloud = plane_and_sphere_cloud()
        finder = create_shape_finder(plane_and_sphere_config())
        finder.process(cloud)

        matched = [i for shape in finder.get_found() for i in shape.indexes]
        unmatched = finder.get_unmatched_indexes().tolist()

        self.assertEqual(len(matched), len(set(matched)))
        self.assertEqual(sorted(matched + unmatched), list(range(cloud.shape[0])))
        appended = finder.get_unmatched([np.zeros(3)])
        self.assertEqual(len(appended), len(unmatched) + 1)

    def test_explicit_bounding_box(self) -> None:
        cloud = plane_and_sphere_cloud()
        finder = create_shape_finder(plane_and_sphere_config())
        box = Cube(np.full(3, -10.0), np.full(3, 10.0))

        finder.process(cloud, box)

        self.assertEqual(len(finder.get_found()), 2)
        np.testing.assert_array_equal(finder.bounding_box.lower, box.lower)

    def test_empty_cloud(self) -> None:
        finder = create_shape_finder(plane_and_sphere_config())

        finder.process(np.zeros((0, 3)))

        self.assertEqual(finder.get_found(), [])
        self.assertEqual(finder.get_unmatched([]), [])

    def test_shapes_list_matches_detector_models(self) -> None:
        finder = create_shape_finder(plane_and_sphere_config())

        self.assertEqual(finder.get_shapes_list(), [CloudShapeType.PLANE, CloudShapeType.SPHERE])
        with self.assertRaises(InvalidConfiguration):
            ShapeFinder(finder.surface_normals, finder.detector, finder.merger, ["plane"])

    def test_detect_shapes_from_points(self) -> None:
        cloud = plane_and_sphere_cloud()

        result = detect_shapes_from_points(cloud, plane_and_sphere_config())
        payload = result.to_dict()

        self.assertEqual(payload["total_points"], 400)
        self.assertEqual(len(payload["shapes"]), 2)
        self.assertGreater(payload["matched_ratio"], 0.97)
        self.assertEqual(payload["config"]["shapes"], ["plane", "sphere"])
        types = sorted(shape["type"] for shape in payload["shapes"])
        self.assertEqual(types, ["plane", "sphere"])


if __name__ == "__main__":
    unittest.main()
