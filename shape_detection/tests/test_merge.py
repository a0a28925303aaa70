"""Unit tests for merging duplicate detections."""

from __future__ import annotations

import math
import unittest

import numpy as np

from shape_detection.detector import FoundShape
from shape_detection.errors import InvalidConfiguration
from shape_detection.merge import ShapeMerger
from shape_detection.normals import PointNormal
from shape_detection.shapes import PlaneModel, PlaneParams, SphereModel, SphereParams
from shape_detection.synthetic import PlaneSpec, SphereSpec, generate_plane_grid, generate_sphere_point_cloud

UP = np.array([0.0, 0.0, 1.0])


def _scene():
    floor = generate_plane_grid(PlaneSpec(center=np.zeros(3), normal=UP, rows=10, cols=10, spacing=0.1))
    ceiling = generate_plane_grid(
        PlaneSpec(center=np.array([0.0, 0.0, 5.0]), normal=UP, rows=10, cols=10, spacing=0.1)
    )
    ball_center = np.array([10.0, 0.0, 0.0])
    ball = generate_sphere_point_cloud(SphereSpec(center=ball_center, radius=1.0), 50, method="fibonacci")

    point_normals = []
    for points, normals in (
        (floor, np.tile(UP, (100, 1))),
        (ceiling, np.tile(UP, (100, 1))),
        (ball, ball - ball_center),
    ):
        for point, normal in zip(points, normals):
            point_normals.append(PointNormal(point=point, index=len(point_normals), normal=normal))
    return point_normals


def _plane(height: float) -> PlaneParams:
    return PlaneParams(point=np.array([0.0, 0.0, height]), normal=UP.copy())


BALL = SphereParams(center=np.array([10.0, 0.0, 0.0]), radius=1.0)


class TestShapeMerger(unittest.TestCase):
    def setUp(self) -> None:
        self.points = _scene()
        self.merger = ShapeMerger([
            PlaneModel(0.01, math.radians(10)),
            SphereModel(0.01, math.radians(10)),
        ])

    def indexes(self, shape: FoundShape) -> list:
        return shape.indexes().tolist()

    def test_merges_split_plane(self) -> None:
        large = FoundShape(0, _plane(0.0), self.points[0:60])
        small = FoundShape(0, _plane(0.001), self.points[60:100])

        result = self.merger.merge([small, large], len(self.points))

        self.assertEqual(len(result.shapes), 1)
        self.assertEqual(self.indexes(result.shapes[0]), list(range(100)))
        self.assertIs(result.shapes[0].params, large.params)
        np.testing.assert_array_equal(result.unmatched, np.arange(100, 250))
        self.assertIs(self.merger.output, result)

    def test_groups_are_transitive(self) -> None:
        pieces = [
            FoundShape(0, _plane(0.0), self.points[0:30]),
            FoundShape(0, _plane(0.0), self.points[30:60]),
            FoundShape(0, _plane(0.0), self.points[60:100]),
        ]

        result = self.merger.merge(pieces, len(self.points))

        self.assertEqual(len(result.shapes), 1)
        self.assertEqual(result.shapes[0].support(), 100)

    def test_keeps_distinct_planes(self) -> None:
        floor = FoundShape(0, _plane(0.0), self.points[0:100])
        ceiling = FoundShape(0, _plane(5.0), self.points[100:200])

        result = self.merger.merge([floor, ceiling], len(self.points))

        self.assertEqual([self.indexes(s) for s in result.shapes], [list(range(100)), list(range(100, 200))])

    def test_does_not_merge_different_types(self) -> None:
        flat_ball = SphereParams(center=np.array([0.0, 0.0, 1000.0]), radius=1000.0)
        plane = FoundShape(0, _plane(0.0), self.points[0:50])
        sphere = FoundShape(1, flat_ball, self.points[50:100])

        result = self.merger.merge([plane, sphere], len(self.points))

        self.assertEqual(len(result.shapes), 2)
        self.assertEqual([s.shape_index for s in result.shapes], [0, 1])

    def test_shared_points_go_to_first_shape(self) -> None:
        plane = FoundShape(0, _plane(0.0), self.points[0:60])
        sphere = FoundShape(1, BALL, self.points[40:60] + self.points[200:250])
        emptied = FoundShape(1, BALL, self.points[10:20])

        result = self.merger.merge([plane, sphere, emptied], len(self.points))

        self.assertEqual(len(result.shapes), 2)
        self.assertEqual(self.indexes(result.shapes[0]), list(range(60)))
        self.assertEqual(self.indexes(result.shapes[1]), list(range(200, 250)))
        np.testing.assert_array_equal(result.unmatched, np.arange(60, 200))

    def test_merge_is_idempotent_and_keeps_points(self) -> None:
        candidates = [
            FoundShape(0, _plane(0.0), self.points[0:70]),
            FoundShape(1, BALL, self.points[200:250]),
            FoundShape(0, _plane(5.0), self.points[100:200]),
            FoundShape(0, _plane(0.002), self.points[70:100]),
        ]
        claimed = {p.index for c in candidates for p in c.points}

        first = self.merger.merge(candidates, len(self.points))
        second = self.merger.merge(first.shapes, len(self.points))

        self.assertEqual(len(first.shapes), 3)
        self.assertEqual({i for s in first.shapes for i in self.indexes(s)}, claimed)
        self.assertEqual(
            [(s.shape_index, self.indexes(s)) for s in first.shapes],
            [(s.shape_index, self.indexes(s)) for s in second.shapes],
        )
        for before, after in zip(first.shapes, second.shapes):
            self.assertIs(before.params, after.params)
        np.testing.assert_array_equal(first.unmatched, second.unmatched)

    def test_rejects_unknown_shape_index(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            self.merger.merge([FoundShape(5, _plane(0.0), self.points[0:10])], len(self.points))

    def test_rejects_invalid_threshold(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            ShapeMerger([PlaneModel(0.01, 0.1)], overlap_threshold=0.0)


if __name__ == "__main__":
    unittest.main()
