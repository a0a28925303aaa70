"""Primitive shape detection in unorganized point clouds.

This package finds planes, spheres and cylinders in 3D point clouds with an
octree-accelerated efficient RANSAC: per-point normals are estimated from
nearest neighbors, candidate shapes are built from spatially local minimal
samples, the best supported candidate is accepted and its points removed,
and duplicate detections are merged at the end.
"""

from .cloud_io import load_point_cloud, save_point_cloud_ply
from .config import DetectorConfig, MergeConfig, NormalConfig, ShapeFinderConfig, load_config
from .detect import (
    DetectionResult,
    detect_shapes_from_file,
    detect_shapes_from_points,
    detection_to_dict,
    save_detection_json,
)
from .detector import FoundShape, ShapeDetector
from .errors import InvalidConfiguration
from .finder import Shape, ShapeFinder, create_shape_finder
from .geometry import Cube, bounding_cube, fit_plane_svd
from .merge import MergeResult, ShapeMerger
from .neighbors import NearestNeighbor, NnResult
from .normals import PointNormal, SurfaceNormalEstimator
from .octree import IndexEntry, Octree, OctreeNode, Pool
from .shapes import (
    CloudShapeType,
    CylinderModel,
    CylinderParams,
    PlaneModel,
    PlaneParams,
    ShapeModel,
    SphereModel,
    SphereParams,
)
from .synthetic import (
    CylinderSpec,
    PlaneSpec,
    SphereSpec,
    generate_cylinder_point_cloud,
    generate_plane_grid,
    generate_sphere_point_cloud,
)

__all__ = [
    "CloudShapeType",
    "Cube",
    "CylinderModel",
    "CylinderParams",
    "CylinderSpec",
    "DetectionResult",
    "DetectorConfig",
    "FoundShape",
    "IndexEntry",
    "InvalidConfiguration",
    "MergeConfig",
    "MergeResult",
    "NearestNeighbor",
    "NnResult",
    "NormalConfig",
    "Octree",
    "OctreeNode",
    "PlaneModel",
    "PlaneParams",
    "PlaneSpec",
    "PointNormal",
    "Pool",
    "Shape",
    "ShapeDetector",
    "ShapeFinder",
    "ShapeFinderConfig",
    "ShapeMerger",
    "ShapeModel",
    "SphereModel",
    "SphereParams",
    "SphereSpec",
    "SurfaceNormalEstimator",
    "bounding_cube",
    "create_shape_finder",
    "detect_shapes_from_file",
    "detect_shapes_from_points",
    "detection_to_dict",
    "fit_plane_svd",
    "generate_cylinder_point_cloud",
    "generate_plane_grid",
    "generate_sphere_point_cloud",
    "load_config",
    "load_point_cloud",
    "save_detection_json",
    "save_point_cloud_ply",
]
