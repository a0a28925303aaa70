"""Reading and writing point clouds as PLY files."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
from plyfile import PlyData, PlyElement


def load_point_cloud(path: Path | str, fields: Sequence[str] = ("x", "y", "z")) -> np.ndarray:
    """Load a point cloud from a PLY file.

    Parameters
    ----------
    path:
        Path to the ``.ply`` file containing a vertex element.
    fields:
        Names of the vertex fields to extract. Defaults to the ``x``,
        ``y``, and ``z`` coordinates.

    Returns
    -------
    numpy.ndarray
        Array with shape ``(N, len(fields))`` containing the requested
        vertex attributes as ``float64``.

    Raises
    ------
    ValueError
        If the file has no vertex element or lacks a requested field.
    """

    ply = PlyData.read(str(path))
    try:
        vertex_data = ply["vertex"].data
    except KeyError as exc:
        raise ValueError(
            f"PLY file '{path}' does not contain a vertex element"
        ) from exc
    missing = [field for field in fields if field not in vertex_data.dtype.names]
    if missing:
        raise ValueError(
            f"PLY file '{path}' is missing required vertex fields: {missing}"
        )

    stacked = np.vstack([vertex_data[field] for field in fields]).T
    return stacked.astype(np.float64, copy=False)


def save_point_cloud_ply(path: Path | str, points: np.ndarray) -> None:
    """Write a point cloud array to a binary little-endian PLY file."""

    points = np.asarray(points, dtype=np.float32)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError("points must have shape (N, 3)")

    vertex_data = np.empty(points.shape[0], dtype=[("x", "f4"), ("y", "f4"), ("z", "f4")])
    vertex_data["x"] = points[:, 0]
    vertex_data["y"] = points[:, 1]
    vertex_data["z"] = points[:, 2]

    element = PlyElement.describe(vertex_data, "vertex")
    ply = PlyData([element], text=False)
    ply.write(str(path))
