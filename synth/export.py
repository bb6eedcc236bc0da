"""Write imported point clouds to binary PLY files."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from plyfile import PlyData, PlyElement

from .model import PointCloud, SynthData

VERTEX_DTYPE = [
    ("x", "f4"), ("y", "f4"), ("z", "f4"),
    ("red", "u1"), ("green", "u1"), ("blue", "u1"),
]


def write_point_cloud_ply(cloud: PointCloud, path: str | Path) -> Path:
    """Write one cloud as binary little-endian PLY. Returns the path."""
    path = Path(path)
    xyz, rgb = cloud.arrays()
    vertices = np.empty(xyz.shape[0], dtype=VERTEX_DTYPE)
    vertices["x"], vertices["y"], vertices["z"] = xyz[:, 0], xyz[:, 1], xyz[:, 2]
    vertices["red"], vertices["green"], vertices["blue"] = rgb[:, 0], rgb[:, 1], rgb[:, 2]

    path.parent.mkdir(parents=True, exist_ok=True)
    PlyData([PlyElement.describe(vertices, "vertex")], byte_order="<").write(str(path))
    return path


def export_synth(synth: SynthData, out_dir: str | Path) -> list[Path]:
    """Write coordsys_<id>.ply for every imported, non-empty cloud."""
    out_dir = Path(out_dir)
    written = []
    for cs in synth.coordinate_systems:
        if not cs.should_be_imported or not cs.point_cloud.points:
            continue
        written.append(write_point_cloud_ply(cs.point_cloud, out_dir / f"coordsys_{cs.id}.ply"))
    return written
