"""Acceptance checks for an imported synth.

Usage:  run_validation(synth)  after SynthImporter.run() reports ready.
"""
from __future__ import annotations

import numpy as np

from .model import ErrorCode, SynthData
from .transforms import is_valid_se3


def run_validation(synth: SynthData, verbose: bool = True) -> bool:
    """Run acceptance gates. Returns True if all pass."""
    fails = 0

    def check(ok: bool, name: str, detail: str = ""):
        nonlocal fails
        tag = "PASS" if ok else "FAIL"
        if not ok:
            fails += 1
        if verbose:
            print(f"  [{tag}] {name}" + (f" - {detail}" if detail else ""))

    # -- Status --
    if verbose:
        print("\n-- Status --")
    check(synth.ready and synth.error is ErrorCode.NO_ERROR, "Ready",
          f"error={synth.error.name}")
    check(bool(synth.coordinate_systems), "Coordinate systems",
          str(len(synth.coordinate_systems)))

    # -- Point clouds --
    if verbose:
        print("\n-- Point clouds --")
    for cs in synth.coordinate_systems:
        if not cs.should_be_imported:
            continue
        cloud = cs.point_cloud
        if not cloud.points:
            # Nothing loaded for this one (point import disabled or declared empty).
            continue
        check(cloud.is_complete, f"Point count cs={cs.id}",
              f"{len(cloud.points):,}/{cloud.number_of_points:,}")
        xyz, _ = cloud.arrays()
        check(bool(np.all(np.isfinite(xyz))), f"Finite positions cs={cs.id}")

    # -- Cameras --
    if verbose:
        print("\n-- Cameras --")
    cameras = [cam for cs in synth.coordinate_systems for cam in cs.cameras]
    check(all(cam.image_id in synth.images for cam in cameras), "Camera image references",
          f"{len(cameras)} cameras")
    # Loose tolerance: rotations come from float32-rounded quaternions.
    check(all(is_valid_se3(cam.pose_matrix(), atol=1e-5) for cam in cameras), "Camera poses SE3")
    check(all(np.allclose(cam.pose_matrix() @ cam.view_matrix(), np.eye(4), atol=1e-9)
              for cam in cameras), "Pose/view inverse")

    # -- Images --
    saved = [img for img in synth.images.values() if img.local_path is not None]
    if saved:
        if verbose:
            print("\n-- Images --")
        check(all(img.local_path.is_file() for img in saved), "Images on disk",
              f"{len(saved)}/{len(synth.images)}")

    # -- Summary --
    if verbose:
        print(f"\n  {'PASS' if fails == 0 else 'FAIL'}: {fails} failures")
    return fails == 0
