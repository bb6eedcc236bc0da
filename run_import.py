"""Import a synth from the web service into a local directory.

Resolves the collection, downloads its manifest, point-cloud fragments and
images, then validates the result and optionally writes PLY files.

Usage:
    python run_import.py --synth <cid or viewer URL>
    python run_import.py --synth <cid> --output data/synths/demo --ply
    python run_import.py --synth <cid> --no-points            # cameras + images only
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from synth.config import load_config
from synth.export import export_synth
from synth.logging_config import setup_logging
from synth.model import ImportStatus, SynthData, SynthImportError
from synth.orchestrator import import_synth
from synth.validate import run_validation
from synth.webservice import parse_collection_id

CONFIG_PATH = "synth.yaml"


def _print_header(locator: str) -> None:
    print("=" * 70)
    print("SYNTH IMPORT")
    print("=" * 70)
    print(f"  Source: {locator}")


def _print_status(status: ImportStatus) -> None:
    """Print one line per published transition."""
    if status.ready:
        print("  [DONE] ready")
    elif status.failed:
        print(f"  [FAIL] {status.error.name}: {status.error.description}"
              + (f" ({status.detail})" if status.detail else ""))
    else:
        print(f"  [....] {status.progress.label}")


def _print_summary(synth: SynthData, output_path: Path, total_time_s: float) -> None:
    n_points = sum(len(cs.point_cloud.points) for cs in synth.coordinate_systems)
    n_cameras = sum(len(cs.cameras) for cs in synth.coordinate_systems)
    n_saved = sum(1 for img in synth.images.values() if img.local_path is not None)

    print(f"\n-- Summary --")
    print(f"  Wall time: {total_time_s:.1f}s")
    print(f"  Collection: {synth.collection_id}")
    print(f"  Coordinate systems: {len(synth.coordinate_systems)}")
    for cs in synth.coordinate_systems:
        flag = "" if cs.should_be_imported else " (skipped)"
        print(f"    cs={cs.id}: {len(cs.point_cloud.points):,} pts, "
              f"{cs.point_cloud.bin_file_count} fragments, {len(cs.cameras)} cameras{flag}")
    print(f"  Points: {n_points:,}")
    print(f"  Cameras: {n_cameras}")
    print(f"  Images saved: {n_saved}/{synth.num_images} -> {output_path}")


def default_output_dir(locator: str, save_dir: Path) -> Path:
    """save_dir/<cid>; unparseable locators fall back to save_dir/synth."""
    try:
        return save_dir / parse_collection_id(locator)
    except SynthImportError:
        # import_synth reports the locator error itself.
        return save_dir / "synth"


def main():
    parser = argparse.ArgumentParser(description="Synth importer")
    parser.add_argument("--synth", required=True, help="Collection id or viewer URL with cid=")
    parser.add_argument("--config", default=CONFIG_PATH)
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Directory for images and exports (default: defaults.save_dir/<cid>)",
    )
    parser.add_argument("--no-points", action="store_true", help="Skip point-cloud fragments")
    parser.add_argument("--no-cameras", action="store_true", help="Skip cameras and images")
    parser.add_argument("--ply", action="store_true", help="Write coordsys_<id>.ply per cloud")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", default=None)
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)
    _print_header(args.synth)

    cfg = load_config(args.config)
    if args.output is not None:
        output_path = Path(args.output)
    else:
        output_path = default_output_dir(args.synth, cfg.defaults.save_dir)

    print("\n-- Importing --")
    wall_start_s = time.perf_counter()
    status, synth = import_synth(
        args.synth,
        output_path,
        cfg,
        import_point_clouds=False if args.no_points else None,
        import_camera_parameters=False if args.no_cameras else None,
        on_status=_print_status,
    )
    total_time_s = time.perf_counter() - wall_start_s

    if not status.ready:
        print(f"\n  Import failed: {status.error.description}")
        sys.exit(1)

    _print_summary(synth, output_path, total_time_s)

    print("\n-- Validation --")
    ok = run_validation(synth)

    if args.ply:
        print("\n-- PLY export --")
        for path in export_synth(synth, output_path):
            print(f"  {path}")

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
