"""Parse the collection JSON manifest into a SynthData skeleton.

The manifest declares coordinate systems (with fragment and point counts and
camera records) and an image dictionary. No point data is read here.

Shape::

    {
      "type": "synth",
      "num_images": 1,
      "coordinate_systems": [
        {"id": 0, "bin_file_count": 1, "number_of_points": 2,
         "cameras": [{"image_id": 7, "position": [x, y, z],
                      "rotation": [qx, qy, qz], "aspect_ratio": 1.33,
                      "focal_length": 0.9, "distortion": [r1, r2]}]}
      ],
      "images": {"7": {"url": "http://x/7.jpg", "width": 640, "height": 480}}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from .model import (
    CameraField,
    CameraParameters,
    CoordinateSystem,
    ErrorCode,
    Image,
    PointCloud,
    SynthImportError,
)

logger = logging.getLogger(__name__)

COLLECTION_TYPE = "synth"


@dataclass
class Manifest:
    coordinate_systems: list[CoordinateSystem]
    images: dict[int, Image]
    num_images: int = 0
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


def _fail(detail: str) -> SynthImportError:
    return SynthImportError(ErrorCode.JSON_PARSING, detail)


def _require(d: Any, key: str, where: str) -> Any:
    if not isinstance(d, dict):
        raise _fail(f"{where} is not an object")
    if key not in d:
        raise _fail(f"{where} missing required key {key!r}")
    return d[key]


def _as_int(value: Any, where: str, minimum: int | None = None) -> int:
    # bool is an int subclass; a JSON true is never a valid count or id.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _fail(f"{where} must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise _fail(f"{where} must be an integer, got {value!r}")
    value = int(value)
    if minimum is not None and value < minimum:
        raise _fail(f"{where} must be >= {minimum}, got {value}")
    return value


def _as_floats(value: Any, n: int, where: str) -> list[float]:
    if not isinstance(value, list) or len(value) != n:
        raise _fail(f"{where} must be a list of {n} numbers")
    out = []
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise _fail(f"{where} contains a non-numeric value {v!r}")
        out.append(float(v))
    if not np.all(np.isfinite(out)):
        raise _fail(f"{where} contains a non-finite value")
    return out


def parse_image_map(raw: Any) -> dict[int, Image]:
    """Parse the ``images`` dictionary into id -> Image."""
    if not isinstance(raw, dict):
        raise _fail("images is not an object")
    images: dict[int, Image] = {}
    for key, entry in raw.items():
        try:
            image_id = int(key)
        except ValueError:
            raise _fail(f"image id {key!r} is not an integer") from None
        if image_id in images:
            raise _fail(f"duplicate image id {image_id} (key {key!r})")
        where = f"image {image_id}"
        url = _require(entry, "url", where)
        if not isinstance(url, str) or not url:
            raise _fail(f"{where} url must be a non-empty string")
        images[image_id] = Image(
            id=image_id,
            url=url,
            width=_as_int(entry.get("width", 0), f"{where} width", minimum=0),
            height=_as_int(entry.get("height", 0), f"{where} height", minimum=0),
        )
    return images


def parse_camera(raw: Any, cs_id: int, images: dict[int, Image]) -> CameraParameters:
    """Copy one camera record; any missing or malformed field is fatal."""
    where = f"camera in coordinate system {cs_id}"
    image_id = _as_int(_require(raw, "image_id", where), f"{where} image_id")
    where = f"camera for image {image_id} in coordinate system {cs_id}"
    if image_id not in images:
        raise _fail(f"{where} references an unknown image")

    cam = CameraParameters(coord_system_id=cs_id, image_id=image_id)
    px, py, pz = _as_floats(_require(raw, "position", where), 3, f"{where} position")
    rx, ry, rz = _as_floats(_require(raw, "rotation", where), 3, f"{where} rotation")
    cam[CameraField.POS_X], cam[CameraField.POS_Y], cam[CameraField.POS_Z] = px, py, pz
    cam[CameraField.ROT_X], cam[CameraField.ROT_Y], cam[CameraField.ROT_Z] = rx, ry, rz
    cam[CameraField.ASPECT_RATIO] = _as_floats(
        [_require(raw, "aspect_ratio", where)], 1, f"{where} aspect_ratio")[0]
    cam[CameraField.FOCAL_LENGTH] = _as_floats(
        [_require(raw, "focal_length", where)], 1, f"{where} focal_length")[0]
    cam.distortion_radius1, cam.distortion_radius2 = _as_floats(
        raw.get("distortion", [0.0, 0.0]), 2, f"{where} distortion")
    return cam


def parse_coordinate_system(raw: Any, images: dict[int, Image],
                            import_cameras: bool = True) -> CoordinateSystem:
    cs_id = _as_int(_require(raw, "id", "coordinate system"), "coordinate system id")
    where = f"coordinate system {cs_id}"
    bin_file_count = _as_int(_require(raw, "bin_file_count", where),
                             f"{where} bin_file_count", minimum=0)
    number_of_points = _as_int(_require(raw, "number_of_points", where),
                               f"{where} number_of_points", minimum=0)
    cameras_raw = _require(raw, "cameras", where)
    if not isinstance(cameras_raw, list):
        raise _fail(f"{where} cameras is not a list")

    cs = CoordinateSystem(
        id=cs_id,
        point_cloud=PointCloud(cs_id, bin_file_count, number_of_points),
    )
    if import_cameras:
        cs.cameras = [parse_camera(c, cs_id, images) for c in cameras_raw]
    return cs


def parse_manifest(text: str | bytes, import_cameras: bool = True) -> Manifest:
    """Parse the manifest text. Raises SynthImportError on any problem."""
    try:
        raw = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        raise _fail(f"invalid JSON: {e}") from None

    if not isinstance(raw, dict):
        raise SynthImportError(ErrorCode.WRONG_COLLECTION_TYPE,
                               f"top-level JSON is a {type(raw).__name__}, not an object")
    kind = raw.get("type", COLLECTION_TYPE)
    if not isinstance(kind, str) or kind.lower() != COLLECTION_TYPE:
        raise SynthImportError(ErrorCode.WRONG_COLLECTION_TYPE, f"collection type is {kind!r}")

    # Images first: camera records are checked against the image ids.
    images = parse_image_map(_require(raw, "images", "manifest"))

    systems_raw = _require(raw, "coordinate_systems", "manifest")
    if not isinstance(systems_raw, list):
        raise _fail("coordinate_systems is not a list")
    if not systems_raw:
        raise SynthImportError(ErrorCode.EMPTY, "manifest declares no coordinate systems")

    systems = [parse_coordinate_system(cs, images, import_cameras) for cs in systems_raw]
    ids = [cs.id for cs in systems]
    if len(ids) != len(set(ids)):
        raise _fail(f"duplicate coordinate system ids: {ids}")

    num_images = _as_int(raw.get("num_images", len(images)), "num_images", minimum=0)
    logger.debug("Manifest: %d coordinate systems, %d images", len(systems), len(images))
    return Manifest(coordinate_systems=systems, images=images,
                    num_images=num_images, raw=raw)
