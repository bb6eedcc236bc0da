"""Fetch-side naming and decode-side loading of point-cloud fragments.

A coordinate system's cloud is split into ``bin_file_count`` fragments named
``points_{m}_{n}.bin`` under the collection root. Two fragment layouts are
understood:

SIMPLE      compressed-int N, then N x {3 x BE float32 position, 3 x uint8 RGB}
PHOTOSYNTH  BE uint16 version 1.0, compressed-int image count, per image a
            compressed-int range count followed by that many pairs of
            compressed ints (skipped), then compressed-int N and
            N x {3 x BE float32 position, BE uint16 RGB565}
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterator

import numpy as np

from .binary_codec import (
    encode_big_endian_float32,
    encode_big_endian_uint16,
    encode_compressed_int,
    read_big_endian_uint16,
    read_compressed_int,
)
from .model import CoordinateSystem, ErrorCode, Point, SynthImportError

logger = logging.getLogger(__name__)

# Far above any real fragment; guards against allocating for garbage counts.
MAX_POINTS_PER_FRAGMENT = 50_000_000
MAX_IMAGES_PER_FRAGMENT = 1_000_000
PHOTOSYNTH_VERSION = (1, 0)

# Fixed-size point records following the count.
SIMPLE_POINT_DTYPE = np.dtype([("xyz", ">f4", (3,)), ("rgb", "u1", (3,))])
PHOTOSYNTH_POINT_DTYPE = np.dtype([("xyz", ">f4", (3,)), ("rgb565", ">u2")])


class FragmentLayout(Enum):
    SIMPLE = "simple"
    PHOTOSYNTH = "photosynth"


@dataclass(frozen=True)
class FragmentRequest:
    coord_system_id: int
    index: int
    url: str

    @property
    def name(self) -> str:
        return fragment_name(self.coord_system_id, self.index)


def fragment_name(cs_id: int, index: int) -> str:
    return f"points_{cs_id}_{index}.bin"


def fragment_url(collection_root: str, cs_id: int, index: int) -> str:
    root = collection_root if collection_root.endswith("/") else collection_root + "/"
    return root + fragment_name(cs_id, index)


# -- Decoding --

def _truncated(what: str) -> SynthImportError:
    return SynthImportError(ErrorCode.READING_BIN_DATA, f"stream ended while reading {what}")


def _read_count(stream: BinaryIO, what: str, limit: int) -> int:
    n, ok = read_compressed_int(stream)
    if not ok:
        raise _truncated(what)
    if n > limit:
        raise SynthImportError(ErrorCode.BIN_DATA_FORMAT, f"{what} {n} exceeds limit {limit}")
    return n


def _read_records(stream: BinaryIO, n: int, dtype: np.dtype) -> np.ndarray:
    size = n * dtype.itemsize
    data = stream.read(size)
    if len(data) < size:
        raise _truncated(f"{n} point records")
    return np.frombuffer(data, dtype=dtype, count=n)


def _rgb565_to_rgb(color: int) -> tuple[int, int, int]:
    r = (color >> 11) & 0x1F
    g = (color >> 5) & 0x3F
    b = color & 0x1F
    # Scale 5/6-bit channels to the full 8-bit range.
    return (r * 255 + 15) // 31, (g * 255 + 31) // 63, (b * 255 + 15) // 31


def _decode_simple(stream: BinaryIO) -> list[Point]:
    n = _read_count(stream, "point count", MAX_POINTS_PER_FRAGMENT)
    records = _read_records(stream, n, SIMPLE_POINT_DTYPE)
    return [Point(x, y, z, r, g, b)
            for (x, y, z), (r, g, b) in zip(records["xyz"].tolist(), records["rgb"].tolist())]


def _decode_photosynth(stream: BinaryIO) -> list[Point]:
    major, ok_major = read_big_endian_uint16(stream)
    minor, ok_minor = read_big_endian_uint16(stream)
    if not (ok_major and ok_minor):
        raise _truncated("version header")
    if (major, minor) != PHOTOSYNTH_VERSION:
        raise SynthImportError(ErrorCode.BIN_DATA_FORMAT,
                               f"unsupported fragment version {major}.{minor}")

    n_images = _read_count(stream, "image count", MAX_IMAGES_PER_FRAGMENT)
    for _ in range(n_images):
        n_ranges = _read_count(stream, "range count", MAX_POINTS_PER_FRAGMENT)
        for _ in range(n_ranges):
            # Per-image point ranges; not needed to rebuild the cloud.
            _, ok_a = read_compressed_int(stream)
            _, ok_b = read_compressed_int(stream)
            if not (ok_a and ok_b):
                raise _truncated("image range")

    n = _read_count(stream, "point count", MAX_POINTS_PER_FRAGMENT)
    records = _read_records(stream, n, PHOTOSYNTH_POINT_DTYPE)
    return [Point(x, y, z, *_rgb565_to_rgb(color))
            for (x, y, z), color in zip(records["xyz"].tolist(), records["rgb565"].tolist())]

def decode_fragment(payload: bytes, layout: FragmentLayout = FragmentLayout.SIMPLE) -> list[Point]:
    """Decode one fragment payload into points.

    Raises SynthImportError with READING_BIN_DATA on a short stream and
    BIN_DATA_FORMAT on structurally invalid content (bad counts, bad version,
    trailing bytes).
    """
    stream = io.BytesIO(payload)
    if layout is FragmentLayout.PHOTOSYNTH:
        points = _decode_photosynth(stream)
    else:
        points = _decode_simple(stream)
    leftover = len(payload) - stream.tell()
    if leftover:
        raise SynthImportError(ErrorCode.BIN_DATA_FORMAT,
                               f"{leftover} trailing bytes after {len(points)} points")
    return points


def _rgb_to_rgb565(r: int, g: int, b: int) -> int:
    return ((r * 31 + 127) // 255) << 11 | ((g * 63 + 127) // 255) << 5 | ((b * 31 + 127) // 255)


def encode_fragment(points: list[Point], layout: FragmentLayout = FragmentLayout.SIMPLE) -> bytes:
    """Inverse of decode_fragment. PHOTOSYNTH output carries no image ranges."""
    out = bytearray()
    if layout is FragmentLayout.PHOTOSYNTH:
        out += encode_big_endian_uint16(PHOTOSYNTH_VERSION[0])
        out += encode_big_endian_uint16(PHOTOSYNTH_VERSION[1])
        out += encode_compressed_int(0)
    out += encode_compressed_int(len(points))
    for p in points:
        out += encode_big_endian_float32(p.x)
        out += encode_big_endian_float32(p.y)
        out += encode_big_endian_float32(p.z)
        if layout is FragmentLayout.PHOTOSYNTH:
            out += encode_big_endian_uint16(_rgb_to_rgb565(p.r, p.g, p.b))
        else:
            out += bytes((p.r, p.g, p.b))
    return bytes(out)


class BinaryFileLoader:
    """Plans fragment fetches for a coordinate system and loads their payloads."""

    def __init__(self, collection_root: str, layout: FragmentLayout = FragmentLayout.SIMPLE):
        self.collection_root = collection_root
        self.layout = layout

    def requests_for(self, cs: CoordinateSystem) -> Iterator[FragmentRequest]:
        for index in range(cs.point_cloud.bin_file_count):
            yield FragmentRequest(cs.id, index, fragment_url(self.collection_root, cs.id, index))

    def load(self, cs: CoordinateSystem, index: int, payload: bytes) -> int:
        """Decode fragment ``index`` of ``cs`` and append it. Returns points added."""
        try:
            points = decode_fragment(payload, self.layout)
        except SynthImportError as e:
            raise SynthImportError(e.code, f"{fragment_name(cs.id, index)}: {e.detail}") from None
        cs.point_cloud.append(points)
        logger.debug("Loaded %s: %d points (%d/%d)", fragment_name(cs.id, index), len(points),
                     len(cs.point_cloud.points), cs.point_cloud.number_of_points)
        return len(points)
