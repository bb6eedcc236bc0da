"""Scene model for an imported synth: coordinate systems, clouds, cameras, images."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path

import numpy as np

from .transforms import invert_se3, pose_to_matrix, quaternion_from_normalized, rotation_from_quaternion


class ErrorCode(Enum):
    WRONG_URL = "The provided URL is invalid"
    WRONG_PATH = "The save path is not a usable directory"
    WEBSERVICE_ERROR = "The web service returned an error"
    NEGATIVE_RESPONSE = "The web service returned a negative response"
    UNEXPECTED_RESPONSE = "The web service returned an unexpected response"
    WRONG_COLLECTION_TYPE = "This collection is not a synth"
    JSON_PARSING = "Error parsing the collection JSON"
    EMPTY = "The collection contains no coordinate systems"
    READING_BIN_DATA = "Error reading point cloud binary data"
    BIN_DATA_FORMAT = "Point cloud binary data has an unexpected format"
    CREATE_DIR = "Could not create the image directory"
    SAVE_IMG = "Could not save an image"
    NO_ERROR = "Import completed"
    PENDING = "Import in progress"

    @property
    def description(self) -> str:
        return self.value


class Progress(Enum):
    WEB_SERVICE = "Contacting web service"
    DOWNLOAD_JSON = "Downloading JSON data"
    PARSE_JSON = "Parsing JSON data"
    DOWNLOAD_BIN = "Downloading binary files"
    LOADING_BIN = "Loading binary data"
    DOWNLOAD_IMG = "Downloading images"

    @property
    def label(self) -> str:
        return self.value


class SynthImportError(Exception):
    """A pipeline stage failed; ``code`` is the terminal ErrorCode."""

    def __init__(self, code: ErrorCode, detail: str = ""):
        super().__init__(f"{code.name}: {detail}" if detail else code.name)
        self.code = code
        self.detail = detail


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    z: float
    r: int
    g: int
    b: int


@dataclass
class Image:
    id: int
    url: str
    width: int = 0
    height: int = 0
    local_path: Path | None = None  # set once the image is saved


class CameraField(IntEnum):
    POS_X = 0
    POS_Y = 1
    POS_Z = 2
    ROT_X = 3
    ROT_Y = 4
    ROT_Z = 5
    ASPECT_RATIO = 6
    FOCAL_LENGTH = 7


@dataclass
class CameraParameters:
    """Pose and intrinsics of one image inside one coordinate system.

    Rotation is kept as the vector part of a normalised quaternion; the full
    quaternion and rotation matrix are derived on request.
    """

    coord_system_id: int
    image_id: int
    fields: np.ndarray = field(default_factory=lambda: np.zeros(len(CameraField), dtype=np.float64))
    distortion_radius1: float = 0.0
    distortion_radius2: float = 0.0

    def __post_init__(self):
        self.fields = np.asarray(self.fields, dtype=np.float64)
        if self.fields.shape != (len(CameraField),):
            raise ValueError(f"Camera fields must have shape (8,), got {self.fields.shape}")

    @staticmethod
    def _index(key) -> int:
        if isinstance(key, bool) or not isinstance(key, (int, np.integer)):
            raise TypeError(f"Camera field index must be a CameraField, got {key!r}")
        # IntEnum members pass through CameraField() unchanged.
        try:
            return int(CameraField(int(key)))
        except ValueError:
            raise IndexError(f"Camera field index out of range: {key}") from None

    def __getitem__(self, key) -> float:
        return float(self.fields[self._index(key)])

    def __setitem__(self, key, value: float) -> None:
        self.fields[self._index(key)] = float(value)

    @property
    def position(self) -> np.ndarray:
        return self.fields[CameraField.POS_X:CameraField.POS_Z + 1].copy()

    def quaternion(self) -> np.ndarray:
        """(x, y, z, w) with w recovered from the stored vector part."""
        return quaternion_from_normalized(
            self[CameraField.ROT_X], self[CameraField.ROT_Y], self[CameraField.ROT_Z])

    def rotation_matrix(self) -> np.ndarray:
        return rotation_from_quaternion(self.quaternion())

    def pose_matrix(self) -> np.ndarray:
        """T_coordsys_camera: camera frame into the coordinate system frame."""
        return pose_to_matrix(self.position, self.rotation_matrix())

    def view_matrix(self) -> np.ndarray:
        """T_camera_coordsys: coordinate system frame into the camera frame."""
        return invert_se3(self.pose_matrix())


@dataclass
class PointCloud:
    coord_system_id: int
    bin_file_count: int
    number_of_points: int = 0
    points: list[Point] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.points) == self.number_of_points

    def append(self, points: list[Point]) -> None:
        if len(self.points) + len(points) > self.number_of_points:
            raise SynthImportError(
                ErrorCode.BIN_DATA_FORMAT,
                f"coordinate system {self.coord_system_id} exceeds its declared "
                f"{self.number_of_points} points",
            )
        self.points.extend(points)

    def arrays(self) -> tuple[np.ndarray, np.ndarray]:
        """Positions (N, 3) float32 and colors (N, 3) uint8."""
        xyz = np.array([(p.x, p.y, p.z) for p in self.points], dtype=np.float32).reshape(-1, 3)
        rgb = np.array([(p.r, p.g, p.b) for p in self.points], dtype=np.uint8).reshape(-1, 3)
        return xyz, rgb


@dataclass
class CoordinateSystem:
    id: int
    point_cloud: PointCloud
    cameras: list[CameraParameters] = field(default_factory=list)
    should_be_imported: bool = True


class ImportSource(Enum):
    WEB_SITE = "web_site"
    ARCHIVE = "archive"


@dataclass
class ImportSettings:
    source: ImportSource
    source_path: str
    import_point_clouds: bool = True
    import_camera_parameters: bool = True
    coordinate_systems: frozenset[int] | None = None  # None imports every coordinate system


@dataclass(frozen=True)
class ImportStatus:
    """Snapshot of the pipeline published after every transition."""

    progress: Progress
    error: ErrorCode
    ready: bool = False
    detail: str = ""

    @property
    def terminal(self) -> bool:
        return self.ready or self.failed

    @property
    def failed(self) -> bool:
        return self.error not in (ErrorCode.PENDING, ErrorCode.NO_ERROR)


@dataclass
class SynthData:
    """Root aggregate. Written only by the importer until it terminates."""

    collection_id: str = ""
    collection_root: str = ""
    coordinate_systems: list[CoordinateSystem] = field(default_factory=list)
    images: dict[int, Image] = field(default_factory=dict)
    error: ErrorCode = ErrorCode.PENDING
    progress: Progress = Progress.WEB_SERVICE
    ready: bool = False
    num_images: int = 0

    @property
    def terminated(self) -> bool:
        return self.ready or self.error is not ErrorCode.PENDING

    def is_valid(self) -> bool:
        return self.ready and self.error is ErrorCode.NO_ERROR

    def coordinate_system(self, cs_id: int) -> CoordinateSystem:
        for cs in self.coordinate_systems:
            if cs.id == cs_id:
                return cs
        raise KeyError(f"No coordinate system with id {cs_id}")

    def status(self, detail: str = "") -> ImportStatus:
        return ImportStatus(progress=self.progress, error=self.error,
                            ready=self.ready, detail=detail)
