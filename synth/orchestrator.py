"""Import pipeline for one synth.

Stages, in order:

    WEB_SERVICE -> DOWNLOAD_JSON -> PARSE_JSON -> DOWNLOAD_BIN -> LOADING_BIN
    -> DOWNLOAD_IMG -> ready

Any stage may instead end in a latched error. The first three stages are
single request/response exchanges. Fragment and image downloads fan out on a
FetchPool; their completions come back through a queue and are applied by
``handle`` one at a time, so the model has a single writer. Once an error or
ready is latched every later completion is ignored.
"""

from __future__ import annotations

import logging
import queue
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from .config import DownloadConfig, ServiceConfig, SynthConfig
from .loader import BinaryFileLoader, fragment_name
from .manifest import parse_manifest
from .model import (
    ErrorCode,
    Image,
    ImportSettings,
    ImportSource,
    ImportStatus,
    Progress,
    SynthData,
    SynthImportError,
)
from .transport import FetchKind, FetchPool, FetchResult, HttpTransport, Transport, TransportError
from .webservice import build_collection_request, parse_collection_id, parse_collection_response

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = ServiceConfig(
    soap_url="http://photosynth.net/photosynthws/PhotosynthService.asmx",
    soap_action="http://labs.live.com/GetCollectionData",
)

SubmitFn = Callable[[FetchKind, object, str], None]


def image_filename(image: Image) -> str:
    """IMG_<id> plus the URL's extension (``.jpg`` when it has none)."""
    suffix = Path(urlparse(image.url).path).suffix.lower() or ".jpg"
    return f"IMG_{image.id}{suffix}"


class SynthImporter:
    """Drives one import request to a terminal ImportStatus.

    Usage:
        importer = SynthImporter(transport, settings, "out/")
        status = importer.run()
        if status.ready:
            synth = importer.synth
    """

    def __init__(
        self,
        transport: Transport,
        settings: ImportSettings,
        save_path: str | Path,
        config: SynthConfig | None = None,
        on_status: Callable[[ImportStatus], None] | None = None,
    ):
        self.transport = transport
        self.settings = settings
        self.save_path = Path(save_path) if save_path else None
        self.service = config.service if config else DEFAULT_SERVICE
        self.download = config.download if config else DownloadConfig()
        self.on_status = on_status

        self.synth = SynthData()
        self.loader: BinaryFileLoader | None = None
        self._submit: SubmitFn | None = None
        # Pending counters are the sizes of these sets.
        self._fragments_outstanding: set[tuple[int, int]] = set()
        self._images_outstanding: set[int] = set()
        self._status = self.synth.status()

    # -- Published state --

    @property
    def status(self) -> ImportStatus:
        return self._status

    @property
    def fragments_pending(self) -> int:
        return len(self._fragments_outstanding)

    @property
    def images_pending(self) -> int:
        return len(self._images_outstanding)

    def _publish(self, detail: str = "") -> None:
        self._status = self.synth.status(detail)
        if self.on_status is not None:
            self.on_status(self._status)

    def _enter(self, progress: Progress) -> None:
        if self.synth.terminated:
            return
        self.synth.progress = progress
        logger.info("%s", progress.label)
        self._publish()

    def _fail(self, code: ErrorCode, detail: str = "") -> None:
        if self.synth.terminated:
            return
        self.synth.error = code
        logger.error("Import failed at %s: %s (%s)", self.synth.progress.name, code.name, detail)
        self._fragments_outstanding.clear()
        self._images_outstanding.clear()
        self._publish(detail)

    def _finish(self) -> None:
        if self.synth.terminated:
            return
        self.synth.error = ErrorCode.NO_ERROR
        self.synth.ready = True
        n_points = sum(len(cs.point_cloud.points) for cs in self.synth.coordinate_systems)
        logger.info("Synth %s ready: %d coordinate systems, %d points, %d images",
                    self.synth.collection_id, len(self.synth.coordinate_systems),
                    n_points, len(self.synth.images))
        self._publish()

    # -- Entry and request/response stages --

    def _check_request(self) -> None:
        if self.settings.source is not ImportSource.WEB_SITE:
            raise SynthImportError(ErrorCode.WRONG_URL,
                                   f"{self.settings.source.value} import is not supported")
        self.synth.collection_id = parse_collection_id(self.settings.source_path)

        if self.save_path is None:
            raise SynthImportError(ErrorCode.WRONG_PATH, "no save path given")
        if self.save_path.exists() and not self.save_path.is_dir():
            raise SynthImportError(ErrorCode.WRONG_PATH, f"{self.save_path} is not a directory")
        try:
            self.save_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SynthImportError(ErrorCode.CREATE_DIR, str(e)) from None

    def _resolve_collection(self) -> str:
        body, headers = build_collection_request(self.synth.collection_id, self.service.soap_action)
        try:
            payload = self.transport.request(self.service.soap_url, "POST", body, headers)
        except TransportError as e:
            raise SynthImportError(ErrorCode.WEBSERVICE_ERROR, str(e)) from None
        info = parse_collection_response(payload)
        self.synth.collection_root = info.collection_root
        return info.json_url

    def _load_manifest(self, json_url: str) -> None:
        self._enter(Progress.DOWNLOAD_JSON)
        try:
            text = self.transport.request(json_url)
        except TransportError as e:
            raise SynthImportError(ErrorCode.WEBSERVICE_ERROR, str(e)) from None

        self._enter(Progress.PARSE_JSON)
        manifest = parse_manifest(text, import_cameras=self.settings.import_camera_parameters)
        selection = self.settings.coordinate_systems
        for cs in manifest.coordinate_systems:
            cs.should_be_imported = selection is None or cs.id in selection
        self.synth.coordinate_systems = manifest.coordinate_systems
        self.synth.images = manifest.images
        self.synth.num_images = manifest.num_images

    def prepare(self) -> ImportStatus:
        """Validate the request, resolve the collection and parse its manifest."""
        self._publish()
        try:
            self._check_request()
            json_url = self._resolve_collection()
            self._load_manifest(json_url)
        except SynthImportError as e:
            self._fail(e.code, e.detail)
        return self.status

    # -- Fan-out stages --

    def _eligible(self):
        if not self.settings.import_point_clouds:
            return []
        return [cs for cs in self.synth.coordinate_systems if cs.should_be_imported]

    def begin_downloads(self, submit: SubmitFn) -> ImportStatus:
        """Fan out every fragment fetch; skips straight to images when there are none."""
        if self.synth.terminated:
            return self.status
        self._submit = submit
        self.loader = BinaryFileLoader(self.synth.collection_root, self.download.fragment_layout)
        try:
            if not self.settings.import_point_clouds:
                self._begin_images()
                return self.status

            fragments = [r for cs in self._eligible() for r in self.loader.requests_for(cs)]
            self._enter(Progress.DOWNLOAD_BIN)
            self._fragments_outstanding = {(r.coord_system_id, r.index) for r in fragments}
            logger.info("Requesting %d fragments", len(fragments))
            for r in fragments:
                submit(FetchKind.FRAGMENT, (r.coord_system_id, r.index), r.url)
            if not fragments:
                self._fragments_done()
        except SynthImportError as e:
            self._fail(e.code, e.detail)
        return self.status

    def _fragments_done(self) -> None:
        for cs in self._eligible():
            cloud = cs.point_cloud
            if not cloud.is_complete:
                raise SynthImportError(
                    ErrorCode.BIN_DATA_FORMAT,
                    f"coordinate system {cs.id} decoded {len(cloud.points)} points, "
                    f"declared {cloud.number_of_points}")
        self._begin_images()

    def _begin_images(self) -> None:
        images = list(self.synth.images.values())
        if not self.settings.import_camera_parameters or not images:
            self._finish()
            return
        self._enter(Progress.DOWNLOAD_IMG)
        self._images_outstanding = {image.id for image in images}
        logger.info("Requesting %d images", len(images))
        for image in images:
            self._submit(FetchKind.IMAGE, image.id, image.url)

    def _on_fragment(self, result: FetchResult) -> None:
        cs_id, index = result.key
        if result.key not in self._fragments_outstanding:
            logger.warning("Ignoring unexpected fragment %s", fragment_name(cs_id, index))
            return
        if self.synth.progress is Progress.DOWNLOAD_BIN:
            self._enter(Progress.LOADING_BIN)
        if not result.ok:
            raise SynthImportError(ErrorCode.READING_BIN_DATA,
                                   f"{fragment_name(cs_id, index)}: {result.error}")
        self.loader.load(self.synth.coordinate_system(cs_id), index, result.payload)
        self._fragments_outstanding.discard(result.key)
        if not self._fragments_outstanding:
            self._fragments_done()

    def _on_image(self, result: FetchResult) -> None:
        image_id = result.key
        if image_id not in self._images_outstanding:
            logger.warning("Ignoring unexpected image %s", image_id)
            return
        image = self.synth.images[image_id]
        if not result.ok:
            raise SynthImportError(ErrorCode.WEBSERVICE_ERROR, f"image {image_id}: {result.error}")
        path = self.save_path / image_filename(image)
        try:
            path.write_bytes(result.payload)
        except OSError as e:
            raise SynthImportError(ErrorCode.SAVE_IMG, f"{path}: {e}") from None
        image.local_path = path
        logger.debug("Saved image %d to %s", image_id, path)
        self._images_outstanding.discard(image_id)
        if not self._images_outstanding:
            self._finish()

    def handle(self, result: FetchResult) -> ImportStatus:
        """Apply one fetch completion. The only place fan-out results touch the model."""
        if self.synth.terminated:
            logger.debug("Ignoring %s %s after termination", result.kind.value, result.key)
            return self.status
        try:
            if result.kind is FetchKind.FRAGMENT:
                self._on_fragment(result)
            else:
                self._on_image(result)
        except SynthImportError as e:
            self._fail(e.code, e.detail)
        return self.status

    # -- Driver --

    def run(self) -> ImportStatus:
        """Run the whole pipeline and return its terminal status."""
        if self.prepare().terminal:
            return self.status
        with FetchPool(self.transport, self.download.max_workers) as pool:
            self.begin_downloads(pool.submit)
            while not self.synth.terminated:
                try:
                    result = pool.get(timeout=self.download.idle_timeout_s)
                except queue.Empty:
                    self._fail(ErrorCode.WEBSERVICE_ERROR,
                               f"no download finished within {self.download.idle_timeout_s}s")
                    break
                self.handle(result)
        return self.status


def import_synth(
    locator: str,
    save_path: str | Path,
    config: SynthConfig,
    import_point_clouds: bool | None = None,
    import_camera_parameters: bool | None = None,
    on_status: Callable[[ImportStatus], None] | None = None,
) -> tuple[ImportStatus, SynthData]:
    """Import a synth over HTTP using config defaults for unset flags."""
    d = config.defaults
    settings = ImportSettings(
        source=ImportSource.WEB_SITE,
        source_path=locator,
        import_point_clouds=d.import_point_clouds if import_point_clouds is None else import_point_clouds,
        import_camera_parameters=(d.import_camera_parameters if import_camera_parameters is None
                                  else import_camera_parameters),
    )
    with HttpTransport(config.service.timeout_s, config.service.user_agent) as transport:
        importer = SynthImporter(transport, settings, save_path, config, on_status=on_status)
        status = importer.run()
    return status, importer.synth
