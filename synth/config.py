"""Configuration: load synth.yaml into typed dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .loader import FragmentLayout


@dataclass
class ServiceConfig:
    soap_url: str
    soap_action: str
    timeout_s: float = 30.0
    user_agent: str = "synth-import/0.1"


@dataclass
class DownloadConfig:
    max_workers: int = 8
    fragment_layout: FragmentLayout = FragmentLayout.SIMPLE
    idle_timeout_s: float | None = None  # give up if no fetch completes for this long


@dataclass
class ImportDefaults:
    import_point_clouds: bool = True
    import_camera_parameters: bool = True
    save_dir: Path = Path("data/synths")


@dataclass
class SynthConfig:
    service: ServiceConfig
    download: DownloadConfig = field(default_factory=DownloadConfig)
    defaults: ImportDefaults = field(default_factory=ImportDefaults)


def _validate(cfg: SynthConfig) -> None:
    """Validate config values. Raises ValueError on bad input."""
    sv, dl = cfg.service, cfg.download
    if not sv.soap_url.startswith(("http://", "https://")):
        raise ValueError(f"Bad service URL: {sv.soap_url!r}")
    if not sv.soap_action:
        raise ValueError("SOAP action must not be empty")
    if sv.timeout_s <= 0:
        raise ValueError(f"Request timeout must be positive, got {sv.timeout_s}")
    if dl.max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {dl.max_workers}")
    if dl.idle_timeout_s is not None and dl.idle_timeout_s <= 0:
        raise ValueError(f"Idle timeout must be positive, got {dl.idle_timeout_s}")


def load_config(path: str | Path) -> SynthConfig:
    """Load synth.yaml and return a fully typed SynthConfig."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if "service" not in raw:
        raise ValueError(f"{path.name} has no 'service' section")
    service = ServiceConfig(**raw["service"])

    dl = dict(raw.get("download") or {})
    if "fragment_layout" in dl:
        try:
            dl["fragment_layout"] = FragmentLayout(dl["fragment_layout"])
        except ValueError:
            raise ValueError(f"Unsupported fragment layout: {dl['fragment_layout']!r}") from None
    download = DownloadConfig(**dl)

    d = dict(raw.get("defaults") or {})
    if "save_dir" in d:
        d["save_dir"] = Path(d["save_dir"])
    defaults = ImportDefaults(**d)

    cfg = SynthConfig(service=service, download=download, defaults=defaults)
    _validate(cfg)
    return cfg
