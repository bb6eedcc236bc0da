"""Tests for synth.config — YAML loading and validation."""

import tempfile
from pathlib import Path

import pytest
import yaml

from synth.config import SynthConfig, load_config
from synth.loader import FragmentLayout


# Use the real synth.yaml as the baseline for valid config tests.
CONFIG_PATH = Path(__file__).resolve().parents[1] / "synth.yaml"


def test_load_config_returns_synthconfig():
    cfg = load_config(CONFIG_PATH)
    assert isinstance(cfg, SynthConfig)


def test_load_config_service_fields():
    cfg = load_config(CONFIG_PATH)
    assert cfg.service.soap_url.startswith("http")
    assert cfg.service.soap_action.endswith("GetCollectionData")
    assert cfg.service.timeout_s == 30.0


def test_load_config_download_fields():
    cfg = load_config(CONFIG_PATH)
    assert cfg.download.max_workers == 8
    assert cfg.download.fragment_layout is FragmentLayout.SIMPLE
    assert cfg.download.idle_timeout_s == 120.0


def test_load_config_defaults():
    cfg = load_config(CONFIG_PATH)
    assert cfg.defaults.import_point_clouds
    assert cfg.defaults.import_camera_parameters
    assert isinstance(cfg.defaults.save_dir, Path)


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config("nonexistent.yaml")


def test_load_config_optional_sections(tmp_path):
    path = tmp_path / "min.yaml"
    path.write_text(yaml.safe_dump({"service": {"soap_url": "http://svc/ws.asmx",
                                                "soap_action": "urn:GetCollectionData"}}))
    cfg = load_config(path)
    assert cfg.download.fragment_layout is FragmentLayout.SIMPLE
    assert cfg.download.idle_timeout_s is None
    assert cfg.defaults.import_point_clouds


def _write_bad_config(base_path: Path, overrides: dict) -> Path:
    """Load the real config, apply overrides, write to a temp file."""
    with open(base_path) as f:
        raw = yaml.safe_load(f)
    for key_path, value in overrides.items():
        keys = key_path.split(".")
        d = raw
        for k in keys[:-1]:
            d = d[k]
        d[keys[-1]] = value
    tmp = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    yaml.safe_dump(raw, tmp, sort_keys=False)
    tmp.close()
    return Path(tmp.name)


def test_validation_rejects_bad_url():
    path = _write_bad_config(CONFIG_PATH, {"service.soap_url": "photosynth.net/ws"})
    with pytest.raises(ValueError, match="service URL"):
        load_config(path)


def test_validation_rejects_bad_timeout():
    path = _write_bad_config(CONFIG_PATH, {"service.timeout_s": 0})
    with pytest.raises(ValueError, match="timeout"):
        load_config(path)


def test_validation_rejects_bad_worker_count():
    path = _write_bad_config(CONFIG_PATH, {"download.max_workers": 0})
    with pytest.raises(ValueError, match="max_workers"):
        load_config(path)


def test_validation_rejects_bad_layout():
    path = _write_bad_config(CONFIG_PATH, {"download.fragment_layout": "ply"})
    with pytest.raises(ValueError, match="fragment layout"):
        load_config(path)


def test_validation_rejects_missing_service(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("download:\n  max_workers: 2\n")
    with pytest.raises(ValueError, match="service"):
        load_config(path)
