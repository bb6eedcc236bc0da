"""Tests for run_import — output directory naming."""

from pathlib import Path

from conftest import CID
from run_import import default_output_dir


def test_output_dir_from_bare_id():
    assert default_output_dir(CID.upper(), Path("data")) == Path("data") / CID


def test_output_dir_from_viewer_url_with_uppercase_key():
    url = f"https://photosynth.net/view.aspx?CID={CID.upper()}&m=false"
    assert default_output_dir(url, Path("data")) == Path("data") / CID


def test_output_dir_for_unusable_locator():
    assert default_output_dir("not a synth", Path("data")) == Path("data") / "synth"
