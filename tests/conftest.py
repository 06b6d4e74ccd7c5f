"""Shared test fixtures and helpers for facepath tests."""

import importlib.util
import sys
from pathlib import Path

import numpy as np
import pytest

# Load helpers module from the tests directory using importlib to avoid
# polluting sys.path.
_helpers_path = Path(__file__).resolve().parent / "helpers.py"
_spec = importlib.util.spec_from_file_location("helpers", _helpers_path)
_helpers = importlib.util.module_from_spec(_spec)
sys.modules["helpers"] = _helpers
_spec.loader.exec_module(_helpers)

from helpers import create_face_image, create_test_video  # noqa: F401,E402


@pytest.fixture(autouse=True)
def facepath_home(tmp_path, monkeypatch):
    """Keep model directory lookups inside the test's tmp dir."""
    home = tmp_path / "facepath_home"
    monkeypatch.setenv("FACEPATH_HOME", str(home))
    monkeypatch.delenv("FACEPATH_MODELS_DIR", raising=False)
    return home


@pytest.fixture
def face_image():
    return create_face_image()


@pytest.fixture
def rng():
    return np.random.default_rng(981)
