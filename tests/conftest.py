"""Pytest configuration to make the project root importable.

``AtomCSS`` is laid out as namespace packages next to ``atom.py``, so the
repository root has to be on ``sys.path`` when tests run from elsewhere.
"""

import asyncio
import os
import sys

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from AtomCSS.Classes.config import Settings, load_defaults, merge_config  # noqa: E402


@pytest.fixture
def make_settings(tmp_path):
    """Builds Settings from the shipped defaults plus keyword overrides."""

    def factory(**overrides):
        config = load_defaults()
        config.update({"input_paths": [str(tmp_path / "src")], "output_file": str(tmp_path / "out" / "style.css")})
        config = merge_config(config, overrides)
        return Settings.from_config(config)

    return factory


@pytest.fixture
def tables(make_settings):
    return make_settings().tables


class RecordingSleep:
    """Stand-in for asyncio.sleep that yields once and remembers the delays asked for."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
