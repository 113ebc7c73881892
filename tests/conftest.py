"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# Self-test binary
FAKE_CLI_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cli.py"


def _fake_env(mode: str, **extra: str) -> dict[str, str]:
    env = dict(os.environ)
    env["FAKE_CLI_MODE"] = mode
    env.update(extra)
    return env


@pytest.fixture
def fake_cli() -> list[str]:
    """argv prefix that runs the fake CLI."""
    return [sys.executable, str(FAKE_CLI_PATH)]


@pytest.fixture
def fake_env():
    """Build the child environment for a fake CLI mode.

    Only the child's env is changed; the test process environment is not.
    """
    return _fake_env


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch):
    """Give every test a configuration read from a clean environment."""
    from exex.config import reload_config

    monkeypatch.delenv("EXEX_CAPTURE_CHUNK_SIZE", raising=False)
    monkeypatch.delenv("EXEX_LOG_DEBUG", raising=False)
    reload_config()
    yield
    reload_config()
