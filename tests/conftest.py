"""Shared pytest fixtures for checknode tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from checknode.config import CONFIG_ENV_VAR, ENV_PREFIX
from checknode.run_directory import RunDirectory


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep CHECKNODE_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX) or key == CONFIG_ENV_VAR:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def probe_dir(tmp_path: Path) -> Path:
    path = tmp_path / "tests"
    path.mkdir()
    return path


@pytest.fixture
def run_dir(tmp_path: Path) -> Path:
    return tmp_path / "run" / "checknode"


@pytest.fixture
def run_directory(run_dir: Path) -> RunDirectory:
    return RunDirectory(run_dir)
