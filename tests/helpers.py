"""Test helper functions for checknode tests.

These helpers build configuration, probe results and probe scripts with
sensible defaults while allowing customization.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_config, make_probe_result, write_probe

    def test_example(tmp_path):
        write_probe(tmp_path / "tests", "gpu_check", exit_code=1)
        config = make_config(probe_dir=tmp_path / "tests", run_dir=tmp_path / "run")
        # ... use in test ...
"""

from __future__ import annotations

import stat
from pathlib import Path

from checknode.config import (
    Config,
    LoggingConfig,
    ModeConfig,
    PathsConfig,
    ProbeConfig,
    ReasonPolicy,
    SchedulerConfig,
)
from checknode.probe_runner import ProbeResult


def make_config(
    probe_dir: Path = Path("/nonexistent/tests"),
    run_dir: Path = Path("/nonexistent/run"),
    timeout: float = 10.0,
    boot_mode: bool = True,
    check_only: bool = False,
    local_only: bool = False,
    force_undrain: bool = False,
    dry_run: bool = False,
    reasons: ReasonPolicy | None = None,
    node_name: str = "node001",
) -> Config:
    """Create a Config for tests.

    Boot mode defaults to on so that tests never consult systemd.
    """
    return Config(
        paths=PathsConfig(probe_dir=probe_dir, run_dir=run_dir),
        probes=ProbeConfig(timeout=timeout),
        scheduler=SchedulerConfig(node_name=node_name),
        modes=ModeConfig(
            boot_mode=boot_mode,
            check_only=check_only,
            local_only=local_only,
            force_undrain=force_undrain,
            dry_run=dry_run,
        ),
        reasons=reasons or ReasonPolicy(),
        logging_config=LoggingConfig(),
    )


def make_probe_result(
    name: str = "probe",
    exit_code: int | None = 0,
    timed_out: bool = False,
    stdout: str = "",
    stderr: str = "",
) -> ProbeResult:
    """Create a ProbeResult for tests."""
    return ProbeResult(
        name=name,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def write_probe(
    directory: Path,
    name: str,
    exit_code: int = 0,
    body: str = "",
    executable: bool = True,
) -> Path:
    """Write a /bin/sh probe script.

    Args:
        directory: Probe directory (created if missing).
        name: Probe file name.
        exit_code: Status the script exits with.
        body: Extra shell lines run before exiting.
        executable: Whether to set the executable bits.

    Returns:
        Path of the written probe.
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(f"#!/bin/sh\n{body}\nexit {exit_code}\n", encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def write_config(path: Path, **values: str) -> Path:
    """Write a KEY=VALUE config file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["# checknode test configuration"]
    lines.extend(f"{key}={value}" for key, value in values.items())
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
