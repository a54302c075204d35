"""Tests for the run directory and lock manager."""

from __future__ import annotations

import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from checknode.run_directory import RunDirectory
from checknode.shutdown import TERMINAL_SIGNALS
from checknode.types import RunState


class TestAcquire:
    """Tests for lock acquisition."""

    def test_creates_directory_and_lock(self, run_directory: RunDirectory) -> None:
        assert run_directory.acquire() is True
        assert run_directory.path.is_dir()
        assert run_directory.lock_path.exists()
        assert run_directory.held is True
        assert run_directory.lock_path.read_text().strip() == str(os.getpid())

    def test_second_acquire_fails(self, run_dir: Path) -> None:
        first = RunDirectory(run_dir)
        second = RunDirectory(run_dir)
        assert first.acquire() is True
        assert second.acquire() is False
        assert second.held is False

    def test_acquire_after_release(self, run_directory: RunDirectory) -> None:
        assert run_directory.acquire() is True
        assert run_directory.release() is True
        assert run_directory.acquire() is True

    def test_existing_lock_is_left_alone(self, run_directory: RunDirectory) -> None:
        run_directory.prepare()
        run_directory.lock_path.write_text("4242\n")
        assert run_directory.acquire() is False
        assert run_directory.lock_path.read_text() == "4242\n"

    def test_unwritable_parent_returns_false(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        run_directory = RunDirectory(blocker / "run")
        assert run_directory.acquire() is False

    def test_terminal_signals_blocked_while_creating_lock(
        self, run_directory: RunDirectory
    ) -> None:
        real_open = os.open
        masks: list[set[signal.Signals]] = []

        def recording_open(path: object, flags: int, mode: int = 0o777) -> int:
            masks.append(signal.pthread_sigmask(signal.SIG_BLOCK, []))
            return real_open(path, flags, mode)

        with patch("checknode.run_directory.os.open", side_effect=recording_open):
            assert run_directory.acquire() is True

        assert set(TERMINAL_SIGNALS) <= masks[0]
        assert signal.SIGTERM not in signal.pthread_sigmask(signal.SIG_BLOCK, [])

    def test_held_before_pid_is_written(self, run_directory: RunDirectory) -> None:
        held_during_write: list[bool] = []
        real_write = os.write

        def recording_write(fd: int, data: bytes) -> int:
            held_during_write.append(run_directory.held)
            return real_write(fd, data)

        with patch("checknode.run_directory.os.write", side_effect=recording_write):
            assert run_directory.acquire() is True

        assert held_during_write == [True]


class TestRelease:
    """Tests for lock release."""

    def test_release_is_idempotent(self, run_directory: RunDirectory) -> None:
        run_directory.acquire()
        assert run_directory.release() is True
        assert run_directory.release() is True
        assert not run_directory.lock_path.exists()
        assert run_directory.held is False

    def test_release_without_directory(self, run_directory: RunDirectory) -> None:
        assert run_directory.release() is True

    def test_is_locked(self, run_directory: RunDirectory) -> None:
        assert run_directory.is_locked() is False
        run_directory.acquire()
        assert run_directory.is_locked() is True


class TestRunState:
    """Tests for the run-state file."""

    @pytest.mark.parametrize("state", list(RunState))
    def test_set_and_get(self, run_directory: RunDirectory, state: RunState) -> None:
        run_directory.prepare()
        assert run_directory.set_state(state) is True
        assert run_directory.state_path.read_text() == f"{state}\n"
        assert run_directory.get_state() is state

    def test_overwrites_previous_value(self, run_directory: RunDirectory) -> None:
        run_directory.prepare()
        run_directory.set_state(RunState.RUNNING)
        run_directory.set_state(RunState.FAIL)
        assert run_directory.state_path.read_text() == "fail\n"

    def test_no_temporary_file_left(self, run_directory: RunDirectory) -> None:
        run_directory.prepare()
        run_directory.set_state(RunState.PASS)
        assert sorted(p.name for p in run_directory.path.iterdir()) == ["state"]

    def test_set_state_without_directory_returns_false(
        self, run_directory: RunDirectory
    ) -> None:
        assert run_directory.set_state(RunState.RUNNING) is False

    def test_get_state_missing_or_invalid(self, run_directory: RunDirectory) -> None:
        assert run_directory.get_state() is None
        run_directory.prepare()
        run_directory.state_path.write_text("garbage\n")
        assert run_directory.get_state() is None


class TestBootMarker:
    def test_mark_booted(self, run_directory: RunDirectory) -> None:
        run_directory.prepare()
        assert run_directory.mark_booted() is True
        assert run_directory.booted_path.exists()
