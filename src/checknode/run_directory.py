"""Run directory, lock marker and run-state file.

The run directory (``/run/checknode`` by default) holds three well-known
entries:

- ``lock``: existence-only sentinel; present while a pass is in progress.
- ``state``: single token, one of ``running``, ``pass`` or ``fail``.
- ``booted``: written once the node has been confirmed fully booted.

The lock is taken with an exclusive create (``O_CREAT | O_EXCL``) so that
two invocations racing for it cannot both win.

The ``state`` token is only rewritten to ``pass`` or ``fail`` once a verdict
has been reconciled. A run that stops earlier (still booting, unreadable
probe directory, dry run or a terminal signal) releases the lock but leaves
``running`` in place; readers tell a live run from a stale token by the
presence of ``lock``.

All filesystem helpers here swallow ``OSError`` and return ``False`` so that
the caller decides how to react.
"""

from __future__ import annotations

import contextlib
import os
import signal
from pathlib import Path

from checknode.logging import get_logger
from checknode.shutdown import TERMINAL_SIGNALS
from checknode.types import RunState

logger = get_logger(__name__)

LOCK_FILENAME = "lock"
STATE_FILENAME = "state"
BOOTED_FILENAME = "booted"


class RunDirectory:
    """Owns the on-disk lock and run-state file for one host."""

    def __init__(self, path: Path) -> None:
        """Initialize the run directory manager.

        Args:
            path: Directory holding the lock, state and boot markers.
        """
        self.path = path
        self._held = False

    @property
    def lock_path(self) -> Path:
        return self.path / LOCK_FILENAME

    @property
    def state_path(self) -> Path:
        return self.path / STATE_FILENAME

    @property
    def booted_path(self) -> Path:
        return self.path / BOOTED_FILENAME

    @property
    def held(self) -> bool:
        """Whether this instance currently owns the lock."""
        return self._held

    def is_locked(self) -> bool:
        """Check whether any invocation holds the lock."""
        return self.lock_path.exists()

    def prepare(self) -> bool:
        """Create the run directory (and parents) if missing.

        Returns:
            True if the directory exists afterwards, False on error.
        """
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Unable to create run directory %s: %s", self.path, e)
            return False
        return True

    def acquire(self) -> bool:
        """Create the run directory and take the lock.

        Returns:
            True if the lock was taken, False if another run holds it or the
            filesystem refused.
        """
        if not self.prepare():
            return False
        # Terminal signals stay pending until the lock is owned and closed.
        previous_mask = signal.pthread_sigmask(signal.SIG_BLOCK, TERMINAL_SIGNALS)
        try:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                logger.info("Lock %s in place, checknode is already running", self.lock_path)
                return False
            except OSError as e:
                logger.error("Unable to create lock %s: %s", self.lock_path, e)
                return False
            self._held = True
            try:
                os.write(fd, f"{os.getpid()}\n".encode())
            except OSError as e:
                # The marker is existence-only; a missing pid is cosmetic.
                logger.debug("Unable to record pid in %s: %s", self.lock_path, e)
            finally:
                os.close(fd)
        finally:
            signal.pthread_sigmask(signal.SIG_SETMASK, previous_mask)
        logger.debug("Acquired lock %s", self.lock_path)
        return True

    def release(self) -> bool:
        """Remove the lock marker. Safe to call repeatedly.

        Returns:
            True if no lock remains afterwards, False on error.
        """
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Unable to remove lock %s: %s", self.lock_path, e)
            return False
        if self._held:
            logger.debug("Released lock %s", self.lock_path)
        self._held = False
        return True

    def set_state(self, value: RunState) -> bool:
        """Overwrite the run-state file with a single token.

        The token is written to a temporary file and renamed into place so
        readers never observe a partial write.

        Args:
            value: The run-state token to persist.

        Returns:
            True if the state was written, False on error.
        """
        tmp_path = self.state_path.with_name(f".{STATE_FILENAME}.{os.getpid()}")
        try:
            tmp_path.write_text(f"{value}\n", encoding="utf-8")
            os.replace(tmp_path, self.state_path)
        except OSError as e:
            logger.error("Unable to write run state %s: %s", self.state_path, e)
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            return False
        logger.debug("Run state set to %s", value, extra={"state": str(value)})
        return True

    def get_state(self) -> RunState | None:
        """Read the persisted run-state token, if any."""
        try:
            token = self.state_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        if not RunState.is_valid(token):
            return None
        return RunState(token)

    def mark_booted(self) -> bool:
        """Touch the boot marker.

        Returns:
            True if the marker exists afterwards, False on error.
        """
        try:
            self.booted_path.touch(exist_ok=True)
        except OSError as e:
            logger.error("Unable to create %s: %s", self.booted_path, e)
            return False
        return True


__all__ = [
    "BOOTED_FILENAME",
    "LOCK_FILENAME",
    "RunDirectory",
    "STATE_FILENAME",
]
