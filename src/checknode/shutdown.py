"""Signal classification for a checknode run.

Signals are split into two classes:

- Terminal (SIGINT, SIGQUIT, SIGTRAP, SIGABRT, SIGALRM, SIGBUS, SIGTERM,
  SIGHUP): the handler logs the signal, records the shutdown request and
  raises :class:`~checknode.exceptions.RunAborted` into whatever the main
  flow was doing. The orchestrator's ``finally`` clause then releases the
  lock and the process exits non-zero. The handler itself never touches the
  lock file.
- Non-terminal (SIGFPE, SIGUSR1, SIGUSR2, SIGSEGV, SIGPIPE, SIGCHLD): logged,
  then control returns to the interrupted point.
"""

from __future__ import annotations

import signal
from collections.abc import Callable
from types import FrameType, TracebackType
from typing import Any

from checknode.exceptions import RunAborted
from checknode.logging import get_logger

logger = get_logger(__name__)

TERMINAL_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGINT,
    signal.SIGQUIT,
    signal.SIGTRAP,
    signal.SIGABRT,
    signal.SIGALRM,
    signal.SIGBUS,
    signal.SIGTERM,
    signal.SIGHUP,
)

NONTERMINAL_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGFPE,
    signal.SIGUSR1,
    signal.SIGUSR2,
    signal.SIGSEGV,
    signal.SIGPIPE,
    signal.SIGCHLD,
)


def _describe_frame(frame: FrameType | None) -> str:
    if frame is None:
        return "<no frame>"
    return f"{frame.f_code.co_filename}:{frame.f_lineno} in {frame.f_code.co_name}"


class SignalClassifier:
    """Installs and dispatches handlers for the full signal set of a run.

    Usage::

        with SignalClassifier() as signals:
            ...  # RunAborted is raised here if a terminal signal arrives
    """

    def __init__(self, on_terminal: Callable[[int], None] | None = None) -> None:
        """Initialize the signal classifier.

        Args:
            on_terminal: Optional callback invoked with the signal number
                before RunAborted is raised.
        """
        self._shutdown_requested = False
        self._received: int | None = None
        self._cleaning_up = False
        self._on_terminal = on_terminal
        self._previous: dict[signal.Signals, Any] = {}

    @property
    def shutdown_requested(self) -> bool:
        """Check if a terminal signal has been received."""
        return self._shutdown_requested

    @property
    def received_signal(self) -> int | None:
        """Number of the terminal signal that requested shutdown, if any."""
        return self._received

    def handle_terminal(self, signum: int, frame: FrameType | None) -> None:
        """Handle a process-fatal signal by unwinding the run.

        A second terminal signal arriving while the first is being unwound
        is logged but does not raise again, so cleanup is not interrupted.

        Args:
            signum: The signal number received.
            frame: The interrupted stack frame.

        Raises:
            RunAborted: On the first terminal signal.
        """
        signal_name = signal.Signals(signum).name
        if self._shutdown_requested or self._cleaning_up:
            if self._received is None:
                self._received = signum
            self._shutdown_requested = True
            logger.warning(
                "Terminal signal %s (%d) received during shutdown, ignoring",
                signal_name,
                signum,
                extra={"signal": signal_name},
            )
            return

        logger.error(
            "Terminal signal %s (%d) caught at %s, aborting run",
            signal_name,
            signum,
            _describe_frame(frame),
            extra={"signal": signal_name},
        )
        self._shutdown_requested = True
        self._received = signum
        if self._on_terminal is not None:
            self._on_terminal(signum)
        raise RunAborted(signum)

    def enter_cleanup(self) -> None:
        """Stop raising RunAborted; terminal signals are only recorded from now on.

        Called by the orchestrator before it releases the lock so that a late
        signal cannot interrupt the release itself.
        """
        self._cleaning_up = True

    def handle_nonterminal(self, signum: int, frame: FrameType | None) -> None:
        """Log a non-fatal signal and resume.

        Args:
            signum: The signal number received.
            frame: The interrupted stack frame.
        """
        signal_name = signal.Signals(signum).name
        # Every probe exit raises SIGCHLD; only worth a debug line.
        level_method = logger.debug if signum == signal.SIGCHLD else logger.warning
        level_method(
            "Non-terminal signal %s (%d) caught at %s, continuing",
            signal_name,
            signum,
            _describe_frame(frame),
            extra={"signal": signal_name},
        )

    def install_signal_handlers(self) -> None:
        """Install handlers for both signal classes, remembering the old ones."""
        for sig in TERMINAL_SIGNALS:
            self._previous[sig] = signal.signal(sig, self.handle_terminal)
        for sig in NONTERMINAL_SIGNALS:
            self._previous[sig] = signal.signal(sig, self.handle_nonterminal)
        logger.debug(
            "Signal handlers installed: %d terminal, %d non-terminal",
            len(TERMINAL_SIGNALS),
            len(NONTERMINAL_SIGNALS),
        )

    def restore_signal_handlers(self) -> None:
        """Reinstate the handlers that were active before installation."""
        for sig, previous in self._previous.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def __enter__(self) -> SignalClassifier:
        self.install_signal_handlers()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.restore_signal_handlers()


__all__ = [
    "NONTERMINAL_SIGNALS",
    "SignalClassifier",
    "TERMINAL_SIGNALS",
]
