"""Type definitions and enums for the checknode application.

This module provides centralized type definitions for run-state tokens,
drain-reason categories and the actions the reconciler can emit, replacing
magic strings throughout the codebase with type-safe constants.

Usage:
    from checknode.types import RunState, ReasonCategory

    # StrEnum members compare equal to their string values
    if state_file.read_text().strip() == RunState.RUNNING:
        ...

    RunState.is_valid("pass")  # True
"""

from __future__ import annotations

from enum import StrEnum


class RunState(StrEnum):
    """Token persisted in the run-state file.

    Values:
        RUNNING: An orchestration pass is in progress ("running")
        PASS: The last pass produced a healthy verdict ("pass")
        FAIL: The last pass produced an unhealthy verdict ("fail")
    """

    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check if a string value is a valid run-state token.

        Args:
            value: The string value to validate.

        Returns:
            True if the value matches a valid run-state token.
        """
        return value in cls._value2member_map_


class ProbeOutcome(StrEnum):
    """Outcome of a single probe invocation.

    Values:
        PASSED: Exit code 0 ("passed")
        FAILED: Non-zero exit code ("failed")
        TIMED_OUT: Killed at the timeout bound ("timed-out")
        LAUNCH_FAILED: Could not be started at all ("launch-failed")
    """

    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    LAUNCH_FAILED = "launch-failed"


class ReasonCategory(StrEnum):
    """Classification of the drain reason currently held by the scheduler.

    Values:
        EMPTY: No reason set, or the scheduler reports "none" ("empty")
        SELF_MANAGED: Reason previously written by checknode ("self-managed")
        KNOWN_BENIGN: Scheduler-generated reason safe to override ("known-benign")
        REBOOT_SENTINEL: The node rebooted unexpectedly ("reboot-sentinel")
        EXTERNALLY_OWNED: Set by an administrator or another subsystem ("externally-owned")
    """

    EMPTY = "empty"
    SELF_MANAGED = "self-managed"
    KNOWN_BENIGN = "known-benign"
    REBOOT_SENTINEL = "reboot-sentinel"
    EXTERNALLY_OWNED = "externally-owned"


class SchedulerAction(StrEnum):
    """Scheduler-state mutation chosen by the reconciler.

    Values:
        DRAIN: Set the node to drained with a reason ("drain")
        UNDRAIN: Return the node to idle ("undrain")
        NONE: Leave scheduler state untouched ("none")
    """

    DRAIN = "drain"
    UNDRAIN = "undrain"
    NONE = "none"


class DaemonAction(StrEnum):
    """Scheduler-daemon control paired with a reconciliation decision.

    Values:
        START: Ensure the local scheduler daemon is running ("start")
        STOP: Stop the local scheduler daemon ("stop")
        NONE: Do not touch the daemon ("none")
    """

    START = "start"
    STOP = "stop"
    NONE = "none"


__all__ = [
    "DaemonAction",
    "ProbeOutcome",
    "ReasonCategory",
    "RunState",
    "SchedulerAction",
]
