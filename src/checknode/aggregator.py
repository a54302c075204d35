"""Reduction of a run report into a single health verdict."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from checknode.config import DEFAULT_REASON_DELIMITER
from checknode.probe_runner import ProbeResult
from checknode.types import ProbeOutcome


@dataclass(frozen=True)
class HealthVerdict:
    """Aggregated health of the node.

    Attributes:
        passed: True when no probe failed.
        error_count: Number of failing probes.
        error_reason: Delimiter-joined failure tags in run order; empty when
            error_count is 0.
    """

    passed: bool
    error_count: int = 0
    error_reason: str = ""


def failure_tag(result: ProbeResult) -> str:
    """Short, stable tag naming a failing probe.

    A plain non-zero exit is tagged with the probe name alone; timeouts and
    launch failures carry the outcome as a suffix. Probe output is left out
    so the tag does not change between runs of a persistently failing probe.
    """
    if result.outcome is ProbeOutcome.FAILED:
        return result.name
    return f"{result.name}:{result.outcome}"


def aggregate(
    results: Iterable[ProbeResult],
    delimiter: str = DEFAULT_REASON_DELIMITER,
) -> HealthVerdict:
    """Reduce probe results to a verdict.

    Args:
        results: Probe results in run order (a RunReport works directly).
        delimiter: Separator between failure tags.

    Returns:
        HealthVerdict whose error_reason preserves the run order, so two runs
        with the same failing probes produce byte-identical reasons.
    """
    tags = [failure_tag(result) for result in results if result.failed]
    if not tags:
        return HealthVerdict(passed=True)
    return HealthVerdict(
        passed=False,
        error_count=len(tags),
        error_reason=delimiter.join(tags),
    )


__all__ = [
    "HealthVerdict",
    "aggregate",
    "failure_tag",
]
