"""Reconciliation of the health verdict against the scheduler's view.

The reconciler decides whether to drain the node, return it to idle, or
leave the scheduler alone, and whether to start or stop the local scheduler
daemon. The policy fails toward caution: checknode readily drains a broken
node, but it never replaces a drain reason it did not set (or that the site
has not declared overridable), and it never returns a node to service over
an administrator's reason unless force-undrain is given.

The decision itself is a pure function, :func:`decide`, over a
:class:`~checknode.types.ReasonCategory` produced by
:func:`classify_reason`. :class:`Reconciler` reads the scheduler, calls
:func:`decide` and carries out the side effects.

Failing verdict, first match wins:

=====================  ==============================================
rule                   condition
=====================  ==============================================
check-only             check-only mode
local-only             scheduler contact disabled
scheduler-unavailable  node state could not be read
reason-unchanged       current reason equals the new composite reason
externally-owned       current reason is not overridable
drain                  otherwise
=====================  ==============================================

The daemon is stopped if the composite reason matches a daemon-stop pattern
and started otherwise.

Passing verdict, first match wins:

=====================  ==============================================
rule                   condition
=====================  ==============================================
check-only             check-only mode
local-only             scheduler contact disabled
scheduler-unavailable  node state could not be read
leave-alone-state      node is idle, planned, in maintenance or reserved
reboot-requires-force  unexpected-reboot reason without force-undrain
externally-owned       reason not overridable, without force-undrain
undrain                otherwise
=====================  ==============================================

The daemon is always started on a passing verdict.
"""

from __future__ import annotations

from dataclasses import dataclass

from checknode.aggregator import HealthVerdict
from checknode.config import ModeConfig, ReasonPolicy
from checknode.exceptions import SchedulerError
from checknode.logging import get_logger
from checknode.run_directory import RunDirectory
from checknode.scheduler import DaemonController, ExternalNodeState, SchedulerClient
from checknode.types import DaemonAction, ReasonCategory, RunState, SchedulerAction

logger = get_logger(__name__)

# Reasons a failing run may replace with its own.
FAILURE_OVERRIDABLE = frozenset(
    {
        ReasonCategory.EMPTY,
        ReasonCategory.SELF_MANAGED,
        ReasonCategory.KNOWN_BENIGN,
        ReasonCategory.REBOOT_SENTINEL,
    }
)

# Reasons a passing run may clear without force-undrain.
PASS_OVERRIDABLE = frozenset(
    {
        ReasonCategory.EMPTY,
        ReasonCategory.SELF_MANAGED,
        ReasonCategory.KNOWN_BENIGN,
    }
)


@dataclass(frozen=True)
class Decision:
    """Outcome of the reconciliation decision table.

    Attributes:
        run_state: Token to persist in the run-state file.
        action: Scheduler mutation to perform.
        daemon: Scheduler-daemon action to perform.
        rule: Name of the governing rule.
        message: Operator-facing explanation.
        reason: Composite drain reason (failing verdicts only).
        category: Classification of the current scheduler reason, if read.
    """

    run_state: RunState
    action: SchedulerAction
    daemon: DaemonAction
    rule: str
    message: str
    reason: str = ""
    category: ReasonCategory | None = None

    @property
    def exit_code(self) -> int:
        return 0 if self.run_state is RunState.PASS else 1


def classify_reason(reason: str, policy: ReasonPolicy) -> ReasonCategory:
    """Classify a scheduler drain reason.

    Args:
        reason: Reason as reported by the scheduler.
        policy: Site reason policy.

    Returns:
        The reason's category.
    """
    text = reason.strip()
    if not text or text.lower() == "none":
        return ReasonCategory.EMPTY
    if text.startswith(policy.managed_prefix):
        return ReasonCategory.SELF_MANAGED
    if text == policy.reboot_reason:
        return ReasonCategory.REBOOT_SENTINEL
    if any(text.startswith(known) for known in policy.overridable_reasons):
        return ReasonCategory.KNOWN_BENIGN
    return ReasonCategory.EXTERNALLY_OWNED


def composite_reason(verdict: HealthVerdict, policy: ReasonPolicy) -> str:
    """Drain reason for a failing verdict, tagged as managed by checknode."""
    return f"{policy.managed_prefix} {verdict.error_count} error(s): {verdict.error_reason}"


def _failure_daemon_action(reason: str, modes: ModeConfig, policy: ReasonPolicy) -> DaemonAction:
    if modes.local_only:
        return DaemonAction.NONE
    lowered = reason.lower()
    if any(pattern.lower() in lowered for pattern in policy.daemon_stop_patterns):
        return DaemonAction.STOP
    return DaemonAction.START


def _decide_failing(
    verdict: HealthVerdict,
    node_state: ExternalNodeState | None,
    modes: ModeConfig,
    policy: ReasonPolicy,
) -> Decision:
    reason = composite_reason(verdict, policy)
    daemon = _failure_daemon_action(reason, modes, policy)

    def keep(rule: str, message: str, category: ReasonCategory | None = None) -> Decision:
        return Decision(
            run_state=RunState.FAIL,
            action=SchedulerAction.NONE,
            daemon=daemon,
            rule=rule,
            message=message,
            reason=reason,
            category=category,
        )

    if modes.check_only:
        return keep("check-only", "Check-only mode, not changing scheduler state")
    if modes.local_only:
        return keep("local-only", "Local-only mode, scheduler was not contacted")
    if node_state is None:
        return keep("scheduler-unavailable", "Scheduler state unknown, not changing it")

    current = node_state.current_reason
    category = classify_reason(current, policy)
    if current == reason:
        return keep("reason-unchanged", "Drain reason unchanged", category)
    if category not in FAILURE_OVERRIDABLE:
        return keep(
            "externally-owned",
            f"Not changing existing reason {current!r}",
            category,
        )
    return Decision(
        run_state=RunState.FAIL,
        action=SchedulerAction.DRAIN,
        daemon=daemon,
        rule="drain",
        message=f"Draining node (previous reason {current!r})",
        reason=reason,
        category=category,
    )


def _decide_passing(
    node_state: ExternalNodeState | None,
    modes: ModeConfig,
    policy: ReasonPolicy,
) -> Decision:
    daemon = DaemonAction.NONE if modes.local_only else DaemonAction.START

    def keep(rule: str, message: str, category: ReasonCategory | None = None) -> Decision:
        return Decision(
            run_state=RunState.PASS,
            action=SchedulerAction.NONE,
            daemon=daemon,
            rule=rule,
            message=message,
            category=category,
        )

    if modes.check_only:
        return keep("check-only", "Check-only mode, not changing scheduler state")
    if modes.local_only:
        return keep("local-only", "Local-only mode, scheduler was not contacted")
    if node_state is None:
        return keep("scheduler-unavailable", "Scheduler state unknown, not changing it")

    current = node_state.current_reason
    category = classify_reason(current, policy)
    if node_state.current_state in policy.leave_alone_states:
        return keep(
            "leave-alone-state",
            f"Node is {node_state.current_state}, leaving it alone",
            category,
        )
    if category is ReasonCategory.REBOOT_SENTINEL and not modes.force_undrain:
        return keep(
            "reboot-requires-force",
            f"Reason is {current!r}; force-undrain (-u) is required to return the node",
            category,
        )
    if category not in PASS_OVERRIDABLE and not modes.force_undrain:
        return keep(
            "externally-owned",
            f"Not clearing existing reason {current!r}",
            category,
        )
    return Decision(
        run_state=RunState.PASS,
        action=SchedulerAction.UNDRAIN,
        daemon=daemon,
        rule="undrain",
        message=f"Returning node to idle (previous reason {current!r})",
        category=category,
    )


def decide(
    verdict: HealthVerdict,
    node_state: ExternalNodeState | None,
    modes: ModeConfig,
    policy: ReasonPolicy,
) -> Decision:
    """Evaluate the reconciliation decision table.

    Args:
        verdict: Aggregated health verdict.
        node_state: Freshly read scheduler state, or None if it was not read
            (local-only mode) or could not be read.
        modes: Mode flags for this invocation.
        policy: Site reason policy.

    Returns:
        The Decision, naming the governing rule.
    """
    if verdict.passed:
        return _decide_passing(node_state, modes, policy)
    return _decide_failing(verdict, node_state, modes, policy)


class Reconciler:
    """Reads scheduler state, decides, and applies the decision."""

    def __init__(
        self,
        run_directory: RunDirectory,
        scheduler: SchedulerClient,
        daemon: DaemonController,
        modes: ModeConfig,
        policy: ReasonPolicy,
    ) -> None:
        """Initialize the reconciler.

        Args:
            run_directory: Where the final run state is persisted.
            scheduler: Scheduler read/write interface.
            daemon: Scheduler-daemon controller.
            modes: Mode flags for this invocation.
            policy: Site reason policy.
        """
        self.run_directory = run_directory
        self.scheduler = scheduler
        self.daemon = daemon
        self.modes = modes
        self.policy = policy

    def read_node_state(self) -> ExternalNodeState | None:
        """Read the scheduler's view of the node, best effort.

        Returns:
            The node state, or None in local-only mode or when the read fails.
        """
        if self.modes.local_only:
            return None
        try:
            return self.scheduler.read_node_state()
        except SchedulerError as e:
            logger.warning("Unable to read scheduler state: %s", e)
            return None

    def reconcile(self, verdict: HealthVerdict) -> Decision:
        """Reconcile a verdict with the scheduler and persist the run state.

        Args:
            verdict: Aggregated health verdict.

        Returns:
            The applied Decision.
        """
        node_state = self.read_node_state()
        decision = decide(verdict, node_state, self.modes, self.policy)
        if verdict.passed:
            self._apply_daemon(decision.daemon)
            self._persist(decision.run_state)
            self._log_decision(decision)
            self._apply_scheduler(decision)
        else:
            self._persist(decision.run_state)
            logger.warning("Node unhealthy: %s", decision.reason)
            self._log_decision(decision)
            self._apply_scheduler(decision)
            self._apply_daemon(decision.daemon)
        return decision

    def _persist(self, state: RunState) -> None:
        if not self.run_directory.set_state(state):
            logger.error("Run state %s could not be recorded", state)

    def _log_decision(self, decision: Decision) -> None:
        rule_logger = logger.with_context(rule=decision.rule)
        if decision.rule == "reboot-requires-force":
            rule_logger.warning(decision.message)
        else:
            rule_logger.info(decision.message)

    def _apply_scheduler(self, decision: Decision) -> None:
        try:
            if decision.action is SchedulerAction.DRAIN:
                self.scheduler.drain(decision.reason)
            elif decision.action is SchedulerAction.UNDRAIN:
                self.scheduler.undrain()
        except SchedulerError as e:
            logger.error(
                "Scheduler %s failed, scheduler state may be stale: %s",
                decision.action,
                e,
                extra={"rule": decision.rule},
            )

    def _apply_daemon(self, action: DaemonAction) -> None:
        try:
            if action is DaemonAction.START:
                self.daemon.start()
            elif action is DaemonAction.STOP:
                self.daemon.stop()
        except SchedulerError as e:
            logger.error("Scheduler daemon %s failed: %s", action, e)


__all__ = [
    "Decision",
    "FAILURE_OVERRIDABLE",
    "PASS_OVERRIDABLE",
    "Reconciler",
    "classify_reason",
    "composite_reason",
    "decide",
]
