"""Pipeline position detection.

Determines the current workflow phase for an issue or group of issues from
their workflow states and estimates, along with group convergence, the
phases still ahead and a suggested worker roster.

The decision table is ``PHASE_RULES``: an ordered tuple of named rules, each
returning a ``PhaseDecision`` or None. The first rule that decides wins and
later rules are never consulted. Rule order is the priority order:

     1. empty_input       no issues                          -> TRIAGE
     2. oversized         M/L/XL estimate with no sub-issues -> SPLIT
     3. missing_state     empty or "unknown" state           -> TRIAGE
     4. research          any Research Needed / in Progress  -> RESEARCH
     5. all_ready         all Ready for Plan                 -> PLAN
     6. plan_in_progress  any Plan in Progress               -> REVIEW
     7. all_plan_review   all Plan in Review                 -> HUMAN_GATE
     8. some_plan_review  some Plan in Review                -> REVIEW
     9. in_progress       any In Progress                    -> IMPLEMENT
    10. all_terminal      all In Review / Done / Canceled    -> TERMINAL
    11. human_needed      any Human Needed                   -> TERMINAL
    12. backlog           any Backlog                        -> TRIAGE
    13. partial_ready     some Ready for Plan                -> PLAN (not converged)
        fallback          anything else                      -> TRIAGE

``detect_pipeline_position`` never raises. Unrecognized input lands on TRIAGE; the
``trigger`` field of the result names the rule that fired so callers can
tell an empty batch from a missing state from a real Backlog issue.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from agentflow.enums import Estimate, PipelinePhase, WorkflowState
from agentflow.engine.work_streams import order_group
from agentflow.engine.workflow_states import VALID_STATES, compute_distance
from agentflow.exceptions import UnknownStateError
from agentflow.models.domain import (
    BlockingIssue,
    ConvergenceBlocker,
    ConvergenceCheck,
    ConvergenceInfo,
    IssueFileOwnership,
    IssueState,
    PipelinePosition,
    Recommendation,
    StreamPipelineResult,
    SuggestedRoster,
    WorkStream,
)

log = structlog.get_logger(__name__)

_S = WorkflowState

UNKNOWN_STATE = "unknown"

OVERSIZED_ESTIMATES: frozenset[str] = frozenset(e.value for e in Estimate if e.is_oversized)

RESEARCH_STATES: tuple[str, ...] = (_S.RESEARCH_NEEDED.value, _S.RESEARCH_IN_PROGRESS.value)

REMAINING_PHASES: dict[PipelinePhase, tuple[str, ...]] = {
    PipelinePhase.SPLIT: ("split", "triage", "research", "plan", "review", "implement", "pr"),
    PipelinePhase.TRIAGE: ("triage", "research", "plan", "review", "implement", "pr"),
    PipelinePhase.RESEARCH: ("research", "plan", "review", "implement", "pr"),
    PipelinePhase.PLAN: ("plan", "review", "implement", "pr"),
    PipelinePhase.REVIEW: ("review", "implement", "pr"),
    PipelinePhase.IMPLEMENT: ("implement", "pr"),
    PipelinePhase.COMPLETE: ("pr",),
    PipelinePhase.HUMAN_GATE: (),
    PipelinePhase.TERMINAL: (),
}

# Phases where an analyst is still useful.
ANALYST_PHASES: frozenset[PipelinePhase] = frozenset(
    {PipelinePhase.RESEARCH, PipelinePhase.SPLIT, PipelinePhase.TRIAGE}
)

LARGE_BATCH_THRESHOLD = 5


@dataclass(frozen=True)
class PhaseDecision:
    """Phase chosen by a rule, before the result is assembled."""

    phase: PipelinePhase
    reason: str
    required: bool = False
    met: bool = True
    blocking: tuple[BlockingIssue, ...] = ()


class IssueCensus:
    """Issues bucketed by workflow state, computed once per detection."""

    def __init__(self, issues: Sequence[IssueState], is_group: bool) -> None:
        self.issues = list(issues)
        self.is_group = is_group
        self.by_state: dict[str, list[IssueState]] = {}
        for issue in self.issues:
            self.by_state.setdefault(issue.workflow_state, []).append(issue)

    @property
    def total(self) -> int:
        return len(self.issues)

    def in_state(self, state: WorkflowState) -> list[IssueState]:
        return self.by_state.get(state.value, [])

    def count(self, *states: WorkflowState) -> int:
        return sum(len(self.in_state(state)) for state in states)

    def all_in(self, *states: WorkflowState) -> bool:
        return self.count(*states) == self.total


@dataclass(frozen=True)
class PhaseRule:
    """A named entry in the phase decision table."""

    name: str
    evaluate: Callable[[IssueCensus], PhaseDecision | None] = field(repr=False)


def _blocking(issues: Sequence[IssueState]) -> tuple[BlockingIssue, ...]:
    return tuple(BlockingIssue(number=i.number, state=i.workflow_state) for i in issues)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _empty_input(census: IssueCensus) -> PhaseDecision | None:
    if census.total == 0:
        return PhaseDecision(PipelinePhase.TRIAGE, "No issues provided")
    return None


def _oversized(census: IssueCensus) -> PhaseDecision | None:
    oversized = [
        i for i in census.issues if i.estimate is not None and i.estimate in OVERSIZED_ESTIMATES and i.sub_issue_count == 0
    ]
    if not oversized:
        return None
    sizes = ", ".join(f"#{i.number}={i.estimate}" for i in oversized)
    return PhaseDecision(
        PipelinePhase.SPLIT,
        f"{len(oversized)} issue(s) need splitting (estimate: {sizes})",
    )


def _missing_state(census: IssueCensus) -> PhaseDecision | None:
    missing = [i for i in census.issues if not i.workflow_state or i.workflow_state == UNKNOWN_STATE]
    if missing:
        return PhaseDecision(
            PipelinePhase.TRIAGE,
            f"{len(missing)} issue(s) have no workflow state; triage first",
        )
    return None


def _research(census: IssueCensus) -> PhaseDecision | None:
    needs = census.in_state(_S.RESEARCH_NEEDED)
    active = census.in_state(_S.RESEARCH_IN_PROGRESS)
    if not needs and not active:
        return None
    return PhaseDecision(
        PipelinePhase.RESEARCH,
        f"{len(needs)} need research, {len(active)} in progress",
        required=census.is_group,
        met=False,
        blocking=_blocking([*needs, *active]),
    )


def _all_ready(census: IssueCensus) -> PhaseDecision | None:
    if census.all_in(_S.READY_FOR_PLAN):
        return PhaseDecision(
            PipelinePhase.PLAN,
            "All issues ready for planning",
            required=census.is_group,
        )
    return None


def _plan_in_progress(census: IssueCensus) -> PhaseDecision | None:
    writing = census.count(_S.PLAN_IN_PROGRESS)
    if writing:
        reviewing = census.count(_S.PLAN_IN_REVIEW)
        return PhaseDecision(PipelinePhase.REVIEW, f"{writing} plan(s) in progress, {reviewing} in review")
    return None


def _all_plan_review(census: IssueCensus) -> PhaseDecision | None:
    if census.all_in(_S.PLAN_IN_REVIEW):
        return PhaseDecision(PipelinePhase.HUMAN_GATE, "All plans awaiting human approval")
    return None


def _some_plan_review(census: IssueCensus) -> PhaseDecision | None:
    reviewing = census.count(_S.PLAN_IN_REVIEW)
    if reviewing:
        return PhaseDecision(PipelinePhase.REVIEW, f"{reviewing} plan(s) in review")
    return None


def _in_progress(census: IssueCensus) -> PhaseDecision | None:
    building = census.count(_S.IN_PROGRESS)
    if building:
        return PhaseDecision(PipelinePhase.IMPLEMENT, f"{building} issue(s) in progress")
    return None


def _all_terminal(census: IssueCensus) -> PhaseDecision | None:
    if census.all_in(_S.IN_REVIEW, _S.DONE, _S.CANCELED):
        return PhaseDecision(PipelinePhase.TERMINAL, "All issues in review or done")
    return None


def _human_needed(census: IssueCensus) -> PhaseDecision | None:
    stuck = census.count(_S.HUMAN_NEEDED)
    if stuck:
        return PhaseDecision(PipelinePhase.TERMINAL, f"{stuck} issue(s) need human intervention")
    return None


def _backlog(census: IssueCensus) -> PhaseDecision | None:
    queued = census.count(_S.BACKLOG)
    if queued:
        return PhaseDecision(PipelinePhase.TRIAGE, f"{queued} issue(s) in Backlog")
    return None


def _partial_ready(census: IssueCensus) -> PhaseDecision | None:
    if not census.count(_S.READY_FOR_PLAN):
        return None
    behind = [i for i in census.issues if i.workflow_state != _S.READY_FOR_PLAN.value]
    return PhaseDecision(
        PipelinePhase.PLAN,
        "Some issues ready for planning, mixed states",
        required=census.is_group,
        met=False,
        blocking=_blocking(behind),
    )


def _fallback(census: IssueCensus) -> PhaseDecision:
    return PhaseDecision(PipelinePhase.TRIAGE, "Mixed states, defaulting to triage")


PHASE_RULES: tuple[PhaseRule, ...] = (
    PhaseRule("empty_input", _empty_input),
    PhaseRule("oversized", _oversized),
    PhaseRule("missing_state", _missing_state),
    PhaseRule("research", _research),
    PhaseRule("all_ready", _all_ready),
    PhaseRule("plan_in_progress", _plan_in_progress),
    PhaseRule("all_plan_review", _all_plan_review),
    PhaseRule("some_plan_review", _some_plan_review),
    PhaseRule("in_progress", _in_progress),
    PhaseRule("all_terminal", _all_terminal),
    PhaseRule("human_needed", _human_needed),
    PhaseRule("backlog", _backlog),
    PhaseRule("partial_ready", _partial_ready),
    PhaseRule("fallback", _fallback),
)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def _recommend(met: bool, blocking: Sequence[BlockingIssue | ConvergenceBlocker]) -> Recommendation:
    if met:
        return "proceed"
    for blocker in blocking:
        state = blocker.state if isinstance(blocker, BlockingIssue) else blocker.current_state
        if state == _S.HUMAN_NEEDED.value:
            return "escalate"
    return "wait"


def suggest_roster(phase: PipelinePhase, issues: Sequence[IssueState]) -> SuggestedRoster:
    """Suggest worker counts for a phase.

    Analysts are only staffed up to research: one for a single issue needing
    research, two for up to five, three beyond that. A second builder joins
    once five or more issues carry M/L/XL estimates.
    """
    analyst = 0
    if phase in ANALYST_PHASES:
        researching = sum(1 for i in issues if i.workflow_state in RESEARCH_STATES)
        if researching <= 1:
            analyst = 1
        elif researching <= LARGE_BATCH_THRESHOLD:
            analyst = 2
        else:
            analyst = 3

    large = sum(1 for i in issues if i.estimate is not None and i.estimate in OVERSIZED_ESTIMATES)
    builder = 2 if large >= LARGE_BATCH_THRESHOLD else 1

    return SuggestedRoster(analyst=analyst, builder=builder)


def detect_pipeline_position(
    issues: Sequence[IssueState],
    is_group: bool = False,
    group_primary: int | None = None,
    rules: Sequence[PhaseRule] = PHASE_RULES,
) -> PipelinePosition:
    """Detect the pipeline position for a set of issues.

    Args:
        issues: Issue snapshots (one issue or a whole group)
        is_group: Whether the issues form a group that must converge
        group_primary: Primary issue number of the group, if any
        rules: Decision table to evaluate; defaults to ``PHASE_RULES``

    Returns:
        PipelinePosition for the first rule that decides
    """
    census = IssueCensus(issues, is_group)

    trigger, decision = "fallback", None
    for rule in rules:
        decision = rule.evaluate(census)
        if decision is not None:
            trigger = rule.name
            break
    if decision is None:
        decision = _fallback(census)

    convergence = ConvergenceInfo(
        required=decision.required,
        met=decision.met,
        blocking=list(decision.blocking),
        recommendation=_recommend(decision.met, decision.blocking),
    )

    log.debug(
        "pipeline_position_detected",
        phase=decision.phase.value,
        trigger=trigger,
        issues=census.total,
        is_group=is_group,
    )

    return PipelinePosition(
        phase=decision.phase,
        reason=decision.reason,
        trigger=trigger,
        remaining_phases=list(REMAINING_PHASES[decision.phase]),
        issues=list(census.issues),
        convergence=convergence,
        is_group=is_group,
        group_primary=group_primary,
        suggested_roster=suggest_roster(decision.phase, census.issues),
    )


def detect_stream_pipeline_positions(
    streams: Sequence[WorkStream],
    issue_states: Sequence[IssueState],
    ownership: Sequence[IssueFileOwnership] | None = None,
) -> list[StreamPipelineResult]:
    """Detect the pipeline position of each work stream independently.

    Stream members without a snapshot in ``issue_states`` are dropped. A
    stream counts as a group when more than one member remains.

    Args:
        streams: Work streams to evaluate
        issue_states: Snapshots for the stream members
        ownership: Blockers for the stream members. When given, members are
            put in dependency order and the group primary is the first of
            them; otherwise the primary is the lowest issue number.

    Raises:
        DependencyCycleError: If ``ownership`` has a blocker cycle within a stream
    """
    by_number = {state.number: state for state in issue_states}
    blockers = {entry.number: entry for entry in ownership or ()}

    results = []
    for stream in streams:
        numbers = list(stream.issues)
        primary = stream.primary_issue
        if ownership is not None:
            grouped = order_group([blockers.get(n) or IssueFileOwnership(number=n) for n in numbers])
            numbers = grouped.order
            primary = grouped.group_primary if grouped.group_primary is not None else primary

        members = [by_number[n] for n in numbers if n in by_number]
        position = detect_pipeline_position(members, len(members) > 1, primary)
        results.append(StreamPipelineResult(stream_id=stream.id, issues=members, position=position))
    return results


def check_convergence(issues: Sequence[IssueState], target_state: str) -> ConvergenceCheck:
    """Check whether every issue in a group has reached ``target_state``.

    Args:
        issues: Group member snapshots
        target_state: State every member must be in

    Returns:
        ConvergenceCheck with blockers and their distance to the target

    Raises:
        UnknownStateError: If ``target_state`` is not a workflow state
    """
    if target_state not in VALID_STATES:
        raise UnknownStateError(
            f"Unknown target state '{target_state}'. Valid states: {', '.join(VALID_STATES)}.",
            valid_alternatives=list(VALID_STATES),
            recovery="retry with a valid state name.",
        )

    blocking: list[ConvergenceBlocker] = []
    ready = 0
    for issue in issues:
        current = issue.workflow_state or UNKNOWN_STATE
        if current == target_state:
            ready += 1
            continue
        blocking.append(
            ConvergenceBlocker(
                number=issue.number,
                title=issue.title,
                current_state=current,
                distance_to_target=compute_distance(current, target_state),
            )
        )

    converged = not blocking
    log.debug("convergence_checked", target_state=target_state, total=len(issues), ready=ready)
    return ConvergenceCheck(
        converged=converged,
        target_state=target_state,
        total=len(issues),
        ready=ready,
        blocking=blocking,
        recommendation=_recommend(converged, blocking),
    )
