"""
Domain models for the agentflow decision engine.

This module contains the value objects the engine consumes and produces.
They are built fresh per call from caller-supplied snapshots (the engine
never fetches or persists anything) and are never mutated afterwards.

Serialization:
    Every result type has a ``to_dict()`` method producing the camelCase
    JSON shape consumed by orchestration tooling and dashboards. Input
    types accept both camelCase and snake_case keys in ``from_dict()``.

Example:
    Building issue snapshots from provider data::

        issues = [
            IssueState(number=42, title="Add auth", workflow_state="Ready for Plan"),
            IssueState(number=43, title="Add login UI", workflow_state="Research Needed"),
        ]
        position = detect_pipeline_position(issues, is_group=True, group_primary=42)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from agentflow.enums import PipelinePhase

Recommendation = Literal["proceed", "wait", "escalate"]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in ``data``."""
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass(frozen=True)
class IssueState:
    """Snapshot of one issue's workflow position.

    Example:
        >>> IssueState(number=42, title="Add auth", workflow_state="Backlog", estimate="M")
    """

    number: int
    """Issue number (e.g., #42)."""

    title: str = ""
    """Issue title, carried through for reporting only."""

    workflow_state: str = ""
    """One of the canonical workflow state names.

    Empty or ``"unknown"`` when the issue has not been placed in the
    workflow yet.
    """

    estimate: str | None = None
    """Size estimate (XS, S, M, L, XL) or None when not estimated."""

    sub_issue_count: int = 0
    """Number of sub-issues; a non-zero count means the issue was already split."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IssueState:
        """Build a snapshot from a provider payload (camelCase or snake_case)."""
        state = _pick(data, "workflowState", "workflow_state", default="")
        return cls(
            number=int(data["number"]),
            title=str(data.get("title") or ""),
            workflow_state=str(state or ""),
            estimate=data.get("estimate"),
            sub_issue_count=int(_pick(data, "subIssueCount", "sub_issue_count", default=0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "workflowState": self.workflow_state,
            "estimate": self.estimate,
            "subIssueCount": self.sub_issue_count,
        }


@dataclass(frozen=True)
class IssueFileOwnership:
    """Files an issue will modify and the issues blocking it.

    Used only as input to work stream detection.
    """

    number: int
    files: list[str] = field(default_factory=list)
    blocked_by: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IssueFileOwnership:
        return cls(
            number=int(data["number"]),
            files=[str(f) for f in data.get("files") or []],
            blocked_by=[int(n) for n in _pick(data, "blockedBy", "blocked_by", default=None) or []],
        )


@dataclass(frozen=True)
class WorkStream:
    """A maximal set of issues that must be worked as one unit.

    Issues land in the same stream when they touch a common file or one
    blocks another within the same batch.
    """

    id: str
    """Stable identifier built from the sorted issue numbers, e.g. ``stream-42-44``."""

    issues: list[int]
    """Member issue numbers, ascending."""

    shared_files: list[str]
    """Files touched by two or more members, sorted."""

    primary_issue: int
    """Smallest issue number in the stream."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "issues": list(self.issues),
            "sharedFiles": list(self.shared_files),
            "primaryIssue": self.primary_issue,
        }


@dataclass(frozen=True)
class WorkStreamResult:
    """Outcome of clustering a batch of issues into work streams."""

    streams: list[WorkStream]
    total_issues: int
    total_streams: int
    rationale: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "streams": [stream.to_dict() for stream in self.streams],
            "totalIssues": self.total_issues,
            "totalStreams": self.total_streams,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class GroupOrder:
    """Group members in dependency order.

    Blockers come before the issues they block; ties go to the lower
    issue number.
    """

    order: list[int]
    group_primary: int | None
    """First issue in ``order``, or None for an empty group."""

    @property
    def is_group(self) -> bool:
        return len(self.order) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "groupPrimary": self.group_primary,
            "isGroup": self.is_group,
        }


@dataclass(frozen=True)
class BlockingIssue:
    """An issue holding a group back from converging."""

    number: int
    state: str

    def to_dict(self) -> dict[str, Any]:
        return {"number": self.number, "state": self.state}


@dataclass(frozen=True)
class ConvergenceInfo:
    """Whether a group of issues can advance together."""

    required: bool
    met: bool
    blocking: list[BlockingIssue]
    recommendation: Recommendation

    def to_dict(self) -> dict[str, Any]:
        return {
            "required": self.required,
            "met": self.met,
            "blocking": [b.to_dict() for b in self.blocking],
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class SuggestedRoster:
    """Worker counts suggested for staffing the current phase."""

    analyst: int
    """0-3: zero once research is over, scaling with issues needing research."""

    builder: int
    """1-2: two when five or more issues carry M/L/XL estimates."""

    validator: int = 1
    integrator: int = 1

    def to_dict(self) -> dict[str, int]:
        return {
            "analyst": self.analyst,
            "builder": self.builder,
            "validator": self.validator,
            "integrator": self.integrator,
        }


@dataclass(frozen=True)
class PipelinePosition:
    """Where a set of issues sits in the delivery pipeline."""

    phase: PipelinePhase
    reason: str
    trigger: str
    """Name of the detection rule that decided the phase."""

    remaining_phases: list[str]
    issues: list[IssueState]
    convergence: ConvergenceInfo
    is_group: bool
    group_primary: int | None
    suggested_roster: SuggestedRoster

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "reason": self.reason,
            "trigger": self.trigger,
            "remainingPhases": list(self.remaining_phases),
            "issues": [issue.to_dict() for issue in self.issues],
            "convergence": self.convergence.to_dict(),
            "isGroup": self.is_group,
            "groupPrimary": self.group_primary,
            "suggestedRoster": self.suggested_roster.to_dict(),
        }


@dataclass(frozen=True)
class StreamPipelineResult:
    """Pipeline position computed for a single work stream."""

    stream_id: str
    issues: list[IssueState]
    position: PipelinePosition

    def to_dict(self) -> dict[str, Any]:
        return {
            "streamId": self.stream_id,
            "issues": [issue.to_dict() for issue in self.issues],
            "position": self.position.to_dict(),
        }


@dataclass(frozen=True)
class ConvergenceBlocker:
    """Issue not yet at the convergence target state."""

    number: int
    title: str
    current_state: str
    distance_to_target: int
    """Pipeline steps left to reach the target; -1 when not comparable."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "currentState": self.current_state,
            "distanceToTarget": self.distance_to_target,
        }


@dataclass(frozen=True)
class ConvergenceCheck:
    """Result of checking a group against a specific target state."""

    converged: bool
    target_state: str
    total: int
    ready: int
    blocking: list[ConvergenceBlocker]
    recommendation: Recommendation

    def to_dict(self) -> dict[str, Any]:
        return {
            "converged": self.converged,
            "targetState": self.target_state,
            "total": self.total,
            "ready": self.ready,
            "blocking": [b.to_dict() for b in self.blocking],
            "recommendation": self.recommendation,
        }
