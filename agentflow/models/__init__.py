"""Core domain models for the agentflow engine.

Key Models:
    - IssueState: Snapshot of an issue's workflow state and estimate
    - IssueFileOwnership: Files and blockers used for stream clustering
    - WorkStream / WorkStreamResult: Clustering output
    - GroupOrder: Group members in dependency order
    - PipelinePosition: Phase, convergence and roster for a set of issues
    - ConvergenceCheck: Group convergence against a target state

Example:
    >>> from agentflow.models import IssueState
    >>> issue = IssueState(number=42, title="Add auth", workflow_state="Backlog")
"""

from agentflow.models.domain import (
    BlockingIssue,
    ConvergenceBlocker,
    ConvergenceCheck,
    ConvergenceInfo,
    GroupOrder,
    IssueFileOwnership,
    IssueState,
    PipelinePosition,
    StreamPipelineResult,
    SuggestedRoster,
    WorkStream,
    WorkStreamResult,
)

__all__ = [
    "BlockingIssue",
    "ConvergenceBlocker",
    "ConvergenceCheck",
    "ConvergenceInfo",
    "GroupOrder",
    "IssueFileOwnership",
    "IssueState",
    "PipelinePosition",
    "StreamPipelineResult",
    "SuggestedRoster",
    "WorkStream",
    "WorkStreamResult",
]
