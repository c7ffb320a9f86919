"""Enumerations shared across the agentflow engine."""

from enum import Enum

COMMAND_PREFIX = "ralph_"


class WorkflowState(str, Enum):
    """Canonical workflow states an issue moves through.

    Values are the exact option names used in the project's
    "Workflow State" field.
    """

    BACKLOG = "Backlog"
    RESEARCH_NEEDED = "Research Needed"
    RESEARCH_IN_PROGRESS = "Research in Progress"
    READY_FOR_PLAN = "Ready for Plan"
    PLAN_IN_PROGRESS = "Plan in Progress"
    PLAN_IN_REVIEW = "Plan in Review"
    IN_PROGRESS = "In Progress"
    IN_REVIEW = "In Review"
    HUMAN_NEEDED = "Human Needed"
    DONE = "Done"
    CANCELED = "Canceled"

    def __str__(self) -> str:
        return self.value


class Command(str, Enum):
    """Workflow commands that can trigger state transitions."""

    TRIAGE = "ralph_triage"
    SPLIT = "ralph_split"
    RESEARCH = "ralph_research"
    PLAN = "ralph_plan"
    IMPL = "ralph_impl"
    REVIEW = "ralph_review"
    HERO = "ralph_hero"

    def __str__(self) -> str:
        return self.value

    @property
    def short_name(self) -> str:
        """Command name without the ``ralph_`` prefix."""
        return self.value.removeprefix(COMMAND_PREFIX)


class SemanticIntent(str, Enum):
    """Command-independent tokens that resolve to a concrete state.

    The token form used on the wire is ``__LOCK__``; see ``token``.
    """

    LOCK = "lock"
    COMPLETE = "complete"
    ESCALATE = "escalate"
    CLOSE = "close"
    CANCEL = "cancel"

    def __str__(self) -> str:
        return self.value

    @property
    def token(self) -> str:
        """Wire token form, e.g. ``__LOCK__``."""
        return f"__{self.value.upper()}__"


INTENT_DESCRIPTIONS: dict[SemanticIntent, str] = {
    SemanticIntent.LOCK: "claim work",
    SemanticIntent.COMPLETE: "finish work",
    SemanticIntent.ESCALATE: "needs human",
    SemanticIntent.CLOSE: "mark done",
    SemanticIntent.CANCEL: "abandon",
}


class PipelinePhase(str, Enum):
    """Phase of the delivery pipeline a set of issues is in."""

    SPLIT = "SPLIT"
    TRIAGE = "TRIAGE"
    RESEARCH = "RESEARCH"
    PLAN = "PLAN"
    REVIEW = "REVIEW"
    IMPLEMENT = "IMPLEMENT"
    COMPLETE = "COMPLETE"
    HUMAN_GATE = "HUMAN_GATE"
    TERMINAL = "TERMINAL"

    def __str__(self) -> str:
        return self.value


class Estimate(str, Enum):
    """T-shirt size estimates attached to issues."""

    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"

    def __str__(self) -> str:
        return self.value

    @property
    def is_oversized(self) -> bool:
        """Check if issues of this size must be split before work starts."""
        return self in (Estimate.M, Estimate.L, Estimate.XL)


class IssueType(str, Enum):
    """Kinds of project items a routing rule can match."""

    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    DRAFT_ISSUE = "draft_issue"

    def __str__(self) -> str:
        return self.value
