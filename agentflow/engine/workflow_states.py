"""Workflow state ordering and helpers for pipeline detection.

``STATE_ORDER`` is the canonical progression through the pipeline. Human
Needed and Canceled sit outside it, so position helpers return -1 or False
for them.
"""

from agentflow.enums import WorkflowState

_S = WorkflowState

STATE_ORDER: tuple[str, ...] = (
    _S.BACKLOG.value,
    _S.RESEARCH_NEEDED.value,
    _S.RESEARCH_IN_PROGRESS.value,
    _S.READY_FOR_PLAN.value,
    _S.PLAN_IN_PROGRESS.value,
    _S.PLAN_IN_REVIEW.value,
    _S.IN_PROGRESS.value,
    _S.IN_REVIEW.value,
    _S.DONE.value,
)

TERMINAL_STATES: frozenset[str] = frozenset({_S.DONE.value, _S.CANCELED.value})

LOCK_STATES: frozenset[str] = frozenset(
    {_S.RESEARCH_IN_PROGRESS.value, _S.PLAN_IN_PROGRESS.value, _S.IN_PROGRESS.value}
)

HUMAN_STATES: frozenset[str] = frozenset({_S.HUMAN_NEEDED.value, _S.PLAN_IN_REVIEW.value})

# A parent advances only when every child reaches one of these.
PARENT_GATE_STATES: frozenset[str] = frozenset({_S.READY_FOR_PLAN.value, _S.IN_REVIEW.value, _S.DONE.value})

VALID_STATES: tuple[str, ...] = (*STATE_ORDER, _S.CANCELED.value, _S.HUMAN_NEEDED.value)

# One-way sync target for the tracker's built-in Status field.
WORKFLOW_STATE_TO_STATUS: dict[str, str] = {
    _S.BACKLOG.value: "Todo",
    _S.RESEARCH_NEEDED.value: "Todo",
    _S.READY_FOR_PLAN.value: "Todo",
    _S.PLAN_IN_REVIEW.value: "Todo",
    _S.RESEARCH_IN_PROGRESS.value: "In Progress",
    _S.PLAN_IN_PROGRESS.value: "In Progress",
    _S.IN_PROGRESS.value: "In Progress",
    _S.IN_REVIEW.value: "In Progress",
    _S.DONE.value: "Done",
    _S.CANCELED.value: "Done",
    _S.HUMAN_NEEDED.value: "Done",
}


def state_index(state: str) -> int:
    """Position of a state in ``STATE_ORDER``, or -1 when outside it."""
    try:
        return STATE_ORDER.index(state)
    except ValueError:
        return -1


def compare_states(a: str, b: str) -> int:
    """Negative if ``a`` comes before ``b``, positive if after, 0 if equal."""
    return state_index(a) - state_index(b)


def is_earlier_state(a: str, b: str) -> bool:
    """Check if ``a`` precedes ``b``; False unless both are ordered."""
    idx_a = state_index(a)
    idx_b = state_index(b)
    if idx_a == -1 or idx_b == -1:
        return False
    return idx_a < idx_b


def is_valid_state(state: str) -> bool:
    return state in VALID_STATES


def is_parent_gate_state(state: str) -> bool:
    return state in PARENT_GATE_STATES


def compute_distance(current_state: str, target_state: str) -> int:
    """Pipeline steps from ``current_state`` to ``target_state``.

    Returns:
        Positive when the target is ahead, negative when already past it,
        -1 when either state is outside the ordered pipeline
    """
    current_idx = state_index(current_state)
    target_idx = state_index(target_state)
    if current_idx == -1 or target_idx == -1:
        return -1
    return target_idx - current_idx


def status_for_state(state: str) -> str | None:
    """Status field value mirroring a workflow state, None if unknown."""
    return WORKFLOW_STATE_TO_STATUS.get(state)
