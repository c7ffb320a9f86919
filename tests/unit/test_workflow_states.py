"""Tests for workflow state ordering helpers."""

import pytest

from agentflow.engine.workflow_states import (
    STATE_ORDER,
    VALID_STATES,
    WORKFLOW_STATE_TO_STATUS,
    compare_states,
    compute_distance,
    is_earlier_state,
    is_parent_gate_state,
    is_valid_state,
    state_index,
    status_for_state,
)
from agentflow.enums import WorkflowState


class TestOrdering:
    """Tests for state order queries."""

    def test_order_starts_and_ends(self):
        """Test the pipeline runs from Backlog to Done."""
        assert STATE_ORDER[0] == "Backlog"
        assert STATE_ORDER[-1] == "Done"
        assert len(STATE_ORDER) == 9

    def test_state_index_outside_order(self):
        """Test states outside the pipeline have no index."""
        assert state_index("Human Needed") == -1
        assert state_index("Canceled") == -1
        assert state_index("Ready for Plan") == 3

    def test_compare_states(self):
        """Test comparison sign follows the pipeline order."""
        assert compare_states("Backlog", "Done") < 0
        assert compare_states("In Review", "Plan in Review") > 0
        assert compare_states("In Progress", "In Progress") == 0

    def test_is_earlier_state(self):
        """Test precedence requires both states to be ordered."""
        assert is_earlier_state("Research Needed", "Ready for Plan")
        assert not is_earlier_state("Done", "Backlog")
        assert not is_earlier_state("Human Needed", "Done")
        assert not is_earlier_state("Backlog", "Canceled")


class TestDistance:
    """Tests for distance between states."""

    @pytest.mark.parametrize(
        "current,target,expected",
        [
            ("Backlog", "Done", 8),
            ("Research Needed", "Ready for Plan", 2),
            ("Done", "In Review", -1),
            ("Plan in Review", "Plan in Review", 0),
            ("Human Needed", "Done", -1),
            ("unknown", "Backlog", -1),
        ],
    )
    def test_compute_distance(self, current, target, expected):
        """Test steps to target."""
        assert compute_distance(current, target) == expected


class TestStateSets:
    """Tests for state membership helpers."""

    def test_valid_states_cover_enum(self):
        """Test every workflow state is valid."""
        assert set(VALID_STATES) == {state.value for state in WorkflowState}
        assert is_valid_state("Canceled")
        assert not is_valid_state("Shipped")

    @pytest.mark.parametrize("state", ["Ready for Plan", "In Review", "Done"])
    def test_parent_gate_states(self, state):
        """Test states a parent waits for."""
        assert is_parent_gate_state(state)

    def test_non_gate_state(self):
        """Test in-flight states do not satisfy the gate."""
        assert not is_parent_gate_state("In Progress")

    def test_status_mapping_complete(self):
        """Test every state mirrors onto a Status value."""
        assert set(WORKFLOW_STATE_TO_STATUS) == set(VALID_STATES)
        assert status_for_state("Research in Progress") == "In Progress"
        assert status_for_state("Human Needed") == "Done"
        assert status_for_state("Bogus") is None
