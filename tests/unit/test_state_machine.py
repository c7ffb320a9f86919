"""Tests for the workflow state machine and its override loader."""

import json

import pytest

from agentflow.engine.state_machine import (
    DEFAULT_CONFIG,
    CommandDefinition,
    IntentOutcome,
    StateMachine,
    StateMachineConfig,
    is_intent_token,
    load_state_machine,
    normalize_command,
    normalize_intent,
)
from agentflow.enums import Command, SemanticIntent, WorkflowState
from agentflow.exceptions import ConfigurationError

ALL_STATES = [state.value for state in WorkflowState]
ALL_COMMANDS = [command.value for command in Command]


class TestTransitions:
    """Tests for transition validation."""

    @pytest.mark.parametrize("from_state", ALL_STATES)
    def test_transition_valid_iff_listed(self, state_machine, from_state):
        """Test every pair agrees with the allowed transitions table."""
        allowed = set(DEFAULT_CONFIG.states[from_state].allowed_transitions)
        for to_state in ALL_STATES:
            assert state_machine.is_valid_transition(from_state, to_state) is (to_state in allowed)

    @pytest.mark.parametrize("terminal", ["Done", "Canceled"])
    def test_terminal_states_have_no_outgoing_transitions(self, state_machine, terminal):
        """Test terminal states admit no transition at all."""
        assert state_machine.is_terminal(terminal)
        assert state_machine.get_allowed_transitions(terminal) == []
        assert not any(state_machine.is_valid_transition(terminal, to) for to in ALL_STATES)

    def test_unknown_source_state(self, state_machine):
        """Test unknown source states never transition."""
        assert state_machine.is_valid_transition("Nonexistent", "Backlog") is False
        assert state_machine.get_allowed_transitions("Nonexistent") == []

    def test_backlog_transitions(self, state_machine):
        """Test transitions out of Backlog."""
        assert state_machine.get_allowed_transitions("Backlog") == [
            "Research Needed",
            "Ready for Plan",
            "Done",
            "Canceled",
        ]
        assert state_machine.is_valid_transition("Backlog", "In Progress") is False

    def test_human_needed_can_return_to_pipeline(self, state_machine):
        """Test escalated issues can re-enter the pipeline."""
        assert state_machine.is_valid_transition("Human Needed", "Ready for Plan")
        assert state_machine.is_valid_transition("Human Needed", "Done") is False


class TestStateMetadata:
    """Tests for state flag queries."""

    def test_lock_states(self, state_machine):
        """Test only the in-progress research and plan states are locks."""
        locks = [s for s in ALL_STATES if state_machine.is_lock_state(s)]
        assert locks == ["Research in Progress", "Plan in Progress"]

    def test_human_action_states(self, state_machine):
        """Test states waiting on a human."""
        human = [s for s in ALL_STATES if state_machine.requires_human_action(s)]
        assert human == ["Plan in Review", "In Review", "Human Needed"]

    def test_unknown_state_flags(self, state_machine):
        """Test unknown states report no flags."""
        assert state_machine.is_lock_state("Bogus") is False
        assert state_machine.is_terminal("Bogus") is False
        assert state_machine.requires_human_action("Bogus") is False
        assert state_machine.is_valid_state("Bogus") is False
        assert state_machine.describe("Bogus") is None

    def test_describe(self, state_machine):
        """Test state descriptions."""
        assert state_machine.describe("Backlog") == "Ticket awaiting triage"

    def test_expected_by_commands(self, state_machine):
        """Test commands accepting a state as input."""
        assert state_machine.get_expected_by_commands("Plan in Review") == [
            "ralph_impl",
            "ralph_review",
            "ralph_hero",
        ]
        assert state_machine.get_expected_by_commands("Done") == []

    def test_known_commands_and_intents(self, state_machine):
        """Test the table exposes all commands and intents."""
        assert state_machine.known_commands() == ALL_COMMANDS
        assert sorted(state_machine.known_intents()) == sorted(i.value for i in SemanticIntent)


class TestResolveIntent:
    """Tests for semantic intent resolution."""

    @pytest.mark.parametrize("command", ALL_COMMANDS + ["ralph_unknown"])
    def test_escalate_always_human_needed(self, state_machine, command):
        """Test the escalate wildcard applies to every command."""
        resolution = state_machine.resolve_intent("escalate", command)
        assert resolution.outcome is IntentOutcome.RESOLVED
        assert resolution.state == "Human Needed"

    @pytest.mark.parametrize(
        "intent,state",
        [("close", "Done"), ("cancel", "Canceled")],
    )
    def test_wildcard_intents(self, state_machine, intent, state):
        """Test close and cancel resolve for any command."""
        assert state_machine.resolve_intent(intent, "ralph_plan").state == state

    def test_wildcard_dominates_command_entry(self):
        """Test the wildcard wins over a per-command entry."""
        config = StateMachineConfig(
            states=DEFAULT_CONFIG.states,
            semantic_intents={"escalate": {"*": "Human Needed", "ralph_plan": "Backlog"}},
            commands=DEFAULT_CONFIG.commands,
        )
        assert StateMachine(config).resolve_intent("escalate", "plan").state == "Human Needed"

    def test_lock_for_plan(self, state_machine):
        """Test lock resolves to the command's lock state."""
        resolution = state_machine.resolve_intent("lock", "ralph_plan")
        assert resolution.is_resolved
        assert resolution.state == "Plan in Progress"

    def test_lock_unsupported_for_triage(self, state_machine):
        """Test lock has no mapping for triage."""
        resolution = state_machine.resolve_intent("lock", "ralph_triage")
        assert resolution.outcome is IntentOutcome.UNSUPPORTED
        assert resolution.state is None

    def test_complete_ambiguous_for_triage(self, state_machine):
        """Test complete is ambiguous for triage."""
        assert state_machine.resolve_intent("complete", "ralph_triage").outcome is IntentOutcome.AMBIGUOUS

    def test_unknown_intent_unsupported(self, state_machine):
        """Test unknown intents are reported as unsupported."""
        assert state_machine.resolve_intent("teleport", "ralph_plan").outcome is IntentOutcome.UNSUPPORTED

    @pytest.mark.parametrize("spelling", ["complete", "COMPLETE", "__COMPLETE__", SemanticIntent.COMPLETE])
    def test_intent_spellings(self, state_machine, spelling):
        """Test all accepted intent spellings resolve the same way."""
        assert state_machine.resolve_intent(spelling, "research").state == "Ready for Plan"

    def test_bare_command_name(self, state_machine):
        """Test bare command names are normalized."""
        assert state_machine.resolve_intent("complete", "plan").state == "Plan in Review"


class TestOutputValidation:
    """Tests for command output validation."""

    def test_lock_state_is_valid_output(self, state_machine):
        """Test the lock state counts as a valid output."""
        assert state_machine.is_valid_output_for_command("ralph_research", "Research in Progress")
        assert state_machine.is_valid_output_for_command("research", "Ready for Plan")

    def test_invalid_output(self, state_machine):
        """Test states outside the contract are rejected."""
        assert state_machine.is_valid_output_for_command("ralph_plan", "Done") is False

    def test_unknown_command_passes_through(self, state_machine):
        """Test unknown commands accept any state."""
        assert state_machine.is_valid_output_for_command("ralph_merge", "Done") is True

    def test_allowed_states_for_command(self, state_machine):
        """Test allowed direct states put the lock state first."""
        assert state_machine.allowed_states_for_command("ralph_plan") == [
            "Plan in Progress",
            "Plan in Review",
            "Human Needed",
        ]
        assert state_machine.allowed_states_for_command("ralph_unknown") == []

    def test_allowed_output_states_without_duplicate_lock(self):
        """Test a lock state already listed as output is not repeated."""
        definition = CommandDefinition(
            valid_output_states=("In Progress", "In Review"),
            lock_state="In Progress",
        )
        assert definition.allowed_output_states == ("In Progress", "In Review")


class TestNormalization:
    """Tests for name normalization helpers."""

    def test_normalize_command(self):
        """Test the command prefix is added only when missing."""
        assert normalize_command("plan") == "ralph_plan"
        assert normalize_command("ralph_plan") == "ralph_plan"
        assert normalize_command(Command.HERO) == "ralph_hero"

    def test_normalize_intent(self):
        """Test intent normalization."""
        assert normalize_intent("__LOCK__") == "lock"
        assert normalize_intent("Lock") == "lock"

    def test_is_intent_token(self):
        """Test token detection."""
        assert is_intent_token("__LOCK__")
        assert not is_intent_token("lock")
        assert is_intent_token("____")
        assert not is_intent_token("_LOCK_")


class TestOverrideLoader:
    """Tests for loading the state machine from a JSON override."""

    def test_no_path_uses_embedded_table(self):
        """Test default construction."""
        assert load_state_machine().config is DEFAULT_CONFIG

    def test_fixture_matches_embedded_table(self, fixtures_dir):
        """Test the shipped override file equals the embedded table."""
        machine = load_state_machine(fixtures_dir / "state-machine.json")
        assert machine.config == DEFAULT_CONFIG

    def test_embedded_table_renders_as_fixture(self, fixtures_dir):
        """Test rendering the embedded table reproduces the override file."""
        data = json.loads((fixtures_dir / "state-machine.json").read_text())
        data["semantic_states"].pop("description")
        assert DEFAULT_CONFIG.to_json_dict() == data

    def test_json_round_trip(self):
        """Test from_json_dict inverts to_json_dict."""
        assert StateMachineConfig.from_json_dict(DEFAULT_CONFIG.to_json_dict()) == DEFAULT_CONFIG

    def test_missing_file_raises(self, tmp_path):
        """Test a missing override never falls back silently."""
        with pytest.raises(ConfigurationError, match="not found"):
            load_state_machine(tmp_path / "missing.json")

    def test_invalid_json_raises(self, tmp_path):
        """Test malformed JSON is a configuration error."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_state_machine(path)

    def test_non_object_raises(self, tmp_path):
        """Test the document must be an object."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigurationError, match="JSON object"):
            load_state_machine(path)

    def test_malformed_section_raises(self, tmp_path):
        """Test a section with the wrong shape is rejected."""
        path = tmp_path / "bad-states.json"
        path.write_text(json.dumps({"states": {"Backlog": "not an object"}}))
        with pytest.raises(ConfigurationError, match="Malformed"):
            load_state_machine(path)

    def test_override_changes_behaviour(self, tmp_path):
        """Test a custom table is actually used."""
        data = DEFAULT_CONFIG.to_json_dict()
        data["states"]["Backlog"]["allowed_transitions"].append("In Progress")
        path = tmp_path / "custom.json"
        path.write_text(json.dumps(data))

        machine = load_state_machine(path)

        assert machine.is_valid_transition("Backlog", "In Progress")
        assert machine.config != DEFAULT_CONFIG
