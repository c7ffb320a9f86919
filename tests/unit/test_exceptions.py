"""Tests for the exception hierarchy."""

import pytest

from agentflow.exceptions import (
    AgentflowError,
    ConfigIssue,
    ConfigurationError,
    DependencyCycleError,
    IntentAmbiguousError,
    IntentNotSupportedError,
    InvalidDirectStateError,
    RoutingConfigError,
    StateResolutionError,
    UnknownCommandError,
    UnknownIntentError,
    UnknownStateError,
)


class TestHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "error_class",
        [UnknownCommandError, UnknownIntentError, IntentAmbiguousError, UnknownStateError],
    )
    def test_resolution_errors(self, error_class):
        """Test resolution errors share a base."""
        error = error_class("bad input")
        assert isinstance(error, StateResolutionError)
        assert isinstance(error, AgentflowError)

    def test_routing_error_is_configuration_error(self):
        """Test routing config errors are configuration errors."""
        assert issubclass(RoutingConfigError, ConfigurationError)

    def test_message_attribute(self):
        """Test the base keeps its message."""
        error = ConfigurationError("missing file")
        assert error.message == "missing file"
        assert str(error) == "missing file"


class TestStateResolutionError:
    """Tests for resolution error formatting."""

    def test_recovery_appended(self):
        """Test recovery text goes in the string form only."""
        error = StateResolutionError(
            "Unknown command.", command="ralph_x", valid_alternatives=["ralph_plan"], recovery="retry."
        )

        assert str(error) == "Unknown command. Recovery: retry."
        assert error.message == "Unknown command."
        assert error.command == "ralph_x"
        assert error.valid_alternatives == ["ralph_plan"]

    def test_without_recovery(self):
        """Test no recovery means no suffix."""
        error = StateResolutionError("Oops.")
        assert str(error) == "Oops."
        assert error.valid_alternatives == []

    def test_intent_not_supported_fields(self):
        """Test extra attributes are kept."""
        error = IntentNotSupportedError("x", intent="__LOCK__", supporting_commands=["ralph_plan → Plan in Progress"])
        assert error.intent == "__LOCK__"
        assert error.supporting_commands == ["ralph_plan → Plan in Progress"]

    def test_invalid_direct_state_fields(self):
        """Test extra attributes are kept."""
        error = InvalidDirectStateError("x", state="Done", recovery_intents=["__CLOSE__ → Done"])
        assert error.state == "Done"
        assert error.recovery_intents == ["__CLOSE__ → Done"]


class TestRoutingConfigError:
    """Tests for routing config error formatting."""

    def test_message_lists_issues(self):
        """Test every issue appears in the string form."""
        error = RoutingConfigError(
            [
                ConfigIssue(phase="schema_validation", path=["rules", "0", "match"], message="bad match"),
                ConfigIssue(phase="live_validation", path=["rules", "1"], message="bad state"),
            ],
            file_path="routing.yml",
        )

        assert error.message == "Invalid routing config (live_validation, schema_validation) in routing.yml"
        assert "[schema_validation] rules.0.match: bad match" in str(error)
        assert "[live_validation] rules.1: bad state" in str(error)
        assert error.phases == {"schema_validation", "live_validation"}

    def test_issue_without_path(self):
        """Test root-level issues."""
        issue = ConfigIssue(phase="yaml_parse", message="unexpected end of stream")
        assert str(issue) == "[yaml_parse] <root>: unexpected end of stream"
        assert issue.to_dict() == {"phase": "yaml_parse", "path": [], "message": "unexpected end of stream"}


class TestDependencyCycleError:
    """Tests for cycle error formatting."""

    def test_members_listed(self):
        """Test the cycle members are kept and named in the message."""
        error = DependencyCycleError([5, 7])

        assert isinstance(error, AgentflowError)
        assert error.cycle_members == [5, 7]
        assert error.message == (
            "Cycle detected in dependencies! Issues involved: #5, #7. "
            "These issues form a circular dependency chain. Remove one dependency to resolve."
        )
