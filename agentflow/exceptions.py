"""Custom exception hierarchy for the agentflow decision engine.

This module defines a structured exception hierarchy that enables precise
error handling and machine-actionable error messages. The primary caller of
the state resolution API is an autonomous agent that corrects itself from the
error text alone, so every resolution error names the valid alternatives and
a recovery step.

Exception Hierarchy:
    AgentflowError (base)
    ├── ConfigurationError
    │   └── RoutingConfigError
    ├── DependencyCycleError
    └── StateResolutionError
        ├── UnknownCommandError
        ├── UnknownIntentError
        ├── IntentNotSupportedError
        ├── IntentAmbiguousError
        ├── InvalidDirectStateError
        └── UnknownStateError

Example Usage:
    >>> from agentflow.exceptions import StateResolutionError
    >>> try:
    ...     resolve_state("__LOCK__", "ralph_triage")
    ... except StateResolutionError as e:
    ...     retry_with(e.valid_alternatives)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ConfigPhase = Literal["yaml_parse", "schema_validation", "live_validation"]


class AgentflowError(Exception):
    """Base exception for all agentflow errors.

    All custom exceptions inherit from this base class, allowing callers to
    catch every agentflow-specific error with a single except clause.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(AgentflowError):
    """Configuration-related errors.

    Raised when configuration files are invalid, missing, or contain
    incompatible settings.

    Examples:
        - Settings file not found
        - Invalid YAML/JSON syntax
        - State machine override file is malformed
    """

    pass


@dataclass(frozen=True)
class ConfigIssue:
    """A single problem found while loading or validating routing config."""

    phase: ConfigPhase
    path: list[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict[str, object]:
        return {"phase": self.phase, "path": list(self.path), "message": self.message}

    def __str__(self) -> str:
        location = ".".join(self.path) if self.path else "<root>"
        return f"[{self.phase}] {location}: {self.message}"


class RoutingConfigError(ConfigurationError):
    """Routing configuration failed to load or validate.

    Carries every issue found, each tagged with the validation phase that
    produced it (yaml_parse, schema_validation or live_validation).

    Attributes:
        issues: Problems found, in the order they were detected
        file_path: Config file being loaded, if any
    """

    def __init__(self, issues: list[ConfigIssue], file_path: str | None = None) -> None:
        """Initialize exception.

        Args:
            issues: Problems found while loading the config
            file_path: Path of the config file being loaded
        """
        self.issues = list(issues)
        self.file_path = file_path

        phases = sorted({issue.phase for issue in self.issues})
        message = f"Invalid routing config ({', '.join(phases) or 'unknown'})"
        if file_path:
            message = f"{message} in {file_path}"

        details = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(f"{message}:\n{details}" if details else message)
        self.message = message

    @property
    def phases(self) -> set[str]:
        """Distinct validation phases that reported issues."""
        return {issue.phase for issue in self.issues}


class StateResolutionError(AgentflowError):
    """Base class for workflow state resolution failures.

    The full string form carries the recovery guidance; ``message`` keeps
    the short description.

    Attributes:
        message: Short error description
        command: Normalized command the resolution was attempted for
        valid_alternatives: Inputs that would have been accepted
        recovery: Instruction describing how to retry
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        valid_alternatives: list[str] | None = None,
        recovery: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            command: Command the resolution was attempted for
            valid_alternatives: Accepted inputs the caller can retry with
            recovery: Retry instruction appended to the message
        """
        self.command = command
        self.valid_alternatives = list(valid_alternatives or [])
        self.recovery = recovery

        full_message = message
        if recovery:
            full_message = f"{message} Recovery: {recovery}"

        super().__init__(full_message)
        self.message = message


class UnknownCommandError(StateResolutionError):
    """Command name is not one of the known workflow commands."""

    pass


class UnknownIntentError(StateResolutionError):
    """Semantic intent token is not recognized."""

    pass


class IntentNotSupportedError(StateResolutionError):
    """Intent is recognized but has no mapping for the command.

    Attributes:
        intent: The intent that was requested
        supporting_commands: ``command → state`` entries that do support it
    """

    def __init__(
        self,
        message: str,
        intent: str,
        supporting_commands: list[str],
        command: str | None = None,
        valid_alternatives: list[str] | None = None,
        recovery: str | None = None,
    ) -> None:
        self.intent = intent
        self.supporting_commands = list(supporting_commands)
        super().__init__(
            message,
            command=command,
            valid_alternatives=valid_alternatives,
            recovery=recovery,
        )


class IntentAmbiguousError(StateResolutionError):
    """Intent maps to several possible states for the command."""

    pass


class InvalidDirectStateError(StateResolutionError):
    """Direct state name is not a valid output for the command.

    Attributes:
        state: The rejected state
        recovery_intents: ``intent → state`` entries usable instead
    """

    def __init__(
        self,
        message: str,
        state: str,
        recovery_intents: list[str],
        command: str | None = None,
        valid_alternatives: list[str] | None = None,
        recovery: str | None = None,
    ) -> None:
        self.state = state
        self.recovery_intents = list(recovery_intents)
        super().__init__(
            message,
            command=command,
            valid_alternatives=valid_alternatives,
            recovery=recovery,
        )


class UnknownStateError(StateResolutionError):
    """State name is outside the workflow state vocabulary."""

    pass


class DependencyCycleError(AgentflowError):
    """Issues in a group block each other in a cycle.

    Attributes:
        cycle_members: Issue numbers that could not be ordered, ascending
    """

    def __init__(self, cycle_members: list[int]) -> None:
        """Initialize exception.

        Args:
            cycle_members: Issues left unordered after the topological sort
        """
        self.cycle_members = list(cycle_members)
        issues = ", ".join(f"#{n}" for n in self.cycle_members)
        super().__init__(
            f"Cycle detected in dependencies! Issues involved: {issues}. "
            "These issues form a circular dependency chain. Remove one dependency to resolve."
        )
