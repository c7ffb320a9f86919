"""
Workflow state machine: transition graph, command contracts and intents.

This module embeds the canonical transition table as the single source of
truth for the workflow. It provides transition validation, semantic intent
resolution and state metadata queries. An optional JSON override file can
replace the embedded table (see ``load_state_machine``); a unit test checks
that the shipped override fixture matches the embedded defaults exactly so
the two cannot drift apart silently.

The StateMachine is a pure data structure plus validators: no I/O after
construction and no mutable state, so one instance can be shared freely.

Override File Format:
    The JSON override uses the on-disk layout of the workflow definition::

        {
            "states": {
                "Backlog": {"description": "...", "allowed_transitions": [...]},
                "Research in Progress": {..., "is_lock_state": true},
                ...
            },
            "semantic_states": {
                "description": "ignored",
                "__LOCK__": {"ralph_research": "Research in Progress", ...},
                "__ESCALATE__": {"*": "Human Needed"},
                ...
            },
            "commands": {
                "ralph_plan": {
                    "valid_input_states": ["Ready for Plan"],
                    "valid_output_states": ["Plan in Review", "Human Needed"],
                    "lock_state": "Plan in Progress"
                },
                ...
            }
        }

Example:
    >>> machine = StateMachine()
    >>> machine.is_valid_transition("Backlog", "Research Needed")
    True
    >>> machine.resolve_intent("escalate", "plan").state
    'Human Needed'
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from agentflow.enums import COMMAND_PREFIX, SemanticIntent, WorkflowState
from agentflow.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

WILDCARD = "*"


# ---------------------------------------------------------------------------
# Table types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateDefinition:
    """Definition of a single workflow state."""

    description: str
    allowed_transitions: tuple[str, ...] = ()
    is_lock_state: bool = False
    is_terminal: bool = False
    requires_human_action: bool = False


@dataclass(frozen=True)
class CommandDefinition:
    """States a command accepts as input and may produce as output."""

    valid_input_states: tuple[str, ...] = ()
    valid_output_states: tuple[str, ...] = ()
    lock_state: str | None = None

    @property
    def allowed_output_states(self) -> tuple[str, ...]:
        """Valid output states plus the lock state, in table order."""
        if self.lock_state and self.lock_state not in self.valid_output_states:
            return (self.lock_state, *self.valid_output_states)
        return self.valid_output_states


@dataclass(frozen=True)
class StateMachineConfig:
    """Complete state machine table.

    ``semantic_intents`` maps an intent name (``lock``) to a mapping of
    command name (or ``*``) to the target state. A ``None`` target marks the
    intent as ambiguous for that command.
    """

    states: dict[str, StateDefinition] = field(default_factory=dict)
    semantic_intents: dict[str, dict[str, str | None]] = field(default_factory=dict)
    commands: dict[str, CommandDefinition] = field(default_factory=dict)

    @classmethod
    def from_json_dict(cls, data: Mapping[str, Any]) -> StateMachineConfig:
        """Build a table from the JSON override layout.

        Args:
            data: Parsed JSON document

        Returns:
            StateMachineConfig

        Raises:
            ConfigurationError: If a section has the wrong shape
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("State machine definition must be a JSON object")

        try:
            states = {
                name: StateDefinition(
                    description=str(definition.get("description") or ""),
                    allowed_transitions=tuple(definition.get("allowed_transitions") or ()),
                    is_lock_state=bool(definition.get("is_lock_state", False)),
                    is_terminal=bool(definition.get("is_terminal", False)),
                    requires_human_action=bool(definition.get("requires_human_action", False)),
                )
                for name, definition in (data.get("states") or {}).items()
            }

            intents: dict[str, dict[str, str | None]] = {}
            for token, mapping in (data.get("semantic_states") or {}).items():
                if token == "description":
                    continue
                intents[token.strip("_").lower()] = dict(mapping)

            commands = {
                name: CommandDefinition(
                    valid_input_states=tuple(definition.get("valid_input_states") or ()),
                    valid_output_states=tuple(definition.get("valid_output_states") or ()),
                    lock_state=definition.get("lock_state") or None,
                )
                for name, definition in (data.get("commands") or {}).items()
            }
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed state machine definition: {e}") from e

        return cls(states=states, semantic_intents=intents, commands=commands)

    def to_json_dict(self) -> dict[str, Any]:
        """Render the table in the JSON override layout.

        Flags are only written when set, matching the hand-maintained file.
        """
        states: dict[str, Any] = {}
        for name, definition in self.states.items():
            entry: dict[str, Any] = {
                "description": definition.description,
                "allowed_transitions": list(definition.allowed_transitions),
            }
            if definition.is_lock_state:
                entry["is_lock_state"] = True
            if definition.is_terminal:
                entry["is_terminal"] = True
            if definition.requires_human_action:
                entry["requires_human_action"] = True
            states[name] = entry

        commands: dict[str, Any] = {}
        for name, definition in self.commands.items():
            cmd: dict[str, Any] = {
                "valid_input_states": list(definition.valid_input_states),
                "valid_output_states": list(definition.valid_output_states),
            }
            if definition.lock_state:
                cmd["lock_state"] = definition.lock_state
            commands[name] = cmd

        return {
            "states": states,
            "semantic_states": {
                f"__{intent.upper()}__": dict(mapping) for intent, mapping in self.semantic_intents.items()
            },
            "commands": commands,
        }


class IntentOutcome(str, Enum):
    """How an intent resolved for a command."""

    RESOLVED = "resolved"
    AMBIGUOUS = "ambiguous"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class IntentResolution:
    """Result of ``StateMachine.resolve_intent``."""

    outcome: IntentOutcome
    state: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.outcome is IntentOutcome.RESOLVED


# ---------------------------------------------------------------------------
# Canonical table
# ---------------------------------------------------------------------------

_S = WorkflowState

DEFAULT_CONFIG = StateMachineConfig(
    states={
        _S.BACKLOG.value: StateDefinition(
            description="Ticket awaiting triage",
            allowed_transitions=(
                _S.RESEARCH_NEEDED.value,
                _S.READY_FOR_PLAN.value,
                _S.DONE.value,
                _S.CANCELED.value,
            ),
        ),
        _S.RESEARCH_NEEDED.value: StateDefinition(
            description="Ticket needs investigation before planning",
            allowed_transitions=(
                _S.RESEARCH_IN_PROGRESS.value,
                _S.READY_FOR_PLAN.value,
                _S.HUMAN_NEEDED.value,
            ),
        ),
        _S.RESEARCH_IN_PROGRESS.value: StateDefinition(
            description="Research actively being conducted (LOCKED)",
            allowed_transitions=(_S.READY_FOR_PLAN.value, _S.HUMAN_NEEDED.value),
            is_lock_state=True,
        ),
        _S.READY_FOR_PLAN.value: StateDefinition(
            description="Research complete, ready for implementation planning",
            allowed_transitions=(_S.PLAN_IN_PROGRESS.value, _S.HUMAN_NEEDED.value),
        ),
        _S.PLAN_IN_PROGRESS.value: StateDefinition(
            description="Plan actively being created (LOCKED)",
            allowed_transitions=(_S.PLAN_IN_REVIEW.value, _S.HUMAN_NEEDED.value),
            is_lock_state=True,
        ),
        _S.PLAN_IN_REVIEW.value: StateDefinition(
            description="Plan awaiting human approval",
            allowed_transitions=(
                _S.IN_PROGRESS.value,
                _S.READY_FOR_PLAN.value,
                _S.HUMAN_NEEDED.value,
            ),
            requires_human_action=True,
        ),
        _S.IN_PROGRESS.value: StateDefinition(
            description="Implementation actively underway",
            allowed_transitions=(_S.IN_REVIEW.value, _S.HUMAN_NEEDED.value),
        ),
        _S.IN_REVIEW.value: StateDefinition(
            description="PR created, awaiting code review",
            allowed_transitions=(_S.DONE.value, _S.IN_PROGRESS.value, _S.HUMAN_NEEDED.value),
            requires_human_action=True,
        ),
        _S.HUMAN_NEEDED.value: StateDefinition(
            description="Escalated - requires human intervention",
            allowed_transitions=(
                _S.BACKLOG.value,
                _S.RESEARCH_NEEDED.value,
                _S.READY_FOR_PLAN.value,
                _S.IN_PROGRESS.value,
            ),
            requires_human_action=True,
        ),
        _S.DONE.value: StateDefinition(
            description="Ticket completed",
            is_terminal=True,
        ),
        _S.CANCELED.value: StateDefinition(
            description="Ticket canceled/superseded",
            is_terminal=True,
        ),
    },
    semantic_intents={
        SemanticIntent.LOCK.value: {
            "ralph_research": _S.RESEARCH_IN_PROGRESS.value,
            "ralph_plan": _S.PLAN_IN_PROGRESS.value,
            "ralph_impl": _S.IN_PROGRESS.value,
        },
        SemanticIntent.COMPLETE.value: {
            "ralph_triage": None,  # multi-path: caller must use a direct state
            "ralph_split": _S.BACKLOG.value,
            "ralph_research": _S.READY_FOR_PLAN.value,
            "ralph_plan": _S.PLAN_IN_REVIEW.value,
            "ralph_impl": _S.IN_REVIEW.value,
            "ralph_review": _S.IN_PROGRESS.value,
        },
        SemanticIntent.ESCALATE.value: {WILDCARD: _S.HUMAN_NEEDED.value},
        SemanticIntent.CLOSE.value: {WILDCARD: _S.DONE.value},
        SemanticIntent.CANCEL.value: {WILDCARD: _S.CANCELED.value},
    },
    commands={
        "ralph_triage": CommandDefinition(
            valid_input_states=(_S.BACKLOG.value,),
            valid_output_states=(
                _S.RESEARCH_NEEDED.value,
                _S.READY_FOR_PLAN.value,
                _S.DONE.value,
                _S.CANCELED.value,
                _S.HUMAN_NEEDED.value,
            ),
        ),
        "ralph_split": CommandDefinition(
            valid_input_states=(_S.BACKLOG.value, _S.RESEARCH_NEEDED.value),
            valid_output_states=(_S.BACKLOG.value,),
        ),
        "ralph_research": CommandDefinition(
            valid_input_states=(_S.RESEARCH_NEEDED.value,),
            valid_output_states=(_S.READY_FOR_PLAN.value, _S.HUMAN_NEEDED.value),
            lock_state=_S.RESEARCH_IN_PROGRESS.value,
        ),
        "ralph_plan": CommandDefinition(
            valid_input_states=(_S.READY_FOR_PLAN.value,),
            valid_output_states=(_S.PLAN_IN_REVIEW.value, _S.HUMAN_NEEDED.value),
            lock_state=_S.PLAN_IN_PROGRESS.value,
        ),
        "ralph_impl": CommandDefinition(
            valid_input_states=(_S.PLAN_IN_REVIEW.value, _S.IN_PROGRESS.value),
            valid_output_states=(_S.IN_PROGRESS.value, _S.IN_REVIEW.value, _S.HUMAN_NEEDED.value),
        ),
        "ralph_review": CommandDefinition(
            valid_input_states=(_S.PLAN_IN_REVIEW.value,),
            valid_output_states=(_S.IN_PROGRESS.value, _S.READY_FOR_PLAN.value, _S.HUMAN_NEEDED.value),
        ),
        "ralph_hero": CommandDefinition(
            valid_input_states=(
                _S.BACKLOG.value,
                _S.RESEARCH_NEEDED.value,
                _S.READY_FOR_PLAN.value,
                _S.PLAN_IN_REVIEW.value,
                _S.IN_PROGRESS.value,
            ),
            valid_output_states=(_S.IN_REVIEW.value, _S.HUMAN_NEEDED.value),
        ),
    },
)


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------


def normalize_command(raw: str) -> str:
    """Accept both ``research`` and ``ralph_research`` spellings."""
    raw = str(raw)
    if raw.startswith(COMMAND_PREFIX):
        return raw
    return f"{COMMAND_PREFIX}{raw}"


def is_intent_token(value: str) -> bool:
    """Check if a string uses the ``__INTENT__`` token form."""
    return value.startswith("__") and value.endswith("__")


def normalize_intent(raw: str) -> str:
    """Reduce ``__LOCK__``, ``LOCK`` and ``lock`` to ``lock``."""
    return str(raw).strip("_").lower()


# ---------------------------------------------------------------------------
# StateMachine
# ---------------------------------------------------------------------------


class StateMachine:
    """Transition validation and intent resolution over a state table.

    Attributes:
        config: The table this machine answers questions about
    """

    def __init__(self, config: StateMachineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def is_valid_transition(self, from_state: str, to_state: str) -> bool:
        """Check if moving from one state to another is allowed.

        Unknown source states never have valid transitions.
        """
        definition = self.config.states.get(from_state)
        if definition is None:
            return False
        return to_state in definition.allowed_transitions

    def get_allowed_transitions(self, from_state: str) -> list[str]:
        """Get all valid target states from a given state."""
        definition = self.config.states.get(from_state)
        if definition is None:
            return []
        return list(definition.allowed_transitions)

    def resolve_intent(self, intent: str, command: str) -> IntentResolution:
        """Resolve a semantic intent for a command.

        The wildcard entry is checked first and dominates any per-command
        entry (this is how escalate, close and cancel apply to every command).

        Args:
            intent: Intent name in any accepted spelling
            command: Command name, bare or prefixed

        Returns:
            RESOLVED with the target state, AMBIGUOUS when the command has
            several possible outputs, or UNSUPPORTED when there is no mapping
            (including unknown intents)
        """
        mapping = self.config.semantic_intents.get(normalize_intent(intent))
        if mapping is None:
            return IntentResolution(IntentOutcome.UNSUPPORTED)

        if WILDCARD in mapping:
            return self._resolution(mapping[WILDCARD])

        normalized = normalize_command(command)
        if normalized not in mapping:
            return IntentResolution(IntentOutcome.UNSUPPORTED)
        return self._resolution(mapping[normalized])

    @staticmethod
    def _resolution(target: str | None) -> IntentResolution:
        if target is None:
            return IntentResolution(IntentOutcome.AMBIGUOUS)
        return IntentResolution(IntentOutcome.RESOLVED, target)

    def is_lock_state(self, state: str) -> bool:
        """Check if a state represents exclusive ownership by one worker."""
        definition = self.config.states.get(state)
        return definition is not None and definition.is_lock_state

    def is_terminal(self, state: str) -> bool:
        """Check if a state admits no further transitions."""
        definition = self.config.states.get(state)
        return definition is not None and definition.is_terminal

    def requires_human_action(self, state: str) -> bool:
        """Check if a state waits on a human."""
        definition = self.config.states.get(state)
        return definition is not None and definition.requires_human_action

    def is_valid_state(self, state: str) -> bool:
        return state in self.config.states

    def describe(self, state: str) -> str | None:
        definition = self.config.states.get(state)
        return definition.description if definition else None

    def get_expected_by_commands(self, state: str) -> list[str]:
        """Get commands that accept this state as input."""
        return [name for name, definition in self.config.commands.items() if state in definition.valid_input_states]

    def is_known_command(self, command: str) -> bool:
        return normalize_command(command) in self.config.commands

    def is_valid_output_for_command(self, command: str, state: str) -> bool:
        """Check that a state is a valid output for a command.

        Unknown commands pass through (forward compatibility with commands
        added after this table was written).
        """
        definition = self.config.commands.get(normalize_command(command))
        if definition is None:
            return True
        return state in definition.allowed_output_states

    def allowed_states_for_command(self, command: str) -> list[str]:
        """Direct states a command may set (outputs plus its lock state)."""
        definition = self.config.commands.get(normalize_command(command))
        if definition is None:
            return []
        return list(definition.allowed_output_states)

    def known_commands(self) -> list[str]:
        return list(self.config.commands)

    def known_intents(self) -> list[str]:
        return list(self.config.semantic_intents)

    def intent_targets(self, intent: str) -> dict[str, str | None]:
        """Per-command (or wildcard) targets for an intent."""
        return dict(self.config.semantic_intents.get(normalize_intent(intent), {}))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def load_state_machine(config_path: str | Path | None = None) -> StateMachine:
    """Create a StateMachine from the embedded table or a JSON override.

    Args:
        config_path: Optional path to a JSON override file

    Returns:
        StateMachine

    Raises:
        ConfigurationError: If the override file is missing, unreadable or
            malformed
    """
    if config_path is None:
        return StateMachine()

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"State machine file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read state machine file: {path}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in state machine file {path}: {e}") from e

    config = StateMachineConfig.from_json_dict(data)
    log.info(
        "state_machine_loaded",
        path=str(path),
        states=len(config.states),
        commands=len(config.commands),
        matches_default=config == DEFAULT_CONFIG,
    )
    return StateMachine(config)
