"""Semantic state resolution and command-level validation.

Turns the state argument an agent passes alongside a command into a concrete
workflow state. The argument is either a semantic intent (``__LOCK__``,
``complete``) or a direct state name. Every failure raises a subclass of
``StateResolutionError`` whose text enumerates the valid alternatives, so the
calling agent can correct itself from the message alone.

Allowed direct states come from the state machine table (valid output states
plus the lock state), so there is only one place to change when a command's
contract changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from agentflow.engine.state_machine import (
    IntentOutcome,
    StateMachine,
    WILDCARD,
    is_intent_token,
    normalize_command,
    normalize_intent,
)
from agentflow.enums import INTENT_DESCRIPTIONS, SemanticIntent
from agentflow.exceptions import (
    IntentAmbiguousError,
    IntentNotSupportedError,
    InvalidDirectStateError,
    UnknownCommandError,
    UnknownIntentError,
)

log = structlog.get_logger(__name__)

_DEFAULT_MACHINE = StateMachine()


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of a successful ``resolve_state`` call."""

    resolved_state: str
    was_intent: bool
    original_input: str
    command: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolvedState": self.resolved_state,
            "wasIntent": self.was_intent,
            "originalInput": self.original_input,
            "command": self.command,
        }


def _intent_token(intent: str) -> str:
    return f"__{intent.upper()}__"


def _valid_intents_text() -> str:
    return ", ".join(f"{intent.token} ({INTENT_DESCRIPTIONS[intent]})" for intent in SemanticIntent)


def _is_intent_input(value: str, machine: StateMachine) -> bool:
    """Token form always counts as an intent; bare names only when known."""
    if is_intent_token(value):
        return True
    return value.lower() in machine.known_intents()


def resolve_state(
    value: str,
    command: str,
    state_machine: StateMachine | None = None,
) -> ResolutionResult:
    """Resolve a semantic intent or validate a direct state for a command.

    Args:
        value: Intent token (``__COMPLETE__``, ``complete``) or state name
        command: Command name, bare (``plan``) or prefixed (``ralph_plan``)
        state_machine: Table to resolve against (defaults to the embedded one)

    Returns:
        ResolutionResult with the concrete state to write

    Raises:
        UnknownCommandError: Command is not in the table
        UnknownIntentError: ``__X__`` token that names no intent
        IntentNotSupportedError: Intent has no mapping for the command
        IntentAmbiguousError: Intent has several possible outputs for the command
        InvalidDirectStateError: State is not a valid output for the command
    """
    machine = state_machine or _DEFAULT_MACHINE
    normalized = normalize_command(command)

    if not machine.is_known_command(normalized):
        valid = machine.known_commands()
        raise UnknownCommandError(
            f'Unknown command "{command}". Valid commands: {", ".join(valid)}.',
            command=normalized,
            valid_alternatives=valid,
            recovery=(
                "retry with the correct ralph_* command name. "
                f'If you passed a bare name like "{command}", use "{normalized}".'
            ),
        )

    if _is_intent_input(value, machine):
        result = _resolve_intent(value, normalized, machine)
    else:
        result = _validate_direct_state(value, normalized, machine)

    log.debug(
        "state_resolved",
        command=normalized,
        original_input=value,
        resolved_state=result.resolved_state,
        was_intent=result.was_intent,
    )
    return result


def _resolve_intent(value: str, command: str, machine: StateMachine) -> ResolutionResult:
    intent = normalize_intent(value)
    token = _intent_token(intent)

    if intent not in machine.known_intents():
        valid = [_intent_token(name) for name in machine.known_intents()]
        raise UnknownIntentError(
            f'Unknown semantic intent "{value}". Valid intents: {_valid_intents_text()}.',
            command=command,
            valid_alternatives=valid,
            recovery="retry with one of these intents, or use a direct state name.",
        )

    resolution = machine.resolve_intent(intent, command)
    allowed = machine.allowed_states_for_command(command)

    if resolution.outcome is IntentOutcome.UNSUPPORTED:
        supporting = [
            f"{name} → {target}"
            for name, target in machine.intent_targets(intent).items()
            if name != WILDCARD and target is not None
        ]
        raise IntentNotSupportedError(
            f"Intent {token} is not valid for {command}. "
            f"Commands supporting {token}: {', '.join(supporting) or 'none'}.",
            intent=token,
            supporting_commands=supporting,
            command=command,
            valid_alternatives=allowed,
            recovery=(
                f"for {command}, use a direct state name instead: {', '.join(allowed)}. "
                f"Or use {SemanticIntent.ESCALATE.token} to escalate to human."
            ),
        )

    if resolution.outcome is IntentOutcome.AMBIGUOUS:
        raise IntentAmbiguousError(
            f"Intent {token} is ambiguous for {command} (multiple output paths).",
            command=command,
            valid_alternatives=allowed,
            recovery=f"use a direct state name instead: {', '.join(allowed)}.",
        )

    return ResolutionResult(
        resolved_state=resolution.state or "",
        was_intent=True,
        original_input=value,
        command=command,
    )


def _validate_direct_state(value: str, command: str, machine: StateMachine) -> ResolutionResult:
    if machine.is_valid_output_for_command(command, value):
        return ResolutionResult(
            resolved_state=value,
            was_intent=False,
            original_input=value,
            command=command,
        )

    allowed = machine.allowed_states_for_command(command)
    recovery_intents = []
    for intent in machine.known_intents():
        resolution = machine.resolve_intent(intent, command)
        if resolution.is_resolved and resolution.state in allowed:
            recovery_intents.append(f"{_intent_token(intent)} → {resolution.state}")

    recovery = "retry with one of the valid states listed above."
    if recovery_intents:
        recovery = f"{recovery} Available semantic intents for {command}: {', '.join(recovery_intents)}."

    raise InvalidDirectStateError(
        f'State "{value}" is not a valid output for {command}. '
        f"Valid direct states for {command}: {', '.join(allowed)}.",
        state=value,
        recovery_intents=recovery_intents,
        command=command,
        valid_alternatives=allowed,
        recovery=recovery,
    )
