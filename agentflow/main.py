"""CLI entry point for agentflow.

Every command prints JSON to stdout. Errors go to stderr with exit code 1.
"""

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import structlog
import yaml

from agentflow.config.loader import FieldOptionCache, load_routing_config
from agentflow.config.settings import AgentflowSettings
from agentflow.engine.pipeline import (
    check_convergence,
    detect_pipeline_position,
    detect_stream_pipeline_positions,
)
from agentflow.engine.routing_engine import IssueContext, evaluate_rules
from agentflow.engine.state_machine import StateMachine, load_state_machine
from agentflow.engine.state_resolution import resolve_state
from agentflow.engine.work_streams import detect_work_streams, order_group
from agentflow.enums import IssueType
from agentflow.exceptions import AgentflowError, ConfigurationError, RoutingConfigError
from agentflow.models.domain import IssueFileOwnership, IssueState
from agentflow.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def _emit(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _fail(error: AgentflowError, event: str) -> NoReturn:
    click.echo(f"Error: {error}", err=True)
    log.debug(event, exc_info=True)
    sys.exit(1)


def _load_records(path: str) -> list[dict[str, Any]]:
    """Read a JSON or YAML list of objects."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid JSON/YAML in {path}: {e}") from e

    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ConfigurationError(f"{path} must contain a list of objects")
    return data


def _load_issue_states(path: str) -> list[IssueState]:
    try:
        return [IssueState.from_dict(record) for record in _load_records(path)]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid issue snapshot in {path}: {e}") from e


def _load_ownership(path: str) -> list[IssueFileOwnership]:
    try:
        return [IssueFileOwnership.from_dict(record) for record in _load_records(path)]
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid file ownership entry in {path}: {e}") from e


def _state_machine(ctx: click.Context) -> StateMachine:
    settings: AgentflowSettings = ctx.obj["settings"]
    return load_state_machine(settings.state_machine_path)


@click.group()
@click.option("--config", default=None, help="Path to settings YAML file")
@click.option("--log-level", default=None, help="Logging level (overrides settings)")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """agentflow: workflow decisions for multi-agent issue delivery."""
    try:
        settings = AgentflowSettings.from_yaml(config) if config else AgentflowSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level, json_output=settings.log_json)
    ctx.obj = {"settings": settings}


@cli.command("resolve-state")
@click.argument("value")
@click.option("--command", "command", required=True, help="Command name, e.g. ralph_plan or plan")
@click.pass_context
def resolve_state_command(ctx: click.Context, value: str, command: str) -> None:
    """Resolve a semantic intent or direct state for a command."""
    try:
        result = resolve_state(value, command, _state_machine(ctx))
    except AgentflowError as e:
        _fail(e, "resolve_state_error")
    _emit(result.to_dict())


@cli.command("check-transition")
@click.argument("from_state")
@click.argument("to_state")
@click.pass_context
def check_transition(ctx: click.Context, from_state: str, to_state: str) -> None:
    """Check whether a transition between two states is allowed."""
    try:
        machine = _state_machine(ctx)
    except AgentflowError as e:
        _fail(e, "check_transition_error")

    _emit(
        {
            "from": from_state,
            "to": to_state,
            "valid": machine.is_valid_transition(from_state, to_state),
            "allowedTransitions": machine.get_allowed_transitions(from_state),
            "isLockState": machine.is_lock_state(to_state),
            "isTerminal": machine.is_terminal(to_state),
            "requiresHumanAction": machine.requires_human_action(to_state),
        }
    )


@cli.command("detect-streams")
@click.argument("ownership_file", type=click.Path(exists=True, dir_okay=False))
def detect_streams(ownership_file: str) -> None:
    """Cluster issues into work streams from a file ownership list."""
    try:
        issues = _load_ownership(ownership_file)
    except AgentflowError as e:
        _fail(e, "detect_streams_error")
    _emit(detect_work_streams(issues).to_dict())


@cli.command("pipeline-position")
@click.argument("issues_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--group/--no-group", "is_group", default=None, help="Treat issues as a group (default: more than one)")
@click.option("--primary", type=int, default=None, help="Primary issue number of the group")
def pipeline_position(issues_file: str, is_group: bool | None, primary: int | None) -> None:
    """Detect the pipeline phase for a set of issue snapshots."""
    try:
        issues = _load_issue_states(issues_file)
    except AgentflowError as e:
        _fail(e, "pipeline_position_error")

    if is_group is None:
        is_group = len(issues) > 1
    _emit(detect_pipeline_position(issues, is_group, primary).to_dict())


@cli.command("stream-positions")
@click.argument("ownership_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("states_file", type=click.Path(exists=True, dir_okay=False))
def stream_positions(ownership_file: str, states_file: str) -> None:
    """Detect work streams, then the pipeline phase of each stream."""
    try:
        ownership = _load_ownership(ownership_file)
        states = _load_issue_states(states_file)
    except AgentflowError as e:
        _fail(e, "stream_positions_error")

    streams = detect_work_streams(ownership)
    try:
        positions = detect_stream_pipeline_positions(streams.streams, states, ownership)
    except AgentflowError as e:
        _fail(e, "stream_positions_error")
    _emit({"streams": streams.to_dict(), "positions": [p.to_dict() for p in positions]})


@cli.command("order-group")
@click.argument("ownership_file", type=click.Path(exists=True, dir_okay=False))
def order_group_command(ownership_file: str) -> None:
    """Order group members so blockers come first."""
    try:
        result = order_group(_load_ownership(ownership_file))
    except AgentflowError as e:
        _fail(e, "order_group_error")
    _emit(result.to_dict())


@cli.command("check-convergence")
@click.argument("issues_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--target", "target_state", required=True, help="State every issue must be in")
def check_convergence_command(issues_file: str, target_state: str) -> None:
    """Check whether a group of issues has reached a target state."""
    try:
        result = check_convergence(_load_issue_states(issues_file), target_state)
    except AgentflowError as e:
        _fail(e, "check_convergence_error")
    _emit(result.to_dict())


@cli.command("route")
@click.option("--repo", required=True, help="Repository as owner/name")
@click.option("--label", "labels", multiple=True, help="Issue label (repeatable)")
@click.option(
    "--type",
    "issue_type",
    type=click.Choice([t.value for t in IssueType]),
    default=IssueType.ISSUE.value,
    help="Item type",
)
@click.option("--routing-config", default=None, help="Routing rules file (overrides settings)")
@click.pass_context
def route(ctx: click.Context, repo: str, labels: tuple[str, ...], issue_type: str, routing_config: str | None) -> None:
    """Dry-run routing rules against an issue."""
    settings: AgentflowSettings = ctx.obj["settings"]
    path = Path(routing_config or settings.routing_config_path)

    try:
        loaded = load_routing_config(path)
    except AgentflowError as e:
        _fail(e, "route_error")

    result = evaluate_rules(loaded.config, IssueContext(repo=repo, labels=list(labels), issue_type=issue_type))
    _emit({"configStatus": loaded.status, **result.to_dict()})


@cli.command("validate-routing")
@click.option("--state", "states", multiple=True, help="Valid workflow state option (repeatable); enables live checks")
@click.option("--routing-config", default=None, help="Routing rules file (overrides settings)")
@click.pass_context
def validate_routing(ctx: click.Context, states: tuple[str, ...], routing_config: str | None) -> None:
    """Validate a routing rules file."""
    settings: AgentflowSettings = ctx.obj["settings"]
    path = Path(routing_config or settings.routing_config_path)

    field_options = None
    if states:
        field_options = FieldOptionCache.from_option_names(states, field_name=settings.workflow_state_field)

    try:
        loaded = load_routing_config(path, field_options, field_name=settings.workflow_state_field)
    except RoutingConfigError as e:
        _emit({"valid": False, "errors": [issue.to_dict() for issue in e.issues]})
        log.debug("validate_routing_failed", exc_info=True)
        sys.exit(1)

    _emit(
        {
            "valid": True,
            "status": loaded.status,
            "rules": len(loaded.config.rules),
            "liveValidation": field_options is not None,
        }
    )


if __name__ == "__main__":
    cli()
