"""Workflow decision engine.

Pure, synchronous functions over caller-supplied issue snapshots. Nothing in
this package performs I/O except ``load_state_machine``.

Key Components:
    - StateMachine: Transition validation and semantic intent resolution
    - resolve_state: Turn an intent or direct state into a concrete state
    - detect_pipeline_position: Phase, convergence and roster for issues
    - detect_work_streams: Cluster issues by shared files and blockers
    - order_group: Dependency order and primary issue of a group
    - evaluate_rules: Match an issue against routing rules

Example:
    >>> from agentflow.engine import detect_work_streams
    >>> from agentflow.models import IssueFileOwnership
    >>> result = detect_work_streams([
    ...     IssueFileOwnership(number=42, files=["a.py"]),
    ...     IssueFileOwnership(number=44, files=["a.py"]),
    ... ])
    >>> result.streams[0].id
    'stream-42-44'
"""

from agentflow.engine.pipeline import (
    check_convergence,
    detect_pipeline_position,
    detect_stream_pipeline_positions,
)
from agentflow.engine.routing_engine import EvaluationResult, IssueContext, MatchResult, evaluate_rules
from agentflow.engine.state_machine import (
    DEFAULT_CONFIG,
    IntentOutcome,
    IntentResolution,
    StateMachine,
    StateMachineConfig,
    load_state_machine,
)
from agentflow.engine.state_resolution import ResolutionResult, resolve_state
from agentflow.engine.work_streams import detect_work_streams, order_group

__all__ = [
    "DEFAULT_CONFIG",
    "EvaluationResult",
    "IntentOutcome",
    "IntentResolution",
    "IssueContext",
    "MatchResult",
    "ResolutionResult",
    "StateMachine",
    "StateMachineConfig",
    "check_convergence",
    "detect_pipeline_position",
    "detect_stream_pipeline_positions",
    "detect_work_streams",
    "evaluate_rules",
    "load_state_machine",
    "order_group",
    "resolve_state",
]
