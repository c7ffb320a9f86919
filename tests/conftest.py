"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest
import structlog

from agentflow.config.routing import RoutingConfig
from agentflow.engine.state_machine import StateMachine
from agentflow.models.domain import IssueFileOwnership, IssueState

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def reset_structlog():
    """Restore default structlog config after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def fixtures_dir() -> Path:
    """Directory holding JSON/YAML test fixtures."""
    return FIXTURES_DIR


@pytest.fixture
def state_machine() -> StateMachine:
    """StateMachine over the embedded table."""
    return StateMachine()


@pytest.fixture
def make_issue():
    """Factory for issue snapshots."""

    def _make(
        number: int,
        workflow_state: str = "Backlog",
        estimate: str | None = None,
        sub_issue_count: int = 0,
        title: str | None = None,
    ) -> IssueState:
        return IssueState(
            number=number,
            title=title or f"Issue {number}",
            workflow_state=workflow_state,
            estimate=estimate,
            sub_issue_count=sub_issue_count,
        )

    return _make


@pytest.fixture
def make_ownership():
    """Factory for file ownership entries."""

    def _make(number: int, files: list[str] | None = None, blocked_by: list[int] | None = None) -> IssueFileOwnership:
        return IssueFileOwnership(number=number, files=files or [], blocked_by=blocked_by or [])

    return _make


@pytest.fixture
def routing_config_data() -> dict:
    """Routing config as it would be parsed from YAML."""
    return {
        "version": 1,
        "stopOnFirstMatch": True,
        "rules": [
            {
                "name": "Route org repos",
                "match": {"repo": "my-org/*"},
                "action": {"projectNumber": 3, "workflowState": "Backlog"},
            },
            {
                "name": "Route bugs",
                "match": {"labels": {"any": ["bug"]}},
                "action": {"projectNumber": 4},
            },
        ],
    }


@pytest.fixture
def routing_config(routing_config_data: dict) -> RoutingConfig:
    """Validated routing config."""
    return RoutingConfig.model_validate(routing_config_data)
