"""
Routing rules config schema.

Defines the structure of ``.agentflow-routing.yml`` files used by the
routing engine. Keys in the file are camelCase; the models expose
snake_case attributes and accept either spelling on input.

Example YAML::

    version: 1
    stopOnFirstMatch: true
    rules:
      - name: "Route bugs"
        match:
          repo: "my-org/*"
          labels:
            any: ["bug"]
        action:
          projectNumber: 3
          workflowState: "Backlog"
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from agentflow.enums import IssueType


class _RoutingModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used in config files."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LabelCriteria(_RoutingModel):
    """Label matching criteria. Comparison is case-insensitive."""

    any_of: list[str] | None = Field(default=None, alias="any", description="Match if issue has ANY of these labels")
    all_of: list[str] | None = Field(default=None, alias="all", description="Match if issue has ALL of these labels")


class MatchCriteria(_RoutingModel):
    """Conditions for matching an issue to a routing rule.

    Specified criteria are AND'd together; omitted ones always match.
    """

    repo: str | None = Field(default=None, description="Repository glob pattern (e.g., 'my-org/*', 'owner/repo')")
    labels: LabelCriteria | None = Field(default=None, description="Label matching criteria")
    issue_type: IssueType | None = Field(default=None, alias="issueType", description="Match by item type")
    negate: bool = Field(default=False, description="Invert match result (true means 'NOT matching')")

    @model_validator(mode="after")
    def validate_has_criterion(self) -> MatchCriteria:
        """Require at least one criterion besides negate."""
        if not (self.repo or self.labels is not None or self.issue_type):
            raise ValueError("At least one match criterion must be specified (repo, labels, or issueType)")
        return self


class RoutingAction(_RoutingModel):
    """What happens when a rule matches. All specified actions apply together."""

    project_number: int | None = Field(
        default=None, alias="projectNumber", description="Add issue to this project (shorthand for single project)"
    )
    project_numbers: list[int] | None = Field(
        default=None, alias="projectNumbers", description="Add issue to multiple projects"
    )
    workflow_state: str | None = Field(
        default=None, alias="workflowState", description="Set workflow state after routing"
    )
    labels: list[str] | None = Field(default=None, description="Add these labels to the issue")

    @model_validator(mode="after")
    def validate_has_action(self) -> RoutingAction:
        """Require at least one action."""
        if not (
            self.project_number or self.project_numbers is not None or self.workflow_state or self.labels is not None
        ):
            raise ValueError(
                "At least one action must be specified (projectNumber, projectNumbers, workflowState, or labels)"
            )
        return self

    @property
    def target_projects(self) -> list[int]:
        """Every project number this action adds the issue to."""
        projects = list(self.project_numbers or [])
        if self.project_number and self.project_number not in projects:
            projects.insert(0, self.project_number)
        return projects


class RoutingRule(_RoutingModel):
    """A single routing rule: match criteria plus action."""

    name: str | None = Field(default=None, description="Human-readable rule name for debugging and audit trail")
    match: MatchCriteria
    action: RoutingAction
    enabled: bool = Field(default=True, description="Toggle rule on/off without removing it")

    @property
    def label(self) -> str:
        return self.name or "<unnamed>"


class RoutingConfig(_RoutingModel):
    """Top-level routing configuration."""

    version: Literal[1] = Field(..., description="Schema version for forward compatibility")
    stop_on_first_match: bool = Field(
        default=True,
        alias="stopOnFirstMatch",
        description="Stop evaluating rules after first match",
    )
    rules: list[RoutingRule] = Field(..., description="Ordered list of routing rules, evaluated top to bottom")

    @classmethod
    def default(cls) -> RoutingConfig:
        """Empty config used when no routing file exists."""
        return cls(version=1, stop_on_first_match=True, rules=[])

    @property
    def enabled_rules(self) -> list[tuple[int, RoutingRule]]:
        return [(index, rule) for index, rule in enumerate(self.rules) if rule.enabled]
