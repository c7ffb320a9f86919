"""
Routing config loader and live validation.

Validation happens in two layers:

1. Structural: YAML parse plus schema validation (``load_routing_config``,
   ``validate_routing_config``)
2. Referential: workflow states named by enabled rules must exist among the
   project's field options (``validate_rules_live``)

Every problem is reported as a ``ConfigIssue`` tagged with the layer that
found it, and surfaced together in a single ``RoutingConfigError``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Protocol

import structlog
import yaml
from pydantic import ValidationError

from agentflow.config.routing import RoutingConfig
from agentflow.exceptions import ConfigIssue, RoutingConfigError

log = structlog.get_logger(__name__)

WORKFLOW_STATE_FIELD = "Workflow State"


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading a routing config file.

    ``missing`` means there was no file and ``config`` is the empty default.
    """

    status: Literal["loaded", "missing"]
    config: RoutingConfig
    file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "config": self.config.to_dict()}
        if self.file_path is not None:
            data["filePath"] = self.file_path
        return data


class FieldOptionSource(Protocol):
    """Supplies the option names of single-select project fields."""

    def resolve_option_id(self, field_name: str, option_name: str) -> str | None: ...

    def get_option_names(self, field_name: str) -> list[str]: ...


@dataclass
class _ProjectFields:
    project_id: str
    options: dict[str, dict[str, str]] = field(default_factory=dict)
    field_ids: dict[str, str] = field(default_factory=dict)


class FieldOptionCache:
    """In-memory field option lookup, populated per project.

    Lookups without a project number use the first project populated.

    Example:
        >>> cache = FieldOptionCache()
        >>> cache.populate(3, "PVT_1", [
        ...     {"id": "F1", "name": "Workflow State",
        ...      "options": [{"id": "O1", "name": "Backlog"}]},
        ... ])
        >>> cache.resolve_option_id("Workflow State", "Backlog")
        'O1'
    """

    def __init__(self) -> None:
        self._projects: dict[int, _ProjectFields] = {}
        self._default_project: int | None = None

    @classmethod
    def from_option_names(
        cls,
        option_names: Iterable[str],
        field_name: str = WORKFLOW_STATE_FIELD,
        project_number: int = 0,
    ) -> FieldOptionCache:
        """Build a cache holding a single field with the given option names."""
        cache = cls()
        cache.populate(
            project_number,
            f"project-{project_number}",
            [
                {
                    "id": field_name,
                    "name": field_name,
                    "options": [{"id": name, "name": name} for name in option_names],
                }
            ],
        )
        return cache

    def populate(self, project_number: int, project_id: str, fields: Iterable[Mapping[str, Any]]) -> None:
        """Load field definitions (``{id, name, options: [{id, name}]}``) for a project."""
        entry = _ProjectFields(project_id=project_id)
        for definition in fields:
            entry.field_ids[definition["name"]] = definition["id"]
            options = definition.get("options")
            if options is not None:
                entry.options[definition["name"]] = {option["name"]: option["id"] for option in options}

        self._projects[project_number] = entry
        if self._default_project is None:
            self._default_project = project_number
        log.debug("field_cache_populated", project_number=project_number, fields=len(entry.field_ids))

    def _entry(self, project_number: int | None) -> _ProjectFields | None:
        if project_number is None:
            project_number = self._default_project
        if project_number is None:
            return None
        return self._projects.get(project_number)

    def resolve_option_id(self, field_name: str, option_name: str, project_number: int | None = None) -> str | None:
        entry = self._entry(project_number)
        if entry is None:
            return None
        return entry.options.get(field_name, {}).get(option_name)

    def get_option_names(self, field_name: str, project_number: int | None = None) -> list[str]:
        entry = self._entry(project_number)
        if entry is None:
            return []
        return list(entry.options.get(field_name, {}))

    def get_field_id(self, field_name: str, project_number: int | None = None) -> str | None:
        entry = self._entry(project_number)
        return entry.field_ids.get(field_name) if entry else None

    def get_project_id(self, project_number: int | None = None) -> str | None:
        entry = self._entry(project_number)
        return entry.project_id if entry else None

    def get_field_names(self, project_number: int | None = None) -> list[str]:
        entry = self._entry(project_number)
        return list(entry.field_ids) if entry else []

    def is_populated(self, project_number: int | None = None) -> bool:
        if project_number is not None:
            return project_number in self._projects
        return bool(self._projects)

    def clear(self) -> None:
        self._projects.clear()
        self._default_project = None


def _schema_issues(error: ValidationError) -> list[ConfigIssue]:
    return [
        ConfigIssue(
            phase="schema_validation",
            path=[str(part) for part in detail["loc"]],
            message=detail["msg"],
        )
        for detail in error.errors()
    ]


def validate_routing_config(data: Any, file_path: str | None = None) -> RoutingConfig:
    """Validate a parsed routing config mapping.

    Args:
        data: Parsed YAML/JSON document
        file_path: Source file, used only in error messages

    Returns:
        Validated RoutingConfig

    Raises:
        RoutingConfigError: With one schema_validation issue per problem
    """
    try:
        return RoutingConfig.model_validate(data)
    except ValidationError as e:
        raise RoutingConfigError(_schema_issues(e), file_path=file_path) from e


def validate_rules_live(
    config: RoutingConfig,
    field_options: FieldOptionSource,
    field_name: str = WORKFLOW_STATE_FIELD,
) -> list[ConfigIssue]:
    """Check that workflow states named by enabled rules exist in the project.

    Args:
        config: Structurally valid routing config
        field_options: Source of the project's field option names
        field_name: Name of the workflow state field

    Returns:
        live_validation issues; empty when every reference resolves
    """
    issues: list[ConfigIssue] = []
    for index, rule in config.enabled_rules:
        state = rule.action.workflow_state
        if not state:
            continue
        if field_options.resolve_option_id(field_name, state) is None:
            valid = field_options.get_option_names(field_name)
            issues.append(
                ConfigIssue(
                    phase="live_validation",
                    path=["rules", str(index), "action", "workflowState"],
                    message=f'Workflow state "{state}" not found in project. Valid: {", ".join(valid)}',
                )
            )
    return issues


def load_routing_config(
    config_path: str | Path,
    field_options: FieldOptionSource | None = None,
    field_name: str = WORKFLOW_STATE_FIELD,
) -> LoadResult:
    """Load and validate a routing config file.

    Args:
        config_path: Path to the YAML file
        field_options: When given, enabled rules are also checked against live
            field options
        field_name: Name of the workflow state field for live checks

    Returns:
        LoadResult with status ``loaded``, or ``missing`` with the empty
        default config when the file does not exist

    Raises:
        RoutingConfigError: On YAML, schema or live validation problems
    """
    path = Path(config_path)
    if not path.exists():
        log.info("routing_config_missing", path=str(path))
        return LoadResult(status="missing", config=RoutingConfig.default())

    try:
        with open(path) as f:
            contents = f.read()
    except OSError as e:
        raise RoutingConfigError(
            [ConfigIssue(phase="yaml_parse", message=f"Cannot read file: {e}")],
            file_path=str(path),
        ) from e

    try:
        data = yaml.safe_load(contents)
    except yaml.YAMLError as e:
        raise RoutingConfigError(
            [ConfigIssue(phase="yaml_parse", message=str(e))],
            file_path=str(path),
        ) from e

    config = validate_routing_config(data, file_path=str(path))

    if field_options is not None:
        live_issues = validate_rules_live(config, field_options, field_name)
        if live_issues:
            raise RoutingConfigError(live_issues, file_path=str(path))

    log.info("routing_config_loaded", path=str(path), rules=len(config.rules))
    return LoadResult(status="loaded", config=config, file_path=str(path))
