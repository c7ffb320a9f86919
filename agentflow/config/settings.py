"""
Tool settings using pydantic-settings.

Settings come from, in increasing priority: field defaults, ``AGENTFLOW_*``
environment variables, and values in a YAML file loaded with
``AgentflowSettings.from_yaml``.

Example settings file::

    log_level: DEBUG
    routing_config_path: ${AGENTFLOW_ROUTING:-.agentflow-routing.yml}
    workflow_state_field: Workflow State
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentflow.exceptions import ConfigurationError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AgentflowSettings(BaseSettings):
    """Settings for the agentflow CLI and library entry points."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTFLOW_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Minimum log level")
    log_json: bool = Field(default=True, description="Render logs as JSON lines instead of console output")
    routing_config_path: str = Field(
        default=".agentflow-routing.yml", description="Path to the routing rules YAML file"
    )
    state_machine_path: str | None = Field(
        default=None, description="Optional JSON file overriding the embedded state machine table"
    )
    workflow_state_field: str = Field(
        default="Workflow State", description="Project field holding the workflow state"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got: {value}")
        return level

    @property
    def routing_config_file(self) -> Path:
        return Path(self.routing_config_path)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> AgentflowSettings:
        """Load settings from a YAML file with environment variable interpolation.

        Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            AgentflowSettings instance

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict: Any = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
