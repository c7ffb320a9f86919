"""Configuration for agentflow.

Key Components:
    - AgentflowSettings: Tool settings with YAML loading support
    - RoutingConfig: Routing rules schema
    - load_routing_config: Load and validate a routing rules file

Example:
    >>> from agentflow.config import load_routing_config
    >>> result = load_routing_config(".agentflow-routing.yml")
    >>> result.status
    'missing'
"""

from agentflow.config.loader import (
    FieldOptionCache,
    FieldOptionSource,
    LoadResult,
    load_routing_config,
    validate_routing_config,
    validate_rules_live,
)
from agentflow.config.routing import LabelCriteria, MatchCriteria, RoutingAction, RoutingConfig, RoutingRule
from agentflow.config.settings import AgentflowSettings

__all__ = [
    "AgentflowSettings",
    "FieldOptionCache",
    "FieldOptionSource",
    "LabelCriteria",
    "LoadResult",
    "MatchCriteria",
    "RoutingAction",
    "RoutingConfig",
    "RoutingRule",
    "load_routing_config",
    "validate_routing_config",
    "validate_rules_live",
]
