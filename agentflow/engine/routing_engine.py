"""Routing rule matching engine.

Evaluates routing rules against an issue context (repo, labels, type) and
returns the matched rules with their actions. Evaluation is pure and never
raises; structural problems are caught when the config is loaded.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import structlog

from agentflow.config.routing import LabelCriteria, MatchCriteria, RoutingAction, RoutingConfig, RoutingRule
from agentflow.enums import IssueType

log = structlog.get_logger(__name__)

# Regex metacharacters escaped before glob wildcards are expanded. ``*`` and
# ``?`` are left alone so they can be turned into wildcards.
_GLOB_ESCAPE = re.compile(r"[.+^${}()|\[\]\\]")
_DOUBLE_STAR = "\x00"


@dataclass(frozen=True)
class IssueContext:
    """Minimal issue data needed to evaluate routing rules."""

    repo: str
    labels: list[str] = field(default_factory=list)
    issue_type: IssueType | str = IssueType.ISSUE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IssueContext:
        return cls(
            repo=str(data["repo"]),
            labels=[str(label) for label in data.get("labels") or []],
            issue_type=str(data.get("issueType") or data.get("issue_type") or IssueType.ISSUE.value),
        )


@dataclass(frozen=True)
class MatchResult:
    """A rule that matched, with its position in the config."""

    rule: RoutingRule
    rule_index: int
    matched: bool
    actions: RoutingAction

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule.to_dict(),
            "ruleIndex": self.rule_index,
            "matched": self.matched,
            "actions": self.actions.to_dict(),
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Rules matched for one issue, in config order."""

    matched_rules: list[MatchResult]
    stopped_early: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "matchedRules": [match.to_dict() for match in self.matched_rules],
            "stoppedEarly": self.stopped_early,
        }


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a repository glob into a lowercase regex for full matching.

    ``**`` matches across ``/``, ``*`` matches within one path segment and
    ``?`` matches a single non-``/`` character. Everything else is literal.
    """
    expr = _GLOB_ESCAPE.sub(lambda m: "\\" + m.group(0), pattern.lower())
    expr = expr.replace("**", _DOUBLE_STAR).replace("*", "[^/]*").replace("?", "[^/]").replace(_DOUBLE_STAR, ".*")
    return re.compile(expr)


def matches_glob(pattern: str, value: str) -> bool:
    return glob_to_regex(pattern).fullmatch(value.lower()) is not None


def matches_labels(criteria: LabelCriteria, labels: Iterable[str]) -> bool:
    normalized = {label.lower() for label in labels}

    if criteria.any_of and not any(label.lower() in normalized for label in criteria.any_of):
        return False
    if criteria.all_of and not all(label.lower() in normalized for label in criteria.all_of):
        return False
    return True


def matches_criteria(criteria: MatchCriteria, issue: IssueContext) -> bool:
    """AND of every specified criterion, before ``negate`` is applied."""
    if criteria.repo and not matches_glob(criteria.repo, issue.repo):
        return False
    if criteria.labels is not None and not matches_labels(criteria.labels, issue.labels):
        return False
    if criteria.issue_type and str(criteria.issue_type).lower() != str(issue.issue_type).lower():
        return False
    return True


def evaluate_rules(config: RoutingConfig, issue: IssueContext) -> EvaluationResult:
    """Evaluate routing rules against an issue.

    Rules are checked top to bottom and disabled rules are skipped. With
    ``stop_on_first_match`` (the default) evaluation ends at the first match;
    otherwise every matching rule is returned for fan-out routing.

    Args:
        config: Validated routing config
        issue: Issue to route

    Returns:
        EvaluationResult
    """
    matched: list[MatchResult] = []

    for index, rule in enumerate(config.rules):
        if not rule.enabled:
            continue

        hit = matches_criteria(rule.match, issue)
        if rule.match.negate:
            hit = not hit
        if not hit:
            continue

        matched.append(MatchResult(rule=rule, rule_index=index, matched=True, actions=rule.action))
        if config.stop_on_first_match:
            log.debug("routing_rule_matched", repo=issue.repo, rule=rule.label, rule_index=index, stopped=True)
            return EvaluationResult(matched_rules=matched, stopped_early=True)

    log.debug("routing_rules_evaluated", repo=issue.repo, matched=len(matched))
    return EvaluationResult(matched_rules=matched, stopped_early=False)
