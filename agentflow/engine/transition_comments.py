"""Transition comment builder and parsers.

After a caller commits a state transition it leaves an audit trail on the
issue. Two formats exist:

- ``<!-- ralph-transition: {"from":...,"to":...,"command":...,"at":...} -->``,
  an HTML comment invisible in rendered markdown
- The handoff markdown form::

      **State transition**: Ready for Plan → Plan in Progress (intent: __LOCK__)
      **Command**: ralph_plan

Parsing never raises; malformed entries are skipped.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from agentflow.enums import COMMAND_PREFIX

TRANSITION_COMMENT_PATTERN = re.compile(r"<!-- ralph-transition: (\{.*?\}) -->")

AUDIT_COMMENT_PATTERN = re.compile(
    r"\*\*State transition\*\*: (.+?) → (.+?) \(intent: .+?\)\n\*\*Command\*\*: " + COMMAND_PREFIX + r"(\w+)"
)


@dataclass(frozen=True)
class TransitionRecord:
    """One state transition recorded on an issue."""

    from_state: str
    to_state: str
    command: str
    at: str
    """ISO 8601 timestamp."""

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity used to spot the same transition recorded twice."""
        return (self.from_state, self.to_state, self.command)

    @property
    def timestamp(self) -> datetime | None:
        try:
            return datetime.fromisoformat(self.at.replace("Z", "+00:00"))
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_state, "to": self.to_state, "command": self.command, "at": self.at}


def build_transition_comment(record: TransitionRecord) -> str:
    """Encode a record as a single-line HTML comment."""
    payload = json.dumps(record.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return f"<!-- ralph-transition: {payload} -->"


def parse_transition_comments(text: str) -> list[TransitionRecord]:
    """Extract records from every HTML transition comment in ``text``.

    Entries with invalid JSON or a missing field are skipped.
    """
    records = []
    for match in TRANSITION_COMMENT_PATTERN.finditer(text):
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        if not all(data.get(key) for key in ("from", "to", "command", "at")):
            continue
        records.append(
            TransitionRecord(
                from_state=str(data["from"]),
                to_state=str(data["to"]),
                command=str(data["command"]),
                at=str(data["at"]),
            )
        )
    return records


def parse_audit_comments(text: str, created_at: str) -> list[TransitionRecord]:
    """Extract records from handoff markdown audit comments.

    Audit comments carry no timestamp of their own, so ``created_at`` (the
    comment's creation time) is used.
    """
    return [
        TransitionRecord(
            from_state=match.group(1),
            to_state=match.group(2),
            command=f"{COMMAND_PREFIX}{match.group(3)}",
            at=created_at,
        )
        for match in AUDIT_COMMENT_PATTERN.finditer(text)
    ]


def parse_all_transitions(body: str, created_at: str) -> list[TransitionRecord]:
    """Parse both formats from a comment body.

    HTML records come first. Audit records are appended only when no HTML
    record already covers the same from/to/command.
    """
    html_records = parse_transition_comments(body)
    audit_records = parse_audit_comments(body, created_at)

    if not html_records:
        return audit_records
    if not audit_records:
        return html_records

    seen = {record.key for record in html_records}
    merged = list(html_records)
    for record in audit_records:
        if record.key not in seen:
            seen.add(record.key)
            merged.append(record)
    return merged
