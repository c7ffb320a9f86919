"""Work stream detection.

Clusters a batch of issues into independent work streams that can be handed
to separate workers. Two issues end up in the same stream when they touch an
identical file path, or when one lists the other in ``blocked_by`` and both
are in the batch. Blockers outside the batch are ignored.

Clustering is a union-find over two kinds of node, issues and files, stored
in flat ``parent``/``rank`` arrays indexed by slot number.

Within a group, ``order_group`` puts blockers ahead of the issues they
block and picks the group primary.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Sequence
from typing import NamedTuple

import structlog

from agentflow.exceptions import DependencyCycleError
from agentflow.models.domain import GroupOrder, IssueFileOwnership, WorkStream, WorkStreamResult

log = structlog.get_logger(__name__)

EMPTY_RATIONALE = "No issues provided."


class IssueNode(NamedTuple):
    number: int


class FileNode(NamedTuple):
    path: str


Node = IssueNode | FileNode


class UnionFind:
    """Disjoint sets over issue and file nodes.

    Each distinct node gets an integer slot on first sight; ``find`` uses
    path compression and ``union`` joins by rank.
    """

    def __init__(self) -> None:
        self._slots: dict[tuple[type, Node], int] = {}
        self.parent: list[int] = []
        self.rank: list[int] = []

    def slot(self, node: Node) -> int:
        """Slot index for a node, allocating one if needed."""
        key = (type(node), node)
        index = self._slots.get(key)
        if index is None:
            index = len(self.parent)
            self._slots[key] = index
            self.parent.append(index)
            self.rank.append(0)
        return index

    def find(self, node: Node) -> int:
        """Root slot of the set containing ``node``."""
        root = self.slot(node)
        while self.parent[root] != root:
            root = self.parent[root]

        # Compress the walked path onto the root
        current = self.slot(node)
        while self.parent[current] != root:
            self.parent[current], current = root, self.parent[current]
        return root

    def union(self, a: Node, b: Node) -> None:
        root_a = self.find(a)
        root_b = self.find(b)
        if root_a == root_b:
            return
        if self.rank[root_a] < self.rank[root_b]:
            self.parent[root_a] = root_b
        elif self.rank[root_a] > self.rank[root_b]:
            self.parent[root_b] = root_a
        else:
            self.parent[root_b] = root_a
            self.rank[root_a] += 1

    def __len__(self) -> int:
        return len(self.parent)


def _merge_duplicates(issues: Iterable[IssueFileOwnership]) -> dict[int, IssueFileOwnership]:
    """Collapse repeated issue numbers into one entry with combined edges."""
    merged: dict[int, IssueFileOwnership] = {}
    for issue in issues:
        existing = merged.get(issue.number)
        if existing is None:
            merged[issue.number] = issue
            continue
        merged[issue.number] = IssueFileOwnership(
            number=issue.number,
            files=[*existing.files, *issue.files],
            blocked_by=[*existing.blocked_by, *issue.blocked_by],
        )
    return merged


def _shared_files(members: Sequence[int], issues: dict[int, IssueFileOwnership]) -> list[str]:
    if len(members) <= 1:
        return []

    counts: dict[str, int] = {}
    for number in members:
        for path in set(issues[number].files):
            counts[path] = counts.get(path, 0) + 1
    return sorted(path for path, count in counts.items() if count >= 2)


def build_rationale(streams: Sequence[WorkStream]) -> str:
    """Explain why each stream was formed."""
    parts = [f"{len(streams)} stream(s) detected."]
    for stream in streams:
        if len(stream.issues) == 1:
            parts.append(f"Stream {stream.id}: independent.")
        elif stream.shared_files:
            parts.append(f"Stream {stream.id}: issues share [{', '.join(stream.shared_files)}].")
        else:
            # Connected without shared files, so a blocker edge joined them
            parts.append(f"Stream {stream.id}: co-clustered via blockedBy relationship.")
    return " ".join(parts)


def detect_work_streams(issues: Sequence[IssueFileOwnership]) -> WorkStreamResult:
    """Cluster issues into work streams.

    Args:
        issues: File ownership and blockers for each issue in the batch

    Returns:
        WorkStreamResult with streams ordered by primary issue. Output does
        not depend on input order.
    """
    if not issues:
        return WorkStreamResult(streams=[], total_issues=0, total_streams=0, rationale=EMPTY_RATIONALE)

    by_number = _merge_duplicates(issues)
    uf = UnionFind()

    for number, issue in by_number.items():
        node = IssueNode(number)
        uf.slot(node)
        for path in issue.files:
            uf.union(FileNode(path), node)
        for blocker in issue.blocked_by:
            if blocker in by_number:
                uf.union(IssueNode(blocker), node)

    components: dict[int, list[int]] = {}
    for number in by_number:
        components.setdefault(uf.find(IssueNode(number)), []).append(number)

    streams = []
    for members in components.values():
        ordered = sorted(members)
        streams.append(
            WorkStream(
                id="stream-" + "-".join(str(n) for n in ordered),
                issues=ordered,
                shared_files=_shared_files(ordered, by_number),
                primary_issue=ordered[0],
            )
        )
    streams.sort(key=lambda s: s.primary_issue)

    log.debug("work_streams_detected", issues=len(by_number), streams=len(streams), nodes=len(uf))

    return WorkStreamResult(
        streams=streams,
        total_issues=len(by_number),
        total_streams=len(streams),
        rationale=build_rationale(streams),
    )


def order_group(issues: Sequence[IssueFileOwnership]) -> GroupOrder:
    """Order group members so blockers come before the issues they block.

    Kahn's algorithm over in-group ``blocked_by`` edges. The ready queue is
    kept in ascending issue number order, so the result does not depend on
    input order. Blockers outside the group are ignored.

    Args:
        issues: Group members with their blockers

    Returns:
        GroupOrder whose ``group_primary`` is the first issue in order

    Raises:
        DependencyCycleError: If some members block each other in a cycle
    """
    by_number = _merge_duplicates(issues)

    in_degree = {number: 0 for number in by_number}
    blocks: dict[int, list[int]] = {number: [] for number in by_number}
    for number, issue in by_number.items():
        for blocker in set(issue.blocked_by):
            if blocker in by_number:
                in_degree[number] += 1
                blocks[blocker].append(number)

    ready = [number for number, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order: list[int] = []
    while ready:
        current = heapq.heappop(ready)
        order.append(current)
        for blocked in blocks[current]:
            in_degree[blocked] -= 1
            if in_degree[blocked] == 0:
                heapq.heappush(ready, blocked)

    if len(order) != len(by_number):
        placed = set(order)
        raise DependencyCycleError(sorted(n for n in by_number if n not in placed))

    log.debug("group_ordered", issues=len(order), primary=order[0] if order else None)
    return GroupOrder(order=order, group_primary=order[0] if order else None)
