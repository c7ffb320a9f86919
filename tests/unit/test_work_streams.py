"""Tests for work stream clustering."""

import itertools

import pytest

from agentflow.engine.work_streams import (
    EMPTY_RATIONALE,
    FileNode,
    IssueNode,
    UnionFind,
    detect_work_streams,
    order_group,
)
from agentflow.exceptions import DependencyCycleError


class TestUnionFind:
    """Tests for the disjoint set structure."""

    def test_issue_and_file_nodes_distinct(self):
        """Test nodes of different kinds never share a slot."""
        uf = UnionFind()
        assert uf.slot(IssueNode(1)) != uf.slot(FileNode("1"))
        assert len(uf) == 2

    def test_union_and_find(self):
        """Test joined nodes share a root."""
        uf = UnionFind()
        uf.union(IssueNode(1), FileNode("a.py"))
        uf.union(IssueNode(2), FileNode("a.py"))

        assert uf.find(IssueNode(1)) == uf.find(IssueNode(2))
        assert uf.find(IssueNode(3)) != uf.find(IssueNode(1))

    def test_union_is_idempotent(self):
        """Test repeated unions keep one set."""
        uf = UnionFind()
        uf.union(IssueNode(1), IssueNode(2))
        uf.union(IssueNode(2), IssueNode(1))
        assert uf.find(IssueNode(1)) == uf.find(IssueNode(2))


class TestDetectWorkStreams:
    """Tests for detect_work_streams."""

    def test_empty_input(self):
        """Test no issues gives no streams."""
        result = detect_work_streams([])

        assert result.streams == []
        assert result.total_issues == 0
        assert result.total_streams == 0
        assert result.rationale == EMPTY_RATIONALE

    def test_shared_file_clusters(self, make_ownership):
        """Test issues sharing a file form one stream."""
        result = detect_work_streams(
            [
                make_ownership(44, ["src/auth.py", "src/db.py"]),
                make_ownership(42, ["src/auth.py"]),
                make_ownership(50, ["README.md"]),
            ]
        )

        assert [s.id for s in result.streams] == ["stream-42-44", "stream-50"]
        first = result.streams[0]
        assert first.issues == [42, 44]
        assert first.shared_files == ["src/auth.py"]
        assert first.primary_issue == 42
        assert result.total_streams == 2
        assert result.rationale == (
            "2 stream(s) detected. Stream stream-42-44: issues share [src/auth.py]. "
            "Stream stream-50: independent."
        )

    def test_transitive_file_overlap(self, make_ownership):
        """Test chains of shared files connect every member."""
        result = detect_work_streams(
            [
                make_ownership(1, ["a"]),
                make_ownership(2, ["a", "b"]),
                make_ownership(3, ["b"]),
            ]
        )

        assert [s.issues for s in result.streams] == [[1, 2, 3]]
        assert result.streams[0].shared_files == ["a", "b"]

    def test_blocked_by_clusters(self, make_ownership):
        """Test a blocker edge joins issues without shared files."""
        result = detect_work_streams(
            [
                make_ownership(10, ["x.py"]),
                make_ownership(11, ["y.py"], blocked_by=[10]),
            ]
        )

        assert result.streams[0].id == "stream-10-11"
        assert result.streams[0].shared_files == []
        assert "co-clustered via blockedBy relationship" in result.rationale

    def test_blocker_outside_batch_ignored(self, make_ownership):
        """Test blockers not in the batch add no members."""
        result = detect_work_streams([make_ownership(5, ["a"], blocked_by=[99])])

        assert [s.id for s in result.streams] == ["stream-5"]
        assert result.total_issues == 1

    def test_issue_without_files(self, make_ownership):
        """Test an issue with no files is its own stream."""
        result = detect_work_streams([make_ownership(3), make_ownership(1, ["a"])])
        assert [s.id for s in result.streams] == ["stream-1", "stream-3"]

    def test_duplicate_issue_numbers_merged(self, make_ownership):
        """Test repeated entries for one issue combine their files."""
        result = detect_work_streams(
            [
                make_ownership(1, ["a"]),
                make_ownership(1, ["b"]),
                make_ownership(2, ["b"]),
            ]
        )

        assert result.total_issues == 2
        assert [s.issues for s in result.streams] == [[1, 2]]
        assert result.streams[0].shared_files == ["b"]

    def test_repeated_file_counted_once_per_issue(self, make_ownership):
        """Test one issue listing a file twice does not make it shared."""
        result = detect_work_streams([make_ownership(1, ["a", "a"])])
        assert result.streams[0].shared_files == []

    def test_input_order_independent(self, make_ownership):
        """Test every permutation yields the same result."""
        issues = [
            make_ownership(7, ["lib/core.py"]),
            make_ownership(3, ["lib/core.py", "lib/util.py"]),
            make_ownership(9, ["docs/index.md"], blocked_by=[3]),
            make_ownership(12, ["tests/test_x.py"]),
        ]
        expected = detect_work_streams(issues)

        for permutation in itertools.permutations(issues):
            assert detect_work_streams(list(permutation)) == expected

    def test_to_dict(self, make_ownership):
        """Test camelCase serialization."""
        data = detect_work_streams([make_ownership(1, ["a"]), make_ownership(2, ["a"])]).to_dict()

        assert data["totalIssues"] == 2
        assert data["totalStreams"] == 1
        assert data["streams"][0] == {
            "id": "stream-1-2",
            "issues": [1, 2],
            "sharedFiles": ["a"],
            "primaryIssue": 1,
        }


class TestOrderGroup:
    """Tests for dependency ordering within a group."""

    def test_blockers_first(self, make_ownership):
        """Test a blocker precedes the issue it blocks."""
        result = order_group([make_ownership(10, blocked_by=[30]), make_ownership(30), make_ownership(20)])

        assert result.order == [20, 30, 10]
        assert result.group_primary == 20
        assert result.is_group is True

    def test_ties_broken_by_issue_number(self, make_ownership):
        """Test issues released together are taken lowest number first."""
        result = order_group(
            [
                make_ownership(5, blocked_by=[1]),
                make_ownership(3, blocked_by=[1]),
                make_ownership(1),
                make_ownership(4, blocked_by=[3, 5]),
            ]
        )

        assert result.order == [1, 3, 5, 4]

    def test_chain_primary_is_root_blocker(self, make_ownership):
        """Test the primary is the head of the chain, not the lowest number."""
        result = order_group([make_ownership(1, blocked_by=[2]), make_ownership(2, blocked_by=[3]), make_ownership(3)])

        assert result.order == [3, 2, 1]
        assert result.group_primary == 3

    def test_blockers_outside_group_ignored(self, make_ownership):
        """Test external blockers do not hold members back."""
        result = order_group([make_ownership(8, blocked_by=[99]), make_ownership(2)])
        assert result.order == [2, 8]

    def test_input_order_independent(self, make_ownership):
        """Test every permutation yields the same order."""
        issues = [
            make_ownership(4, blocked_by=[2]),
            make_ownership(2),
            make_ownership(7, blocked_by=[4, 2]),
            make_ownership(1),
        ]
        expected = order_group(issues)

        for permutation in itertools.permutations(issues):
            assert order_group(list(permutation)) == expected

    def test_cycle_names_members(self, make_ownership):
        """Test a cycle is reported with the issues involved."""
        issues = [
            make_ownership(1),
            make_ownership(2, blocked_by=[3]),
            make_ownership(3, blocked_by=[2]),
            make_ownership(4, blocked_by=[3]),
        ]

        with pytest.raises(DependencyCycleError) as exc_info:
            order_group(issues)

        assert exc_info.value.cycle_members == [2, 3, 4]
        assert "Issues involved: #2, #3, #4" in str(exc_info.value)
        assert "Remove one dependency to resolve." in str(exc_info.value)

    def test_self_block_is_cycle(self, make_ownership):
        """Test an issue blocking itself cannot be ordered."""
        with pytest.raises(DependencyCycleError):
            order_group([make_ownership(6, blocked_by=[6])])

    def test_single_and_empty(self, make_ownership):
        """Test degenerate groups."""
        assert order_group([make_ownership(9)]).to_dict() == {"order": [9], "groupPrimary": 9, "isGroup": False}
        assert order_group([]).group_primary is None
