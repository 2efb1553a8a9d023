"""Tests for status-matrix classification and rendering."""

import pytest

from gitshell.status import (
    CLEAN_MESSAGE,
    Change,
    FileState,
    StatusCache,
    StatusReport,
    StatusRow,
    classify,
    format_human,
    format_porcelain,
)

A, B, C = "a" * 40, "b" * 40, "c" * 40


class TestClassify:
    @pytest.mark.parametrize("row, expected", [
        (StatusRow("f", None, A, None), (Change.UNTRACKED, None)),
        (StatusRow("f", None, A, A), (Change.STAGED_NEW, None)),
        (StatusRow("f", None, B, A), (Change.STAGED_NEW, Change.UNSTAGED_MODIFY)),
        (StatusRow("f", A, A, None), (Change.STAGED_DELETE, None)),
        (StatusRow("f", A, B, B), (Change.STAGED_MODIFY, None)),
        (StatusRow("f", A, None, A), (None, Change.UNSTAGED_DELETE)),
        (StatusRow("f", A, B, A), (None, Change.UNSTAGED_MODIFY)),
        (StatusRow("f", A, C, B), (Change.STAGED_MODIFY, Change.UNSTAGED_MODIFY)),
        (StatusRow("f", A, A, A), (None, None)),
    ])
    def test_rules(self, row, expected):
        assert classify(row) == expected

    def test_states(self):
        row = StatusRow("f", A, C, B)
        assert row.head_state is FileState.UNMODIFIED
        assert row.stage_state is FileState.MODIFIED
        assert row.workdir_state is FileState.MODIFIED
        assert StatusRow("f", None, A, A).stage_state is FileState.ADDED
        assert StatusRow("f", A, None, A).workdir_state is FileState.DELETED


class TestPorcelain:
    def test_clean_is_empty(self):
        assert format_porcelain([StatusRow("f", A, A, A)]) == ""
        assert format_porcelain([]) == ""

    def test_codes(self):
        rows = [
            StatusRow("new.txt", None, A, A),
            StatusRow("mod.txt", A, B, A),
            StatusRow("both.txt", A, C, B),
            StatusRow("gone.txt", A, None, None),
            StatusRow("junk.txt", None, A, None),
        ]
        assert format_porcelain(rows).splitlines() == [
            "A  new.txt",
            " M mod.txt",
            "MM both.txt",
            "D  gone.txt",
            "?? junk.txt",
        ]


class TestHuman:
    def test_clean(self):
        out = format_human([StatusRow("f", A, A, A)], "main")
        assert out == f"On branch main\n{CLEAN_MESSAGE}"

    def test_clean_is_idempotent(self):
        rows = [StatusRow("f", A, A, A)]
        assert format_human(rows, "main") == format_human(rows, "main")

    def test_detached(self):
        out = format_human([], None, B)
        assert out.startswith(f"HEAD detached at {B[:7]}")

    def test_sections(self):
        rows = [
            StatusRow("new.txt", None, A, A),
            StatusRow("mod.txt", A, B, A),
            StatusRow("junk.txt", None, A, None),
        ]
        out = format_human(rows, "main")
        assert "Changes to be committed:" in out
        assert "\tnew file:   new.txt" in out
        assert "Changes not staged for commit:" in out
        assert "\tmodified:   mod.txt" in out
        assert "Untracked files:" in out
        assert "\tjunk.txt" in out
        assert CLEAN_MESSAGE not in out

    def test_only_untracked_hint(self):
        out = format_human([StatusRow("junk.txt", None, A, None)], "main")
        assert out.endswith(
            'nothing added to commit but untracked files present (use "git add" to track)')

    def test_unstaged_hint(self):
        out = format_human([StatusRow("mod.txt", A, B, A)], "main")
        assert out.endswith('no changes added to commit (use "git add" and/or "git commit -a")')


class TestReport:
    def test_groups(self):
        report = StatusReport.from_rows([
            StatusRow("a", None, A, A),
            StatusRow("b", A, B, A),
            StatusRow("c", None, A, None),
            StatusRow("d", A, A, A),
        ])
        assert report.staged == [(Change.STAGED_NEW, "a")]
        assert report.unstaged == [(Change.UNSTAGED_MODIFY, "b")]
        assert report.untracked == ["c"]
        assert report.dirty_paths == ["a", "b"]
        assert not report.clean

    def test_clean(self):
        assert StatusReport.from_rows([StatusRow("d", A, A, A)]).clean


class TestCache:
    def test_update_and_invalidate(self):
        cache = StatusCache()
        rows = [StatusRow("a", None, A, None)]
        cache.update("/r1", rows)
        cache.update("/r2", rows)
        assert cache.get("/r1") == rows
        cache.invalidate("/r1")
        assert cache.get("/r1") is None
        assert cache.get("/r2") == rows
        cache.invalidate()
        assert cache.get("/r2") is None
