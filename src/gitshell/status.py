"""Status-matrix interpretation and rendering.

A :class:`StatusRow` holds the blob oid of one path in HEAD, the working
tree and the index.  :func:`classify` sorts rows into staged, unstaged and
untracked change sets; :func:`format_porcelain` and :func:`format_human`
render them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class FileState(enum.Enum):
    ABSENT = "absent"
    UNMODIFIED = "unmodified"
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"


class Change(enum.Enum):
    """Per-path change categories, in report order."""

    STAGED_NEW = "staged-new"
    STAGED_MODIFY = "staged-modify"
    STAGED_DELETE = "staged-delete"
    UNSTAGED_MODIFY = "unstaged-modify"
    UNSTAGED_DELETE = "unstaged-delete"
    UNTRACKED = "untracked"

    @property
    def label(self) -> str:
        """Word used in the human-readable report."""
        if self is Change.STAGED_NEW:
            return "new file"
        if self in (Change.STAGED_DELETE, Change.UNSTAGED_DELETE):
            return "deleted"
        if self is Change.UNTRACKED:
            return "untracked"
        return "modified"


def _state(base: str | None, other: str | None) -> FileState:
    if base is None and other is None:
        return FileState.ABSENT
    if base is None:
        return FileState.ADDED
    if other is None:
        return FileState.DELETED
    if base == other:
        return FileState.UNMODIFIED
    return FileState.MODIFIED


@dataclass(frozen=True)
class StatusRow:
    """One path compared across HEAD, working tree and index (blob oids)."""

    path: str
    head: str | None
    workdir: str | None
    stage: str | None

    @property
    def head_state(self) -> FileState:
        return FileState.ABSENT if self.head is None else FileState.UNMODIFIED

    @property
    def stage_state(self) -> FileState:
        """Index relative to HEAD."""
        return _state(self.head, self.stage)

    @property
    def workdir_state(self) -> FileState:
        """Working tree relative to the index."""
        return _state(self.stage, self.workdir)


def classify(row: StatusRow) -> tuple[Change | None, Change | None]:
    """Return ``(staged change, unstaged change)`` for *row*.

    Untracked files are reported in the first slot.  Unchanged rows
    yield ``(None, None)``.
    """
    head, stage, work = row.head, row.stage, row.workdir
    if head is None and stage is None:
        return (Change.UNTRACKED if work is not None else None), None

    if head is None:
        staged = Change.STAGED_NEW
    elif stage is None:
        staged = Change.STAGED_DELETE
    elif head != stage:
        staged = Change.STAGED_MODIFY
    else:
        staged = None

    unstaged = None
    if stage is not None:
        if work is None:
            unstaged = Change.UNSTAGED_DELETE
        elif work != stage:
            unstaged = Change.UNSTAGED_MODIFY
    return staged, unstaged


@dataclass
class StatusReport:
    """Change sets of a working tree, each a list of ``(change, path)``."""

    staged: list[tuple[Change, str]] = field(default_factory=list)
    unstaged: list[tuple[Change, str]] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @classmethod
    def from_rows(cls, rows) -> StatusReport:
        report = cls()
        for row in rows:
            staged, unstaged = classify(row)
            if staged is Change.UNTRACKED:
                report.untracked.append(row.path)
                continue
            if staged is not None:
                report.staged.append((staged, row.path))
            if unstaged is not None:
                report.unstaged.append((unstaged, row.path))
        return report

    @property
    def clean(self) -> bool:
        return not (self.staged or self.unstaged or self.untracked)

    @property
    def dirty_paths(self) -> list[str]:
        """Tracked paths with staged or unstaged changes."""
        return sorted({p for _, p in self.staged} | {p for _, p in self.unstaged})


_X_CODES = {Change.STAGED_NEW: "A", Change.STAGED_MODIFY: "M", Change.STAGED_DELETE: "D"}
_Y_CODES = {Change.UNSTAGED_MODIFY: "M", Change.UNSTAGED_DELETE: "D"}

CLEAN_MESSAGE = "nothing to commit, working tree clean"


def format_porcelain(rows) -> str:
    """Two-column ``XY path`` lines; empty when the tree is clean."""
    lines = []
    for row in rows:
        staged, unstaged = classify(row)
        if staged is Change.UNTRACKED:
            lines.append(f"?? {row.path}")
        elif staged is not None or unstaged is not None:
            x = _X_CODES.get(staged, " ")
            y = _Y_CODES.get(unstaged, " ")
            lines.append(f"{x}{y} {row.path}")
    return "\n".join(lines)


def format_human(rows, branch: str | None, head: str | None = None) -> str:
    """The grouped report printed by a plain ``status``."""
    report = StatusReport.from_rows(rows)
    if branch is not None:
        lines = [f"On branch {branch}"]
    else:
        lines = [f"HEAD detached at {head[:7] if head else 'unknown'}"]

    if report.clean:
        lines.append(CLEAN_MESSAGE)
        return "\n".join(lines)

    if report.staged:
        lines += ["Changes to be committed:",
                  '  (use "git restore --staged <file>..." to unstage)']
        for change, path in report.staged:
            lines.append(f"\t{change.label + ':':<12}{path}")
        lines.append("")
    if report.unstaged:
        lines += ["Changes not staged for commit:",
                  '  (use "git add <file>..." to update what will be committed)',
                  '  (use "git restore <file>..." to discard changes in working directory)']
        for change, path in report.unstaged:
            lines.append(f"\t{change.label + ':':<12}{path}")
        lines.append("")
    if report.untracked:
        lines += ["Untracked files:",
                  '  (use "git add <file>..." to include in what will be committed)']
        lines += [f"\t{path}" for path in report.untracked]
        lines.append("")
    if not report.staged:
        if report.unstaged:
            lines.append('no changes added to commit (use "git add" and/or "git commit -a")')
        else:
            lines.append('nothing added to commit but untracked files present (use "git add" to track)')
    return "\n".join(lines).rstrip("\n")


class StatusCache:
    """Most recent status matrix per repository directory.

    Filled by ``status`` and cleared by every mutating command, by the
    rollback engine and by sync sessions.  Nothing inside gitshell reads
    it back: it is for embedding hosts (a file browser showing badges,
    say) that want the last matrix without rescanning the working tree.
    Files edited outside gitshell are not seen until the next ``status``.
    """

    def __init__(self):
        self._rows: dict[str, list[StatusRow]] = {}

    def get(self, dir: str) -> list[StatusRow] | None:
        return self._rows.get(dir)

    def update(self, dir: str, rows: list[StatusRow]) -> None:
        self._rows[dir] = list(rows)

    def invalidate(self, dir: str | None = None) -> None:
        if dir is None:
            self._rows.clear()
        else:
            self._rows.pop(dir, None)
