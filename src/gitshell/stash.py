"""Stash entries kept as JSON in the control directory.

File contents live in the object store as blobs; the JSON file only
records paths, blob ids and modes.  Entry 0 is the newest.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import asdict, dataclass, field

from .exceptions import GitShellError, LocalChangesError
from .status import Change, StatusReport, classify
from .store import ObjectStore
from .tree import CONTROL_DIR, read_worktree_file

logger = logging.getLogger(__name__)

STASH_FILE = "gitshell_stash.json"

_REF_RE = re.compile(r"^(?:stash@\{(\d+)\}|(\d+))$")


class StashError(GitShellError):
    """No such stash entry, or nothing to stash."""


@dataclass
class StashEntry:
    message: str
    branch: str | None
    head: str
    # path -> [oid, mode], or None when the path was deleted
    files: dict[str, list | None] = field(default_factory=dict)
    index: dict[str, list | None] = field(default_factory=dict)
    created: int = 0

    def changes(self, head_files: dict) -> list[tuple[str, str]]:
        """``(code, path)`` pairs against the commit the stash was made on."""
        out = []
        for path, rec in sorted(self.files.items()):
            if rec is None:
                out.append(("D", path))
            elif path not in head_files:
                out.append(("A", path))
            else:
                out.append(("M", path))
        return out


def parse_stash_ref(ref: str | None) -> int:
    if ref is None:
        return 0
    m = _REF_RE.match(ref)
    if not m:
        raise StashError(f"{ref} is not a valid reference")
    return int(m.group(1) or m.group(2))


class StashStore:
    """Save, list, apply and drop stash entries of the repository at *dir*."""

    def __init__(self, store: ObjectStore, dir: str):
        self.store = store
        self.fs = store.fs
        self.dir = dir
        self.path = os.path.join(dir, CONTROL_DIR, STASH_FILE)

    def entries(self) -> list[StashEntry]:
        if not self.fs.exists(self.path):
            return []
        data = json.loads(self.fs.read_file(self.path).decode("utf-8"))
        return [StashEntry(**item) for item in data]

    def _save(self, entries: list[StashEntry]) -> None:
        payload = json.dumps([asdict(e) for e in entries], indent=2)
        self.fs.write_file(self.path, payload.encode("utf-8"))

    def get(self, n: int) -> StashEntry:
        entries = self.entries()
        if not entries:
            raise StashError("No stash entries found.")
        if n >= len(entries):
            raise StashError(f"stash@{{{n}}} is not a valid reference")
        return entries[n]

    def push(self, message: str | None = None, *, include_untracked: bool = False) -> StashEntry:
        """Record local changes, then reset the working tree and index to HEAD."""
        head = self.store.head(self.dir)
        if head is None:
            raise StashError("You do not have the initial commit yet")
        rows = self.store.status_matrix(self.dir)
        report = StatusReport.from_rows(rows)
        paths = set(report.dirty_paths)
        untracked = set(report.untracked) if include_untracked else set()
        if not paths and not untracked:
            raise StashError("No local changes to save")

        branch = self.store.current_branch(self.dir)
        if message is None:
            subject = self.store.read_commit(self.dir, head).subject
            message = f"WIP on {branch or '(no branch)'}: {head[:7]} {subject}"
        elif branch is not None:
            message = f"On {branch}: {message}"

        entry = StashEntry(message=message, branch=branch, head=head, created=int(time.time()))
        for path in sorted(paths | untracked):
            full = os.path.join(self.dir, path)
            if not self.fs.exists(full):
                entry.files[path] = None
                continue
            try:
                data, mode = read_worktree_file(self.fs, full)
            except OSError as exc:
                # tracked files are reset below, so only untracked ones may be left behind
                if path not in untracked:
                    raise
                logger.warning("not stashing %s: %s", path, exc)
                untracked.discard(path)
                continue
            entry.files[path] = [self.store.write_blob(self.dir, data), mode]
        staged = self.store.read_index(self.dir)
        for row in rows:
            if classify(row)[0] in (Change.STAGED_NEW, Change.STAGED_MODIFY, Change.STAGED_DELETE):
                rec = staged.get(row.path)
                entry.index[row.path] = list(rec) if rec else None

        self._save([entry] + self.entries())
        self.store.checkout(self.dir, head, force=True, no_update_head=True)
        for path in sorted(untracked):
            self.fs.unlink(os.path.join(self.dir, path))
        logger.debug("stashed %d path(s) in %s", len(entry.files), self.dir)
        return entry

    def apply(self, n: int = 0) -> StashEntry:
        """Restore entry *n* on top of the current working tree."""
        entry = self.get(n)
        report = StatusReport.from_rows(self.store.status_matrix(self.dir))
        conflicts = sorted(set(report.dirty_paths) & set(entry.files))
        conflicts += sorted(
            p for p in set(report.untracked) & set(entry.files)
            if entry.files[p] is not None
        )
        if conflicts:
            raise LocalChangesError(conflicts)
        for path, rec in sorted(entry.files.items()):
            full = os.path.join(self.dir, path)
            if rec is None:
                if self.fs.exists(full):
                    self.fs.unlink(full)
            else:
                oid, mode = rec
                self.fs.write_file(full, self.store.read_blob(self.dir, oid), mode)
        if entry.index:
            self.store.stage(self.dir, {
                path: tuple(rec) if rec else None for path, rec in entry.index.items()
            })
        return entry

    def drop(self, n: int = 0) -> StashEntry:
        entry = self.get(n)
        entries = self.entries()
        del entries[n]
        self._save(entries)
        return entry

    def pop(self, n: int = 0) -> StashEntry:
        entry = self.apply(n)
        self.drop(n)
        return entry

    def clear(self) -> None:
        if self.fs.exists(self.path):
            self.fs.unlink(self.path)
