"""Rollback to an earlier commit, and hard reset of the working tree.

:meth:`RollbackEngine.revert_to` rewrites the working tree and index to
match an older commit and records that state as a new commit on top of
the current tip, so history is never rewritten.
:meth:`RollbackEngine.hard_reset_to_head` throws away every local
change, untracked files included, without committing.

Each file is restored independently.  Failures are logged and collected;
if any file could not be restored a :class:`~gitshell.exceptions.RollbackError`
is raised and no commit is made.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .exceptions import RefNotFound, RollbackError, StoreError
from .status import Change, StatusCache, classify
from .store import CommitInfo, ObjectStore
from .tree import short_oid

logger = logging.getLogger(__name__)

ALREADY_AT_COMMIT = "Already at this commit"


@dataclass
class RevertResult:
    """Outcome of :meth:`RollbackEngine.revert_to`.

    ``oid`` is None when nothing had to change.
    """

    oid: str | None
    message: str
    reverted: list[CommitInfo] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.oid is not None


def revert_message(target: str, reverted: list[CommitInfo]) -> str:
    lines = [f"Revert to {short_oid(target)}"]
    if reverted:
        lines += ["", "Reverted commits:"]
        lines += [f"- {c.short} {c.subject}" for c in reverted]
    return "\n".join(lines)


class RollbackEngine:
    """Restores older tree states in the repository at *dir*."""

    def __init__(self, store: ObjectStore, dir: str, *,
                 cache: StatusCache | None = None, author: str | None = None):
        self.store = store
        self.fs = store.fs
        self.dir = dir
        self.cache = cache
        self.author = author

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.dir)

    def _remove(self, paths, failures: dict[str, Exception]) -> None:
        for path in sorted(paths):
            full = os.path.join(self.dir, path)
            try:
                if self.fs.exists(full):
                    self.fs.unlink(full)
            except OSError as exc:
                logger.warning("could not remove %s: %s", path, exc)
                failures[path] = exc

    def _restore(self, files: dict[str, tuple[str, int]],
                 failures: dict[str, Exception]) -> None:
        for path, (oid, mode) in sorted(files.items()):
            try:
                data = self.store.read_blob(self.dir, oid)
                self.fs.write_file(os.path.join(self.dir, path), data, mode)
            except (OSError, StoreError) as exc:
                logger.warning("could not restore %s: %s", path, exc)
                failures[path] = exc

    def revert_to(self, target: str) -> RevertResult:
        """Make the tree of *target* the new tip, as a commit on top of HEAD."""
        try:
            tip = self.store.head(self.dir)
            if tip is None:
                raise RefNotFound("HEAD", "commit")
            target_oid = self.store.resolve_ref(self.dir, target)
            if target_oid == tip or (
                self.store.read_commit(self.dir, target_oid).tree
                == self.store.read_commit(self.dir, tip).tree
            ):
                return RevertResult(None, ALREADY_AT_COMMIT)

            reverted = self.store.commits_between(self.dir, tip, target_oid)
            target_files = self.store.read_tree(self.dir, target_oid)
            tip_files = self.store.read_tree(self.dir, tip)
            staged = self.store.read_index(self.dir)

            failures: dict[str, Exception] = {}
            self._remove(set(tip_files) - set(target_files), failures)
            self._restore(target_files, failures)
            if failures:
                raise RollbackError(failures)

            stale = (set(tip_files) | set(staged)) - set(target_files)
            if stale:
                self.store.remove(self.dir, sorted(stale))
            self.store.add(self.dir, sorted(target_files))

            message = revert_message(target_oid, reverted)
            oid = self.store.commit(self.dir, message, self.author)
            logger.info("reverted %s to %s as %s", self.dir, target_oid[:7], oid[:7])
            return RevertResult(oid, message, reverted)
        finally:
            self._invalidate()

    def hard_reset_to_head(self) -> None:
        """Discard staged, unstaged and untracked changes (ignored files stay)."""
        try:
            head_files = self.store.read_tree(self.dir, "HEAD")
            rows = self.store.status_matrix(self.dir)
            untracked = {r.path for r in rows if classify(r)[0] is Change.UNTRACKED}
            staged = self.store.read_index(self.dir)
            work = self.store.read_worktree(self.dir)

            failures: dict[str, Exception] = {}
            self._remove((set(staged) | untracked) - set(head_files), failures)
            self._restore(
                {p: e for p, e in head_files.items() if work.get(p) != e}, failures)
            if failures:
                raise RollbackError(failures)

            if self.store.head(self.dir) is None:
                self.store.remove(self.dir, sorted(staged))
            else:
                self.store.checkout(self.dir, "HEAD", force=True,
                                    no_checkout=True, no_update_head=True)
        finally:
            self._invalidate()
