"""Unified-diff rendering between two ``{path: (blob oid, mode)}`` snapshots."""

from __future__ import annotations

import io
import os
from typing import Callable

from dulwich.objects import Blob
from dulwich.patch import write_blob_diff

from .fs import FileSystem
from .store import Entries, ObjectStore
from .tree import read_worktree_file

Loader = Callable[[str, str], bytes]


def store_loader(store: ObjectStore, dir: str) -> Loader:
    """Read blob content from the object store."""
    return lambda path, oid: store.read_blob(dir, oid)


def worktree_loader(fs: FileSystem, dir: str) -> Loader:
    """Read content from the working tree (the oid is ignored)."""
    return lambda path, oid: read_worktree_file(fs, os.path.join(dir, path))[0]


def changed_paths(old: Entries, new: Entries, paths=None) -> list[str]:
    out = []
    for path in sorted(set(old) | set(new)):
        if paths and not any(path == p or path.startswith(p.rstrip("/") + "/") for p in paths):
            continue
        if old.get(path) != new.get(path):
            out.append(path)
    return out


def render_diff(old: Entries, new: Entries, load_old: Loader, load_new: Loader,
                paths=None) -> str:
    """Return a git-style patch turning *old* into *new*."""
    out = io.BytesIO()
    for path in changed_paths(old, new, paths):
        a, b = old.get(path), new.get(path)
        old_blob = Blob.from_string(load_old(path, a[0])) if a else None
        new_blob = Blob.from_string(load_new(path, b[0])) if b else None
        write_blob_diff(
            out,
            (path.encode(), a[1] if a else None, old_blob),
            (path.encode(), b[1] if b else None, new_blob),
        )
    return out.getvalue().decode("utf-8", "replace").rstrip("\n")
