"""Path, filemode and blob-hash helpers shared by the adapter and engines."""

from __future__ import annotations

import hashlib
import os
import posixpath
import stat
from typing import Iterator

from .fs import FileSystem

GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000

CONTROL_DIR = ".git"


def _normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a repo-relative path: strip slashes, reject bad segments."""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    while path.startswith("./"):
        path = path[2:]
    if not path or path == ".":
        raise ValueError("Path must not be empty")
    segments = [seg for seg in path.split("/") if seg != "."]
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg == "..":
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


def _blob_hasher(size: int):
    """Return a SHA-1 hasher pre-loaded with the git blob header.

    Git blob OID = SHA-1(``blob <size>\\0`` + content).
    """
    return hashlib.sha1(f"blob {size}\0".encode())


def blob_oid(data: bytes) -> str:
    """Return the hex git blob id of *data* without storing it."""
    h = _blob_hasher(len(data))
    h.update(data)
    return h.hexdigest()


def mode_from_stat(st: os.stat_result) -> int:
    """Return the git filemode for an ``lstat`` result."""
    if stat.S_ISLNK(st.st_mode):
        return GIT_FILEMODE_LINK
    if st.st_mode & 0o111:
        return GIT_FILEMODE_BLOB_EXECUTABLE
    return GIT_FILEMODE_BLOB


def read_worktree_file(fs: FileSystem, full: str) -> tuple[bytes, int]:
    """Return ``(content, filemode)`` for a working-tree file.

    Symlinks yield their target string as content.
    """
    mode = mode_from_stat(fs.stat(full))
    if mode == GIT_FILEMODE_LINK:
        return fs.readlink(full).encode(), mode
    return fs.read_file(full), mode


def walk_worktree(fs: FileSystem, root: str, sub: str = "") -> Iterator[str]:
    """Yield repo-relative file paths under *root*/*sub* in sorted order.

    The control directory is never descended into.  Symlinked
    directories are reported as files.
    """
    base = posixpath.join(root, sub) if sub else root
    for name in fs.readdir(base):
        if name == CONTROL_DIR:
            continue
        rel = f"{sub}/{name}" if sub else name
        full = posixpath.join(root, rel)
        st = fs.stat(full)
        if stat.S_ISDIR(st.st_mode):
            yield from walk_worktree(fs, root, rel)
        else:
            yield rel


def short_oid(oid: str | bytes | None) -> str:
    """Seven-character abbreviation used in human-facing output."""
    if oid is None:
        return "0000000"
    if isinstance(oid, bytes):
        oid = oid.decode("ascii")
    return oid[:7]
