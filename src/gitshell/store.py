"""Object-store adapter: repository operations on top of dulwich.

Every method takes the working directory of the repository first and
opens the dulwich ``Repo`` only for the duration of the call, so one
:class:`ObjectStore` can serve any number of repositories.  Working-tree
files are read and written through the injected :class:`~gitshell.fs.FileSystem`.

Transport failures never escape as dulwich exceptions; they are mapped
onto the closed set of :class:`~gitshell.exceptions.SyncError` variants.
"""

from __future__ import annotations

import http.client
import logging
import os
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

import urllib3.exceptions
from dulwich.client import HTTPUnauthorized, get_transport_and_path
from dulwich.config import ConfigFile
from dulwich.errors import (
    GitProtocolError,
    HangupException,
    NotGitRepository,
    NotTreeError,
)
from dulwich.ignore import IgnoreFilterManager
from dulwich.index import IndexEntry, index_entry_from_stat
from dulwich.object_store import iter_tree_contents, tree_lookup_path
from dulwich.objects import Blob, Commit, Tag
from dulwich.protocol import ZERO_SHA
from dulwich.refs import SYMREF, check_ref_format
from dulwich.repo import Repo

from .credentials import GitCredential
from .exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    FastForwardUnsupported,
    GitShellError,
    HttpStatus,
    LocalChangesError,
    MergeUnsupported,
    NetworkFailure,
    NotARepository,
    PushRejected,
    RefNotFound,
    RepositoryNotFound,
    SignerRequired,
    StoreError,
    SyncError,
)
from .fs import FileSystem, LocalFileSystem
from .status import StatusRow
from .tree import (
    CONTROL_DIR,
    _normalize_path,
    blob_oid,
    read_worktree_file,
    walk_worktree,
)

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "gitshell <gitshell@localhost>"
DEFAULT_FETCH = "+refs/heads/*:refs/remotes/{remote}/*"
SIGNED_SCHEMES = ("nostr",)

_REV_RE = re.compile(r"^(?P<base>.*?)(?P<suffix>(?:[~^]\d*)*)$")
_HEX_RE = re.compile(r"^[0-9a-f]{4,40}$")
_HTTP_RESP_RE = re.compile(r"unexpected http resp (\d+)")

OnAuth = Callable[[str], "GitCredential | None"]
Entries = dict[str, tuple[str, int]]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CommitInfo:
    """A commit as reported by :meth:`ObjectStore.log`."""

    oid: str
    tree: str
    parents: list[str]
    author_name: str
    author_email: str
    author_time: int
    author_timezone: int
    message: str

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0]

    @property
    def short(self) -> str:
        return self.oid[:7]


@dataclass
class Remote:
    name: str
    url: str
    fetch: str | None = None


@dataclass
class RefUpdate:
    """One remote-tracking ref written by a fetch."""

    branch: str
    local_ref: str
    old: str | None
    new: str


@dataclass
class FetchResult:
    url: str
    remote: str | None
    refs: dict[str, str] = field(default_factory=dict)
    updates: list[RefUpdate] = field(default_factory=list)
    head: str | None = None


@dataclass
class PullResult:
    url: str
    remote: str
    branch: str
    old: str | None
    new: str
    up_to_date: bool = False


@dataclass
class PushResult:
    url: str
    remote: str | None
    ref: str
    remote_ref: str
    old: str | None
    new: str
    up_to_date: bool = False


@dataclass
class CloneResult:
    dir: str
    url: str
    branch: str | None
    head: str | None


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def translate_transport_error(exc: BaseException, url: str | None = None) -> SyncError | None:
    """Map a dulwich/urllib3 transport exception onto a typed sync error.

    Returns ``None`` when *exc* is not a recognised transport failure.
    """
    if isinstance(exc, SyncError):
        return exc
    where = url or "remote"
    if isinstance(exc, HTTPUnauthorized):
        return AuthenticationFailed(f"Authentication failed for '{where}'")
    if isinstance(exc, HangupException):
        return NetworkFailure(f"The remote end hung up unexpectedly ({where})")
    if isinstance(exc, NotGitRepository):
        return RepositoryNotFound(where)
    if isinstance(exc, GitProtocolError):
        m = _HTTP_RESP_RE.search(str(exc))
        if m:
            code = int(m.group(1))
            if code == 401:
                return AuthenticationFailed(f"Authentication failed for '{where}'")
            if code == 404:
                return RepositoryNotFound(where)
            return HttpStatus(code, http.client.responses.get(code, ""))
        return None
    if isinstance(exc, (urllib3.exceptions.HTTPError, ConnectionError, TimeoutError)):
        return NetworkFailure(f"unable to access '{where}': {exc}")
    if isinstance(exc, OSError) and not isinstance(exc, FileNotFoundError):
        return NetworkFailure(f"unable to access '{where}': {exc}")
    return None


@contextmanager
def _translate_errors(url: str) -> Iterator[None]:
    try:
        yield
    except GitShellError:
        raise
    except Exception as exc:
        translated = translate_transport_error(exc, url)
        if translated is None:
            raise
        logger.debug("transport error for %s: %r", url, exc)
        raise translated from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _branch_ref(name: str) -> bytes:
    if name.startswith("refs/"):
        return name.encode()
    return b"refs/heads/" + name.encode()


def _parse_identity(ident: bytes) -> tuple[str, str]:
    name, _, email_part = ident.decode("utf-8", "replace").partition(" <")
    return name, email_part.rstrip(">")


def _commit_info(c: Commit) -> CommitInfo:
    name, email = _parse_identity(c.author)
    return CommitInfo(
        oid=c.id.decode("ascii"),
        tree=c.tree.decode("ascii"),
        parents=[p.decode("ascii") for p in c.parents],
        author_name=name,
        author_email=email,
        author_time=c.author_time,
        author_timezone=c.author_timezone,
        message=c.message.decode("utf-8", "replace"),
    )


def _split_key(key: str) -> tuple[tuple[bytes, ...], bytes]:
    """``remote.origin.url`` -> ``((b"remote", b"origin"), b"url")``."""
    parts = key.split(".")
    if len(parts) < 2 or not all(parts):
        raise ValueError(f"invalid key: {key}")
    if len(parts) == 2:
        return (parts[0].encode(),), parts[1].encode()
    return (parts[0].encode(), ".".join(parts[1:-1]).encode()), parts[-1].encode()


def _in_pathspec(path: str, paths) -> bool:
    if not paths:
        return True
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in paths)


def _is_url(location: str) -> bool:
    return "://" in location or location.startswith(("/", ".", "~")) or (
        ":" in location and "@" in location.split(":", 1)[0]
    )


# ---------------------------------------------------------------------------
# ObjectStore
# ---------------------------------------------------------------------------

class ObjectStore:
    """Git repository operations addressed by working-directory path."""

    def __init__(self, fs: FileSystem | None = None, global_config_path: str | None = None):
        self.fs = fs if fs is not None else LocalFileSystem()
        self.global_config_path = global_config_path

    # -- repository ----------------------------------------------------------

    def _open(self, dir: str) -> Repo:
        # bare repositories keep HEAD at the top level
        if not (self.fs.exists(os.path.join(dir, CONTROL_DIR))
                or self.fs.exists(os.path.join(dir, "HEAD"))):
            raise NotARepository(dir)
        try:
            return Repo(dir)
        except NotGitRepository:
            raise NotARepository(dir) from None

    def is_repository(self, dir: str) -> bool:
        return self.fs.is_dir(os.path.join(dir, CONTROL_DIR))

    def init(self, dir: str, default_branch: str = "main", *, bare: bool = False) -> bool:
        """Create a repository in *dir*.  Returns True if one already existed."""
        marker = os.path.join(dir, "HEAD" if bare else CONTROL_DIR)
        if self.fs.exists(marker):
            return True
        if not self.fs.exists(dir):
            self.fs.mkdir(dir, parents=True)
        repo = Repo.init_bare(dir) if bare else Repo.init(dir)
        with repo:
            repo.refs.set_symbolic_ref(b"HEAD", _branch_ref(default_branch))
        logger.debug("initialized repository in %s (branch %s)", dir, default_branch)
        return False

    # -- refs ----------------------------------------------------------------

    @staticmethod
    def _head(repo: Repo) -> bytes | None:
        try:
            return repo.refs[b"HEAD"]
        except KeyError:
            return None

    @staticmethod
    def _read(repo: Repo, ref: bytes) -> bytes | None:
        try:
            return repo.refs[ref]
        except KeyError:
            return None

    @staticmethod
    def _current_branch(repo: Repo) -> str | None:
        raw = repo.refs.read_ref(b"HEAD")
        if raw and raw.startswith(SYMREF):
            target = raw[len(SYMREF):].strip()
            if target.startswith(b"refs/heads/"):
                return target[len(b"refs/heads/"):].decode()
        return None

    def _lookup(self, repo: Repo, name: str) -> bytes | None:
        if name == "HEAD":
            return self._head(repo)
        raw = name.encode()
        candidates = [b"refs/" + raw, b"refs/tags/" + raw, b"refs/heads/" + raw,
                      b"refs/remotes/" + raw, b"refs/remotes/" + raw + b"/HEAD"]
        if raw.startswith(b"refs/") or raw.isupper():
            candidates.insert(0, raw)
        for candidate in candidates:
            sha = self._read(repo, candidate)
            if sha is not None:
                return sha
        if _HEX_RE.match(name):
            if len(raw) == 40 and raw in repo.object_store:
                return raw
            matches = [sha for sha in repo.object_store if sha.startswith(raw)]
            if len(matches) == 1:
                return matches[0]
        return None

    @staticmethod
    def _peel(repo: Repo, sha: bytes) -> bytes:
        obj = repo[sha]
        while isinstance(obj, Tag):
            obj = repo[obj.object[1]]
        if not isinstance(obj, Commit):
            raise RefNotFound(sha.decode(), "commit")
        return obj.id

    def _resolve(self, repo: Repo, rev: str) -> bytes:
        m = _REV_RE.match(rev)
        base, suffix = m.group("base"), m.group("suffix")
        sha = self._lookup(repo, base) if base else None
        if sha is None:
            raise RefNotFound(rev, "revision")
        sha = self._peel(repo, sha)
        for op, count in re.findall(r"([~^])(\d*)", suffix):
            n = int(count) if count else 1
            if op == "~":
                for _ in range(n):
                    parents = repo[sha].parents
                    if not parents:
                        raise RefNotFound(rev, "revision")
                    sha = parents[0]
            elif n:
                parents = repo[sha].parents
                if len(parents) < n:
                    raise RefNotFound(rev, "revision")
                sha = parents[n - 1]
        return sha

    def resolve_ref(self, dir: str, ref: str) -> str:
        """Resolve *ref* (branch, tag, oid, ``HEAD~N``, ``X^N``) to a commit oid."""
        with self._open(dir) as repo:
            return self._resolve(repo, ref).decode("ascii")

    def head(self, dir: str) -> str | None:
        """Return the HEAD commit oid, or None on an unborn branch."""
        with self._open(dir) as repo:
            sha = self._head(repo)
            return sha.decode("ascii") if sha else None

    def expand_ref(self, dir: str, name: str) -> str:
        """Return the full ref name *name* abbreviates."""
        with self._open(dir) as repo:
            raw = name.encode()
            for candidate in (raw, b"refs/" + raw, b"refs/tags/" + raw,
                              b"refs/heads/" + raw, b"refs/remotes/" + raw):
                if candidate.startswith(b"refs/") and self._read(repo, candidate) is not None:
                    return candidate.decode()
        raise RefNotFound(name)

    def current_branch(self, dir: str) -> str | None:
        with self._open(dir) as repo:
            return self._current_branch(repo)

    def list_branches(self, dir: str, remote: str | None = None) -> list[str]:
        base = b"refs/heads/" if remote is None else f"refs/remotes/{remote}/".encode()
        with self._open(dir) as repo:
            names = repo.refs.keys(base=base)
        return sorted(n.decode() for n in names if n != b"HEAD")

    def branch(self, dir: str, name: str, start: str = "HEAD", *, force: bool = False) -> str:
        """Create branch *name* at *start* and return its oid."""
        ref = _branch_ref(name)
        if not check_ref_format(ref):
            raise StoreError(f"'{name}' is not a valid branch name")
        with self._open(dir) as repo:
            if self._read(repo, ref) is not None and not force:
                raise AlreadyExists(name, "branch")
            sha = self._resolve(repo, start)
            repo.refs[ref] = sha
        logger.debug("branch %s -> %s", name, sha)
        return sha.decode("ascii")

    def delete_branch(self, dir: str, name: str) -> str:
        ref = _branch_ref(name)
        with self._open(dir) as repo:
            sha = self._read(repo, ref)
            if sha is None:
                raise RefNotFound(name, "branch")
            del repo.refs[ref]
        return sha.decode("ascii")

    def rename_branch(self, dir: str, old: str, new: str, *, force: bool = False) -> None:
        old_ref, new_ref = _branch_ref(old), _branch_ref(new)
        if not check_ref_format(new_ref):
            raise StoreError(f"'{new}' is not a valid branch name")
        with self._open(dir) as repo:
            sha = self._read(repo, old_ref)
            if sha is None:
                raise RefNotFound(old, "branch")
            if self._read(repo, new_ref) is not None and not force:
                raise AlreadyExists(new, "branch")
            repo.refs[new_ref] = sha
            was_current = self._current_branch(repo) == old
            del repo.refs[old_ref]
            if was_current:
                repo.refs.set_symbolic_ref(b"HEAD", new_ref)

    def write_ref(self, dir: str, ref: str, value: str, *,
                  force: bool = True, symbolic: bool = False) -> None:
        """Point *ref* at *value* (an oid, or a ref name when *symbolic*)."""
        with self._open(dir) as repo:
            key = ref.encode()
            if symbolic:
                repo.refs.set_symbolic_ref(key, value.encode())
                return
            if not force and self._read(repo, key) is not None:
                raise AlreadyExists(ref)
            if key == b"HEAD":
                self._detach(repo, value.encode())
                return
            repo.refs[key] = value.encode()

    @staticmethod
    def _detach(repo: Repo, sha: bytes) -> None:
        # Deleting HEAD first stops the write from following the symref.
        if repo.refs.read_ref(b"HEAD") is not None:
            del repo.refs[b"HEAD"]
        repo.refs[b"HEAD"] = sha

    def move_head(self, dir: str, oid: str) -> str | None:
        """Move the checked-out branch (or detached HEAD) to *oid*.

        Returns the previous oid.  Only the ref changes; index and
        working tree are left alone.
        """
        with self._open(dir) as repo:
            old = self._head(repo)
            if not repo.refs.set_if_equals(b"HEAD", old, oid.encode()):
                raise StoreError("HEAD changed while it was being updated")
        return old.decode("ascii") if old else None

    # -- history -------------------------------------------------------------

    @staticmethod
    def _is_descendent(repo: Repo, oid: bytes, ancestor: bytes) -> bool:
        if oid == ancestor:
            return False
        seen: set[bytes] = set()
        queue = [oid]
        while queue:
            sha = queue.pop()
            if sha in seen:
                continue
            seen.add(sha)
            try:
                commit = repo[sha]
            except KeyError:
                # shallow boundary
                continue
            for parent in commit.parents:
                if parent == ancestor:
                    return True
                queue.append(parent)
        return False

    def is_descendent(self, dir: str, oid: str, ancestor: str) -> bool:
        """True if *ancestor* is reachable from *oid* through parent links."""
        with self._open(dir) as repo:
            return self._is_descendent(repo, oid.encode(), ancestor.encode())

    def log(self, dir: str, ref: str = "HEAD", depth: int | None = None) -> list[CommitInfo]:
        """Return commits reachable from *ref*, newest first."""
        with self._open(dir) as repo:
            if ref == "HEAD" and self._head(repo) is None:
                return []
            sha = self._resolve(repo, ref)
            walker = repo.get_walker(include=[sha], max_entries=depth)
            return [_commit_info(entry.commit) for entry in walker]

    def commits_between(self, dir: str, tip: str, base: str) -> list[CommitInfo]:
        """Commits reachable from *tip* but not from *base*, newest first."""
        with self._open(dir) as repo:
            walker = repo.get_walker(include=[tip.encode()], exclude=[base.encode()])
            return [_commit_info(entry.commit) for entry in walker]

    def read_commit(self, dir: str, oid: str) -> CommitInfo:
        with self._open(dir) as repo:
            return _commit_info(repo[self._resolve(repo, oid)])

    # -- trees, index, working tree -----------------------------------------

    @staticmethod
    def _tree_entries(repo: Repo, commit_sha: bytes | None) -> Entries:
        if commit_sha is None:
            return {}
        tree = repo[commit_sha].tree
        return {
            e.path.decode(): (e.sha.decode("ascii"), e.mode)
            for e in iter_tree_contents(repo.object_store, tree)
        }

    @staticmethod
    def _index_entries(index) -> Entries:
        out: Entries = {}
        for path, entry in index.items():
            sha = getattr(entry, "sha", None)
            if sha is None:
                # unresolved merge conflict
                continue
            out[path.decode()] = (sha.decode("ascii"), entry.mode)
        return out

    def _worktree_entry(self, dir: str, path: str) -> tuple[str, int] | None:
        full = os.path.join(dir, path)
        if not self.fs.exists(full) or self.fs.is_dir(full):
            return None
        data, mode = read_worktree_file(self.fs, full)
        return blob_oid(data), mode

    def _worktree_entries(self, dir: str) -> Entries:
        out: Entries = {}
        for path in walk_worktree(self.fs, dir):
            try:
                entry = self._worktree_entry(dir, path)
            except OSError as exc:
                logger.warning("cannot read %s: %s", path, exc)
                continue
            if entry is not None:
                out[path] = entry
        return out

    def read_tree(self, dir: str, ref: str = "HEAD") -> Entries:
        """Return ``{path: (blob oid, mode)}`` for the tree of *ref*."""
        with self._open(dir) as repo:
            if ref == "HEAD" and self._head(repo) is None:
                return {}
            return self._tree_entries(repo, self._resolve(repo, ref))

    def read_index(self, dir: str) -> Entries:
        with self._open(dir) as repo:
            return self._index_entries(repo.open_index())

    def read_worktree(self, dir: str) -> Entries:
        """Return ``{path: (blob oid, mode)}`` for every working-tree file."""
        return self._worktree_entries(dir)

    def list_files(self, dir: str, ref: str | None = None) -> list[str]:
        """Paths in the index, or in the tree of *ref* when given."""
        if ref is None:
            return sorted(self.read_index(dir))
        return sorted(self.read_tree(dir, ref))

    def read_blob(self, dir: str, oid: str, path: str | None = None) -> bytes:
        """Return blob content.

        With *path*, *oid* names a commit and the blob at *path* in its
        tree is returned.
        """
        with self._open(dir) as repo:
            sha = oid.encode()
            if path is not None:
                commit = repo[self._peel(repo, sha)]
                try:
                    _mode, sha = tree_lookup_path(
                        repo.__getitem__, commit.tree, path.encode())
                except (KeyError, NotTreeError):
                    raise RefNotFound(path, "path") from None
            try:
                obj = repo[sha]
            except KeyError:
                raise RefNotFound(oid, "object") from None
            if not isinstance(obj, Blob):
                raise RefNotFound(oid, "blob")
            return obj.data

    def write_blob(self, dir: str, data: bytes) -> str:
        with self._open(dir) as repo:
            blob = Blob.from_string(data)
            repo.object_store.add_object(blob)
            return blob.id.decode("ascii")

    def status_matrix(self, dir: str, paths=None) -> list[StatusRow]:
        """Compare HEAD, index and working tree for every known path.

        Untracked paths matched by ``.gitignore`` are left out.
        """
        with self._open(dir) as repo:
            head = self._tree_entries(repo, self._head(repo))
            stage = self._index_entries(repo.open_index())
            ignore = IgnoreFilterManager.from_repo(repo)
        work = self._worktree_entries(dir)
        rows = []
        for path in sorted(set(head) | set(stage) | set(work)):
            if not _in_pathspec(path, paths):
                continue
            h, s, w = head.get(path), stage.get(path), work.get(path)
            if h is None and s is None and ignore.is_ignored(path):
                continue
            rows.append(StatusRow(
                path,
                h[0] if h else None,
                w[0] if w else None,
                s[0] if s else None,
            ))
        return rows

    def _make_entry(self, dir: str, path: str, sha: str, mode: int):
        """Index entry for *path*; real stat data only if the file matches *sha*."""
        current = self._worktree_entry(dir, path)
        if current is not None and current[0] == sha:
            return index_entry_from_stat(
                self.fs.stat(os.path.join(dir, path)), sha.encode(), mode=mode)
        return IndexEntry(
            ctime=(0, 0), mtime=(0, 0), dev=0, ino=0, mode=mode,
            uid=0, gid=0, size=0, sha=sha.encode(), flags=0,
        )

    def add(self, dir: str, paths, *, skip_unreadable: bool = False) -> list[str]:
        """Stage working-tree files.  Missing tracked files are staged as deletions.

        The index is written once, after every path has been processed.
        With *skip_unreadable*, files that cannot be read are logged and
        left out instead of failing the whole call; their paths are
        returned.
        """
        skipped = []
        with self._open(dir) as repo:
            index = repo.open_index()
            for path in paths:
                path = _normalize_path(path)
                key = path.encode()
                full = os.path.join(dir, path)
                if not self.fs.exists(full):
                    if key in index:
                        del index[key]
                        continue
                    raise RefNotFound(path, "pathspec")
                try:
                    data, mode = read_worktree_file(self.fs, full)
                except OSError as exc:
                    if not skip_unreadable:
                        raise
                    logger.warning("skipping %s: %s", path, exc)
                    skipped.append(path)
                    continue
                blob = Blob.from_string(data)
                repo.object_store.add_object(blob)
                index[key] = index_entry_from_stat(self.fs.stat(full), blob.id, mode=mode)
            index.write()
        return skipped

    def remove(self, dir: str, paths) -> None:
        """Drop *paths* from the index, leaving the working tree alone."""
        with self._open(dir) as repo:
            index = repo.open_index()
            for path in paths:
                key = _normalize_path(path).encode()
                if key in index:
                    del index[key]
            index.write()

    def stage(self, dir: str, entries: dict[str, tuple[str, int] | None]) -> None:
        """Write explicit ``(blob oid, mode)`` index entries; None removes the path."""
        with self._open(dir) as repo:
            index = repo.open_index()
            for path, entry in entries.items():
                key = _normalize_path(path).encode()
                if entry is None:
                    if key in index:
                        del index[key]
                else:
                    index[key] = self._make_entry(dir, path, *entry)
            index.write()

    def reset_index(self, dir: str, paths, ref: str = "HEAD") -> list[str]:
        """Set the index entries of *paths* back to their state in *ref*.

        Returns the paths whose index entry changed.
        """
        with self._open(dir) as repo:
            if ref == "HEAD" and self._head(repo) is None:
                source: Entries = {}
            else:
                source = self._tree_entries(repo, self._resolve(repo, ref))
            index = repo.open_index()
            current = self._index_entries(index)
            changed = []
            for path in paths:
                path = _normalize_path(path)
                matched = [p for p in set(source) | set(current) if _in_pathspec(p, [path])]
                if not matched:
                    raise RefNotFound(path, "pathspec")
                for p in sorted(matched):
                    if p in source:
                        if current.get(p) != source[p]:
                            index[p.encode()] = self._make_entry(dir, p, *source[p])
                            changed.append(p)
                    elif p in current:
                        del index[p.encode()]
                        changed.append(p)
            index.write()
            return changed

    # -- commits -------------------------------------------------------------

    def identity(self, dir: str | None = None) -> str | None:
        """``Name <email>`` from repository config, then global config."""
        scopes = [dir, None] if dir is not None else [None]
        name = email = None
        for scope in scopes:
            name = name or self.get_config(scope, "user.name")
            email = email or self.get_config(scope, "user.email")
        if name and email:
            return f"{name} <{email}>"
        return None

    def commit(self, dir: str, message: str, author: str | None = None, *,
               amend: bool = False) -> str:
        """Commit the index on top of HEAD and advance the checked-out ref."""
        author = author or self.identity(dir) or DEFAULT_AUTHOR
        with self._open(dir) as repo:
            index = repo.open_index()
            tree = index.commit(repo.object_store)
            head = self._head(repo)
            if amend:
                if head is None:
                    raise RefNotFound("HEAD", "commit")
                parents = list(repo[head].parents)
            else:
                parents = [head] if head is not None else []

            c = Commit()
            c.tree = tree
            c.parents = parents
            c.author = c.committer = author.encode()
            now = int(time.time())
            c.author_time = c.commit_time = now
            c.author_timezone = c.commit_timezone = 0
            msg = message.encode()
            if not msg.endswith(b"\n"):
                msg += b"\n"
            c.message = msg
            c.encoding = b"UTF-8"
            repo.object_store.add_object(c)
            if not repo.refs.set_if_equals(b"HEAD", head, c.id):
                raise StoreError("HEAD changed while committing")
        logger.debug("committed %s on %s", c.id[:7], dir)
        return c.id.decode("ascii")

    # -- checkout ------------------------------------------------------------

    def _conflicts(self, dir: str, old: Entries, new: Entries, staged: Entries) -> list[str]:
        conflicts = []
        for path in sorted(set(old) | set(new)):
            if old.get(path) == new.get(path):
                continue
            work = self._worktree_entry(dir, path)
            if path not in old and path not in staged:
                if work is not None and work != new.get(path):
                    conflicts.append(path)
                continue
            expected = staged.get(path)
            if expected != old.get(path) or work != expected:
                if work != new.get(path):
                    conflicts.append(path)
        return conflicts

    def _write_file(self, repo: Repo, dir: str, path: str, sha: str, mode: int) -> None:
        self.fs.write_file(os.path.join(dir, path), repo[sha.encode()].data, mode)

    def _delete_file(self, dir: str, path: str) -> None:
        full = os.path.join(dir, path)
        if self.fs.exists(full):
            self.fs.unlink(full)

    def checkout(self, dir: str, ref: str, *, force: bool = False,
                 no_checkout: bool = False, no_update_head: bool = False,
                 paths=None) -> str:
        """Switch to *ref*, or restore *paths* from it.

        Without *force*, local changes to files that differ between HEAD
        and *ref* raise :class:`LocalChangesError` before anything is
        touched; unrelated local changes are carried over.  With
        *no_checkout* only the index is rewritten (mixed reset).
        """
        with self._open(dir) as repo:
            target = self._resolve(repo, ref)
            new = self._tree_entries(repo, target)
            index = repo.open_index()

            if paths is not None:
                for path in paths:
                    path = _normalize_path(path)
                    matched = sorted(p for p in new if _in_pathspec(p, [path]))
                    if not matched:
                        raise RefNotFound(path, "pathspec")
                    for p in matched:
                        self._write_file(repo, dir, p, *new[p])
                        index[p.encode()] = self._make_entry(dir, p, *new[p])
                index.write()
                return target.decode("ascii")

            old = self._tree_entries(repo, self._head(repo))
            staged = self._index_entries(index)
            if not force and not no_checkout:
                conflicts = self._conflicts(dir, old, new, staged)
                if conflicts:
                    raise LocalChangesError(conflicts)

            if force or no_checkout:
                if not no_checkout:
                    for path in sorted(set(old) | set(new) | set(staged)):
                        want = new.get(path)
                        have = self._worktree_entry(dir, path)
                        if want is None:
                            if have is not None:
                                self._delete_file(dir, path)
                        elif have != want:
                            self._write_file(repo, dir, path, *want)
                index.clear()
                for path, (sha, mode) in new.items():
                    index[path.encode()] = self._make_entry(dir, path, sha, mode)
            else:
                for path in sorted(set(old) | set(new)):
                    if old.get(path) == new.get(path):
                        continue
                    want = new.get(path)
                    if want is None:
                        self._delete_file(dir, path)
                        if path.encode() in index:
                            del index[path.encode()]
                    else:
                        if self._worktree_entry(dir, path) != want:
                            self._write_file(repo, dir, path, *want)
                        index[path.encode()] = self._make_entry(dir, path, *want)
            index.write()

            if not no_update_head:
                branch_ref = _branch_ref(ref) if not ref.startswith("refs/") else ref.encode()
                if branch_ref.startswith(b"refs/heads/") and self._read(repo, branch_ref) is not None:
                    repo.refs.set_symbolic_ref(b"HEAD", branch_ref)
                else:
                    self._detach(repo, target)
        logger.debug("checked out %s in %s", ref, dir)
        return target.decode("ascii")

    # -- tags ----------------------------------------------------------------

    def list_tags(self, dir: str) -> list[str]:
        with self._open(dir) as repo:
            return sorted(n.decode() for n in repo.refs.keys(base=b"refs/tags/"))

    def tag(self, dir: str, name: str, ref: str = "HEAD", *, message: str | None = None,
            tagger: str | None = None, force: bool = False) -> str:
        """Create a lightweight tag, or an annotated one when *message* is given."""
        key = b"refs/tags/" + name.encode()
        if not check_ref_format(key):
            raise StoreError(f"'{name}' is not a valid tag name")
        tagger = tagger or self.identity(dir) or DEFAULT_AUTHOR
        with self._open(dir) as repo:
            if self._read(repo, key) is not None and not force:
                raise AlreadyExists(name, "tag")
            target = self._resolve(repo, ref)
            if message is None:
                repo.refs[key] = target
                return target.decode("ascii")
            tag = Tag()
            tag.name = name.encode()
            tag.object = (Commit, target)
            tag.tagger = tagger.encode()
            tag.tag_time = int(time.time())
            tag.tag_timezone = 0
            msg = message.encode()
            if not msg.endswith(b"\n"):
                msg += b"\n"
            tag.message = msg
            repo.object_store.add_object(tag)
            repo.refs[key] = tag.id
            return tag.id.decode("ascii")

    def delete_tag(self, dir: str, name: str) -> str:
        key = b"refs/tags/" + name.encode()
        with self._open(dir) as repo:
            sha = self._read(repo, key)
            if sha is None:
                raise RefNotFound(name, "tag")
            del repo.refs[key]
        return sha.decode("ascii")

    # -- config --------------------------------------------------------------

    def _load_config(self, dir: str | None) -> ConfigFile:
        if dir is not None:
            with self._open(dir) as repo:
                return repo.get_config()
        path = self.global_config_path
        if path is not None and self.fs.exists(path):
            return ConfigFile.from_path(path)
        config = ConfigFile()
        config.path = path
        return config

    def _save_config(self, config: ConfigFile) -> None:
        if config.path is None:
            raise StoreError("no global configuration file is set")
        parent = os.path.dirname(config.path)
        if parent and not self.fs.exists(parent):
            self.fs.mkdir(parent, parents=True)
        config.write_to_path()

    def get_config(self, dir: str | None, key: str) -> str | None:
        """Read *key* from the repository config (or the global one when *dir* is None)."""
        section, name = _split_key(key)
        try:
            value = self._load_config(dir).get(section, name)
        except KeyError:
            return None
        return value.decode() if isinstance(value, bytes) else value

    def set_config(self, dir: str | None, key: str, value: str | None) -> None:
        """Set *key*, or remove it when *value* is None."""
        section, name = _split_key(key)
        config = self._load_config(dir)
        if value is None:
            try:
                del config[section][name]
            except KeyError:
                raise RefNotFound(key, "key") from None
        else:
            config.set(section, name, value.encode())
        self._save_config(config)

    # -- remotes -------------------------------------------------------------

    def list_remotes(self, dir: str) -> list[Remote]:
        config = self._load_config(dir)
        remotes = []
        for section in config.sections():
            if len(section) != 2 or section[0] != b"remote":
                continue
            try:
                url = config.get(section, b"url").decode()
            except KeyError:
                continue
            try:
                fetch = config.get(section, b"fetch").decode()
            except KeyError:
                fetch = None
            remotes.append(Remote(section[1].decode(), url, fetch))
        return sorted(remotes, key=lambda r: r.name)

    def add_remote(self, dir: str, name: str, url: str, *, force: bool = False) -> None:
        section = (b"remote", name.encode())
        config = self._load_config(dir)
        if config.has_section(section) and not force:
            raise AlreadyExists(name, "remote")
        config.set(section, b"url", url.encode())
        config.set(section, b"fetch", DEFAULT_FETCH.format(remote=name).encode())
        self._save_config(config)

    def set_remote_url(self, dir: str, name: str, url: str) -> None:
        section = (b"remote", name.encode())
        config = self._load_config(dir)
        if not config.has_section(section):
            raise RefNotFound(name, "remote")
        config.set(section, b"url", url.encode())
        self._save_config(config)

    def delete_remote(self, dir: str, name: str) -> None:
        section = (b"remote", name.encode())
        config = self._load_config(dir)
        if not config.has_section(section):
            raise RefNotFound(name, "remote")
        del config[section]
        self._save_config(config)
        prefix = f"refs/remotes/{name}/".encode()
        with self._open(dir) as repo:
            for ref in list(repo.refs.keys(base=prefix)):
                del repo.refs[prefix + ref]

    def set_upstream(self, dir: str, branch: str, remote: str) -> None:
        config = self._load_config(dir)
        section = (b"branch", branch.encode())
        config.set(section, b"remote", remote.encode())
        config.set(section, b"merge", _branch_ref(branch))
        self._save_config(config)

    def remote_url(self, dir: str, remote: str) -> tuple[str | None, str]:
        """Return ``(remote name or None, url)`` for a remote name or a bare URL."""
        config = self._load_config(dir)
        try:
            url = config.get((b"remote", remote.encode()), b"url")
        except KeyError:
            if _is_url(remote):
                return None, remote
            raise RepositoryNotFound(remote) from None
        return remote, url.decode()

    # -- network -------------------------------------------------------------

    @staticmethod
    def _client(url: str, on_auth: OnAuth | None):
        kwargs = {}
        if on_auth is not None and url.startswith(("http://", "https://")):
            cred = on_auth(url)
            if cred is not None:
                kwargs = {"username": cred.username or None, "password": cred.password}
        try:
            return get_transport_and_path(url, **kwargs)
        except ValueError as exc:
            raise NetworkFailure(f"unsupported transport: {url}") from exc

    def fetch(self, dir: str, remote: str = "origin", *, ref: str | None = None,
              single_branch: bool = False, depth: int | None = None,
              on_auth: OnAuth | None = None) -> FetchResult:
        """Download objects from *remote* and update its tracking refs."""
        name, url = self.remote_url(dir, remote)
        client, path = self._client(url, on_auth)
        logger.debug("fetching %s from %s", ref or "all branches", url)
        with self._open(dir) as repo:
            with _translate_errors(url):
                result = client.fetch(path, repo, depth=depth)
            refs = {
                k.decode(): v.decode("ascii")
                for k, v in result.refs.items()
                if v is not None and v != ZERO_SHA and not k.endswith(b"^{}")
            }
            symrefs = getattr(result, "symrefs", None) or {}
            head = None
            head_target = symrefs.get(b"HEAD")
            if head_target and head_target.startswith(b"refs/heads/"):
                head = head_target[len(b"refs/heads/"):].decode()
            elif "HEAD" in refs:
                for full, sha in sorted(refs.items()):
                    if full.startswith("refs/heads/") and sha == refs["HEAD"]:
                        head = full[len("refs/heads/"):]
                        break

            fetch_result = FetchResult(url=url, remote=name, refs=refs, head=head)
            for full, sha in sorted(refs.items()):
                if full.startswith("refs/tags/"):
                    if self._read(repo, full.encode()) is None:
                        repo.refs[full.encode()] = sha.encode()
                    continue
                if name is None or not full.startswith("refs/heads/"):
                    continue
                branch = full[len("refs/heads/"):]
                if single_branch and ref and branch != ref:
                    continue
                local = f"refs/remotes/{name}/{branch}"
                old = self._read(repo, local.encode())
                if old != sha.encode():
                    repo.refs[local.encode()] = sha.encode()
                fetch_result.updates.append(RefUpdate(
                    branch, local, old.decode("ascii") if old else None, sha))
            # an empty remote still advertises HEAD; only link it to a tracking ref we wrote
            if name is not None and any(u.branch == head for u in fetch_result.updates):
                repo.refs.set_symbolic_ref(
                    f"refs/remotes/{name}/HEAD".encode(),
                    f"refs/remotes/{name}/{head}".encode())
        return fetch_result

    def pull(self, dir: str, remote: str = "origin", branch: str | None = None, *,
             fast_forward_only: bool = False, on_auth: OnAuth | None = None) -> PullResult:
        """Fetch *branch* from *remote* and fast-forward the local branch to it.

        Diverged histories raise :class:`FastForwardUnsupported` when
        *fast_forward_only* is set and :class:`MergeUnsupported` otherwise.
        """
        branch = branch or self.current_branch(dir)
        if branch is None:
            raise StoreError("You are not currently on a branch.")
        fetched = self.fetch(dir, remote, ref=branch, on_auth=on_auth)
        theirs = fetched.refs.get(f"refs/heads/{branch}")
        if theirs is None:
            raise RefNotFound(branch, "remote ref")
        with self._open(dir) as repo:
            sha = self._read(repo, _branch_ref(branch))
            ours = sha.decode("ascii") if sha else None

        result = PullResult(fetched.url, remote, branch, ours, theirs)
        if ours == theirs or (ours is not None and self.is_descendent(dir, ours, theirs)):
            result.up_to_date = True
            return result
        if ours is not None and not self.is_descendent(dir, theirs, ours):
            if fast_forward_only:
                raise FastForwardUnsupported("Not possible to fast-forward, aborting.")
            raise MergeUnsupported(
                f"Local and remote '{branch}' have diverged and cannot be merged automatically.")
        self._fast_forward(dir, branch, ours, theirs)
        return result

    def _fast_forward(self, dir: str, branch: str, ours: str | None, theirs: str) -> None:
        if branch == self.current_branch(dir):
            self.checkout(dir, theirs, no_update_head=True)
        with self._open(dir) as repo:
            old = ours.encode() if ours else None
            if not repo.refs.set_if_equals(_branch_ref(branch), old, theirs.encode()):
                raise StoreError(f"branch '{branch}' changed during pull")
        logger.debug("fast-forwarded %s to %s", branch, theirs[:7])

    def push(self, dir: str, remote: str = "origin", ref: str | None = None,
             remote_ref: str | None = None, *, force: bool = False,
             on_auth: OnAuth | None = None, signer=None) -> PushResult:
        """Push local branch *ref* to *remote_ref* on *remote*.

        A remote that already has the local oid yields a result with
        ``up_to_date`` set rather than an error.
        """
        name, url = self.remote_url(dir, remote)
        scheme = url.split("://", 1)[0].lower() if "://" in url else ""
        if scheme in SIGNED_SCHEMES:
            if signer is None:
                raise SignerRequired(
                    f"Pushing to {scheme}:// remotes requires a signer.")
            raise NetworkFailure(f"unsupported transport: {scheme}")

        with self._open(dir) as repo:
            ref = ref or self._current_branch(repo)
            if ref is None:
                raise StoreError("You are not currently on a branch.")
            remote_ref = remote_ref or ref
            src, dst = _branch_ref(ref), _branch_ref(remote_ref)
            local = self._read(repo, src)
            if local is None:
                raise RefNotFound(ref, "branch")
            state: dict[str, bytes | None] = {}

            def update_refs(refs):
                old = refs.get(dst)
                if old == ZERO_SHA:
                    old = None
                state["old"] = old
                if old == local:
                    return {}
                if old is not None and not force:
                    if old not in repo.object_store or not self._is_descendent(repo, local, old):
                        raise PushRejected(
                            f"Updates were rejected because the remote contains work "
                            f"that you do not have locally ({remote_ref}).")
                return {dst: local}

            def gen_pack(have, want, *, ofs_delta=False, progress=None):
                return repo.object_store.generate_pack_data(
                    have, want, ofs_delta=ofs_delta, progress=progress,
                )

            client, path = self._client(url, on_auth)
            logger.debug("pushing %s to %s %s", ref, url, remote_ref)
            with _translate_errors(url):
                result = client.send_pack(path, update_refs, gen_pack)

            status = getattr(result, "ref_status", None) or {}
            error = status.get(dst)
            if error:
                if "fast-forward" in error or "fetch first" in error:
                    raise PushRejected(f"{remote_ref}: {error}")
                raise StoreError(f"{remote_ref}: {error}")

            if name is not None:
                repo.refs[f"refs/remotes/{name}/{remote_ref}".encode()] = local
            old = state.get("old")
            return PushResult(
                url=url, remote=name, ref=ref, remote_ref=remote_ref,
                old=old.decode("ascii") if old else None,
                new=local.decode("ascii"),
                up_to_date=old == local,
            )

    def clone(self, dir: str, url: str, *, remote: str = "origin",
              branch: str | None = None, single_branch: bool = False,
              depth: int | None = None, on_auth: OnAuth | None = None) -> CloneResult:
        """Clone *url* into *dir* and check out its default (or *branch*) branch.

        *dir* must be missing or empty; a failed clone removes what it created.
        """
        existed = self.fs.exists(dir)
        if existed and (not self.fs.is_dir(dir) or self.fs.readdir(dir)):
            raise AlreadyExists(dir, "destination path")
        try:
            self.init(dir, default_branch=branch or "main")
            self.add_remote(dir, remote, url)
            fetched = self.fetch(dir, remote, ref=branch, single_branch=single_branch,
                                 depth=depth, on_auth=on_auth)
            if branch is not None and f"refs/heads/{branch}" not in fetched.refs:
                raise RefNotFound(branch, "remote branch")
            target = branch or fetched.head
            if target is None:
                heads = sorted(r for r in fetched.refs if r.startswith("refs/heads/"))
                target = heads[0][len("refs/heads/"):] if heads else None
            tip = fetched.refs.get(f"refs/heads/{target}") if target else None
            if target is not None and tip is not None:
                self.write_ref(dir, f"refs/heads/{target}", tip)
                self.write_ref(dir, "HEAD", f"refs/heads/{target}", symbolic=True)
                self.set_upstream(dir, target, remote)
                self.checkout(dir, target, force=True)
        except Exception:
            leftover = os.path.join(dir, CONTROL_DIR) if existed else dir
            if self.fs.exists(leftover):
                self.fs.rmtree(leftover)
            raise
        logger.debug("cloned %s into %s", url, dir)
        return CloneResult(dir=dir, url=url, branch=target, head=tip)
