"""Exceptions for gitshell."""

from __future__ import annotations

import click


class GitShellError(Exception):
    """Base class for every error raised by gitshell."""


class NotARepository(GitShellError):
    """Raised when a directory has no ``.git`` control directory."""

    def __init__(self, path: str):
        super().__init__(f"not a git repository: {path}")
        self.path = path


# ---------------------------------------------------------------------------
# Object-store errors
# ---------------------------------------------------------------------------

class StoreError(GitShellError):
    """A storage operation failed."""


class RefNotFound(StoreError):
    """A revision, branch, tag, remote or path could not be resolved."""

    def __init__(self, ref: str, kind: str = "ref"):
        super().__init__(f"{kind} not found: {ref}")
        self.ref = ref
        self.kind = kind


class AlreadyExists(StoreError):
    """A branch, tag, remote or destination already exists."""

    def __init__(self, name: str, kind: str = "ref"):
        super().__init__(f"{kind} already exists: {name}")
        self.name = name
        self.kind = kind


class LocalChangesError(StoreError):
    """Uncommitted changes would be overwritten by the operation."""

    def __init__(self, paths: list[str]):
        super().__init__(
            "local changes would be overwritten: " + ", ".join(paths)
        )
        self.paths = list(paths)


class SyncError(StoreError):
    """Base class for the closed set of network and history failures."""


class AuthenticationFailed(SyncError):
    """The remote rejected the supplied credentials (or none were given)."""


class PushRejected(SyncError):
    """The remote branch has commits the local branch does not contain."""


class FastForwardUnsupported(SyncError):
    """A fast-forward-only update was requested on diverged history."""


class MergeUnsupported(SyncError):
    """Local and remote histories diverged and would need a merge."""


class NetworkFailure(SyncError):
    """The remote could not be reached."""


class HttpStatus(SyncError):
    """The remote answered with an unexpected HTTP status."""

    def __init__(self, code: int, text: str = ""):
        super().__init__(f"HTTP Error: {code} {text}".rstrip())
        self.code = code
        self.text = text


class SignerRequired(SyncError):
    """Pushing to a signed remote requires a signer."""


class RepositoryNotFound(SyncError):
    """The remote name or URL does not point at a repository."""

    def __init__(self, location: str):
        super().__init__(f"repository not found: {location}")
        self.location = location


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------

class RollbackError(GitShellError):
    """Working-tree reconciliation failed for one or more files.

    No revert commit is created when this is raised.  ``failures`` maps
    each path to the error that stopped it.
    """

    def __init__(self, failures: dict[str, Exception]):
        names = ", ".join(sorted(failures))
        super().__init__(f"failed to restore {len(failures)} file(s): {names}")
        self.failures = dict(failures)


class CommandError(click.ClickException):
    """A subcommand failed; ``message`` is the full ``fatal:``/``error:`` text."""

    exit_code = 1
