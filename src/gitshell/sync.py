"""Classify push/pull failures and run the remediation a caller picks.

:func:`classify_sync_error` maps any failure from a sync step onto a
:class:`SyncClassification`: a fixed category, a user-facing message and
the remediations that make sense for it.  Nothing is retried
automatically; :class:`SyncSession` only runs a remediation when
:meth:`SyncSession.apply` is called.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from .exceptions import (
    AuthenticationFailed,
    FastForwardUnsupported,
    HttpStatus,
    MergeUnsupported,
    NetworkFailure,
    PushRejected,
    RefNotFound,
    RepositoryNotFound,
    SignerRequired,
    StoreError,
    SyncError,
)
from .status import StatusCache
from .store import ObjectStore, PullResult, PushResult, translate_transport_error

logger = logging.getLogger(__name__)


class ConflictKind(enum.Enum):
    MERGE_UNSUPPORTED = "merge-unsupported"
    FAST_FORWARD = "fast-forward"
    PUSH_REJECTED = "push-rejected"
    HTTP = "http"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


class Remediation(enum.Enum):
    FORCE_PULL = "force-pull"
    FORCE_PUSH = "force-push"
    PULL_THEN_RETRY = "pull-then-retry"
    DISMISS = "dismiss"


@dataclass(frozen=True)
class SyncClassification:
    kind: ConflictKind
    message: str
    actions: tuple[Remediation, ...] = ()
    code: int | None = None

    @property
    def recoverable(self) -> bool:
        return any(a is not Remediation.DISMISS for a in self.actions)


MERGE_MESSAGE = (
    "Cannot merge changes automatically. "
    "Your local changes conflict with the remote repository."
)
FAST_FORWARD_MESSAGE = (
    "Cannot fast-forward. "
    "The remote has changes that conflict with your local commits."
)
REJECTED_MESSAGE = (
    "Push rejected. The remote repository has changes you don't have locally. "
    "Try pulling first."
)
UNAUTHORIZED_MESSAGE = "Authentication failed. Please check your credentials."
FORBIDDEN_MESSAGE = (
    "Access forbidden. You do not have permission to access this repository."
)

_DIVERGED = (Remediation.FORCE_PULL, Remediation.FORCE_PUSH, Remediation.DISMISS)


def _http(code: int, text: str) -> SyncClassification:
    if code == 401:
        message = UNAUTHORIZED_MESSAGE
    elif code == 403:
        message = FORBIDDEN_MESSAGE
    else:
        message = f"HTTP Error: {code} {text}".rstrip()
    return SyncClassification(ConflictKind.HTTP, message, (Remediation.DISMISS,), code)


def classify_sync_error(exc: BaseException) -> SyncClassification:
    """Return the category, message and remediations for a sync failure."""
    if not isinstance(exc, SyncError):
        exc = translate_transport_error(exc) or exc

    if isinstance(exc, MergeUnsupported):
        return SyncClassification(ConflictKind.MERGE_UNSUPPORTED, MERGE_MESSAGE, _DIVERGED)
    if isinstance(exc, FastForwardUnsupported):
        return SyncClassification(ConflictKind.FAST_FORWARD, FAST_FORWARD_MESSAGE, _DIVERGED)
    if isinstance(exc, PushRejected):
        return SyncClassification(
            ConflictKind.PUSH_REJECTED, REJECTED_MESSAGE,
            (Remediation.PULL_THEN_RETRY, Remediation.FORCE_PUSH, Remediation.DISMISS),
        )
    if isinstance(exc, AuthenticationFailed):
        return _http(401, "Unauthorized")
    if isinstance(exc, HttpStatus):
        return _http(exc.code, exc.text)
    if isinstance(exc, (NetworkFailure, RepositoryNotFound, SignerRequired)):
        return SyncClassification(ConflictKind.TRANSPORT, str(exc), (Remediation.DISMISS,))
    return SyncClassification(ConflictKind.UNKNOWN, str(exc) or type(exc).__name__,
                               (Remediation.DISMISS,))


class SyncSession:
    """Pull/push of the checked-out branch with caller-driven recovery.

    ``last_failure`` holds the classification of the most recent failed
    :meth:`sync`.
    """

    def __init__(self, store: ObjectStore, dir: str, remote: str = "origin", *,
                 on_auth=None, signer=None, cache: StatusCache | None = None):
        self.store = store
        self.dir = dir
        self.remote = remote
        self.on_auth = on_auth
        self.signer = signer
        self.cache = cache
        self.last_failure: SyncClassification | None = None

    def _branch(self) -> str:
        branch = self.store.current_branch(self.dir)
        if branch is None:
            raise StoreError("You are not currently on a branch.")
        return branch

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.dir)

    def pull(self) -> PullResult:
        try:
            return self.store.pull(self.dir, self.remote, self._branch(),
                                   on_auth=self.on_auth)
        finally:
            self._invalidate()

    def push(self, *, force: bool = False) -> PushResult:
        return self.store.push(self.dir, self.remote, self._branch(), force=force,
                               on_auth=self.on_auth, signer=self.signer)

    def force_pull(self) -> str:
        """Move the branch, index and working tree to the remote tip."""
        branch = self._branch()
        try:
            fetched = self.store.fetch(self.dir, self.remote, ref=branch,
                                       on_auth=self.on_auth)
            theirs = fetched.refs.get(f"refs/heads/{branch}")
            if theirs is None:
                raise StoreError(f"couldn't find remote ref {branch}")
            self.store.checkout(self.dir, theirs, force=True, no_update_head=True)
            self.store.write_ref(self.dir, f"refs/heads/{branch}", theirs)
            logger.info("force-pulled %s to %s", branch, theirs[:7])
            return theirs
        finally:
            self._invalidate()

    def force_push(self) -> PushResult:
        return self.push(force=True)

    def sync(self) -> SyncClassification | None:
        """Pull then push; returns the failure classification, or None on success."""
        try:
            try:
                self.pull()
            except RefNotFound as exc:
                # first push of a branch the remote does not have yet
                if exc.kind != "remote ref":
                    raise
            self.push()
        except (StoreError, OSError) as exc:
            self.last_failure = classify_sync_error(exc)
            logger.info("sync of %s failed: %s", self.dir, self.last_failure.message)
            return self.last_failure
        self.last_failure = None
        return None

    def apply(self, remediation: Remediation):
        """Run *remediation* chosen by the caller and return its result."""
        logger.debug("applying %s to %s", remediation.value, self.dir)
        if remediation is Remediation.FORCE_PULL:
            return self.force_pull()
        if remediation is Remediation.FORCE_PUSH:
            return self.force_push()
        if remediation is Remediation.PULL_THEN_RETRY:
            self.pull()
            return self.push()
        self.last_failure = None
        return None
