"""Tests for sync-error classification and the sync session."""

import pytest
from dulwich.client import HTTPUnauthorized
from dulwich.errors import GitProtocolError, HangupException

from gitshell.exceptions import (
    AuthenticationFailed,
    FastForwardUnsupported,
    HttpStatus,
    MergeUnsupported,
    NetworkFailure,
    PushRejected,
    RefNotFound,
    RepositoryNotFound,
)
from gitshell.status import StatusCache
from gitshell.sync import (
    FAST_FORWARD_MESSAGE,
    FORBIDDEN_MESSAGE,
    MERGE_MESSAGE,
    REJECTED_MESSAGE,
    UNAUTHORIZED_MESSAGE,
    ConflictKind,
    Remediation,
    SyncSession,
    classify_sync_error,
)

FORCE = (Remediation.FORCE_PULL, Remediation.FORCE_PUSH, Remediation.DISMISS)


class TestClassify:
    @pytest.mark.parametrize("exc, kind, message, actions", [
        (MergeUnsupported("diverged"), ConflictKind.MERGE_UNSUPPORTED, MERGE_MESSAGE, FORCE),
        (FastForwardUnsupported("no ff"), ConflictKind.FAST_FORWARD,
         FAST_FORWARD_MESSAGE, FORCE),
        (PushRejected("behind"), ConflictKind.PUSH_REJECTED, REJECTED_MESSAGE,
         (Remediation.PULL_THEN_RETRY, Remediation.FORCE_PUSH, Remediation.DISMISS)),
        (AuthenticationFailed("no"), ConflictKind.HTTP, UNAUTHORIZED_MESSAGE,
         (Remediation.DISMISS,)),
    ])
    def test_variants(self, exc, kind, message, actions):
        result = classify_sync_error(exc)
        assert result.kind is kind
        assert result.message == message
        assert result.actions == actions

    @pytest.mark.parametrize("code, message", [
        (401, UNAUTHORIZED_MESSAGE),
        (403, FORBIDDEN_MESSAGE),
        (500, "HTTP Error: 500 Internal Server Error"),
    ])
    def test_http_codes(self, code, message):
        text = {401: "Unauthorized", 403: "Forbidden", 500: "Internal Server Error"}[code]
        result = classify_sync_error(HttpStatus(code, text))
        assert result.kind is ConflictKind.HTTP
        assert result.code == code
        assert result.message == message
        assert not result.recoverable

    def test_diverged_is_recoverable(self):
        assert classify_sync_error(MergeUnsupported("x")).recoverable

    def test_transport(self):
        result = classify_sync_error(NetworkFailure("down"))
        assert result.kind is ConflictKind.TRANSPORT
        assert result.message == "down"
        assert classify_sync_error(RepositoryNotFound("/x")).kind is ConflictKind.TRANSPORT

    def test_unknown(self):
        result = classify_sync_error(ValueError("odd"))
        assert result.kind is ConflictKind.UNKNOWN
        assert result.message == "odd"
        assert result.actions == (Remediation.DISMISS,)

    def test_raw_dulwich_errors_are_translated(self):
        assert classify_sync_error(HTTPUnauthorized(None, "https://h/r.git")).code == 401
        assert classify_sync_error(HangupException()).kind is ConflictKind.TRANSPORT
        forbidden = GitProtocolError("unexpected http resp 403 for https://h/r.git")
        assert classify_sync_error(forbidden).message == FORBIDDEN_MESSAGE


class StubStore:
    """Just enough of ObjectStore for SyncSession, failing the way it is told."""

    def __init__(self, pull_error=None, push_error=None):
        self.pull_error = pull_error
        self.push_error = push_error
        self.calls = []

    def current_branch(self, dir):
        return "main"

    def pull(self, dir, remote, branch, on_auth=None):
        self.calls.append("pull")
        if self.pull_error is not None:
            raise self.pull_error

    def push(self, dir, remote, branch, force=False, on_auth=None, signer=None):
        self.calls.append("push --force" if force else "push")
        if self.push_error is not None:
            raise self.push_error


class TestSyncSession:
    def test_success(self):
        store = StubStore()
        session = SyncSession(store, "/repo")
        assert session.sync() is None
        assert store.calls == ["pull", "push"]
        assert session.last_failure is None

    def test_pull_failure_stops_before_push(self):
        store = StubStore(pull_error=MergeUnsupported("diverged"))
        session = SyncSession(store, "/repo")
        failure = session.sync()
        assert failure.kind is ConflictKind.MERGE_UNSUPPORTED
        assert session.last_failure is failure
        assert store.calls == ["pull"]

    def test_missing_remote_branch_still_pushes(self):
        store = StubStore(pull_error=RefNotFound("main", "remote ref"))
        assert SyncSession(store, "/repo").sync() is None
        assert store.calls == ["pull", "push"]

    def test_push_rejected(self):
        store = StubStore(push_error=PushRejected("behind"))
        failure = SyncSession(store, "/repo").sync()
        assert failure.kind is ConflictKind.PUSH_REJECTED

    def test_remediation_is_never_automatic(self):
        store = StubStore(push_error=PushRejected("behind"))
        session = SyncSession(store, "/repo")
        session.sync()
        assert store.calls == ["pull", "push"]

    def test_apply_force_push(self):
        store = StubStore()
        SyncSession(store, "/repo").apply(Remediation.FORCE_PUSH)
        assert store.calls == ["push --force"]

    def test_apply_pull_then_retry(self):
        store = StubStore()
        SyncSession(store, "/repo").apply(Remediation.PULL_THEN_RETRY)
        assert store.calls == ["pull", "push"]

    def test_dismiss_clears_failure(self):
        store = StubStore(pull_error=FastForwardUnsupported("x"))
        session = SyncSession(store, "/repo")
        session.sync()
        assert session.apply(Remediation.DISMISS) is None
        assert session.last_failure is None
        assert store.calls == ["pull"]

    def test_pull_invalidates_cache(self):
        cache = StatusCache()
        cache.update("/repo", [])
        session = SyncSession(StubStore(pull_error=MergeUnsupported("x")), "/repo", cache=cache)
        session.sync()
        assert cache.get("/repo") is None


class TestSyncAgainstRemote:
    def diverge(self, sh, work, other):
        (work / "ours.txt").write_text("ours\n")
        sh("add", "ours.txt")
        sh("commit", "-m", "ours")
        other_dir = other.ctx.cwd
        with open(f"{other_dir}/theirs.txt", "w") as f:
            f.write("theirs\n")
        assert other.execute(["add", "theirs.txt"]).exit_code == 0
        assert other.execute(["commit", "-m", "theirs"]).exit_code == 0
        assert other.execute(["push"]).exit_code == 0

    def test_sync_pushes_local_commits(self, pushed, sh, store, work, bare_remote):
        (work / "a.txt").write_text("a\n")
        sh("add", "a.txt")
        sh("commit", "-m", "a")
        assert SyncSession(store, str(work)).sync() is None
        assert store.resolve_ref(str(bare_remote), "main") == store.head(str(work))

    def test_sync_to_empty_remote_pushes(self, repo, sh, store, work, bare_remote):
        sh("remote", "add", "origin", str(bare_remote))
        session = SyncSession(store, str(work))
        assert session.sync() is None, session.last_failure
        assert store.resolve_ref(str(bare_remote), "main") == store.head(str(work))

    def test_diverged_then_force_pull(self, pushed, sh, store, work, other, bare_remote):
        self.diverge(sh, work, other)
        session = SyncSession(store, str(work))
        failure = session.sync()
        assert failure.kind is ConflictKind.MERGE_UNSUPPORTED
        assert Remediation.FORCE_PULL in failure.actions

        theirs = session.apply(Remediation.FORCE_PULL)
        assert theirs == store.resolve_ref(str(bare_remote), "main")
        assert store.head(str(work)) == theirs
        assert (work / "theirs.txt").exists()
        assert not (work / "ours.txt").exists()
        assert sh("status", "--porcelain") == ""

    def test_diverged_then_force_push(self, pushed, sh, store, work, other, bare_remote):
        self.diverge(sh, work, other)
        session = SyncSession(store, str(work))
        session.sync()
        result = session.apply(Remediation.FORCE_PUSH)
        assert result.new == store.head(str(work))
        assert store.resolve_ref(str(bare_remote), "main") == store.head(str(work))
