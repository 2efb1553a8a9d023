"""Tests for the rollback engine."""

import pytest

from gitshell import ObjectStore
from gitshell.exceptions import RefNotFound, RollbackError
from gitshell.fs import LocalFileSystem
from gitshell.rollback import ALREADY_AT_COMMIT, RollbackEngine, revert_message
from gitshell.status import StatusCache


class FailingFileSystem(LocalFileSystem):
    """Local disk that refuses to write one file name."""

    def __init__(self, name):
        self.name = name

    def write_file(self, path, data, mode=None):
        if path.endswith(self.name):
            raise PermissionError(13, "Permission denied", path)
        super().write_file(path, data, mode)


@pytest.fixture
def history(repo, sh, work, store):
    """initial (README.md) -> add a -> edit a, add b."""
    (work / "a.txt").write_text("one\n")
    sh("add", "a.txt")
    sh("commit", "-m", "add a")
    (work / "a.txt").write_text("two\n")
    (work / "b.txt").write_text("bee\n")
    sh("add", ".")
    sh("commit", "-m", "edit a, add b")
    return work


@pytest.fixture
def engine(store, work):
    return RollbackEngine(store, str(work), cache=StatusCache(),
                          author="Test User <test@example.com>")


class TestRevertTo:
    def test_creates_commit_on_top(self, history, engine, store, sh):
        tip = store.head(str(history))
        target = store.resolve_ref(str(history), "HEAD~2")
        result = engine.revert_to(target)

        assert result.changed
        info = store.read_commit(str(history), "HEAD")
        assert info.oid == result.oid
        assert info.parents == [tip]
        assert info.tree == store.read_commit(str(history), target).tree
        assert store.current_branch(str(history)) == "main"
        assert sorted(store.list_files(str(history))) == ["README.md"]
        assert not (history / "a.txt").exists()
        assert not (history / "b.txt").exists()
        assert sh("status", "--porcelain") == ""

    def test_message_lists_reverted_commits(self, history, engine, store):
        target = store.resolve_ref(str(history), "HEAD~2")
        result = engine.revert_to(target)
        lines = result.message.splitlines()
        assert lines[0] == f"Revert to {target[:7]}"
        assert lines[2] == "Reverted commits:"
        assert [line.split(" ", 2)[2] for line in lines[3:]] == ["edit a, add b", "add a"]
        assert [c.subject for c in result.reverted] == ["edit a, add b", "add a"]

    def test_restores_file_contents(self, history, engine, store):
        engine.revert_to(store.resolve_ref(str(history), "HEAD~1"))
        assert (history / "a.txt").read_text() == "one\n"
        assert not (history / "b.txt").exists()

    def test_twice_is_noop(self, history, engine, store):
        target = store.resolve_ref(str(history), "HEAD~1")
        engine.revert_to(target)
        head = store.head(str(history))
        result = engine.revert_to(target)
        assert not result.changed
        assert result.message == ALREADY_AT_COMMIT
        assert store.head(str(history)) == head

    def test_current_tip(self, history, engine):
        assert engine.revert_to("HEAD").message == ALREADY_AT_COMMIT

    def test_unknown_target(self, history, engine):
        with pytest.raises(RefNotFound):
            engine.revert_to("nope")

    def test_failed_restore_makes_no_commit(self, history, store, work):
        tip = store.head(str(work))
        failing = ObjectStore(fs=FailingFileSystem("a.txt"),
                              global_config_path=store.global_config_path)
        engine = RollbackEngine(failing, str(work))
        with pytest.raises(RollbackError) as info:
            engine.revert_to("HEAD~1")
        assert list(info.value.failures) == ["a.txt"]
        assert store.head(str(work)) == tip

    def test_invalidates_cache(self, history, engine, store):
        engine.cache.update(str(history), [])
        engine.revert_to(store.resolve_ref(str(history), "HEAD~1"))
        assert engine.cache.get(str(history)) is None

    def test_revert_message_without_commits(self):
        assert revert_message("f" * 40, []) == "Revert to fffffff"


class TestHardReset:
    def test_discards_everything(self, history, engine, sh, store):
        (history / "a.txt").write_text("scribble\n")
        (history / "README.md").unlink()
        (history / "staged.txt").write_text("s")
        sh("add", "staged.txt")
        (history / "junk.txt").write_text("j")
        (history / "dir").mkdir()
        (history / "dir" / "deep.txt").write_text("d")

        head = store.head(str(history))
        engine.hard_reset_to_head()

        assert store.head(str(history)) == head
        assert (history / "a.txt").read_text() == "two\n"
        assert (history / "README.md").read_text() == "hello\n"
        assert not (history / "staged.txt").exists()
        assert not (history / "junk.txt").exists()
        assert not (history / "dir").exists()
        assert sh("status", "--porcelain") == ""

    def test_keeps_ignored_files(self, repo, engine, sh, work):
        (work / ".gitignore").write_text("*.log\n")
        sh("add", ".gitignore")
        sh("commit", "-m", "ignore logs")
        (work / "debug.log").write_text("noise")
        engine.hard_reset_to_head()
        assert (work / "debug.log").exists()

    def test_unborn_branch(self, git, sh, store, work):
        sh("init")
        (work / "a.txt").write_text("a")
        sh("add", "a.txt")
        RollbackEngine(store, str(work)).hard_reset_to_head()
        assert not (work / "a.txt").exists()
        assert store.read_index(str(work)) == {}

    def test_invalidates_cache(self, repo, engine, work):
        engine.cache.update(str(work), [])
        engine.hard_reset_to_head()
        assert engine.cache.get(str(work)) is None
