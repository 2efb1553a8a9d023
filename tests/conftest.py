"""Shared fixtures for gitshell tests."""

import pytest
from click.testing import CliRunner

from gitshell import Git, ObjectStore, ShellContext
from gitshell.settings import GitSettings


@pytest.fixture
def store(tmp_path):
    """Object store whose global config lives under tmp_path."""
    return ObjectStore(global_config_path=str(tmp_path / "config" / "gitconfig"))


@pytest.fixture
def work(tmp_path):
    """An empty working directory."""
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def shell(store, work):
    return ShellContext(
        store=store, cwd=str(work),
        settings=GitSettings(name="Test User", email="test@example.com"),
    )


@pytest.fixture
def git(shell):
    return Git(shell)


@pytest.fixture
def sh(git):
    """Run a command line that must succeed; returns its stdout."""
    def run(*argv):
        result = git.execute(list(argv))
        assert result.exit_code == 0, result.stderr
        return result.stdout
    return run


@pytest.fixture
def repo(sh, work):
    """Repository on 'main' with README.md committed."""
    sh("init")
    (work / "README.md").write_text("hello\n")
    sh("add", "README.md")
    sh("commit", "-m", "initial")
    return work


@pytest.fixture
def bare_remote(tmp_path, store):
    """Empty bare repository usable as a file-path remote."""
    path = tmp_path / "remote.git"
    store.init(str(path), bare=True)
    return path


@pytest.fixture
def pushed(repo, sh, bare_remote):
    """``repo`` with origin set to ``bare_remote`` and main pushed upstream."""
    sh("remote", "add", "origin", str(bare_remote))
    sh("push", "-u", "origin", "main")
    return repo


@pytest.fixture
def other(tmp_path, store, pushed, bare_remote):
    """A second clone of ``bare_remote`` with its own dispatcher."""
    ctx = ShellContext(
        store=store, cwd=str(tmp_path),
        settings=GitSettings(name="Other User", email="other@example.com"),
    )
    result = Git(ctx).execute(["clone", str(bare_remote), "other"])
    assert result.exit_code == 0, result.stderr
    ctx = ShellContext(store=store, cwd=str(tmp_path / "other"), settings=ctx.settings)
    return Git(ctx)


@pytest.fixture
def runner():
    return CliRunner()
