"""Tests for the gitshell CLI."""

import os

import pytest

from gitshell.cli import main
from gitshell.settings import SETTINGS_FILE, GitSettings
from gitshell.sync import MERGE_MESSAGE


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config_dir(tmp_path):
    """Config directory with an identity in git.json."""
    d = tmp_path / "cfg"
    GitSettings(name="Cli User", email="cli@example.com").save(str(d / SETTINGS_FILE))
    return str(d)


@pytest.fixture
def cli(runner, config_dir):
    """Invoke the CLI in a given directory; returns the click Result."""
    def invoke(cwd, *args):
        return runner.invoke(main, ["-C", str(cwd), "--config-dir", config_dir, *args])
    return invoke


@pytest.fixture
def cli_repo(cli, tmp_path):
    """Repository created through the CLI with one commit of a.txt."""
    d = tmp_path / "proj"
    d.mkdir()
    for argv in (["init"], ["add", "."], ["commit", "-m", "first"]):
        if argv == ["add", "."]:
            (d / "a.txt").write_text("one\n")
        r = cli(d, "git", *argv)
        assert r.exit_code == 0, r.output
    return d


def commit(cli, d, name, text, message):
    (d / name).write_text(text)
    for argv in (["add", name], ["commit", "-m", message]):
        r = cli(d, "git", *argv)
        assert r.exit_code == 0, r.output


# ---------------------------------------------------------------------------
# TestGit
# ---------------------------------------------------------------------------

class TestGit:
    def test_init(self, cli, tmp_path):
        result = cli(tmp_path, "git", "init")
        assert result.exit_code == 0, result.output
        assert f"Initialized empty Git repository in {tmp_path}/.git/" in result.output
        assert os.path.isdir(tmp_path / ".git")

    def test_options_pass_through(self, cli, cli_repo):
        result = cli(cli_repo, "git", "log", "--oneline")
        assert result.exit_code == 0, result.output
        assert result.output.rstrip("\n").endswith(" first")

    def test_identity_from_config_dir(self, cli, cli_repo):
        result = cli(cli_repo, "git", "log")
        assert "Author: Cli User <cli@example.com>" in result.output

    def test_failure_exit_code(self, cli, tmp_path):
        result = cli(tmp_path, "git", "status")
        assert result.exit_code == 1
        assert "fatal: not a git repository" in result.output

    def test_global_config_lives_in_config_dir(self, cli, cli_repo, config_dir):
        result = cli(cli_repo, "git", "config", "--global", "user.name", "Global")
        assert result.exit_code == 0, result.output
        assert os.path.exists(os.path.join(config_dir, "gitconfig"))

    def test_repo_from_environment(self, runner, config_dir, cli_repo):
        result = runner.invoke(
            main, ["--config-dir", config_dir, "git", "status", "--porcelain"],
            env={"GITSHELL_DIR": str(cli_repo)},
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip() == ""

    def test_git_help(self, cli, tmp_path):
        result = cli(tmp_path, "git", "--help")
        assert result.exit_code == 0
        assert "These are common Git commands" in result.output


# ---------------------------------------------------------------------------
# TestRollback
# ---------------------------------------------------------------------------

class TestRollback:
    def test_rollback(self, cli, cli_repo):
        commit(cli, cli_repo, "a.txt", "two\n", "second")
        result = cli(cli_repo, "rollback", "HEAD~1")
        assert result.exit_code == 0, result.output
        assert "Revert to " in result.output
        assert (cli_repo / "a.txt").read_text() == "one\n"

        log = cli(cli_repo, "git", "log", "--oneline").output.splitlines()
        assert len(log) == 3

    def test_rollback_twice(self, cli, cli_repo):
        commit(cli, cli_repo, "a.txt", "two\n", "second")
        cli(cli_repo, "rollback", "HEAD~1")
        result = cli(cli_repo, "rollback", "HEAD~2")
        assert result.exit_code == 0, result.output
        assert "Already at this commit" in result.output

    def test_unknown_revision(self, cli, cli_repo):
        result = cli(cli_repo, "rollback", "nope")
        assert result.exit_code != 0
        assert "nope" in result.output

    def test_not_a_repository(self, cli, tmp_path):
        result = cli(tmp_path, "rollback", "HEAD")
        assert result.exit_code != 0
        assert "Not a git repository" in result.output

    def test_verbose_reports_count(self, cli, cli_repo):
        commit(cli, cli_repo, "a.txt", "two\n", "second")
        result = cli(cli_repo, "-v", "rollback", "HEAD~1")
        assert result.exit_code == 0, result.output
        assert "Reverted 1 commit(s)" in result.output


class TestHardReset:
    def test_discards_changes(self, cli, cli_repo):
        (cli_repo / "a.txt").write_text("scribble\n")
        (cli_repo / "junk.txt").write_text("junk")
        result = cli(cli_repo, "hard-reset")
        assert result.exit_code == 0, result.output
        assert (cli_repo / "a.txt").read_text() == "one\n"
        assert not (cli_repo / "junk.txt").exists()


# ---------------------------------------------------------------------------
# TestSync
# ---------------------------------------------------------------------------

@pytest.fixture
def remote_pair(cli, cli_repo, tmp_path, store):
    """cli_repo pushed to a bare remote, plus a second clone of it."""
    bare = tmp_path / "remote.git"
    store.init(str(bare), bare=True)
    for argv in (["remote", "add", "origin", str(bare)], ["push", "-u", "origin", "main"]):
        r = cli(cli_repo, "git", *argv)
        assert r.exit_code == 0, r.output
    r = cli(tmp_path, "git", "clone", str(bare), "second")
    assert r.exit_code == 0, r.output
    return cli_repo, tmp_path / "second"


class TestSync:
    def test_sync(self, cli, remote_pair, store):
        first, second = remote_pair
        commit(cli, first, "b.txt", "b\n", "from first")
        result = cli(first, "sync")
        assert result.exit_code == 0, result.output

        result = cli(second, "sync")
        assert result.exit_code == 0, result.output
        assert (second / "b.txt").read_text() == "b\n"

    def test_diverged_reports_actions(self, cli, remote_pair):
        first, second = remote_pair
        commit(cli, second, "theirs.txt", "t\n", "theirs")
        assert cli(second, "sync").exit_code == 0
        commit(cli, first, "ours.txt", "o\n", "ours")

        result = cli(first, "sync")
        assert result.exit_code == 1
        assert MERGE_MESSAGE in result.output
        assert "Actions: force-pull, force-push" in result.output

        result = cli(first, "sync", "--resolve", "force-pull")
        assert result.exit_code == 0, result.output
        assert (first / "theirs.txt").exists()
        assert not (first / "ours.txt").exists()

    def test_resolve_choice_is_validated(self, cli, cli_repo):
        result = cli(cli_repo, "sync", "--resolve", "merge")
        assert result.exit_code == 2
