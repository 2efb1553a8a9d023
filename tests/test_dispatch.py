"""Tests for the git dispatcher and the shared handler behaviour."""

from gitshell import __version__
from gitshell.commands import REGISTRY, VERSION, CommandResult

NOT_A_REPO = "fatal: not a git repository (or any of the parent directories): .git"


class TestDispatch:
    def test_help_without_args(self, git):
        result = git.execute([])
        assert result.exit_code == 0
        assert "These are common Git commands used in various situations:" in result.stdout
        for heading in ("start a working area", "work on the current change",
                        "examine the history and state", "collaborate", "configuration"):
            assert heading in result.stdout

    def test_help_lists_every_command(self, git):
        out = git.execute(["--help"]).stdout
        for name in REGISTRY:
            assert f"   {name} " in out

    def test_leading_git_is_ignored(self, git):
        assert git.execute(["git", "--version"]).stdout == VERSION

    def test_version(self, git):
        result = git.execute(["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_unknown_command(self, git):
        result = git.execute(["frobnicate"])
        assert result.exit_code == 1
        assert result.stderr == "git: 'frobnicate' is not a git command. See 'git --help'."

    def test_help_topic(self, git):
        result = git.execute(["help", "commit"])
        assert result.exit_code == 0
        assert result.stdout.startswith("usage: git commit")

    def test_subcommand_help(self, git):
        result = git.execute(["status", "--help"])
        assert result.exit_code == 0
        assert result.stdout.startswith("usage: git status")

    def test_every_command_registered(self):
        expected = {"init", "status", "add", "commit", "log", "branch", "checkout",
                    "remote", "push", "pull", "fetch", "clone", "config", "reset",
                    "diff", "tag", "show", "stash"}
        assert expected <= set(REGISTRY)

    def test_result_helpers(self):
        assert CommandResult.ok("x") == CommandResult(0, "x", "")
        assert CommandResult.fail("bad") == CommandResult(1, "", "bad")


class TestPreconditions:
    def test_not_a_repository(self, git):
        for argv in (["status"], ["add", "."], ["commit", "-m", "x"], ["log"],
                     ["branch"], ["push"], ["stash", "list"]):
            result = git.execute(argv)
            assert result.exit_code == 1, argv
            assert result.stderr == NOT_A_REPO

    def test_init_and_clone_need_no_repository(self, git):
        assert git.execute(["init"]).exit_code == 0
        assert git.execute(["clone"]).stderr == "fatal: You must specify a repository to clone."

    def test_usage_error(self, repo, git):
        result = git.execute(["log", "--bogus"])
        assert result.exit_code == 1
        assert result.stderr.startswith("error: ")
        assert "usage: git log" in result.stderr


class TestStatusCacheInvalidation:
    def test_status_fills_cache_and_mutation_clears_it(self, repo, git, shell, work):
        git.execute(["status"])
        assert shell.cache.get(str(work)) is not None
        (work / "x.txt").write_text("x")
        git.execute(["add", "x.txt"])
        assert shell.cache.get(str(work)) is None

    def test_host_reads_last_matrix(self, repo, git, shell, work):
        (work / "x.txt").write_text("x")
        git.execute(["status", "--porcelain"])
        rows = shell.cache.get(str(work))
        assert [row.path for row in rows] == ["README.md", "x.txt"]

    def test_filtered_status_leaves_cache_alone(self, repo, git, shell, work):
        git.execute(["status", "README.md"])
        assert shell.cache.get(str(work)) is None
        git.execute(["status", "."])
        assert shell.cache.get(str(work)) is not None

    def test_failed_mutation_still_invalidates(self, repo, git, shell, work):
        git.execute(["status"])
        result = git.execute(["checkout", "nope"])
        assert result.exit_code == 1
        assert shell.cache.get(str(work)) is None


class TestScenario:
    def test_add_commit_branch_delete(self, repo, sh, git, work):
        assert sh("status", "--porcelain") == ""
        (work / "a.txt").write_text("a\n")
        assert sh("status", "--porcelain") == "?? a.txt"
        sh("add", "a.txt")
        assert sh("status", "--porcelain") == "A  a.txt"
        sh("commit", "-m", "add a")
        assert sh("status", "--porcelain") == ""
        result = git.execute(["branch", "-d", "main"])
        assert result.exit_code == 1
        assert "main" in result.stderr
        assert result.stderr.startswith("error: Cannot delete branch 'main'")

    def test_index_matches_head_after_commit(self, repo, sh, store, work):
        (work / "b.txt").write_text("b\n")
        sh("add", "b.txt")
        sh("commit", "-m", "add b")
        assert store.read_index(str(work)) == store.read_tree(str(work), "HEAD")
