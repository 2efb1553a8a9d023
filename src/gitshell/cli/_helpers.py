"""Shared helpers and the main CLI group."""

from __future__ import annotations

import logging
import os

import click

from ..commands import ShellContext
from ..settings import GLOBAL_CONFIG_FILE, SETTINGS_FILE, GitSettings, default_config_dir
from ..store import ObjectStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _repo_dir(ctx) -> str:
    """The working directory commands run in (--repo, else the cwd)."""
    return os.path.abspath(ctx.obj.get("repo_path") or os.getcwd())


def _shell_context(ctx) -> ShellContext:
    """Build the shared command context from the group options."""
    config_dir = ctx.obj["config_dir"]
    settings = GitSettings.load(os.path.join(config_dir, SETTINGS_FILE))
    store = ObjectStore(global_config_path=os.path.join(config_dir, GLOBAL_CONFIG_FILE))
    return ShellContext(store=store, cwd=_repo_dir(ctx), settings=settings)


def _require_repo(shell: ShellContext) -> None:
    if not shell.store.is_repository(shell.cwd):
        raise click.ClickException(f"Not a git repository: {shell.cwd}")


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-C", type=click.Path(file_okay=False), envvar="GITSHELL_DIR",
              help="Working directory to run in (or set GITSHELL_DIR).",
              expose_value=False, callback=_store_repo, is_eager=True)
@click.option("--config-dir", type=click.Path(file_okay=False), envvar="GITSHELL_CONFIG_DIR",
              help="Directory holding gitconfig and git.json (or set GITSHELL_CONFIG_DIR).")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr.")
@click.pass_context
def main(ctx, config_dir, verbose):
    """gitshell: git commands emulated in-process on top of dulwich.

    \b
    Quick start:
      gitshell git init
      gitshell git add .
      gitshell git commit -m "first"
      gitshell git log --oneline

    \b
    Recovery:
      rollback REV    Commit the tree of REV on top of the current branch
      hard-reset      Discard every local change, untracked files included
      sync            Pull then push, reporting conflicts with remedies

    Set GITSHELL_DIR to avoid passing -C on every call.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_dir"] = config_dir or default_config_dir()
