"""Console commands: git, rollback, hard-reset, sync."""

from __future__ import annotations

import click

from ..commands import Git
from ..exceptions import GitShellError
from ..rollback import RollbackEngine
from ..sync import Remediation, SyncSession
from ._helpers import _require_repo, _shell_context, _status, main


# ---------------------------------------------------------------------------
# git
# ---------------------------------------------------------------------------

@main.command(
    add_help_option=False,
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def git(ctx, args):
    """Run a git command line, e.g. ``gitshell git status --porcelain``."""
    shell = _shell_context(ctx)
    result = Git(shell).execute(list(args))
    if result.stdout:
        click.echo(result.stdout)
    if result.stderr:
        click.echo(result.stderr, err=True)
    ctx.exit(result.exit_code)


# ---------------------------------------------------------------------------
# rollback / hard-reset
# ---------------------------------------------------------------------------

@main.command()
@click.argument("rev")
@click.pass_context
def rollback(ctx, rev):
    """Commit the tree of REV on top of the current branch.

    History is not rewritten: the new commit's parent is the current tip
    and its message lists every commit being undone.
    """
    shell = _shell_context(ctx)
    _require_repo(shell)
    engine = RollbackEngine(shell.store, shell.cwd, cache=shell.cache, author=shell.author)
    try:
        result = engine.revert_to(rev)
    except GitShellError as exc:
        raise click.ClickException(str(exc))
    if not result.changed:
        click.echo(result.message)
        return
    click.echo(f"[{result.oid[:7]}] {result.message.splitlines()[0]}")
    _status(ctx, f"Reverted {len(result.reverted)} commit(s)")


@main.command("hard-reset")
@click.pass_context
def hard_reset(ctx):
    """Discard staged, unstaged and untracked changes."""
    shell = _shell_context(ctx)
    _require_repo(shell)
    engine = RollbackEngine(shell.store, shell.cwd, cache=shell.cache)
    try:
        engine.hard_reset_to_head()
    except GitShellError as exc:
        raise click.ClickException(str(exc))
    _status(ctx, f"Reset {shell.cwd} to HEAD")


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------

@main.command()
@click.option("--remote", default="origin", show_default=True, help="Remote to sync with.")
@click.option("--resolve", type=click.Choice([r.value for r in Remediation]),
              help="Run a remediation instead of a plain sync.")
@click.pass_context
def sync(ctx, remote, resolve):
    """Pull then push the current branch.

    On failure the classified conflict and its remediation actions are
    printed; rerun with --resolve ACTION to apply one.
    """
    shell = _shell_context(ctx)
    _require_repo(shell)
    session = SyncSession(shell.store, shell.cwd, remote,
                          on_auth=shell.settings.on_auth, signer=shell.signer,
                          cache=shell.cache)
    if resolve is not None:
        try:
            session.apply(Remediation(resolve))
        except GitShellError as exc:
            raise click.ClickException(str(exc))
        _status(ctx, f"Applied {resolve}")
        return

    failure = session.sync()
    if failure is None:
        _status(ctx, f"Synced {shell.cwd} with {remote}")
        return
    click.echo(failure.message, err=True)
    actions = [a.value for a in failure.actions if a is not Remediation.DISMISS]
    if actions:
        click.echo(f"Actions: {', '.join(actions)}", err=True)
    ctx.exit(1)
