"""remote, push, pull, fetch and clone."""

from __future__ import annotations

import os

import click

from ..diff import changed_paths
from ..exceptions import (
    AlreadyExists,
    AuthenticationFailed,
    FastForwardUnsupported,
    HttpStatus,
    LocalChangesError,
    MergeUnsupported,
    NetworkFailure,
    PushRejected,
    RefNotFound,
    RepositoryNotFound,
    SignerRequired,
    SyncError,
)
from ..status import StatusReport
from ._base import error, fatal, overwritten, plural, subcommand

MERGE_HINT = "Please commit your changes or stash them before you merge."


def network_error(exc: SyncError, url: str) -> click.ClickException:
    """Reword a typed sync failure the way git reports it."""
    if isinstance(exc, AuthenticationFailed):
        return fatal("Authentication failed. Please configure git credentials.")
    if isinstance(exc, RepositoryNotFound):
        return fatal(
            f"'{exc.location}' does not appear to be a git repository\n"
            "fatal: Could not read from remote repository."
        )
    if isinstance(exc, PushRejected):
        return error(
            f"failed to push some refs to '{url}'\n"
            "hint: Updates were rejected because the remote contains work that you do\n"
            "hint: not have locally. Integrate the remote changes (e.g.\n"
            "hint: 'git pull ...') before pushing again."
        )
    if isinstance(exc, FastForwardUnsupported):
        return fatal("Not possible to fast-forward, aborting.")
    if isinstance(exc, MergeUnsupported):
        return fatal(
            f"{exc}\n"
            "hint: Local and remote branches have diverged. Rollback to a common\n"
            "hint: commit, or force-push / force-pull to pick one side."
        )
    if isinstance(exc, HttpStatus):
        return fatal(f"unable to access '{url}': {exc}")
    if isinstance(exc, SignerRequired):
        return fatal(str(exc))
    if isinstance(exc, NetworkFailure):
        return fatal("unable to access remote repository. Please check your network connection.")
    return fatal(str(exc))


def _default_remote(ctx, branch: str | None) -> str:
    if branch is not None:
        configured = ctx.store.get_config(ctx.cwd, f"branch.{branch}.remote")
        if configured:
            return configured
    return "origin"


def _local_url(ctx, url: str) -> str:
    """Relative paths name repositories relative to the shell's directory."""
    if "://" in url or os.path.isabs(url) or not ctx.fs.exists(ctx.path(url)):
        return url
    return os.path.normpath(ctx.path(url))


# ---------------------------------------------------------------------------
# remote
# ---------------------------------------------------------------------------

@subcommand(
    "remote", group="collaborate",
    description="Manage set of tracked repositories",
    usage="git remote [-v | --verbose] | add <name> <url> | remove <name> "
          "| get-url <name> | set-url <name> <newurl>",
    mutates=True,
)
@click.option("-v", "--verbose", is_flag=True)
@click.argument("action", required=False)
@click.argument("args", nargs=-1)
def remote(ctx, verbose, action, args):
    store, cwd = ctx.store, ctx.cwd
    remotes = {r.name: r for r in store.list_remotes(cwd)}

    if action is None:
        if not verbose:
            return "\n".join(remotes)
        lines = []
        for r in remotes.values():
            lines += [f"{r.name}\t{r.url} (fetch)", f"{r.name}\t{r.url} (push)"]
        return "\n".join(lines)

    def expect(n):
        if len(args) != n:
            raise click.UsageError(f"wrong number of arguments for '{action}'")

    if action == "add":
        expect(2)
        name, url = args
        try:
            store.add_remote(cwd, name, _local_url(ctx, url))
        except AlreadyExists:
            raise error(f"remote {name} already exists.") from None
        return ""
    if action in ("remove", "rm"):
        expect(1)
        try:
            store.delete_remote(cwd, args[0])
        except RefNotFound:
            raise error(f"No such remote: '{args[0]}'") from None
        return ""
    if action == "get-url":
        expect(1)
        if args[0] not in remotes:
            raise error(f"No such remote '{args[0]}'")
        return remotes[args[0]].url
    if action == "set-url":
        expect(2)
        try:
            store.set_remote_url(cwd, args[0], _local_url(ctx, args[1]))
        except RefNotFound:
            raise error(f"No such remote '{args[0]}'") from None
        return ""
    raise click.UsageError(f"unknown subcommand: {action}")


# ---------------------------------------------------------------------------
# push
# ---------------------------------------------------------------------------

@subcommand(
    "push", group="collaborate",
    description="Update remote refs along with associated objects",
    usage="git push [-f | --force] [-u | --set-upstream] [<repository> [<refspec>]]",
    mutates=True,
)
@click.option("-f", "--force", is_flag=True)
@click.option("-u", "--set-upstream", "set_upstream", is_flag=True)
@click.argument("repository", required=False)
@click.argument("refspec", required=False)
def push(ctx, force, set_upstream, repository, refspec):
    store, cwd = ctx.store, ctx.cwd
    current = store.current_branch(cwd)
    if refspec:
        if refspec.startswith("+"):
            force, refspec = True, refspec[1:]
        src, _, dst = refspec.partition(":")
        dst = dst or src
    elif current is None:
        raise fatal("You are not currently on a branch.")
    else:
        src = dst = current
    repository = repository or _default_remote(ctx, current)

    url = repository
    try:
        name, url = store.remote_url(cwd, repository)
        result = store.push(cwd, repository, src, dst, force=force,
                            on_auth=ctx.settings.on_auth, signer=ctx.signer)
    except RefNotFound:
        raise error(f"src refspec {src} does not match any") from None
    except SyncError as exc:
        raise network_error(exc, url) from None

    if result.up_to_date:
        lines = ["Everything up-to-date"]
    elif result.old is None:
        lines = [f"To {url}", f" * [new branch]      {src} -> {dst}"]
    elif store.is_descendent(cwd, result.new, result.old):
        lines = [f"To {url}", f"   {result.old[:7]}..{result.new[:7]}  {src} -> {dst}"]
    else:
        lines = [f"To {url}",
                 f" + {result.old[:7]}...{result.new[:7]} {src} -> {dst} (forced update)"]
    if set_upstream and name is not None:
        store.set_upstream(cwd, src, name)
        lines.append(f"branch '{src}' set up to track '{name}/{dst}'.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# pull
# ---------------------------------------------------------------------------

@subcommand(
    "pull", group="collaborate",
    description="Fetch from and integrate with another repository",
    usage="git pull [--ff-only] [<repository> [<branch>]]",
    mutates=True,
)
@click.option("--ff-only", "ff_only", is_flag=True)
@click.argument("repository", required=False)
@click.argument("branch", required=False)
def pull(ctx, ff_only, repository, branch):
    store, cwd = ctx.store, ctx.cwd
    current = store.current_branch(cwd)
    if current is None:
        raise fatal("You are not currently on a branch.")
    branch = branch or current
    repository = repository or _default_remote(ctx, current)

    dirty = StatusReport.from_rows(store.status_matrix(cwd)).dirty_paths
    if dirty:
        raise overwritten(LocalChangesError(dirty), "merge", MERGE_HINT)

    url = repository
    try:
        _, url = store.remote_url(cwd, repository)
        result = store.pull(cwd, repository, branch, fast_forward_only=ff_only,
                            on_auth=ctx.settings.on_auth)
    except RefNotFound as exc:
        if exc.kind != "remote ref":
            raise
        raise fatal(f"couldn't find remote ref {branch}") from None
    except LocalChangesError as exc:
        raise overwritten(exc, "merge", MERGE_HINT) from None
    except SyncError as exc:
        raise network_error(exc, url) from None

    if result.up_to_date:
        return "Already up to date."
    lines = [f"From {url}", f" * branch            {branch:<10} -> FETCH_HEAD"]
    old_files = store.read_tree(cwd, result.old) if result.old else {}
    changed = changed_paths(old_files, store.read_tree(cwd, result.new))
    if result.old:
        lines.append(f"Updating {result.old[:7]}..{result.new[:7]}")
    lines += ["Fast-forward", f" {plural(len(changed), 'file')} changed"]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------

@subcommand(
    "fetch", group="collaborate",
    description="Download objects and refs from another repository",
    usage="git fetch [--depth <depth>] [<repository> [<refspec>...]]",
    mutates=True,
)
@click.option("--depth", type=click.IntRange(min=1))
@click.argument("repository", required=False)
@click.argument("refs", nargs=-1)
def fetch(ctx, depth, repository, refs):
    store, cwd = ctx.store, ctx.cwd
    repository = repository or _default_remote(ctx, store.current_branch(cwd))
    ref = refs[0] if refs else None

    url = repository
    try:
        _, url = store.remote_url(cwd, repository)
        result = store.fetch(cwd, repository, ref=ref, single_branch=ref is not None,
                             depth=depth, on_auth=ctx.settings.on_auth)
    except SyncError as exc:
        raise network_error(exc, url) from None
    if ref is not None and f"refs/heads/{ref}" not in result.refs:
        raise fatal(f"couldn't find remote ref {ref}")

    lines = []
    for update in result.updates:
        if update.old == update.new:
            continue
        target = f"{result.remote}/{update.branch}"
        if update.old is None:
            lines.append(f" * [new branch]      {update.branch:<10} -> {target}")
        else:
            lines.append(
                f"   {update.old[:7]}..{update.new[:7]}  {update.branch:<10} -> {target}")
    if not lines:
        return ""
    return "\n".join([f"From {result.url}"] + lines)


# ---------------------------------------------------------------------------
# clone
# ---------------------------------------------------------------------------

def _humanish(url: str) -> str:
    """Directory name git derives from a repository URL."""
    name = url.rstrip("/")
    if name.endswith(".git"):
        name = name[:-4]
    name = name.rstrip("/")
    for sep in ("/", ":"):
        name = name.rsplit(sep, 1)[-1]
    return name or "repository"


@subcommand(
    "clone", group="start",
    description="Clone a repository into a new directory",
    usage="git clone [--depth <depth>] [--single-branch] [-b <branch>] [-o <name>] "
          "<repository> [<directory>]",
    requires_repo=False, mutates=True,
)
@click.option("--depth", type=click.IntRange(min=1))
@click.option("--single-branch", "single_branch", is_flag=True)
@click.option("-b", "--branch")
@click.option("-o", "--origin", default="origin")
@click.argument("url", required=False)
@click.argument("directory", required=False)
def clone(ctx, depth, single_branch, branch, origin, url, directory):
    if not url:
        raise fatal("You must specify a repository to clone.")
    url = _local_url(ctx, url)
    name = directory or _humanish(url)
    target = os.path.normpath(ctx.path(name))
    try:
        result = ctx.store.clone(target, url, remote=origin, branch=branch,
                                 single_branch=single_branch, depth=depth,
                                 on_auth=ctx.settings.on_auth)
    except AlreadyExists:
        raise fatal(
            f"destination path '{name}' already exists and is not an empty directory."
        ) from None
    except RefNotFound:
        raise fatal(f"Remote branch {branch} not found in upstream {origin}") from None
    except SyncError as exc:
        raise network_error(exc, url) from None

    lines = [f"Cloning into '{name}'..."]
    if result.head is None:
        lines.append("warning: You appear to have cloned an empty repository.")
    lines.append("done.")
    return "\n".join(lines)
