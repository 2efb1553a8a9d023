"""init, status, add, commit and config."""

from __future__ import annotations

import os
import re

import click

from ..exceptions import CommandError, RefNotFound
from ..status import (
    CLEAN_MESSAGE,
    Change,
    StatusReport,
    classify,
    format_human,
    format_porcelain,
)
from ._base import (
    error,
    expand_equals,
    fatal,
    plural,
    repo_path,
    repo_paths,
    require_repo,
    subcommand,
)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@subcommand(
    "init", group="start",
    description="Create an empty Git repository or reinitialize an existing one",
    usage="git init [-q | --quiet] [-b <branch-name>] [<directory>]",
    requires_repo=False, mutates=True,
)
@click.option("-b", "--initial-branch", "branch", default="main")
@click.option("-q", "--quiet", is_flag=True)
@click.argument("directory", required=False)
def init(ctx, branch, quiet, directory):
    target = os.path.normpath(ctx.path(directory)) if directory else ctx.cwd
    existed = ctx.store.init(target, default_branch=branch)
    if quiet:
        return ""
    verb = "Reinitialized existing" if existed else "Initialized empty"
    return f"{verb} Git repository in {os.path.join(target, '.git')}/"


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

@subcommand(
    "status", group="inspect",
    description="Show the working tree status",
    usage="git status [--porcelain | -s | --short] [-b] [<pathspec>...]",
)
@click.option("--porcelain", is_flag=True)
@click.option("-s", "--short", "short", is_flag=True)
@click.option("-b", "--branch", "show_branch", is_flag=True)
@click.argument("paths", nargs=-1)
def status(ctx, porcelain, short, show_branch, paths):
    filter_ = repo_paths(paths)
    rows = ctx.store.status_matrix(ctx.cwd, filter_)
    if filter_ is None:
        ctx.cache.update(ctx.cwd, rows)
    branch = ctx.store.current_branch(ctx.cwd)
    if porcelain or short:
        text = format_porcelain(rows)
        if show_branch:
            header = f"## {branch or 'HEAD (no branch)'}"
            text = f"{header}\n{text}" if text else header
        return text
    return format_human(rows, branch, ctx.store.head(ctx.cwd))


# ---------------------------------------------------------------------------
# add
# ---------------------------------------------------------------------------

@subcommand(
    "add", group="modify",
    description="Add file contents to the index",
    usage="git add [-A | --all] [--] <pathspec>...",
    mutates=True, split_paths=True,
)
@click.option("-A", "--all", "all_", is_flag=True)
@click.argument("paths", nargs=-1)
def add(ctx, all_, paths, pathspec):
    specs = list(paths) + list(pathspec or ())
    if not specs and not all_:
        raise CommandError(
            "Nothing specified, nothing added.\n"
            "hint: Maybe you wanted to say 'git add .'?"
        )
    rels = [repo_path(s) for s in specs]
    if all_ and not rels:
        rels = [""]

    targets: set[str] = set()
    for spec, rel in zip(specs or ["."], rels):
        rows = ctx.store.status_matrix(ctx.cwd, [rel] if rel else None)
        changed = {
            r.path for r in rows
            if classify(r)[0] is Change.UNTRACKED or classify(r)[1] is not None
        }
        if rel and not rows and not ctx.fs.exists(ctx.path(rel)):
            raise fatal(f"pathspec '{spec}' did not match any files")
        targets |= changed
    # a file named explicitly must be readable; directories skip what they can't read
    broad = any(not rel or ctx.fs.is_dir(ctx.path(rel)) for rel in rels)
    if targets:
        ctx.store.add(ctx.cwd, sorted(targets), skip_unreadable=broad)
    return ""


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------

@subcommand(
    "commit", group="modify",
    description="Record changes to the repository",
    usage="git commit [-a | --all] [--amend] [--allow-empty] [--author=<author>] -m <msg>",
    mutates=True, preprocess=expand_equals("-m"),
)
@click.option("-m", "--message", "messages", multiple=True)
@click.option("-a", "--all", "all_", is_flag=True)
@click.option("--amend", is_flag=True)
@click.option("--allow-empty", is_flag=True)
@click.option("--author")
def commit(ctx, messages, all_, amend, allow_empty, author):
    store, cwd = ctx.store, ctx.cwd
    head = store.head(cwd)
    if amend and head is None:
        raise fatal("You have nothing to amend.")
    message = "\n\n".join(messages)
    if amend and not messages:
        message = store.read_commit(cwd, head).message
    if not message.strip():
        raise CommandError("Aborting commit due to empty commit message.")

    if all_:
        tracked = [
            r.path for r in store.status_matrix(cwd)
            if classify(r)[1] is not None
        ]
        if tracked:
            store.add(cwd, tracked)

    report = StatusReport.from_rows(store.status_matrix(cwd))
    if not report.staged and not allow_empty and not amend:
        if report.clean:
            raise CommandError(CLEAN_MESSAGE)
        if report.unstaged:
            raise CommandError(
                'no changes added to commit (use "git add" and/or "git commit -a")')
        raise CommandError(
            'nothing added to commit but untracked files present (use "git add" to track)')

    message = message.rstrip("\n")
    if ctx.settings.co_author:
        message += f"\n\nCo-authored-by: {ctx.settings.co_author}"
    oid = store.commit(cwd, message, author or ctx.author, amend=amend)

    branch = store.current_branch(cwd) or "detached HEAD"
    root = " (root-commit)" if head is None else ""
    subject = message.split("\n", 1)[0]
    lines = [f"[{branch}{root} {oid[:7]}] {subject}",
             f" {plural(len(report.staged), 'file')} changed"]
    for change, path in report.staged:
        if change is Change.STAGED_NEW:
            lines.append(f" create mode 100644 {path}")
        elif change is Change.STAGED_DELETE:
            lines.append(f" delete mode 100644 {path}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

CONFIG_KEYS = ("user.name", "user.email", "core.bare")
_REMOTE_KEY_RE = re.compile(r"^remote\.([^.\s]+)\.(url|fetch)$")


def _supported(key: str) -> bool:
    return key in CONFIG_KEYS or bool(_REMOTE_KEY_RE.match(key))


@subcommand(
    "config", group="configure",
    description="Get and set repository or global options",
    usage="git config [--global | --local] (--list | <name> [<value>] | --unset <name>)",
    requires_repo=False, mutates=True,
)
@click.option("--global", "global_", is_flag=True)
@click.option("--local", is_flag=True)
@click.option("-l", "--list", "list_", is_flag=True)
@click.option("--get", is_flag=True)
@click.option("--unset", is_flag=True)
@click.argument("args", nargs=-1)
def config(ctx, global_, local, list_, get, unset, args):
    if global_ and local:
        raise click.UsageError("only one config file at a time")
    if global_:
        if ctx.store.global_config_path is None:
            raise fatal("$HOME not set")
        scope = None
    else:
        require_repo(ctx)
        scope = ctx.cwd

    if list_:
        keys = list(CONFIG_KEYS)
        if scope is not None:
            for remote in ctx.store.list_remotes(scope):
                keys += [f"remote.{remote.name}.url", f"remote.{remote.name}.fetch"]
        lines = []
        for key in keys:
            value = ctx.store.get_config(scope, key)
            if value is not None:
                lines.append(f"{key}={value}")
        return "\n".join(lines)

    if not args:
        raise click.UsageError("no key given")
    key = args[0]
    if not _supported(key):
        raise error(
            f"key '{key}' is not supported "
            "(user.name, user.email, core.bare, remote.<name>.url, remote.<name>.fetch)")

    if unset:
        try:
            ctx.store.set_config(scope, key, None)
        except RefNotFound:
            raise error(f"key does not exist: {key}") from None
        return ""
    if get or len(args) == 1:
        value = ctx.store.get_config(scope, key)
        if value is None:
            raise error(f"key does not exist: {key}")
        return value
    if len(args) != 2:
        raise click.UsageError("wrong number of arguments")
    value = args[1]
    if key == "core.bare" and value.lower() not in ("true", "false"):
        raise fatal(f"bad boolean config value '{value}' for '{key}'")
    ctx.store.set_config(scope, key, value)
    return ""
