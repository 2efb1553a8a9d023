"""stash."""

from __future__ import annotations

import click

from ..exceptions import LocalChangesError
from ..stash import StashError, StashStore, parse_stash_ref
from ._base import error, expand_equals, fatal, overwritten, subcommand

ACTIONS = ("push", "save", "list", "show", "apply", "pop", "drop", "clear")


@subcommand(
    "stash", group="modify",
    description="Stash the changes in a dirty working directory away",
    usage="git stash [push [-m <message>] [-u]] | list | show [<stash>] "
          "| apply [<stash>] | pop [<stash>] | drop [<stash>] | clear",
    mutates=True, preprocess=expand_equals("-m"),
)
@click.option("-m", "--message")
@click.option("-u", "--include-untracked", "include_untracked", is_flag=True)
@click.argument("action", required=False, default="push")
@click.argument("args", nargs=-1)
def stash(ctx, message, include_untracked, action, args):
    if action not in ACTIONS:
        raise click.UsageError(f"unknown subcommand: {action}")
    stashes = StashStore(ctx.store, ctx.cwd)

    if action in ("push", "save"):
        if action == "save" and args:
            message = " ".join(args)
        try:
            entry = stashes.push(message, include_untracked=include_untracked)
        except StashError as exc:
            if "initial commit" in str(exc):
                raise fatal(str(exc)) from None
            return str(exc)
        return f"Saved working directory and index state {entry.message}"

    if action == "list":
        return "\n".join(f"stash@{{{i}}}: {e.message}"
                         for i, e in enumerate(stashes.entries()))
    if action == "clear":
        stashes.clear()
        return ""

    if len(args) > 1:
        raise click.UsageError("too many arguments")
    ref = args[0] if args else None
    try:
        n = parse_stash_ref(ref)
        if action == "show":
            entry = stashes.get(n)
            head_files = ctx.store.read_tree(ctx.cwd, entry.head)
            return "\n".join(f"{code}\t{path}" for code, path in entry.changes(head_files))
        if action == "drop":
            stashes.drop(n)
            return f"Dropped stash@{{{n}}}"
        if action == "apply":
            stashes.apply(n)
            return ""
        stashes.pop(n)
        return f"Dropped stash@{{{n}}}"
    except StashError as exc:
        raise error(str(exc)) from None
    except LocalChangesError as exc:
        raise overwritten(exc, "merge", "Please commit your changes or stash them before you merge.") from None
