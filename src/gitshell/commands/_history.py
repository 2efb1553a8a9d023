"""log, diff and show."""

from __future__ import annotations

import datetime
import re

import click

from ..diff import changed_paths, render_diff, store_loader, worktree_loader
from ..exceptions import RefNotFound
from ..store import CommitInfo
from ._base import fatal, repo_paths, subcommand


def format_date(timestamp: int, offset: int) -> str:
    """``Mon Jan 2 15:04:05 2006 +0000`` as printed by ``git log``."""
    when = datetime.datetime.fromtimestamp(
        timestamp, datetime.timezone(datetime.timedelta(seconds=offset)))
    sign = "-" if offset < 0 else "+"
    hours, minutes = divmod(abs(offset) // 60, 60)
    return f"{when:%a %b} {when.day} {when:%H:%M:%S %Y} {sign}{hours:02d}{minutes:02d}"


def _decorations(ctx) -> dict[str, list[str]]:
    """oid -> ref labels (``HEAD -> main``, ``tag: v1``, ``origin/main``)."""
    store, cwd = ctx.store, ctx.cwd
    out: dict[str, list[str]] = {}
    head = store.head(cwd)
    current = store.current_branch(cwd)
    if head is not None:
        out.setdefault(head, []).append(f"HEAD -> {current}" if current else "HEAD")
    for name in store.list_tags(cwd):
        out.setdefault(store.resolve_ref(cwd, f"refs/tags/{name}"), []).append(f"tag: {name}")
    for name in store.list_branches(cwd):
        if name != current:
            out.setdefault(store.resolve_ref(cwd, f"refs/heads/{name}"), []).append(name)
    for remote in store.list_remotes(cwd):
        for name in store.list_branches(cwd, remote=remote.name):
            ref = f"refs/remotes/{remote.name}/{name}"
            out.setdefault(store.resolve_ref(cwd, ref), []).append(f"{remote.name}/{name}")
    return out


def _decorate(labels) -> str:
    return f" ({', '.join(labels)})" if labels else ""


def format_commit(info: CommitInfo, labels=None) -> str:
    lines = [f"commit {info.oid}{_decorate(labels)}"]
    if len(info.parents) > 1:
        lines.append("Merge: " + " ".join(p[:7] for p in info.parents))
    lines += [
        f"Author: {info.author_name} <{info.author_email}>",
        f"Date:   {format_date(info.author_time, info.author_timezone)}",
        "",
    ]
    lines += [f"    {line}".rstrip() for line in info.message.rstrip("\n").split("\n")]
    return "\n".join(lines)


def _graph(text: str, last: bool) -> str:
    first, *rest = text.split("\n")
    pad = "  " if last else "| "
    return "\n".join([f"* {first}"] + [f"{pad}{line}".rstrip() for line in rest])


def _unknown_revision(rev: str):
    return fatal(f"ambiguous argument '{rev}': unknown revision or path not in the working tree.")


def _no_commits(ctx):
    branch = ctx.store.current_branch(ctx.cwd) or "HEAD"
    return fatal(f"your current branch '{branch}' does not have any commits yet")


# ---------------------------------------------------------------------------
# log
# ---------------------------------------------------------------------------

_COUNT_RE = re.compile(r"^-(\d+)$")


def _expand_count(args: list[str]) -> list[str]:
    """``-5`` -> ``-n 5``."""
    out = []
    for arg in args:
        m = _COUNT_RE.match(arg)
        out += ["-n", m.group(1)] if m else [arg]
    return out


@subcommand(
    "log", group="inspect",
    description="Show commit logs",
    usage="git log [--oneline] [--graph] [-n <number> | --max-count=<number> | -<number>] [<revision>]",
    preprocess=_expand_count,
)
@click.option("--oneline", is_flag=True)
@click.option("--graph", is_flag=True)
@click.option("-n", "--max-count", "max_count", type=click.IntRange(min=0))
@click.argument("rev", required=False)
def log(ctx, oneline, graph, max_count, rev):
    store, cwd = ctx.store, ctx.cwd
    if rev is None and store.head(cwd) is None:
        raise _no_commits(ctx)
    try:
        commits = store.log(cwd, rev or "HEAD", max_count)
    except RefNotFound:
        raise _unknown_revision(rev) from None

    decorations = _decorations(ctx)
    blocks = []
    for i, info in enumerate(commits):
        labels = decorations.get(info.oid)
        if oneline:
            text = f"{info.short}{_decorate(labels)} {info.subject}"
        else:
            text = format_commit(info, labels)
        if graph:
            text = _graph(text, last=i == len(commits) - 1)
        blocks.append(text)
    if oneline:
        return "\n".join(blocks)
    return ("\n|\n" if graph else "\n\n").join(blocks)


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------

def _tree(ctx, rev: str):
    try:
        return ctx.store.read_tree(ctx.cwd, rev)
    except RefNotFound:
        raise _unknown_revision(rev) from None


@subcommand(
    "diff", group="inspect",
    description="Show changes between commits, commit and working tree, etc",
    usage="git diff [--cached | --staged] [--name-only] [<commit> [<commit>]] [-- <path>...]",
    split_paths=True,
)
@click.option("--cached", "--staged", "cached", is_flag=True)
@click.option("--name-only", is_flag=True)
@click.argument("revisions", nargs=-1)
def diff(ctx, cached, name_only, revisions, pathspec):
    store, cwd = ctx.store, ctx.cwd
    revs: list[str] = []
    for rev in revisions:
        if ".." in rev:
            left, _, right = rev.partition("..")
            revs += [left or "HEAD", right or "HEAD"]
        else:
            revs.append(rev)
    if len(revs) > 2:
        raise click.UsageError("too many revisions")
    trees = [_tree(ctx, rev) for rev in revs]

    load_store = store_loader(store, cwd)
    if len(trees) == 2:
        old, new, load_new = trees[0], trees[1], load_store
    elif cached:
        old = trees[0] if trees else store.read_tree(cwd)
        new, load_new = store.read_index(cwd), load_store
    else:
        index = store.read_index(cwd)
        old = trees[0] if trees else index
        tracked = set(old) | set(index)
        new = {p: e for p, e in store.read_worktree(cwd).items() if p in tracked}
        load_new = worktree_loader(ctx.fs, cwd)

    paths = repo_paths(pathspec)
    if name_only:
        return "\n".join(changed_paths(old, new, paths))
    return render_diff(old, new, load_store, load_new, paths)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------

@subcommand(
    "show", group="inspect",
    description="Show a commit with its patch",
    usage="git show [<commit>]",
)
@click.argument("rev", required=False)
def show(ctx, rev):
    store, cwd = ctx.store, ctx.cwd
    if rev is None and store.head(cwd) is None:
        raise _no_commits(ctx)
    rev = rev or "HEAD"
    try:
        info = store.read_commit(cwd, rev)
    except RefNotFound:
        raise fatal(f"bad revision '{rev}'") from None

    header = format_commit(info, _decorations(ctx).get(info.oid))
    old = store.read_tree(cwd, info.parents[0]) if info.parents else {}
    new = store.read_tree(cwd, info.oid)
    load = store_loader(store, cwd)
    patch = render_diff(old, new, load, load)
    return f"{header}\n\n{patch}" if patch else header
