"""branch, checkout, tag and reset."""

from __future__ import annotations

import fnmatch

import click
from dulwich.refs import check_ref_format

from ..exceptions import AlreadyExists, LocalChangesError, RefNotFound, StoreError
from ..status import Change, classify
from ._base import error, expand_equals, fatal, overwritten, repo_path, subcommand


def _unknown_revision(rev: str):
    return fatal(f"ambiguous argument '{rev}': unknown revision or path not in the working tree.")


def _valid_branch_name(name: str) -> None:
    if not check_ref_format(b"refs/heads/" + name.encode()):
        raise fatal(f"'{name}' is not a valid branch name.")


# ---------------------------------------------------------------------------
# branch
# ---------------------------------------------------------------------------

def _list_branches(ctx, patterns, remotes: bool, all_: bool) -> str:
    store, cwd = ctx.store, ctx.cwd
    current = store.current_branch(cwd)

    def wanted(name):
        return not patterns or any(fnmatch.fnmatchcase(name, p) for p in patterns)

    lines = []
    if not remotes:
        head = store.head(cwd)
        if current is None and head is not None:
            lines.append(f"* (HEAD detached at {head[:7]})")
        for name in store.list_branches(cwd):
            if wanted(name):
                lines.append(f"* {name}" if name == current else f"  {name}")
    if remotes or all_:
        prefix = "remotes/" if all_ else ""
        for remote in store.list_remotes(cwd):
            for name in store.list_branches(cwd, remote=remote.name):
                full = f"{remote.name}/{name}"
                if wanted(full):
                    lines.append(f"  {prefix}{full}")
    return "\n".join(lines)


def _delete_branch(ctx, name: str, force: bool) -> str:
    store, cwd = ctx.store, ctx.cwd
    if name == store.current_branch(cwd):
        raise error(f"Cannot delete branch '{name}' checked out at '{cwd}'")
    try:
        tip = store.resolve_ref(cwd, f"refs/heads/{name}")
    except RefNotFound:
        raise error(f"branch '{name}' not found.") from None
    if not force:
        head = store.head(cwd)
        if head is None or (tip != head and not store.is_descendent(cwd, head, tip)):
            raise error(
                f"The branch '{name}' is not fully merged.\n"
                f"If you are sure you want to delete it, run 'git branch -D {name}'."
            )
    store.delete_branch(cwd, name)
    return f"Deleted branch {name} (was {tip[:7]})."


@subcommand(
    "branch", group="modify",
    description="List, create, or delete branches",
    usage="git branch [-l] [-r | -a] [<pattern>...] | <name> [<start-point>] "
          "| (-d | -D) <name>... | (-m | -M) [<old>] <new>",
    mutates=True,
)
@click.option("-l", "--list", "list_", is_flag=True)
@click.option("-d", "--delete", is_flag=True)
@click.option("-D", "force_delete", is_flag=True)
@click.option("-m", "--move", is_flag=True)
@click.option("-M", "force_move", is_flag=True)
@click.option("-r", "--remotes", is_flag=True)
@click.option("-a", "--all", "all_", is_flag=True)
@click.option("-f", "--force", is_flag=True)
@click.argument("args", nargs=-1)
def branch(ctx, list_, delete, force_delete, move, force_move, remotes, all_, force, args):
    store, cwd = ctx.store, ctx.cwd

    if delete or force_delete:
        if not args:
            raise fatal("branch name required")
        return "\n".join(_delete_branch(ctx, name, force_delete or force) for name in args)

    if move or force_move:
        if len(args) == 1:
            old, new = store.current_branch(cwd), args[0]
            if old is None:
                raise fatal("cannot rename the current branch while not on any.")
        elif len(args) == 2:
            old, new = args
        else:
            raise click.UsageError("too many arguments for a rename operation")
        _valid_branch_name(new)
        try:
            store.rename_branch(cwd, old, new, force=force_move or force)
        except AlreadyExists:
            raise fatal(f"A branch named '{new}' already exists.") from None
        except RefNotFound:
            raise error(f"branch '{old}' not found.") from None
        return ""

    if args and not (list_ or remotes or all_):
        if len(args) > 2:
            raise click.UsageError("too many arguments")
        name = args[0]
        start = args[1] if len(args) == 2 else "HEAD"
        _valid_branch_name(name)
        try:
            store.branch(cwd, name, start, force=force)
        except AlreadyExists:
            raise fatal(f"A branch named '{name}' already exists.") from None
        except RefNotFound:
            shown = start
            if start == "HEAD":
                shown = store.current_branch(cwd) or start
            raise fatal(f"not a valid object name: '{shown}'") from None
        return ""

    return _list_branches(ctx, args, remotes, all_)


# ---------------------------------------------------------------------------
# checkout
# ---------------------------------------------------------------------------

def _switch_tree(ctx, oid: str, force: bool) -> None:
    """Update index and working tree to *oid*, leaving HEAD alone."""
    try:
        ctx.store.checkout(ctx.cwd, oid, force=force, no_update_head=True)
    except LocalChangesError as exc:
        raise overwritten(exc, "checkout") from None


def _restore_paths(ctx, rev: str | None, specs) -> str:
    store, cwd = ctx.store, ctx.cwd
    paths = [repo_path(s) for s in specs]

    if rev is not None:
        if "" in paths:
            paths = store.list_files(cwd, rev)
        try:
            store.checkout(cwd, rev, paths=paths)
        except RefNotFound as exc:
            if exc.kind == "pathspec":
                raise error(f"pathspec '{exc.ref}' did not match any file(s) known to git") from None
            raise fatal(f"invalid reference: {rev}") from None
        return ""

    index = store.read_index(cwd)
    restore = {}
    for spec, path in zip(specs, paths):
        matched = [p for p in index if not path or p == path or p.startswith(path + "/")]
        if not matched:
            raise error(f"pathspec '{spec}' did not match any file(s) known to git")
        restore.update((p, index[p]) for p in matched)
    for path, (oid, mode) in sorted(restore.items()):
        ctx.fs.write_file(ctx.path(path), store.read_blob(cwd, oid), mode)
    return ""


def _is_tracked(ctx, spec: str) -> bool:
    try:
        path = repo_path(spec)
    except click.ClickException:
        return False
    return any(not path or p == path or p.startswith(path + "/")
               for p in ctx.store.read_index(ctx.cwd))


def _new_branch(ctx, name: str, start: str | None, *, reset: bool, force: bool) -> str:
    store, cwd = ctx.store, ctx.cwd
    _valid_branch_name(name)
    existed = name in store.list_branches(cwd)
    if existed and not reset:
        raise fatal(f"A branch named '{name}' already exists.")

    if start is None and store.head(cwd) is None:
        # unborn: the new branch comes into being with the first commit
        store.write_ref(cwd, "HEAD", f"refs/heads/{name}", symbolic=True)
        return f"Switched to a new branch '{name}'"

    try:
        oid = store.resolve_ref(cwd, start or "HEAD")
    except RefNotFound:
        raise fatal(
            f"'{start}' is not a commit and a branch '{name}' cannot be created from it"
        ) from None
    _switch_tree(ctx, oid, force)
    store.write_ref(cwd, f"refs/heads/{name}", oid)
    store.write_ref(cwd, "HEAD", f"refs/heads/{name}", symbolic=True)
    if existed:
        return f"Switched to and reset branch '{name}'"
    return f"Switched to a new branch '{name}'"


def _switch(ctx, target: str, *, force: bool, detach: bool) -> str:
    store, cwd = ctx.store, ctx.cwd
    current = store.current_branch(cwd)

    if not detach and target in store.list_branches(cwd):
        if target == current:
            return f"Already on '{target}'"
        _switch_tree(ctx, store.resolve_ref(cwd, f"refs/heads/{target}"), force)
        store.write_ref(cwd, "HEAD", f"refs/heads/{target}", symbolic=True)
        return f"Switched to branch '{target}'"

    if not detach:
        tracking = [r.name for r in store.list_remotes(cwd)
                    if target in store.list_branches(cwd, remote=r.name)]
        if len(tracking) == 1:
            remote = tracking[0]
            out = _new_branch(ctx, target, f"refs/remotes/{remote}/{target}",
                              reset=False, force=force)
            store.set_upstream(cwd, target, remote)
            return f"branch '{target}' set up to track '{remote}/{target}'.\n{out}"

    try:
        oid = store.resolve_ref(cwd, target)
    except RefNotFound:
        if not detach and _is_tracked(ctx, target):
            return _restore_paths(ctx, None, [target])
        raise error(f"pathspec '{target}' did not match any file(s) known to git") from None
    _switch_tree(ctx, oid, force)
    store.write_ref(cwd, "HEAD", oid)
    info = store.read_commit(cwd, oid)
    if detach and target in store.list_branches(cwd):
        return f"HEAD is now at {info.short} {info.subject}"
    return (
        f"Note: switching to '{target}'.\n\n"
        "You are in 'detached HEAD' state. You can look around, make experimental\n"
        "changes and commit them, and you can discard any commits you make in this\n"
        "state without impacting any branches by switching back to a branch.\n\n"
        f"HEAD is now at {info.short} {info.subject}"
    )


@subcommand(
    "checkout", group="modify",
    description="Switch branches or restore working tree files",
    usage="git checkout [-f] [--detach] <branch> | (-b | -B) <new-branch> [<start-point>] "
          "| [<tree-ish>] -- <pathspec>...",
    mutates=True, split_paths=True,
)
@click.option("-b", "new_branch")
@click.option("-B", "reset_branch")
@click.option("-f", "--force", is_flag=True)
@click.option("--detach", is_flag=True)
@click.argument("args", nargs=-1)
def checkout(ctx, new_branch, reset_branch, force, detach, args, pathspec):
    if pathspec is not None:
        if len(args) > 1:
            raise click.UsageError("only one tree-ish may be given before '--'")
        if not pathspec:
            raise click.UsageError("no pathspec given")
        return _restore_paths(ctx, args[0] if args else None, pathspec)

    if new_branch or reset_branch:
        if len(args) > 1:
            raise click.UsageError("too many arguments")
        return _new_branch(ctx, new_branch or reset_branch, args[0] if args else None,
                           reset=bool(reset_branch), force=force)

    if not args:
        return ""
    if len(args) > 1:
        try:
            ctx.store.resolve_ref(ctx.cwd, args[0])
        except RefNotFound:
            return _restore_paths(ctx, None, args)
        return _restore_paths(ctx, args[0], args[1:])
    return _switch(ctx, args[0], force=force, detach=detach)


# ---------------------------------------------------------------------------
# tag
# ---------------------------------------------------------------------------

@subcommand(
    "tag", group="modify",
    description="Create, list or delete tags",
    usage="git tag [-l] [<pattern>...] | [-a] [-f] [-m <msg>] <tagname> [<commit>] | -d <tagname>...",
    mutates=True, preprocess=expand_equals("-m"),
)
@click.option("-l", "--list", "list_", is_flag=True)
@click.option("-a", "--annotate", is_flag=True)
@click.option("-m", "--message")
@click.option("-d", "--delete", is_flag=True)
@click.option("-f", "--force", is_flag=True)
@click.argument("args", nargs=-1)
def tag(ctx, list_, annotate, message, delete, force, args):
    store, cwd = ctx.store, ctx.cwd

    if delete:
        if not args:
            raise fatal("tag name required")
        lines = []
        for name in args:
            try:
                oid = store.delete_tag(cwd, name)
            except RefNotFound:
                raise error(f"tag '{name}' not found.") from None
            lines.append(f"Deleted tag '{name}' (was {oid[:7]})")
        return "\n".join(lines)

    if list_ or not args:
        return "\n".join(
            name for name in store.list_tags(cwd)
            if not args or any(fnmatch.fnmatchcase(name, p) for p in args)
        )

    if len(args) > 2:
        raise click.UsageError("too many arguments")
    if annotate and message is None:
        raise fatal("no tag message given (use -m <msg>)")
    name = args[0]
    rev = args[1] if len(args) == 2 else "HEAD"
    try:
        store.tag(cwd, name, rev, message=message, tagger=ctx.author, force=force)
    except AlreadyExists:
        raise fatal(f"tag '{name}' already exists") from None
    except RefNotFound:
        raise fatal(f"not a valid object name: '{rev}'") from None
    except StoreError as exc:
        raise fatal(f"{exc}.") from None
    return ""


# ---------------------------------------------------------------------------
# reset
# ---------------------------------------------------------------------------

def _unstaged_summary(ctx) -> str:
    codes = {Change.UNSTAGED_MODIFY: "M", Change.UNSTAGED_DELETE: "D"}
    lines = []
    for row in ctx.store.status_matrix(ctx.cwd):
        unstaged = classify(row)[1]
        if unstaged is not None:
            lines.append(f"{codes[unstaged]}\t{row.path}")
    if not lines:
        return ""
    return "Unstaged changes after reset:\n" + "\n".join(lines)


def _reset_paths(ctx, rev: str, specs) -> str:
    paths = [repo_path(s) for s in specs]
    if "" in paths:
        paths = sorted(set(ctx.store.list_files(ctx.cwd)) | set(
            ctx.store.read_tree(ctx.cwd, rev)))
    try:
        ctx.store.reset_index(ctx.cwd, paths, rev)
    except RefNotFound as exc:
        raise _unknown_revision(exc.ref) from None
    return _unstaged_summary(ctx)


def _reset_unborn(ctx, mode: str) -> str:
    store, cwd = ctx.store, ctx.cwd
    staged = store.list_files(cwd)
    if mode == "soft" or not staged:
        return ""
    store.remove(cwd, staged)
    if mode == "hard":
        for path in staged:
            if ctx.fs.exists(ctx.path(path)):
                ctx.fs.unlink(ctx.path(path))
    return ""


@subcommand(
    "reset", group="modify",
    description="Reset current HEAD to the specified state",
    usage="git reset [--soft | --mixed | --hard] [<commit>] | [<tree-ish>] [--] <pathspec>...",
    mutates=True, split_paths=True,
)
@click.option("--soft", "mode", flag_value="soft")
@click.option("--mixed", "mode", flag_value="mixed", default=True)
@click.option("--hard", "mode", flag_value="hard")
@click.argument("args", nargs=-1)
def reset(ctx, mode, args, pathspec):
    store, cwd = ctx.store, ctx.cwd
    rev, paths = "HEAD", None
    if pathspec is not None:
        if len(args) > 1:
            raise click.UsageError("only one tree-ish may be given before '--'")
        rev = args[0] if args else "HEAD"
        paths = list(pathspec)
    elif args:
        try:
            store.resolve_ref(cwd, args[0])
            rev, paths = args[0], list(args[1:]) or None
        except RefNotFound:
            if store.head(cwd) is not None and not any(
                _is_tracked(ctx, a) or ctx.fs.exists(ctx.path(a)) for a in args
            ):
                raise _unknown_revision(args[0]) from None
            paths = list(args)

    if paths is not None:
        if mode in ("soft", "hard"):
            raise fatal(f"Cannot do {mode} reset with paths.")
        return _reset_paths(ctx, rev, paths)

    if rev == "HEAD" and store.head(cwd) is None:
        return _reset_unborn(ctx, mode)
    try:
        target = store.resolve_ref(cwd, rev)
    except RefNotFound:
        raise _unknown_revision(rev) from None

    if mode == "soft":
        store.move_head(cwd, target)
        return ""
    if mode == "mixed":
        store.checkout(cwd, target, no_checkout=True, no_update_head=True)
        store.move_head(cwd, target)
        return _unstaged_summary(ctx)
    store.checkout(cwd, target, force=True, no_update_head=True)
    store.move_head(cwd, target)
    info = store.read_commit(cwd, target)
    return f"HEAD is now at {info.short} {info.subject}"
