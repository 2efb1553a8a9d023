"""Subcommand registry, shared context and result types."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable

import click

from ..exceptions import CommandError, LocalChangesError, NotARepository, StoreError
from ..fs import FileSystem
from ..settings import GitSettings
from ..status import StatusCache
from ..store import ObjectStore
from ..tree import CONTROL_DIR, _normalize_path

logger = logging.getLogger(__name__)

NOT_A_REPOSITORY = "fatal: not a git repository (or any of the parent directories): .git"

# (key, heading) in help order
GROUPS = (
    ("start", "start a working area"),
    ("modify", "work on the current change"),
    ("inspect", "examine the history and state"),
    ("collaborate", "collaborate"),
    ("configure", "configuration"),
)


@dataclass
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @classmethod
    def ok(cls, stdout: str = "") -> CommandResult:
        return cls(0, stdout, "")

    @classmethod
    def fail(cls, stderr: str, stdout: str = "") -> CommandResult:
        return cls(1, stdout, stderr)


@dataclass
class ShellContext:
    """State shared by every subcommand of one dispatcher."""

    store: ObjectStore
    cwd: str
    signer: object | None = None
    settings: GitSettings = field(default_factory=GitSettings)
    cache: StatusCache = field(default_factory=StatusCache)

    @property
    def fs(self) -> FileSystem:
        return self.store.fs

    def path(self, rel: str) -> str:
        return os.path.join(self.cwd, rel)

    @property
    def author(self) -> str | None:
        return self.store.identity(self.cwd) or self.settings.identity


@dataclass
class Subcommand:
    """One registered subcommand: its click grammar plus help metadata.

    ``split_paths`` subcommands receive everything after a literal ``--``
    as ``pathspec`` (None when no ``--`` was given).
    """

    name: str
    group: str
    description: str
    usage: str
    command: click.Command
    callback: Callable
    mutates: bool = False
    requires_repo: bool = True
    split_paths: bool = False
    preprocess: Callable[[list[str]], list[str]] | None = None

    def _usage_error(self, message: str) -> CommandResult:
        return CommandResult.fail(f"error: {message}\nusage: {self.usage}")

    def run(self, ctx: ShellContext, args: list[str]) -> CommandResult:
        head = args[:args.index("--")] if "--" in args else args
        if "--help" in head or "-h" in head:
            return CommandResult.ok(f"usage: {self.usage}")
        if self.requires_repo:
            try:
                require_repo(ctx)
            except CommandError as exc:
                return CommandResult.fail(exc.format_message())

        pathspec = None
        if self.split_paths and "--" in args:
            i = args.index("--")
            args, pathspec = args[:i], tuple(args[i + 1:])
        if self.preprocess is not None:
            args = self.preprocess(list(args))

        try:
            with self.command.make_context(self.name, list(args)) as cctx:
                params = dict(cctx.params)
        except click.UsageError as exc:
            return self._usage_error(exc.format_message())
        if self.split_paths:
            params["pathspec"] = pathspec

        try:
            out = self.callback(ctx, **params)
        except click.UsageError as exc:
            return self._usage_error(exc.format_message())
        except CommandError as exc:
            return CommandResult.fail(exc.format_message())
        except NotARepository:
            return CommandResult.fail(NOT_A_REPOSITORY)
        except StoreError as exc:
            logger.debug("%s failed", self.name, exc_info=True)
            return CommandResult.fail(f"{self.name}: {exc}")
        finally:
            if self.mutates:
                ctx.cache.invalidate(ctx.cwd)
        if isinstance(out, CommandResult):
            return out
        return CommandResult.ok(out or "")


REGISTRY: dict[str, Subcommand] = {}


def subcommand(name: str, *, group: str, description: str, usage: str,
               mutates: bool = False, requires_repo: bool = True,
               split_paths: bool = False, preprocess=None):
    """Register the decorated function as subcommand *name*.

    Apply below ``click.option``/``click.argument`` decorators; the
    function is called as ``f(ctx, **params)``.
    """
    def decorator(f):
        command = click.command(name, add_help_option=False)(f)
        REGISTRY[name] = Subcommand(
            name=name, group=group, description=description, usage=usage,
            command=command, callback=command.callback, mutates=mutates,
            requires_repo=requires_repo, split_paths=split_paths,
            preprocess=preprocess,
        )
        return f
    return decorator


# ---------------------------------------------------------------------------
# Helpers shared by handlers
# ---------------------------------------------------------------------------

def require_repo(ctx: ShellContext) -> None:
    """Raise the not-a-repository error unless ``<cwd>/.git`` exists."""
    try:
        ctx.fs.stat(ctx.path(CONTROL_DIR))
    except FileNotFoundError:
        raise CommandError(NOT_A_REPOSITORY) from None


def fatal(message: str) -> CommandError:
    return CommandError(f"fatal: {message}")


def error(message: str) -> CommandError:
    return CommandError(f"error: {message}")


def expand_equals(*flags: str):
    """Preprocessor turning ``-m=value`` into ``-m value`` for *flags*."""
    def preprocess(args: list[str]) -> list[str]:
        out = []
        for arg in args:
            flag, sep, value = arg.partition("=")
            if sep and flag in flags:
                out += [flag, value]
            else:
                out.append(arg)
        return out
    return preprocess


def plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def overwritten(exc: LocalChangesError, action: str,
                hint: str = "Please commit your changes or stash them before you switch branches.",
                ) -> CommandError:
    """The refusal printed when *action* would clobber local changes."""
    files = "\n".join(f"\t{path}" for path in exc.paths)
    return error(
        f"Your local changes to the following files would be overwritten by {action}:\n"
        f"{files}\n{hint}\nAborting"
    )


def repo_path(spec: str) -> str:
    """Repository-relative form of a user path; '' means the whole tree."""
    if os.path.isabs(spec):
        raise fatal(f"'{spec}': absolute paths are not supported")
    if spec.rstrip("/") in (".", ""):
        return ""
    try:
        return _normalize_path(spec)
    except ValueError:
        raise fatal(f"'{spec}' is outside repository") from None


def repo_paths(specs) -> list[str] | None:
    """Path filter for *specs*; None when they are empty or cover the whole tree."""
    rels = [repo_path(s) for s in specs or ()]
    if not rels or "" in rels:
        return None
    return rels
