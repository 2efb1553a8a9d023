"""The ``git`` command dispatcher."""

from __future__ import annotations

import logging

from .. import __version__
from ._base import GROUPS, REGISTRY, CommandResult, ShellContext, Subcommand

logger = logging.getLogger(__name__)

VERSION = f"git version {__version__} (gitshell)"


class Git:
    """Runs ``git`` argument vectors against one :class:`ShellContext`."""

    def __init__(self, ctx: ShellContext):
        self.ctx = ctx
        self.commands: dict[str, Subcommand] = dict(REGISTRY)

    def help_text(self) -> str:
        lines = [
            "usage: git [--version] [--help] <command> [<args>]",
            "",
            "These are common Git commands used in various situations:",
        ]
        width = max(len(name) for name in self.commands) + 3
        for key, heading in GROUPS:
            members = [c for c in self.commands.values() if c.group == key]
            if not members:
                continue
            lines += ["", heading]
            lines += [f"   {c.name:<{width}}{c.description}" for c in members]
        lines += ["", "See 'git <command> --help' to read about a specific subcommand."]
        return "\n".join(lines)

    def execute(self, argv) -> CommandResult:
        """Run one command line and return its exit code and output."""
        argv = list(argv)
        if argv and argv[0] == "git":
            argv = argv[1:]
        if not argv or argv[0] in ("--help", "-h"):
            return CommandResult.ok(self.help_text())
        if argv[0] == "help":
            topic = self.commands.get(argv[1]) if len(argv) > 1 else None
            return CommandResult.ok(f"usage: {topic.usage}" if topic else self.help_text())
        if argv[0] in ("--version", "version"):
            return CommandResult.ok(VERSION)

        name, args = argv[0], argv[1:]
        handler = self.commands.get(name)
        if handler is None:
            return CommandResult.fail(f"git: '{name}' is not a git command. See 'git --help'.")
        logger.debug("git %s %s", name, " ".join(args))
        try:
            return handler.run(self.ctx, args)
        except Exception as exc:
            logger.debug("git %s raised", name, exc_info=True)
            return CommandResult.fail(f"git: {exc}")
