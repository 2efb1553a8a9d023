"""The emulated ``git`` command line."""

from ._base import REGISTRY, CommandResult, ShellContext, Subcommand
from ._dispatch import VERSION, Git

# Import handler modules to register their subcommands.
from . import _basic, _history, _refs, _remote, _stash  # noqa: F401

__all__ = ["Git", "CommandResult", "ShellContext", "Subcommand", "REGISTRY", "VERSION"]
