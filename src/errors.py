"""Exception types raised while parsing and running a command line.

Every per-command error is local: the loop reports it and prompts again.
"""
from __future__ import annotations


class ShellError(Exception):
    """Base class for errors reported back to the interactive loop."""


class ParseError(ShellError):
    """The line cannot be turned into a command chain."""


class ResolutionError(ShellError):
    """The command name does not resolve to a runnable file."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name}: command not found")
        self.name = name


class ExecutionError(ShellError):
    """Creating the process failed."""


class ResourceError(ShellError):
    """A redirection target could not be opened."""

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"{target}: {reason}")
        self.target = target
        self.reason = reason
