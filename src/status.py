"""Return codes shared by the line editor, the builtins and the engine."""
from __future__ import annotations

from enum import IntEnum


class Status(IntEnum):
    SUCCESS = 0   # keep prompting
    EXIT = 1      # leave the interactive loop
    UNKNOWN = 2   # command could not be run, keep prompting
