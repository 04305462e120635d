from __future__ import annotations

import os
import random
import re
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO, Tuple

import cloc as cloc_counter
import dirhistory
import psvis as psvis_tool
from status import Status

SHELL_NAME = "mishell"
EXIT_KEYWORD = "exit"
CD_HISTORY_FILE = "cdhistory.txt"
PSVIS_MODULE = "mymodule.ko"


class ShellSession:
    """Holds session-wide shell context: name, environment and builtin settings."""

    def __init__(self, name: str = SHELL_NAME, inherit_env: bool = True, debug: bool = False,
                 stdin: Optional[TextIO] = None) -> None:
        self.name: str = name
        # String-only environment used as base for subprocesses
        self.env: Dict[str, str] = dict(os.environ) if inherit_env else {}
        self.debug: bool = debug or bool(self.env.get("MISHELL_DEBUG"))
        # Handles of chains started with '&'; only reaped, never listed
        self.background_jobs: List[subprocess.Popen] = []
        self.last_exit_code: int = 0
        self.stdin: TextIO = stdin if stdin is not None else sys.stdin

    @property
    def home(self) -> str:
        return self.env.get("HOME") or os.path.expanduser("~")

    @property
    def cd_history_path(self) -> Path:
        override = self.env.get("MISHELL_CDHISTORY")
        if override:
            return Path(override)
        return Path(self.home) / CD_HISTORY_FILE

    @property
    def psvis_module(self) -> str:
        return self.env.get("MISHELL_PSVIS_MODULE") or PSVIS_MODULE

    def error(self, message: str) -> None:
        sys.stderr.write(f"-{self.name}: {message}\n")
        sys.stderr.flush()

    def ask(self, prompt: str) -> str:
        sys.stdout.write(prompt)
        sys.stdout.flush()
        return self.stdin.readline().strip()


# --- Directory changes ---

def _change_dir(target: str, session: ShellSession, cmd: str) -> bool:
    try:
        os.chdir(target)
    except (OSError, ValueError) as e:
        session.error(f"{cmd}: {getattr(e, 'strerror', None) or e}")
        return False
    session.env["PWD"] = os.getcwd()
    return True


def _record_dir(directory: str, session: ShellSession, cmd: str) -> None:
    try:
        dirhistory.remember(session.cd_history_path, directory)
    except OSError as e:
        session.error(f"{cmd}: {session.cd_history_path}: {e.strerror}")


def builtin_cd(args: List[str], session: ShellSession) -> Status:
    target = args[1] if len(args) > 1 else session.home
    if _change_dir(target, session, "cd"):
        _record_dir(os.getcwd(), session, "cd")
    return Status.SUCCESS


def _choice_rank(answer: str) -> Optional[int]:
    if answer.isdigit():
        return int(answer)
    if len(answer) == 1 and "a" <= answer <= "z":
        return ord(answer) - ord("a") + 1
    return None


def builtin_cdh(args: List[str], session: ShellSession) -> Status:
    """Pick a directory from the history; 'a' / 1 is the most recent."""
    path = session.cd_history_path
    entries = dirhistory.load(path)
    if not entries:
        return Status.SUCCESS

    count = len(entries)
    for k, entry in enumerate(entries):
        rank = count - k
        print(f"{chr(ord('a') + rank - 1)}  {rank})  {entry}")

    rank = _choice_rank(session.ask("Select directory by letter or number: "))
    if rank is None or not 1 <= rank <= count:
        session.error("cdh: invalid selection")
        return Status.SUCCESS

    target = entries[count - rank]
    if _change_dir(target, session, "cdh"):
        _record_dir(target, session, "cdh")
    return Status.SUCCESS


# --- Dice ---

_DICE = re.compile(r"^(\d*)d(\d+)$")
MAX_DICE = 1000


def roll_dice(notation: str, rng: Optional[random.Random] = None) -> Optional[Tuple[int, List[int], bool]]:
    """Roll ``[count]d<size>``; returns (total, rolls, count_given) or None."""
    m = _DICE.match(notation)
    if not m:
        return None
    count = int(m.group(1)) if m.group(1) else 0
    size = int(m.group(2))
    if size < 1 or count > MAX_DICE:
        return None
    explicit = count > 0
    rng = rng or random
    rolls = [rng.randint(1, size) for _ in range(count if explicit else 1)]
    return sum(rolls), rolls, explicit


def builtin_roll(args: List[str], session: ShellSession) -> Status:
    if len(args) != 2:
        sys.stderr.write("Wrong argument count!\n")
        return Status.SUCCESS
    result = roll_dice(args[1])
    if result is None:
        print("Error in argument.")
        return Status.SUCCESS
    total, rolls, explicit = result
    if explicit:
        print(f"Rolled {total} ({' + '.join(str(r) for r in rolls)})")
    else:
        print(f"Rolled {total}")
    return Status.SUCCESS


# --- Files ---

def builtin_cloc(args: List[str], session: ShellSession) -> Status:
    target = os.path.join(os.getcwd(), args[1] if len(args) > 1 else ".")
    try:
        report = cloc_counter.cloc(target)
    except NotADirectoryError:
        print("No folder found!")
        return Status.SUCCESS
    for problem in report.errors:
        session.error(f"cloc: {problem}")
    print(cloc_counter.format_report(report))
    return Status.SUCCESS


RENAME_USAGE = (
    "Wrong arguments!\n"
    "Usage for mvsf(move to subfolder): mvsf <old file name> <new file namepath>\n"
    "Usage for rename: rename <old file name> <new file name>\n"
)


def builtin_rename(args: List[str], session: ShellSession) -> Status:
    """Backs both ``rename`` and ``mvsf``; paths are relative to the cwd."""
    if len(args) != 3:
        sys.stderr.write(RENAME_USAGE)
        return Status.SUCCESS
    cwd = os.getcwd()
    try:
        os.rename(os.path.join(cwd, args[1]), os.path.join(cwd, args[2]))
    except OSError as e:
        print("Failed to rename/move the file.")
        session.error(f"{args[0]}: {e.strerror}")
        return Status.SUCCESS
    print("File renamed/moved successfully.")
    return Status.SUCCESS


def count_word_hits(text: str, needle: str) -> int:
    """Number of blank-separated words containing ``needle``."""
    return sum(1 for word in text.split() if needle in word)


def builtin_searchwords(args: List[str], session: ShellSession) -> Status:
    if len(args) != 3:
        sys.stderr.write("Wrong arguments! Usage for searchwords: searchwords <file name> <searched word>\n")
        return Status.SUCCESS
    filename, needle = args[1], args[2]
    try:
        with open(os.path.join(os.getcwd(), filename), "r", encoding="utf-8", errors="replace") as fh:
            hits = count_word_hits(fh.read(), needle)
    except OSError:
        print("Couldn't open the file.")
        return Status.SUCCESS
    print(f"{needle} found {hits} times in file {filename}")
    return Status.SUCCESS


# --- Process tree ---

def builtin_psvis(args: List[str], session: ShellSession) -> Status:
    if len(args) != 3:
        print("Wrong arguments! Usage: psvis <pid> <png name>")
        return Status.SUCCESS
    try:
        pid = int(args[1])
    except ValueError:
        pid = -1
    if not psvis_tool.pid_is_valid(pid):
        print("Please enter a valid PID!")
        return Status.SUCCESS

    png = Path(args[2])
    graph = png.with_suffix(".gv")
    try:
        log_lines = psvis_tool.capture_tree(session.psvis_module, pid)
        psvis_tool.write_graph(graph, log_lines)
    except OSError as e:
        session.error(f"psvis: {e.strerror or e}")
        return Status.SUCCESS
    if psvis_tool.render(graph, png) != 0:
        print("Please install graphviz packages!")
    return Status.SUCCESS


Builtin = Callable[[List[str], ShellSession], Status]

BUILTINS: Dict[str, Builtin] = {
    "cd": builtin_cd,
    "cdh": builtin_cdh,
    "roll": builtin_roll,
    "cloc": builtin_cloc,
    "rename": builtin_rename,
    "mvsf": builtin_rename,
    "searchwords": builtin_searchwords,
    "psvis": builtin_psvis,
}
