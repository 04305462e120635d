"""``psvis``: draw the process tree below a pid with a kernel helper.

The helper module logs one graphviz edge per line when loaded with a pid. This
builtin captures the kernel log lines produced while it is loaded, writes them
into a ``digraph`` file and hands that to ``dot``.
"""
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, List

import psutil

GRAPH_HEADER = "digraph ProcessTree{\n"
GRAPH_FOOTER = "}\n"


def graph_lines(log_lines: Iterable[str]) -> List[str]:
    """Keep only edge/node lines, cut at their first double quote."""
    out: List[str] = []
    for line in log_lines:
        start = line.find('"')
        if start != -1:
            out.append(line[start:].rstrip("\n") + "\n")
    return out


def write_graph(path: Path, log_lines: Iterable[str]) -> None:
    with open(path, "w") as fh:
        fh.write(GRAPH_HEADER)
        fh.writelines(graph_lines(log_lines))
        fh.write(GRAPH_FOOTER)


def read_kernel_log() -> List[str]:
    completed = subprocess.run(["sudo", "-S", "dmesg"], capture_output=True, text=True)
    return completed.stdout.splitlines()


def load_helper(module: str, pid: int) -> int:
    return subprocess.run(["sudo", "-S", "insmod", module, f"pid={pid}"]).returncode


def unload_helper(module: str) -> int:
    return subprocess.run(["sudo", "-S", "rmmod", Path(module).stem]).returncode


def render(graph: Path, png: Path) -> int:
    try:
        return subprocess.run(["dot", "-Tpng", str(graph), "-o", str(png)]).returncode
    except FileNotFoundError:
        return 127


def pid_is_valid(pid: int) -> bool:
    return pid > 0 and psutil.pid_exists(pid)


def capture_tree(module: str, pid: int) -> List[str]:
    """Return the log lines the helper emitted for ``pid``."""
    before = read_kernel_log()
    load_helper(module, pid)
    try:
        after = read_kernel_log()
    finally:
        unload_helper(module)
    return after[len(before):]
