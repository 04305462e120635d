# module for command execution

from __future__ import annotations

import os
import subprocess
import sys
from contextlib import ExitStack
from typing import List, Optional, Tuple

from errors import ExecutionError, ResolutionError, ResourceError, ShellError
from ops import BUILTINS, EXIT_KEYWORD, ShellSession
from pipeline import REDIRECT_APPEND, REDIRECT_IN, REDIRECT_OUT, Command
from status import Status

FILE_MODE = 0o644

REDIRECT_FLAGS = {
    REDIRECT_IN: os.O_RDONLY,
    REDIRECT_OUT: os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    REDIRECT_APPEND: os.O_WRONLY | os.O_CREAT | os.O_APPEND,
}


# --- Path resolution ---

def resolve(name: str, search_path: Optional[str]) -> Optional[str]:
    """Find ``name`` in the colon separated ``search_path``; first hit wins.

    Names containing a slash are only made absolute.
    """
    if "/" in name:
        return os.path.abspath(name) if os.path.exists(name) else None
    for directory in (search_path or "").split(":"):
        if not directory:
            continue
        candidate = os.path.join(directory, name)
        if os.path.exists(candidate):
            return os.path.abspath(candidate)
    return None


def is_runnable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_chain(chain: Command, session: ShellSession) -> List[str]:
    """Resolve every stage once, before anything is started."""
    resolved: List[str] = []
    for stage in chain.stages():
        path = resolve(stage.name, session.env.get("PATH"))
        if path is None or not is_runnable(path):
            raise ResolutionError(stage.name)
        resolved.append(path)
    return resolved


# --- Redirections ---

def open_redirect(target: str, kind: int, stack: ExitStack) -> int:
    try:
        fd = os.open(target, REDIRECT_FLAGS[kind], FILE_MODE)
    except (OSError, ValueError) as e:
        raise ResourceError(target, getattr(e, "strerror", None) or str(e)) from e
    stack.callback(os.close, fd)
    return fd


def open_redirects(stage: Command, stack: ExitStack) -> Tuple[Optional[int], Optional[int]]:
    """Open the stage's redirection targets in the shell; (stdin, stdout)."""
    stdin_fd = stdout_fd = None
    if stage.redirects[REDIRECT_IN] is not None:
        stdin_fd = open_redirect(stage.redirects[REDIRECT_IN], REDIRECT_IN, stack)
    for kind in (REDIRECT_OUT, REDIRECT_APPEND):
        if stage.redirects[kind] is not None:
            stdout_fd = open_redirect(stage.redirects[kind], kind, stack)
    return stdin_fd, stdout_fd


# --- Spawning ---

def spawn(stage: Command, executable: str, stdin, stdout, session: ShellSession,
          background: bool = False) -> subprocess.Popen:
    # Popen installs stdin/stdout in the child before the exec
    sys.stdout.flush()
    try:
        return subprocess.Popen(
            stage.args,
            executable=executable,
            stdin=stdin,
            stdout=stdout,
            env=session.env,
            start_new_session=background,
        )
    except (OSError, ValueError) as e:
        raise ExecutionError(f"{stage.name}: {getattr(e, 'strerror', None) or e}") from e


def wait_all(procs: List[subprocess.Popen]) -> None:
    for proc in procs:
        while True:
            try:
                proc.wait()
                break
            except KeyboardInterrupt:
                # the child got the same SIGINT; keep waiting for it
                continue


def _abandon(procs: List[subprocess.Popen]) -> None:
    for proc in procs:
        if proc.stdout is not None:
            proc.stdout.close()
        if proc.poll() is None:
            proc.kill()
        proc.wait()


def run_chain(chain: Command, session: ShellSession) -> Status:
    """Start every stage, wiring stage i's stdout into stage i+1's stdin."""
    stages = list(chain.stages())
    executables = resolve_chain(chain, session)
    background = chain.last().background

    procs: List[subprocess.Popen] = []
    prev_out = None
    with ExitStack() as stack:
        try:
            for idx, (stage, executable) in enumerate(zip(stages, executables)):
                stdin_fd, stdout_fd = open_redirects(stage, stack)
                has_next = idx < len(stages) - 1

                if stdin_fd is not None:
                    stdin = stdin_fd
                elif idx == 0:
                    # a background chain must not read the keys meant for the prompt
                    stdin = subprocess.DEVNULL if background else None
                elif prev_out is not None:
                    stdin = prev_out
                else:
                    # previous stage wrote to a file: nothing comes down the pipe
                    stdin = subprocess.DEVNULL

                if stdout_fd is not None:
                    stdout = stdout_fd
                elif has_next:
                    stdout = subprocess.PIPE
                else:
                    stdout = None

                proc = spawn(stage, executable, stdin, stdout, session, background=background)
                procs.append(proc)
                if prev_out is not None:
                    prev_out.close()
                prev_out = proc.stdout
        except ShellError:
            if prev_out is not None:
                prev_out.close()
            _abandon(procs)
            raise

    if background:
        session.background_jobs.extend(procs)
        return Status.SUCCESS

    wait_all(procs)
    session.last_exit_code = procs[-1].returncode
    return Status.SUCCESS


def reap_background(session: ShellSession) -> None:
    """Collect finished background processes so they do not linger as zombies."""
    session.background_jobs = [p for p in session.background_jobs if p.poll() is None]


# --- Dispatch ---

def execute(chain: Command, session: ShellSession) -> Status:
    if chain.name == "":
        return Status.SUCCESS
    if chain.name == EXIT_KEYWORD:
        return Status.EXIT
    if chain.auto_complete:
        # Tab only signals the request; no completion is offered
        return Status.SUCCESS

    builtin = BUILTINS.get(chain.name)
    if builtin is not None:
        return builtin(chain.args, session)

    try:
        return run_chain(chain, session)
    except ShellError as e:
        session.error(str(e))
        return Status.UNKNOWN
