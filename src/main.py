#!/usr/bin/env python3

# Entry of mishell

from __future__ import annotations

import argparse
import os
import socket
import sys
from typing import Optional

from command import execute, reap_background  # local modules in the same folder
from editor import LineEditor
from errors import ParseError
from ops import SHELL_NAME, ShellSession
from pipeline import format_command, parse
from status import Status


def current_user(session: ShellSession) -> str:
    user = session.env.get("USER")
    if user:
        return user
    try:
        import pwd
        return pwd.getpwuid(os.getuid()).pw_name
    except (ImportError, KeyError):
        return "user"


def build_prompt(session: ShellSession) -> str:
    """``user@host:cwd mishell$ ``"""
    try:
        cwd = os.getcwd()
    except OSError:
        cwd = "?"
    return f"{current_user(session)}@{socket.gethostname()}:{cwd} {session.name}$ "


def run_line(line: str, session: ShellSession) -> Status:
    """Parse and execute one line; the chain is released afterwards."""
    try:
        chain = parse(line)
    except ParseError as e:
        session.error(f"parse error: {e}")
        return Status.UNKNOWN
    try:
        if session.debug:
            sys.stderr.write(format_command(chain) + "\n")
            sys.stderr.flush()
        return execute(chain, session)
    finally:
        chain.release()


def repl(session: ShellSession, editor: Optional[LineEditor] = None) -> int:
    editor = editor if editor is not None else LineEditor()

    while True:
        reap_background(session)
        sys.stdout.flush()
        try:
            line, code = editor.read_line(build_prompt(session))
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue
        if code == Status.EXIT:
            break

        try:
            status = run_line(line, session)
        except KeyboardInterrupt:
            # Ctrl-C inside a builtin drops the command, not the shell
            print()
            continue
        if status == Status.EXIT:
            break

    print()
    return 0


def parse_args(args=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="mishell - a small interactive command shell",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Builtins:
  cd <dir>, cdh, roll [n]d<size>, cloc <dir>, rename/mvsf <old> <new>,
  searchwords <file> <word>, psvis <pid> <png>, exit

Environment:
  MISHELL_DEBUG          print every parsed command chain
  MISHELL_CDHISTORY      directory history file (default ~/cdhistory.txt)
  MISHELL_PSVIS_MODULE   kernel helper loaded by psvis (default mymodule.ko)
"""
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Print each parsed command chain to stderr"
    )
    parser.add_argument(
        "--name", "-n",
        metavar="NAME",
        default=SHELL_NAME,
        help="Shell name shown in the prompt and in error messages"
    )

    return parser.parse_args(args)


def main() -> None:
    args = parse_args()
    session = ShellSession(name=args.name, debug=args.debug)
    sys.exit(repl(session))


if __name__ == "__main__":
    main()
