"""Raw-mode line editor used for the interactive prompt.

The terminal is switched to non-canonical, non-echoing mode for the length of
one read so keys can be handled one byte at a time. Only a handful of keys are
understood: Enter, Backspace, Tab, the up arrow and Ctrl-D.
"""
from __future__ import annotations

import os
import sys
import termios
from typing import BinaryIO, Optional

from status import Status

MAX_LINE = 4096

CTRL_D = 0x04
BACKSPACE = 0x08
TAB = 0x09
NEWLINE = 0x0A
RETURN = 0x0D
ESCAPE = 0x1B
DELETE = 0x7F

AUTOCOMPLETE_SENTINEL = b"?"
ERASE = b"\b \b"


class LineEditor:
    """Reads one edited line per call and remembers the previous one.

    One instance lives for the whole shell process; ``previous`` is the single
    history slot recalled with the up arrow.
    """

    def __init__(self, fd: Optional[int] = None, out: Optional[BinaryIO] = None,
                 max_length: int = MAX_LINE) -> None:
        self.fd: int = sys.stdin.fileno() if fd is None else fd
        self.out: BinaryIO = out if out is not None else sys.stdout.buffer
        self.max_length = max_length
        self.previous: str = ""

    # --- terminal mode ---

    def _enter_raw(self) -> Optional[list]:
        """Disable ICANON and ECHO; returns the settings to restore, if any."""
        try:
            saved = termios.tcgetattr(self.fd)
        except termios.error:
            # not a terminal (pipe, file): read as-is
            return None
        raw = termios.tcgetattr(self.fd)
        raw[3] &= ~(termios.ICANON | termios.ECHO)
        raw[6][termios.VMIN] = 1
        raw[6][termios.VTIME] = 0
        termios.tcsetattr(self.fd, termios.TCSANOW, raw)
        return saved

    def _restore(self, saved: Optional[list]) -> None:
        if saved is not None:
            termios.tcsetattr(self.fd, termios.TCSANOW, saved)

    # --- io helpers ---

    def _write(self, data: bytes) -> None:
        self.out.write(data)
        self.out.flush()

    def _getch(self) -> bytes:
        return os.read(self.fd, 1)

    def _is_up_arrow(self) -> bool:
        # ESC already consumed; arrows arrive as ESC [ X or ESC O X
        lead = self._getch()
        if lead == b"O":
            return self._getch() == b"A"
        if lead != b"[":
            return False
        # CSI: parameter and intermediate bytes up to one final byte
        params = b""
        while True:
            ch = self._getch()
            if not ch:
                return False
            if 0x20 <= ch[0] <= 0x3F:
                params += ch
                continue
            return not params and ch == b"A"

    # --- public API ---

    def read_line(self, prompt: str = "") -> tuple[str, Status]:
        saved = self._enter_raw()
        try:
            self._write(prompt.encode())
            buf = bytearray()
            while True:
                ch = self._getch()
                if not ch:
                    if not buf:
                        return "", Status.EXIT
                    break

                code = ch[0]
                if code == CTRL_D:
                    return "", Status.EXIT

                if code == TAB:
                    buf += AUTOCOMPLETE_SENTINEL
                    self._write(b"\n")
                    break

                if code in (DELETE, BACKSPACE):
                    if buf:
                        del buf[-1]
                        self._write(ERASE)
                    continue

                if code == ESCAPE:
                    if self._is_up_arrow():
                        self._write(ERASE * len(buf) + self.previous.encode())
                        recalled = bytearray(self.previous.encode())
                        self.previous = buf.decode("utf-8", "replace")
                        buf = recalled
                    continue

                if code in (NEWLINE, RETURN):
                    self._write(b"\n")
                    break

                self._write(ch)
                buf += ch
                if len(buf) >= self.max_length - 1:
                    break

            line = buf.decode("utf-8", "replace")
            self.previous = line
            return line, Status.SUCCESS
        finally:
            self._restore(saved)
