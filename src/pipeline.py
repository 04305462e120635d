"""Command chain model and the line parser for mishell.

A typed line becomes a singly linked chain of :class:`Command` records, one
per pipeline stage. Tokens are split on blanks only; quoting is limited to
stripping one matching pair of quotes from a single token, so unbalanced
quotes simply pass through.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from errors import ParseError

SPLITTERS = " \t"

# Indexes into Command.redirects
REDIRECT_IN = 0
REDIRECT_OUT = 1
REDIRECT_APPEND = 2

REDIRECT_LABELS = ("<", ">", ">>")

_WORD = re.compile(r"[^ \t]+")


@dataclass
class Command:
    """One pipeline stage; ``args[0]`` mirrors ``name`` for exec."""
    name: str = ""
    args: list[str] = field(default_factory=list)
    redirects: list[Optional[str]] = field(default_factory=lambda: [None, None, None])
    background: bool = False
    auto_complete: bool = False
    next: Optional[Command] = None

    @property
    def arg_count(self) -> int:
        return len(self.args)

    def set_redirect(self, kind: int, target: str) -> None:
        # only one output kind may be set at a time
        if kind in (REDIRECT_OUT, REDIRECT_APPEND):
            self.redirects[REDIRECT_OUT] = None
            self.redirects[REDIRECT_APPEND] = None
        self.redirects[kind] = target

    def stages(self) -> Iterator[Command]:
        node: Optional[Command] = self
        while node is not None:
            yield node
            node = node.next

    def last(self) -> Command:
        node = self
        while node.next is not None:
            node = node.next
        return node

    def release(self) -> None:
        """Drop the whole chain so nothing outlives the loop iteration."""
        node: Optional[Command] = self
        while node is not None:
            following = node.next
            node.next = None
            node.args.clear()
            node.redirects = [None, None, None]
            node = following


# --- Token helpers ---

def _redirect_kind(token: str) -> Optional[int]:
    if token.startswith("<"):
        return REDIRECT_IN
    if token.startswith(">>"):
        return REDIRECT_APPEND
    if token.startswith(">"):
        return REDIRECT_OUT
    return None


def strip_quotes(token: str) -> str:
    """Remove one layer of matching single or double quotes."""
    if len(token) > 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        return token[1:-1]
    return token


# --- Parsing ---

def _parse_stage(text: str) -> Command:
    cmd = Command()
    words = list(_WORD.finditer(text))
    if not words:
        cmd.args = [""]
        return cmd

    cmd.name = words[0].group()
    args: list[str] = []
    i = 1
    while i < len(words):
        word = words[i]
        arg = word.group()
        i += 1

        if arg == "|":
            rest = text[word.end():].lstrip(SPLITTERS)
            if not rest:
                raise ParseError("missing command after '|'")
            cmd.next = _parse_stage(rest)
            break

        if arg == "&":
            continue

        kind = _redirect_kind(arg)
        if kind is not None:
            target = arg[len(REDIRECT_LABELS[kind]):]
            if not target:
                if i >= len(words) or words[i].group() == "|":
                    raise ParseError(f"missing redirection target after '{arg}'")
                target = words[i].group()
                i += 1
            cmd.set_redirect(kind, target)
            continue

        args.append(strip_quotes(arg))

    cmd.args = [cmd.name, *args]
    return cmd


def parse(line: str) -> Command:
    """Turn a typed line into a command chain.

    A trailing ``?`` requests autocompletion and a trailing ``&`` asks for the
    chain to run in the background; the marker is removed from the text and
    recorded on every stage (the engine only reads the last one).
    """
    text = line.strip(SPLITTERS)
    auto_complete = background = False
    if text.endswith("?"):
        auto_complete = True
        text = text[:-1].rstrip(SPLITTERS)
    if text.endswith("&"):
        background = True
        text = text[:-1].rstrip(SPLITTERS)

    head = _parse_stage(text)
    for stage in head.stages():
        stage.auto_complete = auto_complete
        stage.background = background
    return head


# --- Formatting (debug / test aid) ---

def format_command(cmd: Command) -> str:
    lines: list[str] = []
    depth = 0
    for stage in cmd.stages():
        pad = "\t" * depth
        if depth:
            lines.append(pad[:-1] + "\tPiped to:")
        lines.append(f"{pad}Command: <{stage.name}>")
        lines.append(f"{pad}\tIs Background: {'yes' if stage.background else 'no'}")
        lines.append(f"{pad}\tNeeds Auto-complete: {'yes' if stage.auto_complete else 'no'}")
        lines.append(f"{pad}\tRedirects:")
        for label, target in zip(REDIRECT_LABELS, stage.redirects):
            lines.append(f"{pad}\t\t{label}: {target if target else 'N/A'}")
        lines.append(f"{pad}\tArguments ({stage.arg_count}):")
        for i, arg in enumerate(stage.args):
            lines.append(f"{pad}\t\tArg {i}: {arg}")
        depth += 1
    return "\n".join(lines)
