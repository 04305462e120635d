"""Recursive line counter behind the ``cloc`` builtin.

Files are sorted into four buckets by extension and every line is classified
as blank, comment or code. Block comments (``'''``/``\"\"\"`` in Python,
``/* */`` in C and C++) keep their state across lines of the same file.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

BUCKETS: Tuple[str, ...] = ("Python", "Cpp", "C", "Txt")

EXTENSIONS: Dict[str, str] = {
    ".py": "Python",
    ".cpp": "Cpp",
    ".c": "C",
}

# bucket -> (line comment prefix, block delimiters as (open, close) pairs)
COMMENT_SYNTAX: Dict[str, Tuple[Optional[str], Tuple[Tuple[str, str], ...]]] = {
    "Python": ("#", (("'''", "'''"), ('"""', '"""'))),
    "Cpp": ("//", (("/*", "*/"),)),
    "C": ("//", (("/*", "*/"),)),
    "Txt": (None, ()),
}


@dataclass
class Counts:
    files: int = 0
    blank: int = 0
    comment: int = 0
    code: int = 0

    def add(self, other: "Counts") -> None:
        self.files += other.files
        self.blank += other.blank
        self.comment += other.comment
        self.code += other.code


@dataclass
class ClocReport:
    buckets: Dict[str, Counts] = field(default_factory=lambda: {name: Counts() for name in BUCKETS})
    processed: int = 0
    ignored: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def found(self) -> int:
        return self.processed + self.ignored

    def total(self) -> Counts:
        total = Counts()
        for counts in self.buckets.values():
            total.add(counts)
        return total


def bucket_for(filename: str) -> str:
    return EXTENSIONS.get(os.path.splitext(filename)[1], "Txt")


def count_lines(lines, bucket: str, counts: Counts) -> None:
    """Classify each line of one file into ``counts``."""
    line_comment, blocks = COMMENT_SYNTAX[bucket]
    closing: Optional[str] = None
    for raw in lines:
        line = raw.replace(" ", "").replace("\t", "").rstrip("\r\n")
        if not line:
            counts.blank += 1
            continue
        if closing is not None:
            counts.comment += 1
            if closing in line:
                closing = None
            continue
        opened = next(((o, c) for o, c in blocks if line.startswith(o)), None)
        if opened is not None:
            counts.comment += 1
            if opened[1] not in line[len(opened[0]):]:
                closing = opened[1]
            continue
        if line_comment is not None and line.startswith(line_comment):
            counts.comment += 1
            continue
        counts.code += 1


def count_file(path: str, report: ClocReport) -> None:
    name = bucket_for(os.path.basename(path))
    bucket = report.buckets[name]
    bucket.files += 1
    report.processed += 1
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            count_lines(fh, name, bucket)
    except OSError as e:
        report.errors.append(f"Could not open file {path}: {e.strerror}")


def walk(directory: str, report: ClocReport) -> None:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        report.errors.append(f"Could not read folder {directory}: {e.strerror}")
        return
    for entry in entries:
        if entry.name.startswith("."):
            report.ignored += 1
        elif entry.is_dir(follow_symlinks=False):
            walk(entry.path, report)
        else:
            count_file(entry.path, report)


def cloc(directory: str) -> ClocReport:
    """Count ``directory`` recursively; raises NotADirectoryError if missing."""
    if not os.path.isdir(directory):
        raise NotADirectoryError(directory)
    report = ClocReport()
    walk(directory, report)
    return report


def format_report(report: ClocReport) -> str:
    lines = [
        f"Total Number of files found: {report.found}",
        f"Number of ignored files: {report.ignored}",
        f"Number of processed files: {report.processed}",
    ]
    rows = [(name, report.buckets[name]) for name in BUCKETS]
    rows.append(("Total", report.total()))
    for name, c in rows:
        label = f"{name};".ljust(8)
        lines.append(f"{label}{c.files} files, {c.blank} blank, {c.comment} command, {c.code} code lines.")
    return "\n".join(lines)
