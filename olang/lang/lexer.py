"""Line filter for workflow sources."""

import re
from dataclasses import dataclass
from typing import List

COMMENT_MARKERS = ("#", "//")

_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SourceLine:
    """One meaningful source line."""
    number: int
    text: str
    indent: int = 0


def tokenize_lines(source: str) -> List[SourceLine]:
    """Split source into trimmed lines, dropping blanks and comments."""
    lines: List[SourceLine] = []
    for number, raw in enumerate(_LINE_SPLIT.split(source or ""), start=1):
        text = raw.strip()
        if not text or text.startswith(COMMENT_MARKERS):
            continue
        expanded = raw.expandtabs(4)
        indent = len(expanded) - len(expanded.lstrip())
        lines.append(SourceLine(number=number, text=text, indent=indent))
    return lines
