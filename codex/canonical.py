"""Markdown-aware text canonicalization (HNP-2).

Turns arbitrary source text into a canonical form so that documents which
differ only in incidental formatting produce the same fingerprint.

Two ordered passes:

1. ``normalize_markdown`` (structural, per line):
   ATX headings, emphasis markers, horizontal rules, unordered and ordered
   list markers, link/image spacing, code fences.
2. ``normalize_text`` (textual, whole document):
   BOM, NFC, line endings, trailing whitespace, tabs, leading/trailing blank
   lines, blank-line runs, single trailing newline.

The structural pass must run first: horizontal-rule detection has to see the
original spacing before whitespace is trimmed.

``canonicalize`` repeats both passes until the output stops changing, which
makes it idempotent even where one rewrite exposes another (a list marker
that turns into a horizontal rule, a BOM hiding a heading).
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional

CANONICALIZATION_PROTOCOL = "hnp-2"

TAB_WIDTH = 4

# Upper bound on rounds in canonicalize().
_MAX_ROUNDS = 8

_ATX_SPACED_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_ATX_TIGHT_RE = re.compile(r"^(#{1,6})([^\s#].*)$")
_BOLD_UNDERSCORE_RE = re.compile(r"__(.*?)__")
_ITALIC_UNDERSCORE_RE = re.compile(r"\b_(.*?)_\b")
_HRULE_RE = re.compile(r"^\s*([*\-_])\s*\1\s*\1+\s*$")
_BULLET_RE = re.compile(r"^(\s*)[*+]\s+")
_ORDERED_RE = re.compile(r"^(\s*)(\d+)\.\s+")
_LINK_RE = re.compile(r"\[([^\]]+)\]\s+\(([^)]+)\)")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\s+\(([^)]+)\)")
_TILDE_FENCE = "~~~"
_BACKTICK_FENCE = "```"
_BOM = "\ufeff"
_LINE_BREAK_RE = re.compile(r"\r\n|\r")
_TRAILING_WS_RE = re.compile(r"\s+$")


def _normalize_line(line: str) -> str:
    is_rule = bool(_HRULE_RE.match(line))

    # 1. ATX headings
    line = _ATX_SPACED_RE.sub(r"\1 \2", line)
    line = _ATX_TIGHT_RE.sub(r"\1 \2", line)

    # 2. Emphasis. A rule line made of underscores is not emphasis.
    if not is_rule:
        line = _BOLD_UNDERSCORE_RE.sub(r"**\1**", line)
        line = _ITALIC_UNDERSCORE_RE.sub(r"*\1*", line)

    # 3. Horizontal rules
    if _HRULE_RE.match(line):
        return "---"

    # 4. Unordered list markers
    line = _BULLET_RE.sub(r"\1- ", line, count=1)

    # 5. Ordered list markers
    line = _ORDERED_RE.sub(r"\1\2. ", line, count=1)

    # 6. Link / image spacing
    line = _LINK_RE.sub(r"[\1](\2)", line)
    line = _IMAGE_RE.sub(r"![\1](\2)", line)

    # 7. Code fences
    if line.startswith(_TILDE_FENCE):
        line = _BACKTICK_FENCE + line[len(_TILDE_FENCE):]

    return line


def normalize_markdown(content: str) -> str:
    """Structural pass: rewrite Markdown markers to one canonical spelling.

    Lines are split on CRLF, CR and LF alike and rejoined with LF, so no line
    reaches the marker rules with a stray carriage return.
    """
    lines = _LINE_BREAK_RE.sub("\n", content).split("\n")
    return "\n".join(_normalize_line(line) for line in lines)


def _is_blank(line: str) -> bool:
    return line.strip() == ""


def normalize_text(content: str) -> str:
    """Textual pass: whitespace, encoding and line-ending normalization."""
    if content.startswith(_BOM):
        content = content[len(_BOM):]

    content = unicodedata.normalize("NFC", content)
    content = _LINE_BREAK_RE.sub("\n", content)

    lines: List[str] = [_TRAILING_WS_RE.sub("", line) for line in content.split("\n")]
    lines = [line.replace("\t", " " * TAB_WIDTH) for line in lines]

    start = 0
    while start < len(lines) and _is_blank(lines[start]):
        start += 1
    end = len(lines)
    while end > start and _is_blank(lines[end - 1]):
        end -= 1

    out: List[str] = []
    last_was_blank = False
    for line in lines[start:end]:
        blank = _is_blank(line)
        if blank and last_was_blank:
            continue
        out.append(line)
        last_was_blank = blank

    return "\n".join(out).rstrip("\n") + "\n"


def canonicalize(text: Optional[str]) -> str:
    """Return the canonical form of ``text``.

    Total for any string; ``None`` and ``""`` yield the empty canonical form,
    a single line feed.
    """
    current = normalize_text(normalize_markdown(text or ""))
    for _ in range(_MAX_ROUNDS):
        following = normalize_text(normalize_markdown(current))
        if following == current:
            break
        current = following
    return current
