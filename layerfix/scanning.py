"""Character-level scanning of JS/TS source outside literals and comments."""

from __future__ import annotations

import re
from typing import Iterator, Tuple

# A slash after one of these starts a regex literal rather than a division.
_REGEX_PRECEDERS = set("(,=:[!&|?{;+-*%~^")
# A quote after one of these opens a string. After ">", "}" or a plain word it
# is JSX text (`<p>Don't</p>`, `{name}'s`).
_STRING_PRECEDERS = set("(,=:[!&|?{;+-*%~^<")
_STRING_KEYWORDS = frozenset(
    {
        "await",
        "case",
        "default",
        "delete",
        "do",
        "else",
        "export",
        "from",
        "import",
        "in",
        "instanceof",
        "of",
        "return",
        "throw",
        "typeof",
        "void",
        "yield",
    }
)
_TRAILING_WORD = re.compile(r"[A-Za-z_$][\w$]*$")


def iter_code(code: str, start: int = 0) -> Iterator[Tuple[int, str]]:
    """Yield ``(index, char)`` for characters outside strings, templates, comments and regex literals."""
    index = start
    length = len(code)
    previous = ""
    previous_index = -1
    prior = ""
    while index < length:
        char = code[index]
        nxt = code[index + 1] if index + 1 < length else ""
        if char == "/" and nxt == "/":
            newline = code.find("\n", index)
            index = length if newline < 0 else newline
            continue
        if char == "/" and nxt == "*":
            close = code.find("*/", index + 2)
            index = length if close < 0 else close + 2
            continue
        if char in "'\"" and _opens_string(code, previous, previous_index, prior):
            index = _skip_quoted(code, index, char, stop_at_newline=True)
            prior, previous, previous_index = previous, char, index - 1
            continue
        if char == "`":
            index = _skip_quoted(code, index, char, stop_at_newline=False)
            prior, previous, previous_index = previous, char, index - 1
            continue
        if char == "/" and (previous == "" or previous in _REGEX_PRECEDERS):
            index = _skip_regex_literal(code, index)
            prior, previous, previous_index = previous, "/", index - 1
            continue
        yield index, char
        if not char.isspace():
            prior, previous, previous_index = previous, char, index
        index += 1


def _opens_string(code: str, previous: str, previous_index: int, prior: str) -> bool:
    if previous == "" or previous in _STRING_PRECEDERS:
        return True
    if previous == ">":
        # `=> '...'` is an arrow body; `<p>'...` is JSX text.
        return prior == "="
    if previous.isalnum() or previous in "_$":
        word = _TRAILING_WORD.search(code, max(0, previous_index - 15), previous_index + 1)
        return word is not None and word.group(0) in _STRING_KEYWORDS
    return False


def _skip_quoted(code: str, start: int, quote: str, *, stop_at_newline: bool) -> int:
    index = start + 1
    while index < len(code):
        char = code[index]
        if char == "\\":
            index += 2
            continue
        if char == quote:
            return index + 1
        if stop_at_newline and char == "\n":
            # Unterminated on this line, so not a string literal.
            return index
        index += 1
    return index


def _skip_regex_literal(code: str, start: int) -> int:
    index = start + 1
    in_class = False
    while index < len(code):
        char = code[index]
        if char == "\\":
            index += 2
            continue
        if char == "\n":
            # Not a regex after all; treat the slash as an operator.
            return start + 1
        if char == "[":
            in_class = True
        elif char == "]":
            in_class = False
        elif char == "/" and not in_class:
            return index + 1
        index += 1
    return start + 1


__all__ = ["iter_code"]
