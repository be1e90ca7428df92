"""Literal masking for selector source text.

Rewrite rules operate on plain text, so string, backtick and regex literals
are replaced by single private-use placeholder characters before any rule
runs and restored afterwards. Comments are stripped at the same time.
"""

import re
from dataclasses import dataclass, field
from typing import List

from xml_query_engine.shared.errors import CompileError

PLACEHOLDER_BASE = 0xE000
PLACEHOLDER_LIMIT = 0xF8FF
PLACEHOLDER = re.compile("[\ue000-\uf8ff]")
PLACEHOLDER_CLASS = PLACEHOLDER.pattern
QUOTES = "\"'`"
REGEX_PRECEDERS = ">(,[:"


def is_placeholder(char: str) -> bool:
    return len(char) == 1 and PLACEHOLDER_BASE <= ord(char) <= PLACEHOLDER_LIMIT


@dataclass
class MaskedText:
    """Source text with literals replaced by placeholders.

    Attributes:
        text: Source with one placeholder character per literal
        literals: Literal source text, indexed by placeholder offset
    """

    text: str
    literals: List[str] = field(default_factory=list)

    def literal(self, placeholder: str) -> str:
        """Get the literal source text behind ``placeholder``."""
        return self.literals[ord(placeholder) - PLACEHOLDER_BASE]

    def restore(self, text: str) -> str:
        """Replace every placeholder in ``text`` with its literal."""
        return PLACEHOLDER.sub(lambda match: self.literal(match.group(0)), text)


def _previous_significant(chars: List[str]) -> str:
    for char in reversed(chars):
        if not char.isspace():
            return char
    return ""


def _starts_regex(output: List[str]) -> bool:
    previous = _previous_significant(output)
    return bool(previous) and previous in REGEX_PRECEDERS


def _read_quoted(source: str, start: int) -> int:
    """Return the index just past the literal opened at ``start``."""
    quote = source[start]
    index = start + 1
    while index < len(source):
        char = source[index]
        if char == "\\" and quote != "`":
            index += 2
            continue
        if char == quote:
            return index + 1
        index += 1
    raise CompileError(
        f"Missing corresponding `{quote}` in literal",
        token=source[start:],
        position=start,
    )


def _read_regex(source: str, start: int) -> int:
    index = start + 1
    in_class = False
    while index < len(source):
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if char == "\n":
            break
        if char == "[":
            in_class = True
        elif char == "]":
            in_class = False
        elif char == "/" and not in_class:
            index += 1
            while index < len(source) and source[index].isalpha():
                index += 1
            return index
        index += 1
    raise CompileError(
        "Missing corresponding `/` in regular expression",
        token=source[start:index],
        position=start,
    )


def mask(source: str) -> MaskedText:
    """Mask literals and strip comments from ``source``.

    Args:
        source: Selector source text

    Returns:
        MaskedText holding the rewritten text and its literal table

    Raises:
        CompileError: If a quoted or regex literal is not terminated
    """
    output: List[str] = []
    literals: List[str] = []
    index = 0

    while index < len(source):
        char = source[index]
        following = source[index + 1] if index + 1 < len(source) else ""

        if char in QUOTES:
            end = _read_quoted(source, index)
        elif char == "/" and following == "*":
            close = source.find("*/", index + 2)
            index = len(source) if close == -1 else close + 2
            output.append(" ")
            continue
        elif char == "/" and following == "/":
            close = source.find("\n", index)
            index = len(source) if close == -1 else close
            continue
        elif char == "/" and _starts_regex(output):
            end = _read_regex(source, index)
        else:
            output.append(char)
            index += 1
            continue

        if PLACEHOLDER_BASE + len(literals) > PLACEHOLDER_LIMIT:
            raise CompileError("Too many literals in expression", position=index)
        output.append(chr(PLACEHOLDER_BASE + len(literals)))
        literals.append(source[index:end])
        index = end

    return MaskedText("".join(output), literals)
