"""Selector rewrite phases.

Each phase is an ordered tuple of ``(text, state) -> text`` functions run
over masked source text. Phase 0 normalizes statements and expands the
keyword forms, phase 1 expands navigation sugar and phase 2 applies caller
extensions, restores literals and cleans up.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Match, Optional, Sequence, Tuple

from xml_query_engine.normalization import normalize_key
from xml_query_engine.shared.errors import END_OF_INPUT_TOKEN, CompileError

from .lexer import PLACEHOLDER_CLASS, MaskedText, is_placeholder

Transform = Callable[[str, "TransformState"], str]

DOT_FREE_PRECEDERS = "([{,.;"
NOOP_EXPRESSION = "$noop()"


@dataclass(frozen=True)
class Declaration:
    """A ``let``/``set`` statement lifted out of a selector.

    Attributes:
        key: Variable name as written
        value: Right-hand side source text, literals restored
        keyword: ``let`` or ``set``
    """

    key: str
    value: str
    keyword: str = "let"


@dataclass
class TransformState:
    """Mutable state threaded through every rewrite function."""

    masked: MaskedText
    declarations: List[Declaration] = field(default_factory=list)
    imports: List[str] = field(default_factory=list)


class CastFamily(Enum):
    PRIMITIVE = "primitive"
    CONSTANT = "constant"
    INSTANCE = "instance"
    SPECIAL = "special"


class CastType(Enum):
    """Targets of ``x as <Type>``: keyword, family and binding name."""

    ARRAY = ("array", CastFamily.PRIMITIVE, "array")
    BOOLEAN = ("boolean", CastFamily.PRIMITIVE, "boolean")
    FLOAT = ("float", CastFamily.PRIMITIVE, "float")
    INT = ("int", CastFamily.PRIMITIVE, "int")
    NUMBER = ("number", CastFamily.PRIMITIVE, "number")
    OBJECT = ("object", CastFamily.PRIMITIVE, "object")
    STRING = ("string", CastFamily.PRIMITIVE, "string")
    TRUE = ("true", CastFamily.CONSTANT, "true")
    FALSE = ("false", CastFamily.CONSTANT, "false")
    NULL = ("null", CastFamily.CONSTANT, "null")
    NAN = ("nan", CastFamily.CONSTANT, "NaN")
    DATE = ("date", CastFamily.INSTANCE, "date")
    DOCUMENT = ("document", CastFamily.INSTANCE, "document")
    FRAGMENT = ("fragment", CastFamily.INSTANCE, "fragment")
    NODE = ("node", CastFamily.INSTANCE, "node")
    TEXT = ("text", CastFamily.INSTANCE, "text")
    CAMELCASE = ("camelcase", CastFamily.SPECIAL, "camelcase")
    EVAL = ("eval", CastFamily.SPECIAL, "eval")
    JSON = ("json", CastFamily.SPECIAL, "json")
    KEYS = ("keys", CastFamily.SPECIAL, "keys")
    PASCALCASE = ("pascalcase", CastFamily.SPECIAL, "pascalcase")
    SORTED = ("sorted", CastFamily.SPECIAL, "sorted")
    REVERSED = ("reversed", CastFamily.SPECIAL, "reversed")
    SNAKECASE = ("snakecase", CastFamily.SPECIAL, "snakecase")
    TUPLE = ("tuple", CastFamily.SPECIAL, "tuple")
    UNIQUE = ("unique", CastFamily.SPECIAL, "unique")

    def __init__(self, keyword: str, family: CastFamily, binding: str) -> None:
        self.keyword = keyword
        self.family = family
        self.binding = binding

    @classmethod
    def lookup(cls, keyword: str) -> "CastType":
        """Resolve a cast keyword case-insensitively.

        Raises:
            CompileError: If ``keyword`` names no cast
        """
        lowered = keyword.lower()
        for member in cls:
            if member.keyword == lowered:
                return member
        raise CompileError(f"Unknown cast type `{keyword}`", token=keyword)


class TypeCheck(Enum):
    """Types accepted by ``x is [not] <Type>``."""

    TEXT = "text"
    NODE = "node"
    FRAGMENT = "fragment"
    NUMBER = "number"
    STRING = "string"
    OBJECT = "object"
    BOOLEAN = "boolean"
    ARRAY = "array"
    DATE = "date"
    DOCUMENT = "document"
    NULL = "null"
    EMPTY = "empty"
    NAN = "nan"

    @classmethod
    def lookup(cls, keyword: str) -> "TypeCheck":
        """Resolve a type keyword case-insensitively.

        Raises:
            CompileError: If ``keyword`` names no type
        """
        try:
            return cls(keyword.lower())
        except ValueError:
            raise CompileError(f"Unknown type `{keyword}` in type check", token=keyword) from None


# Operand scanning

_CLOSERS = ")]}"
_OPENERS = "([{"
_OPERAND_BOUNDARIES = ",;?\n"
_COMPARISON_CHARS = "=<>!"
_LOGICAL_SUFFIX = re.compile(r"(?<![\w$])(?:and|or)$")
_LOGICAL_PREFIX = re.compile(r"(?:and|or)(?![\w$])")


def _operand_start(text: str, end: int) -> int:
    """Index where the operand ending at ``end`` begins.

    Scans backwards at bracket depth zero until the start of text, an
    unbalanced opening bracket, a separator, a comparison operator or a
    logical keyword. An operand directly after a logical keyword is empty.
    """
    if _LOGICAL_SUFFIX.search(text[:end].rstrip()):
        return end
    depth = 0
    index = end
    while index > 0:
        char = text[index - 1]
        if char in _CLOSERS:
            depth += 1
        elif char in _OPENERS:
            if depth == 0:
                break
            depth -= 1
        elif depth == 0:
            if char in _OPERAND_BOUNDARIES:
                break
            if char in _COMPARISON_CHARS and not (char == ">" and text[index - 2:index - 1] == "~"):
                break
            if char.isspace() and _LOGICAL_SUFFIX.search(text, 0, index - 1):
                break
        index -= 1
    while index < end and text[index].isspace():
        index += 1
    return index


def _operand_end(text: str, start: int) -> int:
    """Index just past the operand beginning at ``start``."""
    depth = 0
    index = start
    while index < len(text):
        char = text[index]
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            if depth == 0:
                break
            depth -= 1
        elif depth == 0:
            if char in _OPERAND_BOUNDARIES:
                break
            if char in _COMPARISON_CHARS and not (char == ">" and text[index - 1:index] == "~"):
                break
            if char.isspace() and _LOGICAL_PREFIX.match(text, index + 1):
                break
        index += 1
    while index > start and text[index - 1].isspace():
        index -= 1
    return index


def _rewrite_postfix(text: str, pattern: "re.Pattern[str]",
                     build: Callable[[str, Match[str]], str]) -> str:
    """Rewrite every postfix keyword match together with its left operand.

    Matches are handled left to right, rescanning after each rewrite so
    chained forms such as ``x as int as string`` nest correctly.
    """
    position = 0
    while True:
        match = pattern.search(text, position)
        if match is None:
            return text
        start = _operand_start(text, match.start())
        operand = text[start:match.start()].strip()
        replacement = build(operand or "$", match)
        if not operand:
            matched = match.group(0)
            replacement = matched[:len(matched) - len(matched.lstrip())] + replacement
        text = f"{text[:start]}{replacement}{text[match.end():]}"
        position = start + len(replacement)


def _previous_significant(text: str, index: int) -> str:
    while index > 0:
        index -= 1
        if not text[index].isspace():
            return text[index]
    return ""


def _dot_prefix(text: str, index: int) -> str:
    """Return ``.`` unless the accessor at ``index`` already starts a step."""
    previous = _previous_significant(text, index)
    return "" if not previous or previous in DOT_FREE_PRECEDERS else "."


# Phase 0

_SHEBANG = re.compile(r"^#!.*(\n|$)", re.MULTILINE)
_KEYWORDS = re.compile(r"\b(AND|OR|NULL|TRUE|FALSE|And|Or|Null|True|False)\b")
_DECLARATION = re.compile(
    r"(?<![\w$.])(?:(let|set)\s+([A-Za-z_$][\w$-]*)\s*:?=|import\b)\s*([^;\n]*)(;|\n|$)"
)
_LEADING_BRACKET = re.compile(r"(^|[;\n])(\s*)\[")
_TRAILING_COLON = re.compile(r":\s*$")
_SELF_REFERENCE = re.compile(r"(?<![\w$.])\b(this|self)\b")
_ACCESSOR = re.compile(r":(name|key|value|match|text)\b")
_ROOT = re.compile(r":root\b")
_PRINT = re.compile(r"(?<![\w$.])print\s+(.*?)\s*(?=;|\n|$)")
_AS = re.compile(r":as\(\s*([A-Za-z]+)\s*\)|\s+as\s+([A-Za-z]+)\b")
_IS = re.compile(
    r":is\(\s*(not\s+)?([A-Za-z]+|" + PLACEHOLDER_CLASS + r"|-?\d+(?:\.\d+)?)\s*\)"
    r"|(?:(?:^|(?<=[\[(,;\n]))\s*|\s+)is\s+(not\s+)?([A-Za-z]+\b|" + PLACEHOLDER_CLASS + r"|-?\d+(?:\.\d+)?)"
)
_HAS = re.compile(r"(?<![\w$.])has\s+(" + PLACEHOLDER_CLASS + r"|[\w$-]+)")
_CONTAINS = re.compile(r"(?<![\w$.])contains\s+(" + PLACEHOLDER_CLASS + r"|\$[\w.]*|[\w.-]+)")
_TYPEOF = re.compile(r"(?<![\w$.])typeof\s+")
_HEX = re.compile(r"\b0[xX]([0-9a-fA-F]+)\b")
_LITERAL_COMPARANDS = ("true", "false")


def prepare(text: str, state: TransformState) -> str:
    """Unquote backtick literals, drop shebangs and lower-case keywords."""
    literals = state.masked.literals
    for index, literal in enumerate(literals):
        if literal.startswith("`"):
            body = literal[1:-1].replace("\\", "\\\\").replace("'", "\\'")
            literals[index] = f"'{body}'"

    text = _SHEBANG.sub("", text)
    return _KEYWORDS.sub(lambda match: match.group(1).lower(), text)


def declarations(text: str, state: TransformState) -> str:
    """Lift ``let``/``set``/``import`` statements into ``state``.

    Raises:
        CompileError: On a statement with no right-hand side or target
    """
    def replace(match: Match[str]) -> str:
        keyword, key, value = match.group(1), match.group(2), match.group(3).strip()
        if not value:
            raise CompileError("Unexpected end of input.", token=END_OF_INPUT_TOKEN,
                               position=match.end())
        value = state.masked.restore(value)
        if keyword:
            state.declarations.append(Declaration(key, value, keyword))
            return ""
        state.imports.append(value)
        return "\n"

    return _DECLARATION.sub(replace, text)


def anchor(text: str, state: TransformState) -> str:
    """Anchor leading filters to the children step and close a trailing ``:``."""
    text = _LEADING_BRACKET.sub(r"\1\2*[", text)
    return _TRAILING_COLON.sub(".", text)


def symbols(text: str, state: TransformState) -> str:
    """Expand ``this``/``self``, ``:root`` and the shorthand accessors."""
    text = _SELF_REFERENCE.sub("$", text)
    text = _ROOT.sub("$", text)

    def replace(match: Match[str]) -> str:
        previous = _previous_significant(match.string, match.start())
        if previous == "?" or is_placeholder(previous):
            return match.group(0)
        return f"{_dot_prefix(match.string, match.start())}{match.group(1)}"

    return _ACCESSOR.sub(replace, text)


def print_statements(text: str, state: TransformState) -> str:
    """Turn ``print <expr>`` statements into output-buffer appends."""
    return _PRINT.sub(r"$print(\1)", text)


def as_casts(text: str, state: TransformState) -> str:
    """Expand ``x as <Type>`` and ``x:as(<Type>)`` into cast calls."""
    def build(operand: str, match: Match[str]) -> str:
        cast = CastType.lookup(match.group(1) or match.group(2))
        return f"${cast.binding}({operand})"

    return _rewrite_postfix(text, _AS, build)


def is_checks(text: str, state: TransformState) -> str:
    """Expand ``x is [not] <Type>`` into type predicates or comparisons."""
    def build(operand: str, match: Match[str]) -> str:
        negated = bool(match.group(1) or match.group(3))
        target = match.group(2) or match.group(4)
        if is_placeholder(target) or target.lower() in _LITERAL_COMPARANDS or target[-1].isdigit():
            operator = "!=" if negated else "="
            return f"({operand} {operator} {target.lower()})"
        check = TypeCheck.lookup(target)
        expression = f'$is({operand}, "{check.value}")'
        return f"$not({expression})" if negated else expression

    return _rewrite_postfix(text, _IS, build)


def has_checks(text: str, state: TransformState) -> str:
    """Expand ``x has <key>`` into ``$has(x, "key")``."""
    def build(operand: str, match: Match[str]) -> str:
        key = match.group(1)
        if not is_placeholder(key):
            key = f'"{key}"'
        return f"$has({operand}, {key})"

    return _rewrite_postfix(text, _HAS, build)


def contains_checks(text: str, state: TransformState) -> str:
    """Expand ``x contains <value>`` into ``$contains(x, value)``."""
    def build(operand: str, match: Match[str]) -> str:
        value = match.group(1)
        if not is_placeholder(value) and not value.startswith("$"):
            value = f'"{value}"'
        return f"$contains({operand}, {value})"

    return _rewrite_postfix(text, _CONTAINS, build)


def typeof_calls(text: str, state: TransformState) -> str:
    """Expand ``typeof <expr>`` into ``$typeof(expr)``."""
    while True:
        match = _TYPEOF.search(text)
        if match is None:
            return text
        end = _operand_end(text, match.end())
        operand = text[match.end():end].strip() or "$"
        text = f"{text[:match.start()]}$typeof({operand}){text[end:]}"


def hex_literals(text: str, state: TransformState) -> str:
    return _HEX.sub(lambda match: str(int(match.group(1), 16)), text)


# Phase 1

_CHILDREN_CALL = re.compile(r"(:)?(?<![\w$.])children\(\s*(\d+)?\s*(?:,\s*(\d+)\s*)?\)")
_CHILDREN = re.compile(r":children\b")
_NTH_CHILD = re.compile(r"(:)?(?<![\w$.-])nth-child\(\s*(\d+)\s*\)")
_ATTRIBUTE_CALL = re.compile(r"(:)?(?<![\w$.])attr\(\s*(" + PLACEHOLDER_CLASS + r"|[\w:$-]+)\s*\)")
_ATTRIBUTES = re.compile(r":(?:attributes|attrs|attr)\b(?:\(\s*\))?")
_ORDINALS = ("first", "second", "third", "fourth", "fifth",
             "sixth", "seventh", "eighth", "ninth", "tenth")
_ORDINAL = re.compile(r":(%s|last)\b" % "|".join(_ORDINALS))
_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")


def _step(match: Match[str], body: str) -> str:
    prefix = _dot_prefix(match.string, match.start()) if match.group(1) else ""
    return f"{prefix}{body}"


def children(text: str, state: TransformState) -> str:
    """Expand ``:children``, ``:children(start[, count])`` and ``:nth-child(n)``."""
    def replace_call(match: Match[str]) -> str:
        start, count = match.group(2), match.group(3)
        if start is None:
            return _step(match, "children")
        if count is None:
            return _step(match, f"$slice(children, {start})")
        return _step(match, f"$slice(children, {start}, {int(start) + int(count)})")

    text = _CHILDREN_CALL.sub(replace_call, text)
    text = _CHILDREN.sub(lambda match: f"{_dot_prefix(match.string, match.start())}children", text)
    return _NTH_CHILD.sub(lambda match: _step(match, f"children[{match.group(2)}]"), text)


def attributes(text: str, state: TransformState) -> str:
    """Expand ``:attr(name)``, ``:attrs`` and ``:attributes`` into attribute access."""
    def replace_call(match: Match[str]) -> str:
        name = match.group(2)
        literal = state.masked.literal(name) if is_placeholder(name) else None
        if literal is not None:
            name = literal[1:-1]
        key = normalize_key(name)
        if not _IDENTIFIER.match(key):
            key = "`%s`" % key.replace("`", "")
        return _step(match, f"attributes.{key}")

    text = _ATTRIBUTE_CALL.sub(replace_call, text)
    return _ATTRIBUTES.sub(
        lambda match: f"{_dot_prefix(match.string, match.start())}attributes", text
    )


def ordinals(text: str, state: TransformState) -> str:
    """Expand ``:first`` … ``:tenth`` and ``:last`` into positional predicates."""
    def replace(match: Match[str]) -> str:
        word = match.group(1)
        index = -1 if word == "last" else _ORDINALS.index(word)
        return f"[{index}]"

    return _ORDINAL.sub(replace, text)


# Phase 2

_COMMENT = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_NEWLINES = re.compile(r"\s*\n\s*")
_LEADING_STEP = re.compile(r"^[.,]\s*")
_TRAILING_TERMINATORS = re.compile(r"[.;\s]+$")


def apply_extensions(text: str, state: TransformState, transforms: Sequence[Any]) -> str:
    """Run caller-supplied transforms over the masked text.

    Each transform is either a callable ``(text, state) -> text`` or an
    object exposing ``transform(text, state)``.
    """
    for extension in transforms:
        method = getattr(extension, "transform", None)
        text = method(text, state) if callable(method) else extension(text, state)
        if not isinstance(text, str):
            raise CompileError(f"Transform {extension!r} did not return text")
    return text


def _has_top_level_separator(text: str) -> bool:
    depth = 0
    for char in text:
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
        elif char == ";" and depth == 0:
            return True
    return False


def cleanup(text: str, state: TransformState) -> str:
    """Strip comments and whitespace, anchor a leading step and wrap blocks."""
    text = _COMMENT.sub(" ", text)
    text = _NEWLINES.sub(" ", text).strip()
    text = _LEADING_STEP.sub("$.", text)
    text = _TRAILING_TERMINATORS.sub("", text)
    if _has_top_level_separator(text):
        text = f"({text})"
    return text


def restore(text: str, state: TransformState) -> str:
    text = state.masked.restore(text).strip()
    return text or NOOP_EXPRESSION


PHASE_0: Tuple[Transform, ...] = (
    prepare,
    declarations,
    anchor,
    symbols,
    print_statements,
    as_casts,
    is_checks,
    has_checks,
    contains_checks,
    typeof_calls,
    hex_literals,
)

PHASE_1: Tuple[Transform, ...] = (
    children,
    attributes,
    ordinals,
)


def run_phases(masked: MaskedText, extensions: Iterable[Any] = ()) -> Tuple[str, TransformState]:
    """Run every phase over ``masked`` and return JSONata source.

    Args:
        masked: Lexed selector source
        extensions: Caller-supplied transforms applied in phase 2

    Returns:
        Tuple of the rewritten source and the final transform state
    """
    state = TransformState(masked)
    text = masked.text
    for transform in PHASE_0 + PHASE_1:
        text = transform(text, state)
    text = apply_extensions(text, state, tuple(extensions))
    text = cleanup(text, state)
    return restore(text, state), state
