"""Identifier case conversion used for attribute keys and query bindings."""

import re

_SEPARATORS = re.compile(r"^[_.\- ]+")
_SEPARATED_CHAR = re.compile(r"[_.\- ]+(\w|$)")
_DIGITS_THEN_CHAR = re.compile(r"\d+(\w|$)")
_WORD_BOUNDARY_LOWER_UPPER = re.compile(r"([a-z\d])([A-Z])")
_WORD_BOUNDARY_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z\d]+)")
_NON_WORD = re.compile(r"[\W_]+")


def _is_upper(char: str) -> bool:
    return char.upper() == char and char.lower() != char


def _is_lower(char: str) -> bool:
    return char.lower() == char and char.upper() != char


def _mark_case_boundaries(text: str) -> str:
    """Insert ``-`` at lower/upper transitions so they survive lowering."""
    chars = list(text)
    last_lower = last_upper = last_last_upper = False
    i = 0
    while i < len(chars):
        char = chars[i]
        if last_lower and _is_upper(char):
            chars.insert(i, "-")
            last_lower = False
            last_last_upper = last_upper
            last_upper = True
            i += 1
        elif last_upper and last_last_upper and _is_lower(char):
            chars.insert(i - 1, "-")
            last_last_upper = last_upper
            last_upper = False
            last_lower = True
        else:
            last_lower = _is_lower(char)
            last_last_upper = last_upper
            last_upper = _is_upper(char)
        i += 1
    return "".join(chars)


def camelcase(
    text: str,
    pascal_case: bool = False,
    preserve_consecutive_uppercase: bool = False,
) -> str:
    """Convert ``text`` to camelCase.

    Args:
        text: Identifier in any dash, underscore, dot or space separated form
        pascal_case: Upper-case the first character
        preserve_consecutive_uppercase: Keep runs such as ``ID`` intact

    Returns:
        The converted identifier

    Example:
        >>> camelcase("provider_ID", preserve_consecutive_uppercase=True)
        'providerID'
    """
    text = str(text).strip()
    if not text:
        return ""
    if len(text) == 1:
        return text.upper() if pascal_case else text.lower()

    if text != text.lower():
        text = _mark_case_boundaries(text)

    text = _SEPARATORS.sub("", text)
    if preserve_consecutive_uppercase:
        if text and _is_upper(text[0]) and not (len(text) > 1 and _is_upper(text[1])):
            text = text[0].lower() + text[1:]
    else:
        text = text.lower()

    if pascal_case and text:
        text = text[0].upper() + text[1:]

    text = _SEPARATED_CHAR.sub(lambda m: m.group(1).upper(), text)
    return _DIGITS_THEN_CHAR.sub(lambda m: m.group(0).upper(), text)


def pascalcase(text: str) -> str:
    """Convert ``text`` to PascalCase."""
    return camelcase(text, pascal_case=True)


def snakecase(text: str) -> str:
    """Convert ``text`` to snake_case."""
    text = _WORD_BOUNDARY_LOWER_UPPER.sub(r"\1 \2", str(text))
    text = _WORD_BOUNDARY_ACRONYM.sub(r"\1 \2", text)
    words = _NON_WORD.sub(" ", text).strip().lower().split()
    return "_".join(words)
