"""Value and key normalization for the XML query engine."""

from .casing import camelcase, pascalcase, snakecase
from .values import (
    Duration,
    NptRange,
    Timecode,
    normalize_key,
    normalize_name,
    normalize_value,
)

__all__ = [
    "camelcase",
    "pascalcase",
    "snakecase",
    "Duration",
    "NptRange",
    "Timecode",
    "normalize_key",
    "normalize_name",
    "normalize_value",
]
