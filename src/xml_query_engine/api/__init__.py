"""Public parse entry points and the document import loader."""

from .loader import DocumentLoader, create_loader
from .parser import parse, parse_async, parse_file, parse_string

__all__ = [
    "DocumentLoader",
    "create_loader",
    "parse",
    "parse_async",
    "parse_file",
    "parse_string",
]
