"""Exception hierarchy for the XML query engine."""

from typing import Any, Optional

END_OF_INPUT_TOKEN = "(end)"


class QueryEngineError(Exception):
    """Base exception for all engine errors."""


class CompileError(QueryEngineError):
    """Raised when selector text cannot be compiled.

    Attributes:
        token: Offending token, ``(end)`` when input ended unexpectedly
        position: Character offset in the source text, when known
    """

    def __init__(self, message: str, token: Optional[str] = None,
                 position: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.token = token
        self.position = position
        self.code = code

    @property
    def incomplete(self) -> bool:
        """Check whether the error means the input is unfinished rather than invalid."""
        return self.token == END_OF_INPUT_TOKEN


class EvaluationError(QueryEngineError):
    """Raised when a compiled expression fails at evaluation time."""

    def __init__(self, message: str, code: Optional[str] = None,
                 expression: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.expression = expression


class ParseError(QueryEngineError):
    """Raised through document readiness when markup cannot be tokenized."""

    def __init__(self, message: str, position: Optional[Any] = None):
        super().__init__(message)
        self.position = position


class ParseAbortedError(ParseError):
    """Raised when the upstream stream closes or fails before the end event."""


class ImportLoadError(QueryEngineError):
    """Raised when an import loader fails for a requested name."""

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class AttachmentError(QueryEngineError):
    """Raised when a tree mutation would violate parent/child ownership."""
