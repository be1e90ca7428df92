"""Shared utilities for the XML query engine.

This module provides configuration objects, the exception hierarchy,
diagnostic types and logging helpers used across all layers.
"""

from .config import (
    ConfigError,
    ConfigValidationError,
    EngineConfig,
    QueryConfig,
    TokenizerConfig,
    TreeConfig,
)
from .errors import (
    AttachmentError,
    CompileError,
    EvaluationError,
    ImportLoadError,
    ParseAbortedError,
    ParseError,
    QueryEngineError,
)
from .logging import (
    CorrelationLogger,
    get_logger,
    new_correlation_id,
)
from .result import (
    DiagnosticEntry,
    DiagnosticSeverity,
    ParseMetrics,
)

__all__ = [
    "ConfigError",
    "ConfigValidationError",
    "EngineConfig",
    "QueryConfig",
    "TokenizerConfig",
    "TreeConfig",
    "AttachmentError",
    "CompileError",
    "EvaluationError",
    "ImportLoadError",
    "ParseAbortedError",
    "ParseError",
    "QueryEngineError",
    "CorrelationLogger",
    "get_logger",
    "new_correlation_id",
    "DiagnosticEntry",
    "DiagnosticSeverity",
    "ParseMetrics",
]
