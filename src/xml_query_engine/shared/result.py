"""Diagnostic and metrics types shared by the parsing layers."""

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostic entries."""

    DEBUG = auto()
    INFO = auto()
    WARNING = auto()    # Tolerated irregularities such as unmatched closing tags
    ERROR = auto()      # Errors that rejected the document


@dataclass
class DiagnosticEntry:
    """Single diagnostic entry with context information."""

    severity: DiagnosticSeverity
    message: str
    component: str
    position: Optional[Dict[str, int]] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate diagnostic entry."""
        if not self.message:
            raise ValueError("Diagnostic message cannot be empty")
        if not self.component:
            raise ValueError("Diagnostic component cannot be empty")


@dataclass
class ParseMetrics:
    """Counters collected while building a document."""

    processing_time_ms: float = 0.0
    characters_processed: int = 0
    events_handled: int = 0
    nodes_created: int = 0
    max_depth: int = 0

    @property
    def characters_per_second(self) -> float:
        """Calculate characters processed per second."""
        if self.processing_time_ms <= 0:
            return 0.0
        return (self.characters_processed * 1000.0) / self.processing_time_ms

    @property
    def events_per_second(self) -> float:
        """Calculate tokenizer events handled per second."""
        if self.processing_time_ms <= 0:
            return 0.0
        return (self.events_handled * 1000.0) / self.processing_time_ms
