"""Structured logging utilities for the XML query engine.

Every record is emitted through the standard ``logging`` module with a
``component`` and ``correlation_id`` in its ``extra`` mapping, so parse and
query activity can be followed per document or per evaluation context.
"""

import logging
import uuid
from typing import Any, Dict, Optional


def new_correlation_id() -> str:
    """Create a short random correlation ID."""
    return uuid.uuid4().hex[:12]


class CorrelationLogger:
    """Logger that automatically includes correlation ID and component information."""

    def __init__(
        self,
        name: str,
        correlation_id: Optional[str] = None,
        component: Optional[str] = None,
        bound: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize correlation logger.

        Args:
            name: Logger name (typically __name__)
            correlation_id: Optional correlation ID for request tracking
            component: Component name for structured logging
            bound: Extra fields attached to every record
        """
        self.logger = logging.getLogger(name)
        self.correlation_id = correlation_id
        self.component = component or name.split(".")[-1]
        self.bound = dict(bound or {})

    def bind(self, **extra: Any) -> "CorrelationLogger":
        """Derive a logger that attaches ``extra`` to every record."""
        return CorrelationLogger(
            self.logger.name,
            self.correlation_id,
            self.component,
            {**self.bound, **extra},
        )

    def _get_extra(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        combined_extra = {
            "component": self.component,
            "correlation_id": self.correlation_id,
            **self.bound,
        }
        if extra:
            combined_extra.update(extra)
        return combined_extra

    def _log(
        self,
        level: int,
        message: str,
        extra: Optional[Dict[str, Any]],
        exc_info: bool,
    ) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=self._get_extra(extra), exc_info=exc_info)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None,
              exc_info: bool = False) -> None:
        """Log debug message with correlation info."""
        self._log(logging.DEBUG, message, extra, exc_info)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None,
             exc_info: bool = False) -> None:
        """Log info message with correlation info."""
        self._log(logging.INFO, message, extra, exc_info)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None,
                exc_info: bool = False) -> None:
        """Log warning message with correlation info."""
        self._log(logging.WARNING, message, extra, exc_info)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None,
              exc_info: bool = True) -> None:
        """Log error message with correlation info."""
        self._log(logging.ERROR, message, extra, exc_info)

    def exception(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log exception message with correlation info and traceback."""
        self._log(logging.ERROR, message, extra, True)


def get_logger(
    name: str,
    correlation_id: Optional[str] = None,
    component: Optional[str] = None,
) -> CorrelationLogger:
    """Get a correlation-aware logger instance.

    Args:
        name: Logger name (typically __name__)
        correlation_id: Optional correlation ID for request tracking
        component: Component name for structured logging

    Returns:
        CorrelationLogger instance
    """
    return CorrelationLogger(name, correlation_id, component)
