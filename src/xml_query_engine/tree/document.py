"""Parsed document: a root node plus a one-shot readiness outcome."""

import asyncio
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, Dict, Generator, List, Optional, Tuple

from xml_query_engine.shared.config import EngineConfig
from xml_query_engine.shared.logging import get_logger, new_correlation_id
from xml_query_engine.shared.result import DiagnosticEntry, DiagnosticSeverity, ParseMetrics

from .node import Node

if TYPE_CHECKING:
    from xml_query_engine.query.context import EvaluationContext
    from xml_query_engine.query.session import QuerySession


class Document:
    """Root of a parsed tree with a readiness future.

    ``ready`` is a ``concurrent.futures.Future`` resolved with the document
    when the stream ends, or rejected with ``ParseError`` when it cannot be
    tokenized or is aborted. Any number of listeners may wait on it before
    or after it settles, and the document itself can be awaited.

    Example:
        >>> document = parse_string("<a><b x='1'>hi</b></a>")
        >>> document.ready.result().query("b:text")
        TextLeaf('hi')
    """

    def __init__(
        self,
        stream: Any = None,
        config: Optional[EngineConfig] = None,
        session: Optional["QuerySession"] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.stream = stream
        self.config = config or EngineConfig()
        self.correlation_id = correlation_id or new_correlation_id()
        self.logger = get_logger(__name__, self.correlation_id, "document")
        self.root: Optional[Node] = None
        self.ready: "Future[Document]" = Future()
        self.diagnostics: List[DiagnosticEntry] = []
        self.processing_instructions: List[Tuple[str, str]] = []
        self.metrics = ParseMetrics()
        self._session = session

    @property
    def session(self) -> "QuerySession":
        """Query session owning this document's compiled-expression cache."""
        if self._session is None:
            from xml_query_engine.query.session import QuerySession

            self._session = QuerySession(self.config, correlation_id=self.correlation_id)
        return self._session

    @property
    def is_ready(self) -> bool:
        return self.ready.done() and self.ready.exception() is None

    @property
    def failed(self) -> bool:
        return self.ready.done() and self.ready.exception() is not None

    def resolve(self) -> None:
        """Settle ``ready`` successfully; later calls are ignored."""
        if not self.ready.done():
            self.ready.set_result(self)

    def reject(self, error: BaseException) -> None:
        """Settle ``ready`` with ``error``; later calls are ignored."""
        if not self.ready.done():
            self.ready.set_exception(error)

    def result(self, timeout: Optional[float] = None) -> "Document":
        """Block until ready and return the document, raising any parse error."""
        return self.ready.result(timeout)

    def __await__(self) -> Generator[Any, None, "Document"]:
        return asyncio.wrap_future(self.ready).__await__()

    def add_diagnostic(
        self,
        severity: DiagnosticSeverity,
        message: str,
        component: str,
        position: Optional[Dict[str, int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add a diagnostic entry to this document."""
        entry = DiagnosticEntry(
            severity=severity,
            message=message,
            component=component,
            position=position,
            details=details,
            correlation_id=self.correlation_id,
        )
        self.diagnostics.append(entry)
        if severity is DiagnosticSeverity.WARNING:
            self.logger.warning(message, extra={"position": position})

    def get_diagnostics_by_severity(self, severity: DiagnosticSeverity) -> List[DiagnosticEntry]:
        return [entry for entry in self.diagnostics if entry.severity == severity]

    def create_child(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
        body: str = "",
    ) -> Node:
        """Append a new node to the root, or create the root if there is none."""
        if self.root is None:
            self.root = Node(name, attributes, 0, body=body, config=self.config.tree)
            return self.root
        return self.root.create_child(name, attributes, body)

    def context(self, **options: Any) -> "EvaluationContext":
        """Create an evaluation context targeting the root node."""
        return self.session.context(self.root, **options)

    def query(self, selector: str, **options: Any) -> Any:
        """Evaluate ``selector`` against the root node.

        Returns:
            Query result, or ``None`` for a document without a root
        """
        if self.root is None:
            return None
        return self.session.query(self.root, selector, **options)

    def to_string(self, **options: Any) -> str:
        return self.root.to_string(**options) if self.root is not None else ""

    def to_json(self, **options: Any) -> Optional[Dict[str, Any]]:
        return self.root.to_json(**options) if self.root is not None else None

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        root = self.root.original_name if self.root is not None else None
        return f"Document(root={root!r}, ready={self.ready.done()})"
