"""Tree builder consuming tokenizer events.

The builder is a state machine over a single stack of open nodes: the head
of the stack is the document root and the tail is the node currently
receiving text, comments and children.
"""

from typing import TYPE_CHECKING, Dict, List, Optional

from xml_query_engine.normalization import normalize_name
from xml_query_engine.shared.config import TreeConfig
from xml_query_engine.shared.errors import ParseError
from xml_query_engine.shared.logging import get_logger
from xml_query_engine.shared.result import DiagnosticSeverity
from xml_query_engine.tokenization import TokenHandler

from .node import CDATA_NODE_NAME, Node

if TYPE_CHECKING:
    from xml_query_engine.tokenization import PushTokenizer

    from .document import Document


class ParserState:
    """Stack of in-progress nodes."""

    def __init__(self, stack: Optional[List[Node]] = None) -> None:
        self.stack: List[Node] = stack or []

    @property
    def head(self) -> Optional[Node]:
        """First node on the stack, the document root."""
        return self.stack[0] if self.stack else None

    @property
    def tail(self) -> Optional[Node]:
        """Last node on the stack, the currently open node."""
        return self.stack[-1] if self.stack else None

    @property
    def length(self) -> int:
        return len(self.stack)

    @property
    def depth(self) -> int:
        """Depth assigned to the next opened node."""
        return len(self.stack)

    def push(self, *nodes: Node) -> "ParserState":
        self.stack.extend(nodes)
        return self

    def pop(self) -> Optional[Node]:
        return self.stack.pop() if self.stack else None

    def find(self, name: str) -> Optional[int]:
        """Index of the innermost open node named ``name``."""
        for index in range(len(self.stack) - 1, -1, -1):
            if self.stack[index].name == name:
                return index
        return None

    def truncate(self, length: int) -> None:
        del self.stack[length:]

    def clear(self) -> None:
        self.stack.clear()


class TreeBuilder(TokenHandler):
    """Builds a ``Document`` tree from tokenizer events.

    A closing tag closes the innermost open node of that name along with any
    unclosed nodes inside it. A closing tag matching no open node is ignored.
    Both cases are recorded as warnings; there is no other recovery. ``end``
    and ``error`` settle the document exactly once.
    """

    def __init__(
        self,
        document: "Document",
        config: Optional[TreeConfig] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize tree builder.

        Args:
            document: Document receiving the root node and readiness outcome
            config: Tree configuration, defaults to the document's
            correlation_id: Optional correlation ID for request tracking
        """
        self.document = document
        self.config = config or document.config.tree
        self.correlation_id = correlation_id or document.correlation_id
        self.logger = get_logger(__name__, self.correlation_id, "tree_builder")
        self.state = ParserState()
        self.tokenizer: Optional["PushTokenizer"] = None
        self.ended = False
        self.failed = False

    def _position(self) -> Optional[Dict[str, int]]:
        if self.tokenizer is None:
            return None
        return self.tokenizer.position.to_dict()

    def _count_event(self) -> None:
        self.document.metrics.events_handled += 1

    def open_tag(self, name: str, attributes: Dict[str, str]) -> None:
        self._count_event()
        if self.failed or self.ended:
            return

        depth = self.state.depth
        if self.config.max_depth is not None and depth >= self.config.max_depth:
            self.error(ParseError(
                f"Maximum depth {self.config.max_depth} exceeded by <{name}>",
                self._position(),
            ))
            return

        parent = self.state.tail
        node = Node(name, attributes, depth, config=self.config)
        self.state.push(node)
        if parent is not None:
            parent.attach(node)
        else:
            self.document.root = node

        metrics = self.document.metrics
        metrics.nodes_created += 1
        metrics.max_depth = max(metrics.max_depth, depth)
        self.logger.debug("Opened node", extra={"node_name": name, "depth": depth})

    def attribute(self, name: str, value: str) -> None:
        self._count_event()
        self.logger.debug("Read attribute", extra={"attribute": name})

    def text(self, chars: str) -> None:
        self._count_event()
        node = self.state.tail
        if node is None or self.failed or self.ended:
            return

        if node.is_cdata:
            node.body += chars
            return

        if self.config.trim_text:
            chars = chars.strip()
        if not chars or chars.isspace():
            return

        if node.body:
            node.body = f"{node.body}{self.config.text_separator}{chars}"
        else:
            node.body = chars

    def comment(self, data: str) -> None:
        self._count_event()
        node = self.state.tail
        if node is not None:
            node.comments.append(data.strip())

    def cdata_start(self) -> None:
        self._count_event()
        parent = self.state.tail
        if parent is None or self.failed or self.ended:
            return
        node = Node(CDATA_NODE_NAME, depth=self.state.depth, config=self.config, is_cdata=True)
        self.state.push(node)
        parent.attach(node)
        self.document.metrics.nodes_created += 1

    def cdata_end(self) -> None:
        self._count_event()
        node = self.state.tail
        if node is not None and node.is_cdata:
            self.state.pop()

    def close_tag(self, name: str) -> None:
        self._count_event()
        if self.failed or self.ended:
            return
        node = self.state.tail
        if node is None:
            self.document.add_diagnostic(
                DiagnosticSeverity.WARNING,
                f"Closing tag </{name}> without matching opening tag",
                "tree_builder",
                position=self._position(),
            )
            return

        index = self.state.find(normalize_name(name))
        if index is None:
            self.document.add_diagnostic(
                DiagnosticSeverity.WARNING,
                f"Closing tag </{name}> does not match <{node.original_name}>",
                "tree_builder",
                position=self._position(),
                details={"expected": node.original_name, "actual": name},
            )
            return

        if index < self.state.length - 1:
            self.document.add_diagnostic(
                DiagnosticSeverity.WARNING,
                f"Closing tag </{name}> closes unclosed <{node.original_name}>",
                "tree_builder",
                position=self._position(),
                details={"unclosed": [open_node.original_name
                                      for open_node in self.state.stack[index + 1:]]},
            )
            self.state.truncate(index + 1)

        if index > 0:
            self.state.pop()
        else:
            self.end()

    def processing_instruction(self, name: str, data: str) -> None:
        self._count_event()
        self.document.processing_instructions.append((name, data))

    def error(self, error: Exception) -> None:
        if self.failed or self.ended:
            return
        self.failed = True
        if not isinstance(error, ParseError):
            parse_error = ParseError(str(error), self._position())
            parse_error.__cause__ = error
            error = parse_error

        self.document.add_diagnostic(
            DiagnosticSeverity.ERROR,
            str(error),
            "tree_builder",
            position=self._position(),
        )
        self.logger.debug("Document rejected", extra={"error": str(error)})
        self.document.reject(error)

    def end(self) -> None:
        if self.failed or self.ended:
            return
        self.ended = True
        self.logger.debug(
            "Document ready",
            extra={"nodes_created": self.document.metrics.nodes_created},
        )
        self.document.resolve()
