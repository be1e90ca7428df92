"""Push-based markup tokenizer driving a tree builder.

Characters are fed incrementally with ``feed`` and run through a small state
machine that emits events on a ``TokenHandler`` synchronously and in order.
Under the default permissive configuration stray ``<`` characters and
unescaped entities are treated as text; strict mode reports them as errors.
"""

import html
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional

from xml_query_engine.shared.config import TokenizerConfig
from xml_query_engine.shared.errors import ParseError
from xml_query_engine.shared.logging import get_logger

COMMENT_OPEN = "--"
COMMENT_CLOSE = "-->"
CDATA_OPEN = "[CDATA["
CDATA_CLOSE = "]]>"
PI_CLOSE = "?>"
QUOTE_CHARS = "\"'"


class TokenizerState(Enum):
    """State machine states for markup tokenization."""

    TEXT = auto()                  # Character content between tags
    TAG_OPEN = auto()              # Just read <
    TAG_NAME = auto()              # Reading an opening tag name
    CLOSE_TAG_NAME = auto()        # Reading a closing tag name after </
    BEFORE_ATTR_NAME = auto()      # Whitespace inside an opening tag
    ATTR_NAME = auto()
    AFTER_ATTR_NAME = auto()
    BEFORE_ATTR_VALUE = auto()
    ATTR_VALUE_QUOTED = auto()
    ATTR_VALUE_UNQUOTED = auto()
    SELF_CLOSING = auto()          # Read / inside an opening tag
    MARKUP_DECLARATION = auto()    # Read <! and deciding between comment, CDATA or declaration
    COMMENT = auto()
    CDATA = auto()
    DECLARATION = auto()           # <!DOCTYPE ...> and friends
    PROCESSING_INSTRUCTION = auto()
    DONE = auto()                  # Closed or failed, further input is ignored


@dataclass
class TokenPosition:
    """Position information for tokenizer events."""

    line: int
    column: int
    offset: int

    def __post_init__(self) -> None:
        """Validate position values."""
        if self.line < 1:
            raise ValueError("Line number must be >= 1")
        if self.column < 1:
            raise ValueError("Column number must be >= 1")
        if self.offset < 0:
            raise ValueError("Offset must be >= 0")

    def to_dict(self) -> Dict[str, int]:
        """Convert position to a dictionary for diagnostics."""
        return {"line": self.line, "column": self.column, "offset": self.offset}


class TokenHandler:
    """Receiver of tokenizer events.

    Subclasses override the events they care about; every method is a no-op
    by default.
    """

    def open_tag(self, name: str, attributes: Dict[str, str]) -> None:
        """Called when an opening tag is complete."""

    def attribute(self, name: str, value: str) -> None:
        """Called for each attribute before its ``open_tag`` event."""

    def text(self, chars: str) -> None:
        """Called with decoded character content."""

    def comment(self, data: str) -> None:
        """Called with the content of a ``<!-- -->`` comment."""

    def cdata_start(self) -> None:
        """Called when a ``<![CDATA[`` section opens."""

    def cdata_end(self) -> None:
        """Called when a CDATA section closes."""

    def close_tag(self, name: str) -> None:
        """Called for closing tags and after self-closing tags."""

    def processing_instruction(self, name: str, data: str) -> None:
        """Called for ``<?...?>`` instructions and ``<!...>`` declarations."""

    def error(self, error: Exception) -> None:
        """Called once when input cannot be tokenized."""

    def end(self) -> None:
        """Called once when input is closed cleanly."""


def _is_whitespace(char: str) -> bool:
    return char in " \t\r\n\f"


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char in "_:"


class PushTokenizer:
    """Incremental markup tokenizer with an explicit state machine.

    Example:
        >>> tokenizer = PushTokenizer(handler)
        >>> tokenizer.feed("<a><b x='1'>hi</b>")
        >>> tokenizer.feed("</a>")
        >>> tokenizer.close()
    """

    def __init__(
        self,
        handler: TokenHandler,
        config: Optional[TokenizerConfig] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize the tokenizer.

        Args:
            handler: Receiver of tokenizer events
            config: Tokenizer configuration, defaults to permissive settings
            correlation_id: Optional correlation ID for tracking requests
        """
        self.handler = handler
        self.config = config or TokenizerConfig()
        self.correlation_id = correlation_id
        self.logger = get_logger(__name__, correlation_id, "push_tokenizer")
        self._reset_state()

    def _reset_state(self) -> None:
        """Reset tokenizer state for new input."""
        self.state = TokenizerState.TEXT
        self.line = 1
        self.column = 1
        self.offset = 0
        self.buffer: List[str] = []
        self.tag_name = ""
        self.attr_name = ""
        self.attributes: Dict[str, str] = {}
        self.quote_char: Optional[str] = None
        self.closed = False
        self.failed = False
        self.characters_processed = 0
        self.events_emitted = 0

    @property
    def position(self) -> TokenPosition:
        """Get the position of the next character to be processed."""
        return TokenPosition(self.line, self.column, self.offset)

    def reset(self) -> None:
        """Discard all state so the tokenizer can be reused."""
        self._reset_state()

    def feed(self, chunk: str) -> None:
        """Process a chunk of input.

        Args:
            chunk: Next piece of markup text

        Raises:
            ParseError: If the tokenizer was already closed
        """
        if self.closed:
            raise ParseError("Cannot feed a closed tokenizer", self.position)

        for char in chunk:
            if self.state is TokenizerState.DONE:
                break
            self._process_character(char)
            self._advance(char)

    def close(self) -> None:
        """Signal end of input, emitting ``end`` or ``error`` exactly once."""
        if self.closed:
            return
        self.closed = True

        if self.state is TokenizerState.DONE:
            return

        if self.state is TokenizerState.TEXT:
            self._flush_text()
            self.state = TokenizerState.DONE
            self.logger.debug(
                "Tokenization completed",
                extra={
                    "characters_processed": self.characters_processed,
                    "events_emitted": self.events_emitted,
                },
            )
            self._emit("end")
            return

        self._fail(f"Unexpected end of input in {self.state.name.lower()} state")

    def tokenize(self, text: str) -> None:
        """Feed ``text`` and close the tokenizer."""
        self.feed(text)
        self.close()

    def _advance(self, char: str) -> None:
        self.characters_processed += 1
        self.offset += 1
        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1

    def _emit(self, event: str, *args: object) -> None:
        self.events_emitted += 1
        getattr(self.handler, event)(*args)

    def _fail(self, message: str) -> None:
        self.state = TokenizerState.DONE
        self.failed = True
        error = ParseError(message, self.position)
        self.logger.debug(
            "Tokenization failed",
            extra={"error": message, "position": self.position.to_dict()},
        )
        self._emit("error", error)

    def _malformed(self, message: str) -> bool:
        """Report malformed markup; return ``True`` if processing must stop."""
        if self.config.strict:
            self._fail(message)
            return True
        self.logger.debug(
            "Tolerating malformed markup",
            extra={"reason": message, "position": self.position.to_dict()},
        )
        return False

    def _decode(self, text: str) -> str:
        if self.config.decode_entities and "&" in text:
            return html.unescape(text)
        return text

    def _take_buffer(self) -> str:
        text = "".join(self.buffer)
        self.buffer = []
        return text

    def _flush_text(self) -> None:
        if self.buffer:
            self._emit("text", self._decode(self._take_buffer()))

    def _process_character(self, char: str) -> None:
        """Process a single character through the state machine.

        Args:
            char: Single character to process
        """
        if self.state == TokenizerState.TEXT:
            self._process_text(char)
        elif self.state == TokenizerState.TAG_OPEN:
            self._process_tag_open(char)
        elif self.state == TokenizerState.TAG_NAME:
            self._process_tag_name(char)
        elif self.state == TokenizerState.CLOSE_TAG_NAME:
            self._process_close_tag_name(char)
        elif self.state == TokenizerState.BEFORE_ATTR_NAME:
            self._process_before_attr_name(char)
        elif self.state == TokenizerState.ATTR_NAME:
            self._process_attr_name(char)
        elif self.state == TokenizerState.AFTER_ATTR_NAME:
            self._process_after_attr_name(char)
        elif self.state == TokenizerState.BEFORE_ATTR_VALUE:
            self._process_before_attr_value(char)
        elif self.state == TokenizerState.ATTR_VALUE_QUOTED:
            self._process_attr_value_quoted(char)
        elif self.state == TokenizerState.ATTR_VALUE_UNQUOTED:
            self._process_attr_value_unquoted(char)
        elif self.state == TokenizerState.SELF_CLOSING:
            self._process_self_closing(char)
        elif self.state == TokenizerState.MARKUP_DECLARATION:
            self._process_markup_declaration(char)
        elif self.state == TokenizerState.COMMENT:
            self._process_comment(char)
        elif self.state == TokenizerState.CDATA:
            self._process_cdata(char)
        elif self.state == TokenizerState.DECLARATION:
            self._process_declaration(char)
        elif self.state == TokenizerState.PROCESSING_INSTRUCTION:
            self._process_processing_instruction(char)

    def _process_text(self, char: str) -> None:
        if char == "<":
            self._flush_text()
            self.state = TokenizerState.TAG_OPEN
        else:
            self.buffer.append(char)

    def _process_tag_open(self, char: str) -> None:
        if char == "/":
            self.state = TokenizerState.CLOSE_TAG_NAME
        elif char == "!":
            self.state = TokenizerState.MARKUP_DECLARATION
        elif char == "?":
            self.state = TokenizerState.PROCESSING_INSTRUCTION
        elif _is_name_start(char):
            self.buffer = [char]
            self.attributes = {}
            self.state = TokenizerState.TAG_NAME
        else:
            if self._malformed(f"Invalid character {char!r} after '<'"):
                return
            # A stray '<' is kept as text and the character is reprocessed
            self.buffer = ["<"]
            self.state = TokenizerState.TEXT
            if char == "<":
                self._process_text(char)
            else:
                self.buffer.append(char)

    def _process_tag_name(self, char: str) -> None:
        if _is_whitespace(char):
            self.tag_name = self._take_buffer()
            self.state = TokenizerState.BEFORE_ATTR_NAME
        elif char == "/":
            self.tag_name = self._take_buffer()
            self.state = TokenizerState.SELF_CLOSING
        elif char == ">":
            self.tag_name = self._take_buffer()
            self._finish_open_tag()
        elif char == "<" or char in QUOTE_CHARS:
            if not self._malformed(f"Invalid character {char!r} in tag name"):
                self.buffer.append(char)
        else:
            self.buffer.append(char)

    def _process_close_tag_name(self, char: str) -> None:
        if char == ">":
            name = self._take_buffer().strip()
            if not name and self._malformed("Empty closing tag"):
                return
            self.state = TokenizerState.TEXT
            self._emit("close_tag", name)
        else:
            self.buffer.append(char)

    def _process_before_attr_name(self, char: str) -> None:
        if _is_whitespace(char):
            return
        if char == "/":
            self.state = TokenizerState.SELF_CLOSING
        elif char == ">":
            self._finish_open_tag()
        elif char in QUOTE_CHARS or char in "<=":
            self._malformed(f"Unexpected {char!r} in tag <{self.tag_name}>")
        else:
            self.buffer = [char]
            self.state = TokenizerState.ATTR_NAME

    def _process_attr_name(self, char: str) -> None:
        if char == "=":
            self.attr_name = self._take_buffer()
            self.state = TokenizerState.BEFORE_ATTR_VALUE
        elif _is_whitespace(char):
            self.attr_name = self._take_buffer()
            self.state = TokenizerState.AFTER_ATTR_NAME
        elif char in "/>":
            self.attr_name = self._take_buffer()
            self._finish_attribute("")
            self._process_before_attr_name(char)
        else:
            self.buffer.append(char)

    def _process_after_attr_name(self, char: str) -> None:
        if _is_whitespace(char):
            return
        if char == "=":
            self.state = TokenizerState.BEFORE_ATTR_VALUE
        else:
            self._finish_attribute("")
            self._process_before_attr_name(char)

    def _process_before_attr_value(self, char: str) -> None:
        if _is_whitespace(char):
            return
        if char in QUOTE_CHARS:
            self.quote_char = char
            self.buffer = []
            self.state = TokenizerState.ATTR_VALUE_QUOTED
        elif char == ">":
            self._finish_attribute("")
            self._finish_open_tag()
        else:
            if self._malformed(f"Unquoted value for attribute {self.attr_name!r}"):
                return
            self.buffer = [char]
            self.state = TokenizerState.ATTR_VALUE_UNQUOTED

    def _process_attr_value_quoted(self, char: str) -> None:
        if char == self.quote_char:
            self.quote_char = None
            self._finish_attribute(self._decode(self._take_buffer()))
        else:
            self.buffer.append(char)

    def _process_attr_value_unquoted(self, char: str) -> None:
        if _is_whitespace(char):
            self._finish_attribute(self._decode(self._take_buffer()))
        elif char == ">":
            self._finish_attribute(self._decode(self._take_buffer()))
            self._finish_open_tag()
        else:
            self.buffer.append(char)

    def _process_self_closing(self, char: str) -> None:
        if char == ">":
            name = self.tag_name
            self._finish_open_tag()
            self._emit("close_tag", name)
        elif not self._malformed(f"Expected '>' after '/' in tag <{self.tag_name}>"):
            self.state = TokenizerState.BEFORE_ATTR_NAME
            self._process_before_attr_name(char)

    def _process_markup_declaration(self, char: str) -> None:
        self.buffer.append(char)
        prefix = "".join(self.buffer)
        if prefix == COMMENT_OPEN:
            self.buffer = []
            self.state = TokenizerState.COMMENT
        elif prefix == CDATA_OPEN and self.config.recognize_cdata:
            self.buffer = []
            self.state = TokenizerState.CDATA
            self._emit("cdata_start")
        elif not (COMMENT_OPEN.startswith(prefix) or CDATA_OPEN.startswith(prefix)):
            self.state = TokenizerState.DECLARATION
            if char == ">":
                self.buffer.pop()
                self._finish_declaration()

    def _process_comment(self, char: str) -> None:
        self.buffer.append(char)
        if char == ">" and self.buffer[-3:] == list(COMMENT_CLOSE):
            data = self._take_buffer()[: -len(COMMENT_CLOSE)]
            self.state = TokenizerState.TEXT
            self._emit("comment", data)

    def _process_cdata(self, char: str) -> None:
        self.buffer.append(char)
        if char == ">" and self.buffer[-3:] == list(CDATA_CLOSE):
            data = self._take_buffer()[: -len(CDATA_CLOSE)]
            self.state = TokenizerState.TEXT
            if data:
                self._emit("text", data)
            self._emit("cdata_end")

    def _process_declaration(self, char: str) -> None:
        if char == ">":
            self._finish_declaration()
        else:
            self.buffer.append(char)

    def _process_processing_instruction(self, char: str) -> None:
        self.buffer.append(char)
        if char == ">" and self.buffer[-2:] == list(PI_CLOSE):
            data = "?" + self._take_buffer()[: -len(PI_CLOSE)]
            name = data.split(None, 1)[0].lower() if data.strip() else "?"
            self.state = TokenizerState.TEXT
            self._emit("processing_instruction", name, data.strip())

    def _finish_declaration(self) -> None:
        data = "!" + self._take_buffer()
        name = data.split(None, 1)[0].lower()
        self.state = TokenizerState.TEXT
        self._emit("processing_instruction", name, data.strip())

    def _finish_attribute(self, value: str) -> None:
        name = self.attr_name
        self.attr_name = ""
        self.state = TokenizerState.BEFORE_ATTR_NAME
        if not name:
            return
        self.attributes[name] = value
        self._emit("attribute", name, value)

    def _finish_open_tag(self) -> None:
        attributes = self.attributes
        self.attributes = {}
        self.state = TokenizerState.TEXT
        self._emit("open_tag", self.tag_name, attributes)
