"""Parse entry points.

Every entry point returns a ``Document`` whose ``ready`` future settles when
the input is exhausted: resolved on a clean end of input, rejected with
``ParseError`` on malformed markup and with ``ParseAbortedError`` when the
upstream stream fails before the end of input was reached.
"""

import codecs
import inspect
import time
from pathlib import Path
from typing import (
    Any,
    AsyncIterable,
    Awaitable,
    BinaryIO,
    Iterable,
    Iterator,
    Optional,
    TextIO,
    Union,
)

from xml_query_engine.query.session import QuerySession
from xml_query_engine.shared import (
    DiagnosticSeverity,
    EngineConfig,
    ParseAbortedError,
    get_logger,
    new_correlation_id,
)
from xml_query_engine.shared.logging import CorrelationLogger
from xml_query_engine.tokenization import PushTokenizer
from xml_query_engine.tree import Document, TreeBuilder

Chunk = Union[str, bytes]
InputType = Union[str, bytes, BinaryIO, TextIO, Path, Iterable[Chunk]]

# Constants for API operations
PREVIEW_LENGTH = 100  # Max length for content preview in logs
MS_PER_SECOND = 1000  # Milliseconds per second conversion


def _preview(content: Chunk) -> str:
    text = content if isinstance(content, str) else content[:PREVIEW_LENGTH].decode(
        "utf-8", errors="replace"
    )
    return text[:PREVIEW_LENGTH] + "..." if len(content) > PREVIEW_LENGTH else text


class _DocumentFeeder:
    """Pushes decoded chunks through a tokenizer into a document's builder."""

    def __init__(self, document: Document, logger: CorrelationLogger) -> None:
        self.document = document
        self.logger = logger
        self.builder = TreeBuilder(document)
        self.tokenizer = PushTokenizer(
            self.builder, document.config.tokenizer, document.correlation_id
        )
        self.builder.tokenizer = self.tokenizer
        self.decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
        self.start_time = time.time()

    @property
    def settled(self) -> bool:
        return self.document.ready.done()

    def feed(self, chunk: Any) -> None:
        if isinstance(chunk, (bytes, bytearray, memoryview)):
            text = self.decoder.decode(bytes(chunk))
        else:
            text = chunk if isinstance(chunk, str) else str(chunk)
        self.tokenizer.feed(text)

    def finish(self) -> Document:
        """Flush the decoder and signal end of input."""
        self.tokenizer.feed(self.decoder.decode(b"", final=True))
        self.tokenizer.close()
        return self.complete()

    def abort(self, error: BaseException) -> Document:
        """Reject the document because the upstream stream failed."""
        position = self.tokenizer.position
        aborted = ParseAbortedError(f"Input stream aborted: {error}", position)
        aborted.__cause__ = error
        self.builder.failed = True
        self.document.add_diagnostic(
            DiagnosticSeverity.ERROR,
            str(aborted),
            "parser",
            position=position.to_dict(),
            details={"error_type": type(error).__name__},
        )
        self.logger.warning(
            "Parse operation aborted",
            extra={"error": str(error), "position": position.to_dict()},
        )
        self.document.reject(aborted)
        return self.complete()

    def complete(self) -> Document:
        metrics = self.document.metrics
        metrics.processing_time_ms = (time.time() - self.start_time) * MS_PER_SECOND
        metrics.characters_processed = self.tokenizer.characters_processed

        self.logger.info(
            "Parse operation completed",
            extra={
                "success": self.document.is_ready,
                "nodes_created": metrics.nodes_created,
                "characters_processed": metrics.characters_processed,
                "processing_time_ms": metrics.processing_time_ms,
            },
        )
        return self.document


def _create_document(
    stream: Any,
    config: Optional[EngineConfig],
    session: Optional[QuerySession],
    correlation_id: Optional[str],
) -> Document:
    return Document(stream, config, session, correlation_id or new_correlation_id())


def _read_chunks(stream: Any, chunk_size: int) -> Iterator[Chunk]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk


def _feed_iterable(document: Document, chunks: Iterable[Any]) -> Document:
    logger = get_logger(__name__, document.correlation_id, "parse_stream")
    feeder = _DocumentFeeder(document, logger)
    iterator = iter(chunks)

    while not feeder.settled:
        try:
            chunk = next(iterator)
        except StopIteration:
            break
        except Exception as e:
            return feeder.abort(e)
        feeder.feed(chunk)

    if feeder.settled:
        return feeder.complete()
    return feeder.finish()


def parse(
    stream: InputType,
    config: Optional[EngineConfig] = None,
    correlation_id: Optional[str] = None,
    session: Optional[QuerySession] = None,
) -> Document:
    """Parse markup from various input sources.

    The input is consumed synchronously; the returned document is already
    settled and ``document.ready`` only needs inspecting for the outcome.

    Args:
        stream: Markup as a string, bytes, file-like object, Path or an
            iterable of string or bytes chunks
        config: Engine configuration
        correlation_id: Optional correlation ID for request tracking
        session: Query session to attach to the document

    Returns:
        Document whose ``ready`` future holds the parse outcome

    Examples:
        >>> document = parse('<a><b x="1">hi</b><b x="2">yo</b></a>')
        >>> document.query('[name="b"]:attr(x)')
        Fragment([1, 2])

        >>> document = parse(iter(["<a>", "</a>"]))
        >>> document.result().root.name
        'a'
    """
    correlation_id = correlation_id or new_correlation_id()
    logger = get_logger(__name__, correlation_id, "parse")

    logger.info(
        "Starting universal parse operation",
        extra={"input_type": type(stream).__name__},
    )

    if isinstance(stream, (str, bytes)):
        return parse_string(stream, config, correlation_id, session)
    if isinstance(stream, Path):
        return parse_file(stream, None, config, correlation_id, session)

    document = _create_document(stream, config, session, correlation_id)
    if hasattr(stream, "read"):
        return _feed_iterable(document, _read_chunks(stream, document.config.tokenizer.chunk_size))
    if hasattr(stream, "__iter__"):
        return _feed_iterable(document, stream)

    logger.warning(
        "Unknown input type converted to string",
        extra={"original_type": type(stream).__name__},
    )
    return _feed_iterable(document, [str(stream)])


def parse_string(
    markup: Chunk,
    config: Optional[EngineConfig] = None,
    correlation_id: Optional[str] = None,
    session: Optional[QuerySession] = None,
) -> Document:
    """Parse markup held in memory.

    Args:
        markup: Markup as a string or bytes; bytes are decoded as UTF-8
        config: Engine configuration
        correlation_id: Optional correlation ID for request tracking
        session: Query session to attach to the document

    Returns:
        Settled Document

    Examples:
        >>> document = parse_string("<a><b>hi</b></a>")
        >>> document.query("b:text")
        TextLeaf('hi')

        >>> parse_string("<a><b").failed
        True
    """
    logger = get_logger(__name__, correlation_id, "parse_string")
    logger.info(
        "Starting string parse operation",
        extra={"content_length": len(markup), "preview": _preview(markup)},
    )

    document = _create_document(markup, config, session, correlation_id)
    return _feed_iterable(document, [markup])


def parse_file(
    file_path: Union[str, Path],
    encoding: Optional[str] = None,
    config: Optional[EngineConfig] = None,
    correlation_id: Optional[str] = None,
    session: Optional[QuerySession] = None,
) -> Document:
    """Parse markup from a file, reading it in ``chunk_size`` pieces.

    A missing or unreadable file rejects the document with
    ``ParseAbortedError`` rather than raising.

    Args:
        file_path: Path to the file
        encoding: Optional encoding override, UTF-8 (BOM aware) when omitted
        config: Engine configuration
        correlation_id: Optional correlation ID for request tracking
        session: Query session to attach to the document

    Returns:
        Settled Document
    """
    path_obj = Path(file_path) if isinstance(file_path, str) else file_path
    logger = get_logger(__name__, correlation_id, "parse_file")

    logger.info(
        "Starting file parse operation",
        extra={
            "file_path": str(path_obj),
            "file_exists": path_obj.exists(),
            "encoding_override": encoding,
        },
    )

    document = _create_document(path_obj, config, session, correlation_id)
    chunk_size = document.config.tokenizer.chunk_size

    def chunks() -> Iterator[Chunk]:
        if not path_obj.exists():
            raise FileNotFoundError(f"File not found: {path_obj}")
        if not path_obj.is_file():
            raise IsADirectoryError(f"Path is not a file: {path_obj}")
        if encoding:
            with path_obj.open(encoding=encoding, errors="replace") as file:
                yield from _read_chunks(file, chunk_size)
        else:
            with path_obj.open("rb") as file:
                yield from _read_chunks(file, chunk_size)

    return _feed_iterable(document, chunks())


async def parse_async(
    stream: Union[InputType, AsyncIterable[Chunk], Awaitable[Chunk]],
    config: Optional[EngineConfig] = None,
    correlation_id: Optional[str] = None,
    session: Optional[QuerySession] = None,
) -> Document:
    """Parse markup from an asynchronous source.

    Async iterables are consumed chunk by chunk as they arrive; awaitables
    are awaited for their content. Anything else is handed to ``parse``.
    The document is returned settled; await it to raise a parse failure.

    Args:
        stream: Async iterable of chunks, awaitable content or any ``parse`` input
        config: Engine configuration
        correlation_id: Optional correlation ID for request tracking
        session: Query session to attach to the document

    Returns:
        Settled Document

    Example:
        >>> async def chunks():
        ...     yield "<a>"
        ...     yield "</a>"
        >>> document = await parse_async(chunks())
        >>> (await document).root.name
        'a'
    """
    correlation_id = correlation_id or new_correlation_id()

    if hasattr(stream, "__aiter__"):
        logger = get_logger(__name__, correlation_id, "parse_async")
        logger.info(
            "Starting async stream parse operation",
            extra={"input_type": type(stream).__name__},
        )
        document = _create_document(stream, config, session, correlation_id)
        feeder = _DocumentFeeder(document, logger)
        iterator = stream.__aiter__()

        while not feeder.settled:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                return feeder.abort(e)
            except BaseException as e:
                feeder.abort(e)
                raise
            feeder.feed(chunk)

        if feeder.settled:
            return feeder.complete()
        return feeder.finish()

    if inspect.isawaitable(stream):
        try:
            content = await stream
        except Exception as e:
            document = _create_document(stream, config, session, correlation_id)
            logger = get_logger(__name__, correlation_id, "parse_async")
            return _DocumentFeeder(document, logger).abort(e)
        return parse(content, config, correlation_id, session)

    return parse(stream, config, correlation_id, session)
