"""Tests for the parse entry points."""

import io

import pytest

from xml_query_engine.api import parse, parse_async, parse_file, parse_string
from xml_query_engine.shared.config import EngineConfig, TokenizerConfig
from xml_query_engine.shared.errors import ParseAbortedError, ParseError
from xml_query_engine.shared.result import DiagnosticSeverity

MARKUP = '<a><b x="1">hi</b><b x="2">yo</b></a>'


class TestParseString:
    """Test suite for in-memory input."""

    def test_string(self):
        """Test parsing a string settles a ready document."""
        document = parse_string(MARKUP)

        assert document.is_ready
        assert document.result().root.name == "a"
        assert document.query('[name="b"]:attr(x)') == [1, 2]

    def test_bytes_with_bom(self):
        """Test bytes are decoded as UTF-8 with the BOM removed."""
        document = parse_string(b"\xef\xbb\xbf<a>caf\xc3\xa9</a>")

        assert document.result().root.text == "café"

    def test_malformed(self):
        """Test an unterminated tag rejects the document."""
        document = parse_string("<a><b")

        assert document.failed
        with pytest.raises(ParseError):
            document.result()

    def test_metrics(self):
        """Test metrics are filled in after parsing."""
        document = parse_string(MARKUP)

        assert document.metrics.characters_processed == len(MARKUP)
        assert document.metrics.nodes_created == 3
        assert document.metrics.processing_time_ms >= 0

    def test_correlation_id(self):
        """Test a given correlation ID is kept on the document."""
        assert parse_string(MARKUP, correlation_id="req-1").correlation_id == "req-1"


class TestParse:
    """Test suite for the universal entry point."""

    def test_text_file_object(self):
        """Test text streams are read in chunks."""
        config = EngineConfig(tokenizer=TokenizerConfig(chunk_size=4))

        document = parse(io.StringIO(MARKUP), config)

        assert document.query("b:text") == "hi"

    def test_binary_file_object(self):
        """Test binary streams are decoded incrementally."""
        config = EngineConfig(tokenizer=TokenizerConfig(chunk_size=1))

        document = parse(io.BytesIO("<a>été</a>".encode("utf-8")), config)

        assert document.result().root.text == "été"

    def test_path(self, tmp_path):
        """Test Path input is parsed as a file."""
        path = tmp_path / "doc.xml"
        path.write_text(MARKUP, encoding="utf-8")

        assert parse(path).query("b:text") == "hi"

    def test_iterable_chunks(self):
        """Test an iterable of chunks split mid-token."""
        document = parse(iter(["<a><b x=", '"1">h', "i</b></a>"]))

        assert document.query("b:text") == "hi"

    def test_split_multibyte_chunks(self):
        """Test byte chunks splitting a character decode correctly."""
        document = parse([b"<a>caf", b"\xc3", b"\xa9</a>"])

        assert document.result().root.text == "café"

    def test_upstream_failure_aborts(self):
        """Test a failing stream rejects with ParseAbortedError."""
        def chunks():
            yield "<a><b>"
            raise OSError("connection reset")

        document = parse(chunks())

        assert document.failed
        with pytest.raises(ParseAbortedError) as exc_info:
            document.result()
        assert isinstance(exc_info.value.__cause__, OSError)
        errors = document.get_diagnostics_by_severity(DiagnosticSeverity.ERROR)
        assert errors[-1].component == "parser"

    def test_stops_after_root_closes(self):
        """Test the stream is not read past the end of the root element."""
        def chunks():
            yield "<a></a>"
            raise OSError("not reached")

        document = parse(chunks())

        assert document.is_ready
        assert document.result().root.name == "a"


class TestParseFile:
    """Test suite for file input."""

    def test_missing_file(self, tmp_path):
        """Test a missing file rejects instead of raising."""
        document = parse_file(tmp_path / "missing.xml")

        assert document.failed
        with pytest.raises(ParseAbortedError) as exc_info:
            document.result()
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_directory(self, tmp_path):
        """Test a directory path rejects."""
        assert parse_file(tmp_path).failed

    def test_encoding_override(self, tmp_path):
        """Test an explicit encoding is used for decoding."""
        path = tmp_path / "latin.xml"
        path.write_bytes("<a>café</a>".encode("latin-1"))

        document = parse_file(str(path), encoding="latin-1")

        assert document.result().root.text == "café"


class TestParseAsync:
    """Test suite for asynchronous sources."""

    @pytest.mark.asyncio
    async def test_async_iterable(self):
        """Test chunks from an async generator."""
        async def chunks():
            yield "<a><b>"
            yield "hi</b></a>"

        document = await parse_async(chunks())

        assert (await document).query("b:text") == "hi"

    @pytest.mark.asyncio
    async def test_awaitable(self):
        """Test awaitable content."""
        async def fetch():
            return MARKUP

        document = await parse_async(fetch())

        assert document.query('[name="b"]:last:text') == "yo"

    @pytest.mark.asyncio
    async def test_failing_async_stream(self):
        """Test an async stream failing mid-way aborts the parse."""
        async def chunks():
            yield "<a>"
            raise ConnectionError("gone")

        document = await parse_async(chunks())

        with pytest.raises(ParseAbortedError, match="gone"):
            await document

    @pytest.mark.asyncio
    async def test_failing_awaitable(self):
        """Test a failing awaitable aborts the parse."""
        async def fetch():
            raise TimeoutError("slow")

        document = await parse_async(fetch())

        assert document.failed

    @pytest.mark.asyncio
    async def test_plain_input(self):
        """Test synchronous input is handed to parse."""
        document = await parse_async(MARKUP)

        assert document.is_ready
