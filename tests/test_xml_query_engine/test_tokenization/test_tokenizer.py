"""Tests for the push tokenizer state machine."""

from typing import Any, Dict, List, Tuple

import pytest

from xml_query_engine.shared.config import TokenizerConfig
from xml_query_engine.shared.errors import ParseError
from xml_query_engine.tokenization import (
    PushTokenizer,
    TokenHandler,
    TokenizerState,
    TokenPosition,
)


class RecordingHandler(TokenHandler):
    """Handler collecting every event as a tuple."""

    def __init__(self) -> None:
        self.events: List[Tuple[Any, ...]] = []

    def open_tag(self, name: str, attributes: Dict[str, str]) -> None:
        self.events.append(("open_tag", name, dict(attributes)))

    def attribute(self, name: str, value: str) -> None:
        self.events.append(("attribute", name, value))

    def text(self, chars: str) -> None:
        self.events.append(("text", chars))

    def comment(self, data: str) -> None:
        self.events.append(("comment", data))

    def cdata_start(self) -> None:
        self.events.append(("cdata_start",))

    def cdata_end(self) -> None:
        self.events.append(("cdata_end",))

    def close_tag(self, name: str) -> None:
        self.events.append(("close_tag", name))

    def processing_instruction(self, name: str, data: str) -> None:
        self.events.append(("processing_instruction", name, data))

    def error(self, error: Exception) -> None:
        self.events.append(("error", error))

    def end(self) -> None:
        self.events.append(("end",))


def tokenize(text: str, **config: Any) -> List[Tuple[Any, ...]]:
    handler = RecordingHandler()
    PushTokenizer(handler, TokenizerConfig(**config)).tokenize(text)
    return handler.events


class TestBasicTokenization:
    """Test suite for well-formed markup."""

    def test_elements_attributes_and_text(self):
        """Test the event sequence for a small document."""
        events = tokenize('<a><b x="1">hi</b></a>')

        assert events == [
            ("open_tag", "a", {}),
            ("attribute", "x", "1"),
            ("open_tag", "b", {"x": "1"}),
            ("text", "hi"),
            ("close_tag", "b"),
            ("close_tag", "a"),
            ("end",),
        ]

    def test_self_closing_tag(self):
        """Test self-closing tags emit a matching close event."""
        events = tokenize("<a><br/></a>")

        assert ("open_tag", "br", {}) in events
        assert events.index(("close_tag", "br")) == events.index(("open_tag", "br", {})) + 1

    def test_attribute_forms(self):
        """Test single-quoted, unquoted and valueless attributes."""
        events = tokenize("<a x='1' y=2 checked></a>")

        assert events[-3] == ("open_tag", "a", {"x": "1", "y": "2", "checked": ""})

    def test_entities_decoded(self):
        """Test entities in text and attribute values are decoded."""
        events = tokenize('<a t="x &amp; y">1 &lt; 2</a>')

        assert ("attribute", "t", "x & y") in events
        assert ("text", "1 < 2") in events

    def test_entities_kept_when_disabled(self):
        """Test entity decoding can be turned off."""
        events = tokenize("<a>&amp;</a>", decode_entities=False)
        assert ("text", "&amp;") in events

    def test_comment_and_cdata(self):
        """Test comment and CDATA sections."""
        events = tokenize("<a><!-- note --><![CDATA[<raw>]]></a>")

        assert ("comment", " note ") in events
        start = events.index(("cdata_start",))
        assert events[start + 1] == ("text", "<raw>")
        assert events[start + 2] == ("cdata_end",)

    def test_processing_instruction_and_doctype(self):
        """Test instructions and declarations share one event."""
        events = tokenize('<?xml version="1.0"?><!DOCTYPE a><a/>')

        assert events[0] == ("processing_instruction", "?xml", '?xml version="1.0"')
        assert events[1] == ("processing_instruction", "!doctype", "!DOCTYPE a")


class TestIncrementalFeeding:
    """Test suite for chunked input."""

    def test_split_across_chunks(self):
        """Test tags, attributes and entities may span chunk boundaries."""
        handler = RecordingHandler()
        tokenizer = PushTokenizer(handler)
        for chunk in ["<a", '><b x="', '1">h', "i &am", "p;</b></", "a>"]:
            tokenizer.feed(chunk)
        tokenizer.close()

        assert handler.events == tokenize('<a><b x="1">hi &amp;</b></a>')

    def test_position_tracking(self):
        """Test line and column counting."""
        tokenizer = PushTokenizer(RecordingHandler())
        tokenizer.feed("<a>\n  <b>")

        assert tokenizer.position == TokenPosition(2, 6, 9)
        assert tokenizer.characters_processed == 9

    def test_feed_after_close(self):
        """Test feeding a closed tokenizer raises."""
        tokenizer = PushTokenizer(RecordingHandler())
        tokenizer.tokenize("<a/>")

        with pytest.raises(ParseError):
            tokenizer.feed("<b/>")

    def test_close_is_idempotent(self):
        """Test the end event is emitted only once."""
        handler = RecordingHandler()
        tokenizer = PushTokenizer(handler)
        tokenizer.tokenize("<a/>")
        tokenizer.close()

        assert handler.events.count(("end",)) == 1

    def test_reset(self):
        """Test reset allows reuse."""
        handler = RecordingHandler()
        tokenizer = PushTokenizer(handler)
        tokenizer.tokenize("<a/>")
        tokenizer.reset()
        tokenizer.tokenize("<b/>")

        assert handler.events.count(("end",)) == 2
        assert tokenizer.state is TokenizerState.DONE


class TestMalformedInput:
    """Test suite for permissive and strict handling."""

    def test_unterminated_tag_is_error(self):
        """Test closing inside a tag emits exactly one error."""
        events = tokenize("<a><b")

        errors = [event for event in events if event[0] == "error"]
        assert len(errors) == 1
        assert isinstance(errors[0][1], ParseError)
        assert ("end",) not in events

    def test_stray_less_than_is_text_when_permissive(self):
        """Test a stray '<' is kept as text."""
        events = tokenize("<a>1 < 2</a>")

        text = "".join(event[1] for event in events if event[0] == "text")
        assert text == "1 < 2"
        assert events[-1] == ("end",)

    def test_stray_less_than_fails_when_strict(self):
        """Test strict mode rejects a stray '<'."""
        events = tokenize("<a>1 < 2</a>", strict=True)

        assert events[-1][0] == "error"
        assert "after '<'" in str(events[-1][1])

    def test_input_after_error_ignored(self):
        """Test no events follow an error."""
        handler = RecordingHandler()
        tokenizer = PushTokenizer(handler, TokenizerConfig(strict=True))
        tokenizer.feed("<a>< ")
        tokenizer.feed("<b></b>")
        tokenizer.close()

        assert handler.events[-1][0] == "error"
        assert tokenizer.failed is True
