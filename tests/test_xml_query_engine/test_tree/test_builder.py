"""Tests for the tree builder."""

import pytest

from xml_query_engine.api import parse_string
from xml_query_engine.shared.config import EngineConfig
from xml_query_engine.shared.errors import ParseError
from xml_query_engine.shared.result import DiagnosticSeverity
from xml_query_engine.tree import CDATA_NODE_NAME, Document, Node, ParserState, TreeBuilder


class TestParserState:
    """Test suite for the builder stack."""

    def test_head_and_tail(self):
        """Test stack accessors."""
        state = ParserState()
        assert state.head is None and state.tail is None

        first, second = Node("a"), Node("b")
        state.push(first, second)

        assert state.head is first
        assert state.tail is second
        assert state.depth == 2
        assert state.pop() is second
        assert state.length == 1


class TestTreeBuilderEvents:
    """Test suite for building from raw events."""

    def test_builds_nested_nodes(self):
        """Test open, text and close events produce a tree."""
        document = Document()
        builder = TreeBuilder(document)

        builder.open_tag("a", {})
        builder.open_tag("b", {"x": "1"})
        builder.text("hi")
        builder.close_tag("b")
        builder.close_tag("a")

        root = document.root
        assert root.name == "a"
        assert root.children[0].attributes["x"] == 1
        assert root.children[0].body == "hi"
        assert root.children[0].depth == 1
        assert document.is_ready
        assert document.metrics.nodes_created == 2

    def test_text_segments_joined(self):
        """Test separate text runs are trimmed and joined with the separator."""
        document = Document()
        builder = TreeBuilder(document)

        builder.open_tag("a", {})
        builder.text("  one ")
        builder.open_tag("b", {})
        builder.close_tag("b")
        builder.text("\n  two  ")
        builder.text("   ")

        assert document.root.body == "one two"

    def test_error_rejects_once(self):
        """Test the first error settles the document; later outcomes are ignored."""
        document = Document()
        builder = TreeBuilder(document)

        builder.error(ValueError("boom"))
        builder.error(ValueError("again"))
        builder.end()

        assert document.failed
        with pytest.raises(ParseError, match="boom"):
            document.result()
        assert len(document.get_diagnostics_by_severity(DiagnosticSeverity.ERROR)) == 1

    def test_comments_attach_to_open_node(self):
        """Test comments are recorded but not turned into children."""
        document = Document()
        builder = TreeBuilder(document)

        builder.open_tag("a", {})
        builder.comment(" note ")

        assert document.root.comments == ["note"]
        assert document.root.length == 0

    def test_content_after_root_ignored(self):
        """Test nodes and text after the root closes are not attached."""
        document = Document()
        builder = TreeBuilder(document)

        builder.open_tag("a", {})
        builder.close_tag("a")
        builder.open_tag("b", {})
        builder.text("late")

        assert document.is_ready
        assert document.root.length == 0
        assert document.root.body == ""


class TestTreeBuilderParsing:
    """Test suite for building through the tokenizer."""

    def test_cdata_becomes_child(self):
        """Test CDATA content is kept verbatim in a dedicated child."""
        document = parse_string("<a><![CDATA[ <raw> ]]></a>")
        cdata = document.result().root.children[0]

        assert cdata.name == CDATA_NODE_NAME
        assert cdata.is_cdata is True
        assert cdata.body == " <raw> "
        assert document.root.to_string() == "<a>\n  <![CDATA[ <raw> ]]>\n</a>"

    def test_mismatched_close_is_warning(self):
        """Test a mismatched closing tag is tolerated with a warning."""
        document = parse_string("<a><b></c></a>")

        assert document.is_ready
        warnings = document.get_diagnostics_by_severity(DiagnosticSeverity.WARNING)
        assert "does not match" in warnings[0].message

    def test_stray_close_ignored(self):
        """Test a closer naming no open node leaves the tree shape intact."""
        document = parse_string("<a><b></c><d/></b><e/></a>")
        root = document.result().root

        assert [child.name for child in root.children] == ["b", "e"]
        assert [child.name for child in root.children[0].children] == ["d"]
        warnings = document.get_diagnostics_by_severity(DiagnosticSeverity.WARNING)
        assert len(warnings) == 1
        assert warnings[0].details == {"expected": "b", "actual": "c"}

    def test_close_skips_unclosed_nodes(self):
        """Test a closer for an outer node also closes the nodes left open inside it."""
        document = parse_string("<a><b><c>x</b><e/></a>")
        root = document.result().root

        assert [child.name for child in root.children] == ["b", "e"]
        assert root.children[0].children[0].body == "x"
        warnings = document.get_diagnostics_by_severity(DiagnosticSeverity.WARNING)
        assert warnings[0].details == {"unclosed": ["c"]}

    def test_processing_instructions_recorded(self):
        """Test instructions are collected on the document."""
        document = parse_string('<?xml version="1.0"?><a/>')

        assert document.processing_instructions == [("?xml", '?xml version="1.0"')]

    def test_max_depth(self):
        """Test exceeding the configured depth rejects the document."""
        config = EngineConfig().override(tree__max_depth=2)
        document = parse_string("<a><b><c/></b></a>", config)

        assert document.failed
        with pytest.raises(ParseError, match="Maximum depth"):
            document.result()

    def test_metrics(self):
        """Test builder metrics."""
        document = parse_string("<a><b><c/></b><d/></a>")

        assert document.metrics.nodes_created == 4
        assert document.metrics.max_depth == 2
        assert document.metrics.events_handled > 0
        assert document.metrics.characters_processed == len("<a><b><c/></b><d/></a>")

    def test_untrimmed_text(self):
        """Test whitespace is kept when trimming is disabled."""
        config = EngineConfig().override(tree__trim_text=False)
        document = parse_string("<a> x </a>", config)

        assert document.root.body == " x "
