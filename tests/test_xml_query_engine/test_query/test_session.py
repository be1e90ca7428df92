"""Tests for QuerySession."""

import logging

import pytest

from xml_query_engine.api import parse_string
from xml_query_engine.query import BindingRegistry, QuerySession
from xml_query_engine.shared.config import EngineConfig, QueryConfig

MARKUP = '<a><b x="1">hi</b><b x="2">yo</b></a>'


class TestQuerySession:
    """Test suite for QuerySession."""

    def test_query(self):
        """Test querying a node through a session."""
        session = QuerySession()
        root = parse_string(MARKUP).root

        assert session.query(root, '[name="b"]:attr(x)') == [1, 2]

    def test_query_logs_selector(self, caplog):
        """Test query records carry the selector and the session correlation ID."""
        caplog.set_level(logging.DEBUG, logger="xml_query_engine.query.session")
        session = QuerySession(correlation_id="sess-1")
        root = parse_string(MARKUP).root

        session.query(root, "b:text")

        finished = [r for r in caplog.records if r.getMessage() == "Query finished"]
        assert finished[-1].selector == "b:text"
        assert finished[-1].correlation_id == "sess-1"

    def test_register_binding(self):
        """Test a registered binding is callable from queries."""
        session = QuerySession()
        session.register("$double", lambda value: value * 2, signature="<n-:n>")
        root = parse_string(MARKUP).root

        assert session.query(root, "$double(21)") == 42
        assert session.query(root, '[name="b"][0].attributes.x.$double()') == 2

    def test_register_decorator(self):
        """Test the decorator form of register."""
        session = QuerySession()

        @session.register("greet", signature="<s:s>")
        def greet(name):
            return f"hello {name}"

        assert session.query({}, '$greet("you")') == "hello you"

    def test_contexts_share_cache(self):
        """Test contexts from one session reuse compiled expressions."""
        session = QuerySession()
        first = parse_string(MARKUP, session=session)
        second = parse_string("<a><b>other</b></a>", session=session)

        assert first.query("b:text") == "hi"
        assert second.query("b:text") == "other"
        assert session.compiler.cache_info()["hits"] == 1

    def test_config_applies_to_compiler(self):
        """Test the session passes query config to its compiler."""
        session = QuerySession(EngineConfig(query=QueryConfig(cache_size_limit=0)))

        session.compile("a")

        assert "a" not in session.compiler

    def test_custom_bindings(self):
        """Test a session can start from a custom registry."""
        registry = BindingRegistry([])
        session = QuerySession(bindings=registry)

        assert session.bindings is registry
        assert "typeof" not in session.bindings

    def test_extension_transform(self):
        """Test session transforms reach the compiler."""
        session = QuerySession(transforms=[lambda text, state: text.replace("@", "attributes.")])
        root = parse_string(MARKUP).root

        assert session.query(root, "b.@x") == 1

    @pytest.mark.asyncio
    async def test_query_async(self):
        """Test the async query form."""
        session = QuerySession()
        root = parse_string(MARKUP).root

        assert await session.query_async(root, "b:text") == "hi"
