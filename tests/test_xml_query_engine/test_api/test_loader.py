"""Tests for the markup-fetching import loader."""

import asyncio

import pytest

from xml_query_engine.api import DocumentLoader, create_loader, parse_string
from xml_query_engine.query import QuerySession
from xml_query_engine.shared.errors import ImportLoadError, ParseError

LIBRARY = {"lib": '<lib><item n="1"/><item n="2"/></lib>', "broken": "<lib><item"}


class CountingFetch:
    """Synchronous fetcher over a name to markup table."""

    def __init__(self, table=None):
        self.table = LIBRARY if table is None else table
        self.calls = []

    def __call__(self, name):
        self.calls.append(name)
        return self.table.get(name)


class TestDocumentLoader:
    """Test suite for DocumentLoader."""

    @pytest.mark.asyncio
    async def test_load_returns_root(self):
        """Test a loaded name resolves to the document root."""
        loader = create_loader(CountingFetch())

        root = await loader("lib")

        assert isinstance(loader, DocumentLoader)
        assert root.name == "lib"
        assert root.length == 2
        assert "lib" in loader

    @pytest.mark.asyncio
    async def test_cached_per_name(self):
        """Test a name is fetched once and later loads reuse the node."""
        fetch = CountingFetch()
        loader = create_loader(fetch)

        first = await loader("lib")
        second = await loader("lib")

        assert first is second
        assert fetch.calls == ["lib"]

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_task(self):
        """Test concurrent loads of one name share a single fetch."""
        fetch_calls = []

        async def fetch(name):
            fetch_calls.append(name)
            await asyncio.sleep(0)
            return LIBRARY[name]

        loader = create_loader(fetch)

        first, second = await asyncio.gather(loader("lib"), loader("lib"))

        assert first is second
        assert fetch_calls == ["lib"]

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        """Test a fetcher returning None fails and is retried later."""
        fetch = CountingFetch()
        loader = create_loader(fetch)

        with pytest.raises(ImportLoadError, match="Nothing found"):
            await loader("missing")
        assert "missing" not in loader

        with pytest.raises(ImportLoadError):
            await loader("missing")
        assert fetch.calls == ["missing", "missing"]

    @pytest.mark.asyncio
    async def test_malformed_markup(self):
        """Test parse failures propagate from the loader."""
        loader = create_loader(CountingFetch())

        with pytest.raises(ParseError):
            await loader("broken")

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clearing forgets loaded names."""
        fetch = CountingFetch()
        loader = create_loader(fetch)
        await loader("lib")

        loader.clear()
        await loader("lib")

        assert fetch.calls == ["lib", "lib"]

    @pytest.mark.asyncio
    async def test_session_loader(self):
        """Test the loader serves import statements."""
        session = QuerySession(loader=create_loader(CountingFetch()))
        root = parse_string("<a><b>local</b></a>").root

        imported = await session.query_async(root, 'import "lib"\nb:text')

        assert imported.name == "lib"
        assert await session.query_async(root, 'import "missing"\nb:text') == "local"
