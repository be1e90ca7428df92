"""Import loader that fetches markup and parses it into documents."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from xml_query_engine.query.session import QuerySession
from xml_query_engine.shared import EngineConfig, ImportLoadError, get_logger
from xml_query_engine.tree import Document, Node

from .parser import parse_async

Fetch = Callable[[str], Union[Any, Awaitable[Any]]]


class DocumentLoader:
    """Async loader for ``import`` statements backed by a markup fetcher.

    ``fetch(name)`` returns markup (string, bytes, async iterable of chunks or
    an awaitable of any of those). Each name is fetched and parsed once;
    concurrent loads of the same name share one task and only successful
    loads are kept.

    Example:
        >>> loader = DocumentLoader(lambda name: Path(name).read_text())
        >>> session = QuerySession(loader=loader)
    """

    def __init__(
        self,
        fetch: Fetch,
        config: Optional[EngineConfig] = None,
        session: Optional[QuerySession] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.fetch = fetch
        self.config = config
        self.session = session
        self.correlation_id = correlation_id
        self.logger = get_logger(__name__, correlation_id, "document_loader")
        self._tasks: Dict[str, "asyncio.Future[Node]"] = {}

    async def __call__(self, name: str) -> Node:
        task = self._tasks.get(name)
        if task is None:
            task = asyncio.ensure_future(self._load(name))
            task.add_done_callback(lambda done: self._forget_failure(name, done))
            self._tasks[name] = task
        else:
            self.logger.debug("Loader cache hit", extra={"import": name})
        return await asyncio.shield(task)

    def _forget_failure(self, name: str, task: "asyncio.Future[Node]") -> None:
        if task.cancelled() or task.exception() is not None:
            if self._tasks.get(name) is task:
                del self._tasks[name]

    async def _load(self, name: str) -> Node:
        content = self.fetch(name)
        if inspect.isawaitable(content):
            content = await content
        if content is None:
            raise ImportLoadError(f"Nothing found for {name!r}", name=name)

        document: Document = await parse_async(
            content, self.config, self.correlation_id, self.session
        )
        await document
        if document.root is None:
            raise ImportLoadError(f"No element found in {name!r}", name=name)

        self.logger.debug(
            "Loaded document",
            extra={"import": name, "nodes_created": document.metrics.nodes_created},
        )
        return document.root

    def __contains__(self, name: object) -> bool:
        task = self._tasks.get(name)  # type: ignore[arg-type]
        return (task is not None and task.done() and not task.cancelled()
                and task.exception() is None)

    def clear(self) -> None:
        self._tasks.clear()


def create_loader(
    fetch: Fetch,
    config: Optional[EngineConfig] = None,
    session: Optional[QuerySession] = None,
    correlation_id: Optional[str] = None,
) -> DocumentLoader:
    """Adapt a markup fetcher into a cached import loader.

    Args:
        fetch: Callable returning markup for a name, sync or async
        config: Engine configuration for parsing loaded documents
        session: Query session shared by loaded documents
        correlation_id: Optional correlation ID for request tracking

    Returns:
        Loader suitable for ``QuerySession(loader=...)``
    """
    return DocumentLoader(fetch, config, session, correlation_id)
