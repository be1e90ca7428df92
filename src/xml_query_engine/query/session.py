"""Query session: compiler cache, bindings and configuration in one place."""

import asyncio
from typing import Any, Callable, Dict, Optional, Sequence

from xml_query_engine.shared.config import EngineConfig
from xml_query_engine.shared.logging import get_logger, new_correlation_id

from .bindings import BindingRegistry
from .compiler import CompiledQuery, ExpressionCompiler
from .context import EvaluationContext, Imports, Loader
from .model import Model


class QuerySession:
    """Owns one expression compiler and binding registry.

    Contexts created by a session share its compiled-expression cache, so
    repeated queries against any target skip recompilation.

    Example:
        >>> session = QuerySession()
        >>> session.query(document.root, '[name="b"]:attr(x)')
        [1, 2]
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        bindings: Optional[BindingRegistry] = None,
        transforms: Sequence[Any] = (),
        loader: Optional[Loader] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize query session.

        Args:
            config: Engine configuration
            bindings: Function registry, built-ins when omitted
            transforms: Extra rewrite transforms applied after the built-in phases
            loader: Default async loader for ``import`` statements
            correlation_id: Optional correlation ID for request tracking
        """
        self.config = config or EngineConfig()
        self.correlation_id = correlation_id or new_correlation_id()
        self.logger = get_logger(__name__, self.correlation_id, "session")
        self.compiler = ExpressionCompiler(self.config.query, transforms, self.correlation_id)
        self.bindings = bindings or BindingRegistry(correlation_id=self.correlation_id)
        self.loader = loader

    def compile(self, text: str) -> CompiledQuery:
        return self.compiler.compile(text)

    def register(self, name: str, fn: Optional[Callable[..., Any]] = None, **options: Any) -> Any:
        """Register a ``$name`` binding for every later context."""
        return self.bindings.register(name, fn, **options)

    def context(
        self,
        target: Any,
        loader: Optional[Loader] = None,
        assignments: Optional[Dict[str, Any]] = None,
        imports: Optional[Imports] = None,
        model: Optional[Model] = None,
    ) -> EvaluationContext:
        """Create an evaluation context for ``target``.

        Args:
            target: Node, Fragment or plain value to query
            loader: Async loader, defaults to the session's
            assignments: Variable table; pass an ``Assignments`` to share it
                between contexts
            imports: Import table to share between contexts
            model: Pinned model to reuse

        Returns:
            New EvaluationContext
        """
        return EvaluationContext(
            target,
            compiler=self.compiler,
            bindings=self.bindings,
            config=self.config,
            loader=loader or self.loader,
            assignments=assignments,
            imports=imports,
            model=model,
            correlation_id=self.correlation_id,
        )

    def query(self, target: Any, selector: str, **options: Any) -> Any:
        """Evaluate ``selector`` against ``target`` in a fresh context.

        Args:
            target: Node, Fragment or plain value to query
            selector: Selector text
            **options: Forwarded to ``context``

        Returns:
            Query result, or an ``asyncio.Future`` when imports are pending
        """
        logger = self.logger.bind(selector=selector)
        logger.debug("Query started")
        result = self.context(target, **options).evaluate(selector)
        if isinstance(result, asyncio.Future):
            logger.debug("Query waiting on imports")
        else:
            logger.debug("Query finished", extra={"result_type": type(result).__name__})
        return result

    async def query_async(self, target: Any, selector: str, **options: Any) -> Any:
        logger = self.logger.bind(selector=selector)
        logger.debug("Query started")
        result = await self.context(target, **options).evaluate_async(selector)
        logger.debug("Query finished", extra={"result_type": type(result).__name__})
        return result
