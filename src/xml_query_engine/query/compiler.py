"""Selector compiler with a bounded compiled-expression cache."""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from jsonata import Jsonata, JException

from xml_query_engine.shared.config import QueryConfig
from xml_query_engine.shared.errors import END_OF_INPUT_TOKEN, CompileError
from xml_query_engine.shared.logging import get_logger

from .lexer import mask
from .transforms import Declaration, run_phases

UNEXPECTED_END_CODES = ("S0203", "S0207")


@dataclass(frozen=True)
class CompiledQuery:
    """Result of compiling selector text.

    Attributes:
        source: Selector text as given
        expression_text: JSONata source produced by the rewrite phases
        declarations: ``let``/``set`` statements to apply before evaluation
        imports: Import targets requested by the selector
        expression: Parsed JSONata expression
    """

    source: str
    expression_text: str
    declarations: Tuple[Declaration, ...] = ()
    imports: Tuple[str, ...] = ()
    expression: Any = field(default=None, compare=False, repr=False)


def compile_error(error: JException) -> CompileError:
    """Convert a JSONata exception into a token-carrying ``CompileError``.

    An unexpected end of expression maps to the end-of-input token so
    callers can tell unfinished input from invalid input.
    """
    token = END_OF_INPUT_TOKEN if error.error in UNEXPECTED_END_CODES else error.current
    return CompileError(
        str(error),
        token=None if token is None else str(token),
        position=error.location,
        code=error.error,
    )


class ExpressionCompiler:
    """Compiles selector text into JSONata expressions.

    Compiled results are cached by exact source text in an LRU bounded by
    ``QueryConfig.cache_size_limit``; a limit of 0 disables caching. The
    cache is safe to share between threads.

    Example:
        >>> compiler = ExpressionCompiler()
        >>> compiler.translate('[name="b"]:first:text')
        '*[name="b"][0].text'
    """

    def __init__(
        self,
        config: Optional[QueryConfig] = None,
        transforms: Sequence[Any] = (),
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize compiler.

        Args:
            config: Query configuration
            transforms: Extra phase 2 transforms, callables or objects
                with a ``transform(text, state)`` method
            correlation_id: Optional correlation ID for request tracking
        """
        self.config = config or QueryConfig()
        self.transforms = tuple(transforms)
        self.logger = get_logger(__name__, correlation_id, "compiler")
        self._cache: "OrderedDict[str, CompiledQuery]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def translate(self, text: str) -> str:
        """Rewrite selector text into JSONata source without parsing it."""
        expression_text, _ = run_phases(mask(text), self.transforms)
        return expression_text

    def compile(self, text: str) -> CompiledQuery:
        """Compile selector text, reusing a cached result when possible.

        Args:
            text: Selector text

        Returns:
            CompiledQuery for ``text``

        Raises:
            CompileError: If the text cannot be rewritten or parsed
        """
        with self._lock:
            cached = self._cache.get(text)
            if cached is not None:
                self._cache.move_to_end(text)
                self._hits += 1
                self.logger.debug("Compiled expression cache hit", extra={"source": text})
                return cached
            self._misses += 1

        compiled = self._compile(text)

        if self.config.cache_size_limit > 0:
            with self._lock:
                self._cache[text] = compiled
                self._cache.move_to_end(text)
                while len(self._cache) > self.config.cache_size_limit:
                    self._cache.popitem(last=False)
        return compiled

    def _compile(self, text: str) -> CompiledQuery:
        expression_text, state = run_phases(mask(text), self.transforms)
        self.logger.debug(
            "Translated selector",
            extra={"source": text, "expression": expression_text},
        )

        try:
            expression = Jsonata(expression_text)
        except JException as e:
            raise compile_error(e) from e

        expression.set_validate_input(False)
        expression.set_output_convert_nulls(False)

        return CompiledQuery(
            source=text,
            expression_text=expression_text,
            declarations=tuple(state.declarations),
            imports=tuple(state.imports),
            expression=expression,
        )

    def cache_info(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._cache),
                "limit": self.config.cache_size_limit,
            }

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def __contains__(self, text: object) -> bool:
        with self._lock:
            return text in self._cache

    def compile_many(self, texts: Iterable[str]) -> Tuple[CompiledQuery, ...]:
        """Compile several selectors, e.g. to warm the cache."""
        return tuple(self.compile(text) for text in texts)
