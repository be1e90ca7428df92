"""Evaluation context: query target, assignments, imports and output.

A context evaluates selector text against one target. ``let``/``set``
statements land in its ``Assignments`` table and become ``$name`` variables
for later queries; ``import`` statements request values from an async
loader through its ``Imports`` table.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from jsonata import JException, Utils

from xml_query_engine.normalization import normalize_key
from xml_query_engine.shared.config import EngineConfig
from xml_query_engine.shared.errors import CompileError, EvaluationError, ImportLoadError
from xml_query_engine.shared.logging import get_logger, new_correlation_id
from xml_query_engine.tree import Attributes, Fragment, Node

from .bindings import BindingRegistry, stringify
from .compiler import CompiledQuery, ExpressionCompiler
from .model import Model, ModelView, synthesize

Loader = Callable[[str], Awaitable[Any]]

_INTERPOLATION = re.compile(r"\$([A-Za-z_][\w]*)")
_TARGET = object()


def _is_empty(value: Any) -> bool:
    if value is None or value is Utils.NULL_VALUE:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


class Assignments(dict):
    """Insertion-ordered variable table keyed by normalized names."""

    def __init__(self, values: Optional[Dict[str, Any]] = None,
                 preserve_consecutive_uppercase: bool = True) -> None:
        super().__init__()
        self.preserve_consecutive_uppercase = preserve_consecutive_uppercase
        for key, value in (values or {}).items():
            self.set(key, value)

    def normalize_key(self, key: str) -> str:
        return normalize_key(str(key).lstrip("$"), self.preserve_consecutive_uppercase)

    def set(self, key: str, value: Any) -> None:
        self[self.normalize_key(key)] = value


class Imports:
    """Import table: normalized name to a pending or settled load task.

    Concurrent requests for the same name share one task. A failed load is
    stored as ``ImportLoadError`` on the task; ``entry`` re-raises it while
    ``EvaluationContext.import_`` resolves it to ``None``.
    """

    def __init__(self, loader: Optional[Loader] = None,
                 correlation_id: Optional[str] = None) -> None:
        self.loader = loader
        self.logger = get_logger(__name__, correlation_id, "imports")
        self._entries: Dict[str, "asyncio.Future[Any]"] = {}

    @property
    def pending(self) -> List[str]:
        """Names whose load has not settled yet."""
        return [name for name, task in self._entries.items() if not task.done()]

    def names(self) -> List[str]:
        return list(self._entries)

    def settled(self, name: str) -> bool:
        task = self._entries.get(name)
        return task is not None and task.done()

    def request(self, name: str) -> "asyncio.Future[Any]":
        """Get the load task for ``name``, starting one if needed.

        Must be called with a running event loop.
        """
        task = self._entries.get(name)
        if task is not None:
            self.logger.debug("Import already requested", extra={"import": name})
            return task

        self.logger.debug("Import requested", extra={"import": name})
        task = asyncio.ensure_future(self._load(name))
        task.add_done_callback(self._observe)
        self._entries[name] = task
        return task

    async def _load(self, name: str) -> Any:
        if self.loader is None:
            raise ImportLoadError(f"No loader configured to import {name!r}", name=name)
        try:
            return await self.loader(name)
        except ImportLoadError:
            raise
        except Exception as e:
            raise ImportLoadError(f"Failed to import {name!r}: {e}", name=name) from e

    def _observe(self, task: "asyncio.Future[Any]") -> None:
        if not task.cancelled() and task.exception() is not None:
            self.logger.debug("Import failed", extra={"error": str(task.exception())})

    async def entry(self, name: str) -> Any:
        """Await the raw entry for ``name``.

        Raises:
            ImportLoadError: If the load failed or ``name`` was never requested
        """
        task = self._entries.get(name)
        if task is None:
            raise ImportLoadError(f"Import {name!r} was never requested", name=name)
        return await task

    def result(self, name: str) -> Any:
        """Settled value for ``name``, ``None`` when pending or failed."""
        task = self._entries.get(name)
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class EvaluationContext:
    """Evaluates selector text against a target node.

    Example:
        >>> context = document.context()
        >>> context.evaluate("let n = 5")
        >>> context.evaluate("$n + 1")
        6
    """

    def __init__(
        self,
        target: Any,
        compiler: Optional[ExpressionCompiler] = None,
        bindings: Optional[BindingRegistry] = None,
        config: Optional[EngineConfig] = None,
        loader: Optional[Loader] = None,
        assignments: Optional[Dict[str, Any]] = None,
        imports: Optional[Imports] = None,
        model: Optional[Model] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Initialize evaluation context.

        Args:
            target: Node, Fragment or plain value to query
            compiler: Compiler owning the expression cache
            bindings: Function registry, built-ins when omitted
            config: Engine configuration
            loader: Async loader used by ``import``
            assignments: Existing variable table to share or seed from
            imports: Existing import table to share
            model: Pinned model to reuse instead of synthesizing a new one
            correlation_id: Optional correlation ID for request tracking
        """
        self.config = config or EngineConfig()
        self.correlation_id = correlation_id or new_correlation_id()
        self.logger = get_logger(__name__, self.correlation_id, "context")
        self.compiler = compiler or ExpressionCompiler(self.config.query,
                                                       correlation_id=self.correlation_id)
        self.bindings = bindings or BindingRegistry(correlation_id=self.correlation_id)

        if isinstance(assignments, Assignments):
            self.assignments = assignments
        else:
            self.assignments = Assignments(
                assignments, self.config.tree.preserve_consecutive_uppercase
            )
        self.imports = imports if imports is not None else Imports(loader, self.correlation_id)
        if loader is not None:
            self.imports.loader = loader

        self.output: List[str] = []
        self.target = target
        self.model = model if model is not None else Model()
        self.input = synthesize(target, self.model)
        self._functions = self.bindings.resolve(self)

    def view(self, node: Node) -> ModelView:
        """View of ``node`` in this context's model."""
        return self.model.view(node)

    def write(self, line: str) -> None:
        """Append a line to the output buffer, dropping the oldest beyond the limit."""
        self.output.append(line)
        overflow = len(self.output) - self.config.query.max_output_lines
        if overflow > 0:
            del self.output[:overflow]

    def variables(self) -> Dict[str, Any]:
        """Query variables: bindings overlaid with the current assignments."""
        variables = dict(self._functions)
        for key, value in self.assignments.items():
            variables[key] = synthesize(value, self.model)
        return variables

    def normalize_value(self, value: Any) -> Any:
        """Normalize an assigned value or import target.

        Text is tried as a JSON literal, then as an expression evaluated
        against the current assignments, and finally ``$name`` references
        are interpolated from the current assignments.
        """
        if not isinstance(value, str):
            return value

        text = value.strip()
        if len(text) >= 2 and text[0] == text[-1] == "'":
            text = '"%s"' % text[1:-1].replace('"', '\\"')
        try:
            return json.loads(text)
        except ValueError:
            pass

        try:
            result = self.convert(self.evaluate_raw(value.strip()))
        except (CompileError, EvaluationError) as e:
            self.logger.debug("Value is not an expression", extra={"value": value, "error": str(e)})
            result = None
        if result is not None:
            return result

        def interpolate(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key in self.assignments:
                return stringify(synthesize(self.assignments[key], self.model))
            return match.group(0)

        return _INTERPOLATION.sub(interpolate, value.strip())

    def assign(self, key: str, value: Any) -> Any:
        """Normalize and store a variable.

        Returns:
            The stored value
        """
        normalized = self.normalize_value(value)
        self.assignments.set(key, normalized)
        self.logger.debug("Assigned variable", extra={"variable": self.assignments.normalize_key(key)})
        return normalized

    def import_name(self, target: Any) -> str:
        return stringify(self.normalize_value(target))

    def import_(self, name: Any) -> "asyncio.Future[Any]":
        """Request an import, resolving to ``None`` if the load fails.

        Must be called with a running event loop. The raw entry, which
        raises ``ImportLoadError`` on failure, stays available through
        ``imports.entry``.
        """
        return self._request(self.import_name(name))

    def _request(self, name: str) -> "asyncio.Future[Any]":
        task = self.imports.request(name)
        return asyncio.ensure_future(self._settle(name, task))

    async def _settle(self, name: str, task: "asyncio.Future[Any]") -> Any:
        try:
            return await asyncio.shield(task)
        except ImportLoadError as e:
            self.logger.debug("Import resolved to None", extra={"import": name, "error": str(e)})
            return None

    def compile(self, text: str) -> CompiledQuery:
        """Compile ``text`` and apply its declarations."""
        compiled = self.compiler.compile(text)
        for declaration in compiled.declarations:
            self.assign(declaration.key, declaration.value)
        return compiled

    def evaluate_raw(self, text: str, focus: Any = _TARGET) -> Any:
        """Evaluate ``text`` without declarations, imports or result conversion."""
        return self._run(self.compiler.compile(text), focus)

    def _run(self, compiled: CompiledQuery, focus: Any = _TARGET) -> Any:
        data = self.input if focus is _TARGET else synthesize(focus, self.model)
        try:
            return compiled.expression.evaluate(data, self.variables())
        except JException as e:
            raise EvaluationError(str(e), code=e.error, expression=compiled.expression_text) from e

    def evaluate(self, text: str) -> Any:
        """Evaluate selector text against the target.

        Args:
            text: Selector text

        Returns:
            The converted result, or an ``asyncio.Future`` for it when the
            text requests imports that are still pending

        Raises:
            CompileError: If the text cannot be compiled
            EvaluationError: If evaluation fails
        """
        compiled = self.compile(text)
        targets = list(compiled.imports) if self.config.query.enable_imports else []
        if not targets:
            return self.convert(self._run(compiled))

        names = [self.import_name(target) for target in targets]
        if all(self.imports.settled(name) for name in names):
            return self._prefer_imports([self.imports.result(name) for name in names], compiled)

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self._evaluate_after_imports(names, compiled))
        return asyncio.ensure_future(self._evaluate_after_imports(names, compiled))

    async def _evaluate_after_imports(self, names: Sequence[str], compiled: CompiledQuery) -> Any:
        values = await asyncio.gather(*(self._request(name) for name in names))
        return self._prefer_imports(values, compiled)

    def _prefer_imports(self, values: Iterable[Any], compiled: CompiledQuery) -> Any:
        for value in values:
            if not _is_empty(value):
                return value
        return self.convert(self._run(compiled))

    async def evaluate_async(self, text: str) -> Any:
        """Evaluate selector text, awaiting any pending imports."""
        result = self.evaluate(text)
        if isinstance(result, asyncio.Future):
            return await result
        return result

    def convert(self, value: Any) -> Any:
        """Convert an evaluator result back into the tree family.

        Views become nodes, a top-level sequence becomes a ``Fragment`` and
        JSONata null or an empty sequence becomes ``None``.
        """
        value = self._convert_item(value)
        if isinstance(value, list):
            return Fragment(value) if value else None
        return value

    def _convert_item(self, value: Any) -> Any:
        if value is Utils.NULL_VALUE:
            return None
        if isinstance(value, ModelView):
            return value.node
        if isinstance(value, list):
            return [self._convert_item(item) for item in value]
        if isinstance(value, dict) and not isinstance(value, Attributes):
            return {key: self._convert_item(item) for key, item in value.items()}
        return value

    def __repr__(self) -> str:
        return (f"EvaluationContext(target={self.target!r}, "
                f"assignments={list(self.assignments)}, imports={self.imports.names()})")
