"""Built-in ``$name`` functions available to every query.

Each binding is registered with a JSONata signature. A ``-`` after a
parameter type makes the evaluator pass the current context value when the
argument is omitted, so ``$isString()`` inside a predicate tests the item
being filtered.
"""

import json
import math
import time
from dataclasses import dataclass
from datetime import date, datetime
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional

from jsonata import Jsonata, Utils

from xml_query_engine.normalization import camelcase, normalize_value, pascalcase, snakecase
from xml_query_engine.shared.errors import EvaluationError
from xml_query_engine.shared.logging import get_logger
from xml_query_engine.tree import Node, TextLeaf

from .model import ModelView
from .transforms import TypeCheck

if TYPE_CHECKING:
    from .context import EvaluationContext

DEFAULT_SIGNATURE = "<x-:x>"


@dataclass(frozen=True)
class Binding:
    """A named function exposed to queries as ``$name``.

    Attributes:
        name: Name without the ``$`` prefix
        fn: Implementation
        signature: JSONata signature, ``None`` to skip argument validation
        description: One-line help text
        contextual: Whether ``fn`` takes the evaluation context first
    """

    name: str
    fn: Callable[..., Any]
    signature: Optional[str] = DEFAULT_SIGNATURE
    description: str = ""
    contextual: bool = False

    def resolve(self, context: Optional["EvaluationContext"] = None) -> Any:
        """Build the evaluator function object for this binding."""
        fn = partial(self.fn, context) if self.contextual else self.fn
        return Jsonata.JFunction(Jsonata.JLambda(fn), self.signature)


# Value helpers


def plain(value: Any) -> Any:
    """Map the evaluator's null marker to ``None``."""
    return None if value is Utils.NULL_VALUE else value


def jsonable(value: Any) -> Any:
    """Convert an evaluator value into JSON-serializable data."""
    value = plain(value)
    if isinstance(value, ModelView):
        return value.node.to_json()
    if isinstance(value, Node):
        return value.to_json()
    if isinstance(value, list):
        return [jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): jsonable(item) for key, item in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def stringify(value: Any) -> str:
    """String form of a value the way query output presents it."""
    value = plain(value)
    if value is None:
        return ""
    if isinstance(value, ModelView):
        return value.node.to_string()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (list, dict)):
        return json.dumps(jsonable(value))
    return str(value)


def to_number(value: Any) -> Any:
    value = plain(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    normalized = normalize_value(stringify(value).strip())
    if isinstance(normalized, bool):
        return int(normalized)
    if isinstance(normalized, (int, float)):
        return normalized
    return math.nan


def _each(value: Any, fn: Callable[[Any], Any]) -> Any:
    if isinstance(value, list):
        return [fn(item) for item in value]
    return fn(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


# Casts


def cast_array(value: Any = None, value_type: Optional[str] = None) -> List[Any]:
    value = plain(value)
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, list):
        value = [value]
    if not value_type:
        return list(value)

    converters: Dict[str, Callable[[Any], Any]] = {
        "json": lambda item: json.loads(stringify(item)),
        "number": to_number,
        "int": cast_int,
        "float": cast_float,
        "string": stringify,
        "object": cast_object,
        "boolean": cast_boolean,
        "array": cast_array,
    }
    converter = converters.get(value_type.lower())
    return [converter(item) if converter else item for item in value]


def cast_boolean(value: Any = None) -> Any:
    return _each(value, lambda item: bool(plain(item)))


def cast_int(value: Any = None, base: Optional[int] = None) -> Any:
    def convert(item: Any) -> Any:
        item = plain(item)
        if base and isinstance(item, str):
            try:
                return int(item.strip(), int(base))
            except ValueError:
                return math.nan
        number = to_number(item)
        return number if _is_nan(number) else int(number)

    return _each(value, convert)


def cast_float(value: Any = None) -> Any:
    return _each(value, lambda item: float(to_number(item)))


def cast_number(value: Any = None) -> Any:
    return _each(value, to_number)


def cast_object(value: Any = None) -> Any:
    def convert(item: Any) -> Any:
        item = plain(item)
        if isinstance(item, dict):
            return item
        if item is None:
            return {}
        return {"value": item}

    return _each(value, convert)


def cast_string(value: Any = None, _options: Any = None) -> Any:
    return _each(value, stringify)


def cast_json(value: Any = None, _options: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError as e:
            raise EvaluationError(f"Invalid JSON input `{value[:8]} ...`: {e}") from e
    if value is None:
        return None
    return jsonable(value)


def cast_date(value: Any = None) -> Any:
    def convert(item: Any) -> Any:
        item = plain(item)
        if isinstance(item, datetime):
            return item
        parsed = normalize_value(stringify(item).strip())
        return parsed if isinstance(parsed, datetime) else None

    return _each(value, convert)


def cast_text(value: Any = None) -> Any:
    def convert(item: Any) -> TextLeaf:
        item = plain(item)
        if isinstance(item, ModelView):
            return item.node.text
        return TextLeaf(stringify(item))

    return _each(value, convert)


def cast_node(context: "EvaluationContext", value: Any = None) -> Any:
    def convert(item: Any) -> Any:
        item = plain(item)
        if isinstance(item, ModelView):
            return item
        if isinstance(item, str):
            return context.view(Node.from_string(str(item), context.config))
        if isinstance(item, dict):
            node = Node(str(item.get("name") or "node"), item.get("attributes") or {},
                        body=stringify(item.get("text")))
            return context.view(node)
        return None

    return _each(value, convert)


def cast_document(context: "EvaluationContext", value: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, list):
        value = value[0] if value else None
    view = cast_node(context, value)
    if view is None:
        return None
    root = view.node
    while root.parent is not None:
        root = root.parent
    return context.view(root)


def cast_fragment(context: "EvaluationContext", value: Any = None) -> List[Any]:
    value = plain(value)
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    views = [cast_node(context, item) for item in items]
    return [view for view in views if view is not None]


def const_true(value: Any = None) -> Any:
    return _each(value, lambda _: True)


def const_false(value: Any = None) -> Any:
    return _each(value, lambda _: False)


def const_null(value: Any = None) -> Any:
    return Utils.NULL_VALUE


def const_nan(value: Any = None) -> Any:
    return _each(value, lambda _: math.nan)


# Predicates


_TYPE_PREDICATES: Dict[TypeCheck, Callable[[Any], bool]] = {
    TypeCheck.TEXT: lambda item: isinstance(item, TextLeaf),
    TypeCheck.NODE: lambda item: isinstance(item, ModelView),
    TypeCheck.FRAGMENT: lambda item: isinstance(item, ModelView),
    TypeCheck.NUMBER: _is_number,
    TypeCheck.STRING: lambda item: isinstance(item, str),
    TypeCheck.OBJECT: lambda item: isinstance(item, dict),
    TypeCheck.BOOLEAN: lambda item: isinstance(item, bool),
    TypeCheck.DATE: lambda item: isinstance(item, (datetime, date)),
    TypeCheck.DOCUMENT: lambda item: isinstance(item, ModelView) and item.node.parent is None,
    TypeCheck.NAN: _is_nan,
}


def _is_empty(value: Any) -> bool:
    value = plain(value)
    if value is None:
        return True
    if isinstance(value, ModelView):
        return not value.node.children and not value.node.body
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def is_type(value: Any, type_name: str) -> bool:
    """Check ``value`` against a type from the ``is`` table.

    A sequence matches when it is non-empty and every item matches, except
    ``array`` and ``fragment`` which test the sequence itself, and ``null``
    and ``empty`` which also accept a missing value.
    """
    check = TypeCheck.lookup(type_name)
    value = plain(value)
    if check is TypeCheck.NULL:
        return value is None
    if check is TypeCheck.EMPTY:
        return _is_empty(value)
    if check is TypeCheck.ARRAY:
        return isinstance(value, list)
    if check is TypeCheck.FRAGMENT and not isinstance(value, list):
        return False

    items = value if isinstance(value, list) else [value]
    predicate = _TYPE_PREDICATES[check]
    return bool(items) and all(predicate(plain(item)) for item in items)


def is_nan(value: Any = None) -> bool:
    return _is_nan(plain(value))


def is_array(value: Any = None) -> bool:
    return isinstance(plain(value), list)


def is_object(value: Any = None) -> bool:
    return isinstance(plain(value), (dict, list))


def is_string(value: Any = None) -> bool:
    return isinstance(plain(value), str)


def is_number(value: Any = None) -> bool:
    return _is_number(plain(value))


def is_boolean(value: Any = None) -> bool:
    return isinstance(plain(value), bool)


def has(target: Any = None, key: Any = None) -> bool:
    target, key = plain(target), plain(key)
    if key is None or target is None or isinstance(target, (bool, int, float, str)):
        return False
    if isinstance(target, list):
        return any(has(item, key) for item in target)
    if isinstance(target, dict):
        return stringify(key) in target
    return hasattr(target, stringify(key))


def contains(target: Any = None, search: Any = None) -> bool:
    target, search = plain(target), plain(search)
    if target is None or search is None or isinstance(target, (bool, int, float)):
        return False
    if isinstance(target, str):
        if hasattr(search, "search"):
            return search.search(target) is not None
        return stringify(search) in target
    if isinstance(target, list):
        needle = normalize_value(search) if isinstance(search, str) else search
        return needle in target or search in target
    if isinstance(target, dict):
        return stringify(search) in target
    return False


# Utilities


def keys(value: Any = None) -> List[Any]:
    value = plain(value)
    if isinstance(value, list):
        return [keys(item) for item in value]
    if isinstance(value, dict):
        return list(value.keys())
    return []


def length(value: Any = None) -> int:
    value = plain(value)
    if value is None:
        return 0
    if isinstance(value, ModelView):
        return value.node.length
    if isinstance(value, (str, list, dict)):
        return len(value)
    return len(stringify(value))


def _dedupe(items: Iterable[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def unique(value: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, list):
        return _dedupe(value)
    if isinstance(value, str):
        return "".join(_dedupe(value))
    return [] if value is None else [value]


def _sort_key(item: Any) -> Any:
    item = plain(item)
    if _is_number(item):
        return (0, item, "")
    if isinstance(item, str):
        return (1, 0, item)
    return (2, 0, stringify(item))


def sort(value: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, list):
        return sorted(value, key=_sort_key)
    if isinstance(value, str):
        return "".join(sorted(value))
    return [] if value is None else [value]


def reverse(value: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, list):
        return list(reversed(value))
    if isinstance(value, str):
        return value[::-1]
    return [] if value is None else [value]


def concat(*values: Any) -> List[Any]:
    result: List[Any] = []
    for value in values:
        value = plain(value)
        if isinstance(value, list):
            result.extend(value)
        elif value is not None:
            result.append(value)
    return result


def join(values: Any = None, delimiter: Optional[str] = None) -> str:
    values = plain(values) or []
    separator = "," if delimiter is None else delimiter
    return separator.join(stringify(item) for item in values)


def slice_(value: Any = None, start: Any = None, stop: Any = None) -> Any:
    value = plain(value)
    start = int(start) if _is_number(start) else 0
    stop = int(stop) if _is_number(stop) else None
    if isinstance(value, ModelView):
        value = value["children"]
    if isinstance(value, (list, str)):
        return value[start:stop]
    return value


def to_tuple(value: Any = None) -> Any:
    value = plain(value)
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [{"key": key, "value": item} for key, item in value.items()]
    return None


def typeof(value: Any = None) -> str:
    if value is Utils.NULL_VALUE:
        return "null"
    if value is None:
        return "undefined"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, (datetime, date)):
        return "date"
    if callable(value) or isinstance(value, Jsonata.JFunction):
        return "function"
    return "object"


def class_constructor_name(value: Any = None) -> str:
    value = plain(value)
    if value is None:
        return ""
    if isinstance(value, ModelView):
        return type(value.node).__name__
    return type(value).__name__


def _case(convert: Callable[[str], str]) -> Callable[[Any], Any]:
    def apply(value: Any = None) -> Any:
        value = plain(value)
        return None if value is None else convert(str(value))

    return apply


def evaluate_text(context: "EvaluationContext", expression: Any = None, focus: Any = None) -> Any:
    expression = plain(expression)
    if expression is None:
        return None
    return context.evaluate_raw(stringify(expression), plain(focus))


def now() -> int:
    return int(time.time() * 1000)


def print_values(context: "EvaluationContext", *values: Any) -> None:
    context.write(" ".join(stringify(value) for value in values))


def noop() -> None:
    return None


BUILTINS = (
    Binding("array", cast_array, "<x-s?:a>", "Converts input into an array."),
    Binding("boolean", cast_boolean, "<x-:b>", "Converts input into a boolean."),
    Binding("float", cast_float, "<x-:n>", "Converts input into a float."),
    Binding("int", cast_int, "<x-n?:n>", "Converts input into an integer."),
    Binding("number", cast_number, "<x-:n>", "Converts input into a number."),
    Binding("object", cast_object, "<x-:o>", "Converts input into an object."),
    Binding("string", cast_string, "<x-x?:s>", "Converts input into a string."),
    Binding("json", cast_json, "<x-x?:x>", "Converts input into plain JSON data."),
    Binding("date", cast_date, "<x-:x>", "Converts input into a date."),
    Binding("text", cast_text, "<x-:s>", "Returns input as a text leaf."),
    Binding("node", cast_node, "<x-:o>", "Returns input as a node.", contextual=True),
    Binding("document", cast_document, "<x-:o>", "Returns the document owning input.",
            contextual=True),
    Binding("fragment", cast_fragment, "<x-:a>", "Returns input as a fragment.", contextual=True),
    Binding("true", const_true, "<x-:b>", "Returns true for any input."),
    Binding("false", const_false, "<x-:b>", "Returns false for any input."),
    Binding("null", const_null, "<x-:l>", "Returns null."),
    Binding("NaN", const_nan, "<x-:n>", "Returns NaN for any input."),
    Binding("is", is_type, "<x-s:b>", "Returns true if input matches a type name."),
    Binding("isNaN", is_nan, "<x-:b>", "Returns true if input is NaN."),
    Binding("isArray", is_array, "<x-:b>", "Returns true if input is an array."),
    Binding("isObject", is_object, "<x-:b>", "Returns true if input is an object."),
    Binding("isString", is_string, "<x-:b>", "Returns true if input is a string."),
    Binding("isNumber", is_number, "<x-:b>", "Returns true if input is a number."),
    Binding("isBoolean", is_boolean, "<x-:b>", "Returns true if input is a boolean."),
    Binding("has", has, "<x-s:b>", "Returns true if key is in target."),
    Binding("contains", contains, "<x-x:b>", "Returns true if search is in target."),
    Binding("keys", keys, "<x-:a>", "Returns the keys of input."),
    Binding("length", length, "<x-:n>", "Returns the length of input."),
    Binding("unique", unique, "<x-:x>", "Returns input with duplicates removed."),
    Binding("sorted", sort, "<x-:x>", "Returns input sorted."),
    Binding("reversed", reverse, "<x-:x>", "Returns input reversed."),
    Binding("concat", concat, "<x+>", "Returns arguments concatenated into an array."),
    Binding("join", join, "<a-s?:s>", "Joins an array by a delimiter (default: \",\")."),
    Binding("slice", slice_, "<x-n?n?:x>", "Returns a slice of an array, string or node."),
    Binding("tuple", to_tuple, "<x-:a>", "Converts input into key/value pairs."),
    Binding("typeof", typeof, "<x-:s>", "Returns the type of input as a string."),
    Binding("classConstructorName", class_constructor_name, "<x-:s>",
            "Returns the class name of input."),
    Binding("camelcase", _case(camelcase), "<x-:s>", "Converts input to camelCase."),
    Binding("pascalcase", _case(pascalcase), "<x-:s>", "Converts input to PascalCase."),
    Binding("snakecase", _case(snakecase), "<x-:s>", "Converts input to snake_case."),
    Binding("eval", evaluate_text, "<x-x?:x>", "Evaluates input as a query.", contextual=True),
    Binding("now", now, "<:n>", "Returns the UNIX epoch in milliseconds."),
    Binding("print", print_values, None, "Appends input to the output buffer.", contextual=True),
    Binding("noop", noop, "<:>", "Does nothing."),
)


class BindingRegistry:
    """Named bindings available to queries.

    Example:
        >>> registry = BindingRegistry()
        >>> @registry.register("double", signature="<n-:n>")
        ... def double(value):
        ...     return value * 2
    """

    def __init__(
        self,
        bindings: Optional[Iterable[Binding]] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        self.logger = get_logger(__name__, correlation_id, "bindings")
        self._bindings: Dict[str, Binding] = {}
        for binding in BUILTINS if bindings is None else bindings:
            self.add(binding)

    def add(self, binding: Binding) -> Binding:
        """Add or replace a binding."""
        self._bindings[binding.name] = binding
        self.logger.debug("Registered binding", extra={"binding": binding.name})
        return binding

    def register(
        self,
        name: str,
        fn: Optional[Callable[..., Any]] = None,
        signature: Optional[str] = DEFAULT_SIGNATURE,
        description: str = "",
        contextual: bool = False,
    ) -> Any:
        """Register ``fn`` as ``$name``; usable as a decorator when ``fn`` is omitted."""
        def decorator(function: Callable[..., Any]) -> Callable[..., Any]:
            self.add(Binding(name.lstrip("$"), function, signature, description, contextual))
            return function

        if fn is None:
            return decorator
        return decorator(fn)

    def remove(self, name: str) -> None:
        self._bindings.pop(name.lstrip("$"), None)

    def get(self, name: str) -> Optional[Binding]:
        return self._bindings.get(name.lstrip("$"))

    def names(self) -> List[str]:
        return list(self._bindings)

    def copy(self) -> "BindingRegistry":
        return BindingRegistry(self._bindings.values())

    def resolve(self, context: Optional["EvaluationContext"] = None) -> Dict[str, Any]:
        """Evaluator function objects for every binding, keyed by name."""
        return {name: binding.resolve(context) for name, binding in self._bindings.items()}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lstrip("$") in self._bindings

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)
