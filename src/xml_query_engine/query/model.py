"""Live model views over the node tree for the expression evaluator.

The evaluator navigates plain mappings, so every node is exposed through a
``ModelView``: a ``dict`` subclass whose lookups are answered from the
node at read time. A view resolves a key from the node's own data first,
then from its attributes, then from its children by name.
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

from xml_query_engine.normalization import normalize_key
from xml_query_engine.tree import Fragment, Node

_MISSING = object()

DATA_KEYS: Tuple[str, ...] = (
    "name",
    "originalName",
    "text",
    "body",
    "depth",
    "attributes",
    "children",
    "comments",
    "length",
    "index",
    "isParserNode",
    "isText",
    "isFragment",
)


class ModelView(dict):
    """Mapping adapter exposing a node to the evaluator.

    The underlying ``dict`` storage stays empty; every read goes through the
    node so in-place tree mutation is visible immediately. ``values()``
    yields the children collection only, so wildcard and descendant steps
    walk the tree structure rather than node data.

    Attributes:
        node: Node behind this view
    """

    __slots__ = ("node", "_model")

    def __init__(self, node: Node, model: "Model") -> None:
        super().__init__()
        self.node = node
        self._model = model

    def _data(self, key: str) -> Any:
        node = self.node
        if key == "name":
            return node.name
        if key == "originalName":
            return node.original_name
        if key in ("text", "body"):
            return node.text
        if key == "depth":
            return node.depth
        if key == "attributes":
            return node.attributes
        if key == "children":
            return self._model.children(node)
        if key == "comments":
            return list(node.comments)
        if key == "length":
            return node.length
        if key == "index":
            return node.index
        if key == "isParserNode":
            return True
        if key in ("isText", "isFragment"):
            return False
        return _MISSING

    def _child(self, key: str) -> Any:
        lowered = key.lower()
        for child in self.node.children:
            if child.name == lowered or child.original_name == key:
                return self._model.view(child)
            if normalize_key(child.original_name) == key:
                return self._model.view(child)
        return _MISSING

    def _resolve(self, key: Any) -> Any:
        if not isinstance(key, str):
            return _MISSING
        value = self._data(key)
        if value is _MISSING and key in self.node.attributes:
            value = self.node.attributes[key]
        if value is _MISSING:
            value = self._child(key)
        return value

    def get(self, key: Any, default: Any = None) -> Any:
        value = self._resolve(key)
        return default if value is _MISSING else value

    def __getitem__(self, key: Any) -> Any:
        value = self._resolve(key)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        return self._resolve(key) is not _MISSING

    def child_names(self) -> List[str]:
        """Distinct normalized child names in document order."""
        names: List[str] = []
        for child in self.node.children:
            if child.name not in names:
                names.append(child.name)
        return names

    def keys(self) -> List[str]:  # type: ignore[override]
        keys = list(DATA_KEYS)
        for key in list(self.node.attributes) + self.child_names():
            if key not in keys:
                keys.append(key)
        return keys

    def items(self) -> List[Tuple[str, Any]]:  # type: ignore[override]
        return [(key, self[key]) for key in self.keys()]

    def values(self) -> List[Any]:  # type: ignore[override]
        return [self._model.children(self.node)]

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self.keys())

    def __bool__(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        return self is other

    def __ne__(self, other: object) -> bool:
        return self is not other

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return f"ModelView({self.node.original_name!r})"

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of node data and attributes, children as snapshots."""
        result: Dict[str, Any] = {
            "name": self.node.name,
            "originalName": self.node.original_name,
            "text": str(self.node.text),
            "attributes": dict(self.node.attributes),
        }
        result["children"] = [view.to_dict() for view in self._model.children(self.node)]
        return result


class Model:
    """One synthesis pass: a per-node view cache keeping view identity stable."""

    def __init__(self) -> None:
        self._views: Dict[int, ModelView] = {}

    def view(self, node: Node) -> ModelView:
        view = self._views.get(id(node))
        if view is None or view.node is not node:
            view = ModelView(node, self)
            self._views[id(node)] = view
        return view

    def children(self, node: Node) -> List[ModelView]:
        return [self.view(child) for child in node.children]

    def __len__(self) -> int:
        return len(self._views)


def synthesize(target: Any, model: Optional[Model] = None) -> Any:
    """Build the evaluator-facing model for ``target``.

    Args:
        target: Node, Fragment or any other value
        model: Existing model to reuse; a new one is built when omitted

    Returns:
        A ``ModelView`` for a node, a list of views for a fragment, or the
        value unchanged
    """
    model = model if model is not None else Model()
    if isinstance(target, Node):
        return model.view(target)
    if isinstance(target, Fragment):
        return [synthesize(item, model) for item in target]
    return target
