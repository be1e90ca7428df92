"""Mutable element tree model.

A ``Node`` owns its children exclusively: a node appears in at most one
parent's children list, and ``node.parent`` is always the parent whose list
contains it. Text content is kept in ``body`` and exposed as a ``TextLeaf``
so string results stay in the tree result type family. ``Fragment`` is the
frozen, parentless list type used for multi-item query results.
"""

import functools
import html
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from xml_query_engine.normalization import normalize_key, normalize_name, normalize_value
from xml_query_engine.shared.config import TreeConfig
from xml_query_engine.shared.errors import AttachmentError

FRAGMENT_NODE_NAME = "#fragment"
TEXT_NODE_NAME = "#text"
CDATA_NODE_NAME = "cdata"
INDENT = "  "


class Attributes(dict):
    """Ordered attribute map keyed by normalized (camelCase) keys.

    Lookups also accept the key as authored, and the authored string of
    every value is kept for faithful serialization.

    Example:
        >>> attributes = Attributes({"asset_ID": "42"})
        >>> attributes["assetID"], attributes.get("asset_ID"), attributes.raw("assetID")
        (42, 42, '42')
    """

    def __init__(
        self,
        attributes: Optional[Dict[str, Any]] = None,
        normalize_values: bool = True,
        preserve_consecutive_uppercase: bool = True,
    ) -> None:
        super().__init__()
        self.normalize_values = normalize_values
        self.preserve_consecutive_uppercase = preserve_consecutive_uppercase
        self._original_keys: Dict[str, str] = {}
        self._raw_values: Dict[str, Any] = {}
        if attributes:
            self.set(attributes)

    def normalize_key(self, key: Any) -> str:
        """Normalize ``key`` the way stored keys are normalized."""
        return normalize_key(key, self.preserve_consecutive_uppercase)

    def _resolve(self, key: Any) -> Optional[str]:
        if not isinstance(key, str) or not key:
            return None
        if dict.__contains__(self, key):
            return key
        normalized = self.normalize_key(key)
        if dict.__contains__(self, normalized):
            return normalized
        return None

    def set(self, key: Any, value: Any = None) -> None:
        """Set one attribute, or every pair of a mapping passed as ``key``."""
        if isinstance(key, dict):
            items = key.raw_items() if isinstance(key, Attributes) else key.items()
            for name, item in items:
                self.set(name, item)
            return

        normalized = self.normalize_key(key)
        if not normalized:
            raise ValueError(f"Invalid attribute key: {key!r}")
        self._original_keys[normalized] = str(key)
        self._raw_values[normalized] = value
        stored = normalize_value(value) if self.normalize_values else value
        dict.__setitem__(self, normalized, stored)

    def __setitem__(self, key: Any, value: Any) -> None:
        self.set(key, value)

    def __getitem__(self, key: Any) -> Any:
        resolved = self._resolve(key)
        if resolved is None:
            raise KeyError(key)
        return dict.__getitem__(self, resolved)

    def __delitem__(self, key: Any) -> None:
        resolved = self._resolve(key)
        if resolved is None:
            raise KeyError(key)
        dict.__delitem__(self, resolved)
        del self._original_keys[resolved]
        del self._raw_values[resolved]

    def __contains__(self, key: object) -> bool:
        return self._resolve(key) is not None

    def get(self, key: Any, default: Any = None) -> Any:
        resolved = self._resolve(key)
        if resolved is None:
            return default
        return dict.__getitem__(self, resolved)

    def has(self, key: Any) -> bool:
        """Check whether a value exists for ``key`` in either form."""
        return key in self

    def pop(self, key: Any, *default: Any) -> Any:
        if key not in self:
            if default:
                return default[0]
            raise KeyError(key)
        value = self[key]
        del self[key]
        return value

    def update(self, *args: Any, **kwargs: Any) -> None:
        for mapping in args:
            self.set(dict(mapping))
        if kwargs:
            self.set(kwargs)

    def clear(self) -> None:
        dict.clear(self)
        self._original_keys.clear()
        self._raw_values.clear()

    def raw(self, key: Any) -> Any:
        """Get the value of ``key`` as authored."""
        resolved = self._resolve(key)
        return None if resolved is None else self._raw_values[resolved]

    def original_keys(self) -> List[str]:
        """Get the keys as authored, in insertion order."""
        return list(self._original_keys.values())

    def raw_items(self) -> Iterator[Tuple[str, Any]]:
        """Iterate ``(authored key, authored value)`` pairs."""
        for normalized, original in self._original_keys.items():
            yield original, self._raw_values[normalized]

    def copy(self) -> "Attributes":
        return Attributes(
            dict(self.raw_items()),
            self.normalize_values,
            self.preserve_consecutive_uppercase,
        )

    def to_json(self, normalize: bool = False) -> Dict[str, Any]:
        """Convert to a plain dictionary.

        Args:
            normalize: Use normalized keys and typed values instead of the
                authored keys and strings

        Returns:
            Plain ``dict`` copy of the attributes
        """
        if normalize:
            return dict(self.items())
        return dict(self.raw_items())

    def __reduce__(self) -> Any:
        return (
            Attributes,
            (dict(self.raw_items()), self.normalize_values, self.preserve_consecutive_uppercase),
        )


def _to_text_leaf(value: Any) -> Any:
    if isinstance(value, str):
        return TextLeaf(value)
    if isinstance(value, list):
        return [_to_text_leaf(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_to_text_leaf(item) for item in value)
    return value


class TextLeaf(str):
    """Text content of a node.

    Every string operation on a ``TextLeaf`` returns another ``TextLeaf``
    (or a list/tuple of them), so chained results stay text leaves.
    """

    name = TEXT_NODE_NAME
    is_text = True
    is_fragment = False
    is_parser_node = True

    def __new__(cls, value: Any = "") -> "TextLeaf":
        return super().__new__(cls, "" if value is None else str(value))

    @property
    def parent(self) -> None:
        return None

    @property
    def text(self) -> str:
        return str(self)

    @property
    def length(self) -> int:
        return len(self)

    def to_json(self, **options: Any) -> str:
        """Convert to a plain string."""
        return str(self)

    def to_string(self, **options: Any) -> str:
        """Convert to a plain string."""
        return str(self)

    def __repr__(self) -> str:
        return f"TextLeaf({str(self)!r})"


def _wrap_str_method(method_name: str) -> Callable[..., Any]:
    method = getattr(str, method_name)

    @functools.wraps(method)
    def wrapper(self: TextLeaf, *args: Any, **kwargs: Any) -> Any:
        return _to_text_leaf(method(self, *args, **kwargs))

    return wrapper


for _method_name in (
    "__add__", "__getitem__", "__mod__", "__mul__", "__rmul__",
    "capitalize", "casefold", "center", "expandtabs", "format", "join",
    "ljust", "lower", "lstrip", "partition", "removeprefix", "removesuffix",
    "replace", "rjust", "rpartition", "rsplit", "rstrip", "split",
    "splitlines", "strip", "swapcase", "title", "translate", "upper", "zfill",
):
    setattr(TextLeaf, _method_name, _wrap_str_method(_method_name))


class Fragment(list):
    """Frozen, parentless list of query result items.

    A ``Fragment`` compares equal to a plain list of the same items. Any
    attempt to mutate it raises ``TypeError``. ``node`` exposes a synthetic
    container node for code that expects a single node.
    """

    name = FRAGMENT_NODE_NAME
    is_text = False
    is_fragment = True
    is_parser_node = True

    def __init__(self, items: Iterable[Any] = ()) -> None:
        super().__init__(item for item in items if item is not None)
        self._node: Optional["Node"] = None

    def _immutable(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError("Fragment is immutable")

    append = extend = insert = remove = pop = clear = sort = reverse = _immutable
    __setitem__ = __delitem__ = __iadd__ = __imul__ = _immutable

    def __getitem__(self, index: Any) -> Any:
        result = list.__getitem__(self, index)
        if isinstance(index, slice):
            return Fragment(result)
        return result

    def __reduce__(self) -> Any:
        return (Fragment, (list(self),))

    @property
    def node(self) -> "Node":
        """Detached ``#fragment`` container listing this fragment's items.

        The items are not reparented, so their own ``parent`` is unchanged.
        """
        if self._node is None:
            self._node = Node(FRAGMENT_NODE_NAME)
            self._node._children.extend(self)
        return self._node

    @property
    def parent(self) -> None:
        return None

    @property
    def children(self) -> List[Any]:
        return list(self)

    @property
    def length(self) -> int:
        return len(self)

    @property
    def is_connected(self) -> bool:
        return False

    def query(self, selector: str, session: Optional[Any] = None, **options: Any) -> Any:
        """Evaluate ``selector`` with this fragment's items as the query target."""
        from xml_query_engine.query.session import QuerySession

        session = session or QuerySession()
        return session.query(self, selector, **options)

    def to_string(self, **options: Any) -> str:
        """Serialize every item, one per line."""
        return "\n".join(
            item.to_string(**options) if hasattr(item, "to_string") else str(item)
            for item in self
        )

    def to_json(self, **options: Any) -> List[Any]:
        """Convert every item to its JSON form."""
        return [item.to_json(**options) if hasattr(item, "to_json") else item for item in self]

    def __repr__(self) -> str:
        return f"Fragment({list.__repr__(self)})"


class Node:
    """Element node of a parsed document.

    Attributes:
        original_name: Name as authored
        attributes: Attribute map keyed by normalized keys
        body: Accumulated text content
        comments: Comment strings, not navigable as children
        depth: Nesting level, 0 for a root
        parent: Owning node, ``None`` for a root or detached node
    """

    is_text = False
    is_fragment = False
    is_parser_node = True

    def __init__(
        self,
        name: Optional[str] = "",
        attributes: Optional[Dict[str, Any]] = None,
        depth: int = 0,
        body: str = "",
        config: Optional[TreeConfig] = None,
        comments: Optional[List[str]] = None,
        is_cdata: bool = False,
    ) -> None:
        self.config = config or TreeConfig()
        self.original_name = name or ""
        self.attributes = Attributes(
            attributes,
            normalize_values=self.config.normalize_values,
            preserve_consecutive_uppercase=self.config.preserve_consecutive_uppercase,
        )
        self.body = body or ""
        self.depth = depth
        self.comments: List[str] = list(comments or [])
        self.is_cdata = is_cdata
        self.parent: Optional["Node"] = None
        self._children: List["Node"] = []

    @property
    def name(self) -> str:
        """Normalized (lowercase) name used for name-based addressing."""
        return normalize_name(self.original_name)

    @name.setter
    def name(self, value: str) -> None:
        self.original_name = value or ""

    @property
    def children(self) -> List["Node"]:
        """Child nodes; mutate through ``attach``/``detach`` only."""
        return self._children

    @property
    def text(self) -> TextLeaf:
        return TextLeaf(self.body)

    @property
    def length(self) -> int:
        return len(self._children)

    @property
    def index(self) -> int:
        """Position within the parent's children, ``-1`` when detached."""
        if self.parent is None:
            return -1
        return self.parent.children.index(self)

    @property
    def is_connected(self) -> bool:
        return self.parent is not None

    @property
    def is_orphaned(self) -> bool:
        return not self.is_connected and not self._children

    @classmethod
    def from_string(cls, markup: str, config: Optional[Any] = None) -> "Node":
        """Create a node from a markup snippet, or a bare node from a name.

        Args:
            markup: Either markup such as ``<b x="1">hi</b>`` or a plain name
            config: Optional ``EngineConfig`` for parsing

        Returns:
            The first element of the snippet, detached

        Raises:
            ParseError: If the snippet cannot be tokenized
        """
        trimmed = markup.strip()
        if not (trimmed.startswith("<") and trimmed.endswith(">")):
            return cls(trimmed)

        from xml_query_engine.api.parser import parse_string

        document = parse_string(trimmed, config=config)
        document.ready.result()
        if document.root is None:
            raise ValueError(f"No element found in markup: {markup!r}")
        return document.root

    def on_connect(self, parent: "Node") -> None:
        """Called after this node is attached to ``parent``."""

    def on_disconnect(self, parent: "Node") -> None:
        """Called after this node is detached from ``parent``."""

    def _set_depth(self, depth: int) -> None:
        self.depth = depth
        for child in self._children:
            child._set_depth(depth + 1)

    def attach(self, child: "Node") -> "Node":
        """Append ``child``, detaching it from any previous parent first.

        Attaching a child that is already present is a no-op.

        Args:
            child: Node to append

        Returns:
            The attached child

        Raises:
            AttachmentError: If ``child`` is not a ``Node`` or is an ancestor
        """
        if not isinstance(child, Node):
            raise AttachmentError(
                f"Cannot attach {type(child).__name__}: not a tree node"
            )
        if child.parent is self:
            return child

        ancestor: Optional[Node] = self
        while ancestor is not None:
            if ancestor is child:
                raise AttachmentError("Cannot attach a node to its own descendant")
            ancestor = ancestor.parent

        if child.parent is not None:
            child.parent.detach(child)

        child.parent = self
        self._children.append(child)
        child._set_depth(self.depth + 1)
        child.on_connect(self)
        return child

    append_child = attach

    def detach(self, child: "Node") -> "Node":
        """Remove ``child`` from this node.

        Raises:
            AttachmentError: If ``child`` is not owned by this node
        """
        if not isinstance(child, Node):
            raise AttachmentError(
                f"Cannot detach {type(child).__name__}: not a tree node"
            )
        if child.parent is not self:
            raise AttachmentError(
                f"Cannot detach <{child.original_name}>: not a child of <{self.original_name}>"
            )

        self._children.remove(child)
        child.parent = None
        child.on_disconnect(self)
        return child

    remove_child = detach

    def append(self, *nodes: Any) -> "Node":
        """Attach every node given, flattening nested lists."""
        for node in nodes:
            if isinstance(node, (list, tuple)):
                self.append(*node)
            else:
                self.attach(node)
        return self

    def remove(self, *nodes: "Node") -> "Node":
        """Detach every node given."""
        for node in nodes:
            self.detach(node)
        return self

    def includes(self, node: Any) -> bool:
        return isinstance(node, Node) and node.parent is self

    def create_child(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
        body: str = "",
    ) -> "Node":
        """Create a node and attach it as the last child."""
        child = Node(name, attributes, self.depth + 1, body=body, config=self.config)
        return self.attach(child)

    def clone(self, deep: bool = False) -> "Node":
        """Copy this node.

        Args:
            deep: Clone children recursively; a shallow clone has no children

        Returns:
            Detached copy sharing no child list with this node
        """
        cloned = Node(
            self.original_name,
            dict(self.attributes.raw_items()),
            self.depth,
            body=self.body,
            config=self.config,
            comments=self.comments,
            is_cdata=self.is_cdata,
        )
        if deep:
            for child in self._children:
                cloned.attach(child.clone(deep=True))
        return cloned

    def traverse(self, visitor: Callable[["Node"], Any]) -> bool:
        """Walk this subtree in pre-order.

        A visitor returning ``False`` stops the entire walk.

        Returns:
            ``True`` if every node was visited
        """
        if visitor(self) is False:
            return False
        for child in list(self._children):
            if not child.traverse(visitor):
                return False
        return True

    def query(self, selector: str, session: Optional[Any] = None, **options: Any) -> Any:
        """Evaluate ``selector`` against this node.

        Args:
            selector: Selector or JSONata expression text
            session: ``QuerySession`` to compile with; a new one is used when omitted
            **options: Forwarded to ``QuerySession.query``

        Returns:
            Node, Fragment, TextLeaf, scalar or ``None``
        """
        from xml_query_engine.query.session import QuerySession

        session = session or QuerySession()
        return session.query(self, selector, **options)

    def _serialize_attributes(self, normalize: bool) -> str:
        if normalize:
            pairs = [(key, self.attributes.raw(key)) for key in self.attributes]
        else:
            pairs = list(self.attributes.raw_items())
        return " ".join(
            f'{key}="{html.escape("" if value is None else str(value), quote=True)}"'
            for key, value in pairs
        )

    def to_string(
        self,
        attributes: bool = True,
        normalize: bool = False,
        children: bool = True,
        depth: int = 0,
    ) -> str:
        """Serialize this subtree to markup.

        Args:
            attributes: Include attributes
            normalize: Use normalized names and keys instead of authored ones
            children: Include descendants
            depth: Indentation level, two spaces per level

        Returns:
            Markup string
        """
        indent = INDENT * depth
        if self.is_cdata:
            return f"{indent}<![CDATA[{self.body}]]>"

        name = self.name if normalize else self.original_name
        serialized = self._serialize_attributes(normalize) if attributes else ""
        opening = " ".join(part for part in (name, serialized) if part)
        has_children = children and bool(self._children)

        if not self.body and not has_children:
            return f"{indent}<{opening} />"

        output = f"{indent}<{opening}>{html.escape(self.body, quote=False)}"
        if has_children:
            for child in self._children:
                output += "\n" + child.to_string(attributes, normalize, children, depth + 1)
            output += "\n" + indent
        return output + f"</{name}>"

    def to_json(
        self,
        attributes: bool = True,
        normalize: bool = False,
        children: bool = True,
    ) -> Dict[str, Any]:
        """Convert this subtree to plain dictionaries and lists."""
        return {
            "name": self.name if normalize else self.original_name,
            "text": self.body,
            "attributes": self.attributes.to_json(normalize) if attributes else {},
            "children": [
                child.to_json(attributes, normalize, children) for child in self._children
            ] if children else [],
        }

    def __iter__(self) -> Iterator["Node"]:
        return iter(list(self._children))

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return (
            f"Node(name={self.original_name!r}, attributes={len(self.attributes)}, "
            f"children={len(self._children)})"
        )


def is_tree_value(value: Any) -> bool:
    """Check whether ``value`` belongs to the tree result type family."""
    return isinstance(value, (Node, TextLeaf, Fragment))
