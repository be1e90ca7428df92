"""Tree model and builder.

Provides the mutable ``Node`` tree, the text and fragment result types, the
``TreeBuilder`` that consumes tokenizer events and the ``Document`` that
owns a root node and its readiness future.
"""

from .builder import ParserState, TreeBuilder
from .document import Document
from .node import (
    CDATA_NODE_NAME,
    FRAGMENT_NODE_NAME,
    TEXT_NODE_NAME,
    Attributes,
    Fragment,
    Node,
    TextLeaf,
    is_tree_value,
)

__all__ = [
    "ParserState",
    "TreeBuilder",
    "Document",
    "CDATA_NODE_NAME",
    "FRAGMENT_NODE_NAME",
    "TEXT_NODE_NAME",
    "Attributes",
    "Fragment",
    "Node",
    "TextLeaf",
    "is_tree_value",
]
