"""XML query engine.

Parses markup into a mutable node tree and answers selector queries against
it by compiling selector text into JSONata expressions.

Progressive API disclosure:
- Level 1: Simple functions - parse(), parse_string(), parse_file(), parse_async()
- Level 2: Documents and nodes - Document.query(), Node.query(), Node.traverse()
- Level 3: Query sessions - QuerySession with custom bindings, transforms and loaders
"""

__version__ = "0.1.0"

# Level 1: Simple functions
from .api import DocumentLoader, create_loader, parse, parse_async, parse_file, parse_string

# Level 3: Query sessions and evaluation
from .query import BindingRegistry, EvaluationContext, ExpressionCompiler, QuerySession

# Configuration and errors
from .shared.config import EngineConfig, QueryConfig, TokenizerConfig, TreeConfig
from .shared.errors import (
    AttachmentError,
    CompileError,
    EvaluationError,
    ImportLoadError,
    ParseAbortedError,
    ParseError,
    QueryEngineError,
)

# Level 2: Tree objects
from .tree import Attributes, Document, Fragment, Node, TextLeaf

__all__ = [
    # Version and metadata
    "__version__",

    # Level 1: Simple parsing functions
    "parse",
    "parse_async",
    "parse_file",
    "parse_string",
    "create_loader",
    "DocumentLoader",

    # Level 2: Tree objects
    "Attributes",
    "Document",
    "Fragment",
    "Node",
    "TextLeaf",

    # Level 3: Query sessions
    "BindingRegistry",
    "EvaluationContext",
    "ExpressionCompiler",
    "QuerySession",

    # Configuration classes
    "EngineConfig",
    "QueryConfig",
    "TokenizerConfig",
    "TreeConfig",

    # Errors
    "AttachmentError",
    "CompileError",
    "EvaluationError",
    "ImportLoadError",
    "ParseAbortedError",
    "ParseError",
    "QueryEngineError",
]
