"""Selector compilation and evaluation.

Selector text is rewritten into JSONata source by ``ExpressionCompiler``
and evaluated by ``EvaluationContext`` against a live ``ModelView`` of the
node tree. ``QuerySession`` ties a compiler cache and bindings together.
"""

from .bindings import BUILTINS, Binding, BindingRegistry
from .compiler import CompiledQuery, ExpressionCompiler
from .context import Assignments, EvaluationContext, Imports
from .lexer import MaskedText, mask
from .model import Model, ModelView, synthesize
from .session import QuerySession
from .transforms import CastFamily, CastType, Declaration, TransformState, TypeCheck

__all__ = [
    "BUILTINS",
    "Binding",
    "BindingRegistry",
    "CompiledQuery",
    "ExpressionCompiler",
    "Assignments",
    "EvaluationContext",
    "Imports",
    "MaskedText",
    "mask",
    "Model",
    "ModelView",
    "synthesize",
    "QuerySession",
    "CastFamily",
    "CastType",
    "Declaration",
    "TransformState",
    "TypeCheck",
]
