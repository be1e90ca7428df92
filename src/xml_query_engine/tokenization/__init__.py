"""Push-based tokenization layer.

Feeds markup text through a state machine and emits tag, text, comment,
CDATA, processing-instruction, error and end events to a handler.
"""

from .tokenizer import (
    PushTokenizer,
    TokenHandler,
    TokenizerState,
    TokenPosition,
)

__all__ = [
    "PushTokenizer",
    "TokenHandler",
    "TokenizerState",
    "TokenPosition",
]
