"""Configuration classes for the XML query engine.

This module provides configuration objects for every processing layer:
tokenization, tree building and query evaluation.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

COMPONENT_FIELDS = ("tokenizer", "tree", "query")


@dataclass
class TokenizerConfig:
    """Configuration for the push tokenizer."""

    strict: bool = False          # Report malformed markup instead of treating it as text
    decode_entities: bool = True
    recognize_cdata: bool = True
    chunk_size: int = 8192        # Read size used when pulling from file-like streams

    def __post_init__(self) -> None:
        """Validate tokenizer configuration."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")


@dataclass
class TreeConfig:
    """Configuration for tree building and value normalization."""

    trim_text: bool = True
    text_separator: str = " "
    normalize_values: bool = True
    preserve_consecutive_uppercase: bool = True
    max_depth: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate tree configuration."""
        if self.max_depth is not None and self.max_depth <= 0:
            raise ValueError("max_depth must be > 0 or None")
        if "\n" in self.text_separator:
            raise ValueError("text_separator cannot contain newlines")


@dataclass
class QueryConfig:
    """Configuration for selector compilation and evaluation."""

    cache_size_limit: int = 1024      # 0 disables the compiled-expression cache
    enable_imports: bool = True
    max_output_lines: int = 1000

    def __post_init__(self) -> None:
        """Validate query configuration."""
        if self.cache_size_limit < 0:
            raise ValueError("cache_size_limit must be >= 0")
        if self.max_output_lines <= 0:
            raise ValueError("max_output_lines must be > 0")


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field_name = field_name
        self.suggestions = suggestions or []


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration for all engine components.

    Thread-safe due to frozen dataclass implementation; use ``override`` to
    derive variants.
    """

    tokenizer: TokenizerConfig = field(default_factory=TokenizerConfig)
    tree: TreeConfig = field(default_factory=TreeConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    version: str = "1.0.0"
    name: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate the complete engine configuration."""
        try:
            self.tokenizer.__post_init__()
            self.tree.__post_init__()
            self.query.__post_init__()
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

        self._validate_cross_component_dependencies()

    def _validate_cross_component_dependencies(self) -> None:
        """Validate dependencies between component configurations."""
        if self.tokenizer.strict and not self.tokenizer.decode_entities:
            raise ConfigValidationError(
                "Strict tokenization requires entity decoding",
                field_name="tokenizer.decode_entities",
                suggestions=["Enable tokenizer.decode_entities",
                             "Disable tokenizer.strict"],
            )

    def override(self, **kwargs: Any) -> "EngineConfig":
        """Create a new configuration with specific overrides.

        Args:
            **kwargs: Field overrides; component fields use ``component__field``

        Returns:
            New EngineConfig instance with overrides applied

        Example:
            >>> config = EngineConfig().override(
            ...     tokenizer__strict=True,
            ...     query__cache_size_limit=0,
            ... )
        """
        nested_overrides: Dict[str, Any] = {}
        for key, value in kwargs.items():
            if "__" in key:
                component, field_name = key.split("__", 1)
                if component not in COMPONENT_FIELDS:
                    raise ConfigValidationError(
                        f"Unknown configuration component: {component}",
                        field_name=key,
                        suggestions=list(COMPONENT_FIELDS),
                    )
                nested_overrides.setdefault(component, {})[field_name] = value
            else:
                nested_overrides[key] = value

        new_fields: Dict[str, Any] = {}
        for component in COMPONENT_FIELDS:
            current = getattr(self, component)
            if component in nested_overrides:
                overrides = nested_overrides.pop(component)
                try:
                    new_fields[component] = (
                        replace(current, **overrides)
                        if isinstance(overrides, dict) else overrides
                    )
                except (TypeError, ValueError) as e:
                    raise ConfigValidationError(str(e), field_name=component) from e
            else:
                new_fields[component] = current

        new_fields.update(nested_overrides)
        return replace(self, **new_fields)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary format."""
        def _dataclass_to_dict(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    name: _dataclass_to_dict(getattr(obj, name))
                    for name in obj.__dataclass_fields__
                }
            if isinstance(obj, Enum):
                return obj.name
            if isinstance(obj, (list, tuple, set)):
                return [_dataclass_to_dict(item) for item in obj]
            if isinstance(obj, dict):
                return {key: _dataclass_to_dict(value) for key, value in obj.items()}
            return obj

        result = _dataclass_to_dict(self)
        if not isinstance(result, dict):
            raise ConfigValidationError("Configuration serialization failed")
        return result

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create configuration from a dictionary.

        Args:
            data: Dictionary as produced by ``to_dict``

        Returns:
            EngineConfig instance
        """
        component_types = {
            "tokenizer": TokenizerConfig,
            "tree": TreeConfig,
            "query": QueryConfig,
        }
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key in component_types:
                try:
                    values[key] = component_types[key](**value)
                except (TypeError, ValueError) as e:
                    raise ConfigValidationError(str(e), field_name=key) from e
            elif key in cls.__dataclass_fields__:
                values[key] = value
            else:
                raise ConfigValidationError(
                    f"Unknown configuration field: {key}", field_name=key
                )
        return cls(**values)

    @classmethod
    def from_json(cls, json_str: str) -> "EngineConfig":
        """Create configuration from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    # Preset factory methods
    @classmethod
    def strict(cls) -> "EngineConfig":
        """Create a preset that reports malformed markup as parse errors."""
        return cls(
            tokenizer=TokenizerConfig(strict=True),
            name="strict",
        )

    @classmethod
    def permissive(cls) -> "EngineConfig":
        """Create a preset tolerant of unescaped entities and stray markup."""
        return cls(
            tokenizer=TokenizerConfig(strict=False, decode_entities=True),
            name="permissive",
        )
