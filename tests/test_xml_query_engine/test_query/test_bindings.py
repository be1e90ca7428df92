"""Tests for built-in bindings and the binding registry."""

import math

import pytest
from jsonata import Utils

from xml_query_engine.query.bindings import (
    BUILTINS,
    Binding,
    BindingRegistry,
    cast_array,
    cast_int,
    cast_json,
    cast_object,
    cast_string,
    contains,
    has,
    is_type,
    join,
    keys,
    reverse,
    slice_,
    sort,
    stringify,
    to_number,
    to_tuple,
    typeof,
    unique,
)
from xml_query_engine.shared.errors import CompileError, EvaluationError
from xml_query_engine.tree import TextLeaf


class TestCasts:
    """Test suite for cast functions."""

    def test_stringify(self):
        """Test string forms of scalar and structured values."""
        assert stringify(True) == "true"
        assert stringify(2.0) == "2"
        assert stringify(None) == ""
        assert stringify(Utils.NULL_VALUE) == ""
        assert stringify([1, "a"]) == '[1, "a"]'

    def test_to_number(self):
        """Test numeric conversion of strings and booleans."""
        assert to_number("42") == 42
        assert to_number(" 1.5 ") == 1.5
        assert to_number(True) == 1
        assert math.isnan(to_number("abc"))

    def test_cast_int(self):
        """Test integer casts with and without a base."""
        assert cast_int("7.9") == 7
        assert cast_int("ff", 16) == 255
        assert cast_int(["1", "2"]) == [1, 2]
        assert math.isnan(cast_int("zz", 16))

    def test_cast_array(self):
        """Test array casts wrap scalars and convert items."""
        assert cast_array("a") == ["a"]
        assert cast_array(None) == []
        assert cast_array(["1", "2"], "number") == [1, 2]

    def test_cast_string_maps_sequences(self):
        """Test string casts apply per item."""
        assert cast_string([1, True]) == ["1", "true"]

    def test_cast_object(self):
        """Test object casts wrap scalars."""
        assert cast_object(5) == {"value": 5}
        assert cast_object(None) == {}

    def test_cast_json(self):
        """Test JSON casts parse strings and reject invalid input."""
        assert cast_json('{"a": [1]}') == {"a": [1]}
        with pytest.raises(EvaluationError, match="Invalid JSON"):
            cast_json("{nope")


class TestPredicates:
    """Test suite for type and membership predicates."""

    @pytest.mark.parametrize(
        "value,type_name,expected",
        [
            (5, "number", True),
            (True, "number", False),
            ([1, 2], "number", True),
            ([], "number", False),
            ("x", "string", True),
            (None, "null", True),
            (Utils.NULL_VALUE, "null", True),
            ("", "empty", True),
            ([1], "array", True),
            ({"a": 1}, "object", True),
            (TextLeaf("hi"), "text", True),
            (math.nan, "nan", True),
        ],
    )
    def test_is_type(self, value, type_name, expected):
        """Test the type table."""
        assert is_type(value, type_name) is expected

    def test_is_type_unknown(self):
        """Test unknown type names raise."""
        with pytest.raises(CompileError):
            is_type(1, "widget")

    def test_has(self):
        """Test key membership on mappings and sequences."""
        assert has({"id": 1}, "id")
        assert has([{"a": 1}, {"id": 2}], "id")
        assert not has({"id": 1}, "other")
        assert not has("text", "t")

    def test_contains(self):
        """Test substring, sequence and key containment."""
        assert contains("abc", "b")
        assert contains([1, 2], "2")
        assert contains({"a": 1}, "a")
        assert not contains(5, "5")


class TestUtilities:
    """Test suite for sequence helpers."""

    def test_typeof(self):
        """Test type names reported to queries."""
        assert typeof("a") == "string"
        assert typeof(1) == "number"
        assert typeof(False) == "boolean"
        assert typeof([]) == "array"
        assert typeof({}) == "object"
        assert typeof(None) == "undefined"
        assert typeof(Utils.NULL_VALUE) == "null"

    def test_sequences(self):
        """Test unique, sorted and reversed on lists and strings."""
        assert unique([1, 1, 2]) == [1, 2]
        assert unique("aab") == "ab"
        assert sort([3, "a", 1]) == [1, 3, "a"]
        assert reverse("abc") == "cba"

    def test_join(self):
        """Test joining with the default and a custom delimiter."""
        assert join(["a", 1]) == "a,1"
        assert join(["a", "b"], " ") == "a b"

    def test_slice(self):
        """Test slicing with and without a stop."""
        assert slice_([1, 2, 3], 1) == [2, 3]
        assert slice_([1, 2, 3], 0, 2) == [1, 2]
        assert slice_("hello", 1, 3) == "el"

    def test_keys_and_tuple(self):
        """Test key listing and key/value pairs."""
        assert keys({"a": 1, "b": 2}) == ["a", "b"]
        assert to_tuple({"a": 1}) == [{"key": "a", "value": 1}]


class TestBindingRegistry:
    """Test suite for BindingRegistry."""

    def test_builtins_registered(self):
        """Test a default registry holds every built-in."""
        registry = BindingRegistry()

        assert len(registry) == len(BUILTINS)
        assert "$typeof" in registry
        assert "noop" in registry

    def test_register_directly(self):
        """Test registering a function under a name."""
        registry = BindingRegistry([])

        registry.register("$double", lambda value: value * 2, signature="<n-:n>")

        binding = registry.get("double")
        assert binding is not None
        assert binding.fn(4) == 8
        assert binding.signature == "<n-:n>"

    def test_register_decorator(self):
        """Test registering through the decorator form."""
        registry = BindingRegistry([])

        @registry.register("shout", description="Upper-cases input.")
        def shout(value):
            return value.upper()

        assert shout("a") == "A"
        assert registry.get("shout").description == "Upper-cases input."

    def test_remove_and_copy(self):
        """Test copies are independent of the original."""
        registry = BindingRegistry()
        clone = registry.copy()

        registry.remove("$typeof")

        assert "typeof" not in registry
        assert "typeof" in clone

    def test_resolve(self):
        """Test resolution yields one evaluator function per binding."""
        registry = BindingRegistry([Binding("one", lambda: 1, "<:n>")])

        assert list(registry.resolve()) == ["one"]
