"""Tests for the selector rewrite phases."""

import pytest

from xml_query_engine.query.compiler import ExpressionCompiler
from xml_query_engine.query.lexer import mask
from xml_query_engine.query.transforms import (
    CastFamily,
    CastType,
    Declaration,
    TypeCheck,
    run_phases,
)
from xml_query_engine.shared.errors import CompileError


@pytest.fixture
def translate():
    return ExpressionCompiler().translate


class TestNavigationSugar:
    """Test suite for selector navigation rewrites."""

    @pytest.mark.parametrize(
        "selector,expected",
        [
            ('[name="b"]:attr(x)', '*[name="b"].attributes.x'),
            ('[name="b"]:first:text', '*[name="b"][0].text'),
            ("b:text", "b.text"),
            ("b:last", "b[-1]"),
            ("b:nth-child(0)", "b.children[0]"),
            (":children(1, 2)", "$slice(children, 1, 3)"),
            (":children(2)", "$slice(children, 2)"),
            ("b:children", "b.children"),
            (':attr("data-id")', "attributes.dataId"),
            ("b:attrs", "b.attributes"),
            ("[x=1]", "*[x=1]"),
            ("this.name", "$.name"),
            (":root", "$"),
            (".b", "$.b"),
            ("b:", "b"),
        ],
    )
    def test_rewrites(self, translate, selector, expected):
        """Test each navigation form."""
        assert translate(selector) == expected


class TestKeywordForms:
    """Test suite for keyword expansions."""

    @pytest.mark.parametrize(
        "selector,expected",
        [
            ("x as int", "$int(x)"),
            ("x as int as string", "$string($int(x))"),
            ("x:as(number)", "$number(x)"),
            ("price is number", '$is(price, "number")'),
            ("b:is(node)", '$is(b, "node")'),
            ("b is not node", '$not($is(b, "node"))'),
            ("price is not 5", "(price != 5)"),
            ("flag is true", "(flag = true)"),
            ('name is "b"', '(name = "b")'),
            ("*[is node]", '*[$is($, "node")]'),
            ("*[ is text and is not empty ]", '*[ $is($, "text") and $not($is($, "empty")) ]'),
            ("*[ x is 1 and is node ]", '*[ (x = 1) and $is($, "node") ]'),
            ("b or has id", 'b or $has($, "id")'),
            ("attributes has id", '$has(attributes, "id")'),
            ('name contains "b"', '$contains(name, "b")'),
            ("name contains $needle", "$contains(name, $needle)"),
            ("typeof name", "$typeof(name)"),
            ("print name", "$print(name)"),
            ("0x1F + 1", "31 + 1"),
            ("b = 1 AND c = 2", "b = 1 and c = 2"),
            ("x = NULL", "x = null"),
        ],
    )
    def test_rewrites(self, translate, selector, expected):
        """Test each keyword form."""
        assert translate(selector) == expected

    def test_unknown_cast(self, translate):
        """Test unknown cast types raise with the offending token."""
        with pytest.raises(CompileError) as exc_info:
            translate("x as widget")

        assert exc_info.value.token == "widget"
        assert not exc_info.value.incomplete

    def test_unknown_type_check(self, translate):
        """Test unknown type checks raise."""
        with pytest.raises(CompileError, match="widget"):
            translate("x is widget")


class TestStatements:
    """Test suite for statements lifted out of selector text."""

    def test_let_and_set(self):
        """Test declarations are collected and removed from the text."""
        text, state = run_phases(mask('let greeting = "hi"; set count := 2\nb'))

        assert text == "b"
        assert state.declarations == [
            Declaration("greeting", '"hi"', "let"),
            Declaration("count", "2", "set"),
        ]

    def test_only_declaration_becomes_noop(self):
        """Test a selector holding only statements compiles to a no-op."""
        text, state = run_phases(mask("let n = 5"))

        assert text == "$noop()"
        assert state.declarations == [Declaration("n", "5")]

    def test_missing_value_is_incomplete(self):
        """Test a declaration without a value is an end-of-input error."""
        with pytest.raises(CompileError) as exc_info:
            run_phases(mask("let n ="))

        assert exc_info.value.incomplete

    def test_import(self):
        """Test import targets are collected."""
        text, state = run_phases(mask('import "missing/file"\nb:text'))

        assert text == "b.text"
        assert state.imports == ['"missing/file"']

    def test_block_wrapped(self, translate):
        """Test multiple top-level expressions become a block."""
        assert translate("b; c;") == "(b; c)"

    def test_empty_selector(self, translate):
        """Test empty input compiles to a no-op."""
        assert translate("") == "$noop()"
        assert translate("  // only a comment") == "$noop()"

    def test_shebang_removed(self, translate):
        """Test a leading shebang line is dropped."""
        assert translate("#!/usr/bin/env query\nb") == "b"

    def test_backtick_literal(self, translate):
        """Test backtick literals become single-quoted strings."""
        assert translate("`it's`") == "'it\\'s'"


class TestExtensions:
    """Test suite for caller-supplied transforms."""

    def test_callable_transform(self):
        """Test a callable runs after the built-in phases."""
        compiler = ExpressionCompiler(transforms=[lambda text, state: text.replace("@", "attributes.")])

        assert compiler.translate("b[0].@x") == "b[0].attributes.x"

    def test_object_transform(self):
        """Test objects with a ``transform`` method are accepted."""
        class Upper:
            def transform(self, text, state):
                return text.upper()

        assert ExpressionCompiler(transforms=[Upper()]).translate("b") == "B"

    def test_transform_must_return_text(self):
        """Test a transform returning a non-string is rejected."""
        compiler = ExpressionCompiler(transforms=[lambda text, state: None])

        with pytest.raises(CompileError):
            compiler.translate("b")


class TestDispatchTables:
    """Test suite for cast and type check enums."""

    def test_cast_lookup(self):
        """Test cast lookup is case-insensitive and carries family and binding."""
        assert CastType.lookup("INT") is CastType.INT
        assert CastType.lookup("nan").binding == "NaN"
        assert CastType.lookup("node").family is CastFamily.INSTANCE

    def test_type_check_lookup(self):
        """Test type check lookup."""
        assert TypeCheck.lookup("Node") is TypeCheck.NODE
        with pytest.raises(CompileError):
            TypeCheck.lookup("widget")
