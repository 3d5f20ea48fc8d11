"""Unit tests for taking function definitions apart and rendering them back.

Covers:
- Parameter kinds, annotations and defaults
- Bodies: indentation, comments, multi-line strings
- Decorators and marker stripping
- Rendering back to source
"""

import inspect

import pytest

from flexifunc.codegen.signature import (
    FunctionSignature,
    Parameter,
    Visibility,
    extract_signature,
    reindent,
    render_call_arguments,
    render_function,
    render_parameters,
    signature_from_function,
    strip_markers,
    visibility_of,
)
from flexifunc.exceptions import MalformedSignature

P = inspect.Parameter


class TestExtractSignature:
    def test_simple_function(self):
        sig = extract_signature("def add(a: int, b: int = 2) -> int:\n    return a + b\n")

        assert sig.name == "add"
        assert sig.parameters == (
            Parameter("a", P.POSITIONAL_OR_KEYWORD, "int"),
            Parameter("b", P.POSITIONAL_OR_KEYWORD, "int", "2"),
        )
        assert sig.return_type == "int"
        assert sig.body == "return a + b\n"
        assert sig.is_async is False
        assert sig.visibility is Visibility.PUBLIC
        assert sig.attributes == ()

    def test_async_function_without_annotations(self):
        sig = extract_signature("async def fetch(url, retries=3):\n    return await get(url)\n")

        assert sig.is_async
        assert sig.return_type is None
        assert [p.annotation for p in sig.parameters] == [None, None]
        assert sig.parameters[1].default == "3"

    def test_parameter_kinds(self):
        sig = extract_signature("def f(a, /, b, *args, c, d: str = 'x', **kwargs): pass\n")

        assert [(p.name, p.kind) for p in sig.parameters] == [
            ("a", P.POSITIONAL_ONLY),
            ("b", P.POSITIONAL_OR_KEYWORD),
            ("args", P.VAR_POSITIONAL),
            ("c", P.KEYWORD_ONLY),
            ("d", P.KEYWORD_ONLY),
            ("kwargs", P.VAR_KEYWORD),
        ]
        assert sig.parameters[4].default == "'x'"
        assert sig.body == "pass\n"

    def test_annotations_keep_source_text(self):
        sig = extract_signature("def f(items: typing.List[  'Item' ]) -> dict[str, list[int]]:\n    pass\n")

        assert sig.parameters[0].annotation == "typing.List[  'Item' ]"
        assert sig.return_type == "dict[str, list[int]]"

    def test_decorators(self):
        source = "@app.route('/x')\n@ff(variant_name='g')\ndef f():\n    pass\n"
        sig = extract_signature(source, first_lineno=10)

        assert sig.attributes == ("app.route('/x')", "ff(variant_name='g')")
        assert sig.lineno == 12

    def test_indented_method(self):
        source = "    @property\n    def value(self):\n        # cached\n        return self._value\n"
        sig = extract_signature(source)

        assert sig.name == "value"
        assert sig.attributes == ("property",)
        assert sig.body == "# cached\nreturn self._value\n"

    def test_multiline_string_is_not_reindented(self):
        source = 'def f():\n    text = """\n  keep\n    this"""\n    return text\n'
        sig = extract_signature(source)

        assert sig.body == 'text = """\n  keep\n    this"""\nreturn text\n'

    def test_nested_definitions_stay_in_body(self):
        source = "def outer():\n    def inner():\n        return 1\n\n    return inner()\n"
        sig = extract_signature(source)

        assert sig.body == "def inner():\n    return 1\n\nreturn inner()\n"

    def test_type_parameters(self):
        sig = extract_signature("def first[T, *Ts](items: list[T]) -> T:\n    return items[0]\n")

        assert sig.generics == ("T", "*Ts")

    @pytest.mark.parametrize(
        "name, visibility",
        [
            ("run", Visibility.PUBLIC),
            ("_run", Visibility.INTERNAL),
            ("__run", Visibility.PRIVATE),
            ("__call__", Visibility.PUBLIC),
        ],
    )
    def test_visibility(self, name, visibility):
        assert visibility_of(name) is visibility
        assert extract_signature(f"def {name}(self): pass\n").visibility is visibility


class TestMalformedInput:
    def test_generator(self):
        with pytest.raises(MalformedSignature, match="generator"):
            extract_signature("def numbers():\n    yield 1\n")

    def test_yield_in_nested_function_is_allowed(self):
        sig = extract_signature("def f():\n    def gen():\n        yield 1\n    return list(gen())\n")
        assert sig.name == "f"

    def test_syntax_error(self):
        with pytest.raises(MalformedSignature, match="not valid Python"):
            extract_signature("def f(:\n    pass\n")

    def test_more_than_one_definition(self):
        with pytest.raises(MalformedSignature, match="exactly one"):
            extract_signature("def f():\n    pass\n\n\ndef g():\n    pass\n")

    def test_not_a_function(self):
        with pytest.raises(MalformedSignature):
            extract_signature("class A:\n    pass\n")

    def test_builtin_has_no_source(self):
        with pytest.raises(MalformedSignature):
            signature_from_function(len)


def test_signature_from_function():
    def scale(x: float, factor: float = 2.0) -> float:
        return x * factor

    sig = signature_from_function(scale)

    assert sig.name == "scale"
    assert sig.return_type == "float"
    assert sig.body == "return x * factor\n"
    assert sig.lineno == scale.__code__.co_firstlineno


def test_signature_from_staticmethod():
    class Holder:
        @staticmethod
        def double(x):
            return x * 2

    sig = signature_from_function(Holder.__dict__["double"])
    assert sig.name == "double"
    assert sig.attributes == ("staticmethod",)


def test_strip_markers():
    sig = FunctionSignature(name="f", attributes=("functools.cache", "ff(error_type='E')", "flexifunc.ff"))

    stripped, removed = strip_markers(sig, {"ff", "flexifunc.ff"})

    assert stripped.attributes == ("functools.cache",)
    assert removed == ["ff(error_type='E')", "flexifunc.ff"]


class TestRendering:
    def test_render_parameters_reinserts_markers(self):
        sig = extract_signature("def f(a, /, b: int = 1, *, c, **kw): pass\n")

        assert render_parameters(sig.parameters) == "a, /, b: int = 1, *, c, **kw"
        assert render_parameters(sig.parameters, annotations=False, defaults=False) == "a, /, b, *, c, **kw"

    def test_render_parameters_positional_only_at_end(self):
        params = [Parameter("a", P.POSITIONAL_ONLY), Parameter("b", P.POSITIONAL_ONLY, default="0")]
        assert render_parameters(params) == "a, b=0, /"

    def test_render_call_arguments(self):
        sig = extract_signature("def f(a, /, b, *args, c, **kw): pass\n")
        assert render_call_arguments(sig.parameters) == "a, b, *args, c=c, **kw"

    def test_render_function_round_trip(self):
        source = (
            "@decorator\n"
            "async def fetch(url: str, *, retries: int = 3) -> bytes:\n"
            "    for _ in range(retries):\n"
            "        return await get(url)\n"
        )
        assert render_function(extract_signature(source)) == source

    def test_render_function_indented(self):
        sig = FunctionSignature(name="m", parameters=(Parameter("self"),), body="return 1\n")
        assert render_function(sig, "    ") == "    def m(self):\n        return 1\n"


def test_reindent_keeps_continuation_lines():
    text = "value = call(\n  1,\n)\n"
    assert reindent(text, "", "    ") == "    value = call(\n      1,\n    )\n"
