"""Utilities for parsing function definitions into signatures and rendering them back."""

from __future__ import annotations

import ast
import enum
import inspect
import io
import tokenize
import typing
from dataclasses import dataclass, field, replace

from ..exceptions import MalformedSignature

INDENT = "    "

_STRING_TOKENS = {tokenize.STRING} | {
    getattr(tokenize, name) for name in ("FSTRING_MIDDLE", "TSTRING_MIDDLE") if hasattr(tokenize, name)
}

_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


class Visibility(enum.Enum):
    PUBLIC = "public"
    INTERNAL = "internal"  # _name
    PRIVATE = "private"  # __name, mangled inside classes


def visibility_of(name: str) -> Visibility:
    if is_dunder(name):
        return Visibility.PUBLIC
    if name.startswith("__"):
        return Visibility.PRIVATE
    if name.startswith("_"):
        return Visibility.INTERNAL
    return Visibility.PUBLIC


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


@dataclass(frozen=True)
class Parameter:
    name: str
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD
    annotation: typing.Optional[str] = None
    default: typing.Optional[str] = None


@dataclass(frozen=True)
class FunctionSignature:
    """A function definition taken apart.

    Annotations, defaults, decorators and type parameters keep their original
    source text. `body` is stored without its indentation; lines inside
    multi-line string literals are left exactly as written.
    """

    name: str
    parameters: tuple[Parameter, ...] = ()
    return_type: typing.Optional[str] = None
    generics: tuple[str, ...] = ()
    visibility: Visibility = Visibility.PUBLIC
    attributes: tuple[str, ...] = ()
    body: str = "pass\n"
    is_async: bool = False
    lineno: int = field(default=1, compare=False)


def _string_interior_lines(text: str) -> set[int]:
    """Line numbers (1-based) that start inside a multi-line string literal."""
    protected: set[int] = set()
    try:
        for tok in tokenize.generate_tokens(io.StringIO(text).readline):
            if tok.type in _STRING_TOKENS and tok.end[0] > tok.start[0]:
                protected.update(range(tok.start[0] + 1, tok.end[0] + 1))
    except (tokenize.TokenError, SyntaxError):
        # Incomplete input: re-indent everything rather than guess
        return protected
    return protected


def reindent(text: str, old: str, new: str) -> str:
    """Replace the `old` indentation prefix of each line in `text` with `new`.

    Lines that begin inside a multi-line string literal are never touched, so
    string values survive re-indentation. Lines not starting with `old` (for
    example bracket continuations written further left) are kept as they are.

    Args:
        text: Block of source code
        old: Indentation currently shared by the block's statements
        new: Indentation to use instead

    Returns:
        The re-indented block
    """
    protected = _string_interior_lines(text)
    result = []
    for lineno, line in enumerate(text.splitlines(keepends=True), start=1):
        if lineno in protected:
            result.append(line)
        elif not line.strip():
            result.append("\n" if line.endswith("\n") else "")
        elif line.startswith(old):
            result.append(new + line[len(old) :])
        else:
            result.append(line)
    block = "".join(result)
    if block and not block.endswith("\n"):
        block += "\n"
    return block


def iter_scope(nodes: typing.Iterable[ast.AST], *, skip_try: bool = False) -> typing.Iterator[ast.AST]:
    """Walk statements without descending into nested functions, lambdas or classes.

    With `skip_try`, the bodies of `try` statements are skipped too (their
    handlers, `else` and `finally` blocks are still visited).
    """
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, _SCOPE_NODES):
            continue
        children: list[ast.AST] = []
        for name, value in ast.iter_fields(node):
            if skip_try and isinstance(node, ast.Try) and name == "body":
                continue
            if isinstance(value, list):
                children.extend(v for v in value if isinstance(v, ast.AST))
            elif isinstance(value, ast.AST):
                children.append(value)
        stack.extend(reversed(children))


def dotted_name(node: ast.AST) -> typing.Optional[str]:
    """`a.b.c` for a Name/Attribute chain, None for anything else."""
    parts = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def decorator_name(node: ast.expr) -> typing.Optional[str]:
    """Name of the callable a decorator expression refers to (`@x.y(...)` -> `x.y`)."""
    if isinstance(node, ast.Call):
        node = node.func
    return dotted_name(node)


def _segment(source: str, node: ast.AST) -> str:
    return ast.get_source_segment(source, node) or ast.unparse(node)


def _line_slice(line: str, col_offset: int) -> str:
    # ast column offsets count UTF-8 bytes
    return line.encode("utf-8")[col_offset:].decode("utf-8")


def line_prefix(line: str, col_offset: int) -> str:
    return line.encode("utf-8")[:col_offset].decode("utf-8")


def _parse_single_definition(source: str) -> tuple[str, typing.Union[ast.FunctionDef, ast.AsyncFunctionDef], int]:
    """Parse source text holding exactly one (possibly indented) function definition.

    Returns:
        Tuple of (parsed_source, node, line_offset) where `parsed_source` is the
        text the node's positions refer to, and `line_offset` the number of
        synthetic lines prepended to it.
    """
    first_code_line = next((line for line in source.splitlines() if line.strip()), "")
    offset = 0
    parsed_source = source
    if first_code_line[:1].isspace():
        # Methods and nested functions come with their indentation
        parsed_source = "if True:\n" + source
        offset = 1

    try:
        tree = ast.parse(parsed_source)
    except SyntaxError as exc:
        lineno = exc.lineno - offset if exc.lineno else None
        raise MalformedSignature(f"not valid Python: {exc.msg}", lineno=lineno) from exc

    statements = tree.body[0].body if offset and tree.body else tree.body  # type: ignore[attr-defined]
    if len(statements) != 1 or not isinstance(statements[0], (ast.FunctionDef, ast.AsyncFunctionDef)):
        raise MalformedSignature("expected exactly one function definition")
    return parsed_source, statements[0], offset


def _extract_parameters(source: str, args: ast.arguments) -> tuple[Parameter, ...]:
    def annotation_of(arg: ast.arg) -> typing.Optional[str]:
        return _segment(source, arg.annotation) if arg.annotation is not None else None

    params: list[Parameter] = []
    positional = [*args.posonlyargs, *args.args]
    # defaults line up with the *last* positional parameters
    defaults: list[typing.Optional[ast.expr]] = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
    for index, (arg, default) in enumerate(zip(positional, defaults)):
        kind = inspect.Parameter.POSITIONAL_ONLY if index < len(args.posonlyargs) else inspect.Parameter.POSITIONAL_OR_KEYWORD
        params.append(
            Parameter(
                arg.arg,
                kind,
                annotation_of(arg),
                _segment(source, default) if default is not None else None,
            )
        )

    if args.vararg is not None:
        params.append(Parameter(args.vararg.arg, inspect.Parameter.VAR_POSITIONAL, annotation_of(args.vararg)))

    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(
            Parameter(
                arg.arg,
                inspect.Parameter.KEYWORD_ONLY,
                annotation_of(arg),
                _segment(source, default) if default is not None else None,
            )
        )

    if args.kwarg is not None:
        params.append(Parameter(args.kwarg.arg, inspect.Parameter.VAR_KEYWORD, annotation_of(args.kwarg)))

    return tuple(params)


def _extract_body(source: str, node: typing.Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> str:
    lines = source.splitlines(keepends=True)
    first, last = node.body[0], node.body[-1]
    end = last.end_lineno or last.lineno
    first_line = lines[first.lineno - 1]

    if line_prefix(first_line, first.col_offset).strip():
        # `def f(): return 1` - the body shares the header line
        text = _line_slice(first_line, first.col_offset) + "".join(lines[first.lineno : end])
        return reindent(text, "", "")

    indent = line_prefix(first_line, first.col_offset)
    start = first.lineno
    # keep comments written between the header and the first statement
    while start - 1 > node.lineno and lines[start - 2].strip().startswith("#"):
        start -= 1
    return reindent("".join(lines[start - 1 : end]), indent, "")


def _check_not_generator(node: typing.Union[ast.FunctionDef, ast.AsyncFunctionDef], lineno: int) -> None:
    for child in iter_scope(node.body):
        if isinstance(child, (ast.Yield, ast.YieldFrom)):
            raise MalformedSignature(
                "generator functions cannot be given a Result-returning variant",
                function=node.name,
                lineno=lineno,
            )


def extract_signature(source: str, *, first_lineno: int = 1) -> FunctionSignature:
    """
    Decompose the source text of one function definition.

    Args:
        source: Text of a single `def`/`async def`, decorators included. It may be
            indented, as `inspect.getsource` returns it for methods.
        first_lineno: Line number of the first line of `source` in its file, used
            for diagnostics

    Returns:
        The FunctionSignature for the definition

    Raises:
        MalformedSignature: If the text is not exactly one function definition,
            or the function is a generator
    """
    parsed_source, node, offset = _parse_single_definition(source)
    lineno = node.lineno - offset + first_lineno - 1
    _check_not_generator(node, lineno)

    return FunctionSignature(
        name=node.name,
        parameters=_extract_parameters(parsed_source, node.args),
        return_type=_segment(parsed_source, node.returns) if node.returns is not None else None,
        generics=tuple(_segment(parsed_source, tp) for tp in getattr(node, "type_params", ())),
        visibility=visibility_of(node.name),
        attributes=tuple(_segment(parsed_source, d) for d in node.decorator_list),
        body=_extract_body(parsed_source, node),
        is_async=isinstance(node, ast.AsyncFunctionDef),
        lineno=lineno,
    )


def unwrap_function(func: typing.Any) -> typing.Any:
    """Underlying function of a staticmethod/classmethod or a `functools.wraps` chain."""
    return inspect.unwrap(getattr(func, "__func__", func))


def signature_from_function(func: typing.Any) -> FunctionSignature:
    """Extract the signature of a live function from its source code."""
    target = unwrap_function(func)
    name = getattr(target, "__qualname__", repr(target))
    if not inspect.isfunction(target):
        raise MalformedSignature(f"expected a function, got {type(target).__name__}", function=name)
    try:
        source = inspect.getsource(target)
    except (OSError, TypeError) as exc:
        raise MalformedSignature(f"source code is not available: {exc}", function=name) from exc
    return extract_signature(source, first_lineno=target.__code__.co_firstlineno)


def strip_markers(signature: FunctionSignature, markers: typing.Collection[str]) -> tuple[FunctionSignature, list[str]]:
    """
    Split the transformer's own decorators off a signature.

    Args:
        signature: Signature as extracted from source
        markers: Dotted names that identify the marker decorator

    Returns:
        Tuple of (signature without marker decorators, list of removed decorator texts)
    """
    kept = []
    removed = []
    for attribute in signature.attributes:
        try:
            expr = ast.parse(attribute.strip(), mode="eval").body
        except SyntaxError:
            kept.append(attribute)
            continue
        if decorator_name(expr) in markers:
            removed.append(attribute)
        else:
            kept.append(attribute)
    return replace(signature, attributes=tuple(kept)), removed


def render_parameters(
    parameters: typing.Sequence[Parameter], *, annotations: bool = True, defaults: bool = True
) -> str:
    """
    Render a parameter list, reinserting the `/` and bare `*` markers.

    Args:
        parameters: Parameters in declaration order
        annotations: Whether to include annotations
        defaults: Whether to include default values

    Returns:
        The comma-separated parameter list, without parentheses
    """
    rendered = []
    has_positional_only = any(p.kind == inspect.Parameter.POSITIONAL_ONLY for p in parameters)
    seen_positional_only = False
    seen_var_positional = False

    for param in parameters:
        if has_positional_only and not seen_positional_only and param.kind != inspect.Parameter.POSITIONAL_ONLY:
            rendered.append("/")
            seen_positional_only = True

        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            seen_var_positional = True
            text = f"*{param.name}"
        elif param.kind == inspect.Parameter.VAR_KEYWORD:
            text = f"**{param.name}"
        else:
            if param.kind == inspect.Parameter.KEYWORD_ONLY and not seen_var_positional:
                rendered.append("*")
                seen_var_positional = True
            text = param.name

        if annotations and param.annotation is not None:
            text += f": {param.annotation}"
        if defaults and param.default is not None:
            text += f" = {param.default}" if annotations and param.annotation is not None else f"={param.default}"
        rendered.append(text)

    if has_positional_only and not seen_positional_only:
        rendered.append("/")

    return ", ".join(rendered)


def render_call_arguments(parameters: typing.Sequence[Parameter]) -> str:
    """Arguments that forward every parameter to a function with the same parameter list."""
    call_args = []
    for param in parameters:
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            call_args.append(f"*{param.name}")
        elif param.kind == inspect.Parameter.VAR_KEYWORD:
            call_args.append(f"**{param.name}")
        elif param.kind == inspect.Parameter.KEYWORD_ONLY:
            call_args.append(f"{param.name}={param.name}")
        else:
            call_args.append(param.name)
    return ", ".join(call_args)


def render_function(signature: FunctionSignature, indent: str = "") -> str:
    """Render a signature back to a function definition at the given indentation."""
    lines = [f"{indent}@{attribute}\n" for attribute in signature.attributes]
    keyword = "async def" if signature.is_async else "def"
    generics = f"[{', '.join(signature.generics)}]" if signature.generics else ""
    returns = f" -> {signature.return_type}" if signature.return_type is not None else ""
    lines.append(f"{indent}{keyword} {signature.name}{generics}({render_parameters(signature.parameters)}){returns}:\n")
    lines.append(reindent(signature.body, "", indent + INDENT))
    return "".join(lines)
