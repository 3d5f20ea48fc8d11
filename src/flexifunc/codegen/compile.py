"""Variant synthesis: deciding a variant's name and return type, and emitting function pairs."""

from __future__ import annotations

import ast
import keyword
import logging
import typing
from dataclasses import dataclass, replace

from ..exceptions import IncompatibleErrorConversion, InvalidConfigValue, MalformedSignature
from ..interface import DEFAULT_ERROR_TYPE, VARIANT_SUFFIX, Dispatch, Interface
from .config import VariantConfig
from .namespace import Namespace, StaticNamespace
from .signature import (
    INDENT,
    FunctionSignature,
    Parameter,
    dotted_name,
    extract_signature,
    is_dunder,
    iter_scope,
    reindent,
    render_call_arguments,
    render_function,
    visibility_of,
)

logger = logging.getLogger("flexifunc")

# Annotation heads that already express success/failure
RESULT_NAMES = frozenset({"Result"})
SUCCESS_NAMES = frozenset({"Ok"})
FAILURE_NAMES = frozenset({"Err"})

# Names used inside generated variants
BODY_FUNCTION = "_flexifunc_body"
CAUGHT_EXCEPTION = "_flexifunc_exc"


@dataclass(frozen=True)
class GeneratedPair:
    """The unchanged input function and its generated variant.

    `wrapped` is False when the variant reuses a result-like return type and
    runs the body as is.
    """

    primary: FunctionSignature
    variant: FunctionSignature
    wrapped: bool


def _last_name(node: ast.AST) -> typing.Optional[str]:
    if isinstance(node, ast.Subscript):
        node = node.value
    name = dotted_name(node)
    return name.rsplit(".", 1)[-1] if name else None


def _union_members(node: ast.expr) -> typing.Optional[list[ast.expr]]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return (_union_members(node.left) or [node.left]) + (_union_members(node.right) or [node.right])
    if isinstance(node, ast.Subscript) and _last_name(node.value) == "Union":
        elements = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
        return list(elements)
    return None


def _is_result_node(node: ast.expr) -> bool:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return is_result_like(node.value)
    if _last_name(node) in RESULT_NAMES:
        return True
    members = _union_members(node)
    if not members:
        return False
    heads = [_last_name(member) for member in members]
    return (
        len(heads) == 2
        and any(head in SUCCESS_NAMES for head in heads)
        and any(head in FAILURE_NAMES for head in heads)
    )


def is_result_like(annotation: typing.Optional[str]) -> bool:
    """
    Check whether a return annotation already expresses success or failure.

    `Result`, `Result[T, E]`, `module.Result[...]`, and two-member unions of `Ok[...]`
    and `Err[...]` (written with `|` or `typing.Union`) are result-like, as are
    string forward references to any of these.

    Args:
        annotation: Source text of the return annotation, or None

    Returns:
        True if the variant should reuse the annotation instead of wrapping it
    """
    if annotation is None:
        return False
    try:
        node = ast.parse(annotation.strip(), mode="eval").body
    except SyntaxError:
        return False
    return _is_result_node(node)


def variant_name_for(signature: FunctionSignature, config: VariantConfig) -> str:
    """
    Decide the variant's name.

    Without an override the suffix is appended (`fetch` -> `fetch_async`); dunder
    names keep their shape (`__call__` -> `__call_async__`).

    Raises:
        InvalidConfigValue: If the override equals the original name or changes
            its visibility (`_helper` renamed to `helper_async`)
    """
    if config.variant_name is None:
        if is_dunder(signature.name):
            return f"{signature.name[:-2]}{VARIANT_SUFFIX}__"
        return f"{signature.name}{VARIANT_SUFFIX}"

    name = config.variant_name
    if name == signature.name:
        raise InvalidConfigValue(f"variant_name {name!r} is the name of the original function")
    if visibility_of(name) != signature.visibility:
        raise InvalidConfigValue(
            f"variant_name {name!r} is {visibility_of(name).value} but {signature.name!r} is {signature.visibility.value}"
        )
    return name


def variant_return_type(signature: FunctionSignature, config: VariantConfig) -> tuple[str, bool]:
    """
    Decide the variant's return annotation.

    Returns:
        Tuple of (annotation, wrapped). Result-like annotations are reused as is
        (wrapped is False); anything else becomes `Result[T, E]` with `None` for
        a missing annotation.
    """
    if is_result_like(signature.return_type):
        if config.error_type != DEFAULT_ERROR_TYPE:
            logger.warning(
                "Ignoring error_type=%r for %s: its return type %s is already result-like",
                config.error_type,
                signature.name,
                signature.return_type,
            )
        return typing.cast(str, signature.return_type), False
    return f"Result[{signature.return_type or 'None'}, {config.error_type}]", True


def check_error_conversion(signature: FunctionSignature, error_type: str, namespace: Namespace) -> None:
    """
    Verify that `into_error` can turn the body's failures into `error_type`.

    The error type has to be an exception class or provide `from_error`. Without
    `from_error`, every exception class the body raises directly (outside of `try`
    blocks and nested scopes) must subclass it. Names the namespace cannot resolve
    are not checked.

    Raises:
        IncompatibleErrorConversion: If a conversion can never succeed
    """
    target = namespace.lookup(error_type)
    if target is None:
        logger.debug("Error type %s of %s cannot be resolved here, not checking conversions", error_type, signature.name)
        return
    if not target.is_exception and not target.has_from_error:
        raise IncompatibleErrorConversion(
            f"error type {error_type} is not an exception class and has no from_error()",
            function=signature.name,
            lineno=signature.lineno,
        )
    if target.has_from_error:
        return

    for node in iter_scope(ast.parse(signature.body).body, skip_try=True):
        if not isinstance(node, ast.Raise) or node.exc is None:
            continue
        raised_expr = node.exc.func if isinstance(node.exc, ast.Call) else node.exc
        raised_name = dotted_name(raised_expr)
        raised = namespace.lookup(raised_name) if raised_name else None
        if raised is None or "Exception" not in raised.ancestors:
            # unknown, or a BaseException that propagates unconverted anyway
            continue
        if not raised.is_subclass_of(target):
            raise IncompatibleErrorConversion(
                f"body raises {raised_name}, which is not a subclass of {error_type} "
                f"(give {error_type} a from_error() classmethod to convert it)",
                function=signature.name,
                lineno=signature.lineno,
            )


def _wrapped_body(signature: FunctionSignature, error_type: str) -> str:
    # parameters are passed through so that rebinding them in the body stays local
    inner = FunctionSignature(
        name=BODY_FUNCTION,
        parameters=tuple(replace(p, annotation=None, default=None) for p in signature.parameters),
        body=signature.body,
        is_async=True,
    )
    call = f"{BODY_FUNCTION}({render_call_arguments(signature.parameters)})"
    return (
        render_function(inner)
        + "try:\n"
        + f"{INDENT}return Ok(await {call})\n"
        + f"except Exception as {CAUGHT_EXCEPTION}:\n"
        + f"{INDENT}return Err(into_error({CAUGHT_EXCEPTION}, {error_type}))\n"
    )


def synthesize(
    signature: FunctionSignature, config: VariantConfig, *, namespace: typing.Optional[Namespace] = None
) -> GeneratedPair:
    """
    Build the variant of a function.

    The variant is an `async def` with the same parameters, type parameters,
    visibility and decorators. Its body is the original body: embedded directly
    when the return type is result-like, otherwise run in a nested coroutine whose
    value is returned as `Ok(...)` and whose exceptions are converted to `Err(...)`.

    Args:
        signature: The function to derive from. It is returned unchanged as the primary.
        config: Resolved options
        namespace: Where the error type and raised exception types are looked up.
            Defaults to builtins only.

    Returns:
        GeneratedPair of the original and the variant

    Raises:
        InvalidConfigValue: If the variant name is unusable
        IncompatibleErrorConversion: If the error type cannot represent the body's failures
    """
    name = variant_name_for(signature, config)
    return_type, wrapped = variant_return_type(signature, config)

    if wrapped:
        check_error_conversion(signature, config.error_type, namespace or StaticNamespace())
        body = _wrapped_body(signature, config.error_type)
    else:
        body = signature.body

    variant = replace(signature, name=name, return_type=return_type, body=body, is_async=True)
    logger.debug("Generated %s -> %s (returns %s)", signature.name, name, return_type)
    return GeneratedPair(primary=signature, variant=variant, wrapped=wrapped)


def emit_pair(pair: GeneratedPair, indent: str = "") -> str:
    """Render the primary followed by the variant at the given indentation."""
    separator = "\n\n" if not indent else "\n"
    return render_function(pair.primary, indent) + separator + render_function(pair.variant, indent)


def compile_function(
    signature: FunctionSignature,
    config: typing.Optional[VariantConfig] = None,
    *,
    dispatch: Dispatch = Dispatch.PAIR,
    interface: Interface = Interface.ASYNC,
    namespace: typing.Optional[Namespace] = None,
    indent: str = "",
) -> str:
    """
    Generate code for a function.

    Args:
        signature: The function definition
        config: Options for the variant (PAIR only)
        dispatch: PAIR emits the function followed by its variant; SINGLE emits
            the function alone, in the form chosen by `interface`
        interface: SYNC or ASYNC form for SINGLE dispatch
        namespace: Namespace for error type checks (PAIR only)
        indent: Indentation of the emitted definitions

    Returns:
        Source code of the emitted definitions
    """
    if dispatch is Dispatch.SINGLE:
        return render_function(replace(signature, is_async=interface is Interface.ASYNC), indent)
    pair = synthesize(signature, config or VariantConfig(), namespace=namespace)
    return emit_pair(pair, indent)


def _parse_interface(mode: typing.Union[str, Interface]) -> Interface:
    if isinstance(mode, Interface):
        return mode
    try:
        return Interface(mode)
    except ValueError:
        raise InvalidConfigValue(f"mode must be 'sync' or 'async', got {mode!r}") from None


def build_function(
    mode: typing.Union[str, Interface],
    name: str,
    parameters: typing.Union[str, typing.Sequence[Parameter]] = "",
    return_type: typing.Optional[str] = None,
    body: str = "pass",
    *,
    attributes: typing.Sequence[str] = (),
) -> str:
    """
    Build one function, synchronous or asynchronous, from its parts.

    ```python
    source = build_function("async", "fetch", "url: str", "bytes", "return await get(url)")
    ```

    Args:
        mode: "sync" or "async"
        name: Name of the function
        parameters: Parameter list as written between the parentheses, or Parameter objects
        return_type: Return annotation, or None for none
        body: Body of the function; common indentation is removed
        attributes: Decorator expressions, without the `@`

    Returns:
        Source code of the function

    Raises:
        InvalidConfigValue: For an unknown mode or an invalid name
        MalformedSignature: If the parts do not form a valid function definition
    """
    interface = _parse_interface(mode)
    if not name.isidentifier() or keyword.iskeyword(name):
        raise InvalidConfigValue(f"function name {name!r} is not a valid identifier")

    if isinstance(parameters, str):
        parameters = extract_signature(f"def _({parameters}):\n    pass\n").parameters

    lines = body.splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    body = "\n".join(lines)
    first_line = lines[0] if lines else ""
    body_indent = first_line[: len(first_line) - len(first_line.lstrip())]
    signature = FunctionSignature(
        name=name,
        parameters=tuple(parameters),
        return_type=return_type,
        visibility=visibility_of(name),
        attributes=tuple(attributes),
        body=reindent(body, body_indent, "") if body.strip() else "pass\n",
    )
    source = compile_function(signature, dispatch=Dispatch.SINGLE, interface=interface)
    try:
        ast.parse(source)
    except SyntaxError as exc:
        raise MalformedSignature(f"not valid Python: {exc.msg}", function=name, lineno=exc.lineno) from exc
    return source
