"""Rewriting module source: every `@ff`-marked function is replaced by itself plus its variant."""

from __future__ import annotations

import ast
import logging
import typing
from pathlib import Path

from ..exceptions import FlexiFuncError, MalformedSignature
from ..interface import DEFAULT_MARKERS, RUNTIME_HELPERS
from .compile import emit_pair, synthesize
from .config import config_from_decorator
from .namespace import StaticNamespace, bound_names
from .signature import decorator_name, extract_signature, line_prefix, strip_markers

logger = logging.getLogger("flexifunc")

FunctionNode = typing.Union[ast.FunctionDef, ast.AsyncFunctionDef]


def marker_names(tree: ast.Module) -> set[str]:
    """Decorator names that mark functions in this module, including import aliases."""
    markers = set(DEFAULT_MARKERS)
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom) and node.module == "flexifunc":
            markers.update(alias.asname or alias.name for alias in node.names if alias.name == "ff")
        elif isinstance(node, ast.Import):
            markers.update(f"{alias.asname or alias.name}.ff" for alias in node.names if alias.name == "flexifunc")
    return markers


def _marker_decorators(node: FunctionNode, markers: typing.Collection[str]) -> list[ast.expr]:
    return [d for d in node.decorator_list if decorator_name(d) in markers]


def _next_marked_function(tree: ast.Module, markers: typing.Collection[str]) -> typing.Optional[FunctionNode]:
    """The marked function that appears last among those with no marked function inside them."""
    candidates = []
    for node in ast.walk(tree):
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) or not _marker_decorators(node, markers):
            continue
        has_marked_child = any(
            isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef))
            and child is not node
            and _marker_decorators(child, markers)
            for child in ast.walk(node)
        )
        if not has_marked_child:
            candidates.append(node)
    # rewriting bottom-up keeps the line numbers of the remaining functions valid
    return max(candidates, key=lambda n: n.lineno, default=None)


def _rewrite_function(
    source: str, tree: ast.Module, node: FunctionNode, markers: typing.Collection[str], strict: typing.Optional[bool]
) -> tuple[str, bool]:
    found = _marker_decorators(node, markers)
    if len(found) > 1:
        raise MalformedSignature("@ff is applied more than once", function=node.name, lineno=node.lineno)

    lines = source.splitlines(keepends=True)
    start = min([node.lineno, *(d.lineno for d in node.decorator_list)])
    end = node.end_lineno or node.lineno
    indent = line_prefix(lines[node.lineno - 1], node.col_offset)

    signature = extract_signature("".join(lines[start - 1 : end]), first_lineno=start)
    signature, _ = strip_markers(signature, markers)
    config = config_from_decorator(found[0], strict=strict)
    pair = synthesize(signature, config, namespace=StaticNamespace(tree))

    replacement = emit_pair(pair, indent)
    return "".join(lines[: start - 1]) + replacement + "".join(lines[end:]), pair.wrapped


def _helper_import_line(tree: ast.Module, source: str) -> tuple[int, typing.Optional[str]]:
    """Where to insert the helper import, and the import itself (None when nothing is missing)."""
    bound: set[str] = set()
    for node in tree.body:
        bound |= bound_names(node)
    missing = [name for name in RUNTIME_HELPERS if name not in bound]
    if not missing:
        return 0, None

    insert_after = 0
    for index, node in enumerate(tree.body):
        is_docstring = (
            index == 0
            and isinstance(node, ast.Expr)
            and isinstance(node.value, ast.Constant)
            and isinstance(node.value.value, str)
        )
        if is_docstring or (isinstance(node, ast.ImportFrom) and node.module == "__future__"):
            insert_after = node.end_lineno or node.lineno
        else:
            break

    if insert_after == 0:
        # stay below a shebang or encoding comment
        for line in source.splitlines():
            if not line.startswith("#"):
                break
            insert_after += 1

    return insert_after, f"from flexifunc.result import {', '.join(missing)}\n"


def transform_source(source: str, *, strict: typing.Optional[bool] = None, filename: str = "<string>") -> str:
    """
    Replace every marked function in a module's source with its pair.

    Each function decorated with `@ff` (or an alias of it) is replaced in place by
    the function without the marker, followed by its variant, at the same
    indentation. Nested marked functions are handled before the functions that
    contain them. When a variant needs the result helpers, an import for the ones
    the module does not bind yet is added below the docstring and `__future__`
    imports.

    Args:
        source: Module source code
        strict: Reject unknown options (see resolve_config)
        filename: Used in log messages only

    Returns:
        The rewritten source. Source without marked functions is returned unchanged.

    Raises:
        FlexiFuncError: If any function cannot be transformed
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as exc:
        raise MalformedSignature(f"not valid Python: {exc.msg}", lineno=exc.lineno) from exc

    markers = marker_names(tree)
    needs_helpers = False
    count = 0

    while (node := _next_marked_function(tree, markers)) is not None:
        try:
            source, wrapped = _rewrite_function(source, tree, node, markers, strict)
        except FlexiFuncError as exc:
            exc.function = exc.function or node.name
            exc.lineno = exc.lineno or node.lineno
            raise
        needs_helpers = needs_helpers or wrapped
        count += 1
        tree = ast.parse(source, filename=filename)

    if needs_helpers:
        insert_after, import_line = _helper_import_line(tree, source)
        if import_line is not None:
            lines = source.splitlines(keepends=True)
            if insert_after and not lines[insert_after - 1].endswith("\n"):
                lines[insert_after - 1] += "\n"
            source = "".join(lines[:insert_after]) + import_line + "".join(lines[insert_after:])

    logger.debug("Transformed %d function(s) in %s", count, filename)
    return source


def transform_file(path: Path, *, strict: typing.Optional[bool] = None) -> str:
    """Read a Python file and return its transformed source."""
    return transform_source(path.read_text(), strict=strict, filename=str(path))
