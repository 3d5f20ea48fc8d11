"""Resolution of `@ff(...)` options into a typed VariantConfig."""

from __future__ import annotations

import ast
import keyword
import logging
import typing
from dataclasses import dataclass

from ..exceptions import InvalidConfigValue, UnknownConfigKey
from ..interface import DEFAULT_ERROR_TYPE, strict_by_default
from .signature import dotted_name

logger = logging.getLogger("flexifunc")

RECOGNIZED_KEYS = ("variant_name", "error_type")


@dataclass(frozen=True)
class VariantConfig:
    """Options for generating one variant.

    `variant_name` is None when the default naming rule applies. `error_type` is
    the source text of the error type and always has a value.
    """

    variant_name: typing.Optional[str] = None
    error_type: str = DEFAULT_ERROR_TYPE


def _is_type_expression(node: ast.expr) -> bool:
    if dotted_name(node) is not None:
        return True
    if isinstance(node, ast.Subscript):
        return dotted_name(node.value) is not None
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _is_type_expression(node.left) and _is_type_expression(node.right)
    if isinstance(node, ast.Constant):
        # union members may be forward references or None
        return node.value is None or isinstance(node.value, str)
    return False


def parse_variant_name(value: typing.Any) -> str:
    if not isinstance(value, str):
        raise InvalidConfigValue(f"variant_name must be a string, got {type(value).__name__}")
    if not value.isidentifier() or keyword.iskeyword(value):
        raise InvalidConfigValue(f"variant_name {value!r} is not a valid identifier")
    return value


def parse_error_type(value: typing.Any) -> str:
    if not isinstance(value, str):
        raise InvalidConfigValue(f"error_type must be a string, got {type(value).__name__}")
    text = value.strip()
    try:
        expr = ast.parse(text, mode="eval").body
    except SyntaxError as exc:
        raise InvalidConfigValue(f"error_type {value!r} is not a type expression: {exc.msg}") from exc
    if not _is_type_expression(expr) or isinstance(expr, ast.Constant):
        raise InvalidConfigValue(f"error_type {value!r} is not a type expression")
    return text


_PARSERS: dict[str, typing.Callable[[typing.Any], str]] = {
    "variant_name": parse_variant_name,
    "error_type": parse_error_type,
}


def resolve_config(
    options: typing.Optional[typing.Mapping[str, typing.Any]] = None, *, strict: typing.Optional[bool] = None
) -> VariantConfig:
    """
    Turn decorator options into a VariantConfig.

    Args:
        options: Option names mapped to their values. None means no options.
        strict: Reject unknown option names. Defaults to the FLEXIFUNC_STRICT
            environment variable, which is on unless set to "0".

    Returns:
        VariantConfig with defaults applied for absent options

    Raises:
        InvalidConfigValue: If a recognized option has a value of the wrong shape
        UnknownConfigKey: If an option is not recognized and strict mode is on
    """
    if strict is None:
        strict = strict_by_default()

    resolved: dict[str, str] = {}
    for key, value in (options or {}).items():
        parser = _PARSERS.get(key)
        if parser is None:
            expected = ", ".join(RECOGNIZED_KEYS)
            if strict:
                raise UnknownConfigKey(f"unknown option {key!r} (expected one of: {expected})")
            logger.warning("Ignoring unknown option %r (expected one of: %s)", key, expected)
            continue
        resolved[key] = parser(value)

    return VariantConfig(
        variant_name=resolved.get("variant_name"),
        error_type=resolved.get("error_type", DEFAULT_ERROR_TYPE),
    )


def options_from_decorator(node: ast.expr) -> dict[str, typing.Any]:
    """
    Read the options of a marker decorator as written in source.

    `@ff` has no options; `@ff(variant_name="x")` has one. Values must be literals.

    Raises:
        InvalidConfigValue: For positional arguments, `**kwargs` or non-literal values
    """
    if not isinstance(node, ast.Call):
        return {}
    if node.args:
        raise InvalidConfigValue("options must be passed as keyword arguments", lineno=node.lineno)

    options: dict[str, typing.Any] = {}
    for kw in node.keywords:
        if kw.arg is None:
            raise InvalidConfigValue("options cannot be passed with **", lineno=kw.value.lineno)
        if kw.arg in options:
            raise InvalidConfigValue(f"option {kw.arg!r} given more than once", lineno=kw.value.lineno)
        try:
            options[kw.arg] = ast.literal_eval(kw.value)
        except (ValueError, TypeError, SyntaxError) as exc:
            raise InvalidConfigValue(f"option {kw.arg!r} must be a literal", lineno=kw.value.lineno) from exc
    return options


def config_from_decorator(node: ast.expr, *, strict: typing.Optional[bool] = None) -> VariantConfig:
    options = options_from_decorator(node)
    try:
        return resolve_config(options, strict=strict)
    except (InvalidConfigValue, UnknownConfigKey) as exc:
        if exc.lineno is None:
            exc.lineno = node.lineno
        raise
