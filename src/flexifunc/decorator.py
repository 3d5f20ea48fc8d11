"""The `@ff` decorator.

`@ff` generates a function's async variant when the function is defined, and
puts it next to the function:

```python
from flexifunc import ff

@ff
def count_words(text: str) -> int:
    return len(text.split())

# count_words("a b") == 2
# await count_words_async("a b") == Ok(2)
```

The function itself is returned unchanged.
"""

import __future__
import functools
import itertools
import linecache
import logging
import sys
import types
import typing
import weakref

import typing_extensions

from . import result
from .codegen.compile import GeneratedPair, synthesize
from .codegen.config import VariantConfig, resolve_config
from .codegen.namespace import RuntimeNamespace
from .codegen.signature import INDENT, render_function, signature_from_function, strip_markers, unwrap_function
from .exceptions import FlexiFuncError, InvalidConfigValue, MalformedSignature
from .interface import DEFAULT_MARKERS, RUNTIME_HELPERS

logger = logging.getLogger("flexifunc")

P = typing_extensions.ParamSpec("P")
R = typing.TypeVar("R")

_variants: "weakref.WeakKeyDictionary[typing.Callable, typing.Callable]" = weakref.WeakKeyDictionary()
_source_counter = itertools.count()

# Marks generated variants, so a module reload can replace them
VARIANT_MARKER = "__flexifunc_variant_of__"

# variants that share an enclosing function's variables are defined inside these
CLOSURE_FACTORY = "_flexifunc_closure"
CLOSURE_SCOPE = "_flexifunc_scope"


def variant_of(func: typing.Callable) -> typing.Callable:
    """Return the variant generated for `func` by `@ff`.

    Raises:
        KeyError: If `func` was not transformed
    """
    return _variants[unwrap_function(func)]


def _marker_names(func: types.FunctionType) -> set[str]:
    markers = set(DEFAULT_MARKERS)
    for name, value in func.__globals__.items():
        if value is ff:
            markers.add(name)
        elif value is sys.modules.get("flexifunc"):
            markers.add(f"{name}.ff")
    return markers


def _closure_values(func: types.FunctionType) -> dict[str, typing.Any]:
    values = {}
    for name, cell in zip(func.__code__.co_freevars, func.__closure__ or ()):
        try:
            values[name] = cell.cell_contents
        except ValueError:
            # cell not filled yet
            continue
    return values


def _register_source(source: str, qualname: str) -> str:
    filename = f"<flexifunc-{next(_source_counter)} {qualname}>"
    linecache.cache[filename] = (len(source), None, source.splitlines(keepends=True), filename)
    return filename


def _mangled(owner: str, name: str) -> str:
    """The attribute name a class body binds `name` to."""
    if name.startswith("__") and not name.endswith("__") and owner.strip("_"):
        return f"_{owner.lstrip('_')}{name}"
    return name


def _compile_variant(func: types.FunctionType, pair: GeneratedPair) -> types.FunctionType:
    """Execute the variant's definition and return the function object.

    Annotations are compiled as strings, so names the variant's annotations use
    only have to exist by the time something evaluates them (as with
    `from __future__ import annotations` in the defining module).

    Variables of an enclosing function are shared with `func`: the variant is
    defined inside a function whose free variables have the same names, which
    is then rebuilt around `func`'s own cells.
    """
    qualname_parts = func.__qualname__.split(".")
    owner = qualname_parts[-2] if len(qualname_parts) > 1 and qualname_parts[-2] != "<locals>" else None
    free = [name for name in func.__code__.co_freevars if name != "__class__"]
    indent = INDENT * 2 if free else ""

    if owner is not None:
        # compile inside a class body named like the owner, so private names are mangled the same way.
        # A leading underscore keeps the mangling and avoids hiding an enclosing variable of that name.
        stand_in = f"_{owner}" if owner in free else owner
        source = f"{indent}class {stand_in}:\n" + render_function(pair.variant, indent + INDENT)
        defined = f"{stand_in}.__dict__[{_mangled(owner, pair.variant.name)!r}]"
    else:
        source = render_function(pair.variant, indent)
        defined = pair.variant.name
    if free:
        source = (
            f"def {CLOSURE_FACTORY}():\n"
            + "".join(f"{INDENT}{name} = None\n" for name in free)
            + f"{INDENT}def {CLOSURE_SCOPE}():\n"
            + source
            + f"{indent}return {defined}\n"
            + f"{INDENT}return {CLOSURE_SCOPE}\n"
        )

    globals_ = func.__globals__
    if pair.wrapped:
        for name in RUNTIME_HELPERS:
            globals_.setdefault(name, getattr(result, name))

    filename = _register_source(source, f"{func.__module__}.{func.__qualname__}")
    code = compile(source, filename, "exec", flags=__future__.annotations.compiler_flag, dont_inherit=True)
    namespace: dict[str, typing.Any] = {}
    exec(code, globals_, namespace)

    if free:
        scope = namespace[CLOSURE_FACTORY]()
        cells = dict(zip(func.__code__.co_freevars, func.__closure__ or ()))
        scope = types.FunctionType(
            scope.__code__,
            globals_,
            scope.__name__,
            scope.__defaults__,
            tuple(cells[name] for name in scope.__code__.co_freevars),
        )
        variant = scope()
    elif owner is not None:
        variant = namespace[owner].__dict__[_mangled(owner, pair.variant.name)]
    else:
        variant = namespace[pair.variant.name]

    inner = unwrap_function(variant)
    inner.__qualname__ = ".".join([*qualname_parts[:-1], pair.variant.name])
    inner.__module__ = func.__module__
    setattr(inner, VARIANT_MARKER, func.__qualname__)
    return variant


class _MethodVariantInstaller:
    """Stands in for a decorated method until its class is created.

    `__set_name__` puts the original function back and adds the variant to the
    class. Until then it behaves like the original function.
    """

    def __init__(self, original: typing.Any, variant_name: str, variant: typing.Callable):
        self.original = original
        self.variant_name = variant_name
        self.variant = variant
        functools.update_wrapper(self, unwrap_function(original))

    def __set_name__(self, owner: type, name: str) -> None:
        setattr(owner, name, self.original)
        existing = owner.__dict__.get(self.variant_name)
        if existing is not None and not hasattr(unwrap_function(existing), VARIANT_MARKER):
            raise InvalidConfigValue(
                f"{owner.__qualname__}.{self.variant_name} is already defined",
                function=f"{owner.__qualname__}.{name}",
            )
        setattr(owner, self.variant_name, self.variant)

    def __get__(self, instance: typing.Any, owner: typing.Optional[type] = None) -> typing.Any:
        return self.original.__get__(instance, owner)

    def __call__(self, *args: typing.Any, **kwargs: typing.Any) -> typing.Any:
        return self.original(*args, **kwargs)


def _install_module_variant(func: types.FunctionType, name: str, variant: typing.Callable) -> None:
    existing = func.__globals__.get(name)
    if existing is not None and not hasattr(unwrap_function(existing), VARIANT_MARKER):
        raise InvalidConfigValue(f"{func.__module__}.{name} is already defined", function=func.__qualname__)
    func.__globals__[name] = variant


def _transform(func: typing.Any, config: VariantConfig) -> typing.Any:
    target = unwrap_function(func)
    if target in _variants:
        raise MalformedSignature("@ff is applied more than once", function=getattr(target, "__qualname__", None))

    original = signature_from_function(func)
    signature, markers = strip_markers(original, _marker_names(target))
    if len(markers) > 1:
        raise MalformedSignature("@ff is applied more than once", function=target.__qualname__, lineno=signature.lineno)

    qualname_parts = target.__qualname__.split(".")
    is_method = len(qualname_parts) > 1 and qualname_parts[-2] != "<locals>"
    if is_method and markers and original.attributes.index(markers[0]) != 0:
        # the class only sees the outermost decorator's result
        raise MalformedSignature(
            "@ff must be the outermost decorator of a method", function=target.__qualname__, lineno=signature.lineno
        )

    lookup_globals = target.__globals__
    if target.__closure__:
        # error types may name variables of the enclosing function
        lookup_globals = {**target.__globals__, **_closure_values(target)}

    try:
        pair = synthesize(signature, config, namespace=RuntimeNamespace(lookup_globals))
    except FlexiFuncError as exc:
        exc.function = exc.function or target.__qualname__
        exc.lineno = exc.lineno or signature.lineno
        raise

    variant = _compile_variant(target, pair)
    _variants[target] = variant
    logger.debug("Generated %s for %s.%s", pair.variant.name, target.__module__, target.__qualname__)

    if is_method:
        return _MethodVariantInstaller(func, _mangled(qualname_parts[-2], pair.variant.name), variant)
    if len(qualname_parts) == 1:
        _install_module_variant(target, pair.variant.name, variant)
    return func


@typing.overload
def ff(func: typing.Callable[P, R], /) -> typing.Callable[P, R]: ...


@typing.overload
def ff(
    *, variant_name: str = ..., error_type: str = ..., **options: typing.Any
) -> typing.Callable[[typing.Callable[P, R]], typing.Callable[P, R]]: ...


def ff(func=None, /, **options):
    """Generate an async variant of the decorated function.

    The variant is named `<name>_async` unless `variant_name` is given, takes the
    same parameters and returns `Result[T, error_type]` (`error_type` defaults to
    `Exception`). Functions that already return a `Result` keep their return type.

    Module-level variants are added to the module, method variants to the class.
    Variants of nested functions are available through `variant_of`.

    Raises:
        MalformedSignature: If the function's source is not available, it is a
            generator, or it was already transformed
        InvalidConfigValue: For a badly-typed option or an unusable variant name
        UnknownConfigKey: For an unknown option (unless FLEXIFUNC_STRICT=0)
        IncompatibleErrorConversion: If error_type cannot represent the body's exceptions
    """
    # options are checked eagerly so that typos fail even if the decorator is never applied
    config = resolve_config(options)
    if func is None:
        return functools.partial(_transform, config=config)
    return _transform(func, config)
