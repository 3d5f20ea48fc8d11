"""Looking up error types at transformation time.

The variant converts exceptions with `into_error`, which needs the error type to
either be an exception class or provide a `from_error` classmethod. Whether
that holds is decided before any code is generated, against one of two
namespaces:

* RuntimeNamespace - the live globals of the module that defines the function
  (used by the `@ff` decorator)
* StaticNamespace - classes defined at the top level of the module's source plus
  builtins (used when rewriting source files without importing them)

Either namespace answers `None` when it cannot tell; the check is then skipped.
"""

from __future__ import annotations

import ast
import builtins
import logging
import types
import typing
from dataclasses import dataclass

from .signature import dotted_name

logger = logging.getLogger("flexifunc")


@dataclass(frozen=True)
class TypeInfo:
    name: str
    ancestors: frozenset[str]  # includes the type itself
    has_from_error: bool = False

    @property
    def is_exception(self) -> bool:
        return "BaseException" in self.ancestors

    def is_subclass_of(self, other: TypeInfo) -> bool:
        return other.name in self.ancestors


def _type_key(cls: type) -> str:
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def info_from_class(cls: type) -> TypeInfo:
    return TypeInfo(
        name=_type_key(cls),
        ancestors=frozenset(_type_key(base) for base in cls.__mro__),
        has_from_error=callable(getattr(cls, "from_error", None)),
    )


class Namespace(typing.Protocol):
    def lookup(self, expr: str) -> typing.Optional[TypeInfo]: ...


def evaluated_annotation(annotation: str, *, globals_: typing.Optional[dict] = None) -> typing.Any:
    # evaluate a type expression the way the defining module would see it
    return eval(annotation, globals_ if globals_ is not None else {})


class RuntimeNamespace:
    def __init__(self, globals_: typing.Mapping[str, typing.Any]):
        self._globals = dict(globals_)

    def lookup(self, expr: str) -> typing.Optional[TypeInfo]:
        try:
            obj = evaluated_annotation(expr, globals_=self._globals)
        except Exception as exc:
            logger.debug("Could not evaluate %r at transformation time: %s", expr, exc)
            return None

        if isinstance(obj, type):
            return info_from_class(obj)
        if typing.get_origin(obj) in (typing.Union, types.UnionType):
            logger.debug("Not verifying conversions for union error type %r", expr)
            return None
        # an instance, a function, a module...: only usable through `from_error`
        return TypeInfo(name=expr, ancestors=frozenset(), has_from_error=callable(getattr(obj, "from_error", None)))


class StaticNamespace:
    def __init__(self, tree: typing.Optional[ast.Module] = None):
        self._classes: dict[str, ast.ClassDef] = {}
        self._other_bindings: set[str] = set()
        for node in tree.body if tree is not None else ():
            if isinstance(node, ast.ClassDef):
                self._classes[node.name] = node
            else:
                self._other_bindings.update(bound_names(node))

    def lookup(self, expr: str) -> typing.Optional[TypeInfo]:
        return self._lookup(expr.strip(), frozenset())

    def _lookup(self, name: str, seen: frozenset[str]) -> typing.Optional[TypeInfo]:
        if name in seen:
            return None
        if name in self._classes:
            return self._class_info(self._classes[name], seen | {name})
        if name in self._other_bindings or not name.isidentifier():
            return None
        builtin = getattr(builtins, name, None)
        if isinstance(builtin, type):
            return info_from_class(builtin)
        return None

    def _class_info(self, node: ast.ClassDef, seen: frozenset[str]) -> typing.Optional[TypeInfo]:
        ancestors = {node.name, "object"}
        has_from_error = any(
            isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and stmt.name == "from_error" for stmt in node.body
        )
        for base in node.bases:
            base_name = dotted_name(base)
            base_info = self._lookup(base_name, seen) if base_name else None
            if base_info is None:
                logger.debug("Cannot resolve base %s of class %s statically", ast.unparse(base), node.name)
                return None
            ancestors |= base_info.ancestors
            has_from_error = has_from_error or base_info.has_from_error
        return TypeInfo(name=node.name, ancestors=frozenset(ancestors), has_from_error=has_from_error)


def bound_names(node: ast.stmt) -> set[str]:
    """Names a module-level statement binds."""
    names: set[str] = set()
    if isinstance(node, (ast.Import, ast.ImportFrom)):
        for alias in node.names:
            names.add((alias.asname or alias.name).split(".")[0])
    elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        names.add(node.name)
    elif isinstance(node, (ast.Assign, ast.AnnAssign, ast.AugAssign)):
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        for target in targets:
            names.update(n.id for n in ast.walk(target) if isinstance(n, ast.Name))
    elif isinstance(node, (ast.If, ast.Try, ast.With)):
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.stmt):
                names |= bound_names(child)
        for handler in getattr(node, "handlers", ()):
            for child in handler.body:
                names |= bound_names(child)
    return names
