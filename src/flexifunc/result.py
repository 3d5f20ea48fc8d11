"""Two-armed success/failure container returned by generated variants.

A variant of `def f(...) -> T` returns `Result[T, E]`, which is either `Ok(value)`
or `Err(error)`:

```python
result = await parse_async("42")
if result.is_ok():
    print(result.unwrap())
```
"""

import typing

import typing_extensions

T = typing.TypeVar("T")
E = typing.TypeVar("E")
U = typing.TypeVar("U")
F = typing.TypeVar("F")


class Ok(typing.Generic[T]):
    """Successful outcome carrying `value`."""

    __slots__ = ("value",)
    __match_args__ = ("value",)

    def __init__(self, value: T):
        self.value = value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Ok) and other.value == self.value

    def __hash__(self) -> int:
        return hash((Ok, self.value))

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> typing.NoReturn:
        raise ValueError(f"Called unwrap_err on {self!r}")

    def unwrap_or(self, default: object) -> T:
        return self.value

    def map(self, fn: typing.Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))

    def map_err(self, fn: typing.Callable[[typing.Any], typing.Any]) -> "Ok[T]":
        return self


class Err(typing.Generic[E]):
    """Failed outcome carrying `error`."""

    __slots__ = ("error",)
    __match_args__ = ("error",)

    def __init__(self, error: E):
        self.error = error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Err) and other.error == self.error

    def __hash__(self) -> int:
        return hash((Err, self.error))

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> typing.NoReturn:
        """Raise the carried error if it is an exception, else a ValueError."""
        if isinstance(self.error, BaseException):
            raise self.error
        raise ValueError(f"Called unwrap on {self!r}")

    def unwrap_err(self) -> E:
        return self.error

    def unwrap_or(self, default: U) -> U:
        return default

    def map(self, fn: typing.Callable[[typing.Any], typing.Any]) -> "Err[E]":
        return self

    def map_err(self, fn: typing.Callable[[E], F]) -> "Err[F]":
        return Err(fn(self.error))


Result: typing_extensions.TypeAlias = typing.Union[Ok[T], Err[E]]


def into_error(exc: Exception, error_type: typing.Any) -> typing.Any:
    """Convert an exception raised by a variant's body into its error type.

    Exceptions that already are instances of `error_type` pass through unchanged.
    Otherwise `error_type.from_error(exc)` is used when the type provides it. An
    exception that cannot be represented is re-raised as is.
    """
    try:
        matches = isinstance(exc, error_type)
    except TypeError:
        # not a class, tuple or union: only `from_error` can help
        matches = False
    if matches:
        return exc
    from_error = getattr(error_type, "from_error", None)
    if callable(from_error):
        return from_error(exc)
    raise exc


__all__ = ["Err", "Ok", "Result", "into_error"]
