"""Functions and methods transformed by `@ff` at import time."""

from flexifunc import Err, Ok, Result, ff


class ParseError(Exception):
    @classmethod
    def from_error(cls, exc: Exception) -> "ParseError":
        return cls(f"{type(exc).__name__}: {exc}")


@ff
def add(a: int, b: int) -> int:
    """Add two numbers."""
    return a + b


@ff(error_type="ParseError")
def parse_port(text: str) -> int:
    port = int(text)
    if not 0 < port < 65536:
        raise ValueError(f"port out of range: {port}")
    return port


@ff(variant_name="checked_divide")
def divide(a: float, b: float) -> float:
    return a / b


@ff
def lookup(table: dict, key: str) -> Result[int, str]:
    if key in table:
        return Ok(table[key])
    return Err(f"missing {key}")


@ff
def greet(name, *, punctuation="!"):
    return f"Hello, {name}{punctuation}"


@ff
async def fetch(value):
    return value


class Counter:
    def __init__(self, start: int = 0):
        self.count = start

    @ff
    def increment(self, by: int = 1) -> int:
        self.count += by
        return self.count

    @ff
    @staticmethod
    def double(x: int) -> int:
        return x * 2

    @ff
    @classmethod
    def starting_at(cls, start: int) -> "Counter":
        return cls(start)

    @ff
    def __reset(self) -> None:
        self.count = 0

    async def reset_later(self):
        return await self.__reset_async()

    @ff
    def __call__(self) -> int:
        return self.count


def make_scaler(factor: int):
    @ff
    def scale(x: int) -> int:
        return x * factor

    return scale


def make_countdown():
    @ff
    def countdown(n: int) -> int:
        return n if n <= 0 else countdown(n - 1)

    return countdown


def make_late_scaler():
    factor = 1

    @ff
    def scale(x: int) -> int:
        return x * factor

    factor = 10
    return scale


def make_tally():
    total = 0

    @ff
    def tally(n: int) -> int:
        nonlocal total
        total += n
        return total

    return tally
