from typing import Optional


class FlexiFuncError(Exception):
    """Base class for transformation failures.

    All subclasses are raised while a variant is being generated, never from the
    generated code itself. `function` and `lineno` point at the offending
    definition or decorator when they are known."""

    def __init__(self, message: str, *, function: Optional[str] = None, lineno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.function = function
        self.lineno = lineno

    def diagnostic(self, filename: str = "<string>") -> str:
        location = filename if self.lineno is None else f"{filename}:{self.lineno}"
        subject = f" (in {self.function})" if self.function else ""
        return f"{location}: {type(self).__name__}: {self.message}{subject}"

    def __str__(self) -> str:
        if self.function:
            return f"{self.message} (in {self.function})"
        return self.message


class MalformedSignature(FlexiFuncError):
    """The input is not a single function definition we can transform."""


class InvalidConfigValue(FlexiFuncError):
    """A recognized option has a value of the wrong shape."""


class UnknownConfigKey(FlexiFuncError):
    """An option name that is not recognized (strict mode only)."""


class IncompatibleErrorConversion(FlexiFuncError):
    """The error type cannot represent what the body raises."""
