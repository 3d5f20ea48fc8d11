from .codegen.compile import build_function as fb
from .decorator import ff, variant_of
from .exceptions import (
    FlexiFuncError,
    IncompatibleErrorConversion,
    InvalidConfigValue,
    MalformedSignature,
    UnknownConfigKey,
)
from .interface import Dispatch, Interface
from .result import Err, Ok, Result, into_error

__all__ = [
    "Dispatch",
    "Err",
    "FlexiFuncError",
    "IncompatibleErrorConversion",
    "Interface",
    "InvalidConfigValue",
    "MalformedSignature",
    "Ok",
    "Result",
    "UnknownConfigKey",
    "fb",
    "ff",
    "into_error",
    "variant_of",
]
