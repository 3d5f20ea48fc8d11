import enum
import os


class Interface(enum.Enum):
    SYNC = "sync"
    ASYNC = "async"


class Dispatch(enum.Enum):
    PAIR = enum.auto()  # attribute-driven: keep the function, add its variant
    SINGLE = enum.auto()  # declarative: build one function in the requested interface


# Default name suffix for generated variants
VARIANT_SUFFIX = "_async"

# Error type used for wrapping when no `error_type` is given
DEFAULT_ERROR_TYPE = "Exception"

# Decorator names that mark a function for transformation
DEFAULT_MARKERS = frozenset({"ff", "flexifunc.ff"})

# Names the generated variants refer to, all importable from flexifunc.result
RUNTIME_HELPERS = ("Err", "Ok", "Result", "into_error")


def strict_by_default() -> bool:
    return os.getenv("FLEXIFUNC_STRICT", "1") != "0"
