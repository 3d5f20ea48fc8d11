"""Code generation package for flexifunc."""

# Re-export public functions
from .compile import GeneratedPair, build_function, compile_function, emit_pair, is_result_like, synthesize
from .config import VariantConfig, resolve_config
from .rewrite import transform_file, transform_source
from .signature import FunctionSignature, Parameter, Visibility, extract_signature, render_function

__all__ = [
    "FunctionSignature",
    "GeneratedPair",
    "Parameter",
    "VariantConfig",
    "Visibility",
    "build_function",
    "compile_function",
    "emit_pair",
    "extract_signature",
    "is_result_like",
    "render_function",
    "resolve_config",
    "synthesize",
    "transform_file",
    "transform_source",
]
