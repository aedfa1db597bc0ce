"""Function package exports."""

from .base import ExecutionContext, Function, FunctionResult
from .router import FunctionRouter, default_functions, extract_shop_ids
from .schemas import (
    CART_MUTATION_FUNCTIONS,
    PRIVILEGED_FUNCTIONS,
    SEARCH_FUNCTIONS,
    function_schemas,
)

__all__ = [
    "ExecutionContext",
    "Function",
    "FunctionResult",
    "FunctionRouter",
    "default_functions",
    "extract_shop_ids",
    "CART_MUTATION_FUNCTIONS",
    "PRIVILEGED_FUNCTIONS",
    "SEARCH_FUNCTIONS",
    "function_schemas",
]
