from .operations import (
    DEFAULT_OPERATION_REGISTRY,
    create_default_operation_registry,
    add,
    subtract,
    multiply,
    divide,
    negate,
    sum_of_squares,
    distance,
    sum_of_exponentials,
    log_sum_exp,
    chain_rule,
)

__all__ = [
    "DEFAULT_OPERATION_REGISTRY",
    "create_default_operation_registry",
    "add",
    "subtract",
    "multiply",
    "divide",
    "negate",
    "sum_of_squares",
    "distance",
    "sum_of_exponentials",
    "log_sum_exp",
    "chain_rule",
]
