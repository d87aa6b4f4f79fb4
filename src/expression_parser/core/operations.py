"""
Operation catalogue.

Each supported operation is described by a SupportedOperation: its sign, its
arity, how it evaluates, its partial derivatives with respect to each operand
and the rule that differentiates one of its nodes with respect to a variable.
Generic operations use the chain rule; distance and log-sum-exp use closed
forms. Evaluation follows IEEE double semantics, so division by zero,
overflowing exponentials and logarithms of non-positive numbers produce
infinities or NaN instead of raising.
"""

import logging
import math
from functools import reduce
from typing import List

from ..models.ast_schema import (
    NEGATIVE_ONE,
    ONE,
    TWO,
    ZERO,
    Expression,
    Operation,
    SupportedOperation,
)
from ..models.parser_models import OperationRegistry

logger = logging.getLogger(__name__)


# IEEE helpers
def ieee_divide(a: float, b: float) -> float:
    try:
        return a / b
    except ZeroDivisionError:
        if math.isnan(a) or a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def ieee_exp(a: float) -> float:
    try:
        return math.exp(a)
    except OverflowError:
        return math.inf


def ieee_log(a: float) -> float:
    if a > 0:
        return math.log(a)
    if a == 0:
        return -math.inf
    return math.nan


# Evaluation functions
def _add(a, b):
    return a + b


def _subtract(a, b):
    return a - b


def _multiply(a, b):
    return a * b


def _negate(a):
    return -a


def _sum_of_squares(*values):
    return float(sum(value * value for value in values))


def _distance(*values):
    return math.sqrt(_sum_of_squares(*values))


def _sum_of_exponentials(*values):
    return float(sum(ieee_exp(value) for value in values))


def _log_sum_exp(*values):
    return ieee_log(_sum_of_exponentials(*values))


# Partial derivative rules: df/dx_i for each operand x_i
def _add_partials(a, b):
    return [ONE, ONE]


def _subtract_partials(a, b):
    return [ONE, NEGATIVE_ONE]


def _multiply_partials(a, b):
    return [b, a]


def _divide_partials(a, b):
    return [divide(ONE, b), divide(negate(a), multiply(b, b))]


def _negate_partials(a):
    return [NEGATIVE_ONE]


def _sum_of_squares_partials(*operands):
    return [multiply(TWO, operand) for operand in operands]


def _sum_of_exponentials_partials(*operands):
    # d(sum e^x_j)/dx_i = e^x_i, expressed as a one-operand sumexp
    return [sum_of_exponentials(operand) for operand in operands]


def _distance_partials(*operands):
    norm = distance(*operands)
    return [divide(operand, norm) for operand in operands]


def _log_sum_exp_partials(*operands):
    total = sum_of_exponentials(*operands)
    return [divide(sum_of_exponentials(operand), total) for operand in operands]


# Derivatives of a node with respect to a variable
def chain_rule(node: Operation, variable: str) -> Expression:
    """
    Generic derivative: df/dt = sum of df/dx_i * dx_i/dt over the operands.

    df/dx_i comes from the operation's partial derivative rule and dx_i/dt
    is the (memoized) derivative of operand i.
    """
    terms = [
        multiply(partial, operand.diff(variable))
        for partial, operand in zip(node.partials(), node.operands)
    ]
    if not terms:
        return ZERO
    # Left-to-right: ((t0 + t1) + t2) + ...
    return reduce(add, terms)


def _distance_derivative(node: Operation, variable: str) -> Expression:
    """d sqrt(S)/dt = (dS/dt) / (2 sqrt(S)), S being the sum of squares."""
    squares = SUM_OF_SQUARES.create(*node.operands)
    return divide(squares.diff(variable), multiply(TWO, node))


def _log_sum_exp_derivative(node: Operation, variable: str) -> Expression:
    """d log(S)/dt = (dS/dt) / S, S being the sum of exponentials."""
    numerator = sum_of_exponentials(*node.operands).diff(variable)
    return divide(numerator, sum_of_exponentials(*node.operands))


ADD = SupportedOperation(
    sign="+",
    name="add",
    category="arithmetic",
    arity=2,
    evaluate=_add,
    partials=_add_partials,
    derivative=chain_rule,
)
SUBTRACT = SupportedOperation(
    sign="-",
    name="subtract",
    category="arithmetic",
    arity=2,
    evaluate=_subtract,
    partials=_subtract_partials,
    derivative=chain_rule,
)
MULTIPLY = SupportedOperation(
    sign="*",
    name="multiply",
    category="arithmetic",
    arity=2,
    evaluate=_multiply,
    partials=_multiply_partials,
    derivative=chain_rule,
)
DIVIDE = SupportedOperation(
    sign="/",
    name="divide",
    category="arithmetic",
    arity=2,
    evaluate=ieee_divide,
    partials=_divide_partials,
    derivative=chain_rule,
)
NEGATE = SupportedOperation(
    sign="negate",
    name="negate",
    category="arithmetic",
    arity=1,
    evaluate=_negate,
    partials=_negate_partials,
    derivative=chain_rule,
)

# Variadic bases of the sumsqN / distanceN families
SUM_OF_SQUARES = SupportedOperation(
    sign="sumsq",
    name="sum_of_squares",
    category="norm",
    evaluate=_sum_of_squares,
    partials=_sum_of_squares_partials,
    derivative=chain_rule,
    description="Sum of the squared operands",
)
DISTANCE = SupportedOperation(
    sign="distance",
    name="distance",
    category="norm",
    evaluate=_distance,
    partials=_distance_partials,
    derivative=_distance_derivative,
    description="Euclidean norm of the operands",
)

SUM_OF_EXPONENTIALS = SupportedOperation(
    sign="sumexp",
    name="sum_of_exponentials",
    category="exponential",
    evaluate=_sum_of_exponentials,
    partials=_sum_of_exponentials_partials,
    derivative=chain_rule,
    description="Sum of e raised to each operand",
)
LOG_SUM_EXP = SupportedOperation(
    sign="lse",
    name="log_sum_exp",
    category="exponential",
    evaluate=_log_sum_exp,
    partials=_log_sum_exp_partials,
    derivative=_log_sum_exp_derivative,
    description="Natural logarithm of the sum of exponentials",
)

FAMILY_ARITIES = range(2, 6)

SUM_OF_SQUARES_FAMILY = {n: SUM_OF_SQUARES.with_arity(n) for n in FAMILY_ARITIES}
DISTANCE_FAMILY = {n: DISTANCE.with_arity(n) for n in FAMILY_ARITIES}


# Node builders
def add(a: Expression, b: Expression) -> Operation:
    return ADD.create(a, b)


def subtract(a: Expression, b: Expression) -> Operation:
    return SUBTRACT.create(a, b)


def multiply(a: Expression, b: Expression) -> Operation:
    return MULTIPLY.create(a, b)


def divide(a: Expression, b: Expression) -> Operation:
    return DIVIDE.create(a, b)


def negate(a: Expression) -> Operation:
    return NEGATE.create(a)


def sum_of_squares(*operands: Expression) -> Operation:
    return SUM_OF_SQUARES_FAMILY.get(len(operands), SUM_OF_SQUARES).create(*operands)


def distance(*operands: Expression) -> Operation:
    return DISTANCE_FAMILY.get(len(operands), DISTANCE).create(*operands)


def sum_of_exponentials(*operands: Expression) -> Operation:
    return SUM_OF_EXPONENTIALS.create(*operands)


def log_sum_exp(*operands: Expression) -> Operation:
    return LOG_SUM_EXP.create(*operands)


def create_default_operation_registry() -> OperationRegistry:
    """Create registry with every operation of the prefix/postfix grammar."""
    registry = OperationRegistry()

    operations: List[SupportedOperation] = [ADD, SUBTRACT, MULTIPLY, DIVIDE, NEGATE]
    operations.extend(DISTANCE_FAMILY.values())
    operations.extend(SUM_OF_SQUARES_FAMILY.values())
    operations.extend([LOG_SUM_EXP, SUM_OF_EXPONENTIALS])

    for operation in operations:
        registry.add_operation(operation)

    logger.debug(f"Created operation registry with signs: {registry.signs()}")
    return registry


DEFAULT_OPERATION_REGISTRY = create_default_operation_registry()


__all__ = [
    "ADD",
    "SUBTRACT",
    "MULTIPLY",
    "DIVIDE",
    "NEGATE",
    "SUM_OF_SQUARES",
    "DISTANCE",
    "SUM_OF_EXPONENTIALS",
    "LOG_SUM_EXP",
    "SUM_OF_SQUARES_FAMILY",
    "DISTANCE_FAMILY",
    "add",
    "subtract",
    "multiply",
    "divide",
    "negate",
    "sum_of_squares",
    "distance",
    "sum_of_exponentials",
    "log_sum_exp",
    "ieee_divide",
    "ieee_exp",
    "ieee_log",
    "chain_rule",
    "create_default_operation_registry",
    "DEFAULT_OPERATION_REGISTRY",
]
