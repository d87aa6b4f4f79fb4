"""
Expression tree schema.
Constant, variable and operation nodes plus the operation metadata they share.
"""

import math
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

# Positional order of the evaluation arguments.
VARIABLES: Tuple[str, ...] = ("x", "y", "z")


class NodeType(str, Enum):
    """Expression node variants."""

    CONSTANT = "constant"  # 2, -1.5, 1e3
    VARIABLE = "variable"  # x, y, z
    OPERATION = "operation"  # (+ x y), (x y +)


def format_number(value: float) -> str:
    """Render a float so that the lexer reads back the same value."""
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


class SupportedOperation(BaseModel):
    """Metadata and behaviour of one operation kind."""

    sign: str
    name: str
    category: str  # "arithmetic", "norm", "exponential"
    arity: Optional[int] = None  # None = unbounded
    description: str = ""

    # Numeric value of the operation given its operands' values
    evaluate: Callable[..., float]
    # df/dx_i for every operand x_i, as expression nodes
    partials: Optional[Callable[..., List[Any]]] = None
    # d(node)/d(variable): the generic chain rule or a closed form
    derivative: Optional[Callable[[Any, str], Any]] = None

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "examples": [
                {
                    "sign": "+",
                    "name": "add",
                    "category": "arithmetic",
                    "arity": 2,
                },
                {
                    "sign": "lse",
                    "name": "log_sum_exp",
                    "category": "exponential",
                    "arity": None,
                },
            ]
        },
    )

    @property
    def is_variadic(self) -> bool:
        return self.arity is None

    def accepts(self, count: int) -> bool:
        """Check whether ``count`` operands satisfy the arity."""
        return self.arity is None or count == self.arity

    def with_arity(self, n: int) -> "SupportedOperation":
        """Bind a fixed arity onto a variadic operation (``sumsq`` -> ``sumsq3``)."""
        return self.model_copy(update={"sign": f"{self.sign}{n}", "arity": n})

    def create(self, *operands: "Expression") -> "Operation":
        """Build a node for this operation. Operand count is not checked."""
        return Operation(operation=self, operands=operands)


class Expression(BaseModel):
    """
    Base expression node.

    Nodes are immutable. The only mutable state is the private derivative
    cache kept by operation nodes.
    """

    node_type: NodeType

    model_config = ConfigDict(frozen=True, extra="forbid")

    def evaluate(self, *values: float) -> float:
        raise NotImplementedError

    def diff(self, variable: str) -> "Expression":
        raise NotImplementedError

    def to_string(self) -> str:
        raise NotImplementedError

    def prefix(self) -> str:
        raise NotImplementedError

    def postfix(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.prefix()})"


class Constant(Expression):
    """Numeric literal."""

    node_type: NodeType = NodeType.CONSTANT
    value: float

    def __init__(self, value: float, **data: Any):
        super().__init__(value=value, **data)

    def evaluate(self, *values: float) -> float:
        return self.value

    def diff(self, variable: str) -> Expression:
        return ZERO

    def to_string(self) -> str:
        return format_number(self.value)

    def prefix(self) -> str:
        return self.to_string()

    def postfix(self) -> str:
        return self.to_string()


class Variable(Expression):
    """One of the positional variables ``x``, ``y``, ``z``."""

    node_type: NodeType = NodeType.VARIABLE
    name: str

    def __init__(self, name: str, **data: Any):
        super().__init__(name=name, **data)

    @field_validator("name")
    @classmethod
    def _check_name(cls, name: str) -> str:
        if name not in VARIABLES:
            raise ValueError(
                f"Unknown variable '{name}', expected one of {', '.join(VARIABLES)}"
            )
        return name

    @property
    def index(self) -> int:
        return VARIABLES.index(self.name)

    def evaluate(self, *values: float) -> float:
        return float(values[self.index])

    def diff(self, variable: str) -> Expression:
        return ONE if variable == self.name else ZERO

    def to_string(self) -> str:
        return self.name

    def prefix(self) -> str:
        return self.name

    def postfix(self) -> str:
        return self.name


class Operation(Expression):
    """Application of a supported operation to an ordered tuple of operands."""

    node_type: NodeType = NodeType.OPERATION
    operation: SupportedOperation
    operands: Tuple[Expression, ...] = Field(default_factory=tuple)

    # Lazily filled, local to this node instance
    _partials: Optional[List[Expression]] = PrivateAttr(default=None)
    _diffs: Dict[str, Expression] = PrivateAttr(default_factory=dict)

    @property
    def sign(self) -> str:
        return self.operation.sign

    @property
    def arity(self) -> Optional[int]:
        return self.operation.arity

    def evaluate(self, *values: float) -> float:
        return self.operation.evaluate(
            *[operand.evaluate(*values) for operand in self.operands]
        )

    def partials(self) -> List[Expression]:
        """Partial derivatives of this operation with respect to each operand."""
        if self._partials is None:
            if self.operation.partials is None:
                raise NotImplementedError(
                    f"Operation '{self.sign}' has no partial derivative rule"
                )
            self._partials = list(self.operation.partials(*self.operands))
        return self._partials

    def diff(self, variable: str) -> Expression:
        """Symbolic derivative, computed once per variable and cached."""
        derivative = self._diffs.get(variable)
        if derivative is None:
            if self.operation.derivative is None:
                raise NotImplementedError(
                    f"Operation '{self.sign}' has no derivative rule"
                )
            derivative = self.operation.derivative(self, variable)
            self._diffs[variable] = derivative
        return derivative

    def to_string(self) -> str:
        return " ".join([operand.to_string() for operand in self.operands] + [self.sign])

    def prefix(self) -> str:
        return "(" + " ".join([self.sign] + [operand.prefix() for operand in self.operands]) + ")"

    def postfix(self) -> str:
        return "(" + " ".join([operand.postfix() for operand in self.operands] + [self.sign]) + ")"


# Shared read-only constants used by the differentiation rules
ZERO = Constant(0.0)
ONE = Constant(1.0)
NEGATIVE_ONE = Constant(-1.0)
TWO = Constant(2.0)


# Export main classes
__all__ = [
    "VARIABLES",
    "NodeType",
    "SupportedOperation",
    "Expression",
    "Constant",
    "Variable",
    "Operation",
    "ZERO",
    "ONE",
    "NEGATIVE_ONE",
    "TWO",
    "format_number",
]
