"""
Pydantic models for tokenization, parse results and the operation registry.
Separated from parser logic for better organization.
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .ast_schema import Expression, Operation, SupportedOperation


class TokenType(Enum):
    """Token types for lexical analysis."""

    LEFT_PAREN = "LEFT_PAREN"  # (
    RIGHT_PAREN = "RIGHT_PAREN"  # )
    SYMBOL = "SYMBOL"  # numbers, variables and operation signs alike

    # Special
    EOF = "EOF"


class Token(BaseModel):
    """Token with type, value, and 1-based position of its first character."""

    type: TokenType
    value: str
    position: int


class ParserError(BaseModel):
    """Structured error information from parser."""

    message: str
    position: int
    token_value: Optional[str] = None
    context_before: str = ""
    context_after: str = ""

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "message": "')' expected",
                    "position": 7,
                    "token_value": "",
                    "context_before": "(+ x 1",
                    "context_after": "",
                }
            ]
        }
    )

    @classmethod
    def from_source(
        cls,
        source: str,
        position: int,
        message: str,
        token_value: Optional[str] = None,
        context_width: int = 20,
    ) -> "ParserError":
        """Create an error with a window of source text around ``position``."""
        offset = max(0, position - 1)
        return cls(
            message=message,
            position=position,
            token_value=token_value,
            context_before=source[max(0, offset - context_width) : offset],
            context_after=source[offset : offset + context_width],
        )

    def format(self) -> str:
        return f"{self.position}: {self.message} {self.context_before} HERE -->{self.context_after}"

    def __str__(self) -> str:
        return self.format()


class ParsingError(Exception):
    """Raised when an expression cannot be parsed."""

    def __init__(self, error: ParserError):
        super().__init__(error.format())
        self.error = error


class ParseStatistics(BaseModel):
    """Statistics about the parsing process."""

    tokens_count: int = 0
    ast_nodes_count: int = 0
    depth: int = 0
    parse_time_ms: float = 0.0


class ExpressionParseResult(BaseModel):
    """Result of parsing a prefix or postfix expression."""

    success: bool
    notation: str  # "prefix" or "postfix"
    original_expression: Optional[str] = None

    # Success case
    expression: Optional[Expression] = None

    # Error case
    error: Optional[ParserError] = None
    error_message: Optional[str] = None

    # Metadata
    statistics: ParseStatistics = Field(default_factory=ParseStatistics)

    def unwrap(self) -> Expression:
        """Return the parsed expression or raise the parse error."""
        if not self.success:
            raise ParsingError(self.error)
        return self.expression


class OperationRegistry(BaseModel):
    """Central registry of all operations the parsers recognise."""

    operations: Dict[str, SupportedOperation] = Field(default_factory=dict)
    categories: List[str] = Field(default_factory=list)

    def add_operation(self, operation: SupportedOperation):
        """Add an operation to the registry."""
        self.operations[operation.sign] = operation
        if operation.category not in self.categories:
            self.categories.append(operation.category)

    def get_operation(self, sign: str) -> Optional[SupportedOperation]:
        """Get operation info by sign."""
        return self.operations.get(sign)

    def is_supported(self, sign: str) -> bool:
        """Check if operation is supported."""
        return sign in self.operations

    def get_arity(self, sign: str) -> Optional[int]:
        """Get operation arity, ``None`` when unbounded."""
        if sign not in self.operations:
            raise KeyError(f"Unknown operation: {sign}")
        return self.operations[sign].arity

    def signs(self) -> List[str]:
        """All registered signs in registration order."""
        return list(self.operations)

    def get_by_category(self, category: str) -> List[SupportedOperation]:
        """Get all operations in a category."""
        return [op for op in self.operations.values() if op.category == category]

    def build(self, sign: str, operands: Sequence[Expression]) -> Operation:
        """Construct an operation node. The operand count is not validated."""
        operation = self.operations.get(sign)
        if operation is None:
            raise KeyError(f"Unknown operation: {sign}")
        return operation.create(*operands)


# Export all models
__all__ = [
    "TokenType",
    "Token",
    "ParserError",
    "ParsingError",
    "ParseStatistics",
    "ExpressionParseResult",
    "OperationRegistry",
]
