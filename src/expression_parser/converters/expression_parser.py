"""
Prefix and postfix expression parsers.
Handles tokenization, recursive descent parsing and position-aware error reporting.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from ..core.operations import DEFAULT_OPERATION_REGISTRY
from ..models.ast_schema import (
    VARIABLES,
    Constant,
    Expression,
    Operation,
    SupportedOperation,
    Variable,
)
from ..models.parser_models import (
    ExpressionParseResult,
    OperationRegistry,
    ParserError,
    ParseStatistics,
    ParsingError,
    Token,
    TokenType,
)

logger = logging.getLogger(__name__)

# Decimal or exponential notation: 1, -2.5, .5, 3., 1e-3, plus inf / -Infinity
NUMBER_PATTERN = re.compile(
    r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?|inf(?:inity)?)", re.IGNORECASE
)


class ExpressionLexer:
    """Tokenizer shared by the prefix and postfix parsers."""

    # Token patterns (order matters!)
    TOKEN_PATTERNS = [
        (r"\(", TokenType.LEFT_PAREN),
        (r"\)", TokenType.RIGHT_PAREN),
        (r"[^\s()]+", TokenType.SYMBOL),
    ]

    def __init__(self):
        # Compile patterns for performance
        self.compiled_patterns = [
            (re.compile(pattern), token_type)
            for pattern, token_type in self.TOKEN_PATTERNS
        ]

    def tokenize(self, expression: str) -> List[Token]:
        """Split ``expression`` into position-tagged tokens followed by EOF."""
        tokens = []
        position = 0

        while position < len(expression):
            # Skip whitespace
            if expression[position].isspace():
                position += 1
                continue

            for pattern, token_type in self.compiled_patterns:
                match = pattern.match(expression, position)
                if match:
                    tokens.append(
                        Token(
                            type=token_type,
                            value=match.group(0),
                            position=position + 1,
                        )
                    )
                    position = match.end()
                    break

        # Add EOF token
        tokens.append(Token(type=TokenType.EOF, value="", position=len(expression) + 1))

        return tokens


class BaseExpressionParser(ABC):
    """Recursive descent parser skeleton shared by both notations."""

    # Characters of source shown on each side of an error position
    CONTEXT_WIDTH = 20

    notation = ""

    def __init__(self, operation_registry: Optional[OperationRegistry] = None):
        self.lexer = ExpressionLexer()
        if operation_registry is None:
            operation_registry = DEFAULT_OPERATION_REGISTRY
        self.operation_registry = operation_registry
        self.expression = ""
        self.tokens: List[Token] = []
        self.current = 0

    def parse_text(self, expression: str) -> ExpressionParseResult:
        """Parse ``expression`` and return the result instead of raising."""
        start_time = time.perf_counter()
        original = expression if isinstance(expression, str) else None
        try:
            self.reset(expression)
            logger.debug(f"Parsing {self.notation} expression: {expression}")
            root = self.parse_expression()
        except ParsingError as e:
            logger.warning(f"Failed to parse {self.notation} expression {expression!r}: {e}")
            return ExpressionParseResult(
                success=False,
                notation=self.notation,
                original_expression=original,
                error=e.error,
                error_message=str(e),
                statistics=ParseStatistics(
                    tokens_count=max(0, len(self.tokens) - 1),
                    parse_time_ms=(time.perf_counter() - start_time) * 1000,
                ),
            )

        return ExpressionParseResult(
            success=True,
            notation=self.notation,
            original_expression=original,
            expression=root,
            statistics=ParseStatistics(
                tokens_count=len(self.tokens) - 1,  # Exclude EOF
                ast_nodes_count=self._count_nodes(root),
                depth=self._calculate_depth(root),
                parse_time_ms=(time.perf_counter() - start_time) * 1000,
            ),
        )

    def reset(self, expression: str):
        """Tokenize a new input and rewind to its first token."""
        self.expression = ""
        self.tokens = []
        self.current = 0

        if not isinstance(expression, str):
            raise ParsingError(
                ParserError(
                    message="The expression must be a string, got "
                    f"{type(expression).__name__}",
                    position=0,
                )
            )

        self.expression = expression
        self.tokens = self.lexer.tokenize(expression)

        if self.is_at_end():
            raise self.error("The expression is empty")

    def parse_expression(self) -> Expression:
        """Parse one complete expression spanning the whole input."""
        result = self.parse()

        if not self.is_at_end():
            raise self.error("End of expression expected")

        return result

    def parse(self) -> Expression:
        """Parse a parenthesized operation, a variable or a number."""
        if self.take("("):
            return self.parse_operation()

        token = self.peek()

        if token.type == TokenType.SYMBOL and token.value in VARIABLES:
            self.advance()
            return Variable(token.value)

        if token.type == TokenType.SYMBOL and NUMBER_PATTERN.fullmatch(token.value):
            self.advance()
            return Constant(float(token.value))

        if self.is_at_end():
            raise self.error("Unexpected end of expression")
        raise self.error(f"Unexpected token: '{token.value}'")

    @abstractmethod
    def parse_operation(self) -> Operation:
        """Parse the rest of an operation after its opening parenthesis."""
        pass

    # Helper methods
    def take(self, expected: str) -> bool:
        """Consume the current token if its text is ``expected``."""
        if not self.is_at_end() and self.peek().value == expected:
            self.advance()
            return True
        return False

    def check(self, expected: str) -> bool:
        """Check if current token text is ``expected``."""
        return not self.is_at_end() and self.peek().value == expected

    def advance(self) -> Token:
        """Consume and return current token."""
        token = self.peek()
        if not self.is_at_end():
            self.current += 1
        return token

    def is_at_end(self) -> bool:
        """Check if we've reached the end."""
        return self.peek().type == TokenType.EOF

    def peek(self) -> Token:
        """Return current token without consuming it."""
        return self.tokens[self.current]

    def peek_next(self) -> Token:
        """Return the token after the current one (EOF at the end)."""
        return self.tokens[min(self.current + 1, len(self.tokens) - 1)]

    def lookup_operation(self, token: Token) -> Optional[SupportedOperation]:
        """Registered operation named by ``token``, if any."""
        if token.type != TokenType.SYMBOL:
            return None
        return self.operation_registry.get_operation(token.value)

    def error(self, message: str, token: Optional[Token] = None) -> ParsingError:
        """Build a ParsingError pointing at ``token`` (default: current token)."""
        token = token or self.peek()
        return ParsingError(
            ParserError.from_source(
                self.expression,
                token.position,
                message,
                token_value=token.value,
                context_width=self.CONTEXT_WIDTH,
            )
        )

    # Analysis methods
    def _count_nodes(self, node: Expression) -> int:
        """Count total nodes in the tree."""
        if isinstance(node, Operation):
            return 1 + sum(self._count_nodes(operand) for operand in node.operands)
        return 1

    def _calculate_depth(self, node: Expression) -> int:
        """Calculate maximum depth of the tree."""
        if isinstance(node, Operation) and node.operands:
            return 1 + max(self._calculate_depth(operand) for operand in node.operands)
        return 1


class PrefixParser(BaseExpressionParser):
    """Parser for ``(<op> <operand> ...)`` notation."""

    notation = "prefix"

    def parse_operation(self) -> Operation:
        token = self.peek()
        operation = self.lookup_operation(token)
        if operation is None:
            raise self.error("Operation expected")
        self.advance()

        operands: List[Expression] = []
        while (
            not self.is_at_end()
            and not self.check(")")
            and (operation.arity is None or len(operands) < operation.arity)
        ):
            operands.append(self.parse())

        if operation.arity is not None and len(operands) < operation.arity:
            raise self.error(
                f"Another operand for '{operation.sign}' expected "
                f"(expected {operation.arity} operands, got {len(operands)})"
            )
        if not self.take(")"):
            raise self.error("')' expected")

        return operation.create(*operands)


class PostfixParser(BaseExpressionParser):
    """Parser for ``(<operand> ... <op>)`` notation.

    The token right before the closing parenthesis of a group is its
    operation. Any other registered sign met inside the group is applied
    to the operands collected so far, so ``(x 2 y * +)`` reads as
    ``(x (2 y *) +)``.
    """

    notation = "postfix"

    def parse_operation(self) -> Operation:
        operands: List[Expression] = []

        while not self.is_at_end() and self.peek_next().value != ")":
            inline = self.lookup_operation(self.peek())
            if inline is not None:
                operands = self._apply_inline(inline, operands)
            else:
                operands.append(self.parse())

        if self.is_at_end():
            raise self.error("')' expected")

        token = self.peek()
        operation = self.lookup_operation(token)
        if operation is None:
            raise self.error("Operation expected")
        if not operation.accepts(len(operands)):
            raise self.error(
                f"Invalid number of operands for '{operation.sign}': "
                f"expected {operation.arity}, got {len(operands)}"
            )
        self.advance()
        if not self.take(")"):
            raise self.error("')' expected")

        return operation.create(*operands)

    def _apply_inline(
        self, operation: SupportedOperation, operands: List[Expression]
    ) -> List[Expression]:
        """Apply an unparenthesized operation to the trailing operands."""
        arity = len(operands) if operation.arity is None else operation.arity
        if len(operands) < arity:
            raise self.error(
                f"Invalid number of operands for '{operation.sign}': "
                f"expected {arity}, got {len(operands)}"
            )
        self.advance()
        split = len(operands) - arity
        return operands[:split] + [operation.create(*operands[split:])]


def parse_prefix(expression: str) -> ExpressionParseResult:
    """Parse an expression written in prefix notation."""
    return PrefixParser().parse_text(expression)


def parse_postfix(expression: str) -> ExpressionParseResult:
    """Parse an expression written in postfix notation."""
    return PostfixParser().parse_text(expression)


__all__ = [
    "ExpressionLexer",
    "BaseExpressionParser",
    "PrefixParser",
    "PostfixParser",
    "parse_prefix",
    "parse_postfix",
]
