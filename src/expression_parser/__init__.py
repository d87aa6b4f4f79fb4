"""Prefix/postfix expression library.

Parses fully parenthesized prefix and postfix arithmetic expressions over the
variables x, y and z into immutable expression trees that can be evaluated
and symbolically differentiated.
"""

from expression_parser.converters.expression_parser import (
    ExpressionLexer,
    PostfixParser,
    PrefixParser,
    parse_postfix,
    parse_prefix,
)
from expression_parser.core.operations import (
    DEFAULT_OPERATION_REGISTRY,
    create_default_operation_registry,
)
from expression_parser.models.ast_schema import (
    VARIABLES,
    Constant,
    Expression,
    NodeType,
    Operation,
    SupportedOperation,
    Variable,
)
from expression_parser.models.parser_models import (
    ExpressionParseResult,
    OperationRegistry,
    ParserError,
    ParsingError,
)

# Version
__version__ = "0.1.0"

# Public API
__all__ = [
    # Parsing
    "parse_prefix",
    "parse_postfix",
    "PrefixParser",
    "PostfixParser",
    "ExpressionLexer",
    "ExpressionParseResult",
    "ParserError",
    "ParsingError",
    # Expression tree
    "Expression",
    "Constant",
    "Variable",
    "Operation",
    "NodeType",
    "VARIABLES",
    # Operations
    "SupportedOperation",
    "OperationRegistry",
    "create_default_operation_registry",
    "DEFAULT_OPERATION_REGISTRY",
    # Version
    "__version__",
]
