"""
Tests for symbolic differentiation.

Derivatives are checked against closed forms, the sum and product rules and
central finite differences.
"""

import math

import pytest

from expression_parser.converters.expression_parser import parse_prefix
from expression_parser.core.operations import (
    DEFAULT_OPERATION_REGISTRY,
    add,
    chain_rule,
    distance,
    log_sum_exp,
    multiply,
    sum_of_exponentials,
)
from expression_parser.models.ast_schema import ZERO, Operation, Variable

POINTS = [
    (0.5, 1.5, 2.0),
    (1.2, -0.7, 0.3),
    (-2.0, 0.25, 1.75),
    (3.0, 4.0, -1.0),
]

# Differentiable at every point in POINTS
EXPRESSIONS = [
    "(+ x (* 2 y))",
    "(- (* x y) (/ z x))",
    "(negate (* x (* y z)))",
    "(/ (+ x 1) (+ (* y y) 1))",
    "(sumsq3 x (* 2 y) (- z x))",
    "(distance2 x y)",
    "(distance3 (+ x 1) y (* z z))",
    "(sumexp x (* 2 y) z)",
    "(lse x y z)",
    "(lse (* x y) (negate z))",
    "(/ (lse x y) (distance3 x y (+ z 5)))",
    "(sumsq2 (sumexp x y) (lse z))",
]


def parse(text):
    result = parse_prefix(text)
    assert result.success, result.error_message
    return result.expression


def central_difference(expr, point, axis, h=1e-6):
    forward = list(point)
    backward = list(point)
    forward[axis] += h
    backward[axis] -= h
    return (expr.evaluate(*forward) - expr.evaluate(*backward)) / (2 * h)


class TestClosedForms:
    def test_product_of_variables(self):
        expr = parse("(* x y)")

        assert expr.diff("x").evaluate(2, 3, 5) == 3
        assert expr.diff("y").evaluate(2, 3, 5) == 2
        assert expr.diff("z").evaluate(2, 3, 5) == 0

    def test_quotient(self):
        expr = parse("(/ x y)")

        assert expr.diff("x").evaluate(3, 2, 0) == pytest.approx(0.5)
        assert expr.diff("y").evaluate(3, 2, 0) == pytest.approx(-0.75)

    def test_negate(self):
        assert parse("(negate x)").diff("x").evaluate(9, 9, 9) == -1

    def test_sum_of_squares(self):
        expr = parse("(sumsq2 x y)")
        assert expr.diff("x").evaluate(3, 4, 0) == 6

    def test_distance(self):
        expr = parse("(distance2 x y)")

        assert expr.diff("x").evaluate(3, 4, 0) == pytest.approx(0.6)
        assert expr.diff("y").evaluate(3, 4, 0) == pytest.approx(0.8)

    def test_sum_of_exponentials(self):
        expr = parse("(sumexp x y x)")
        assert expr.diff("x").evaluate(1, 0, 0) == pytest.approx(2 * math.e)

    def test_log_sum_exp(self):
        expr = parse("(lse x y)")
        expected = math.exp(1) / (math.exp(1) + math.exp(2))

        assert expr.diff("x").evaluate(1, 2, 0) == pytest.approx(expected)

    def test_constant_subtree(self):
        expr = parse("(* 3 (+ 4 5))")
        assert expr.diff("x").evaluate(1, 1, 1) == 0

    def test_empty_variadic(self):
        assert parse("(sumexp)").diff("x") is ZERO
        # 0 / sumexp() = 0 / 0
        assert math.isnan(parse("(lse)").diff("x").evaluate(0, 0, 0))


class TestDerivativeShapes:
    def test_distance_uses_sum_of_squares_over_twice_itself(self):
        node = distance(Variable("x"), Variable("y"))
        derivative = node.diff("x")

        assert derivative.sign == "/"
        denominator = derivative.operands[1]
        assert denominator.sign == "*"
        assert denominator.operands[1] is node

    def test_log_sum_exp_divides_by_fresh_sum(self):
        node = log_sum_exp(Variable("x"), Variable("y"))
        derivative = node.diff("x")

        assert derivative.sign == "/"
        denominator = derivative.operands[1]
        assert denominator.sign == "sumexp"
        assert denominator.operands == node.operands
        assert denominator is not node

    def test_sum_of_exponentials_partials_are_single_operand_sums(self):
        node = sum_of_exponentials(Variable("x"), Variable("y"))
        partials = node.partials()

        assert [p.sign for p in partials] == ["sumexp", "sumexp"]
        assert [len(p.operands) for p in partials] == [1, 1]

    def test_chain_rule_sums_left_to_right(self):
        node = parse("(sumsq3 x y z)")
        derivative = chain_rule(node, "x")

        # ((t0 + t1) + t2)
        assert derivative.sign == "+"
        assert derivative.operands[0].sign == "+"
        assert derivative.operands[1].sign == "*"


class TestGenericRule:
    """The chain rule applies to every operation, closed forms included."""

    @pytest.mark.parametrize("sign", DEFAULT_OPERATION_REGISTRY.signs())
    def test_every_operation_differentiates(self, sign):
        operation = DEFAULT_OPERATION_REGISTRY.get_operation(sign)

        assert operation.partials is not None
        assert operation.derivative is not None

    @pytest.mark.parametrize("sign", ["+", "/", "negate", "sumsq3", "sumexp"])
    def test_generic_operations_use_chain_rule(self, sign):
        assert DEFAULT_OPERATION_REGISTRY.get_operation(sign).derivative is chain_rule

    @pytest.mark.parametrize(
        "text",
        [
            "(distance2 x y)",
            "(distance3 (+ x 1) y (* z z))",
            "(lse x y z)",
            "(lse (* x y) (negate z))",
        ],
    )
    @pytest.mark.parametrize("variable", ["x", "y", "z"])
    def test_chain_rule_agrees_with_closed_forms(self, text, variable):
        expr = parse(text)
        generic = chain_rule(expr, variable)
        closed = expr.diff(variable)

        for point in POINTS:
            assert generic.evaluate(*point) == pytest.approx(closed.evaluate(*point))

    def test_distance_partials(self):
        node = distance(Variable("x"), Variable("y"))
        partials = node.partials()

        assert [p.evaluate(3, 4, 0) for p in partials] == pytest.approx([0.6, 0.8])

    def test_log_sum_exp_partials_are_softmax(self):
        node = log_sum_exp(Variable("x"), Variable("y"))
        weights = [p.evaluate(1, 2, 0) for p in node.partials()]

        assert sum(weights) == pytest.approx(1)
        assert weights[0] == pytest.approx(1 / (1 + math.e))


class TestMemoization:
    def test_same_tree_on_repeated_calls(self):
        expr = parse("(+ (* x y) (lse x z))")
        first = expr.diff("x")

        assert expr.diff("x") is first
        assert expr.diff("x") is first

    def test_repeated_calls_do_not_drift(self):
        expr = parse("(distance3 x (* y x) z)")
        point = (1.0, 2.0, 3.0)

        values = [expr.diff("y").evaluate(*point) for _ in range(3)]
        assert values[0] == values[1] == values[2]

    def test_cache_is_per_variable(self):
        expr = parse("(* x y)")
        assert expr.diff("x") is not expr.diff("y")

    def test_cache_is_per_instance(self):
        first = parse("(+ x (* x y))")
        second = parse("(+ x (* x y))")

        assert first.diff("x") is not second.diff("x")
        assert first.diff("x").evaluate(1, 2, 3) == second.diff("x").evaluate(1, 2, 3)

    def test_operand_derivatives_are_shared(self):
        inner = multiply(Variable("x"), Variable("y"))
        outer = add(inner, inner)
        derivative = outer.diff("x")

        # Both chain-rule terms reuse the cached derivative of ``inner``
        assert derivative.operands[0].operands[1] is inner.diff("x")
        assert derivative.operands[1].operands[1] is inner.diff("x")

    def test_deep_nesting_stays_linear(self):
        """Without memoization this would need 2**40 operand derivatives."""
        node = Variable("x")
        for _ in range(40):
            node = multiply(node, node)

        derivative = node.diff("x")
        assert isinstance(derivative, Operation)
        assert node.diff("x") is derivative


class TestProperties:
    @pytest.mark.parametrize("text", EXPRESSIONS)
    @pytest.mark.parametrize("axis", [0, 1, 2])
    def test_matches_finite_differences(self, text, axis):
        expr = parse(text)
        derivative = expr.diff("xyz"[axis])

        for point in POINTS:
            expected = central_difference(expr, point, axis)
            assert derivative.evaluate(*point) == pytest.approx(
                expected, rel=1e-5, abs=1e-6
            )

    @pytest.mark.parametrize(
        ("a", "b"),
        [("(* x y)", "(/ z x)"), ("(lse x y)", "(distance2 y z)")],
    )
    def test_linearity(self, a, b):
        left, right = parse(a), parse(b)
        total = add(left, right)

        for variable in "xyz":
            for point in POINTS:
                assert total.diff(variable).evaluate(*point) == pytest.approx(
                    left.diff(variable).evaluate(*point)
                    + right.diff(variable).evaluate(*point)
                )

    @pytest.mark.parametrize(
        ("a", "b"),
        [("(+ x y)", "(- z x)"), ("(sumexp x)", "(sumsq2 y z)")],
    )
    def test_product_rule(self, a, b):
        left, right = parse(a), parse(b)
        product = multiply(left, right)

        for variable in "xyz":
            for point in POINTS:
                expected = left.diff(variable).evaluate(*point) * right.evaluate(
                    *point
                ) + left.evaluate(*point) * right.diff(variable).evaluate(*point)
                assert product.diff(variable).evaluate(*point) == pytest.approx(expected)
