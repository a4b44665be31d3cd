"""Unit tests for the expression evaluator."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from logic_engine.errors import (
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    UnboundIdentifier,
    UnknownFunction,
    UnsupportedConstruct,
)
from logic_engine.expression import ExpressionEvaluator, evaluate, extract_dependencies
from logic_engine.expression import functions
from logic_engine.expression.nodes import Binary, Call, Identifier, Literal


def test_arithmetic_precedence() -> None:
    assert evaluate("2 + 3 * 4", {}) == 14
    assert evaluate("(2 + 3) * 4", {}) == 20
    assert evaluate("7 % 3", {}) == 1
    assert evaluate("-x + 10", {"x": 4}) == 6


def test_builtin_functions() -> None:
    assert evaluate("SUM(10, 20, 30)", {}) == 60
    assert evaluate("AVG([2, 4, 6])", {}) == 4
    assert evaluate("MAX(a, b)", {"a": 3, "b": 9}) == 9
    assert evaluate("ABS(-5)", {}) == 5
    assert evaluate("ROUND(2.5)", {}) == 3
    assert evaluate("ROUND(1.005, 2)", {}) == 1.01
    assert evaluate("CONCAT('a', 1, true)", {}) == "a1true"
    assert evaluate("UPPER(name)", {"name": "ada"}) == "ADA"
    assert evaluate("LEN('abc')", {}) == 3
    assert evaluate("CONTAINS('hello', 'ell')", {}) is True
    assert evaluate("IN(status, ['open', 'pending'])", {"status": "open"}) is True
    assert evaluate("REPLACE('a-b', '-', '+')", {}) == "a+b"


def test_if_discount() -> None:
    result = evaluate("IF(quantity > 10, price * 0.9, price)", {"quantity": 15, "price": 100})
    assert result == 90


def test_if_only_evaluates_taken_branch() -> None:
    assert evaluate("IF(true, 1, missing)", {}) == 1
    assert evaluate("IF(false, missing, 2)", {}) == 2


def test_logical_operators_return_operands() -> None:
    assert evaluate("x || 'default'", {"x": ""}) == "default"
    assert evaluate("x && y", {"x": 1, "y": 2}) == 2
    assert evaluate("!flag", {"flag": False}) is True


def test_conditional_and_comparison() -> None:
    assert evaluate("age >= 18 ? 'adult' : 'minor'", {"age": 20}) == "adult"
    assert evaluate("1 == 1.0", {}) is True
    assert evaluate("1 === true", {}) is False
    assert evaluate("'1' !== 1", {}) is True


def test_member_access_reads_mappings_and_sequences() -> None:
    ctx = {
        "user": {"profile": {"name": "Ann"}},
        "items": [{"price": 5}, {"price": 7}],
        "key": "profile",
    }
    assert evaluate("user.profile.name", ctx) == "Ann"
    assert evaluate("user[key].name", ctx) == "Ann"
    assert evaluate("items[1].price", ctx) == 7
    assert evaluate("items.length", ctx) == 2
    assert evaluate("user.missing", ctx) is None
    assert evaluate("items[5]", ctx) is None


def test_member_access_never_reads_host_attributes() -> None:
    with pytest.raises(UnsupportedConstruct):
        evaluate("obj.__class__", {"obj": object()})


def test_method_calls_are_rejected() -> None:
    with pytest.raises(UnsupportedConstruct):
        evaluate("name.upper()", {"name": "a"})


def test_unbound_identifier() -> None:
    with pytest.raises(UnboundIdentifier) as excinfo:
        evaluate("price * missing", {"price": 1})
    assert excinfo.value.name == "missing"
    assert excinfo.value.expression == "price * missing"


def test_unknown_function() -> None:
    with pytest.raises(UnknownFunction) as excinfo:
        evaluate("EVAL('1')", {})
    assert excinfo.value.name == "EVAL"


def test_syntax_error_reports_position() -> None:
    with pytest.raises(ExpressionSyntaxError) as excinfo:
        evaluate("2 +", {})
    assert excinfo.value.position == 3
    assert excinfo.value.to_json()["position"] == 3

    with pytest.raises(ExpressionSyntaxError):
        evaluate("a ; b", {"a": 1, "b": 2})


def test_runtime_errors_propagate() -> None:
    with pytest.raises(ExpressionEvaluationError):
        evaluate("1 / 0", {})
    with pytest.raises(ExpressionEvaluationError):
        evaluate("'a' - 1", {})


def test_extract_dependencies() -> None:
    deps = extract_dependencies("a + b.c + f[d] + SUM(e, 1)")
    assert deps == {"a", "b", "f", "d", "e"}
    assert extract_dependencies("SUM(price)") == {"price"}
    assert extract_dependencies("42") == set()


def test_parse_produces_ast_and_caches(evaluator: ExpressionEvaluator) -> None:
    node = evaluator.parse("price * 2")
    assert node == Binary("*", Identifier("price"), Literal(2))
    assert evaluator.parse("price * 2") is node

    call = evaluator.parse("SUM(1)")
    assert isinstance(call, Call)

    evaluator.clear_cache()
    assert evaluator.parse("price * 2") is not node


def test_cached_ast_uses_fresh_context(evaluator: ExpressionEvaluator) -> None:
    assert evaluator.evaluate("a + 1", {"a": 1}) == 2
    assert evaluator.evaluate("a + 1", {"a": 10}) == 11


def test_validate(evaluator: ExpressionEvaluator) -> None:
    assert evaluator.validate("SUM(a, b)")
    assert not evaluator.validate("FOO(1)")
    assert not evaluator.validate("1 +")


def test_evaluate_precise_and_condition(evaluator: ExpressionEvaluator) -> None:
    assert evaluator.evaluate_precise("price * 3", {"price": 10}) == Decimal("30")
    assert evaluator.evaluate_condition("count", {"count": 0}) is False

    with pytest.raises(ExpressionEvaluationError):
        evaluator.evaluate_precise("'abc'", {})


def test_custom_function_table() -> None:
    evaluator = ExpressionEvaluator({"DOUBLE": lambda x: x * 2})
    assert evaluator.evaluate("DOUBLE(4)", {}) == 8
    with pytest.raises(UnknownFunction):
        evaluator.evaluate("SUM(1)", {})


def test_plus_adds_numbers_or_joins_strings() -> None:
    assert evaluate("1.5 + 2", {}) == 3.5
    assert evaluate("first + ' ' + last", {"first": "Ada", "last": "Lovelace"}) == "Ada Lovelace"


@pytest.mark.parametrize(
    ("expression", "ctx"),
    [
        ("label * 3", {"label": "ab"}),
        ("label * 100000000000", {"label": "ab"}),
        ("[1, 2] + [3]", {}),
        ("'a' + 1", {}),
        ("true + 1", {}),
        ("null * 2", {}),
        ("items - 1", {"items": [1]}),
        ("10 / flag", {"flag": True}),
        ("-flag", {"flag": True}),
    ],
)
def test_arithmetic_rejects_mismatched_operands(expression: str, ctx: dict[str, object]) -> None:
    with pytest.raises(ExpressionEvaluationError):
        evaluate(expression, ctx)


def test_unhashable_member_key_is_an_evaluation_error() -> None:
    with pytest.raises(ExpressionEvaluationError):
        evaluate("obj[key]", {"obj": {"a": 1}, "key": ["a"]})


def test_deeply_nested_expressions_are_rejected(evaluator: ExpressionEvaluator) -> None:
    nested = "(" * 3000 + "1" + ")" * 3000
    chained = "1" + " + 1" * 3000
    negated = "-" * 3000 + "1"

    for expression in (nested, chained, negated):
        with pytest.raises(ExpressionSyntaxError):
            evaluator.parse(expression)
        assert not evaluator.validate(expression)

    assert evaluator.evaluate("(" * 20 + "1" + ")" * 20) == 1


def test_today_is_the_utc_date(monkeypatch: pytest.MonkeyPatch) -> None:
    class LateEvening(datetime):
        @classmethod
        def now(cls, tz=None):  # type: ignore[no-untyped-def, override]
            moment = datetime(2026, 3, 1, 23, 30, tzinfo=UTC)
            return moment if tz is None else moment.astimezone(tz)

    monkeypatch.setattr(functions, "datetime", LateEvening)

    assert evaluate("TODAY()", {}) == "2026-03-01"
