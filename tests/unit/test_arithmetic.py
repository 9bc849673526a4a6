import pytest

from grounded_qa.agent.arithmetic import evaluate
from grounded_qa.errors import ArithmeticExpressionError


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("25 + 75 / 3", 50.0),
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("10 - 4 - 3", 3),
        ("-3 + 5", 2),
        ("2 * -(1 + 1)", -4),
        ("1.5 * 2", 3.0),
        (".5 + .25", 0.75),
        ("  7  ", 7),
    ],
)
def test_evaluate(expression: str, expected: float) -> None:
    assert evaluate(expression) == expected


def test_division_produces_float_text() -> None:
    assert str(evaluate("25 + 75 / 3")) == "50.0"
    assert str(evaluate("2 + 3")) == "5"


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "2 +",
        "(1 + 2",
        "1 + 2)",
        "2 ** 3",
        "__import__('os')",
        "abs(-1)",
        "1e3",
        "3 4",
    ],
)
def test_rejects_invalid_expressions(expression: str) -> None:
    with pytest.raises(ArithmeticExpressionError):
        evaluate(expression)


def test_division_by_zero() -> None:
    with pytest.raises(ArithmeticExpressionError, match="Division by zero"):
        evaluate("1 / (2 - 2)")
