"""Recursive-descent evaluator for `+ - * / ( )` arithmetic.

Grammar::

    expression := term (("+" | "-") term)*
    term       := factor (("*" | "/") factor)*
    factor     := ("+" | "-") factor | NUMBER | "(" expression ")"

Only numerals, the four operators and parentheses are accepted. Integer
operands stay integers until a division is performed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from grounded_qa.errors import ArithmeticExpressionError

Number = int | float

_TOKEN_PATTERN = re.compile(r"\s*(?:(?P<number>\d+\.\d*|\.\d+|\d+)|(?P<op>[-+*/()]))")


@dataclass(slots=True, frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    length = len(expression.rstrip())
    while position < length:
        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            raise ArithmeticExpressionError(
                f"Unexpected character {expression[position:].strip()[:1]!r} "
                f"at position {position}"
            )
        kind = "number" if match.group("number") is not None else "op"
        tokens.append(_Token(kind=kind, text=match.group(kind), position=match.start(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._index = 0

    def parse(self) -> Number:
        if not self._tokens:
            raise ArithmeticExpressionError("Expression is empty")
        value = self._expression()
        if self._index != len(self._tokens):
            token = self._tokens[self._index]
            raise ArithmeticExpressionError(
                f"Unexpected token {token.text!r} at position {token.position}"
            )
        return value

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _expression(self) -> Number:
        value = self._term()
        while (token := self._peek()) is not None and token.text in {"+", "-"}:
            self._advance()
            right = self._term()
            value = value + right if token.text == "+" else value - right
        return value

    def _term(self) -> Number:
        value = self._factor()
        while (token := self._peek()) is not None and token.text in {"*", "/"}:
            self._advance()
            right = self._factor()
            if token.text == "*":
                value = value * right
            else:
                if right == 0:
                    raise ArithmeticExpressionError("Division by zero")
                value = value / right
        return value

    def _factor(self) -> Number:
        token = self._peek()
        if token is None:
            raise ArithmeticExpressionError("Unexpected end of expression")
        if token.text in {"+", "-"}:
            self._advance()
            operand = self._factor()
            return operand if token.text == "+" else -operand
        if token.kind == "number":
            self._advance()
            return float(token.text) if "." in token.text else int(token.text)
        if token.text == "(":
            self._advance()
            value = self._expression()
            closing = self._peek()
            if closing is None or closing.text != ")":
                raise ArithmeticExpressionError(
                    f"Missing closing parenthesis for '(' at position {token.position}"
                )
            self._advance()
            return value
        raise ArithmeticExpressionError(
            f"Unexpected token {token.text!r} at position {token.position}"
        )


def evaluate(expression: str) -> Number:
    """Evaluate an arithmetic expression, e.g. `evaluate("25 + 75 / 3") == 50.0`."""

    return _Parser(tokenize(expression)).parse()
