"""Pratt parser for integer arithmetic, traced one span per parse step.

Grammar: integers, ``+ - * /`` and parentheses, tokens separated by
whitespace (``"10 + 13 - 23 / ( 103 - 10 ) + 1"``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Union

from callspan.core.errors import CallspanError
from callspan.tracing.tracer import Tracer


class ParseError(CallspanError):
    """Malformed expression."""


class Precedence(IntEnum):
    LOWEST = 0
    SUM = 1
    PRODUCT = 2


@dataclass(frozen=True)
class Token:
    kind: str  # "num", "(", ")", "+", "-", "*", "/"
    value: int | None = None

    @classmethod
    def from_text(cls, text: str) -> Token:
        if text in ("(", ")", "+", "-", "*", "/"):
            return cls(text)
        try:
            return cls("num", int(text))
        except ValueError:
            raise ParseError(f"unexpected token: {text!r}") from None

    @property
    def precedence(self) -> Precedence:
        if self.kind in ("+", "-"):
            return Precedence.SUM
        if self.kind in ("*", "/"):
            return Precedence.PRODUCT
        return Precedence.LOWEST

    def __str__(self) -> str:
        return str(self.value) if self.kind == "num" else self.kind


@dataclass(frozen=True)
class Infix:
    left: Expression
    operator: str
    right: Expression


Expression = Union[int, Infix]


def tokenize(text: str) -> list[Token]:
    return [Token.from_text(part) for part in text.split()]


class ExpressionParser:
    """Top-down operator-precedence parser."""

    def __init__(self, tokens: list[Token], tracer: Tracer) -> None:
        self._tokens: Iterator[Token] = iter(tokens)
        self._tracer = tracer
        self.current: Token | None = next(self._tokens, None)
        self.peek: Token | None = next(self._tokens, None)

    def parse(self) -> Expression:
        expr = self.parse_expression(Precedence.LOWEST)
        if self.peek is not None:
            raise ParseError(f"trailing input at `{self.peek}`")
        return expr

    def parse_expression(self, precedence: Precedence) -> Expression:
        with self._tracer.span("parse_expression: current=`{}`", self.current):
            tok = self.current
            if tok is None:
                raise ParseError("unexpected end of input")
            if tok.kind == "num":
                left: Expression = tok.value
            elif tok.kind == "(":
                left = self.parse_grouped_expression()
            else:
                raise ParseError(f"unexpected token: `{tok}`")

            while self.peek is not None and precedence < self.peek.precedence:
                self.advance_tokens()
                left = self.parse_infix_expression(left)
            return left

    def parse_grouped_expression(self) -> Expression:
        with self._tracer.span("parse_grouped_expression: current=`{}`", self.current):
            self.advance_tokens()
            expr = self.parse_expression(Precedence.LOWEST)
            if self.peek is None or self.peek.kind != ")":
                raise ParseError("missing `)`")
            self.advance_tokens()
            return expr

    def parse_infix_expression(self, left: Expression) -> Expression:
        with self._tracer.span("parse_infix_expression: current=`{}`", self.current):
            operator = self.current
            self.advance_tokens()
            right = self.parse_expression(operator.precedence)
            return Infix(left, operator.kind, right)

    def advance_tokens(self) -> None:
        with self._tracer.span("advance_tokens: current=`{}`", self.current):
            self.current, self.peek = self.peek, next(self._tokens, None)


def evaluate(expr: Expression) -> float:
    if isinstance(expr, int):
        return expr
    left, right = evaluate(expr.left), evaluate(expr.right)
    if expr.operator == "+":
        return left + right
    if expr.operator == "-":
        return left - right
    if expr.operator == "*":
        return left * right
    if right == 0:
        raise ParseError("division by zero")
    return left / right


def parse(text: str, tracer: Tracer) -> Expression:
    """Tokenize and parse *text*, tracing every step through *tracer*."""
    return ExpressionParser(tokenize(text), tracer).parse()
