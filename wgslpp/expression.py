# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes that define:
- Nodes of a constant expression tree
- A parser turning macro-expanded tokens into a tree
- An evaluator reducing a tree to a number
"""
from __future__ import annotations

import collections
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from wgslpp import lexer
from wgslpp.errors import EvaluationError, ParseError, Position
from wgslpp.lexer import TokenKind
from wgslpp.parser import Parser

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """
    Base class for all expression nodes.
    """

    position: Position | None = field(
        default=None,
        kw_only=True,
        compare=False,
    )


@dataclass(frozen=True)
class NumberLiteral(Node):
    value: float


@dataclass(frozen=True)
class StringLiteral(Node):
    value: str


@dataclass(frozen=True)
class Identifier(Node):
    """
    A name left over after macro expansion. Accepted by the parser, but
    there is nothing to evaluate it against.
    """

    name: str


@dataclass(frozen=True)
class UnaryExpression(Node):
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryExpression(Node):
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class ConditionalExpression(Node):
    condition: Node
    when_true: Node
    when_false: Node


@dataclass(frozen=True)
class ErrorNode(Node):
    """
    Placeholder for a sub-expression that could not be parsed.
    """


def literal_value(token: lexer.Token) -> float:
    """
    Convert a WGSL numeric literal to a Python float.

    Raises
    ------
    ValueError
        If the literal cannot be converted.
    """
    text = token.text
    if text[:2] in ["0x", "0X"]:
        return float(int(text[2:].rstrip("iu"), 16))
    if isinstance(token, lexer.FloatLiteral):
        return float(text.rstrip("fh"))
    return float(int(text.rstrip("iu")))


class ExpressionParser(Parser):
    """
    A specialized token parser for recognizing constant expressions.
    Errors are recorded in self.diagnostics and replaced by ErrorNodes.
    """

    # Operator precedence and associativity.
    # Higher numbers bind more tightly.
    OpInfo = collections.namedtuple("OpInfo", ["prec", "assoc"])
    UnaryOperators = {
        "!": OpInfo(14, "RIGHT"),
        "~": OpInfo(14, "RIGHT"),
        "-": OpInfo(14, "RIGHT"),
        "+": OpInfo(14, "RIGHT"),
    }
    BinaryOperators = {
        "*": OpInfo(13, "LEFT"),
        "/": OpInfo(13, "LEFT"),
        "%": OpInfo(13, "LEFT"),
        "+": OpInfo(12, "LEFT"),
        "-": OpInfo(12, "LEFT"),
        "<<": OpInfo(11, "LEFT"),
        ">>": OpInfo(11, "LEFT"),
        "<": OpInfo(10, "LEFT"),
        "<=": OpInfo(10, "LEFT"),
        ">": OpInfo(10, "LEFT"),
        ">=": OpInfo(10, "LEFT"),
        "==": OpInfo(9, "LEFT"),
        "!=": OpInfo(9, "LEFT"),
        "&": OpInfo(8, "LEFT"),
        "^": OpInfo(7, "LEFT"),
        "|": OpInfo(6, "LEFT"),
        "&&": OpInfo(5, "LEFT"),
        "||": OpInfo(4, "LEFT"),
    }
    PrimaryKinds = [
        TokenKind.INTEGER_LITERAL,
        TokenKind.FLOAT_LITERAL,
        TokenKind.IDENTIFIER,
        TokenKind.BRACKET,
        TokenKind.OPERATOR,
    ]

    def __init__(self, tokens: list[lexer.Token]) -> None:
        super().__init__(tokens)
        self.diagnostics: list[ParseError] = []
        # Bound recursion on pathologically nested input.
        self.max_level = 100
        self.level = 0
        self.overflowed = False

    def error(
        self,
        message: str,
        position: Position | None = None,
        expected: list[TokenKind] | None = None,
    ) -> ErrorNode:
        """
        Record a ParseError and return a node to stand in for the
        sub-expression that failed.
        """
        if position is None:
            position = self.position()
        if self.overflowed:
            return ErrorNode(position=position)
        error = ParseError(message, position, expected)
        log.debug(f"{error!s}")
        self.diagnostics.append(error)
        return ErrorNode(position=position)

    def __nested(self, production: Callable[..., Node], *args: Any) -> Node:
        """
        Match a nested production, giving up past the maximum depth.
        Nothing after the point of failure is parsed.
        """
        if self.level >= self.max_level:
            node = self.error(
                "Expression nesting exceeded the maximum depth of "
                + f"{self.max_level}",
            )
            self.overflowed = True
            self.pos = len(self.tokens)
            return node

        self.level += 1
        try:
            return production(*args)
        finally:
            self.level -= 1

    def primary(self) -> Node:
        """
        Match a simple expression.

        <primary> := [<number>|<string>|'('<expression>')'|
                      <unary-op><primary>|<identifier>]
        """
        if self.eol():
            return self.error("Expected expression", None, self.PrimaryKinds)

        token = self.cursor()
        position = token.position

        if isinstance(token, (lexer.IntegerLiteral, lexer.FloatLiteral)):
            self.pos += 1
            try:
                return NumberLiteral(literal_value(token), position=position)
            except ValueError:
                return self.error(
                    f"Invalid numeric literal '{token!s}'",
                    position,
                )

        if isinstance(token, lexer.StringLiteral):
            self.pos += 1
            return StringLiteral(token.text, position=position)

        if self.check(lexer.Bracket, "("):
            self.pos += 1
            expr = self.__nested(self.expression)
            if self.check(lexer.Bracket, ")"):
                self.pos += 1
            else:
                self.error(
                    "Expected ')' after expression starting with '('",
                    expected=[TokenKind.BRACKET],
                )
            return expr

        if (
            isinstance(token, lexer.Operator)
            and token.text in ExpressionParser.UnaryOperators
        ):
            self.pos += 1
            operand = self.__nested(self.primary)
            return UnaryExpression(token.text, operand, position=position)

        if isinstance(token, (lexer.Identifier, lexer.Keyword)):
            self.pos += 1
            return Identifier(token.text, position=position)

        # Skip the offending token so that parsing can continue.
        self.pos += 1
        return self.error(
            f"Unexpected token in primary expression '{token!s}'",
            position,
            self.PrimaryKinds,
        )

    def binary(self, min_precedence: int = 0) -> Node:
        """
        Match a chain of binary operators by precedence climbing.

        <binary> := <primary>[<binary-op><binary>]*
        """
        expr = self.primary()

        # Recursion is terminated based on operator precedence
        while (
            not self.eol()
            and isinstance(self.cursor(), lexer.Operator)
            and self.cursor().text in ExpressionParser.BinaryOperators
            and (
                ExpressionParser.BinaryOperators[self.cursor().text].prec
                >= min_precedence
            )
        ):
            operator = self.cursor()
            self.pos += 1
            (prec, assoc) = ExpressionParser.BinaryOperators[operator.text]

            # Minimum precedence for right-hand side depends on
            # associativity
            if assoc == "LEFT":
                rhs = self.__nested(self.binary, prec + 1)
            else:
                rhs = self.__nested(self.binary, prec)

            expr = BinaryExpression(
                operator.text,
                expr,
                rhs,
                position=expr.position,
            )

        return expr

    def expression(self) -> Node:
        """
        Match a constant expression. The conditional operator is handled
        here rather than in binary() so that it is right-associative.

        <expression> := <binary>['?'<expression>':'<expression>]?
        """
        condition = self.binary()
        if not self.check(lexer.Operator, "?"):
            return condition

        self.pos += 1
        when_true = self.__nested(self.expression)
        if self.check(lexer.Punctuator, ":"):
            self.pos += 1
        else:
            self.error(
                "Expected ':' in conditional expression",
                expected=[TokenKind.PUNCTUATION],
            )
        when_false = self.__nested(self.expression)
        return ConditionalExpression(
            condition,
            when_true,
            when_false,
            position=condition.position,
        )

    def parse(self) -> Node:
        """
        Parse the whole token list as a single expression.
        """
        expr = self.expression()
        if not self.eol():
            self.error(
                f"Unexpected token '{self.cursor()!s}' after expression",
            )
            # Synchronize: nothing after the first error is meaningful.
            self.pos = len(self.tokens)
        return expr


def _to_int32(value: np.floating) -> int:
    """
    Truncate a number to a 32-bit two's complement integer.
    """
    if not np.isfinite(value):
        return 0
    wrapped = int(np.trunc(value)) & 0xFFFFFFFF
    return int(np.array(wrapped, dtype=np.uint32).view(np.int32))


def _truth(value: bool) -> np.float64:
    return np.float64(1.0 if value else 0.0)


class ExpressionEvaluator:
    """
    Reduces an expression tree to a number.
    Arithmetic uses 64-bit floats; bitwise operators work on 32-bit
    integers. Errors are recorded in self.diagnostics and the failing
    sub-expression evaluates to 0.
    """

    def __init__(self) -> None:
        self.diagnostics: list[EvaluationError] = []
        # Bound recursion on pathologically nested trees.
        self.max_level = 200
        self.level = 0
        self.overflowed = False

    def error(self, message: str, node: Node) -> np.float64:
        error = EvaluationError(message, node.position)
        log.debug(f"{error!s}")
        self.diagnostics.append(error)
        return np.float64(0)

    def __apply_unary_op(self, node: UnaryExpression) -> np.float64:
        """
        Apply the specified unary operator: op operand
        """
        operand = self.evaluate(node.operand)
        op = node.op
        if op == "-":
            return -operand
        elif op == "+":
            return +operand
        elif op == "!":
            return _truth(operand == 0)
        elif op == "~":
            return np.float64(~_to_int32(operand))
        return self.error(f"Unsupported operator: {op}", node)

    def __apply_binary_op(self, node: BinaryExpression) -> np.float64:
        """
        Evaluate a binary expression and the chain of binary expressions
        on its left, e.g. 1 + 2 + 3 + ... without recursing on each link.
        Both operands are always evaluated, including for && and ||.
        """
        chain = [node]
        while isinstance(chain[-1].left, BinaryExpression):
            chain.append(chain[-1].left)

        value = self.evaluate(chain[-1].left)
        for link in reversed(chain):
            rhs = self.evaluate(link.right)
            value = self.__combine(link, value, rhs)
        return value

    def __combine(
        self,
        node: BinaryExpression,
        lhs: np.float64,
        rhs: np.float64,
    ) -> np.float64:
        """
        Apply the specified binary operator: lhs op rhs
        """
        op = node.op
        if op == "||":
            return _truth(lhs != 0 or rhs != 0)
        elif op == "&&":
            return _truth(lhs != 0 and rhs != 0)
        elif op == "|":
            return np.float64(_to_int32(lhs) | _to_int32(rhs))
        elif op == "^":
            return np.float64(_to_int32(lhs) ^ _to_int32(rhs))
        elif op == "&":
            return np.float64(_to_int32(lhs) & _to_int32(rhs))
        elif op == "==":
            return _truth(lhs == rhs)
        elif op == "!=":
            return _truth(lhs != rhs)
        elif op == "<":
            return _truth(lhs < rhs)
        elif op == "<=":
            return _truth(lhs <= rhs)
        elif op == ">":
            return _truth(lhs > rhs)
        elif op == ">=":
            return _truth(lhs >= rhs)
        elif op == "<<":
            shifted = _to_int32(lhs) << (_to_int32(rhs) & 31)
            return np.float64(_to_int32(np.float64(shifted)))
        elif op == ">>":
            return np.float64(_to_int32(lhs) >> (_to_int32(rhs) & 31))
        elif op == "+":
            return lhs + rhs
        elif op == "-":
            return lhs - rhs
        elif op == "*":
            return lhs * rhs
        elif op == "/":
            if rhs == 0:
                return self.error("Division by zero", node)
            return lhs / rhs
        elif op == "%":
            if rhs == 0:
                return self.error("Modulo by zero", node)
            return np.fmod(lhs, rhs)
        return self.error(f"Unsupported operator: {op}", node)

    def evaluate(self, node: Node) -> np.float64:
        """
        Evaluate an expression tree.
        """
        if self.level >= self.max_level:
            if not self.overflowed:
                self.overflowed = True
                self.error(
                    "Expression nesting exceeded the maximum depth of "
                    + f"{self.max_level}",
                    node,
                )
            return np.float64(0)

        self.level += 1
        try:
            return self.__evaluate(node)
        finally:
            self.level -= 1

    def __evaluate(self, node: Node) -> np.float64:
        if isinstance(node, NumberLiteral):
            return np.float64(node.value)
        if isinstance(node, UnaryExpression):
            return self.__apply_unary_op(node)
        if isinstance(node, BinaryExpression):
            return self.__apply_binary_op(node)
        if isinstance(node, ConditionalExpression):
            # Only the selected branch is evaluated.
            condition = self.evaluate(node.condition)
            if condition != 0:
                return self.evaluate(node.when_true)
            return self.evaluate(node.when_false)
        return self.error(
            f"Unsupported evaluate node: {node.__class__.__name__}",
            node,
        )


def parse(tokens: list[lexer.Token]) -> tuple[Node, list[ParseError]]:
    """
    Parse a macro-expanded token list.
    Return the expression tree and any errors encountered.
    """
    parser = ExpressionParser(tokens)
    node = parser.parse()
    return (node, parser.diagnostics)


def evaluate(node: Node) -> tuple[np.float64, list[EvaluationError]]:
    """
    Evaluate an expression tree.
    Return the value and any errors encountered.
    """
    evaluator = ExpressionEvaluator()
    with np.errstate(over="ignore", invalid="ignore"):
        value = evaluator.evaluate(node)
    return (value, evaluator.diagnostics)
