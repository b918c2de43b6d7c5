# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the diagnostic classes reported by each stage of preprocessing.

Diagnostics are exceptions so that they carry a message and can be raised
where a stage needs to backtrack, but they are collected in lists and
returned alongside results rather than propagated to the caller.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wgslpp.lexer import Token, TokenKind


@dataclass(frozen=True)
class Position:
    """
    Location of a token in the text it was read from.
    """

    line: int
    column: int
    start: int = -1
    end: int = -1

    @classmethod
    def of(cls, token: Token) -> Position:
        return cls(token.line, token.col, token.start, token.end)

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class PreprocessorError(ValueError):
    """
    Base class for every diagnostic produced while preprocessing.
    """

    def __init__(
        self,
        message: str,
        position: Position | None = None,
        expected: Iterable[TokenKind] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.position = position
        self.expected = tuple(expected) if expected else ()

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.position!s}: {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class LexicalError(PreprocessorError):
    """
    Represents an error encountered during tokenization.
    """


class MacroDefinitionError(PreprocessorError):
    """
    Represents a malformed #define.
    """


class MacroExpansionError(PreprocessorError):
    """
    Represents a failure to expand a macro reference.
    """


class CircularDependencyError(MacroExpansionError):
    """
    Represents a macro that refers to itself, directly or indirectly.
    """

    def __init__(
        self,
        chain: list[str],
        position: Position | None = None,
    ) -> None:
        self.chain = chain
        super().__init__(
            "Circular macro definition detected: " + " -> ".join(chain),
            position,
        )


class ArgumentCountError(MacroExpansionError):
    """
    Represents a function-like macro invoked with too few arguments.
    """


class ParseError(PreprocessorError):
    """
    Represents an error encountered during parsing.
    """


class EvaluationError(PreprocessorError):
    """
    Represents an expression that cannot be reduced to a number.
    """


class DirectiveStructureError(PreprocessorError):
    """
    Represents a conditional directive without a matching opener, or a
    conditional directive with a malformed operand.
    """
