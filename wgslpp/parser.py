# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the generic token parser and the parser for #define bodies.
"""
from __future__ import annotations

import logging
from typing import Any

from wgslpp.errors import ParseError, Position
from wgslpp.lexer import (
    Bracket,
    EndOfStream,
    Identifier,
    Keyword,
    Operator,
    Punctuator,
    Token,
    TokenKind,
    significant,
)

log = logging.getLogger(__name__)


class Parser:
    """
    A generic token parser for matching tokens from a list.
    Comments and the end-of-stream marker are not matched; the
    end-of-stream marker (if any) is kept to locate errors at the end.
    """

    def __init__(self, tokens: list[Token]) -> None:
        self.end: Token | None = None
        if tokens and isinstance(tokens[-1], EndOfStream):
            self.end = tokens[-1]
        self.tokens = significant(tokens)
        self.pos = 0

    def cursor(self) -> Token:
        """
        Return the current token in the list.
        """
        try:
            return self.tokens[self.pos]
        except IndexError:
            raise ParseError(
                "No tokens left for cursor to traverse",
                self.position(),
            )

    def eol(self) -> bool:
        """
        Return True when the end of the list is reached.
        """
        return self.pos >= len(self.tokens)

    def position(self) -> Position | None:
        """
        Return the position of the current token, or of the end of the
        stream when all tokens have been consumed.
        """
        if not self.eol():
            return self.tokens[self.pos].position
        if self.end is not None:
            return self.end.position
        if self.tokens:
            return self.tokens[-1].position
        return None

    def check(self, token_type: type, token_value: Any = None) -> bool:
        """
        Return True if the current token has the specified type (and
        value, if one is given) without advancing.
        """
        if self.eol() or not isinstance(self.cursor(), token_type):
            return False
        return token_value is None or self.cursor().text == token_value

    def match_type(self, token_type: type) -> Token:
        """
        Match a token of the specified type and advance position.
        """
        if not self.check(token_type):
            raise ParseError(
                f"Expected {token_type.kind.value}.",
                self.position(),
                [token_type.kind],
            )
        token = self.cursor()
        self.pos += 1
        return token

    def match_value(self, token_type: type, token_value: Any) -> Token:
        """
        Match a token of the specified type and value, and advance
        position.
        """
        if not self.check(token_type, token_value):
            raise ParseError(
                f"Expected '{token_value!s}'.",
                self.position(),
                [token_type.kind],
            )
        token = self.cursor()
        self.pos += 1
        return token

    def remaining(self) -> list[Token]:
        """
        Consume and return all tokens left in the list.
        """
        rest = self.tokens[self.pos :]
        self.pos = len(self.tokens)
        return rest


class DirectiveParser(Parser):
    """
    A specialized token parser for recognizing macro definitions.
    """

    def name(self) -> Token:
        """
        Match a macro or parameter name.
        Keywords are accepted so that builtin names can be guarded.

        <name> := [<identifier>|<keyword>]
        """
        if self.check(Keyword):
            return self.match_type(Keyword)
        if self.check(Identifier):
            return self.match_type(Identifier)
        raise ParseError(
            "Expected macro name.",
            self.position(),
            [TokenKind.IDENTIFIER],
        )

    def __arg_list(self) -> list[Token]:
        """
        Match a comma-separated list of parameter names closed by ')'.

        <arg-list> := [<name>[','<name>]*]?')'
        """
        args: list[Token] = []
        if self.check(Bracket, ")"):
            self.pos += 1
            return args

        while True:
            args.append(self.name())
            if self.check(Bracket, ")"):
                self.pos += 1
                return args
            self.match_value(Punctuator, ",")

    def macro_definition(self) -> tuple[Token, list[Token] | None]:
        """
        Match a macro definition.
        Return a tuple of the name and argument list (or None).

        <define-macro>    := <name><token-list>?
        <define-function> := <name>'('<arg-list><token-list>?
        """
        identifier = self.name()

        # Whitespace is NOT permitted before the opening paren of a
        # function-like macro.
        if self.check(Bracket, "("):
            paren = self.cursor()
            if not paren.prev_white:
                self.pos += 1
                return (identifier, self.__arg_list())

        return (identifier, None)

    def definition_string(
        self,
    ) -> tuple[Token, list[Token] | None, list[Token]]:
        """
        Match a definition of the form NAME=expansion, as passed on a
        command line.
        Return a tuple of the name, argument list and expansion.
        """
        (identifier, args) = self.macro_definition()

        # Any remaining tokens after an "=" are the macro expansion
        if not self.eol():
            self.match_value(Operator, "=")
            expansion = self.remaining()
        else:
            expansion = []
        return (identifier, args, expansion)
