# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes that define:
- Macro definitions (value macros and function-like macros)
- The registry of macros known to a preprocessing run
- The expander that flattens and substitutes macros in token streams
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from typing import Any

from wgslpp.errors import (
    ArgumentCountError,
    CircularDependencyError,
    MacroDefinitionError,
    MacroExpansionError,
    ParseError,
    PreprocessorError,
)
from wgslpp.lexer import (
    Bracket,
    Identifier,
    IntegerLiteral,
    Keyword,
    Lexer,
    Punctuator,
    Token,
    significant,
    spell,
)
from wgslpp.parser import DirectiveParser

log = logging.getLogger(__name__)


def _representation_string(
    obj: Any,
    *,
    name: str | None = None,
    attrs: list[str] | None = None,
) -> str:
    """
    Helper function to build representation strings of the form:
    Name(attribute={attribute!r},...)
    """
    if not name:
        name = obj.__class__.__name__
    if not attrs:
        attrs = list(obj.__dict__)
    properties = ",".join(f"{a}={getattr(obj, a)!r}" for a in attrs)
    return f"{name}({properties})"


def _inherit_white(tokens: list[Token], original: Token) -> list[Token]:
    """
    Return tokens with the leading whitespace of the token they replace.
    """
    if not tokens or tokens[0].prev_white == original.prev_white:
        return list(tokens)
    return [replace(tokens[0], prev_white=original.prev_white)] + tokens[1:]


@dataclass
class MacroParameter:
    """
    A formal parameter of a macro definition, or an actual parameter
    supplied at a call site.
    """

    body: str
    tokens: list[Token]


class Macro:
    """
    Represents a value macro definition.
    """

    def __init__(self, name: Token, replacement: list[Token]) -> None:
        self.identifier = name
        self.name = name.text
        self.replacement = list(replacement)
        self.flattened = False

        if self.replacement:
            self.replacement[0] = replace(
                self.replacement[0],
                prev_white=False,
            )

        # Informational only; cycles are found while flattening.
        self.dependencies = {
            t.text for t in self.replacement if isinstance(t, Identifier)
        }

    @property
    def body(self) -> str:
        """
        The spelling of the (possibly flattened) replacement list.
        """
        return spell(self.replacement)

    def which_arg(self, tok: Token) -> int:
        """
        Returns index token occupies in this Macro's list. -1 if not found.
        """
        return -1

    def __repr__(self) -> str:
        return _representation_string(
            self,
            attrs=["name", "replacement", "flattened"],
        )

    def spelling(self) -> list[str]:
        """
        Return (a list containing) a string with a lexable representation of
        this Macro.
        """
        return [f"{self.name!s}={self.body!s}"]

    def replace(
        self,
        input_args: list[MacroParameter] | None = None,
    ) -> list[Token]:
        """
        Return the expansion list for this Macro.
        """
        return list(self.replacement)


class MacroFunction(Macro):
    """
    Represents a function-like macro definition.
    """

    def __init__(
        self,
        name: Token,
        args: list[Token],
        replacement: list[Token],
    ) -> None:
        self.args = [x.text for x in args]
        self.parameters = [MacroParameter(x.text, [x]) for x in args]
        super().__init__(name, replacement)
        self.dependencies -= set(self.args)

    def which_arg(self, tok: Token) -> int:
        """
        Returns index token occupies in this Macro's list. -1 if not found.
        """
        if not isinstance(tok, (Identifier, Keyword)):
            return -1
        try:
            return self.args.index(tok.text)
        except ValueError:
            return -1

    def __repr__(self) -> str:
        return _representation_string(
            self,
            attrs=["name", "args", "replacement", "flattened"],
        )

    def spelling(self) -> list[str]:
        """
        Return the string representation of this macro in the input code.
        Useful primarily for debugging and generating error messages.
        """
        arg_str = ",".join(self.args)
        return [f"{self.name!s}({arg_str!s})={self.body!s}"]

    def replace(
        self,
        input_args: list[MacroParameter] | None = None,
    ) -> list[Token]:
        """
        Return the substituted replacement for this macro.
        input_args is expected to be a list of already expanded actual
        parameters. Formals without a matching actual parameter are left
        as they are, and surplus actual parameters are ignored.
        """
        if input_args is None:
            input_args = []

        substituted_tokens = []
        for token in self.replacement:
            # If a token matches an argument, it is substituted;
            # otherwise it passes through
            index = self.which_arg(token)
            if index == -1 or index >= len(input_args):
                substituted_tokens.append(token)
                continue
            substituted_tokens.extend(
                _inherit_white(input_args[index].tokens, token),
            )

        return substituted_tokens


def make_macro(
    identifier: Token,
    args: list[Token] | None,
    expansion: list[Token],
) -> Macro | MacroFunction:
    """
    Return a Macro or MacroFunction based on the contents of args.
    """
    if args is None:
        return Macro(identifier, expansion)
    else:
        return MacroFunction(identifier, args, expansion)


def macro_from_definition_string(string: str) -> Macro | MacroFunction:
    """
    Construct a Macro or MacroFunction by parsing a string of the form
    MACRO=expansion.

    Raises
    ------
    ValueError
        If `string` is not a valid definition.
    """
    lexer = Lexer(string)
    tokens = lexer.tokenize()
    if lexer.errors:
        raise lexer.errors[0]

    parser = DirectiveParser(tokens)
    (identifier, args, expansion) = parser.definition_string()
    if not expansion:
        expansion = [IntegerLiteral(identifier.line, -1, False, "1")]

    return make_macro(identifier, args, expansion)


class MacroRegistry:
    """
    The set of macros known to one preprocessing run, keyed by name.
    Definitions are registered once, then flattened before any expansion.
    """

    def __init__(self, definitions: Iterable[str] = ()) -> None:
        self._definitions: dict[str, Macro | MacroFunction] = {}
        self._predefined: set[str] = set()
        self.diagnostics: list[PreprocessorError] = []

        for definition in definitions:
            self.define(definition)
        if self._definitions:
            self.flatten_all()

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[Macro | MacroFunction]:
        return iter(self._definitions.values())

    def report(self, error: PreprocessorError) -> None:
        log.debug(f"{error!s}")
        self.diagnostics.append(error)

    def add(
        self,
        macro: Macro | MacroFunction,
        *,
        predefined: bool = False,
    ) -> bool:
        """
        Register a macro. The first definition of a name wins.

        Returns
        -------
        bool
            True if the macro was registered.
        """
        if macro.name in self._definitions:
            if macro.name in self._predefined:
                log.info(f"'{macro.name}' is predefined; ignoring #define")
            else:
                self.report(
                    MacroDefinitionError(
                        f"Macro '{macro.name}' redefined; "
                        + "keeping the first definition",
                        macro.identifier.position,
                    ),
                )
            return False

        self._definitions[macro.name] = macro
        if predefined:
            self._predefined.add(macro.name)
        return True

    def define(self, raw_line: str, line: int = 1) -> Macro | None:
        """
        Parse the text following a #define and register the macro.

        Returns
        -------
        Macro | None
            The new macro, or None if the definition was malformed.
        """
        lexer = Lexer(raw_line, line)
        tokens = lexer.tokenize()
        for error in lexer.errors:
            self.report(error)

        parser = DirectiveParser(tokens)
        if parser.eol():
            self.report(
                MacroDefinitionError(
                    "No macro name given in definition",
                    parser.position(),
                ),
            )
            return None

        try:
            (identifier, args) = parser.macro_definition()
        except ParseError as e:
            self.report(
                MacroDefinitionError(
                    f"Invalid macro definition '{raw_line}': {e.message}",
                    e.position,
                    e.expected,
                ),
            )
            return None

        macro = make_macro(identifier, args, parser.remaining())
        if not self.add(macro):
            return None
        return macro

    def get_macro(self, name: str) -> Macro | MacroFunction | None:
        """
        Returns
        -------
        Macro | MacroFunction | None
            The macro associated with `name`, or None.
        """
        return self._definitions.get(name)

    def has_macro(self, name: str) -> bool:
        """
        Returns
        -------
        bool
            True if `name` is defined and False otherwise.
        """
        return name in self._definitions

    def flatten_all(self) -> None:
        """
        Flatten every registered macro, recording any errors.
        """
        expander = MacroExpander(self, self.diagnostics)
        for macro in list(self._definitions.values()):
            expander.flatten(macro)

    def expand(
        self,
        tokens: list[Token],
        *,
        resolve_defined: bool = False,
    ) -> tuple[list[Token], list[PreprocessorError]]:
        """
        Expand every macro in tokens.
        Return the expanded tokens and the errors encountered.
        """
        expander = MacroExpander(self)
        expanded = expander.expand(tokens, resolve_defined=resolve_defined)
        return (expanded, expander.diagnostics)


class MacroExpander:
    """
    Flattens macro definitions and expands macro references in token
    streams, collecting errors rather than raising them.
    """

    def __init__(
        self,
        registry: MacroRegistry,
        diagnostics: list[PreprocessorError] | None = None,
    ) -> None:
        self.registry = registry
        self.diagnostics = [] if diagnostics is None else diagnostics
        # Prevent unbounded recursion through long chains of macros.
        self.max_level = 200
        self.level = 0
        self.overflowed = False

    def report(self, error: PreprocessorError) -> None:
        log.debug(f"{error!s}")
        self.diagnostics.append(error)

    def flatten(
        self,
        macro: Macro | MacroFunction,
        visited: tuple[str, ...] = (),
    ) -> Macro | MacroFunction:
        """
        Resolve every macro reference in the replacement list of macro,
        replacing it with the result. The result is computed once.

        visited holds the names of the macros being flattened, outermost
        first; a reference to any of them is circular.
        """
        if macro.flattened:
            return macro

        masked: set[str] = set()
        if isinstance(macro, MacroFunction):
            masked = set(macro.args)

        macro.replacement = self.__expand(
            macro.replacement,
            masked,
            visited + (macro.name,),
        )
        macro.flattened = True
        return macro

    def invoke_function_macro(
        self,
        macro: MacroFunction,
        actual_params: list[MacroParameter],
        visited: tuple[str, ...] = (),
        call: Token | None = None,
    ) -> list[Token]:
        """
        Return the replacement of a call to macro with actual_params.
        """
        macro = self.flatten(macro, visited)

        if len(actual_params) < len(macro.args):
            self.report(
                ArgumentCountError(
                    f"Macro '{macro.name}' expects {len(macro.args)} "
                    + f"argument(s) but {len(actual_params)} were given",
                    call.position if call else None,
                ),
            )

        return macro.replace(actual_params)

    def scan_parameters(
        self,
        tokens: list[Token],
        start: int,
        masked: set[str],
        visited: tuple[str, ...] = (),
    ) -> tuple[list[MacroParameter], int] | None:
        """
        Read the parenthesized, comma-separated actual parameters that
        begin at tokens[start]. Each parameter is expanded before it is
        returned.

        Returns
        -------
        tuple[list[MacroParameter], int] | None
            The parameters and the index just past the closing ')', or None
            if tokens[start] is not '(' or the list is never closed.
        """
        if start >= len(tokens) or not _is(tokens[start], Bracket, "("):
            return None

        params: list[MacroParameter] = []
        current: list[Token] = []
        depth = 1
        pos = start + 1
        while pos < len(tokens):
            tok = tokens[pos]
            pos += 1

            if _is(tok, Bracket, "("):
                depth += 1
            elif _is(tok, Bracket, ")"):
                depth -= 1
                if depth == 0:
                    if current:
                        params.append(
                            self.__parameter(current, masked, visited),
                        )
                    return (params, pos)
            elif _is(tok, Punctuator, ",") and depth == 1:
                params.append(self.__parameter(current, masked, visited))
                current = []
                continue

            current.append(tok)

        name = tokens[start - 1].text if start > 0 else "macro"
        self.report(
            MacroExpansionError(
                f"Unterminated argument list for macro '{name}'",
                tokens[start].position,
            ),
        )
        return None

    def __parameter(
        self,
        tokens: list[Token],
        masked: set[str],
        visited: tuple[str, ...],
    ) -> MacroParameter:
        return MacroParameter(
            spell(tokens),
            self.__expand(tokens, masked, visited),
        )

    def __expand(
        self,
        tokens: list[Token],
        masked: set[str],
        visited: tuple[str, ...],
    ) -> list[Token]:
        """
        Return tokens with every macro reference replaced.
        Names in masked are parameters of an enclosing macro and are
        never looked up.
        """
        if self.level >= self.max_level:
            if not self.overflowed:
                self.overflowed = True
                self.report(
                    MacroExpansionError(
                        "Macro expansion exceeded the maximum depth of "
                        + f"{self.max_level}",
                        tokens[0].position if tokens else None,
                    ),
                )
            return list(tokens)

        self.level += 1
        try:
            return self.__expand_level(tokens, masked, visited)
        finally:
            self.level -= 1

    def __expand_level(
        self,
        tokens: list[Token],
        masked: set[str],
        visited: tuple[str, ...],
    ) -> list[Token]:
        res_tokens: list[Token] = []
        pos = 0
        while pos < len(tokens):
            token = tokens[pos]
            pos += 1

            if not isinstance(token, Identifier) or token.text in masked:
                res_tokens.append(token)
                continue

            macro = self.registry.get_macro(token.text)
            if macro is None:
                res_tokens.append(token)
                continue

            if macro.name in visited:
                self.report(
                    CircularDependencyError(
                        list(visited) + [macro.name],
                        token.position,
                    ),
                )
                res_tokens.append(token)
                continue

            if isinstance(macro, MacroFunction):
                # A function-like macro is only invoked by a call.
                scan = self.scan_parameters(tokens, pos, masked, visited)
                if scan is None:
                    res_tokens.append(token)
                    continue
                (params, pos) = scan
                replacement = self.invoke_function_macro(
                    macro,
                    params,
                    visited,
                    token,
                )
            else:
                replacement = self.flatten(macro, visited).replace()

            res_tokens.extend(_inherit_white(replacement, token))

        return res_tokens

    def defined(self, identifier: Token) -> IntegerLiteral:
        """
        Expand a call to defined(X) or defined X.
        """
        if self.registry.has_macro(identifier.text):
            value = "1"
        else:
            value = "0"
        return IntegerLiteral(
            identifier.line,
            identifier.col,
            identifier.prev_white,
            value,
            identifier.start,
            identifier.end,
        )

    def __resolve_defined(self, tokens: list[Token]) -> list[Token]:
        """
        Replace each defined(X) or defined X with 1 or 0.
        """
        res_tokens: list[Token] = []
        pos = 0
        while pos < len(tokens):
            token = tokens[pos]
            pos += 1
            if not _is(token, Identifier, "defined"):
                res_tokens.append(token)
                continue

            rest = tokens[pos : pos + 3]
            names = (Identifier, Keyword)
            if (
                len(rest) == 3
                and _is(rest[0], Bracket, "(")
                and isinstance(rest[1], names)
                and _is(rest[2], Bracket, ")")
            ):
                value = self.defined(rest[1])
                pos += 3
            elif rest and isinstance(rest[0], names):
                value = self.defined(rest[0])
                pos += 1
            else:
                self.report(
                    ParseError(
                        "Expected identifier after 'defined'",
                        token.position,
                    ),
                )
                res_tokens.append(token)
                continue
            res_tokens.append(replace(value, prev_white=token.prev_white))
        return res_tokens

    def expand(
        self,
        tokens: list[Token],
        *,
        resolve_defined: bool = False,
    ) -> list[Token]:
        """
        Expand a list of input tokens using the registry's definitions.
        Return a list of new tokens, representing the result of macro
        expansion. Errors are recorded in self.diagnostics.
        """
        tokens = significant(tokens)
        if resolve_defined:
            tokens = self.__resolve_defined(tokens)
        return self.__expand(tokens, set(), ())


def _is(token: Token, token_type: type, text: str) -> bool:
    return isinstance(token, token_type) and token.text == text
