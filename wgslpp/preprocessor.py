# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the line-oriented driver that resolves #define and conditional
directives in shader source.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from wgslpp.config import DirectiveAliases
from wgslpp.errors import DirectiveStructureError, Position, PreprocessorError
from wgslpp.expression import evaluate, parse
from wgslpp.lexer import Identifier, Keyword, significant, tokenize
from wgslpp.macro import MacroRegistry, macro_from_definition_string

log = logging.getLogger(__name__)


@dataclass
class ConditionalFrame:
    """
    The state of one #if...#endif chain.
    active: whether lines are currently emitted by this frame.
    resolved: whether some branch of the chain has already been taken.
    """

    active: bool
    resolved: bool
    line: int = field(default=-1, compare=False)


@dataclass
class PreprocessResult:
    """
    The processed text and every diagnostic produced along the way.
    """

    code: str
    errors: list[PreprocessorError] = field(default_factory=list)


@dataclass
class _Directive:
    name: str
    operand: str
    line: int
    column: int


class Preprocessor:
    """
    Represents a configured preprocessor, including:
    - The prefixes that introduce each directive
    - Macros defined before any source is read
    Each call to process() is independent of the others.
    """

    def __init__(
        self,
        *,
        aliases: DirectiveAliases | Mapping[str, Any] | None = None,
        defines: list[str] | None = None,
    ) -> None:
        if aliases is None:
            self.aliases = DirectiveAliases()
        elif isinstance(aliases, DirectiveAliases):
            self.aliases = aliases
        elif isinstance(aliases, Mapping):
            self.aliases = DirectiveAliases.from_mapping(aliases)
        else:
            raise TypeError(
                "'aliases' must be a DirectiveAliases or a mapping.",
            )

        self._defines: list[str]
        if defines is None:
            self._defines = []
        elif not isinstance(defines, list) or not all(
            [isinstance(d, str) for d in defines],
        ):
            raise TypeError("'defines' must be a list of strings.")
        else:
            # Fail early on malformed definitions.
            for definition in defines:
                macro_from_definition_string(definition)
            self._defines = list(defines)

        # Longest prefixes first, so that e.g. "#elifdef" is tried
        # before "#elif" when aliases share a stem.
        table = self.aliases.as_dict()
        self._prefixes = sorted(
            table.items(),
            key=lambda item: len(item[1]),
            reverse=True,
        )

    def directive(self, line: str, number: int) -> _Directive | None:
        """
        Return the directive on line, or None if it is not a directive.
        A prefix only matches if it is not followed by an identifier
        character.
        """
        text = line.strip()
        for name, prefix in self._prefixes:
            if not text.startswith(prefix):
                continue
            rest = text[len(prefix) :]
            if rest and (rest[0].isalnum() or rest[0] == "_"):
                continue
            operand = rest.strip()
            column = 1
            if operand:
                indent = len(line) - len(line.lstrip())
                column = line.find(operand, indent + len(prefix)) + 1
            return _Directive(name, operand, number, column)
        return None

    def build_registry(
        self,
        define_lines: list[_Directive],
    ) -> MacroRegistry:
        """
        Build the macro registry for one run, from the predefined macros
        followed by every #define in file order.
        """
        registry = MacroRegistry()
        for definition in self._defines:
            registry.add(
                macro_from_definition_string(definition),
                predefined=True,
            )
        for directive in define_lines:
            registry.define(directive.operand, directive.line)
        registry.flatten_all()
        return registry

    def condition(
        self,
        registry: MacroRegistry,
        directive: _Directive,
    ) -> tuple[bool, list[PreprocessorError]]:
        """
        Expand, parse and evaluate the expression of an #if or #elif.
        The condition only holds if every stage succeeded and the value is
        non-zero.
        """
        (tokens, errors) = tokenize(
            directive.operand,
            directive.line,
            directive.column,
        )
        diagnostics: list[PreprocessorError] = list(errors)

        (expanded, errors) = registry.expand(tokens, resolve_defined=True)
        diagnostics.extend(errors)

        # Keep the end-of-stream marker to locate errors at the end.
        (tree, errors) = parse(expanded + tokens[-1:])
        diagnostics.extend(errors)
        if diagnostics:
            return (False, diagnostics)

        (value, errors) = evaluate(tree)
        diagnostics.extend(errors)
        return (not diagnostics and bool(value != 0), diagnostics)

    def defined(
        self,
        registry: MacroRegistry,
        directive: _Directive,
    ) -> tuple[bool, list[PreprocessorError]]:
        """
        Return whether the single identifier operand of an #ifdef-style
        directive names a macro.
        """
        (tokens, errors) = tokenize(
            directive.operand,
            directive.line,
            directive.column,
        )
        names = significant(tokens)
        if errors or len(names) != 1 or not isinstance(
            names[0],
            (Identifier, Keyword),
        ):
            prefix = self.aliases.as_dict()[directive.name]
            error = DirectiveStructureError(
                f"Expected a single identifier after {prefix}",
                Position(directive.line, directive.column),
            )
            log.warning(f"{error!s}")
            return (False, list(errors) + [error])

        return (registry.has_macro(names[0].text), [])

    def process(self, source: str) -> PreprocessResult:
        """
        Resolve all directives in source.

        Returns
        -------
        PreprocessResult
            The emitted lines joined by newlines, and all diagnostics.
        """
        lines = source.split("\n")

        # Every #define is collected up front, including those inside
        # conditional branches that are not taken.
        define_lines: list[_Directive] = []
        body_lines: list[tuple[int, str, _Directive | None]] = []
        for number, line in enumerate(lines, start=1):
            directive = self.directive(line, number)
            if directive is not None and directive.name == "define":
                define_lines.append(directive)
            else:
                body_lines.append((number, line, directive))

        registry = self.build_registry(define_lines)
        errors: list[PreprocessorError] = list(registry.diagnostics)

        output: list[str] = []
        frames: list[ConditionalFrame] = []

        def unexpected(directive: _Directive) -> None:
            prefix = self.aliases.as_dict()[directive.name]
            error = DirectiveStructureError(
                f"Unexpected {prefix}",
                Position(directive.line, 1),
            )
            log.warning(f"{error!s}")
            errors.append(error)

        for number, line, directive in body_lines:
            if directive is None:
                if all(frame.active for frame in frames):
                    output.append(line)
                continue

            name = directive.name
            if name in ["if", "ifdef", "ifndef"]:
                if name == "if":
                    (value, diagnostics) = self.condition(registry, directive)
                else:
                    (value, diagnostics) = self.defined(registry, directive)
                    if name == "ifndef" and not diagnostics:
                        value = not value
                errors.extend(diagnostics)
                frames.append(ConditionalFrame(value, value, number))

            elif name in ["elif", "elifdef", "elifndef"]:
                if not frames:
                    unexpected(directive)
                    continue
                if name == "elif":
                    (value, diagnostics) = self.condition(registry, directive)
                else:
                    (value, diagnostics) = self.defined(registry, directive)
                    if name == "elifndef" and not diagnostics:
                        value = not value
                errors.extend(diagnostics)
                top = frames[-1]
                top.active = value and not top.resolved
                if top.active:
                    top.resolved = True

            elif name == "else":
                if not frames:
                    unexpected(directive)
                    continue
                top = frames[-1]
                top.active = not top.resolved
                if top.active:
                    top.resolved = True

            elif name == "endif":
                if not frames:
                    unexpected(directive)
                    continue
                frames.pop()

        for frame in frames:
            error = DirectiveStructureError(
                f"Unterminated conditional starting at line {frame.line}",
                Position(frame.line, 1),
            )
            log.warning(f"{error!s}")
            errors.append(error)

        return PreprocessResult("\n".join(output), errors)


def preprocess(
    source: str,
    *,
    aliases: DirectiveAliases | Mapping[str, Any] | None = None,
    defines: list[str] | None = None,
) -> PreprocessResult:
    """
    Resolve all directives in source with a new Preprocessor.
    """
    return Preprocessor(aliases=aliases, defines=defines).process(source)
