# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes that define:
- Tokens from lexing a line of shader code
- A lexer for the WGSL token grammar
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from wgslpp.errors import LexicalError, Position

log = logging.getLogger(__name__)


class TokenError(ValueError):
    """
    Represents a failed attempt to match one kind of token.
    """


class TokenKind(Enum):
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    ATTRIBUTE = "attribute"
    INTEGER_LITERAL = "integer literal"
    FLOAT_LITERAL = "float literal"
    STRING_LITERAL = "string literal"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    BRACKET = "bracket"
    COMMENT = "comment"
    END_OF_STREAM = "end of stream"
    ERROR = "error"


class KeywordCategory(Enum):
    SYNTAX = "syntax"
    TYPE = "type"
    BUILTIN_FUNCTION = "builtin function"
    BUILTIN_VALUE = "builtin value"


SYNTAX_KEYWORDS = frozenset(
    [
        "fn", "let", "var", "const", "override",
        "if", "else", "loop", "for", "while", "break", "continue", "return",
        "switch", "case", "default", "continuing", "discard",
        "private", "workgroup", "uniform", "storage", "function",
        "read", "write", "read_write",
        "struct", "true", "false",
    ],
)

TYPE_KEYWORDS = frozenset(
    [
        "i32", "u32", "f32", "f16", "bool",
        "vec2", "vec3", "vec4",
        "mat2x2", "mat2x3", "mat2x4", "mat3x2", "mat3x3", "mat3x4",
        "mat4x2", "mat4x3", "mat4x4",
        "atomic", "ptr", "array",
        "sampler", "sampler_comparison",
        "texture_1d", "texture_2d", "texture_2d_array", "texture_3d",
        "texture_cube", "texture_cube_array", "texture_multisampled_2d",
        "texture_storage_1d", "texture_storage_2d",
        "texture_storage_2d_array", "texture_storage_3d",
        "texture_depth_2d", "texture_depth_2d_array",
        "texture_depth_cube", "texture_depth_cube_array",
    ],
)

BUILTIN_FUNCTIONS = frozenset(
    [
        "radians", "degrees", "sin", "cos", "tan", "asin", "acos", "atan",
        "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
        "exp", "exp2", "log", "log2", "pow",
        "dot", "cross", "length", "distance", "normalize", "faceForward",
        "reflect", "refract", "transpose", "determinant", "inverse",
        "abs", "sign", "floor", "ceil", "round", "trunc", "fract", "mod",
        "min", "max", "clamp", "mix", "step", "smoothstep",
        "frexp", "ldexp", "modf",
        "countLeadingZeros", "countTrailingZeros", "populationCount",
        "reverseBits",
        "pack4x8snorm", "pack4x8unorm", "pack2x16snorm", "pack2x16unorm",
        "pack2x16float", "unpack4x8snorm", "unpack4x8unorm",
        "unpack2x16snorm", "unpack2x16unorm", "unpack2x16float",
        "textureDimensions", "textureNumLayers", "textureNumLevels",
        "textureLoad", "textureStore", "textureSample",
        "textureSampleBias", "textureSampleLevel", "textureSampleGrad",
        "textureSampleCompare", "textureSampleCompareLevel",
        "textureGather", "textureGatherCompare",
        "atomicLoad", "atomicStore", "atomicAdd", "atomicSub",
        "atomicMax", "atomicMin", "atomicAnd", "atomicOr", "atomicXor",
        "dpdx", "dpdy", "fwidth", "dpdxCoarse", "dpdyCoarse",
        "fwidthCoarse", "dpdxFine", "dpdyFine", "fwidthFine",
        "select", "all", "any",
    ],
)

BUILTIN_VALUES = frozenset(
    [
        "vertex_index", "instance_index", "position", "front_facing",
        "frag_depth", "local_invocation_id", "local_invocation_index",
        "global_invocation_id", "workgroup_id", "num_workgroups",
        "sample_index", "sample_mask", "subgroup_invocation_id",
        "subgroup_size",
    ],
)

ATTRIBUTES = frozenset(
    [
        "vertex", "fragment", "compute",
        "group", "binding", "location",
        "builtin", "interpolate", "invariant",
        "size", "align", "stride",
        "must_use", "binding_array", "blend_src", "color",
        "compute_grid_size", "id", "input_attachment_index",
        "inner", "outer", "position", "sample",
        "storage_class", "type", "workgroup_size",
    ],
)


@dataclass(frozen=True)
class Token:
    """
    Represents a token constructed by the lexer.
    """

    kind: ClassVar[TokenKind] = TokenKind.ERROR

    line: int
    col: int
    prev_white: bool
    text: str
    start: int = -1
    end: int = -1

    def __str__(self) -> str:
        return self.text

    @property
    def position(self) -> Position:
        return Position.of(self)

    def spelling(self) -> list[str]:
        """
        Return the string representation of this token in the input code.
        Useful primarily for debugging and generating error messages.
        """
        return [self.text]


@dataclass(frozen=True)
class Identifier(Token):
    """
    Represents a WGSL identifier.
    """

    kind: ClassVar[TokenKind] = TokenKind.IDENTIFIER


@dataclass(frozen=True)
class Keyword(Token):
    """
    Represents a reserved word, type name or builtin.
    """

    kind: ClassVar[TokenKind] = TokenKind.KEYWORD

    category: KeywordCategory = KeywordCategory.SYNTAX


@dataclass(frozen=True)
class Attribute(Token):
    """
    Represents an @attribute. The text is the attribute name without '@'.
    """

    kind: ClassVar[TokenKind] = TokenKind.ATTRIBUTE

    def spelling(self) -> list[str]:
        return [f"@{self.text}"]

    def __str__(self) -> str:
        return f"@{self.text}"


@dataclass(frozen=True)
class IntegerLiteral(Token):
    """
    Represents an integer literal, including any suffix.
    """

    kind: ClassVar[TokenKind] = TokenKind.INTEGER_LITERAL


@dataclass(frozen=True)
class FloatLiteral(Token):
    """
    Represents a floating point literal, including any suffix.
    """

    kind: ClassVar[TokenKind] = TokenKind.FLOAT_LITERAL


@dataclass(frozen=True)
class StringLiteral(Token):
    """
    Represents a string literal. The text excludes the quotes.
    """

    kind: ClassVar[TokenKind] = TokenKind.STRING_LITERAL

    def spelling(self) -> list[str]:
        return [f'"{self.text!s}"']

    def __str__(self) -> str:
        return f'"{self.text!s}"'


@dataclass(frozen=True)
class Operator(Token):
    """
    Represents an operator.
    """

    kind: ClassVar[TokenKind] = TokenKind.OPERATOR


@dataclass(frozen=True)
class Punctuator(Token):
    """
    Represents a separator (',', ';' or ':').
    """

    kind: ClassVar[TokenKind] = TokenKind.PUNCTUATION


@dataclass(frozen=True)
class Bracket(Token):
    """
    Represents a parenthesis, square bracket or brace.
    """

    kind: ClassVar[TokenKind] = TokenKind.BRACKET


@dataclass(frozen=True)
class Comment(Token):
    """
    Represents a line or block comment, including its delimiters.
    """

    kind: ClassVar[TokenKind] = TokenKind.COMMENT


@dataclass(frozen=True)
class EndOfStream(Token):
    """
    Marks the end of a token stream.
    """

    kind: ClassVar[TokenKind] = TokenKind.END_OF_STREAM

    def spelling(self) -> list[str]:
        return []

    def __str__(self) -> str:
        return ""


@dataclass(frozen=True)
class Unknown(Token):
    """
    Represents an unknown token.
    """

    kind: ClassVar[TokenKind] = TokenKind.ERROR


def spell(tokens: Iterable[Token]) -> str:
    """
    Recover a textual spelling of a token sequence, inserting a single
    space wherever whitespace preceded a token.
    """
    out = []
    for token in tokens:
        if isinstance(token, EndOfStream):
            continue
        if token.prev_white and out:
            out.append(" ")
        out.append(str(token))
    return "".join(out)


def significant(tokens: Iterable[Token]) -> list[Token]:
    """
    Return the tokens that take part in expansion and parsing.
    """
    return [t for t in tokens if not isinstance(t, (Comment, EndOfStream))]


class Lexer:
    """
    A lexer for the WGSL token grammar.
    """

    def __init__(
        self,
        string: str,
        line: int = 1,
        column: int = 1,
        *,
        comments: bool = False,
    ) -> None:
        self.string = string
        self.line = line
        self.column = column
        self.comments = comments
        self.pos = 0
        self.prev_white = False
        self.errors: list[LexicalError] = []

    def read(self, n: int = 1) -> str:
        """
        Return the next n characters in the string.
        """
        return self.string[self.pos : self.pos + n]

    def eos(self) -> bool:
        """
        Return True when the end of the string is reached.
        """
        return self.pos >= len(self.string)

    def location(self, offset: int) -> tuple[int, int]:
        """
        Return the (line, column) of a character offset in the string.
        """
        newlines = self.string.count("\n", 0, offset)
        if newlines == 0:
            return (self.line, self.column + offset)
        line_start = self.string.rfind("\n", 0, offset) + 1
        return (self.line + newlines, offset - line_start + 1)

    def make(self, cls: type[Token], start: int, text: str, **kwargs) -> Token:
        """
        Construct a token of type cls spanning [start, pos).
        """
        (line, col) = self.location(start)
        return cls(line, col, self.prev_white, text, start, self.pos, **kwargs)

    def error(self, message: str, offset: int) -> None:
        (line, col) = self.location(offset)
        error = LexicalError(message, Position(line, col, offset, offset + 1))
        log.debug(f"{error!s}")
        self.errors.append(error)

    def whitespace(self) -> None:
        """
        Consume whitespace and advance position.
        """
        while not self.eos() and self.read() in [" ", "\t", "\n", "\r"]:
            self.pos += 1
            self.prev_white = True

    def match(self, literal: str) -> None:
        """
        Match a character/string literal exactly and advance position.
        """
        if self.read(len(literal)) == literal:
            self.pos += len(literal)
        else:
            raise TokenError()

    def match_any(self, literals: list[str]) -> int:
        """
        Match one from a list of character/string literals exactly.
        Return the matched index and advance position.
        """
        for index, literal in enumerate(literals):
            if self.read(len(literal)) == literal:
                self.pos += len(literal)
                return index

        raise TokenError()

    def __digits(self, accept: str = "0123456789") -> str:
        chars = []
        while not self.eos() and self.read() in accept:
            chars.append(self.read())
            self.pos += 1
        return "".join(chars)

    def number(self) -> Token:
        """
        Construct an IntegerLiteral or FloatLiteral by parsing a string.
        Return the literal and advance position.

        <hex>     := '0'['x'|'X']<hex-digit>*<int-suffix>?
        <decimal> := <digit>*['.'<digit>*]?[['e'|'E']['+'|'-']?<digit>*]?
                     <suffix>?
        <suffix>  := ['i'|'u'|'f'|'h']
        """
        start = self.pos
        is_float = False

        if not (
            self.read().isdigit()
            or (self.read() == "." and self.read(2)[1:].isdigit())
        ):
            raise TokenError("Expected digit.")

        if self.read(2) in ["0x", "0X"]:
            self.pos += 2
            self.__digits("0123456789abcdefABCDEF")
            if not self.eos() and self.read() in ["i", "u"]:
                self.pos += 1
        else:
            self.__digits()

            if not self.eos() and self.read() == ".":
                is_float = True
                self.pos += 1
                self.__digits()

            if not self.eos() and self.read() in ["e", "E"]:
                is_float = True
                self.pos += 1
                if not self.eos() and self.read() in ["+", "-"]:
                    self.pos += 1
                self.__digits()

            if not self.eos() and self.read() in ["i", "u", "f", "h"]:
                if self.read() in ["f", "h"]:
                    is_float = True
                self.pos += 1

        value = self.string[start : self.pos]
        if is_float:
            return self.make(FloatLiteral, start, value)
        return self.make(IntegerLiteral, start, value)

    def string_constant(self) -> StringLiteral:
        """
        Construct a StringLiteral by parsing a string.
        Return a StringLiteral and advance position.

        <string-constant> := '"'.*'"'
        """
        start = self.pos
        self.match('"')

        chars = []
        while not self.eos() and self.read() != '"':
            # An escaped " should not close the string
            if self.read(2) == '\\"':
                chars.append(self.read(2))
                self.pos += 2
            else:
                chars.append(self.read())
                self.pos += 1

        if self.eos():
            self.error("Unterminated string literal", start)
        else:
            self.match('"')

        return self.make(StringLiteral, start, "".join(chars))

    def __name(self) -> str:
        characters: list[str] = []
        while not self.eos() and (self.read().isalnum() or self.read() == "_"):
            characters += self.read()
            self.pos += 1
        return "".join(characters)

    def identifier(self) -> Token:
        """
        Construct an Identifier or Keyword by parsing a string.
        Return the token and advance position.

        <identifier> := [<alpha>|'_'][<alpha>|<digit>|'_']*
        """
        start = self.pos
        if self.eos() or not (self.read().isalpha() or self.read() == "_"):
            raise TokenError("Invalid identifier.")

        name = self.__name()
        if name in SYNTAX_KEYWORDS:
            category = KeywordCategory.SYNTAX
        elif name in TYPE_KEYWORDS:
            category = KeywordCategory.TYPE
        elif name in BUILTIN_FUNCTIONS:
            category = KeywordCategory.BUILTIN_FUNCTION
        elif name in BUILTIN_VALUES:
            category = KeywordCategory.BUILTIN_VALUE
        else:
            return self.make(Identifier, start, name)
        return self.make(Keyword, start, name, category=category)

    def attribute(self) -> Attribute:
        """
        Construct an Attribute by parsing a string.
        Return an Attribute and advance position.

        <attribute> := '@'<identifier>
        """
        start = self.pos
        self.match("@")
        name = self.__name()
        if not name:
            self.pos = start
            raise TokenError("Invalid attribute.")
        if name not in ATTRIBUTES:
            self.error(f"Unknown attribute '{name}'", start)
        return self.make(Attribute, start, name)

    def comment(self) -> Comment:
        """
        Construct a Comment by parsing a string.
        Return a Comment and advance position.

        <comment> := ['//'<any>*'\n'|'/*'<any>*'*/']
        """
        start = self.pos
        if self.read(2) == "//":
            end = self.string.find("\n", self.pos)
            self.pos = len(self.string) if end == -1 else end
        elif self.read(2) == "/*":
            end = self.string.find("*/", self.pos + 2)
            if end == -1:
                self.error("Unterminated block comment", start)
                self.pos = len(self.string)
            else:
                self.pos = end + 2
        else:
            raise TokenError("Invalid comment.")
        return self.make(Comment, start, self.string[start : self.pos])

    def operator(self) -> Operator:
        """
        Construct an Operator by parsing a string.
        Return an Operator and advance position.
        """
        start = self.pos
        operators = ["<<=", ">>=", "..."]
        operators += [
            "==", "!=", "<=", ">=", "&&", "||", "->", "::", "<<", ">>",
            "+=", "-=", "*=", "/=", "%=", "&=", "^=", "|=",
        ]
        operators += [
            "=", "+", "-", "*", "/", "%", "!", "&", "|", "^", "~", ".",
            "?", "<", ">",
        ]
        index = self.match_any(operators)
        return self.make(Operator, start, operators[index])

    def punctuator(self) -> Punctuator:
        """
        Construct a Punctuator by parsing a string.
        Return a Punctuator and advance position.

        <punc> := [','|';'|':']
        """
        start = self.pos
        punctuators = [",", ";", ":"]
        index = self.match_any(punctuators)
        return self.make(Punctuator, start, punctuators[index])

    def bracket(self) -> Bracket:
        """
        Construct a Bracket by parsing a string.
        Return a Bracket and advance position.

        <bracket> := ['('|')'|'['|']'|'{'|'}']
        """
        start = self.pos
        brackets = ["(", ")", "[", "]", "{", "}"]
        index = self.match_any(brackets)
        return self.make(Bracket, start, brackets[index])

    def tokenize_one(self) -> Token | None:
        """
        Consume and return next token. Returns None if not possible.
        """
        candidates = [
            self.comment,
            self.number,
            self.string_constant,
            self.identifier,
            self.attribute,
            self.operator,
            self.punctuator,
            self.bracket,
        ]
        token = None
        for f in candidates:
            start = self.pos
            try:
                token = f()
                self.prev_white = False
                break
            except TokenError:
                self.pos = start
        return token

    def tokenize(self) -> list[Token]:
        """
        Return a list of all tokens in the string, terminated by an
        EndOfStream token. Errors are accumulated in self.errors.
        """
        tokens: list[Token] = []
        self.whitespace()
        while not self.eos():
            # Try to match a new token
            token = self.tokenize_one()

            # Treat unmatched single characters as unknown tokens
            if token is None:
                start = self.pos
                self.error(f"Unexpected character '{self.read()}'", start)
                self.pos += 1
                token = self.make(Unknown, start, self.string[start])
                self.prev_white = False

            if self.comments or not isinstance(token, Comment):
                tokens.append(token)
            else:
                # A dropped comment still separates its neighbours.
                self.prev_white = True

            self.whitespace()

        tokens.append(self.make(EndOfStream, self.pos, ""))
        return tokens


def tokenize(
    string: str,
    line: int = 1,
    column: int = 1,
) -> tuple[list[Token], list[LexicalError]]:
    """
    Tokenize a string.

    Returns
    -------
    tuple[list[Token], list[LexicalError]]
        The tokens (terminated by EndOfStream) and any lexical errors.
    """
    lexer = Lexer(string, line, column)
    tokens = lexer.tokenize()
    return (tokens, lexer.errors)
