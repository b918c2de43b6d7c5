# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
A preprocessor for WGSL shader sources, supporting object-like and
function-like macros and conditional directives.
"""
from wgslpp.config import DirectiveAliases, load_aliases
from wgslpp.errors import (
    ArgumentCountError,
    CircularDependencyError,
    DirectiveStructureError,
    EvaluationError,
    LexicalError,
    MacroDefinitionError,
    MacroExpansionError,
    ParseError,
    Position,
    PreprocessorError,
)
from wgslpp.preprocessor import PreprocessResult, Preprocessor, preprocess

__version__ = "1.0.0"

__all__ = [
    "ArgumentCountError",
    "CircularDependencyError",
    "DirectiveAliases",
    "DirectiveStructureError",
    "EvaluationError",
    "LexicalError",
    "MacroDefinitionError",
    "MacroExpansionError",
    "ParseError",
    "Position",
    "PreprocessResult",
    "Preprocessor",
    "PreprocessorError",
    "load_aliases",
    "preprocess",
]
