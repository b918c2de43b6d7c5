# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause

import logging
import unittest

from wgslpp.config import DirectiveAliases
from wgslpp.errors import (
    CircularDependencyError,
    DirectiveStructureError,
    EvaluationError,
    MacroDefinitionError,
    ParseError,
)
from wgslpp.preprocessor import Preprocessor, preprocess


def lines(*args):
    return "\n".join(args)


class TestPreprocessor(unittest.TestCase):
    """
    Test Preprocessor class.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_constructor(self):
        """Check arguments are handled correctly"""
        preprocessor = Preprocessor()
        self.assertEqual(preprocessor.aliases, DirectiveAliases())

        aliases = DirectiveAliases.from_prefix("#")
        preprocessor = Preprocessor(aliases=aliases, defines=["MACRO"])
        self.assertIs(preprocessor.aliases, aliases)
        self.assertEqual(preprocessor._defines, ["MACRO"])

        preprocessor = Preprocessor(aliases={"if": "#if"})
        self.assertEqual(preprocessor.aliases.if_, "#if")
        self.assertEqual(preprocessor.aliases.endif, "///#endif")

    def test_constructor_validation(self):
        """Check arguments are valid"""

        with self.assertRaises(TypeError):
            Preprocessor(aliases="#")

        with self.assertRaises(TypeError):
            Preprocessor(defines="MACRO")

        with self.assertRaises(TypeError):
            Preprocessor(defines=[1])

        with self.assertRaises(ValueError):
            Preprocessor(defines=["1MACRO"])

        with self.assertRaises(ValueError):
            Preprocessor(aliases={"include": "#include"})

    def test_directive(self):
        """Check directive recognition"""
        preprocessor = Preprocessor()

        directive = preprocessor.directive("  ///#if  A + 1", 3)
        self.assertEqual(directive.name, "if")
        self.assertEqual(directive.operand, "A + 1")
        self.assertEqual(directive.line, 3)
        self.assertEqual(directive.column, 11)

        self.assertEqual(
            preprocessor.directive("///#ifdef A", 1).name,
            "ifdef",
        )
        self.assertEqual(
            preprocessor.directive("///#elifndef A", 1).name,
            "elifndef",
        )
        self.assertEqual(preprocessor.directive("///#endif", 1).name, "endif")
        self.assertEqual(preprocessor.directive("///#if(1)", 1).name, "if")
        self.assertIsNone(preprocessor.directive("///#iffy", 1))
        self.assertIsNone(preprocessor.directive("// ///#if 1", 1))
        self.assertIsNone(preprocessor.directive("#if 1", 1))

    def test_passthrough(self):
        """Check lines without directives are emitted verbatim"""
        source = lines("fn main() {", "    let x = A;", "}", "")
        result = preprocess(source)
        self.assertEqual(result.code, source)
        self.assertEqual(result.errors, [])

    def test_body_not_expanded(self):
        """Check macros are not expanded outside directives"""
        result = preprocess(lines("///#define A 1", "let x = A;"))
        self.assertEqual(result.code, "let x = A;")
        self.assertEqual(result.errors, [])

    def test_conditional(self):
        """Check #if and #else select a branch"""
        source = lines(
            "///#define FEATURE 1",
            "///#if FEATURE",
            "on",
            "///#else",
            "off",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "on")
        self.assertEqual(result.errors, [])

        result = preprocess(source.replace("FEATURE 1", "FEATURE 0"))
        self.assertEqual(result.code, "off")

    def test_determinism(self):
        """Check repeated runs give identical results"""
        source = lines(
            "///#define A 2",
            "///#define B(x) x * A",
            "///#if B(3) == 6",
            "six",
            "///#endif",
            "///#if UNDEFINED",
            "never",
            "///#endif",
        )
        preprocessor = Preprocessor()
        first = preprocessor.process(source)
        second = preprocessor.process(source)
        self.assertEqual(first.code, "six")
        self.assertEqual(first.code, second.code)
        self.assertEqual(
            [str(e) for e in first.errors],
            [str(e) for e in second.errors],
        )

    def test_undefined_guard(self):
        """Check #ifdef of an undefined macro suppresses its body"""
        source = lines("///#ifdef MISSING", "x", "///#endif", "y")
        result = preprocess(source)
        self.assertEqual(result.code, "y")
        self.assertEqual(result.errors, [])

    def test_ifndef(self):
        """Check #ifndef, #elifdef and #elifndef"""
        source = lines(
            "///#define HAVE_A",
            "///#ifndef HAVE_A",
            "not a",
            "///#elifdef HAVE_B",
            "b",
            "///#elifndef HAVE_C",
            "not c",
            "///#else",
            "other",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "not c")
        self.assertEqual(result.errors, [])

    def test_elif_chain(self):
        """Check only the first true branch is taken"""
        source = lines(
            "///#define V 2",
            "///#if V == 1",
            "one",
            "///#elif V == 2",
            "two",
            "///#elif V >= 2",
            "two again",
            "///#else",
            "other",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "two")
        self.assertEqual(result.errors, [])

    def test_nested(self):
        """Check nested conditionals"""
        source = lines(
            "///#define A 1",
            "///#if A",
            "a",
            "///#if 0",
            "b",
            "///#else",
            "c",
            "///#endif",
            "d",
            "///#else",
            "///#if 1",
            "e",
            "///#else",
            "f",
            "///#endif",
            "///#endif",
            "g",
        )
        result = preprocess(source)
        self.assertEqual(result.code, lines("a", "c", "d", "g"))
        self.assertEqual(result.errors, [])

    def test_nested_inactive(self):
        """Check an inner #else does not re-enable an inactive region"""
        source = lines(
            "///#if 0",
            "///#if 0",
            "x",
            "///#else",
            "y",
            "///#endif",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "")
        self.assertEqual(result.errors, [])

    def test_define_in_false_branch(self):
        """Check #define applies regardless of conditionals"""
        source = lines(
            "///#if 0",
            "///#define LATE 1",
            "///#endif",
            "///#ifdef LATE",
            "yes",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "yes")
        self.assertEqual(result.errors, [])

    def test_define_after_use(self):
        """Check macros defined later in the file are visible"""
        source = lines(
            "///#if LATER == 3",
            "ok",
            "///#endif",
            "///#define LATER 3",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "ok")

    def test_defined_operator(self):
        """Check defined() in #if"""
        source = lines(
            "///#define X",
            "///#if defined(X) && !defined Y",
            "x",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "x")
        self.assertEqual(result.errors, [])

    def test_indentation(self):
        """Check indented directives are recognised"""
        source = lines("  ///#if 0", "    hidden", "  ///#endif", "    shown")
        result = preprocess(source)
        self.assertEqual(result.code, "    shown")

    def test_lookalike(self):
        """Check a directive prefix must end at a word boundary"""
        source = lines("///#iffy", "///#ifdef A", "x", "///#endif")
        result = preprocess(source)
        self.assertEqual(result.code, "///#iffy")
        self.assertEqual(result.errors, [])

    def test_unmatched_endif(self):
        """Check #endif without #if is reported"""
        result = preprocess(lines("a", "///#endif", "b"))
        self.assertEqual(result.code, lines("a", "b"))
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], DirectiveStructureError)
        self.assertEqual(result.errors[0].message, "Unexpected ///#endif")
        self.assertEqual(result.errors[0].position.line, 2)

    def test_unmatched_else(self):
        """Check #else and #elif without #if are reported"""
        result = preprocess(
            lines("///#else", "a", "///#elif 1", "///#elifdef X"),
        )
        self.assertEqual(result.code, "a")
        self.assertEqual(
            [e.message for e in result.errors],
            [
                "Unexpected ///#else",
                "Unexpected ///#elif",
                "Unexpected ///#elifdef",
            ],
        )

    def test_unterminated(self):
        """Check conditionals left open are reported"""
        result = preprocess(lines("///#if 1", "a", "///#ifdef X", "b"))
        self.assertEqual(result.code, "a")
        self.assertEqual(len(result.errors), 2)
        self.assertEqual(
            [e.position.line for e in result.errors],
            [1, 3],
        )
        for error in result.errors:
            self.assertIsInstance(error, DirectiveStructureError)

    def test_ifdef_operand(self):
        """Check #ifdef requires a single identifier"""
        for operand in ["", "A B", "1"]:
            source = lines(
                "///#define A",
                f"///#ifdef {operand}",
                "x",
                "///#endif",
            )
            result = preprocess(source)
            self.assertEqual(result.code, "", operand)
            self.assertEqual(len(result.errors), 1, operand)
            self.assertIsInstance(result.errors[0], DirectiveStructureError)

    def test_condition_errors(self):
        """Check a condition with errors is false"""
        result = preprocess(lines("///#if 1 / 0", "x", "///#endif"))
        self.assertEqual(result.code, "")
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], EvaluationError)
        self.assertEqual(str(result.errors[0].position), "1:8")

        result = preprocess(lines("///#if UNDEFINED || 1", "x", "///#endif"))
        self.assertEqual(result.code, "")
        self.assertEqual(len(result.errors), 1)

        result = preprocess(
            lines("///#if (1", "x", "///#else", "y", "///#endif"),
        )
        self.assertEqual(result.code, "y")
        self.assertEqual(len(result.errors), 1)

    def test_conditional_short_circuit(self):
        """Check ?: and && in conditions"""
        source = lines(
            "///#if 0 ? (1 / 0) : 1",
            "ternary",
            "///#endif",
            "///#if 0 && (1 / 0)",
            "logical",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "ternary")
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].position.line, 4)

    def test_condition_nesting(self):
        """Check deeply nested conditions are errors, not crashes"""
        source = lines(
            "///#if " + "(" * 400 + "1" + ")" * 400,
            "a",
            "///#else",
            "b",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "b")
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], ParseError)
        self.assertEqual(result.errors[0].position.line, 1)

        source = lines(
            "///#if 1" + " + 1" * 1000 + " == 1001",
            "a",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "a")
        self.assertEqual(result.errors, [])

    def test_macro_errors(self):
        """Check registry errors are reported before line errors"""
        source = lines(
            "///#define SELF SELF + 1",
            "///#define N 1",
            "///#define N 2",
            "///#if N == 1",
            "first",
            "///#endif",
            "///#endif",
        )
        result = preprocess(source)
        self.assertEqual(result.code, "first")
        self.assertEqual(
            [type(e) for e in result.errors],
            [
                MacroDefinitionError,
                CircularDependencyError,
                DirectiveStructureError,
            ],
        )

    def test_predefined(self):
        """Check predefined macros"""
        source = lines(
            "///#define N 1",
            "///#ifdef DEBUG",
            "debug",
            "///#endif",
            "///#if N == 2",
            "two",
            "///#endif",
        )
        result = preprocess(source, defines=["DEBUG", "N=2"])
        self.assertEqual(result.code, lines("debug", "two"))
        self.assertEqual(result.errors, [])

    def test_aliases(self):
        """Check custom directive prefixes"""
        source = lines(
            "#define A 1",
            "#if A",
            "x",
            "#elif 1",
            "y",
            "#endif",
            "///#if 0",
        )
        result = preprocess(source, aliases=DirectiveAliases.from_prefix("#"))
        self.assertEqual(result.code, lines("x", "///#if 0"))
        self.assertEqual(result.errors, [])


if __name__ == "__main__":
    unittest.main()
