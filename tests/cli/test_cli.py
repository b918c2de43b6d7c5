# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause

import contextlib
import io
import json
import logging
import tempfile
import unittest
from pathlib import Path

from wgslpp.__main__ import main


class TestCommandLine(unittest.TestCase):
    """
    Test the command line front end.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.rootdir = Path(self.tmp.name)
        self.source = self.rootdir / "src"
        (self.source / "sub").mkdir(parents=True)
        self.shader = self.source / "a.wgsl"
        with open(self.shader, "w", encoding="utf-8") as f:
            f.write("///#define A 1\n///#if A\nx\n///#endif\n")
        with open(self.source / "sub" / "b.wgsl", "w", encoding="utf-8") as f:
            f.write("///#ifdef DEBUG\ndebug\n///#endif\nb")

    def tearDown(self):
        self.tmp.cleanup()

    def run_main(self, *args):
        stdout = io.StringIO()
        with contextlib.redirect_stdout(stdout):
            status = main([str(a) for a in args])
        return (status, stdout.getvalue())

    def test_stdout(self):
        """Check results are written to standard output"""
        status, output = self.run_main(self.shader)
        self.assertEqual(status, 0)
        self.assertEqual(output, "x\n\n")

    def test_diagnostics(self):
        """Check the exit status reflects diagnostics"""
        bad = self.rootdir / "bad.wgsl"
        with open(bad, "w", encoding="utf-8") as f:
            f.write("ok\n///#endif")
        status, output = self.run_main(bad)
        self.assertEqual(status, 1)
        self.assertEqual(output, "ok\n")

    def test_output_file(self):
        """Check a single result is written to the output file"""
        out = self.rootdir / "out" / "a.wgsl"
        status, output = self.run_main("-o", out, self.shader)
        self.assertEqual(status, 0)
        self.assertEqual(output, "")
        self.assertEqual(out.read_text(encoding="utf-8"), "x\n\n")

    def test_output_directory(self):
        """Check several results keep their relative location"""
        out = self.rootdir / "out"
        status, _ = self.run_main("-D", "DEBUG", "-o", out, self.source)
        self.assertEqual(status, 0)
        self.assertEqual(
            (out / "sub" / "b.wgsl").read_text(encoding="utf-8"),
            "debug\nb\n",
        )
        self.assertTrue((out / "a.wgsl").exists())

    def test_prefix(self):
        """Check the directive prefix option"""
        shader = self.rootdir / "c.wgsl"
        with open(shader, "w", encoding="utf-8") as f:
            f.write("#if 0\nhidden\n#endif\nshown")
        status, output = self.run_main("--prefix", "#", shader)
        self.assertEqual(status, 0)
        self.assertEqual(output, "shown\n")

    def test_aliases(self):
        """Check the alias file option"""
        aliases = self.rootdir / "aliases.json"
        with open(aliases, "w", encoding="utf-8") as f:
            json.dump({"ifdef": "//!ifdef", "endif": "//!endif"}, f)
        shader = self.rootdir / "d.wgsl"
        with open(shader, "w", encoding="utf-8") as f:
            f.write("//!ifdef MISSING\nhidden\n//!endif\nshown")
        status, output = self.run_main("--aliases", aliases, shader)
        self.assertEqual(status, 0)
        self.assertEqual(output, "shown\n")

    def test_invalid_arguments(self):
        """Check invalid arguments exit with a usage error"""
        empty = self.rootdir / "empty"
        empty.mkdir()
        invalid = [
            [self.rootdir / "missing.wgsl"],
            ["-D", "1BAD", self.shader],
            ["-D", "1BAD", empty],
            ["--aliases", self.rootdir / "missing.json", self.shader],
        ]
        for args in invalid:
            with contextlib.redirect_stderr(io.StringIO()):
                with self.assertRaises(SystemExit) as cm:
                    self.run_main(*args)
            self.assertEqual(cm.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
