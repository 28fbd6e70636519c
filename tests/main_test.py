import argparse
import contextlib
import io
import os
import tempfile
import unittest

from kaleidoscope.main import binop, build_arg_parser, build_config, main


class ArgumentsTestCase(unittest.TestCase):

    def test_binop(self):
        self.assertEqual(("^", 30), binop("^=30"))
        self.assertEqual(("+", -1), binop("+=-1"))

        should_raise = ["^", "^^=3", "=3", "^=x", "^="]
        for case in should_raise:
            self.assertRaises(argparse.ArgumentTypeError, binop, case)

    def test_build_config(self):
        args = build_arg_parser().parse_args(["--binop", "%=40", "--binop", "+=50", "--no-optimize",
                                              "--opt-level", "1", "--dump-ast"])
        config = build_config(args)
        self.assertEqual(40, config.precedence["%"])
        self.assertEqual(50, config.precedence["+"])
        self.assertEqual(40, config.precedence["*"])
        self.assertFalse(config.optimize)
        self.assertEqual(1, config.opt_level)
        self.assertTrue(config.dump_ast)
        self.assertTrue(config.codegen)

    def test_defaults(self):
        config = build_config(build_arg_parser().parse_args([]))
        self.assertTrue(config.codegen)
        self.assertTrue(config.optimize)
        self.assertEqual(2, config.opt_level)
        self.assertFalse(config.prompt)


class MainTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def source(self, text):
        path = os.path.join(self.tmp.name, "input.ks")
        with open(path, "w") as f:
            f.write(text)
        return path

    def run_main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            status = main(argv)
        return status, out.getvalue(), err.getvalue()

    def test_run_file(self):
        status, out, err = self.run_main([self.source("def f(x) x*2;\nf(4);\n")])
        self.assertEqual(0, status)
        self.assertEqual("", out)
        self.assertIn("Read function definition:", err)
        self.assertIn("Evaluated to 8.0", err)

    def test_errors_set_exit_status(self):
        path = self.source("f(1);\n2;\n")
        status, __, err = self.run_main([path])
        self.assertEqual(1, status)
        self.assertIn(path + ": ", err)
        self.assertIn("undefined function", err)
        self.assertIn("Evaluated to 2.0", err)

    def test_dump_tokens(self):
        status, out, __ = self.run_main(["--dump-tokens", self.source("def f(x) x")])
        self.assertEqual(0, status)
        self.assertEqual(["(def, def)", "(identifier, f)", "(char, ()", "(identifier, x)", "(char, ))",
                          "(identifier, x)", "(end, 0)"], out.splitlines())

    def test_parse_only(self):
        status, out, err = self.run_main(["--no-codegen", "--dump-ast", self.source("def f(x) x")])
        self.assertEqual(0, status)
        self.assertEqual("(def (f x)\n  x)\n", out)
        self.assertNotIn("Read function definition:", err)

    def test_binop_option(self):
        status, __, err = self.run_main(["--binop", "+=50", self.source("2 * 3 + 4")])
        self.assertEqual(0, status)
        self.assertIn("Evaluated to 14.0", err)

    def test_dump_module(self):
        status, __, err = self.run_main(["--dump-module", self.source("def f(x) x")])
        self.assertEqual(0, status)
        self.assertIn("define double @f", err)

    def test_missing_file(self):
        with contextlib.redirect_stderr(io.StringIO()) as err:
            with self.assertRaises(SystemExit) as context:
                main([os.path.join(self.tmp.name, "missing.ks")])
        self.assertEqual(1, context.exception.code)
        self.assertIn("could not be opened", err.getvalue())


if __name__ == '__main__':
    unittest.main()
