import contextlib
import io
import unittest

from kaleidoscope.backend.jit import JITBackend
from kaleidoscope.lang.error import ErrorHandler
from kaleidoscope.lang.session import Session
from kaleidoscope.lang.shell import Shell


class ShellTestCase(unittest.TestCase):

    def setUp(self):
        self.errors = io.StringIO()
        self.status = io.StringIO()
        self.sess = Session(ErrorHandler(stream=self.errors), JITBackend(), err=self.status)
        self.shell = Shell(self.sess)

    def test_statements(self):
        self.shell.onecmd("def add(a b) a + b")
        self.shell.onecmd("add(1, 2); add(3, 4)")
        self.assertEqual([3.0, 7.0], self.sess.results)
        self.assertEqual(Shell.prompt, self.shell.prompt)

    def test_line_continuation(self):
        self.shell.onecmd("def twice(x)")
        self.assertEqual(Shell.secondary_prompt, self.shell.prompt)
        self.assertIsNone(self.sess.backend.lookup_function("twice"))

        self.shell.onecmd("  x * 2")
        self.assertEqual(Shell.prompt, self.shell.prompt)
        self.shell.onecmd("twice(")
        self.shell.onecmd("21)")
        self.assertEqual([42.0], self.sess.results)
        self.assertEqual(0, self.sess.error_handler.errors)

    def test_empty_line_drops_unfinished_statement(self):
        self.shell.onecmd("4 +")
        self.assertEqual(Shell.secondary_prompt, self.shell.prompt)

        self.shell.onecmd("")
        self.assertEqual(Shell.prompt, self.shell.prompt)
        self.assertEqual(1, self.sess.error_handler.errors)

        self.shell.onecmd("5")
        self.assertEqual([5.0], self.sess.results)

    def test_errors_do_not_stop_the_shell(self):
        self.shell.onecmd("nothere(1)")
        self.shell.onecmd("1 + 1")
        self.assertEqual(1, self.sess.error_handler.errors)
        self.assertEqual([2.0], self.sess.results)

    def test_dump_and_help(self):
        self.shell.onecmd("def f(x) x")
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            self.shell.onecmd("dump")
            self.shell.onecmd("help")
        self.assertIn("define double @f", out.getvalue())
        self.assertIn("Kaleidoscope", out.getvalue())

    def test_functions_named_like_commands(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            self.shell.onecmd("def dump(x) x * 2")
            self.assertFalse(self.shell.onecmd("dump(4)"))
            self.shell.onecmd("def help(exit) exit + 1")
            self.assertFalse(self.shell.onecmd("help(dump(1))"))
        self.assertEqual([8.0, 3.0], self.sess.results)
        self.assertEqual("", out.getvalue())
        self.assertEqual(0, self.sess.error_handler.errors)

    def test_command_words_continue_pending_statement(self):
        self.shell.onecmd("def twice(exit)")
        self.assertFalse(self.shell.onecmd("exit"))
        self.assertEqual(Shell.prompt, self.shell.prompt)
        self.assertTrue(self.sess.backend.lookup_function("twice").defined)

        self.shell.onecmd("twice(5)")
        self.assertEqual([5.0], self.sess.results)

    def test_question_mark_is_source(self):
        self.assertFalse(self.shell.onecmd("?"))
        self.assertEqual(1, self.sess.error_handler.errors)

    def test_exit(self):
        self.assertTrue(self.shell.onecmd("exit"))
        with contextlib.redirect_stdout(io.StringIO()):
            self.assertTrue(self.shell.onecmd("EOF"))


if __name__ == '__main__':
    unittest.main()
