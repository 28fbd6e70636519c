"""Handles interactive mode for the Kaleidoscope REPL. Uses cmd as backend."""

import cmd

from kaleidoscope.lang.lexical import Lexer


class Shell(cmd.Cmd):
    """Kaleidoscope interpreter shell."""
    intro = "Kaleidoscope :: LLVM JIT backend\nType '?' or 'help' for more information."
    prompt = "ready> "
    secondary_prompt = "...> "  # used for line continuations
    _tmp_prompt = "ready> "     # also used for prompt swapping in line continuations
    commands = frozenset(("dump", "help", "exit", "EOF"))

    def __init__(self, sess, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sess = sess
        self._tmp_line = ""

    def onecmd(self, line):
        """Only a line made of a single command word is a command, everything else is Kaleidoscope source (a
        function may be called dump). While a statement is pending, only end of input is a command.
        """
        line = line.strip()
        if not line:
            return self.emptyline()
        if line == "EOF" or (line in Shell.commands and not self._tmp_line):
            return super().onecmd(line)
        self.default(line)
        return False

    def default(self, line):
        """Runs the complete statements typed so far. An unfinished statement waits for the next line."""
        self._tmp_line = self.sess.run_source(self._tmp_line + line + "\n")

        if self._tmp_line:
            self.prompt = self.secondary_prompt
        else:
            self.prompt = self._tmp_prompt

    def do_help(self, arg):
        """Doesnt return docs, but rather a short intro."""
        print("Welcome to the Kaleidoscope REPL!\n\n"
              "Kaleidoscope has one type, the 64-bit float, and three kinds of statements:\n"
              "  def NAME(ARG ...) EXPR      defines a function\n"
              "  extern NAME(ARG ...)        declares a function of the C runtime, e.g. 'extern sin(x)'\n"
              "  EXPR                        evaluates an expression right away\n\n"
              "Expressions are numbers, parameters, calls and the operators < > + - * /. A statement\n"
              "may span several lines; an empty line abandons an unfinished one. Type 'dump' to see\n"
              "the IR of everything defined so far and 'exit' to quit.")

    def do_dump(self, arg):
        """Prints the IR of the module."""
        if self.sess.backend is not None:
            print(self.sess.backend.module_dump())

    def emptyline(self):
        """Do not repeat previous command on empty line; an unfinished statement is reported and dropped."""
        if self._tmp_line:
            self.sess.run(Lexer(self._tmp_line))
            self._tmp_line = ""
            self.prompt = self._tmp_prompt
        return False

    def do_EOF(self, arg):
        """Exits interpreter."""
        print()
        return self.do_exit(arg)

    def do_exit(self, arg):
        """Exits interpreter."""
        self.sess.finish()
        return True
