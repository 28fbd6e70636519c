"""Error handling for the Kaleidoscope language. Only KaleidoscopeErrors should be encountered while a statement is
processed: if another type of error is raised and makes it all the way to ErrorHandler, it is assumed to be an internal
issue.
"""

import sys

from termcolor import colored


class KaleidoscopeError(Exception):
    """Templates an error message so that it can be used to throw a Kaleidoscope error. msg is a format string whose
    placeholders are filled with exprs (the offending snippets of source text).
    """

    def __init__(self, msg, exprs=None, loc=None, diagnosis=True, internal=False):
        if exprs is None:
            exprs = ""
        if isinstance(exprs, str):
            exprs = [exprs]

        self.plain_msg = msg.format(*exprs)
        self.msg = msg.format(*(colored(expr, attrs=["bold"]) for expr in exprs))  # color expr snippets
        self.expr = exprs[0]  # exprs[0] should be the offending snippet that caused the error

        self.loc = loc
        self.diagnosis = diagnosis
        self.internal = internal

        super().__init__(self.plain_msg)


class LexError(KaleidoscopeError):
    """Malformed numeric literal."""


class ParseError(KaleidoscopeError):
    """Unexpected token. incomplete is set when the unexpected token was the end of input, which means more input
    could still complete the statement.
    """

    def __init__(self, msg, exprs=None, loc=None, incomplete=False, **kwargs):
        super().__init__(msg, exprs, loc, **kwargs)
        self.incomplete = incomplete


class UndefinedReference(KaleidoscopeError):
    """Variable that is not a parameter of the function being generated."""


class UndefinedFunction(KaleidoscopeError):
    """Call to a function that was never declared (or cannot be resolved at run time)."""


class ArityMismatch(KaleidoscopeError):
    """Call with a different number of arguments than the callee declares."""


class InvalidOperator(KaleidoscopeError):
    """Binary operator the code generator cannot lower."""


class VerificationFailure(KaleidoscopeError):
    """Generated IR rejected by the backend verifier."""


class RedefinitionError(KaleidoscopeError):
    """Second body for a function, conflicting declaration or duplicate parameter."""


class ErrorHandler:
    """Context manager that will suppress Kaleidoscope errors and report them. A fatal handler exits on the first
    error, otherwise errors are counted and execution continues after the with block.
    """
    ERROR = "red"
    WARNING = "magenta"

    def __init__(self, fatal=True, stream=None):
        self.fatal = fatal
        self.stream = stream

        self.path = "<stdin>"
        self.lexer = None
        self.errors = 0

    def register_file(self, path):
        """Registers path, used as prefix of every message."""
        self.path = path

    def register_lexer(self, lexer):
        """Registers lexer so that offending source lines can be shown."""
        self.lexer = lexer

    def _print(self, text):
        print(text, file=self.stream if self.stream is not None else sys.stderr, flush=True)

    def _prefix(self, error):
        if error.loc is None:
            return colored(f"{self.path}: ", attrs=["bold"])
        return colored(f"{self.path}:{error.loc}: ", attrs=["bold"])

    @staticmethod
    def diagnose(error, line, warning=False):
        """Returns line with the offending part of error.expr highlighted, and a caret below it."""
        color = ErrorHandler.WARNING if warning else ErrorHandler.ERROR

        start = max(error.loc.col - 1, 0)
        end = start + max(len(error.expr), 1)

        diagnosis = "  " + line[:start]
        diagnosis += colored(line[start:end], color, attrs=["bold"])
        diagnosis += line[end:] + "\n"

        diagnosis += "  " + " " * start
        diagnosis += colored("^" + "~" * (end - start - 1), color, attrs=["bold"])

        return diagnosis

    def _diagnosis(self, error, warning=False):
        if error.internal or not error.diagnosis or error.loc is None or self.lexer is None:
            return None
        line = self.lexer.line_text(error.loc.line)
        if line is None:
            return None
        return ErrorHandler.diagnose(error, line, warning)

    def warn(self, *args, **kwargs):
        """Generates and prints warning message based on args (same signature as KaleidoscopeError)."""
        error = KaleidoscopeError(*args, **kwargs)

        warning_msg = self._prefix(error)
        warning_msg += colored("warning: ", ErrorHandler.WARNING, attrs=["bold"]) + error.msg
        self._print(warning_msg)

        diagnosis = self._diagnosis(error, warning=True)
        if diagnosis:
            self._print(diagnosis)

    def throw(self, error):
        """Reports error, a KaleidoscopeError. Exits if this handler is fatal."""
        self.errors += 1

        error_msg = self._prefix(error)
        if error.internal:
            error_msg += colored("[internal] ", ErrorHandler.ERROR, attrs=["bold"])
        error_msg += colored("error: ", ErrorHandler.ERROR, attrs=["bold"]) + error.msg
        self._print(error_msg)

        diagnosis = self._diagnosis(error)
        if diagnosis:
            self._print(diagnosis)

        if self.fatal:
            sys.exit(1)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        do_exit = False
        if exc_type is KeyboardInterrupt:
            self.throw(KaleidoscopeError("keyboard interrupt"))
        elif exc_type is SystemExit:
            do_exit = True
        elif exc_type is RecursionError:
            self.throw(KaleidoscopeError("expression nested too deeply, maximum recursion depth exceeded"))
        elif exc_type is not None and issubclass(exc_type, KaleidoscopeError):
            self.throw(exc_val)
        elif exc_type is not None:
            self.throw(KaleidoscopeError("unknown error: '{}'", f"{exc_type.__name__}: {exc_val}", internal=True))
            do_exit = True

        return not do_exit
