"""Session control for the Kaleidoscope language: the REPL driving loop, either over a whole character stream (file,
pipe) or over chunks of text fed by the interactive shell.

Each top-level statement is handled on its own: a failing statement is reported through the ErrorHandler and
skipped, and the loop carries on with the next one.
"""

from dataclasses import dataclass, field
from enum import Enum
import sys

from kaleidoscope.lang.codegen import CodeGenerator
from kaleidoscope.lang.error import ParseError
from kaleidoscope.lang.lexical import Lexer, TokenKind
from kaleidoscope.lang.parser import DEFAULT_PRECEDENCE, Parser
from kaleidoscope.lang.printer import render


@dataclass
class Config:
    """Options of a session, filled in from the command line by main."""
    dump_ast: bool = False
    emit_ir: bool = False
    dump_module: bool = False
    codegen: bool = True
    optimize: bool = True
    opt_level: int = 2
    prompt: bool = False
    precedence: dict = field(default_factory=lambda: dict(DEFAULT_PRECEDENCE))


class State(Enum):
    AWAITING_TOP_LEVEL = "awaiting top level"
    DONE = "done"


class Session:
    """Governs a Kaleidoscope session: the functions defined so far live in the backend and persist across runs."""
    PROMPT = "ready> "

    def __init__(self, error_handler, backend=None, config=None, out=None, err=None):
        self.error_handler = error_handler
        self.error_handler.fatal = False  # errors only abort the statement that raised them

        self.backend = backend
        self.config = config if config is not None else Config()
        self.generator = CodeGenerator(backend, optimize=self.config.optimize) if backend is not None else None

        self.out = out  # AST dumps
        self.err = err  # prompts, status, IR

        self.parser = None
        self.state = State.DONE
        self.resumable = False  # whether an incomplete final statement is kept for more input
        self.tail_offset = None
        self.results = []  # values of evaluated top-level expressions

    def _write(self, text, stream):
        print(text, file=stream if stream is not None else sys.stderr, flush=True)

    def status(self, text):
        self._write(text, self.err)

    def _prompt(self):
        if self.config.prompt:
            stream = self.err if self.err is not None else sys.stderr
            stream.write(Session.PROMPT)
            stream.flush()

    def run(self, lexer):
        """Runs every statement of lexer's source until end of input."""
        self.error_handler.register_lexer(lexer)
        self.parser = Parser(lexer, self.config.precedence)
        self.tail_offset = None

        self._prompt()
        self.parser.advance()
        self.main_loop()

    def run_source(self, text):
        """Runs the complete statements of text. Returns the text of a trailing incomplete statement, if any, so that
        it can be completed by more input.
        """
        self.resumable = True
        try:
            self.run(Lexer(text))
        finally:
            self.resumable = False

        if self.tail_offset is None:
            return ""
        return text[self.tail_offset:]

    def main_loop(self):
        self.state = State.AWAITING_TOP_LEVEL
        while self.state is State.AWAITING_TOP_LEVEL:
            self.step()

    def step(self):
        """Classifies the current token and handles one top-level statement."""
        token = self.parser.current
        if token.kind is TokenKind.EOF:
            self.state = State.DONE
            return

        if token.kind is TokenKind.DEF:
            self.handle_definition()
        elif token.kind is TokenKind.EXTERN:
            self.handle_extern()
        elif token.is_char(";"):
            self.parser.advance()
        else:
            self.handle_top_level_expression()

        if self.state is State.AWAITING_TOP_LEVEL:
            self._prompt()

    def _parse(self, parse):
        """Calls parse. On failure the error is reported and exactly one token is skipped, and None is returned."""
        start = self.parser.current
        with self.error_handler:
            try:
                return parse()
            except ParseError as error:
                if not (error.incomplete and self.resumable):
                    raise
                # keep the statement for more input instead of reporting it
                self.tail_offset = start.loc.offset
                self.state = State.DONE
                return None

        self.parser.advance()
        return None

    def _dump(self, node):
        if self.config.dump_ast:
            self._write(render(node), self.out if self.out is not None else sys.stdout)

    def _report(self, title, handle):
        self.status(title)
        if self.config.emit_ir:
            self.status(self.backend.function_ir(handle))

    def handle_definition(self):
        function = self._parse(self.parser.parse_definition)
        if function is None:
            return

        self._dump(function)
        if self.generator is None:
            return
        with self.error_handler:
            handle = self.generator.generate(function)
            self._report("Read function definition:", handle)

    def handle_extern(self):
        proto = self._parse(self.parser.parse_extern)
        if proto is None:
            return

        self._dump(proto)
        if self.generator is None:
            return
        with self.error_handler:
            if self.backend.lookup_function(proto.name) is not None:
                self.error_handler.warn("'{}' is already declared", proto.name)
            handle = self.generator.generate(proto)
            self._report("Read extern:", handle)

    def handle_top_level_expression(self):
        function = self._parse(self.parser.parse_top_level_expr)
        if function is None:
            return

        self._dump(function)
        if self.generator is None:
            return
        with self.error_handler:
            handle = self.generator.generate(function)
            try:
                if self.config.emit_ir:
                    self.status(self.backend.function_ir(handle))
                value = self.backend.invoke(handle)
            finally:
                # the anonymous function only exists to be evaluated once
                self.backend.erase_function(handle)

            self.results.append(value)
            self.status(f"Evaluated to {value}")

    def finish(self):
        """Called once the input is exhausted."""
        if self.config.dump_module and self.backend is not None:
            self.status(self.backend.module_dump())

    def pop(self):
        """Pops the most recent result."""
        return self.results.pop()
