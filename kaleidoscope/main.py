"""Runs Kaleidoscope source files, piped input or an interactive shell. Also uses the error handling context manager.
Called from the kaleidoscope console script.
"""

import argparse
import sys

from kaleidoscope.backend.jit import JITBackend
from kaleidoscope.lang.error import ErrorHandler, KaleidoscopeError
from kaleidoscope.lang.lexical import Lexer, format_token, read_chars
from kaleidoscope.lang.parser import DEFAULT_PRECEDENCE
from kaleidoscope.lang.session import Config, Session
from kaleidoscope.lang.shell import Shell


def binop(text):
    """argparse type of --binop: 'OP=PREC' with a single character operator and an integer precedence."""
    op, sep, prec = text.partition("=")
    if not sep or len(op) != 1:
        raise argparse.ArgumentTypeError(f"expected OP=PREC with a single character OP, got '{text}'")
    try:
        return op, int(prec)
    except ValueError:
        raise argparse.ArgumentTypeError(f"precedence of '{op}' must be an integer, got '{prec}'") from None


def build_arg_parser():
    parser = argparse.ArgumentParser(prog="kaleidoscope", description="Kaleidoscope REPL with an LLVM JIT backend.")
    parser.add_argument("file", help="file to run (if empty, reads standard input or starts the shell)", nargs="?")
    parser.add_argument("--dump-ast", action="store_true", help="pretty-print every parsed statement")
    parser.add_argument("--dump-tokens", action="store_true", help="print the token stream and exit")
    parser.add_argument("--emit-ir", action="store_true", help="print the IR of generated functions")
    parser.add_argument("--dump-module", action="store_true", help="print the module IR at end of input")
    parser.add_argument("--no-codegen", action="store_true", help="only parse (and print with --dump-ast)")
    parser.add_argument("--no-optimize", action="store_true", help="do not run the function optimizer")
    parser.add_argument("--opt-level", type=int, default=2, choices=range(4), help="optimizer speed level")
    parser.add_argument("--prompt", action="store_true", help="print a prompt before each statement")
    parser.add_argument("--binop", type=binop, action="append", default=[], metavar="OP=PREC",
                        help="set the precedence of a binary operator (repeatable)")
    return parser


def build_config(args):
    precedence = dict(DEFAULT_PRECEDENCE)
    precedence.update(args.binop)
    return Config(
        dump_ast=args.dump_ast,
        emit_ir=args.emit_ir,
        dump_module=args.dump_module,
        codegen=not args.no_codegen,
        optimize=not args.no_optimize,
        opt_level=args.opt_level,
        prompt=args.prompt,
        precedence=precedence,
    )


def _open(path):
    try:
        return open(path, "r")
    except OSError:
        raise KaleidoscopeError("'{}' could not be opened", path, diagnosis=False) from None


def run(args, config, stream, error_handler):
    if args.dump_tokens:
        for token in Lexer(read_chars(stream)).tokens():
            print(format_token(token))
        return 0

    backend = JITBackend(opt_level=config.opt_level) if config.codegen else None
    sess = Session(error_handler, backend, config)

    if args.file is None and stream.isatty():
        Shell(sess).cmdloop()
    else:
        sess.run(Lexer(read_chars(stream)))
        sess.finish()

    return 1 if error_handler.errors else 0


def main(argv=None):
    """Runs the Kaleidoscope interpreter. Returns the exit status: 1 if any statement failed."""
    with ErrorHandler() as error_handler:
        args = build_arg_parser().parse_args(argv)
        config = build_config(args)

        if args.file is None:
            return run(args, config, sys.stdin, error_handler)

        error_handler.register_file(args.file)
        with _open(args.file) as stream:
            return run(args, config, stream, error_handler)

    return 1


if __name__ == "__main__":
    sys.exit(main())
