"""Recursive descent parser for the Kaleidoscope language, with operator precedence climbing for binary expressions.

```
<primary>    ::= <number>
               | <identifier> ["(" [<expr> ("," <expr>)*] ")"]   ; variable or call
               | "(" <expr> ")"
<expr>       ::= <primary> (<binop> <primary>)*                  ; grouped by precedence, see parse_bin_op_rhs
<prototype>  ::= <identifier> "(" <identifier>* ")"
<definition> ::= "def" <prototype> <expr>
<external>   ::= "extern" <prototype>
<toplevel>   ::= <expr>                                          ; wrapped in an anonymous FunctionDef
```

Every failure raises a ParseError (or a LexError for a malformed number) at the offending token.
"""

from kaleidoscope.lang.error import LexError, ParseError
from kaleidoscope.lang.lexical import TokenKind
from kaleidoscope.lang.tree import BinaryOp, Call, FunctionDef, NumberLiteral, Prototype, VariableRef, anonymous


# higher binds tighter
DEFAULT_PRECEDENCE = {"<": 10, ">": 10, "+": 20, "-": 20, "*": 40, "/": 40}


class Parser:
    """Holds the current token, which is the only lookahead. advance must be called once before parsing starts."""

    def __init__(self, lexer, precedence=None):
        self.lexer = lexer
        self.precedence = dict(DEFAULT_PRECEDENCE if precedence is None else precedence)
        self.current = None

    def advance(self):
        self.current = self.lexer.next_token()
        return self.current

    def _error(self, msg):
        """Builds a ParseError pointing at the current token. msg may contain one '{}' for the token text."""
        token = self.current
        found = token.text if token.kind is not TokenKind.EOF else "end of input"
        return ParseError(msg, found, loc=token.loc, incomplete=token.kind is TokenKind.EOF)

    def token_precedence(self):
        """Precedence of the current token, or -1 if it is not a binary operator."""
        if self.current.kind is not TokenKind.CHAR:
            return -1
        prec = self.precedence.get(self.current.value, -1)
        return prec if prec > 0 else -1

    def parse_number_expr(self):
        result = NumberLiteral(self.current.value)
        self.advance()
        return result

    def parse_paren_expr(self):
        self.advance()  # eat "("
        expr = self.parse_expression()

        if not self.current.is_char(")"):
            raise self._error("expected ')', found '{}'")
        self.advance()
        return expr

    def parse_identifier_expr(self):
        name = self.current.value
        self.advance()

        if not self.current.is_char("("):
            return VariableRef(name)

        self.advance()  # eat "("
        args = []
        if not self.current.is_char(")"):
            while True:
                args.append(self.parse_expression())

                if self.current.is_char(")"):
                    break
                if not self.current.is_char(","):
                    raise self._error("expected ',' or ')' in argument list, found '{}'")
                self.advance()

        self.advance()  # eat ")"
        return Call(name, tuple(args))

    def parse_primary(self):
        kind = self.current.kind
        if kind is TokenKind.NUMBER:
            return self.parse_number_expr()
        if kind is TokenKind.IDENTIFIER:
            return self.parse_identifier_expr()
        if self.current.is_char("("):
            return self.parse_paren_expr()
        if kind is TokenKind.ERROR:
            raise LexError("malformed number '{}'", self.current.text, loc=self.current.loc)
        raise self._error("unknown token '{}' when expecting an expression")

    def parse_expression(self):
        lhs = self.parse_primary()
        return self.parse_bin_op_rhs(0, lhs)

    def parse_bin_op_rhs(self, min_prec, lhs):
        """Precedence climbing: folds operators of precedence >= min_prec into lhs. An operator that binds tighter
        than the one before it is absorbed into the right hand side first; equal precedence associates left.
        """
        while True:
            prec = self.token_precedence()
            if prec < min_prec:
                return lhs

            op = self.current.value
            self.advance()

            rhs = self.parse_primary()
            if self.token_precedence() > prec:
                rhs = self.parse_bin_op_rhs(prec + 1, rhs)

            lhs = BinaryOp(op, lhs, rhs)

    def parse_prototype(self):
        if self.current.kind is not TokenKind.IDENTIFIER:
            raise self._error("expected function name in prototype, found '{}'")
        name = self.current.value
        self.advance()

        if not self.current.is_char("("):
            raise self._error("expected '(' in prototype, found '{}'")

        params = []
        while self.advance().kind is TokenKind.IDENTIFIER:
            params.append(self.current.value)

        if not self.current.is_char(")"):
            raise self._error("expected ')' in prototype, found '{}'")
        self.advance()

        return Prototype(name, tuple(params))

    def parse_definition(self):
        self.advance()  # eat "def"
        proto = self.parse_prototype()
        return FunctionDef(proto, self.parse_expression())

    def parse_extern(self):
        self.advance()  # eat "extern"
        return self.parse_prototype()

    def parse_top_level_expr(self):
        return anonymous(self.parse_expression())
