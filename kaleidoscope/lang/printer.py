"""LISP-like pretty printer for Kaleidoscope syntax trees, and a reader for the printed form.

Format (two spaces of indentation per nesting level, one child per line):

```
(def (foo a b)
  (+
    a
    (bar
      b
      4.0)))
```

An extern is printed as `(extern (name a b))` and a top-level expression as a definition with an empty name,
`(def ()`. parse_lisp reads this form back, so that print -> read gives back an equal tree.
"""

import math
import re
import sys

from kaleidoscope.lang.error import ParseError
from kaleidoscope.lang.tree import BinaryOp, Call, FunctionDef, NumberLiteral, Prototype, VariableRef


INDENT = "  "
OVERFLOW = "1e999"  # a literal too large for a double reads back as inf


def format_number(value):
    return repr(value) if math.isfinite(value) else OVERFLOW


class LispPrinter:
    """Renders nodes to text. Has no state besides the current nesting depth, which is back to 0 after render."""

    def __init__(self):
        self.depth = 0

    def render(self, node):
        if isinstance(node, FunctionDef):
            return self.function(node)
        if isinstance(node, Prototype):
            return f"(extern {self.signature(node)})"
        return self.expression(node)

    def signature(self, proto):
        return "(" + " ".join((proto.name,) + proto.params) + ")"

    def function(self, node):
        self.depth += 1
        body = self.expression(node.body)
        self.depth -= 1
        return f"(def {self.signature(node.proto)}\n{body})"

    def expression(self, node):
        indent = INDENT * self.depth

        if isinstance(node, NumberLiteral):
            return indent + format_number(node.value)
        if isinstance(node, VariableRef):
            return indent + node.name
        if isinstance(node, Call):
            return indent + "(" + node.callee + self._children(node.args) + ")"
        if isinstance(node, BinaryOp):
            return indent + "(" + node.op + self._children((node.lhs, node.rhs)) + ")"

        raise TypeError(f"cannot print {type(node).__name__}")

    def _children(self, nodes):
        self.depth += 1
        text = "".join("\n" + self.expression(child) for child in nodes)
        self.depth -= 1
        return text


def render(node):
    return LispPrinter().render(node)


def print_ast(node, file=None):
    print(render(node), file=file if file is not None else sys.stdout)


TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")


def _read(tokens, pos):
    """Reads one s-expression starting at tokens[pos]. Returns (expression, next position)."""
    if pos >= len(tokens):
        raise ParseError("unexpected end of LISP form", incomplete=True)

    token = tokens[pos]
    if token == ")":
        raise ParseError("unexpected '{}' in LISP form", token)
    if token != "(":
        return token, pos + 1

    items = []
    pos += 1
    while pos < len(tokens) and tokens[pos] != ")":
        item, pos = _read(tokens, pos)
        items.append(item)
    if pos >= len(tokens):
        raise ParseError("expected ')' in LISP form", incomplete=True)
    return items, pos + 1


def _to_expression(form):
    if isinstance(form, str):
        if form[0].isdigit() or form[0] == ".":
            return NumberLiteral(float(form))
        return VariableRef(form)

    if not form:
        raise ParseError("empty list in LISP form")

    head, *rest = form
    if not isinstance(head, str):
        raise ParseError("expected operator or function name in LISP form")

    args = tuple(_to_expression(item) for item in rest)
    if head[0].isalpha():
        return Call(head, args)
    if len(args) != 2:
        raise ParseError("binary operator '{}' expects 2 operands", head)
    return BinaryOp(head, *args)


def _to_prototype(form):
    if isinstance(form, str) or not all(isinstance(item, str) for item in form):
        raise ParseError("malformed signature in LISP form")
    if not form:
        return Prototype("", ())
    return Prototype(form[0], tuple(form[1:]))


def parse_lisp(text):
    """Reads text produced by LispPrinter back into a node."""
    tokens = TOKEN_RE.findall(text)
    form, pos = _read(tokens, 0)
    if pos != len(tokens):
        raise ParseError("trailing text after LISP form")

    if isinstance(form, list) and form and form[0] == "def":
        if len(form) != 3:
            raise ParseError("'{}' expects a signature and a body", "def")
        return FunctionDef(_to_prototype(form[1]), _to_expression(form[2]))

    if isinstance(form, list) and form and form[0] == "extern":
        if len(form) != 2:
            raise ParseError("'{}' expects a signature", "extern")
        return _to_prototype(form[1])

    return _to_expression(form)
