"""Abstract syntax tree of the Kaleidoscope language.

The node set is closed: an expression is a NumberLiteral, VariableRef, Call or BinaryOp; a Prototype declares a
function and a FunctionDef gives it a single body expression. Consumers (printer.py, codegen.py) match on node type
exhaustively instead of relying on methods of the nodes.

Nodes are immutable, so a tree can be shared between consumers without copying.
"""

from dataclasses import dataclass
from typing import Tuple, Union


@dataclass(frozen=True)
class NumberLiteral:
    value: float


@dataclass(frozen=True)
class VariableRef:
    name: str


@dataclass(frozen=True)
class Call:
    callee: str
    args: Tuple["Expression", ...] = ()


@dataclass(frozen=True)
class BinaryOp:
    op: str
    lhs: "Expression"
    rhs: "Expression"


@dataclass(frozen=True)
class Prototype:
    """Function name and parameter names. All parameters (and the result) are floats."""
    name: str
    params: Tuple[str, ...] = ()

    @property
    def arity(self):
        return len(self.params)


@dataclass(frozen=True)
class FunctionDef:
    """A top-level expression is a FunctionDef whose prototype has an empty name and no parameters."""
    proto: Prototype
    body: "Expression"

    @property
    def is_anonymous(self):
        return self.proto.name == ""


Expression = Union[NumberLiteral, VariableRef, Call, BinaryOp]


def anonymous(body):
    """Wraps body in the zero-parameter, empty-named function used for top-level expressions."""
    return FunctionDef(Prototype("", ()), body)
