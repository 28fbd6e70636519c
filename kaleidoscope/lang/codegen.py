"""Code generation for the Kaleidoscope language: lowers syntax trees into backend IR.

The backend is anything with the JITBackend interface (see kaleidoscope/backend/jit.py). All state of the function
being generated lives in a GenerationContext that is passed through the lowering calls, so a CodeGenerator holds no
per-function state between calls.
"""

from dataclasses import dataclass, field

from kaleidoscope.lang.error import (ArityMismatch, InvalidOperator, RedefinitionError, UndefinedFunction,
                                     UndefinedReference, VerificationFailure)
from kaleidoscope.lang.tree import BinaryOp, Call, FunctionDef, NumberLiteral, Prototype, VariableRef


BINARY_OPS = frozenset("+-*/<>")


@dataclass
class GenerationContext:
    """Generation state of one function body: the function and its parameter bindings (name: IR value)."""
    backend: object
    function: object
    symbols: dict = field(default_factory=dict)


def _display_name(name):
    return name if name else "<anonymous>"


class CodeGenerator:

    def __init__(self, backend, optimize=True):
        self.backend = backend
        self.optimize = optimize

    def generate(self, node):
        """Generates a Prototype (declaration) or FunctionDef (definition). Returns the backend function handle."""
        if isinstance(node, FunctionDef):
            return self.generate_function(node)
        if isinstance(node, Prototype):
            return self.generate_prototype(node)
        raise TypeError(f"cannot generate code for {type(node).__name__} outside of a function")

    def generate_prototype(self, proto):
        seen = set()
        for param in proto.params:
            if param in seen:
                raise RedefinitionError("duplicate parameter '{}' in prototype of '{}'",
                                        (param, _display_name(proto.name)))
            seen.add(param)

        existing = self.backend.lookup_function(proto.name)
        if existing is not None and existing.arity != proto.arity:
            raise RedefinitionError("'{}' was declared with {} parameter(s), not {}",
                                    (_display_name(proto.name), str(existing.arity), str(proto.arity)))

        return self.backend.declare_or_define_function(proto.name, proto.params)

    def generate_function(self, node):
        proto = node.proto
        existing = self.backend.lookup_function(proto.name)
        if existing is not None and existing.defined:
            raise RedefinitionError("function '{}' cannot be redefined", _display_name(proto.name))
        previous_params = existing.params if existing is not None else None

        handle = self.generate_prototype(proto)
        try:
            context = GenerationContext(self.backend, handle)
            for name, value in zip(proto.params, self.backend.append_entry_block(handle)):
                context.symbols[name] = value

            self.backend.emit_return(self.lower(node.body, context))

            if not self.backend.verify(handle):
                raise VerificationFailure("generated code for '{}' failed verification", _display_name(proto.name))
            if self.optimize:
                self.backend.optimize(handle)
        except Exception:
            # a failed body must not stay in the module; an earlier extern stays declared
            self.backend.erase_function(handle)
            if previous_params is not None:
                self.backend.declare_or_define_function(proto.name, previous_params)
            raise

        return handle

    def lower(self, node, context):
        """Lowers an expression to an IR value of the function in context."""
        if isinstance(node, NumberLiteral):
            return context.backend.emit_constant(node.value)

        if isinstance(node, VariableRef):
            try:
                return context.symbols[node.name]
            except KeyError:
                raise UndefinedReference("undefined reference '{}'", node.name) from None

        if isinstance(node, Call):
            callee = context.backend.lookup_function(node.callee)
            if callee is None:
                raise UndefinedFunction("undefined function '{}'", node.callee)
            if len(node.args) != callee.arity:
                raise ArityMismatch("'{}' expects {} argument(s), got {}",
                                    (node.callee, str(callee.arity), str(len(node.args))))

            args = [self.lower(arg, context) for arg in node.args]
            return context.backend.emit_call(callee, args)

        if isinstance(node, BinaryOp):
            lhs = self.lower(node.lhs, context)
            rhs = self.lower(node.rhs, context)
            if node.op not in BINARY_OPS:
                raise InvalidOperator("invalid binary operator '{}'", node.op)
            return context.backend.emit_binary_op(node.op, lhs, rhs)

        raise TypeError(f"cannot lower {type(node).__name__}")
