"""llvmlite backend for the Kaleidoscope code generator: IR construction, verification, optimization and MCJIT
execution.

Every function body is built in its own compilation unit (an llvmlite.ir.Module holding the body plus a declaration
of every other known function). Once verified and optimized, the unit is kept as a parsed llvmlite.binding module.
The session module is the link of all units with the remaining declarations, so erasing a function from the module is
just dropping its unit.
"""

import ctypes
import ctypes.util
import threading

import llvmlite.binding as llvm
from llvmlite import ir

from kaleidoscope.lang.error import InvalidOperator, UndefinedFunction


ANONYMOUS_SYMBOL = "__anon_expr"  # symbol of the empty-named function that wraps top-level expressions
DOUBLE = ir.DoubleType()

_init_lock = threading.Lock()
_initialized = False


def initialize_native_target():
    """One-time LLVM native target setup, shared by every backend in the process."""
    global _initialized
    with _init_lock:
        if not _initialized:
            llvm.initialize_native_target()
            llvm.initialize_native_asmprinter()
            _initialized = True


def _runtime_libraries():
    """C libraries searched for extern symbols: the process itself and libm."""
    libraries = []
    for name in (None, ctypes.util.find_library("m")):
        try:
            libraries.append(ctypes.CDLL(name))
        except (OSError, TypeError):
            continue
    return libraries


class FunctionHandle:
    """A function of the session module. module is the verified (and optimized) compilation unit, None while the
    function is only declared. function is the llvmlite.ir.Function of the unit under construction.
    """

    def __init__(self, name, params):
        self.name = name
        self.params = tuple(params)
        self.unit = None
        self.function = None
        self.module = None
        self.callees = set()

    @property
    def symbol(self):
        return self.name or ANONYMOUS_SYMBOL

    @property
    def arity(self):
        return len(self.params)

    @property
    def defined(self):
        return self.module is not None or self.unit is not None

    def __repr__(self):
        return f"FunctionHandle({self.name!r}, {self.params!r})"


class JITBackend:
    """Backend collaborator of CodeGenerator. Only one function body is under construction at a time."""

    def __init__(self, name="kaleidoscope", opt_level=2):
        initialize_native_target()

        self.name = name
        self.opt_level = opt_level
        self.functions = {}  # symbol: FunctionHandle, in declaration order

        self.triple = llvm.get_process_triple()
        self.target = llvm.Target.from_triple(self.triple)
        self.target_machine = self.target.create_target_machine()

        self._builder = None
        self._current = None
        self._libraries = _runtime_libraries()

    def _new_module(self, name):
        module = ir.Module(name=name)
        module.triple = self.triple
        module.data_layout = str(self.target_machine.target_data)
        return module

    @staticmethod
    def _declare(module, handle):
        fnty = ir.FunctionType(DOUBLE, [DOUBLE] * handle.arity)
        function = ir.Function(module, fnty, name=handle.symbol)
        for arg, param in zip(function.args, handle.params):
            arg.name = param
        return function

    def lookup_function(self, name):
        return self.functions.get(name or ANONYMOUS_SYMBOL)

    def declare_or_define_function(self, name, params):
        """Returns the handle of name, declaring it if needed. An existing handle takes the new parameter names."""
        handle = self.lookup_function(name)
        if handle is None:
            handle = FunctionHandle(name, params)
            self.functions[handle.symbol] = handle
        else:
            handle.params = tuple(params)
        return handle

    def append_entry_block(self, handle):
        """Starts the body of handle in a fresh compilation unit. Returns the parameter values, in order."""
        unit = self._new_module(f"{self.name}.{handle.symbol}")
        for other in self.functions.values():
            if other is not handle:
                self._declare(unit, other)

        handle.unit = unit
        handle.function = self._declare(unit, handle)
        handle.callees = set()
        self._current = handle
        self._builder = ir.IRBuilder(handle.function.append_basic_block(name="entry"))
        return list(handle.function.args)

    def emit_constant(self, value):
        return ir.Constant(DOUBLE, value)

    def emit_binary_op(self, op, lhs, rhs):
        builder = self._builder
        if op == "+":
            return builder.fadd(lhs, rhs, name="addtmp")
        if op == "-":
            return builder.fsub(lhs, rhs, name="subtmp")
        if op == "*":
            return builder.fmul(lhs, rhs, name="multmp")
        if op == "/":
            return builder.fdiv(lhs, rhs, name="divtmp")
        if op == "<":
            cmp = builder.fcmp_ordered("<", lhs, rhs, name="cmptmp")
            return builder.uitofp(cmp, DOUBLE, name="booltmp")
        if op == ">":
            cmp = builder.fcmp_unordered(">", lhs, rhs, name="cmptmp")
            return builder.uitofp(cmp, DOUBLE, name="booltmp")
        raise InvalidOperator("invalid binary operator '{}'", op)

    def emit_call(self, callee, args):
        self._current.callees.add(callee.symbol)
        function = self._current.unit.get_global(callee.symbol)
        return self._builder.call(function, args, name="calltmp")

    def emit_return(self, value):
        self._builder.ret(value)
        self._builder = None
        self._current = None

    def verify(self, handle):
        """Parses and verifies the unit of handle. On success the unit becomes the function's module."""
        try:
            module = llvm.parse_assembly(str(handle.unit))
            module.verify()
        except RuntimeError:
            return False

        handle.module = module
        handle.unit = None
        handle.function = None
        return True

    def optimize(self, handle):
        """Runs the function simplification pipeline of the configured speed level on the body of handle."""
        tuning = llvm.create_pipeline_tuning_options(speed_level=self.opt_level)
        pass_builder = llvm.create_pass_builder(self.target_machine, tuning)
        pass_manager = pass_builder.getFunctionPassManager()
        pass_manager.run(handle.module.get_function(handle.symbol), pass_builder)

    def erase_function(self, handle):
        if self.functions.get(handle.symbol) is handle:
            del self.functions[handle.symbol]
        if self._current is handle:
            self._builder = None
            self._current = None
        handle.unit = None
        handle.function = None
        handle.module = None

    def function_ir(self, handle):
        if handle.module is not None:
            return str(handle.module.get_function(handle.symbol))
        return str(self._declare(self._new_module(self.name), handle))

    def _link(self, handles):
        """Links the units of handles, plus declarations of the ones without a body, into one module."""
        declarations = self._new_module(self.name)
        for handle in handles:
            if handle.module is None:
                self._declare(declarations, handle)

        linked = llvm.parse_assembly(str(declarations))
        linked.name = self.name
        for handle in handles:
            if handle.module is not None:
                linked.link_in(llvm.parse_assembly(str(handle.module)))
        return linked

    def module_dump(self):
        return str(self._link(list(self.functions.values())))

    def _resolve_external(self, symbol):
        if llvm.address_of_symbol(symbol) is not None:
            return True
        for library in self._libraries:
            try:
                address = ctypes.cast(getattr(library, symbol), ctypes.c_void_p).value
            except AttributeError:
                continue
            llvm.add_symbol(symbol, address)
            return True
        return False

    def _reachable(self, handle):
        """Functions reachable from handle through calls. Those without a body must resolve to a symbol of the
        running process, since MCJIT aborts the process on an unresolved symbol.
        """
        reachable = {}
        pending = [handle.symbol]
        while pending:
            symbol = pending.pop()
            if symbol in reachable:
                continue

            function = self.functions.get(symbol)
            if function is None:
                raise UndefinedFunction("undefined function '{}'", symbol)
            if function.module is not None:
                pending.extend(function.callees)
            elif not self._resolve_external(symbol):
                raise UndefinedFunction("extern '{}' could not be resolved", symbol)
            reachable[symbol] = function

        return list(reachable.values())

    def invoke(self, handle, *args):
        """JIT-compiles handle and everything it calls, then calls it with args. Returns the float result."""
        if len(args) != handle.arity:
            raise TypeError(f"{handle.symbol} expects {handle.arity} argument(s), got {len(args)}")

        module = self._link(self._reachable(handle))
        # the engine takes ownership of its target machine
        with llvm.create_mcjit_compiler(module, self.target.create_target_machine()) as engine:
            engine.finalize_object()
            address = engine.get_function_address(handle.symbol)
            cfunc = ctypes.CFUNCTYPE(ctypes.c_double, *[ctypes.c_double] * handle.arity)(address)
            return cfunc(*(float(arg) for arg in args))
