import unittest

from kaleidoscope.backend.jit import ANONYMOUS_SYMBOL, JITBackend
from kaleidoscope.lang.error import InvalidOperator, UndefinedFunction


class JITBackendTestCase(unittest.TestCase):

    def setUp(self):
        self.backend = JITBackend()

    def build(self, name, params, emit):
        """Defines name with the body returned by emit(params values)."""
        handle = self.backend.declare_or_define_function(name, params)
        args = self.backend.append_entry_block(handle)
        self.backend.emit_return(emit(*args))
        self.assertTrue(self.backend.verify(handle))
        return handle

    def test_declaration(self):
        handle = self.backend.declare_or_define_function("sin", ("x",))
        self.assertFalse(handle.defined)
        self.assertEqual(1, handle.arity)
        self.assertIs(handle, self.backend.lookup_function("sin"))
        self.assertIn("declare double", self.backend.function_ir(handle))
        self.assertIn("sin", self.backend.module_dump())

    def test_anonymous_symbol(self):
        handle = self.backend.declare_or_define_function("", ())
        self.assertEqual(ANONYMOUS_SYMBOL, handle.symbol)
        self.assertIs(handle, self.backend.lookup_function(""))

    def test_binary_ops(self):
        cases = {"+": 8.0, "-": 4.0, "*": 12.0, "/": 3.0, "<": 0.0, ">": 1.0}
        for op, expected in cases.items():
            handle = self.build(f"op{ord(op)}", ("a", "b"), lambda a, b: self.backend.emit_binary_op(op, a, b))
            self.assertEqual(expected, self.backend.invoke(handle, 6, 2), op)

    def test_invalid_operator(self):
        handle = self.backend.declare_or_define_function("f", ("a",))
        a, = self.backend.append_entry_block(handle)
        self.assertRaises(InvalidOperator, self.backend.emit_binary_op, "%", a, a)

    def test_call_and_optimize(self):
        double = self.build("double", ("x",), lambda x: self.backend.emit_binary_op("+", x, x))
        self.backend.optimize(double)

        quad = self.build("quad", ("x",), lambda x: self.backend.emit_call(double, [self.backend.emit_call(double, [x])]))
        self.assertEqual({"double"}, quad.callees)
        self.assertEqual(20.0, self.backend.invoke(quad, 5))
        self.assertIn("define double @quad", self.backend.module_dump())

    def test_verify_rejects_missing_terminator(self):
        handle = self.backend.declare_or_define_function("broken", ())
        self.backend.append_entry_block(handle)
        self.assertFalse(self.backend.verify(handle))

    def test_erase_function(self):
        handle = self.build("gone", (), lambda: self.backend.emit_constant(1.0))
        self.backend.erase_function(handle)
        self.assertIsNone(self.backend.lookup_function("gone"))
        self.assertNotIn("gone", self.backend.module_dump())

    def test_unresolved_extern(self):
        missing = self.backend.declare_or_define_function("kaleidoscope_no_such_symbol", ("x",))
        handle = self.build("caller", (), lambda: self.backend.emit_call(missing, [self.backend.emit_constant(1.0)]))
        self.assertRaises(UndefinedFunction, self.backend.invoke, handle)

    def test_unreachable_extern_does_not_matter(self):
        missing = self.backend.declare_or_define_function("kaleidoscope_no_such_symbol", ("x",))
        self.build("caller", ("x",), lambda x: self.backend.emit_call(missing, [x]))
        handle = self.build("answer", (), lambda: self.backend.emit_constant(42.0))
        self.assertEqual(42.0, self.backend.invoke(handle))

    def test_invoke_checks_argument_count(self):
        handle = self.build("id", ("x",), lambda x: x)
        self.assertRaises(TypeError, self.backend.invoke, handle)


if __name__ == '__main__':
    unittest.main()
