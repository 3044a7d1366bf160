from __future__ import annotations

import importlib.util
import io
import math
import unittest
import warnings


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None

if JAX_AVAILABLE:
    from evalfunc_jax import Cell, CompileError, DegradedEvaluation, Formula, FormulaStateError


def _formula(source: str, **arguments) -> "Formula":
    f = Formula()
    for name, spec in arguments.items():
        f.define_argument(name, *spec)
    f.parse(source)
    return f


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for evaluator tests")
class EvaluatorArithmeticTests(unittest.TestCase):
    def test_literal_only_expressions(self) -> None:
        self.assertEqual(Formula("2*3+4").evaluate(), 10.0)
        self.assertEqual(Formula("(1+2)*3").evaluate(), 9.0)
        self.assertEqual(Formula("8-2-1").evaluate(), 5.0)
        self.assertEqual(Formula("8/2/2").evaluate(), 2.0)
        self.assertEqual(Formula("-2*-3").evaluate(), 6.0)

    def test_argument_binding(self) -> None:
        f = _formula("x*x", x=(1,))
        self.assertEqual(f.evaluate([3.0]), 9.0)
        self.assertEqual(f.evaluate([-2.0]), 4.0)

    def test_arguments_at_later_slots(self) -> None:
        f = _formula("x - y", x=(2,), y=(1,))
        self.assertEqual(f.evaluate([1.0, 5.0]), 4.0)

    def test_constants_and_default_pi(self) -> None:
        f = Formula()
        f.define_constant("c", 2.5)
        f.parse("c*2 + pi")
        self.assertAlmostEqual(f.evaluate(), 5.0 + math.pi)

    def test_ieee_division_and_domain_errors(self) -> None:
        self.assertEqual(Formula("1/0").evaluate(), math.inf)
        self.assertTrue(math.isnan(Formula("log(0-1)").evaluate()))
        self.assertTrue(math.isnan(Formula("sqrt(0-4)").evaluate()))

    def test_builtin_functions(self) -> None:
        f = _formula("sin(x)", x=(1,))
        self.assertAlmostEqual(f.evaluate([0.5]), math.sin(0.5))
        cases = {
            "cos(0)": 1.0,
            "tan(0)": 0.0,
            "atan(1)": math.pi / 4,
            "atan2(1, 1)": math.pi / 4,
            "atan2(1, 0-1)": 3 * math.pi / 4,
            "exp(log(2))": 2.0,
            "abs(0-2)": 2.0,
            "sign(0-3)": -1.0,
            "sign(0)": 0.0,
            "sqrt(9)": 3.0,
            "step(0-1)": 0.0,
            "step(0)": 1.0,
            "step(2)": 1.0,
            "besselj0(0)": 1.0,
            "besselj1(0)": 0.0,
            "bessely0(1)": 0.08825696421567697,
            "bessely1(1)": -0.7812128213002887,
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                self.assertAlmostEqual(Formula(source).evaluate(), expected, places=12)

    def test_late_binding_of_external_cells(self) -> None:
        g = Cell(1.0)
        f = Formula()
        f.define_variable("g", g)
        f.parse("g+1")
        self.assertEqual(f.evaluate(), 2.0)
        g.value = 5.0
        self.assertEqual(f.evaluate(), 6.0)

    def test_define_variable_requires_cell(self) -> None:
        with self.assertRaises(TypeError):
            Formula().define_variable("g", 1.0)

    def test_parse_from_stream(self) -> None:
        f = Formula()
        f.define_argument("x", 1)
        f.parse(io.StringIO("x + 1"))
        self.assertEqual(f.evaluate([1.0]), 2.0)

    def test_determinism_across_compilations(self) -> None:
        g = Cell(0.5)

        def build() -> "Formula":
            f = Formula()
            f.define_variable("g", g)
            f.define_argument("x", 1)
            f.parse("sin(x)*g + (x > 0.25) - besselj0(x)")
            return f

        first, second = build(), build()
        self.assertEqual(first.program, second.program)
        for x in (-1.0, 0.0, 0.25, 0.3, 2.0):
            with self.subTest(x=x):
                self.assertEqual(first.evaluate([x]), second.evaluate([x]))


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for evaluator tests")
class EvaluatorToleranceTests(unittest.TestCase):
    def test_greater_uses_tolerance_and_excludes_boundary(self) -> None:
        f = _formula("x>0.5", x=(1,))
        self.assertEqual(f.evaluate([0.6]), 1.0)
        self.assertEqual(f.evaluate([0.4]), 0.0)
        self.assertEqual(f.evaluate([0.5]), 0.0)

    def test_comparison_boundary_at_eps(self) -> None:
        f = Formula(eps=0.25)
        f.define_argument("x", 1)
        f.define_argument("y", 2)
        f.parse("x > y")
        self.assertEqual(f.evaluate([1.25, 1.0]), 0.0)
        self.assertEqual(f.evaluate([1.5, 1.0]), 1.0)

    def test_all_comparison_operators(self) -> None:
        cases = {
            ("x<0.5", 0.4): 1.0,
            ("x<0.5", 0.5): 0.0,
            ("x>=0.5", 0.5): 1.0,
            ("x>=0.5", 0.4): 0.0,
            ("x<=0.5", 0.5): 1.0,
            ("x<=0.5", 0.6): 0.0,
            ("x==0.5", 0.5): 1.0,
            ("x==0.5", 0.6): 0.0,
        }
        for (source, x), expected in cases.items():
            with self.subTest(source=source, x=x):
                self.assertEqual(_formula(source, x=(1,)).evaluate([x]), expected)

    def test_truthiness_threshold_is_strict(self) -> None:
        f = _formula("not x", x=(1,))
        self.assertEqual(f.evaluate([1e-14]), 1.0)
        self.assertEqual(f.evaluate([2e-14]), 0.0)
        self.assertEqual(f.evaluate([-1.0]), 1.0)

    def test_boolean_operators(self) -> None:
        f = _formula("x > 0 and y > 0 or x > 10", x=(1,), y=(2,))
        self.assertEqual(f.evaluate([1.0, 1.0]), 1.0)
        self.assertEqual(f.evaluate([1.0, -1.0]), 0.0)
        self.assertEqual(f.evaluate([11.0, -1.0]), 1.0)
        self.assertTrue(f.is_boolean())

    def test_boolean_results_combine_arithmetically(self) -> None:
        f = _formula("2*(x > 1) + 1", x=(1,))
        self.assertEqual(f.evaluate([2.0]), 3.0)
        self.assertEqual(f.evaluate([0.0]), 1.0)


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for evaluator tests")
class EvaluatorComplexDomainTests(unittest.TestCase):
    def test_complex_argument_square(self) -> None:
        f = _formula("x*x", x=(1, 1, True))
        self.assertTrue(f.is_complex())
        self.assertEqual(f.evaluate_complex([1j]), -1 + 0j)

    def test_imaginary_unit_literal(self) -> None:
        self.assertEqual(Formula("I*I").evaluate_complex(), -1 + 0j)
        self.assertEqual(Formula("2 + 3*I").evaluate_complex(), 2 + 3j)

    def test_real_program_in_complex_domain(self) -> None:
        f = _formula("sqrt(x)", x=(1,))
        self.assertEqual(f.evaluate_complex([-4.0]), 2j)

    def test_complex_comparison_degrades_to_zero(self) -> None:
        f = _formula("x > 0", x=(1, 1, True))
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate_complex([1 + 2j]), 0j)

    def test_real_valued_complex_operand_compares_without_diagnostic(self) -> None:
        f = _formula("x > 0", x=(1, 1, True))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            self.assertEqual(f.evaluate_complex([2 + 0j]), 1 + 0j)
        self.assertEqual([w for w in caught if issubclass(w.category, DegradedEvaluation)], [])

    def test_complex_constant_in_real_domain_degrades(self) -> None:
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(Formula("I*I + 1").evaluate(), 1.0)

    def test_complex_boolean_operand_degrades(self) -> None:
        f = _formula("not x", x=(1, 1, True))
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate_complex([3j]), 1 + 0j)

    def test_boolean_operators_use_real_part_of_complex_operands(self) -> None:
        f = _formula("not x", x=(1, 1, True))
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate_complex([2 + 1j]), 0j)
        f = _formula("x and 1", x=(1, 1, True))
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate_complex([2 + 1j]), 1 + 0j)
        f = _formula("x or 0", x=(1, 1, True))
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate_complex([-2 + 1j]), 0j)

    def test_complex_cell_in_real_domain_degrades(self) -> None:
        f = Formula()
        f.define_variable("g", Cell(2 + 1j))
        f.parse("g + 1")
        with self.assertWarns(DegradedEvaluation):
            self.assertEqual(f.evaluate(), 1.0)


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for evaluator tests")
class EvaluatorVectorTests(unittest.TestCase):
    def test_vector_pass_through(self) -> None:
        f = _formula("v", v=(1, 2))
        self.assertEqual(f.dimension(), 2)
        out = [0.0, 0.0]
        f.evaluate_into([3.0, 4.0], out, 2)
        self.assertEqual(out, [3.0, 4.0])

    def test_scalar_evaluate_rejects_vector_formula(self) -> None:
        with self.assertRaises(FormulaStateError):
            _formula("v", v=(1, 2)).evaluate([3.0, 4.0])

    def test_scalar_vector_broadcast(self) -> None:
        cases = {
            "1+v": [4.0, 5.0],
            "v-1": [2.0, 3.0],
            "1-v": [-2.0, -3.0],
            "2*v": [6.0, 8.0],
            "v*2": [6.0, 8.0],
            "v/2": [1.5, 2.0],
            "-v": [-3.0, -4.0],
        }
        for source, expected in cases.items():
            with self.subTest(source=source):
                f = _formula(source, v=(1, 2))
                self.assertEqual(f.evaluate_into([3.0, 4.0], [0.0, 0.0]), expected)

    def test_dot_product(self) -> None:
        f = _formula("v*v", v=(1, 2))
        self.assertEqual(f.dimension(), 1)
        self.assertEqual(f.evaluate([3.0, 4.0]), 25.0)

    def test_mismatched_widths_are_zero_extended(self) -> None:
        f = _formula("v+w", v=(1, 2), w=(3, 3))
        self.assertEqual(f.dimension(), 3)
        self.assertEqual(f.evaluate_into([1.0, 2.0, 10.0, 20.0, 30.0], [0.0] * 3), [11.0, 22.0, 30.0])

        f = _formula("w-v", v=(1, 2), w=(3, 3))
        self.assertEqual(f.evaluate_into([1.0, 2.0, 10.0, 20.0, 30.0], [0.0] * 3), [9.0, 18.0, 30.0])

    def test_mismatched_dot_product_sums_over_shorter_width(self) -> None:
        f = _formula("v*w", v=(1, 2), w=(3, 3))
        self.assertEqual(f.evaluate([1.0, 2.0, 10.0, 20.0, 30.0]), 50.0)

    def test_vector_literal_concatenation(self) -> None:
        f = _formula("(x, 2*x, x*x)", x=(1,))
        self.assertEqual(f.dimension(), 3)
        self.assertEqual(f.evaluate_into([3.0], [0.0] * 3), [3.0, 6.0, 9.0])

    def test_nested_vector_expression(self) -> None:
        f = _formula("2*(v + (1, 1)) - v", v=(1, 2))
        self.assertEqual(f.evaluate_into([3.0, 4.0], [0.0, 0.0]), [5.0, 6.0])

    def test_complex_vector_output(self) -> None:
        f = _formula("I*u", u=(1, 2, True))
        out = [0j, 0j]
        f.evaluate_complex_into([1 + 0j, 2j], out)
        self.assertEqual(out, [1j, -2 + 0j])


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for evaluator tests")
class FormulaStateTests(unittest.TestCase):
    def test_unresolved_identifier_leaves_formula_unusable(self) -> None:
        f = Formula()
        f.parse("1+1")
        with self.assertRaises(CompileError):
            f.parse("y+1")
        with self.assertRaises(FormulaStateError):
            f.evaluate()
        self.assertEqual(len(f.program), 0)

    def test_successful_parse_recovers(self) -> None:
        f = Formula()
        with self.assertRaises(CompileError):
            f.parse("(1")
        f.parse("2")
        self.assertEqual(f.evaluate(), 2.0)

    def test_empty_formula_cannot_be_evaluated(self) -> None:
        with self.assertRaises(FormulaStateError):
            Formula().evaluate()

    def test_is_constant(self) -> None:
        g = Cell(1.0)
        f = Formula()
        f.define_variable("g", g)
        f.define_argument("x", 1)
        for source, expected in {"2*pi": True, "sin(1) + I": True, "x": False, "g": False, "1 + 0*x": False}.items():
            with self.subTest(source=source):
                f.parse(source)
                self.assertIs(f.is_constant(), expected)

    def test_copy_shares_cells_but_not_tables(self) -> None:
        g = Cell(2.0)
        f = Formula()
        f.define_variable("g", g)
        f.parse("g*3")
        clone = f.copy()
        clone.define_constant("k", 1.0)
        self.assertNotIn("k", f.symbols.constants)
        g.value = 4.0
        self.assertEqual(clone.evaluate(), 12.0)


if __name__ == "__main__":
    unittest.main()
