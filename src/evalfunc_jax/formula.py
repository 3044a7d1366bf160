"""Compiled formula unit: symbol tables, program, result type and evaluation entry points."""

from __future__ import annotations

import logging
import math
from numbers import Number
from typing import Mapping, MutableSequence, Sequence

from .errors import CompileError, FormulaStateError
from .evaluator import DEFAULT_EPS, Domain, execute
from .functions import BUILTINS, BuiltinFunction
from .lowering import CompiledKernel, compile_kernel
from .parser import parse
from .program import (
    BOOLEANS,
    COMPARISONS,
    VECTOR_ARITHMETIC,
    CallFunction,
    Negate,
    Opcode,
    Operator,
    Program,
    PushArgument,
    PushConstant,
    PushExternal,
    ResultType,
    Step,
    VectorOperator,
)
from .render import render_infix, render_trace
from .status import StatusHandler
from .symbols import Argument, Cell, SymbolTables

logger = logging.getLogger(__name__)

DEFAULT_CONSTANTS: Mapping[str, float] = {"pi": math.pi}


class Formula:
    """A formula compiled once and evaluated many times.

    Register constants, external variables and arguments first, then call
    `parse`. Identifiers are resolved while the source is tokenized, so every
    name must be registered before compilation.

    >>> f = Formula()
    >>> f.define_argument("x", 1)
    >>> f.parse("x*x + 1")
    >>> f.evaluate([2.0])
    5.0
    """

    def __init__(
        self,
        source=None,
        *,
        eps: float = DEFAULT_EPS,
        functions: Mapping[str, BuiltinFunction] = BUILTINS,
    ) -> None:
        self.symbols = SymbolTables(constants=dict(DEFAULT_CONSTANTS))
        self.functions = functions
        self.eps = eps
        self._program = Program()
        self._result_type = ResultType()
        self._broken = False
        if source is not None:
            self.parse(source)

    # -- registration -----------------------------------------------------

    def define_constant(self, name: str, value: Number) -> None:
        self.symbols.constants[name] = value

    def define_variable(self, name: str, cell: Cell) -> None:
        """Bind `name` to an external cell; its value is re-read on every evaluation."""
        if not isinstance(cell, Cell):
            raise TypeError(f"external variable {name!r} must be bound to a Cell, got {type(cell).__name__}")
        self.symbols.variables[name] = cell

    def define_argument(self, name: str, slot: int, width: int = 1, is_complex: bool = False) -> None:
        self.symbols.arguments[name] = Argument(slot=slot, width=width, is_complex=is_complex)

    # -- compilation ------------------------------------------------------

    def parse(self, source) -> None:
        """Compile `source` (a string or text stream), replacing any previous program."""
        try:
            program, result_type = parse(source, self.symbols, self.functions)
        except CompileError:
            self._program = Program()
            self._result_type = ResultType()
            self._broken = True
            raise
        self._program = program
        self._result_type = result_type
        self._broken = False

    def _append(self, step: Step) -> None:
        self._program = self._program.append(step)
        result = self._result_type
        is_complex = result.is_complex
        if isinstance(step, PushConstant) and isinstance(step.value, complex):
            is_complex = True
        is_bool = isinstance(step, Operator) and (step.op in COMPARISONS or step.op in BOOLEANS)
        self._result_type = ResultType(vecdim=max(1, self._program.height), is_bool=is_bool, is_complex=is_complex)

    def append_constant(self, value: Number) -> None:
        self._append(PushConstant(value))

    def append_argument(self, slot: int) -> None:
        self._append(PushArgument(slot))

    def append_variable(self, cell: Cell) -> None:
        self._append(PushExternal(cell))

    def append_operator(self, op: Opcode | str, left: int = 1, right: int = 1) -> None:
        """Append an operator step.

        Vector opcodes take the operand widths `left` and `right`; `NEG`
        takes its width in `left`.
        """
        op = Opcode(op)
        if op in VECTOR_ARITHMETIC:
            self._append(VectorOperator(op, left, right))
        elif op == Opcode.NEG:
            self._append(Negate(left))
        elif op == Opcode.END:
            raise ValueError("END terminates a program implicitly and cannot be appended")
        else:
            self._append(Operator(op))

    def append_function(self, function: BuiltinFunction | str) -> None:
        if isinstance(function, str):
            found = self.functions.get(function)
            if found is None:
                raise ValueError(f"Unknown builtin function {function!r}")
            function = found
        self._append(CallFunction(function))

    def set_result_type(self, result_type: ResultType) -> None:
        self._result_type = result_type

    # -- introspection ----------------------------------------------------

    @property
    def program(self) -> Program:
        return self._program

    @property
    def result_type(self) -> ResultType:
        return self._result_type

    def is_complex(self) -> bool:
        return self._result_type.is_complex

    def is_boolean(self) -> bool:
        return self._result_type.is_bool

    def is_constant(self) -> bool:
        return not self._program.uses_inputs

    def dimension(self) -> int:
        return self._result_type.vecdim

    def render(self) -> str:
        slot_names = self.symbols.slot_names()
        cell_names = self.symbols.cell_names()
        rt = self._result_type
        lines = [
            render_trace(self._program, slot_names, cell_names),
            f"result: vecdim={rt.vecdim} bool={rt.is_bool} complex={rt.is_complex}",
        ]
        return "\n".join(lines)

    def __str__(self) -> str:
        if not self._program:
            return ""
        return render_infix(self._program, self.symbols.slot_names(), self.symbols.cell_names())

    def __repr__(self) -> str:
        return f"Formula({str(self)!r}, steps={len(self._program)}, result={self._result_type})"

    def copy(self) -> "Formula":
        """Independent unit sharing external cells and the compiled program."""
        other = Formula(eps=self.eps, functions=self.functions)
        other.symbols = self.symbols.copy()
        other._program = self._program
        other._result_type = self._result_type
        other._broken = self._broken
        return other

    # -- evaluation -------------------------------------------------------

    def _checked_program(self) -> Program:
        if self._broken:
            raise FormulaStateError("Formula failed to compile; parse a valid source first")
        if not self._program:
            raise FormulaStateError("Formula holds no program")
        return self._program

    def _checked_scalar_program(self) -> Program:
        program = self._checked_program()
        if self._result_type.vecdim != 1:
            raise FormulaStateError(
                f"Formula is vector-valued (dimension {self._result_type.vecdim}); use evaluate_into"
            )
        return program

    def evaluate(self, x: Sequence = ()) -> float:
        return float(execute(self._checked_scalar_program(), x, Domain.REAL, self.eps))

    def evaluate_complex(self, x: Sequence = ()) -> complex:
        return complex(execute(self._checked_scalar_program(), x, Domain.COMPLEX, self.eps))

    def evaluate_into(self, x: Sequence, out: MutableSequence, width: int | None = None) -> MutableSequence:
        """Evaluate a (possibly vector-valued) formula into `out`; returns `out`."""
        width = self.dimension() if width is None else width
        execute(self._checked_program(), x, Domain.REAL, self.eps, out=out, width=width)
        return out

    def evaluate_complex_into(self, x: Sequence, out: MutableSequence, width: int | None = None) -> MutableSequence:
        width = self.dimension() if width is None else width
        execute(self._checked_program(), x, Domain.COMPLEX, self.eps, out=out, width=width)
        return out

    def evaluate_points(
        self,
        points: Sequence[Sequence],
        *,
        status: StatusHandler | None = None,
        complex_domain: bool = False,
    ) -> list:
        """Evaluate each input point in turn.

        Scalar formulas yield numbers, vector formulas yield tuples. When a
        `status` handler is given, progress is reported per point and the loop
        stops early once `status.should_terminate()` is true.
        """
        program = self._checked_program()
        domain = Domain.COMPLEX if complex_domain else Domain.REAL
        convert = complex if complex_domain else float
        dim = self.dimension()
        total = len(points)
        results: list = []
        if status is not None:
            status.push_status(f"evaluating {self}")
        try:
            for index, x in enumerate(points):
                if status is not None:
                    if status.should_terminate():
                        logger.info("evaluation terminated after %d of %d points", index, total)
                        break
                    status.set_thread_percentage(100.0 * index / total)
                if dim == 1:
                    results.append(convert(execute(program, x, domain, self.eps)))
                    continue
                buf = [0] * dim
                execute(program, x, domain, self.eps, out=buf, width=dim)
                results.append(tuple(convert(v) for v in buf))
        finally:
            if status is not None:
                status.set_thread_percentage(100.0 * len(results) / total if total else 100.0)
                status.pop_status()
        return results

    def lower(self, *, complex_domain: bool = False) -> CompiledKernel:
        """JAX kernel for batch evaluation; cached per program, domain and tolerance."""
        domain = Domain.COMPLEX if complex_domain else Domain.REAL
        return compile_kernel(self._checked_program(), domain, self.eps)
