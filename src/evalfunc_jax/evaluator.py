"""Stack-machine evaluator over the real and complex domains."""

from __future__ import annotations

import os
import warnings
from enum import Enum
from typing import Final, MutableSequence, Sequence

import numpy as np

from .errors import DegradedEvaluation
from .program import (
    BOOLEANS,
    CallFunction,
    Negate,
    Opcode,
    Program,
    PushArgument,
    PushConstant,
    PushExternal,
    VectorOperator,
)

DEFAULT_EPS: Final[float] = float(os.environ.get("EVALFUNC_JAX_EPS", "1e-14"))


class Domain(str, Enum):
    REAL = "real"
    COMPLEX = "complex"

    @property
    def dtype(self) -> type:
        return np.float64 if self is Domain.REAL else np.complex128


def _report_degraded(index: int, label: str, action: str = "substituting 0") -> None:
    warnings.warn(
        f"illegal complex value at step {index} ({label}); {action}",
        DegradedEvaluation,
        stacklevel=5,
    )


def _check_real(value, index: int, label: str):
    if value.imag != 0:
        _report_degraded(index, label)
        return 0.0
    return value.real


def _bool_operand(value, index: int, label: str):
    if value.imag != 0:
        _report_degraded(index, label, "using real part")
    return value.real


def _to_bool(value, eps: float) -> bool:
    return value > eps


def _compare(op: Opcode, a, b, eps: float) -> bool:
    if op == Opcode.GREATER:
        return a - b > eps
    if op == Opcode.LESS:
        return b - a > eps
    if op == Opcode.GREATER_EQUAL:
        return not (b - a > eps)
    if op == Opcode.LESS_EQUAL:
        return not (a - b > eps)
    return abs(a - b) <= eps


def _arith(op: Opcode, a, b):
    if op in (Opcode.ADD, Opcode.VEC_ADD):
        return a + b
    if op in (Opcode.SUB, Opcode.VEC_SUB):
        return a - b
    if op == Opcode.DIV or op == Opcode.VEC_SCAL_DIV:
        return a / b
    return a * b


def _vector_op(step: VectorOperator, stack: list, sp: int, zero) -> int:
    lw = step.left
    rw = step.right
    lo = sp - lw - rw
    ro = sp - rw
    op = step.op

    if op == Opcode.VEC_VEC_MULT:
        acc = zero
        for k in range(min(lw, rw)):
            acc = acc + stack[lo + k] * stack[ro + k]
        stack[lo] = acc
        return lo + 1

    if rw == 1:
        # vector (op) scalar, including vec+scal broadcast
        s = stack[ro]
        for k in range(lw):
            stack[lo + k] = _arith(op, stack[lo + k], s)
        return lo + lw

    if lw == 1:
        s = stack[lo]
        for k in range(rw):
            stack[lo + k] = _arith(op, s, stack[ro + k])
        return lo + rw

    # Mismatched widths: the shorter operand is zero-extended.
    width = max(lw, rw)
    for k in range(width):
        a = stack[lo + k] if k < lw else zero
        b = stack[ro + k] if k < rw else zero
        stack[lo + k] = _arith(op, a, b)
    return lo + width


def execute(
    program: Program,
    x: Sequence = (),
    domain: Domain = Domain.REAL,
    eps: float = DEFAULT_EPS,
    out: MutableSequence | None = None,
    width: int | None = None,
):
    """Run `program` against input `x`.

    Returns the top of the stack. When `out` is given, the final `width`
    values (default: all values left on the stack) are copied into it in
    emission order.
    """
    dtype = domain.dtype
    is_complex = domain is Domain.COMPLEX
    zero = dtype(0)
    one = dtype(1)
    stack = [zero] * program.stack_depth
    sp = 0

    with np.errstate(all="ignore"):
        for index, step in enumerate(program.steps):
            if isinstance(step, PushArgument):
                stack[sp] = dtype(x[step.slot - 1])
                sp += 1
                continue

            if isinstance(step, PushConstant):
                value = step.value
                if not is_complex and isinstance(value, complex):
                    value = _check_real(value, index, "constant")
                stack[sp] = dtype(value)
                sp += 1
                continue

            if isinstance(step, PushExternal):
                value = step.cell.value
                if not is_complex and isinstance(value, complex):
                    value = _check_real(value, index, "variable")
                stack[sp] = dtype(value)
                sp += 1
                continue

            if isinstance(step, CallFunction):
                fn = step.function
                if fn.arity == 1:
                    stack[sp - 1] = dtype(fn.scalar(stack[sp - 1]))
                else:
                    sp -= fn.arity - 1
                    stack[sp - 1] = dtype(fn.scalar(*stack[sp - 1 : sp - 1 + fn.arity]))
                continue

            if isinstance(step, Negate):
                for k in range(sp - step.width, sp):
                    stack[k] = -stack[k]
                continue

            if isinstance(step, VectorOperator):
                sp = _vector_op(step, stack, sp, zero)
                continue

            op = step.op
            if op == Opcode.NOT:
                v = stack[sp - 1]
                if is_complex:
                    v = _bool_operand(v, index, op.value)
                stack[sp - 1] = zero if _to_bool(v, eps) else one
                continue

            a = stack[sp - 2]
            b = stack[sp - 1]
            sp -= 1
            if op in (Opcode.ADD, Opcode.SUB, Opcode.MULT, Opcode.DIV):
                stack[sp - 1] = _arith(op, a, b)
                continue

            if is_complex:
                if op in BOOLEANS:
                    a = _bool_operand(a, index, op.value)
                    b = _bool_operand(b, index, op.value)
                else:
                    a = _check_real(a, index, op.value)
                    b = _check_real(b, index, op.value)
            if op == Opcode.AND:
                flag = _to_bool(a, eps) and _to_bool(b, eps)
            elif op == Opcode.OR:
                flag = _to_bool(a, eps) or _to_bool(b, eps)
            else:
                flag = _compare(op, a, b, eps)
            stack[sp - 1] = one if flag else zero

    if out is not None:
        count = sp if width is None else min(width, sp)
        for k in range(count):
            out[k] = stack[sp - count + k]
    return stack[sp - 1]
