"""JAX lowering of compiled programs, with cached jit/vmap wrappers."""

from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Final

import jax
import jax.numpy as jnp
import numpy as np

from .errors import DegradedEvaluation, UnsupportedLoweringError
from .evaluator import DEFAULT_EPS, Domain
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
from .symbols import Cell

logger = logging.getLogger(__name__)

_KERNEL_CACHE_MAX: Final[int] = max(1, int(os.environ.get("EVALFUNC_JAX_KERNEL_CACHE_MAX", "64")))


def _report_degraded(flag) -> None:
    if np.any(flag):
        warnings.warn("illegal complex value in lowered kernel; substituting 0", DegradedEvaluation, stacklevel=2)


def _check_real_array(value):
    degraded = jnp.imag(value) != 0
    jax.debug.callback(_report_degraded, jnp.any(degraded))
    return jnp.where(degraded, 0.0, jnp.real(value))


def _report_real_part(flag) -> None:
    if np.any(flag):
        warnings.warn("illegal complex value in lowered kernel; using real part", DegradedEvaluation, stacklevel=2)


def _bool_operand_array(value):
    jax.debug.callback(_report_real_part, jnp.any(jnp.imag(value) != 0))
    return jnp.real(value)


def _arith(op: Opcode, a, b):
    if op in (Opcode.ADD, Opcode.VEC_ADD):
        return a + b
    if op in (Opcode.SUB, Opcode.VEC_SUB):
        return a - b
    if op in (Opcode.DIV, Opcode.VEC_SCAL_DIV):
        return a / b
    return a * b


def _compare(op: Opcode, a, b, eps: float):
    if op == Opcode.GREATER:
        return a - b > eps
    if op == Opcode.LESS:
        return b - a > eps
    if op == Opcode.GREATER_EQUAL:
        return jnp.logical_not(b - a > eps)
    if op == Opcode.LESS_EQUAL:
        return jnp.logical_not(a - b > eps)
    if op == Opcode.EQUAL:
        return jnp.abs(a - b) <= eps
    if op == Opcode.AND:
        return jnp.logical_and(a > eps, b > eps)
    if op == Opcode.OR:
        return jnp.logical_or(a > eps, b > eps)
    raise UnsupportedLoweringError(f"Unsupported operator {op!r}")


def _vector_op(step: VectorOperator, left: list, right: list, zero) -> list:
    op = step.op
    if op == Opcode.VEC_VEC_MULT:
        acc = zero
        for a, b in zip(left, right):
            acc = acc + a * b
        return [acc]
    if len(right) == 1:
        return [_arith(op, a, right[0]) for a in left]
    if len(left) == 1:
        return [_arith(op, left[0], b) for b in right]
    width = max(len(left), len(right))
    left = left + [zero] * (width - len(left))
    right = right + [zero] * (width - len(right))
    return [_arith(op, a, b) for a, b in zip(left, right)]


@dataclass(frozen=True)
class LoweredProgram:
    """Pure kernel `kernel(x, cells)` for one program in one domain.

    `x` has shape `(n_slots,)`; `cells` holds the current external cell values
    in the order of `cells`. The kernel returns a scalar, or a `(vecdim,)`
    array for vector programs.
    """

    kernel: Callable
    domain: Domain
    n_slots: int
    vecdim: int
    cells: tuple[Cell, ...]


def lower_program(program: Program, domain: Domain = Domain.REAL, eps: float = DEFAULT_EPS) -> LoweredProgram:
    """Replay `program` into a traceable `jax.numpy` kernel."""
    if not program:
        raise UnsupportedLoweringError("Cannot lower an empty program")
    dtype = jnp.complex128 if domain is Domain.COMPLEX else jnp.float64
    is_complex = domain is Domain.COMPLEX
    cells = program.cells()
    cell_index = {id(cell): i for i, cell in enumerate(cells)}
    steps = program.steps

    def kernel(x, cell_values):
        zero = jnp.zeros((), dtype=dtype)
        stack: list = []
        for step in steps:
            if isinstance(step, PushArgument):
                stack.append(jnp.asarray(x[step.slot - 1], dtype=dtype))
            elif isinstance(step, PushConstant):
                value = step.value
                if not is_complex and isinstance(value, complex):
                    value = _check_real_array(jnp.asarray(value))
                stack.append(jnp.asarray(value, dtype=dtype))
            elif isinstance(step, PushExternal):
                value = cell_values[cell_index[id(step.cell)]]
                if not is_complex:
                    value = _check_real_array(value)
                stack.append(jnp.asarray(value, dtype=dtype))
            elif isinstance(step, CallFunction):
                arity = step.function.arity
                args = stack[len(stack) - arity :]
                del stack[len(stack) - arity :]
                stack.append(jnp.asarray(step.function.array(*args), dtype=dtype))
            elif isinstance(step, Negate):
                n = len(stack) - step.width
                stack[n:] = [-v for v in stack[n:]]
            elif isinstance(step, VectorOperator):
                right = stack[len(stack) - step.right :]
                del stack[len(stack) - step.right :]
                left = stack[len(stack) - step.left :]
                del stack[len(stack) - step.left :]
                stack.extend(_vector_op(step, left, right, zero))
            elif step.op == Opcode.NOT:
                v = stack.pop()
                if is_complex:
                    v = _bool_operand_array(v)
                stack.append(jnp.where(v > eps, 0.0, 1.0).astype(dtype))
            elif step.op in (Opcode.ADD, Opcode.SUB, Opcode.MULT, Opcode.DIV):
                b = stack.pop()
                a = stack.pop()
                stack.append(_arith(step.op, a, b))
            else:
                b = stack.pop()
                a = stack.pop()
                if is_complex and step.op in BOOLEANS:
                    a = _bool_operand_array(a)
                    b = _bool_operand_array(b)
                elif is_complex:
                    a = _check_real_array(a)
                    b = _check_real_array(b)
                stack.append(jnp.where(_compare(step.op, a, b, eps), 1.0, 0.0).astype(dtype))
        if program.height == 1:
            return stack[-1]
        return jnp.stack(stack)

    logger.debug("lowered %d steps for %s domain", len(program), domain.value)
    return LoweredProgram(
        kernel=kernel,
        domain=domain,
        n_slots=program.argument_count,
        vecdim=program.height,
        cells=cells,
    )


@dataclass
class CompiledKernel:
    """Callable wrapper around a lowered program with cached JAX transforms.

    External cell values are read on every call and passed to the kernel as
    an argument, so traced functions observe later writes to the cells.
    """

    lowered: LoweredProgram
    _jit_fn: object = field(default=None, init=False, repr=False)
    _batch_fn: object = field(default=None, init=False, repr=False)
    _transform_stats: dict[str, int] = field(
        default_factory=lambda: {"jit_hits": 0, "jit_misses": 0, "batch_hits": 0, "batch_misses": 0},
        init=False,
        repr=False,
    )

    def _dtype(self):
        return jnp.complex128 if self.lowered.domain is Domain.COMPLEX else jnp.float64

    def _cell_values(self):
        # Complex in both domains; the real-domain kernel degrades imaginary parts itself.
        if not self.lowered.cells:
            return jnp.zeros((0,), dtype=jnp.complex128)
        return jnp.asarray([cell.value for cell in self.lowered.cells], dtype=jnp.complex128)

    def _inputs(self, x):
        x = jnp.asarray(x, dtype=self._dtype())
        if x.ndim == 0:
            x = x.reshape((1,))
        return x

    def __call__(self, x=()):
        return self.lowered.kernel(self._inputs(x), self._cell_values())

    def jit(self):
        """Return a cached `jax.jit` callable taking one input point."""
        if self._jit_fn is not None:
            self._transform_stats["jit_hits"] += 1
            return self._jit_fn
        self._transform_stats["jit_misses"] += 1
        compiled = jax.jit(self.lowered.kernel)

        def call(x=()):
            return compiled(self._inputs(x), self._cell_values())

        self._jit_fn = call
        return call

    def batch(self, points):
        """Evaluate many points at once; `points` has shape `(n_points, n_slots)`."""
        if self._batch_fn is None:
            self._transform_stats["batch_misses"] += 1
            self._batch_fn = jax.jit(jax.vmap(self.lowered.kernel, in_axes=(0, None)))
        else:
            self._transform_stats["batch_hits"] += 1
        points = jnp.asarray(points, dtype=self._dtype())
        if points.ndim == 1:
            points = points.reshape((-1, 1))
        return self._batch_fn(points, self._cell_values())

    def transform_stats(self) -> dict[str, int]:
        return dict(self._transform_stats)


@lru_cache(maxsize=_KERNEL_CACHE_MAX)
def compile_kernel(program: Program, domain: Domain = Domain.REAL, eps: float = DEFAULT_EPS) -> CompiledKernel:
    """Lower `program` once per `(program, domain, eps)` and wrap it."""
    return CompiledKernel(lower_program(program, domain, eps))


def kernel_cache_stats(*, reset: bool = False) -> dict[str, int]:
    info = compile_kernel.cache_info()
    stats = {"hits": info.hits, "misses": info.misses, "size": info.currsize, "max_size": _KERNEL_CACHE_MAX}
    if reset:
        compile_kernel.cache_clear()
    return stats
