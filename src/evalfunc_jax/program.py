"""Bytecode model: opcodes, steps and the immutable reverse-Polish program."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from numbers import Number
from typing import Union

from .functions import BuiltinFunction
from .symbols import Cell


class Opcode(str, Enum):
    ADD = "+"
    SUB = "-"
    MULT = "*"
    DIV = "/"
    NEG = "neg"
    VEC_ADD = "vec+"
    VEC_SUB = "vec-"
    VEC_SCAL_MULT = "vec*scal"
    SCAL_VEC_MULT = "scal*vec"
    VEC_VEC_MULT = "vec*vec"
    VEC_SCAL_DIV = "vec/scal"
    AND = "and"
    OR = "or"
    NOT = "not"
    GREATER = ">"
    LESS = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    EQUAL = "=="
    CONSTANT = "const"
    VARIABLE = "arg"
    GLOBVAR = "glob"
    FUNCTION = "call"
    END = "end"


SCALAR_ARITHMETIC = frozenset({Opcode.ADD, Opcode.SUB, Opcode.MULT, Opcode.DIV})
VECTOR_ARITHMETIC = frozenset(
    {
        Opcode.VEC_ADD,
        Opcode.VEC_SUB,
        Opcode.VEC_SCAL_MULT,
        Opcode.SCAL_VEC_MULT,
        Opcode.VEC_VEC_MULT,
        Opcode.VEC_SCAL_DIV,
    }
)
COMPARISONS = frozenset({Opcode.GREATER, Opcode.LESS, Opcode.GREATER_EQUAL, Opcode.LESS_EQUAL, Opcode.EQUAL})
BOOLEANS = frozenset({Opcode.AND, Opcode.OR, Opcode.NOT})
OPERATORS = SCALAR_ARITHMETIC | COMPARISONS | BOOLEANS


@dataclass(frozen=True)
class PushConstant:
    value: Number

    op = Opcode.CONSTANT


@dataclass(frozen=True)
class PushArgument:
    slot: int

    op = Opcode.VARIABLE

    def __post_init__(self) -> None:
        if self.slot < 1:
            raise ValueError(f"argument slots are 1-based, got {self.slot}")


@dataclass(frozen=True)
class PushExternal:
    cell: Cell

    op = Opcode.GLOBVAR


@dataclass(frozen=True)
class CallFunction:
    function: BuiltinFunction

    op = Opcode.FUNCTION


@dataclass(frozen=True)
class Negate:
    width: int = 1

    op = Opcode.NEG


@dataclass(frozen=True)
class Operator:
    """Payload-free scalar arithmetic, comparison or boolean opcode."""

    op: Opcode

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"{self.op!r} is not a scalar operator opcode")


@dataclass(frozen=True)
class VectorOperator:
    """Vector-aware arithmetic; `left`/`right` are the operand widths on the stack."""

    op: Opcode
    left: int
    right: int

    def __post_init__(self) -> None:
        if self.op not in VECTOR_ARITHMETIC:
            raise ValueError(f"{self.op!r} is not a vector operator opcode")
        if self.left < 1 or self.right < 1:
            raise ValueError("vector operand widths must be >= 1")

    @property
    def width(self) -> int:
        if self.op == Opcode.VEC_VEC_MULT:
            return 1
        if self.op in {Opcode.VEC_SCAL_MULT, Opcode.VEC_SCAL_DIV}:
            return self.left
        if self.op == Opcode.SCAL_VEC_MULT:
            return self.right
        return max(self.left, self.right)


Step = Union[PushConstant, PushArgument, PushExternal, CallFunction, Negate, Operator, VectorOperator]


def stack_effect(step: Step) -> tuple[int, int]:
    """Return `(pops, pushes)` for one step."""
    if isinstance(step, (PushConstant, PushArgument, PushExternal)):
        return 0, 1
    if isinstance(step, CallFunction):
        return step.function.arity, 1
    if isinstance(step, Negate):
        return step.width, step.width
    if isinstance(step, VectorOperator):
        return step.left + step.right, step.width
    if step.op == Opcode.NOT:
        return 1, 1
    return 2, 1


@dataclass(frozen=True)
class ResultType:
    vecdim: int = 1
    is_bool: bool = False
    is_complex: bool = False


@dataclass(frozen=True)
class Program:
    """Immutable reverse-Polish step sequence.

    `stack_depth` is the deepest the evaluation stack gets; `height` is the
    number of values left after the last step.
    """

    steps: tuple[Step, ...] = ()
    stack_depth: int = field(init=False, compare=False)
    height: int = field(init=False, compare=False)
    uses_inputs: bool = field(init=False, compare=False)
    argument_count: int = field(init=False, compare=False)

    def __post_init__(self) -> None:
        depth = 0
        height = 0
        uses_inputs = False
        argument_count = 0
        for index, step in enumerate(self.steps):
            pops, pushes = stack_effect(step)
            if pops > height:
                raise ValueError(f"step {index} ({step.op.value}) pops {pops} values from a stack of {height}")
            height = height - pops + pushes
            depth = max(depth, height)
            if isinstance(step, PushArgument):
                uses_inputs = True
                argument_count = max(argument_count, step.slot)
            elif isinstance(step, PushExternal):
                uses_inputs = True
        object.__setattr__(self, "stack_depth", depth)
        object.__setattr__(self, "height", height)
        object.__setattr__(self, "uses_inputs", uses_inputs)
        object.__setattr__(self, "argument_count", argument_count)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        return bool(self.steps)

    def append(self, *steps: Step) -> "Program":
        return Program(self.steps + steps)

    def cells(self) -> tuple[Cell, ...]:
        """External cells in order of first reference."""
        seen: dict[int, Cell] = {}
        for step in self.steps:
            if isinstance(step, PushExternal) and id(step.cell) not in seen:
                seen[id(step.cell)] = step.cell
        return tuple(seen.values())
