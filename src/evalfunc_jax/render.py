"""Diagnostic rendering of compiled programs."""

from __future__ import annotations

from typing import Mapping

from .program import (
    CallFunction,
    Negate,
    Opcode,
    Program,
    PushArgument,
    PushConstant,
    PushExternal,
    Step,
    VectorOperator,
)

_VECTOR_SYMBOLS = {
    Opcode.VEC_ADD: "+",
    Opcode.VEC_SUB: "-",
    Opcode.VEC_SCAL_MULT: "*",
    Opcode.SCAL_VEC_MULT: "*",
    Opcode.VEC_VEC_MULT: "*",
    Opcode.VEC_SCAL_DIV: "/",
}


def _number(value) -> str:
    if isinstance(value, complex):
        if value.real == 0:
            return f"{value.imag!r}*I"
        return f"({value.real!r}+{value.imag!r}*I)"
    return repr(float(value))


def _slot_name(slot: int, slot_names: Mapping[int, str]) -> str:
    return slot_names.get(slot, f"x[{slot}]")


def _cell_name(step: PushExternal, cell_names: Mapping[int, str]) -> str:
    return cell_names.get(id(step.cell), f"<cell {step.cell.value!r}>")


def describe_step(
    step: Step,
    slot_names: Mapping[int, str] | None = None,
    cell_names: Mapping[int, str] | None = None,
) -> str:
    slot_names = slot_names or {}
    cell_names = cell_names or {}
    if isinstance(step, PushConstant):
        return f"const {_number(step.value)}"
    if isinstance(step, PushArgument):
        return f"arg {step.slot} ({_slot_name(step.slot, slot_names)})"
    if isinstance(step, PushExternal):
        return f"glob {_cell_name(step, cell_names)}"
    if isinstance(step, CallFunction):
        return f"call {step.function.name}/{step.function.arity}"
    if isinstance(step, Negate):
        return "neg" if step.width == 1 else f"neg width={step.width}"
    if isinstance(step, VectorOperator):
        return f"{step.op.name.lower()} {step.left}x{step.right}"
    return step.op.name.lower()


def render_trace(
    program: Program,
    slot_names: Mapping[int, str] | None = None,
    cell_names: Mapping[int, str] | None = None,
) -> str:
    """One numbered line per step."""
    width = len(str(max(len(program) - 1, 0)))
    return "\n".join(
        f"{index:>{width}}  {describe_step(step, slot_names, cell_names)}"
        for index, step in enumerate(program.steps)
    )


def render_infix(
    program: Program,
    slot_names: Mapping[int, str] | None = None,
    cell_names: Mapping[int, str] | None = None,
) -> str:
    """Replay the program symbolically into a fully parenthesized expression.

    Vector values render as `(a, b, ...)`. The output is not guaranteed to
    match the parsed formula text.
    """
    slot_names = slot_names or {}
    cell_names = cell_names or {}
    # Each entry is (text, width); a width-n entry stands for n stack slots.
    stack: list[tuple[str, int]] = []

    def pop_group(width: int) -> str:
        parts: list[str] = []
        taken = 0
        while taken < width:
            text, size = stack.pop()
            if taken + size > width:
                # Group straddles the boundary: split it into components.
                keep = taken + size - width
                stack.extend((f"{text}[{k}]", 1) for k in range(keep))
                parts.extend(f"{text}[{k}]" for k in reversed(range(keep, size)))
                taken = width
                break
            parts.append(text)
            taken += size
        parts.reverse()
        if len(parts) == 1:
            return parts[0]
        return f"({', '.join(parts)})"

    for step in program.steps:
        if isinstance(step, PushConstant):
            stack.append((_number(step.value), 1))
        elif isinstance(step, PushArgument):
            stack.append((_slot_name(step.slot, slot_names), 1))
        elif isinstance(step, PushExternal):
            stack.append((_cell_name(step, cell_names), 1))
        elif isinstance(step, CallFunction):
            args = [pop_group(1) for _ in range(step.function.arity)][::-1]
            stack.append((f"{step.function.name}({', '.join(args)})", 1))
        elif isinstance(step, Negate):
            stack.append((f"(-{pop_group(step.width)})", step.width))
        elif isinstance(step, VectorOperator):
            right = pop_group(step.right)
            left = pop_group(step.left)
            stack.append((f"({left} {_VECTOR_SYMBOLS[step.op]} {right})", step.width))
        elif step.op == Opcode.NOT:
            stack.append((f"(not {pop_group(1)})", 1))
        else:
            right = pop_group(1)
            left = pop_group(1)
            stack.append((f"({left} {step.op.value} {right})", 1))

    if len(stack) == 1:
        return stack[0][0]
    return f"({', '.join(text for text, _ in stack)})"
