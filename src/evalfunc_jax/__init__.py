"""evalfunc-jax public API."""

import os

import jax

# Formulas are evaluated in double precision; opt out before importing if needed.
if os.environ.get("EVALFUNC_JAX_DISABLE_X64", "0") != "1":
    jax.config.update("jax_enable_x64", True)

from .errors import (
    CompileError,
    DegradedEvaluation,
    EvalFuncError,
    FormulaStateError,
    UnsupportedLoweringError,
)
from .evaluator import DEFAULT_EPS, Domain, execute
from .formula import Formula
from .functions import BUILTINS, BuiltinFunction
from .lexer import Token, tokenize
from .lowering import CompiledKernel, LoweredProgram, compile_kernel, kernel_cache_stats, lower_program
from .parser import parse
from .program import (
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
from .render import describe_step, render_infix, render_trace
from .status import StatusHandler, StatusStack
from .symbols import Argument, Cell, SymbolTables

__all__ = [
    "Formula",
    "Cell",
    "Argument",
    "SymbolTables",
    "parse",
    "tokenize",
    "Token",
    "execute",
    "Domain",
    "DEFAULT_EPS",
    "BUILTINS",
    "BuiltinFunction",
    "Opcode",
    "Program",
    "ResultType",
    "Step",
    "PushConstant",
    "PushArgument",
    "PushExternal",
    "CallFunction",
    "Negate",
    "Operator",
    "VectorOperator",
    "describe_step",
    "render_trace",
    "render_infix",
    "lower_program",
    "compile_kernel",
    "kernel_cache_stats",
    "LoweredProgram",
    "CompiledKernel",
    "StatusHandler",
    "StatusStack",
    "EvalFuncError",
    "CompileError",
    "FormulaStateError",
    "UnsupportedLoweringError",
    "DegradedEvaluation",
]
