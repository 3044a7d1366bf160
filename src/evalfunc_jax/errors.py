"""Structured error types for compile/evaluate separation."""

from __future__ import annotations


class EvalFuncError(Exception):
    """Base class for structured evalfunc-jax errors."""


class CompileError(EvalFuncError, SyntaxError):
    """Lexical, grammatical or arity failure while compiling a formula."""

    def __init__(
        self,
        message: str,
        start: int,
        end: int,
        expected: tuple[str, ...] = (),
        found: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.start = start
        self.end = end
        self.expected = expected
        self.found = found

    def __str__(self) -> str:
        expected_text = ""
        if self.expected:
            expected_text = f"; expected {', '.join(self.expected)}"
        found_text = ""
        if self.found is not None:
            found_text = f"; found {self.found}"
        return f"{self.message} at span [{self.start}, {self.end}){expected_text}{found_text}"


class FormulaStateError(EvalFuncError):
    """The formula holds no usable program for the requested operation."""


class UnsupportedLoweringError(EvalFuncError):
    """Program step cannot be expressed in the JAX lowering."""


class DegradedEvaluation(RuntimeWarning):
    """A complex value reached a comparison or boolean opcode and was replaced."""
