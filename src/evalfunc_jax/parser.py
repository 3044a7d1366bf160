"""Recursive-descent parser emitting reverse-Polish steps with inferred result types."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .errors import CompileError
from .functions import BUILTINS, BuiltinFunction
from .lexer import Token, tokenize
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
from .symbols import SymbolTables

logger = logging.getLogger(__name__)

_LOGICAL_OPS = {"AND": Opcode.AND, "OR": Opcode.OR}
_COMPARISON_OPS = {
    "GREATER": Opcode.GREATER,
    "LESS": Opcode.LESS,
    "GREATER_EQUAL": Opcode.GREATER_EQUAL,
    "LESS_EQUAL": Opcode.LESS_EQUAL,
    "EQUAL": Opcode.EQUAL,
}
_PRIMARY_START = ("NUMBER", "CONSTANT", "VARIABLE", "ARGUMENT", "FUNCTION", "LPAREN", "MINUS", "NOT")

_BOOL = ResultType(vecdim=1, is_bool=True, is_complex=False)


@dataclass
class _Parser:
    tokens: list[Token]
    index: int = 0
    steps: list[Step] = field(default_factory=list)

    def parse(self) -> ResultType:
        result = self._parse_expression()
        self._expect("EOF")
        return result

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def _expect(self, kind: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            self._error(tok, expected=(kind,))
        return self._advance()

    def _error(self, tok: Token | None = None, *, message: str | None = None, expected: tuple[str, ...] = ()) -> None:
        token = tok if tok is not None else self._peek()
        if message is not None:
            detail = message
        elif token.kind == "EOF":
            detail = "Unexpected end of input"
        else:
            detail = "Unexpected token"
        normalized_expected = tuple(dict.fromkeys(expected))
        if token.kind == "EOF":
            found = "EOF"
        elif token.text:
            found = f"{token.kind}({token.text})"
        else:
            found = token.kind
        raise CompileError(detail, token.pos, token.end, expected=normalized_expected, found=found)

    def _emit(self, step: Step) -> None:
        self.steps.append(step)

    def _require_scalar(self, result: ResultType, tok: Token, what: str) -> None:
        if result.vecdim != 1:
            self._error(tok, message=f"{what} requires scalar operands, got vector of width {result.vecdim}")

    # expression := negation (("and" | "or") negation)*
    def _parse_expression(self) -> ResultType:
        start = self._peek()
        result = self._parse_negation()
        while self._peek().kind in _LOGICAL_OPS:
            tok = self._advance()
            self._require_scalar(result, start, f"{tok.text!r}")
            right_tok = self._peek()
            right = self._parse_negation()
            self._require_scalar(right, right_tok, f"{tok.text!r}")
            self._emit(Operator(_LOGICAL_OPS[tok.kind]))
            result = _BOOL
        return result

    # negation := "not" negation | comparison
    def _parse_negation(self) -> ResultType:
        if self._peek().kind == "NOT":
            self._advance()
            operand_tok = self._peek()
            operand = self._parse_negation()
            self._require_scalar(operand, operand_tok, "'not'")
            self._emit(Operator(Opcode.NOT))
            return _BOOL
        return self._parse_comparison()

    # comparison := additive (cmp additive)*
    def _parse_comparison(self) -> ResultType:
        start = self._peek()
        result = self._parse_additive()
        while self._peek().kind in _COMPARISON_OPS:
            tok = self._advance()
            self._require_scalar(result, start, f"comparison {tok.text!r}")
            right_tok = self._peek()
            right = self._parse_additive()
            self._require_scalar(right, right_tok, f"comparison {tok.text!r}")
            self._emit(Operator(_COMPARISON_OPS[tok.kind]))
            result = _BOOL
        return result

    # additive := term (("+" | "-") term)*
    def _parse_additive(self) -> ResultType:
        left = self._parse_term()
        while self._peek().kind in {"PLUS", "MINUS"}:
            tok = self._advance()
            right = self._parse_term()
            is_add = tok.kind == "PLUS"
            if left.vecdim == 1 and right.vecdim == 1:
                self._emit(Operator(Opcode.ADD if is_add else Opcode.SUB))
            else:
                op = Opcode.VEC_ADD if is_add else Opcode.VEC_SUB
                self._emit(VectorOperator(op, left.vecdim, right.vecdim))
            left = ResultType(
                vecdim=max(left.vecdim, right.vecdim),
                is_complex=left.is_complex or right.is_complex,
            )
        return left

    # term := unary (("*" | "/") unary)*
    def _parse_term(self) -> ResultType:
        left = self._parse_unary()
        while self._peek().kind in {"STAR", "SLASH"}:
            tok = self._advance()
            right = self._parse_unary()
            is_complex = left.is_complex or right.is_complex
            if tok.kind == "STAR":
                if left.vecdim == 1 and right.vecdim == 1:
                    self._emit(Operator(Opcode.MULT))
                    vecdim = 1
                elif left.vecdim == 1:
                    self._emit(VectorOperator(Opcode.SCAL_VEC_MULT, 1, right.vecdim))
                    vecdim = right.vecdim
                elif right.vecdim == 1:
                    self._emit(VectorOperator(Opcode.VEC_SCAL_MULT, left.vecdim, 1))
                    vecdim = left.vecdim
                else:
                    self._emit(VectorOperator(Opcode.VEC_VEC_MULT, left.vecdim, right.vecdim))
                    vecdim = 1
            else:
                if right.vecdim != 1:
                    self._error(tok, message=f"Division by vector-valued operand of width {right.vecdim}")
                if left.vecdim == 1:
                    self._emit(Operator(Opcode.DIV))
                else:
                    self._emit(VectorOperator(Opcode.VEC_SCAL_DIV, left.vecdim, 1))
                vecdim = left.vecdim
            left = ResultType(vecdim=vecdim, is_complex=is_complex)
        return left

    # unary := "-" unary | primary
    def _parse_unary(self) -> ResultType:
        if self._peek().kind == "MINUS":
            self._advance()
            operand = self._parse_unary()
            self._emit(Negate(operand.vecdim))
            return ResultType(vecdim=operand.vecdim, is_complex=operand.is_complex)
        return self._parse_primary()

    def _parse_primary(self) -> ResultType:
        tok = self._peek()

        if tok.kind in {"NUMBER", "CONSTANT"}:
            self._advance()
            self._emit(PushConstant(tok.payload))
            return ResultType(is_complex=isinstance(tok.payload, complex))

        if tok.kind == "VARIABLE":
            self._advance()
            self._emit(PushExternal(tok.payload))
            return ResultType()

        if tok.kind == "ARGUMENT":
            self._advance()
            arg = tok.payload
            for slot in arg.slots:
                self._emit(PushArgument(slot))
            return ResultType(vecdim=arg.width, is_complex=arg.is_complex)

        if tok.kind == "FUNCTION":
            self._advance()
            return self._parse_call(tok, tok.payload)

        if tok.kind == "LPAREN":
            self._advance()
            results = self._parse_list()
            self._expect("RPAREN")
            if len(results) == 1:
                return results[0]
            return ResultType(
                vecdim=sum(r.vecdim for r in results),
                is_complex=any(r.is_complex for r in results),
            )

        self._error(tok, expected=_PRIMARY_START)
        raise AssertionError("unreachable")

    def _parse_list(self) -> list[ResultType]:
        results = [self._parse_expression()]
        while self._peek().kind == "COMMA":
            self._advance()
            results.append(self._parse_expression())
        return results

    def _parse_call(self, name_tok: Token, function: BuiltinFunction) -> ResultType:
        self._expect("LPAREN")
        arg_toks: list[Token] = []
        results: list[ResultType] = []
        while True:
            arg_toks.append(self._peek())
            results.append(self._parse_expression())
            if self._peek().kind != "COMMA":
                break
            self._advance()
        close = self._expect("RPAREN")
        if len(results) != function.arity:
            raise CompileError(
                f"Function {function.name!r} takes {function.arity} argument(s), got {len(results)}",
                name_tok.pos,
                close.end,
                found=f"{len(results)} argument(s)",
            )
        for arg_tok, result in zip(arg_toks, results):
            self._require_scalar(result, arg_tok, f"function {function.name!r}")
        self._emit(CallFunction(function))
        return ResultType(is_complex=any(r.is_complex for r in results))


def parse(
    source,
    symbols: SymbolTables | None = None,
    functions: Mapping[str, BuiltinFunction] = BUILTINS,
) -> tuple[Program, ResultType]:
    """Compile formula text into a program and its inferred result type."""
    tokens = tokenize(source, symbols, functions)
    parser = _Parser(tokens)
    result = parser.parse()
    program = Program(tuple(parser.steps))
    logger.debug("compiled %d tokens into %d steps, result %s", len(tokens), len(program), result)
    return program, result
