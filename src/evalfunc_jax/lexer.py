"""Tokenization with lex-time identifier resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping

from .errors import CompileError
from .functions import BUILTINS, BuiltinFunction
from .symbols import SymbolTables


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int
    end: int
    payload: object = None


_SINGLE_TOKENS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "(": "LPAREN",
    ")": "RPAREN",
    ",": "COMMA",
}

_COMPARISON_TOKENS = {
    ">=": "GREATER_EQUAL",
    "<=": "LESS_EQUAL",
    "==": "EQUAL",
    ">": "GREATER",
    "<": "LESS",
}

_KEYWORDS = {
    "and": "AND",
    "or": "OR",
    "not": "NOT",
}

_IMAGINARY_UNIT = "I"

_NUMBER_RE = re.compile(
    r"""
    (?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)    # mantissa
    (?:[eE][+\-]?[0-9]+)?               # exponent
    """,
    re.VERBOSE,
)


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or ch.isalpha()


def _is_ident_continue(ch: str) -> bool:
    return ch == "_" or ch.isalnum()


def _scan_number(source: str, start: int) -> tuple[float, int]:
    m = _NUMBER_RE.match(source, start)
    if m is None:
        end = start + 1
        raise CompileError(f"Invalid numeric literal {source[start:end]!r}", start, end, found=source[start:end])
    end = m.end()
    # Trailing exponent marker or identifier glued onto digits: `1e`, `2e+`, `3x`.
    if end < len(source) and (_is_ident_continue(source[end]) or source[end] == "."):
        bad_end = end
        while bad_end < len(source) and (_is_ident_continue(source[bad_end]) or source[bad_end] in ".+-"):
            if source[bad_end] in "+-" and source[bad_end - 1] not in "eE":
                break
            bad_end += 1
        text = source[start:bad_end]
        raise CompileError(f"Invalid numeric literal {text!r}", start, bad_end, found=text)
    return float(m.group(0)), end


def _resolve_identifier(
    ident: str,
    start: int,
    end: int,
    symbols: SymbolTables,
    functions: Mapping[str, BuiltinFunction],
) -> Token:
    if ident in _KEYWORDS:
        return Token(_KEYWORDS[ident], ident, start, end)
    if ident == _IMAGINARY_UNIT:
        return Token("NUMBER", ident, start, end, 1j)
    if ident in symbols.arguments:
        return Token("ARGUMENT", ident, start, end, symbols.arguments[ident])
    if ident in symbols.variables:
        return Token("VARIABLE", ident, start, end, symbols.variables[ident])
    if ident in symbols.constants:
        return Token("CONSTANT", ident, start, end, symbols.constants[ident])
    if ident in functions:
        return Token("FUNCTION", ident, start, end, functions[ident])
    raise CompileError(f"Unknown identifier {ident!r}", start, end, found=f"NAME({ident})")


def read_source(source) -> str:
    """Accept a string or any text stream exposing `read()`."""
    if isinstance(source, str):
        return source
    read = getattr(source, "read", None)
    if read is None:
        raise TypeError(f"formula source must be str or a text stream, got {type(source).__name__}")
    text = read()
    if isinstance(text, bytes):
        try:
            text = text.decode("ascii")
        except UnicodeDecodeError as exc:
            bad = text[exc.start : exc.end]
            raise CompileError(
                f"Non-ASCII byte in formula source at offset {exc.start}",
                exc.start,
                exc.end,
                found=repr(bad),
            ) from None
    return text


def tokenize(
    source,
    symbols: SymbolTables | None = None,
    functions: Mapping[str, BuiltinFunction] = BUILTINS,
) -> list[Token]:
    source = read_source(source)
    symbols = symbols if symbols is not None else SymbolTables()
    tokens: list[Token] = []
    i = 0

    while i < len(source):
        ch = source[i]

        if ch.isspace():
            i += 1
            continue

        two = source[i : i + 2]
        if two in _COMPARISON_TOKENS:
            tokens.append(Token(_COMPARISON_TOKENS[two], two, i, i + 2))
            i += 2
            continue

        if ch in _COMPARISON_TOKENS:
            tokens.append(Token(_COMPARISON_TOKENS[ch], ch, i, i + 1))
            i += 1
            continue

        if ch in _SINGLE_TOKENS:
            tokens.append(Token(_SINGLE_TOKENS[ch], ch, i, i + 1))
            i += 1
            continue

        if ch.isdigit() or ch == ".":
            value, end = _scan_number(source, i)
            tokens.append(Token("NUMBER", source[i:end], i, end, value))
            i = end
            continue

        if _is_ident_start(ch):
            start = i
            i += 1
            while i < len(source) and _is_ident_continue(source[i]):
                i += 1
            tokens.append(_resolve_identifier(source[start:i], start, i, symbols, functions))
            continue

        raise CompileError(f"Unexpected character {ch!r}", i, i + 1, found=repr(ch))

    tokens.append(Token("EOF", "", len(source), len(source)))
    return tokens
