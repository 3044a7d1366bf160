"""Compile a formula and print its step trace, result type and optionally one evaluation."""

from __future__ import annotations

import argparse
import sys

from evalfunc_jax import CompileError, Formula


def _parse_argument(text: str) -> tuple[str, int, int]:
    name, sep, spec = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=slot[:width], got {text!r}")
    slot, _, width = spec.partition(":")
    try:
        return name, int(slot), int(width or 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected name=slot[:width], got {text!r}") from None


def _parse_constant(text: str) -> tuple[str, complex | float]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected name=value, got {text!r}")
    try:
        return name, float(value)
    except ValueError:
        pass
    try:
        return name, complex(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None


def _parse_point(text: str) -> list[complex]:
    try:
        return [complex(part) for part in text.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected comma-separated numbers, got {text!r}") from None


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("source", help="formula text, e.g. '2*x + sin(v*v)'")
    parser.add_argument(
        "--arg",
        action="append",
        default=[],
        type=_parse_argument,
        metavar="NAME=SLOT[:WIDTH]",
        help="register an input argument at a 1-based slot",
    )
    parser.add_argument(
        "--const",
        action="append",
        default=[],
        type=_parse_constant,
        metavar="NAME=VALUE",
        help="register a named constant",
    )
    parser.add_argument("--complex", action="store_true", help="declare arguments complex and evaluate in the complex domain")
    parser.add_argument("--eps", type=float, default=None, help="comparison tolerance")
    parser.add_argument("--at", type=_parse_point, default=None, metavar="X1,X2,...", help="evaluate once at this point")
    args = parser.parse_args()

    formula = Formula() if args.eps is None else Formula(eps=args.eps)
    for name, value in args.const:
        formula.define_constant(name, value)
    for name, slot, width in args.arg:
        formula.define_argument(name, slot, width, is_complex=args.complex)

    try:
        formula.parse(args.source)
    except CompileError as exc:
        print(f"error: {exc}", file=sys.stderr)
        print(f"  {args.source}", file=sys.stderr)
        print(f"  {' ' * exc.start}{'^' * max(1, exc.end - exc.start)}", file=sys.stderr)
        return 2

    print(formula.render())
    print(f"infix: {formula}")
    print(f"constant: {formula.is_constant()}")

    if args.at is not None:
        point = args.at if args.complex else [value.real for value in args.at]
        out = [0] * formula.dimension()
        if args.complex:
            formula.evaluate_complex_into(point, out)
        else:
            formula.evaluate_into(point, out)
        values = ", ".join(str(complex(v) if args.complex else float(v)) for v in out)
        print(f"value: {values}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
