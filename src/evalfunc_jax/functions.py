"""Builtin function registry shared by every compiled formula."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Final, Mapping

import jax
import jax.numpy as jnp
import numpy as np
import scipy.special as sps


@dataclass(frozen=True)
class BuiltinFunction:
    """Fixed-arity numeric function.

    `scalar` works on NumPy scalars of either domain and backs the stack
    evaluator; `array` works on `jax.numpy` arrays and backs lowered kernels.
    """

    name: str
    arity: int
    scalar: Callable[..., object]
    array: Callable[..., object]

    def __repr__(self) -> str:
        return f"BuiltinFunction({self.name!r}, arity={self.arity})"


def _step_scalar(x):
    return np.heaviside(np.real(x), 1.0)


def _step_array(x):
    return jnp.where(jnp.real(x) < 0, 0.0, 1.0).astype(x.dtype)


def _atan2_scalar(y, x):
    if np.iscomplexobj(y) or np.iscomplexobj(x):
        return -1j * np.log((x + 1j * y) / np.sqrt(x * x + y * y))
    return np.arctan2(y, x)


def _atan2_array(y, x):
    if jnp.iscomplexobj(y) or jnp.iscomplexobj(x):
        return -1j * jnp.log((x + 1j * y) / jnp.sqrt(x * x + y * y))
    return jnp.arctan2(y, x)


def _bessel_scalar(kind: Callable[[int, object], object], order: int) -> Callable[[object], object]:
    def fn(x):
        return kind(order, x)

    return fn


def _bessel_array(kind: Callable[[int, object], object], order: int) -> Callable[[object], object]:
    # No native jax.numpy kernel for J/Y of integer order; route through SciPy on host.
    def host(x):
        return np.asarray(kind(order, x), dtype=x.dtype)

    def fn(x):
        x = jnp.asarray(x)
        return jax.pure_callback(host, jax.ShapeDtypeStruct(x.shape, x.dtype), x, vmap_method="sequential")

    return fn


def _build_registry() -> Mapping[str, BuiltinFunction]:
    entries = (
        BuiltinFunction("sin", 1, np.sin, jnp.sin),
        BuiltinFunction("cos", 1, np.cos, jnp.cos),
        BuiltinFunction("tan", 1, np.tan, jnp.tan),
        BuiltinFunction("atan", 1, np.arctan, jnp.arctan),
        BuiltinFunction("atan2", 2, _atan2_scalar, _atan2_array),
        BuiltinFunction("exp", 1, np.exp, jnp.exp),
        BuiltinFunction("log", 1, np.log, jnp.log),
        BuiltinFunction("abs", 1, np.abs, jnp.abs),
        BuiltinFunction("sign", 1, np.sign, jnp.sign),
        BuiltinFunction("sqrt", 1, np.sqrt, jnp.sqrt),
        BuiltinFunction("step", 1, _step_scalar, _step_array),
        BuiltinFunction("besselj0", 1, _bessel_scalar(sps.jv, 0), _bessel_array(sps.jv, 0)),
        BuiltinFunction("bessely0", 1, _bessel_scalar(sps.yv, 0), _bessel_array(sps.yv, 0)),
        BuiltinFunction("besselj1", 1, _bessel_scalar(sps.jv, 1), _bessel_array(sps.jv, 1)),
        BuiltinFunction("bessely1", 1, _bessel_scalar(sps.yv, 1), _bessel_array(sps.yv, 1)),
    )
    return MappingProxyType({entry.name: entry for entry in entries})


BUILTINS: Final[Mapping[str, BuiltinFunction]] = _build_registry()
