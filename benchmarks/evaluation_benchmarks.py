"""Benchmark slice: per-point stack evaluation versus lowered JAX kernels."""

from __future__ import annotations

import argparse
import json
import math
import platform
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

import jax
import numpy as np

from evalfunc_jax import Cell, Formula


@dataclass(frozen=True)
class Workload:
    name: str
    source: str
    arguments: tuple[tuple[str, int, int], ...]
    n_slots: int


@dataclass(frozen=True)
class BenchRow:
    workload: str
    mode: str
    points: int
    compile_ms: float
    p50_ms: float
    p95_ms: float
    per_point_us: float


WORKLOADS: tuple[Workload, ...] = (
    Workload("polynomial", "3*x*x*x - 2*x*x + x - 7", (("x", 1, 1),), 1),
    Workload("trig_mix", "sin(x)*cos(y) + atan2(y, x)", (("x", 1, 1), ("y", 2, 1)), 2),
    Workload("indicator", "(x > 0 and y < 1) * exp(0-x*x) + g", (("x", 1, 1), ("y", 2, 1)), 2),
    Workload("vector_dot", "v*w + 2*(v + w)*(v*v)", (("v", 1, 3), ("w", 4, 3)), 6),
    Workload("bessel", "besselj0(x) + bessely1(x + 1)", (("x", 1, 1),), 1),
)


def _percentile(values: list[float], q: float) -> float:
    ordered = sorted(values)
    pos = (len(ordered) - 1) * q
    lo, hi = int(math.floor(pos)), int(math.ceil(pos))
    return ordered[lo] + (ordered[hi] - ordered[lo]) * (pos - lo)


def _sample_ms(fn, *, samples: int) -> list[float]:
    rows: list[float] = []
    for _ in range(samples):
        start_ns = time.perf_counter_ns()
        value = fn()
        if hasattr(value, "block_until_ready"):
            value.block_until_ready()
        rows.append((time.perf_counter_ns() - start_ns) / 1e6)
    return rows


def _build(workload: Workload) -> Formula:
    f = Formula()
    f.define_variable("g", Cell(0.25))
    for name, slot, width in workload.arguments:
        f.define_argument(name, slot, width)
    f.parse(workload.source)
    return f


def run_workload(workload: Workload, *, points: int, samples: int, seed: int) -> list[BenchRow]:
    rng = np.random.default_rng(seed)
    data = rng.uniform(0.1, 2.0, size=(points, workload.n_slots))
    f = _build(workload)
    rows: list[BenchRow] = []

    def _row(mode: str, compile_ms: float, timings: list[float]) -> BenchRow:
        p50 = _percentile(timings, 0.50)
        return BenchRow(
            workload=workload.name,
            mode=mode,
            points=points,
            compile_ms=compile_ms,
            p50_ms=p50,
            p95_ms=_percentile(timings, 0.95),
            per_point_us=(p50 * 1e3) / points,
        )

    listed = data.tolist()
    rows.append(_row("stack", 0.0, _sample_ms(lambda: f.evaluate_points(listed), samples=samples)))

    kernel = f.lower()
    start_ns = time.perf_counter_ns()
    kernel.batch(data).block_until_ready()
    compile_ms = (time.perf_counter_ns() - start_ns) / 1e6
    rows.append(_row("jax_batch", compile_ms, _sample_ms(lambda: kernel.batch(data), samples=samples)))
    return rows


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--points", type=int, default=2_000)
    parser.add_argument("--samples", type=int, default=5)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--only", action="append", default=[], help="restrict to named workloads")
    parser.add_argument(
        "--json-out",
        default="benchmarks/output/evaluation_benchmarks.json",
        help="where to write machine-readable results",
    )
    args = parser.parse_args()

    selected = [w for w in WORKLOADS if not args.only or w.name in args.only]
    rows: list[BenchRow] = []
    for workload in selected:
        rows.extend(run_workload(workload, points=args.points, samples=args.samples, seed=args.seed))

    print(f"{'workload':<12} {'mode':<10} {'compile_ms':>11} {'p50_ms':>10} {'us/point':>10}")
    for row in rows:
        print(f"{row.workload:<12} {row.mode:<10} {row.compile_ms:>11.2f} {row.p50_ms:>10.3f} {row.per_point_us:>10.3f}")

    out = Path(args.json_out)
    out.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "host": {
            "platform": platform.platform(),
            "python": platform.python_version(),
            "jax": jax.__version__,
            "backend": jax.default_backend(),
        },
        "rows": [asdict(row) for row in rows],
    }
    out.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
