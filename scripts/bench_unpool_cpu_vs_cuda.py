"""
scripts/bench_unpool_cpu_vs_cuda.py

Max-unpooling microbenchmark (NOT a unit test): NumPy reference vs CUDA/cuDNN.

It benchmarks two implementations of the same forward + backward step:

1) "numpy" : `ReferenceUnpooling` (Python loop over (n, c) slices, NumPy
             fancy indexing inside each slice)
2) "cuda"  : `AcceleratedUnpooling` through the ctypes bindings; timings
             include host<->device copies, since that is what a layer pays

What is timed
-------------
- Inputs, masks and outputs are allocated outside the timed region.
- Operator preparation (cuDNN handle / descriptors) happens outside timing.
- Each iteration runs forward then backward.

Notes
-----
- Run multiple times; use median.
- If the native library cannot be loaded, "cuda" is skipped with a warning.

Usage examples
--------------
# Presets
python scripts/bench_unpool_cpu_vs_cuda.py --presets --dtype float32

# Single case
python scripts/bench_unpool_cpu_vs_cuda.py --N 8 --C 64 --H 56 --W 56 --k 2 --s 2 --dtype float32
"""

from __future__ import annotations

import argparse
import statistics
import sys
import time
import warnings
from dataclasses import dataclass
from typing import Callable

import numpy as np

from keyunpool.infrastructure.ops.unpool_cpu import unpooled_hw
from keyunpool.infrastructure.unpooling import (
    ReferenceUnpooling,
    Unpool2dMeta,
    select_unpooling_operator,
)
from keyunpool.domain._errors import AcceleratorUnavailableError


@dataclass(frozen=True)
class Case:
    N: int
    C: int
    H: int
    W: int
    k: int
    s: int


PRESETS = [
    Case(1, 16, 32, 32, 2, 2),
    Case(8, 32, 28, 28, 2, 2),
    Case(8, 64, 56, 56, 2, 2),
    Case(4, 64, 27, 27, 3, 2),
]


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()
    ts: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        t1 = time.perf_counter()
        ts.append(t1 - t0)
    return ts


def _fmt_seconds(x: float) -> str:
    if x < 1e-6:
        return f"{x*1e9:.2f} ns"
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _make_inputs(case: Case, dtype, rng: np.random.Generator):
    H_out, W_out = unpooled_hw(case.H, case.W, (case.k, case.k), (case.s, case.s), (0, 0))
    x = rng.standard_normal((case.N, case.C, case.H, case.W)).astype(dtype)
    # One target per window, matching what a max-pooling layer records.
    ii = np.arange(case.H).reshape(-1, 1) * case.s
    jj = np.arange(case.W).reshape(1, -1) * case.s
    di = rng.integers(0, case.k, size=x.shape)
    dj = rng.integers(0, case.k, size=x.shape)
    mask = ((ii + di) * W_out + (jj + dj)).astype(np.int64)
    y = np.empty((case.N, case.C, H_out, W_out), dtype=dtype)
    gy = rng.standard_normal(y.shape).astype(dtype)
    gx = np.empty_like(x)
    return x, mask, y, gy, gx


def _bench_case(case: Case, ops: dict, *, dtype, warmup: int, repeats: int) -> None:
    rng = np.random.default_rng(0)
    x, mask, y, gy, gx = _make_inputs(case, dtype, rng)
    meta = Unpool2dMeta(kernel_size=(case.k, case.k), stride=(case.s, case.s), padding=(0, 0))

    medians: dict[str, float] = {}
    for name, op in ops.items():
        op.prepare(x.shape, y.shape, meta, dtype=dtype)

        def step() -> None:
            op.forward(x, mask, y)
            op.backward(gy, mask, gx)

        medians[name] = statistics.median(_time_one(step, warmup=warmup, repeats=repeats))

    line = f"N={case.N:<3} C={case.C:<4} H={case.H:<4} W={case.W:<4} k={case.k} s={case.s} | "
    line += "  ".join(f"{name}: {_fmt_seconds(t)}" for name, t in medians.items())
    if "numpy" in medians and "cuda" in medians and medians["cuda"] > 0:
        line += f"  | speedup x{medians['numpy'] / medians['cuda']:.2f}"
    print(line)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[3])
    ap.add_argument("--presets", action="store_true")
    ap.add_argument("--N", type=int, default=8)
    ap.add_argument("--C", type=int, default=32)
    ap.add_argument("--H", type=int, default=28)
    ap.add_argument("--W", type=int, default=28)
    ap.add_argument("--k", type=int, default=2)
    ap.add_argument("--s", type=int, default=2)
    ap.add_argument("--dtype", choices=("float32", "float64"), default="float32")
    ap.add_argument("--warmup", type=int, default=3)
    ap.add_argument("--repeats", type=int, default=10)
    args = ap.parse_args(argv)

    dtype = np.dtype(args.dtype)
    ops: dict = {"numpy": ReferenceUnpooling(check_mask=False)}
    try:
        ops["cuda"] = select_unpooling_operator("cuda", check_mask=False)
    except AcceleratorUnavailableError as e:
        warnings.warn(f"Skipping cuda: {e}", RuntimeWarning, stacklevel=1)

    cases = PRESETS if args.presets else [Case(args.N, args.C, args.H, args.W, args.k, args.s)]
    try:
        for case in cases:
            _bench_case(case, ops, dtype=dtype, warmup=args.warmup, repeats=args.repeats)
    finally:
        for op in ops.values():
            op.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
