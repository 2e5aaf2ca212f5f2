#!/usr/bin/env python3
"""
Profiling harness for the Collatz hunt.

Runs classification and the display's render path headlessly, under
cProfile or with per-candidate timing, and measures whether a flooded
display channel costs the scanner any throughput.

Usage:
  python3 collatz_bench.py                  # 2000 candidates from 2^68, summary
  python3 collatz_bench.py -n 500 --bits 512
  python3 collatz_bench.py --line-timing    # per-candidate component timing
  python3 collatz_bench.py --flood          # throughput with vs. without a full channel
  python3 collatz_bench.py --dump prof.out  # dump cProfile binary for snakeviz etc.
"""

from __future__ import annotations

import argparse
import cProfile
import pstats
import time
from io import StringIO

import numpy as np

from collatz import classify
from collatz_view import (
    ColorMap,
    Draw,
    Stats,
    Trajectory,
    ViewChannel,
    line_mask,
    plot_rows,
    render,
)


# ── Fake curses stubs for headless rendering ────────────────────────────

class FakeWindow:
    """Minimal curses.window stub that absorbs addstr calls."""

    def __init__(self, rows: int, cols: int) -> None:
        self._rows = rows
        self._cols = cols
        self._calls = 0
        self.cells: dict[tuple[int, int], str] = {}

    def getmaxyx(self) -> tuple[int, int]:
        return self._rows, self._cols

    def addstr(self, y: int, x: int, text: str, attr: int = 0) -> None:
        self._calls += 1
        for i, ch in enumerate(text):
            self.cells[(y, x + i)] = ch

    def row_text(self, y: int) -> str:
        return "".join(self.cells.get((y, x), " ") for x in range(self._cols))

    def erase(self) -> None:
        self.cells.clear()

    def refresh(self) -> None:
        pass


def simulate_render_work(traj: Trajectory, rows: int = 60, cols: int = 200) -> dict[str, float]:
    """
    Time the render() hot path against a FakeWindow.

    Returns a dict of component → seconds.
    """
    timings: dict[str, float] = {}
    win = FakeWindow(rows, cols)

    t0 = time.perf_counter()
    samples = traj.samples()
    height = (rows - 2) * 2
    mask = line_mask(plot_rows(samples, cols - 8, height), height)
    timings["plot_geometry"] = time.perf_counter() - t0

    t0 = time.perf_counter()
    render(win, traj, ColorMap())
    timings["render"] = time.perf_counter() - t0
    timings["_char_calls"] = float(win._calls)
    timings["_lit_pixels"] = float(mask.sum())
    return timings


def candidate_throughput(
    start: int, n: int, channel: ViewChannel | None = None
) -> float:
    """Candidates per second, offering every candidate to `channel` if given."""
    t0 = time.perf_counter()
    for i in range(n):
        classify(start + i)
        if channel is not None:
            channel.offer(Draw(start + i))
            channel.offer(Stats(i + 1, 0.0))
    return n / max(time.perf_counter() - t0, 1e-9)


def run_flood(start: int, n: int) -> None:
    """Compare scanning with no channel against a channel nobody drains."""
    base = candidate_throughput(start, n)
    channel = ViewChannel()
    flooded = candidate_throughput(start, n, channel)
    print(f"Headless:  {base:,.0f} candidates/s")
    print(f"Flooded:   {flooded:,.0f} candidates/s  "
          f"(sent {channel.sent}, dropped {channel.dropped}, pending {channel.pending()})")
    print(f"Slowdown:  {100 * (1 - flooded / base):.1f}%")


def run_benchmark(
    n_candidates: int,
    start: int,
    line_timing: bool = False,
    dump_path: str | None = None,
) -> None:
    """Run the benchmark for n_candidates and report results."""
    traj = Trajectory(max_history=512)
    traj.begin(start)

    print(f"Start: 2^{start.bit_length() - 1}+  Candidates: {n_candidates}")
    print()

    # ── Per-candidate component timing ─────────────────────────────
    if line_timing:
        classify_times: list[float] = []
        render_times: dict[str, list[float]] = {}

        for i in range(n_candidates):
            t0 = time.perf_counter()
            classify(start + i)
            classify_times.append(time.perf_counter() - t0)

            traj.advance()
            rt = simulate_render_work(traj)
            for k, v in rt.items():
                render_times.setdefault(k, []).append(v)

            if (i + 1) % 500 == 0:
                avg_ms = sum(classify_times[-500:]) / 500 * 1000
                print(f"  candidate {i + 1}/{n_candidates}  avg classify {avg_ms:.3f}ms")

        print()
        print("=== Per-Candidate Component Breakdown (ms) ===")
        print(f"{'Component':<25} {'Mean':>8} {'P50':>8} {'P95':>8} {'P99':>8} {'Max':>8}")
        print("-" * 73)

        def stats_line(name: str, data: list[float]) -> str:
            arr = np.array(data) * 1000  # to ms
            return (f"{name:<25} {arr.mean():8.3f} {np.median(arr):8.3f} "
                    f"{np.percentile(arr, 95):8.3f} {np.percentile(arr, 99):8.3f} "
                    f"{arr.max():8.3f}")

        print(stats_line("classify()", classify_times))
        for k in sorted(render_times.keys()):
            if k.startswith("_"):
                continue
            print(stats_line(k, render_times[k]))

        char_calls = render_times.get("_char_calls", [])
        if char_calls:
            arr = np.array(char_calls)
            print(f"\naddstr calls/frame: mean={arr.mean():.0f}  max={arr.max():.0f}")
        return

    # ── cProfile run ───────────────────────────────────────────────
    def profiled_run() -> None:
        for i in range(n_candidates):
            classify(start + i)

    profiler = cProfile.Profile()
    wall_t0 = time.perf_counter()
    profiler.runctx("profiled_run()", globals(), locals())
    wall_dt = time.perf_counter() - wall_t0

    print(f"Wall time: {wall_dt:.2f}s  ({wall_dt / n_candidates * 1000:.3f}ms/candidate)")
    print(f"Throughput: {n_candidates / wall_dt:,.0f} candidates/s")
    print()

    if dump_path:
        profiler.dump_stats(dump_path)
        print(f"Profile data saved to: {dump_path}")
        print(f"  View with: python3 -m pstats {dump_path}")
        print()

    buf = StringIO()
    ps = pstats.Stats(profiler, stream=buf)
    ps.sort_stats("cumulative")
    ps.print_stats(20)
    print(buf.getvalue())


def main() -> None:
    parser = argparse.ArgumentParser(description="Profile the Collatz hunt")
    parser.add_argument("-n", "--candidates", type=int, default=2000,
                        help="Number of starting values to classify (default: 2000)")
    parser.add_argument("--bits", type=int, default=68,
                        help="Start at 2^BITS (default: 68)")
    parser.add_argument("--line-timing", action="store_true",
                        help="Per-candidate component timing instead of cProfile")
    parser.add_argument("--flood", action="store_true",
                        help="Measure throughput against an undrained display channel")
    parser.add_argument("--dump", type=str, default=None,
                        help="Dump cProfile binary to this path")
    args = parser.parse_args()

    start = 1 << args.bits
    if args.flood:
        run_flood(start, args.candidates)
        return
    run_benchmark(
        n_candidates=args.candidates,
        start=start,
        line_timing=args.line_timing,
        dump_path=args.dump,
    )


if __name__ == "__main__":
    main()
