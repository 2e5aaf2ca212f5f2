"""
Resumable scan over Collatz starting values.

Walks starting values one after another (or draws them at random), runs
each through the cycle classifier and keeps a one-line checkpoint file up
to date so a restart picks up where the last run stopped. The first
orbit that is not the ordinary 1-4-2 loop is written to the solution file
and ends the scan.

Every checkpoint and solution write is flushed and fsync'd before the
scan moves on. A failed write raises OSError and stops the scan: carrying
on without a durable position would defeat the point of the files.
"""

from __future__ import annotations

import enum
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, ClassVar

from collatz import (
    DEFAULT_START,
    RANDOM_HIGH,
    RANDOM_LOW,
    STEP_CEILING,
    Outcome,
    RangeSampler,
    StepFn,
    checked_step,
    classify,
    collatz_step,
    cycle_members,
    meeting_point,
)
from collatz_view import Draw, Stats, ViewChannel

logger = logging.getLogger("collatz.scan")

LOG_EVERY: int = 10_000
STATS_PERIOD: float = 0.5
# Nontrivial cycles shorter than this are listed in the finding log
CYCLE_REPORT_LIMIT: int = 64


# ═══════════════════════════════════════════════════════════════════════
#  Options
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ScanOptions:
    """Everything the scanner needs from the command line."""

    start: int | None = None
    count: int | None = None
    resume: bool = True
    checkpoint_path: Path = Path("progress.txt")
    solution_path: Path = Path("solution.txt")
    progress_interval: int = 1000
    random_mode: bool = False
    visualization_enabled: bool = False
    visualization_sample_interval: int = 1000
    visualization_max_history: int = 512
    stats_path: Path | None = None
    width: int | None = None

    def __post_init__(self) -> None:
        self.checkpoint_path = Path(self.checkpoint_path)
        self.solution_path = Path(self.solution_path)
        if self.stats_path is not None:
            self.stats_path = Path(self.stats_path)
        self.progress_interval = max(1, self.progress_interval)
        self.visualization_sample_interval = max(1, self.visualization_sample_interval)
        self.visualization_max_history = max(2, self.visualization_max_history)


# ═══════════════════════════════════════════════════════════════════════
#  Checkpoint / solution files
# ═══════════════════════════════════════════════════════════════════════

def read_last_start(path: Path) -> int | None:
    """Last non-empty line of the checkpoint file that parses as an integer.

    A missing or unreadable file is not an error, just no checkpoint.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            lines = fh.readlines()
    except (OSError, UnicodeDecodeError):
        return None

    last: int | None = None
    for line in lines:
        text = line.strip()
        if not text:
            continue
        try:
            value = int(text)
        except ValueError:
            continue
        if value >= 0:
            last = value
    return last


def _write_durably(path: Path, line: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(line + "\n")
        fh.flush()
        os.fsync(fh.fileno())


def write_checkpoint(path: Path, value: int) -> None:
    """Replace the checkpoint file with `value` and fsync it."""
    _write_durably(path, str(value))


def write_solution(path: Path, outcome: Outcome, value: int) -> None:
    """Replace the solution file with `<TAG> <value>` and fsync it."""
    _write_durably(path, f"{outcome.tag} {value}")


def resolve_start(options: ScanOptions) -> int:
    """Explicit start, else checkpoint + 1 when resuming, else the default."""
    if options.start is not None:
        return options.start
    if options.resume:
        last = read_last_start(options.checkpoint_path)
        if last is not None:
            return last + 1
    return DEFAULT_START


# ═══════════════════════════════════════════════════════════════════════
#  Telemetry
# ═══════════════════════════════════════════════════════════════════════

class StatsLogger:
    """Writes scan telemetry to CSV for post-hoc throughput analysis."""

    HEADER: ClassVar[str] = "processed,time_s,current_bits,rate,event\n"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(self, processed: int, current: int, rate: float, event: str = "") -> None:
        if self._fh is None:
            return
        t = time.monotonic() - self._t0
        try:
            self._fh.write(
                f"{processed},{t:.1f},{current.bit_length()},{rate:.1f},{event}\n"
            )
            if event:
                self._fh.flush()
        except OSError:
            pass

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Scanner
# ═══════════════════════════════════════════════════════════════════════

class ScanState(enum.Enum):
    SCANNING = "scanning"
    FOUND = "found"
    LIMIT_REACHED = "limit_reached"


@dataclass
class ScanResult:
    state: ScanState
    processed: int
    last: int | None
    outcome: Outcome | None = None


class Scanner:
    """
    The hot loop: pick a candidate, classify it, keep the books.

    Sequential mode adds a running offset to the start value and
    checkpoints it; random mode draws every candidate independently from
    [2^68, 2^2000 - 1] and keeps no checkpoint. An explicit start is
    ignored in random mode.
    """

    def __init__(
        self,
        options: ScanOptions,
        channel: ViewChannel | None = None,
        step: StepFn = collatz_step,
        max_steps: int = STEP_CEILING,
        sampler: RangeSampler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options
        self.channel = channel
        self.step = checked_step(options.width, step) if options.width else step
        self.max_steps = max_steps
        self.sampler = sampler if sampler is not None else RangeSampler()
        self.clock = clock

        self.state: ScanState = ScanState.SCANNING
        self.processed: int = 0
        self.rate: float = 0.0
        self._t0: float = 0.0
        self._last_stats: float = 0.0
        self._stats_log: StatsLogger | None = None

    # ── Bookkeeping ─────────────────────────────────────────────────

    def _checkpoint(self, value: int, event: str = "") -> None:
        write_checkpoint(self.options.checkpoint_path, value)
        if self._stats_log is not None:
            self._stats_log.log(self.processed, value, self.rate, event)

    def _publish(self, current: int) -> None:
        """Best-effort frames for the display; drops are fine."""
        if self.channel is None:
            return
        if self.processed % self.options.visualization_sample_interval == 0:
            self.channel.offer(Draw(current))
        now = self.clock()
        if now - self._last_stats >= STATS_PERIOD:
            self._last_stats = now
            self.channel.offer(Stats(self.processed + 1, self.rate))

    def _update_rate(self) -> None:
        elapsed = self.clock() - self._t0
        if elapsed > 0:
            self.rate = (self.processed + 1) / elapsed

    def _report_finding(self, current: int, outcome: Outcome) -> None:
        if outcome is Outcome.NONTRIVIAL_CYCLE:
            logger.warning("Found nontrivial loop starting from %d.", current)
            meet = meeting_point(current, self.step, self.max_steps)
            if meet is not None:
                members = cycle_members(meet, self.step, CYCLE_REPORT_LIMIT)
                if len(members) < CYCLE_REPORT_LIMIT:
                    logger.warning(
                        "Cycle length %d, smallest member %d", len(members), min(members)
                    )
        else:
            logger.warning("Detected runaway (%s). Start: %d", outcome.tag, current)

    # ── Main loop ───────────────────────────────────────────────────

    def run(self) -> ScanResult:
        opts = self.options
        sequential = not opts.random_mode
        start = resolve_start(opts)

        if sequential:
            logger.info(
                "Starting at %d%s -> recording progress in %s",
                start, " (resume)" if opts.resume else "", opts.checkpoint_path,
            )
            write_checkpoint(opts.checkpoint_path, start)
        else:
            logger.info("Starting random scan over [2^68, 2^2000 - 1]")

        if opts.stats_path is not None:
            self._stats_log = StatsLogger(opts.stats_path)
            self._stats_log.open()

        self._t0 = self.clock()
        self._last_stats = self._t0
        current: int | None = None
        done: int | None = None
        try:
            while True:
                if opts.count is not None and self.processed >= opts.count:
                    return self._finish(ScanState.LIMIT_REACHED, current, None)

                if sequential:
                    current = start + self.processed
                else:
                    current = self.sampler.sample(RANDOM_LOW, RANDOM_HIGH)

                outcome = classify(current, self.step, self.max_steps)
                self._update_rate()

                if sequential and self.processed % opts.progress_interval == 0:
                    self._checkpoint(current)
                if self.processed % LOG_EVERY == 0:
                    logger.info("Processed %d starts (up to %d)", self.processed, current)

                self._publish(current)

                self.processed += 1
                if outcome.terminal:
                    self._report_finding(current, outcome)
                    write_solution(opts.solution_path, outcome, current)
                    return self._finish(ScanState.FOUND, current, outcome)
                done = current
        except KeyboardInterrupt:
            # Last start classified as reaching 1; a resume continues after it
            if sequential and done is not None:
                self._checkpoint(done, "interrupted")
                logger.info("Interrupted after %d starts (up to %d)", self.processed, done)
            raise
        finally:
            if self._stats_log is not None:
                self._stats_log.close()
                self._stats_log = None

    def _finish(
        self, state: ScanState, last: int | None, outcome: Outcome | None
    ) -> ScanResult:
        self.state = state
        if last is not None and not self.options.random_mode:
            self._checkpoint(last, state.value)
        elif self._stats_log is not None and last is not None:
            self._stats_log.log(self.processed, last, self.rate, state.value)
        logger.info("Scan stopped (%s) after %d starts", state.value, self.processed)
        return ScanResult(state, self.processed, last, outcome)
