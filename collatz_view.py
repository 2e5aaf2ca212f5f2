"""
Live orbit display for the Collatz hunt.

The scanner pushes sampled starting values and throughput figures into a
small bounded channel; a separate thread owns the terminal, animates the
latest orbit a few steps per tick and plots the bit length of every value
it passes through. A full channel drops frames instead of making the
scanner wait, so the display never slows the search.

  Controls:
    q / ESC   close the display (the scan keeps running)

Plot rows use half-block characters, so each terminal cell carries two
vertical pixels.
"""

from __future__ import annotations

import curses
import logging
import math
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Union

import numpy as np
from numpy.typing import NDArray

from collatz import RANDOM_HIGH, RANDOM_LOW, RangeSampler, collatz_step

logger = logging.getLogger("collatz.view")

# ── Channel / timing ────────────────────────────────────────────────────
CHANNEL_CAPACITY: int = 4
TICK_SECONDS: float = 0.01
STEPS_PER_TICK: int = 16

# Bit lengths above this are clamped so one monster orbit can't flatten
# the plot scale for good
MAX_BITS: int = 4096

# ── Palette ─────────────────────────────────────────────────────────────
# Low orbit values cool indigo, peaks warm amber → white
GRADIENT: list[int] = [
    17, 19, 21,
    57, 93,
    165, 163,
    204, 209,
    214, 220, 231,
]
BASIC_GRADIENT: list[int] = [
    curses.COLOR_BLUE, curses.COLOR_CYAN, curses.COLOR_MAGENTA,
    curses.COLOR_RED, curses.COLOR_YELLOW, curses.COLOR_WHITE,
]

# ── Glyphs ──────────────────────────────────────────────────────────────
UPPER_HALF = "\u2580"  # ▀
LOWER_HALF = "\u2584"  # ▄
FULL_BLOCK = "\u2588"  # █
GRID_DOT = "\u00b7"
SPARKS = "▁▂▃▄▅▆▇█"

GUTTER: int = 7
LOG10_2: float = math.log10(2)


# ═══════════════════════════════════════════════════════════════════════
#  Frames and channel
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Draw:
    """Start animating the orbit of `value`."""
    value: int


@dataclass(frozen=True)
class Stats:
    """Scanner throughput: candidates processed and candidates per second."""
    count: int
    rate: float


Frame = Union[Draw, Stats]


class ViewChannel:
    """Bounded frame queue between the scanner and the display thread.

    `offer` never blocks: when the buffer is full the frame is counted as
    dropped and discarded.
    """

    def __init__(self, capacity: int = CHANNEL_CAPACITY) -> None:
        self._queue: queue.Queue[Frame] = queue.Queue(maxsize=max(1, capacity))
        self.sent: int = 0
        self.dropped: int = 0

    def offer(self, frame: Frame) -> bool:
        try:
            self._queue.put_nowait(frame)
        except queue.Full:
            self.dropped += 1
            return False
        self.sent += 1
        return True

    def poll(self) -> Frame | None:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()


# ═══════════════════════════════════════════════════════════════════════
#  Animation state
# ═══════════════════════════════════════════════════════════════════════

class Trajectory:
    """The orbit currently on screen plus the latest scanner stats.

    Keeps a sliding window of bit lengths for the plot. When the orbit
    lands on 1 and the scanner has not sent anything new, a random
    starting value is drawn locally so the display keeps moving.
    """

    def __init__(
        self, max_history: int = 512, sampler: RangeSampler | None = None
    ) -> None:
        self.history: deque[int] = deque(maxlen=max(2, max_history))
        self.value: int | None = None
        self.origin: int | None = None
        self.steps: int = 0
        self.peak_bits: int = 0
        self.fabricated: bool = False

        # Scanner stats (last Stats frame)
        self.count: int = 0
        self.rate: float = 0.0
        self.rate_history: deque[float] = deque(maxlen=120)

        self.sampler = sampler if sampler is not None else RangeSampler()

    def feed(self, frame: Frame) -> None:
        if isinstance(frame, Draw):
            self.begin(frame.value)
        elif isinstance(frame, Stats):
            self.count = frame.count
            self.rate = frame.rate
            self.rate_history.append(frame.rate)

    def begin(self, value: int, fabricated: bool = False) -> None:
        """Drop the old orbit and start over from `value`."""
        self.history.clear()
        self.value = value
        self.origin = value
        self.steps = 0
        self.peak_bits = 0
        self.fabricated = fabricated
        self._record(value)

    def _record(self, value: int) -> None:
        bits = min(value.bit_length(), MAX_BITS)
        self.history.append(bits)
        if bits > self.peak_bits:
            self.peak_bits = bits

    def advance(self, n_steps: int = STEPS_PER_TICK) -> None:
        """Move the orbit forward by up to `n_steps` values."""
        if self.value is None or self.value <= 1:
            self.begin(self.sampler.sample(RANDOM_LOW, RANDOM_HIGH), fabricated=True)
            return
        value = self.value
        for _ in range(n_steps):
            value = collatz_step(value)
            self.steps += 1
            self._record(value)
            if value <= 1:
                break
        self.value = value

    @property
    def ready(self) -> bool:
        return len(self.history) >= 2

    def samples(self) -> NDArray[np.int32]:
        return np.fromiter(self.history, dtype=np.int32, count=len(self.history))

    def sparkline(self, width: int = 24) -> str:
        if len(self.rate_history) < 2:
            return ""
        data = np.fromiter(self.rate_history, dtype=np.float64)[-width:]
        lo, hi = float(data.min()), float(data.max())
        if hi == lo:
            return SPARKS[len(SPARKS) // 2] * len(data)
        idx = ((data - lo) / (hi - lo) * (len(SPARKS) - 1)).astype(np.intp)
        return "".join(SPARKS[i] for i in idx.tolist())


# ═══════════════════════════════════════════════════════════════════════
#  Plot geometry
# ═══════════════════════════════════════════════════════════════════════

def plot_rows(samples: NDArray[np.int32], width: int, height: int) -> NDArray[np.intp]:
    """Pixel row (0 = top) for each of the last `width` samples.

    The vertical scale runs from 0 bits at the bottom to the largest
    visible sample at the top.
    """
    data = samples[-width:].astype(np.float64)
    top = max(float(data.max()), 1.0)
    rows = np.rint((1.0 - data / top) * (height - 1)).astype(np.intp)
    return np.clip(rows, 0, height - 1)


def line_mask(rows: NDArray[np.intp], height: int) -> NDArray[np.bool_]:
    """Pixels lit by a polyline through (column, row) points.

    Each column fills the vertical run between its row and the previous
    column's row, which keeps steep drops connected.
    """
    prev = np.concatenate((rows[:1], rows[:-1]))
    lo = np.minimum(prev, rows)
    hi = np.maximum(prev, rows)
    ys = np.arange(height)[:, None]
    return (ys >= lo[None, :]) & (ys <= hi[None, :])


# ═══════════════════════════════════════════════════════════════════════
#  Color management
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ColorMap:
    """Foreground attributes for the height gradient."""

    n_gradient: int = len(GRADIENT)
    _fg_attrs: dict[int, int] = field(default_factory=dict)

    def setup(self) -> None:
        curses.start_color()
        try:
            curses.use_default_colors()
            background = -1
        except curses.error:
            background = curses.COLOR_BLACK

        colors = GRADIENT if curses.COLORS >= 256 else BASIC_GRADIENT
        max_pairs = curses.COLOR_PAIRS - 1
        for i, c in enumerate(colors):
            pair_id = i + 1
            if pair_id > max_pairs:
                break
            curses.init_pair(pair_id, c, background)
            self._fg_attrs[i] = curses.color_pair(pair_id)
        self.n_gradient = len(colors)

    def fg(self, color_idx: int) -> int:
        return self._fg_attrs.get(color_idx, curses.A_NORMAL)


# ═══════════════════════════════════════════════════════════════════════
#  Drawing
# ═══════════════════════════════════════════════════════════════════════

def draw_grid(
    stdscr: curses.window,
    y0: int,
    n_rows: int,
    width: int,
    top_bits: int,
) -> None:
    """Dotted horizontal guides at quarter heights with bit labels."""
    for frac in (1.0, 0.75, 0.5, 0.25, 0.0):
        row = y0 + int(round((1.0 - frac) * (n_rows - 1)))
        label = f"{int(top_bits * frac):>{GUTTER - 2}} "
        try:
            stdscr.addstr(row, 0, label[:GUTTER], curses.A_DIM)
            stdscr.addstr(row, GUTTER, (GRID_DOT + " ") * (width // 2), curses.A_DIM)
        except curses.error:
            pass


def draw_mask(
    stdscr: curses.window,
    mask: NDArray[np.bool_],
    y0: int,
    x0: int,
    cmap: ColorMap,
) -> int:
    """Blit a pixel mask as half-block characters; returns cells drawn."""
    n_px = mask.shape[0] - mask.shape[0] % 2
    top = mask[0:n_px:2]
    bot = mask[1:n_px:2]
    n_rows = top.shape[0]
    ng = cmap.n_gradient

    ys, xs = np.nonzero(top | bot)
    # Higher rows get warmer colors
    cidx = ((n_rows - 1 - ys) * (ng - 1) // max(n_rows - 1, 1)).tolist()
    ta = top[ys, xs].tolist()
    ba = bot[ys, xs].tolist()
    ys_l = ys.tolist()
    xs_l = xs.tolist()

    _addstr = stdscr.addstr
    _fg = cmap.fg
    _BOLD = curses.A_BOLD
    for i in range(len(ys_l)):
        if ta[i] and ba[i]:
            ch = FULL_BLOCK
        elif ta[i]:
            ch = UPPER_HALF
        else:
            ch = LOWER_HALF
        try:
            _addstr(y0 + ys_l[i], x0 + xs_l[i], ch, _fg(cidx[i]) | _BOLD)
        except curses.error:
            pass
    return len(ys_l)


def render(stdscr: curses.window, traj: Trajectory, cmap: ColorMap) -> None:
    """Plot the orbit window, guides and the status bar."""
    max_y, max_x = stdscr.getmaxyx()
    plot_w = max_x - GUTTER - 1
    n_rows = max_y - 2

    samples = traj.samples()
    if plot_w >= 2 and n_rows >= 2 and len(samples) >= 2:
        visible = samples[-plot_w:]
        top_bits = max(int(visible.max()), 1)
        height = n_rows * 2
        rows = plot_rows(visible, plot_w, height)
        draw_grid(stdscr, 1, n_rows, plot_w, top_bits)
        draw_mask(stdscr, line_mask(rows, height), 1, GUTTER, cmap)

    title = "  orbit bit length"
    if traj.origin is not None:
        bits = traj.origin.bit_length()
        origin = f"start 2^{bits - 1}+" if bits > 64 else f"start {traj.origin}"
        title += f"  {origin}  step {traj.steps:,}  peak {traj.peak_bits} bits"
        if traj.fabricated:
            title += "  [idle]"
    try:
        stdscr.addstr(0, 0, title[: max_x - 1], curses.A_BOLD)
    except curses.error:
        pass

    # ── Status bar ──────────────────────────────────────────────────
    value_bits = traj.value.bit_length() if traj.value is not None else 0
    digits = int(max(value_bits - 1, 0) * LOG10_2) + 1
    left = (
        f"  checked {traj.count:,}  {traj.rate:,.0f}/s  {traj.sparkline()}"
        f"  now {value_bits} bits (~{digits} digits)"
    )
    right = "  q quit  "
    gap = max_x - len(left) - len(right) - 1
    status = left + " " * max(gap, 1) + right
    try:
        stdscr.addstr(max_y - 1, 0, status[: max_x - 1], curses.A_DIM)
    except curses.error:
        pass


# ═══════════════════════════════════════════════════════════════════════
#  Consumer loop
# ═══════════════════════════════════════════════════════════════════════

def view_loop(
    stdscr: curses.window,
    channel: ViewChannel,
    max_history: int = 512,
    stop: threading.Event | None = None,
) -> None:
    curses.curs_set(0)
    stdscr.nodelay(True)
    stdscr.timeout(0)

    cmap = ColorMap()
    cmap.setup()
    traj = Trajectory(max_history)

    while stop is None or not stop.is_set():
        # ── Input ──────────────────────────────────────────────────
        try:
            key = stdscr.getch()
        except curses.error:
            key = -1

        if key in (ord("q"), ord("Q"), 27):
            break
        elif key == curses.KEY_RESIZE:
            stdscr.clear()

        # ── Frames ─────────────────────────────────────────────────
        while True:
            frame = channel.poll()
            if frame is None:
                break
            traj.feed(frame)

        # ── Animate + render ───────────────────────────────────────
        traj.advance()
        if traj.ready:
            stdscr.erase()
            render(stdscr, traj, cmap)
            stdscr.refresh()

        time.sleep(TICK_SECONDS)


class ViewThread(threading.Thread):
    """Runs the display on its own thread; the scanner never waits on it."""

    def __init__(self, channel: ViewChannel, max_history: int = 512) -> None:
        super().__init__(name="collatz-view", daemon=True)
        self.channel = channel
        self.max_history = max_history
        # `settled` fires once curses is up or has failed; `active` only if up
        self.settled = threading.Event()
        self.active = threading.Event()
        self._stop_event = threading.Event()

    def run(self) -> None:
        try:
            curses.wrapper(self._run)
        except curses.error as exc:
            logger.error("Visualization unavailable, continuing headless: %s", exc)
        finally:
            self.active.clear()
            self.settled.set()

    def _run(self, stdscr: curses.window) -> None:
        self.active.set()
        self.settled.set()
        view_loop(stdscr, self.channel, self.max_history, self._stop_event)

    def wait_settled(self, timeout: float = 2.0) -> bool:
        """True if the display came up within `timeout`."""
        self.settled.wait(timeout)
        return self.active.is_set()

    def close(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
