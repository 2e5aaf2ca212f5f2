"""
Orbit arithmetic for the Collatz hunt.

Classifies the long-run behaviour of a starting value with Floyd's
tortoise-and-hare, holding only two orbit values and a step counter no
matter how long the orbit runs. Also home to the small xoroshiro128+
generator and the rejection sampler that draws random starting values
from huge integer ranges without modulo bias.
"""

from __future__ import annotations

import enum
import time
from typing import Callable

# ── Constants ───────────────────────────────────────────────────────────
DEFAULT_START: int = 1 << 68
RANDOM_LOW: int = 1 << 68
RANDOM_HIGH: int = (1 << 2000) - 1

# Floyd iterations allowed before an orbit is declared a runaway
STEP_CEILING: int = (1 << 64) - 1

MASK64: int = (1 << 64) - 1

StepFn = Callable[[int], int]


# ═══════════════════════════════════════════════════════════════════════
#  Orbit step
# ═══════════════════════════════════════════════════════════════════════

def collatz_step(n: int) -> int:
    """n/2 for even n, 3n+1 for odd n."""
    if n & 1:
        return 3 * n + 1
    return n >> 1


class OrbitOverflow(ArithmeticError):
    """An orbit value no longer fits the emulated fixed width."""

    def __init__(self, value: int, width: int) -> None:
        super().__init__(f"orbit value from {value} exceeds {width} bits")
        self.value = value
        self.width = width


def checked_step(width: int, step: StepFn = collatz_step) -> StepFn:
    """Wrap `step` so values past `width` bits raise OrbitOverflow.

    Emulates a fixed-width integer scanner on top of Python ints.
    """
    if width < 2:
        raise ValueError("width must be at least 2 bits")
    limit = (1 << width) - 1

    def nxt(n: int) -> int:
        v = step(n)
        if v > limit:
            raise OrbitOverflow(n, width)
        return v

    return nxt


# ═══════════════════════════════════════════════════════════════════════
#  Cycle detection
# ═══════════════════════════════════════════════════════════════════════

class Outcome(enum.Enum):
    """How an orbit ends up, one per classified starting value."""

    REACHES_ONE = "reaches_one"            # enters the 1-4-2 loop
    NONTRIVIAL_CYCLE = "nontrivial_cycle"  # enters a loop without 1
    STEPS_OVERFLOW = "steps_overflow"      # no meeting within the ceiling
    OVERFLOW = "overflow"                  # left the emulated fixed width

    @property
    def terminal(self) -> bool:
        """True for outcomes that end a scan."""
        return self is not Outcome.REACHES_ONE

    @property
    def tag(self) -> str:
        return SOLUTION_TAGS[self]


SOLUTION_TAGS: dict[Outcome, str] = {
    Outcome.REACHES_ONE: "REACHES_ONE",
    Outcome.NONTRIVIAL_CYCLE: "NONTRIVIAL_CYCLE_START",
    Outcome.STEPS_OVERFLOW: "RUNAWAY_STEPS_OVERFLOW_START",
    Outcome.OVERFLOW: "RUNAWAY_OVERFLOW_START",
}


def meeting_point(
    start: int,
    step: StepFn = collatz_step,
    max_steps: int = STEP_CEILING,
) -> int | None:
    """Run the tortoise and hare from `start` until they meet.

    The tortoise starts one step ahead of `start`, the hare two. Returns the
    value both pointers share, or None if `max_steps` iterations pass
    without a meeting.
    """
    tortoise = step(start)
    hare = step(step(start))
    steps = 0
    while tortoise != hare:
        tortoise = step(tortoise)
        hare = step(step(hare))
        steps += 1
        if steps >= max_steps:
            return None
    return tortoise


def classify(
    start: int,
    step: StepFn = collatz_step,
    max_steps: int = STEP_CEILING,
) -> Outcome:
    """Classify the orbit of `start` in O(1) auxiliary memory.

    After the pointers meet, walks the cycle once from the meeting point:
    seeing 1 means the trivial loop, coming back round without it means a
    cycle that avoids 1.
    """
    try:
        meet = meeting_point(start, step, max_steps)
        if meet is None:
            return Outcome.STEPS_OVERFLOW
        x = meet
        while True:
            if x == 1:
                return Outcome.REACHES_ONE
            x = step(x)
            if x == meet:
                return Outcome.NONTRIVIAL_CYCLE
    except OrbitOverflow:
        return Outcome.OVERFLOW


def cycle_members(
    meet: int, step: StepFn = collatz_step, limit: int | None = None
) -> list[int]:
    """List the cycle through `meet`, in orbit order.

    Stops after `limit` members when given, so the result is a prefix for
    cycles longer than that.
    """
    members = [meet]
    x = step(meet)
    while x != meet:
        if limit is not None and len(members) >= limit:
            break
        members.append(x)
        x = step(x)
    return members


# ═══════════════════════════════════════════════════════════════════════
#  Random starting values
# ═══════════════════════════════════════════════════════════════════════

def _rotl(x: int, k: int) -> int:
    return ((x << k) | (x >> (64 - k))) & MASK64


def _splitmix64(x: int) -> tuple[int, int]:
    """One splitmix64 round: (new state, output)."""
    x = (x + 0x9E3779B97F4A7C15) & MASK64
    z = x
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
    return x, z ^ (z >> 31)


class Xoroshiro128Plus:
    """Two-word xoroshiro128+ generator producing 64-bit outputs.

    Fast, not cryptographic. Each instance owns its state; seeding with no
    argument uses the nanosecond clock at construction time.
    """

    __slots__ = ("s0", "s1")

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = time.time_ns()
        mix = seed & MASK64
        mix, self.s0 = _splitmix64(mix ^ ((seed >> 64) & MASK64))
        mix, self.s1 = _splitmix64(mix)
        # All-zero state is a fixed point of the recurrence
        if self.s0 == 0 and self.s1 == 0:
            self.s0 = 0x9E3779B97F4A7C15

    @classmethod
    def from_state(cls, s0: int, s1: int) -> Xoroshiro128Plus:
        rng = cls.__new__(cls)
        rng.s0 = s0 & MASK64
        rng.s1 = s1 & MASK64
        if rng.s0 == 0 and rng.s1 == 0:
            rng.s0 = 0x9E3779B97F4A7C15
        return rng

    def next_u64(self) -> int:
        s0 = self.s0
        s1 = self.s1
        result = (s0 + s1) & MASK64
        s1 ^= s0
        self.s0 = _rotl(s0, 24) ^ s1 ^ ((s1 << 16) & MASK64)
        self.s1 = _rotl(s1, 37)
        return result

    def fill_bytes(self, n: int) -> bytes:
        out = bytearray()
        while len(out) < n:
            out += self.next_u64().to_bytes(8, "little")
        return bytes(out[:n])


class RangeSampler:
    """Uniform draws from inclusive integer ranges of any size.

    Fills just enough bytes to cover the span and rejects draws that land
    outside it, so every value in the range is equally likely.
    """

    def __init__(self, rng: Xoroshiro128Plus | None = None) -> None:
        self.rng = rng if rng is not None else Xoroshiro128Plus()

    def sample(self, low: int, high: int) -> int:
        if low >= high:
            return low
        span = high - low + 1
        n_bytes = (span.bit_length() + 7) // 8
        while True:
            v = int.from_bytes(self.rng.fill_bytes(n_bytes), "big")
            if v < span:
                return low + v
