from collections import Counter

import pytest

from collatz import (
    RANDOM_HIGH,
    RANDOM_LOW,
    Outcome,
    RangeSampler,
    Xoroshiro128Plus,
    checked_step,
    classify,
    collatz_step,
    cycle_members,
    meeting_point,
)


def ring(v: int) -> int:
    """Synthetic orbit: everything falls into the loop 10 → 11 → … → 14 → 10."""
    return 10 + (v - 9) % 5


def test_step():
    assert collatz_step(6) == 3
    assert collatz_step(7) == 22
    assert collatz_step(1) == 4
    assert collatz_step(2**200) == 2**199


@pytest.mark.parametrize("n", [1, 2, 3, 6, 7, 27, 97, 871])
def test_known_orbits_reach_one(n):
    assert classify(n) is Outcome.REACHES_ONE


def test_one_is_trivial_loop():
    assert classify(1) is Outcome.REACHES_ONE
    assert meeting_point(1) in (1, 2, 4)


def test_large_starts_reach_one():
    assert classify(2**68) is Outcome.REACHES_ONE
    assert classify(2**68 + 1) is Outcome.REACHES_ONE


def test_synthetic_cycle_is_nontrivial():
    assert classify(10, ring) is Outcome.NONTRIVIAL_CYCLE
    assert classify(3, ring) is Outcome.NONTRIVIAL_CYCLE


def test_meeting_walk_recovers_cycle():
    meet = meeting_point(3, ring)
    assert meet is not None
    members = cycle_members(meet, ring)
    assert len(members) == 5
    assert set(members) == {10, 11, 12, 13, 14}


def test_cycle_members_limit():
    meet = meeting_point(10, ring)
    assert len(cycle_members(meet, ring, limit=3)) == 3
    assert cycle_members(1) == [1, 4, 2]


def test_step_ceiling_is_runaway():
    assert meeting_point(5, lambda n: n + 1, max_steps=100) is None
    assert classify(5, lambda n: n + 1, max_steps=100) is Outcome.STEPS_OVERFLOW


def test_fixed_width_overflow():
    # 27 climbs to 9232, far past 8 bits
    assert classify(27, checked_step(8)) is Outcome.OVERFLOW
    assert classify(27, checked_step(64)) is Outcome.REACHES_ONE


def test_checked_step_rejects_tiny_width():
    with pytest.raises(ValueError):
        checked_step(1)


def test_outcome_tags():
    assert Outcome.NONTRIVIAL_CYCLE.tag == "NONTRIVIAL_CYCLE_START"
    assert Outcome.STEPS_OVERFLOW.tag == "RUNAWAY_STEPS_OVERFLOW_START"
    assert Outcome.OVERFLOW.tag == "RUNAWAY_OVERFLOW_START"
    assert not Outcome.REACHES_ONE.terminal
    assert all(o.terminal for o in Outcome if o is not Outcome.REACHES_ONE)


# ── Generator / sampler ─────────────────────────────────────────────────

def test_rng_is_deterministic_per_seed():
    a = Xoroshiro128Plus(42)
    b = Xoroshiro128Plus(42)
    c = Xoroshiro128Plus(43)
    seq_a = [a.next_u64() for _ in range(8)]
    assert seq_a == [b.next_u64() for _ in range(8)]
    assert seq_a != [c.next_u64() for _ in range(8)]
    assert all(0 <= v < 2**64 for v in seq_a)


def test_zero_state_is_corrected():
    rng = Xoroshiro128Plus.from_state(0, 0)
    assert (rng.s0, rng.s1) != (0, 0)
    assert any(rng.next_u64() for _ in range(4))


def test_fill_bytes_length():
    rng = Xoroshiro128Plus(7)
    assert len(rng.fill_bytes(13)) == 13
    assert len(rng.fill_bytes(0)) == 0


def test_sampler_stays_in_range():
    sampler = RangeSampler(Xoroshiro128Plus(12345))
    values = [sampler.sample(10, 20) for _ in range(2000)]
    assert all(10 <= v <= 20 for v in values)
    assert set(values) == set(range(10, 21))


def test_sampler_degenerate_range():
    sampler = RangeSampler(Xoroshiro128Plus(1))
    assert all(sampler.sample(5, 5) == 5 for _ in range(50))
    assert sampler.sample(9, 3) == 9


def test_sampler_is_roughly_uniform():
    sampler = RangeSampler(Xoroshiro128Plus(2024))
    counts = Counter(sampler.sample(0, 10) for _ in range(11_000))
    assert all(800 < counts[v] < 1200 for v in range(11))


def test_sampler_huge_range():
    sampler = RangeSampler(Xoroshiro128Plus(99))
    for _ in range(20):
        v = sampler.sample(RANDOM_LOW, RANDOM_HIGH)
        assert RANDOM_LOW <= v <= RANDOM_HIGH


def test_independent_default_seeding():
    a = RangeSampler()
    b = RangeSampler()
    assert a.rng is not b.rng
