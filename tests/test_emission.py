import time

import pytest

from hyperchain.emission import (
    HALVING_FACTOR,
    HALVING_PERIOD,
    INITIAL_REWARD,
    TOTAL_SUPPLY,
    Emission,
    EmissionError,
)

GENESIS = 1_700_000_000


def test_default_schedule_fields():
    emission = Emission.default_with_timestamp(GENESIS, 2)
    assert emission.initial_reward == INITIAL_REWARD
    assert emission.total_supply == TOTAL_SUPPLY
    assert emission.halving_period == HALVING_PERIOD
    assert emission.halving_factor == HALVING_FACTOR
    assert emission.current_supply == 0
    assert emission.last_halving_period == 0


def test_reward_at_genesis_is_initial_reward():
    emission = Emission.default_with_timestamp(GENESIS, 1)
    assert emission.calculate_reward(GENESIS) == INITIAL_REWARD


def test_reward_split_across_chains():
    emission = Emission.default_with_timestamp(GENESIS, 4)
    assert emission.calculate_reward(GENESIS) == 125


def test_reward_before_genesis_raises():
    emission = Emission.default_with_timestamp(GENESIS, 1)
    with pytest.raises(EmissionError, match="before genesis"):
        emission.calculate_reward(GENESIS - 1)


def test_reward_constant_within_period_and_decreasing_across():
    emission = Emission.default_with_timestamp(GENESIS, 1)
    first = emission.calculate_reward(GENESIS)
    assert emission.calculate_reward(GENESIS + HALVING_PERIOD - 1) == first
    rewards = [emission.calculate_reward(GENESIS + k * HALVING_PERIOD) for k in range(6)]
    assert all(later < earlier for earlier, later in zip(rewards, rewards[1:]))


def test_reward_never_below_one():
    emission = Emission(500, TOTAL_SUPPLY, 1, 0.5, 0, 1000)
    assert emission.calculate_reward(10_000) == 1


def test_constructor_clamps():
    emission = Emission(0, 10, 0, 2.0, 0, 0)
    assert emission.initial_reward == 1
    assert emission.halving_period == 1
    assert emission.halving_factor == 1.0
    assert emission.num_chains == 1
    negative = Emission(5, 10, 10, -0.5, 0, 1)
    assert negative.halving_factor == 0.0


def test_scale_overflow_raises():
    emission = Emission(2**64 - 1, TOTAL_SUPPLY, 10, 0.9, 0, 1)
    with pytest.raises(EmissionError, match="overflow"):
        emission.calculate_reward(0)


def test_update_supply_accumulates():
    emission = Emission.default_with_timestamp(GENESIS, 1)
    emission.update_supply(INITIAL_REWARD)
    emission.update_supply(INITIAL_REWARD)
    assert emission.current_supply == 2 * INITIAL_REWARD


def test_update_supply_cap():
    emission = Emission(10, 1000, 10, 0.9, 0, 1)
    emission.update_supply(1000)
    assert emission.current_supply == emission.total_supply
    with pytest.raises(EmissionError, match="cap"):
        emission.update_supply(1)
    assert emission.current_supply == emission.total_supply


def test_update_supply_over_cap_clamps():
    emission = Emission(10, 1000, 10, 0.9, 0, 1)
    emission.update_supply(400)
    with pytest.raises(EmissionError):
        emission.update_supply(2000)
    assert emission.current_supply == emission.total_supply


def test_update_last_halving_period_only_advances():
    emission = Emission(10, 1000, 100, 0.9, 0, 1)
    emission.update_last_halving_period(350)
    assert emission.last_halving_period == 3
    emission.update_last_halving_period(120)
    assert emission.last_halving_period == 3


def test_quantum_adjustment_depends_on_seed_modulo():
    emission = Emission(INITIAL_REWARD, TOTAL_SUPPLY, 2**62, HALVING_FACTOR, 0, 1)
    assert emission.quantum_resistant_adjustment(7) == emission.quantum_resistant_adjustment(1007)
    step = emission.quantum_resistant_adjustment(8) - emission.quantum_resistant_adjustment(7)
    assert step == 1
    assert emission.quantum_resistant_adjustment(0) > INITIAL_REWARD


def test_quantum_adjustment_future_genesis_uses_minimum_base():
    future = int(time.time()) + 10**9
    emission = Emission.default_with_timestamp(future, 1)
    assert emission.quantum_resistant_adjustment(0) == emission.quantum_resistant_adjustment(1000)
    assert emission.quantum_resistant_adjustment(5) - emission.quantum_resistant_adjustment(4) == 1