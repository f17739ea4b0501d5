"""Block reward schedule with periodic geometric reduction and a supply cap."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass

__all__ = [
    "INITIAL_REWARD",
    "TOTAL_SUPPLY",
    "HALVING_PERIOD",
    "HALVING_FACTOR",
    "SCALE",
    "EmissionError",
    "Emission",
]

INITIAL_REWARD = 500
TOTAL_SUPPLY = 1_000_000_000_000_000
HALVING_PERIOD = 7_884_000  # about three months in seconds
HALVING_FACTOR = 0.97
SCALE = 1_000_000

_U64_MAX = 2**64 - 1

logger = logging.getLogger(__name__)


class EmissionError(Exception):
    """Raised when a reward cannot be computed or the supply cap is hit."""


def _as_i32(value: int) -> int:
    return ((value + 2**31) % 2**32) - 2**31


def _round_to_u64(value: float) -> int:
    """Round half away from zero, saturating into the unsigned 64-bit range."""
    if value <= 0:
        return 0
    whole = math.trunc(value)
    if value - whole >= 0.5:
        whole += 1
    return min(whole, _U64_MAX)


@dataclass
class Emission:
    initial_reward: int
    total_supply: int
    halving_period: int
    halving_factor: float
    genesis_timestamp: int
    num_chains: int
    current_supply: int = 0
    last_halving_period: int = 0

    def __post_init__(self) -> None:
        self.initial_reward = max(self.initial_reward, 1)
        self.halving_period = max(self.halving_period, 1)
        self.halving_factor = min(max(float(self.halving_factor), 0.0), 1.0)
        self.num_chains = max(self.num_chains, 1)

    @classmethod
    def default_with_timestamp(cls, genesis_timestamp: int, num_chains: int) -> "Emission":
        """The standard schedule starting at ``genesis_timestamp``."""
        return cls(
            INITIAL_REWARD,
            TOTAL_SUPPLY,
            HALVING_PERIOD,
            HALVING_FACTOR,
            genesis_timestamp,
            num_chains,
        )

    def calculate_reward(self, timestamp: int) -> int:
        """Return the per-chain reward for a block at ``timestamp`` (at least 1)."""
        if timestamp < self.genesis_timestamp:
            raise EmissionError("Timestamp cannot be before genesis")

        elapsed_periods = (timestamp - self.genesis_timestamp) // self.halving_period

        reward_scaled = self.initial_reward * SCALE
        if reward_scaled > _U64_MAX:
            raise EmissionError("Reward scale overflow")

        try:
            factor = self.halving_factor ** _as_i32(elapsed_periods)
            reward_value = float(reward_scaled) * factor / float(SCALE)
        except (OverflowError, ZeroDivisionError):
            reward_value = math.inf
        if not math.isfinite(reward_value):
            raise EmissionError("Reward calculation resulted in non-finite number")

        per_chain_reward = max(_round_to_u64(reward_value) // self.num_chains, 1)

        if elapsed_periods > self.last_halving_period:
            logger.debug(
                "Halving event: period %d, current reward per chain: %d",
                elapsed_periods,
                per_chain_reward,
            )
        return per_chain_reward

    def update_supply(self, reward: int) -> None:
        """Add ``reward`` to the circulating supply, enforcing the cap."""
        new_supply = min(self.current_supply + reward, _U64_MAX)
        if new_supply > self.total_supply:
            self.current_supply = self.total_supply
            raise EmissionError("Total supply cap reached or exceeded")
        self.current_supply = new_supply
        logger.debug(
            "Updated supply: %d. Reward added to total supply: %d",
            self.current_supply,
            reward,
        )

    def update_last_halving_period(self, timestamp: int) -> None:
        """Advance the recorded halving period to the one containing ``timestamp``."""
        if self.halving_period == 0:
            return
        elapsed = max(timestamp - self.genesis_timestamp, 0)
        period = elapsed // self.halving_period
        if period > self.last_halving_period:
            logger.debug(
                "Emission state: Last halving period updated from %d to %d",
                self.last_halving_period,
                period,
            )
            self.last_halving_period = period

    def quantum_resistant_adjustment(self, entropy_seed: int) -> int:
        """Current reward plus an entropy-derived adjustment; never below 1."""
        now = int(time.time())
        try:
            base_reward = self.calculate_reward(now)
        except EmissionError:
            base_reward = 1
        adjustment = min(entropy_seed % 1000 + base_reward, _U64_MAX) % max(SCALE, 1)
        return max(min(base_reward + adjustment, _U64_MAX), 1)