"""Chain load tracking, dynamic sharding, difficulty retargeting and finality."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from hyperchain.primitives import compute_merkle_root, keccak256, signing_digest

__all__ = [
    "DEV_ADDRESS",
    "FINALIZATION_DEPTH",
    "SHARD_THRESHOLD",
    "BlockRecord",
    "ShardState",
]

DEV_ADDRESS = "2119707c4caf16139cfb5c09c4dcc9bf9cfe6808b571c108d739f49cc14793b9"
FINALIZATION_DEPTH = 8
SHARD_THRESHOLD = 3
DIFFICULTY_WINDOW = 21600
FINALITY_AGE = 86400
DIFFICULTY_HISTORY_LIMIT = 100

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1

logger = logging.getLogger(__name__)


@dataclass
class BlockRecord:
    """The parts of a block that sharding and finality look at."""

    id: str
    chain_id: int
    timestamp: int
    parents: list[str] = field(default_factory=list)


class ShardState:
    """Per-chain loads, tips, difficulty and the set of finalized blocks."""

    def __init__(
        self,
        num_chains: int = 1,
        difficulty: int = 1,
        target_block_time: int = 60,
        tips: Mapping[int, Iterable[str]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.num_chains = max(num_chains, 1)
        self.difficulty = max(difficulty, 1)
        self.target_block_time = target_block_time
        self.tips: dict[int, set[str]] = (
            {} if tips is None else {chain: set(ids) for chain, ids in tips.items()}
        )
        self.chain_loads: dict[int, int] = {}
        self.difficulty_history: list[tuple[int, int]] = []
        self.finalized: set[str] = set()
        self._clock = clock if clock is not None else time.time

    def record_chain_load(self, chain_id: int, tx_count: int) -> None:
        """Add ``tx_count`` transactions to the load of ``chain_id``."""
        self.chain_loads[chain_id] = self.chain_loads.get(chain_id, 0) + tx_count

    def _genesis(self, chain_id: int) -> BlockRecord:
        timestamp = int(self._clock())
        merkle_root = compute_merkle_root([])
        digest = signing_digest(
            chain_id,
            merkle_root,
            [],
            timestamp,
            0,
            self.difficulty,
            DEV_ADDRESS,
            DEV_ADDRESS,
        )
        return BlockRecord(
            id=keccak256(digest).hex(),
            chain_id=chain_id,
            timestamp=timestamp,
            parents=[],
        )

    def dynamic_sharding(self) -> list[BlockRecord]:
        """Split chains loaded beyond the threshold; return the new shards' genesis blocks."""
        if not self.chain_loads:
            return []
        average = sum(self.chain_loads.values()) // len(self.chain_loads)
        created: list[tuple[int, int]] = []
        for chain_id in list(self.chain_loads):
            load = self.chain_loads[chain_id]
            if load > average * SHARD_THRESHOLD and self.num_chains < _U32_MAX - 1:
                logger.info(
                    "High load on chain %d: %d. Avg load: %d. Threshold multiplier: %d",
                    chain_id, load, average, SHARD_THRESHOLD,
                )
                self.num_chains += 1
                new_chain_id = self.num_chains - 1
                kept = load // 2
                self.chain_loads[chain_id] = kept
                created.append((new_chain_id, load - kept))

        genesis_blocks: list[BlockRecord] = []
        for new_chain_id, load in created:
            self.chain_loads[new_chain_id] = load
            genesis = self._genesis(new_chain_id)
            self.tips[new_chain_id] = {genesis.id}
            genesis_blocks.append(genesis)
            logger.info("Created new shard %d with initial load %d", new_chain_id, load)
        if created:
            logger.info(
                "Total new shards created: %d. Total chains now: %d",
                len(created), self.num_chains,
            )
        return genesis_blocks

    def adjust_difficulty(self, block_timestamps: Iterable[int], now: int) -> int:
        """Retarget difficulty from recent block times; return the difficulty."""
        recent = sorted(
            stamp for stamp in block_timestamps if max(now - stamp, 0) < DIFFICULTY_WINDOW
        )
        if len(recent) < 10:
            return self.difficulty
        span = max(recent[-1] - recent[0], 0)
        actual = span // (len(recent) - 1)
        if actual == 0:
            return self.difficulty
        adjustment = self.target_block_time / actual

        self.difficulty_history.append((now, actual))
        if len(self.difficulty_history) > DIFFICULTY_HISTORY_LIMIT:
            del self.difficulty_history[0]
        average = sum(t for _, t in self.difficulty_history) // len(self.difficulty_history)
        predictive = 1.0 if average == 0 else self.target_block_time / average

        new_value = (
            self.difficulty
            * min(max(adjustment, 0.5), 2.0)
            * min(max(predictive, 0.8), 1.2)
        )
        self.difficulty = min(int(max(new_value, 1.0)), _U64_MAX)
        logger.info(
            "Adjusted difficulty to %d. Actual time/block: %d, Target: %d, "
            "Factor: %.2f, Predictive: %.2f",
            self.difficulty, actual, self.target_block_time, adjustment, predictive,
        )
        return self.difficulty

    def finalize_blocks(self, blocks: Mapping[str, BlockRecord], now: int) -> list[str]:
        """Finalize deep or settled ancestors of every tip; return the new ids."""
        newly: list[str] = []
        for chain_id in range(self.num_chains):
            for tip_id in list(self.tips.get(chain_id, ())):
                depth = 0
                current = tip_id
                path: list[str] = []
                while (block := blocks.get(current)) is not None:
                    if current in self.finalized:
                        break
                    path.append(current)
                    depth += 1
                    if depth >= FINALIZATION_DEPTH or max(now - block.timestamp, 0) > FINALITY_AGE:
                        break
                    if not block.parents:
                        break
                    current = block.parents[0]

                last = blocks.get(path[-1] if path else tip_id)
                settled = last is not None and (
                    max(now - last.timestamp, 0) > FINALITY_AGE or not last.parents
                )
                if depth >= FINALIZATION_DEPTH or settled:
                    for block_id in path:
                        if block_id not in self.finalized:
                            self.finalized.add(block_id)
                            newly.append(block_id)
                            logger.debug("Finalized block: %s", block_id)
        return newly