"""A sharded proof-of-work ledger with signed transactions and matrix hashing."""

from __future__ import annotations

import json
import logging
import random
import re
import struct
import time
from collections import OrderedDict
from collections.abc import MutableMapping
from dataclasses import dataclass, field

from Crypto.Hash import keccak
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from hyperchain.blake3 import blake3_digest

__all__ = [
    "MAX_TRANSACTIONS_PER_BLOCK",
    "LedgerError",
    "Transaction",
    "Block",
    "ShardManager",
    "Blockchain",
    "reliable_hashing_algorithm",
    "mine_block",
]

MAX_TRANSACTIONS_PER_BLOCK = 25_000
INITIAL_SHARD_COUNT = 4
CACHE_SIZE = 1_000
SHARD_SPLIT_THRESHOLD = 20_000
SHARD_MERGE_THRESHOLD = 5_000
MAX_AMOUNT = 10_000_000_000
MAX_NONCE = 1_000_000

_ADDRESS = re.compile(r"[0-9a-fA-F]{64}")

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Raised when a block cannot be built, mined or added."""


def _keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def reliable_hashing_algorithm(data: bytes) -> bytes:
    """BLAKE3 output read as two 2x2 float matrices, multiplied, then Keccak-256."""
    values = struct.unpack("<8d", blake3_digest(data, 64))
    a11, a12, a21, a22 = values[:4]
    b11, b12, b21, b22 = values[4:]
    r11 = a11 * b11 + a12 * b21
    r12 = a11 * b12 + a12 * b22
    r21 = a21 * b11 + a22 * b21
    r22 = a21 * b12 + a22 * b22
    # Column-major layout of the product matrix.
    return _keccak256(struct.pack("<4d", r11, r21, r12, r22))


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator >= 0) else -quotient


@dataclass
class Transaction:
    sender: str
    receiver: str
    amount: int
    signature: bytes = b""
    multi_signatures: list[bytes] = field(default_factory=list)

    def message(self) -> bytes:
        """The bytes that every signature on this transaction covers."""
        return f"{self.sender}{self.receiver}{self.amount}".encode()

    def verify_signature(self, public_key: Ed25519PublicKey | bytes) -> bool:
        """Check the main signature and every multi-signature against ``public_key``."""
        if isinstance(public_key, Ed25519PublicKey):
            key_bytes = public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)
        else:
            key_bytes = bytes(public_key)
        if not _ADDRESS.fullmatch(key_bytes.hex()):
            logger.warning("Invalid public key format")
            return False
        if len(self.signature) != 64:
            logger.warning("Invalid signature length: %d", len(self.signature))
            return False
        try:
            key = Ed25519PublicKey.from_public_bytes(key_bytes)
        except ValueError as exc:
            logger.warning("Invalid public key: %s", exc)
            return False
        message = self.message()
        try:
            key.verify(bytes(self.signature), message)
        except (InvalidSignature, ValueError):
            logger.warning("Signature verification failed")
            return False
        for extra in self.multi_signatures:
            if len(extra) != 64:
                logger.warning("Invalid multi-signature length")
                return False
            try:
                key.verify(bytes(extra), message)
            except (InvalidSignature, ValueError):
                logger.warning("Multi-signature verification failed")
                return False
        return True

    def to_dict(self) -> dict:
        return {
            "sender": self.sender,
            "receiver": self.receiver,
            "amount": self.amount,
            "signature": list(self.signature),
            "multi_signatures": [list(sig) for sig in self.multi_signatures],
        }


@dataclass
class Block:
    index: int
    shard_id: int
    timestamp: int
    previous_hash: bytes
    nonce: int = 0
    hash: bytes = b""
    transactions: list[Transaction] = field(default_factory=list)
    reward_address: str = ""
    stake_weight: int = 1

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "shard_id": self.shard_id,
            "timestamp": self.timestamp,
            "previous_hash": list(self.previous_hash),
            "nonce": self.nonce,
            "hash": list(self.hash),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "reward_address": self.reward_address,
            "stake_weight": self.stake_weight,
        }


def mine_block(block: Block, difficulty: int) -> None:
    """Search nonces until the header hash starts with ``difficulty`` zero bytes."""
    target = bytes(difficulty)
    nonce = 0
    while True:
        header = f"{block.index}{block.timestamp}{nonce}".encode()
        digest = reliable_hashing_algorithm(header)
        if digest.startswith(target):
            block.hash = digest
            block.nonce = nonce
            return
        nonce += 1
        if nonce > MAX_NONCE:
            logger.warning("Mining aborted due to excessive nonce attempts")
            raise LedgerError("Mining timeout")


class ShardManager:
    """Tracks per-shard transaction load and splits or merges shards."""

    def __init__(self, initial_shard_count: int = INITIAL_SHARD_COUNT) -> None:
        self.shard_count = initial_shard_count
        self.shard_loads = [0] * initial_shard_count

    def update_load(self, shard_id: int, tx_count: int) -> None:
        """Record the load of a shard; unknown shard ids are ignored."""
        if 0 <= shard_id < len(self.shard_loads):
            self.shard_loads[shard_id] = tx_count

    def adjust_shards(self) -> None:
        """Split overloaded shards, then merge adjacent lightly loaded ones."""
        loads = list(self.shard_loads)
        for shard_id, load in enumerate(loads):
            if load > SHARD_SPLIT_THRESHOLD and shard_id < self.shard_count:
                self.shard_count += 1
                self.shard_loads.append(load // 2)
                logger.info("Shard %d split, new shard count: %d", shard_id, self.shard_count)

        if self.shard_count > 1:
            merged: list[int] = []
            position = 0
            while position < len(loads):
                current = loads[position]
                following = loads[position + 1] if position + 1 < len(loads) else None
                if (
                    following is not None
                    and current < SHARD_MERGE_THRESHOLD
                    and following < SHARD_MERGE_THRESHOLD
                ):
                    merged.append(current + following)
                    self.shard_count -= 1
                    position += 2
                    logger.info("Shards merged, new shard count: %d", self.shard_count)
                else:
                    merged.append(current)
                    position += 1
            self.shard_loads = merged


class Blockchain:
    """An append-only chain of mined blocks spread over dynamic shards."""

    def __init__(
        self,
        difficulty: int,
        target_block_time: int,
        storage: MutableMapping[bytes, bytes] | None = None,
    ) -> None:
        self.difficulty = difficulty
        self.target_block_time = target_block_time
        self.storage: MutableMapping[bytes, bytes] = {} if storage is None else storage
        self.cache: OrderedDict[str, Block] = OrderedDict()
        self.utxos: dict[str, int] = {}
        self.shard_manager = ShardManager(INITIAL_SHARD_COUNT)
        genesis = Block(
            index=0,
            shard_id=0,
            timestamp=int(time.time()),
            previous_hash=bytes(32),
            nonce=0,
            hash=reliable_hashing_algorithm(b"genesis"),
            transactions=[],
            reward_address="",
            stake_weight=1,
        )
        self.blocks: list[Block] = [genesis]
        self._cache_put(genesis)

    def _cache_put(self, block: Block) -> None:
        key = block.hash.hex()
        self.cache[key] = block
        self.cache.move_to_end(key)
        while len(self.cache) > CACHE_SIZE:
            self.cache.popitem(last=False)

    @staticmethod
    def _transaction_is_valid(tx: Transaction) -> bool:
        if not _ADDRESS.fullmatch(tx.sender) or not _ADDRESS.fullmatch(tx.receiver):
            logger.warning(
                "Invalid address in transaction: sender=%s, receiver=%s",
                tx.sender,
                tx.receiver,
            )
            return False
        if tx.amount == 0 or tx.amount > MAX_AMOUNT:
            logger.warning("Invalid transaction amount: %d", tx.amount)
            return False
        return tx.verify_signature(bytes.fromhex(tx.sender))

    def stake_weight(self) -> int:
        """Total value held in unspent outputs."""
        return sum(self.utxos.values())

    def add_block(self, transactions: list[Transaction], reward_address: str) -> Block:
        """Validate, mine and append a block holding ``transactions``."""
        if len(transactions) > MAX_TRANSACTIONS_PER_BLOCK:
            logger.warning("Too many transactions: %d", len(transactions))
            raise LedgerError("Transaction limit exceeded")
        if not all(self._transaction_is_valid(tx) for tx in transactions):
            raise LedgerError("Invalid transaction in batch")

        now = int(time.time())
        shard_id = random.randrange(self.shard_manager.shard_count)
        block = Block(
            index=len(self.blocks),
            shard_id=shard_id,
            timestamp=now,
            previous_hash=self.blocks[-1].hash,
            nonce=0,
            hash=b"",
            transactions=list(transactions),
            reward_address=reward_address,
            stake_weight=self.stake_weight(),
        )
        mine_block(block, self.difficulty)
        self._cache_put(block)
        self.storage[b"block:"] = json.dumps(
            block.to_dict(), separators=(",", ":")
        ).encode()
        self.blocks.append(block)
        self.shard_manager.update_load(shard_id, len(block.transactions))
        self.shard_manager.adjust_shards()
        self._adjust_difficulty()
        return block

    def _adjust_difficulty(self) -> None:
        if len(self.blocks) < 10:
            return
        last_ten = self.blocks[-10:]
        total_time = sum(
            later.timestamp - earlier.timestamp
            for earlier, later in zip(last_ten, last_ten[1:])
        )
        average = _trunc_div(total_time, 9)
        if average > self.target_block_time:
            if self.difficulty > 1:
                self.difficulty -= 1
        elif average < _trunc_div(self.target_block_time, 2):
            self.difficulty += 1