"""Hashing, signature, encryption and contract primitives used by the DAG."""

from __future__ import annotations

import re
import struct
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from Crypto.Hash import keccak

__all__ = [
    "HyperDAGError",
    "LatticeSignature",
    "HomomorphicEncrypted",
    "SwapState",
    "CrossChainSwap",
    "SmartContract",
    "keccak256",
    "compute_merkle_root",
    "signing_digest",
    "pow_hash",
]

_SIGNATURE_LEN = 64
_PUBLIC_KEY_LEN = 32
_KEY_EXPANSION_ROUNDS = 32
_U64_MAX = 2**64 - 1
_UINT_TEXT = re.compile(r"\+?[0-9]+")


class HyperDAGError(Exception):
    """Raised when a DAG operation, primitive or contract fails."""


def keccak256(data: bytes | bytearray | memoryview) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


def compute_merkle_root(transaction_ids: Iterable[str]) -> str:
    """Hex Merkle root over the Keccak hashes of the transaction ids.

    An odd level is padded by repeating its last node; no ids give the
    hash of the empty string.
    """
    leaves = [keccak256(tx_id.encode()) for tx_id in transaction_ids]
    if not leaves:
        return keccak256(b"").hex()
    while len(leaves) > 1:
        if len(leaves) % 2:
            leaves.append(leaves[-1])
        leaves = [
            keccak256(left + right) for left, right in zip(leaves[::2], leaves[1::2])
        ]
    return leaves[0].hex()


def signing_digest(
    chain_id: int,
    merkle_root: str,
    parents: Sequence[str],
    timestamp: int,
    nonce: int,
    difficulty: int,
    validator: str,
    miner: str,
) -> bytes:
    """The digest a block's lattice signature covers; also the source of its id."""
    payload = b"".join(
        [
            struct.pack("<I", chain_id),
            merkle_root.encode(),
            *(parent.encode() for parent in parents),
            struct.pack(">Q", timestamp),
            struct.pack(">Q", nonce),
            struct.pack(">Q", difficulty),
            validator.encode(),
            miner.encode(),
        ]
    )
    return keccak256(payload)


def pow_hash(
    chain_id: int,
    merkle_root: str,
    timestamp: int,
    miner: str,
    parents: Sequence[str],
    difficulty: int,
    nonce: int,
) -> str:
    """Hex proof-of-work hash of a block header."""
    payload = b"".join(
        [
            struct.pack("<I", chain_id),
            merkle_root.encode(),
            struct.pack(">Q", timestamp),
            miner.encode(),
            *(parent.encode() for parent in parents),
            struct.pack("<Q", difficulty),
            struct.pack("<Q", nonce),
        ]
    )
    return keccak256(payload).hex()


def _mask_with(base: bytes, digest: bytes) -> bytes:
    masked = bytearray(base)
    for position, byte in enumerate(digest):
        masked[position % _SIGNATURE_LEN] ^= byte
    return bytes(masked)


@dataclass(frozen=True)
class LatticeSignature:
    """A hash-based signer holding a derived public key and a base signature."""

    public_key: bytes
    signature: bytes

    @classmethod
    def generate(cls, signing_key: bytes) -> "LatticeSignature":
        """Derive the public key and base signature from ``signing_key``."""
        expanded = bytearray(signing_key)
        for _ in range(_KEY_EXPANSION_ROUNDS):
            expanded += keccak256(expanded)
        signature = bytearray(_SIGNATURE_LEN)
        for position, byte in enumerate(signing_key):
            signature[position % _SIGNATURE_LEN] ^= byte
        return cls(
            public_key=bytes(expanded[:_PUBLIC_KEY_LEN]),
            signature=bytes(signature),
        )

    def _expected(self, message: bytes) -> bytes:
        return _mask_with(self.signature, keccak256(bytes(message) + self.public_key))

    def sign(self, message: bytes) -> bytes:
        """Sign ``message``."""
        return self._expected(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Whether ``signature`` is this signer's signature of ``message``."""
        return bytes(signature) == self._expected(message)


@dataclass(frozen=True)
class HomomorphicEncrypted:
    """An amount committed to as a hex digest."""

    encrypted_amount: str

    @classmethod
    def encrypt(cls, amount: int, public_key_material: bytes) -> "HomomorphicEncrypted":
        """Commit to ``amount`` under ``public_key_material``."""
        digest = keccak256(struct.pack(">Q", amount) + bytes(public_key_material))
        return cls(encrypted_amount=digest.hex())

    def decrypt(self, private_key_material: bytes) -> int:
        """Recover the amount; only a bare commitment to zero can be recovered."""
        if self.encrypted_amount == keccak256(struct.pack(">Q", 0)).hex():
            return 0
        raise HyperDAGError(
            "Homomorphic encryption error: "
            "Placeholder decryption cannot recover original value."
        )

    def add(self, other: "HomomorphicEncrypted") -> "HomomorphicEncrypted":
        """Combine two commitments into one."""
        digest = keccak256(
            self.encrypted_amount.encode() + other.encrypted_amount.encode()
        )
        return HomomorphicEncrypted(encrypted_amount=digest.hex())


class SwapState(Enum):
    INITIATED = "Initiated"
    ACCEPTED = "Accepted"
    COMPLETED = "Completed"
    REFUNDED = "Refunded"


@dataclass
class CrossChainSwap:
    swap_id: str
    source_chain: int
    target_chain: int
    source_block_id: str
    target_block_id: str
    amount: int
    initiator: str
    responder: str
    timelock: int
    state: SwapState = SwapState.INITIATED


def _parse_counter(text: str) -> int:
    if not _UINT_TEXT.fullmatch(text):
        return 0
    value = int(text)
    return value if value <= _U64_MAX else 0


@dataclass
class SmartContract:
    contract_id: str
    code: str
    owner: str
    storage: dict[str, str] = field(default_factory=dict)

    def execute(self, input_data: str) -> str:
        """Run the contract on ``input_data`` and return its output."""
        if "echo" in self.code:
            self.storage["last_input"] = input_data
            return f"echo: {input_data}"
        if "increment_counter" in self.code:
            current = _parse_counter(self.storage.get("counter", "0"))
            updated = str(current + 1)
            self.storage["counter"] = updated
            return f"counter updated to: {updated}"
        raise HyperDAGError(
            "Smart contract execution failed: Unsupported contract code or execution logic"
        )