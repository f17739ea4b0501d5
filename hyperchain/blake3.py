"""BLAKE3 hashing with extendable output, in pure Python."""

from __future__ import annotations

import struct
from dataclasses import dataclass

__all__ = ["blake3_digest"]

_MASK = 0xFFFFFFFF
_IV = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)
_MSG_PERMUTATION = (2, 6, 3, 10, 7, 0, 4, 13, 1, 11, 12, 5, 9, 14, 15, 8)

_CHUNK_START = 1
_CHUNK_END = 2
_PARENT = 4
_ROOT = 8

_BLOCK_LEN = 64
_CHUNK_LEN = 1024

_G_INDICES = (
    (0, 4, 8, 12),
    (1, 5, 9, 13),
    (2, 6, 10, 14),
    (3, 7, 11, 15),
    (0, 5, 10, 15),
    (1, 6, 11, 12),
    (2, 7, 8, 13),
    (3, 4, 9, 14),
)


def _build_schedule() -> tuple[tuple[int, ...], ...]:
    rounds = [tuple(range(16))]
    for _ in range(6):
        previous = rounds[-1]
        rounds.append(tuple(previous[index] for index in _MSG_PERMUTATION))
    return tuple(rounds)


_SCHEDULE = _build_schedule()


def _compress(
    cv: tuple[int, ...],
    block_words: tuple[int, ...],
    counter: int,
    block_len: int,
    flags: int,
) -> list[int]:
    s = [
        *cv,
        _IV[0], _IV[1], _IV[2], _IV[3],
        counter & _MASK, (counter >> 32) & _MASK, block_len, flags,
    ]
    m = block_words
    for schedule in _SCHEDULE:
        for step, (a, b, c, d) in enumerate(_G_INDICES):
            mx = m[schedule[2 * step]]
            my = m[schedule[2 * step + 1]]
            va = (s[a] + s[b] + mx) & _MASK
            vd = s[d] ^ va
            vd = ((vd >> 16) | (vd << 16)) & _MASK
            vc = (s[c] + vd) & _MASK
            vb = s[b] ^ vc
            vb = ((vb >> 12) | (vb << 20)) & _MASK
            va = (va + vb + my) & _MASK
            vd ^= va
            vd = ((vd >> 8) | (vd << 24)) & _MASK
            vc = (vc + vd) & _MASK
            vb ^= vc
            vb = ((vb >> 7) | (vb << 25)) & _MASK
            s[a], s[b], s[c], s[d] = va, vb, vc, vd
    return [s[i] ^ s[i + 8] for i in range(8)] + [s[i + 8] ^ cv[i] for i in range(8)]


def _words(block: bytes) -> tuple[int, ...]:
    return struct.unpack("<16I", block.ljust(_BLOCK_LEN, b"\0"))


@dataclass(frozen=True)
class _Output:
    input_cv: tuple[int, ...]
    block_words: tuple[int, ...]
    counter: int
    block_len: int
    flags: int

    def chaining_value(self) -> tuple[int, ...]:
        return tuple(
            _compress(self.input_cv, self.block_words, self.counter, self.block_len, self.flags)[:8]
        )

    def root_bytes(self, length: int) -> bytes:
        out = bytearray()
        output_counter = 0
        while len(out) < length:
            words = _compress(
                self.input_cv,
                self.block_words,
                output_counter,
                self.block_len,
                self.flags | _ROOT,
            )
            out += struct.pack("<16I", *words)
            output_counter += 1
        return bytes(out[:length])


def _chunk_output(chunk: bytes, chunk_counter: int) -> _Output:
    blocks = [chunk[i:i + _BLOCK_LEN] for i in range(0, len(chunk), _BLOCK_LEN)] or [b""]
    cv: tuple[int, ...] = _IV
    for position, block in enumerate(blocks[:-1]):
        flags = _CHUNK_START if position == 0 else 0
        cv = tuple(_compress(cv, _words(block), chunk_counter, _BLOCK_LEN, flags)[:8])
    last = blocks[-1]
    flags = _CHUNK_END | (_CHUNK_START if len(blocks) == 1 else 0)
    return _Output(cv, _words(last), chunk_counter, len(last), flags)


def _parent_output(left: tuple[int, ...], right: tuple[int, ...]) -> _Output:
    return _Output(_IV, left + right, 0, _BLOCK_LEN, _PARENT)


def blake3_digest(data: bytes | bytearray | memoryview, length: int = 32) -> bytes:
    """Return ``length`` bytes of BLAKE3 output for ``data``."""
    if length < 0:
        raise ValueError("output length cannot be negative")
    payload = bytes(data)
    chunks = [
        payload[i:i + _CHUNK_LEN] for i in range(0, len(payload), _CHUNK_LEN)
    ] or [b""]
    stack: list[tuple[int, ...]] = []
    last_index = len(chunks) - 1
    output = _chunk_output(chunks[0], 0)
    for counter, chunk in enumerate(chunks):
        output = _chunk_output(chunk, counter)
        if counter == last_index:
            break
        cv = output.chaining_value()
        total_chunks = counter + 1
        while total_chunks & 1 == 0:
            cv = _parent_output(stack.pop(), cv).chaining_value()
            total_chunks >>= 1
        stack.append(cv)
    while stack:
        output = _parent_output(stack.pop(), output.chaining_value())
    return output.root_bytes(length)