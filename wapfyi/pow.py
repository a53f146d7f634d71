"""Proof-of-work hashing compatible with the browser-side solver."""

from __future__ import annotations

DEFAULT_DIFFICULTY = 4

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def _to_int32(value: int) -> int:
    value &= _INT32_MASK
    return value - (1 << 32) if value & _INT32_SIGN else value


def simple_hash(text: str) -> int:
    """Return the 32-bit string hash used by the client-side proof of work.

    The hash is ``h = h * 31 + byte`` with signed 32-bit wraparound, followed
    by an absolute value; a zero result is turned into 1, except for the
    empty string, which hashes to 0.
    """
    data = text.encode("utf-8")
    if not data:
        return 0

    hash_value = 0
    for byte in data:
        hash_value = _to_int32((hash_value << 5) - hash_value + byte)

    if hash_value < 0:
        # Negating the smallest int32 wraps back to itself, as on the client.
        hash_value = _to_int32(-hash_value)
    if hash_value == 0:
        hash_value = 1
    return hash_value & _INT32_MASK


def to_hex(num: int) -> str:
    """Format a number as lower-case hex, zero-padded to at least 8 digits."""
    return format(num, "08x")


def has_trailing_zeros(hash_num: int, zeros: int) -> bool:
    """Tell whether the hex form of ``hash_num`` ends in at least ``zeros`` zeros."""
    hex_hash = to_hex(hash_num)
    trailing = len(hex_hash) - len(hex_hash.rstrip("0"))
    return trailing >= zeros


def verify_proof_of_work(
    challenge: str, solution: int, difficulty: int = DEFAULT_DIFFICULTY
) -> bool:
    """Check that ``solution`` solves ``challenge`` at the given difficulty.

    A difficulty of zero or less falls back to the default of 4.
    """
    if difficulty <= 0:
        difficulty = DEFAULT_DIFFICULTY
    return has_trailing_zeros(simple_hash(f"{challenge}{solution}"), difficulty)