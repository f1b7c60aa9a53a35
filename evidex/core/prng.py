"""Seeded xorshift32 generator for reproducible retry jitter."""

from __future__ import annotations

_FALLBACK_SEED = 0x6D2B79F5
_MASK = 0xFFFFFFFF


def _hash_seed_string(value: str) -> int:
    # FNV-1a over UTF-16 code units
    state = 0x811C9DC5
    units = value.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(units), 2):
        state ^= units[index] | (units[index + 1] << 8)
        state = (state * 0x01000193) & _MASK
    return state


def _normalize_seed(seed: int | str) -> int:
    if isinstance(seed, bool) or not isinstance(seed, (int, str)):
        raise TypeError("PRNG seed must be an int or str.")
    if isinstance(seed, str):
        if not seed:
            raise ValueError("PRNG seed string must be non-empty.")
        return _hash_seed_string(seed) or _FALLBACK_SEED
    return (seed & _MASK) or _FALLBACK_SEED


class DeterministicPrng:
    """Small deterministic PRNG; ``prng.next_float`` works as an injected ``random``."""

    def __init__(self, seed: int | str) -> None:
        self.initial_seed = _normalize_seed(seed)
        self._state = self.initial_seed

    def next_uint32(self) -> int:
        state = self._state
        state ^= (state << 13) & _MASK
        state ^= state >> 17
        state ^= (state << 5) & _MASK
        self._state = state
        return state

    def next_float(self) -> float:
        return self.next_uint32() / 0x1_0000_0000

    def next_int(self, max_exclusive: int) -> int:
        if max_exclusive <= 0:
            raise ValueError("max_exclusive must be a positive integer.")
        return int(self.next_float() * max_exclusive)

    def next_range(self, min_inclusive: int, max_exclusive: int) -> int:
        if max_exclusive <= min_inclusive:
            raise ValueError("max_exclusive must be greater than min_inclusive.")
        return min_inclusive + int(self.next_float() * (max_exclusive - min_inclusive))

    def __call__(self) -> float:
        return self.next_float()
