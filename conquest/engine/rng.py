"""
Deterministic random source for the engine.
Every value is derived from a (seed, index) pair, so a game can be replayed
or resumed exactly from the snapshot stored in GameState.rng.
"""

from typing import Any, Sequence, TypeVar

from conquest.engine import DICE_SIDES

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
TWO_POW_32 = 4294967296


def _imul(a: int, b: int) -> int:
    """32-bit multiply with wraparound (low 32 bits of the product)."""
    return ((a & MASK_32) * (b & MASK_32)) & MASK_32


def hash_seed(seed: str) -> int:
    """
    cyrb53 hash of a string seed, returning a non-negative integer below 2**53.
    Characters are consumed as UTF-16 code units so the result matches other
    runtimes hashing the same string.
    """
    h1 = 0xDEADBEEF
    h2 = 0x41C6CE57
    data = seed.encode("utf-16-le")
    for i in range(0, len(data), 2):
        ch = data[i] | (data[i + 1] << 8)
        h1 = _imul(h1 ^ ch, 2654435761)
        h2 = _imul(h2 ^ ch, 1597334677)
    h1 = _imul(h1 ^ (h1 >> 16), 2246822507)
    h1 ^= _imul(h2 ^ (h2 >> 13), 3266489909)
    h2 = _imul(h2 ^ (h2 >> 16), 2246822507)
    h2 ^= _imul(h1 ^ (h1 >> 13), 3266489909)
    return TWO_POW_32 * (0x1FFFFF & h2) + (h1 & MASK_32)


def _splitmix32(state: int) -> float:
    state = (state + 0x9E3779B9) & MASK_32
    t = state ^ (state >> 16)
    t = _imul(t, 0x21F0AAAD)
    t ^= t >> 15
    t = _imul(t, 0x735A2D97)
    t ^= t >> 15
    return t / TWO_POW_32


def value_at(seed: str | int, index: int) -> float:
    """Float in [0, 1) for position `index` of the stream named by `seed`."""
    base = hash_seed(seed) if isinstance(seed, str) else int(seed)
    return _splitmix32((base + index) & MASK_32)


class Rng:
    """
    Cursor over the deterministic stream.
    Only the cursor's own index advances; snapshot it with `state` to write it
    back into GameState.
    """

    def __init__(self, seed: str | int, index: int = 0):
        self.seed = seed
        self.index = index

    @classmethod
    def from_state(cls, data: dict[str, Any]) -> "Rng":
        return cls(data["seed"], int(data.get("index", 0)))

    @property
    def state(self) -> dict[str, Any]:
        return {"seed": self.seed, "index": self.index}

    def next(self) -> float:
        value = value_at(self.seed, self.index)
        self.index += 1
        return value

    def next_int(self, min_value: int, max_value: int) -> int:
        """Integer in [min_value, max_value], inclusive."""
        return min_value + int(self.next() * (max_value - min_value + 1))

    def shuffle(self, items: Sequence[T]) -> list[T]:
        """Fisher-Yates from the end. Returns a new list; `items` is left untouched."""
        out = list(items)
        for i in range(len(out) - 1, 0, -1):
            j = int(self.next() * (i + 1))
            out[i], out[j] = out[j], out[i]
        return out

    def roll_dice(self, count: int) -> list[int]:
        """Roll `count` six-sided dice, sorted highest first."""
        rolls = [1 + int(self.next() * DICE_SIDES) for _ in range(count)]
        return sorted(rolls, reverse=True)


def create_rng(seed: str | int, index: int = 0) -> Rng:
    return Rng(seed, index)
