"""Input generation strategies."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import random
import struct

from .corpus import SeedCorpus


# Integer values that commonly trip overflow and bounds checks
INTERESTING_U8 = (0x00, 0x01, 0x7F, 0x80, 0xFF)
INTERESTING_U64 = (
    0,
    1,
    2 ** 8 - 1,
    2 ** 16 - 1,
    2 ** 31 - 1,
    2 ** 32 - 1,
    2 ** 63 - 1,
    2 ** 63,
    2 ** 64 - 1,
)


class FuzzStrategy(ABC):
    """
    Produces fuzz inputs.

    Strategies hold no per-job state: everything that changes during a job
    (the random generator, the iteration counter) is passed in, so one
    instance can drive many concurrent jobs.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable strategy name, recorded in finding evidence."""
        pass

    @abstractmethod
    def next_input(self, rng: random.Random, corpus: SeedCorpus, iteration: int) -> Optional[bytes]:
        """
        Produce the input for one execution.

        Args:
            rng: Per-job random generator
            corpus: Read-only seed corpus
            iteration: Zero-based execution index within the job

        Returns:
            Input bytes, or None when the strategy is exhausted
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class RandomBytesStrategy(FuzzStrategy):
    """Uniformly random byte strings."""

    def __init__(self, min_size: int = 1, max_size: int = 64):
        if min_size < 0 or max_size < min_size:
            raise ValueError(f"invalid size range {min_size}..{max_size}")
        self.min_size = min_size
        self.max_size = max_size

    @property
    def name(self) -> str:
        return "random-bytes"

    def next_input(self, rng: random.Random, corpus: SeedCorpus, iteration: int) -> Optional[bytes]:
        size = rng.randint(self.min_size, self.max_size)
        return bytes(rng.getrandbits(8) for _ in range(size))


class MutationStrategy(FuzzStrategy):
    """Havoc-style mutations of corpus seeds."""

    def __init__(self, max_mutations: int = 4, max_size: int = 4096):
        self.max_mutations = max(1, max_mutations)
        self.max_size = max_size

    @property
    def name(self) -> str:
        return "mutation"

    def next_input(self, rng: random.Random, corpus: SeedCorpus, iteration: int) -> Optional[bytes]:
        seed = corpus.choice(rng)
        if seed is None:
            seed = bytes(rng.getrandbits(8) for _ in range(rng.randint(1, 16)))
        data = bytearray(seed)
        for _ in range(rng.randint(1, self.max_mutations)):
            self._mutate(rng, data)
        return bytes(data[:self.max_size])

    def _mutate(self, rng: random.Random, data: bytearray) -> None:
        op = rng.randrange(5)
        if not data:
            op = 2
        if op == 0:
            pos = rng.randrange(len(data))
            data[pos] ^= 1 << rng.randrange(8)
        elif op == 1:
            data[rng.randrange(len(data))] = rng.choice(INTERESTING_U8)
        elif op == 2:
            data.insert(rng.randint(0, len(data)), rng.getrandbits(8))
        elif op == 3:
            del data[rng.randrange(len(data))]
        else:
            value = rng.choice(INTERESTING_U64)
            pos = rng.randint(0, len(data))
            data[pos:pos + 8] = struct.pack("<Q", value)


class BoundaryValueStrategy(FuzzStrategy):
    """Little-endian integer boundary encodings, each emitted once."""

    def __init__(self, widths: Sequence[int] = (1, 2, 4, 8), prefix: bytes = b""):
        self.widths = tuple(widths)
        self.prefix = bytes(prefix)
        self._values = self._build()

    @property
    def name(self) -> str:
        return "boundary"

    def _build(self) -> List[bytes]:
        values = []
        for width in self.widths:
            bits = width * 8
            candidates = {
                0,
                1,
                2 ** (bits - 1) - 1,
                2 ** (bits - 1),
                2 ** bits - 2,
                2 ** bits - 1,
            }
            for value in sorted(candidates):
                values.append(self.prefix + value.to_bytes(width, "little"))
        return values

    def next_input(self, rng: random.Random, corpus: SeedCorpus, iteration: int) -> Optional[bytes]:
        if iteration >= len(self._values):
            return None
        return self._values[iteration]

    def __len__(self) -> int:
        return len(self._values)


class SeedReplayStrategy(FuzzStrategy):
    """Replays each corpus seed once."""

    @property
    def name(self) -> str:
        return "seed-replay"

    def next_input(self, rng: random.Random, corpus: SeedCorpus, iteration: int) -> Optional[bytes]:
        if iteration >= len(corpus):
            return None
        return corpus[iteration]


def default_strategies() -> List[FuzzStrategy]:
    """Strategies used when none are requested explicitly."""
    return [
        SeedReplayStrategy(),
        BoundaryValueStrategy(),
        MutationStrategy(),
        RandomBytesStrategy(),
    ]
