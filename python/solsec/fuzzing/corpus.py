"""Seed corpus shared read-only by fuzz jobs."""

from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple
import logging
import random

logger = logging.getLogger(__name__)


class SeedCorpus:
    """Immutable, ordered collection of seed inputs."""

    def __init__(self, seeds: Iterable[bytes] = (), name: str = "default"):
        self.name = name
        self._seeds: Tuple[bytes, ...] = tuple(bytes(s) for s in seeds)

    @classmethod
    def from_directory(cls, directory: Path, max_size: Optional[int] = None) -> "SeedCorpus":
        """Load every regular file in ``directory`` (sorted by name) as a seed."""
        directory = Path(directory)
        seeds = []
        if directory.is_dir():
            for path in sorted(directory.iterdir()):
                if not path.is_file() or path.name.startswith("."):
                    continue
                data = path.read_bytes()
                if max_size is not None and len(data) > max_size:
                    logger.debug(f"Skipping oversized seed {path.name} ({len(data)} bytes)")
                    continue
                seeds.append(data)
        else:
            logger.warning(f"Seed directory not found: {directory}")
        return cls(seeds, name=directory.name)

    def choice(self, rng: random.Random) -> Optional[bytes]:
        """Random seed, or None for an empty corpus."""
        if not self._seeds:
            return None
        return self._seeds[rng.randrange(len(self._seeds))]

    @property
    def seeds(self) -> Tuple[bytes, ...]:
        return self._seeds

    def __getitem__(self, index: int) -> bytes:
        return self._seeds[index]

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._seeds)

    def __len__(self) -> int:
        return len(self._seeds)

    def __bool__(self) -> bool:
        return bool(self._seeds)

    def __repr__(self) -> str:
        return f"SeedCorpus({self.name!r}, seeds={len(self._seeds)})"
