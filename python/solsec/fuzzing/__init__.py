"""Fuzzing building blocks: targets, strategies and seed corpus."""

from .corpus import SeedCorpus
from .strategies import (
    FuzzStrategy,
    RandomBytesStrategy,
    MutationStrategy,
    BoundaryValueStrategy,
    SeedReplayStrategy,
    default_strategies,
)
from .targets import (
    FuzzTarget,
    CallableTarget,
    CommandTarget,
    ExecutionResult,
    ExecutionStatus,
    command_targets,
    parse_panic,
)

__all__ = [
    "SeedCorpus",
    "FuzzStrategy",
    "RandomBytesStrategy",
    "MutationStrategy",
    "BoundaryValueStrategy",
    "SeedReplayStrategy",
    "default_strategies",
    "FuzzTarget",
    "CallableTarget",
    "CommandTarget",
    "ExecutionResult",
    "ExecutionStatus",
    "command_targets",
    "parse_panic",
]
