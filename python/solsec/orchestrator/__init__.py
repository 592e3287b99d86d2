"""Fuzz campaign orchestration."""

# Import modules that don't depend on the fuzzing stack directly
from .scheduler import JobScheduler, ExecutionMode


# Lazy imports keep solsec.orchestrator.scheduler importable from the
# analysis engine without pulling in the fuzzing package
def __getattr__(name):
    if name in ("FuzzOrchestrator", "OrchestratorConfig"):
        from . import orchestrator
        return getattr(orchestrator, name)
    if name in ("Campaign", "CampaignStats", "FuzzJob", "JobState",
                "FUZZ_CRASH", "FUZZ_INVARIANT", "FUZZ_TIMEOUT", "INTERRUPTED"):
        from . import campaign
        return getattr(campaign, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "FuzzOrchestrator",
    "OrchestratorConfig",
    "Campaign",
    "CampaignStats",
    "FuzzJob",
    "JobState",
    "FUZZ_CRASH",
    "FUZZ_INVARIANT",
    "FUZZ_TIMEOUT",
    "INTERRUPTED",
    "JobScheduler",
    "ExecutionMode",
]
