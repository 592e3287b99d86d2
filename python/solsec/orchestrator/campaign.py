"""Fuzz job and campaign models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set
import time
import uuid

from ..errors import InvalidTransition
from ..fuzzing import FuzzStrategy, FuzzTarget, SeedCorpus
from ..results import AggregatedReport, Diagnostic, Finding, aggregate


class JobState(Enum):
    """FuzzJob lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"
    CANCELLED = "cancelled"
    FAILED = "failed"  # target unreachable or job fault

    @property
    def is_terminal(self) -> bool:
        return self not in (JobState.PENDING, JobState.RUNNING)


_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING, JobState.CANCELLED},
    JobState.RUNNING: {
        JobState.COMPLETED,
        JobState.TIMED_OUT,
        JobState.CRASHED,
        JobState.CANCELLED,
        JobState.FAILED,
    },
}

# Fuzz finding rule ids, in declaration order
FUZZ_CRASH = "FUZZ-CRASH"
FUZZ_INVARIANT = "FUZZ-INVARIANT"
FUZZ_TIMEOUT = "FUZZ-TIMEOUT"
FUZZ_RULE_ORDER = {FUZZ_INVARIANT: 0, FUZZ_CRASH: 1, FUZZ_TIMEOUT: 2}

# Cancel reason of a campaign stopped by an external signal
INTERRUPTED = "interrupted"


TransitionObserver = Callable[["FuzzJob", JobState, JobState], None]


@dataclass(eq=False)
class FuzzJob:
    """One (target, strategy, corpus) execution with a deadline."""
    job_id: str
    target: FuzzTarget
    strategy: FuzzStrategy
    corpus: SeedCorpus
    timeout: float
    state: JobState = JobState.PENDING
    executions: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    deadline: Optional[float] = None
    error: Optional[str] = None
    finding: Optional[Finding] = None
    _observer: Optional[TransitionObserver] = field(default=None, repr=False)

    def transition(self, new_state: JobState) -> None:
        """Move to ``new_state``, raising InvalidTransition if not allowed."""
        old_state = self.state
        if new_state not in _TRANSITIONS.get(old_state, set()):
            raise InvalidTransition(
                f"job {self.job_id}: {old_state.value} -> {new_state.value} is not allowed"
            )
        now = time.monotonic()
        if new_state == JobState.RUNNING:
            self.started_at = now
            self.deadline = now + self.timeout
        elif new_state.is_terminal:
            self.finished_at = now
        self.state = new_state
        if self._observer:
            self._observer(self, old_state, new_state)

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "target": self.target.name,
            "strategy": self.strategy.name,
            "corpus": self.corpus.name,
            "state": self.state.value,
            "executions": self.executions,
            "error": self.error,
            "finding_id": self.finding.id if self.finding else None,
        }


@dataclass
class CampaignStats:
    """Aggregate statistics for one campaign."""
    executions: int = 0
    crashes: int = 0
    violations: int = 0
    timeouts: int = 0
    failed: int = 0
    cancelled: int = 0
    completed: int = 0
    peak_running: int = 0
    coverage: Set[int] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executions": self.executions,
            "crashes": self.crashes,
            "violations": self.violations,
            "timeouts": self.timeouts,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "completed": self.completed,
            "peak_running": self.peak_running,
            "coverage": len(self.coverage),
        }


class Campaign:
    """
    All FuzzJobs of one invocation plus collected findings.

    Findings from crashed jobs are appended as soon as they are proven and
    are never dropped by cancellation.
    """

    def __init__(self, job_count: int, per_job_timeout: float, campaign_id: Optional[str] = None):
        self.campaign_id = campaign_id or str(uuid.uuid4())
        self.job_count = job_count
        self.per_job_timeout = per_job_timeout
        self.jobs: List[FuzzJob] = []
        self.findings: List[Finding] = []
        self.diagnostics: List[Diagnostic] = []
        self.stats = CampaignStats()
        self.cancel_reason: Optional[str] = None
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        if not self.jobs:
            return self.finished_at is not None
        return all(job.state.is_terminal for job in self.jobs)

    @property
    def cancelled(self) -> bool:
        return self.cancel_reason is not None

    @property
    def interrupted(self) -> bool:
        return self.cancel_reason == INTERRUPTED

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def jobs_in(self, state: JobState) -> List[FuzzJob]:
        return [job for job in self.jobs if job.state == state]

    def state_counts(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in JobState}
        for job in self.jobs:
            counts[job.state.value] += 1
        return counts

    @property
    def report(self) -> AggregatedReport:
        """Deduplicated campaign findings."""
        return aggregate(
            self.findings,
            self.diagnostics,
            rule_order=FUZZ_RULE_ORDER,
            metadata={
                "kind": "fuzz",
                "campaign_id": self.campaign_id,
                "job_count": self.job_count,
                "per_job_timeout": self.per_job_timeout,
                "jobs": len(self.jobs),
                "job_states": self.state_counts(),
                "statistics": self.stats.to_dict(),
                "cancel_reason": self.cancel_reason,
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "job_count": self.job_count,
            "per_job_timeout": self.per_job_timeout,
            "duration_seconds": round(self.duration, 3),
            "cancel_reason": self.cancel_reason,
            "statistics": self.stats.to_dict(),
            "jobs": [job.to_dict() for job in self.jobs],
            "findings": [f.to_dict() for f in self.findings],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
