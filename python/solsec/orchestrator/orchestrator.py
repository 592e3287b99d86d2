"""Fuzz campaign orchestrator."""

import asyncio
import itertools
import logging
import random
import time
from typing import Any, Dict, Optional, Sequence

from .campaign import (
    INTERRUPTED,
    Campaign,
    FuzzJob,
    JobState,
    TransitionObserver,
    FUZZ_CRASH,
    FUZZ_INVARIANT,
    FUZZ_TIMEOUT,
)
from .scheduler import JobScheduler
from ..audit import AuditLogger
from ..config.defaults import (
    DEFAULT_CRASH_SEVERITY,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_JOB_COUNT,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_MAX_EXECUTIONS_PER_JOB,
    DEFAULT_TIMEOUT_SEVERITY,
    DEFAULT_VIOLATION_SEVERITY,
)
from ..errors import CampaignTimeout, StrategyFailure, TargetUnreachable
from ..fuzzing import ExecutionResult, ExecutionStatus, FuzzStrategy, FuzzTarget, SeedCorpus
from ..results import (
    CAMPAIGN_TIMEOUT,
    JOB_FAILED,
    TARGET_UNREACHABLE,
    Diagnostic,
    Finding,
    Severity,
)

logger = logging.getLogger(__name__)

_TIMEOUT_SEVERITIES = (Severity.LOW, Severity.MEDIUM)


class OrchestratorConfig:
    """Configuration for the fuzz orchestrator."""

    def __init__(
        self,
        job_count: int = DEFAULT_JOB_COUNT,
        per_job_timeout: float = DEFAULT_JOB_TIMEOUT,
        campaign_timeout: Optional[float] = None,
        max_executions_per_job: Optional[int] = DEFAULT_MAX_EXECUTIONS_PER_JOB,
        execution_timeout: Optional[float] = None,
        timeouts_as_findings: bool = False,
        timeout_severity: Severity = Severity.parse(DEFAULT_TIMEOUT_SEVERITY),
        crash_severity: Severity = Severity.parse(DEFAULT_CRASH_SEVERITY),
        violation_severity: Severity = Severity.parse(DEFAULT_VIOLATION_SEVERITY),
        grace_period: float = DEFAULT_GRACE_PERIOD,
        seed: Optional[int] = None,
    ):
        self.job_count = job_count
        self.per_job_timeout = per_job_timeout
        self.campaign_timeout = campaign_timeout
        self.max_executions_per_job = max_executions_per_job
        self.execution_timeout = execution_timeout
        self.timeouts_as_findings = timeouts_as_findings
        self.timeout_severity = Severity.parse(timeout_severity)
        self.crash_severity = Severity.parse(crash_severity)
        self.violation_severity = Severity.parse(violation_severity)
        self.grace_period = grace_period
        self.seed = seed

        if self.timeout_severity not in _TIMEOUT_SEVERITIES:
            raise ValueError(
                f"timeout_severity must be low or medium, got {self.timeout_severity.value}"
            )


class FuzzOrchestrator:
    """
    Runs fuzz campaigns on a bounded pool of workers.

    Handles:
    - Job creation (targets x strategies)
    - Admission control (at most ``job_count`` jobs Running)
    - Per-job deadlines and the campaign-level deadline
    - Cooperative cancellation with a bounded grace period
    - Conversion of crashes, violations and (optionally) timeouts into findings
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
        on_transition: Optional[TransitionObserver] = None
    ):
        self.config = config or OrchestratorConfig()
        self._audit_logger = audit_logger
        self._on_transition = on_transition
        self._cancel: Optional[asyncio.Event] = None
        self._cancel_reason: Optional[str] = None
        self._campaign: Optional[Campaign] = None
        self._running = False

    def cancel(self, reason: str = "stop requested") -> None:
        """Request cooperative cancellation of the current campaign."""
        if self._cancel_reason is None:
            self._cancel_reason = reason
            logger.info(f"Campaign cancellation requested: {reason}")
        if self._cancel is not None:
            self._cancel.set()

    @property
    def campaign(self) -> Optional[Campaign]:
        return self._campaign

    async def run_campaign(
        self,
        targets: Sequence[FuzzTarget],
        strategies: Sequence[FuzzStrategy],
        job_count: Optional[int] = None,
        per_job_timeout: Optional[float] = None,
        corpus: Optional[SeedCorpus] = None,
    ) -> Campaign:
        """
        Run a fuzz campaign to its terminal state.

        Args:
            targets: Entry points to fuzz
            strategies: Input strategies; one job per (target, strategy)
            job_count: Max concurrently running jobs (default: config)
            per_job_timeout: Deadline per job in seconds (default: config)
            corpus: Seed corpus shared read-only by all jobs

        Returns:
            Terminal Campaign with collected findings
        """
        if self._running:
            raise RuntimeError("a campaign is already running on this orchestrator")

        if job_count is None:
            job_count = self.config.job_count
        if per_job_timeout is None:
            per_job_timeout = self.config.per_job_timeout
        if job_count < 1:
            raise ValueError(f"job_count must be >= 1, got {job_count}")
        if per_job_timeout <= 0:
            raise ValueError(f"per_job_timeout must be positive, got {per_job_timeout}")

        corpus = corpus if corpus is not None else SeedCorpus()
        campaign = Campaign(job_count=job_count, per_job_timeout=per_job_timeout)
        scheduler = JobScheduler(max_concurrent=job_count)
        self._campaign = campaign
        self._running = True
        # Bound to the running loop; a cancel() issued before the run still applies
        self._cancel = asyncio.Event()
        if self._cancel_reason is not None:
            self._cancel.set()

        for n, (target, strategy) in enumerate(itertools.product(targets, strategies), start=1):
            campaign.jobs.append(FuzzJob(
                job_id=f"job-{n:04d}",
                target=target,
                strategy=strategy,
                corpus=corpus,
                timeout=per_job_timeout,
                _observer=lambda job, old, new: self._observe(campaign, job, old, new),
            ))

        logger.info(
            f"Starting campaign {campaign.campaign_id[:8]}: {len(campaign.jobs)} jobs, "
            f"job_count={job_count}, per_job_timeout={per_job_timeout}s"
        )
        if self._audit_logger:
            self._audit_logger.start_session({
                "kind": "fuzz",
                "campaign_id": campaign.campaign_id,
                "jobs": len(campaign.jobs),
                "job_count": job_count,
                "per_job_timeout": per_job_timeout,
            })

        try:
            await self._coordinate(campaign, scheduler)
        except asyncio.CancelledError:
            # Stopped from outside: jobs are already cancelled, keep what was proven
            if self._cancel_reason is None:
                self._cancel_reason = INTERRUPTED
            logger.warning(
                f"Campaign {campaign.campaign_id[:8]} interrupted with "
                f"{len(campaign.findings)} findings recorded"
            )
        finally:
            self._running = False
            for job in campaign.jobs:
                if not job.state.is_terminal:
                    job.transition(JobState.CANCELLED)
            campaign.finished_at = time.monotonic()
            campaign.cancel_reason = self._cancel_reason
            self._cancel_reason = None
            self._cancel = None
            campaign.stats.peak_running = scheduler.peak

        logger.info(
            f"Campaign {campaign.campaign_id[:8]} finished: {campaign.state_counts()} "
            f"executions={campaign.stats.executions} findings={len(campaign.findings)}"
        )
        if self._audit_logger:
            self._audit_logger.end_session(campaign.stats.to_dict())
        return campaign

    async def _coordinate(self, campaign: Campaign, scheduler: JobScheduler) -> None:
        """Wait for jobs, enforcing the campaign deadline and cancellation."""
        loop = asyncio.get_running_loop()
        tasks = {
            asyncio.create_task(self._run_job(job, campaign, scheduler), name=job.job_id): job
            for job in campaign.jobs
        }
        pending = set(tasks)
        cancel_waiter = asyncio.create_task(self._cancel.wait())
        deadline = None
        if self.config.campaign_timeout:
            deadline = loop.time() + self.config.campaign_timeout

        try:
            while pending:
                timeout = None if deadline is None else max(0.0, deadline - loop.time())
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                pending -= done

                if deadline is not None and loop.time() >= deadline and pending:
                    error = CampaignTimeout(campaign.campaign_id, self.config.campaign_timeout)
                    logger.warning(str(error))
                    campaign.diagnostics.append(Diagnostic(
                        kind=CAMPAIGN_TIMEOUT,
                        source="orchestrator",
                        subject=campaign.campaign_id,
                        message=str(error),
                    ))
                    self.cancel("campaign deadline reached")

                if self._cancel.is_set() and pending:
                    await self._drain(pending)
                    pending = set()
        finally:
            cancel_waiter.cancel()
            leftover = [t for t in tasks if not t.done()]
            for task in leftover:
                task.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)

    async def _drain(self, pending: set) -> None:
        """Give running jobs the grace period, then cancel what is left."""
        done, still_pending = await asyncio.wait(pending, timeout=self.config.grace_period)
        if still_pending:
            logger.warning(f"Hard-cancelling {len(still_pending)} jobs after grace period")
            for task in still_pending:
                task.cancel()
            await asyncio.gather(*still_pending, return_exceptions=True)

    async def _run_job(self, job: FuzzJob, campaign: Campaign, scheduler: JobScheduler) -> None:
        """Run one job inside a worker slot. Never raises except on cancellation."""
        try:
            async with scheduler.slot():
                if self._cancel.is_set():
                    job.transition(JobState.CANCELLED)
                    return
                job.transition(JobState.RUNNING)
                try:
                    state = await asyncio.wait_for(
                        self._fuzz(job, campaign), timeout=job.timeout
                    )
                except asyncio.TimeoutError:
                    self._record_timeout(job, campaign)
                    state = JobState.TIMED_OUT
                except TargetUnreachable as e:
                    self._record_failure(job, campaign, TARGET_UNREACHABLE, job.target.name, e.reason)
                    state = JobState.FAILED
                except StrategyFailure as e:
                    self._record_failure(job, campaign, JOB_FAILED, e.strategy, e.reason)
                    state = JobState.FAILED
                except asyncio.CancelledError:
                    job.transition(JobState.CANCELLED)
                    raise
                except Exception as e:
                    self._record_failure(
                        job, campaign, JOB_FAILED, job.target.name, f"{type(e).__name__}: {e}"
                    )
                    state = JobState.FAILED
                job.transition(state)
        except asyncio.CancelledError:
            if job.state == JobState.PENDING:
                job.transition(JobState.CANCELLED)
            raise

    async def _fuzz(self, job: FuzzJob, campaign: Campaign) -> JobState:
        """The fuzz loop. Observes cancellation before every execution."""
        await job.target.prepare()
        rng = random.Random(f"{self.config.seed}:{job.job_id}")
        limit = self.config.max_executions_per_job

        for iteration in itertools.count():
            if self._cancel.is_set():
                return JobState.CANCELLED
            if limit is not None and iteration >= limit:
                return JobState.COMPLETED
            try:
                data = job.strategy.next_input(rng, job.corpus, iteration)
            except Exception as e:
                raise StrategyFailure(job.strategy.name, f"{type(e).__name__}: {e}") from e
            if data is None:
                return JobState.COMPLETED

            result = await job.target.execute(data, timeout=self.config.execution_timeout)
            job.executions += 1
            campaign.stats.executions += 1
            campaign.stats.coverage.update(result.coverage)

            if result.failed:
                self._record_crash(job, campaign, data, iteration, result)
                return JobState.CRASHED
            await asyncio.sleep(0)
        return JobState.COMPLETED

    def _record_crash(
        self,
        job: FuzzJob,
        campaign: Campaign,
        data: bytes,
        iteration: int,
        result: ExecutionResult
    ) -> None:
        violation = result.status == ExecutionStatus.VIOLATION
        rule_id = FUZZ_INVARIANT if violation else FUZZ_CRASH
        severity = self.config.violation_severity if violation else self.config.crash_severity
        kind = "Invariant violation" if violation else "Crash"

        finding = Finding.create(
            rule_id=rule_id,
            severity=severity,
            location=result.location or job.target.default_location,
            message=f"{kind} in {job.target.name}: {result.message}",
            description=(
                f"Fuzzing {job.target.entry_point} with the {job.strategy.name} strategy "
                f"produced an input that {'violates a program invariant' if violation else 'crashes the target'}."
            ),
            remediation="Reproduce with the captured input and fix the failing check or panic.",
            evidence=[{
                "input_hex": data.hex(),
                "input_size": len(data),
                "violation": result.message,
                "strategy": job.strategy.name,
                "job_id": job.job_id,
                "execution": iteration,
            }],
            snippet=f"{job.target.name}:{result.message}",
            source="fuzz",
        )
        job.finding = finding
        campaign.findings.append(finding)
        if violation:
            campaign.stats.violations += 1
        else:
            campaign.stats.crashes += 1
        logger.warning(f"Job {job.job_id}: {kind.lower()} after {job.executions} executions: {result.message}")
        if self._audit_logger:
            self._audit_logger.log_finding(finding.to_dict())

    def _record_failure(
        self,
        job: FuzzJob,
        campaign: Campaign,
        kind: str,
        source: str,
        message: str
    ) -> None:
        job.error = message
        diagnostic = Diagnostic(kind=kind, source=source, subject=job.job_id, message=message)
        campaign.diagnostics.append(diagnostic)
        logger.error(f"Job {job.job_id} failed ({kind}, {source}): {message}")
        if self._audit_logger:
            self._audit_logger.log_failure(diagnostic.to_dict())

    def _record_timeout(self, job: FuzzJob, campaign: Campaign) -> None:
        logger.info(f"Job {job.job_id} timed out after {job.timeout}s ({job.executions} executions)")
        if not self.config.timeouts_as_findings:
            return
        finding = Finding.create(
            rule_id=FUZZ_TIMEOUT,
            severity=self.config.timeout_severity,
            location=job.target.default_location,
            message=f"{job.target.name} did not finish within {job.timeout}s",
            description="A fuzz job exceeded its deadline, which can indicate unbounded loops or excessive compute.",
            remediation="Check the target for inputs that make execution unbounded.",
            evidence=[{
                "job_id": job.job_id,
                "strategy": job.strategy.name,
                "executions": job.executions,
                "timeout": job.timeout,
            }],
            snippet=f"timeout:{job.target.name}",
            source="fuzz",
        )
        job.finding = finding
        campaign.findings.append(finding)

    def _observe(
        self,
        campaign: Campaign,
        job: FuzzJob,
        old: JobState,
        new: JobState
    ) -> None:
        if new == JobState.TIMED_OUT:
            campaign.stats.timeouts += 1
        elif new == JobState.FAILED:
            campaign.stats.failed += 1
        elif new == JobState.CANCELLED:
            campaign.stats.cancelled += 1
        elif new == JobState.COMPLETED:
            campaign.stats.completed += 1

        logger.debug(f"Job {job.job_id}: {old.value} -> {new.value}")
        if self._audit_logger:
            self._audit_logger.log_job_event(job.job_id, new.value, {
                "target": job.target.name,
                "strategy": job.strategy.name,
                "executions": job.executions,
            })
        if self._on_transition:
            self._on_transition(job, old, new)

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        campaign = self._campaign
        return {
            "running": self._running,
            "cancel_requested": self._cancel_reason is not None,
            "campaign": campaign.campaign_id if campaign else None,
            "job_states": campaign.state_counts() if campaign else {},
            "statistics": campaign.stats.to_dict() if campaign else {},
        }
