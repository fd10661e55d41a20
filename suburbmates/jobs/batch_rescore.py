"""
Batch rescoring jobs.

BatchJobManager owns the lifecycle of a batch: it resolves the target set,
creates the job record, runs it synchronously or as a detached asyncio
task, tracks progress, honours cancellation and posts webhook checkpoints.

State machine:
    pending    -> processing | cancelled
    processing -> completed | failed | cancelled
Terminal states never change. Every transition goes through
_transition(), a compare-and-set performed under the job's lock.

Execution:
- Synchronous: targets processed one at a time within the request;
  cancellation is checked before every item.
- Asynchronous: after a short queue delay, targets are processed in chunks
  of 10 run together with asyncio.gather, with a pause between chunks;
  cancellation is checked at every chunk boundary.

Per-item failures are recorded in the job's failed results and never stop
the batch. An unexpected error in the run loop marks the job failed.

Webhooks (async only): a POST with the job snapshot every 50 processed
items and once more when the job reaches its final state. Best effort, no
retries.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from suburbmates.core.config import Settings
from suburbmates.core.exceptions import (
    AuthorizationError,
    JobAlreadyCancelledError,
    JobAlreadyFinishedError,
    NoMatchingBusinessesError,
    NotFoundError,
    ResourceStateError,
    SyncBatchTooLargeError,
)
from suburbmates.jobs.store import CancellationToken, JobStore
from suburbmates.models.enums import AuditEvent, CancelOutcome, JobStatus
from suburbmates.models.schemas import (
    BatchCriteria,
    BatchJob,
    BatchJobProgress,
    BatchJobStatusView,
    BatchJobSummary,
    BatchOptions,
    BatchResultCounts,
    BatchResultSummary,
    BulkCancelResult,
    BusinessProfile,
    CurrentUser,
    FailedRescore,
    ScoreResult,
    SuccessfulRescore,
)
from suburbmates.services.audit import AuditLogger
from suburbmates.services.repository import BusinessRepository
from suburbmates.services.scoring import round_half_up, score_business
from suburbmates.services.webhooks import WebhookNotifier


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

BUSINESS_NOT_FOUND_ERROR: str = "Business not found during processing"

# Audit origin for events raised outside any request
WORKER_ORIGIN: str = "batch-worker"


def new_job_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# =============================================================================
# Per-business step
# =============================================================================


@dataclass
class RescoreOutcome:
    profile: BusinessProfile
    previous_score: int
    result: ScoreResult

    @property
    def new_score(self) -> int:
        return self.result.qualityScore

    @property
    def score_change(self) -> int:
        return self.new_score - self.previous_score


async def rescore_business(
    repository: BusinessRepository,
    business_id: str,
    dry_run: bool = False,
    now: Optional[datetime] = None,
    profile: Optional[BusinessProfile] = None,
) -> Optional[RescoreOutcome]:
    """
    Re-fetch a business, score it and (unless dry_run) persist the new score.

    Args:
        profile: Already-fetched snapshot (with related records) to score
            instead of re-fetching.

    Returns:
        RescoreOutcome, or None when the business no longer exists.
    """
    if profile is None:
        profile = await repository.find_unique(business_id, include_related=True)
    if profile is None:
        return None

    result = score_business(profile)
    if not dry_run:
        await repository.update(
            business_id,
            {
                "qualityScore": result.qualityScore,
                "updatedAt": now or datetime.now(timezone.utc),
            },
        )

    return RescoreOutcome(profile=profile, previous_score=profile.qualityScore, result=result)


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _result_counts(job: BatchJob) -> BatchResultCounts:
    return BatchResultCounts(
        successful=len(job.results.successful),
        failed=len(job.results.failed),
    )


# =============================================================================
# Manager
# =============================================================================


class BatchJobManager:
    """
    Creates, runs, cancels and reports on batch rescoring jobs.

    Args:
        repository: Business data source used for selection and rescoring.
        store: Job record storage.
        audit: Admin audit sink for lifecycle events.
        notifier: Webhook sender.
        settings: Limits and pacing (chunk size, pauses, webhook interval).
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        repository: BusinessRepository,
        store: JobStore,
        audit: AuditLogger,
        notifier: WebhookNotifier,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.repository = repository
        self.store = store
        self.audit = audit
        self.notifier = notifier
        self.settings = settings
        self._now = clock or (lambda: datetime.now(timezone.utc))
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    def _token_for(self, job_id: str) -> CancellationToken:
        token = self._tokens.get(job_id)
        if token is None:
            token = self._tokens[job_id] = CancellationToken()
        return token

    async def _require(self, job_id: str) -> BatchJob:
        job = await self.store.get(job_id)
        if job is None:
            raise NotFoundError("Job not found", details={"jobId": job_id})
        return job

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    async def _transition(
        self,
        job_id: str,
        target: JobStatus,
        error: Optional[str] = None,
    ) -> Optional[BatchJob]:
        """
        Move a job to `target` if the state machine allows it.

        Returns:
            The updated job, or None when the job is missing or the
            transition is not allowed from its current state.
        """
        async with self._lock_for(job_id):
            job = await self.store.get(job_id)
            if job is None or not can_transition(job.status, target):
                return None

            job.status = target
            if target.is_terminal:
                job.completedAt = self._now()
            if target == JobStatus.CANCELLED:
                job.cancelledAt = job.completedAt
            if error is not None:
                job.error = error
            await self.store.save(job)

        logger.info(f"Batch job {job_id} -> {target.value}")
        return job

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit_batch(
        self,
        criteria: BatchCriteria,
        options: BatchOptions,
        user: CurrentUser,
    ) -> BatchJob:
        """
        Resolve the target set, create the job and start it.

        Targets are the matching businesses, lowest stored score first,
        capped at criteria.limit (or the configured maximum).

        Returns:
            The job: still pending for async runs, terminal for sync runs.

        Raises:
            NoMatchingBusinessesError: The criteria match no business.
            SyncBatchTooLargeError: Synchronous run over the sync limit.
        """
        limit = min(criteria.limit or self.settings.batch_max_targets, self.settings.batch_max_targets)
        targets = await self.repository.find_many(
            criteria.to_filter(),
            include_related=False,
            limit=limit,
        )

        if not targets:
            raise NoMatchingBusinessesError()

        if not options.async_ and len(targets) > self.settings.batch_sync_max:
            raise SyncBatchTooLargeError(len(targets), self.settings.batch_sync_max)

        total = len(targets)
        job = BatchJob(
            id=new_job_id(),
            status=JobStatus.PENDING,
            progress=BatchJobProgress(total=total),
            criteria=criteria,
            options=options,
            targetIds=[business.id for business in targets],
            targetNames={business.id: business.name for business in targets},
            startedAt=self._now(),
            createdBy=user.id,
            estimatedDuration=math.ceil(total / self.settings.batch_throughput_per_second),
        )
        await self.store.save(job)
        self._token_for(job.id)

        logger.info(
            f"Batch job {job.id} created by {user.id}: {total} targets "
            f"(async={options.async_}, dryRun={options.dryRun})"
        )

        if options.async_:
            self._tasks[job.id] = asyncio.create_task(self._run_async(job.id))
            return job

        await self._run_sync(job.id)
        return await self._require(job.id)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _record(
        self,
        job_id: str,
        success: Optional[SuccessfulRescore] = None,
        failure: Optional[FailedRescore] = None,
    ) -> Optional[BatchJob]:
        async with self._lock_for(job_id):
            job = await self.store.get(job_id)
            if job is None:
                return None

            progress = job.progress
            if success is not None:
                job.results.successful.append(success)
                progress.successful += 1
            if failure is not None:
                job.results.failed.append(failure)
                progress.failed += 1
            progress.processed += 1
            progress.percentage = round_half_up(progress.processed / progress.total * 100)
            await self.store.save(job)
            return job

    async def _process_item(
        self,
        job_id: str,
        business_id: str,
        options: BatchOptions,
        business_name: Optional[str] = None,
    ) -> None:
        try:
            outcome = await rescore_business(
                self.repository,
                business_id,
                dry_run=options.dryRun,
                now=self._now(),
            )
        except Exception as e:
            logger.warning(f"Batch job {job_id}: rescoring {business_id} failed: {e}")
            job = await self._record(
                job_id,
                failure=FailedRescore(
                    businessId=business_id,
                    businessName=business_name,
                    error=str(e) or type(e).__name__,
                ),
            )
        else:
            if outcome is None:
                job = await self._record(
                    job_id,
                    failure=FailedRescore(
                        businessId=business_id,
                        businessName=business_name,
                        error=BUSINESS_NOT_FOUND_ERROR,
                    ),
                )
            else:
                job = await self._record(
                    job_id,
                    success=SuccessfulRescore(
                        businessId=business_id,
                        businessName=outcome.profile.name,
                        previousScore=outcome.previous_score,
                        newScore=outcome.new_score,
                        scoreChange=outcome.score_change,
                    ),
                )

        interval = self.settings.batch_webhook_interval
        if (
            job is not None
            and options.async_
            and options.webhookUrl
            and interval > 0
            and job.progress.processed % interval == 0
        ):
            await self.notifier.send(options.webhookUrl, self._checkpoint_payload(job))

    async def _run_sync(self, job_id: str) -> None:
        job = await self._transition(job_id, JobStatus.PROCESSING)
        if job is None:
            return

        token = self._token_for(job_id)
        try:
            for business_id in list(job.targetIds):
                if token.cancelled:
                    break
                await self._process_item(
                    job_id, business_id, job.options, job.targetNames.get(business_id)
                )
            await self._finish(job_id)
        except Exception as e:
            logger.exception(f"Batch job {job_id} aborted")
            await self._abort(job_id, e)

    async def _run_async(self, job_id: str) -> None:
        token = self._token_for(job_id)
        try:
            await asyncio.sleep(self.settings.batch_queue_delay_seconds)
            if token.cancelled:
                return
            job = await self._transition(job_id, JobStatus.PROCESSING)
            if job is None:
                return

            chunks = _chunks(list(job.targetIds), self.settings.batch_chunk_size)
            for index, chunk in enumerate(chunks):
                if token.cancelled:
                    logger.info(f"Batch job {job_id} cancelled at chunk {index}/{len(chunks)}")
                    break
                await asyncio.gather(
                    *(
                        self._process_item(
                            job_id, business_id, job.options, job.targetNames.get(business_id)
                        )
                        for business_id in chunk
                    )
                )
                if index < len(chunks) - 1 and self.settings.batch_chunk_pause_seconds > 0:
                    await asyncio.sleep(self.settings.batch_chunk_pause_seconds)

            job = await self._finish(job_id)
            if job.options.webhookUrl:
                await self.notifier.send(job.options.webhookUrl, self._final_payload(job))
        except asyncio.CancelledError:
            logger.warning(f"Batch job {job_id} interrupted by shutdown")
            await self._transition(job_id, JobStatus.FAILED, error="Interrupted by shutdown")
            raise
        except Exception as e:
            logger.exception(f"Batch job {job_id} aborted")
            await self._abort(job_id, e)
        finally:
            self._tasks.pop(job_id, None)

    async def _finish(self, job_id: str) -> BatchJob:
        job = await self._require(job_id)
        target = JobStatus.COMPLETED
        if job.options.rollbackOnError and job.progress.failed > 0:
            target = JobStatus.FAILED

        finished = await self._transition(job_id, target)
        if finished is None:
            # Cancelled meanwhile; the terminal state stands
            return await self._require(job_id)

        await self.audit.log(
            AuditEvent.BATCH_COMPLETE,
            target_id=job_id,
            actor_id=finished.createdBy,
            metadata={
                "status": finished.status.value,
                "totalProcessed": finished.progress.processed,
                "successful": finished.progress.successful,
                "failed": finished.progress.failed,
                "dryRun": finished.options.dryRun,
            },
            request_origin=WORKER_ORIGIN,
            user_agent=WORKER_ORIGIN,
        )
        return finished

    async def _abort(self, job_id: str, error: Exception) -> None:
        job = await self._transition(job_id, JobStatus.FAILED, error=str(error))
        if job is None:
            return
        await self.audit.log(
            AuditEvent.BATCH_ERROR,
            target_id=job_id,
            actor_id=job.createdBy,
            metadata={"error": str(error)},
            request_origin=WORKER_ORIGIN,
            user_agent=WORKER_ORIGIN,
        )

    # -------------------------------------------------------------------------
    # Webhook payloads
    # -------------------------------------------------------------------------

    def _checkpoint_payload(self, job: BatchJob) -> dict:
        return {
            "jobId": job.id,
            "status": job.status.value,
            "progress": job.progress.model_dump(mode="json"),
            "timestamp": self._now().isoformat(),
        }

    def _final_payload(self, job: BatchJob) -> dict:
        return {
            "jobId": job.id,
            "status": job.status.value,
            "progress": job.progress.model_dump(mode="json"),
            "results": _result_counts(job).model_dump(mode="json"),
            "completedAt": job.completedAt.isoformat() if job.completedAt else None,
        }

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def _check_access(self, job: BatchJob, user: CurrentUser) -> None:
        if job.createdBy != user.id and not user.is_admin:
            raise AuthorizationError("Access denied")

    async def cancel_job(self, job_id: str, user: CurrentUser) -> BatchJob:
        """
        Cancel a pending or processing job.

        Raises:
            NotFoundError: Unknown job id.
            AuthorizationError: Caller neither owns the job nor is an admin.
            JobAlreadyCancelledError / JobAlreadyFinishedError: Job is terminal;
                the record is left untouched.
        """
        job = await self._require(job_id)
        self._check_access(job, user)

        cancelled = await self._transition(job_id, JobStatus.CANCELLED)
        if cancelled is None:
            current = await self._require(job_id)
            if current.status == JobStatus.CANCELLED:
                raise JobAlreadyCancelledError()
            raise JobAlreadyFinishedError(current.status.value)

        self._token_for(job_id).cancel()
        logger.info(f"Batch job {job_id} cancelled by {user.id}")
        return cancelled

    async def cancel_jobs(self, job_ids: List[str], user: CurrentUser) -> List[BulkCancelResult]:
        """Cancel several jobs, reporting a per-job outcome instead of raising."""
        results: List[BulkCancelResult] = []
        for job_id in job_ids:
            try:
                job = await self.cancel_job(job_id, user)
            except NotFoundError:
                results.append(BulkCancelResult(jobId=job_id, result=CancelOutcome.NOT_FOUND))
            except ResourceStateError as e:
                results.append(
                    BulkCancelResult(
                        jobId=job_id,
                        result=CancelOutcome.ALREADY_FINISHED,
                        status=e.current_status,
                    )
                )
            else:
                results.append(
                    BulkCancelResult(jobId=job_id, result=CancelOutcome.CANCELLED, status=job.status)
                )
        return results

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _estimate_remaining(self, job: BatchJob, now: datetime) -> Tuple[int, datetime]:
        elapsed = max(0.0, (now - job.startedAt).total_seconds())
        if job.progress.processed > 0:
            ratio = job.progress.processed / job.progress.total
            remaining = elapsed / ratio - elapsed
        else:
            remaining = job.estimatedDuration - elapsed
        seconds = max(0, round_half_up(remaining))
        return seconds, now + timedelta(seconds=seconds)

    async def get_job_status(
        self,
        job_id: str,
        user: CurrentUser,
        include_results: bool = False,
        now: Optional[datetime] = None,
    ) -> BatchJobStatusView:
        """
        Snapshot of one job.

        Full result lists and a summary are included only when requested and
        the job is completed or failed. Processing jobs carry an ETA.
        """
        job = await self._require(job_id)
        self._check_access(job, user)
        now = now or self._now()

        view = BatchJobStatusView(
            id=job.id,
            status=job.status,
            progress=job.progress.model_copy(),
            criteria=job.criteria,
            options=job.options,
            startedAt=job.startedAt,
            completedAt=job.completedAt,
            cancelledAt=job.cancelledAt,
            error=job.error,
            createdBy=job.createdBy,
            estimatedDuration=job.estimatedDuration,
            resultCounts=_result_counts(job),
        )

        if include_results and job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            changes = [entry.scoreChange for entry in job.results.successful]
            view.results = job.results.model_copy(deep=True)
            view.summary = BatchResultSummary(
                totalProcessed=job.progress.processed,
                successfulCount=len(job.results.successful),
                failedCount=len(job.results.failed),
                averageScoreChange=round_half_up(sum(changes) / len(changes)) if changes else 0,
            )

        if job.status == JobStatus.PROCESSING:
            remaining, completion = self._estimate_remaining(job, now)
            view.estimatedTimeRemaining = remaining
            view.estimatedCompletionTime = completion

        return view

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[BatchJobSummary], int]:
        """
        Newest-first job summaries, optionally filtered by status.

        Side effect: completed jobs started more than the retention window
        ago are evicted after the listing is built.

        Returns:
            (summaries, total matching the filter before the limit).
        """
        limit = min(limit or self.settings.batch_list_default_limit, self.settings.batch_list_max_limit)
        jobs = await self.store.list_all()

        matching = [job for job in jobs if status is None or job.status == status]
        matching.sort(key=lambda job: job.startedAt, reverse=True)

        summaries = [
            BatchJobSummary(
                id=job.id,
                status=job.status,
                progress=job.progress.model_copy(),
                criteria=job.criteria,
                options=job.options,
                results=_result_counts(job),
                startedAt=job.startedAt,
                completedAt=job.completedAt,
                createdBy=job.createdBy,
                estimatedDuration=job.estimatedDuration,
            )
            for job in matching[:limit]
        ]

        await self._evict_stale(jobs)
        return summaries, len(matching)

    async def _evict_stale(self, jobs: List[BatchJob]) -> int:
        cutoff = self._now() - timedelta(hours=self.settings.batch_job_retention_hours)
        evicted = 0
        for job in jobs:
            if job.status == JobStatus.COMPLETED and job.startedAt < cutoff:
                await self.store.delete(job.id)
                self._locks.pop(job.id, None)
                self._tokens.pop(job.id, None)
                evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} completed batch jobs older than "
                        f"{self.settings.batch_job_retention_hours}h")
        return evicted

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def join(self, job_id: str) -> None:
        """Wait for a detached job run to finish."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel running jobs; they are marked failed."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} running batch jobs")
