"""
FastAPI router for batch quality rescoring jobs.

Endpoints (mounted under /admin/quality-scoring):
- POST /batch-update - Submit a batch ({criteria, options})
- GET /batch-update - List recent jobs (evicts stale completed jobs)
- DELETE /batch-update - Cancel up to 10 jobs at once ({jobIds})
- GET /batch-update/{job_id} - Job status; results=true adds full results
- DELETE /batch-update/{job_id} - Cancel a job

Request bodies are validated by pydantic (422 with field details). Engine
errors map to their status codes through the registered exception handlers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from suburbmates.core.dependencies import AdminDep, OriginDep, ServicesDep
from suburbmates.core.exceptions import QualityScoringError
from suburbmates.models.enums import AuditEvent, CancelOutcome, JobStatus
from suburbmates.models.schemas import BatchJob, BatchRequest, BulkCancelRequest


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/batch-update")


def _job_payload(job: BatchJob) -> dict:
    return job.model_dump(mode="json", by_alias=True)


async def _audit_error(services, admin, origin, error: Exception, **metadata) -> None:
    await services.audit.log(
        AuditEvent.BATCH_ERROR,
        actor_id=admin.id,
        metadata={"error": str(error), **metadata},
        request_origin=origin.ip,
        user_agent=origin.user_agent,
    )


# =============================================================================
# POST /batch-update
# =============================================================================


@router.post("", response_model=dict)
async def submit_batch_update(
    body: BatchRequest,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
) -> dict:
    """
    Start a batch rescoring job.

    Async jobs return immediately while pending; sync jobs return the
    finished job including its results.

    Raises:
        NoMatchingBusinessesError: 400 when the criteria match nothing.
        SyncBatchTooLargeError: 400 for sync requests over 1000 targets.
    """
    try:
        job = await services.jobs.submit_batch(body.criteria, body.options, admin)

        await services.audit.log(
            AuditEvent.BATCH_START,
            target_id=job.id,
            actor_id=admin.id,
            metadata={
                "jobId": job.id,
                "targetCount": job.progress.total,
                "criteria": body.criteria.model_dump(mode="json", exclude_none=True),
                "options": body.options.model_dump(mode="json", by_alias=True),
            },
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        if body.options.async_:
            message = f"Batch update started for {job.progress.total} businesses"
        else:
            message = f"Batch update {job.status.value} for {job.progress.total} businesses"

        return {
            "success": True,
            "message": message,
            "jobId": job.id,
            "job": _job_payload(job),
        }

    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception("Batch update submission failed")
        await _audit_error(services, admin, origin, e)
        raise QualityScoringError(
            "Failed to process batch update",
            details={"message": str(e)},
        ) from e


# =============================================================================
# GET /batch-update
# =============================================================================


@router.get("", response_model=dict)
async def list_batch_jobs(
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
    status: Optional[JobStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
) -> dict:
    """Newest-first job summaries; results are collapsed to counts."""
    try:
        jobs, total = await services.jobs.list_jobs(status=status, limit=limit)
        return {
            "success": True,
            "jobs": [job.model_dump(mode="json", by_alias=True) for job in jobs],
            "total": total,
        }
    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception("Batch job listing failed")
        await _audit_error(services, admin, origin, e)
        raise QualityScoringError("Failed to fetch batch jobs", details={"message": str(e)}) from e


# =============================================================================
# DELETE /batch-update
# =============================================================================


@router.delete("", response_model=dict)
async def cancel_batch_jobs(
    body: BulkCancelRequest,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
) -> dict:
    """Cancel several jobs; each id gets cancelled / not_found / already_finished."""
    try:
        results = await services.jobs.cancel_jobs(body.jobIds, admin)

        cancelled = [r.jobId for r in results if r.result == CancelOutcome.CANCELLED]
        if cancelled:
            await services.audit.log(
                AuditEvent.BATCH_CANCEL,
                actor_id=admin.id,
                metadata={"jobIds": cancelled, "requested": body.jobIds},
                request_origin=origin.ip,
                user_agent=origin.user_agent,
            )

        return {
            "success": True,
            "cancelledCount": len(cancelled),
            "results": [r.model_dump(mode="json") for r in results],
        }
    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception("Bulk batch cancel failed")
        await _audit_error(services, admin, origin, e)
        raise QualityScoringError("Failed to cancel batch jobs", details={"message": str(e)}) from e


# =============================================================================
# GET /batch-update/{job_id}
# =============================================================================


@router.get("/{job_id}", response_model=dict)
async def get_batch_job(
    job_id: str,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
    results: bool = Query(False, description="Include full result lists when finished"),
) -> dict:
    """Status of one job, with ETA while processing."""
    try:
        view = await services.jobs.get_job_status(job_id, admin, include_results=results)
        return {"success": True, "job": view.model_dump(mode="json", by_alias=True)}
    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception(f"Batch job status failed for {job_id}")
        await _audit_error(services, admin, origin, e, jobId=job_id)
        raise QualityScoringError("Failed to fetch job status", details={"message": str(e)}) from e


# =============================================================================
# DELETE /batch-update/{job_id}
# =============================================================================


@router.delete("/{job_id}", response_model=dict)
async def cancel_batch_job(
    job_id: str,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
) -> dict:
    """
    Cancel a pending or processing job.

    Raises:
        NotFoundError: 404 for an unknown job.
        ResourceStateError: 400 with currentStatus when the job is terminal.
    """
    try:
        job = await services.jobs.cancel_job(job_id, admin)

        await services.audit.log(
            AuditEvent.BATCH_CANCEL,
            target_id=job_id,
            actor_id=admin.id,
            metadata={"progress": job.progress.model_dump(mode="json")},
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        return {
            "success": True,
            "message": "Job cancelled successfully",
            "job": _job_payload(job),
        }
    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception(f"Batch job cancel failed for {job_id}")
        await _audit_error(services, admin, origin, e, jobId=job_id)
        raise QualityScoringError("Failed to cancel job", details={"message": str(e)}) from e
