"""
FastAPI router for quality scoring reads and single-business recalculation.

Endpoints (mounted under /admin/quality-scoring):
- GET /low-quality - Approved businesses in a score range with improvement
  actions, sorted and paginated; optional aggregate stats
- GET /stats - Directory-wide QualityStats from the TTL cache; refresh=true
  forces a recomputation
- POST /calculate/{business_id} - Rescore one approved business and persist
  the result

All endpoints require an admin. Every successful read is written to the
audit log; failures are audit-logged best effort and returned as
``{"error": ..., "message": ...}`` with status 500.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query

from suburbmates.core.dependencies import AdminDep, OriginDep, ServicesDep
from suburbmates.core.exceptions import NotFoundError, QualityScoringError, ResourceStateError
from suburbmates.jobs.batch_rescore import rescore_business
from suburbmates.models.enums import (
    AbnStatus,
    ApprovalStatus,
    AuditEvent,
    LowQualitySortField,
    SortOrder,
    StatsSource,
)
from suburbmates.models.schemas import LowQualityQuery, ScoreCalculation
from suburbmates.services.improvement import list_low_quality
from suburbmates.services.quality_stats import load_quality_stats


logger = logging.getLogger(__name__)

router = APIRouter()

# Number of actions returned as next steps by /calculate
NEXT_STEPS_LIMIT: int = 5


# =============================================================================
# GET /low-quality
# =============================================================================


@router.get("/low-quality", response_model=dict)
async def get_low_quality_businesses(
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
    minScore: int = Query(0, ge=0, le=100),
    maxScore: Optional[int] = Query(None, ge=0, le=100),
    suburb: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    abnStatus: Optional[AbnStatus] = Query(None),
    sortBy: LowQualitySortField = Query(LowQualitySortField.PRIORITY),
    sortOrder: SortOrder = Query(SortOrder.DESC),
    page: int = Query(1),
    limit: int = Query(20),
    stats: bool = Query(False),
) -> dict:
    """
    List low-quality approved businesses with their improvement plan.

    `page` below 1 is raised to 1 and `limit` is clamped to 1..100.

    Returns:
        { success, businesses, pagination, filters, sorting, stats? }
    """
    settings = services.settings
    try:
        query = LowQualityQuery(
            minScore=minScore,
            maxScore=settings.low_quality_default_max_score if maxScore is None else maxScore,
            suburb=suburb,
            category=category,
            abnStatus=abnStatus,
            sortBy=sortBy,
            sortOrder=sortOrder,
            page=max(1, page),
            limit=min(settings.low_quality_page_limit, max(1, limit)),
            includeStats=stats,
        )
        result = await list_low_quality(services.repository, query)

        filters = {
            "minScore": query.minScore,
            "maxScore": query.maxScore,
            "suburb": query.suburb,
            "category": query.category,
            "abnStatus": query.abnStatus.value if query.abnStatus else None,
        }
        sorting = {"sortBy": query.sortBy.value, "sortOrder": query.sortOrder.value}

        await services.audit.log(
            AuditEvent.LOW_QUALITY_ACCESS,
            target_id=None,
            actor_id=admin.id,
            metadata={
                "filters": filters,
                "sorting": sorting,
                "pagination": {"page": query.page, "limit": query.limit},
                "totalFound": result.pagination.totalCount,
            },
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        return {
            "success": True,
            "businesses": [b.model_dump(mode="json") for b in result.businesses],
            "pagination": result.pagination.model_dump(mode="json"),
            "filters": filters,
            "sorting": sorting,
            "stats": result.stats.model_dump(mode="json") if result.stats else None,
        }

    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception("Low quality businesses fetch failed")
        await services.audit.log(
            AuditEvent.LOW_QUALITY_ERROR,
            actor_id=admin.id,
            metadata={"error": str(e)},
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )
        raise QualityScoringError(
            "Failed to fetch low-quality businesses",
            details={"message": str(e)},
        ) from e


# =============================================================================
# GET /stats
# =============================================================================


@router.get("/stats", response_model=dict)
async def get_quality_stats(
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
    refresh: bool = Query(False, description="Bypass and repopulate the cache"),
) -> dict:
    """
    Directory-wide quality statistics.

    Returns:
        { success, stats } where stats.cacheInfo.source is 'cache' or 'database'.
    """
    ttl = services.settings.stats_cache_ttl_seconds
    try:
        quality_stats, source = await services.stats_cache.get(
            lambda: load_quality_stats(services.repository, ttl),
            force_refresh=refresh,
        )

        metadata = {"cacheHit": source == StatsSource.CACHE, "forceRefresh": refresh}
        if source == StatsSource.DATABASE:
            metadata["totalBusinesses"] = quality_stats.overview.totalBusinesses
            metadata["averageScore"] = quality_stats.overview.averageQualityScore

        await services.audit.log(
            AuditEvent.STATS_ACCESS,
            actor_id=admin.id,
            metadata=metadata,
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        return {"success": True, "stats": quality_stats.model_dump(mode="json")}

    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception("Quality scoring stats failed")
        await services.audit.log(
            AuditEvent.STATS_ERROR,
            actor_id=admin.id,
            metadata={"error": str(e)},
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )
        raise QualityScoringError(
            "Failed to fetch quality scoring statistics",
            details={"message": str(e)},
        ) from e


# =============================================================================
# POST /calculate/{business_id}
# =============================================================================


@router.post("/calculate/{business_id}", response_model=dict)
async def calculate_business_score(
    business_id: str,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
) -> dict:
    """
    Recalculate and persist one business's quality score.

    Raises:
        NotFoundError: 404 when the business does not exist.
        ResourceStateError: 400 when the business is not APPROVED.
    """
    try:
        profile = await services.repository.find_unique(business_id, include_related=True)
        if profile is None:
            raise NotFoundError("Business not found", details={"businessId": business_id})
        if profile.approvalStatus != ApprovalStatus.APPROVED:
            raise ResourceStateError(
                "Can only calculate quality scores for approved businesses",
                current_status=profile.approvalStatus.value,
            )

        calculated_at = datetime.now(timezone.utc)
        try:
            outcome = await rescore_business(
                services.repository,
                business_id,
                dry_run=False,
                now=calculated_at,
                profile=profile,
            )
        except LookupError as e:
            # Deleted between the read and the score update
            raise NotFoundError("Business not found", details={"businessId": business_id}) from e
        if outcome is None:
            raise NotFoundError("Business not found", details={"businessId": business_id})

        calculation = ScoreCalculation(
            businessId=business_id,
            businessName=profile.name,
            previousScore=outcome.previous_score,
            newScore=outcome.new_score,
            scoreChange=outcome.score_change,
            calculatedAt=calculated_at,
            breakdown=outcome.result.breakdown,
            missingFields=outcome.result.missingFields,
            nextSteps=outcome.result.actions[:NEXT_STEPS_LIMIT],
        )

        await services.audit.log(
            AuditEvent.CALCULATE,
            target_id=business_id,
            actor_id=admin.id,
            metadata={
                "businessName": profile.name,
                "previousScore": calculation.previousScore,
                "newScore": calculation.newScore,
                "scoreChange": calculation.scoreChange,
            },
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        if calculation.scoreChange > 0:
            message = f"Quality score increased by {calculation.scoreChange} points"
        elif calculation.scoreChange < 0:
            message = f"Quality score decreased by {-calculation.scoreChange} points"
        else:
            message = "Quality score unchanged"

        return {
            "success": True,
            "message": message,
            "calculation": calculation.model_dump(mode="json"),
        }

    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception(f"Quality score calculation failed for {business_id}")
        await services.audit.log(
            AuditEvent.CALCULATE_ERROR,
            target_id=business_id,
            actor_id=admin.id,
            metadata={"error": str(e)},
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )
        raise QualityScoringError(
            "Failed to calculate quality score",
            details={"message": str(e)},
        ) from e
