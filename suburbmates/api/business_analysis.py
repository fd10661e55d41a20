"""
FastAPI router for the read-only single-business analysis.

Endpoints (mounted under /admin/quality-scoring):
- GET /{business_id} - Factor breakdown, score tier, improvement plan and
  category/suburb comparison for one business

The path is a catch-all segment, so this router is included after every
router that owns a fixed path under the same prefix.
"""

import logging

from fastapi import APIRouter

from suburbmates.core.dependencies import AdminDep, OriginDep, ServicesDep
from suburbmates.core.exceptions import NotFoundError, QualityScoringError
from suburbmates.models.enums import AuditEvent
from suburbmates.services.business_analysis import analyze_business_detail


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{business_id}", response_model=dict)
async def get_business_analysis(
    business_id: str,
    services: ServicesDep,
    admin: AdminDep,
    origin: OriginDep,
) -> dict:
    """
    Detailed quality analysis for one business. Nothing is persisted.

    Raises:
        NotFoundError: 404 when the business does not exist.
    """
    try:
        analysis = await analyze_business_detail(services.repository, business_id)
        if analysis is None:
            raise NotFoundError("Business not found", details={"businessId": business_id})

        comparison = analysis.competitorComparison
        await services.audit.log(
            AuditEvent.DETAIL_ACCESS,
            target_id=business_id,
            actor_id=admin.id,
            metadata={
                "businessName": analysis.business.name,
                "currentScore": analysis.currentScore,
                "level": analysis.level.value,
                "categoryComparison": {
                    "businessScore": analysis.currentScore,
                    "categoryAverage": comparison.categoryAverage,
                    "suburbAverage": comparison.suburbAverage,
                },
            },
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )

        return {"success": True, "analysis": analysis.model_dump(mode="json")}

    except QualityScoringError:
        raise
    except Exception as e:
        logger.exception(f"Quality score detail analysis failed for {business_id}")
        await services.audit.log(
            AuditEvent.DETAIL_ERROR,
            target_id=business_id,
            actor_id=admin.id,
            metadata={"error": str(e)},
            request_origin=origin.ip,
            user_agent=origin.user_agent,
        )
        raise QualityScoringError(
            "Failed to analyze business quality score",
            details={"message": str(e)},
        ) from e
