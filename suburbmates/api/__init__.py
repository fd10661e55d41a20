"""
API package for the quality scoring service.

Router modules:
- quality_scoring: low-quality listing, directory stats, single recalculation
- batch_update: batch rescoring jobs
- business_analysis: read-only analysis of one business

All are mounted under /admin/quality-scoring by api_router.
business_analysis owns the catch-all /{business_id} segment and must stay last.
"""

from fastapi import APIRouter

from suburbmates.api.batch_update import router as batch_update_router
from suburbmates.api.business_analysis import router as business_analysis_router
from suburbmates.api.quality_scoring import router as quality_scoring_router

API_PREFIX = "/admin/quality-scoring"

api_router = APIRouter(prefix=API_PREFIX)

api_router.include_router(quality_scoring_router, tags=["quality-scoring"])
api_router.include_router(batch_update_router, tags=["batch-update"])
api_router.include_router(business_analysis_router, tags=["quality-scoring"])
