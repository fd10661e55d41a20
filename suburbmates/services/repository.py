"""
Business data access for the scoring engine.

BusinessRepository is the seam between the engine and the directory
database. The engine only ever needs three operations:

- find_many(filter, include_related, limit): matching businesses, lowest
  stored score first
- find_unique(id): one business or None
- update(id, patch): write back "qualityScore" / "updatedAt"

PostgresBusinessRepository implements them over the shared asyncpg pool.
Tests substitute an in-memory implementation.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from suburbmates.core.database import execute_command, execute_query, execute_query_one
from suburbmates.models.schemas import BusinessFilter, BusinessProfile, ContentItem
from suburbmates.sql.business_queries import (
    build_find_many_query,
    build_find_unique_query,
    build_update_query,
)


logger = logging.getLogger(__name__)


class BusinessRepository(ABC):
    """Abstract persistence interface for business profiles."""

    @abstractmethod
    async def find_many(
        self,
        business_filter: BusinessFilter,
        include_related: bool = False,
        limit: Optional[int] = None,
    ) -> List[BusinessProfile]:
        """Return matching businesses ordered by ascending stored score."""

    @abstractmethod
    async def find_unique(
        self,
        business_id: str,
        include_related: bool = True,
    ) -> Optional[BusinessProfile]:
        """Return one business, or None when it does not exist."""

    @abstractmethod
    async def update(self, business_id: str, patch: Dict[str, Any]) -> BusinessProfile:
        """Apply `patch` and return the updated business."""


def _parse_gallery(raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    return list(raw) if isinstance(raw, list) else []


def record_to_profile(record: Mapping[str, Any]) -> BusinessProfile:
    """Convert a businesses row (optionally with related columns) to a snapshot."""
    data = dict(record)
    return BusinessProfile(
        id=data["id"],
        name=data.get("name"),
        slug=data.get("slug"),
        suburb=data.get("suburb"),
        category=data.get("category"),
        bio=data.get("bio"),
        phone=data.get("phone"),
        email=data.get("email"),
        website=data.get("website"),
        address=data.get("address"),
        latitude=data.get("latitude"),
        longitude=data.get("longitude"),
        abn=data.get("abn"),
        abnStatus=data.get("abnStatus") or "NOT_PROVIDED",
        approvalStatus=data.get("approvalStatus") or "PENDING",
        showBusinessHours=bool(data.get("showBusinessHours")),
        qualityScore=data.get("qualityScore") or 0,
        gallery=_parse_gallery(data.get("gallery")),
        contentItems=[ContentItem(images=images) for images in data.get("content_images") or []],
        recentInquiries=data.get("recent_inquiries") or 0,
        recentLeads=data.get("recent_leads") or 0,
        createdAt=data.get("createdAt"),
        updatedAt=data.get("updatedAt"),
    )


class PostgresBusinessRepository(BusinessRepository):
    """BusinessRepository over the asyncpg pool from core.database."""

    def __init__(self, engagement_window_days: int = 90) -> None:
        self.engagement_window_days = engagement_window_days

    def _engagement_since(self) -> datetime:
        # Stored timestamps are naive UTC
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        return now - timedelta(days=self.engagement_window_days)

    async def find_many(
        self,
        business_filter: BusinessFilter,
        include_related: bool = False,
        limit: Optional[int] = None,
    ) -> List[BusinessProfile]:
        sql, params = build_find_many_query(
            business_filter,
            include_related,
            self._engagement_since(),
            limit,
        )
        rows = await execute_query(sql, *params)
        logger.debug(f"find_many returned {len(rows)} businesses")
        return [record_to_profile(row) for row in rows]

    async def find_unique(
        self,
        business_id: str,
        include_related: bool = True,
    ) -> Optional[BusinessProfile]:
        sql, params = build_find_unique_query(business_id, include_related, self._engagement_since())
        row = await execute_query_one(sql, *params)
        return record_to_profile(row) if row else None

    async def update(self, business_id: str, patch: Dict[str, Any]) -> BusinessProfile:
        # timestamp columns are naive UTC
        patch = {
            column: value.astimezone(timezone.utc).replace(tzinfo=None)
            if isinstance(value, datetime) and value.tzinfo is not None
            else value
            for column, value in patch.items()
        }
        sql, params = build_update_query(business_id, patch)
        await execute_command(sql, *params)

        updated = await self.find_unique(business_id, include_related=False)
        if updated is None:
            raise LookupError(f"Business {business_id} disappeared during update")
        return updated
