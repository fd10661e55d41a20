"""
Improvement analysis for low-quality business profiles.

Wraps the score model with the display attributes the admin console's
low-quality view needs: quality level, improvement priority, engagement
level and staleness. Also implements that view's filter, sort, paginate and
aggregate-stats pipeline.

Level, priority and the potential-increase clamp are derived from the
stored `qualityScore`, the same value the listing filters on; the freshly
computed score is reported alongside as `computedScore`.

Improvement priority (0-100):
    0.4 * (100 - score)
    + 15 * critical actions + 10 * high actions
    + 0.3 * sum(expected increases)
    + staleness bonus (20 if > 180 days, 10 if > 90, 5 if > 30)
"""

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from suburbmates.models.enums import (
    ActionType,
    ApprovalStatus,
    EngagementLevel,
    LowQualitySortField,
    QualityLevel,
    SortOrder,
)
from suburbmates.models.schemas import (
    BusinessFilter,
    BusinessProfile,
    CategoryScore,
    ImprovementAction,
    IssueFrequency,
    LowQualityBusiness,
    LowQualityPage,
    LowQualityQuery,
    LowQualityStats,
    Pagination,
    ScoreResult,
    SuburbScore,
)
from suburbmates.services.repository import BusinessRepository
from suburbmates.services.scoring import (
    potential_increase,
    round_half_up,
    score_business,
)


logger = logging.getLogger(__name__)


UNCATEGORIZED: str = "Uncategorized"
UNKNOWN_SUBURB: str = "Unknown"

# Staleness assumed when a record has no updatedAt
MISSING_UPDATE_STALENESS_DAYS: int = 365
LAST_UPDATED_DISPLAY_CAP: int = 999

STALENESS_BONUSES = (
    (180, 20),
    (90, 10),
    (30, 5),
)

STATS_TOP_N: int = 10


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps from the database as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_since(value: Optional[datetime], now: datetime) -> Optional[int]:
    if value is None:
        return None
    elapsed = as_utc(now) - as_utc(value)
    return math.floor(elapsed.total_seconds() / 86400)


def quality_level(score: int) -> QualityLevel:
    if score < 30:
        return QualityLevel.CRITICAL
    if score < 50:
        return QualityLevel.LOW
    return QualityLevel.MEDIUM


def engagement_level(event_count: int) -> EngagementLevel:
    if event_count >= 10:
        return EngagementLevel.HIGH
    if event_count >= 5:
        return EngagementLevel.MEDIUM
    if event_count >= 1:
        return EngagementLevel.LOW
    return EngagementLevel.NONE


def staleness_bonus(days_since_update: int) -> int:
    for threshold, bonus in STALENESS_BONUSES:
        if days_since_update > threshold:
            return bonus
    return 0


def improvement_priority(
    score: int,
    actions: List[ImprovementAction],
    days_since_update: Optional[int],
) -> int:
    critical = sum(1 for a in actions if a.type == ActionType.CRITICAL)
    high = sum(1 for a in actions if a.type == ActionType.HIGH)
    total_increase = sum(a.expectedScoreIncrease for a in actions)

    if days_since_update is None:
        days_since_update = MISSING_UPDATE_STALENESS_DAYS

    raw = (
        (100 - score) * 0.4
        + critical * 15
        + high * 10
        + total_increase * 0.3
        + staleness_bonus(days_since_update)
    )
    return max(0, min(100, round_half_up(raw)))


def analyze_business(
    profile: BusinessProfile,
    now: Optional[datetime] = None,
    score_result: Optional[ScoreResult] = None,
) -> LowQualityBusiness:
    """
    Build the low-quality view of a single business.

    Args:
        profile: Business snapshot including engagement counts.
        now: Reference time for staleness; defaults to the current UTC time.
        score_result: Precomputed score, to avoid rescoring.

    Returns:
        LowQualityBusiness with actions sorted by priority descending.
    """
    now = now or datetime.now(timezone.utc)
    result = score_result or score_business(profile)
    stored_score = profile.qualityScore
    days = days_since(profile.updatedAt, now)

    return LowQualityBusiness(
        id=profile.id,
        name=profile.name,
        slug=profile.slug,
        suburb=profile.suburb,
        category=profile.category or UNCATEGORIZED,
        qualityScore=stored_score,
        computedScore=result.qualityScore,
        qualityLevel=quality_level(stored_score),
        approvalStatus=profile.approvalStatus,
        abnStatus=profile.abnStatus,
        createdAt=profile.createdAt,
        updatedAt=profile.updatedAt,
        improvementActions=result.actions,
        missingFields=result.missingFields,
        potentialScoreIncrease=potential_increase(result.actions, stored_score),
        improvementPriority=improvement_priority(stored_score, result.actions, days),
        lastUpdated=LAST_UPDATED_DISPLAY_CAP if days is None else min(days, LAST_UPDATED_DISPLAY_CAP),
        engagementLevel=engagement_level(profile.engagement_count),
    )


# =============================================================================
# Listing
# =============================================================================


def _sort_key(field: LowQualitySortField):
    if field == LowQualitySortField.SCORE:
        return lambda b: b.qualityScore
    if field == LowQualitySortField.LAST_UPDATED:
        return lambda b: b.lastUpdated
    if field == LowQualitySortField.POTENTIAL:
        return lambda b: b.potentialScoreIncrease
    if field == LowQualitySortField.NAME:
        return lambda b: (b.name or "").casefold()
    return lambda b: b.improvementPriority


def sort_businesses(
    businesses: List[LowQualityBusiness],
    sort_by: LowQualitySortField = LowQualitySortField.PRIORITY,
    sort_order: SortOrder = SortOrder.DESC,
) -> List[LowQualityBusiness]:
    """Stable sort; equal keys keep repository order in both directions."""
    return sorted(
        businesses,
        key=_sort_key(sort_by),
        reverse=sort_order == SortOrder.DESC,
    )


def paginate(total: int, page: int, limit: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        totalCount=total,
        totalPages=math.ceil(total / limit) if limit else 0,
        hasNext=page * limit < total,
        hasPrevious=page > 1,
    )


def _average(values: List[int]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def _grouped_scores(businesses: List[LowQualityBusiness], key) -> Dict[str, List[int]]:
    groups: Dict[str, List[int]] = defaultdict(list)
    for business in businesses:
        groups[key(business)].append(business.qualityScore)
    return groups


def low_quality_stats(businesses: List[LowQualityBusiness]) -> LowQualityStats:
    """Aggregate figures over the whole filtered set, before pagination."""
    levels = Counter(b.qualityLevel for b in businesses)

    issue_counts: Counter = Counter()
    issue_increases: Dict[str, int] = defaultdict(int)
    for business in businesses:
        for action in business.improvementActions:
            issue_counts[action.action] += 1
            issue_increases[action.action] += action.expectedScoreIncrease

    # Counter.most_common keeps first-seen order for equal counts
    most_common = [
        IssueFrequency(
            issue=issue,
            businessCount=count,
            averageScoreIncrease=round_half_up(issue_increases[issue] / count),
        )
        for issue, count in issue_counts.most_common(STATS_TOP_N)
    ]

    suburbs = _grouped_scores(businesses, lambda b: b.suburb or UNKNOWN_SUBURB)
    suburb_breakdown = sorted(
        (
            SuburbScore(suburb=name, count=len(scores), averageScore=_average(scores))
            for name, scores in suburbs.items()
        ),
        key=lambda s: s.count,
        reverse=True,
    )[:STATS_TOP_N]

    categories = _grouped_scores(businesses, lambda b: b.category)
    category_breakdown = sorted(
        (
            CategoryScore(category=name, count=len(scores), averageScore=_average(scores))
            for name, scores in categories.items()
        ),
        key=lambda c: c.count,
        reverse=True,
    )[:STATS_TOP_N]

    return LowQualityStats(
        totalCount=len(businesses),
        criticalCount=levels[QualityLevel.CRITICAL],
        lowCount=levels[QualityLevel.LOW],
        mediumCount=levels[QualityLevel.MEDIUM],
        averageScore=_average([b.qualityScore for b in businesses]),
        mostCommonIssues=most_common,
        suburbBreakdown=suburb_breakdown,
        categoryBreakdown=category_breakdown,
    )


async def list_low_quality(
    repository: BusinessRepository,
    query: LowQualityQuery,
    now: Optional[datetime] = None,
) -> LowQualityPage:
    """
    Fetch, analyze, sort and paginate approved businesses in a score range.

    Args:
        repository: Business data source.
        query: Validated filters, sorting and pagination.
        now: Reference time for staleness.

    Returns:
        LowQualityPage with the requested page, pagination block and,
        when `query.includeStats` is set, stats over the full filtered set.
    """
    now = now or datetime.now(timezone.utc)
    business_filter = BusinessFilter(
        minScore=query.minScore,
        maxScore=query.maxScore,
        suburb=query.suburb,
        category=query.category,
        abnStatus=query.abnStatus,
        approvalStatus=ApprovalStatus.APPROVED,
    )
    profiles = await repository.find_many(business_filter, include_related=True)
    analyzed = [analyze_business(profile, now) for profile in profiles]
    ordered = sort_businesses(analyzed, query.sortBy, query.sortOrder)

    offset = (query.page - 1) * query.limit
    page_items = ordered[offset:offset + query.limit]

    logger.info(
        f"Low-quality listing matched {len(ordered)} businesses "
        f"(page {query.page}, limit {query.limit})"
    )

    return LowQualityPage(
        businesses=page_items,
        pagination=paginate(len(ordered), query.page, query.limit),
        stats=low_quality_stats(ordered) if query.includeStats else None,
    )
