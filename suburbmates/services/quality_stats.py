"""
Directory-wide quality statistics and their cache.

generate_quality_stats() turns the approved businesses into the admin dashboard's
QualityStats: overview counts, a fixed 10-bucket score histogram, a
6-month trend, category and suburb breakdowns, and tier recommendations.

Key Features:
- Thresholds: high >= 80, medium 50-79, low < 50
- Histogram buckets listed from '90-100' down to '0-9'; each percentage is
  rounded on its own, so buckets need not sum to exactly 100
- Trend months with no businesses are left out of the series
- Suburb breakdown limited to the top 20 suburbs by business count

StatsCache keeps a single snapshot for a TTL (30 minutes by default). A
forced refresh always recomputes. Concurrent misses share one in-flight
computation.

Usage:
    cache = StatsCache(ttl_seconds=1800)
    stats, source = await cache.get(lambda: load_quality_stats(repository))
"""

import asyncio
import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import numpy as np

from suburbmates.models.enums import ApprovalStatus, RecommendationPriority, StatsSource
from suburbmates.models.schemas import (
    BusinessFilter,
    BusinessProfile,
    CacheInfo,
    CategoryBreakdown,
    ImprovementRecommendation,
    QualityDistribution,
    QualityOverview,
    QualityStats,
    SuburbBreakdown,
    TrendingData,
)
from suburbmates.services.improvement import UNCATEGORIZED, UNKNOWN_SUBURB, as_utc
from suburbmates.services.repository import BusinessRepository
from suburbmates.services.scoring import round_half_up


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

HIGH_QUALITY_THRESHOLD: int = 80
MEDIUM_QUALITY_THRESHOLD: int = 50

# Bin edges for np.histogram; the last bin [90, 101) holds 90-100
DISTRIBUTION_EDGES = [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 101]
DISTRIBUTION_LABELS = [
    "0-9", "10-19", "20-29", "30-39", "40-49",
    "50-59", "60-69", "70-79", "80-89", "90-100",
]

TREND_MONTHS: int = 6
TOP_SUBURBS: int = 20

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

DEFAULT_TTL_SECONDS: float = 30 * 60

# (priority, title, description, lower bound, upper bound, average increase)
RECOMMENDATION_TIERS = (
    (
        RecommendationPriority.CRITICAL,
        "Address Critical Quality Issues",
        "Businesses with scores below 30 need immediate attention for basic profile completion",
        0, 30, 40,
    ),
    (
        RecommendationPriority.HIGH,
        "Improve Low-Quality Profiles",
        "Focus on completing missing contact information and business descriptions",
        30, 50, 25,
    ),
    (
        RecommendationPriority.MEDIUM,
        "Enhance Medium-Quality Profiles",
        "Add images, verify ABN status, and encourage customer engagement",
        50, 80, 15,
    ),
    (
        RecommendationPriority.LOW,
        "Optimize High-Quality Profiles",
        "Focus on premium features and advanced customization options",
        80, 101, 5,
    ),
)


# =============================================================================
# Aggregation helpers
# =============================================================================


def _mean_score(scores: np.ndarray) -> int:
    return round_half_up(float(np.mean(scores))) if scores.size else 0


def _tier_counts(scores: np.ndarray) -> Tuple[int, int, int]:
    high = int(np.sum(scores >= HIGH_QUALITY_THRESHOLD))
    medium = int(np.sum((scores >= MEDIUM_QUALITY_THRESHOLD) & (scores < HIGH_QUALITY_THRESHOLD)))
    low = int(np.sum(scores < MEDIUM_QUALITY_THRESHOLD))
    return high, medium, low


def calculate_distribution(scores: np.ndarray) -> List[QualityDistribution]:
    counts, _ = np.histogram(np.clip(scores, 0, 100), bins=DISTRIBUTION_EDGES)
    total = int(scores.size)
    buckets = [
        QualityDistribution(
            range=label,
            count=int(count),
            percentage=round_half_up(int(count) / total * 100) if total else 0,
        )
        for label, count in zip(DISTRIBUTION_LABELS, counts)
    ]
    buckets.reverse()
    return buckets


def _month_start(year: int, month: int) -> datetime:
    while month <= 0:
        month += 12
        year -= 1
    while month > 12:
        month -= 12
        year += 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def calculate_trending(businesses: List[BusinessProfile], now: datetime) -> List[TrendingData]:
    """
    Trend over the last TREND_MONTHS calendar months, oldest first.

    Each month covers the businesses created before the month ends; the
    improvement rate is the share of them updated within the month after
    creation.
    """
    now = as_utc(now)
    periods: List[TrendingData] = []

    for offset in range(TREND_MONTHS - 1, -1, -1):
        period_start = _month_start(now.year, now.month - offset)
        period_end = _month_start(period_start.year, period_start.month + 1)

        existing = [
            b for b in businesses
            if b.createdAt is None or as_utc(b.createdAt) < period_end
        ]
        if not existing:
            continue

        updated_in_period = [
            b for b in existing
            if b.updatedAt is not None
            and period_start <= as_utc(b.updatedAt) < period_end
            and (b.createdAt is None or as_utc(b.updatedAt) > as_utc(b.createdAt))
        ]

        scores = np.array([b.qualityScore for b in existing], dtype=np.float64)
        periods.append(
            TrendingData(
                period=f"{MONTH_ABBREVIATIONS[period_start.month - 1]} {period_start.year}",
                averageScore=_mean_score(scores),
                businessCount=len(existing),
                improvementRate=round_half_up(len(updated_in_period) / len(existing) * 100),
            )
        )

    return periods


def _group(businesses: List[BusinessProfile], key) -> Dict[str, List[BusinessProfile]]:
    groups: Dict[str, List[BusinessProfile]] = defaultdict(list)
    for business in businesses:
        groups[key(business)].append(business)
    return groups


def calculate_category_breakdown(businesses: List[BusinessProfile]) -> List[CategoryBreakdown]:
    rows = []
    for category, members in _group(businesses, lambda b: b.category or UNCATEGORIZED).items():
        scores = np.array([b.qualityScore for b in members], dtype=np.float64)
        high, medium, low = _tier_counts(scores)
        rows.append(
            CategoryBreakdown(
                category=category,
                averageScore=_mean_score(scores),
                businessCount=len(members),
                highQuality=high,
                mediumQuality=medium,
                lowQuality=low,
            )
        )
    return sorted(rows, key=lambda row: row.businessCount, reverse=True)


def calculate_suburb_breakdown(businesses: List[BusinessProfile]) -> List[SuburbBreakdown]:
    rows = []
    for suburb, members in _group(businesses, lambda b: b.suburb or UNKNOWN_SUBURB).items():
        scores = np.array([b.qualityScore for b in members], dtype=np.float64)
        # most_common is stable: ties go to the first category encountered
        category_counts = Counter(b.category or UNCATEGORIZED for b in members)
        top = category_counts.most_common(1)
        rows.append(
            SuburbBreakdown(
                suburb=suburb,
                averageScore=_mean_score(scores),
                businessCount=len(members),
                topCategory=top[0][0] if top else UNKNOWN_SUBURB,
            )
        )
    rows.sort(key=lambda row: row.businessCount, reverse=True)
    return rows[:TOP_SUBURBS]


def generate_recommendations(scores: np.ndarray) -> List[ImprovementRecommendation]:
    """One recommendation per non-empty tier, most severe first."""
    recommendations = []
    for priority, title, description, lower, upper, increase in RECOMMENDATION_TIERS:
        count = int(np.sum((scores >= lower) & (scores < upper)))
        if count > 0:
            recommendations.append(
                ImprovementRecommendation(
                    type=priority,
                    title=title,
                    description=description,
                    businessCount=count,
                    averageScoreIncrease=increase,
                )
            )
    return recommendations


def generate_quality_stats(
    businesses: List[BusinessProfile],
    now: Optional[datetime] = None,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
) -> QualityStats:
    """
    Aggregate QualityStats from a list of approved businesses.

    Args:
        businesses: Approved business snapshots (related records not needed).
        now: Reference time for the trend window and timestamps.
        ttl_seconds: Cache lifetime reported in cacheInfo.ttl (milliseconds).

    Returns:
        QualityStats with cacheInfo.source = 'database'. An empty input yields
        zeroed counts and empty lists.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    cache_info = CacheInfo(generated=now, ttl=int(ttl_seconds * 1000), source=StatsSource.DATABASE)

    if not businesses:
        return QualityStats(
            overview=QualityOverview(
                totalBusinesses=0,
                averageQualityScore=0,
                highQualityCount=0,
                mediumQualityCount=0,
                lowQualityCount=0,
                lastUpdated=now,
            ),
            distribution=[],
            trending=[],
            categoryBreakdown=[],
            suburbBreakdown=[],
            improvementRecommendations=[],
            cacheInfo=cache_info,
        )

    scores = np.array([b.qualityScore for b in businesses], dtype=np.float64)
    high, medium, low = _tier_counts(scores)

    return QualityStats(
        overview=QualityOverview(
            totalBusinesses=len(businesses),
            averageQualityScore=_mean_score(scores),
            highQualityCount=high,
            mediumQualityCount=medium,
            lowQualityCount=low,
            lastUpdated=now,
        ),
        distribution=calculate_distribution(scores),
        trending=calculate_trending(businesses, now),
        categoryBreakdown=calculate_category_breakdown(businesses),
        suburbBreakdown=calculate_suburb_breakdown(businesses),
        improvementRecommendations=generate_recommendations(scores),
        cacheInfo=cache_info,
    )


async def load_quality_stats(
    repository: BusinessRepository,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
) -> QualityStats:
    """Fetch approved businesses and aggregate them."""
    businesses = await repository.find_many(
        BusinessFilter(approvalStatus=ApprovalStatus.APPROVED),
        include_related=False,
    )
    logger.info(f"Generating quality statistics for {len(businesses)} businesses")
    return generate_quality_stats(businesses, ttl_seconds=ttl_seconds)


# =============================================================================
# Cache
# =============================================================================


@dataclass
class _CacheEntry:
    data: QualityStats
    timestamp: float


def _with_source(stats: QualityStats, source: StatsSource) -> QualityStats:
    return stats.model_copy(
        update={"cacheInfo": stats.cacheInfo.model_copy(update={"source": source})}
    )


class StatsCache:
    """
    Single-slot TTL cache for QualityStats with single-flight refresh.

    Args:
        ttl_seconds: Lifetime of a snapshot.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[_CacheEntry] = None
        self._inflight: Optional[asyncio.Future] = None

    def is_valid(self) -> bool:
        return (
            self._entry is not None
            and self._clock() - self._entry.timestamp < self.ttl_seconds
        )

    def invalidate(self) -> None:
        self._entry = None

    async def _refresh(self, loader: Callable[[], Awaitable[QualityStats]]) -> QualityStats:
        try:
            data = await loader()
            self._entry = _CacheEntry(data=data, timestamp=self._clock())
            return data
        finally:
            self._inflight = None

    async def get(
        self,
        loader: Callable[[], Awaitable[QualityStats]],
        force_refresh: bool = False,
    ) -> Tuple[QualityStats, StatsSource]:
        """
        Return the cached snapshot or compute a new one.

        A refresh already in flight is joined rather than duplicated, for
        forced refreshes too, since its result is just as fresh.

        Returns:
            (stats, source) where source is 'cache' or 'database'; the same
            value is stamped into stats.cacheInfo.source.
        """
        if not force_refresh and self.is_valid():
            assert self._entry is not None
            return _with_source(self._entry.data, StatsSource.CACHE), StatsSource.CACHE

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh(loader))

        # shield keeps one caller's cancellation from aborting the shared refresh
        data = await asyncio.shield(self._inflight)
        return _with_source(data, StatsSource.DATABASE), StatsSource.DATABASE
