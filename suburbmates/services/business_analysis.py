"""
Detailed quality analysis for a single business.

Read-only companion to /calculate: scores the business afresh without
persisting, groups the per-rule breakdown into factor sections, adds a
profile freshness factor, and compares the business with its approved
category and suburb peers.

Peer figures use the peers' stored `qualityScore`; the business itself is
ranked by its fresh score. Ranking positions are 1-based:
    position = (peers scoring strictly higher) + 1
    total    = peers + 1
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from suburbmates.models.enums import (
    ActionCategory,
    ApprovalStatus,
    Effort,
    FactorStatus,
    ScoreTier,
)
from suburbmates.models.schemas import (
    BusinessFilter,
    BusinessProfile,
    BusinessSummary,
    CompetitorComparison,
    DetailedQualityAnalysis,
    FactorAnalysis,
    FactorGroups,
    ImprovementPlan,
    PeerRanking,
    ScoreResult,
)
from suburbmates.services.improvement import days_since
from suburbmates.services.repository import BusinessRepository
from suburbmates.services.scoring import round_half_up, score_business


logger = logging.getLogger(__name__)


FACTOR_DESCRIPTIONS: Dict[str, str] = {
    "Business Name": "Primary business identifier for search and recognition",
    "Business Description": "Detailed description of services and expertise",
    "Phone Number": "Primary contact method for potential customers",
    "Email Address": "Professional contact for inquiries and lead management",
    "Website URL": "Online presence for credibility and detailed information",
    "Physical Address": "Location information for local search optimization",
    "ABN Verification": "Official business registration verification",
    "Location Coordinates": "Geographic location confirmation for local search",
    "Business Photos": "Visual content to showcase business and services",
    "Business Hours": "Operating hours visibility for customer convenience",
    "Recent Engagement": "Recent customer inquiries and lead activity",
}

FRESHNESS_MAX_POINTS: int = 10
FRESH_DAYS: int = 30
AGING_DAYS: int = 90

# Gap to the category average that earns a comparison remark
CATEGORY_GAP: int = 10

PLAN_SECTIONS = {
    Effort.QUICK: "quickWins",
    Effort.MODERATE: "mediumEffort",
    Effort.SIGNIFICANT: "longTerm",
}


def score_tier(score: int) -> ScoreTier:
    if score >= 80:
        return ScoreTier.HIGH
    if score >= 50:
        return ScoreTier.MEDIUM
    return ScoreTier.LOW


# =============================================================================
# Factors
# =============================================================================


def _factor_groups(result: ScoreResult, freshness: FactorAnalysis) -> FactorGroups:
    groups = FactorGroups(completeness=[], verification=[], recency=[freshness], contentRichness=[])
    for factor in result.breakdown:
        analysis = FactorAnalysis(
            name=factor.factor,
            currentScore=factor.points,
            maxScore=factor.maxPoints,
            percentage=round_half_up(factor.points / factor.maxPoints * 100),
            status=factor.status,
            description=FACTOR_DESCRIPTIONS.get(factor.factor, factor.factor),
            recommendations=[factor.recommendation] if factor.recommendation else [],
        )
        if factor.category == ActionCategory.COMPLETENESS:
            groups.completeness.append(analysis)
        elif factor.category == ActionCategory.VERIFICATION:
            groups.verification.append(analysis)
        else:
            groups.contentRichness.append(analysis)
    return groups


def freshness_factor(updated_at: Optional[datetime], now: datetime) -> FactorAnalysis:
    """
    Informational factor: how recently the profile was edited.

    Under 30 days is complete (10), under 90 partial (5), anything older or
    never updated is missing (0). It does not feed the quality score.
    """
    age = days_since(updated_at, now)
    if age is not None and age < FRESH_DAYS:
        points, status, recommendations = FRESHNESS_MAX_POINTS, FactorStatus.COMPLETE, []
    elif age is not None and age < AGING_DAYS:
        points, status = FRESHNESS_MAX_POINTS // 2, FactorStatus.PARTIAL
        recommendations = ["Consider updating profile information to maintain freshness"]
    else:
        points, status = 0, FactorStatus.MISSING
        recommendations = ["Update business profile to improve search ranking"]

    return FactorAnalysis(
        name="Profile Freshness",
        currentScore=points,
        maxScore=FRESHNESS_MAX_POINTS,
        percentage=round_half_up(points / FRESHNESS_MAX_POINTS * 100),
        status=status,
        description="How recently the business profile was updated",
        recommendations=recommendations,
    )


def improvement_plan(result: ScoreResult) -> ImprovementPlan:
    """Actions bucketed by effort, highest priority first within each bucket."""
    plan = ImprovementPlan(estimatedScoreIncrease=result.potentialScoreIncrease)
    for action in result.actions:
        section: List[str] = getattr(plan, PLAN_SECTIONS[action.effort])
        section.append(f"{action.action} (+{action.expectedScoreIncrease} points)")
    return plan


# =============================================================================
# Peers
# =============================================================================


def peer_average(peers: List[BusinessProfile]) -> int:
    if not peers:
        return 0
    return round_half_up(sum(p.qualityScore for p in peers) / len(peers))


def peer_position(peers: List[BusinessProfile], score: int) -> int:
    return sum(1 for p in peers if p.qualityScore > score) + 1


def compare_with_peers(
    score: int,
    category_peers: List[BusinessProfile],
    suburb_peers: List[BusinessProfile],
) -> CompetitorComparison:
    """Peers must already exclude the business being analyzed."""
    return CompetitorComparison(
        categoryAverage=peer_average(category_peers),
        suburbAverage=peer_average(suburb_peers),
        ranking=PeerRanking(
            inCategory=peer_position(category_peers, score),
            totalInCategory=len(category_peers) + 1,
            inSuburb=peer_position(suburb_peers, score),
            totalInSuburb=len(suburb_peers) + 1,
        ),
    )


def overall_recommendations(level: ScoreTier, score: int, comparison: CompetitorComparison) -> List[str]:
    if level == ScoreTier.LOW:
        recommendations = [
            "Priority: focus on completing basic business information",
            "Ensure all contact methods (phone, email) are provided",
        ]
    elif level == ScoreTier.MEDIUM:
        recommendations = [
            "Good foundation: focus on verification and content richness",
            "Consider ABN verification for maximum credibility",
        ]
    else:
        recommendations = [
            "Excellent quality score: the business profile is well optimized",
            "Consider premium features to maximize visibility",
        ]

    # An average of 0 means no category peers to compare with
    average = comparison.categoryAverage
    if average:
        if score > average + CATEGORY_GAP:
            recommendations.append(f"Above category average by {score - average} points")
        elif score < average - CATEGORY_GAP:
            recommendations.append("Below category average: focus on improvements to compete effectively")

    return recommendations


# =============================================================================
# Entry point
# =============================================================================


async def analyze_business_detail(
    repository: BusinessRepository,
    business_id: str,
    now: Optional[datetime] = None,
) -> Optional[DetailedQualityAnalysis]:
    """
    Build the detailed analysis for one business. Nothing is written.

    Returns:
        DetailedQualityAnalysis, or None when the business does not exist.
    """
    profile = await repository.find_unique(business_id, include_related=True)
    if profile is None:
        return None

    now = now or datetime.now(timezone.utc)
    result = score_business(profile)
    score = result.qualityScore

    # A missing category or suburb leaves that filter open, as in the listing
    category_peers = await repository.find_many(
        BusinessFilter(category=profile.category, approvalStatus=ApprovalStatus.APPROVED)
    )
    suburb_peers = await repository.find_many(
        BusinessFilter(suburb=profile.suburb, approvalStatus=ApprovalStatus.APPROVED)
    )
    comparison = compare_with_peers(
        score,
        [p for p in category_peers if p.id != business_id],
        [p for p in suburb_peers if p.id != business_id],
    )

    level = score_tier(score)
    logger.debug(
        f"Detailed analysis for {business_id}: score {score} ({level.value}), "
        f"category average {comparison.categoryAverage}"
    )

    return DetailedQualityAnalysis(
        business=BusinessSummary(
            id=profile.id,
            name=profile.name,
            slug=profile.slug,
            category=profile.category,
            suburb=profile.suburb,
            approvalStatus=profile.approvalStatus,
            abnStatus=profile.abnStatus,
            createdAt=profile.createdAt,
            updatedAt=profile.updatedAt,
        ),
        currentScore=score,
        storedScore=profile.qualityScore,
        level=level,
        factors=_factor_groups(result, freshness_factor(profile.updatedAt, now)),
        overallRecommendations=overall_recommendations(level, score, comparison),
        competitorComparison=comparison,
        improvementPlan=improvement_plan(result),
    )
