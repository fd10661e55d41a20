"""
Tests for low-quality analysis, sorting, pagination and listing stats.

Test Classes:
- TestLevels: quality, engagement and staleness bands
- TestImprovementPriority: the weighted priority formula
- TestAnalyzeBusiness: the per-business low-quality view
- TestSortingAndPagination: stable sorts and the page envelope
- TestListLowQuality: the repository-backed listing pipeline
"""

from datetime import timedelta

import pytest

from suburbmates.models.enums import (
    ApprovalStatus,
    EngagementLevel,
    LowQualitySortField,
    QualityLevel,
    SortOrder,
)
from suburbmates.models.schemas import LowQualityQuery
from suburbmates.services.improvement import (
    analyze_business,
    engagement_level,
    improvement_priority,
    list_low_quality,
    low_quality_stats,
    paginate,
    quality_level,
    sort_businesses,
    staleness_bonus,
)
from suburbmates.services.scoring import score_business
from suburbmates.tests.conftest import (
    REFERENCE_NOW,
    FakeBusinessRepository,
    bare_profile,
    complete_profile,
)


class TestLevels:
    """Band boundaries."""

    @pytest.mark.parametrize(
        "score, expected",
        [
            (0, QualityLevel.CRITICAL),
            (29, QualityLevel.CRITICAL),
            (30, QualityLevel.LOW),
            (49, QualityLevel.LOW),
            (50, QualityLevel.MEDIUM),
            (69, QualityLevel.MEDIUM),
        ],
    )
    def test_quality_level(self, score: int, expected: QualityLevel) -> None:
        assert quality_level(score) == expected

    @pytest.mark.parametrize(
        "count, expected",
        [
            (0, EngagementLevel.NONE),
            (1, EngagementLevel.LOW),
            (4, EngagementLevel.LOW),
            (5, EngagementLevel.MEDIUM),
            (9, EngagementLevel.MEDIUM),
            (10, EngagementLevel.HIGH),
        ],
    )
    def test_engagement_level(self, count: int, expected: EngagementLevel) -> None:
        assert engagement_level(count) == expected

    @pytest.mark.parametrize(
        "days, bonus",
        [(181, 20), (180, 10), (91, 10), (90, 5), (31, 5), (30, 0), (0, 0)],
    )
    def test_staleness_bonus(self, days: int, bonus: int) -> None:
        assert staleness_bonus(days) == bonus


class TestImprovementPriority:
    """0.4 * gap + 15 per critical + 10 per high + 0.3 * increases + staleness."""

    def test_single_high_action_fresh_record(self) -> None:
        actions = score_business(complete_profile(phone=None)).actions

        # 0.4 * 10 + 10 + 0.3 * 10
        assert improvement_priority(90, actions, 0) == 17

    def test_capped_at_100(self) -> None:
        actions = score_business(bare_profile()).actions

        assert improvement_priority(10, actions, None) == 100

    def test_missing_update_time_treated_as_stale(self) -> None:
        actions = score_business(complete_profile(phone=None)).actions

        assert improvement_priority(90, actions, None) == 37


class TestAnalyzeBusiness:
    """analyze_business() derives display fields from the stored score."""

    def test_stored_score_drives_level_and_priority(self) -> None:
        profile = complete_profile(
            phone=None,
            qualityScore=40,
            recentInquiries=1,
            recentLeads=0,
            updatedAt=REFERENCE_NOW - timedelta(days=100),
        )

        view = analyze_business(profile, now=REFERENCE_NOW)

        assert view.qualityScore == 40
        assert view.computedScore == 90
        assert view.qualityLevel == QualityLevel.LOW
        assert view.potentialScoreIncrease == 10
        # 0.4 * 60 + 10 + 3 + 10
        assert view.improvementPriority == 47
        assert view.lastUpdated == 100
        assert view.engagementLevel == EngagementLevel.LOW
        assert view.missingFields == ["Phone Number"]

    def test_defaults_for_missing_category_and_update_time(self) -> None:
        view = analyze_business(bare_profile(), now=REFERENCE_NOW)

        assert view.category == "Uncategorized"
        assert view.lastUpdated == 999
        assert view.engagementLevel == EngagementLevel.NONE
        assert view.qualityLevel == QualityLevel.CRITICAL

    def test_last_updated_is_capped(self) -> None:
        profile = bare_profile(updatedAt=REFERENCE_NOW - timedelta(days=5000))

        assert analyze_business(profile, now=REFERENCE_NOW).lastUpdated == 999

    def test_naive_timestamps_are_utc(self) -> None:
        naive = (REFERENCE_NOW - timedelta(days=3)).replace(tzinfo=None)
        view = analyze_business(bare_profile(updatedAt=naive), now=REFERENCE_NOW)

        assert view.lastUpdated == 3


class TestSortingAndPagination:
    """Stable sorting by every field and pagination arithmetic."""

    def _views(self):
        profiles = [
            bare_profile("a", name="banksia cafe", qualityScore=20),
            bare_profile("b", name="Acacia Florist", qualityScore=45),
            bare_profile("c", name="Cedar Joinery", qualityScore=20),
        ]
        return [analyze_business(p, now=REFERENCE_NOW) for p in profiles]

    def test_name_sort_ignores_case(self) -> None:
        ordered = sort_businesses(self._views(), LowQualitySortField.NAME, SortOrder.ASC)

        assert [b.id for b in ordered] == ["b", "a", "c"]

    def test_score_sort_keeps_ties_in_input_order(self) -> None:
        ascending = sort_businesses(self._views(), LowQualitySortField.SCORE, SortOrder.ASC)
        descending = sort_businesses(self._views(), LowQualitySortField.SCORE, SortOrder.DESC)

        assert [b.id for b in ascending] == ["a", "c", "b"]
        assert [b.id for b in descending] == ["b", "a", "c"]

    def test_pagination_envelope(self) -> None:
        middle = paginate(45, 2, 20)
        assert middle.totalPages == 3
        assert middle.hasNext is True
        assert middle.hasPrevious is True

        last = paginate(40, 2, 20)
        assert last.totalPages == 2
        assert last.hasNext is False

        empty = paginate(0, 1, 20)
        assert empty.totalPages == 0
        assert empty.hasNext is False
        assert empty.hasPrevious is False


class TestLowQualityStats:
    """Aggregates over the filtered set."""

    def test_counts_and_breakdowns(self) -> None:
        profiles = [
            bare_profile("a", suburb="Carlton", category="Cafe", qualityScore=20),
            bare_profile("b", suburb="Carlton", category="Cafe", qualityScore=40),
            complete_profile("c", suburb="Brunswick", phone=None, qualityScore=60),
        ]
        stats = low_quality_stats([analyze_business(p, now=REFERENCE_NOW) for p in profiles])

        assert stats.totalCount == 3
        assert stats.criticalCount == 1
        assert stats.lowCount == 1
        assert stats.mediumCount == 1
        assert stats.averageScore == 40
        assert stats.suburbBreakdown[0].suburb == "Carlton"
        assert stats.suburbBreakdown[0].count == 2
        assert stats.suburbBreakdown[0].averageScore == 30
        assert stats.categoryBreakdown[0].category == "Cafe"

        phone_issue = next(i for i in stats.mostCommonIssues if i.issue == "Add phone number")
        assert phone_issue.businessCount == 3
        assert phone_issue.averageScoreIncrease == 10
        assert len(stats.mostCommonIssues) <= 10

    def test_empty_set(self) -> None:
        stats = low_quality_stats([])

        assert stats.totalCount == 0
        assert stats.averageScore == 0
        assert stats.mostCommonIssues == []


class TestListLowQuality:
    """list_low_quality() over the in-memory repository."""

    pytestmark = pytest.mark.asyncio

    @pytest.fixture
    def populated(self) -> FakeBusinessRepository:
        return FakeBusinessRepository([
            bare_profile("low-1", name="Alpha", suburb="Carlton", qualityScore=10),
            bare_profile("low-2", name="Bravo", suburb="Fitzroy", qualityScore=35),
            complete_profile("mid-1", name="Charlie", phone=None, qualityScore=60),
            complete_profile("high-1", qualityScore=95),
            bare_profile("pending-1", qualityScore=5, approvalStatus=ApprovalStatus.PENDING),
        ])

    async def test_filters_to_approved_within_range(self, populated: FakeBusinessRepository) -> None:
        page = await list_low_quality(populated, LowQualityQuery(), now=REFERENCE_NOW)

        assert {b.id for b in page.businesses} == {"low-1", "low-2", "mid-1"}
        assert page.pagination.totalCount == 3
        assert page.stats is None

    async def test_suburb_filter_and_stats(self, populated: FakeBusinessRepository) -> None:
        query = LowQualityQuery(suburb="Carlton", includeStats=True)
        page = await list_low_quality(populated, query, now=REFERENCE_NOW)

        assert [b.id for b in page.businesses] == ["low-1"]
        assert page.stats is not None
        assert page.stats.totalCount == 1

    async def test_pages_after_sorting(self, populated: FakeBusinessRepository) -> None:
        query = LowQualityQuery(sortBy=LowQualitySortField.NAME, sortOrder=SortOrder.ASC, page=2, limit=2)
        page = await list_low_quality(populated, query, now=REFERENCE_NOW)

        assert [b.name for b in page.businesses] == ["Charlie"]
        assert page.pagination.hasPrevious is True
        assert page.pagination.hasNext is False

    async def test_page_past_end_is_empty(self, populated: FakeBusinessRepository) -> None:
        page = await list_low_quality(populated, LowQualityQuery(page=5), now=REFERENCE_NOW)

        assert page.businesses == []
        assert page.pagination.totalCount == 3
