"""
Pydantic models for the quality scoring service.

Field names follow the camelCase JSON contract consumed by the admin
console, so models are serialized as-is without alias generators.

Sections:
- Business snapshot: the read-only view the scorer works on
- Scoring: ImprovementAction, ScoreFactor, ScoreResult
- Low-quality listing: LowQualityBusiness, LowQualityStats, page envelope
- Directory stats: QualityStats and its parts
- Batch rescoring: criteria/options, BatchJob and its status views
- Single business: ScoreCalculation and DetailedQualityAnalysis
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from suburbmates.models.enums import (
    AbnStatus,
    ActionCategory,
    ActionType,
    ApprovalStatus,
    CancelOutcome,
    Effort,
    EngagementLevel,
    FactorStatus,
    JobStatus,
    LowQualitySortField,
    QualityLevel,
    RecommendationPriority,
    ScoreTier,
    SortOrder,
    StatsSource,
)


# =============================================================================
# Business snapshot
# =============================================================================


class ContentItem(BaseModel):
    """A public content post. `images` holds a JSON-encoded array of URLs."""

    images: Optional[str] = None


class BusinessProfile(BaseModel):
    """
    Read-only snapshot of a business and its related records at analysis time.

    Engagement counters are the number of inquiries and leads created in the
    trailing engagement window (90 days by default), already counted by the
    repository.
    """

    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    suburb: Optional[str] = None
    category: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    abn: Optional[str] = None
    abnStatus: AbnStatus = AbnStatus.NOT_PROVIDED
    approvalStatus: ApprovalStatus = ApprovalStatus.PENDING
    showBusinessHours: bool = False
    gallery: List[Any] = Field(default_factory=list)
    contentItems: List[ContentItem] = Field(default_factory=list)
    recentInquiries: int = 0
    recentLeads: int = 0
    qualityScore: int = 0
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @property
    def engagement_count(self) -> int:
        return self.recentInquiries + self.recentLeads


class BusinessFilter(BaseModel):
    """Selection filter understood by BusinessRepository.find_many()."""

    businessIds: Optional[List[str]] = None
    minScore: Optional[int] = None
    maxScore: Optional[int] = None
    category: Optional[str] = None
    suburb: Optional[str] = None
    abnStatus: Optional[AbnStatus] = None
    approvalStatus: Optional[ApprovalStatus] = None


# =============================================================================
# Scoring
# =============================================================================


class ImprovementAction(BaseModel):
    type: ActionType
    category: ActionCategory
    action: str
    expectedScoreIncrease: int
    effort: Effort
    priority: int = Field(..., ge=1, le=100)


class ScoreFactor(BaseModel):
    """One scoring rule's contribution, used by the calculation breakdown."""

    factor: str
    category: ActionCategory
    status: FactorStatus
    points: int
    maxPoints: int
    recommendation: Optional[str] = None


class ScoreResult(BaseModel):
    qualityScore: int = Field(..., ge=0, le=100)
    actions: List[ImprovementAction]
    missingFields: List[str]
    potentialScoreIncrease: int
    breakdown: List[ScoreFactor]


# =============================================================================
# Low-quality listing
# =============================================================================


class LowQualityBusiness(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    suburb: Optional[str] = None
    category: str
    qualityScore: int
    computedScore: int
    qualityLevel: QualityLevel
    approvalStatus: ApprovalStatus
    abnStatus: AbnStatus
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    improvementActions: List[ImprovementAction]
    missingFields: List[str]
    potentialScoreIncrease: int
    improvementPriority: int
    lastUpdated: int
    engagementLevel: EngagementLevel


class LowQualityQuery(BaseModel):
    """Validated query parameters of the low-quality listing."""

    minScore: int = Field(default=0, ge=0, le=100)
    maxScore: int = Field(default=69, ge=0, le=100)
    suburb: Optional[str] = None
    category: Optional[str] = None
    abnStatus: Optional[AbnStatus] = None
    sortBy: LowQualitySortField = LowQualitySortField.PRIORITY
    sortOrder: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    includeStats: bool = False


class IssueFrequency(BaseModel):
    issue: str
    businessCount: int
    averageScoreIncrease: int


class SuburbScore(BaseModel):
    suburb: str
    count: int
    averageScore: int


class CategoryScore(BaseModel):
    category: str
    count: int
    averageScore: int


class LowQualityStats(BaseModel):
    totalCount: int
    criticalCount: int
    lowCount: int
    mediumCount: int
    averageScore: int
    mostCommonIssues: List[IssueFrequency]
    suburbBreakdown: List[SuburbScore]
    categoryBreakdown: List[CategoryScore]


class Pagination(BaseModel):
    page: int
    limit: int
    totalCount: int
    totalPages: int
    hasNext: bool
    hasPrevious: bool


class LowQualityPage(BaseModel):
    businesses: List[LowQualityBusiness]
    pagination: Pagination
    stats: Optional[LowQualityStats] = None


# =============================================================================
# Directory stats
# =============================================================================


class QualityOverview(BaseModel):
    totalBusinesses: int
    averageQualityScore: int
    highQualityCount: int
    mediumQualityCount: int
    lowQualityCount: int
    lastUpdated: datetime


class QualityDistribution(BaseModel):
    range: str
    count: int
    percentage: int


class TrendingData(BaseModel):
    period: str
    averageScore: int
    businessCount: int
    improvementRate: int


class CategoryBreakdown(BaseModel):
    category: str
    averageScore: int
    businessCount: int
    highQuality: int
    mediumQuality: int
    lowQuality: int


class SuburbBreakdown(BaseModel):
    suburb: str
    averageScore: int
    businessCount: int
    topCategory: str


class ImprovementRecommendation(BaseModel):
    type: RecommendationPriority
    title: str
    description: str
    businessCount: int
    averageScoreIncrease: int


class CacheInfo(BaseModel):
    generated: datetime
    ttl: int = Field(..., description="Cache lifetime in milliseconds")
    source: StatsSource = StatsSource.DATABASE


class QualityStats(BaseModel):
    overview: QualityOverview
    distribution: List[QualityDistribution]
    trending: List[TrendingData]
    categoryBreakdown: List[CategoryBreakdown]
    suburbBreakdown: List[SuburbBreakdown]
    improvementRecommendations: List[ImprovementRecommendation]
    cacheInfo: CacheInfo


# =============================================================================
# Batch rescoring
# =============================================================================


class BatchCriteria(BaseModel):
    """Selection criteria of a batch. `limit` caps the resolved target set."""

    model_config = ConfigDict(extra='forbid')

    businessIds: Optional[List[str]] = None
    minScore: Optional[int] = Field(default=None, ge=0, le=100)
    maxScore: Optional[int] = Field(default=None, ge=0, le=100)
    category: Optional[str] = None
    suburb: Optional[str] = None
    abnStatus: Optional[AbnStatus] = None
    approvalStatus: ApprovalStatus = ApprovalStatus.APPROVED
    limit: Optional[int] = Field(default=None, ge=1, le=5000)

    @model_validator(mode='after')
    def check_score_range(self) -> 'BatchCriteria':
        if (
            self.minScore is not None
            and self.maxScore is not None
            and self.minScore > self.maxScore
        ):
            raise ValueError("minScore must be less than or equal to maxScore")
        return self

    def to_filter(self) -> BusinessFilter:
        return BusinessFilter(
            businessIds=self.businessIds,
            minScore=self.minScore,
            maxScore=self.maxScore,
            category=self.category,
            suburb=self.suburb,
            abnStatus=self.abnStatus,
            approvalStatus=self.approvalStatus,
        )


class BatchOptions(BaseModel):
    """Execution options. `async` is a Python keyword, hence the alias."""

    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    async_: bool = Field(default=True, alias='async')
    webhookUrl: Optional[str] = None
    rollbackOnError: bool = False
    dryRun: bool = False

    @field_validator('webhookUrl')
    @classmethod
    def check_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise ValueError(f"webhookUrl is not a valid URL: {e}") from e
        if url.scheme not in ('http', 'https') or not url.host:
            raise ValueError("webhookUrl must be an http(s) URL")
        return value


class BatchRequest(BaseModel):
    criteria: BatchCriteria = Field(default_factory=BatchCriteria)
    options: BatchOptions = Field(default_factory=BatchOptions)


class BulkCancelRequest(BaseModel):
    jobIds: List[str] = Field(..., min_length=1, max_length=10)


class BatchJobProgress(BaseModel):
    total: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    percentage: int = 0


class SuccessfulRescore(BaseModel):
    businessId: str
    businessName: Optional[str] = None
    previousScore: int
    newScore: int
    scoreChange: int


class FailedRescore(BaseModel):
    businessId: str
    businessName: Optional[str] = None
    error: str


class BatchJobResults(BaseModel):
    successful: List[SuccessfulRescore] = Field(default_factory=list)
    failed: List[FailedRescore] = Field(default_factory=list)


class BatchResultCounts(BaseModel):
    successful: int
    failed: int


class BatchJob(BaseModel):
    """A tracked batch rescoring job. Mutated only by BatchJobManager."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: JobStatus = JobStatus.PENDING
    progress: BatchJobProgress
    criteria: BatchCriteria
    options: BatchOptions
    results: BatchJobResults = Field(default_factory=BatchJobResults)
    targetIds: List[str] = Field(default_factory=list, exclude=True)
    targetNames: Dict[str, Optional[str]] = Field(default_factory=dict, exclude=True)
    startedAt: datetime
    completedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    error: Optional[str] = None
    createdBy: str
    estimatedDuration: int


class BatchJobSummary(BaseModel):
    """Listing view of a job: results collapsed to counts."""

    id: str
    status: JobStatus
    progress: BatchJobProgress
    criteria: BatchCriteria
    options: BatchOptions
    results: BatchResultCounts
    startedAt: datetime
    completedAt: Optional[datetime] = None
    createdBy: str
    estimatedDuration: int


class BatchResultSummary(BaseModel):
    totalProcessed: int
    successfulCount: int
    failedCount: int
    averageScoreChange: int


class BatchJobStatusView(BaseModel):
    """Status view of a single job, with optional full results and ETA."""

    id: str
    status: JobStatus
    progress: BatchJobProgress
    criteria: BatchCriteria
    options: BatchOptions
    startedAt: datetime
    completedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None
    error: Optional[str] = None
    createdBy: str
    estimatedDuration: int
    results: Optional[BatchJobResults] = None
    resultCounts: BatchResultCounts
    summary: Optional[BatchResultSummary] = None
    estimatedTimeRemaining: Optional[int] = None
    estimatedCompletionTime: Optional[datetime] = None


class BulkCancelResult(BaseModel):
    jobId: str
    result: CancelOutcome
    status: Optional[JobStatus] = None


# =============================================================================
# Single business recalculation
# =============================================================================


class ScoreCalculation(BaseModel):
    businessId: str
    businessName: Optional[str] = None
    previousScore: int
    newScore: int
    scoreChange: int
    calculatedAt: datetime
    breakdown: List[ScoreFactor]
    missingFields: List[str]
    nextSteps: List[ImprovementAction]


# =============================================================================
# Single business analysis
# =============================================================================


class BusinessSummary(BaseModel):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    suburb: Optional[str] = None
    approvalStatus: ApprovalStatus
    abnStatus: AbnStatus
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class FactorAnalysis(BaseModel):
    """One scored (or informational) factor with its share of the maximum."""

    name: str
    currentScore: int
    maxScore: int
    percentage: int
    status: FactorStatus
    description: str
    recommendations: List[str] = Field(default_factory=list)


class FactorGroups(BaseModel):
    completeness: List[FactorAnalysis]
    verification: List[FactorAnalysis]
    recency: List[FactorAnalysis]
    contentRichness: List[FactorAnalysis]


class PeerRanking(BaseModel):
    inCategory: int
    totalInCategory: int
    inSuburb: int
    totalInSuburb: int


class CompetitorComparison(BaseModel):
    categoryAverage: int
    suburbAverage: int
    ranking: PeerRanking


class ImprovementPlan(BaseModel):
    quickWins: List[str] = Field(default_factory=list)
    mediumEffort: List[str] = Field(default_factory=list)
    longTerm: List[str] = Field(default_factory=list)
    estimatedScoreIncrease: int = 0


class DetailedQualityAnalysis(BaseModel):
    """Read-only breakdown of one business against its category and suburb peers."""

    business: BusinessSummary
    currentScore: int
    storedScore: int
    maxPossibleScore: int = 100
    level: ScoreTier
    factors: FactorGroups
    overallRecommendations: List[str] = Field(default_factory=list)
    competitorComparison: CompetitorComparison
    improvementPlan: ImprovementPlan


class CurrentUser(BaseModel):
    """Identity forwarded by the fronting web tier."""

    id: str
    role: str = "USER"

    @property
    def is_admin(self) -> bool:
        return self.role.upper() == "ADMIN"


class AuditEntry(BaseModel):
    eventType: str
    targetId: Optional[str] = None
    actorId: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    requestOrigin: str = "unknown"
    userAgent: str = "unknown"
