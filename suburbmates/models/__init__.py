"""
Package initialization for the service's models.

Re-exports the enums and pydantic schemas so callers can write:

    from suburbmates.models import BusinessProfile, JobStatus
"""

from suburbmates.models.enums import (
    AbnStatus,
    ActionCategory,
    ActionType,
    ApprovalStatus,
    AuditEvent,
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
from suburbmates.models.schemas import (
    AuditEntry,
    BatchCriteria,
    BatchJob,
    BatchJobProgress,
    BatchJobResults,
    BatchJobStatusView,
    BatchJobSummary,
    BatchOptions,
    BatchRequest,
    BatchResultCounts,
    BatchResultSummary,
    BulkCancelRequest,
    BulkCancelResult,
    BusinessFilter,
    BusinessProfile,
    BusinessSummary,
    CacheInfo,
    CategoryBreakdown,
    CategoryScore,
    CompetitorComparison,
    ContentItem,
    CurrentUser,
    DetailedQualityAnalysis,
    FactorAnalysis,
    FactorGroups,
    FailedRescore,
    ImprovementAction,
    ImprovementPlan,
    ImprovementRecommendation,
    IssueFrequency,
    LowQualityBusiness,
    LowQualityPage,
    LowQualityQuery,
    LowQualityStats,
    Pagination,
    PeerRanking,
    QualityDistribution,
    QualityOverview,
    QualityStats,
    ScoreCalculation,
    ScoreFactor,
    ScoreResult,
    SuburbBreakdown,
    SuburbScore,
    SuccessfulRescore,
    TrendingData,
)

__all__ = [
    # Enums
    'AbnStatus',
    'ActionCategory',
    'ActionType',
    'ApprovalStatus',
    'AuditEvent',
    'CancelOutcome',
    'Effort',
    'EngagementLevel',
    'FactorStatus',
    'JobStatus',
    'LowQualitySortField',
    'QualityLevel',
    'RecommendationPriority',
    'ScoreTier',
    'SortOrder',
    'StatsSource',
    # Business snapshot
    'BusinessFilter',
    'BusinessProfile',
    'ContentItem',
    'CurrentUser',
    'AuditEntry',
    # Scoring
    'ImprovementAction',
    'ScoreFactor',
    'ScoreResult',
    'ScoreCalculation',
    # Low-quality listing
    'CategoryScore',
    'IssueFrequency',
    'LowQualityBusiness',
    'LowQualityPage',
    'LowQualityQuery',
    'LowQualityStats',
    'Pagination',
    'SuburbScore',
    # Directory stats
    'CacheInfo',
    'CategoryBreakdown',
    'ImprovementRecommendation',
    'QualityDistribution',
    'QualityOverview',
    'QualityStats',
    'SuburbBreakdown',
    'TrendingData',
    # Batch rescoring
    'BatchCriteria',
    'BatchJob',
    'BatchJobProgress',
    'BatchJobResults',
    'BatchJobStatusView',
    'BatchJobSummary',
    'BatchOptions',
    'BatchRequest',
    'BatchResultCounts',
    'BatchResultSummary',
    'BulkCancelRequest',
    'BulkCancelResult',
    'FailedRescore',
    'SuccessfulRescore',
    # Single business analysis
    'BusinessSummary',
    'CompetitorComparison',
    'DetailedQualityAnalysis',
    'FactorAnalysis',
    'FactorGroups',
    'ImprovementPlan',
    'PeerRanking',
]
