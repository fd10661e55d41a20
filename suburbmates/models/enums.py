"""
Enumeration definitions for the quality scoring service.

All enums inherit from both `str` and `Enum` so pydantic serializes them as
their plain string values in API responses and they compare equal to the
raw strings stored in the database.
"""

from enum import Enum


class AbnStatus(str, Enum):
    """Verification state of a business's Australian Business Number."""
    NOT_PROVIDED = "NOT_PROVIDED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"


class ApprovalStatus(str, Enum):
    """Moderation state of a business listing. Only APPROVED listings are public."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class JobStatus(str, Enum):
    """
    Batch rescoring job lifecycle.

    pending -> processing -> {completed, failed, cancelled}; pending may also
    go straight to cancelled. Terminal states never change.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class ActionType(str, Enum):
    """Urgency tier of an improvement action."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionCategory(str, Enum):
    COMPLETENESS = "completeness"
    VERIFICATION = "verification"
    CONTENT = "content"
    ENGAGEMENT = "engagement"


class Effort(str, Enum):
    QUICK = "quick"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class FactorStatus(str, Enum):
    """Outcome of a single scoring rule in the calculation breakdown."""
    COMPLETE = "complete"
    PARTIAL = "partial"
    MISSING = "missing"


class QualityLevel(str, Enum):
    """Display band of a low-quality business (score < 30, < 50, else)."""
    CRITICAL = "critical"
    LOW = "low"
    MEDIUM = "medium"


class ScoreTier(str, Enum):
    """Overall band of a score in the single-business analysis: >= 80, >= 50, else."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EngagementLevel(str, Enum):
    """Inquiries plus leads in the engagement window: 0 / 1-4 / 5-9 / 10+."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LowQualitySortField(str, Enum):
    SCORE = "score"
    PRIORITY = "priority"
    LAST_UPDATED = "lastUpdated"
    POTENTIAL = "potential"
    NAME = "name"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class RecommendationPriority(str, Enum):
    """Severity tier of a directory-wide recommendation, most severe first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StatsSource(str, Enum):
    CACHE = "cache"
    DATABASE = "database"


class CancelOutcome(str, Enum):
    """Per-job result of a bulk cancel request."""
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"
    ALREADY_FINISHED = "already_finished"


class AuditEvent(str, Enum):
    """Event names written to the admin audit log."""
    BATCH_START = "ADMIN_QUALITY_SCORING_BATCH_START"
    BATCH_COMPLETE = "ADMIN_QUALITY_SCORING_BATCH_COMPLETE"
    BATCH_CANCEL = "ADMIN_QUALITY_SCORING_BATCH_CANCEL"
    BATCH_ERROR = "ADMIN_QUALITY_SCORING_BATCH_ERROR"
    STATS_ACCESS = "ADMIN_QUALITY_SCORING_STATS_ACCESS"
    STATS_ERROR = "ADMIN_QUALITY_SCORING_STATS_ERROR"
    LOW_QUALITY_ACCESS = "ADMIN_QUALITY_SCORING_LOW_QUALITY_ACCESS"
    LOW_QUALITY_ERROR = "ADMIN_QUALITY_SCORING_LOW_QUALITY_ERROR"
    CALCULATE = "ADMIN_QUALITY_SCORING_CALCULATE"
    CALCULATE_ERROR = "ADMIN_QUALITY_SCORING_CALCULATE_ERROR"
    DETAIL_ACCESS = "ADMIN_QUALITY_SCORING_DETAIL_ACCESS"
    DETAIL_ERROR = "ADMIN_QUALITY_SCORING_DETAIL_ERROR"
