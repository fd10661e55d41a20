"""
Services for the quality scoring engine.

Services:
- scoring: pure score model (0-100 score, ranked improvement actions)
- improvement: low-quality analysis, listing and aggregate stats
- business_analysis: read-only detailed analysis of one business
- quality_stats: directory-wide statistics and their TTL cache
- repository: BusinessRepository interface and PostgreSQL adapter
- audit: admin audit log sink
- webhooks: best-effort webhook delivery

Scoring and aggregation are pure functions; I/O sits behind the repository,
audit and webhook seams so tests can substitute them.
"""

from suburbmates.services.business_analysis import analyze_business_detail
from suburbmates.services.improvement import (
    analyze_business,
    list_low_quality,
    low_quality_stats,
)
from suburbmates.services.quality_stats import (
    StatsCache,
    generate_quality_stats,
    load_quality_stats,
)
from suburbmates.services.scoring import round_half_up, score_business

__all__ = [
    'score_business',
    'round_half_up',
    'analyze_business',
    'analyze_business_detail',
    'list_low_quality',
    'low_quality_stats',
    'StatsCache',
    'generate_quality_stats',
    'load_quality_stats',
]
