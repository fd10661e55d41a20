"""
Quality score model for business profiles.

Scores a BusinessProfile snapshot on a 100-point baseline: every failed
completeness, verification, content or engagement check subtracts its
expected increase, and the result is clamped to [0, 100]. The same checks
produce the ranked improvement actions shown to admins, so the score is
always explained by the actions (potential increase <= 100 - score).

Rules, in evaluation order:

| Check                         | Type     | Increase | Priority |
|-------------------------------|----------|----------|----------|
| name absent                   | critical | 10       | 95       |
| bio absent / shorter than 50  | high/med | 15 / 7   | 85       |
| phone absent                  | high     | 10       | 90       |
| email absent                  | high     | 10       | 88       |
| website absent                | medium   | 10       | 75       |
| address absent                | medium   | 5        | 70       |
| ABN not VERIFIED              | low      | 15       | 60       |
| latitude or longitude missing | low      | 5        | 50       |
| no gallery or content images  | medium   | 5        | 65       |
| business hours hidden         | low      | 3        | 45       |
| no inquiries/leads in window  | low      | 2        | 40       |

A profile failing every check lands on the floor of 10.

The module is pure: no I/O, deterministic for a given snapshot.
"""

import json
import math
from typing import List, Optional

from suburbmates.models.enums import (
    AbnStatus,
    ActionCategory,
    ActionType,
    Effort,
    FactorStatus,
)
from suburbmates.models.schemas import (
    BusinessProfile,
    ImprovementAction,
    ScoreFactor,
    ScoreResult,
)


# =============================================================================
# Constants
# =============================================================================

BASELINE_SCORE: int = 100
MIN_BIO_LENGTH: int = 50


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves going up (towards +infinity).

    The admin console computes the same figures client side, so rounding
    must agree with JavaScript's Math.round rather than Python's
    round-half-to-even.
    """
    return int(math.floor(value + 0.5))


def clamp(value: int, lower: int = 0, upper: int = 100) -> int:
    return max(lower, min(upper, value))


def is_present(value: Optional[str]) -> bool:
    """A text field counts as present when it is set and not blank."""
    return value is not None and value.strip() != ""


def has_images(profile: BusinessProfile) -> bool:
    """
    True when the gallery or any content item carries at least one image.

    Content `images` is JSON text; anything that does not decode to a
    non-empty list counts as no images.
    """
    if profile.gallery:
        return True

    for item in profile.contentItems:
        try:
            images = json.loads(item.images or "[]")
        except (TypeError, ValueError):
            continue
        if isinstance(images, list) and len(images) > 0:
            return True

    return False


class _Scorecard:
    """Collects actions, missing fields and breakdown factors for one profile."""

    def __init__(self) -> None:
        self.actions: List[ImprovementAction] = []
        self.missing_fields: List[str] = []
        self.breakdown: List[ScoreFactor] = []
        self.penalty: int = 0

    def passed(self, factor: str, category: ActionCategory, max_points: int) -> None:
        self.breakdown.append(
            ScoreFactor(
                factor=factor,
                category=category,
                status=FactorStatus.COMPLETE,
                points=max_points,
                maxPoints=max_points,
            )
        )

    def failed(
        self,
        factor: str,
        max_points: int,
        action: ImprovementAction,
        missing_field: Optional[str] = None,
        partial: bool = False,
    ) -> None:
        if missing_field:
            self.missing_fields.append(missing_field)
        self.actions.append(action)
        self.penalty += action.expectedScoreIncrease
        self.breakdown.append(
            ScoreFactor(
                factor=factor,
                category=action.category,
                status=FactorStatus.PARTIAL if partial else FactorStatus.MISSING,
                points=max_points - action.expectedScoreIncrease,
                maxPoints=max_points,
                recommendation=action.action,
            )
        )


def _action(
    action_type: ActionType,
    category: ActionCategory,
    text: str,
    increase: int,
    effort: Effort,
    priority: int,
) -> ImprovementAction:
    return ImprovementAction(
        type=action_type,
        category=category,
        action=text,
        expectedScoreIncrease=increase,
        effort=effort,
        priority=priority,
    )


# =============================================================================
# Score model
# =============================================================================


def score_business(profile: BusinessProfile) -> ScoreResult:
    """
    Score a business profile and derive its improvement actions.

    Args:
        profile: Snapshot of the business with related-record counts.

    Returns:
        ScoreResult with the clamped score, actions sorted by priority
        (descending, ties in evaluation order), the missing-field labels,
        the potential increase and the per-rule breakdown.
    """
    card = _Scorecard()
    completeness = ActionCategory.COMPLETENESS

    if is_present(profile.name):
        card.passed("Business Name", completeness, 10)
    else:
        card.failed(
            "Business Name", 10,
            _action(ActionType.CRITICAL, completeness, "Add business name",
                    10, Effort.QUICK, 95),
            missing_field="Business Name",
        )

    if not is_present(profile.bio):
        card.failed(
            "Business Description", 15,
            _action(ActionType.HIGH, completeness, "Add business description",
                    15, Effort.MODERATE, 85),
            missing_field="Business Description",
        )
    elif len(profile.bio.strip()) < MIN_BIO_LENGTH:
        card.failed(
            "Business Description", 15,
            _action(ActionType.MEDIUM, completeness,
                    f"Expand business description to at least {MIN_BIO_LENGTH} characters",
                    7, Effort.MODERATE, 85),
            partial=True,
        )
    else:
        card.passed("Business Description", completeness, 15)

    contact_checks = [
        (profile.phone, "Phone Number", ActionType.HIGH, "Add phone number", 10, 90),
        (profile.email, "Email Address", ActionType.HIGH, "Add email address", 10, 88),
        (profile.website, "Website URL", ActionType.MEDIUM, "Add website URL", 10, 75),
        (profile.address, "Physical Address", ActionType.MEDIUM, "Add business address", 5, 70),
    ]
    for value, label, action_type, text, increase, priority in contact_checks:
        if is_present(value):
            card.passed(label, completeness, increase)
        else:
            card.failed(
                label, increase,
                _action(action_type, completeness, text, increase, Effort.QUICK, priority),
                missing_field=label,
            )

    verification = ActionCategory.VERIFICATION

    if profile.abnStatus == AbnStatus.VERIFIED:
        card.passed("ABN Verification", verification, 15)
    else:
        has_abn = is_present(profile.abn)
        card.failed(
            "ABN Verification", 15,
            _action(ActionType.LOW, verification,
                    "Complete ABN verification" if has_abn else "Add and verify ABN",
                    15, Effort.SIGNIFICANT, 60),
            partial=has_abn,
        )

    if profile.latitude is not None and profile.longitude is not None:
        card.passed("Location Coordinates", verification, 5)
    else:
        card.failed(
            "Location Coordinates", 5,
            _action(ActionType.LOW, verification, "Verify location coordinates",
                    5, Effort.MODERATE, 50),
        )

    content = ActionCategory.CONTENT

    if has_images(profile):
        card.passed("Business Photos", content, 5)
    else:
        card.failed(
            "Business Photos", 5,
            _action(ActionType.MEDIUM, content, "Add business photos",
                    5, Effort.MODERATE, 65),
        )

    if profile.showBusinessHours:
        card.passed("Business Hours", content, 3)
    else:
        card.failed(
            "Business Hours", 3,
            _action(ActionType.LOW, content, "Enable business hours display",
                    3, Effort.QUICK, 45),
        )

    if profile.engagement_count > 0:
        card.passed("Recent Engagement", ActionCategory.ENGAGEMENT, 2)
    else:
        card.failed(
            "Recent Engagement", 2,
            _action(ActionType.LOW, ActionCategory.ENGAGEMENT,
                    "Increase profile visibility to encourage inquiries",
                    2, Effort.SIGNIFICANT, 40),
        )

    quality_score = clamp(BASELINE_SCORE - card.penalty)

    # sorted() is stable, so equal priorities keep evaluation order
    actions = sorted(card.actions, key=lambda a: a.priority, reverse=True)

    return ScoreResult(
        qualityScore=quality_score,
        actions=actions,
        missingFields=card.missing_fields,
        potentialScoreIncrease=potential_increase(actions, quality_score),
        breakdown=card.breakdown,
    )


def potential_increase(actions: List[ImprovementAction], current_score: int) -> int:
    """Sum of action increases, never claiming more than 100 - current_score."""
    total = sum(action.expectedScoreIncrease for action in actions)
    return max(0, min(total, BASELINE_SCORE - current_score))
