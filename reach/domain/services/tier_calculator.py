"""
Creator tier scoring.

Pure functions: followers are summed across every verified platform and the tier
is derived from the total plus an averaged engagement rate and quality score.
Tier 1 is the best bracket; ``None`` means the creator does not qualify.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

MIN_FOLLOWERS = 5_000

TIER_NAMES: dict[Optional[int], str] = {
    1: "Elite - Tier 1",
    2: "Premium - Tier 2",
    3: "Advanced - Tier 3",
    4: "Growing - Tier 4",
    None: "Disqualified",
}

COMMISSION_RATES: dict[Optional[int], Decimal] = {
    1: Decimal("3.0"),
    2: Decimal("2.5"),
    3: Decimal("2.0"),
    4: Decimal("1.5"),
    None: Decimal("0"),
}

_TIER_BENEFITS: dict[int, list[str]] = {
    1: [
        "Highest commission rate (3%)",
        "VIP support",
        "Featured promotions",
        "Exclusive partnerships",
        "Premium analytics dashboard",
    ],
    2: [
        "Enhanced commission rate (2.5%)",
        "Priority support",
        "Advanced analytics",
        "Featured listings",
        "Dedicated account manager",
    ],
    3: [
        "Standard commission rate (2%)",
        "Standard support",
        "Basic analytics",
        "Regular promotions",
    ],
    4: [
        "Basic commission rate (1.5%)",
        "Email support",
        "Entry-level analytics",
        "Promotional opportunities",
    ],
}


@dataclass(frozen=True)
class PlatformMetrics:
    """Snapshot of one platform. ``engagement`` is a percentage."""
    followers: int
    engagement: Optional[float] = None
    following: Optional[int] = None
    posts: Optional[int] = None


@dataclass(frozen=True)
class TierResult:
    tier: Optional[int]
    tier_name: str
    total_followers: int
    engagement_rate: float
    quality_score: float
    meets_requirements: bool
    reason: Optional[str] = None
    platforms: dict[str, int] = field(default_factory=dict)

    @property
    def commission_rate(self) -> Decimal:
        return commission_rate_for(self.tier)


def commission_rate_for(tier: Optional[int]) -> Decimal:
    return COMMISSION_RATES.get(tier, Decimal("0"))


def tier_name_for(tier: Optional[int]) -> str:
    return TIER_NAMES.get(tier, TIER_NAMES[None])


def tier_benefits(tier: Optional[int]) -> list[str]:
    if tier is None:
        return ["Does not meet minimum requirements for creator program"]
    return list(_TIER_BENEFITS[tier])


def _activity_estimate(count: Optional[int], followers: int) -> Optional[float]:
    """Rough engagement guess from posts (or tweets) per follower"""
    if not count or followers <= 0:
        return None
    estimated = min(count / followers * 50, 5.0)
    return estimated if estimated > 0.1 else None


def _twitter_engagement(m: PlatformMetrics) -> float:
    if m.engagement and m.engagement > 0:
        return m.engagement
    if m.followers >= 10_000_000:
        return 3.5
    if m.followers >= 1_000_000:
        return 3.0
    if m.followers >= 100_000:
        return 2.5
    return _activity_estimate(m.posts, m.followers) or 2.0


def _instagram_engagement(m: PlatformMetrics) -> float:
    if m.engagement and m.engagement > 0:
        return m.engagement
    # post/follower ratio is meaningless for very large accounts
    if m.followers >= 100_000_000:
        return 3.5
    if m.followers >= 10_000_000:
        return 3.0
    if m.followers >= 1_000_000:
        return 2.5
    if m.followers >= 100_000:
        return 2.0
    return _activity_estimate(m.posts, m.followers) or 2.0


def _tiktok_engagement(m: PlatformMetrics) -> float:
    if m.engagement and m.engagement > 0:
        return m.engagement
    return 3.5 if m.followers >= 1_000_000 else 2.5


_ENGAGEMENT_RULES = {
    "twitter": _twitter_engagement,
    "instagram": _instagram_engagement,
    "tiktok": _tiktok_engagement,
}


def average_engagement(metrics: dict[str, PlatformMetrics]) -> float:
    rates = [
        _ENGAGEMENT_RULES[platform](m)
        for platform, m in metrics.items()
        if platform in _ENGAGEMENT_RULES and m.followers > 0
    ]
    if not rates:
        return 3.0
    return max(sum(rates) / len(rates), 1.0)


def _follower_bracket_score(platform: str, followers: int) -> int:
    # brackets differ slightly per platform; 100K-1M instagram scores below 50K-100K
    if platform == "tiktok":
        brackets = [(10_000_000, 95), (1_000_000, 90), (50_000, 85), (10_000, 75), (5_000, 65)]
    elif platform == "instagram":
        brackets = [
            (100_000_000, 95), (10_000_000, 90), (1_000_000, 85), (100_000, 80),
            (50_000, 85), (10_000, 75), (5_000, 65),
        ]
    else:
        brackets = [
            (100_000_000, 95), (10_000_000, 90), (1_000_000, 85), (100_000, 90),
            (50_000, 85), (10_000, 75), (5_000, 65),
        ]
    for threshold, score in brackets:
        if followers >= threshold:
            return score
    return 55


def _platform_quality(platform: str, m: PlatformMetrics) -> int:
    score = _follower_bracket_score(platform, m.followers)
    if platform == "tiktok":
        return score

    if m.following and m.following > 0:
        ratio = m.followers / m.following
        if ratio > 2:
            score += 10
        elif ratio > 1:
            score += 5
    activity_threshold = 100 if platform == "twitter" else 50
    if m.posts and m.posts > activity_threshold:
        score += 5
    return min(score, 100)


def quality_score(metrics: dict[str, PlatformMetrics]) -> float:
    scores = [
        _platform_quality(platform, m)
        for platform, m in metrics.items()
        if platform in _ENGAGEMENT_RULES and m.followers > 0
    ]
    if not scores:
        return 70.0
    average = Decimal(str(max(50.0, sum(scores) / len(scores))))
    return float(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _result(tier, total, engagement, quality, platforms, reason=None) -> TierResult:
    return TierResult(
        tier=tier,
        tier_name=tier_name_for(tier),
        total_followers=total,
        engagement_rate=round(engagement, 2),
        quality_score=quality,
        meets_requirements=tier is not None,
        reason=reason,
        platforms=platforms,
    )


def calculate_tier(metrics: dict[str, PlatformMetrics]) -> TierResult:
    """Score the aggregate of all platforms in ``metrics``."""
    platforms = {p: m.followers for p, m in metrics.items()}
    total = sum(platforms.values())

    if total < MIN_FOLLOWERS:
        return _result(
            None, total, 0.0, 0.0, platforms,
            reason="Total followers below minimum requirement of 5,000",
        )

    engagement = average_engagement(metrics)
    quality = quality_score(metrics)

    if total >= 100_000_000:
        return _result(1, total, engagement, quality, platforms)

    if total >= 10_000_000 and (engagement >= 2 or quality >= 70):
        return _result(1, total, engagement, quality, platforms)

    if total >= 100_000:
        if engagement >= 3 and quality >= 85:
            return _result(1, total, engagement, quality, platforms)
        if total < 1_000_000 and (engagement >= 2.5 or quality >= 75):
            return _result(1, total, engagement, quality, platforms)
        if total >= 1_000_000 and (engagement >= 2 or quality >= 70):
            return _result(
                1, total, engagement, quality, platforms,
                reason="1M+ followers qualify for Tier 1 with relaxed engagement requirements",
            )
        return _result(
            2, total, engagement, quality, platforms,
            reason="Followers sufficient for Tier 1, but engagement or quality below threshold",
        )

    if total >= 50_000:
        if engagement >= 2 and quality >= 70:
            return _result(2, total, engagement, quality, platforms)
        return _result(
            3, total, engagement, quality, platforms,
            reason="Followers sufficient for Tier 2, but engagement or quality below threshold",
        )

    if total >= 10_000:
        if engagement >= 1.5 and quality >= 60:
            return _result(3, total, engagement, quality, platforms)
        return _result(
            4, total, engagement, quality, platforms,
            reason="Followers sufficient for Tier 3, but engagement or quality below threshold",
        )

    if engagement >= 1 and quality >= 50:
        return _result(4, total, engagement, quality, platforms)
    return _result(
        None, total, engagement, quality, platforms,
        reason="Followers sufficient but engagement or quality below minimum requirements",
    )
