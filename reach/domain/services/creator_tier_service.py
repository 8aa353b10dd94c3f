"""
Creator Tier Service - verified social accounts and the tier derived from them

Verify, disconnect and the scheduled refresh all end in ``recalculate``, which
scores the aggregate of every verified account the creator still has.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.config import settings
from reach.core.exceptions import AppException, ErrorCode, NotFoundException
from reach.core.logging import get_logger
from reach.core.rate_limit import enforce_rate_limit
from reach.db.models.social_account import CreatorAnalyticsHistory, SocialAccount
from reach.db.models.user import User, UserRole
from reach.domain.services.social import (
    ProfileMetrics,
    SocialAnalyticsClient,
    extract_handle,
    get_social_analytics_client,
    parse_platform,
)
from reach.domain.services.tier_calculator import (
    PlatformMetrics,
    TierResult,
    calculate_tier,
    commission_rate_for,
    tier_benefits,
    tier_name_for,
)

logger = get_logger(__name__)


@dataclass
class RefreshSummary:
    creators: int = 0
    accounts_refreshed: int = 0
    accounts_failed: int = 0
    tier_changes: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


def _as_platform_metrics(profile: ProfileMetrics) -> PlatformMetrics:
    return PlatformMetrics(
        followers=profile.followers,
        engagement=profile.engagement_rate,
        following=profile.following,
        posts=profile.posts,
    )


class CreatorTierService:
    def __init__(self, db: AsyncSession, analytics: SocialAnalyticsClient | None = None):
        self.db = db
        self.analytics = analytics or get_social_analytics_client()

    async def list_accounts(self, creator: User) -> list[SocialAccount]:
        result = await self.db.execute(
            select(SocialAccount)
            .where(SocialAccount.creator_id == creator.id)
            .order_by(SocialAccount.platform)
        )
        return list(result.scalars().all())

    async def _verified_metrics(self, creator_id: int) -> dict[str, PlatformMetrics]:
        result = await self.db.execute(
            select(SocialAccount).where(
                SocialAccount.creator_id == creator_id,
                SocialAccount.verified_at.is_not(None),
            )
        )
        return {
            account.platform.value: PlatformMetrics(
                followers=int(account.followers or 0),
                engagement=account.engagement_rate,
            )
            for account in result.scalars().all()
        }

    async def recalculate(
        self,
        creator: User,
        trigger: str,
        fresh: Optional[dict[str, PlatformMetrics]] = None,
        commit: bool = True,
    ) -> TierResult:
        """
        Score all verified accounts, store the tier on the user and append history.

        ``fresh`` overrides stored rows for platforms just fetched from the provider,
        since following/post counts are not persisted.
        """
        metrics = await self._verified_metrics(creator.id)
        for platform, platform_metrics in (fresh or {}).items():
            if platform in metrics:
                metrics[platform] = platform_metrics

        result = calculate_tier(metrics)
        previous_tier = creator.tier
        creator.tier = result.tier

        self.db.add(
            CreatorAnalyticsHistory(
                creator_id=creator.id,
                total_followers=result.total_followers,
                avg_engagement=result.engagement_rate,
                quality_score=result.quality_score,
                tier=result.tier,
                commission_rate=result.commission_rate,
                platforms=result.platforms,
                trigger=trigger,
            )
        )
        if commit:
            await self.db.commit()

        logger.info(
            "Creator tier recalculated",
            extra_data={
                "creator_id": creator.id,
                "trigger": trigger,
                "previous_tier": previous_tier,
                "tier": result.tier,
                "total_followers": result.total_followers,
                "platforms": list(metrics),
            },
        )
        return result

    async def verify_account(self, creator: User, platform: str, profile_url: str) -> tuple[SocialAccount, TierResult]:
        await enforce_rate_limit(
            "social_verify",
            creator.id,
            settings.SOCIAL_VERIFY_RATE_LIMIT,
            settings.SOCIAL_VERIFY_RATE_WINDOW_SECONDS,
        )
        social_platform = parse_platform(platform)
        handle = extract_handle(social_platform, profile_url)
        profile = await self.analytics.fetch_profile(social_platform, handle)

        result = await self.db.execute(
            select(SocialAccount).where(
                SocialAccount.creator_id == creator.id,
                SocialAccount.platform == social_platform,
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            account = SocialAccount(creator_id=creator.id, platform=social_platform)
            self.db.add(account)

        account.handle = profile.handle or handle
        account.profile_url = profile_url
        account.followers = profile.followers
        account.engagement_rate = profile.engagement_rate
        account.verified_at = datetime.utcnow()
        await self.db.flush()

        tier = await self.recalculate(
            creator,
            trigger="verify",
            fresh={social_platform.value: _as_platform_metrics(profile)},
        )
        logger.info(
            "Social account verified",
            extra_data={
                "creator_id": creator.id,
                "platform": social_platform.value,
                "followers": profile.followers,
            },
        )
        return account, tier

    async def disconnect_account(self, creator: User, platform: str) -> TierResult:
        social_platform = parse_platform(platform)
        result = await self.db.execute(
            select(SocialAccount).where(
                SocialAccount.creator_id == creator.id,
                SocialAccount.platform == social_platform,
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundException(
                "Social account", social_platform.value,
                error_code=ErrorCode.SOCIAL_ACCOUNT_NOT_FOUND,
            )

        await self.db.delete(account)
        await self.db.flush()
        logger.info(
            "Social account disconnected",
            extra_data={"creator_id": creator.id, "platform": social_platform.value},
        )
        return await self.recalculate(creator, trigger="disconnect")

    async def get_tier(self, creator: User) -> dict[str, Any]:
        result = calculate_tier(await self._verified_metrics(creator.id))
        last = await self.db.execute(
            select(CreatorAnalyticsHistory.recorded_at)
            .where(CreatorAnalyticsHistory.creator_id == creator.id)
            .order_by(CreatorAnalyticsHistory.recorded_at.desc())
            .limit(1)
        )
        return {
            "tier": creator.tier,
            "tier_name": tier_name_for(creator.tier),
            "commission_rate": commission_rate_for(creator.tier),
            "total_followers": result.total_followers,
            "engagement_rate": result.engagement_rate,
            "quality_score": result.quality_score,
            "meets_requirements": result.meets_requirements,
            "reason": result.reason,
            "platforms": result.platforms,
            "benefits": tier_benefits(creator.tier),
            "last_calculated_at": last.scalar_one_or_none(),
        }

    async def refresh_all(self) -> RefreshSummary:
        """Re-fetch every verified account and recompute each creator's tier."""
        summary = RefreshSummary()
        creators = await self.db.execute(
            select(User).where(User.role == UserRole.CREATOR, User.is_active.is_(True))
        )

        for creator in creators.scalars().all():
            accounts = await self.db.execute(
                select(SocialAccount).where(
                    SocialAccount.creator_id == creator.id,
                    SocialAccount.verified_at.is_not(None),
                )
            )
            fresh: dict[str, PlatformMetrics] = {}
            for account in accounts.scalars().all():
                try:
                    profile = await self.analytics.fetch_profile(account.platform, account.handle)
                except AppException as e:
                    # keep the stored snapshot for this platform
                    summary.accounts_failed += 1
                    logger.warning(
                        "Social account refresh failed",
                        extra_data={
                            "creator_id": creator.id,
                            "platform": account.platform.value,
                            "error": e.message,
                        },
                    )
                    continue
                account.followers = profile.followers
                account.engagement_rate = profile.engagement_rate
                account.verified_at = datetime.utcnow()
                fresh[account.platform.value] = _as_platform_metrics(profile)
                summary.accounts_refreshed += 1

            previous_tier = creator.tier
            result = await self.recalculate(creator, trigger="scheduled", fresh=fresh)
            summary.creators += 1
            if result.tier != previous_tier:
                summary.tier_changes += 1

        logger.info("Creator tiers refreshed", extra_data=summary.to_dict())
        return summary

