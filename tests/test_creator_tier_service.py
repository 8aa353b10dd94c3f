"""
Unit tests for CreatorTierService with a mocked analytics provider.
"""
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from reach.core.exceptions import (
    NotFoundException,
    ServiceTimeoutError,
    SocialAnalyticsError,
    ValidationException,
)
from reach.db.models.social_account import CreatorAnalyticsHistory, SocialAccount, SocialPlatform
from reach.db.models.user import UserRole
from reach.domain.services.creator_tier_service import CreatorTierService
from reach.domain.services.social import ProfileMetrics, SocialAnalyticsClient


@pytest.fixture
def analytics():
    return AsyncMock(spec=SocialAnalyticsClient)


@pytest.fixture
def creator(sample_creator):
    sample_creator.tier = None
    return sample_creator


async def _history(db_session, creator_id):
    result = await db_session.execute(
        select(CreatorAnalyticsHistory)
        .where(CreatorAnalyticsHistory.creator_id == creator_id)
        .order_by(CreatorAnalyticsHistory.id)
    )
    return list(result.scalars().all())


@pytest.mark.unit
async def test_verify_account_scores_creator(creator, analytics, db_session):
    analytics.fetch_profile.return_value = ProfileMetrics(
        handle="ada.builds", followers=60_000, engagement_rate=2.5, following=1_000, posts=20
    )
    service = CreatorTierService(db_session, analytics=analytics)

    account, tier = await service.verify_account(
        creator, "Instagram", "https://www.instagram.com/ada.builds/"
    )

    analytics.fetch_profile.assert_awaited_once_with(SocialPlatform.INSTAGRAM, "ada.builds")
    assert account.handle == "ada.builds"
    assert account.followers == 60_000
    assert account.verified_at is not None
    assert tier.tier == 2
    assert creator.tier == 2

    history = await _history(db_session, creator.id)
    assert [row.trigger for row in history] == ["verify"]
    assert history[0].total_followers == 60_000


@pytest.mark.unit
async def test_reverify_updates_existing_account(creator, analytics, db_session):
    analytics.fetch_profile.side_effect = [
        ProfileMetrics(handle="ada", followers=6_000, engagement_rate=3.0),
        ProfileMetrics(handle="ada", followers=9_000, engagement_rate=3.0),
    ]
    service = CreatorTierService(db_session, analytics=analytics)

    await service.verify_account(creator, "tiktok", "https://www.tiktok.com/@ada")
    await service.verify_account(creator, "tiktok", "https://www.tiktok.com/@ada")

    accounts = await service.list_accounts(creator)
    assert len(accounts) == 1
    assert accounts[0].followers == 9_000


@pytest.mark.unit
async def test_verify_rejects_bad_input(creator, analytics, db_session):
    service = CreatorTierService(db_session, analytics=analytics)

    with pytest.raises(ValidationException) as exc_info:
        await service.verify_account(creator, "myspace", "https://myspace.com/ada")
    assert exc_info.value.details["supported"] == ["instagram", "tiktok", "twitter"]

    with pytest.raises(ValidationException):
        await service.verify_account(creator, "twitter", "https://example.com/ada")

    analytics.fetch_profile.assert_not_awaited()


@pytest.mark.unit
async def test_provider_failure_leaves_no_account(creator, analytics, db_session):
    analytics.fetch_profile.side_effect = SocialAnalyticsError("twitter profile not found: ghost")

    with pytest.raises(SocialAnalyticsError):
        await CreatorTierService(db_session, analytics=analytics).verify_account(
            creator, "twitter", "https://x.com/ghost"
        )

    assert (await db_session.execute(select(SocialAccount))).first() is None


@pytest.mark.unit
async def test_disconnect_recalculates(creator, analytics, db_session):
    analytics.fetch_profile.return_value = ProfileMetrics(handle="ada", followers=60_000, engagement_rate=2.5)
    service = CreatorTierService(db_session, analytics=analytics)
    await service.verify_account(creator, "instagram", "https://instagram.com/ada")

    tier = await service.disconnect_account(creator, "instagram")

    assert tier.tier is None
    assert tier.meets_requirements is False
    assert creator.tier is None
    assert await service.list_accounts(creator) == []
    assert [row.trigger for row in await _history(db_session, creator.id)] == ["verify", "disconnect"]


@pytest.mark.unit
async def test_disconnect_unknown_account(creator, analytics, db_session):
    with pytest.raises(NotFoundException):
        await CreatorTierService(db_session, analytics=analytics).disconnect_account(creator, "tiktok")


@pytest.mark.unit
async def test_get_tier_summary(creator, analytics, db_session):
    db_session.add(
        SocialAccount(
            creator_id=creator.id,
            platform=SocialPlatform.INSTAGRAM,
            handle="ada",
            profile_url="https://instagram.com/ada",
            followers=3_000,
            engagement_rate=2.0,
            verified_at=datetime.utcnow(),
        )
    )
    await db_session.commit()

    summary = await CreatorTierService(db_session, analytics=analytics).get_tier(creator)

    assert summary["tier"] is None
    assert summary["tier_name"] == "Disqualified"
    assert summary["total_followers"] == 3_000
    assert summary["meets_requirements"] is False
    assert summary["platforms"] == {"instagram": 3_000}
    assert summary["last_calculated_at"] is None


@pytest.mark.unit
async def test_refresh_all_keeps_snapshot_on_failure(user_factory, analytics, db_session):
    steady = await user_factory(role=UserRole.CREATOR)
    flaky = await user_factory(role=UserRole.CREATOR)
    for user, platform in ((steady, SocialPlatform.TIKTOK), (flaky, SocialPlatform.TWITTER)):
        db_session.add(
            SocialAccount(
                creator_id=user.id,
                platform=platform,
                handle=f"handle{user.id}",
                profile_url="https://example.com",
                followers=6_000,
                engagement_rate=3.0,
                verified_at=datetime.utcnow(),
            )
        )
    await db_session.commit()

    async def fetch(platform, handle):
        if platform == SocialPlatform.TWITTER:
            raise ServiceTimeoutError("social_analytics", 20.0)
        return ProfileMetrics(handle=handle, followers=7_500, engagement_rate=3.0)

    analytics.fetch_profile.side_effect = fetch

    summary = await CreatorTierService(db_session, analytics=analytics).refresh_all()

    assert summary.creators == 2
    assert summary.accounts_refreshed == 1
    assert summary.accounts_failed == 1
    assert summary.tier_changes == 2

    await db_session.refresh(flaky)
    assert flaky.tier == 4
    account = (
        await db_session.execute(select(SocialAccount).where(SocialAccount.creator_id == flaky.id))
    ).scalar_one()
    assert account.followers == 6_000

    history = await _history(db_session, steady.id)
    assert history[-1].trigger == "scheduled"
    assert history[-1].total_followers == 7_500
