"""
Creator API Routes - social account verification and tier
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.auth import require_creator
from reach.api.responses import envelope
from reach.db.database import get_db
from reach.db.models.social_account import SocialPlatform
from reach.db.models.user import User
from reach.domain.services import CreatorTierService
from reach.domain.services.tier_calculator import TierResult

router = APIRouter()


class VerifyAccountRequest(BaseModel):
    platform: str = Field(..., min_length=1)
    profile_url: str = Field(..., min_length=1, max_length=500)


class SocialAccountResponse(BaseModel):
    id: int
    platform: SocialPlatform
    handle: str
    profile_url: str
    followers: int
    engagement_rate: float | None
    verified_at: datetime | None

    class Config:
        from_attributes = True


def _tier_data(result: TierResult) -> dict[str, Any]:
    return {
        "tier": result.tier,
        "tier_name": result.tier_name,
        "commission_rate": float(result.commission_rate),
        "total_followers": result.total_followers,
        "engagement_rate": result.engagement_rate,
        "quality_score": result.quality_score,
        "meets_requirements": result.meets_requirements,
        "reason": result.reason,
    }


@router.get("/social-accounts")
async def list_social_accounts(
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    accounts = await CreatorTierService(db).list_accounts(creator)
    return envelope([SocialAccountResponse.model_validate(a) for a in accounts])


@router.post("/social-accounts/verify", summary="Verify a social profile and recompute the tier")
async def verify_social_account(
    body: VerifyAccountRequest,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    account, tier = await CreatorTierService(db).verify_account(
        creator, body.platform, body.profile_url
    )
    return envelope(
        {
            "account": SocialAccountResponse.model_validate(account).model_dump(mode="json"),
            "tier": _tier_data(tier),
        },
        message="Social account verified",
    )


@router.delete("/social-accounts/{platform}")
async def disconnect_social_account(
    platform: str,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    tier = await CreatorTierService(db).disconnect_account(creator, platform)
    return envelope({"tier": _tier_data(tier)}, message="Social account disconnected")


@router.get("/tier", summary="Current tier, commission and benefits")
async def get_tier(
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    tier = await CreatorTierService(db).get_tier(creator)
    tier["commission_rate"] = float(tier["commission_rate"])
    return envelope(tier)
