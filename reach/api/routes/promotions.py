"""
Promotion API Routes - a creator's tracking links and their lifecycle
"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, field_validator
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.auth import require_creator
from reach.api.responses import envelope
from reach.core.validation import naive_utc
from reach.db.database import get_db
from reach.db.models.tracking_link import PromotionStatus, TrackingLink
from reach.db.models.user import User
from reach.domain.services import PromotionService
from reach.domain.services.promotion_service import promotion_url

router = APIRouter()
generate_router = APIRouter()


class StatusUpdateRequest(BaseModel):
    status: PromotionStatus


class ExtendRequest(BaseModel):
    # None clears the expiry
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def normalize_expiry(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


class GenerateLinkRequest(BaseModel):
    property_id: int
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def normalize_expiry(cls, v: datetime | None) -> datetime | None:
        return naive_utc(v)


def serialize_promotion(link: TrackingLink) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": link.id,
        "property_id": link.property_id,
        "unique_code": link.unique_code,
        "url": promotion_url(link.unique_code),
        "status": link.status.value,
        "impressions": link.impressions or 0,
        "clicks": link.clicks or 0,
        "leads": link.leads or 0,
        "inspections": link.inspections or 0,
        "conversions": link.conversions or 0,
        "expires_at": link.expires_at,
        "paused_at": link.paused_at,
        "stopped_at": link.stopped_at,
        "expired_at": link.expired_at,
        "created_at": link.created_at,
    }
    if "property" not in inspect(link).unloaded and link.property is not None:
        data["property"] = {
            "id": link.property.id,
            "title": link.property.title,
            "location": link.property.location,
            "asking_price": float(link.property.asking_price),
        }
    return data


@router.get("", summary="List the creator's promotions")
async def list_promotions(
    status: Optional[PromotionStatus] = None,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    links = await PromotionService(db).list_promotions(creator, status)
    return envelope([serialize_promotion(link) for link in links])


@router.get("/{promotion_id}")
async def get_promotion(
    promotion_id: int,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).get_promotion(creator, promotion_id)
    return envelope(serialize_promotion(link))


@router.patch("/{promotion_id}", summary="Move a promotion to another status")
async def update_promotion(
    promotion_id: int,
    body: StatusUpdateRequest,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).update_status(creator, promotion_id, body.status)
    return envelope(serialize_promotion(link), message=f"Promotion {link.status.value}")


@router.post("/{promotion_id}/pause")
async def pause_promotion(
    promotion_id: int,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).pause(creator, promotion_id)
    return envelope(serialize_promotion(link), message="Promotion paused")


@router.post("/{promotion_id}/resume")
async def resume_promotion(
    promotion_id: int,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).resume(creator, promotion_id)
    return envelope(serialize_promotion(link), message="Promotion resumed")


@router.post("/{promotion_id}/stop")
async def stop_promotion(
    promotion_id: int,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).stop(creator, promotion_id)
    return envelope(serialize_promotion(link), message="Promotion stopped")


@router.post("/{promotion_id}/extend", summary="Change or clear the expiry date")
async def extend_promotion(
    promotion_id: int,
    body: ExtendRequest,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    link = await PromotionService(db).extend_expiry(
        creator, promotion_id, body.expires_at
    )
    return envelope(serialize_promotion(link), message="Promotion expiry updated")


@generate_router.post("/generate-link", summary="Create (or return) the creator's link for a property")
async def generate_link(
    body: GenerateLinkRequest,
    response: Response,
    creator: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    generated = await PromotionService(db).generate_link(
        creator, body.property_id, body.expires_at
    )
    response.status_code = 201 if generated.created else 200
    data = serialize_promotion(generated.link)
    data["created"] = generated.created
    return envelope(
        data,
        message="Tracking link generated" if generated.created else "Tracking link already exists",
    )
