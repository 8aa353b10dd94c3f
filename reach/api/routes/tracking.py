"""
Public tracking endpoints hit by promotion pages. No authentication.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.responses import envelope
from reach.db.database import get_db
from reach.db.models.tracking_link import PromotionStatus
from reach.domain.services import PromotionService

router = APIRouter()


class ClickRequest(BaseModel):
    property_id: int
    code: str = Field(..., min_length=1, max_length=32)
    # lead_form and inspection also bump their funnel counters
    action: Optional[str] = Field(None, max_length=30)


class ImpressionRequest(BaseModel):
    property_id: int
    code: str = Field(..., min_length=1, max_length=32)


@router.post("/click")
async def track_click(body: ClickRequest, db: AsyncSession = Depends(get_db)):
    result = await PromotionService(db).record_click(body.property_id, body.code, body.action)
    return envelope(result.to_dict())


@router.post("/impression")
async def track_impression(body: ImpressionRequest, db: AsyncSession = Depends(get_db)):
    result = await PromotionService(db).record_impression(body.property_id, body.code)
    return envelope(result.to_dict())


@router.get("/{code}", summary="Resolve a shared code to its property")
async def resolve_code(code: str, db: AsyncSession = Depends(get_db)):
    link = await PromotionService(db).resolve_code(code)
    return envelope({
        "property_id": link.property_id,
        "status": link.status.value,
        "active": link.status == PromotionStatus.ACTIVE,
    })
