"""
Cron API Routes - synchronous triggers for external schedulers

Same work as the Celery beat tasks, authenticated with the CRON_SECRET bearer.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.auth import require_cron
from reach.api.responses import envelope
from reach.db.database import get_db
from reach.domain.services import CreatorTierService, PromotionService, WalletService

router = APIRouter(dependencies=[Depends(require_cron)])


@router.post("/update-creator-tiers")
async def update_creator_tiers(db: AsyncSession = Depends(get_db)):
    summary = await CreatorTierService(db).refresh_all()
    return envelope(summary.to_dict(), message="Creator tiers updated")


@router.post("/expire-promotions")
async def expire_promotions(db: AsyncSession = Depends(get_db)):
    expired = await PromotionService(db).expire_due_promotions()
    return envelope({"expired": expired})


@router.post("/fail-stale-deposits")
async def fail_stale_deposits(db: AsyncSession = Depends(get_db)):
    failed = await WalletService(db).fail_stale_deposits()
    return envelope({"failed": failed})
