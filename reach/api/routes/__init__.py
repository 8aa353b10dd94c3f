"""
API Routes
"""
from fastapi import APIRouter

from reach.api.routes.wallet import router as wallet_router
from reach.api.routes.promotions import router as promotions_router
from reach.api.routes.promotions import generate_router
from reach.api.routes.tracking import router as tracking_router
from reach.api.routes.creator import router as creator_router
from reach.api.routes.handovers import router as handovers_router
from reach.api.routes.cron import router as cron_router
from reach.api.webhooks.paystack import router as paystack_router

router = APIRouter()

router.include_router(wallet_router, prefix="/wallet", tags=["wallet"])
router.include_router(promotions_router, prefix="/creator/promotions", tags=["promotions"])
router.include_router(generate_router, prefix="/creators", tags=["promotions"])
router.include_router(creator_router, prefix="/creator", tags=["creator"])
router.include_router(tracking_router, prefix="/tracking", tags=["tracking"])
router.include_router(handovers_router, prefix="/handovers", tags=["handovers"])
router.include_router(cron_router, prefix="/cron", tags=["cron"])
router.include_router(paystack_router, prefix="/webhooks", tags=["webhooks"])
