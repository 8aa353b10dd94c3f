"""
Paystack Webhook Handler

Transfer events settle or compensate open withdrawals; charge.success settles a
pending deposit. Once the signature checks out the handler always answers 200,
so Paystack does not keep redelivering events the ledger has already applied.
"""
import json
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.webhook_auth import verify_paystack_webhook
from reach.api.responses import envelope
from reach.core.exceptions import AppException
from reach.core.logging import get_logger
from reach.db.database import get_db
from reach.domain.services import WalletService

logger = get_logger(__name__)

router = APIRouter()

TRANSFER_SUCCESS = "transfer.success"
TRANSFER_FAILED = "transfer.failed"
TRANSFER_REVERSED = "transfer.reversed"
CHARGE_SUCCESS = "charge.success"


class PaystackEventData(BaseModel):
    reference: Optional[str] = None
    amount: Optional[int] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    gateway_response: Optional[str] = None


class PaystackEvent(BaseModel):
    event: str
    data: PaystackEventData = PaystackEventData()


def _parse_event(body: bytes) -> PaystackEvent | None:
    try:
        return PaystackEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        logger.warning("Unparseable Paystack webhook body", extra_data={"error": str(e)})
        return None


async def _dispatch(service: WalletService, event: PaystackEvent) -> bool:
    """Apply one event. Returns False when the event type is ignored."""
    data = event.data
    if event.event == TRANSFER_SUCCESS:
        await service.complete_withdrawal(data.reference, gateway_status=data.status or "success")
    elif event.event in (TRANSFER_FAILED, TRANSFER_REVERSED):
        reason = data.reason or data.gateway_response or event.event
        await service.fail_withdrawal(
            data.reference,
            reason=f"Transfer {event.event.split('.', 1)[1]}: {reason}",
            gateway_status=data.status or event.event.split(".", 1)[1],
        )
    elif event.event == CHARGE_SUCCESS:
        await service.settle_charge(data.reference, amount_kobo=data.amount)
    else:
        return False
    return True


@router.post("/paystack")
async def paystack_webhook(
    body: bytes = Depends(verify_paystack_webhook),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    event = _parse_event(body)
    if event is None:
        return envelope({"received": True, "handled": False})

    if not event.data.reference:
        logger.warning("Paystack webhook without reference", extra_data={"event": event.event})
        return envelope({"received": True, "handled": False})

    logger.info(
        "Paystack webhook received",
        extra_data={"event": event.event, "reference": event.data.reference},
    )

    # a 200 ends redelivery: failures are logged for reconciliation, and deposits
    # can still be settled by the client's verify call
    try:
        handled = await _dispatch(WalletService(db), event)
    except AppException as e:
        logger.error(
            "Paystack webhook processing failed",
            extra_data={
                "event": event.event,
                "reference": event.data.reference,
                "error": e.message,
            },
        )
        return envelope({"received": True, "handled": False})
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Paystack webhook database error",
            extra_data={
                "event": event.event,
                "reference": event.data.reference,
                "error": str(e),
            },
            exc_info=True,
        )
        return envelope({"received": True, "handled": False})

    if not handled:
        logger.info("Paystack webhook ignored", extra_data={"event": event.event})
    return envelope({"received": True, "handled": handled})
