"""
Handover API Routes - documents, signatures and keys after a sale
"""
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.auth import (
    get_current_user,
    require_admin,
    require_buyer,
    require_developer,
)
from reach.api.responses import envelope
from reach.core.validation import naive_utc
from reach.db.database import get_db
from reach.db.models.handover import Handover, HandoverStatus
from reach.db.models.user import User
from reach.domain.services import HandoverService
from reach.domain.services.handover_service import PLATFORM_SIGNER

router = APIRouter()


class CreateHandoverRequest(BaseModel):
    escrow_id: int


class DocumentIn(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    file_url: str = Field(..., min_length=1, max_length=1000)


class SubmitDocumentsRequest(BaseModel):
    documents: List[DocumentIn]


class ScheduleRequest(BaseModel):
    scheduled_for: datetime
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("scheduled_for")
    @classmethod
    def normalize_scheduled_for(cls, v: datetime) -> datetime:
        return naive_utc(v)


class DocumentResponse(BaseModel):
    id: int
    document_type: str
    title: str
    file_url: str
    created_at: datetime | None

    class Config:
        from_attributes = True


class VaultDocumentResponse(DocumentResponse):
    handover_id: int
    property_id: int
    signature: str | None


def serialize_handover(handover: Handover, service: HandoverService) -> dict[str, Any]:
    return {
        "id": handover.id,
        "escrow_id": handover.escrow_id,
        "property_id": handover.property_id,
        "buyer_id": handover.buyer_id,
        "developer_id": handover.developer_id,
        "creator_id": handover.creator_id,
        "status": handover.status.value,
        "payment_confirmed_at": handover.payment_confirmed_at,
        "documents_submitted_at": handover.documents_submitted_at,
        "documents_verified_at": handover.documents_verified_at,
        "reach_signed_at": handover.reach_signed_at,
        "buyer_signed_at": handover.buyer_signed_at,
        "keys_released_at": handover.keys_released_at,
        "keys_delivered_at": handover.keys_delivered_at,
        "completed_at": handover.completed_at,
        "scheduled_for": handover.scheduled_for,
        "notes": handover.notes,
        "signatures": {
            "reach": service.verify_signature(handover, PLATFORM_SIGNER),
            "buyer": service.verify_signature(handover, "buyer"),
        },
        "documents": [
            DocumentResponse.model_validate(doc).model_dump(mode="json")
            for doc in handover.documents
        ],
        "created_at": handover.created_at,
    }


@router.get("")
async def list_handovers(
    status: Optional[HandoverStatus] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handovers = await service.list_handovers(user, status)
    return envelope([serialize_handover(h, service) for h in handovers])


@router.get("/vault", summary="The buyer's signed documents")
async def list_vault(
    buyer: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    documents = await HandoverService(db).list_vault(buyer)
    return envelope([VaultDocumentResponse.model_validate(doc) for doc in documents])


@router.post("", status_code=201, summary="Open a handover for a paid escrow")
async def create_handover(
    body: CreateHandoverRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.create_from_escrow(admin, body.escrow_id)
    return envelope(serialize_handover(handover, service), message="Handover created")


@router.get("/{handover_id}")
async def get_handover(
    handover_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.get_handover(user, handover_id)
    return envelope(serialize_handover(handover, service))


@router.post("/{handover_id}/confirm-payment")
async def confirm_payment(
    handover_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.confirm_payment(admin, handover_id)
    return envelope(serialize_handover(handover, service), message="Payment confirmed")


@router.post("/{handover_id}/documents")
async def submit_documents(
    handover_id: int,
    body: SubmitDocumentsRequest,
    developer: User = Depends(require_developer),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.submit_documents(
        developer, handover_id, [doc.model_dump() for doc in body.documents]
    )
    return envelope(serialize_handover(handover, service), message="Documents submitted")


@router.post("/{handover_id}/verify-documents")
async def verify_documents(
    handover_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.verify_documents(admin, handover_id)
    return envelope(serialize_handover(handover, service), message="Documents verified")


@router.post("/{handover_id}/prepare-documents", summary="Platform counter-signature")
async def prepare_documents(
    handover_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.prepare_documents(admin, handover_id)
    return envelope(serialize_handover(handover, service), message="Documents signed by Reach")


@router.post("/{handover_id}/sign")
async def buyer_sign(
    handover_id: int,
    buyer: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.buyer_sign(buyer, handover_id)
    return envelope(serialize_handover(handover, service), message="Documents signed")


@router.post("/{handover_id}/schedule")
async def schedule_key_handover(
    handover_id: int,
    body: ScheduleRequest,
    developer: User = Depends(require_developer),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.schedule_key_handover(developer, handover_id, body.scheduled_for, body.notes)
    return envelope(serialize_handover(handover, service), message="Key handover scheduled")


@router.post("/{handover_id}/release-keys")
async def confirm_key_release(
    handover_id: int,
    developer: User = Depends(require_developer),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.confirm_key_release(developer, handover_id)
    return envelope(serialize_handover(handover, service), message="Keys released")


@router.post("/{handover_id}/confirm-keys")
async def confirm_key_receipt(
    handover_id: int,
    buyer: User = Depends(require_buyer),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.confirm_key_receipt(buyer, handover_id)
    return envelope(serialize_handover(handover, service), message="Keys received")


@router.post("/{handover_id}/complete")
async def complete_handover(
    handover_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    service = HandoverService(db)
    handover = await service.mark_complete(admin, handover_id)
    return envelope(serialize_handover(handover, service), message="Handover completed")
