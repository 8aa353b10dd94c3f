"""
Handover Service - post-sale documents, signatures and keys

Every step checks the actor's role and the HANDOVER_TRANSITIONS table before
moving the handover forward. Completion releases the held escrow into the
developer's and creator's wallets through WalletService.credit.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from reach.core.config import settings
from reach.core.exceptions import (
    AuthorizationException,
    ConflictException,
    ErrorCode,
    InvalidStatusTransitionError,
    NotFoundException,
    ValidationException,
)
from reach.core.logging import get_logger
from reach.core.money import quantize
from reach.core.security import sign_document, verify_document_signature
from reach.db.models.escrow import EscrowStatus, EscrowTransaction
from reach.db.models.handover import DocumentVault, Handover, HandoverStatus, PropertyDocument
from reach.db.models.user import User, UserRole
from reach.db.models.wallet_transaction import TransactionCategory
from reach.domain.services.wallet_service import WalletService
from reach.domain.transitions import HANDOVER_TRANSITIONS, is_valid_transition, predecessor

logger = get_logger(__name__)

PLATFORM_SIGNER = "reach"
# platform signatures are not tied to the admin who triggered them
PLATFORM_USER_ID = 0

# column stamped when the handover enters each status
_STATUS_TIMESTAMPS = {
    HandoverStatus.PENDING_DEVELOPER_DOCS: "payment_confirmed_at",
    HandoverStatus.DOCS_SUBMITTED: "documents_submitted_at",
    HandoverStatus.DOCS_VERIFIED: "documents_verified_at",
    HandoverStatus.REACH_SIGNED: "reach_signed_at",
    HandoverStatus.BUYER_SIGNED: "buyer_signed_at",
    HandoverStatus.KEYS_RELEASED: "keys_released_at",
    HandoverStatus.KEYS_DELIVERED: "keys_delivered_at",
    HandoverStatus.COMPLETED: "completed_at",
}


class HandoverService:
    def __init__(self, db: AsyncSession, wallet_service: WalletService | None = None):
        self.db = db
        self.wallets = wallet_service or WalletService(db)

    # ---- guards ----

    @staticmethod
    def _require_admin(user: User) -> None:
        if user.role != UserRole.ADMIN:
            raise AuthorizationException("Only admins can perform this handover step")

    @staticmethod
    def _require_party(user: User, party_id: int, role: UserRole) -> None:
        if user.role != role or user.id != party_id:
            raise AuthorizationException(
                f"Only the {role.value} on this handover can perform this step"
            )

    def _advance(self, handover: Handover, target: HandoverStatus, now: datetime) -> None:
        current = handover.status
        if not is_valid_transition(HANDOVER_TRANSITIONS, current, target):
            expected = predecessor(HANDOVER_TRANSITIONS, target)
            raise InvalidStatusTransitionError(
                f"Handover must be {expected.value if expected else 'pending'} "
                f"to move to {target.value} (currently {current.value})",
                current_status=current.value,
                target_status=target.value,
                error_code=ErrorCode.HANDOVER_INVALID_STATUS,
            )
        handover.status = target
        setattr(handover, _STATUS_TIMESTAMPS[target], now)
        logger.info(
            "Handover advanced",
            extra_data={
                "handover_id": handover.id,
                "previous_status": current.value,
                "new_status": target.value,
            },
        )

    # ---- reads ----

    async def _load(self, handover_id: int) -> Handover:
        result = await self.db.execute(
            select(Handover)
            .options(selectinload(Handover.documents))
            .where(Handover.id == handover_id)
            .execution_options(populate_existing=True)
        )
        handover = result.scalar_one_or_none()
        if handover is None:
            raise NotFoundException(
                "Handover", handover_id, error_code=ErrorCode.HANDOVER_NOT_FOUND
            )
        return handover

    async def get_handover(self, user: User, handover_id: int) -> Handover:
        handover = await self._load(handover_id)
        if user.role != UserRole.ADMIN and user.id not in (handover.buyer_id, handover.developer_id):
            # hide existence from unrelated users
            raise NotFoundException(
                "Handover", handover_id, error_code=ErrorCode.HANDOVER_NOT_FOUND
            )
        return handover

    async def list_handovers(
        self, user: User, status: HandoverStatus | None = None
    ) -> list[Handover]:
        query = select(Handover).options(selectinload(Handover.documents))
        if user.role == UserRole.BUYER:
            query = query.where(Handover.buyer_id == user.id)
        elif user.role == UserRole.DEVELOPER:
            query = query.where(Handover.developer_id == user.id)
        elif user.role != UserRole.ADMIN:
            return []
        if status is not None:
            query = query.where(Handover.status == status)

        result = await self.db.execute(query.order_by(Handover.created_at.desc(), Handover.id.desc()))
        return list(result.scalars().all())

    async def list_vault(self, user: User) -> list[DocumentVault]:
        result = await self.db.execute(
            select(DocumentVault)
            .where(DocumentVault.user_id == user.id)
            .order_by(DocumentVault.created_at.desc())
        )
        return list(result.scalars().all())

    # ---- steps ----

    async def create_from_escrow(self, admin: User, escrow_id: int) -> Handover:
        self._require_admin(admin)
        escrow = await self.db.get(EscrowTransaction, escrow_id)
        if escrow is None:
            raise NotFoundException("Escrow transaction", escrow_id)

        existing = await self.db.execute(
            select(Handover.id).where(Handover.escrow_id == escrow_id)
        )
        existing_id = existing.scalar_one_or_none()
        if existing_id is not None:
            raise ConflictException(
                "A handover already exists for this transaction",
                details={"handover_id": existing_id},
            )

        handover = Handover(
            escrow_id=escrow.id,
            property_id=escrow.property_id,
            buyer_id=escrow.buyer_id,
            developer_id=escrow.developer_id,
            creator_id=escrow.creator_id,
            status=HandoverStatus.PAYMENT_CONFIRMED,
        )
        self.db.add(handover)
        await self.db.commit()

        logger.info(
            "Handover created",
            extra_data={"handover_id": handover.id, "escrow_id": escrow_id},
        )
        return await self._load(handover.id)

    async def confirm_payment(self, admin: User, handover_id: int) -> Handover:
        self._require_admin(admin)
        handover = await self._load(handover_id)
        self._advance(handover, HandoverStatus.PENDING_DEVELOPER_DOCS, datetime.utcnow())
        await self.db.commit()
        return handover

    async def submit_documents(
        self, developer: User, handover_id: int, documents: list[dict[str, Any]]
    ) -> Handover:
        handover = await self._load(handover_id)
        self._require_party(developer, handover.developer_id, UserRole.DEVELOPER)

        if not documents:
            raise ValidationException("At least one document is required", field="documents")
        if len(documents) > settings.MAX_HANDOVER_DOCUMENTS:
            raise ValidationException(
                f"At most {settings.MAX_HANDOVER_DOCUMENTS} documents can be submitted",
                field="documents",
            )
        for doc in documents:
            if not doc.get("document_type") or not doc.get("title") or not doc.get("file_url"):
                raise ValidationException(
                    "Each document needs document_type, title and file_url",
                    field="documents",
                )

        self._advance(handover, HandoverStatus.DOCS_SUBMITTED, datetime.utcnow())
        for doc in documents:
            self.db.add(
                PropertyDocument(
                    property_id=handover.property_id,
                    handover_id=handover.id,
                    uploaded_by=developer.id,
                    document_type=doc["document_type"],
                    title=doc["title"],
                    file_url=doc["file_url"],
                )
            )
        await self.db.commit()
        return await self._load(handover.id)

    async def verify_documents(self, admin: User, handover_id: int) -> Handover:
        self._require_admin(admin)
        handover = await self._load(handover_id)
        self._advance(handover, HandoverStatus.DOCS_VERIFIED, datetime.utcnow())
        await self.db.commit()
        return handover

    async def prepare_documents(self, admin: User, handover_id: int) -> Handover:
        """Platform counter-signature over the handover"""
        self._require_admin(admin)
        handover = await self._load(handover_id)
        self._advance(handover, HandoverStatus.REACH_SIGNED, datetime.utcnow())

        signature, ts = sign_document(handover.id, PLATFORM_USER_ID, PLATFORM_SIGNER)
        handover.reach_signature = signature
        handover.reach_signature_ts = ts
        await self.db.commit()
        return handover

    async def buyer_sign(self, buyer: User, handover_id: int) -> Handover:
        handover = await self._load(handover_id)
        self._require_party(buyer, handover.buyer_id, UserRole.BUYER)
        self._advance(handover, HandoverStatus.BUYER_SIGNED, datetime.utcnow())

        signature, ts = sign_document(handover.id, buyer.id, UserRole.BUYER.value)
        handover.buyer_signature = signature
        handover.buyer_signature_ts = ts

        for doc in handover.documents:
            self.db.add(
                DocumentVault(
                    user_id=buyer.id,
                    property_id=handover.property_id,
                    handover_id=handover.id,
                    source_document_id=doc.id,
                    document_type=doc.document_type,
                    title=doc.title,
                    file_url=doc.file_url,
                    signature=signature,
                )
            )
        await self.db.commit()
        logger.info(
            "Buyer signed handover",
            extra_data={"handover_id": handover.id, "documents_vaulted": len(handover.documents)},
        )
        return handover

    async def schedule_key_handover(
        self, developer: User, handover_id: int, scheduled_for: datetime, notes: str | None = None
    ) -> Handover:
        handover = await self._load(handover_id)
        self._require_party(developer, handover.developer_id, UserRole.DEVELOPER)
        if handover.status != HandoverStatus.BUYER_SIGNED:
            raise InvalidStatusTransitionError(
                "Keys can only be scheduled after the buyer has signed",
                current_status=handover.status.value,
                target_status=handover.status.value,
                error_code=ErrorCode.HANDOVER_INVALID_STATUS,
            )
        if scheduled_for <= datetime.utcnow():
            raise ValidationException("Handover date must be in the future", field="scheduled_for")

        handover.scheduled_for = scheduled_for
        if notes is not None:
            handover.notes = notes
        await self.db.commit()
        return handover

    async def confirm_key_release(self, developer: User, handover_id: int) -> Handover:
        handover = await self._load(handover_id)
        self._require_party(developer, handover.developer_id, UserRole.DEVELOPER)
        self._advance(handover, HandoverStatus.KEYS_RELEASED, datetime.utcnow())
        await self.db.commit()
        return handover

    async def confirm_key_receipt(self, buyer: User, handover_id: int) -> Handover:
        handover = await self._load(handover_id)
        self._require_party(buyer, handover.buyer_id, UserRole.BUYER)
        self._advance(handover, HandoverStatus.KEYS_DELIVERED, datetime.utcnow())
        await self.db.commit()
        return handover

    async def mark_complete(self, admin: User, handover_id: int) -> Handover:
        self._require_admin(admin)
        handover = await self._load(handover_id)

        obligations_met = all(
            (
                handover.documents_verified_at,
                handover.buyer_signed_at,
                handover.keys_released_at,
                handover.keys_delivered_at,
            )
        )
        if not obligations_met:
            raise ValidationException(
                "Cannot complete handover: obligations not met",
                error_code=ErrorCode.HANDOVER_OBLIGATIONS_UNMET,
            )

        now = datetime.utcnow()
        self._advance(handover, HandoverStatus.COMPLETED, now)

        escrow = await self.db.get(EscrowTransaction, handover.escrow_id)
        if escrow is not None and escrow.status == EscrowStatus.HELD:
            await self._release_escrow(handover, escrow, now)

        await self.db.commit()
        logger.info("Handover completed", extra_data={"handover_id": handover.id})
        return handover

    async def _release_escrow(
        self, handover: Handover, escrow: EscrowTransaction, now: datetime
    ) -> None:
        splits = escrow.splits or {}
        developer_amount = quantize(splits.get("developer_amount") or 0)
        creator_amount = quantize(splits.get("creator_amount") or 0)

        if developer_amount > 0:
            await self.wallets.credit(
                handover.developer_id,
                developer_amount,
                TransactionCategory.ESCROW_RELEASE,
                f"Escrow release for property #{handover.property_id}",
                reference=f"escrow_{escrow.id}_developer",
                title="Property sale proceeds",
                commit=False,
            )
        if creator_amount > 0 and handover.creator_id:
            await self.wallets.credit(
                handover.creator_id,
                creator_amount,
                TransactionCategory.COMMISSION,
                f"Commission for property #{handover.property_id}",
                reference=f"escrow_{escrow.id}_creator",
                title="Promotion commission",
                commit=False,
            )

        escrow.status = EscrowStatus.RELEASED
        escrow.released_at = now
        logger.info(
            "Escrow released",
            extra_data={
                "escrow_id": escrow.id,
                "developer_amount": str(developer_amount),
                "creator_amount": str(creator_amount),
            },
        )

    # ---- signatures ----

    def verify_signature(self, handover: Handover, signer: str) -> bool:
        if signer == PLATFORM_SIGNER:
            signature, ts = handover.reach_signature, handover.reach_signature_ts
            user_id = PLATFORM_USER_ID
        else:
            signature, ts = handover.buyer_signature, handover.buyer_signature_ts
            user_id = handover.buyer_id
        if not signature or ts is None:
            return False
        return verify_document_signature(signature, handover.id, user_id, signer, ts)

