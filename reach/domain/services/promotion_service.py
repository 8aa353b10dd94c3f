"""
Promotion Service - creator tracking links and their lifecycle

Status changes go through ``transition`` and PROMOTION_TRANSITIONS. Expiry is applied
lazily on every read and in bulk by the scheduled ``expire_due_promotions`` job.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from reach.core.config import settings
from reach.core.exceptions import (
    ErrorCode,
    InvalidStatusTransitionError,
    NotFoundException,
    ValidationException,
)
from reach.core.logging import get_logger
from reach.core.security import generate_tracking_code
from reach.db.models.property import Property, PropertyVisibility, VerificationStatus
from reach.db.models.tracking_link import PromotionStatus, TrackingLink
from reach.db.models.user import User
from reach.domain.transitions import PROMOTION_TRANSITIONS, is_valid_transition

logger = get_logger(__name__)

# lowest tier number allowed on exclusive listings
EXCLUSIVE_MIN_TIER = 3

_TIMESTAMP_FOR = {
    PromotionStatus.PAUSED: "paused_at",
    PromotionStatus.STOPPED: "stopped_at",
    PromotionStatus.EXPIRED: "expired_at",
}

# click actions that also bump a funnel counter
_ACTION_COUNTERS = {
    "lead_form": TrackingLink.leads,
    "inspection": TrackingLink.inspections,
}


@dataclass
class GeneratedLink:
    link: TrackingLink
    url: str
    created: bool


@dataclass(frozen=True)
class TrackingResult:
    tracked: bool
    reason: Optional[str] = None
    clicks: Optional[int] = None
    impressions: Optional[int] = None
    action: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


def promotion_url(code: str) -> str:
    return f"{settings.APP_BASE_URL}{settings.PROMOTION_LINK_PATH}/{code}"


def _rejection_message(current: PromotionStatus, target: PromotionStatus) -> str:
    if current == PromotionStatus.STOPPED:
        return "Promotion is already stopped. Stopped promotions cannot be changed."
    if current == target:
        return f"Promotion is already {current.value}"
    if target == PromotionStatus.PAUSED:
        return "Only active promotions can be paused"
    if target == PromotionStatus.ACTIVE:
        return (
            f'Cannot resume promotion. Current status is "{current.value}". '
            "Only paused or expired promotions can be resumed."
        )
    if target == PromotionStatus.EXPIRED:
        return "Only active promotions can expire"
    return f"Cannot change promotion from {current.value} to {target.value}"


class PromotionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ---- lifecycle ----

    def transition(
        self, link: TrackingLink, target: PromotionStatus, now: datetime | None = None
    ) -> None:
        """Apply ``target`` to ``link`` in memory; the caller commits."""
        now = now or datetime.utcnow()
        current = link.status

        if not is_valid_transition(PROMOTION_TRANSITIONS, current, target):
            raise InvalidStatusTransitionError(
                _rejection_message(current, target),
                current_status=current.value,
                target_status=target.value,
            )
        if (
            current == PromotionStatus.EXPIRED
            and target == PromotionStatus.ACTIVE
            and link.is_past_expiry(now)
        ):
            raise InvalidStatusTransitionError(
                "Cannot resume expired promotion. Please extend the expiration date first.",
                current_status=current.value,
                target_status=target.value,
            )

        link.status = target
        if target == PromotionStatus.ACTIVE:
            link.paused_at = None
            link.expired_at = None
        else:
            setattr(link, _TIMESTAMP_FOR[target], now)

        logger.info(
            "Promotion status changed",
            extra_data={
                "promotion_id": link.id,
                "creator_id": link.creator_id,
                "previous_status": current.value,
                "new_status": target.value,
            },
        )

    async def _apply_lazy_expiry(self, links: list[TrackingLink], now: datetime) -> None:
        expired = [
            link for link in links
            if link.status == PromotionStatus.ACTIVE and link.is_past_expiry(now)
        ]
        if not expired:
            return
        for link in expired:
            self.transition(link, PromotionStatus.EXPIRED, now)
        await self.db.commit()

    async def expire_due_promotions(self, now: datetime | None = None) -> int:
        """Bulk-expire active links whose expires_at has passed. Returns the count."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            update(TrackingLink)
            .where(
                TrackingLink.status == PromotionStatus.ACTIVE,
                TrackingLink.expires_at.is_not(None),
                TrackingLink.expires_at < now,
            )
            .values(status=PromotionStatus.EXPIRED, expired_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        count = result.rowcount or 0
        logger.info("Expired due promotions", extra_data={"count": count})
        return count

    # ---- creator operations ----

    async def generate_link(
        self,
        creator: User,
        property_id: int,
        expires_at: datetime | None = None,
    ) -> GeneratedLink:
        prop = await self.db.get(Property, property_id)
        if prop is None:
            raise NotFoundException("Property", property_id)
        if prop.verification_status != VerificationStatus.VERIFIED:
            raise ValidationException(
                "Property must be verified before promotion",
                error_code=ErrorCode.PROPERTY_NOT_ELIGIBLE,
            )
        if prop.visibility == PropertyVisibility.PRIVATE:
            raise ValidationException(
                "This property is not open for promotion",
                error_code=ErrorCode.PROPERTY_NOT_ELIGIBLE,
            )
        if prop.visibility == PropertyVisibility.EXCLUSIVE_CREATORS:
            if not creator.tier or creator.tier < EXCLUSIVE_MIN_TIER:
                raise ValidationException(
                    "This property is exclusive to tier 3-4 creators",
                    error_code=ErrorCode.PROPERTY_NOT_ELIGIBLE,
                )
        if expires_at is not None and expires_at <= datetime.utcnow():
            raise ValidationException("Expiration date must be in the future", field="expires_at")

        existing = await self.db.execute(
            select(TrackingLink).where(
                TrackingLink.creator_id == creator.id,
                TrackingLink.property_id == property_id,
            )
        )
        link = existing.scalar_one_or_none()
        if link is not None:
            return GeneratedLink(link=link, url=promotion_url(link.unique_code), created=False)

        link = TrackingLink(
            creator_id=creator.id,
            property_id=property_id,
            unique_code=generate_tracking_code(creator.id, property_id),
            status=PromotionStatus.ACTIVE,
            expires_at=expires_at,
        )
        self.db.add(link)
        await self.db.commit()
        await self.db.refresh(link)

        logger.info(
            "Tracking link generated",
            extra_data={"creator_id": creator.id, "property_id": property_id, "promotion_id": link.id},
        )
        return GeneratedLink(link=link, url=promotion_url(link.unique_code), created=True)

    async def list_promotions(
        self, creator: User, status: PromotionStatus | None = None
    ) -> list[TrackingLink]:
        result = await self.db.execute(
            select(TrackingLink)
            .options(joinedload(TrackingLink.property))
            .where(TrackingLink.creator_id == creator.id)
            .order_by(TrackingLink.created_at.desc(), TrackingLink.id.desc())
        )
        links = list(result.scalars().all())
        await self._apply_lazy_expiry(links, datetime.utcnow())

        if status is not None:
            links = [link for link in links if link.status == status]
        return links

    async def get_promotion(self, creator: User, promotion_id: int) -> TrackingLink:
        result = await self.db.execute(
            select(TrackingLink)
            .options(joinedload(TrackingLink.property))
            .where(
                TrackingLink.id == promotion_id,
                TrackingLink.creator_id == creator.id,
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundException(
                "Promotion", promotion_id, error_code=ErrorCode.PROMOTION_NOT_FOUND
            )
        await self._apply_lazy_expiry([link], datetime.utcnow())
        return link

    async def update_status(
        self, creator: User, promotion_id: int, target: PromotionStatus
    ) -> TrackingLink:
        link = await self.get_promotion(creator, promotion_id)
        self.transition(link, target)
        await self.db.commit()
        return link

    async def pause(self, creator: User, promotion_id: int) -> TrackingLink:
        return await self.update_status(creator, promotion_id, PromotionStatus.PAUSED)

    async def resume(self, creator: User, promotion_id: int) -> TrackingLink:
        return await self.update_status(creator, promotion_id, PromotionStatus.ACTIVE)

    async def stop(self, creator: User, promotion_id: int) -> TrackingLink:
        return await self.update_status(creator, promotion_id, PromotionStatus.STOPPED)

    async def extend_expiry(
        self, creator: User, promotion_id: int, expires_at: datetime | None
    ) -> TrackingLink:
        """Move expires_at forward (or clear it). Expired links stay expired until resumed."""
        link = await self.get_promotion(creator, promotion_id)
        if link.status == PromotionStatus.STOPPED:
            raise InvalidStatusTransitionError(
                "Promotion is already stopped. Stopped promotions cannot be changed.",
                current_status=link.status.value,
                target_status=link.status.value,
            )
        if expires_at is not None and expires_at <= datetime.utcnow():
            raise ValidationException("Expiration date must be in the future", field="expires_at")

        link.expires_at = expires_at
        await self.db.commit()
        logger.info(
            "Promotion expiry extended",
            extra_data={"promotion_id": link.id, "expires_at": str(expires_at)},
        )
        return link

    # ---- public tracking ----

    async def _trackable_link(
        self, property_id: int, code: str, now: datetime
    ) -> tuple[Optional[TrackingLink], Optional[str]]:
        result = await self.db.execute(
            select(TrackingLink).where(
                TrackingLink.property_id == property_id,
                TrackingLink.unique_code == code,
            )
        )
        link = result.scalar_one_or_none()
        if link is None:
            return None, "Tracking link not found"

        if link.status == PromotionStatus.ACTIVE and not link.is_past_expiry(now):
            return link, None

        if link.status == PromotionStatus.ACTIVE:
            await self._apply_lazy_expiry([link], now)
        return None, f"Promotion is {link.status.value}"

    async def record_click(
        self, property_id: int, code: str, action: str | None = None
    ) -> TrackingResult:
        """Count a click on an active link. Never raises."""
        try:
            link, reason = await self._trackable_link(property_id, code, datetime.utcnow())
            if link is None:
                return TrackingResult(tracked=False, reason=reason)

            values: dict[str, Any] = {"clicks": TrackingLink.clicks + 1}
            counter = _ACTION_COUNTERS.get(action or "")
            if counter is not None:
                values[counter.key] = counter + 1
            await self.db.execute(
                update(TrackingLink)
                .where(TrackingLink.id == link.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            await self.db.refresh(link)
            return TrackingResult(tracked=True, clicks=link.clicks, action=action)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to record click",
                extra_data={"property_id": property_id, "error": str(e)},
            )
            return TrackingResult(tracked=False)

    async def record_impression(self, property_id: int, code: str) -> TrackingResult:
        """Count an impression on an active link. Never raises."""
        try:
            link, reason = await self._trackable_link(property_id, code, datetime.utcnow())
            if link is None:
                return TrackingResult(tracked=False, reason=reason)

            await self.db.execute(
                update(TrackingLink)
                .where(TrackingLink.id == link.id)
                .values(impressions=TrackingLink.impressions + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            await self.db.refresh(link)
            return TrackingResult(tracked=True, impressions=link.impressions)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to record impression",
                extra_data={"property_id": property_id, "error": str(e)},
            )
            return TrackingResult(tracked=False)

    async def resolve_code(self, code: str) -> TrackingLink:
        """Look up a shared code for the /p/<code> redirect"""
        result = await self.db.execute(
            select(TrackingLink)
            .options(joinedload(TrackingLink.property))
            .where(TrackingLink.unique_code == code)
        )
        link = result.scalar_one_or_none()
        if link is None:
            raise NotFoundException("Tracking link", code, error_code=ErrorCode.PROMOTION_NOT_FOUND)
        await self._apply_lazy_expiry([link], datetime.utcnow())
        return link
