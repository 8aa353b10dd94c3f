"""
Tracking Link Model - a creator's promotion of one property
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from reach.db.database import Base


class PromotionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"
    EXPIRED = "expired"


class TrackingLink(Base):
    __tablename__ = "tracking_links"
    __table_args__ = (
        UniqueConstraint("creator_id", "property_id", name="uq_tracking_links_creator_property"),
    )

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    unique_code = Column(String(32), unique=True, nullable=False, index=True)

    status = Column(
        SQLEnum(
            PromotionStatus,
            name="promotion_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PromotionStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    impressions = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    leads = Column(Integer, default=0, nullable=False)
    inspections = Column(Integer, default=0, nullable=False)
    conversions = Column(Integer, default=0, nullable=False)

    expires_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    stopped_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    property = relationship("Property")

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now
