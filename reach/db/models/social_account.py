"""
Social Account Models - verified creator profiles and tier history
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, BigInteger, String, Float, Numeric, DateTime, ForeignKey,
    Enum as SQLEnum, JSON, UniqueConstraint,
)

from reach.db.database import Base


class SocialPlatform(str, enum.Enum):
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TWITTER = "twitter"


class SocialAccount(Base):
    """Latest verified snapshot for one creator on one platform"""

    __tablename__ = "social_accounts"
    __table_args__ = (
        UniqueConstraint("creator_id", "platform", name="uq_social_accounts_creator_platform"),
    )

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    platform = Column(
        SQLEnum(
            SocialPlatform,
            name="social_platform",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    handle = Column(String(100), nullable=False)
    profile_url = Column(String(500), nullable=False)

    followers = Column(BigInteger, default=0, nullable=False)
    engagement_rate = Column(Float, nullable=True)  # percent, e.g. 3.2

    verified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CreatorAnalyticsHistory(Base):
    """Append-only record of every tier recomputation"""

    __tablename__ = "creator_analytics_history"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    total_followers = Column(BigInteger, default=0, nullable=False)
    avg_engagement = Column(Float, default=0.0, nullable=False)
    quality_score = Column(Float, default=0.0, nullable=False)
    tier = Column(Integer, nullable=True)
    commission_rate = Column(Numeric(4, 2), nullable=False)
    platforms = Column(JSON, nullable=True)
    trigger = Column(String(30), nullable=True)  # verify / disconnect / scheduled

    recorded_at = Column(DateTime, default=datetime.utcnow, index=True)
