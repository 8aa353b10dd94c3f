"""
Property Model - listings that creators promote and buyers purchase
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum as SQLEnum, Text
from sqlalchemy.orm import relationship

from reach.db.database import Base


class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PropertyVisibility(str, enum.Enum):
    ALL_CREATORS = "all_creators"
    EXCLUSIVE_CREATORS = "exclusive_creators"
    PRIVATE = "private"


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    developer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    asking_price = Column(Numeric(16, 2), nullable=False)

    verification_status = Column(
        SQLEnum(
            VerificationStatus,
            name="property_verification_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=VerificationStatus.PENDING,
        nullable=False,
    )
    visibility = Column(
        SQLEnum(
            PropertyVisibility,
            name="property_visibility",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PropertyVisibility.ALL_CREATORS,
        nullable=False,
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    developer = relationship("User", foreign_keys=[developer_id])
