"""
Escrow Transaction Model - buyer funds held until the handover completes
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, Enum as SQLEnum, JSON

from reach.db.database import Base


class EscrowStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class EscrowTransaction(Base):
    __tablename__ = "escrow_transactions"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    developer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    amount = Column(Numeric(16, 2), nullable=False)
    status = Column(
        SQLEnum(EscrowStatus, name="escrow_status", values_callable=lambda x: [e.value for e in x]),
        default=EscrowStatus.HELD,
        nullable=False,
    )
    # {"developer_amount": ..., "creator_amount": ..., "platform_amount": ...}
    splits = Column(JSON, nullable=False, default=dict)

    released_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
