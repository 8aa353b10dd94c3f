"""
Withdrawal Limit Model - per user type overrides of the configured defaults
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime

from reach.db.database import Base


class WithdrawalLimit(Base):
    __tablename__ = "withdrawal_limits"

    id = Column(Integer, primary_key=True, index=True)
    user_type = Column(String(20), unique=True, nullable=False)

    min_amount = Column(Numeric(14, 2), nullable=False)
    per_transaction = Column(Numeric(14, 2), nullable=False)
    daily = Column(Numeric(14, 2), nullable=False)
    monthly = Column(Numeric(14, 2), nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
