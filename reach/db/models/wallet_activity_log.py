"""
Wallet Activity Log - append-only audit trail of balance changes
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey

from reach.db.database import Base


class WalletActivityLog(Base):
    __tablename__ = "wallet_activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(50), nullable=False)

    previous_balance = Column(Numeric(14, 2), nullable=True)
    new_balance = Column(Numeric(14, 2), nullable=True)
    amount_changed = Column(Numeric(14, 2), nullable=True)

    transaction_id = Column(Integer, ForeignKey("wallet_transactions.id"), nullable=True)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
