"""
Wallet Model - per-user balance plus the withdrawal PIN gate

available_balance can be spent or withdrawn; locked_balance holds withdrawals that
the gateway has not settled yet.
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship

from reach.db.database import Base


class Wallet(Base):
    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("available_balance >= 0", name="ck_wallets_available_non_negative"),
        CheckConstraint("locked_balance >= 0", name="ck_wallets_locked_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    user_type = Column(String(20), nullable=False)

    available_balance = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    locked_balance = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    currency = Column(String(3), default="NGN", nullable=False)

    is_setup = Column(Boolean, default=False, nullable=False)
    pin_hash = Column(String(100), nullable=True)
    pin_attempts = Column(Integer, default=0, nullable=False)
    pin_locked_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    bank_accounts = relationship("BankAccount", back_populates="wallet")

    @property
    def total_balance(self) -> Decimal:
        return Decimal(self.available_balance or 0) + Decimal(self.locked_balance or 0)


class BankAccount(Base):
    """Payout destination. recipient_code is assigned by the gateway on first use."""

    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    bank_name = Column(String(100), nullable=False)
    bank_code = Column(String(10), nullable=False)
    account_number = Column(String(10), nullable=False)
    account_name = Column(String(150), nullable=False)
    recipient_code = Column(String(50), nullable=True)

    is_default = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    wallet = relationship("Wallet", back_populates="bank_accounts")

    @property
    def masked_account_number(self) -> str:
        return "******" + (self.account_number or "")[-4:]
