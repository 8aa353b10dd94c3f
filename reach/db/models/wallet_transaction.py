"""
Wallet Transaction Model - one deposit, withdrawal or internal credit
"""
import enum
from decimal import Decimal
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Enum as SQLEnum, JSON, Text,
)
from sqlalchemy.orm import relationship

from reach.db.database import Base


class TransactionType(str, enum.Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ESCROW_RELEASE = "escrow_release"
    COMMISSION = "commission"
    REFUND = "refund"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESSFUL = "successful"
    FAILED = "failed"


# statuses that still hold funds in locked_balance (withdrawals)
OPEN_WITHDRAWAL_STATUSES = (TransactionStatus.PENDING, TransactionStatus.PROCESSING)


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)

    type = Column(
        SQLEnum(TransactionType, name="transaction_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    category = Column(
        SQLEnum(TransactionCategory, name="transaction_category", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )
    status = Column(
        SQLEnum(TransactionStatus, name="transaction_status", values_callable=lambda x: [e.value for e in x]),
        default=TransactionStatus.PENDING,
        nullable=False,
        index=True,
    )

    amount = Column(Numeric(14, 2), nullable=False)
    fee = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    # amount that reaches the bank (withdrawal) or the wallet (credit)
    net_amount = Column(Numeric(14, 2), nullable=False)
    # amount moved into locked_balance while a withdrawal is open
    locked_amount = Column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)
    currency = Column(String(3), default="NGN", nullable=False)

    title = Column(String(100), nullable=True)
    description = Column(String(500), nullable=True)
    reference = Column(String(80), unique=True, nullable=False, index=True)

    gateway_reference = Column(String(100), nullable=True)
    gateway_transfer_code = Column(String(100), nullable=True)
    gateway_status = Column(String(50), nullable=True)
    failure_reason = Column(Text, nullable=True)
    extra = Column(JSON, nullable=True)  # retry_of, retry_count, gateway payload bits

    initiated_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bank_account = relationship("BankAccount")
