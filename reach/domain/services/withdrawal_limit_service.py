"""
Withdrawal limits per user type.

A ``withdrawal_limits`` row overrides the configured defaults for its user type.
Daily and monthly usage counts every withdrawal that has not failed.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.config import settings
from reach.core.exceptions import WithdrawalLimitError
from reach.core.money import ZERO, format_naira, quantize
from reach.db.models.user import User
from reach.db.models.wallet_transaction import (
    TransactionCategory,
    TransactionStatus,
    WalletTransaction,
)
from reach.db.models.withdrawal_limit import WithdrawalLimit

COUNTED_STATUSES = (
    TransactionStatus.PENDING,
    TransactionStatus.PROCESSING,
    TransactionStatus.SUCCESSFUL,
)


@dataclass(frozen=True)
class Limits:
    min_amount: Decimal
    per_transaction: Decimal
    daily: Decimal
    monthly: Decimal


def default_limits() -> Limits:
    return Limits(
        min_amount=settings.MIN_WITHDRAWAL_AMOUNT,
        per_transaction=settings.MAX_WITHDRAWAL_AMOUNT,
        daily=settings.WITHDRAWAL_DAILY_LIMIT,
        monthly=settings.WITHDRAWAL_MONTHLY_LIMIT,
    )


class WithdrawalLimitService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_limits(self, user_type: str) -> Limits:
        result = await self.db.execute(
            select(WithdrawalLimit).where(WithdrawalLimit.user_type == user_type)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return default_limits()
        return Limits(
            min_amount=Decimal(row.min_amount),
            per_transaction=Decimal(row.per_transaction),
            daily=Decimal(row.daily),
            monthly=Decimal(row.monthly),
        )

    async def _withdrawn_since(self, user_id: int, since: datetime) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(WalletTransaction.amount), 0)).where(
                WalletTransaction.user_id == user_id,
                WalletTransaction.category == TransactionCategory.WITHDRAWAL,
                WalletTransaction.status.in_(COUNTED_STATUSES),
                WalletTransaction.created_at >= since,
            )
        )
        return quantize(result.scalar() or ZERO)

    async def check(self, user: User, amount: Decimal, now: datetime | None = None) -> Limits:
        """Raise WithdrawalLimitError when ``amount`` breaks any limit for the user."""
        now = now or datetime.utcnow()
        limits = await self.get_limits(user.role.value)

        if amount < limits.min_amount:
            raise WithdrawalLimitError(
                f"Minimum withdrawal amount is {format_naira(limits.min_amount)}",
                details={"min_amount": str(limits.min_amount)},
            )
        if amount > limits.per_transaction:
            raise WithdrawalLimitError(
                f"Maximum per transaction is {format_naira(limits.per_transaction)}",
                details={"per_transaction": str(limits.per_transaction)},
            )

        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        daily_used = await self._withdrawn_since(user.id, start_of_day)
        if daily_used + amount > limits.daily:
            remaining = max(limits.daily - daily_used, ZERO)
            raise WithdrawalLimitError(
                f"Daily withdrawal limit exceeded. You can withdraw up to "
                f"{format_naira(remaining)} more today.",
                details={"daily_limit": str(limits.daily), "remaining": str(remaining)},
            )

        start_of_month = start_of_day.replace(day=1)
        monthly_used = await self._withdrawn_since(user.id, start_of_month)
        if monthly_used + amount > limits.monthly:
            remaining = max(limits.monthly - monthly_used, ZERO)
            raise WithdrawalLimitError(
                f"Monthly withdrawal limit exceeded. You can withdraw up to "
                f"{format_naira(remaining)} more this month.",
                details={"monthly_limit": str(limits.monthly), "remaining": str(remaining)},
            )

        return limits
