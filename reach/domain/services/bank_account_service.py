"""
Bank Account Service - payout destinations for withdrawals
"""
import re
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.exceptions import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    ValidationException,
    WalletNotSetUpError,
)
from reach.core.logging import get_logger
from reach.db.models.user import User
from reach.db.models.wallet import BankAccount, Wallet
from reach.db.models.wallet_transaction import (
    OPEN_WITHDRAWAL_STATUSES,
    TransactionCategory,
    WalletTransaction,
)
from reach.domain.services.payments import PaystackClient, get_payment_gateway

logger = get_logger(__name__)

NUBAN_PATTERN = re.compile(r"^\d{10}$")


class BankAccountService:
    def __init__(self, db: AsyncSession, gateway: PaystackClient | None = None):
        self.db = db
        self.gateway = gateway or get_payment_gateway()

    async def _wallet_for(self, user: User) -> Wallet:
        result = await self.db.execute(select(Wallet).where(Wallet.user_id == user.id))
        wallet = result.scalar_one_or_none()
        if wallet is None:
            raise WalletNotSetUpError()
        return wallet

    async def list_accounts(self, user: User) -> list[BankAccount]:
        result = await self.db.execute(
            select(BankAccount)
            .where(BankAccount.user_id == user.id)
            .order_by(BankAccount.is_default.desc(), BankAccount.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_account(self, user: User, account_id: int) -> BankAccount:
        result = await self.db.execute(
            select(BankAccount).where(
                BankAccount.id == account_id,
                BankAccount.user_id == user.id,
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundException(
                "Bank account", account_id, error_code=ErrorCode.BANK_ACCOUNT_NOT_FOUND
            )
        return account

    async def add_account(
        self,
        user: User,
        bank_code: str,
        account_number: str,
        bank_name: str | None = None,
    ) -> BankAccount:
        """Resolve the account holder's name at the gateway and store the account."""
        account_number = (account_number or "").strip()
        bank_code = (bank_code or "").strip()
        if not NUBAN_PATTERN.match(account_number):
            raise ValidationException(
                "Account number must be exactly 10 digits", field="account_number"
            )
        if not bank_code:
            raise ValidationException("Bank code is required", field="bank_code")

        wallet = await self._wallet_for(user)

        existing = await self.db.execute(
            select(BankAccount.id).where(
                BankAccount.user_id == user.id,
                BankAccount.account_number == account_number,
                BankAccount.bank_code == bank_code,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictException("Bank account already added")

        resolved = await self.gateway.resolve_account(account_number, bank_code)
        if not resolved.account_name:
            raise ValidationException(
                "Could not resolve account name", field="account_number"
            )

        has_accounts = await self.db.execute(
            select(BankAccount.id).where(BankAccount.user_id == user.id).limit(1)
        )

        account = BankAccount(
            wallet_id=wallet.id,
            user_id=user.id,
            bank_name=bank_name or bank_code,
            bank_code=bank_code,
            account_number=account_number,
            account_name=resolved.account_name,
            is_default=has_accounts.scalar_one_or_none() is None,
            is_verified=True,
        )
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)

        logger.info(
            "Bank account added",
            extra_data={
                "user_id": user.id,
                "bank_account_id": account.id,
                "account_number": account_number,
            },
        )
        return account

    async def delete_account(self, user: User, account_id: int) -> None:
        account = await self.get_account(user, account_id)

        open_withdrawal = await self.db.execute(
            select(WalletTransaction.id).where(
                WalletTransaction.bank_account_id == account.id,
                WalletTransaction.category == TransactionCategory.WITHDRAWAL,
                WalletTransaction.status.in_(OPEN_WITHDRAWAL_STATUSES),
            ).limit(1)
        )
        if open_withdrawal.scalar_one_or_none() is not None:
            raise ConflictException(
                "Bank account has a withdrawal in progress and cannot be removed"
            )

        was_default = account.is_default
        await self.db.delete(account)
        await self.db.flush()

        if was_default:
            # promote the oldest remaining account
            remaining = await self.list_accounts(user)
            if remaining:
                remaining[0].is_default = True

        await self.db.commit()
        logger.info(
            "Bank account removed",
            extra_data={"user_id": user.id, "bank_account_id": account_id},
        )

    async def set_default(self, user: User, account_id: int) -> BankAccount:
        account = await self.get_account(user, account_id)
        await self.db.execute(
            update(BankAccount)
            .where(BankAccount.user_id == user.id, BankAccount.id != account.id)
            .values(is_default=False)
        )
        account.is_default = True
        await self.db.commit()
        await self.db.refresh(account)
        return account

    async def ensure_recipient_code(self, account: BankAccount) -> str:
        """Create the gateway transfer recipient on first use and persist its code."""
        if account.recipient_code:
            return account.recipient_code

        recipient = await self.gateway.create_transfer_recipient(
            account.account_name, account.account_number, account.bank_code
        )
        account.recipient_code = recipient.recipient_code
        await self.db.commit()

        logger.info(
            "Transfer recipient created",
            extra_data={"bank_account_id": account.id},
        )
        return recipient.recipient_code

    async def list_banks(self) -> list[dict[str, Any]]:
        return await self.gateway.list_banks()
