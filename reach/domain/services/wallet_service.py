"""
Wallet Service - the single owner of wallet balance mutations

Balance changes go through three primitives:

* ``_swap_balances``: compare-and-swap on both balances, used to lock withdrawal funds.
  A lost race raises BalanceUpdateConflictError; there is no retry loop.
* ``_release_lock``: relative update that drains ``locked_balance`` (floored at zero)
  and optionally restores the amount to ``available_balance``.
* ``credit``: relative credit to ``available_balance``.

Gateway outcomes flip the transaction status with a guarded UPDATE first, so a
webhook and a client-side verify cannot apply the same settlement twice.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.config import settings
from reach.core.exceptions import (
    BalanceUpdateConflictError,
    ConflictException,
    ErrorCode,
    ExternalServiceException,
    InsufficientBalanceError,
    NotFoundException,
    ServiceTimeoutError,
    ValidationException,
    WalletNotSetUpError,
)
from reach.core.logging import get_logger, log_async_operation
from reach.core.money import (
    ZERO,
    AmountKind,
    calculate_deposit_fee,
    calculate_withdrawal_fee,
    generate_transaction_reference,
    quantize,
    to_kobo,
    validate_amount,
)
from reach.core.rate_limit import enforce_rate_limit
from reach.core.security import is_valid_pin_format
from reach.db.models.user import User
from reach.db.models.wallet import BankAccount, Wallet
from reach.db.models.wallet_activity_log import WalletActivityLog
from reach.db.models.wallet_transaction import (
    OPEN_WITHDRAWAL_STATUSES,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from reach.domain.services.bank_account_service import BankAccountService
from reach.domain.services.payments import PaystackClient, get_payment_gateway
from reach.domain.services.pin_service import PinService
from reach.domain.services.withdrawal_limit_service import WithdrawalLimitService

logger = get_logger(__name__)

# a deposit the sweeper failed can still be settled if the gateway confirms it
SETTLEABLE_DEPOSIT_STATUSES = (TransactionStatus.PENDING, TransactionStatus.FAILED)


class WalletService:
    """Deposits, withdrawals and internal credits for one request's session"""

    def __init__(self, db: AsyncSession, gateway: PaystackClient | None = None):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.pins = PinService(db)
        self.limits = WithdrawalLimitService(db)
        self.bank_accounts = BankAccountService(db, self.gateway)

    # ---- reads ----

    async def get_wallet(self, user_id: int) -> Optional[Wallet]:
        result = await self.db.execute(select(Wallet).where(Wallet.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_or_create_wallet(self, user: User) -> Wallet:
        """Existing wallet, or a new unfunded one (flushed, not committed)"""
        wallet = await self.get_wallet(user.id)
        if wallet is None:
            wallet = Wallet(
                user_id=user.id,
                user_type=user.role.value,
                available_balance=ZERO,
                locked_balance=ZERO,
                currency=settings.CURRENCY,
            )
            self.db.add(wallet)
            await self.db.flush()
            logger.info(
                "Wallet created",
                extra_data={"user_id": user.id, "wallet_id": wallet.id},
            )
        return wallet

    async def get_balance(self, user: User) -> dict[str, Any]:
        wallet = await self.get_wallet(user.id)
        if wallet is None:
            return {
                "available_balance": ZERO,
                "locked_balance": ZERO,
                "total_balance": ZERO,
                "currency": settings.CURRENCY,
                "is_setup": False,
            }
        return {
            "available_balance": quantize(wallet.available_balance),
            "locked_balance": quantize(wallet.locked_balance),
            "total_balance": quantize(wallet.total_balance),
            "currency": wallet.currency,
            "is_setup": wallet.is_setup,
        }

    async def list_transactions(
        self,
        user: User,
        category: TransactionCategory | None = None,
        status: TransactionStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[WalletTransaction], int]:
        conditions = [WalletTransaction.user_id == user.id]
        if category is not None:
            conditions.append(WalletTransaction.category == category)
        if status is not None:
            conditions.append(WalletTransaction.status == status)

        total = await self.db.execute(
            select(func.count(WalletTransaction.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(WalletTransaction)
            .where(*conditions)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total.scalar() or 0)

    async def get_transaction(self, user: User, transaction_id: int) -> WalletTransaction:
        result = await self.db.execute(
            select(WalletTransaction).where(
                WalletTransaction.id == transaction_id,
                WalletTransaction.user_id == user.id,
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundException(
                "Transaction", transaction_id, error_code=ErrorCode.TRANSACTION_NOT_FOUND
            )
        return transaction

    async def _get_by_reference(
        self, reference: str, category: TransactionCategory
    ) -> Optional[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction).where(
                WalletTransaction.reference == reference,
                WalletTransaction.category == category,
            )
        )
        return result.scalar_one_or_none()

    # ---- balance primitives ----

    async def _swap_balances(
        self,
        wallet: Wallet,
        expected_available: Decimal,
        expected_locked: Decimal,
        new_available: Decimal,
        new_locked: Decimal,
    ) -> None:
        if new_available < 0 or new_locked < 0:
            raise InsufficientBalanceError(wallet.id, expected_available, expected_available - new_available)

        result = await self.db.execute(
            update(Wallet)
            .where(
                Wallet.id == wallet.id,
                Wallet.available_balance == expected_available,
                Wallet.locked_balance == expected_locked,
            )
            .values(
                available_balance=new_available,
                locked_balance=new_locked,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Wallet balance changed concurrently",
                extra_data={
                    "wallet_id": wallet.id,
                    "expected_available": str(expected_available),
                    "expected_locked": str(expected_locked),
                },
            )
            raise BalanceUpdateConflictError(wallet.id)

        await self.db.commit()
        await self.db.refresh(wallet)

    async def _release_lock(self, wallet_id: int, amount: Decimal, restore: bool) -> None:
        """Caller commits."""
        remaining = Wallet.locked_balance - amount
        values: dict[str, Any] = {
            "locked_balance": case((remaining < 0, 0), else_=remaining),
            "updated_at": datetime.utcnow(),
        }
        if restore:
            values["available_balance"] = Wallet.available_balance + amount

        await self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def _log_activity(
        self,
        wallet: Wallet,
        action: str,
        previous_balance: Decimal | None,
        new_balance: Decimal | None,
        amount_changed: Decimal | None,
        transaction_id: int | None = None,
        description: str | None = None,
        commit: bool = True,
    ) -> None:
        """Append an audit row. Never fails the money movement it describes."""
        entry = WalletActivityLog(
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            action=action,
            previous_balance=previous_balance,
            new_balance=new_balance,
            amount_changed=amount_changed,
            transaction_id=transaction_id,
            description=description,
        )
        if not commit:
            self.db.add(entry)
            return
        try:
            self.db.add(entry)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to write wallet activity log",
                extra_data={
                    "wallet_id": wallet.id,
                    "action": action,
                    "transaction_id": transaction_id,
                    "error": str(e),
                },
            )

    async def credit(
        self,
        user_id: int,
        amount: Decimal,
        category: TransactionCategory,
        description: str,
        reference: str | None = None,
        title: str | None = None,
        commit: bool = True,
    ) -> WalletTransaction:
        """
        Credit ``available_balance`` with a successful transaction.

        A repeated ``reference`` returns the existing transaction without crediting
        again. With ``commit=False`` everything is flushed into the caller's
        unit of work.
        """
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationException(
                "Amount must be greater than zero",
                field="amount",
                error_code=ErrorCode.INVALID_AMOUNT,
            )

        if reference:
            existing = await self.db.execute(
                select(WalletTransaction).where(WalletTransaction.reference == reference)
            )
            found = existing.scalar_one_or_none()
            if found is not None:
                return found

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        wallet = await self.get_or_create_wallet(user)
        previous = quantize(wallet.available_balance or ZERO)

        now = datetime.utcnow()
        transaction = WalletTransaction(
            wallet_id=wallet.id,
            user_id=user_id,
            type=TransactionType.CREDIT,
            category=category,
            status=TransactionStatus.SUCCESSFUL,
            amount=amount,
            fee=ZERO,
            net_amount=amount,
            currency=wallet.currency,
            title=title or category.value.replace("_", " ").capitalize(),
            description=description,
            reference=reference or generate_transaction_reference(category.value),
            processed_at=now,
            completed_at=now,
        )
        self.db.add(transaction)
        await self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .values(available_balance=Wallet.available_balance + amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.flush()

        if commit:
            await self.db.commit()
        await self.db.refresh(wallet)
        await self._log_activity(
            wallet,
            category.value,
            previous,
            quantize(wallet.available_balance),
            amount,
            transaction.id,
            description,
            commit=commit,
        )
        logger.info(
            "Wallet credited",
            extra_data={
                "wallet_id": wallet.id,
                "user_id": user_id,
                "category": category.value,
                "amount": str(amount),
                "reference": transaction.reference,
            },
        )
        return transaction

    # ---- deposits ----

    async def fail_stale_deposits(
        self, now: datetime | None = None, user_id: int | None = None
    ) -> int:
        """Fail pending deposits older than STALE_DEPOSIT_MINUTES. Returns the count."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=settings.STALE_DEPOSIT_MINUTES)

        stmt = update(WalletTransaction).where(
            WalletTransaction.category == TransactionCategory.DEPOSIT,
            WalletTransaction.status == TransactionStatus.PENDING,
            WalletTransaction.created_at < cutoff,
        )
        if user_id is not None:
            stmt = stmt.where(WalletTransaction.user_id == user_id)

        result = await self.db.execute(
            stmt.values(
                status=TransactionStatus.FAILED,
                failure_reason="Deposit abandoned before payment",
                failed_at=now,
                updated_at=now,
            ).execution_options(synchronize_session=False)
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(
                "Stale deposits failed",
                extra_data={"count": result.rowcount, "user_id": user_id},
            )
        return result.rowcount or 0

    @log_async_operation("initialize_deposit")
    async def initialize_deposit(
        self, user: User, amount: Any, callback_url: str | None = None
    ) -> dict[str, Any]:
        await enforce_rate_limit(
            "deposit", user.id, settings.DEPOSIT_RATE_LIMIT, settings.DEPOSIT_RATE_WINDOW_SECONDS
        )
        amount = validate_amount(amount, AmountKind.DEPOSIT)

        now = datetime.utcnow()
        await self.fail_stale_deposits(now=now, user_id=user.id)

        pending = await self.db.execute(
            select(WalletTransaction.reference).where(
                WalletTransaction.user_id == user.id,
                WalletTransaction.category == TransactionCategory.DEPOSIT,
                WalletTransaction.status == TransactionStatus.PENDING,
            ).limit(1)
        )
        pending_reference = pending.scalar_one_or_none()
        if pending_reference is not None:
            raise ConflictException(
                "A deposit is already in progress. Complete it or try again in a few minutes.",
                details={"reference": pending_reference},
            )

        wallet = await self.get_or_create_wallet(user)
        fee = calculate_deposit_fee(amount)
        transaction = WalletTransaction(
            wallet_id=wallet.id,
            user_id=user.id,
            type=TransactionType.CREDIT,
            category=TransactionCategory.DEPOSIT,
            status=TransactionStatus.PENDING,
            amount=amount,
            fee=fee,
            net_amount=amount,
            currency=wallet.currency,
            title="Wallet deposit",
            reference=generate_transaction_reference("deposit"),
        )
        self.db.add(transaction)
        await self.db.commit()
        await self.db.refresh(transaction)

        try:
            charge = await self.gateway.initialize_transaction(
                email=user.email,
                amount_kobo=to_kobo(amount),
                reference=transaction.reference,
                callback_url=callback_url or f"{settings.APP_BASE_URL}/wallet/deposit/callback",
                metadata={
                    "user_id": user.id,
                    "wallet_id": wallet.id,
                    "transaction_id": transaction.id,
                    "type": "wallet_deposit",
                },
            )
        except ExternalServiceException as e:
            transaction.status = TransactionStatus.FAILED
            transaction.failure_reason = e.message
            transaction.failed_at = datetime.utcnow()
            await self.db.commit()
            raise

        transaction.gateway_reference = charge.reference
        await self.db.commit()

        return {
            "authorization_url": charge.authorization_url,
            "access_code": charge.access_code,
            "reference": transaction.reference,
            "amount": amount,
            "fee": fee,
        }

    async def _settle_deposit(self, transaction: WalletTransaction, gateway_status: str) -> WalletTransaction:
        now = datetime.utcnow()
        flipped = await self.db.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == transaction.id,
                WalletTransaction.status.in_(SETTLEABLE_DEPOSIT_STATUSES),
            )
            .values(
                status=TransactionStatus.SUCCESSFUL,
                gateway_status=gateway_status,
                failure_reason=None,
                failed_at=None,
                processed_at=now,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            # settled by the other path
            await self.db.refresh(transaction)
            return transaction

        wallet = await self.db.get(Wallet, transaction.wallet_id)
        previous = quantize(wallet.available_balance)
        await self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet.id)
            .values(available_balance=Wallet.available_balance + transaction.amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(wallet)
        await self.db.refresh(transaction)

        await self._log_activity(
            wallet,
            "deposit",
            previous,
            quantize(wallet.available_balance),
            quantize(transaction.amount),
            transaction.id,
            f"Deposit {transaction.reference}",
        )
        logger.info(
            "Deposit settled",
            extra_data={
                "wallet_id": wallet.id,
                "reference": transaction.reference,
                "amount": str(transaction.amount),
            },
        )
        return transaction

    async def _reject_deposit(self, transaction: WalletTransaction, gateway_status: str, reason: str) -> None:
        if transaction.status == TransactionStatus.PENDING:
            transaction.status = TransactionStatus.FAILED
            transaction.gateway_status = gateway_status
            transaction.failure_reason = reason
            transaction.failed_at = datetime.utcnow()
            await self.db.commit()

    @log_async_operation("verify_deposit")
    async def verify_deposit(self, user: User, reference: str) -> WalletTransaction:
        result = await self.db.execute(
            select(WalletTransaction).where(
                WalletTransaction.reference == reference,
                WalletTransaction.user_id == user.id,
                WalletTransaction.category == TransactionCategory.DEPOSIT,
            )
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise NotFoundException(
                "Transaction", reference, error_code=ErrorCode.TRANSACTION_NOT_FOUND
            )
        if transaction.status == TransactionStatus.SUCCESSFUL:
            return transaction

        verification = await self.gateway.verify_transaction(reference)
        if not verification.is_successful:
            reason = verification.gateway_response or f"Payment {verification.status}"
            await self._reject_deposit(transaction, verification.status, reason)
            raise ValidationException(
                f"Payment was not successful: {reason}",
                details={"reference": reference, "gateway_status": verification.status},
            )
        if verification.amount_kobo < to_kobo(transaction.amount):
            await self._reject_deposit(transaction, verification.status, "Amount mismatch")
            logger.warning(
                "Deposit amount mismatch",
                extra_data={
                    "reference": reference,
                    "expected_kobo": to_kobo(transaction.amount),
                    "paid_kobo": verification.amount_kobo,
                },
            )
            raise ValidationException(
                "Paid amount does not match the deposit amount",
                details={"reference": reference},
            )

        return await self._settle_deposit(transaction, verification.status)

    async def settle_charge(
        self, reference: str, amount_kobo: int | None = None
    ) -> Optional[WalletTransaction]:
        """Webhook path of verify_deposit. Unknown references are ignored."""
        transaction = await self._get_by_reference(reference, TransactionCategory.DEPOSIT)
        if transaction is None:
            logger.warning("charge.success for unknown deposit", extra_data={"reference": reference})
            return None
        if transaction.status == TransactionStatus.SUCCESSFUL:
            return transaction
        if amount_kobo is not None and amount_kobo < to_kobo(transaction.amount):
            logger.warning(
                "charge.success amount below deposit amount",
                extra_data={"reference": reference, "paid_kobo": amount_kobo},
            )
            return None
        return await self._settle_deposit(transaction, "success")

    # ---- withdrawals ----

    async def _mark_failed(self, transaction: WalletTransaction, reason: str) -> None:
        transaction.status = TransactionStatus.FAILED
        transaction.failure_reason = reason
        transaction.failed_at = datetime.utcnow()
        await self.db.commit()

    async def _execute_withdrawal(
        self,
        wallet: Wallet,
        transaction: WalletTransaction,
        recipient_code: str,
        reason: str | None,
    ) -> WalletTransaction:
        """Lock the gross amount, send the net amount, compensate on gateway failure."""
        available = quantize(wallet.available_balance)
        locked = quantize(wallet.locked_balance)
        amount = quantize(transaction.amount)

        try:
            await self._swap_balances(wallet, available, locked, available - amount, locked + amount)
        except BalanceUpdateConflictError:
            await self._mark_failed(transaction, "Balance changed during withdrawal")
            raise

        await self._log_activity(
            wallet, "withdrawal_lock", available, quantize(wallet.available_balance),
            -amount, transaction.id, f"Withdrawal {transaction.reference}",
        )

        try:
            transfer = await self.gateway.initiate_transfer(
                amount_kobo=to_kobo(transaction.net_amount),
                recipient_code=recipient_code,
                reference=transaction.reference,
                reason=reason or "Reach wallet withdrawal",
            )
        except ServiceTimeoutError as e:
            # the gateway may have queued the transfer; keep the lock until its webhook lands
            transaction.status = TransactionStatus.PROCESSING
            transaction.gateway_status = "unknown"
            transaction.processed_at = datetime.utcnow()
            await self.db.commit()
            await self.db.refresh(transaction)
            logger.warning(
                "Withdrawal transfer timed out, awaiting gateway outcome",
                extra_data={
                    "wallet_id": wallet.id,
                    "reference": transaction.reference,
                    "error": e.message,
                },
            )
            return transaction
        except ExternalServiceException as e:
            await self._release_lock(wallet.id, amount, restore=True)
            await self._mark_failed(transaction, e.message)
            await self.db.refresh(wallet)
            await self._log_activity(
                wallet, "withdrawal_reversed", available - amount,
                quantize(wallet.available_balance), amount, transaction.id,
                "Transfer could not be initiated",
            )
            logger.warning(
                "Withdrawal transfer failed, funds restored",
                extra_data={
                    "wallet_id": wallet.id,
                    "reference": transaction.reference,
                    "error": e.message,
                },
            )
            raise

        now = datetime.utcnow()
        transaction.status = TransactionStatus.PROCESSING
        transaction.gateway_transfer_code = transfer.transfer_code
        transaction.gateway_reference = transfer.reference
        transaction.gateway_status = transfer.status
        transaction.processed_at = now
        await self.db.commit()
        await self.db.refresh(transaction)

        logger.info(
            "Withdrawal initiated",
            extra_data={
                "wallet_id": wallet.id,
                "reference": transaction.reference,
                "amount": str(amount),
                "net_amount": str(transaction.net_amount),
                "transfer_status": transfer.status,
            },
        )
        return transaction

    @log_async_operation("initiate_withdrawal")
    async def initiate_withdrawal(
        self,
        user: User,
        amount: Any,
        bank_account_id: int | None,
        pin: str | None,
        narration: str | None = None,
    ) -> WalletTransaction:
        await enforce_rate_limit(
            "withdraw", user.id, settings.WITHDRAW_RATE_LIMIT, settings.WITHDRAW_RATE_WINDOW_SECONDS
        )
        amount = validate_amount(amount, AmountKind.WITHDRAWAL)
        if not bank_account_id:
            raise ValidationException("Bank account is required", field="bank_account_id")
        if not is_valid_pin_format(pin):
            raise ValidationException("PIN must be exactly 4 digits", field="pin")

        wallet = await self.get_wallet(user.id)
        if wallet is None or not wallet.is_setup or not wallet.pin_hash:
            raise WalletNotSetUpError()

        await self.pins.verify_pin(wallet, pin)
        await self.limits.check(user, amount)

        fee = calculate_withdrawal_fee(amount)
        net_amount = amount - fee

        await self.db.refresh(wallet)
        if amount > wallet.available_balance:
            raise InsufficientBalanceError(wallet.id, quantize(wallet.available_balance), amount)

        account = await self.bank_accounts.get_account(user, bank_account_id)
        if account.wallet_id != wallet.id:
            raise NotFoundException(
                "Bank account", bank_account_id, error_code=ErrorCode.BANK_ACCOUNT_NOT_FOUND
            )
        recipient_code = await self.bank_accounts.ensure_recipient_code(account)

        transaction = WalletTransaction(
            wallet_id=wallet.id,
            user_id=user.id,
            bank_account_id=account.id,
            type=TransactionType.DEBIT,
            category=TransactionCategory.WITHDRAWAL,
            status=TransactionStatus.PENDING,
            amount=amount,
            fee=fee,
            net_amount=net_amount,
            locked_amount=amount,
            currency=wallet.currency,
            title=f"Withdrawal to {account.bank_name}",
            description=narration,
            reference=generate_transaction_reference("withdrawal"),
        )
        self.db.add(transaction)
        await self.db.commit()
        await self.db.refresh(transaction)
        await self.db.refresh(wallet)

        return await self._execute_withdrawal(wallet, transaction, recipient_code, narration)

    @log_async_operation("retry_withdrawal")
    async def retry_withdrawal(self, user: User, transaction_id: int) -> WalletTransaction:
        await enforce_rate_limit(
            "withdraw", user.id, settings.WITHDRAW_RATE_LIMIT, settings.WITHDRAW_RATE_WINDOW_SECONDS
        )
        original = await self.get_transaction(user, transaction_id)
        if (
            original.category != TransactionCategory.WITHDRAWAL
            or original.status != TransactionStatus.FAILED
        ):
            raise ValidationException("Only failed withdrawals can be retried")

        extra = dict(original.extra or {})
        if extra.get("retried_by"):
            raise ValidationException(
                "This withdrawal has already been retried",
                details={"retried_by": extra["retried_by"]},
            )
        retry_count = int(extra.get("retry_count", 0))
        if retry_count >= settings.MAX_WITHDRAWAL_RETRIES:
            raise ValidationException(
                f"Maximum retry attempts ({settings.MAX_WITHDRAWAL_RETRIES}) reached"
            )

        account = None
        if original.bank_account_id is not None:
            result = await self.db.execute(
                select(BankAccount).where(
                    BankAccount.id == original.bank_account_id,
                    BankAccount.user_id == user.id,
                )
            )
            account = result.scalar_one_or_none()
        if account is None:
            raise ValidationException("Bank account for this withdrawal no longer exists")
        if not account.recipient_code:
            raise ValidationException("Bank account is not ready for transfers")

        wallet = await self.get_wallet(user.id)
        if wallet is None:
            raise WalletNotSetUpError()
        amount = quantize(original.amount)
        if amount > wallet.available_balance:
            raise InsufficientBalanceError(wallet.id, quantize(wallet.available_balance), amount)
        await self.limits.check(user, amount)

        retry = WalletTransaction(
            wallet_id=wallet.id,
            user_id=user.id,
            bank_account_id=account.id,
            type=TransactionType.DEBIT,
            category=TransactionCategory.WITHDRAWAL,
            status=TransactionStatus.PENDING,
            amount=amount,
            fee=original.fee,
            net_amount=original.net_amount,
            locked_amount=amount,
            currency=original.currency,
            title=original.title,
            description=original.description,
            reference=generate_transaction_reference("withdrawal"),
            extra={"retry_of": original.id, "retry_count": retry_count + 1},
        )
        self.db.add(retry)
        await self.db.flush()
        extra["retried_by"] = retry.id
        original.extra = extra
        await self.db.commit()
        await self.db.refresh(retry)
        await self.db.refresh(wallet)

        logger.info(
            "Retrying withdrawal",
            extra_data={
                "original_id": original.id,
                "retry_id": retry.id,
                "retry_count": retry_count + 1,
            },
        )
        return await self._execute_withdrawal(wallet, retry, account.recipient_code, retry.description)

    async def _resolve_withdrawal(
        self,
        reference: str,
        target: TransactionStatus,
        gateway_status: str,
        reason: str | None = None,
    ) -> Optional[WalletTransaction]:
        transaction = await self._get_by_reference(reference, TransactionCategory.WITHDRAWAL)
        if transaction is None:
            logger.warning(
                "Transfer event for unknown withdrawal",
                extra_data={"reference": reference, "target": target.value},
            )
            return None

        now = datetime.utcnow()
        values: dict[str, Any] = {"status": target, "gateway_status": gateway_status, "updated_at": now}
        if target == TransactionStatus.SUCCESSFUL:
            values["completed_at"] = now
        else:
            values["failed_at"] = now
            values["failure_reason"] = reason

        flipped = await self.db.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == transaction.id,
                WalletTransaction.status.in_(OPEN_WITHDRAWAL_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            await self.db.refresh(transaction)
            if target == TransactionStatus.SUCCESSFUL and transaction.status == TransactionStatus.FAILED:
                # paid out after the funds went back to the wallet
                transaction.extra = {**(transaction.extra or {}), "needs_reconciliation": True}
                transaction.gateway_status = gateway_status
                await self.db.commit()
                await self.db.refresh(transaction)
                logger.error(
                    "Transfer succeeded for a failed withdrawal",
                    extra_data={
                        "reference": reference,
                        "wallet_id": transaction.wallet_id,
                        "amount": str(transaction.amount),
                    },
                )
                return transaction
            logger.info(
                "Withdrawal already resolved",
                extra_data={"reference": reference, "status": transaction.status.value},
            )
            return transaction

        locked_amount = quantize(transaction.locked_amount or transaction.amount)
        restore = target == TransactionStatus.FAILED
        wallet = await self.db.get(Wallet, transaction.wallet_id)
        previous = quantize(wallet.available_balance)

        await self._release_lock(wallet.id, locked_amount, restore=restore)
        await self.db.commit()
        await self.db.refresh(wallet)
        await self.db.refresh(transaction)

        await self._log_activity(
            wallet,
            "withdrawal_failed" if restore else "withdrawal_completed",
            previous,
            quantize(wallet.available_balance),
            locked_amount if restore else ZERO,
            transaction.id,
            reason or f"Transfer {gateway_status}",
        )
        logger.info(
            "Withdrawal resolved",
            extra_data={
                "reference": reference,
                "status": target.value,
                "locked_amount": str(locked_amount),
            },
        )
        return transaction

    async def complete_withdrawal(self, reference: str, gateway_status: str = "success") -> Optional[WalletTransaction]:
        return await self._resolve_withdrawal(reference, TransactionStatus.SUCCESSFUL, gateway_status)

    async def fail_withdrawal(
        self, reference: str, reason: str, gateway_status: str = "failed"
    ) -> Optional[WalletTransaction]:
        return await self._resolve_withdrawal(reference, TransactionStatus.FAILED, gateway_status, reason)
