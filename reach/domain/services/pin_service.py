"""
Withdrawal PIN gate.

The attempt counter and lockout timestamp live on the wallet row. Counter changes are
committed before the error is raised, so a failed attempt survives the request.
"""
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.config import settings
from reach.core.exceptions import (
    InvalidPinError,
    PinLockedError,
    ValidationException,
    WalletNotSetUpError,
)
from reach.core.logging import get_logger
from reach.core.rate_limit import enforce_rate_limit
from reach.core.security import check_pin, hash_pin, is_valid_pin_format
from reach.db.models.user import User
from reach.db.models.wallet import Wallet

logger = get_logger(__name__)


def _minutes_left(locked_until: datetime, now: datetime) -> int:
    seconds = (locked_until - now).total_seconds()
    return max(1, -(-int(seconds) // 60))


class PinService:
    """Set up, change and verify the 4-digit withdrawal PIN"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_wallet(self, user_id: int) -> Wallet | None:
        result = await self.db.execute(select(Wallet).where(Wallet.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    def _validate_new_pin(pin: str, confirm_pin: str) -> None:
        if not is_valid_pin_format(pin):
            raise ValidationException("PIN must be exactly 4 digits", field="pin")
        if pin != confirm_pin:
            raise ValidationException("PINs do not match", field="confirm_pin")

    async def setup_pin(self, user: User, pin: str, confirm_pin: str) -> Wallet:
        self._validate_new_pin(pin, confirm_pin)

        wallet = await self._load_wallet(user.id)
        if wallet is None:
            wallet = Wallet(
                user_id=user.id,
                user_type=user.role.value,
                available_balance=Decimal("0.00"),
                locked_balance=Decimal("0.00"),
                currency=settings.CURRENCY,
            )
            self.db.add(wallet)
        elif wallet.is_setup:
            raise ValidationException("Wallet already set up")

        wallet.pin_hash = hash_pin(pin)
        wallet.is_setup = True
        wallet.pin_attempts = 0
        wallet.pin_locked_until = None
        await self.db.commit()
        await self.db.refresh(wallet)

        logger.info(
            "Wallet PIN set up",
            extra_data={"user_id": user.id, "wallet_id": wallet.id},
        )
        return wallet

    async def change_pin(
        self, user: User, current_pin: str, new_pin: str, confirm_pin: str
    ) -> Wallet:
        wallet = await self._load_wallet(user.id)
        if wallet is None or not wallet.is_setup or not wallet.pin_hash:
            raise WalletNotSetUpError()

        self._validate_new_pin(new_pin, confirm_pin)
        await self.verify_pin(wallet, current_pin)

        wallet.pin_hash = hash_pin(new_pin)
        await self.db.commit()

        logger.info("Wallet PIN changed", extra_data={"wallet_id": wallet.id})
        return wallet

    async def verify_pin(self, wallet: Wallet, pin: str) -> None:
        """
        Check ``pin`` against the wallet.

        Raises PinLockedError while locked (counter untouched) and when this attempt
        uses up the last try; InvalidPinError otherwise. A match clears the counter.
        """
        now = datetime.utcnow()

        if wallet.pin_locked_until is not None:
            if wallet.pin_locked_until > now:
                minutes = _minutes_left(wallet.pin_locked_until, now)
                raise PinLockedError(
                    f"PIN is locked. Try again in {minutes} minute(s).",
                    locked_until=wallet.pin_locked_until,
                )
            # lock window elapsed
            wallet.pin_attempts = 0
            wallet.pin_locked_until = None
            reset = True
        else:
            reset = False

        if not pin or not wallet.pin_hash or not check_pin(pin, wallet.pin_hash):
            attempts = (wallet.pin_attempts or 0) + 1
            wallet.pin_attempts = attempts

            if attempts >= settings.PIN_MAX_ATTEMPTS:
                wallet.pin_locked_until = now + timedelta(minutes=settings.PIN_LOCKOUT_MINUTES)
                await self.db.commit()
                logger.warning(
                    "Wallet PIN locked after failed attempts",
                    extra_data={"wallet_id": wallet.id, "attempts": attempts},
                )
                raise PinLockedError(
                    f"Too many failed attempts. PIN locked for {settings.PIN_LOCKOUT_MINUTES} minutes.",
                    locked_until=wallet.pin_locked_until,
                )

            await self.db.commit()
            raise InvalidPinError(attempts_remaining=settings.PIN_MAX_ATTEMPTS - attempts)

        if reset or wallet.pin_attempts:
            wallet.pin_attempts = 0
            await self.db.commit()

    async def verify_user_pin(self, user: User, pin: str) -> None:
        """Standalone PIN check for the client, rate limited per user"""
        await enforce_rate_limit(
            "pin_verify",
            user.id,
            settings.PIN_VERIFY_RATE_LIMIT,
            settings.PIN_VERIFY_RATE_WINDOW_SECONDS,
        )
        if not is_valid_pin_format(pin):
            raise ValidationException("PIN must be exactly 4 digits", field="pin")
        wallet = await self._load_wallet(user.id)
        if wallet is None or not wallet.is_setup or not wallet.pin_hash:
            raise WalletNotSetUpError()
        await self.verify_pin(wallet, pin)
