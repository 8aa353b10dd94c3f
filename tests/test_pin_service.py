"""
Unit tests for the withdrawal PIN gate (PinService).
"""
from datetime import datetime, timedelta

import pytest

from reach.core.config import settings
from reach.core.exceptions import (
    InvalidPinError,
    PinLockedError,
    RateLimitException,
    ValidationException,
    WalletNotSetUpError,
)
from reach.core.security import check_pin
from reach.db.models.user import UserRole
from reach.domain.services.pin_service import PinService


@pytest.mark.unit
async def test_setup_pin_creates_wallet(user_factory, db_session):
    user = await user_factory(role=UserRole.CREATOR)

    wallet = await PinService(db_session).setup_pin(user, "4821", "4821")

    assert wallet.user_id == user.id
    assert wallet.user_type == "creator"
    assert wallet.is_setup is True
    assert wallet.pin_hash != "4821"
    assert check_pin("4821", wallet.pin_hash)


@pytest.mark.unit
@pytest.mark.parametrize("pin,confirm", [("123", "123"), ("12a4", "12a4"), ("12345", "12345"), ("1234", "4321")])
async def test_setup_pin_rejects_bad_input(user_factory, db_session, pin, confirm):
    user = await user_factory()
    with pytest.raises(ValidationException):
        await PinService(db_session).setup_pin(user, pin, confirm)


@pytest.mark.unit
async def test_setup_pin_twice_rejected(user_factory, wallet_factory, db_session):
    user = await user_factory()
    await wallet_factory(user)

    with pytest.raises(ValidationException) as exc_info:
        await PinService(db_session).setup_pin(user, "5555", "5555")
    assert exc_info.value.message == "Wallet already set up"


@pytest.mark.unit
async def test_wrong_pin_counts_attempts(user_factory, wallet_factory, db_session):
    user = await user_factory()
    wallet = await wallet_factory(user)
    service = PinService(db_session)

    with pytest.raises(InvalidPinError) as exc_info:
        await service.verify_pin(wallet, "0000")

    assert exc_info.value.details["attempts_remaining"] == settings.PIN_MAX_ATTEMPTS - 1
    await db_session.refresh(wallet)
    assert wallet.pin_attempts == 1


@pytest.mark.unit
async def test_third_failure_locks_pin(user_factory, wallet_factory, db_session):
    user = await user_factory()
    wallet = await wallet_factory(user, pin_attempts=settings.PIN_MAX_ATTEMPTS - 1)

    with pytest.raises(PinLockedError) as exc_info:
        await PinService(db_session).verify_pin(wallet, "0000")

    assert "locked for 30 minutes" in exc_info.value.message
    await db_session.refresh(wallet)
    assert wallet.pin_locked_until is not None
    assert wallet.pin_locked_until > datetime.utcnow() + timedelta(minutes=29)


@pytest.mark.unit
async def test_locked_pin_rejects_even_correct_pin(user_factory, wallet_factory, db_session):
    user = await user_factory()
    wallet = await wallet_factory(
        user,
        pin_attempts=3,
        pin_locked_until=datetime.utcnow() + timedelta(minutes=10),
    )

    with pytest.raises(PinLockedError) as exc_info:
        await PinService(db_session).verify_pin(wallet, "1234")

    assert "Try again in" in exc_info.value.message
    assert wallet.pin_attempts == 3


@pytest.mark.unit
async def test_expired_lock_resets_counter(user_factory, wallet_factory, db_session):
    user = await user_factory()
    wallet = await wallet_factory(
        user,
        pin_attempts=3,
        pin_locked_until=datetime.utcnow() - timedelta(minutes=1),
    )

    await PinService(db_session).verify_pin(wallet, "1234")

    await db_session.refresh(wallet)
    assert wallet.pin_attempts == 0
    assert wallet.pin_locked_until is None


@pytest.mark.unit
async def test_correct_pin_clears_attempts(user_factory, wallet_factory, db_session):
    user = await user_factory()
    wallet = await wallet_factory(user, pin_attempts=2)

    await PinService(db_session).verify_pin(wallet, "1234")

    await db_session.refresh(wallet)
    assert wallet.pin_attempts == 0


@pytest.mark.unit
async def test_change_pin(user_factory, wallet_factory, db_session):
    user = await user_factory()
    await wallet_factory(user)
    service = PinService(db_session)

    wallet = await service.change_pin(user, "1234", "9876", "9876")

    assert check_pin("9876", wallet.pin_hash)
    assert not check_pin("1234", wallet.pin_hash)


@pytest.mark.unit
async def test_change_pin_requires_setup(user_factory, db_session):
    user = await user_factory()
    with pytest.raises(WalletNotSetUpError):
        await PinService(db_session).change_pin(user, "1234", "9876", "9876")


@pytest.mark.unit
async def test_verify_user_pin_requires_setup(user_factory, wallet_factory, db_session):
    user = await user_factory()
    await wallet_factory(user, pin=None)

    with pytest.raises(WalletNotSetUpError):
        await PinService(db_session).verify_user_pin(user, "1234")


@pytest.mark.unit
async def test_verify_user_pin_is_rate_limited(user_factory, wallet_factory, db_session, monkeypatch):
    monkeypatch.setattr(settings, "PIN_VERIFY_RATE_LIMIT", 2)
    user = await user_factory()
    await wallet_factory(user)
    service = PinService(db_session)

    await service.verify_user_pin(user, "1234")
    await service.verify_user_pin(user, "1234")
    with pytest.raises(RateLimitException) as exc_info:
        await service.verify_user_pin(user, "1234")

    assert exc_info.value.status_code == 429
    assert exc_info.value.retry_after_seconds == settings.PIN_VERIFY_RATE_WINDOW_SECONDS
