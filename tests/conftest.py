"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- An ASGI test client with the database dependency overridden
- In-memory Redis for rate limiting
- Test data factories (users, properties, wallets, bank accounts, escrows, links)
"""
# secrets must exist before reach.core.config is imported: DEBUG=False refuses to start without them
import os
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("SIGNING_SECRET", "test-signing-secret-for-handover-documents")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_reach_paystack_secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SOCIAL_ANALYTICS_API_KEY", "test-social-analytics-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from reach.core.auth import create_access_token
from reach.core.security import hash_pin
from reach.db.database import Base, get_db
from reach.db.models.escrow import EscrowTransaction
from reach.db.models.property import Property, PropertyVisibility, VerificationStatus
from reach.db.models.tracking_link import PromotionStatus, TrackingLink
from reach.db.models.user import User, UserRole
from reach.db.models.wallet import BankAccount, Wallet
from reach.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PIN = "1234"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer header for a user, as the auth backend would issue it"""
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}

    return _headers


# ============================================================================
# Test Data Factories
# ============================================================================

_email_counter = 0


def _next_email(role: UserRole) -> str:
    global _email_counter
    _email_counter += 1
    return f"{role.value}{_email_counter}@reach.test"


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    async def _create_user(
        role: UserRole = UserRole.BUYER,
        email: str | None = None,
        full_name: str | None = "Test User",
        is_active: bool = True,
        tier: int | None = None,
    ) -> User:
        user = User(
            email=email or _next_email(role),
            full_name=full_name,
            role=role,
            is_active=is_active,
            tier=tier,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def property_factory(db_session: AsyncSession):
    """Factory for creating test property listings"""
    async def _create_property(
        developer_id: int,
        title: str = "3 Bedroom Terrace, Lekki Phase 1",
        asking_price: Decimal = Decimal("85000000.00"),
        verification_status: VerificationStatus = VerificationStatus.VERIFIED,
        visibility: PropertyVisibility = PropertyVisibility.ALL_CREATORS,
    ) -> Property:
        prop = Property(
            developer_id=developer_id,
            title=title,
            location="Lagos",
            asking_price=asking_price,
            verification_status=verification_status,
            visibility=visibility,
        )
        db_session.add(prop)
        await db_session.commit()
        await db_session.refresh(prop)
        return prop

    return _create_property


@pytest.fixture
def wallet_factory(db_session: AsyncSession):
    """Factory for creating test wallets; ``pin`` set means the wallet is set up"""
    async def _create_wallet(
        user: User,
        available_balance: Decimal | str = "0.00",
        locked_balance: Decimal | str = "0.00",
        pin: str | None = TEST_PIN,
        pin_attempts: int = 0,
        pin_locked_until: datetime | None = None,
    ) -> Wallet:
        wallet = Wallet(
            user_id=user.id,
            user_type=user.role.value,
            available_balance=Decimal(available_balance),
            locked_balance=Decimal(locked_balance),
            currency="NGN",
            is_setup=pin is not None,
            pin_hash=hash_pin(pin) if pin else None,
            pin_attempts=pin_attempts,
            pin_locked_until=pin_locked_until,
        )
        db_session.add(wallet)
        await db_session.commit()
        await db_session.refresh(wallet)
        return wallet

    return _create_wallet


@pytest.fixture
def bank_account_factory(db_session: AsyncSession):
    """Factory for creating payout bank accounts"""
    async def _create_bank_account(
        wallet: Wallet,
        account_number: str = "0123456789",
        bank_code: str = "058",
        bank_name: str = "GTBank",
        recipient_code: str | None = "RCP_test123",
        is_default: bool = True,
    ) -> BankAccount:
        account = BankAccount(
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            bank_name=bank_name,
            bank_code=bank_code,
            account_number=account_number,
            account_name="ADA OKAFOR",
            recipient_code=recipient_code,
            is_default=is_default,
            is_verified=True,
        )
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _create_bank_account


@pytest.fixture
def link_factory(db_session: AsyncSession):
    """Factory for creating tracking links"""
    counter = {"n": 0}

    async def _create_link(
        creator_id: int,
        property_id: int,
        status: PromotionStatus = PromotionStatus.ACTIVE,
        expires_at: datetime | None = None,
        unique_code: str | None = None,
    ) -> TrackingLink:
        counter["n"] += 1
        link = TrackingLink(
            creator_id=creator_id,
            property_id=property_id,
            unique_code=unique_code or f"code{counter['n']:012d}",
            status=status,
            expires_at=expires_at,
        )
        db_session.add(link)
        await db_session.commit()
        await db_session.refresh(link)
        return link

    return _create_link


@pytest.fixture
def escrow_factory(db_session: AsyncSession):
    """Factory for creating held escrow transactions"""
    async def _create_escrow(
        property_id: int,
        buyer_id: int,
        developer_id: int,
        creator_id: int | None = None,
        amount: Decimal = Decimal("85000000.00"),
        splits: dict | None = None,
    ) -> EscrowTransaction:
        escrow = EscrowTransaction(
            property_id=property_id,
            buyer_id=buyer_id,
            developer_id=developer_id,
            creator_id=creator_id,
            amount=amount,
            splits=splits if splits is not None else {
                "developer_amount": "81600000.00",
                "creator_amount": "1700000.00",
                "platform_amount": "1700000.00",
            },
        )
        db_session.add(escrow)
        await db_session.commit()
        await db_session.refresh(escrow)
        return escrow

    return _create_escrow


# ============================================================================
# Sample Test Data
# ============================================================================

@pytest.fixture
async def sample_developer(user_factory) -> User:
    return await user_factory(role=UserRole.DEVELOPER, full_name="Sample Developer")


@pytest.fixture
async def sample_creator(user_factory) -> User:
    return await user_factory(role=UserRole.CREATOR, full_name="Sample Creator", tier=2)


@pytest.fixture
async def sample_buyer(user_factory) -> User:
    return await user_factory(role=UserRole.BUYER, full_name="Sample Buyer")


@pytest.fixture
async def sample_admin(user_factory) -> User:
    return await user_factory(role=UserRole.ADMIN, full_name="Sample Admin")


@pytest.fixture
async def sample_property(property_factory, sample_developer) -> Property:
    return await property_factory(developer_id=sample_developer.id)


@pytest.fixture
def future() -> datetime:
    return datetime.utcnow() + timedelta(days=30)


# ============================================================================
# Circuit Breaker Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from reach.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


class FakeRedis:
    """In-memory stand-in for Redis with TTL tracking."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def incr(self, key: str) -> int:
        current = self._store.get(key)
        new_val = int(current) + 1 if current is not None else 1
        self._store[key] = str(new_val)
        return new_val

    async def expire(self, key: str, ttl: int) -> None:
        if key in self._store:
            self._ttls[key] = ttl

    async def ttl(self, key: str) -> int:
        if key not in self._store:
            return -2
        return self._ttls.get(key, -1)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._store.pop(key, None)
            self._ttls.pop(key, None)

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with FakeRedis for every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("reach.core.redis_client.get_redis", _get_fake_redis), \
         patch("reach.core.rate_limit.get_redis", _get_fake_redis):
        yield _fake
