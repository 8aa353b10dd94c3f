"""
User Model - Buyers, Developers, Creators and Admins
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean

from reach.db.database import Base


class UserRole(str, enum.Enum):
    BUYER = "buyer"
    DEVELOPER = "developer"
    CREATOR = "creator"
    ADMIN = "admin"


# roles that own a wallet
WALLET_ROLES = frozenset({UserRole.BUYER, UserRole.DEVELOPER, UserRole.CREATOR})


class User(Base):
    """Marketplace account. Authentication itself lives with the auth backend."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(150), nullable=True)
    role = Column(
        SQLEnum(
            UserRole,
            name="user_role",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    # Creators only: 1 (best) to 4, NULL when disqualified or not yet verified
    tier = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def has_wallet_role(self) -> bool:
        return self.role in WALLET_ROLES
