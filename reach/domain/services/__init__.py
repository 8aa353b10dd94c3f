"""
Domain Services
"""
from reach.domain.services.wallet_service import WalletService
from reach.domain.services.pin_service import PinService
from reach.domain.services.withdrawal_limit_service import WithdrawalLimitService
from reach.domain.services.bank_account_service import BankAccountService
from reach.domain.services.promotion_service import PromotionService
from reach.domain.services.creator_tier_service import CreatorTierService
from reach.domain.services.handover_service import HandoverService

__all__ = [
    "WalletService",
    "PinService",
    "WithdrawalLimitService",
    "BankAccountService",
    "PromotionService",
    "CreatorTierService",
    "HandoverService",
]
