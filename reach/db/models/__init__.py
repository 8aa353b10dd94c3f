"""
Database Models
"""
from reach.db.models.user import User
from reach.db.models.property import Property
from reach.db.models.wallet import Wallet, BankAccount
from reach.db.models.wallet_transaction import WalletTransaction
from reach.db.models.wallet_activity_log import WalletActivityLog
from reach.db.models.withdrawal_limit import WithdrawalLimit
from reach.db.models.tracking_link import TrackingLink
from reach.db.models.social_account import SocialAccount, CreatorAnalyticsHistory
from reach.db.models.escrow import EscrowTransaction
from reach.db.models.handover import Handover, PropertyDocument, DocumentVault

__all__ = [
    "User",
    "Property",
    "Wallet",
    "BankAccount",
    "WalletTransaction",
    "WalletActivityLog",
    "WithdrawalLimit",
    "TrackingLink",
    "SocialAccount",
    "CreatorAnalyticsHistory",
    "EscrowTransaction",
    "Handover",
    "PropertyDocument",
    "DocumentVault",
]
