"""
Wallet API Routes - PIN, balance, deposits, withdrawals and bank accounts
"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reach.api.dependencies.auth import require_wallet_user
from reach.api.responses import envelope
from reach.db.database import get_db
from reach.db.models.user import User
from reach.db.models.wallet_transaction import (
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from reach.domain.services import BankAccountService, PinService, WalletService

router = APIRouter()


class PinSetupRequest(BaseModel):
    pin: str = ""
    confirm_pin: str = ""


class PinVerifyRequest(BaseModel):
    pin: str = ""


class PinChangeRequest(BaseModel):
    current_pin: str = ""
    new_pin: str = ""
    confirm_pin: str = ""


class DepositRequest(BaseModel):
    # left loose so the wallet rules produce the error message
    amount: Any = None
    callback_url: Optional[str] = None


class DepositVerifyRequest(BaseModel):
    reference: str = Field(..., min_length=1)


class WithdrawRequest(BaseModel):
    amount: Any = None
    bank_account_id: Optional[int] = None
    pin: Optional[str] = None
    narration: Optional[str] = Field(None, max_length=100)


class BankAccountRequest(BaseModel):
    bank_code: str
    account_number: str
    bank_name: Optional[str] = None


class TransactionResponse(BaseModel):
    id: int
    type: TransactionType
    category: TransactionCategory
    status: TransactionStatus
    amount: float
    fee: float
    net_amount: float
    currency: str
    reference: str
    title: str | None
    description: str | None
    bank_account_id: int | None
    gateway_status: str | None
    failure_reason: str | None
    extra: dict | None
    initiated_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None
    created_at: datetime | None

    class Config:
        from_attributes = True


class BankAccountResponse(BaseModel):
    id: int
    bank_name: str
    bank_code: str
    masked_account_number: str
    account_name: str
    is_default: bool
    is_verified: bool
    created_at: datetime | None

    class Config:
        from_attributes = True


def _balance_data(balance: dict[str, Any]) -> dict[str, Any]:
    return {
        "available_balance": float(balance["available_balance"]),
        "locked_balance": float(balance["locked_balance"]),
        "total_balance": float(balance["total_balance"]),
        "currency": balance["currency"],
        "is_setup": balance["is_setup"],
    }


# ---- PIN ----

@router.post("/setup", summary="Set up the wallet withdrawal PIN")
async def setup_wallet(
    body: PinSetupRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    await PinService(db).setup_pin(user, body.pin, body.confirm_pin)
    balance = await WalletService(db).get_balance(user)
    return envelope(_balance_data(balance), message="Wallet set up successfully")


@router.post("/verify-pin", summary="Check the withdrawal PIN")
async def verify_pin(
    body: PinVerifyRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    await PinService(db).verify_user_pin(user, body.pin)
    return envelope({"valid": True}, message="PIN verified")


@router.post("/change-pin", summary="Change the withdrawal PIN")
async def change_pin(
    body: PinChangeRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    await PinService(db).change_pin(user, body.current_pin, body.new_pin, body.confirm_pin)
    return envelope(message="PIN changed successfully")


# ---- balance and history ----

@router.get("/balance", summary="Available, locked and total balance")
async def get_balance(
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    balance = await WalletService(db).get_balance(user)
    return envelope(_balance_data(balance))


@router.get("/transactions", summary="Paginated wallet transaction history")
async def list_transactions(
    category: Optional[TransactionCategory] = None,
    status: Optional[TransactionStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transactions, total = await WalletService(db).list_transactions(
        user, category=category, status=status, limit=limit, offset=offset
    )
    return envelope({
        "transactions": [TransactionResponse.model_validate(t).model_dump(mode="json") for t in transactions],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await WalletService(db).get_transaction(user, transaction_id)
    return envelope(TransactionResponse.model_validate(transaction))


@router.post("/transactions/{transaction_id}/retry", summary="Retry a failed withdrawal")
async def retry_withdrawal(
    transaction_id: int,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await WalletService(db).retry_withdrawal(user, transaction_id)
    return envelope(TransactionResponse.model_validate(transaction), message="Withdrawal retry initiated")


# ---- deposits ----

@router.post("/deposit/initialize", summary="Start a card/bank deposit at the gateway")
async def initialize_deposit(
    body: DepositRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    result = await WalletService(db).initialize_deposit(user, body.amount, body.callback_url)
    return envelope({
        "authorization_url": result["authorization_url"],
        "access_code": result["access_code"],
        "reference": result["reference"],
        "amount": float(result["amount"]),
        "fee": float(result["fee"]),
    })


@router.post("/deposit/verify", summary="Confirm a deposit with the gateway and credit the wallet")
async def verify_deposit(
    body: DepositVerifyRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    service = WalletService(db)
    transaction = await service.verify_deposit(user, body.reference)
    balance = await service.get_balance(user)
    return envelope(
        {
            "transaction": TransactionResponse.model_validate(transaction).model_dump(mode="json"),
            "balance": _balance_data(balance),
        },
        message="Deposit successful",
    )


# ---- withdrawals ----

@router.post("/withdraw", summary="Withdraw to a saved bank account")
async def withdraw(
    body: WithdrawRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    transaction = await WalletService(db).initiate_withdrawal(
        user,
        amount=body.amount,
        bank_account_id=body.bank_account_id,
        pin=body.pin,
        narration=body.narration,
    )
    return envelope(TransactionResponse.model_validate(transaction), message="Withdrawal initiated")


# ---- bank accounts ----

@router.get("/banks", summary="Banks supported for payouts")
async def list_banks(
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    banks = await BankAccountService(db).list_banks()
    return envelope(banks)


@router.get("/bank-accounts")
async def list_bank_accounts(
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    accounts = await BankAccountService(db).list_accounts(user)
    return envelope([BankAccountResponse.model_validate(a) for a in accounts])


@router.post("/bank-accounts", status_code=201, summary="Add and verify a payout bank account")
async def add_bank_account(
    body: BankAccountRequest,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    account = await BankAccountService(db).add_account(
        user, body.bank_code, body.account_number, body.bank_name
    )
    return envelope(BankAccountResponse.model_validate(account), message="Bank account added")


@router.delete("/bank-accounts/{account_id}")
async def delete_bank_account(
    account_id: int,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    await BankAccountService(db).delete_account(user, account_id)
    return envelope(message="Bank account removed")


@router.post("/bank-accounts/{account_id}/default")
async def set_default_bank_account(
    account_id: int,
    user: User = Depends(require_wallet_user),
    db: AsyncSession = Depends(get_db),
):
    account = await BankAccountService(db).set_default(user, account_id)
    return envelope(BankAccountResponse.model_validate(account))
