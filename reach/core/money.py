"""
Money helpers. All amounts are Decimal naira with two decimal places; the payment
gateway works in kobo.
"""
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum

from reach.core.config import settings
from reach.core.exceptions import ErrorCode, ValidationException

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
# quantizing to kobo needs this many digits to fit the default 28-digit context
MAX_AMOUNT_DIGITS = 15


class AmountKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


def quantize(amount: Decimal | int | float | str) -> Decimal:
    return Decimal(str(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_kobo(amount: Decimal) -> int:
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_kobo(kobo: int) -> Decimal:
    return quantize(Decimal(kobo) / 100)


def parse_amount(raw) -> Decimal:
    """Parse client input into a Decimal, rejecting non-numeric values."""
    if raw is None or raw == "":
        raise ValidationException("Amount is required", field="amount")
    if isinstance(raw, bool):
        raise ValidationException("Amount must be a number", field="amount")
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ValidationException("Amount must be a number", field="amount")
    if not value.is_finite():
        raise ValidationException("Amount must be a number", field="amount")
    if value.adjusted() >= MAX_AMOUNT_DIGITS:
        raise ValidationException(
            "Amount is out of range",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
        )
    return value


def validate_amount(raw, kind: AmountKind) -> Decimal:
    """
    Validate a deposit or withdrawal amount.

    Positive, at most two decimal places, and inside the configured bounds
    for ``kind``. Returns the quantized amount.
    """
    amount = parse_amount(raw)

    if amount <= 0:
        raise ValidationException(
            "Amount must be greater than zero",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
        )
    if amount != amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP):
        raise ValidationException(
            "Amount cannot have more than 2 decimal places",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
        )

    if kind == AmountKind.DEPOSIT:
        minimum, maximum = settings.MIN_DEPOSIT_AMOUNT, settings.MAX_DEPOSIT_AMOUNT
    else:
        minimum, maximum = settings.MIN_WITHDRAWAL_AMOUNT, settings.MAX_WITHDRAWAL_AMOUNT

    if amount < minimum:
        raise ValidationException(
            f"Minimum {kind.value} amount is {format_naira(minimum)}",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
            details={"minimum": str(minimum)},
        )
    if amount > maximum:
        raise ValidationException(
            f"Maximum {kind.value} amount is {format_naira(maximum)}",
            field="amount",
            error_code=ErrorCode.INVALID_AMOUNT,
            details={"maximum": str(maximum)},
        )
    return quantize(amount)


def calculate_withdrawal_fee(amount: Decimal) -> Decimal:
    """Flat fee plus a percentage, capped"""
    fee = settings.WITHDRAWAL_FLAT_FEE + amount * settings.WITHDRAWAL_FEE_PERCENT / 100
    return quantize(min(fee, settings.WITHDRAWAL_FEE_CAP))


def calculate_deposit_fee(amount: Decimal) -> Decimal:
    fee = amount * settings.DEPOSIT_FEE_PERCENT / 100
    return quantize(min(fee, settings.DEPOSIT_FEE_CAP))


def format_naira(amount: Decimal) -> str:
    return f"₦{quantize(amount):,.2f}"


def generate_transaction_reference(kind: str) -> str:
    return f"reach_{kind}_{uuid.uuid4().hex}"
