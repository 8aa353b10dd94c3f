"""
Tests for amount validation, fees and kobo conversion (reach/core/money.py)
"""
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from reach.core.config import settings
from reach.core.exceptions import ErrorCode, ValidationException
from reach.core.money import (
    AmountKind,
    calculate_deposit_fee,
    calculate_withdrawal_fee,
    format_naira,
    from_kobo,
    generate_transaction_reference,
    to_kobo,
    validate_amount,
)


class TestValidateAmount:
    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [None, "", "abc", "NaN", "Infinity", True])
    def test_rejects_non_numeric(self, raw):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount(raw, AmountKind.DEPOSIT)
        assert exc_info.value.details["field"] == "amount"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [0, -100, "-0.01"])
    def test_rejects_zero_and_negative(self, raw):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount(raw, AmountKind.DEPOSIT)
        assert exc_info.value.error_code == ErrorCode.INVALID_AMOUNT
        assert "greater than zero" in exc_info.value.message

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [1e30, "1e30", "-1e30", "1000000000000000"])
    @pytest.mark.parametrize("kind", [AmountKind.DEPOSIT, AmountKind.WITHDRAWAL])
    def test_rejects_amounts_too_large_to_quantize(self, raw, kind):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount(raw, kind)
        assert exc_info.value.error_code == ErrorCode.INVALID_AMOUNT
        assert exc_info.value.message == "Amount is out of range"

    @pytest.mark.unit
    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount("1500.555", AmountKind.WITHDRAWAL)
        assert "2 decimal places" in exc_info.value.message

    @pytest.mark.unit
    def test_deposit_below_minimum(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount("99.99", AmountKind.DEPOSIT)
        assert exc_info.value.message == "Minimum deposit amount is ₦100.00"

    @pytest.mark.unit
    def test_withdrawal_above_maximum(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_amount("5000000.01", AmountKind.WITHDRAWAL)
        assert exc_info.value.message == "Maximum withdrawal amount is ₦5,000,000.00"

    @pytest.mark.unit
    def test_accepts_bounds_and_strings(self):
        assert validate_amount("100", AmountKind.DEPOSIT) == Decimal("100.00")
        assert validate_amount(1000, AmountKind.WITHDRAWAL) == Decimal("1000.00")
        assert validate_amount(2500.5, AmountKind.WITHDRAWAL) == Decimal("2500.50")


class TestFees:
    @pytest.mark.unit
    def test_withdrawal_fee_flat_plus_percent(self):
        # 50 + 0.5% of 10,000
        assert calculate_withdrawal_fee(Decimal("10000")) == Decimal("100.00")

    @pytest.mark.unit
    def test_withdrawal_fee_capped(self):
        assert calculate_withdrawal_fee(Decimal("5000000")) == settings.WITHDRAWAL_FEE_CAP

    @pytest.mark.unit
    def test_deposit_fee_percent_and_cap(self):
        assert calculate_deposit_fee(Decimal("10000")) == Decimal("150.00")
        assert calculate_deposit_fee(Decimal("1000000")) == settings.DEPOSIT_FEE_CAP

    @pytest.mark.unit
    @given(st.decimals(min_value=1000, max_value=5_000_000, places=2))
    def test_withdrawal_fee_within_bounds(self, amount):
        fee = calculate_withdrawal_fee(amount)
        assert settings.WITHDRAWAL_FLAT_FEE <= fee <= settings.WITHDRAWAL_FEE_CAP
        assert amount - fee > 0


class TestKobo:
    @pytest.mark.unit
    def test_to_kobo(self):
        assert to_kobo(Decimal("1500.50")) == 150050
        assert to_kobo(Decimal("0.01")) == 1

    @pytest.mark.unit
    def test_from_kobo(self):
        assert from_kobo(150050) == Decimal("1500.50")

    @pytest.mark.unit
    @given(st.integers(min_value=0, max_value=10**12))
    def test_kobo_is_exact(self, kobo):
        assert to_kobo(from_kobo(kobo)) == kobo


@pytest.mark.unit
def test_format_naira():
    assert format_naira(Decimal("1234567.8")) == "₦1,234,567.80"


@pytest.mark.unit
def test_transaction_reference_shape():
    ref = generate_transaction_reference("withdrawal")
    assert ref.startswith("reach_withdrawal_")
    assert len(ref.rsplit("_", 1)[1]) == 32
    assert ref != generate_transaction_reference("withdrawal")
