from datetime import date
from decimal import Decimal

import pytest

from app.services.errors import ValidationError
from app.services.validation import (
    calculate_age,
    validate_account_number,
    validate_address,
    validate_amount,
    validate_bank_name,
    validate_confirmation,
    validate_dob,
    validate_email,
    validate_ifsc,
    validate_link_start,
    validate_name,
    validate_nickname,
    validate_pay_action,
    validate_payment_method,
    validate_quote_action,
    validate_upi_id,
)

TODAY = date(2026, 6, 1)


def _message(validator, raw, **kwargs):
    with pytest.raises(ValidationError) as exc_info:
        validator(raw, **kwargs)
    return exc_info.value.message


class TestProfileValidators:
    def test_name_trimmed(self):
        assert validate_name("  Asha Rao ") == "Asha Rao"

    def test_empty_name(self):
        assert _message(validate_name, "   ") == "Please enter your name."

    def test_long_name(self):
        assert _message(validate_name, "x" * 101) == "Name must be under 100 characters."

    def test_email_lowercased(self):
        assert validate_email(" Asha@Example.COM ") == "asha@example.com"

    def test_bad_email(self):
        assert _message(validate_email, "asha@example") == "Please enter a valid email address."

    def test_dob_accepts_adult(self):
        assert validate_dob("15/08/1990", today=TODAY) == "15/08/1990"

    def test_dob_format(self):
        assert _message(validate_dob, "1990-08-15", today=TODAY) == "Please use DD/MM/YYYY format. Example: 15/08/1990"

    def test_dob_impossible_date(self):
        assert _message(validate_dob, "31/02/1990", today=TODAY) == "Invalid date. Please check day and month."

    def test_dob_minor(self):
        assert _message(validate_dob, "02/06/2008", today=TODAY) == "You must be at least 18 years old."

    def test_dob_turns_eighteen_today(self):
        assert validate_dob("01/06/2008", today=TODAY) == "01/06/2008"

    def test_dob_too_old(self):
        assert _message(validate_dob, "01/01/1900", today=TODAY) == "Please enter a valid date of birth."

    def test_age_before_birthday(self):
        assert calculate_age(date(1990, 12, 31), today=TODAY) == 35

    def test_address_minimum(self):
        assert _message(validate_address, "TX") == "Please enter address with city, state, and country."

    def test_address_collapses_whitespace(self):
        assert validate_address("12  Main St,\nAustin") == "12 Main St, Austin"


class TestAmount:
    def test_strips_currency_and_commas(self):
        assert validate_amount("$1,250.5") == Decimal("1250.50")

    def test_not_a_number(self):
        assert _message(validate_amount, "ten") == "Please enter a valid number."

    def test_infinity_rejected(self):
        assert _message(validate_amount, "Infinity") == "Please enter a valid number."

    def test_negative(self):
        assert _message(validate_amount, "-5") == "Amount must be positive."

    def test_below_minimum(self):
        assert _message(validate_amount, "9.99") == "Minimum amount is $10."

    def test_above_maximum(self):
        assert _message(validate_amount, "10000.01") == "Maximum amount is $10,000."

    def test_too_many_decimals(self):
        assert _message(validate_amount, "100.123") == "Maximum 2 decimal places allowed."

    def test_bounds_inclusive(self):
        assert validate_amount("10") == Decimal("10.00")
        assert validate_amount("10000") == Decimal("10000.00")

    def test_trailing_zeros_allowed(self):
        assert validate_amount("100.500") == Decimal("100.50")


class TestRecipientValidators:
    def test_upi_lowercased(self):
        assert validate_upi_id(" Mom@PayTM ") == "mom@paytm"

    def test_upi_short(self):
        assert _message(validate_upi_id, "a@b") == "UPI ID is too short."

    def test_upi_missing_at(self):
        assert _message(validate_upi_id, "mompaytm") == "UPI ID must contain @. Example: name@paytm"

    def test_account_number_spaces_removed(self):
        assert validate_account_number("1234 5678 90") == "1234567890"

    def test_account_number_letters(self):
        assert _message(validate_account_number, "12345abc90") == "Account number must contain only digits."

    def test_account_number_length(self):
        assert _message(validate_account_number, "12345678") == "Account number must be 9-18 digits."

    def test_ifsc_normalized_and_idempotent(self):
        normalized = validate_ifsc("hdfc0001234")
        assert normalized == "HDFC0001234"
        assert validate_ifsc(normalized) == normalized

    def test_ifsc_fifth_char_must_be_zero(self):
        assert _message(validate_ifsc, "HDFC1001234") == "Invalid IFSC code. Example: SBIN0001234"

    def test_bank_name(self):
        assert _message(validate_bank_name, "X") == "Please enter a valid bank name."

    def test_nickname_length(self):
        assert _message(validate_nickname, "n" * 51) == "Recipient name must be under 50 characters."

    @pytest.mark.parametrize(
        "raw,expected",
        [("1", "upi"), ("upi", "upi"), ("2", "bank"), ("bank account", "bank"), ("BANK_ACCOUNT", "bank")],
    )
    def test_payment_method(self, raw, expected):
        assert validate_payment_method(raw) == expected

    def test_payment_method_invalid(self):
        assert _message(validate_payment_method, "3") == "Reply 1 for UPI or 2 for Bank."


class TestChoiceValidators:
    def test_confirmation_case_insensitive(self):
        assert validate_confirmation(" yes ") == "YES"

    def test_confirmation_invalid(self):
        assert _message(validate_confirmation, "maybe") == "Reply YES or NO."

    def test_quote_action(self):
        assert validate_quote_action("confirm") == "CONFIRM"
        assert _message(validate_quote_action, "ok") == "Reply CONFIRM or CANCEL."

    def test_pay_action(self):
        assert validate_pay_action("Pay") == "PAY"
        assert _message(validate_pay_action, "send") == "Reply PAY or CANCEL."

    def test_link_start_keywords(self):
        assert validate_link_start("link  bank") == "LINK BANK"
        assert validate_link_start("connect") == "CONNECT"
        assert _message(validate_link_start, "later") == "Reply LINK BANK to connect your bank account."
