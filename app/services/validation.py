"""Input validators for each dialog step.

Every validator normalizes the raw text, runs its checks in a fixed order and
either returns the normalized value or raises ``ValidationError`` with the
first failing check's message. Normalized output fed back in is accepted
unchanged.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Literal, Optional

from app.services.errors import ValidationError

MIN_TRANSFER_USD = Decimal("10")
MAX_TRANSFER_USD = Decimal("10000")
MIN_AGE_YEARS = 18
MAX_AGE_YEARS = 120

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOB_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
DIGITS_PATTERN = re.compile(r"^\d+$")

PaymentMethod = Literal["upi", "bank"]

PAYMENT_METHOD_CHOICES: dict[str, PaymentMethod] = {
    "1": "upi",
    "UPI": "upi",
    "2": "bank",
    "BANK": "bank",
    "BANK_ACCOUNT": "bank",
    "BANK ACCOUNT": "bank",
}
LINK_START_KEYWORDS = frozenset({"LINK BANK", "LINK", "CONNECT", "1"})


def _token(raw: str) -> str:
    return " ".join((raw or "").split()).upper()


def validate_name(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValidationError("Please enter your name.")
    if len(value) > 100:
        raise ValidationError("Name must be under 100 characters.")
    return value


def validate_email(raw: str) -> str:
    value = (raw or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValidationError("Please enter a valid email address.")
    return value


def calculate_age(born: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (born.month, born.day)
    return today.year - born.year - (0 if had_birthday else 1)


def validate_dob(raw: str, today: Optional[date] = None) -> str:
    """Accept DD/MM/YYYY for an adult; returns the same DD/MM/YYYY string."""
    value = (raw or "").strip()
    if not DOB_PATTERN.match(value):
        raise ValidationError("Please use DD/MM/YYYY format. Example: 15/08/1990")
    try:
        born = datetime.strptime(value, "%d/%m/%Y").date()
    except ValueError:
        raise ValidationError("Invalid date. Please check day and month.")
    age = calculate_age(born, today)
    if age < MIN_AGE_YEARS:
        raise ValidationError("You must be at least 18 years old.")
    if age > MAX_AGE_YEARS:
        raise ValidationError("Please enter a valid date of birth.")
    return value


def parse_dob(value: str) -> date:
    return datetime.strptime(value, "%d/%m/%Y").date()


def validate_address(raw: str) -> str:
    value = " ".join((raw or "").split())
    if len(value) < 5:
        raise ValidationError("Please enter address with city, state, and country.")
    return value


def validate_amount(raw: str) -> Decimal:
    cleaned = (raw or "").replace("$", "").replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValidationError("Please enter a valid number.")
    if not amount.is_finite():
        raise ValidationError("Please enter a valid number.")
    if amount <= 0:
        raise ValidationError("Amount must be positive.")
    if amount < MIN_TRANSFER_USD:
        raise ValidationError("Minimum amount is $10.")
    if amount > MAX_TRANSFER_USD:
        raise ValidationError("Maximum amount is $10,000.")
    if amount.normalize().as_tuple().exponent < -2:
        raise ValidationError("Maximum 2 decimal places allowed.")
    return amount.quantize(Decimal("0.01"))


def validate_upi_id(raw: str) -> str:
    value = (raw or "").strip().lower()
    if len(value) < 5:
        raise ValidationError("UPI ID is too short.")
    if "@" not in value:
        raise ValidationError("UPI ID must contain @. Example: name@paytm")
    return value


def validate_account_number(raw: str) -> str:
    value = re.sub(r"\s+", "", raw or "")
    if not DIGITS_PATTERN.match(value):
        raise ValidationError("Account number must contain only digits.")
    if not 9 <= len(value) <= 18:
        raise ValidationError("Account number must be 9-18 digits.")
    return value


def validate_ifsc(raw: str) -> str:
    value = (raw or "").strip().upper()
    if not IFSC_PATTERN.match(value):
        raise ValidationError("Invalid IFSC code. Example: SBIN0001234")
    return value


def validate_bank_name(raw: str) -> str:
    value = " ".join((raw or "").split())
    if len(value) < 2:
        raise ValidationError("Please enter a valid bank name.")
    return value


def validate_nickname(raw: str) -> str:
    value = " ".join((raw or "").split())
    if not value:
        raise ValidationError("Please enter a name for this recipient.")
    if len(value) > 50:
        raise ValidationError("Recipient name must be under 50 characters.")
    return value


def validate_payment_method(raw: str) -> PaymentMethod:
    method = PAYMENT_METHOD_CHOICES.get(_token(raw))
    if method is None:
        raise ValidationError("Reply 1 for UPI or 2 for Bank.")
    return method


def _choice_validator(choices: tuple[str, ...], message: str) -> Callable[[str], str]:
    def validate(raw: str) -> str:
        token = _token(raw)
        if token not in choices:
            raise ValidationError(message)
        return token

    return validate


validate_confirmation = _choice_validator(("YES", "NO"), "Reply YES or NO.")
validate_quote_action = _choice_validator(("CONFIRM", "CANCEL"), "Reply CONFIRM or CANCEL.")
validate_pay_action = _choice_validator(("PAY", "CANCEL"), "Reply PAY or CANCEL.")


def validate_link_start(raw: str) -> str:
    token = _token(raw)
    if token not in LINK_START_KEYWORDS:
        raise ValidationError("Reply LINK BANK to connect your bank account.")
    return token
