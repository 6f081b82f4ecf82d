"""Loan parameter validation.

Turns the three free-text borrower inputs into a LoanParameters value,
or raises a LoanParameterError whose message can be shown to the user
as-is. Pure functions only: no network, no filesystem, no logging.

Accepted input:
    - Amounts may carry currency punctuation: "$250,000", " 50 000 ".
    - A leading minus sign parses, so negative amounts reach the range
      checks and produce NonPositivePriceError / NegativeDownPaymentError
      instead of InvalidNumberError.
    - ZIP codes must be exactly five ASCII digits after trimming.
"""

import re

from ratewatch.exceptions import (
    InvalidNumberError,
    InvalidZipError,
    NegativeDownPaymentError,
    NonPositivePriceError,
)
from ratewatch.models import LoanParameters

_CURRENCY_PUNCTUATION = re.compile(r"[$,\s]")
_INTEGER = re.compile(r"-?[0-9]+")
_ZIP_CODE = re.compile(r"[0-9]{5}")


def parse_amount(text: str) -> int | None:
    """Parse a currency amount into an integer.

    Args:
        text: Raw amount such as "$250,000".

    Returns:
        The integer value, or None if the text is not a whole number.
    """
    cleaned = _CURRENCY_PUNCTUATION.sub("", text)
    if not _INTEGER.fullmatch(cleaned):
        return None
    try:
        return int(cleaned)
    except ValueError:
        # Past the interpreter's integer string conversion limit
        return None


def validate(
    purchase_price_text: str,
    down_payment_text: str,
    zip_code_text: str,
) -> LoanParameters:
    """Validate and normalize borrower inputs.

    Args:
        purchase_price_text: Purchase price as typed by the user.
        down_payment_text: Down payment as typed by the user.
        zip_code_text: ZIP code as typed by the user.

    Returns:
        LoanParameters satisfying `is_valid()`.

    Raises:
        InvalidNumberError: If either amount is not a whole number.
        NonPositivePriceError: If the purchase price is zero or negative.
        NegativeDownPaymentError: If the down payment is negative.
        InvalidZipError: If the ZIP code is not exactly five digits.
    """
    purchase_price = parse_amount(purchase_price_text)
    if purchase_price is None:
        raise InvalidNumberError(field="purchase_price", value=purchase_price_text)

    down_payment = parse_amount(down_payment_text)
    if down_payment is None:
        raise InvalidNumberError(field="down_payment", value=down_payment_text)

    if purchase_price <= 0:
        raise NonPositivePriceError(purchase_price)

    if down_payment < 0:
        raise NegativeDownPaymentError(down_payment)

    zip_code = zip_code_text.strip()
    if not _ZIP_CODE.fullmatch(zip_code):
        raise InvalidZipError(zip_code_text)

    return LoanParameters(
        purchase_price=purchase_price,
        down_payment=down_payment,
        zip_code=zip_code,
    )
