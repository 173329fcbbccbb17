"""
Currency -- codes and the payment normalizer.
Responsibility:
    Converts a payment's entered amount and currency into EGP, the
    accounting currency, validating the rate that was supplied.
Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
Invariants enforced:
    - EGP payments carry no rate; amount_egp == amount_original.
    - Any other currency requires a positive rate, quantized to 4dp
      before use.
    - All money results are rounded to 2dp, half-up.
Failure modes:
    - ValidationError for an unknown currency, a non-positive or
      non-numeric amount, or a missing / non-positive rate.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from shipment_kernel.db.types import round_money, round_rate, to_decimal
from shipment_kernel.exceptions import ValidationError


class Currency(str, Enum):
    """Currencies the business deals in."""

    RMB = "RMB"
    EGP = "EGP"
    USD = "USD"


ACCOUNTING_CURRENCY = Currency.EGP


def parse_currency(value) -> Currency:
    """Read a currency code, case-insensitively."""
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).strip().upper())
    except ValueError:
        raise ValidationError(
            f"Unsupported currency {value!r}; expected one of "
            f"{', '.join(c.value for c in Currency)}",
            field="payment_currency",
        ) from None


@dataclass(frozen=True)
class NormalizedAmount:
    """A payment amount expressed in EGP."""

    currency: Currency
    amount_original: Decimal
    amount_egp: Decimal
    exchange_rate_to_egp: Decimal | None


def normalize_payment(
    payment_currency,
    amount_original,
    exchange_rate_to_egp=None,
) -> NormalizedAmount:
    """
    Convert an entered payment into EGP.

    Preconditions:
        - ``amount_original`` is a Decimal, int or numeric string (never float).
    Postconditions:
        - ``amount_original`` and ``amount_egp`` are 2dp.
        - ``exchange_rate_to_egp`` is None for EGP, else the 4dp rate applied.

    Raises:
        ValidationError: see module docstring.
    """
    currency = parse_currency(payment_currency)

    try:
        amount = to_decimal(amount_original, "amount_original")
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), field="amount_original") from None
    amount = round_money(amount)
    if amount <= 0:
        raise ValidationError(
            f"Payment amount must be positive, got {amount}",
            field="amount_original",
        )

    if currency == ACCOUNTING_CURRENCY:
        # A rate is meaningless for same-currency payments
        return NormalizedAmount(
            currency=currency,
            amount_original=amount,
            amount_egp=amount,
            exchange_rate_to_egp=None,
        )

    if exchange_rate_to_egp is None or exchange_rate_to_egp == "":
        raise ValidationError(
            f"{currency.value} payments require an exchange rate to EGP",
            field="exchange_rate_to_egp",
        )
    try:
        rate = to_decimal(exchange_rate_to_egp, "exchange_rate_to_egp")
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), field="exchange_rate_to_egp") from None
    rate = round_rate(rate)
    if rate <= 0:
        raise ValidationError(
            f"Exchange rate to EGP must be positive, got {rate}",
            field="exchange_rate_to_egp",
        )

    return NormalizedAmount(
        currency=currency,
        amount_original=amount,
        amount_egp=round_money(amount * rate),
        exchange_rate_to_egp=rate,
    )
