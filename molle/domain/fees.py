# molle/domain/fees.py

"""
Per-ticket fee arithmetic.

All amounts are Decimal at full precision. Nothing here rounds: callers
apply quantize_money once, when a value is persisted or rendered.
"""

from dataclasses import dataclass, fields
from decimal import ROUND_HALF_UP, Decimal

from molle.domain.exceptions import InvalidFeeInputError

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half up."""
    return to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def clamp_percentage(value) -> Decimal:
    pct = to_decimal(value)
    if pct < ZERO:
        return ZERO
    if pct > HUNDRED:
        return HUNDRED
    return pct


@dataclass(frozen=True)
class FeePercentages:
    """Resolved fee percentages for one event, each in [0, 100]."""

    user: Decimal = ZERO
    host: Decimal = ZERO
    platform: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    referral: Decimal = ZERO

    def __post_init__(self):
        for item in fields(self):
            object.__setattr__(self, item.name, clamp_percentage(getattr(self, item.name)))


@dataclass(frozen=True)
class FeeBreakdown:
    package_price: Decimal
    user_fee_amount: Decimal
    host_fee_amount: Decimal
    platform_fee_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    total_tax: Decimal
    ticket_price: Decimal
    host_gets_before_referral: Decimal
    referral_amount: Decimal
    host_gets: Decimal
    admin_gets: Decimal

    def times(self, quantity: int) -> "FeeBreakdown":
        """Scale every amount for a batch of identical tickets."""
        factor = Decimal(quantity)
        return FeeBreakdown(
            **{item.name: getattr(self, item.name) * factor for item in fields(self)}
        )

    def rounded(self) -> dict[str, Decimal]:
        return {item.name: quantize_money(getattr(self, item.name)) for item in fields(self)}


def calculate_fees(package_price, percentages: FeePercentages) -> FeeBreakdown:
    """
    Split one ticket's base price between buyer, host, platform and referrer.

    The buyer pays price + user fee + taxes. The host nets the price minus the
    host fee, minus the referral cut taken from that remainder. The platform
    keeps user fee + host fee.
    """
    price = to_decimal(package_price)
    if price < ZERO:
        raise InvalidFeeInputError(f"Package price cannot be negative: {price}")

    user_fee_amount = price * percentages.user / HUNDRED
    host_fee_amount = price * percentages.host / HUNDRED
    platform_fee_amount = price * percentages.platform / HUNDRED
    cgst_amount = price * percentages.cgst / HUNDRED
    sgst_amount = price * percentages.sgst / HUNDRED
    total_tax = cgst_amount + sgst_amount

    host_gets_before_referral = price - host_fee_amount
    referral_amount = host_gets_before_referral * percentages.referral / HUNDRED

    return FeeBreakdown(
        package_price=price,
        user_fee_amount=user_fee_amount,
        host_fee_amount=host_fee_amount,
        platform_fee_amount=platform_fee_amount,
        cgst_amount=cgst_amount,
        sgst_amount=sgst_amount,
        total_tax=total_tax,
        ticket_price=price + user_fee_amount + total_tax,
        host_gets_before_referral=host_gets_before_referral,
        referral_amount=referral_amount,
        host_gets=host_gets_before_referral - referral_amount,
        admin_gets=user_fee_amount + host_fee_amount,
    )
