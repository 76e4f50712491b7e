# tests/unit/test_fees.py

from decimal import Decimal

import pytest

from molle.domain.exceptions import InvalidFeeInputError
from molle.domain.fees import (
    FeePercentages,
    calculate_fees,
    clamp_percentage,
    quantize_money,
)


def _pct(**overrides) -> FeePercentages:
    values = {"user": 5, "host": 6, "platform": 10, "cgst": 9, "sgst": 9, "referral": 0}
    values.update(overrides)
    return FeePercentages(**{key: Decimal(str(value)) for key, value in values.items()})


# ---------------------
# PER-TICKET SPLIT
# ---------------------

def test_reference_split_for_hundred_rupee_ticket():
    breakdown = calculate_fees(Decimal("100"), _pct())

    assert breakdown.user_fee_amount == Decimal("5")
    assert breakdown.host_fee_amount == Decimal("6")
    assert breakdown.total_tax == Decimal("18")
    assert breakdown.ticket_price == Decimal("123")
    assert breakdown.host_gets == Decimal("94")
    assert breakdown.admin_gets == Decimal("11")
    assert breakdown.referral_amount == Decimal("0")


def test_platform_fee_is_reported_but_not_charged():
    breakdown = calculate_fees(Decimal("100"), _pct(platform=10))

    assert breakdown.platform_fee_amount == Decimal("10")
    assert breakdown.ticket_price == Decimal("123")


def test_referral_is_taken_from_host_share():
    breakdown = calculate_fees(Decimal("100"), _pct(referral=10))

    assert breakdown.host_gets_before_referral == Decimal("94")
    assert breakdown.referral_amount == Decimal("9.4")
    assert breakdown.host_gets == Decimal("84.6")
    # buyer price and platform margin do not move
    assert breakdown.ticket_price == Decimal("123")
    assert breakdown.admin_gets == Decimal("11")


def test_parties_account_for_the_whole_price():
    breakdown = calculate_fees(Decimal("799"), _pct(referral=3))

    taken = breakdown.host_gets + breakdown.referral_amount + breakdown.admin_gets
    collected = breakdown.ticket_price - breakdown.total_tax
    assert taken == collected


def test_free_ticket_costs_nothing():
    breakdown = calculate_fees(Decimal("0"), _pct(referral=10))

    assert breakdown.ticket_price == Decimal("0")
    assert breakdown.host_gets == Decimal("0")
    assert breakdown.admin_gets == Decimal("0")


def test_zero_percentages_pass_price_through():
    breakdown = calculate_fees(Decimal("250"), FeePercentages())

    assert breakdown.ticket_price == Decimal("250")
    assert breakdown.host_gets == Decimal("250")
    assert breakdown.admin_gets == Decimal("0")


def test_no_intermediate_rounding():
    breakdown = calculate_fees(Decimal("99.99"), _pct())

    assert breakdown.user_fee_amount == Decimal("4.9995")
    assert breakdown.ticket_price == Decimal("122.9877")
    assert quantize_money(breakdown.ticket_price) == Decimal("122.99")


def test_batch_totals_scale_every_amount():
    breakdown = calculate_fees(Decimal("100"), _pct()).times(3)

    assert breakdown.ticket_price == Decimal("369")
    assert breakdown.host_gets == Decimal("282")
    assert breakdown.admin_gets == Decimal("33")


def test_accepts_plain_numbers():
    breakdown = calculate_fees(100, _pct())

    assert breakdown.ticket_price == Decimal("123")


# ---------------------
# INPUT GUARDS
# ---------------------

def test_negative_price_is_rejected():
    with pytest.raises(InvalidFeeInputError):
        calculate_fees(Decimal("-1"), _pct())


def test_percentages_are_clamped():
    pct = FeePercentages(user=Decimal("-5"), host=Decimal("150"))

    assert pct.user == Decimal("0")
    assert pct.host == Decimal("100")
    assert calculate_fees(Decimal("100"), pct).host_gets == Decimal("0")


def test_clamp_leaves_valid_values_alone():
    assert clamp_percentage("12.5") == Decimal("12.5")


# ---------------------
# ROUNDING
# ---------------------

def test_quantize_rounds_half_up():
    assert quantize_money(Decimal("0.005")) == Decimal("0.01")
    assert quantize_money(Decimal("0.004")) == Decimal("0.00")
    assert quantize_money(Decimal("84.6")) == Decimal("84.60")
