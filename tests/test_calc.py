from decimal import Decimal

import pytest

from cfd_sync.calc import (
    assert_numeric,
    calculate_collateral,
    calculate_new_notional,
    creator_fee,
    cut_off_price,
    from_ledger_scale,
    joiner_fee,
    to_ledger_scale,
    to_whole_units,
)
from cfd_sync.errors import DivisionByZero, InvalidNumericInput

NOTIONAL = Decimal("100000")
STRIKE = Decimal("1000")
DEPOSIT_1X = NOTIONAL
DEPOSIT_5X = NOTIONAL / 5


def collateral(market_price, deposit, buyer_side):
    return calculate_collateral(
        strike_price=STRIKE,
        market_price=market_price,
        notional_amount=NOTIONAL,
        deposit_balance=deposit,
        calc_buyer_side=buyer_side,
    )


def cutoff(deposit, buyer_side, notional=NOTIONAL):
    return cut_off_price(
        strike_price=STRIKE,
        notional_amount=notional,
        deposit_balance=deposit,
        buyer_side=buyer_side,
    )


def test_to_ledger_scale_matches_contract_format():
    assert to_ledger_scale("11.8209", 18) == Decimal("11820900000000000000")
    assert to_ledger_scale(Decimal("0.5"), 0) == Decimal("0.5")
    assert from_ledger_scale(11820900000000000000, 18) == Decimal("11.8209")


@pytest.mark.parametrize("decimals", [0, 1, 6, 18, 30])
def test_ledger_scale_round_trip(decimals):
    value = Decimal("123456789012345678901234567890")
    assert to_ledger_scale(from_ledger_scale(value, decimals), decimals) == value


@pytest.mark.parametrize("bad", [1.5, True, None, "abc", "", "NaN", "Infinity", [1]])
def test_rejects_non_exact_numeric_input(bad):
    with pytest.raises(InvalidNumericInput):
        to_ledger_scale(bad, 18)


def test_rejects_bad_decimals():
    with pytest.raises(InvalidNumericInput):
        to_ledger_scale("1", -1)
    with pytest.raises(InvalidNumericInput):
        from_ledger_scale("1", 2.0)


def test_assert_numeric_accepts_strings_ints_and_decimals():
    assert assert_numeric(" 42.10 ") == Decimal("42.10")
    assert assert_numeric(7) == Decimal(7)
    assert assert_numeric(Decimal("-3.5")) == Decimal("-3.5")


def test_collateral_unchanged_when_price_unchanged():
    for deposit in (DEPOSIT_1X, DEPOSIT_5X):
        assert collateral(STRIKE, deposit, True) == deposit
        assert collateral(STRIKE, deposit, False) == deposit


def test_collateral_price_rise_and_fall_at_1x():
    up = STRIKE * Decimal("1.1")
    down = STRIKE * Decimal("0.9")
    assert collateral(up, DEPOSIT_1X, True) == DEPOSIT_1X * Decimal("1.1")
    assert collateral(up, DEPOSIT_1X, False) == DEPOSIT_1X * Decimal("0.9")
    assert collateral(down, DEPOSIT_1X, True) == DEPOSIT_1X * Decimal("0.9")
    assert collateral(down, DEPOSIT_1X, False) == DEPOSIT_1X * Decimal("1.1")


def test_collateral_price_moves_at_5x():
    up = STRIKE * Decimal("1.1")
    down = STRIKE * Decimal("0.9")
    assert collateral(up, DEPOSIT_5X, True) == DEPOSIT_5X * Decimal("1.5")
    assert collateral(up, DEPOSIT_5X, False) == DEPOSIT_5X * Decimal("0.5")
    assert collateral(down, DEPOSIT_5X, True) == DEPOSIT_5X * Decimal("0.5")
    assert collateral(down, DEPOSIT_5X, False) == DEPOSIT_5X * Decimal("1.5")


@pytest.mark.parametrize("market_price", ["0.01", "333.333333", "1000", "1234.5678", "99999"])
def test_collateral_sides_sum_to_both_deposits(market_price):
    buyer = collateral(market_price, DEPOSIT_1X, True)
    seller = collateral(market_price, DEPOSIT_1X, False)
    assert buyer + seller == 2 * DEPOSIT_1X


def test_collateral_multiplies_before_dividing():
    result = calculate_collateral(
        strike_price="3",
        market_price="4",
        notional_amount="1",
        deposit_balance="0",
        calc_buyer_side=True,
    )
    assert result == Decimal("0.333333333333333333333333333333")


def test_cutoff_buyer_and_seller():
    assert cutoff(DEPOSIT_1X, True) == Decimal("50")
    assert cutoff(DEPOSIT_1X, False) == Decimal("1950")
    assert cutoff(DEPOSIT_5X, True) == Decimal("850")
    assert cutoff(DEPOSIT_5X, False) == Decimal("1150")


def test_cutoff_buyer_clamped_to_zero_below_1x_leverage():
    assert cutoff(NOTIONAL * 2, True) == 0
    assert cutoff(NOTIONAL * Decimal("1.05"), True) == 0
    # the seller side keeps growing
    assert cutoff(NOTIONAL * 2, False) == Decimal("2950")


def test_cutoff_zero_notional_raises_division_by_zero():
    with pytest.raises(DivisionByZero):
        cutoff(DEPOSIT_1X, True, notional=0)


def test_collateral_zero_strike_raises_division_by_zero():
    with pytest.raises(DivisionByZero):
        calculate_collateral(
            strike_price=0,
            market_price=1,
            notional_amount=1,
            deposit_balance=1,
            calc_buyer_side=True,
        )


def test_fees_are_exact():
    notional = Decimal("123456789.123456789123456789")
    assert creator_fee(notional) == notional * Decimal("0.003")
    assert joiner_fee(notional) == notional * Decimal("0.005")
    assert creator_fee("1000") == Decimal("3")
    assert joiner_fee(1000) == Decimal("5")


def test_new_notional_after_sale():
    assert calculate_new_notional(
        old_notional="100000", old_strike_price="1000", new_strike_price="1200"
    ) == Decimal("120000")


def test_to_whole_units_truncates():
    assert to_whole_units("1234.9999") == 1234
    assert to_whole_units(Decimal("5")) == 5
