"""Fixed-point formulas mirroring the CFD contract math.

Everything runs in Decimal so values shown to a user never drift from what
the contract computes. Inputs must be Decimal, int or an exact decimal
string; floats are refused because they cannot hold the digit counts the
ledger uses (18 decimals on top of prices and notionals).

See ContractForDifference.sol calculateCollateralAmount(), cutOffPrice() and
calculateNewNotional() for the on-ledger versions.
"""

import decimal
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Union

from .errors import DivisionByZero, InvalidNumericInput

Numeric = Union[Decimal, int, str]

DECIMAL_PLACES = 30
MAX_DECIMALS = 77

CREATOR_FEE_RATE = Decimal("0.003")
JOINER_FEE_RATE = Decimal("0.005")
BUYER_CUTOFF_FACTOR = Decimal("1.05")
SELLER_CUTOFF_FACTOR = Decimal("0.95")

_CTX = decimal.Context(
    prec=80,
    rounding=ROUND_HALF_UP,
    traps=[decimal.InvalidOperation, decimal.DivisionByZero, decimal.Overflow],
)
_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)


def assert_numeric(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, str)):
        raise InvalidNumericInput(value)
    if isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except decimal.InvalidOperation:
            raise InvalidNumericInput(value, "not a decimal string") from None
    else:
        result = Decimal(value)
    if not result.is_finite():
        raise InvalidNumericInput(value, "not a finite number")
    return result


def _check_decimals(decimals: Any) -> int:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidNumericInput(decimals, "decimals must be an int")
    if decimals < 0 or decimals > MAX_DECIMALS:
        raise InvalidNumericInput(decimals, f"decimals must be within [0, {MAX_DECIMALS}]")
    return decimals


def _div(a: Decimal, b: Decimal) -> Decimal:
    if b == 0:
        raise DivisionByZero(f"division of {a} by zero")
    result = _CTX.divide(a, b)
    if result.as_tuple().exponent < -DECIMAL_PLACES:
        result = result.quantize(_QUANTUM, context=_CTX)
    return result


def _mul(a: Decimal, b: Decimal) -> Decimal:
    return _CTX.multiply(a, b)


def to_ledger_scale(value: Numeric, decimals: int) -> Decimal:
    """11.8209 with 18 decimals becomes 11820900000000000000."""
    return _CTX.scaleb(assert_numeric(value), _check_decimals(decimals))


def from_ledger_scale(value: Numeric, decimals: int) -> Decimal:
    return _CTX.scaleb(assert_numeric(value), -_check_decimals(decimals))


def to_whole_units(value: Numeric) -> int:
    return int(assert_numeric(value).to_integral_value(rounding=ROUND_DOWN))


def calculate_collateral(
    *,
    strike_price: Numeric,
    market_price: Numeric,
    notional_amount: Numeric,
    deposit_balance: Numeric,
    calc_buyer_side: bool,
) -> Decimal:
    """Current collateral of one side.

    Cb = depositBalanceBuyer  + N * (P - S) / S
    Cs = depositBalanceSeller - N * (P - S) / S
    """
    strike = assert_numeric(strike_price)
    market = assert_numeric(market_price)
    notional = assert_numeric(notional_amount)
    deposit = assert_numeric(deposit_balance)

    difference = _div(_mul(notional, _CTX.subtract(market, strike)), strike)
    if calc_buyer_side:
        return _CTX.add(deposit, difference)
    return _CTX.subtract(deposit, difference)


def cut_off_price(
    *,
    strike_price: Numeric,
    notional_amount: Numeric,
    deposit_balance: Numeric,
    buyer_side: bool,
) -> Decimal:
    """Liquidation price for one side.

    Buyer:  1.05 * S - depositBalanceBuyer  * S / N
    Seller: 0.95 * S + depositBalanceSeller * S / N
    """
    strike = assert_numeric(strike_price)
    notional = assert_numeric(notional_amount)
    deposit = assert_numeric(deposit_balance)

    factor = BUYER_CUTOFF_FACTOR if buyer_side else SELLER_CUTOFF_FACTOR
    strike_five_percent = _mul(strike, factor)
    difference = _div(_mul(deposit, strike), notional)

    if not buyer_side:
        return _CTX.add(strike_five_percent, difference)
    # buyer leverage below 1X (deposit > notional)
    if strike_five_percent < difference:
        return Decimal(0)
    return _CTX.subtract(strike_five_percent, difference)


def calculate_new_notional(
    *,
    old_notional: Numeric,
    old_strike_price: Numeric,
    new_strike_price: Numeric,
) -> Decimal:
    """N2 = N1 * S2 / S1 after a side is sold at strike S2."""
    return _div(
        _mul(assert_numeric(old_notional), assert_numeric(new_strike_price)),
        assert_numeric(old_strike_price),
    )


def creator_fee(notional_amount: Numeric) -> Decimal:
    return _mul(assert_numeric(notional_amount), CREATOR_FEE_RATE)


def joiner_fee(notional_amount: Numeric) -> Decimal:
    return _mul(assert_numeric(notional_amount), JOINER_FEE_RATE)
