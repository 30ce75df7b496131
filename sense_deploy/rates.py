"""
Rate and unit helpers used when reporting on a freshly seeded Space pool.

These are reporting helpers only. Nothing here asserts on the numbers, the
pricing itself happens inside the pool.
"""

import time
from decimal import Decimal
from typing import Optional, Union

ONE_MINUTE_SECONDS = 60
ONE_DAY_SECONDS = 24 * 60 * ONE_MINUTE_SECONDS
ONE_YEAR_SECONDS = 365 * ONE_DAY_SECONDS

WAD = 10**18


def price_from_swap_output(amount_out: int) -> float:
    """
    Convert the target received for a 0.1 PT probe swap into a per-PT price.

    Args:
        amount_out: Target out, in wei, for 0.1 PT in

    Returns:
        PT price denominated in target, truncated to 7 decimals
    """
    return (int(amount_out) // 10**10) / 1e7


def scale_to_float(scale: int) -> float:
    """Adapter scale (18 decimals) as a float truncated to 6 decimals"""
    return (int(scale) // 10**12) / 1e6


def year_fraction(maturity: int, now: Optional[float] = None) -> float:
    """Time left until maturity, in years of 365 days"""
    if now is None:
        now = time.time()
    return (int(maturity) - int(now)) / ONE_YEAR_SECONDS


def implied_rate(price_in_underlying: float, maturity: int, now: Optional[float] = None) -> float:
    """
    Annualised discount rate implied by a PT price.

    rate = ((1 / price) ** (1 / years_to_maturity) - 1) * 100

    Args:
        price_in_underlying: PT price expressed in underlying
        maturity: Series maturity as a unix timestamp
        now: Current unix time, defaults to the wall clock

    Returns:
        Implied rate as a percentage
    """
    if price_in_underlying <= 0:
        raise ValueError("PT price must be positive")
    years = year_fraction(maturity, now)
    if years <= 0:
        raise ValueError(f"Series maturity {maturity} is not in the future")
    return ((1 / price_in_underlying) ** (1 / years) - 1) * 100


def usd_guard_in_eth(guard_usd: int, eth_usd_answer: int, feed_decimals: int = 8) -> int:
    """
    Convert an 18-decimal USD guard into wei of ETH using a Chainlink answer.

    The division is an integer division on whole ETH, so the guard is
    rounded down to a whole number of ETH before being scaled back to wei.
    """
    price_scaled = int(eth_usd_answer) * 10 ** (18 - feed_decimals)
    if price_scaled <= 0:
        raise ValueError(f"Invalid ETH/USD answer: {eth_usd_answer}")
    return (int(guard_usd) // price_scaled) * WAD


def format_ether(amount: int) -> str:
    """Wei as a decimal string of ether"""
    value = Decimal(int(amount)) / Decimal(WAD)
    text = format(value.normalize(), "f")
    return text if "." in text else f"{text}.0"


def decimal_to_percentage(value: Union[str, float, Decimal]) -> str:
    """Express a fraction ("0.0025") as a percentage string ("0.25")"""
    percentage = Decimal(str(value)) * 100
    return format(percentage.normalize(), "f")
