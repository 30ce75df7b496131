#!/usr/bin/env python3
"""
Tests for the rate and unit helpers
"""

import pytest

from sense_deploy.rates import (
    ONE_YEAR_SECONDS,
    decimal_to_percentage,
    format_ether,
    implied_rate,
    price_from_swap_output,
    scale_to_float,
    usd_guard_in_eth,
    year_fraction,
)

NOW = 1_700_000_000


class TestImpliedRate:
    """Test class for implied_rate"""

    def test_one_year_at_95_cents(self):
        """A PT worth 0.95 underlying one year out implies ~5.26%"""
        rate = implied_rate(0.95, NOW + ONE_YEAR_SECONDS, NOW)
        assert abs(rate - 5.2631578947) < 1e-6

    def test_half_year_compounds(self):
        """Half a year out the discount is annualised by squaring"""
        rate = implied_rate(0.95, NOW + ONE_YEAR_SECONDS // 2, NOW)
        expected = ((1 / 0.95) ** 2 - 1) * 100
        assert abs(rate - expected) < 1e-9

    def test_par_price_is_zero_rate(self):
        assert implied_rate(1.0, NOW + ONE_YEAR_SECONDS, NOW) == 0

    def test_matured_series_rejected(self):
        with pytest.raises(ValueError, match="not in the future"):
            implied_rate(0.95, NOW, NOW)

    def test_non_positive_price_rejected(self):
        with pytest.raises(ValueError):
            implied_rate(0, NOW + ONE_YEAR_SECONDS, NOW)

    def test_year_fraction(self):
        assert year_fraction(NOW + ONE_YEAR_SECONDS * 2, NOW) == 2


class TestUnitConversions:
    """Test class for wei/float conversions"""

    def test_price_from_probe_swap(self):
        """0.095 target out for 0.1 PT in is a price of 0.95"""
        assert price_from_swap_output(95_000_000_000_000_000) == 0.95

    def test_price_is_truncated_to_seven_decimals(self):
        assert price_from_swap_output(95_123_456_789_012_345) == 0.9512345

    def test_scale_to_float(self):
        assert scale_to_float(1_050_000_000_000_000_000) == 1.05
        assert scale_to_float(1_234_567_890_000_000_000) == 1.234567

    def test_format_ether(self):
        assert format_ether(10**18) == "1.0"
        assert format_ether(25 * 10**16) == "0.25"
        assert format_ether(0) == "0.0"

    def test_decimal_to_percentage(self):
        assert decimal_to_percentage("0.001") == "0.1"
        assert decimal_to_percentage("0.0025") == "0.25"


class TestGuardConversion:
    """Test class for usd_guard_in_eth"""

    def test_exact_division(self):
        """100k USD at 2000 USD/ETH is 50 ETH"""
        assert usd_guard_in_eth(100_000 * 10**18, 2000 * 10**8) == 50 * 10**18

    def test_rounds_down_to_whole_eth(self):
        """100k USD at 3000 USD/ETH is 33.3 ETH, kept as 33 ETH"""
        assert usd_guard_in_eth(100_000 * 10**18, 3000 * 10**8) == 33 * 10**18

    def test_invalid_answer(self):
        with pytest.raises(ValueError):
            usd_guard_in_eth(100_000 * 10**18, 0)
