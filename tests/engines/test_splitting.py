"""
Tests for settlement_engines.splitting -- equal split with remainder on the last part.
"""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from settlement_engines.splitting import split_amount
from settlement_kernel.exceptions import InvalidArgumentError


class TestSplitAmount:

    def test_even_split(self):
        assert split_amount(Decimal("100.00"), 4) == (
            Decimal("25.00"),
            Decimal("25.00"),
            Decimal("25.00"),
            Decimal("25.00"),
        )

    def test_remainder_goes_to_last_installment(self):
        assert split_amount(Decimal("100.00"), 3) == (
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        )

    def test_single_installment_is_the_total(self):
        assert split_amount(Decimal("57.31"), 1) == (Decimal("57.31"),)

    def test_total_too_small_for_count_leaves_zero_leading_parts(self):
        assert split_amount(Decimal("0.02"), 3) == (
            Decimal("0.00"),
            Decimal("0.00"),
            Decimal("0.02"),
        )

    def test_accepts_decimal_string(self):
        assert split_amount("10.00", 2) == (Decimal("5.00"), Decimal("5.00"))

    @pytest.mark.parametrize("total", [Decimal("0"), Decimal("-1.00")])
    def test_rejects_non_positive_total(self, total):
        with pytest.raises(InvalidArgumentError) as exc_info:
            split_amount(total, 2)
        assert exc_info.value.field == "total"

    @pytest.mark.parametrize("count", [0, -3, True, 2.0])
    def test_rejects_invalid_count(self, count):
        with pytest.raises(InvalidArgumentError) as exc_info:
            split_amount(Decimal("10.00"), count)
        assert exc_info.value.field == "count"

    def test_rejects_float_total(self):
        with pytest.raises(InvalidArgumentError):
            split_amount(10.5, 2)

    def test_rejects_sub_cent_total(self):
        with pytest.raises(InvalidArgumentError):
            split_amount(Decimal("10.005"), 2)


class TestSplitProperties:

    @given(
        cents=st.integers(min_value=1, max_value=10**11),
        count=st.integers(min_value=1, max_value=120),
    )
    def test_parts_sum_to_total_and_differ_only_in_last(self, cents, count):
        total = Decimal(cents).scaleb(-2)
        parts = split_amount(total, count)

        assert len(parts) == count
        assert sum(parts, Decimal("0")) == total
        assert all(p == parts[0] for p in parts[:-1])
        assert parts[-1] >= parts[0]
        assert parts[-1] - parts[0] < Decimal("0.01") * count
        assert all(p.as_tuple().exponent >= -2 for p in parts)
