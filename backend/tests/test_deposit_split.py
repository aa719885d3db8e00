"""
Tests for the deposit split between card refund and wallet credit.
"""
from decimal import Decimal

import pytest

from rentclaims.services.insurance import split_deposit


class TestSplitDeposit:

    def test_full_release_returns_each_portion(self):
        """Scenario D: $500 = $300 card + $200 wallet, full release."""
        release = split_deposit(Decimal("500.00"), Decimal("300.00"), Decimal("200.00"))

        assert release.card_refund == Decimal("300.00")
        assert release.wallet_return == Decimal("200.00")
        assert release.channels() == [("card", Decimal("300.00")), ("wallet", Decimal("200.00"))]

    def test_partial_release_is_pro_rata(self):
        release = split_deposit(Decimal("400.00"), Decimal("300.00"), Decimal("200.00"))

        assert release.wallet_return == Decimal("160.00")
        assert release.card_refund == Decimal("240.00")

    def test_cent_remainder_goes_to_card(self):
        release = split_deposit(Decimal("100.01"), Decimal("250.00"), Decimal("250.00"))

        assert release.wallet_return == Decimal("50.00")
        assert release.card_refund == Decimal("50.01")

    def test_card_only_deposit(self):
        release = split_deposit("120.50", "200.00", "0")

        assert release.card_refund == Decimal("120.50")
        assert release.wallet_return == Decimal("0.00")
        assert release.channels() == [("card", Decimal("120.50"))]

    def test_nothing_released(self):
        release = split_deposit(0, 300, 200)
        assert release.card_refund == Decimal("0.00")
        assert release.wallet_return == Decimal("0.00")
        assert release.channels() == []

    @pytest.mark.parametrize("total,card,wallet", [
        ("333.33", "300.00", "200.00"),
        ("0.01", "0.50", "0.50"),
        ("999.99", "1.00", "999.99"),
        ("17.17", "10.00", "7.17"),
        ("250.00", "0.00", "500.00"),
        ("12.34", "45.67", "89.01"),
    ])
    def test_portions_sum_to_total_and_card_is_capped(self, total, card, wallet):
        release = split_deposit(total, card, wallet)

        assert release.card_refund + release.wallet_return == Decimal(total)
        assert release.card_refund >= 0
        assert release.wallet_return >= 0
        assert release.card_refund <= Decimal(card)
        assert release.wallet_return <= Decimal(wallet)

    def test_negative_amount_raises(self):
        with pytest.raises(ValueError):
            split_deposit("-1.00", "300.00", "200.00")

    def test_release_larger_than_collected_raises(self):
        with pytest.raises(ValueError):
            split_deposit("600.00", "300.00", "200.00")
