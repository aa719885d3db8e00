"""
Deposit Split Calculator

Splits a released security deposit between a card refund and an internal
wallet credit, returning each portion to the channel it was collected from.

Invariant: card_refund + wallet_return == total_deposit, both >= 0.
Cent remainders go to the card side; the card refund never exceeds the
card portion originally authorized.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import List, Tuple, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Amount = Union[Decimal, int, str, float]


def to_cents(value: Amount) -> Decimal:
    """Coerce an amount to a Decimal quantized to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DepositRelease:
    total_deposit: Decimal
    card_refund: Decimal
    wallet_return: Decimal

    def channels(self) -> List[Tuple[str, Decimal]]:
        """Non-zero refund channels; zero portions produce no refund message."""
        result = []
        if self.card_refund > ZERO:
            result.append(("card", self.card_refund))
        if self.wallet_return > ZERO:
            result.append(("wallet", self.wallet_return))
        return result

    def to_dict(self) -> dict:
        return {
            "total_deposit": str(self.total_deposit),
            "card_refund": str(self.card_refund),
            "wallet_return": str(self.wallet_return),
        }


def split_deposit(
    total_deposit: Amount,
    card_portion_paid: Amount,
    wallet_portion_paid: Amount,
) -> DepositRelease:
    """
    Compute how much of a released deposit goes back to each channel.

    A full release returns each portion as collected. A partial release
    (deposit minus charges) is pro-rated: the wallet share is rounded down
    to the cent and the card takes the remainder, capped at the card portion.

    Raises ValueError for negative amounts or a release larger than what
    was collected.
    """
    total = to_cents(total_deposit)
    card_paid = to_cents(card_portion_paid)
    wallet_paid = to_cents(wallet_portion_paid)

    if total < ZERO or card_paid < ZERO or wallet_paid < ZERO:
        raise ValueError("Deposit amounts must be non-negative")

    collected = card_paid + wallet_paid
    if total > collected:
        raise ValueError(
            f"Release {total} exceeds collected deposit {collected}"
        )

    if total == collected:
        return DepositRelease(total, card_paid, wallet_paid)

    if total == ZERO:
        return DepositRelease(ZERO, ZERO, ZERO)

    wallet_return = (total * wallet_paid / collected).quantize(CENT, rounding=ROUND_DOWN)
    card_refund = total - wallet_return

    if card_refund > card_paid:
        card_refund = card_paid
        wallet_return = total - card_refund

    return DepositRelease(total, card_refund, wallet_return)
