"""
ledger/splits.py — Split validation and equal-split computation.

validate_split is the one place that decides whether an expense's shares
add up to its amount. It is used on create AND on edit with the same
tolerance (money.TOLERANCE), so a split accepted at creation is never
rejected by an otherwise identical update.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Sequence

from groupledger.app.ledger.money import CENT, ZERO, amounts_match, format_money, money_sum
from groupledger.app.ledger.results import Err, LedgerErrorKind, Ok
from groupledger.app.ledger.views import SplitLine


def validate_split(
        total_amount: Decimal,
        splits: Iterable[SplitLine],
) -> Ok[Decimal] | Err:
    """
    Checks that the shares of `splits` sum to `total_amount`.

    Returns:
        Ok(sum_of_shares) when |sum - total| <= 0.01.
        Err(SHARE_MISMATCH) otherwise, with detail {"total", "shares_sum", "difference"}.
    """
    shares_sum = money_sum(line.share for line in splits)

    if amounts_match(shares_sum, total_amount):
        return Ok(shares_sum)

    return Err(
        LedgerErrorKind.SHARE_MISMATCH,
        f"Split shares ({format_money(shares_sum)}) do not equal "
        f"the expense amount ({format_money(total_amount)}).",
        {
            "total": format_money(total_amount),
            "shares_sum": format_money(shares_sum),
            "difference": format_money(shares_sum - total_amount),
        },
    )


def compute_equal_split(
        amount: Decimal,
        participant_ids: Sequence[int],
        payer_id: int,
) -> list[SplitLine]:
    """
    Divides `amount` evenly among `participant_ids`.

    Each share is rounded DOWN to the cent; the leftover cents go to the
    payer's share, or to the first participant when the payer is not one
    of them. The result always sums to `amount` exactly.

    Raises:
        ValueError: `participant_ids` is empty, or `amount` is less than one
                    cent per participant (a share would be zero). Callers
                    validate both first; reaching it is a programming error.
    """
    if not participant_ids:
        raise ValueError("An equal split needs at least one participant.")

    count = len(participant_ids)
    if amount < CENT * count:
        raise ValueError(f"{format_money(amount)} cannot give {count} participants a cent each.")
    base = (amount / Decimal(count)).quantize(CENT, rounding=ROUND_DOWN)
    remainder = amount - base * count

    shares = {uid: base for uid in participant_ids}
    if remainder > ZERO:
        receiver = payer_id if payer_id in shares else participant_ids[0]
        shares[receiver] += remainder

    return [SplitLine(user_id=uid, share=shares[uid]) for uid in participant_ids]
