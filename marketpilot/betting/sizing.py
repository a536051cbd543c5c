"""
Bet sizing — linear interpolation between the policy's bet bounds.

    amount = min_bet + confidence * (max_bet - min_bet) / 100

Confidence 0 yields ``min_bet``, 100 yields ``max_bet``. Computed in
``Decimal`` so the result is exact and auditable (70 / 1 / 5 → 3.8).
"""

from decimal import Decimal

HUNDRED = Decimal("100")


def compute_bet_size(confidence: int, min_bet: Decimal, max_bet: Decimal) -> Decimal:
    """
    Size a bet from the answer's confidence.

    Raises:
        ValueError: If ``confidence`` is outside [0, 100] or the bounds are inverted.
    """
    if not 0 <= confidence <= 100:
        raise ValueError(f"confidence must be in [0, 100], got {confidence}")
    min_bet = Decimal(min_bet)
    max_bet = Decimal(max_bet)
    if max_bet < min_bet:
        raise ValueError(f"max_bet {max_bet} < min_bet {min_bet}")
    return min_bet + Decimal(confidence) * (max_bet - min_bet) / HUNDRED
