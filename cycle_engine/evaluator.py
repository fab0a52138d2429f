"""
Status transition evaluator: cascading promotion over a threshold ladder
"""

from dataclasses import dataclass
from typing import Optional

from .models import Tier
from .thresholds import PRIMARY_LADDER, has_next_tier, next_tier, threshold_of


@dataclass(frozen=True)
class Evaluation:
    new_tier: Optional[Tier]
    remainder: int
    promoted: bool
    steps: int = 0


def evaluate(balance: int, current_tier: Optional[Tier], ladder=PRIMARY_LADDER) -> Evaluation:
    """
    Promote through as many rungs as the balance pays for

    Each promotion pays the next rung's threshold out of the balance and re-checks
    the remainder against the rung after it, so one month's gain can promote twice.
    A balance equal to the threshold promotes.

    Args:
        balance: Running point balance of the current cycle
        current_tier: Tier held at the start of the evaluation
        ladder: Ordered (tier, threshold) pairs

    Returns:
        Evaluation with the final tier and the leftover balance
    """
    tier = current_tier
    steps = 0
    while has_next_tier(tier, ladder):
        threshold = threshold_of(next_tier(tier, ladder), ladder)
        if balance < threshold:
            break
        balance -= threshold
        tier = next_tier(tier, ladder)
        steps += 1

    return Evaluation(new_tier=tier, remainder=balance, promoted=steps > 0, steps=steps)


def implied_tier(total: int, starting_tier: Optional[Tier], ladder=PRIMARY_LADDER) -> Optional[Tier]:
    """Tier a cycle total reaches from its starting tier (never below the start)"""
    return evaluate(total, starting_tier, ladder).new_tier
