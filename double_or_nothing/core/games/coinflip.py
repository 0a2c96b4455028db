from typing import Dict

from double_or_nothing.config import settings
from double_or_nothing.core.rng import TrueRNG, determine_result, rng


class DoubleOrNothingGame:
    """
    Double or nothing: 50/50 flip, a win pays exactly twice the wager.
    """

    def __init__(self, source: TrueRNG = None, multiplier: float = None, threshold: float = None):
        self.source = source or rng
        self.multiplier = multiplier if multiplier is not None else settings.game.payout_multiplier
        self.threshold = threshold if threshold is not None else settings.game.win_threshold

    def payout_for(self, bet_amount: float) -> float:
        # 0% fee - exactly double
        return bet_amount * self.multiplier

    def flip(self, bet_amount: float) -> Dict:
        """
        Resolve one wager.

        Returns:
            Dict with result ("win"/"loss"), the bet, and the payout (0 on a loss)
        """
        result = determine_result(self.source, self.threshold)
        return {
            "result": result,
            "bet": bet_amount,
            "payout": self.payout_for(bet_amount) if result == "win" else 0,
        }

