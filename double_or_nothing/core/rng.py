import secrets


class TrueRNG:
    """
    A wrapper around Python's `secrets` module to provide cryptographically strong
    random numbers for deciding rounds.
    """

    PRECISION = 10**12

    @staticmethod
    def random_float() -> float:
        """Returns a random float in the range [0.0, 1.0)."""
        # secrets.randbelow(n) returns [0, n). We use a large integer range to approximate a float.
        return secrets.randbelow(TrueRNG.PRECISION) / TrueRNG.PRECISION


def determine_result(source: TrueRNG = None, threshold: float = 0.5) -> str:
    """
    Fair 50/50 draw: one uniform number in [0, 1), below the threshold wins.
    No seed, no commitment; every call is independent.
    """
    source = source or rng
    return "win" if source.random_float() < threshold else "loss"


rng = TrueRNG()
