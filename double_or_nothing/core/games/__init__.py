"""Game modules for Double or Nothing."""

from .coinflip import DoubleOrNothingGame

__all__ = [
    "DoubleOrNothingGame",
]
