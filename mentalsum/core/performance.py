"""
Performance Thresholds.

Single source of truth for how strategy performance is categorised:
- PerformanceCategory: untried / weak / good / mastered
- Session star ratings
- Adaptive weights used by the problem engine when picking strategies
"""

from __future__ import annotations

from enum import Enum

# Mastery: consistently accurate over enough attempts
MASTERY_ACCURACY = 0.9
MASTERY_MIN_ATTEMPTS = 10

# Weakness: below this accuracy once enough attempts exist
WEAKNESS_ACCURACY = 0.7
WEAKNESS_MIN_ATTEMPTS = 3

# Session ratings (fractions of 1.0)
THREE_STARS = 0.9
TWO_STARS = 0.7

# Adaptive weights
UNTRIED_STRATEGY_WEIGHT = 1.0
MASTERED_STRATEGY_WEIGHT = 0.01
MIN_TRIED_STRATEGY_WEIGHT = 0.05
LOW_ATTEMPT_BOOST_FACTOR = 0.2
ATTEMPT_THRESHOLD = 5


class PerformanceCategory(str, Enum):
    """Performance bucket for a single strategy."""

    UNTRIED = "untried"
    WEAK = "weak"
    GOOD = "good"
    MASTERED = "mastered"

    @classmethod
    def from_counts(cls, correct: int, total_attempts: int) -> PerformanceCategory:
        """
        Categorise a strategy from its counters.

        Args:
            correct: Number of correct answers
            total_attempts: Number of attempts

        Returns:
            Corresponding PerformanceCategory
        """
        if is_untried(total_attempts):
            return cls.UNTRIED
        if is_mastered(correct, total_attempts):
            return cls.MASTERED
        if is_weak(correct, total_attempts):
            return cls.WEAK
        return cls.GOOD


def accuracy(correct: int, total_attempts: int) -> float:
    """Fraction correct, 0.0 when there are no attempts."""
    if total_attempts <= 0:
        return 0.0
    return correct / total_attempts


def is_untried(total_attempts: int) -> bool:
    return total_attempts == 0


def is_mastered(correct: int, total_attempts: int) -> bool:
    if total_attempts < MASTERY_MIN_ATTEMPTS:
        return False
    return accuracy(correct, total_attempts) >= MASTERY_ACCURACY


def is_weak(correct: int, total_attempts: int) -> bool:
    if total_attempts < WEAKNESS_MIN_ATTEMPTS:
        return False
    return accuracy(correct, total_attempts) < WEAKNESS_ACCURACY


def session_stars(accuracy_percent: float) -> int:
    """Star rating (1-3) for a session accuracy expressed in percent."""
    if accuracy_percent >= THREE_STARS * 100:
        return 3
    if accuracy_percent >= TWO_STARS * 100:
        return 2
    return 1


def strategy_weight(correct: int, total_attempts: int) -> float:
    """
    Selection weight for a strategy: weaker strategies weigh more.

    - Untried strategies get the base weight.
    - Perfect accuracy over ATTEMPT_THRESHOLD attempts counts as mastered and
      stays in occasional rotation only.
    - Otherwise weight is 1 - accuracy, boosted while attempts are few,
      and never below MIN_TRIED_STRATEGY_WEIGHT.
    """
    if total_attempts <= 0:
        return UNTRIED_STRATEGY_WEIGHT

    acc = accuracy(correct, total_attempts)
    if acc == 1.0 and total_attempts >= ATTEMPT_THRESHOLD:
        return MASTERED_STRATEGY_WEIGHT

    weight = 1.0 - acc
    if total_attempts < ATTEMPT_THRESHOLD:
        weight += LOW_ATTEMPT_BOOST_FACTOR * (ATTEMPT_THRESHOLD - total_attempts)
    return max(weight, MIN_TRIED_STRATEGY_WEIGHT)
