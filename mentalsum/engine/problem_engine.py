"""
Adaptive Problem Engine.

Builds the problem list for a practice session:
1. Pick an operation uniformly from the user's enabled operations
   (or the focused strategy's operation in focused mode)
2. Pick an intended strategy for that operation, weighted toward strategies
   the user performs worst on (see core.performance.strategy_weight)
3. Generate operands that make the strategy applicable, bounded by
   preferences.max_number

Untried strategies all share the same weight, so a user with no history
gets uniform strategy selection.
"""
from __future__ import annotations

import random
from collections.abc import Callable, Mapping

from loguru import logger

from mentalsum.core.exceptions import ValidationError
from mentalsum.core.models import Problem, StrategyMetrics, UserPreferences, UserStatistics
from mentalsum.core.performance import strategy_weight
from mentalsum.core.strategies import Operation, StrategyId, strategies_for_operation

OperandGenerator = Callable[[random.Random, int], tuple[int, int]]


# =============================================================================
# Operand generators (one per strategy)
# =============================================================================


def _with_ones(rng: random.Random, ones: int, upper: int, min_tens: int = 0) -> int:
    """Random number ending in `ones`, at most `upper`, with at least `min_tens` tens."""
    max_tens = (upper - ones) // 10
    return rng.randint(min_tens, max(min_tens, max_tens)) * 10 + ones


def _addition_bridging(rng: random.Random, upper: int) -> tuple[int, int]:
    # ones digits sum to 10 or more, so the total crosses a multiple of ten
    a_ones = rng.randint(1, 9)
    b_ones = rng.randint(10 - a_ones, 9)
    return _with_ones(rng, a_ones, upper), _with_ones(rng, b_ones, upper)


def _addition_doubles(rng: random.Random, upper: int) -> tuple[int, int]:
    a = rng.randint(5, upper - 2)
    b = a + rng.choice([-2, -1, 0, 1, 2])
    return a, max(1, min(b, upper))


def _addition_breaking_apart(rng: random.Random, upper: int) -> tuple[int, int]:
    a = rng.randint(11, upper)
    b = _with_ones(rng, rng.randint(1, 9), upper, min_tens=1)
    return a, b


def _addition_left_to_right(rng: random.Random, upper: int) -> tuple[int, int]:
    return rng.randint(10, upper), rng.randint(10, upper)


def _subtraction_bridging_down(rng: random.Random, upper: int) -> tuple[int, int]:
    # subtrahend ones exceed minuend ones, so the result crosses a multiple of ten
    b_ones = rng.randint(1, 9)
    a_ones = rng.randint(0, b_ones - 1)
    a_tens = rng.randint(1, (upper - a_ones) // 10)
    b_tens = rng.randint(0, a_tens - 1)
    return a_tens * 10 + a_ones, b_tens * 10 + b_ones


def _subtraction_adding_up(rng: random.Random, upper: int) -> tuple[int, int]:
    b = rng.randint(10, upper - 3)
    gap = rng.randint(3, min(30, upper - b))
    return b + gap, b


def _subtraction_compensation(rng: random.Random, upper: int) -> tuple[int, int]:
    ones = rng.choice([8, 9])
    tens = rng.randint(0, (upper - ones) // 10 - 1)
    b = tens * 10 + ones
    return rng.randint(b + 1, upper), b


def _multiplication_doubling(rng: random.Random, upper: int) -> tuple[int, int]:
    return rng.randint(3, upper), rng.choice([2, 4, 8])


def _multiplication_breaking_apart(rng: random.Random, upper: int) -> tuple[int, int]:
    a = _with_ones(rng, rng.randint(1, 9), min(upper, 99), min_tens=1)
    return a, rng.randint(3, 9)


def _multiplication_near_squares(rng: random.Random, upper: int) -> tuple[int, int]:
    distance = rng.randint(1, 3)
    middle = rng.randint(distance + 2, min(upper - distance, 60))
    return middle - distance, middle + distance


def _multiplication_times_5(rng: random.Random, upper: int) -> tuple[int, int]:
    return rng.randint(2, upper), 5


def _multiplication_times_9(rng: random.Random, upper: int) -> tuple[int, int]:
    return rng.randint(2, upper), 9


def _division(rng: random.Random, upper: int, divisors: list[int], max_quotient: int) -> tuple[int, int]:
    divisor = rng.choice(divisors)
    quotient = rng.randint(2, max(2, min(max_quotient, upper // divisor)))
    return divisor * quotient, divisor


def _division_factor_recognition(rng: random.Random, upper: int) -> tuple[int, int]:
    divisors = [d for d in (4, 6, 8, 9, 12, 14, 15, 16, 18) if d * 2 <= upper]
    return _division(rng, upper, divisors, 12)


def _division_multiplication_inverse(rng: random.Random, upper: int) -> tuple[int, int]:
    return _division(rng, upper, list(range(2, 10)), 20)


def _division_estimation_adjustment(rng: random.Random, upper: int) -> tuple[int, int]:
    divisors = [d for d in range(11, 20) if d * 2 <= upper]
    if not divisors:
        divisors = [d for d in range(6, 10) if d * 2 <= upper]
    return _division(rng, upper, divisors, 12)


OPERAND_GENERATORS: dict[StrategyId, OperandGenerator] = {
    StrategyId.ADDITION_BRIDGING_TO_10S: _addition_bridging,
    StrategyId.ADDITION_DOUBLES: _addition_doubles,
    StrategyId.ADDITION_BREAKING_APART: _addition_breaking_apart,
    StrategyId.ADDITION_LEFT_TO_RIGHT: _addition_left_to_right,
    StrategyId.SUBTRACTION_BRIDGING_DOWN: _subtraction_bridging_down,
    StrategyId.SUBTRACTION_ADDING_UP: _subtraction_adding_up,
    StrategyId.SUBTRACTION_COMPENSATION: _subtraction_compensation,
    StrategyId.MULTIPLICATION_DOUBLING: _multiplication_doubling,
    StrategyId.MULTIPLICATION_BREAKING_APART: _multiplication_breaking_apart,
    StrategyId.MULTIPLICATION_NEAR_SQUARES: _multiplication_near_squares,
    StrategyId.MULTIPLICATION_TIMES_5: _multiplication_times_5,
    StrategyId.MULTIPLICATION_TIMES_9: _multiplication_times_9,
    StrategyId.DIVISION_FACTOR_RECOGNITION: _division_factor_recognition,
    StrategyId.DIVISION_MULTIPLICATION_INVERSE: _division_multiplication_inverse,
    StrategyId.DIVISION_ESTIMATION_ADJUSTMENT: _division_estimation_adjustment,
}


def compute_answer(operation: Operation, a: int, b: int) -> int:
    if operation == Operation.ADDITION:
        return a + b
    if operation == Operation.SUBTRACTION:
        return a - b
    if operation == Operation.MULTIPLICATION:
        return a * b
    return a // b


# =============================================================================
# Problem Engine
# =============================================================================


class ProblemEngine:
    """
    Generates problems with adaptive strategy selection.

    Pass a seeded random.Random for reproducible sessions.
    """

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def strategy_weights(
        self,
        strategies: list[StrategyId],
        performance: Mapping[StrategyId, StrategyMetrics],
    ) -> list[tuple[StrategyId, float]]:
        """Selection weight for each candidate strategy."""
        weighted = []
        for strategy in strategies:
            metrics = performance.get(strategy)
            if metrics is None:
                weight = strategy_weight(0, 0)
            else:
                weight = strategy_weight(metrics.correct, metrics.total_attempts)
            weighted.append((strategy, weight))
        return weighted

    def select_strategy(
        self,
        operation: Operation,
        performance: Mapping[StrategyId, StrategyMetrics],
    ) -> StrategyId:
        """Weighted random strategy for an operation; weaker strategies come up more often."""
        weighted = self.strategy_weights(strategies_for_operation(operation), performance)
        strategies = [s for s, _ in weighted]
        weights = [w for _, w in weighted]

        if sum(weights) <= 0:
            logger.warning(f"All {operation.value} strategies have zero weight, picking uniformly")
            return self.rng.choice(strategies)

        return self.rng.choices(strategies, weights=weights, k=1)[0]

    def generate_problem(self, strategy: StrategyId, max_number: int) -> Problem:
        """Create an unanswered problem designed to elicit `strategy`."""
        a, b = OPERAND_GENERATORS[strategy](self.rng, max_number)
        operation = strategy.operation
        problem = Problem(
            type=operation,
            operands=(a, b),
            correct_answer=compute_answer(operation, a, b),
            intended_strategy=strategy,
        )
        logger.debug(f"Generated {problem.display} for {strategy.value}")
        return problem

    def generate_session_problems(
        self,
        preferences: UserPreferences,
        statistics: UserStatistics,
        focused_strategy: StrategyId | None = None,
        count: int | None = None,
    ) -> list[Problem]:
        """
        Generate a full session's problems.

        Args:
            preferences: User preferences (enabled operations, max number, length)
            statistics: User statistics (strategy performance drives weighting)
            focused_strategy: Restrict every problem to this strategy
            count: Number of problems (defaults to preferences.session_length)

        Raises:
            ValidationError: no operations are enabled for a general session
        """
        count = preferences.session_length if count is None else count

        if focused_strategy is not None:
            problems = [
                self.generate_problem(focused_strategy, preferences.max_number)
                for _ in range(count)
            ]
            logger.info(f"Generated {count} focused problems for {focused_strategy.value}")
            return problems

        operations = preferences.enabled_operations.enabled()
        if not operations:
            raise ValidationError("No operations are enabled in preferences")

        problems = []
        for _ in range(count):
            operation = self.rng.choice(operations)
            strategy = self.select_strategy(operation, statistics.strategy_performance)
            problems.append(self.generate_problem(strategy, preferences.max_number))

        logger.info(
            f"Generated {count} problems across {', '.join(op.value for op in operations)}"
        )
        return problems
