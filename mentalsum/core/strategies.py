"""
Mental calculation strategy catalogue.

Each strategy belongs to exactly one operation. The StrategyId value is the
string stored in the persisted document (strategyPerformance keys and
Problem.intendedStrategy).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mentalsum.core.models import Problem


class Operation(str, Enum):
    """The four arithmetic operations."""

    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"

    @property
    def symbol(self) -> str:
        return {
            Operation.ADDITION: "+",
            Operation.SUBTRACTION: "-",
            Operation.MULTIPLICATION: "×",
            Operation.DIVISION: "÷",
        }[self]


class StrategyId(str, Enum):
    """Identifiers for every supported strategy."""

    ADDITION_BRIDGING_TO_10S = "AdditionBridgingTo10s"
    ADDITION_DOUBLES = "AdditionDoubles"
    ADDITION_BREAKING_APART = "AdditionBreakingApart"
    ADDITION_LEFT_TO_RIGHT = "AdditionLeftToRight"
    SUBTRACTION_BRIDGING_DOWN = "SubtractionBridgingDown"
    SUBTRACTION_ADDING_UP = "SubtractionAddingUp"
    SUBTRACTION_COMPENSATION = "SubtractionCompensation"
    MULTIPLICATION_DOUBLING = "MultiplicationDoubling"
    MULTIPLICATION_BREAKING_APART = "MultiplicationBreakingApart"
    MULTIPLICATION_NEAR_SQUARES = "MultiplicationNearSquares"
    MULTIPLICATION_TIMES_5 = "MultiplicationTimes5"
    MULTIPLICATION_TIMES_9 = "MultiplicationTimes9"
    DIVISION_FACTOR_RECOGNITION = "DivisionFactorRecognition"
    DIVISION_MULTIPLICATION_INVERSE = "DivisionMultiplicationInverse"
    DIVISION_ESTIMATION_ADJUSTMENT = "DivisionEstimationAdjustment"

    @property
    def operation(self) -> Operation:
        """Operation this strategy applies to (derived from the id prefix)."""
        for op in Operation:
            if self.value.lower().startswith(op.value):
                return op
        raise ValueError(f"Strategy {self.value} has no operation prefix")

    @classmethod
    def parse(cls, value: str) -> StrategyId:
        """Resolve a strategy from its value or enum name, case-insensitively."""
        needle = value.strip().lower()
        for strategy in cls:
            if needle in (strategy.value.lower(), strategy.name.lower()):
                return strategy
        raise ValueError(f"Unknown strategy: {value}")


ALL_STRATEGY_IDS: list[StrategyId] = list(StrategyId)


@dataclass(frozen=True)
class MathStrategy:
    """Human-facing description of a strategy."""

    id: StrategyId
    name: str
    description: str
    example: str
    steps: list[str] = field(default_factory=list)

    @property
    def operation(self) -> Operation:
        return self.id.operation


STRATEGIES: dict[StrategyId, MathStrategy] = {
    s.id: s
    for s in [
        MathStrategy(
            StrategyId.ADDITION_BRIDGING_TO_10S,
            "Bridging to 10s",
            "Adjust one number to make a multiple of 10, then compensate.",
            "88 + 9: think 88 + 10 = 98, then 98 - 1 = 97.",
            [
                "Round one number to the nearest 10.",
                "Add the rounded number.",
                "Adjust the result by the amount rounded.",
            ],
        ),
        MathStrategy(
            StrategyId.ADDITION_DOUBLES,
            "Doubles / Near Doubles",
            "Use known doubles for numbers that are close together.",
            "47 + 48: think 47 + 47 = 94, then 94 + 1 = 95.",
            [
                "Spot numbers that are doubles or near doubles.",
                "Calculate the double.",
                "Adjust for a near double.",
            ],
        ),
        MathStrategy(
            StrategyId.ADDITION_BREAKING_APART,
            "Breaking Apart",
            "Split one number into tens and ones and add the parts in turn.",
            "67 + 28: think 67 + 20 = 87, then 87 + 8 = 95.",
            [
                "Break one number into tens and ones.",
                "Add the tens to the other number.",
                "Add the ones.",
            ],
        ),
        MathStrategy(
            StrategyId.ADDITION_LEFT_TO_RIGHT,
            "Left-to-Right Addition",
            "Add the highest place values first, then the lower ones.",
            "45 + 37: 40 + 30 = 70, 5 + 7 = 12, so 82.",
            [
                "Add the tens.",
                "Add the ones.",
                "Combine the partial sums.",
            ],
        ),
        MathStrategy(
            StrategyId.SUBTRACTION_BRIDGING_DOWN,
            "Bridging Down",
            "Subtract down to the nearest multiple of 10 first.",
            "83 - 7: think 83 - 3 = 80, then 80 - 4 = 76.",
            [
                "Subtract to reach the multiple of 10 below.",
                "Subtract what is left from that multiple of 10.",
            ],
        ),
        MathStrategy(
            StrategyId.SUBTRACTION_ADDING_UP,
            "Adding Up",
            "Count up from the smaller number to the larger one.",
            "62 - 38: 38 + 2 = 40, 40 + 22 = 62, so 24.",
            [
                "Start at the smaller number.",
                "Count up in friendly jumps to the larger number.",
                "Sum the jumps.",
            ],
        ),
        MathStrategy(
            StrategyId.SUBTRACTION_COMPENSATION,
            "Compensation",
            "Round the number being subtracted, then compensate.",
            "74 - 29: think 74 - 30 = 44, then 44 + 1 = 45.",
            [
                "Round the subtrahend to a friendly number.",
                "Subtract.",
                "Add back what you over-subtracted.",
            ],
        ),
        MathStrategy(
            StrategyId.MULTIPLICATION_DOUBLING,
            "Doubling",
            "Multiply by 2, 4 or 8 by doubling repeatedly.",
            "15 × 4: 15 × 2 = 30, 30 × 2 = 60.",
            [
                "Write the multiplier as a power of 2.",
                "Double the other number that many times.",
            ],
        ),
        MathStrategy(
            StrategyId.MULTIPLICATION_BREAKING_APART,
            "Breaking Apart (Distributive)",
            "Split one factor, multiply each part, then add.",
            "23 × 7: (20 × 7) + (3 × 7) = 140 + 21 = 161.",
            [
                "Split one number into tens and ones.",
                "Multiply each part.",
                "Add the products.",
            ],
        ),
        MathStrategy(
            StrategyId.MULTIPLICATION_NEAR_SQUARES,
            "Near Squares",
            "Use (a - b)(a + b) = a² - b² for numbers around a middle value.",
            "19 × 21: 20² - 1² = 400 - 1 = 399.",
            [
                "Find the middle number.",
                "Square it.",
                "Subtract the square of the distance.",
            ],
        ),
        MathStrategy(
            StrategyId.MULTIPLICATION_TIMES_5,
            "Times 5",
            "Multiply by 10, then halve.",
            "46 × 5: 460 ÷ 2 = 230.",
            ["Multiply by 10.", "Halve the result."],
        ),
        MathStrategy(
            StrategyId.MULTIPLICATION_TIMES_9,
            "Times 9",
            "Multiply by 10, then subtract the number once.",
            "37 × 9: 370 - 37 = 333.",
            ["Multiply by 10.", "Subtract the original number."],
        ),
        MathStrategy(
            StrategyId.DIVISION_FACTOR_RECOGNITION,
            "Factor Recognition",
            "Split the divisor into factors and divide by each in turn.",
            "144 ÷ 12: 144 ÷ 2 = 72, 72 ÷ 6 = 12.",
            [
                "Break the divisor into smaller factors.",
                "Divide by one factor at a time.",
            ],
        ),
        MathStrategy(
            StrategyId.DIVISION_MULTIPLICATION_INVERSE,
            "Multiplication Inverse",
            "Ask 'what times the divisor gives the dividend?'",
            "91 ÷ 7: what × 7 = 91? 13.",
            [
                "Rewrite as a missing-factor multiplication.",
                "Use times tables to find the factor.",
            ],
        ),
        MathStrategy(
            StrategyId.DIVISION_ESTIMATION_ADJUSTMENT,
            "Estimation & Adjustment",
            "Estimate the quotient, multiply back, then adjust.",
            "156 ÷ 13: 13 × 10 = 130, 26 left, 13 × 2 = 26, so 12.",
            [
                "Estimate the quotient.",
                "Multiply the estimate by the divisor.",
                "Adjust up or down until it matches.",
            ],
        ),
    ]
}


def strategies_for_operation(operation: Operation) -> list[StrategyId]:
    """All strategies applicable to an operation, in catalogue order."""
    return [s for s in ALL_STRATEGY_IDS if s.operation == operation]


def get_strategy(strategy_id: StrategyId | str) -> MathStrategy:
    """Look up catalogue details for a strategy."""
    if not isinstance(strategy_id, StrategyId):
        strategy_id = StrategyId.parse(strategy_id)
    return STRATEGIES[strategy_id]


def concise_hint(problem: Problem) -> str:
    """Short hint for a problem, specialised for a few strategies."""
    a, b = problem.operands
    strategy = problem.intended_strategy

    if strategy == StrategyId.ADDITION_BRIDGING_TO_10S:
        return f"Make one number a round 10: try {a} + {round(b / 10) * 10}, then adjust."
    if strategy == StrategyId.ADDITION_DOUBLES:
        return f"Is this near a double? Start from {a} + {a}."
    if strategy == StrategyId.MULTIPLICATION_TIMES_9:
        return f"{a} × 10 = {a * 10}, then subtract {a}."
    if strategy == StrategyId.MULTIPLICATION_TIMES_5:
        return f"{a} × 10 = {a * 10}, then halve it."

    return STRATEGIES[strategy].description
