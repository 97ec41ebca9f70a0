"""
Core Module - Shared domain models and interfaces.

Components:
- models: AppData, User, Session, Problem and their statistics
- strategies: StrategyId catalogue and operations
- performance: mastery/weakness thresholds and adaptive weights
- exceptions: error taxonomy
"""

from mentalsum.core.exceptions import (
    CorruptedDataError,
    MentalSumError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from mentalsum.core.models import (
    AppData,
    Problem,
    Session,
    SessionType,
    StrategyMetrics,
    User,
    UserPreferences,
    UserStatistics,
)
from mentalsum.core.strategies import ALL_STRATEGY_IDS, Operation, StrategyId

__all__ = [
    # Errors
    "MentalSumError",
    "CorruptedDataError",
    "QuotaExceededError",
    "NotFoundError",
    "ValidationError",
    # Models
    "AppData",
    "User",
    "UserPreferences",
    "UserStatistics",
    "StrategyMetrics",
    "Session",
    "SessionType",
    "Problem",
    # Strategies
    "Operation",
    "StrategyId",
    "ALL_STRATEGY_IDS",
]
