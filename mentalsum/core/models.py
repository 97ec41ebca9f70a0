"""
Data Model for Mental Sum.

Pydantic models for the single persisted document (AppData) and the records
it owns. Attributes are snake_case; the persisted JSON uses camelCase aliases.

Ownership:
- AppData is the only root.
- Users and Sessions are value-owned by AppData.
- A Problem lives in exactly one Session; completed Problems are copied
  into User.statistics.problem_history.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from mentalsum.core.performance import PerformanceCategory, accuracy
from mentalsum.core.strategies import ALL_STRATEGY_IDS, Operation, StrategyId

SCHEMA_VERSION = 1


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a unique record identifier."""
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base model serialising to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SessionType(str, Enum):
    """Kind of practice session."""

    GENERAL = "general"
    FOCUSED = "focused"


# =============================================================================
# Preferences
# =============================================================================


class EnabledOperations(CamelModel):
    """Which operations a user practises."""

    addition: bool = True
    subtraction: bool = True
    multiplication: bool = True
    division: bool = True

    def enabled(self) -> list[Operation]:
        """Enabled operations in canonical order."""
        return [op for op in Operation if getattr(self, op.value)]


class UserPreferences(CamelModel):
    """Per-user practice settings."""

    enabled_operations: EnabledOperations = Field(default_factory=EnabledOperations)
    session_length: int = Field(default=10, ge=1, le=100)
    max_number: int = Field(default=99, ge=20, le=9999)
    time_limit: int = Field(default=30, ge=5, le=600)  # seconds per problem
    show_strategies: bool = True
    enable_sound: bool = True
    enable_haptics: bool = True


# =============================================================================
# Statistics
# =============================================================================


class StrategyMetrics(CamelModel):
    """Counters for a single strategy."""

    correct: int = Field(default=0, ge=0)
    incorrect: int = Field(default=0, ge=0)
    total_attempts: int = Field(default=0, ge=0)

    @property
    def accuracy(self) -> float:
        return accuracy(self.correct, self.total_attempts)

    @property
    def category(self) -> PerformanceCategory:
        return PerformanceCategory.from_counts(self.correct, self.total_attempts)

    def record(self, is_correct: bool) -> None:
        self.total_attempts += 1
        if is_correct:
            self.correct += 1
        else:
            self.incorrect += 1


class OperationStats(CamelModel):
    """Counters for a single operation."""

    attempted: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    average_time: float = Field(default=0.0, ge=0)
    fastest_time: float = Field(default=0.0, ge=0)


def initialize_strategy_performance() -> dict[StrategyId, StrategyMetrics]:
    """Zeroed metrics for every known strategy."""
    return {strategy: StrategyMetrics() for strategy in ALL_STRATEGY_IDS}


def initialize_operation_stats() -> dict[Operation, OperationStats]:
    return {op: OperationStats() for op in Operation}


class Problem(CamelModel):
    """A single arithmetic problem."""

    id: str = Field(default_factory=new_id)
    type: Operation
    operands: tuple[int, int]
    correct_answer: int
    intended_strategy: StrategyId
    user_answer: int | None = None
    is_correct: bool | None = None
    time_spent: float | None = Field(default=None, ge=0)
    attempted_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def display(self) -> str:
        a, b = self.operands
        return f"{a} {self.type.symbol} {b}"


class UserStatistics(CamelModel):
    """Aggregate statistics for a user."""

    total_problems_attempted: int = Field(default=0, ge=0)
    total_correct_answers: int = Field(default=0, ge=0)
    average_accuracy: float = Field(default=0.0, ge=0, le=100)  # percent
    average_response_time: float = Field(default=0.0, ge=0)  # seconds
    total_sessions_completed: int = Field(default=0, ge=0)
    streak_current: int = Field(default=0, ge=0)
    streak_best: int = Field(default=0, ge=0)
    personal_bests: dict[str, float] = Field(default_factory=dict)
    strategy_performance: dict[StrategyId, StrategyMetrics] = Field(
        default_factory=initialize_strategy_performance
    )
    operation_stats: dict[Operation, OperationStats] = Field(
        default_factory=initialize_operation_stats
    )
    problem_history: list[Problem] = Field(default_factory=list)
    last_session_date: datetime | None = None

    def fill_missing_buckets(self) -> bool:
        """Add zeroed buckets for unknown strategies/operations. Returns True if any were added."""
        changed = False
        for strategy in ALL_STRATEGY_IDS:
            if strategy not in self.strategy_performance:
                self.strategy_performance[strategy] = StrategyMetrics()
                changed = True
        for op in Operation:
            if op not in self.operation_stats:
                self.operation_stats[op] = OperationStats()
                changed = True
        return changed


# =============================================================================
# Users and Sessions
# =============================================================================


class User(CamelModel):
    """A person practising on this device."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    statistics: UserStatistics = Field(default_factory=UserStatistics)
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


class Session(CamelModel):
    """One practice session and its problems."""

    id: str = Field(default_factory=new_id)
    user_id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    problems: list[Problem] = Field(default_factory=list)
    completed: bool = False
    total_correct: int = Field(default=0, ge=0)
    total_wrong: int = Field(default=0, ge=0)
    average_time: float = Field(default=0.0, ge=0)
    session_length: int = Field(default=0, ge=0)
    session_type: SessionType = SessionType.GENERAL
    focused_strategy_id: StrategyId | None = None

    @model_validator(mode="after")
    def _totals_within_answered(self) -> Session:
        answered = len(self.answered_problems)
        if self.total_correct + self.total_wrong > answered:
            raise ValueError(
                f"totalCorrect + totalWrong ({self.total_correct + self.total_wrong}) "
                f"exceeds answered problems ({answered})"
            )
        return self

    @property
    def answered_problems(self) -> list[Problem]:
        return [p for p in self.problems if p.is_completed]

    @property
    def current_index(self) -> int | None:
        """Index of the first unanswered problem, or None when all are answered."""
        for index, problem in enumerate(self.problems):
            if not problem.is_completed:
                return index
        return None

    @property
    def accuracy_percent(self) -> float:
        answered = self.total_correct + self.total_wrong
        return (self.total_correct / answered * 100) if answered else 0.0


class AppData(CamelModel):
    """The single persisted document."""

    users: list[User] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    current_user_id: str | None = None
    schema_version: int = SCHEMA_VERSION

    def get_user(self, user_id: str) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def get_session(self, session_id: str) -> Session | None:
        return next((s for s in self.sessions if s.id == session_id), None)
