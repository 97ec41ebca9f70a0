"""
Session statistics aggregation.

Applied once, in one batch, when a session completes. Running means are
updated from the stored counters rather than recomputed from problem
history, so the cost is independent of how much history a user has.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from mentalsum.core.models import Problem, Session, UserStatistics, utcnow
from mentalsum.core.performance import PerformanceCategory
from mentalsum.core.strategies import StrategyId

# personalBests keys
BEST_SESSION_ACCURACY = "bestSessionAccuracy"
FASTEST_SESSION_AVERAGE_TIME = "fastestSessionAverageTime"
MOST_CORRECT_IN_SESSION = "mostCorrectInSession"


@dataclass
class SessionSummary:
    """Totals for the answered problems of a session."""

    answered: int
    correct: int
    wrong: int
    total_time: float
    average_time: float

    @property
    def accuracy_percent(self) -> float:
        return (self.correct / self.answered * 100) if self.answered else 0.0

    @property
    def all_correct(self) -> bool:
        # vacuously true when nothing was answered
        return self.wrong == 0


def summarize_problems(problems: list[Problem]) -> SessionSummary:
    answered = [p for p in problems if p.is_completed]
    correct = sum(1 for p in answered if p.is_correct)
    total_time = sum(p.time_spent or 0.0 for p in answered)
    return SessionSummary(
        answered=len(answered),
        correct=correct,
        wrong=len(answered) - correct,
        total_time=total_time,
        average_time=(total_time / len(answered)) if answered else 0.0,
    )


def finalize_session(session: Session, ended_at: datetime | None = None) -> Session:
    """Copy of the session marked completed with final totals."""
    summary = summarize_problems(session.problems)
    return session.model_copy(
        update={
            "completed": True,
            "end_time": ended_at or utcnow(),
            "total_correct": summary.correct,
            "total_wrong": summary.wrong,
            "average_time": summary.average_time,
        },
        deep=True,
    )


def apply_session(statistics: UserStatistics, session: Session) -> UserStatistics:
    """
    Fold a completed session into a user's statistics.

    Returns a new UserStatistics; the input is not modified.

    Streak rule: an all-correct session extends streak_current, any wrong
    answer resets it to 0. A session with no answers has no wrong answers,
    so it also extends the streak.
    """
    stats = statistics.model_copy(deep=True)
    stats.fill_missing_buckets()
    summary = summarize_problems(session.problems)

    previous = stats.total_problems_attempted
    attempted = previous + summary.answered

    stats.total_problems_attempted = attempted
    stats.total_correct_answers += summary.correct
    if attempted:
        stats.average_accuracy = stats.total_correct_answers / attempted * 100
        stats.average_response_time = (
            stats.average_response_time * previous + summary.total_time
        ) / attempted
    stats.total_sessions_completed += 1
    stats.last_session_date = session.end_time or utcnow()

    if summary.all_correct:
        stats.streak_current += 1
    else:
        stats.streak_current = 0
    stats.streak_best = max(stats.streak_best, stats.streak_current)

    for problem in session.problems:
        if not problem.is_completed:
            continue
        is_correct = bool(problem.is_correct)
        stats.strategy_performance[problem.intended_strategy].record(is_correct)

        op_stats = stats.operation_stats[problem.type]
        spent = problem.time_spent or 0.0
        op_stats.attempted += 1
        if is_correct:
            op_stats.correct += 1
        op_stats.average_time = (
            op_stats.average_time * (op_stats.attempted - 1) + spent
        ) / op_stats.attempted
        if spent > 0:
            op_stats.fastest_time = spent if op_stats.fastest_time == 0 else min(op_stats.fastest_time, spent)

        stats.problem_history.append(problem.model_copy(deep=True))

    if summary.answered:
        _update_personal_bests(stats, summary)

    return stats


def _update_personal_bests(stats: UserStatistics, summary: SessionSummary) -> None:
    bests = stats.personal_bests
    bests[BEST_SESSION_ACCURACY] = max(bests.get(BEST_SESSION_ACCURACY, 0.0), summary.accuracy_percent)
    bests[MOST_CORRECT_IN_SESSION] = max(bests.get(MOST_CORRECT_IN_SESSION, 0.0), float(summary.correct))
    if summary.average_time > 0:
        fastest = bests.get(FASTEST_SESSION_AVERAGE_TIME)
        bests[FASTEST_SESSION_AVERAGE_TIME] = (
            summary.average_time if fastest is None else min(fastest, summary.average_time)
        )


# =============================================================================
# Review helpers
# =============================================================================


def incorrect_problems(statistics: UserStatistics, limit: int | None = None) -> list[Problem]:
    """Wrongly answered problems from history, most recent first."""
    wrong = [p for p in reversed(statistics.problem_history) if p.is_correct is False]
    return wrong[:limit] if limit is not None else wrong


def weak_strategies(statistics: UserStatistics) -> list[StrategyId]:
    """Strategies categorised as weak, weakest first."""
    weak = [
        (strategy, metrics.accuracy)
        for strategy, metrics in statistics.strategy_performance.items()
        if metrics.category == PerformanceCategory.WEAK
    ]
    return [strategy for strategy, _ in sorted(weak, key=lambda item: item[1])]
