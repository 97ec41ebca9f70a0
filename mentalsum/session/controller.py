"""
Session Controller: practice intents and the session lifecycle.

States:
    IDLE -> INTENT_PENDING -> ACTIVE -> COMPLETED

- Intents are set before the practice view is shown; the view reads them
  and calls start_session(). They live in memory only.
- Every mutation follows the same order: apply in memory, persist through
  the StorageManager, then notify subscribers. If persistence fails the
  in-memory change is rolled back and nobody is notified.
- COMPLETED is terminal until clear_session(), start_same_type_session()
  or a new start_session().
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from loguru import logger

from mentalsum.core.exceptions import NotFoundError, ValidationError
from mentalsum.core.models import Problem, Session, SessionType, User, utcnow
from mentalsum.core.strategies import StrategyId
from mentalsum.engine.problem_engine import ProblemEngine
from mentalsum.session.statistics import apply_session, finalize_session
from mentalsum.storage.manager import StorageManager

TIMEOUT_ANSWER = -1


class SessionPhase(str, Enum):
    """Lifecycle state of the controller."""

    IDLE = "idle"
    INTENT_PENDING = "intent_pending"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class PracticeIntent:
    """What kind of session should start when the practice view opens."""

    practice_intent: bool = False
    session_type_intent: SessionType = SessionType.GENERAL
    focused_strategy_id: StrategyId | None = None


@dataclass(frozen=True)
class SessionProgress:
    completed: int
    total: int

    @property
    def percentage(self) -> float:
        return (self.completed / self.total * 100) if self.total else 0.0


Listener = Callable[["SessionController"], None]


class SessionController:
    """
    Orchestrates practice sessions on top of a StorageManager.

    Usage:
        controller = SessionController(storage)
        controller.set_practice_intent(True)
        controller.set_session_type_intent("focused")
        controller.set_focused_strategy("AdditionDoubles")
        session = controller.start_session()
        controller.submit_answer(42)
    """

    def __init__(
        self,
        storage: StorageManager,
        engine: ProblemEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.engine = engine or ProblemEngine()
        self.clock = clock

        self._phase = SessionPhase.IDLE
        self._intent = PracticeIntent()
        self._session: Session | None = None
        self._time_limit = 30
        self._listeners: list[Listener] = []

        self.last_session_type: SessionType | None = None
        self.last_focused_strategy_id: StrategyId | None = None

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def intent(self) -> PracticeIntent:
        return self._intent

    @property
    def practice_intent(self) -> bool:
        return self._intent.practice_intent

    @property
    def session_type_intent(self) -> SessionType:
        return self._intent.session_type_intent

    @property
    def focused_strategy_id(self) -> StrategyId | None:
        return self._intent.focused_strategy_id

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def current_problem(self) -> Problem | None:
        if self._session is None or self._phase != SessionPhase.ACTIVE:
            return None
        index = self._session.current_index
        return None if index is None else self._session.problems[index]

    def progress(self) -> SessionProgress:
        if self._session is None:
            return SessionProgress(completed=0, total=0)
        return SessionProgress(
            completed=len(self._session.answered_problems),
            total=len(self._session.problems),
        )

    # =========================================================================
    # Intents
    # =========================================================================

    def set_practice_intent(self, flag: bool) -> None:
        self._intent = replace(self._intent, practice_intent=flag)
        if flag and self._phase == SessionPhase.IDLE:
            self._phase = SessionPhase.INTENT_PENDING
        elif not flag and self._phase == SessionPhase.INTENT_PENDING:
            self._phase = SessionPhase.IDLE
        self._notify()

    def set_session_type_intent(self, session_type: SessionType | str) -> None:
        try:
            session_type = SessionType(session_type)
        except ValueError as e:
            raise ValidationError(f"Unknown session type: {session_type}") from e
        self._intent = replace(self._intent, session_type_intent=session_type)
        self._notify()

    def set_focused_strategy(self, strategy_id: StrategyId | str) -> None:
        if not isinstance(strategy_id, StrategyId):
            try:
                strategy_id = StrategyId.parse(strategy_id)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        self._intent = replace(self._intent, focused_strategy_id=strategy_id)
        self._notify()

    def clear_focused_strategy(self) -> None:
        self._intent = replace(self._intent, focused_strategy_id=None)
        self._notify()

    def clear_session(self) -> None:
        """Drop intents and any in-memory session, back to IDLE."""
        if self._phase == SessionPhase.ACTIVE and self._session is not None:
            logger.info(f"Abandoning active session {self._session.id}")
        self._intent = PracticeIntent()
        self._session = None
        self._phase = SessionPhase.IDLE
        self._notify()

    def start_same_type_session(self) -> None:
        """Queue another session of the last type (and focused strategy)."""
        session_type = self.last_session_type or SessionType.GENERAL
        focused = self.last_focused_strategy_id if session_type == SessionType.FOCUSED else None
        self._intent = PracticeIntent(
            practice_intent=True,
            session_type_intent=session_type,
            focused_strategy_id=focused,
        )
        self._session = None
        self._phase = SessionPhase.INTENT_PENDING
        self._notify()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _resolve_user(self, user_id: str | None) -> User:
        if user_id is not None:
            user = self.storage.get_user_by_id(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return user

        user = self.storage.get_current_user()
        if user is None:
            raise ValidationError("No current user selected")
        return user

    def _effective_focus(self) -> StrategyId | None:
        if self._intent.session_type_intent != SessionType.FOCUSED:
            return None
        if self._intent.focused_strategy_id is None:
            logger.warning("Focused session requested without a strategy; starting a general session")
            return None
        return self._intent.focused_strategy_id

    def start_session(self, user_id: str | None = None) -> Session:
        """
        Generate and persist a new session from the current intent.

        Raises:
            NotFoundError: user_id does not resolve
            ValidationError: no current user, or no operations enabled
            QuotaExceededError: the new session does not fit in storage
        """
        user = self._resolve_user(user_id)
        focused = self._effective_focus()
        session_type = SessionType.FOCUSED if focused else SessionType.GENERAL

        problems = self.engine.generate_session_problems(
            user.preferences, user.statistics, focused_strategy=focused
        )
        if problems:
            problems[0].attempted_at = self.clock()

        session = self.storage.create_session(
            user.id,
            problems,
            session_type=session_type,
            focused_strategy_id=focused,
        )

        if self._phase == SessionPhase.ACTIVE and self._session is not None:
            logger.info(f"Replacing active session {self._session.id}")
        self._session = session
        self._time_limit = user.preferences.time_limit
        self._phase = SessionPhase.ACTIVE
        self._intent = replace(self._intent, practice_intent=False)
        self.last_session_type = session_type
        self.last_focused_strategy_id = focused

        logger.info(f"Started {session_type.value} session {session.id} for {user.name}")
        self._notify()
        return session

    def _require_active(self) -> tuple[Session, int]:
        if self._phase != SessionPhase.ACTIVE or self._session is None:
            raise ValidationError("No active session")
        index = self._session.current_index
        if index is None:
            raise ValidationError("All problems in this session are already answered")
        return self._session, index

    def _answer(self, user_answer: int, is_correct: bool, time_spent: float | None) -> Problem:
        session, index = self._require_active()
        previous = session.model_copy(deep=True)
        now = self.clock()

        problem = session.problems[index]
        if time_spent is None:
            started = problem.attempted_at or now
            time_spent = (now - started).total_seconds()
        problem.user_answer = user_answer
        problem.is_correct = is_correct
        problem.time_spent = max(0.0, time_spent)
        problem.completed_at = now
        if is_correct:
            session.total_correct += 1
        else:
            session.total_wrong += 1

        next_index = session.current_index
        if next_index is not None:
            session.problems[next_index].attempted_at = now

        try:
            self._session = self.storage.update_session(
                session.id,
                {
                    "problems": session.problems,
                    "total_correct": session.total_correct,
                    "total_wrong": session.total_wrong,
                },
            )
        except Exception:
            self._session = previous
            raise

        logger.debug(
            f"Answered {problem.display} = {user_answer} "
            f"({'correct' if is_correct else 'wrong'}, {problem.time_spent:.1f}s)"
        )
        self._notify()

        if next_index is None:
            self._complete()
        return problem

    def submit_answer(self, answer: int, time_spent: float | None = None) -> Problem:
        """
        Answer the current problem.

        Args:
            answer: The user's answer
            time_spent: Seconds taken (defaults to time since the problem was shown)

        Returns:
            The completed problem. Answering the last problem completes the session.
        """
        session, index = self._require_active()
        problem = session.problems[index]
        return self._answer(answer, answer == problem.correct_answer, time_spent)

    def record_timeout(self) -> Problem:
        """Mark the current problem wrong because the time limit ran out."""
        return self._answer(TIMEOUT_ANSWER, False, float(self._time_limit))

    def end_session(self) -> Session:
        """Explicitly finish the active session."""
        if self._phase != SessionPhase.ACTIVE or self._session is None:
            raise ValidationError("No active session")
        return self._complete()

    def _complete(self) -> Session:
        session = self._session
        user = self.storage.get_user_by_id(session.user_id)
        if user is None:
            raise NotFoundError("User", session.user_id)

        final = finalize_session(session, ended_at=self.clock())
        statistics = apply_session(user.statistics, final)
        final, _ = self.storage.complete_session(final, statistics)

        self._session = final
        self._phase = SessionPhase.COMPLETED
        logger.info(
            f"Session {final.id} complete: {final.total_correct}/{len(final.answered_problems)} correct"
        )
        self._notify()
        return final
