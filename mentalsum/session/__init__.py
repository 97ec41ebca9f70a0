"""Practice intents, session lifecycle and statistics aggregation."""

from mentalsum.session.controller import (
    PracticeIntent,
    SessionController,
    SessionPhase,
    SessionProgress,
)

__all__ = [
    "SessionController",
    "SessionPhase",
    "PracticeIntent",
    "SessionProgress",
]
