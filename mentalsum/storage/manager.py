"""
StorageManager: sole reader/writer of the persisted AppData document.

Every mutating call is a whole-document read-modify-write:
1. read the raw document from the backend (recovering corruption to defaults)
2. apply the change to the freshly loaded AppData
3. serialize the entire document and hand it to backend.write()

A failed write (QuotaExceededError) propagates and the backend keeps the
previous document. Because nothing is cached between calls there is no
in-memory state to roll back.

Concurrency: single-threaded callers only. Two processes sharing a document
will overwrite each other (last write wins).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_snake

from mentalsum.config import Settings, get_settings
from mentalsum.core.exceptions import CorruptedDataError, NotFoundError, ValidationError
from mentalsum.core.models import (
    SCHEMA_VERSION,
    AppData,
    Problem,
    Session,
    SessionType,
    User,
    UserPreferences,
    UserStatistics,
    utcnow,
)
from mentalsum.core.strategies import StrategyId
from mentalsum.storage.backends import StorageBackend, build_backend

_USER_IMMUTABLE = {"id", "created_at"}
_SESSION_IMMUTABLE = {"id", "user_id"}


# =============================================================================
# Serialization
# =============================================================================


def serialize(data: AppData, indent: int | None = None) -> str:
    """Encode the whole document as JSON text with camelCase keys."""
    return data.model_dump_json(by_alias=True, indent=indent)


def deserialize(raw: str) -> AppData:
    """
    Decode a document.

    Raises:
        CorruptedDataError: unparsable JSON, wrong shape, or failed validation
    """
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise CorruptedDataError(f"Document is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise CorruptedDataError("Document root is not an object")
    for key in ("users", "sessions"):
        if not isinstance(parsed.get(key), list):
            raise CorruptedDataError(f"Document is missing the '{key}' array")

    version = parsed.get("schemaVersion", 0)
    try:
        data = AppData.model_validate(parsed)
    except PydanticValidationError as e:
        raise CorruptedDataError(f"Document failed validation: {e.error_count()} errors") from e

    if not isinstance(version, int) or version < SCHEMA_VERSION:
        _migrate(data, version if isinstance(version, int) else 0)
    return data


def _migrate(data: AppData, from_version: int) -> None:
    """Bring an older document up to SCHEMA_VERSION (in memory only)."""
    logger.info(f"Migrating document from schema v{from_version} to v{SCHEMA_VERSION}")
    for user in data.users:
        if user.statistics.fill_missing_buckets():
            logger.info(f"Filled missing statistics buckets for user {user.id}")
    data.schema_version = SCHEMA_VERSION


def _repair_references(data: AppData) -> None:
    """Enforce referential integrity after a load."""
    user_ids = {u.id for u in data.users}

    if data.current_user_id is not None and data.current_user_id not in user_ids:
        logger.warning(f"currentUserId {data.current_user_id} has no user; clearing it")
        data.current_user_id = None

    orphans = [s for s in data.sessions if s.user_id not in user_ids]
    if orphans:
        logger.warning(f"Dropping {len(orphans)} sessions whose user no longer exists")
        data.sessions = [s for s in data.sessions if s.user_id in user_ids]


# =============================================================================
# Patch merging
# =============================================================================


def _normalize_key(key: Any, base: Mapping[str, Any]) -> Any:
    if isinstance(key, Enum):
        key = key.value
    if isinstance(key, str) and key not in base:
        snake = to_snake(key)
        if snake in base:
            return snake
    return key


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def merge_patch(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge a patch into a plain dict.

    Mappings merge key-wise at every depth, everything else replaces.
    Patch keys may be snake_case attribute names or camelCase aliases.
    """
    merged = dict(base)
    for raw_key, raw_value in patch.items():
        key = _normalize_key(raw_key, merged)
        value = _plain(raw_value)
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = merge_patch(merged[key], value)
        else:
            merged[key] = value
    return merged


def _strip_keys(patch: Mapping[str, Any], blocked: set[str]) -> dict[str, Any]:
    kept = {}
    for key, value in patch.items():
        name = key.value if isinstance(key, Enum) else key
        if isinstance(name, str) and to_snake(name) in blocked:
            logger.debug(f"Ignoring immutable field '{name}' in patch")
            continue
        kept[key] = value
    return kept


# =============================================================================
# Storage Manager
# =============================================================================


class StorageManager:
    """
    CRUD over users and sessions in one persisted document.

    Usage:
        storage = StorageManager(MemoryBackend())
        user = storage.create_user("Ada")
        storage.update_user(user.id, {"preferences": {"session_length": 7}})
    """

    def __init__(
        self,
        backend: StorageBackend,
        default_preferences: Mapping[str, Any] | None = None,
        problem_history_limit: int | None = None,
    ):
        """
        Initialize the storage manager.

        Args:
            backend: Persistence backend holding the document
            default_preferences: Overrides applied to every new user's preferences
            problem_history_limit: Cap for problemHistory (None = unbounded)
        """
        self.backend = backend
        self.default_preferences = dict(default_preferences or {})
        self.problem_history_limit = problem_history_limit

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> StorageManager:
        """File-backed manager configured from settings."""
        settings = settings or get_settings()
        return cls(
            build_backend(settings),
            default_preferences=settings.default_preferences(),
            problem_history_limit=settings.problem_history_limit,
        )

    # =========================================================================
    # Document I/O
    # =========================================================================

    def _load(self) -> AppData:
        try:
            raw = self.backend.read()
            if raw is None or not raw.strip():
                return AppData()
            data = deserialize(raw)
        except CorruptedDataError as e:
            logger.warning(f"Stored data is corrupted, using defaults: {e}")
            return AppData()

        _repair_references(data)
        return data

    def _commit(self, data: AppData) -> None:
        self.backend.write(serialize(data))

    def initialize(self) -> AppData:
        """
        Load the document.

        Missing, unparsable or shape-invalid documents yield an empty AppData.
        The default is returned, not persisted.
        """
        data = self._load()
        logger.info(f"Storage initialized: {len(data.users)} users, {len(data.sessions)} sessions")
        return data

    # =========================================================================
    # Users
    # =========================================================================

    def list_users(self) -> list[User]:
        return self._load().users

    def get_user_by_id(self, user_id: str) -> User | None:
        return self._load().get_user(user_id)

    def get_current_user(self) -> User | None:
        data = self._load()
        if data.current_user_id is None:
            return None
        return data.get_user(data.current_user_id)

    def set_current_user(self, user_id: str) -> User:
        data = self._load()
        user = data.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        data.current_user_id = user_id
        user.last_active_at = utcnow()
        self._commit(data)
        logger.info(f"Current user set to {user.name} ({user_id})")
        return user

    def create_user(
        self,
        name: str,
        preferences: Mapping[str, Any] | UserPreferences | None = None,
        statistics: Mapping[str, Any] | UserStatistics | None = None,
    ) -> User:
        """
        Create and persist a new user.

        Args:
            name: Display name (must be non-empty after trimming)
            preferences: Overrides merged key-wise into default preferences
            statistics: Overrides merged key-wise into zeroed statistics

        Raises:
            ValidationError: empty name or invalid overrides
            QuotaExceededError: the document no longer fits in storage
        """
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("User name must not be empty")

        prefs = merge_patch(UserPreferences().model_dump(mode="json"), self.default_preferences)
        if preferences is not None:
            prefs = merge_patch(prefs, _plain(preferences))
        stats = UserStatistics().model_dump(mode="json")
        if statistics is not None:
            stats = merge_patch(stats, _plain(statistics))

        now = utcnow()
        try:
            user = User(
                name=name,
                preferences=UserPreferences.model_validate(prefs),
                statistics=UserStatistics.model_validate(stats),
                created_at=now,
                last_active_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid user data: {e}") from e

        data = self._load()
        data.users.append(user)
        if len(data.users) == 1:
            data.current_user_id = user.id
        self._commit(data)

        logger.info(f"Created user {user.name} ({user.id})")
        return user

    def update_user(self, user_id: str, patch: Mapping[str, Any]) -> User:
        """
        Merge a patch into a user and persist.

        Nested mappings (preferences, statistics) merge key-wise so fields the
        patch does not mention survive. id and createdAt cannot change.

        Raises:
            NotFoundError: no such user
            ValidationError: the merged user is invalid
        """
        data = self._load()
        index = next((i for i, u in enumerate(data.users) if u.id == user_id), None)
        if index is None:
            raise NotFoundError("User", user_id)

        current = data.users[index]
        merged = merge_patch(current.model_dump(mode="json"), _strip_keys(patch, _USER_IMMUTABLE))
        merged["last_active_at"] = utcnow()

        try:
            updated = User.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid user update: {e}") from e

        data.users[index] = updated
        self._commit(data)
        logger.debug(f"Updated user {user_id}: {sorted(str(k) for k in patch)}")
        return updated

    def delete_user(self, user_id: str) -> None:
        """Remove a user and every session they own."""
        data = self._load()
        if data.get_user(user_id) is None:
            raise NotFoundError("User", user_id)

        data.users = [u for u in data.users if u.id != user_id]
        removed = sum(1 for s in data.sessions if s.user_id == user_id)
        data.sessions = [s for s in data.sessions if s.user_id != user_id]
        if data.current_user_id == user_id:
            data.current_user_id = data.users[0].id if data.users else None

        self._commit(data)
        logger.info(f"Deleted user {user_id} and {removed} sessions")

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(
        self,
        user_id: str,
        problems: list[Problem],
        session_type: SessionType = SessionType.GENERAL,
        focused_strategy_id: StrategyId | None = None,
        session_length: int | None = None,
    ) -> Session:
        """
        Create and persist a session for an existing user.

        Raises:
            NotFoundError: user_id does not resolve (document untouched)
        """
        data = self._load()
        if data.get_user(user_id) is None:
            raise NotFoundError("User", user_id)

        try:
            session = Session(
                user_id=user_id,
                problems=problems,
                session_length=len(problems) if session_length is None else session_length,
                session_type=session_type,
                focused_strategy_id=focused_strategy_id,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid session: {e}") from e

        data.sessions.append(session)
        self._commit(data)
        logger.info(f"Created {session_type.value} session {session.id} with {len(problems)} problems")
        return session

    def get_session_by_id(self, session_id: str) -> Session | None:
        return self._load().get_session(session_id)

    def get_sessions_by_user(self, user_id: str) -> list[Session]:
        return [s for s in self._load().sessions if s.user_id == user_id]

    def update_session(self, session_id: str, patch: Mapping[str, Any]) -> Session:
        """
        Merge a patch into a session and persist.

        Raises:
            NotFoundError: no such session
            ValidationError: session already completed, or invalid result
        """
        data = self._load()
        index = next((i for i, s in enumerate(data.sessions) if s.id == session_id), None)
        if index is None:
            raise NotFoundError("Session", session_id)

        current = data.sessions[index]
        if current.completed:
            raise ValidationError(f"Session {session_id} is completed and cannot change")

        merged = merge_patch(current.model_dump(mode="json"), _strip_keys(patch, _SESSION_IMMUTABLE))
        try:
            updated = Session.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid session update: {e}") from e

        data.sessions[index] = updated
        self._commit(data)
        return updated

    def complete_session(self, session: Session, statistics: UserStatistics) -> tuple[Session, User]:
        """
        Persist a finished session and its owner's new statistics in one write.

        Raises:
            NotFoundError: session or user missing
            ValidationError: stored session already completed
        """
        data = self._load()
        index = next((i for i, s in enumerate(data.sessions) if s.id == session.id), None)
        if index is None:
            raise NotFoundError("Session", session.id)
        if data.sessions[index].completed:
            raise ValidationError(f"Session {session.id} is already completed")

        user = data.get_user(session.user_id)
        if user is None:
            raise NotFoundError("User", session.user_id)

        data.sessions[index] = session
        user.statistics = statistics
        user.last_active_at = utcnow()

        limit = self.problem_history_limit
        if limit is not None and len(user.statistics.problem_history) > limit:
            user.statistics.problem_history = user.statistics.problem_history[-limit:]

        self._commit(data)
        logger.info(
            f"Completed session {session.id}: {session.total_correct} correct, "
            f"{session.total_wrong} wrong"
        )
        return session, user

    # =========================================================================
    # Export / Import / Maintenance
    # =========================================================================

    def export_data(self) -> str:
        """Pretty-printed JSON of the whole document."""
        return serialize(self._load(), indent=2)

    def import_data(self, raw: str) -> AppData:
        """
        Replace the document with an exported one.

        Raises:
            ValidationError: the text is not a valid document
        """
        try:
            data = deserialize(raw)
        except CorruptedDataError as e:
            raise ValidationError(f"Invalid data format: {e}") from e

        _repair_references(data)
        self._commit(data)
        logger.info(f"Imported {len(data.users)} users and {len(data.sessions)} sessions")
        return data

    def clear_all_data(self) -> None:
        self.backend.clear()
        logger.info("All stored data cleared")

    def storage_size(self) -> int:
        """Size of the stored document in bytes, including undecodable content."""
        return self.backend.size()
