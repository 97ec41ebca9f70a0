"""
Tests for StorageManager.

Covers:
- Default recovery for empty, unparsable and shape-invalid documents
- User CRUD, key-wise preference merging, cascade deletes
- Session CRUD and the completed-session guard
- Quota failures leaving the stored document intact
- Export / import
"""

import json

import pytest

from mentalsum.core.exceptions import NotFoundError, QuotaExceededError, ValidationError
from mentalsum.core.models import AppData, Session, SessionType, UserStatistics
from mentalsum.core.strategies import StrategyId
from mentalsum.storage.backends import FileBackend, MemoryBackend
from mentalsum.storage.manager import StorageManager, merge_patch, serialize


# =============================================================================
# Initialization
# =============================================================================


class TestInitialize:
    def test_empty_backend_returns_defaults(self, storage, backend):
        data = storage.initialize()

        assert data.users == []
        assert data.sessions == []
        assert data.current_user_id is None
        assert backend.write_count == 0

    @pytest.mark.parametrize(
        "raw",
        [
            "not json {",
            "[]",
            '"just a string"',
            '{"users": []}',
            '{"users": {}, "sessions": []}',
            '{"users": [{"id": 5}], "sessions": []}',
        ],
    )
    def test_invalid_documents_recover_to_defaults(self, raw):
        """Corrupted data is never raised and never persisted."""
        backend = MemoryBackend(initial=raw)
        data = StorageManager(backend).initialize()

        assert data == AppData()
        assert backend.read() == raw

    def test_legacy_document_migrated(self):
        """Documents without schemaVersion get missing strategy buckets."""
        legacy = {
            "users": [
                {
                    "id": "u1",
                    "name": "Old",
                    "statistics": {
                        "strategyPerformance": {
                            "AdditionDoubles": {"correct": 3, "incorrect": 1, "totalAttempts": 4}
                        }
                    },
                }
            ],
            "sessions": [],
            "currentUserId": "u1",
        }
        storage = StorageManager(MemoryBackend(initial=json.dumps(legacy)))

        data = storage.initialize()
        perf = data.users[0].statistics.strategy_performance

        assert data.schema_version == 1
        assert len(perf) == 15
        assert perf[StrategyId.ADDITION_DOUBLES].correct == 3

    def test_dangling_references_repaired(self, make_problem):
        doc = {
            "users": [{"id": "u1", "name": "Kept"}],
            "sessions": [
                json.loads(Session(user_id="ghost", problems=[make_problem()]).model_dump_json(by_alias=True))
            ],
            "currentUserId": "ghost",
            "schemaVersion": 1,
        }
        data = StorageManager(MemoryBackend(initial=json.dumps(doc))).initialize()

        assert data.current_user_id is None
        assert data.sessions == []


# =============================================================================
# Users
# =============================================================================


class TestUsers:
    def test_create_user(self, storage):
        user = storage.create_user("  Ada ")

        assert user.name == "Ada"
        assert user.created_at == user.last_active_at
        assert storage.get_user_by_id(user.id).model_dump() == user.model_dump()

    def test_first_user_becomes_current(self, storage):
        first = storage.create_user("Ada")
        storage.create_user("Grace")

        assert storage.get_current_user().id == first.id

    def test_same_name_distinct_ids(self, storage):
        a = storage.create_user("Sam")
        b = storage.create_user("Sam")

        assert a.id != b.id
        assert len(storage.list_users()) == 2

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_rejected(self, storage, backend, name):
        with pytest.raises(ValidationError):
            storage.create_user(name)
        assert backend.write_count == 0

    def test_preference_overrides_merge_with_defaults(self, storage):
        user = storage.create_user("Ada", preferences={"session_length": 5})

        assert user.preferences.session_length == 5
        assert user.preferences.max_number == 99

    def test_manager_default_preferences(self):
        storage = StorageManager(MemoryBackend(), default_preferences={"time_limit": 45})
        assert storage.create_user("Ada").preferences.time_limit == 45

    def test_invalid_preferences_rejected(self, storage):
        with pytest.raises(ValidationError):
            storage.create_user("Ada", preferences={"session_length": 0})

    def test_get_unknown_user_is_none(self, storage):
        assert storage.get_user_by_id("missing") is None

    def test_set_current_user(self, storage, user):
        other = storage.create_user("Grace")
        storage.set_current_user(other.id)
        assert storage.get_current_user().id == other.id

    def test_set_current_user_unknown(self, storage):
        with pytest.raises(NotFoundError):
            storage.set_current_user("missing")


class TestUpdateUser:
    def test_nested_preferences_merge_key_wise(self, storage, user):
        """Updating one preference keeps the others."""
        updated = storage.update_user(user.id, {"preferences": {"session_length": 7}})

        assert updated.preferences.session_length == 7
        assert updated.preferences.max_number == user.preferences.max_number
        assert updated.preferences.enabled_operations == user.preferences.enabled_operations

    def test_deeply_nested_merge(self, storage, user):
        updated = storage.update_user(
            user.id, {"preferences": {"enabledOperations": {"division": False}}}
        )
        ops = updated.preferences.enabled_operations
        assert ops.division is False
        assert ops.addition is True

    def test_sequential_updates(self, storage, user):
        """Twenty updates in a row; the last one wins."""
        for i in range(20):
            storage.update_user(user.id, {"preferences": {"session_length": 5 + (i % 10)}})

        prefs = storage.get_user_by_id(user.id).preferences
        assert prefs.session_length == 14
        assert prefs.max_number == user.preferences.max_number

    def test_immutable_fields_ignored(self, storage, user):
        updated = storage.update_user(user.id, {"id": "hijack", "createdAt": "2000-01-01T00:00:00Z"})

        assert updated.id == user.id
        assert updated.created_at == user.created_at

    def test_last_active_refreshed(self, storage, user):
        updated = storage.update_user(user.id, {"name": "Ada L"})
        assert updated.last_active_at >= user.last_active_at

    def test_unknown_user(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_user("missing", {"name": "x"})

    def test_invalid_update_not_written(self, storage, backend, user):
        writes = backend.write_count
        with pytest.raises(ValidationError):
            storage.update_user(user.id, {"preferences": {"max_number": 5}})
        assert backend.write_count == writes


class TestDeleteUser:
    def test_cascade_sessions(self, storage, user, make_problem):
        storage.create_session(user.id, [make_problem()])
        other = storage.create_user("Grace")
        kept = storage.create_session(other.id, [make_problem()])

        storage.delete_user(user.id)

        assert storage.get_user_by_id(user.id) is None
        assert storage.get_sessions_by_user(user.id) == []
        assert storage.get_session_by_id(kept.id) is not None

    def test_current_user_reassigned(self, storage, user):
        other = storage.create_user("Grace")
        storage.delete_user(user.id)
        assert storage.get_current_user().id == other.id

    def test_last_user_clears_current(self, storage, user):
        storage.delete_user(user.id)
        assert storage.get_current_user() is None

    def test_unknown_user(self, storage):
        with pytest.raises(NotFoundError):
            storage.delete_user("missing")


# =============================================================================
# Sessions
# =============================================================================


class TestSessions:
    def test_create_session(self, storage, user, make_problem):
        session = storage.create_session(
            user.id,
            [make_problem(), make_problem()],
            session_type=SessionType.FOCUSED,
            focused_strategy_id=StrategyId.ADDITION_BRIDGING_TO_10S,
        )

        assert session.session_length == 2
        assert session.completed is False
        assert storage.get_session_by_id(session.id).model_dump() == session.model_dump()

    def test_create_session_unknown_user(self, storage, backend, make_problem):
        """The document is untouched."""
        storage.create_user("Ada")
        before = backend.read()

        with pytest.raises(NotFoundError):
            storage.create_session("missing", [make_problem()])

        assert backend.read() == before

    def test_update_session(self, storage, user, make_problem):
        session = storage.create_session(user.id, [make_problem(), make_problem()])
        problems = [make_problem(answer=15), session.problems[1]]

        updated = storage.update_session(session.id, {"problems": problems, "total_correct": 1})

        assert updated.total_correct == 1
        assert updated.problems[0].is_correct is True
        assert updated.user_id == user.id

    def test_update_violating_totals(self, storage, user, make_problem):
        session = storage.create_session(user.id, [make_problem()])
        with pytest.raises(ValidationError):
            storage.update_session(session.id, {"total_correct": 1})

    def test_update_unknown_session(self, storage):
        with pytest.raises(NotFoundError):
            storage.update_session("missing", {"total_correct": 0})

    def test_completed_session_is_terminal(self, storage, user, make_problem):
        session = storage.create_session(user.id, [make_problem(answer=15)])
        finished = session.model_copy(update={"completed": True, "total_correct": 1})
        storage.complete_session(finished, UserStatistics())

        with pytest.raises(ValidationError):
            storage.update_session(session.id, {"average_time": 1.0})
        with pytest.raises(ValidationError):
            storage.complete_session(finished, UserStatistics())

    def test_complete_session_single_write(self, storage, backend, user, make_problem):
        session = storage.create_session(user.id, [make_problem(answer=15)])
        stats = UserStatistics(total_sessions_completed=1)
        writes = backend.write_count

        saved, owner = storage.complete_session(session.model_copy(update={"completed": True}), stats)

        assert backend.write_count == writes + 1
        assert saved.completed is True
        assert owner.statistics.total_sessions_completed == 1
        assert storage.get_user_by_id(user.id).statistics.total_sessions_completed == 1

    def test_problem_history_limit(self, make_problem):
        storage = StorageManager(MemoryBackend(), problem_history_limit=2)
        user = storage.create_user("Ada")
        session = storage.create_session(user.id, [make_problem(answer=15)])
        history = [make_problem(a=i, b=1, answer=i + 1) for i in range(1, 5)]

        _, owner = storage.complete_session(
            session.model_copy(update={"completed": True}),
            UserStatistics(problem_history=history),
        )

        assert [p.operands[0] for p in owner.statistics.problem_history] == [3, 4]


# =============================================================================
# Quota
# =============================================================================


class TestQuota:
    def test_quota_failure_leaves_document_intact(self, make_problem):
        backend = MemoryBackend()
        storage = StorageManager(backend)
        user = storage.create_user("Ada")
        backend.quota_bytes = len(backend.read().encode("utf-8")) + 10
        before = backend.read()

        with pytest.raises(QuotaExceededError):
            storage.create_session(user.id, [make_problem() for _ in range(20)])

        assert backend.read() == before
        assert storage.get_sessions_by_user(user.id) == []


# =============================================================================
# Export / Import / Maintenance
# =============================================================================


class TestExportImport:
    def test_export_is_pretty_json(self, storage, user):
        exported = storage.export_data()

        assert "\n  " in exported
        assert json.loads(exported)["users"][0]["id"] == user.id

    def test_import_replaces_document(self, storage, user):
        exported = storage.export_data()
        target = StorageManager(MemoryBackend())

        data = target.import_data(exported)

        assert [u.id for u in data.users] == [user.id]
        assert target.get_current_user().id == user.id

    def test_import_invalid(self, storage, backend, user):
        before = backend.read()
        with pytest.raises(ValidationError):
            storage.import_data("{oops")
        assert backend.read() == before

    def test_clear_all_data(self, storage, user):
        storage.clear_all_data()

        assert storage.list_users() == []
        assert storage.storage_size() == 0

    def test_storage_size(self, storage, backend, user):
        assert storage.storage_size() == len(backend.read().encode("utf-8"))

    def test_storage_size_counts_undecodable_file(self, tmp_path):
        """A non-UTF-8 file still reports its bytes on disk."""
        path = tmp_path / "data.json"
        path.write_bytes(b"\xff\xfe\x00not utf-8")
        storage = StorageManager(FileBackend(path))

        assert storage.storage_size() == path.stat().st_size
        assert storage.storage_size() > 0


class TestMergePatch:
    def test_scalars_replace(self):
        assert merge_patch({"a": 1, "b": 2}, {"a": 3}) == {"a": 3, "b": 2}

    def test_camel_case_keys_map_to_existing(self):
        assert merge_patch({"session_length": 10}, {"sessionLength": 5}) == {"session_length": 5}

    def test_enum_keys_normalised(self):
        base = {"AdditionDoubles": {"correct": 1, "incorrect": 0}}
        merged = merge_patch(base, {StrategyId.ADDITION_DOUBLES: {"correct": 2}})
        assert merged == {"AdditionDoubles": {"correct": 2, "incorrect": 0}}

    def test_serialize_round_trip_default(self):
        assert json.loads(serialize(AppData()))["users"] == []
