"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import json

import pytest
from typer.testing import CliRunner

from mentalsum.cli import app
from mentalsum.config import get_settings
from mentalsum.storage.manager import StorageManager

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

runner = CliRunner()


@pytest.fixture
def cli_env(isolated_settings, monkeypatch):
    """Settings in a temp dir with short, reproducible sessions."""
    monkeypatch.setenv("MENTALSUM_DEFAULT_SESSION_LENGTH", "3")
    monkeypatch.setenv("MENTALSUM_RANDOM_SEED", "1")
    get_settings.cache_clear()
    return get_settings()


def invoke(*args, input=None):
    return runner.invoke(app, list(args), input=input)


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, cli_env):
        result = invoke("--help")

        assert result.exit_code == 0
        assert "practice" in result.stdout
        assert "users" in result.stdout

    def test_strategies(self, cli_env):
        result = invoke("strategies", "--operation", "division")

        assert result.exit_code == 0
        assert "DivisionFactorRecognition" in result.stdout
        assert "AdditionDoubles" not in result.stdout


class TestUserCommands:
    def test_create_and_list(self, cli_env):
        assert invoke("users", "create", "Ada").exit_code == 0

        result = invoke("users", "list")
        assert result.exit_code == 0
        assert "Ada" in result.stdout

    def test_list_empty(self, cli_env):
        result = invoke("users", "list")
        assert result.exit_code == 0
        assert "No users" in result.stdout

    def test_create_empty_name_fails(self, cli_env):
        result = invoke("users", "create", "  ")
        assert result.exit_code == 1

    def test_select_and_rename(self, cli_env):
        invoke("users", "create", "Ada")
        invoke("users", "create", "Grace")

        assert invoke("users", "select", "grace").exit_code == 0
        assert invoke("users", "rename", "Grace", "Grace H").exit_code == 0

        current = StorageManager.from_settings(cli_env).get_current_user()
        assert current.name == "Grace H"

    def test_delete(self, cli_env):
        invoke("users", "create", "Ada")

        result = invoke("users", "delete", "Ada", "--yes")

        assert result.exit_code == 0
        assert StorageManager.from_settings(cli_env).list_users() == []

    def test_select_unknown(self, cli_env):
        result = invoke("users", "select", "nobody")
        assert result.exit_code == 1


class TestSettingsCommand:
    def test_update_preferences(self, cli_env):
        invoke("users", "create", "Ada")

        result = invoke("settings", "--length", "5", "--ops", "addition,subtraction")

        assert result.exit_code == 0
        prefs = StorageManager.from_settings(cli_env).get_current_user().preferences
        assert prefs.session_length == 5
        assert prefs.enabled_operations.multiplication is False

    def test_invalid_operation(self, cli_env):
        invoke("users", "create", "Ada")
        assert invoke("settings", "--ops", "modulo").exit_code == 1

    def test_out_of_range(self, cli_env):
        invoke("users", "create", "Ada")
        assert invoke("settings", "--max", "5").exit_code == 1


class TestPracticeCommand:
    def test_practice_without_user(self, cli_env):
        result = invoke("practice")
        assert result.exit_code == 1

    def test_full_session(self, cli_env):
        """Zero is never a correct answer, so every problem is wrong."""
        invoke("users", "create", "Ada")

        result = invoke("practice", input="0\n0\n0\n")

        assert result.exit_code == 0, result.stdout
        assert "Session complete" in result.stdout
        stats = StorageManager.from_settings(cli_env).get_current_user().statistics
        assert stats.total_sessions_completed == 1
        assert stats.total_problems_attempted == 3
        assert stats.total_correct_answers == 0

    def test_quit_early(self, cli_env):
        invoke("users", "create", "Ada")

        result = invoke("practice", input="0\nq\n")

        assert result.exit_code == 0
        stats = StorageManager.from_settings(cli_env).get_current_user().statistics
        assert stats.total_problems_attempted == 1

    def test_input_closed_mid_session(self, cli_env):
        """Running out of input ends and saves the session."""
        invoke("users", "create", "Ada")

        result = invoke("practice", input="0\n")

        assert result.exit_code == 0, result.stdout
        storage = StorageManager.from_settings(cli_env)
        user = storage.get_current_user()
        sessions = storage.get_sessions_by_user(user.id)
        assert len(sessions) == 1
        assert sessions[0].completed is True
        assert user.statistics.total_problems_attempted == 1

    def test_focused_and_again(self, cli_env):
        invoke("users", "create", "Ada")
        assert invoke("practice", "--focus", "MultiplicationTimes9", input="q\n").exit_code == 0

        result = invoke("practice", "--again", input="q\n")

        assert result.exit_code == 0
        storage = StorageManager.from_settings(cli_env)
        sessions = storage.get_sessions_by_user(storage.get_current_user().id)
        assert len(sessions) == 2
        assert all(s.focused_strategy_id == "MultiplicationTimes9" for s in sessions)

    def test_unknown_focus(self, cli_env):
        invoke("users", "create", "Ada")
        assert invoke("practice", "--focus", "Guessing").exit_code == 1


class TestProgressCommands:
    def test_stats_and_review(self, cli_env):
        invoke("users", "create", "Ada")
        invoke("practice", input="0\n0\n0\n")

        stats = invoke("stats")
        review = invoke("review")

        assert stats.exit_code == 0
        assert "Ada" in stats.stdout
        assert review.exit_code == 0
        assert "Recent mistakes" in review.stdout


class TestDataCommands:
    def test_export_import_roundtrip(self, cli_env, tmp_path):
        invoke("users", "create", "Ada")
        target = tmp_path / "export.json"

        assert invoke("export", str(target)).exit_code == 0
        assert json.loads(target.read_text(encoding="utf-8"))["users"][0]["name"] == "Ada"

        assert invoke("reset", "--yes").exit_code == 0
        assert StorageManager.from_settings(cli_env).list_users() == []

        assert invoke("import", str(target)).exit_code == 0
        assert StorageManager.from_settings(cli_env).get_current_user().name == "Ada"

    def test_import_invalid(self, cli_env, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope", encoding="utf-8")
        assert invoke("import", str(bad)).exit_code == 1

    def test_import_non_utf8(self, cli_env, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_bytes(b"\xff\xfe\x00garbage")

        result = invoke("import", str(bad))

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_export_stdout(self, cli_env):
        result = invoke("export")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["users"] == []
