"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from mentalsum.config import get_settings  # noqa: E402
from mentalsum.core.models import Problem  # noqa: E402
from mentalsum.core.strategies import Operation, StrategyId  # noqa: E402
from mentalsum.engine.problem_engine import ProblemEngine  # noqa: E402
from mentalsum.storage.backends import MemoryBackend  # noqa: E402
from mentalsum.storage.manager import StorageManager  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (storage + controller)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def backend():
    """Empty in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def storage(backend):
    """StorageManager over the in-memory backend."""
    return StorageManager(backend)


@pytest.fixture
def user(storage):
    """A persisted user (the first user, so also current)."""
    return storage.create_user("Ada")


@pytest.fixture
def engine():
    """Problem engine with a fixed seed."""
    return ProblemEngine(random.Random(42))


@pytest.fixture
def make_problem():
    """Factory for problems, optionally already answered."""

    def _make(
        a=7,
        b=8,
        operation=Operation.ADDITION,
        strategy=StrategyId.ADDITION_BRIDGING_TO_10S,
        answer=None,
        time_spent=2.0,
    ):
        correct = {
            Operation.ADDITION: a + b,
            Operation.SUBTRACTION: a - b,
            Operation.MULTIPLICATION: a * b,
            Operation.DIVISION: a // b,
        }[operation]
        problem = Problem(
            type=operation,
            operands=(a, b),
            correct_answer=correct,
            intended_strategy=strategy,
        )
        if answer is not None:
            started = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
            problem.user_answer = answer
            problem.is_correct = answer == correct
            problem.time_spent = time_spent
            problem.attempted_at = started
            problem.completed_at = started + timedelta(seconds=time_spent)
        return problem

    return _make


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temporary data directory."""
    monkeypatch.setenv("MENTALSUM_DATA_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()
