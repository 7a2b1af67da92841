"""
Shared pytest fixtures for practice simulation tests.

Provides fixtures for:
- Mock LLM clients
- Scripted reply generator
- Attempt stores (in-memory and temporary SQLite)
- Simulation service factory
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dooriq.attempt_store import InMemoryAttemptStore, SQLiteAttemptStore
from dooriq.personas import PersonaGenerator
from dooriq.reply_generator import ScriptedReplyGenerator
from dooriq.session_lock import SessionLockManager
from dooriq.simulation import SimulationService


# =============================================================================
# Mock LLM Fixtures
# =============================================================================

@pytest.fixture
def mock_llm():
    """Basic mock VLLMClient."""
    llm = MagicMock()
    llm.generate.return_value = "Okay... what's this about?"
    llm.health_check.return_value = True
    llm.model = "mock-model"
    return llm


@pytest.fixture
def failing_llm():
    """Mock VLLMClient whose every call fails."""
    llm = MagicMock()
    llm.generate.side_effect = RuntimeError("connection refused")
    llm.model = "mock-model"
    return llm


# =============================================================================
# Personas & replies
# =============================================================================

@pytest.fixture
def persona_generator():
    return PersonaGenerator()


@pytest.fixture
def skeptical_persona(persona_generator):
    return persona_generator.generate("skeptical")


@pytest.fixture
def scripted_generator():
    return ScriptedReplyGenerator()


# =============================================================================
# Storage & locks
# =============================================================================

@pytest.fixture
def memory_store():
    return InMemoryAttemptStore()


@pytest.fixture
def sqlite_store(tmp_path: Path):
    return SQLiteAttemptStore(str(tmp_path / "attempts.db"))


@pytest.fixture
def lock_manager(tmp_path: Path):
    return SessionLockManager(lock_dir=str(tmp_path / "locks"))


# =============================================================================
# Service
# =============================================================================

@pytest.fixture
def service_factory(memory_store, lock_manager, scripted_generator):
    """
    Build a SimulationService with test defaults.

    Usage:
        service = service_factory(reply_generator=my_generator)
    """
    def _create(**overrides) -> SimulationService:
        kwargs = {
            "store": memory_store,
            "reply_generator": scripted_generator,
            "lock_manager": lock_manager,
        }
        kwargs.update(overrides)
        return SimulationService(**kwargs)
    return _create


@pytest.fixture
def service(service_factory):
    return service_factory()
