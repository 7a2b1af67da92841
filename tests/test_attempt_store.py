"""
Tests for attempt persistence (SQLite and in-memory).
"""

import pytest

from dooriq.attempt import Attempt, Message, new_attempt_id
from dooriq.attempt_store import (
    AttemptStore,
    InMemoryAttemptStore,
    SQLiteAttemptStore,
    create_attempt_store,
)
from dooriq.errors import AttemptNotFoundError, StaleAttemptError
from dooriq.persona_mood import PersonaMood
from dooriq.turn_evaluator import LiveMetrics


@pytest.fixture(params=["memory", "sqlite"])
def store(request, memory_store, sqlite_store):
    return memory_store if request.param == "memory" else sqlite_store


def _attempt(persona, user_id="user-1"):
    return Attempt(
        attempt_id=new_attempt_id(),
        user_id=user_id,
        persona=persona,
        mood=PersonaMood.initial(persona),
        created_at=1000.0,
    )


class TestAttemptStoreContract:
    """Behaviour shared by both stores"""

    def test_create_and_get(self, store, skeptical_persona):
        attempt = store.create(_attempt(skeptical_persona))
        assert attempt.version == 1

        loaded = store.get(attempt.attempt_id)
        assert loaded.attempt_id == attempt.attempt_id
        assert loaded.persona == skeptical_persona
        assert loaded.version == 1
        assert loaded.turn_count == 0
        assert loaded.state.value == "OPENING"

    def test_save_bumps_version(self, store, skeptical_persona):
        attempt = store.create(_attempt(skeptical_persona))
        attempt.turn_count = 1
        attempt.messages.append(Message(role="rep", text="Hi there", timestamp=1001.0))
        attempt.metrics_history.append(LiveMetrics(discovery=3))
        store.save(attempt, expected_version=1)
        assert attempt.version == 2

        loaded = store.get(attempt.attempt_id)
        assert loaded.version == 2
        assert loaded.turn_count == 1
        assert loaded.messages[0].text == "Hi there"
        assert loaded.metrics_history[0].discovery == 3

    def test_stale_write_rejected(self, store, skeptical_persona):
        attempt = store.create(_attempt(skeptical_persona))
        first = store.get(attempt.attempt_id)
        second = store.get(attempt.attempt_id)

        first.turn_count = 1
        store.save(first, expected_version=first.version)

        second.turn_count = 1
        with pytest.raises(StaleAttemptError):
            store.save(second, expected_version=second.version)
        assert store.get(attempt.attempt_id).version == 2

    def test_get_unknown(self, store):
        with pytest.raises(AttemptNotFoundError):
            store.get(new_attempt_id())

    def test_save_unknown(self, store, skeptical_persona):
        with pytest.raises(AttemptNotFoundError):
            store.save(_attempt(skeptical_persona), expected_version=1)

    def test_list_ids(self, store, skeptical_persona):
        a = store.create(_attempt(skeptical_persona, user_id="alice"))
        b = store.create(_attempt(skeptical_persona, user_id="bob"))
        assert set(store.list_ids()) == {a.attempt_id, b.attempt_id}
        assert store.list_ids(user_id="alice") == [a.attempt_id]


class TestSQLiteAttemptStore:

    def test_survives_new_instance(self, tmp_path, skeptical_persona):
        path = str(tmp_path / "attempts.db")
        attempt = SQLiteAttemptStore(path).create(_attempt(skeptical_persona))
        assert SQLiteAttemptStore(path).get(attempt.attempt_id).user_id == "user-1"

    def test_creates_parent_directory(self, tmp_path):
        store = SQLiteAttemptStore(str(tmp_path / "nested" / "dir" / "attempts.db"))
        assert store.db_path.parent.is_dir()


class TestInMemoryAttemptStore:

    def test_loaded_copies_are_isolated(self, skeptical_persona):
        store = InMemoryAttemptStore()
        attempt = store.create(_attempt(skeptical_persona))
        loaded = store.get(attempt.attempt_id)
        loaded.messages.append(Message(role="rep", text="not saved", timestamp=1.0))
        assert store.get(attempt.attempt_id).messages == []


class TestFactory:

    def test_memory(self):
        assert isinstance(create_attempt_store("memory"), InMemoryAttemptStore)

    def test_sqlite_uses_db_path_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DB_PATH", str(tmp_path / "env.db"))
        store = create_attempt_store("sqlite")
        assert isinstance(store, SQLiteAttemptStore)
        assert store.db_path == (tmp_path / "env.db").resolve()

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_attempt_store("redis")

    def test_base_is_abstract(self):
        with pytest.raises(TypeError):
            AttemptStore()
