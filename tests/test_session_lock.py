"""
Tests for per-attempt locking.
"""

import threading
import time

from dooriq.session_lock import SessionLockManager


class TestSessionLockManager:

    def test_lock_file_per_attempt(self, lock_manager):
        with lock_manager.lock("a" * 32):
            pass
        files = list(lock_manager.lock_dir.glob("*.lock"))
        assert len(files) == 1
        assert "a" * 32 not in files[0].name

    def test_env_lock_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SESSION_LOCK_DIR", str(tmp_path / "env_locks"))
        manager = SessionLockManager()
        assert manager.lock_dir == (tmp_path / "env_locks").resolve()
        assert manager.lock_dir.is_dir()

    def test_serializes_same_attempt(self, lock_manager):
        active = 0
        peak = 0
        guard = threading.Lock()

        def worker():
            nonlocal active, peak
            with lock_manager.lock("b" * 32):
                with guard:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.02)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert peak == 1

    def test_different_attempts_do_not_block(self, lock_manager):
        entered = threading.Event()

        def other():
            with lock_manager.lock("d" * 32):
                entered.set()

        with lock_manager.lock("c" * 32):
            thread = threading.Thread(target=other)
            thread.start()
            assert entered.wait(timeout=2)
        thread.join()

    def test_released_locks_are_forgotten(self, lock_manager):
        for i in range(1000):
            with lock_manager.lock(f"{i:032x}"):
                pass
        assert lock_manager._thread_locks == {}

    def test_entry_kept_while_waiting(self, lock_manager):
        attempt_id = "e" * 32
        waiting = threading.Event()
        done = threading.Event()

        def waiter():
            waiting.set()
            with lock_manager.lock(attempt_id):
                pass
            done.set()

        with lock_manager.lock(attempt_id):
            thread = threading.Thread(target=waiter)
            thread.start()
            assert waiting.wait(timeout=2)
            deadline = time.time() + 2
            while lock_manager._thread_locks[attempt_id][1] < 2 and time.time() < deadline:
                time.sleep(0.01)
            assert lock_manager._thread_locks[attempt_id][1] == 2
            assert not done.is_set()

        thread.join(timeout=2)
        assert done.is_set()
        assert attempt_id not in lock_manager._thread_locks
