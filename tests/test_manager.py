"""Tests for the context manager and session table."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from chaseai.errors import ConfigurationError, PersistenceError, ValidationError
from chaseai.manager import SESSION_TTL, ContextManager
from chaseai.schemas import InstructionContext
from chaseai.storage import ContextStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now += delta


class TestContextLifecycle:
    """Test set/get/list/delete of contexts."""

    def test_set_and_get(self, manager, sample_context, config_for):
        """set_context on an enabled port makes get_context return it."""
        manager.set_context(3000, sample_context, config_for(3000))
        assert manager.get_context(3000) == sample_context

    def test_get_unknown_port_returns_none(self, manager):
        assert manager.get_context(4242) is None

    def test_update_replaces_context(self, manager, sample_context, config_for):
        config = config_for(3000)
        manager.set_context(3000, sample_context, config)

        updated = sample_context.model_copy(update={"role": "updated"})
        manager.set_context(3000, updated, config)

        assert manager.get_context(3000).role == "updated"

    def test_list_contexts(self, manager, sample_context, config_for):
        config = config_for(3000, 3001)
        manager.set_context(3000, sample_context, config)
        manager.set_context(3001, sample_context, config)

        ports = sorted(port for port, _ in manager.list_contexts())
        assert ports == [3000, 3001]

    def test_delete_context(self, manager, sample_context, config_for):
        manager.set_context(3000, sample_context, config_for(3000))
        manager.delete_context(3000)
        assert manager.get_context(3000) is None

    def test_delete_absent_is_noop(self, manager):
        """Deleting a port with no context succeeds."""
        manager.delete_context(4242)

    def test_delete_persists(self, store, sample_context, config_for):
        """A fresh manager on the same store also sees the deletion."""
        manager = ContextManager(store)
        manager.set_context(3000, sample_context, config_for(3000))
        manager.delete_context(3000)

        reloaded = ContextManager(ContextStore(store.db_path))
        assert reloaded.get_context(3000) is None

    def test_set_persists(self, store, sample_context, config_for):
        manager = ContextManager(store)
        manager.set_context(3000, sample_context, config_for(3000))

        reloaded = ContextManager(ContextStore(store.db_path))
        assert reloaded.get_context(3000) == sample_context

    def test_returned_context_is_a_copy(self, manager, sample_context, config_for):
        """Mutating a returned context does not change stored state."""
        manager.set_context(3000, sample_context, config_for(3000))
        manager.get_context(3000).allowed_actions.append("hack")
        assert manager.get_context(3000).allowed_actions == ["run"]


class TestBindingValidation:
    """Test set_context rejections."""

    def test_unconfigured_port(self, manager, sample_context, config_for):
        with pytest.raises(ConfigurationError, match="not configured"):
            manager.set_context(4000, sample_context, config_for(3000))
        assert manager.get_context(4000) is None

    def test_disabled_port(self, manager, sample_context, config_for):
        with pytest.raises(ConfigurationError, match="disabled"):
            manager.set_context(3000, sample_context, config_for(3000, enabled=False))
        assert manager.get_context(3000) is None

    def test_invalid_context(self, manager, config_for):
        bad = InstructionContext(
            system="S", role="R", base_instruction="i", allowed_actions=["Bad Action"]
        )
        with pytest.raises(ValidationError):
            manager.set_context(3000, bad, config_for(3000))
        assert manager.get_context(3000) is None

    def test_persistence_failure_leaves_memory_unchanged(self, manager, sample_context, config_for):
        """A failed write must not leave memory ahead of disk."""
        config = config_for(3000, 3001)
        manager.set_context(3000, sample_context, config)

        with patch.object(manager._store, "save_all", side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                manager.set_context(3001, sample_context, config)
            with pytest.raises(PersistenceError):
                manager.delete_context(3000)

        assert manager.get_context(3001) is None
        assert manager.get_context(3000) == sample_context

    def test_concurrent_writers(self, manager, sample_context, config_for):
        """Concurrent set_context calls on different ports all land."""
        ports = list(range(5000, 5010))
        config = config_for(*ports)
        errors = []

        def worker(port):
            try:
                manager.set_context(port, sample_context, config)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(p,)) for p in ports]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(p for p, _ in manager.list_contexts()) == ports


class TestSessions:
    """Test approval session minting and expiry."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def timed_manager(self, store, clock):
        return ContextManager(store, clock=clock)

    def test_create_and_lookup(self, timed_manager, clock):
        session_id = timed_manager.create_session(["deploy"])
        session = timed_manager.lookup_session(session_id)

        assert session is not None
        assert session.verification_id == session_id
        assert session.scope == ["deploy"]
        assert session.expires_at == clock.now + SESSION_TTL

    def test_ttl_is_one_hour(self, manager):
        """Real-clock expiry is now + 1h within 5s."""
        session = manager.lookup_session(manager.create_session(["x"]))
        expected = datetime.now(timezone.utc) + timedelta(hours=1)
        assert abs((session.expires_at - expected).total_seconds()) <= 5

    def test_unknown_id_is_none(self, timed_manager):
        assert timed_manager.lookup_session("ver-doesnotexist") is None

    def test_expired_session_is_invalid(self, timed_manager, clock):
        session_id = timed_manager.create_session(["deploy"])
        clock.advance(SESSION_TTL - timedelta(seconds=1))
        assert timed_manager.lookup_session(session_id) is not None

        clock.advance(timedelta(seconds=1))
        assert timed_manager.lookup_session(session_id) is None
        # Expired sessions stay invalid
        clock.now -= timedelta(hours=2)
        assert timed_manager.lookup_session(session_id) is None

    def test_purge_expired(self, timed_manager, clock):
        old = timed_manager.create_session(["a"])
        clock.advance(timedelta(minutes=30))
        fresh = timed_manager.create_session(["b"])
        clock.advance(timedelta(minutes=31))

        assert timed_manager.purge_expired_sessions() == 1
        assert timed_manager.lookup_session(old) is None
        assert timed_manager.lookup_session(fresh) is not None

    def test_create_session_drops_expired(self, timed_manager, clock):
        """Minting a session removes expired ones without any lookup."""
        for _ in range(3):
            timed_manager.create_session(["a"])
        clock.advance(SESSION_TTL + timedelta(seconds=1))

        fresh = timed_manager.create_session(["b"])

        assert timed_manager.session_count() == 1
        assert timed_manager.lookup_session(fresh) is not None

    def test_session_ids_are_unique(self, timed_manager):
        ids = {timed_manager.create_session([]) for _ in range(50)}
        assert len(ids) == 50
