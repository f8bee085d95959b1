"""Tests for the SQLite context store."""

import os
import sqlite3

import pytest

from chaseai.errors import PersistenceError
from chaseai.schemas import InstructionContext
from chaseai.storage import ContextStore


class TestContextStore:
    """Test whole-map load/save behavior."""

    def test_missing_database_loads_empty(self, store):
        """No database file means no contexts."""
        assert store.load_all() == {}

    def test_save_and_load(self, store, sample_context):
        """Saved contexts come back keyed by port."""
        other = InstructionContext.create("T", "R2", "do Y", ["read", "write"], True)
        store.save_all({9001: sample_context, 9002: other})

        loaded = store.load_all()
        assert loaded == {9001: sample_context, 9002: other}

    def test_save_replaces_previous_map(self, store, sample_context):
        """save_all replaces, it does not merge."""
        store.save_all({9001: sample_context, 9002: sample_context})
        store.save_all({9003: sample_context})

        assert set(store.load_all()) == {9003}

    def test_save_empty_map(self, store, sample_context):
        store.save_all({9001: sample_context})
        store.save_all({})
        assert store.load_all() == {}

    def test_fresh_store_sees_saved_data(self, contexts_db_path, sample_context):
        """A second store on the same file reads what the first wrote."""
        ContextStore(contexts_db_path).save_all({9001: sample_context})
        assert ContextStore(contexts_db_path).load_all() == {9001: sample_context}

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_database_is_owner_only(self, store, contexts_db_path, sample_context):
        store.save_all({9001: sample_context})
        assert (contexts_db_path.stat().st_mode & 0o777) == 0o600

    def test_corrupt_row_raises_persistence_error(self, store, contexts_db_path, sample_context):
        """Undecodable stored data surfaces as PersistenceError."""
        store.save_all({9001: sample_context})
        conn = sqlite3.connect(str(contexts_db_path))
        conn.execute("UPDATE contexts SET context_json = 'not json'")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError):
            store.load_all()

    def test_unwritable_path_raises_persistence_error(self, tmp_path, sample_context):
        """A path whose parent is a file cannot be written."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        store = ContextStore(blocker / "contexts.db")

        with pytest.raises(PersistenceError):
            store.save_all({9001: sample_context})
