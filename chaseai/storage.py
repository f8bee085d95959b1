"""Durable port -> instruction context store with SQLite backend."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from chaseai.errors import PersistenceError
from chaseai.schemas import InstructionContext

logger = logging.getLogger(__name__)

CONTEXTS_DB_NAME = "contexts.db"


class ContextStore:
    """Whole-map store: every save replaces the stored contexts atomically."""

    def __init__(self, db_path: Path | str):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file (created on first save)
        """
        self.db_path = Path(db_path)
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS contexts (
                port INTEGER PRIMARY KEY,
                context_json TEXT NOT NULL
            )
        """)

    def load_all(self) -> dict[int, InstructionContext]:
        """Load every stored context.

        Returns:
            Mapping of port to context; empty if nothing was ever saved

        Raises:
            PersistenceError: If the database cannot be read or holds bad data
        """
        if not self.db_path.exists():
            return {}

        try:
            with self._lock:
                conn = self._get_connection()
                try:
                    self._init_db(conn)
                    rows = conn.execute("SELECT port, context_json FROM contexts").fetchall()
                finally:
                    conn.close()
            contexts = {
                int(row["port"]): InstructionContext.model_validate(json.loads(row["context_json"]))
                for row in rows
            }
        except (sqlite3.Error, OSError, ValueError, PydanticValidationError) as e:
            raise PersistenceError(f"Failed to load contexts from {self.db_path}: {e}") from e

        logger.debug(f"Loaded {len(contexts)} contexts from {self.db_path}")
        return contexts

    def save_all(self, contexts: dict[int, InstructionContext]) -> None:
        """Replace the stored contexts with the given map.

        Runs in a single transaction; on failure the previous contents stay.

        Raises:
            PersistenceError: On any I/O or database failure
        """
        rows = [(port, ctx.model_dump_json()) for port, ctx in contexts.items()]

        try:
            with self._lock:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = self._get_connection()
                try:
                    with conn:
                        self._init_db(conn)
                        conn.execute("DELETE FROM contexts")
                        conn.executemany(
                            "INSERT INTO contexts (port, context_json) VALUES (?, ?)",
                            rows,
                        )
                finally:
                    conn.close()
                if os.name == "posix":
                    os.chmod(self.db_path, 0o600)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Failed to save contexts to {self.db_path}: {e}") from e

        logger.debug(f"Saved {len(rows)} contexts to {self.db_path}")
