"""In-memory owner of port contexts and approval sessions."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from chaseai.errors import ConfigurationError
from chaseai.schemas import InstructionContext, NetworkConfig, Session
from chaseai.storage import ContextStore

logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_verification_id() -> str:
    """Generate an opaque verification id."""
    return f"ver-{uuid.uuid4().hex}"


class ContextManager:
    """Owns the port -> InstructionContext map and the session table.

    Every mutation is persisted through the store before it becomes visible
    in memory, so a failed write leaves both sides at the previous state.
    """

    def __init__(
        self,
        store: ContextStore,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._contexts: dict[int, InstructionContext] = store.load_all()
        self._sessions: dict[str, Session] = {}
        logger.info(f"Context manager loaded {len(self._contexts)} contexts")

    # --- Contexts ---

    def set_context(self, port: int, context: InstructionContext, config: NetworkConfig) -> None:
        """Bind a context to a configured, enabled port and persist it.

        Raises:
            ConfigurationError: If the port is not configured or is disabled
            ValidationError: If the context is malformed
            PersistenceError: If the store write fails (memory is left unchanged)
        """
        self._validate_port(port, config)
        context.ensure_valid()

        with self._lock:
            updated = dict(self._contexts)
            updated[port] = context.model_copy(deep=True)
            self._store.save_all(updated)
            self._contexts = updated

        logger.info(f"Set context for port {port}: system={context.system}, role={context.role}")

    def get_context(self, port: int) -> InstructionContext | None:
        """Return a copy of the context bound to a port, if any."""
        with self._lock:
            context = self._contexts.get(port)
            return context.model_copy(deep=True) if context is not None else None

    def delete_context(self, port: int) -> None:
        """Remove a port's context; no-op if none is bound."""
        with self._lock:
            if port not in self._contexts:
                return
            updated = {p: c for p, c in self._contexts.items() if p != port}
            self._store.save_all(updated)
            self._contexts = updated

        logger.info(f"Deleted context for port {port}")

    def list_contexts(self) -> list[tuple[int, InstructionContext]]:
        """Snapshot of all (port, context) pairs."""
        with self._lock:
            return [(port, ctx.model_copy(deep=True)) for port, ctx in self._contexts.items()]

    @staticmethod
    def _validate_port(port: int, config: NetworkConfig) -> None:
        binding = config.get_binding(port)
        if binding is None:
            raise ConfigurationError(f"Port {port} is not configured in network settings")
        if not binding.enabled:
            raise ConfigurationError(f"Port {port} is disabled")

    # --- Sessions ---

    def create_session(self, scope: list[str]) -> str:
        """Mint a session valid for one hour and return its id.

        Expired sessions are dropped on every call, so the table stays
        bounded by the sessions minted within one TTL.
        """
        now = self._clock()
        session = Session(
            verification_id=new_verification_id(),
            expires_at=now + SESSION_TTL,
            scope=list(scope),
        )
        with self._lock:
            self._purge_expired(now)
            self._sessions[session.verification_id] = session

        logger.info(f"Created session {session.verification_id} for scope {scope}")
        return session.verification_id

    def lookup_session(self, verification_id: str) -> Session | None:
        """Return the session if it exists and has not expired."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(verification_id)
            if session is None:
                return None
            if session.is_expired(now):
                del self._sessions[verification_id]
                logger.debug(f"Session {verification_id} expired")
                return None
            return session.model_copy(deep=True)

    def purge_expired_sessions(self) -> int:
        """Drop expired sessions, returning how many were removed."""
        with self._lock:
            return self._purge_expired(self._clock())

    def _purge_expired(self, now: datetime) -> int:
        # Caller holds self._lock
        expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)
