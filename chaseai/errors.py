"""Exception taxonomy for ChaseAI."""

from __future__ import annotations


class ChaseAIError(Exception):
    """Base class for all ChaseAI domain errors."""

    error_code = "CHASEAI_ERROR"
    status_code = 500


class ConfigurationError(ChaseAIError):
    """Raised when a port binding is absent, disabled, or otherwise misconfigured."""

    error_code = "CONFIGURATION_ERROR"
    status_code = 400


class ValidationError(ChaseAIError):
    """Raised when an instruction context violates its invariants."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class PersistenceError(ChaseAIError):
    """Raised when the context store or config file cannot be read or written."""

    error_code = "PERSISTENCE_ERROR"
    status_code = 500


class BindError(ChaseAIError):
    """Raised when a server cannot bind its listening socket."""

    error_code = "BIND_ERROR"
    status_code = 500

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Cannot bind {host}:{port}: {reason}")
        self.host = host
        self.port = port


class InternalError(ChaseAIError):
    """Raised on broken internal state (e.g. a server thread that failed to start)."""

    error_code = "INTERNAL_ERROR"
    status_code = 500
