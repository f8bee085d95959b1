"""Application state: one owned value tying config, contexts and servers together."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from chaseai import __version__
from chaseai.approval import ApprovalPrompt, RejectingPrompt
from chaseai.config import config_dir, load_network_config, network_config_path, save_network_config
from chaseai.manager import ContextManager
from chaseai.pool import ServerPool
from chaseai.schemas import InstructionContext, NetworkConfig
from chaseai.storage import CONTEXTS_DB_NAME, ContextStore
from chaseai.verification import VerificationService

logger = logging.getLogger(__name__)


class ChaseApp:
    """Owns the current NetworkConfig, the ContextManager and the ServerPool.

    Passed explicitly to whoever handles configuration events; there is no
    process-wide instance.
    """

    def __init__(
        self,
        config: NetworkConfig | None = None,
        config_path: Path | str | None = None,
        store: ContextStore | None = None,
        prompt: ApprovalPrompt | None = None,
    ):
        self.config_path = Path(config_path) if config_path else network_config_path()
        self._config_lock = threading.Lock()
        # Held across save, swap and reconcile; _config_lock only guards reads
        self._apply_lock = threading.Lock()
        self._config = config if config is not None else load_network_config(self.config_path)

        store = store or ContextStore(config_dir() / CONTEXTS_DB_NAME)
        self.manager = ContextManager(store)
        self.verification = VerificationService(self.manager, prompt or RejectingPrompt())
        self.pool = ServerPool(self.manager, self.verification, config_provider=self.get_config)

    @property
    def version(self) -> str:
        return __version__

    def get_config(self) -> NetworkConfig:
        """Copy of the current configuration."""
        with self._config_lock:
            return self._config.model_copy(deep=True)

    def start(self) -> list[int]:
        """Start servers for the loaded configuration."""
        logger.info(f"ChaseAI v{__version__} starting")
        with self._apply_lock:
            return self.pool.reconcile(self.get_config())

    def apply_config(self, config: NetworkConfig, persist: bool = True) -> list[int]:
        """Adopt a new configuration, optionally save it, and reconcile servers.

        Concurrent calls are applied one at a time, so the running servers
        always match the last config adopted.
        """
        with self._apply_lock:
            if persist:
                save_network_config(config, self.config_path)
            with self._config_lock:
                self._config = config.model_copy(deep=True)
            return self.pool.reconcile(config)

    def reload(self) -> list[int]:
        """Re-read the config file and reconcile."""
        logger.info(f"Reloading network config from {self.config_path}")
        return self.apply_config(load_network_config(self.config_path), persist=False)

    def set_context(self, port: int, context: InstructionContext) -> None:
        self.manager.set_context(port, context, self.get_config())

    def shutdown(self) -> None:
        self.pool.shutdown()
        logger.info("ChaseAI stopped")
