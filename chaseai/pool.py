"""Reconciles desired port bindings against running instruction servers."""

from __future__ import annotations

import logging
import threading

from chaseai.errors import BindError
from chaseai.manager import ContextManager
from chaseai.schemas import NetworkConfig, PortBinding
from chaseai.server import ConfigProvider, InstructionServer
from chaseai.verification import VerificationService

logger = logging.getLogger(__name__)


class ServerPool:
    """Owns the port -> running server map.

    The map lives only in memory and is rebuilt from configuration by
    reconcile(); all access goes through one lock.
    """

    def __init__(
        self,
        manager: ContextManager,
        verification: VerificationService,
        config_provider: ConfigProvider | None = None,
    ):
        self.manager = manager
        self.verification = verification
        self.config_provider = config_provider
        self._servers: dict[int, InstructionServer] = {}
        self._lock = threading.Lock()

    def _build_server(self, binding: PortBinding) -> InstructionServer:
        return InstructionServer(
            binding.port,
            binding.interface,
            self.manager,
            self.verification,
            config_provider=self.config_provider,
        )

    def reconcile(self, config: NetworkConfig) -> list[int]:
        """Start servers for newly enabled ports and stop the rest.

        Ports already running and still enabled are left alone. A port that
        fails to bind is logged and skipped without affecting the others.

        Returns:
            Sorted list of ports with a running server afterwards
        """
        target = {b.port: b for b in config.port_bindings if b.enabled}

        with self._lock:
            for port, binding in target.items():
                if port in self._servers:
                    continue
                logger.info(f"Starting instruction server on port {port}")
                server = self._build_server(binding)
                try:
                    server.start()
                except BindError as e:
                    logger.error(f"Failed to start server on port {port}: {e}")
                    continue
                self._servers[port] = server

            for port in [p for p in self._servers if p not in target]:
                logger.info(f"Stopping instruction server on port {port}")
                self._servers.pop(port).stop()

            running = sorted(self._servers)

        logger.debug(f"Reconciled server pool: running={running}")
        return running

    def shutdown(self) -> None:
        """Stop every running server."""
        with self._lock:
            servers = list(self._servers.values())
            self._servers.clear()
        for server in servers:
            server.stop()
        logger.info(f"Server pool shut down ({len(servers)} servers stopped)")

    def server_count(self) -> int:
        with self._lock:
            return len(self._servers)

    def has_server(self, port: int) -> bool:
        with self._lock:
            return port in self._servers

    def running_ports(self) -> list[int]:
        with self._lock:
            return sorted(self._servers)

    def get_server(self, port: int) -> InstructionServer | None:
        with self._lock:
            return self._servers.get(port)
