"""Pytest configuration and fixtures for ChaseAI tests."""

import socket
from pathlib import Path

import httpx
import pytest

from chaseai.manager import ContextManager
from chaseai.schemas import (
    InstructionContext,
    NetworkConfig,
    PortBinding,
    PortRole,
    loopback_interface,
)
from chaseai.storage import ContextStore


class FakePrompt:
    """Approval prompt that returns a scripted selection and records calls."""

    def __init__(self, index=0, message="scripted"):
        self.index = index
        self.message = message
        self.calls = []

    def prompt(self, action, reason, context, buttons, task_id):
        self.calls.append(
            {
                "action": action,
                "reason": reason,
                "context": context,
                "buttons": list(buttons),
                "task_id": task_id,
            }
        )
        return self.index, self.message


def pick_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a currently unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def make_config(*ports: int, enabled: bool = True, role: PortRole = PortRole.INSTRUCTION) -> NetworkConfig:
    """Network config with one loopback binding per port."""
    return NetworkConfig(
        port_bindings=[
            PortBinding(port=p, interface=loopback_interface(), role=role, enabled=enabled)
            for p in ports
        ]
    )


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point CHASEAI_CONFIG_DIR at a temp directory for every test."""
    config_dir = tmp_path / "chaseai-config"
    monkeypatch.setenv("CHASEAI_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def contexts_db_path(tmp_path: Path) -> Path:
    return tmp_path / "contexts.db"


@pytest.fixture
def store(contexts_db_path: Path) -> ContextStore:
    return ContextStore(contexts_db_path)


@pytest.fixture
def manager(store: ContextStore) -> ContextManager:
    return ContextManager(store)


@pytest.fixture
def sample_context() -> InstructionContext:
    return InstructionContext(
        system="S",
        role="R",
        base_instruction="do X",
        allowed_actions=["run"],
        verification_required=False,
    )


@pytest.fixture
def fake_prompt() -> FakePrompt:
    return FakePrompt()


@pytest.fixture
def free_port():
    """Factory returning unused TCP ports."""
    return pick_free_port


@pytest.fixture
def config_for():
    """Factory building a NetworkConfig for the given ports."""
    return make_config


@pytest.fixture
def prompt_factory():
    """Factory building scripted approval prompts."""
    return FakePrompt


@pytest.fixture
def http():
    """HTTP client that ignores proxy settings from the environment."""
    with httpx.Client(trust_env=False, timeout=10.0) as client:
        yield client
