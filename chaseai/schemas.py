"""Pydantic schemas for ChaseAI configuration, contexts and HTTP contracts."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, IPvAnyAddress, field_validator

from chaseai.errors import ConfigurationError, ValidationError

ACTION_PATTERN = re.compile(r"[a-z][a-z0-9-]*")

# Ports below this are reserved for system services
MIN_UNPRIVILEGED_PORT = 1024


class InterfaceType(str, Enum):
    """Classification of a network interface."""

    LOOPBACK = "Loopback"
    LAN = "Lan"
    PUBLIC = "Public"


class PortRole(str, Enum):
    """What a bound port is used for."""

    INSTRUCTION = "Instruction"
    VERIFICATION = "Verification"


class VerificationStatus(str, Enum):
    """Outcome of a /verify request."""

    REJECTED = "rejected"
    APPROVED = "approved"
    APPROVED_SESSION = "approved_session"
    CANCELLED = "cancelled"


# --- Network configuration ---


class NetworkInterface(BaseModel):
    """A host network interface a port can be bound on."""

    name: str
    ip_address: IPvAnyAddress = Field(validation_alias=AliasChoices("ip_address", "ip"))
    interface_type: InterfaceType = Field(
        default=InterfaceType.LOOPBACK,
        validation_alias=AliasChoices("interface_type", "type"),
    )


class PortBinding(BaseModel):
    """Desired (port, interface, role, enabled) endpoint."""

    port: int = Field(..., ge=1, le=65535)
    interface: NetworkInterface
    role: PortRole = PortRole.INSTRUCTION
    enabled: bool = False

    @property
    def host(self) -> str:
        return str(self.interface.ip_address)


def loopback_interface(name: str = "lo") -> NetworkInterface:
    """Build the 127.0.0.1 loopback interface."""
    return NetworkInterface(
        name=name,
        ip_address="127.0.0.1",
        interface_type=InterfaceType.LOOPBACK,
    )


def _default_bindings() -> list[PortBinding]:
    # Disabled by default so a fresh install exposes nothing
    return [
        PortBinding(
            port=9999,
            interface=loopback_interface(),
            role=PortRole.VERIFICATION,
            enabled=False,
        )
    ]


class NetworkConfig(BaseModel):
    """Desired set of port bindings."""

    default_interface: InterfaceType = InterfaceType.LOOPBACK
    port_bindings: list[PortBinding] = Field(default_factory=_default_bindings)

    @field_validator("port_bindings")
    @classmethod
    def _unique_ports(cls, bindings: list[PortBinding]) -> list[PortBinding]:
        seen: set[int] = set()
        for binding in bindings:
            if binding.port in seen:
                raise ValueError(f"Port {binding.port} is bound more than once")
            seen.add(binding.port)
        return bindings

    def get_binding(self, port: int) -> PortBinding | None:
        """Return the binding for a port, if configured."""
        for binding in self.port_bindings:
            if binding.port == port:
                return binding
        return None

    def enabled_bindings(self) -> list[PortBinding]:
        return [b for b in self.port_bindings if b.enabled]

    def add_binding(self, binding: PortBinding) -> None:
        """Add a new binding.

        Raises:
            ConfigurationError: If the port is privileged or already bound
        """
        if binding.port < MIN_UNPRIVILEGED_PORT:
            raise ConfigurationError(
                f"Port {binding.port} is below {MIN_UNPRIVILEGED_PORT}; "
                "those ports are reserved for system services"
            )
        if self.get_binding(binding.port) is not None:
            raise ConfigurationError(f"Port {binding.port} is already bound")
        self.port_bindings.append(binding)

    def remove_binding(self, port: int) -> None:
        if self.get_binding(port) is None:
            raise ConfigurationError(f"No binding found for port {port}")
        self.port_bindings = [b for b in self.port_bindings if b.port != port]

    def set_enabled(self, port: int, enabled: bool) -> None:
        binding = self.get_binding(port)
        if binding is None:
            raise ConfigurationError(f"No binding found for port {port}")
        binding.enabled = enabled

    def set_role(self, port: int, role: PortRole) -> None:
        binding = self.get_binding(port)
        if binding is None:
            raise ConfigurationError(f"No binding found for port {port}")
        binding.role = role


# --- Instruction context ---


class InstructionContext(BaseModel):
    """Agent-facing instruction document served at /context."""

    system: str = Field(..., description="System identifier, e.g. 'WinSF'")
    role: str = Field(..., description="Agent role, e.g. 'execution-agent'")
    base_instruction: str
    allowed_actions: list[str]
    verification_required: bool = False

    def ensure_valid(self) -> None:
        """Check the context invariants.

        Raises:
            ValidationError: On the first violated invariant
        """
        if not self.system.strip():
            raise ValidationError("System identifier cannot be empty")
        if not self.role.strip():
            raise ValidationError("Agent role cannot be empty")
        if not self.base_instruction.strip():
            raise ValidationError("Base instruction cannot be empty")
        if not self.allowed_actions:
            raise ValidationError("Allowed actions list cannot be empty")
        for action in self.allowed_actions:
            if not ACTION_PATTERN.fullmatch(action):
                raise ValidationError(
                    f"Invalid action name '{action}': must start with a lowercase letter "
                    "and contain only lowercase letters, numbers, and hyphens"
                )

    @classmethod
    def create(
        cls,
        system: str,
        role: str,
        base_instruction: str,
        allowed_actions: list[str],
        verification_required: bool = False,
    ) -> InstructionContext:
        """Build a context and validate it in one step."""
        context = cls(
            system=system,
            role=role,
            base_instruction=base_instruction,
            allowed_actions=list(allowed_actions),
            verification_required=verification_required,
        )
        context.ensure_valid()
        return context


# --- Sessions ---


class Session(BaseModel):
    """Time-limited blanket approval minted by an 'approve session' decision."""

    verification_id: str
    expires_at: datetime
    scope: list[str] = Field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


# --- HTTP contracts ---


DEFAULT_BUTTONS = ["Reject", "Approve Once", "Approve Session"]


class VerifyRequest(BaseModel):
    """Request for human approval of an action."""

    action: str = Field(..., description="Action the agent wants to perform")
    reason: str = Field(..., description="Why the agent wants to perform it")
    context: dict[str, Any] | None = None
    buttons: list[str] | None = None
    session_id: str | None = Field(
        default=None,
        description="Accepted for forward compatibility; not consulted",
    )


class VerifyResponse(BaseModel):
    """Result of a verification prompt."""

    status: VerificationStatus
    verification_id: str
    message: str | None = None


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    error_code: str | None = None
