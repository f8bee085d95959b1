"""Machine-readable configuration documents for agents discovering ChaseAI."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import yaml

from chaseai import __version__
from chaseai.schemas import NetworkConfig, PortBinding, PortRole

DOCUMENT_VERSION = "1.0.0"
APP_NAME = "ChaseAI"
APP_DESCRIPTION = "Local control and orchestration system for AI agents"
DOCS_BASE_URL = "https://github.com/chaseai/chaseai/docs"

ENDPOINTS: dict[str, dict[str, Any]] = {
    "/config": {
        "method": "GET",
        "description": "Retrieve configuration (supports ?format=json|yaml|markdown|agent_rule)",
        "response": {
            "version": "string",
            "timestamp": "ISO 8601",
            "application": "object",
            "ports": "array",
            "endpoints": "object",
        },
    },
    "/context": {
        "method": "GET",
        "description": "Retrieve instruction context for this port",
        "response": {
            "system": "string",
            "role": "string",
            "base_instruction": "string",
            "allowed_actions": ["string"],
            "verification_required": "boolean",
        },
    },
    "/health": {
        "method": "GET",
        "description": "Health check endpoint",
        "response": None,
    },
    "/verify": {
        "method": "POST",
        "description": "Request human verification for an action",
        "request": {
            "action": "string",
            "reason": "string",
            "context": "object (optional, task_id is shown to the reviewer)",
            "buttons": ["string (optional)"],
            "session_id": "string (optional)",
        },
        "response": {
            "status": "rejected|approved|approved_session|cancelled",
            "verification_id": "string",
            "message": "string (optional)",
        },
    },
}

ROLE_ENDPOINTS: dict[PortRole, list[tuple[str, str, str]]] = {
    PortRole.INSTRUCTION: [
        ("/context", "GET", "Retrieve instruction context"),
        ("/config", "GET", "Retrieve configuration"),
        ("/health", "GET", "Health check"),
    ],
    PortRole.VERIFICATION: [
        ("/verify", "POST", "Request verification"),
        ("/health", "GET", "Health check"),
    ],
}


def _base_url(binding: PortBinding) -> str:
    host = binding.host
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{binding.port}"


def _port_entry(binding: PortBinding) -> dict[str, Any]:
    return {
        "port": binding.port,
        "interface": {
            "name": binding.interface.name,
            "ip_address": binding.host,
            "type": binding.interface.interface_type.value,
        },
        "role": binding.role.value,
        "enabled": binding.enabled,
        "endpoints": [
            {"path": path, "method": method, "description": desc}
            for path, method, desc in ROLE_ENDPOINTS[binding.role]
        ],
    }


def build_document(config: NetworkConfig) -> dict[str, Any]:
    """Build the configuration document; only enabled ports are listed."""
    return {
        "version": DOCUMENT_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "application": {
            "name": APP_NAME,
            "version": __version__,
            "description": APP_DESCRIPTION,
        },
        "ports": [_port_entry(b) for b in config.enabled_bindings()],
        "endpoints": ENDPOINTS,
        "documentation": {
            "getting_started": f"{DOCS_BASE_URL}/ai-integration.md",
            "api_reference": f"{DOCS_BASE_URL}/api-reference.md",
            "verification_workflow": f"{DOCS_BASE_URL}/verification-workflow.md",
        },
    }


def render_json(config: NetworkConfig) -> str:
    return json.dumps(build_document(config), indent=2)


def render_yaml(config: NetworkConfig) -> str:
    return yaml.safe_dump(build_document(config), sort_keys=False)


def render_markdown(config: NetworkConfig) -> str:
    doc = build_document(config)
    lines = [
        f"# {APP_NAME} Configuration",
        "",
        f"Generated: {doc['timestamp']}",
        "",
        "## Application",
        "",
        f"- **Name**: {doc['application']['name']}",
        f"- **Version**: {doc['application']['version']}",
        f"- **Description**: {doc['application']['description']}",
        "",
        "## Available Ports",
        "",
    ]

    if not doc["ports"]:
        lines += ["No ports are enabled.", ""]
    for port in doc["ports"]:
        lines += [
            f"### Port {port['port']}",
            "",
            f"- **Interface**: {port['interface']['ip_address']}",
            f"- **Role**: {port['role']}",
            f"- **Enabled**: {str(port['enabled']).lower()}",
            "",
            "**Endpoints**:",
            "",
        ]
        lines += [f"- `{ep['method']} {ep['path']}` - {ep['description']}" for ep in port["endpoints"]]
        lines.append("")

    lines += ["## API Endpoints", ""]
    for path, endpoint in doc["endpoints"].items():
        lines += [f"### `{endpoint['method']} {path}`", "", endpoint["description"], ""]
        for label, key in (("Request", "request"), ("Response", "response")):
            if endpoint.get(key):
                lines += [
                    f"**{label}**:",
                    "",
                    "```json",
                    json.dumps(endpoint[key], indent=2),
                    "```",
                    "",
                ]

    lines += [
        "## Integration Guide",
        "",
        f"For detailed integration instructions, see the "
        f"[AI Integration Guide]({doc['documentation']['getting_started']}).",
        "",
    ]
    return "\n".join(lines)


def render_agent_rule(config: NetworkConfig) -> str:
    """Render a rule file an agent can drop into its instructions."""
    instruction = [b for b in config.enabled_bindings() if b.role == PortRole.INSTRUCTION]
    verification = [b for b in config.enabled_bindings() if b.role == PortRole.VERIFICATION]

    lines = [
        f"# {APP_NAME} Verification Protocol",
        "",
        f"You are operating under {APP_NAME} supervision. Follow these rules exactly.",
        "",
        "## 1. Load your instructions",
        "",
    ]
    if instruction:
        lines.append("Before starting any task, fetch your instruction context:")
        lines.append("")
        lines += [f"- `GET {_base_url(b)}/context`" for b in instruction]
        lines += [
            "",
            "Only perform actions listed in `allowed_actions`. If `verification_required` "
            "is true, every action needs approval (step 2).",
        ]
    else:
        lines.append("No instruction port is enabled; ask the operator for instructions.")

    lines += ["", "## 2. Request approval for sensitive actions", ""]
    if verification:
        lines.append("Before any destructive, irreversible or external action, request approval:")
        lines.append("")
        lines += [f"- `POST {_base_url(b)}/verify`" for b in verification]
        lines += [
            "",
            "Body: `{\"action\": \"...\", \"reason\": \"...\", \"context\": {\"task_id\": \"...\"}}`",
            "",
            "- `approved`: perform this single action.",
            "- `approved_session`: the approval covers this action for one hour.",
            "- `rejected` or `cancelled`: do not perform the action. Report back and stop.",
        ]
    else:
        lines.append("No verification port is enabled; do not perform sensitive actions.")
    lines.append("")
    return "\n".join(lines)


class ConfigFormat(str, Enum):
    """Output formats for the configuration document."""

    JSON = "json"
    YAML = "yaml"
    MARKDOWN = "markdown"
    AGENT_RULE = "agent_rule"

    @classmethod
    def parse(cls, value: str | None) -> ConfigFormat:
        """Map a query value to a format; anything unrecognized is JSON."""
        if not value:
            return cls.JSON
        value = value.strip().lower()
        if value == "md":
            return cls.MARKDOWN
        try:
            return cls(value)
        except ValueError:
            return cls.JSON

    @property
    def extension(self) -> str:
        return {
            ConfigFormat.JSON: "json",
            ConfigFormat.YAML: "yaml",
            ConfigFormat.MARKDOWN: "md",
            ConfigFormat.AGENT_RULE: "md",
        }[self]

    @property
    def label(self) -> str:
        return {
            ConfigFormat.JSON: "JSON",
            ConfigFormat.YAML: "YAML",
            ConfigFormat.MARKDOWN: "Markdown",
            ConfigFormat.AGENT_RULE: "Agent Rule",
        }[self]

    @property
    def media_type(self) -> str:
        return {
            ConfigFormat.JSON: "application/json",
            ConfigFormat.YAML: "application/yaml",
            ConfigFormat.MARKDOWN: "text/markdown",
            ConfigFormat.AGENT_RULE: "text/markdown",
        }[self]

    def render(self, config: NetworkConfig) -> str:
        return _RENDERERS[self](config)


_RENDERERS = {
    ConfigFormat.JSON: render_json,
    ConfigFormat.YAML: render_yaml,
    ConfigFormat.MARKDOWN: render_markdown,
    ConfigFormat.AGENT_RULE: render_agent_rule,
}
