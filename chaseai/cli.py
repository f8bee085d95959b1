"""CLI for ChaseAI - run the control plane and manage ports and contexts."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import click

from chaseai import __version__
from chaseai.errors import ChaseAIError
from chaseai.generator import ConfigFormat
from chaseai.schemas import InstructionContext, NetworkInterface, PortBinding, PortRole

logger = logging.getLogger(__name__)

ROLE_CHOICES = [r.value.lower() for r in PortRole]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _role(value: str) -> PortRole:
    return PortRole(value.capitalize())


def _open_manager():
    from chaseai.config import config_dir
    from chaseai.manager import ContextManager
    from chaseai.storage import CONTEXTS_DB_NAME, ContextStore

    return ContextManager(ContextStore(config_dir() / CONTEXTS_DB_NAME))


@click.group()
@click.version_option(version=__version__, prog_name="chaseai")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """ChaseAI - local control plane for AI agents.

    Serves instruction contexts and human verification prompts, one HTTP
    server per configured port.
    """
    _configure_logging(verbose)


@main.command()
@click.option("--watch/--no-watch", default=True, help="Reconcile servers when the config file changes")
@click.option(
    "--prompt",
    "prompt_kind",
    type=click.Choice(["auto", "osascript", "terminal", "reject"]),
    default="auto",
    help="How verification requests are shown to a human",
)
def serve(watch: bool, prompt_kind: str) -> None:
    """Start instruction servers for every enabled port."""
    from chaseai.app import ChaseApp
    from chaseai.approval import get_prompt
    from chaseai.watcher import ConfigWatcher

    try:
        app = ChaseApp(prompt=get_prompt(prompt_kind))
    except ChaseAIError as e:
        raise click.ClickException(str(e))

    running = app.start()
    if running:
        click.echo(f"Serving on ports: {', '.join(str(p) for p in running)}")
    else:
        click.echo("No enabled ports. Use 'chaseai port add' or 'chaseai port enable'.")

    watcher = None
    if watch:
        watcher = ConfigWatcher(app.config_path, app.reload)
        watcher.start()

    stop_event = threading.Event()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    finally:
        if watcher is not None:
            watcher.stop()
        app.shutdown()


# --- Ports ---


@main.group()
def port() -> None:
    """Manage port bindings."""
    pass


def _update_config(mutate) -> None:
    from chaseai.config import load_network_config, save_network_config

    try:
        config = load_network_config()
        mutate(config)
        save_network_config(config)
    except ChaseAIError as e:
        raise click.ClickException(str(e))


@port.command("list")
def port_list() -> None:
    """List configured port bindings."""
    from chaseai.config import load_network_config

    try:
        config = load_network_config()
    except ChaseAIError as e:
        raise click.ClickException(str(e))

    if not config.port_bindings:
        click.echo("No ports configured.")
        return
    for b in sorted(config.port_bindings, key=lambda b: b.port):
        state = "enabled" if b.enabled else "disabled"
        click.echo(f"  {b.port}  {b.role.value:<12} {b.host:<15} {state}")


@port.command("add")
@click.argument("port_number", type=click.IntRange(1, 65535))
@click.option("--role", type=click.Choice(ROLE_CHOICES), default="instruction", help="Port role")
@click.option("--ip", default="127.0.0.1", help="Interface address to bind")
@click.option("--interface-name", default=None, help="Interface name (defaults to the loopback name)")
@click.option("--disabled", is_flag=True, help="Add the port without enabling it")
def port_add(port_number: int, role: str, ip: str, interface_name: str | None, disabled: bool) -> None:
    """Add a port binding (enabled unless --disabled).

    \b
    Example:
        chaseai port add 9001 --role instruction
    """
    from chaseai.interfaces import classify, default_loopback_name

    try:
        interface = NetworkInterface(
            name=interface_name or default_loopback_name(),
            ip_address=ip,
            interface_type=classify(ip),
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--ip")

    binding = PortBinding(port=port_number, interface=interface, role=_role(role), enabled=not disabled)
    _update_config(lambda config: config.add_binding(binding))
    click.echo(f"Added port {port_number} ({binding.role.value})")


@port.command("enable")
@click.argument("port_number", type=int)
def port_enable(port_number: int) -> None:
    """Enable a configured port."""
    _update_config(lambda config: config.set_enabled(port_number, True))
    click.echo(f"Enabled port {port_number}")


@port.command("disable")
@click.argument("port_number", type=int)
def port_disable(port_number: int) -> None:
    """Disable a configured port."""
    _update_config(lambda config: config.set_enabled(port_number, False))
    click.echo(f"Disabled port {port_number}")


@port.command("role")
@click.argument("port_number", type=int)
@click.argument("role", type=click.Choice(ROLE_CHOICES))
def port_role(port_number: int, role: str) -> None:
    """Change the role of a configured port."""
    _update_config(lambda config: config.set_role(port_number, _role(role)))
    click.echo(f"Port {port_number} is now {_role(role).value}")


@port.command("remove")
@click.argument("port_number", type=int)
@click.confirmation_option(prompt="Are you sure you want to remove this port?")
def port_remove(port_number: int) -> None:
    """Remove a port binding."""
    _update_config(lambda config: config.remove_binding(port_number))
    click.echo(f"Removed port {port_number}")


# --- Contexts ---


@main.group()
def context() -> None:
    """Manage instruction contexts."""
    pass


@context.command("set")
@click.argument("port_number", type=int)
@click.option("--system", required=True, help="System identifier, e.g. 'WinSF'")
@click.option("--role", required=True, help="Agent role, e.g. 'execution-agent'")
@click.option("--instruction", required=True, help="Base instruction text")
@click.option("--action", "actions", multiple=True, required=True, help="Allowed action (repeatable)")
@click.option("--verify", is_flag=True, help="Require verification for every action")
def context_set(
    port_number: int,
    system: str,
    role: str,
    instruction: str,
    actions: tuple[str, ...],
    verify: bool,
) -> None:
    """Bind an instruction context to an enabled port.

    \b
    Example:
        chaseai context set 9001 --system S --role R --instruction "do X" --action run
    """
    from chaseai.config import load_network_config

    ctx = InstructionContext(
        system=system,
        role=role,
        base_instruction=instruction,
        allowed_actions=list(actions),
        verification_required=verify,
    )
    try:
        _open_manager().set_context(port_number, ctx, load_network_config())
    except ChaseAIError as e:
        raise click.ClickException(str(e))
    click.echo(f"Context set for port {port_number}")


@context.command("get")
@click.argument("port_number", type=int)
def context_get(port_number: int) -> None:
    """Print the context bound to a port as JSON."""
    try:
        ctx = _open_manager().get_context(port_number)
    except ChaseAIError as e:
        raise click.ClickException(str(e))
    if ctx is None:
        raise click.ClickException(f"No context bound to port {port_number}")
    click.echo(ctx.model_dump_json(indent=2))


@context.command("list")
def context_list() -> None:
    """List all bound contexts."""
    try:
        contexts = _open_manager().list_contexts()
    except ChaseAIError as e:
        raise click.ClickException(str(e))

    if not contexts:
        click.echo("No contexts bound.")
        return
    for port_number, ctx in sorted(contexts, key=lambda item: item[0]):
        actions = ", ".join(ctx.allowed_actions)
        click.echo(f"  {port_number}  {ctx.system} / {ctx.role}  [{actions}]")


@context.command("delete")
@click.argument("port_number", type=int)
def context_delete(port_number: int) -> None:
    """Remove the context bound to a port."""
    try:
        _open_manager().delete_context(port_number)
    except ChaseAIError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted context for port {port_number}")


# --- Documents ---


@main.command()
@click.option(
    "--format", "-f",
    "fmt",
    type=click.Choice([f.value for f in ConfigFormat]),
    default=ConfigFormat.AGENT_RULE.value,
    help="Document format",
)
@click.option("--port", "-p", "ports", type=int, multiple=True, help="Only include these ports (repeatable)")
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=True, file_okay=True, path_type=Path),
    default=None,
    help="File or directory to write to (defaults to stdout)",
)
def export(fmt: str, ports: tuple[int, ...], output: Path | None) -> None:
    """Export the agent-facing configuration document.

    \b
    Example:
        chaseai export --format agent_rule -o ~/Downloads
        chaseai export --format json --port 9001
    """
    from chaseai.config import load_network_config

    try:
        config = load_network_config()
    except ChaseAIError as e:
        raise click.ClickException(str(e))

    if ports:
        unknown = [p for p in ports if config.get_binding(p) is None]
        if unknown:
            raise click.ClickException(f"Ports not configured: {', '.join(map(str, unknown))}")
        config.port_bindings = [b for b in config.port_bindings if b.port in ports]

    config_format = ConfigFormat(fmt)
    text = config_format.render(config)

    if output is None:
        click.echo(text)
        return

    if output.is_dir():
        output = output / f"chaseai_config.{config_format.extension}"
    output.write_text(text)
    click.echo(f"Wrote {config_format.label} configuration to {output}")


@main.command()
def interfaces() -> None:
    """List network interfaces ports can be bound on."""
    from chaseai.interfaces import detect_all

    for iface in detect_all():
        click.echo(f"  {iface.name:<10} {str(iface.ip_address):<40} {iface.interface_type.value}")


if __name__ == "__main__":
    main()
