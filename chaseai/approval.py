"""Human-approval prompts used by the /verify route.

A prompt shows the action to a human with a set of buttons and blocks until
one is chosen. It returns the selected button index and an optional message;
an index outside the button list means the prompt was cancelled.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
from typing import Protocol

import click

logger = logging.getLogger(__name__)

OSASCRIPT_PATH = shutil.which("osascript")


class ApprovalPrompt(Protocol):
    """Collaborator that asks a human to pick one of the buttons."""

    def prompt(
        self,
        action: str,
        reason: str,
        context: str,
        buttons: list[str],
        task_id: str,
    ) -> tuple[int, str | None]: ...


def _is_approving(label: str) -> bool:
    label = label.lower()
    return "approve" in label or "session" in label


class RejectingPrompt:
    """Non-interactive fallback that never approves.

    Selects the first button that neither approves nor opens a session, and
    cancels when the caller supplied only approving buttons.
    """

    def prompt(self, action, reason, context, buttons, task_id):
        for index, label in enumerate(buttons):
            if not _is_approving(label):
                logger.warning(f"No interactive approval available; selecting '{label}' for {action}")
                return index, "Verification not supported on this platform"

        logger.warning(f"No interactive approval available and no rejecting button; cancelling {action}")
        return len(buttons), "Verification not supported on this platform"


def _escape_applescript(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class OsascriptPrompt:
    """macOS critical alert via osascript."""

    def __init__(self, osascript: str | None = None):
        self.osascript = osascript or OSASCRIPT_PATH or "osascript"

    def build_script(self, action, reason, context, buttons, task_id) -> str:
        buttons_list = ", ".join(f'"{_escape_applescript(b)}"' for b in buttons)
        default_button = _escape_applescript(buttons[-1]) if buttons else "Approve"
        return f"""
        activate
        set userResponse to display alert "🚨 {_escape_applescript(task_id)} | ChaseAI" message "Action: " & "{_escape_applescript(action)}" & "\\n\\nReason: " & "{_escape_applescript(reason)}" & "\\n\\nContext: " & "{_escape_applescript(context)}" as critical buttons {{{buttons_list}}} default button "{default_button}"
        return button returned of userResponse
        """

    def prompt(self, action, reason, context, buttons, task_id):
        script = self.build_script(action, reason, context, buttons, task_id)
        try:
            result = subprocess.run(
                [self.osascript, "-e", script],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            logger.error(f"osascript failed to run: {e}")
            return len(buttons), "Verification cancelled or failed"

        if result.returncode != 0:
            logger.info(f"osascript exited {result.returncode}: {result.stderr.strip()}")
            return len(buttons), "Verification cancelled or failed"

        choice = result.stdout.strip()
        if choice in buttons:
            return buttons.index(choice), f"User selected '{choice}' via ChaseAI"
        return len(buttons), "Verification cancelled or button mismatch"


class TerminalPrompt:
    """Prompt on the controlling terminal of the `chaseai serve` process."""

    def __init__(self):
        # Concurrent /verify requests would otherwise interleave on stdin
        self._lock = threading.Lock()

    def prompt(self, action, reason, context, buttons, task_id):
        with self._lock:
            click.echo("")
            click.secho(f"=== Verification request [{task_id}] ===", fg="yellow", bold=True)
            click.echo(f"Action:  {action}")
            click.echo(f"Reason:  {reason}")
            if context:
                click.echo(f"Context: {context}")
            for i, label in enumerate(buttons, 1):
                click.echo(f"  {i}. {label}")
            try:
                choice = click.prompt(
                    "Select",
                    type=click.IntRange(1, len(buttons)),
                    err=True,
                )
            except click.Abort:
                return len(buttons), "Verification cancelled at terminal"

        return choice - 1, f"User selected '{buttons[choice - 1]}' via terminal"


PROMPT_KINDS = ("auto", "osascript", "terminal", "reject")


def get_prompt(kind: str = "auto") -> ApprovalPrompt:
    """Pick a prompt implementation.

    'auto' uses osascript on macOS, the terminal when stdin is interactive,
    and the rejecting fallback otherwise.
    """
    if kind == "osascript":
        return OsascriptPrompt()
    if kind == "terminal":
        return TerminalPrompt()
    if kind == "reject":
        return RejectingPrompt()
    if kind != "auto":
        raise ValueError(f"Unknown prompt kind: {kind}")

    if sys.platform == "darwin" and OSASCRIPT_PATH:
        return OsascriptPrompt()
    if sys.stdin is not None and sys.stdin.isatty():
        return TerminalPrompt()
    return RejectingPrompt()
