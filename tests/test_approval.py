"""Tests for approval prompts."""

import subprocess
from unittest.mock import MagicMock, patch

import click
import pytest

from chaseai.approval import (
    OsascriptPrompt,
    RejectingPrompt,
    TerminalPrompt,
    get_prompt,
)
from chaseai.schemas import DEFAULT_BUTTONS

ARGS = ("deploy", "release v2", '{"task_id": "T-1"}', DEFAULT_BUTTONS, "T-1")


def _completed(stdout="", returncode=0, stderr=""):
    result = MagicMock(spec=subprocess.CompletedProcess)
    result.stdout = stdout
    result.stderr = stderr
    result.returncode = returncode
    return result


class TestRejectingPrompt:
    """Test the non-interactive fallback never picks an approving button."""

    def test_selects_reject_button(self):
        index, message = RejectingPrompt().prompt(*ARGS)
        assert index == 0
        assert "not supported" in message

    def test_skips_leading_approve_buttons(self):
        buttons = ["Approve Session", "Approve Once", "Deny"]
        index, _ = RejectingPrompt().prompt("deploy", "r", "", buttons, "N/A")
        assert index == 2

    def test_only_approving_buttons_cancels(self):
        buttons = ["Approve Session", "APPROVE"]
        index, _ = RejectingPrompt().prompt("deploy", "r", "", buttons, "N/A")
        assert index == len(buttons)


class TestOsascriptPrompt:
    """Test the osascript dialog with subprocess mocked out."""

    def test_script_lists_buttons_and_task(self):
        script = OsascriptPrompt("osascript").build_script(*ARGS)
        assert '{"Reject", "Approve Once", "Approve Session"}' in script
        assert 'default button "Approve Session"' in script
        assert "T-1 | ChaseAI" in script

    def test_script_escapes_quotes(self):
        script = OsascriptPrompt("osascript").build_script('say "hi"', "r", "", ["Ok"], "N/A")
        assert 'say \\"hi\\"' in script

    @patch("chaseai.approval.subprocess.run")
    def test_selected_button(self, mock_run):
        mock_run.return_value = _completed(stdout="Approve Once\n")

        index, message = OsascriptPrompt("osascript").prompt(*ARGS)

        assert index == 1
        assert "Approve Once" in message
        assert mock_run.call_args[0][0][:2] == ["osascript", "-e"]

    @patch("chaseai.approval.subprocess.run")
    def test_nonzero_exit_is_cancel(self, mock_run):
        mock_run.return_value = _completed(returncode=1, stderr="User canceled.")
        index, _ = OsascriptPrompt("osascript").prompt(*ARGS)
        assert index == len(DEFAULT_BUTTONS)

    @patch("chaseai.approval.subprocess.run")
    def test_unknown_button_is_cancel(self, mock_run):
        mock_run.return_value = _completed(stdout="Something Else")
        index, message = OsascriptPrompt("osascript").prompt(*ARGS)
        assert index == len(DEFAULT_BUTTONS)
        assert "mismatch" in message

    @patch("chaseai.approval.subprocess.run", side_effect=FileNotFoundError("osascript"))
    def test_missing_binary_is_cancel(self, mock_run):
        index, _ = OsascriptPrompt("osascript").prompt(*ARGS)
        assert index == len(DEFAULT_BUTTONS)


class TestTerminalPrompt:
    @patch("chaseai.approval.click.prompt", return_value=3)
    def test_choice_is_one_based(self, mock_prompt):
        index, message = TerminalPrompt().prompt(*ARGS)
        assert index == 2
        assert "Approve Session" in message

    @patch("chaseai.approval.click.prompt", side_effect=click.Abort())
    def test_abort_is_cancel(self, mock_prompt):
        index, _ = TerminalPrompt().prompt(*ARGS)
        assert index == len(DEFAULT_BUTTONS)


class TestGetPrompt:
    @pytest.mark.parametrize(
        "kind,cls",
        [("osascript", OsascriptPrompt), ("terminal", TerminalPrompt), ("reject", RejectingPrompt)],
    )
    def test_explicit_kinds(self, kind, cls):
        assert isinstance(get_prompt(kind), cls)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            get_prompt("telepathy")

    def test_auto_without_tty_rejects(self):
        with patch("chaseai.approval.sys") as mock_sys:
            mock_sys.platform = "linux"
            mock_sys.stdin.isatty.return_value = False
            assert isinstance(get_prompt("auto"), RejectingPrompt)

    def test_auto_on_macos_uses_osascript(self):
        with patch("chaseai.approval.sys") as mock_sys, patch(
            "chaseai.approval.OSASCRIPT_PATH", "/usr/bin/osascript"
        ):
            mock_sys.platform = "darwin"
            assert isinstance(get_prompt("auto"), OsascriptPrompt)
