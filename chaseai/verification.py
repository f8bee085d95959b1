"""Verification protocol behind POST /verify."""

from __future__ import annotations

import json
import logging

from chaseai.approval import ApprovalPrompt
from chaseai.manager import ContextManager, new_verification_id
from chaseai.schemas import DEFAULT_BUTTONS, VerificationStatus, VerifyRequest, VerifyResponse

logger = logging.getLogger(__name__)

NO_TASK_ID = "N/A"


def classify_selection(buttons: list[str], index: int) -> VerificationStatus:
    """Map the selected button to a verification status.

    Labels containing 'session' approve for the session, other labels
    containing 'approve' approve once, anything else rejects. An index
    outside the button list is a cancellation.
    """
    if not 0 <= index < len(buttons):
        return VerificationStatus.CANCELLED
    label = buttons[index].lower()
    if "session" in label:
        return VerificationStatus.APPROVED_SESSION
    if "approve" in label:
        return VerificationStatus.APPROVED
    return VerificationStatus.REJECTED


def extract_task_id(context: dict | None) -> str:
    if context and context.get("task_id") is not None:
        return str(context["task_id"])
    return NO_TASK_ID


class VerificationService:
    """Runs one approval prompt per request and mints sessions on approval."""

    def __init__(self, manager: ContextManager, prompt: ApprovalPrompt):
        self.manager = manager
        self.prompt = prompt

    def verify(self, request: VerifyRequest) -> VerifyResponse:
        """Prompt the human and return the decision.

        Blocks the calling thread until the prompt returns; there is no
        timeout. A supplied session_id does not skip the prompt.
        """
        buttons = request.buttons or list(DEFAULT_BUTTONS)
        task_id = extract_task_id(request.context)
        context_str = json.dumps(request.context) if request.context else ""

        if request.session_id:
            # TODO: short-circuit the prompt when session_id names a live session covering this action
            logger.info(f"Ignoring caller session_id={request.session_id} for action={request.action}")

        logger.info(f"Verification requested: task_id={task_id}, action={request.action}")

        try:
            index, message = self.prompt.prompt(
                request.action,
                request.reason,
                context_str,
                buttons,
                task_id,
            )
        except Exception as e:
            logger.error(f"Approval prompt failed: {e}", exc_info=True)
            index, message = len(buttons), f"Verification cancelled: {e}"

        status = classify_selection(buttons, index)

        if status == VerificationStatus.APPROVED_SESSION:
            verification_id = self.manager.create_session([request.action])
        else:
            verification_id = new_verification_id()

        logger.info(f"Verification {verification_id}: task_id={task_id}, status={status.value}")
        return VerifyResponse(status=status, verification_id=verification_id, message=message)
