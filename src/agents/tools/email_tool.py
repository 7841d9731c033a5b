"""
Email Tool - confirmation e-mails for completed admin requests.

Messages are kept in an in-process outbox; delivery is left to whatever
drains it.  The result is a JSON string so the chat model can read it
back as a tool message.
"""

import json
import re
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from langchain_core.tools import StructuredTool
from loguru import logger

EMAIL_TOOL_NAME = "send_confirmation_email"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailTool:
    """Builds confirmation e-mails and queues them in the outbox."""

    def __init__(self, sender_name: str = "Your Healthcare Provider") -> None:
        self.sender_name = sender_name
        self._outbox: List[Dict[str, str]] = []
        self._lock = threading.Lock()

    @property
    def sent_emails(self) -> List[Dict[str, str]]:
        with self._lock:
            return list(self._outbox)

    def send_confirmation_email(
        self,
        email_address: str,
        action: str,
        details: str,
        feedback: Optional[str] = None,
    ) -> str:
        """Send a confirmation e-mail to the user about a completed action."""
        if not _EMAIL_RE.match(email_address or ""):
            logger.warning("Refusing confirmation e-mail to invalid address '{}'", email_address)
            return json.dumps({
                "success": False,
                "message": f"Invalid e-mail address: {email_address}",
            })

        now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        body = (
            f"Dear Patient,\n\nThis is a confirmation that your {action} has been "
            f"successfully completed.\n\nDetails: {details}\n\nDate: {now}"
        )
        if feedback:
            body += (
                f"\n\nYour feedback: {feedback}\n\nThank you for your input. "
                "We will use it to improve our services."
            )
        body += (
            "\n\nIf you have any questions, please contact our customer service."
            f"\n\nBest regards,\n{self.sender_name}"
        )

        with self._lock:
            self._outbox.append({
                "recipient": email_address,
                "subject": f"Confirmation: {action}",
                "content": body,
                "timestamp": now,
            })
            email_id = len(self._outbox)

        logger.info("Confirmation e-mail #{} queued for {} ({})", email_id, email_address, action)
        return json.dumps({
            "success": True,
            "message": f"Confirmation email for {action} sent to {email_address}",
            "email_id": email_id,
        })

    def as_langchain_tool(self) -> StructuredTool:
        """Expose ``send_confirmation_email`` for ``bind_tools``."""
        return StructuredTool.from_function(
            func=self.send_confirmation_email,
            name=EMAIL_TOOL_NAME,
            description=(
                "Sends a confirmation email to the user. Arguments: the recipient's "
                "email address, the action completed (e.g. 'appointment cancellation'), "
                "details about the action, and optional user feedback."
            ),
        )

    def dispatch(self, action: str, params: Dict[str, Any]) -> str:
        if action == EMAIL_TOOL_NAME:
            return self.send_confirmation_email(**params)
        return json.dumps({"success": False, "message": f"Unknown email action: {action}"})
