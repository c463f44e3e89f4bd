"""Agent notifications for tickets changed by a loan-book sync.

Notifications are best-effort: they are sent after the chunk has committed and
a failing sink never undoes the balance or status update. Failures are logged
and handed back as error strings for the run summary.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Protocol

from .model import AgentNotification, Decision, NotificationType

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES: Dict[str, NotificationType] = {
    "cleared": "arrears_cleared",
    "increased": "arrears_increased",
    "reduced": "arrears_reduced",
    "reopened": "arrears_increased",
}


class NotificationSink(Protocol):
    def create_notification(
        self,
        agent_id: str,
        type: NotificationType,
        related_ticket_id: str | None,
        title: str,
        message: str,
        related_customer_id: str | None = None,
    ) -> AgentNotification: ...


def format_amount(amount) -> str:
    return f"K{amount:,.2f}"


def build_message(decision: Decision) -> tuple[str, str]:
    """Return the (title, message) pair for a changed ticket."""
    customer = decision.customer
    who = f"{customer.name} ({customer.nrc_number})"
    old = format_amount(decision.old_arrears)
    new = format_amount(decision.new_arrears)

    if decision.movement == "cleared":
        return (
            "Arrears cleared - pending confirmation",
            f"Loan book shows {who} has cleared arrears of {old}. "
            "Confirm the ticket to resolve it.",
        )
    if decision.movement == "reopened":
        return (
            "Ticket reopened",
            f"Loan book shows {new} in arrears for {who}; "
            f"the {decision.status_before} ticket has been reopened.",
        )
    if decision.movement == "increased":
        return ("Arrears increased", f"Arrears for {who} increased from {old} to {new}.")
    return ("Arrears reduced", f"Arrears for {who} reduced from {old} to {new}.")


class NotificationDispatcher:
    """Fans out one notification per changed ticket to its assigned agent."""

    def __init__(self, sink: NotificationSink) -> None:
        self.sink = sink

    def notify(self, decision: Decision) -> AgentNotification | None:
        """Create the notification for ``decision``; None when nothing is due."""
        notification_type = NOTIFICATION_TYPES.get(decision.movement)
        if notification_type is None or decision.ticket is None:
            return None
        agent_id = decision.ticket.assigned_agent_id
        if not agent_id:
            return None  # Unassigned tickets have nobody to tell

        title, message = build_message(decision)
        return self.sink.create_notification(
            agent_id,
            notification_type,
            decision.ticket.id,
            title,
            message,
            related_customer_id=decision.customer.id,
        )

    def notify_all(self, decisions: Iterable[Decision]) -> List[str]:
        """Notify for every decision and return error strings for failures."""
        errors: List[str] = []
        for decision in decisions:
            try:
                self.notify(decision)
            except Exception as exc:  # Sink failures must not undo committed writes
                logger.warning(
                    "Notification failed for %s: %s", decision.record.nrc_number, exc
                )
                errors.append(
                    f"Row {decision.record.row_number} ({decision.record.nrc_number}): "
                    f"notification failed: {exc}"
                )
        return errors


__all__ = [
    "NOTIFICATION_TYPES",
    "NotificationSink",
    "NotificationDispatcher",
    "build_message",
    "format_amount",
]
