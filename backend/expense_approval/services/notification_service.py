"""Notification Service - Workflow notifications via the outbox

Notifications are written to the notification_outbox collection; delivery
(email, push, in-app) is handled by whatever drains the outbox.
"""
from typing import Any, Dict, Optional

from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationKind, NotificationStatus
from ..repositories.notification_repo import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for enqueuing notifications"""
    
    TITLES = {
        NotificationKind.APPROVAL_PENDING: "Approval Required",
        NotificationKind.EXPENSE_APPROVED: "Expense Approved",
        NotificationKind.EXPENSE_REJECTED: "Expense Rejected",
    }
    
    def __init__(self, repo: Optional[NotificationRepository] = None):
        self.repo = repo or NotificationRepository()
    
    def notify(
        self,
        recipient_id: str,
        summary: Dict[str, Any],
        kind: NotificationKind
    ) -> NotificationOutbox:
        """
        Enqueue a notification for a recipient
        
        Args:
            recipient_id: Approver or employee to notify
            summary: Expense summary (Expense.to_summary())
            kind: Notification event kind
        
        Raises:
            NotificationError: Outbox write failed
        """
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            expense_id=summary.get("id"),
            recipient_id=recipient_id,
            kind=kind,
            payload={
                "title": self.TITLES[kind],
                "message": self._message(kind, summary),
                "expense": summary,
            },
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )
        
        self.repo.create_notification(notification)
        logger.info(
            f"Enqueued {kind.value} notification",
            extra={
                "notification_id": notification.notification_id,
                "expense_id": notification.expense_id,
                "user_id": recipient_id
            }
        )
        return notification
    
    @staticmethod
    def _message(kind: NotificationKind, summary: Dict[str, Any]) -> str:
        amount = summary.get("amount")
        description = summary.get("description") or "expense"
        if kind == NotificationKind.APPROVAL_PENDING:
            step = (summary.get("current_approval_step") or 0) + 1
            total = summary.get("total_approval_steps") or step
            return f"'{description}' ({amount}) is waiting for your approval (step {step} of {total})."
        if kind == NotificationKind.EXPENSE_APPROVED:
            return f"Your expense '{description}' ({amount}) has been approved."
        return f"Your expense '{description}' ({amount}) has been rejected."
