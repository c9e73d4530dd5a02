"""
Notification Service Tests
"""

import pytest

from expense_approval.domain.enums import NotificationKind, NotificationStatus
from expense_approval.domain.errors import NotificationError
from expense_approval.services.notification_service import NotificationService


class FakeOutbox:

    def __init__(self, error=None):
        self.created = []
        self.error = error

    def create_notification(self, notification):
        if self.error:
            raise self.error
        self.created.append(notification)
        return notification


def test_pending_approval_message(make_expense):
    outbox = FakeOutbox()
    summary = make_expense(amount=500, description="Conference pass").to_summary()

    notification = NotificationService(repo=outbox).notify("USR-manager01", summary, NotificationKind.APPROVAL_PENDING)

    assert outbox.created == [notification]
    assert notification.status == NotificationStatus.PENDING
    assert notification.expense_id == summary["id"]
    assert notification.payload["title"] == "Approval Required"
    assert "Conference pass" in notification.payload["message"]


@pytest.mark.parametrize("kind,word", [
    (NotificationKind.EXPENSE_APPROVED, "approved"),
    (NotificationKind.EXPENSE_REJECTED, "rejected"),
])
def test_decision_messages(make_expense, kind, word):
    summary = make_expense().to_summary()

    notification = NotificationService(repo=FakeOutbox()).notify("USR-employee01", summary, kind)

    assert notification.payload["message"].endswith(f"has been {word}.")


def test_outbox_failure_propagates(make_expense):
    service = NotificationService(repo=FakeOutbox(error=NotificationError("outbox down")))

    with pytest.raises(NotificationError):
        service.notify("USR-manager01", make_expense().to_summary(), NotificationKind.APPROVAL_PENDING)
