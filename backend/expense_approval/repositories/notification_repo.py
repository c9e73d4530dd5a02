"""Notification Repository - Data access for the notification outbox

The workflow only enqueues; delivery belongs to whatever drains the outbox.
"""
from typing import Optional
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .mongo_client import get_collection, NOTIFICATION_OUTBOX
from ..domain.models import NotificationOutbox
from ..domain.errors import NotificationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""
    
    def __init__(self):
        self._outbox: Collection = get_collection(NOTIFICATION_OUTBOX)
    
    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        doc = notification.model_dump(mode="json")
        doc["_id"] = notification.notification_id
        doc["created_at"] = notification.created_at
        
        try:
            self._outbox.insert_one(doc)
        except PyMongoError as e:
            raise NotificationError(
                "Failed to enqueue notification",
                details={"notification_id": notification.notification_id, "reason": str(e)}
            )
        
        logger.info(
            f"Created notification: {notification.kind.value}",
            extra={
                "notification_id": notification.notification_id,
                "expense_id": notification.expense_id
            }
        )
        return notification
