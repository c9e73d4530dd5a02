"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .expense_repo import ExpenseRepository, ExpenseFilter
from .expense_log_repo import ExpenseLogRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "ExpenseRepository",
    "ExpenseFilter",
    "ExpenseLogRepository",
    "NotificationRepository",
]
