"""Service modules - Business logic layer"""
from .approval_service import ApprovalService
from .expense_service import ExpenseService
from .currency_service import CurrencyService
from .dashboard_service import DashboardService, DashboardFilters
from .notification_service import NotificationService

__all__ = [
    "ApprovalService",
    "ExpenseService",
    "CurrencyService",
    "DashboardService",
    "DashboardFilters",
    "NotificationService",
]
