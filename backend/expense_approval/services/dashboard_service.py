"""Dashboard Service - Manager views, statistics and CSV export"""
import csv
import io
from typing import Any, Dict, List, Optional
from datetime import datetime

from pydantic import BaseModel, Field

from ..config.settings import settings
from ..domain.models import Expense
from ..domain.enums import ExpenseCategory, ExpenseStatus
from ..repositories.expense_repo import ExpenseRepository, ExpenseFilter
from ..utils.time import utc_now, days_between, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

EXPORT_HEADERS = [
    "Expense ID", "Amount", "Currency", "Category", "Description", "Date",
    "Status", "Created At", "Updated At", "Employee ID", "Final Approver",
    "Processing Time (Days)",
]


class DashboardFilters(BaseModel):
    """Filters accepted by the manager views"""
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    employee_id: Optional[str] = None
    status: Optional[ExpenseStatus] = None
    amount_min: Optional[float] = Field(None, ge=0)
    amount_max: Optional[float] = Field(None, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=200)
    sort_by: str = "created_at"
    sort_order: str = "desc"

    def to_criteria(self, company_id: str, default_statuses: Optional[List[ExpenseStatus]] = None) -> ExpenseFilter:
        # the date range only applies when both ends are given
        has_range = self.date_start is not None and self.date_end is not None
        return ExpenseFilter(
            company_id=company_id,
            employee_id=self.employee_id,
            statuses=[self.status] if self.status else default_statuses,
            category=self.category,
            date_from=self.date_start if has_range else None,
            date_to=self.date_end if has_range else None,
            amount_min=self.amount_min,
            amount_max=self.amount_max
        )


def _pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit,
        "total_count": total,
        "limit": limit,
    }


def _processing_days(expense: Expense) -> Optional[float]:
    if not expense.final_action_at:
        return None
    return round(days_between(expense.created_at, expense.final_action_at), 2)


def _final_approver(expense: Expense) -> Optional[str]:
    return expense.final_approved_by or expense.final_rejected_by


class DashboardService:
    """Service for the manager dashboard"""

    def __init__(self, expense_repo: Optional[ExpenseRepository] = None):
        self.expense_repo = expense_repo or ExpenseRepository()

    def get_pending_expenses(self, company_id: str, filters: Optional[DashboardFilters] = None) -> Dict[str, Any]:
        """PENDING expenses with an active step, oldest wait shown as days pending"""
        filters = filters or DashboardFilters()
        criteria = filters.to_criteria(company_id)
        criteria.statuses = [ExpenseStatus.PENDING]
        criteria.has_pending_step = True

        expenses = self.expense_repo.list_expenses(
            criteria,
            sort_by="created_at",
            sort_order="desc",
            skip=(filters.page - 1) * filters.limit,
            limit=filters.limit
        )
        total = self.expense_repo.count_expenses(criteria)
        now = utc_now()

        items = []
        for expense in expenses:
            step = expense.current_step
            items.append({
                **expense.to_summary(),
                "date": format_iso(expense.date),
                "created_at": format_iso(expense.created_at),
                "days_pending": round(days_between(expense.created_at, now), 2),
                "current_approver": step.model_dump(mode="json") if step else None,
                "conditional_rules": [r.model_dump(mode="json") for r in expense.conditional_rules],
            })

        logger.info(
            f"Found {len(items)} pending expenses ({total} total)",
            extra={"company_id": company_id}
        )
        return {
            "expenses": items,
            "pagination": _pagination(filters.page, filters.limit, total),
            "filters": filters.model_dump(mode="json", exclude_none=True),
        }

    def get_expense_history(self, company_id: str, filters: Optional[DashboardFilters] = None) -> Dict[str, Any]:
        """Decided expenses (APPROVED and REJECTED unless a status is given)"""
        filters = filters or DashboardFilters()
        criteria = filters.to_criteria(
            company_id, default_statuses=[ExpenseStatus.APPROVED, ExpenseStatus.REJECTED]
        )

        expenses = self.expense_repo.list_expenses(
            criteria,
            sort_by=filters.sort_by,
            sort_order=filters.sort_order,
            skip=(filters.page - 1) * filters.limit,
            limit=filters.limit
        )
        total = self.expense_repo.count_expenses(criteria)

        items = [
            {
                **expense.to_summary(),
                "date": format_iso(expense.date),
                "created_at": format_iso(expense.created_at),
                "updated_at": format_iso(expense.updated_at),
                "final_approver": _final_approver(expense),
                "final_comments": expense.final_comments,
                "processing_time": _processing_days(expense),
                "rules_evaluated": len(expense.rules_evaluated),
            }
            for expense in expenses
        ]

        return {
            "expenses": items,
            "pagination": _pagination(filters.page, filters.limit, total),
            "filters": filters.model_dump(mode="json", exclude_none=True),
        }

    def get_dashboard_stats(
        self,
        company_id: str,
        date_start: Optional[datetime] = None,
        date_end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Status, employee, category, processing time and monthly statistics"""
        base = DashboardFilters(date_start=date_start, date_end=date_end).to_criteria(company_id)

        status_counts: Dict[str, Any] = {
            status.value: {"count": 0, "total_amount": 0.0} for status in ExpenseStatus
        }
        for row in self.expense_repo.totals_by_status(base):
            status_counts[row["status"]] = {
                "count": row["count"],
                "total_amount": round(row["total_amount"], 2),
            }

        approved = base.model_copy(update={"statuses": [ExpenseStatus.APPROVED]})
        employee_stats = [
            {
                "employee_id": row["employee_id"],
                "approved_count": row["count"],
                "total_approved_amount": round(row["total_amount"], 2),
                "avg_amount": round(row["avg_amount"], 2),
            }
            for row in self.expense_repo.totals_by_employee(approved, limit=10)
        ]

        category_stats = [
            {
                "category": row["category"],
                "count": row["count"],
                "total_amount": round(row["total_amount"], 2),
                "avg_amount": round(row["avg_amount"], 2),
            }
            for row in self.expense_repo.totals_by_category(base)
        ]

        decided = base.model_copy(update={"statuses": [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED]})
        times = self.expense_repo.processing_time_stats(decided)

        monthly_trends = [
            {**row, "total_amount": round(row["total_amount"], 2), "avg_amount": round(row["avg_amount"], 2)}
            for row in self.expense_repo.totals_by_month(base, by_status=True, newest_first=False)
        ]

        return {
            "status_counts": status_counts,
            "employee_stats": employee_stats,
            "category_stats": category_stats,
            "approval_time_stats": {
                "avg_processing_time": round(times["avg_days"] or 0, 2),
                "min_processing_time": round(times["min_days"] or 0, 2),
                "max_processing_time": round(times["max_days"] or 0, 2),
            },
            "monthly_trends": monthly_trends,
            "date_range": {
                "start": format_iso(date_start) if date_start else None,
                "end": format_iso(date_end) if date_end else None,
            },
        }

    def export_expenses(self, company_id: str, filters: Optional[DashboardFilters] = None) -> str:
        """CSV text of the matching expenses, newest first"""
        filters = filters or DashboardFilters()
        criteria = filters.to_criteria(company_id)
        expenses = self.expense_repo.list_expenses(
            criteria, sort_by="created_at", sort_order="desc", limit=settings.export_max_rows
        )

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(EXPORT_HEADERS)
        for expense in expenses:
            processing = _processing_days(expense)
            writer.writerow([
                expense.expense_id,
                f"{expense.converted_amount:.2f}",
                expense.currency,
                expense.category.value,
                expense.description,
                expense.date.date().isoformat(),
                expense.status.value,
                format_iso(expense.created_at),
                format_iso(expense.updated_at),
                expense.employee_id,
                _final_approver(expense) or "",
                f"{processing:.2f}" if processing is not None else "",
            ])

        logger.info(
            f"Exported {len(expenses)} expenses",
            extra={"company_id": company_id}
        )
        return output.getvalue()
