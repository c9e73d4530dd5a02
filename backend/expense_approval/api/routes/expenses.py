"""
Expense Routes

Employee-facing endpoints:
- Submit, list, get, update and cancel expenses
- Personal statistics and audit trail
- Supported currencies and categories
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from ..deps import get_current_user_dep, get_expense_service
from ...domain.models import ActorContext
from ...domain.enums import ExpenseCategory, ExpenseStatus
from ...services.expense_service import ExpenseService
from ...utils.logger import get_logger
from .schemas import CreateExpenseRequest, UpdateExpenseRequest

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_expense(
    request: CreateExpenseRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """
    Submit a new expense.

    The amount is converted to the company base currency; the expense
    starts PENDING with no approval chain until approval is started.
    """
    expense = service.create_expense(request.model_dump(), actor)
    return {
        "message": "Expense created successfully",
        "expense": expense.model_dump(mode="json"),
    }


@router.get("/my")
async def get_my_expenses(
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    category: Optional[ExpenseCategory] = Query(None),
    start_date: Optional[str] = Query(None, description="ISO 8601 date"),
    end_date: Optional[str] = Query(None, description="ISO 8601 date"),
    sort_by: str = Query("date"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """List the caller's expenses with filters and pagination"""
    result = service.list_employee_expenses(
        actor,
        status=status_filter,
        category=category,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit
    )
    return {
        "message": "Expenses retrieved successfully",
        "data": [expense.model_dump(mode="json") for expense in result["expenses"]],
        "pagination": result["pagination"],
    }


@router.get("/statistics")
async def get_expense_statistics(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    category: Optional[ExpenseCategory] = Query(None),
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """Totals of the caller's expenses by status, category and month"""
    statistics = service.get_expense_statistics(
        actor, start_date=start_date, end_date=end_date, category=category
    )
    return {
        "message": "Expense statistics retrieved successfully",
        "statistics": statistics,
    }


@router.get("/currencies")
async def get_supported_currencies(
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """Currencies with a configured rate and the caller's base currency"""
    currency_service = service.currency_service
    return {
        "currencies": currency_service.supported_currencies(),
        "base_currency": currency_service.get_company_base_currency(actor.company_id),
    }


@router.get("/categories")
async def get_expense_categories(
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Fixed list of expense categories"""
    return {"categories": [category.value for category in ExpenseCategory]}


@router.get("/{expense_id}")
async def get_expense(
    expense_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """Get one of the caller's expenses"""
    expense = service.get_expense(expense_id, actor)
    return {
        "message": "Expense retrieved successfully",
        "expense": expense.model_dump(mode="json"),
    }


@router.patch("/{expense_id}")
async def update_expense(
    expense_id: str,
    request: UpdateExpenseRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """
    Update a pending expense.

    Only allowed while no approver has acted on it.
    """
    expense = service.update_expense(expense_id, request.model_dump(exclude_none=True), actor)
    return {
        "message": "Expense updated successfully",
        "expense": expense.model_dump(mode="json"),
    }


@router.delete("/{expense_id}")
async def cancel_expense(
    expense_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """
    Cancel a pending expense.

    The record is kept with status CANCELLED.
    """
    expense = service.cancel_expense(expense_id, actor)
    return {
        "message": "Expense cancelled successfully",
        "expense": expense.to_summary(),
    }


@router.get("/{expense_id}/logs")
async def get_expense_logs(
    expense_id: str,
    limit: int = Query(50, ge=1, le=500),
    actor: ActorContext = Depends(get_current_user_dep),
    service: ExpenseService = Depends(get_expense_service)
):
    """Audit trail of one of the caller's expenses, newest first"""
    logs = service.get_expense_logs(expense_id, actor, limit=limit)
    return {
        "message": "Expense logs retrieved successfully",
        "logs": [log.model_dump(mode="json") for log in logs],
    }
