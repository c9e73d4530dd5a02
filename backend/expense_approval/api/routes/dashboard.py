"""
Manager Dashboard Routes

Endpoints for approvers:
- Pending expenses across the company
- Decided expense history
- Dashboard statistics
- CSV export
"""

import io
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..deps import get_approver_dep, get_dashboard_service
from ...domain.models import ActorContext
from ...domain.enums import ExpenseCategory, ExpenseStatus
from ...services.dashboard_service import DashboardService, DashboardFilters
from ...utils.time import utc_now
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


def get_dashboard_filters(
    date_start: Optional[datetime] = Query(None),
    date_end: Optional[datetime] = Query(None),
    category: Optional[ExpenseCategory] = Query(None),
    employee_id: Optional[str] = Query(None),
    status: Optional[ExpenseStatus] = Query(None),
    amount_min: Optional[float] = Query(None, ge=0),
    amount_max: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$")
) -> DashboardFilters:
    """Collect the shared manager view query parameters"""
    return DashboardFilters(
        date_start=date_start,
        date_end=date_end,
        category=category,
        employee_id=employee_id,
        status=status,
        amount_min=amount_min,
        amount_max=amount_max,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order
    )


@router.get("/pending")
async def get_pending_expenses(
    filters: DashboardFilters = Depends(get_dashboard_filters),
    actor: ActorContext = Depends(get_approver_dep),
    service: DashboardService = Depends(get_dashboard_service)
):
    """
    Get pending expenses for the company.

    Every PENDING expense with an active step, with days pending and
    the approver the expense waits on.
    """
    result = service.get_pending_expenses(actor.company_id, filters)
    return {"message": "Pending expenses retrieved successfully", **result}


@router.get("/history")
async def get_expense_history(
    filters: DashboardFilters = Depends(get_dashboard_filters),
    actor: ActorContext = Depends(get_approver_dep),
    service: DashboardService = Depends(get_dashboard_service)
):
    """Decided expenses with final approver and processing time"""
    result = service.get_expense_history(actor.company_id, filters)
    return {"message": "Expense history retrieved successfully", **result}


@router.get("/stats")
async def get_dashboard_stats(
    date_start: Optional[datetime] = Query(None),
    date_end: Optional[datetime] = Query(None),
    actor: ActorContext = Depends(get_approver_dep),
    service: DashboardService = Depends(get_dashboard_service)
):
    """Status, employee, category, processing time and monthly statistics"""
    stats = service.get_dashboard_stats(actor.company_id, date_start=date_start, date_end=date_end)
    return {"message": "Dashboard statistics retrieved successfully", "stats": stats}


@router.get("/export")
async def export_expenses(
    filters: DashboardFilters = Depends(get_dashboard_filters),
    actor: ActorContext = Depends(get_approver_dep),
    service: DashboardService = Depends(get_dashboard_service)
):
    """Download the matching expenses as CSV"""
    content = service.export_expenses(actor.company_id, filters)
    filename = f"expenses_{utc_now().strftime('%Y-%m-%d')}.csv"

    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
