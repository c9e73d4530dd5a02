"""
Workflow Routes

Approval workflow endpoints:
- Start approval (employee)
- Approve / reject the current step (approvers)
- Pending queue, statistics and history
- Conditional rules
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ..deps import get_current_user_dep, get_approver_dep, get_approval_service
from ...domain.models import ActorContext, ApprovalOptions
from ...domain.enums import ApproverRole
from ...services.approval_service import ApprovalService
from ...utils.logger import get_logger
from .schemas import StartApprovalRequest, ApprovalActionRequest, ApplyRulesRequest

logger = get_logger(__name__)
router = APIRouter()


@router.get("/info")
async def get_workflow_info(
    actor: ActorContext = Depends(get_current_user_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Approval tiers, roles and the conditional rule catalog"""
    return {
        "message": "Approval workflow information",
        "workflow": service.get_workflow_info(),
    }


@router.post("/start/{expense_id}")
async def start_approval(
    expense_id: str,
    request: Optional[StartApprovalRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """
    Start the approval workflow for one of the caller's expenses.

    Builds the approval chain from the converted amount and notifies
    the first approver.
    """
    options = ApprovalOptions(**request.model_dump()) if request else None
    expense = service.start_approval(expense_id, actor.user_id, actor.company_id, options)
    return {
        "message": "Approval workflow started successfully",
        "expense": expense.to_summary(),
        "approval_chain": [step.model_dump(mode="json") for step in expense.approvals],
    }


@router.patch("/approve/{expense_id}")
async def approve_expense(
    expense_id: str,
    request: Optional[ApprovalActionRequest] = None,
    actor: ActorContext = Depends(get_approver_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """
    Approve the current step.

    Only the role holding the current step can approve. Conditional
    rules may decide the expense early.
    """
    expense = service.approve_expense(
        expense_id,
        approver_id=actor.user_id,
        approver_role=actor.approver_role,
        comments=request.comments if request else None
    )
    return {
        "message": "Expense approved successfully",
        "expense": expense.to_summary(),
        "approval_chain": [step.model_dump(mode="json") for step in expense.approvals],
    }


@router.patch("/reject/{expense_id}")
async def reject_expense(
    expense_id: str,
    request: Optional[ApprovalActionRequest] = None,
    actor: ActorContext = Depends(get_approver_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Reject the current step; rejection is always final"""
    expense = service.reject_expense(
        expense_id,
        approver_id=actor.user_id,
        approver_role=actor.approver_role,
        comments=request.comments if request else None
    )
    return {
        "message": "Expense rejected successfully",
        "expense": expense.to_summary(),
        "approval_chain": [step.model_dump(mode="json") for step in expense.approvals],
    }


@router.get("/pending")
async def get_pending_expenses(
    actor: ActorContext = Depends(get_approver_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Expenses whose current step waits on the caller's role"""
    expenses = service.get_pending_expenses(actor.user_id, actor.approver_role, actor.company_id)
    return {
        "message": "Pending expenses retrieved successfully",
        "approver": {"id": actor.user_id, "role": actor.approver_role.value},
        "expenses": [
            {
                **expense.to_summary(),
                "date": expense.date.isoformat(),
                "current_step": expense.current_step.model_dump(mode="json"),
            }
            for expense in expenses
        ],
        "count": len(expenses),
    }


@router.get("/statistics")
async def get_approval_statistics(
    role: Optional[ApproverRole] = Query(None, description="Only chains containing this role"),
    actor: ActorContext = Depends(get_approver_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Count and total amount per status for the caller's company"""
    statistics = service.get_approval_statistics(actor.company_id, approver_role=role)
    return {
        "message": "Approval statistics retrieved successfully",
        "statistics": statistics,
        "filters": {
            "company_id": actor.company_id,
            "approver_role": role.value if role else None,
        },
    }


@router.get("/history/{expense_id}")
async def get_approval_history(
    expense_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Approval flow and chronological log of one of the caller's expenses"""
    history = service.get_approval_history(expense_id, actor.user_id, actor.company_id)
    return {
        "message": "Approval history retrieved successfully",
        **history,
    }


# =============================================================================
# Conditional Rules
# =============================================================================

@router.post("/rules/{expense_id}")
async def apply_conditional_rules(
    expense_id: str,
    request: Optional[ApplyRulesRequest] = None,
    actor: ActorContext = Depends(get_approver_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Attach catalog rules to an undecided expense"""
    expense = service.apply_conditional_rules(
        expense_id, actor, rule_ids=request.rule_ids if request else None
    )
    return {
        "message": "Conditional rules applied successfully",
        "expense": expense.to_summary(),
        "conditional_rules": [rule.model_dump(mode="json") for rule in expense.conditional_rules],
    }


@router.get("/rules/{expense_id}/summary")
async def get_rule_evaluation_summary(
    expense_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: ApprovalService = Depends(get_approval_service)
):
    """Summary of the rule evaluations recorded on an expense (approvers, or the owning employee)"""
    employee_id = actor.user_id if actor.approver_role is None else None
    return {
        "message": "Rule evaluation summary retrieved successfully",
        "summary": service.get_rule_evaluation_summary(expense_id, actor.company_id, employee_id),
    }
