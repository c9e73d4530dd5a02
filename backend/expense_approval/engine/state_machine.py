"""
Workflow State Machine - start / approve / reject transitions

The state machine mutates the expense it is handed and returns a Transition
describing what must happen afterwards: audit entries to append and
notifications to send. It never persists or notifies anything itself, so the
caller can commit the expense first and only then run the side effects.

States:
    NOT_STARTED -> PENDING(step=0) -> ... -> PENDING(step=k) -> APPROVED | REJECTED

Only the step at the cursor is PENDING; later steps stay WAITING until the
cursor reaches them.

CANCELLED is reached only through the expense service, never here.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..domain.models import Expense, ApprovalOptions, NotificationEffect
from ..domain.enums import (
    ActorRole, ApprovalAction, ApproverRole, ExpenseLogAction, ExpenseStatus,
    NotificationKind, StepStatus
)
from ..domain.errors import (
    AuthorizationError, InvalidStateError, NoCurrentStepError, ValidationError
)
from .chain_builder import ApprovalChainBuilder
from .rule_evaluator import RuleEvaluator
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Same cap as ApprovalStep.comments and Expense.final_comments
MAX_COMMENT_LENGTH = 500


class LogEntry(BaseModel):
    """Audit entry produced by a transition, written after commit"""
    action: ExpenseLogAction
    performed_by: str
    performed_by_role: ActorRole
    previous_status: Optional[ExpenseStatus] = None
    new_status: Optional[ExpenseStatus] = None
    previous_approval_step: Optional[int] = None
    new_approval_step: Optional[int] = None
    comments: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Transition(BaseModel):
    """Result of one state machine call"""
    expense: Expense
    log_entries: List[LogEntry] = Field(default_factory=list)
    effects: List[NotificationEffect] = Field(default_factory=list)
    auto_decided: bool = False


class WorkflowStateMachine:
    """
    Drive an expense through its approval chain

    All precondition checks run before the expense is touched, so a raised
    error always leaves the in-memory expense as it was.
    """

    def __init__(self, chain_builder: ApprovalChainBuilder, rule_evaluator: RuleEvaluator):
        self.chain_builder = chain_builder
        self.rule_evaluator = rule_evaluator

    # =========================================================================
    # Start
    # =========================================================================

    def start(
        self,
        expense: Expense,
        employee_id: str,
        company_id: str,
        options: Optional[ApprovalOptions] = None,
        allow_restart: bool = True
    ) -> Transition:
        """
        Build and attach the approval chain

        Raises:
            InvalidStateError: Expense not PENDING, or chain already built
                and restarts are disabled
            ApproverResolutionError: A chain role has no approver
        """
        if expense.status != ExpenseStatus.PENDING:
            raise InvalidStateError(
                f"Cannot start approval for expense in status {expense.status.value}",
                details={"expense_id": expense.expense_id, "status": expense.status.value}
            )

        restarting = expense.total_approval_steps > 0
        if restarting and not allow_restart:
            raise InvalidStateError(
                "Approval workflow already started",
                details={"expense_id": expense.expense_id}
            )

        chain = self.chain_builder.build(expense, company_id, options)
        previous_step = expense.current_approval_step

        expense.approvals = chain.steps
        expense.total_approval_steps = len(chain.steps)
        expense.current_approval_step = 0
        expense.approval_rules = chain.rules
        expense.updated_at = utc_now()

        if restarting:
            logger.warning(
                "Approval chain rebuilt, cursor reset",
                extra={"expense_id": expense.expense_id}
            )

        transition = Transition(expense=expense)
        transition.log_entries.append(LogEntry(
            action=ExpenseLogAction.SUBMITTED,
            performed_by=employee_id,
            performed_by_role=ActorRole.EMPLOYEE,
            previous_status=ExpenseStatus.PENDING,
            new_status=ExpenseStatus.PENDING,
            previous_approval_step=previous_step,
            new_approval_step=0,
            comments="Expense submitted for approval",
            metadata={
                "approval_chain": [s.approver_role.value for s in chain.steps],
                "approval_rules": chain.rules.model_dump(mode="json"),
                "restarted": restarting,
            }
        ))

        first_step = expense.current_step
        if first_step:
            transition.effects.append(NotificationEffect(
                recipient_id=first_step.approver_id,
                kind=NotificationKind.APPROVAL_PENDING,
                summary=expense.to_summary()
            ))

        logger.info(
            f"Approval started with {expense.total_approval_steps} steps",
            extra={"expense_id": expense.expense_id, "user_id": employee_id}
        )
        return transition

    # =========================================================================
    # Approve / Reject
    # =========================================================================

    def approve(
        self,
        expense: Expense,
        approver_id: str,
        approver_role: ApproverRole,
        comments: Optional[str] = None
    ) -> Transition:
        """
        Approve the current step

        Order of effects:
        1. Current step APPROVED with comments and timestamp
        2. Conditional rules evaluated for the APPROVED action
        3. Rule outcome, last step, or advance the cursor
        """
        step = self._check_can_act(expense, approver_role, comments)
        now = utc_now()
        previous_status = expense.status
        previous_step = expense.current_approval_step

        step.status = StepStatus.APPROVED
        step.comments = comments
        step.acted_at = now

        result = self.rule_evaluator.evaluate(
            expense, ApprovalAction.APPROVED, approver_role, approver_id
        )

        auto_decided = False
        if result.should_auto_approve:
            expense.status = ExpenseStatus.APPROVED
            auto_decided = True
        elif result.should_auto_reject:
            expense.status = ExpenseStatus.REJECTED
            auto_decided = True
        elif expense.current_approval_step == expense.total_approval_steps - 1:
            expense.status = ExpenseStatus.APPROVED
        else:
            expense.current_approval_step += 1
            expense.current_step.status = StepStatus.PENDING

        expense.updated_at = now
        if expense.status == ExpenseStatus.APPROVED:
            expense.final_approved_by = approver_id
        elif expense.status == ExpenseStatus.REJECTED:
            expense.final_rejected_by = approver_id
        if expense.is_terminal:
            expense.final_action_at = now
            expense.final_comments = comments

        is_final = expense.is_terminal
        transition = Transition(expense=expense, auto_decided=auto_decided)
        transition.log_entries.append(LogEntry(
            action=ExpenseLogAction.APPROVED,
            performed_by=approver_id,
            performed_by_role=ActorRole(approver_role.value),
            previous_status=previous_status,
            new_status=expense.status,
            previous_approval_step=previous_step,
            new_approval_step=expense.current_approval_step,
            comments=comments,
            metadata={
                "message": f"Approved by {approver_role.value}",
                "approval_step": previous_step + 1,
                "is_final_approval": is_final,
            }
        ))

        if auto_decided:
            triggered = result.triggered_records
            transition.log_entries.append(LogEntry(
                action=(
                    ExpenseLogAction.AUTO_REJECTED if expense.status == ExpenseStatus.REJECTED
                    else ExpenseLogAction.AUTO_APPROVED
                ),
                performed_by=approver_id,
                performed_by_role=ActorRole(approver_role.value),
                previous_status=previous_status,
                new_status=expense.status,
                previous_approval_step=previous_step,
                new_approval_step=expense.current_approval_step,
                comments=f"Decided by conditional rule: {', '.join(r.rule_id for r in triggered)}",
                metadata={
                    "triggered_rules": [r.model_dump(mode="json") for r in triggered],
                    "final_decision": result.final_decision.value if result.final_decision else None,
                    "skipped_steps": expense.total_approval_steps - previous_step - 1,
                }
            ))

        if is_final:
            kind = (
                NotificationKind.EXPENSE_APPROVED if expense.status == ExpenseStatus.APPROVED
                else NotificationKind.EXPENSE_REJECTED
            )
            transition.effects.append(NotificationEffect(
                recipient_id=expense.employee_id, kind=kind, summary=expense.to_summary()
            ))
        else:
            next_step = expense.current_step
            transition.effects.append(NotificationEffect(
                recipient_id=next_step.approver_id,
                kind=NotificationKind.APPROVAL_PENDING,
                summary=expense.to_summary()
            ))

        logger.info(
            f"Step {previous_step + 1} approved, expense now {expense.status.value}",
            extra={
                "expense_id": expense.expense_id,
                "approver_id": approver_id,
                "approver_role": approver_role.value,
                "status": expense.status.value,
            }
        )
        return transition

    def reject(
        self,
        expense: Expense,
        approver_id: str,
        approver_role: ApproverRole,
        comments: Optional[str] = None
    ) -> Transition:
        """Reject the current step; rejection is always terminal"""
        step = self._check_can_act(expense, approver_role, comments)
        now = utc_now()
        previous_status = expense.status

        step.status = StepStatus.REJECTED
        step.comments = comments
        step.acted_at = now

        expense.status = ExpenseStatus.REJECTED
        expense.final_rejected_by = approver_id
        expense.final_action_at = now
        expense.final_comments = comments
        expense.updated_at = now

        transition = Transition(expense=expense)
        transition.log_entries.append(LogEntry(
            action=ExpenseLogAction.REJECTED,
            performed_by=approver_id,
            performed_by_role=ActorRole(approver_role.value),
            previous_status=previous_status,
            new_status=ExpenseStatus.REJECTED,
            previous_approval_step=expense.current_approval_step,
            new_approval_step=expense.current_approval_step,
            comments=comments,
            metadata={
                "message": f"Rejected by {approver_role.value}",
                "approval_step": expense.current_approval_step + 1,
            }
        ))
        transition.effects.append(NotificationEffect(
            recipient_id=expense.employee_id,
            kind=NotificationKind.EXPENSE_REJECTED,
            summary=expense.to_summary()
        ))

        logger.info(
            f"Step {expense.current_approval_step + 1} rejected",
            extra={
                "expense_id": expense.expense_id,
                "approver_id": approver_id,
                "approver_role": approver_role.value,
                "status": expense.status.value,
            }
        )
        return transition

    def _check_can_act(self, expense: Expense, approver_role: ApproverRole, comments: Optional[str] = None):
        """Preconditions shared by approve and reject; returns the current step"""
        if expense.is_terminal:
            raise InvalidStateError(
                f"Expense is already {expense.status.value}",
                details={"expense_id": expense.expense_id, "status": expense.status.value}
            )

        step = expense.current_step
        if step is None:
            raise NoCurrentStepError(
                "No current approval step found",
                details={
                    "expense_id": expense.expense_id,
                    "current_approval_step": expense.current_approval_step,
                    "total_approval_steps": expense.total_approval_steps,
                }
            )

        if step.status != StepStatus.PENDING:
            raise InvalidStateError(
                "Current step already processed",
                details={"expense_id": expense.expense_id, "step": step.step, "status": step.status.value}
            )

        if step.approver_role != approver_role:
            raise AuthorizationError(
                f"Not authorized to act on this step, requires {step.approver_role.value}",
                details={
                    "expense_id": expense.expense_id,
                    "required_role": step.approver_role.value,
                    "approver_role": approver_role.value,
                }
            )

        if comments is not None and len(comments) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"Comments must be at most {MAX_COMMENT_LENGTH} characters",
                details={"expense_id": expense.expense_id, "length": len(comments)}
            )

        return step
