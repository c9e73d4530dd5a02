"""Audit Writer - Append-only expense log entries"""
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from ..domain.models import ActorContext, Expense, ExpenseLog
from ..domain.enums import ActorRole, ExpenseLogAction, ExpenseStatus
from ..repositories.expense_log_repo import ExpenseLogRepository
from .state_machine import LogEntry
from ..utils.idgen import generate_expense_log_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


class AuditWriter:
    """
    Write expense log entries (append-only)

    Entries are written after the expense itself is committed. A failed
    append is logged and never undoes or fails the committed transition.
    """

    def __init__(self, repo: Optional[ExpenseLogRepository] = None):
        self.repo = repo or ExpenseLogRepository()

    def write_entry(
        self,
        expense_id: str,
        action: ExpenseLogAction,
        performed_by: str,
        performed_by_role: ActorRole,
        previous_status: Optional[ExpenseStatus] = None,
        new_status: Optional[ExpenseStatus] = None,
        previous_approval_step: Optional[int] = None,
        new_approval_step: Optional[int] = None,
        comments: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ) -> Optional[ExpenseLog]:
        """Write a single log entry"""
        entry = ExpenseLog(
            log_id=generate_expense_log_id(),
            expense_id=expense_id,
            action=action,
            performed_by=performed_by,
            performed_by_role=performed_by_role,
            previous_status=previous_status,
            new_status=new_status,
            previous_approval_step=previous_approval_step,
            new_approval_step=new_approval_step,
            comments=comments,
            metadata=metadata or {},
            timestamp=utc_now(),
            correlation_id=correlation_id or get_correlation_id()
        )

        try:
            return self.repo.append(entry)
        except PyMongoError as e:
            logger.error(
                f"Failed to write expense log {action.value}: {e}",
                extra={"expense_id": expense_id, "action": action.value}
            )
            return None

    def write_transition(
        self,
        expense_id: str,
        entries: List[LogEntry],
        correlation_id: Optional[str] = None
    ) -> List[ExpenseLog]:
        """Write the log entries a state machine transition produced"""
        written = []
        for entry in entries:
            log = self.write_entry(
                expense_id=expense_id,
                correlation_id=correlation_id,
                **entry.model_dump()
            )
            if log:
                written.append(log)
        return written

    def write_created(self, expense: Expense, actor: ActorContext) -> Optional[ExpenseLog]:
        """Write expense creation entry"""
        return self.write_entry(
            expense_id=expense.expense_id,
            action=ExpenseLogAction.CREATED,
            performed_by=actor.user_id,
            performed_by_role=actor.role,
            new_status=expense.status,
            comments="Expense created",
            metadata={
                "amount": expense.amount,
                "currency": expense.currency,
                "converted_amount": expense.converted_amount,
                "category": expense.category.value,
            }
        )

    def write_updated(
        self,
        expense: Expense,
        actor: ActorContext,
        updated_fields: List[str]
    ) -> Optional[ExpenseLog]:
        """Write expense update entry"""
        return self.write_entry(
            expense_id=expense.expense_id,
            action=ExpenseLogAction.UPDATED,
            performed_by=actor.user_id,
            performed_by_role=actor.role,
            previous_status=expense.status,
            new_status=expense.status,
            comments="Expense updated",
            metadata={"updated_fields": updated_fields}
        )

    def write_cancelled(
        self,
        expense: Expense,
        actor: ActorContext,
        previous_status: ExpenseStatus
    ) -> Optional[ExpenseLog]:
        """Write expense cancellation entry"""
        return self.write_entry(
            expense_id=expense.expense_id,
            action=ExpenseLogAction.CANCELLED,
            performed_by=actor.user_id,
            performed_by_role=actor.role,
            previous_status=previous_status,
            new_status=expense.status,
            comments="Expense cancelled by employee"
        )

    def write_rules_attached(
        self,
        expense: Expense,
        performed_by: str,
        performed_by_role: ActorRole,
        rule_ids: List[str]
    ) -> Optional[ExpenseLog]:
        """Write conditional rules attachment entry"""
        return self.write_entry(
            expense_id=expense.expense_id,
            action=ExpenseLogAction.RULE_EVALUATED,
            performed_by=performed_by,
            performed_by_role=performed_by_role,
            previous_status=expense.status,
            new_status=expense.status,
            comments="Conditional rules applied",
            metadata={"rule_ids": rule_ids}
        )
