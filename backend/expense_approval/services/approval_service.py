"""Approval Service - Caller-facing approval workflow operations

Every mutating call follows the same order:
    state machine -> save (version checked) -> audit entries -> notifications

A failed save raises and nothing after it runs. Audit and notification
failures after a successful save are logged and never surface.
"""
from typing import Any, Dict, List, Optional

from ..config.settings import settings
from ..domain.models import ActorContext, ApprovalOptions, Expense
from ..domain.enums import ApproverRole, ApprovalRuleType
from ..domain.errors import ExpenseNotFoundError, InvalidStateError
from ..engine.chain_builder import ApprovalChainBuilder
from ..engine.rule_evaluator import RuleEvaluator
from ..engine.state_machine import WorkflowStateMachine, Transition
from ..engine.identity import ApproverResolver, StaticApproverResolver
from ..engine.rule_catalog import RuleCatalog
from ..engine.audit_writer import AuditWriter
from ..engine.effects import EffectRunner
from ..repositories.expense_repo import ExpenseRepository, ExpenseFilter
from ..repositories.expense_log_repo import ExpenseLogRepository
from .notification_service import NotificationService
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ApprovalService:
    """Service for approval workflow operations"""

    def __init__(
        self,
        expense_repo: Optional[ExpenseRepository] = None,
        log_repo: Optional[ExpenseLogRepository] = None,
        notification_service: Optional[NotificationService] = None,
        approver_resolver: Optional[ApproverResolver] = None,
        rule_catalog: Optional[RuleCatalog] = None,
        allow_restart: Optional[bool] = None
    ):
        self.expense_repo = expense_repo or ExpenseRepository()
        self.log_repo = log_repo or ExpenseLogRepository()
        self.audit_writer = AuditWriter(self.log_repo)
        self.effects = EffectRunner(notification_service or NotificationService())
        self.rule_catalog = rule_catalog or RuleCatalog()
        self.allow_restart = settings.allow_approval_restart if allow_restart is None else allow_restart

        self.rule_evaluator = RuleEvaluator(
            default_percentage_threshold=settings.default_percentage_threshold,
            default_amount_threshold=settings.default_amount_threshold
        )
        self.chain_builder = ApprovalChainBuilder(
            approver_resolver or StaticApproverResolver(),
            manager_only_max_amount=settings.manager_only_max_amount,
            finance_max_amount=settings.finance_max_amount
        )
        self.state_machine = WorkflowStateMachine(self.chain_builder, self.rule_evaluator)

    # =========================================================================
    # Workflow transitions
    # =========================================================================

    def start_approval(
        self,
        expense_id: str,
        employee_id: str,
        company_id: str,
        options: Optional[ApprovalOptions] = None
    ) -> Expense:
        """
        Start the approval workflow for an employee's expense

        Raises:
            ExpenseNotFoundError: Missing or not owned by the employee
            InvalidStateError: Not PENDING, or already started with restarts off
        """
        expense = self._get_owned_expense(expense_id, employee_id, company_id)
        transition = self.state_machine.start(
            expense, employee_id, company_id, options, allow_restart=self.allow_restart
        )
        return self._commit(transition)

    def approve_expense(
        self,
        expense_id: str,
        approver_id: str,
        approver_role: ApproverRole,
        comments: Optional[str] = None
    ) -> Expense:
        """
        Approve the current step of an expense

        Raises:
            ExpenseNotFoundError: Expense does not exist
            NoCurrentStepError: Chain empty or exhausted
            InvalidStateError: Expense terminal or step already processed
            AuthorizationError: Role does not own the current step
        """
        expense = self.expense_repo.get_expense_or_raise(expense_id)
        transition = self.state_machine.approve(expense, approver_id, approver_role, comments)
        return self._commit(transition)

    def reject_expense(
        self,
        expense_id: str,
        approver_id: str,
        approver_role: ApproverRole,
        comments: Optional[str] = None
    ) -> Expense:
        """Reject the current step of an expense (always terminal)"""
        expense = self.expense_repo.get_expense_or_raise(expense_id)
        transition = self.state_machine.reject(expense, approver_id, approver_role, comments)
        return self._commit(transition)

    def _commit(self, transition: Transition) -> Expense:
        saved = self.expense_repo.save_expense(transition.expense)
        self.audit_writer.write_transition(saved.expense_id, transition.log_entries)
        self.effects.run(transition.effects)
        return saved

    # =========================================================================
    # Queries
    # =========================================================================

    def get_pending_expenses(
        self,
        approver_id: str,
        approver_role: ApproverRole,
        company_id: str
    ) -> List[Expense]:
        """Expenses whose active step is waiting on the role"""
        expenses = self.expense_repo.find_pending_for_role(company_id, approver_role)
        logger.info(
            f"Found {len(expenses)} pending expenses for {approver_role.value}",
            extra={"approver_id": approver_id, "company_id": company_id}
        )
        return expenses

    def get_approval_statistics(
        self,
        company_id: str,
        approver_role: Optional[ApproverRole] = None
    ) -> List[Dict[str, Any]]:
        """Count and total converted amount per status"""
        rows = self.expense_repo.totals_by_status(
            ExpenseFilter(company_id=company_id, approver_role=approver_role)
        )
        return [
            {"status": row["status"], "count": row["count"], "total_amount": round(row["total_amount"], 2)}
            for row in rows
        ]

    def get_approval_history(
        self,
        expense_id: str,
        employee_id: str,
        company_id: str
    ) -> Dict[str, Any]:
        """Expense summary, approval flow and chronological log"""
        expense = self._get_owned_expense(expense_id, employee_id, company_id)
        logs = self.log_repo.get_logs_for_expense(expense_id, ascending=True, limit=1000)

        return {
            "expense": {
                "id": expense.expense_id,
                "amount": expense.converted_amount,
                "currency": expense.currency,
                "category": expense.category.value,
                "status": expense.status.value,
                "current_step": expense.current_approval_step,
                "total_steps": expense.total_approval_steps,
                "progress": round(expense.approval_progress, 1),
            },
            "approval_flow": [step.model_dump(mode="json") for step in expense.approvals],
            "history": [log.model_dump(mode="json") for log in logs],
        }

    def get_workflow_info(self) -> Dict[str, Any]:
        """Static description of the approval workflow"""
        manager_max = self.chain_builder.manager_only_max_amount
        finance_max = self.chain_builder.finance_max_amount
        return {
            "features": [
                "Multi-step approval workflow",
                "Role-based approval routing",
                "Conditional auto-approval rules",
                "Notification outbox",
                "Approval history tracking",
            ],
            "approval_roles": [role.value for role in ApproverRole],
            "workflow_types": [t.value for t in ApprovalRuleType],
            "approval_tiers": {
                f"Amount <= {manager_max:g}": "Manager approval only",
                f"Amount <= {finance_max:g}": "Manager + Finance approval",
                f"Amount > {finance_max:g}": "Manager + Finance + Director approval",
            },
            "conditional_rules": [
                rule.model_dump(mode="json") for rule in self.rule_catalog.load_available_rules()
            ],
        }

    # =========================================================================
    # Conditional rules
    # =========================================================================

    def apply_conditional_rules(
        self,
        expense_id: str,
        actor: ActorContext,
        rule_ids: Optional[List[str]] = None
    ) -> Expense:
        """
        Attach catalog rules to an expense, replacing any attached before

        Earlier evaluation records are kept.

        Raises:
            ExpenseNotFoundError: Expense missing or in another company
            InvalidStateError: Expense already decided
            ValidationError: Unknown rule id
        """
        expense = self.expense_repo.get_expense_or_raise(expense_id)
        if expense.company_id != actor.company_id:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        if expense.is_terminal:
            raise InvalidStateError(
                f"Cannot change rules of a {expense.status.value} expense",
                details={"expense_id": expense_id, "status": expense.status.value}
            )

        rules = self.rule_catalog.select(rule_ids)
        expense.conditional_rules = rules
        saved = self.expense_repo.save_expense(expense)

        self.audit_writer.write_rules_attached(
            saved, actor.user_id, actor.role, [rule.id for rule in rules]
        )
        logger.info(
            f"Applied {len(rules)} conditional rules",
            extra={"expense_id": expense_id, "user_id": actor.user_id}
        )
        return saved

    def get_rule_evaluation_summary(
        self,
        expense_id: str,
        company_id: str,
        employee_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Summary of the rule evaluations recorded on an expense

        With employee_id the expense must also belong to that employee;
        approvers pass only their company.
        """
        expense = self.expense_repo.get_expense_or_raise(expense_id)
        if expense.company_id != company_id or (employee_id and expense.employee_id != employee_id):
            raise ExpenseNotFoundError(
                f"Expense {expense_id} not found or access denied",
                details={"expense_id": expense_id}
            )
        return self.rule_evaluator.summarize(expense)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_owned_expense(self, expense_id: str, employee_id: str, company_id: str) -> Expense:
        expense = self.expense_repo.get_expense_for_owner(expense_id, employee_id, company_id)
        if not expense:
            raise ExpenseNotFoundError(
                f"Expense {expense_id} not found or access denied",
                details={"expense_id": expense_id}
            )
        return expense
