"""Rule Evaluator - Conditional rules that can short-circuit an approval chain"""
import math
from typing import Any, Dict, List, Optional, Union

from ..config.settings import settings
from ..domain.models import (
    Expense, RuleEvaluationRecord, RuleEvaluationResult,
    PercentageRule, SpecificRule, HybridRule, AmountThresholdRule,
    CategorySpecificRule, PercentageCondition, SpecificCondition
)
from ..domain.enums import (
    ApprovalAction, ApproverRole, ActorRole, RuleAction, ExpenseStatus, StepStatus
)
from ..domain.errors import RuleEvaluationError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RuleEvaluator:
    """
    Evaluate the conditional rules attached to an expense

    - Every rule is evaluated and recorded, in stored order
    - Rules only fire on APPROVED actions
    - One failing rule never stops the others (fail closed, recorded)
    - If both an APPROVE and a REJECT rule fire, REJECT wins
    """

    def __init__(
        self,
        default_percentage_threshold: Optional[float] = None,
        default_amount_threshold: Optional[float] = None
    ):
        self.default_percentage_threshold = (
            default_percentage_threshold if default_percentage_threshold is not None
            else settings.default_percentage_threshold
        )
        self.default_amount_threshold = (
            default_amount_threshold if default_amount_threshold is not None
            else settings.default_amount_threshold
        )

    def evaluate(
        self,
        expense: Expense,
        action: ApprovalAction,
        approver_role: ApproverRole,
        approver_id: str
    ) -> RuleEvaluationResult:
        """
        Evaluate all rules and append their records to expense.rules_evaluated

        Args:
            expense: Expense whose current step has already been updated
            action: Action just performed
            approver_role: Role of the acting approver
            approver_id: Identity of the acting approver

        Returns:
            RuleEvaluationResult with aggregate flags and one record per rule
        """
        if not expense.conditional_rules:
            return RuleEvaluationResult()

        records = [
            self._evaluate_single(expense, rule, action, approver_role, approver_id)
            for rule in expense.conditional_rules
        ]

        should_auto_approve = any(r.triggered and r.action == RuleAction.APPROVE for r in records)
        should_auto_reject = any(r.triggered and r.action == RuleAction.REJECT for r in records)

        final_decision = None
        if should_auto_reject:
            if should_auto_approve:
                logger.warning(
                    "Conflicting rule outcomes, rejection takes precedence",
                    extra={"expense_id": expense.expense_id}
                )
            should_auto_approve = False
            final_decision = ExpenseStatus.REJECTED
        elif should_auto_approve:
            final_decision = ExpenseStatus.APPROVED

        expense.rules_evaluated.extend(records)

        logger.info(
            f"Evaluated {len(records)} rules: auto_approve={should_auto_approve} auto_reject={should_auto_reject}",
            extra={"expense_id": expense.expense_id, "approver_role": approver_role.value}
        )

        return RuleEvaluationResult(
            should_auto_approve=should_auto_approve,
            should_auto_reject=should_auto_reject,
            final_decision=final_decision,
            records=records
        )

    def _evaluate_single(
        self,
        expense: Expense,
        rule: Any,
        action: ApprovalAction,
        approver_role: ApproverRole,
        approver_id: str
    ) -> RuleEvaluationRecord:
        """Evaluate one rule into its record"""
        rule_id = getattr(rule, "id", None) or "unknown"
        rule_type = str(getattr(rule, "type", "UNKNOWN"))
        record = RuleEvaluationRecord(
            rule_id=rule_id,
            rule_type=rule_type,
            rule_description=getattr(rule, "description", None) or f"{rule_type} rule",
            evaluated_at=utc_now(),
            evaluated_by=approver_id,
            evaluated_by_role=ActorRole(approver_role.value)
        )

        try:
            if isinstance(rule, PercentageRule):
                record.triggered = self._evaluate_percentage(expense, rule, action)
                record.details = {
                    "threshold": self._percentage_threshold(rule),
                    "current_percentage": self.calculate_approval_percentage(expense),
                    "required_approvals": rule.required_approvals,
                }

            elif isinstance(rule, SpecificRule):
                record.triggered = self._evaluate_specific(rule, action, approver_role, approver_id)
                record.details = {
                    "required_role": rule.approver_role.value if rule.approver_role else None,
                    "required_approver_id": rule.approver_id,
                    "current_approver_role": approver_role.value,
                    "current_approver_id": approver_id,
                }

            elif isinstance(rule, HybridRule):
                matched = self._evaluate_hybrid(expense, rule, action, approver_role, approver_id)
                record.triggered = matched is not None
                record.details = {
                    "hybrid_rule": rule.rule,
                    "conditions": [c.model_dump(mode="json") for c in rule.conditions],
                    "matched_condition": matched,
                    "current_status": self.approval_status(expense),
                }

            elif isinstance(rule, AmountThresholdRule):
                record.triggered = self._evaluate_amount_threshold(expense, rule, action)
                record.details = {
                    "threshold": self._amount_threshold(rule),
                    "current_amount": expense.converted_amount,
                    "currency": expense.currency,
                }

            elif isinstance(rule, CategorySpecificRule):
                record.triggered = self._evaluate_category_specific(expense, rule, action, approver_role)
                record.details = {
                    "required_category": rule.category.value,
                    "current_category": expense.category.value,
                    "required_role": rule.approver_role.value,
                }

            else:
                logger.warning(
                    f"Unknown rule type: {rule_type}",
                    extra={"expense_id": expense.expense_id, "rule_id": rule_id}
                )
                record.details = {"error": "Unknown rule type"}

        except Exception as e:
            error = RuleEvaluationError(
                f"Rule {rule_id} could not be evaluated: {e}",
                details={"rule_id": rule_id, "rule_type": rule_type}
            )
            logger.error(
                error.message,
                extra={"expense_id": expense.expense_id, "rule_id": rule_id},
                exc_info=True
            )
            record.rule_description = "Error evaluating rule"
            record.triggered = False
            record.details = {"error": str(e)}

        record.action = RuleAction.APPROVE if record.triggered else None
        return record

    # =========================================================================
    # Per-variant predicates
    # =========================================================================

    def _evaluate_percentage(
        self,
        expense: Expense,
        rule: Union[PercentageRule, PercentageCondition],
        action: ApprovalAction
    ) -> bool:
        if action != ApprovalAction.APPROVED:
            return False
        return self.calculate_approval_percentage(expense) >= self._percentage_threshold(rule)

    def _evaluate_specific(
        self,
        rule: Union[SpecificRule, SpecificCondition],
        action: ApprovalAction,
        approver_role: ApproverRole,
        approver_id: str
    ) -> bool:
        if action != ApprovalAction.APPROVED:
            return False
        if rule.approver_role is not None and rule.approver_role == approver_role:
            return True
        if rule.approver_id and rule.approver_id == approver_id:
            return True
        return False

    def _evaluate_hybrid(
        self,
        expense: Expense,
        rule: HybridRule,
        action: ApprovalAction,
        approver_role: ApproverRole,
        approver_id: str
    ) -> Optional[Dict[str, Any]]:
        """First satisfied sub-condition, or None"""
        if action != ApprovalAction.APPROVED:
            return None

        for condition in rule.conditions:
            if isinstance(condition, PercentageCondition):
                met = self._evaluate_percentage(expense, condition, action)
            else:
                met = self._evaluate_specific(condition, action, approver_role, approver_id)
            if met:
                return condition.model_dump(mode="json")
        return None

    def _evaluate_amount_threshold(
        self,
        expense: Expense,
        rule: AmountThresholdRule,
        action: ApprovalAction
    ) -> bool:
        if action != ApprovalAction.APPROVED:
            return False
        return expense.converted_amount >= self._amount_threshold(rule)

    def _evaluate_category_specific(
        self,
        expense: Expense,
        rule: CategorySpecificRule,
        action: ApprovalAction,
        approver_role: ApproverRole
    ) -> bool:
        if action != ApprovalAction.APPROVED:
            return False
        return expense.category == rule.category and approver_role == rule.approver_role

    def _percentage_threshold(self, rule: Union[PercentageRule, PercentageCondition]) -> float:
        return rule.threshold if rule.threshold is not None else self.default_percentage_threshold

    def _amount_threshold(self, rule: AmountThresholdRule) -> float:
        return rule.threshold if rule.threshold is not None else self.default_amount_threshold

    # =========================================================================
    # Progress helpers
    # =========================================================================

    @staticmethod
    def calculate_approval_percentage(expense: Expense) -> int:
        """Approved share of the chain as a whole percentage (half rounds up)"""
        if not expense.approvals:
            return 0
        total_steps = expense.total_approval_steps or len(expense.approvals)
        percentage = expense.approved_steps_count / total_steps * 100
        return int(math.floor(percentage + 0.5))

    def approval_status(self, expense: Expense) -> Dict[str, Any]:
        """Step counts by status for rule details and summaries"""
        return {
            "current_step": expense.current_approval_step,
            "total_steps": expense.total_approval_steps,
            "approved_steps": expense.approved_steps_count,
            "rejected_steps": sum(1 for a in expense.approvals if a.status == StepStatus.REJECTED),
            "pending_steps": sum(1 for a in expense.approvals if a.status == StepStatus.PENDING),
            "waiting_steps": sum(1 for a in expense.approvals if a.status == StepStatus.WAITING),
            "percentage": self.calculate_approval_percentage(expense),
        }

    def summarize(self, expense: Expense) -> Dict[str, Any]:
        """Summary of every evaluation recorded on the expense"""
        records: List[RuleEvaluationRecord] = expense.rules_evaluated
        if not records:
            return {"message": "No rules evaluated yet", "total_rules": 0, "rules": []}

        return {
            "total_rules": len(records),
            "triggered_rules": sum(1 for r in records if r.triggered),
            "auto_approved": any(r.triggered and r.action == RuleAction.APPROVE for r in records),
            "auto_rejected": any(r.triggered and r.action == RuleAction.REJECT for r in records),
            "last_evaluation": records[-1].evaluated_at,
            "rules": [
                {
                    "rule_id": r.rule_id,
                    "rule_type": r.rule_type,
                    "triggered": r.triggered,
                    "action": r.action.value if r.action else None,
                    "evaluated_at": r.evaluated_at,
                }
                for r in records
            ],
        }
