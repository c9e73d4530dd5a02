"""Approval Chain Builder - Ordered approval steps for an expense"""
from typing import List, Optional

from pydantic import BaseModel, Field

from ..config.settings import settings
from ..domain.models import Expense, ApprovalStep, ApprovalRules, ApprovalOptions
from ..domain.enums import ApproverRole, ApprovalRuleType, StepStatus
from .identity import ApproverResolver
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ApprovalChain(BaseModel):
    """Steps to assign to an expense plus the descriptor of how they were chosen"""
    steps: List[ApprovalStep] = Field(default_factory=list)
    rules: ApprovalRules

    @property
    def roles(self) -> List[ApproverRole]:
        return [s.approver_role for s in self.steps]


class ApprovalChainBuilder:
    """
    Build the approval chain for an expense

    Policy:
    1. director_only -> [DIRECTOR]
    2. manager_only -> [MANAGER]
    3. tiered on converted amount:
       <= manager_only_max -> [MANAGER]
       <= finance_max      -> [MANAGER, FINANCE]
       otherwise           -> [MANAGER, FINANCE, DIRECTOR]

    The builder never touches the expense; the caller assigns the result.
    """

    def __init__(
        self,
        approver_resolver: ApproverResolver,
        manager_only_max_amount: Optional[float] = None,
        finance_max_amount: Optional[float] = None
    ):
        self.approver_resolver = approver_resolver
        self.manager_only_max_amount = (
            manager_only_max_amount if manager_only_max_amount is not None
            else settings.manager_only_max_amount
        )
        self.finance_max_amount = (
            finance_max_amount if finance_max_amount is not None
            else settings.finance_max_amount
        )

    def determine_rules(
        self,
        expense: Expense,
        options: Optional[ApprovalOptions] = None
    ) -> ApprovalRules:
        """Pick the chain shape for the expense"""
        options = options or ApprovalOptions()

        if options.director_only:
            return ApprovalRules(
                type=ApprovalRuleType.DIRECTOR_ONLY,
                description="Director approval only - special authorization required"
            )

        if options.manager_only:
            return ApprovalRules(
                type=ApprovalRuleType.MANAGER_ONLY,
                description="Manager approval only - expedited process"
            )

        amount = expense.converted_amount
        if amount <= self.manager_only_max_amount:
            description = f"Manager approval required for amounts up to {self.manager_only_max_amount:g}"
        elif amount <= self.finance_max_amount:
            description = f"Manager and Finance approval required for amounts up to {self.finance_max_amount:g}"
        else:
            description = f"Manager, Finance, and Director approval required for amounts over {self.finance_max_amount:g}"

        return ApprovalRules(type=ApprovalRuleType.SEQUENTIAL, description=description)

    def roles_for(self, expense: Expense, rules: ApprovalRules) -> List[ApproverRole]:
        """Role sequence for a chain shape"""
        if rules.type == ApprovalRuleType.DIRECTOR_ONLY:
            return [ApproverRole.DIRECTOR]
        if rules.type == ApprovalRuleType.MANAGER_ONLY:
            return [ApproverRole.MANAGER]

        amount = expense.converted_amount
        if amount <= self.manager_only_max_amount:
            return [ApproverRole.MANAGER]
        if amount <= self.finance_max_amount:
            return [ApproverRole.MANAGER, ApproverRole.FINANCE]
        return [ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.DIRECTOR]

    def build(
        self,
        expense: Expense,
        company_id: str,
        options: Optional[ApprovalOptions] = None
    ) -> ApprovalChain:
        """
        Build the chain

        Args:
            expense: Expense the chain is for (only converted_amount is read)
            company_id: Company used to resolve approver identities
            options: director_only / manager_only overrides

        Returns:
            ApprovalChain with 1-indexed steps, the first PENDING and the rest WAITING

        Raises:
            ApproverResolutionError: If a role has no configured approver
        """
        rules = self.determine_rules(expense, options)
        steps = [
            ApprovalStep(
                step=index,
                approver_id=self.approver_resolver.resolve_approver(role, company_id),
                approver_role=role,
                status=StepStatus.PENDING if index == 1 else StepStatus.WAITING
            )
            for index, role in enumerate(self.roles_for(expense, rules), start=1)
        ]

        logger.info(
            f"Built approval chain: {[s.approver_role.value for s in steps]}",
            extra={"expense_id": expense.expense_id, "company_id": company_id}
        )
        return ApprovalChain(steps=steps, rules=rules)
