"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .enums import (
    ExpenseStatus, StepStatus, ApproverRole, ActorRole, ExpenseCategory,
    ApprovalRuleType, RuleAction, ExpenseLogAction, NotificationKind,
    NotificationStatus
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Identity
# ============================================================================

class ActorContext(BaseModel):
    """Current actor context from the bearer token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Acting user ID")
    company_id: str = Field(..., description="Company the user belongs to")
    role: ActorRole = Field(..., description="Role the user acts in")
    display_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def approver_role(self) -> Optional[ApproverRole]:
        """Role as an approver role, None for employees"""
        if self.role == ActorRole.EMPLOYEE:
            return None
        return ApproverRole(self.role.value)


# ============================================================================
# OCR & Approval Steps
# ============================================================================

class OcrData(BaseModel):
    """Data extracted from a receipt by the OCR client"""
    model_config = ConfigDict(extra="ignore")

    extracted_amount: Optional[float] = Field(None, ge=0)
    extracted_date: Optional[datetime] = None
    merchant_name: Optional[str] = Field(None, max_length=200)
    extracted_category: Optional[str] = Field(None, max_length=100)
    extracted_description: Optional[str] = Field(None, max_length=500)
    confidence: Optional[float] = Field(None, ge=0, le=1)
    raw_text: Optional[str] = None
    processed_at: datetime = Field(default_factory=_utc_now)


class ApprovalStep(BaseModel):
    """One role-gated step of an approval chain"""
    model_config = ConfigDict(extra="ignore")

    step: int = Field(..., ge=1, description="1-indexed position in the chain")
    approver_id: str
    approver_role: ApproverRole
    status: StepStatus = Field(default=StepStatus.PENDING)
    comments: Optional[str] = Field(None, max_length=500)
    acted_at: Optional[datetime] = None


class ApprovalRules(BaseModel):
    """Descriptor of how the chain was built - informational only"""
    model_config = ConfigDict(extra="ignore")

    type: ApprovalRuleType = Field(default=ApprovalRuleType.SEQUENTIAL)
    description: Optional[str] = None
    percentage_threshold: Optional[float] = Field(None, ge=0, le=100)
    specific_approver_role: Optional[ApproverRole] = None
    hybrid_rule: Optional[str] = Field(None, max_length=200)


class ApprovalOptions(BaseModel):
    """Overrides accepted when starting an approval"""
    director_only: bool = False
    manager_only: bool = False


# ============================================================================
# Conditional Rules (tagged union on `type`)
# ============================================================================

class BaseConditionalRule(BaseModel):
    """Fields shared by every rule variant"""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Rule identifier")
    description: Optional[str] = None


class PercentageRule(BaseConditionalRule):
    """Triggers once the approved share of the chain reaches the threshold"""
    type: Literal["PERCENTAGE"] = "PERCENTAGE"
    threshold: Optional[float] = Field(None, ge=0, le=100)
    required_approvals: int = Field(default=1, ge=1)


class SpecificRule(BaseConditionalRule):
    """Triggers when a given role or a given approver approves"""
    type: Literal["SPECIFIC"] = "SPECIFIC"
    approver_role: Optional[ApproverRole] = None
    approver_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_target(self) -> "SpecificRule":
        if self.approver_role is None and not self.approver_id:
            raise ValueError("SPECIFIC rule needs approver_role or approver_id")
        return self


class PercentageCondition(BaseModel):
    """Percentage sub-condition of a hybrid rule"""
    model_config = ConfigDict(extra="ignore")

    type: Literal["PERCENTAGE"] = "PERCENTAGE"
    threshold: float = Field(..., ge=0, le=100)


class SpecificCondition(BaseModel):
    """Specific-approver sub-condition of a hybrid rule"""
    model_config = ConfigDict(extra="ignore")

    type: Literal["SPECIFIC"] = "SPECIFIC"
    approver_role: Optional[ApproverRole] = None
    approver_id: Optional[str] = None


HybridCondition = Annotated[
    Union[PercentageCondition, SpecificCondition],
    Field(discriminator="type")
]


class HybridRule(BaseConditionalRule):
    """OR of percentage / specific sub-conditions (e.g. "60% OR CFO")"""
    type: Literal["HYBRID"] = "HYBRID"
    rule: Optional[str] = Field(None, max_length=200, description="Human readable form")
    conditions: List[HybridCondition] = Field(default_factory=list)


class AmountThresholdRule(BaseConditionalRule):
    """Triggers when the converted amount reaches the threshold"""
    type: Literal["AMOUNT_THRESHOLD"] = "AMOUNT_THRESHOLD"
    threshold: Optional[float] = Field(None, ge=0)


class CategorySpecificRule(BaseConditionalRule):
    """Triggers when the category matches and the given role approves"""
    type: Literal["CATEGORY_SPECIFIC"] = "CATEGORY_SPECIFIC"
    category: ExpenseCategory
    approver_role: ApproverRole


class UnrecognizedRule(BaseConditionalRule):
    """Stored rule whose type this version does not know"""
    model_config = ConfigDict(extra="allow")

    id: str = Field(default="unknown")
    type: str


KnownConditionalRule = Annotated[
    Union[
        PercentageRule,
        SpecificRule,
        HybridRule,
        AmountThresholdRule,
        CategorySpecificRule,
    ],
    Field(discriminator="type")
]

KNOWN_RULE_TYPES = ("PERCENTAGE", "SPECIFIC", "HYBRID", "AMOUNT_THRESHOLD", "CATEGORY_SPECIFIC")

# Stored documents fall back to UnrecognizedRule, including malformed known
# types; the catalog rejects those before they can be attached.
ConditionalRule = Annotated[
    Union[
        PercentageRule,
        SpecificRule,
        HybridRule,
        AmountThresholdRule,
        CategorySpecificRule,
        UnrecognizedRule,
    ],
    Field(union_mode="left_to_right")
]


class RuleEvaluationRecord(BaseModel):
    """Outcome of evaluating one rule during one approval action"""
    model_config = ConfigDict(extra="ignore")

    rule_id: str
    rule_type: str
    rule_description: Optional[str] = None
    triggered: bool = False
    action: Optional[RuleAction] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    evaluated_at: datetime = Field(default_factory=_utc_now)
    evaluated_by: Optional[str] = None
    evaluated_by_role: Optional[ActorRole] = None


class RuleEvaluationResult(BaseModel):
    """Aggregate result of one evaluation pass"""
    should_auto_approve: bool = False
    should_auto_reject: bool = False
    final_decision: Optional[ExpenseStatus] = None
    records: List[RuleEvaluationRecord] = Field(default_factory=list)

    @property
    def triggered_records(self) -> List[RuleEvaluationRecord]:
        return [r for r in self.records if r.triggered]


# ============================================================================
# Expense
# ============================================================================

class Expense(BaseModel):
    """Expense aggregate - the unit every workflow transition reads and writes"""
    model_config = ConfigDict(extra="ignore")

    expense_id: str
    employee_id: str
    company_id: str

    amount: float = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    converted_amount: float = Field(..., gt=0, description="Amount in company base currency")
    conversion_rate: float = Field(..., ge=0)
    category: ExpenseCategory
    description: str = Field(..., min_length=1, max_length=1000)
    date: datetime
    receipt_url: Optional[str] = Field(None, max_length=500)
    ocr_data: Optional[OcrData] = None

    status: ExpenseStatus = Field(default=ExpenseStatus.PENDING)
    approvals: List[ApprovalStep] = Field(default_factory=list)
    current_approval_step: int = Field(default=0, ge=0)
    total_approval_steps: int = Field(default=0, ge=0)
    approval_rules: ApprovalRules = Field(default_factory=ApprovalRules)
    conditional_rules: List[ConditionalRule] = Field(default_factory=list)
    rules_evaluated: List[RuleEvaluationRecord] = Field(default_factory=list)

    final_approved_by: Optional[str] = None
    final_rejected_by: Optional[str] = None
    final_action_at: Optional[datetime] = None
    final_comments: Optional[str] = Field(None, max_length=500)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    version: int = Field(default=1, ge=1, description="Optimistic concurrency token")

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def current_step(self) -> Optional[ApprovalStep]:
        """Step the expense is waiting on, None when the chain is empty or exhausted"""
        if self.current_approval_step >= len(self.approvals):
            return None
        return self.approvals[self.current_approval_step]

    @property
    def approved_steps_count(self) -> int:
        return sum(1 for a in self.approvals if a.status == StepStatus.APPROVED)

    @property
    def has_been_acted_on(self) -> bool:
        return any(a.status in (StepStatus.APPROVED, StepStatus.REJECTED) for a in self.approvals)

    @property
    def approval_progress(self) -> float:
        if self.total_approval_steps == 0:
            return 0.0
        return self.current_approval_step / self.total_approval_steps * 100

    def to_summary(self) -> Dict[str, Any]:
        """Compact view used in notifications and API responses"""
        return {
            "id": self.expense_id,
            "employee_id": self.employee_id,
            "amount": self.converted_amount,
            "original_amount": self.amount,
            "currency": self.currency,
            "category": self.category.value,
            "description": self.description,
            "status": self.status.value,
            "current_approval_step": self.current_approval_step,
            "total_approval_steps": self.total_approval_steps,
        }


# ============================================================================
# Audit Log
# ============================================================================

class ExpenseLog(BaseModel):
    """Audit trail entry (append-only)"""
    model_config = ConfigDict(extra="ignore")

    log_id: str
    expense_id: str
    action: ExpenseLogAction
    performed_by: str
    performed_by_role: ActorRole
    previous_status: Optional[ExpenseStatus] = None
    new_status: Optional[ExpenseStatus] = None
    previous_approval_step: Optional[int] = Field(None, ge=0)
    new_approval_step: Optional[int] = Field(None, ge=0)
    comments: Optional[str] = Field(None, max_length=1000)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utc_now)
    correlation_id: Optional[str] = None


# ============================================================================
# Notifications
# ============================================================================

class NotificationEffect(BaseModel):
    """Notification the workflow wants sent once the transition is committed"""
    recipient_id: str
    kind: NotificationKind
    summary: Dict[str, Any] = Field(default_factory=dict)


class NotificationOutbox(BaseModel):
    """Notification in outbox"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    expense_id: Optional[str] = None
    recipient_id: str
    kind: NotificationKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    sent_at: Optional[datetime] = None
