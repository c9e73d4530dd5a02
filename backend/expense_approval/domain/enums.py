"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class ExpenseStatus(str, Enum):
    """Global expense status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"  # Withdrawn by the employee before any approval

    @property
    def is_terminal(self) -> bool:
        return self != ExpenseStatus.PENDING


class StepStatus(str, Enum):
    """Status of a single approval step"""
    WAITING = "WAITING"  # Queued behind the current step
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApproverRole(str, Enum):
    """Roles that can sit on an approval chain"""
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    DIRECTOR = "DIRECTOR"
    CFO = "CFO"


class ActorRole(str, Enum):
    """Roles a caller can act in (approver roles plus the submitting employee)"""
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    DIRECTOR = "DIRECTOR"
    CFO = "CFO"


class ExpenseCategory(str, Enum):
    """Fixed set of expense categories"""
    TRAVEL = "TRAVEL"
    MEALS = "MEALS"
    ACCOMMODATION = "ACCOMMODATION"
    TRANSPORT = "TRANSPORT"
    ENTERTAINMENT = "ENTERTAINMENT"
    OFFICE_SUPPLIES = "OFFICE_SUPPLIES"
    TRAINING = "TRAINING"
    CLIENT_MEETING = "CLIENT_MEETING"
    OTHER = "OTHER"


class ApprovalAction(str, Enum):
    """Action taken by an approver on the current step"""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalRuleType(str, Enum):
    """How the approval chain was built (informational)"""
    SEQUENTIAL = "SEQUENTIAL"
    DIRECTOR_ONLY = "DIRECTOR_ONLY"
    MANAGER_ONLY = "MANAGER_ONLY"
    PERCENTAGE = "PERCENTAGE"
    SPECIFIC = "SPECIFIC"
    HYBRID = "HYBRID"


class RuleAction(str, Enum):
    """Outcome a triggered rule demands"""
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ExpenseLogAction(str, Enum):
    """Audit trail action types"""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMMENT_ADDED = "COMMENT_ADDED"
    STATUS_CHANGED = "STATUS_CHANGED"
    APPROVAL_STEP_CHANGED = "APPROVAL_STEP_CHANGED"
    RULE_EVALUATED = "RULE_EVALUATED"
    AUTO_APPROVED = "AUTO_APPROVED"
    AUTO_REJECTED = "AUTO_REJECTED"
    ESCALATED = "ESCALATED"


class NotificationKind(str, Enum):
    """Notification events emitted by the workflow"""
    APPROVAL_PENDING = "APPROVAL_PENDING"
    EXPENSE_APPROVED = "EXPENSE_APPROVED"
    EXPENSE_REJECTED = "EXPENSE_REJECTED"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
