"""
Pytest Configuration and Fixtures

Shared fixtures for the unit and integration suites:
- In-memory repositories honouring the repository interfaces (version checks,
  filters and aggregations)
- A recording notifier that can be told to fail
- Fixed approver identities
- Expense factories and bearer token helpers
"""

from collections import defaultdict
from datetime import timedelta
from typing import Any, Dict, List, Optional

import pytest
from pymongo.errors import PyMongoError

from expense_approval.domain.models import ActorContext, Expense, ExpenseLog, ConditionalRule
from expense_approval.domain.enums import (
    ActorRole, ApproverRole, ExpenseCategory, ExpenseLogAction, ExpenseStatus,
    NotificationKind, StepStatus
)
from expense_approval.domain.errors import (
    ConcurrencyError, ExpenseNotFoundError, NotificationError, PersistenceError
)
from expense_approval.engine.identity import StaticApproverResolver
from expense_approval.engine.rule_catalog import RuleCatalog
from expense_approval.repositories.expense_repo import ExpenseFilter, SORTABLE_FIELDS
from expense_approval.services.approval_service import ApprovalService
from expense_approval.services.currency_service import CurrencyService
from expense_approval.services.dashboard_service import DashboardService
from expense_approval.services.expense_service import ExpenseService
from expense_approval.utils.idgen import generate_expense_id
from expense_approval.utils.jwt import get_jwt_validator
from expense_approval.utils.time import utc_now


COMPANY_ID = "CMP-test0001"
OTHER_COMPANY_ID = "CMP-other001"
EMPLOYEE_ID = "USR-employee01"

APPROVER_IDS = {
    "MANAGER": "USR-manager01",
    "FINANCE": "USR-finance01",
    "DIRECTOR": "USR-director1",
    "CFO": "USR-cfo000001",
    "ADMIN": "USR-admin0001",
}

TEST_RATES = {"USD": 1.0, "EUR": 0.8, "GBP": 0.5, "INR": 80.0}


# =============================================================================
# In-memory repositories
# =============================================================================

def _matches(expense: Expense, criteria: ExpenseFilter) -> bool:
    """Python rendition of ExpenseFilter.to_query()"""
    if criteria.company_id and expense.company_id != criteria.company_id:
        return False
    if criteria.employee_id and expense.employee_id != criteria.employee_id:
        return False
    if criteria.statuses and expense.status not in criteria.statuses:
        return False
    if criteria.category and expense.category != criteria.category:
        return False
    if criteria.date_from and expense.date < criteria.date_from:
        return False
    if criteria.date_to and expense.date > criteria.date_to:
        return False
    if criteria.amount_min is not None and expense.converted_amount < criteria.amount_min:
        return False
    if criteria.amount_max is not None and expense.converted_amount > criteria.amount_max:
        return False
    if criteria.approver_role and criteria.approver_role not in [a.approver_role for a in expense.approvals]:
        return False
    if criteria.has_pending_step and not any(a.status == StepStatus.PENDING for a in expense.approvals):
        return False
    return True


def _totals(rows: List[Expense]) -> Dict[str, Any]:
    total = sum(e.converted_amount for e in rows)
    return {"count": len(rows), "total_amount": total, "avg_amount": total / len(rows)}


class InMemoryExpenseRepository:
    """ExpenseRepository stand-in; stores copies so callers never share state"""

    def __init__(self):
        self.expenses: Dict[str, Expense] = {}
        self.fail_saves = False
        self.save_calls = 0

    def add(self, expense: Expense) -> Expense:
        self.expenses[expense.expense_id] = expense.model_copy(deep=True)
        return expense

    def stored(self, expense_id: str) -> Expense:
        return self.expenses[expense_id]

    def create_expense(self, expense: Expense) -> Expense:
        if expense.expense_id in self.expenses:
            raise PersistenceError(f"Expense {expense.expense_id} already exists")
        return self.add(expense)

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        expense = self.expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    def get_expense_or_raise(self, expense_id: str) -> Expense:
        expense = self.get_expense(expense_id)
        if not expense:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def get_expense_for_owner(self, expense_id: str, employee_id: str, company_id: str) -> Optional[Expense]:
        expense = self.get_expense(expense_id)
        if expense and expense.employee_id == employee_id and expense.company_id == company_id:
            return expense
        return None

    def save_expense(self, expense: Expense) -> Expense:
        self.save_calls += 1
        if self.fail_saves:
            raise PersistenceError("Failed to save expense", details={"reason": "store unavailable"})

        current = self.expenses.get(expense.expense_id)
        if current is None:
            raise ExpenseNotFoundError(f"Expense {expense.expense_id} not found")
        if current.version != expense.version:
            raise ConcurrencyError(
                f"Expense {expense.expense_id} was modified. Please refresh and try again.",
                details={"expected_version": expense.version}
            )

        saved = expense.model_copy(deep=True)
        saved.version = expense.version + 1
        self.expenses[expense.expense_id] = saved
        return saved.model_copy(deep=True)

    def find_pending_for_role(self, company_id: str, role: ApproverRole) -> List[Expense]:
        return sorted(
            (
                e.model_copy(deep=True) for e in self.expenses.values()
                if e.company_id == company_id
                and e.status == ExpenseStatus.PENDING
                and e.current_step is not None
                and e.current_step.status == StepStatus.PENDING
                and e.current_step.approver_role == role
            ),
            key=lambda e: e.created_at
        )

    def _select(self, criteria: ExpenseFilter) -> List[Expense]:
        return [e for e in self.expenses.values() if _matches(e, criteria)]

    def list_expenses(
        self,
        criteria: ExpenseFilter,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 50
    ) -> List[Expense]:
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "created_at"
        rows = sorted(self._select(criteria), key=lambda e: getattr(e, sort_by), reverse=sort_order != "asc")
        return [e.model_copy(deep=True) for e in rows[skip:skip + limit]]

    def count_expenses(self, criteria: ExpenseFilter) -> int:
        return len(self._select(criteria))

    def _group(self, criteria: ExpenseFilter, key) -> Dict[Any, List[Expense]]:
        groups: Dict[Any, List[Expense]] = defaultdict(list)
        for expense in self._select(criteria):
            groups[key(expense)].append(expense)
        return groups

    def totals_by_status(self, criteria: ExpenseFilter) -> List[Dict[str, Any]]:
        groups = self._group(criteria, lambda e: e.status.value)
        return [{"status": k, **_totals(v)} for k, v in sorted(groups.items())]

    def totals_by_category(self, criteria: ExpenseFilter) -> List[Dict[str, Any]]:
        groups = self._group(criteria, lambda e: e.category.value)
        rows = [{"category": k, **_totals(v)} for k, v in groups.items()]
        return sorted(rows, key=lambda r: r["total_amount"], reverse=True)

    def totals_by_employee(self, criteria: ExpenseFilter, limit: int = 10) -> List[Dict[str, Any]]:
        groups = self._group(criteria, lambda e: e.employee_id)
        rows = [{"employee_id": k, **_totals(v)} for k, v in groups.items()]
        return sorted(rows, key=lambda r: r["total_amount"], reverse=True)[:limit]

    def totals_by_month(
        self,
        criteria: ExpenseFilter,
        by_status: bool = False,
        newest_first: bool = True,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        def key(e: Expense):
            return (e.date.year, e.date.month, e.status.value if by_status else None)

        rows = []
        for (year, month, status), members in self._group(criteria, key).items():
            row = {"year": year, "month": month}
            if by_status:
                row["status"] = status
            rows.append({**row, **_totals(members)})
        rows.sort(key=lambda r: (r["year"], r["month"]), reverse=newest_first)
        return rows[:limit] if limit else rows

    def processing_time_stats(self, criteria: ExpenseFilter) -> Dict[str, Any]:
        days = [
            (e.final_action_at - e.created_at).total_seconds() / 86400
            for e in self._select(criteria) if e.final_action_at
        ]
        if not days:
            return {"avg_days": 0, "min_days": 0, "max_days": 0, "count": 0}
        return {"avg_days": sum(days) / len(days), "min_days": min(days), "max_days": max(days), "count": len(days)}


class InMemoryExpenseLogRepository:
    """ExpenseLogRepository stand-in"""

    def __init__(self):
        self.entries: List[ExpenseLog] = []
        self.fail_appends = False

    def append(self, entry: ExpenseLog) -> ExpenseLog:
        if self.fail_appends:
            raise PyMongoError("audit store unavailable")
        self.entries.append(entry)
        return entry

    def get_logs_for_expense(
        self,
        expense_id: str,
        actions: Optional[List[ExpenseLogAction]] = None,
        ascending: bool = False,
        limit: int = 50
    ) -> List[ExpenseLog]:
        rows = [
            e for e in self.entries
            if e.expense_id == expense_id and (not actions or e.action in actions)
        ]
        rows.sort(key=lambda e: e.timestamp)
        if not ascending:
            rows.reverse()
        return rows[:limit]

    def actions_for(self, expense_id: str) -> List[ExpenseLogAction]:
        return [e.action for e in self.entries if e.expense_id == expense_id]


class RecordingNotifier:
    """Notifier that records every call; `fail_with` makes notify raise"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def notify(self, recipient_id: str, summary: Dict[str, Any], kind: NotificationKind):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"recipient_id": recipient_id, "kind": kind, "summary": summary})

    def kinds(self) -> List[NotificationKind]:
        return [n["kind"] for n in self.sent]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def expense_repo() -> InMemoryExpenseRepository:
    return InMemoryExpenseRepository()


@pytest.fixture
def log_repo() -> InMemoryExpenseLogRepository:
    return InMemoryExpenseLogRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def notification_failure():
    """Exception a failing notifier raises"""
    return NotificationError("outbox unavailable")


@pytest.fixture
def resolver() -> StaticApproverResolver:
    return StaticApproverResolver(APPROVER_IDS, {})


@pytest.fixture
def currency_service() -> CurrencyService:
    return CurrencyService(rates=TEST_RATES, base_currency="USD")


@pytest.fixture
def approval_service(expense_repo, log_repo, notifier, resolver) -> ApprovalService:
    return ApprovalService(
        expense_repo=expense_repo,
        log_repo=log_repo,
        notification_service=notifier,
        approver_resolver=resolver,
        rule_catalog=RuleCatalog(path=""),
        allow_restart=True
    )


@pytest.fixture
def expense_service(expense_repo, log_repo, currency_service) -> ExpenseService:
    return ExpenseService(
        expense_repo=expense_repo,
        log_repo=log_repo,
        currency_service=currency_service
    )


@pytest.fixture
def dashboard_service(expense_repo) -> DashboardService:
    return DashboardService(expense_repo=expense_repo)


@pytest.fixture
def employee() -> ActorContext:
    return ActorContext(user_id=EMPLOYEE_ID, company_id=COMPANY_ID, role=ActorRole.EMPLOYEE)


@pytest.fixture
def approver():
    """Build the ActorContext of the configured approver for a role"""
    def _approver(role: ApproverRole, company_id: str = COMPANY_ID) -> ActorContext:
        return ActorContext(
            user_id=APPROVER_IDS[role.value],
            company_id=company_id,
            role=ActorRole(role.value)
        )
    return _approver


@pytest.fixture
def make_expense():
    """Build an Expense with sensible defaults; keyword arguments override fields"""
    def _make(
        amount: float = 150.0,
        conditional_rules: Optional[List[ConditionalRule]] = None,
        **overrides: Any
    ) -> Expense:
        now = utc_now()
        fields: Dict[str, Any] = {
            "expense_id": generate_expense_id(),
            "employee_id": EMPLOYEE_ID,
            "company_id": COMPANY_ID,
            "amount": amount,
            "currency": "USD",
            "converted_amount": amount,
            "conversion_rate": 1.0,
            "category": ExpenseCategory.MEALS,
            "description": "Client lunch",
            "date": now - timedelta(days=1),
            "conditional_rules": conditional_rules or [],
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return Expense(**fields)
    return _make


@pytest.fixture
def stored_expense(expense_repo, make_expense):
    """Build an Expense and store it in the in-memory repository"""
    def _stored(**kwargs: Any) -> Expense:
        return expense_repo.add(make_expense(**kwargs))
    return _stored


@pytest.fixture
def auth_headers():
    """Authorization header for a user acting in a role"""
    def _headers(
        role: ActorRole = ActorRole.EMPLOYEE,
        user_id: Optional[str] = None,
        company_id: str = COMPANY_ID
    ) -> Dict[str, str]:
        if user_id is None:
            user_id = EMPLOYEE_ID if role == ActorRole.EMPLOYEE else APPROVER_IDS[role.value]
        token = get_jwt_validator().issue_token(user_id, company_id, role)
        return {"Authorization": f"Bearer {token}"}
    return _headers
