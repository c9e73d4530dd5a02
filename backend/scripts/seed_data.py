"""
Seed Data Script - Creates sample expenses for testing
Run: python -m scripts.seed_data
"""
from datetime import timedelta

from expense_approval.config.settings import settings
from expense_approval.repositories.mongo_client import get_collection, create_indexes
from expense_approval.domain.models import ActorContext
from expense_approval.domain.enums import ActorRole, ApproverRole
from expense_approval.services import ApprovalService, ExpenseService
from expense_approval.utils.jwt import get_jwt_validator
from expense_approval.utils.time import utc_now

COMPANY_ID = "CMP-demo0001"
EMPLOYEE_ID = "USR-employee001"

SAMPLE_EXPENSES = [
    {
        "amount": 45.50, "currency": "USD", "category": "MEALS",
        "description": "Team lunch with new hire", "days_ago": 3,
    },
    {
        "amount": 2500.00, "currency": "EUR", "category": "TRAVEL",
        "description": "Business trip to Paris - flight and accommodation", "days_ago": 10,
    },
    {
        "amount": 450.00, "currency": "GBP", "category": "TRAINING",
        "description": "Cloud architecture certification course", "days_ago": 20,
    },
    {
        "amount": 1200.00, "currency": "USD", "category": "OFFICE_SUPPLIES",
        "description": "Ergonomic chairs for the support team", "days_ago": 35,
    },
]


def _approver(role: ApproverRole) -> ActorContext:
    return ActorContext(
        user_id=settings.default_approver_ids_map[role.value],
        company_id=COMPANY_ID,
        role=ActorRole(role.value)
    )


def create_sample_expenses():
    """Create sample expenses in every workflow state"""
    expenses_col = get_collection("expenses")

    # Check if already seeded
    if expenses_col.count_documents({"company_id": COMPANY_ID}) > 0:
        print("Database already has data. Skipping seed.")
        return

    employee = ActorContext(user_id=EMPLOYEE_ID, company_id=COMPANY_ID, role=ActorRole.EMPLOYEE)
    expense_service = ExpenseService()
    approval_service = ApprovalService()
    now = utc_now()

    created = []
    for sample in SAMPLE_EXPENSES:
        data = {k: v for k, v in sample.items() if k != "days_ago"}
        data["date"] = now - timedelta(days=sample["days_ago"])
        expense = expense_service.create_expense(data, employee)
        created.append(expense)
        print(f"Created expense: {expense.expense_id} ({expense.category.value}, {expense.converted_amount} {settings.base_currency})")

    meals, travel, training, supplies = created

    # Waiting on the manager
    approval_service.start_approval(meals.expense_id, EMPLOYEE_ID, COMPANY_ID)

    # Fully approved three-step chain
    approval_service.start_approval(travel.expense_id, EMPLOYEE_ID, COMPANY_ID)
    for role in (ApproverRole.MANAGER, ApproverRole.FINANCE, ApproverRole.DIRECTOR):
        approver = _approver(role)
        approval_service.approve_expense(travel.expense_id, approver.user_id, role, "Approved")

    # Rejected by finance
    approval_service.start_approval(training.expense_id, EMPLOYEE_ID, COMPANY_ID)
    approval_service.approve_expense(
        training.expense_id, _approver(ApproverRole.MANAGER).user_id, ApproverRole.MANAGER
    )
    approval_service.reject_expense(
        training.expense_id, _approver(ApproverRole.FINANCE).user_id, ApproverRole.FINANCE,
        "Not covered by the training budget"
    )

    # Auto-approved by a conditional rule on the manager's approval
    approval_service.start_approval(supplies.expense_id, EMPLOYEE_ID, COMPANY_ID)
    approval_service.apply_conditional_rules(
        supplies.expense_id, _approver(ApproverRole.MANAGER), rule_ids=["rule_amount_1000"]
    )
    approval_service.approve_expense(
        supplies.expense_id, _approver(ApproverRole.MANAGER).user_id, ApproverRole.MANAGER
    )

    print("\n[OK] Seed data created successfully!")
    print(f"   - {len(created)} sample expenses in company {COMPANY_ID}")


def print_tokens():
    """Print bearer tokens for the seeded users"""
    validator = get_jwt_validator()
    print("\nBearer tokens (valid 24h):")
    print(f"  EMPLOYEE: {validator.issue_token(EMPLOYEE_ID, COMPANY_ID, ActorRole.EMPLOYEE, 1440)}")
    for role in ApproverRole:
        approver = _approver(role)
        print(f"  {role.value}: {validator.issue_token(approver.user_id, COMPANY_ID, approver.role, 1440)}")


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    # Create indexes first
    create_indexes()

    create_sample_expenses()
    print_tokens()

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
