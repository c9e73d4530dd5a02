"""
Expense Service Tests

Submission, validation, conversion and owner-scoped management.
"""

from datetime import timedelta

import pytest

from expense_approval.domain.enums import (
    ActorRole, ApproverRole, ExpenseCategory, ExpenseLogAction, ExpenseStatus
)
from expense_approval.domain.errors import (
    ExpenseNotFoundError, InvalidStateError, UnsupportedCurrencyError, ValidationError
)
from expense_approval.domain.models import ActorContext
from expense_approval.utils.time import utc_now, format_iso

from ...conftest import APPROVER_IDS, COMPANY_ID, EMPLOYEE_ID


def valid_data(**overrides):
    data = {
        "amount": 100,
        "currency": "USD",
        "category": "TRAVEL",
        "description": "Taxi to airport",
        "date": "2024-03-01T09:00:00Z",
    }
    data.update(overrides)
    return data


class TestValidation:

    def test_valid_data_has_no_errors(self, expense_service):
        assert expense_service.validate_expense_data(valid_data()) == []

    @pytest.mark.parametrize("amount", [0, -5, None, "100", True])
    def test_amount_must_be_positive_number(self, expense_service, amount):
        errors = expense_service.validate_expense_data(valid_data(amount=amount))
        assert errors == ["Amount is required and must be greater than 0"]

    def test_unknown_currency(self, expense_service):
        errors = expense_service.validate_expense_data(valid_data(currency="XYZ"))
        assert errors == ["Valid currency is required"]

    def test_unknown_category_lists_choices(self, expense_service):
        errors = expense_service.validate_expense_data(valid_data(category="GADGETS"))
        assert errors[0].startswith("Category must be one of: TRAVEL")

    def test_blank_description(self, expense_service):
        errors = expense_service.validate_expense_data(valid_data(description="   "))
        assert errors == ["Description is required"]

    def test_description_too_long(self, expense_service):
        errors = expense_service.validate_expense_data(valid_data(description="x" * 1001))
        assert errors == ["Description must be at most 1000 characters"]

    def test_future_date(self, expense_service):
        tomorrow = format_iso(utc_now() + timedelta(days=1))
        errors = expense_service.validate_expense_data(valid_data(date=tomorrow))
        assert errors == ["Date cannot be in the future"]

    def test_unparseable_date(self, expense_service):
        errors = expense_service.validate_expense_data(valid_data(date="yesterday-ish"))
        assert errors == ["Date must be a valid ISO 8601 date"]

    def test_all_errors_reported_together(self, expense_service):
        errors = expense_service.validate_expense_data({})
        assert len(errors) == 5

    def test_partial_checks_only_given_fields(self, expense_service):
        assert expense_service.validate_expense_data({"description": "New text"}, partial=True) == []


class TestCreate:

    def test_create_converts_to_base_currency(self, expense_service, employee, expense_repo, log_repo):
        expense = expense_service.create_expense(valid_data(amount=100, currency="eur"), employee)

        assert expense.currency == "EUR"
        assert expense.converted_amount == 125.0
        assert expense.conversion_rate == 1.25
        assert expense.status == ExpenseStatus.PENDING
        assert expense.approvals == []
        assert expense.employee_id == EMPLOYEE_ID
        assert expense_repo.stored(expense.expense_id).version == 1
        assert log_repo.actions_for(expense.expense_id) == [ExpenseLogAction.CREATED]

    def test_create_keeps_ocr_data(self, expense_service, employee):
        data = valid_data(ocr_data={"merchant_name": "Cab Co", "confidence": 0.92})

        expense = expense_service.create_expense(data, employee)

        assert expense.ocr_data.merchant_name == "Cab Co"

    def test_invalid_data_lists_errors(self, expense_service, employee, expense_repo):
        with pytest.raises(ValidationError) as exc_info:
            expense_service.create_expense(valid_data(amount=0, description=""), employee)

        assert len(exc_info.value.details["errors"]) == 2
        assert expense_repo.expenses == {}

    def test_amount_converting_to_zero_refused(self, expense_service, employee, expense_repo, log_repo):
        with pytest.raises(ValidationError) as exc_info:
            expense_service.create_expense(valid_data(amount=0.004), employee)

        assert exc_info.value.details["errors"] == ["Amount is too small to convert to USD"]
        assert expense_repo.expenses == {}
        assert log_repo.entries == []


class TestOwnerScope:

    def test_get_own_expense(self, expense_service, stored_expense, employee):
        expense = stored_expense()
        assert expense_service.get_expense(expense.expense_id, employee).expense_id == expense.expense_id

    def test_other_employee_gets_not_found(self, expense_service, stored_expense):
        expense = stored_expense()
        stranger = ActorContext(user_id="USR-stranger1", company_id=COMPANY_ID, role=ActorRole.EMPLOYEE)

        with pytest.raises(ExpenseNotFoundError):
            expense_service.get_expense(expense.expense_id, stranger)

    def test_list_paginates(self, expense_service, stored_expense, employee):
        for _ in range(3):
            stored_expense()
        stored_expense(employee_id="USR-someoneelse")

        result = expense_service.list_employee_expenses(employee, page=1, limit=2)

        assert len(result["expenses"]) == 2
        assert result["pagination"]["total_items"] == 3
        assert result["pagination"]["total_pages"] == 2
        assert result["pagination"]["has_next_page"] is True
        assert result["pagination"]["has_prev_page"] is False

    def test_list_filters_by_status(self, expense_service, stored_expense, employee):
        stored_expense()
        rejected = stored_expense(status=ExpenseStatus.REJECTED)

        result = expense_service.list_employee_expenses(employee, status=ExpenseStatus.REJECTED)

        assert [e.expense_id for e in result["expenses"]] == [rejected.expense_id]

    def test_list_rejects_bad_filter_date(self, expense_service, employee):
        with pytest.raises(ValidationError):
            expense_service.list_employee_expenses(employee, start_date="not-a-date")


class TestUpdateAndCancel:

    def test_update_description(self, expense_service, stored_expense, employee, log_repo):
        expense = stored_expense()

        updated = expense_service.update_expense(expense.expense_id, {"description": "  Dinner  "}, employee)

        assert updated.description == "Dinner"
        assert log_repo.entries[-1].metadata["updated_fields"] == ["description"]

    def test_amount_change_drops_started_chain(self, expense_service, approval_service, stored_expense, employee, log_repo):
        expense = stored_expense(amount=150)
        approval_service.start_approval(expense.expense_id, EMPLOYEE_ID, COMPANY_ID)

        updated = expense_service.update_expense(expense.expense_id, {"amount": 2000}, employee)

        assert updated.converted_amount == 2000
        assert updated.approvals == []
        assert updated.total_approval_steps == 0
        assert "approvals" in log_repo.entries[-1].metadata["updated_fields"]

    def test_update_refused_after_approver_acted(self, expense_service, approval_service, stored_expense, employee):
        expense = stored_expense(amount=500)
        approval_service.start_approval(expense.expense_id, EMPLOYEE_ID, COMPANY_ID)
        approval_service.approve_expense(expense.expense_id, APPROVER_IDS["MANAGER"], ApproverRole.MANAGER)

        with pytest.raises(InvalidStateError):
            expense_service.update_expense(expense.expense_id, {"description": "Changed"}, employee)

    def test_update_with_nothing_updatable(self, expense_service, stored_expense, employee):
        expense = stored_expense()

        with pytest.raises(ValidationError):
            expense_service.update_expense(expense.expense_id, {"status": "APPROVED"}, employee)

    def test_update_with_unknown_currency(self, expense_service, stored_expense, employee):
        expense = stored_expense()

        with pytest.raises(ValidationError):
            expense_service.update_expense(expense.expense_id, {"currency": "XYZ"}, employee)

    def test_update_to_amount_converting_to_zero_leaves_expense_unchanged(
        self, expense_service, stored_expense, employee, expense_repo
    ):
        expense = stored_expense(amount=150)
        before = expense_repo.stored(expense.expense_id).model_dump()

        with pytest.raises(ValidationError):
            expense_service.update_expense(expense.expense_id, {"amount": 0.004}, employee)

        assert expense_repo.stored(expense.expense_id).model_dump() == before
        assert expense_repo.save_calls == 0

    def test_cancel_keeps_record(self, expense_service, stored_expense, employee, expense_repo, log_repo):
        expense = stored_expense()

        cancelled = expense_service.cancel_expense(expense.expense_id, employee)

        assert cancelled.status == ExpenseStatus.CANCELLED
        assert expense_repo.stored(expense.expense_id).status == ExpenseStatus.CANCELLED
        assert log_repo.actions_for(expense.expense_id) == [ExpenseLogAction.CANCELLED]

    def test_cancel_refused_when_decided(self, expense_service, stored_expense, employee):
        expense = stored_expense(status=ExpenseStatus.APPROVED)

        with pytest.raises(InvalidStateError):
            expense_service.cancel_expense(expense.expense_id, employee)


class TestReporting:

    def test_statistics(self, expense_service, stored_expense, employee):
        stored_expense(amount=100, category=ExpenseCategory.TRAVEL)
        stored_expense(amount=50, category=ExpenseCategory.MEALS)
        stored_expense(amount=25, category=ExpenseCategory.MEALS, status=ExpenseStatus.APPROVED)

        stats = expense_service.get_expense_statistics(employee)

        assert stats["total_expenses"] == 3
        assert stats["total_amount"] == 175
        assert stats["status_breakdown"] == {"APPROVED": 1, "PENDING": 2}
        assert stats["category_breakdown"]["MEALS"] == {"count": 2, "total": 75}
        assert sum(row["count"] for row in stats["monthly_trend"]) == 3

    def test_logs_newest_first(self, expense_service, approval_service, stored_expense, employee):
        expense = stored_expense(amount=500)
        approval_service.start_approval(expense.expense_id, EMPLOYEE_ID, COMPANY_ID)
        approval_service.approve_expense(expense.expense_id, APPROVER_IDS["MANAGER"], ApproverRole.MANAGER)

        logs = expense_service.get_expense_logs(expense.expense_id, employee)

        assert [log.action for log in logs] == [ExpenseLogAction.APPROVED, ExpenseLogAction.SUBMITTED]


class TestCurrencyService:

    def test_same_currency(self, currency_service):
        assert currency_service.convert(42.5, "USD", "USD") == (42.5, 1.0)

    def test_cross_rate(self, currency_service):
        # INR -> GBP goes through USD
        assert currency_service.convert(800, "INR", "GBP") == (5.0, 0.00625)

    def test_unsupported_currency(self, currency_service):
        with pytest.raises(UnsupportedCurrencyError):
            currency_service.convert(10, "XYZ", "USD")

    def test_supported_currencies_sorted(self, currency_service):
        assert currency_service.supported_currencies() == ["EUR", "GBP", "INR", "USD"]

    def test_validity_is_case_insensitive(self, currency_service):
        assert currency_service.is_valid_currency("eur")
        assert not currency_service.is_valid_currency(None)
