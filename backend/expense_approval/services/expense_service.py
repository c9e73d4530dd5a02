"""Expense Service - Expense submission and management business logic"""
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from ..domain.models import ActorContext, Expense, ExpenseLog, OcrData
from ..domain.enums import ExpenseCategory, ExpenseStatus
from ..domain.errors import ExpenseNotFoundError, InvalidStateError, ValidationError
from ..engine.audit_writer import AuditWriter
from ..repositories.expense_repo import ExpenseRepository, ExpenseFilter
from ..repositories.expense_log_repo import ExpenseLogRepository
from .currency_service import CurrencyService
from ..utils.idgen import generate_expense_id
from ..utils.time import utc_now, ensure_utc, parse_iso, parse_optional_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 1000

UPDATABLE_FIELDS = ("amount", "currency", "category", "description", "date", "receipt_url")


class ExpenseService:
    """Service for expense operations"""

    def __init__(
        self,
        expense_repo: Optional[ExpenseRepository] = None,
        log_repo: Optional[ExpenseLogRepository] = None,
        currency_service: Optional[CurrencyService] = None
    ):
        self.expense_repo = expense_repo or ExpenseRepository()
        self.log_repo = log_repo or ExpenseLogRepository()
        self.currency_service = currency_service or CurrencyService()
        self.audit_writer = AuditWriter(self.log_repo)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_expense_data(self, data: Dict[str, Any], partial: bool = False) -> List[str]:
        """
        Check submitted expense fields

        Args:
            data: Raw field values
            partial: Only check the fields present (updates)

        Returns:
            List of error messages, empty when valid
        """
        errors: List[str] = []

        if not partial or "amount" in data:
            amount = data.get("amount")
            if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
                errors.append("Amount is required and must be greater than 0")

        if not partial or "currency" in data:
            if not self.currency_service.is_valid_currency(data.get("currency")):
                errors.append("Valid currency is required")

        if not partial or "category" in data:
            category = data.get("category")
            if not category:
                errors.append("Category is required")
            elif category not in ExpenseCategory.__members__:
                errors.append(f"Category must be one of: {', '.join(ExpenseCategory.__members__)}")

        if not partial or "description" in data:
            description = data.get("description")
            if not description or not str(description).strip():
                errors.append("Description is required")
            elif len(description) > MAX_DESCRIPTION_LENGTH:
                errors.append(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")

        if not partial or "date" in data:
            value = data.get("date")
            if not value:
                errors.append("Date is required")
            else:
                try:
                    if self._parse_date(value) > utc_now():
                        errors.append("Date cannot be in the future")
                except (TypeError, ValueError):
                    errors.append("Date must be a valid ISO 8601 date")

        return errors

    @staticmethod
    def _parse_date(value: Any) -> datetime:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return parse_iso(str(value))

    @staticmethod
    def _parse_filter_date(value: Optional[str], name: str) -> Optional[datetime]:
        try:
            return parse_optional_iso(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be a valid ISO 8601 date", details={name: value})

    def _convert(self, amount: float, currency: str, company_id: str) -> Tuple[float, float]:
        base_currency = self.currency_service.get_company_base_currency(company_id)
        converted_amount, rate = self.currency_service.convert(amount, currency, base_currency)
        if converted_amount <= 0:
            raise ValidationError(
                "Invalid expense data",
                details={"errors": [f"Amount is too small to convert to {base_currency}"]}
            )
        return converted_amount, rate

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_expense(self, data: Dict[str, Any], actor: ActorContext) -> Expense:
        """
        Create an expense, converting to the company base currency

        Raises:
            ValidationError: Invalid fields
        """
        errors = self.validate_expense_data(data)
        if errors:
            raise ValidationError("Invalid expense data", details={"errors": errors})

        currency = data["currency"].upper()
        converted_amount, rate = self._convert(data["amount"], currency, actor.company_id)
        now = utc_now()

        expense = Expense(
            expense_id=generate_expense_id(),
            employee_id=actor.user_id,
            company_id=actor.company_id,
            amount=data["amount"],
            currency=currency,
            converted_amount=converted_amount,
            conversion_rate=rate,
            category=ExpenseCategory(data["category"]),
            description=data["description"].strip(),
            date=self._parse_date(data["date"]),
            receipt_url=data.get("receipt_url"),
            ocr_data=OcrData.model_validate(data["ocr_data"]) if data.get("ocr_data") else None,
            created_at=now,
            updated_at=now
        )

        self.expense_repo.create_expense(expense)
        self.audit_writer.write_created(expense, actor)
        return expense

    def get_expense(self, expense_id: str, actor: ActorContext) -> Expense:
        """Get one of the caller's expenses"""
        expense = self.expense_repo.get_expense_for_owner(expense_id, actor.user_id, actor.company_id)
        if not expense:
            raise ExpenseNotFoundError(
                f"Expense {expense_id} not found or access denied",
                details={"expense_id": expense_id}
            )
        return expense

    def list_employee_expenses(
        self,
        actor: ActorContext,
        status: Optional[ExpenseStatus] = None,
        category: Optional[ExpenseCategory] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10
    ) -> Dict[str, Any]:
        """Caller's expenses with filters and pagination info"""
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        criteria = ExpenseFilter(
            company_id=actor.company_id,
            employee_id=actor.user_id,
            statuses=[status] if status else None,
            category=category,
            date_from=self._parse_filter_date(start_date, "start_date"),
            date_to=self._parse_filter_date(end_date, "end_date")
        )

        expenses = self.expense_repo.list_expenses(
            criteria,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * limit,
            limit=limit
        )
        total = self.expense_repo.count_expenses(criteria)
        total_pages = (total + limit - 1) // limit

        return {
            "expenses": expenses,
            "pagination": {
                "current_page": page,
                "total_pages": total_pages,
                "total_items": total,
                "items_per_page": limit,
                "has_next_page": page < total_pages,
                "has_prev_page": page > 1,
            }
        }

    def update_expense(self, expense_id: str, data: Dict[str, Any], actor: ActorContext) -> Expense:
        """
        Update a PENDING expense no approver has acted on yet

        A change to the converted amount drops an already built chain, since
        the chain tiers depend on it; the employee starts approval again.

        Raises:
            ExpenseNotFoundError: Missing or not owned
            InvalidStateError: Expense decided or already acted on
            ValidationError: Invalid fields
        """
        expense = self.get_expense(expense_id, actor)
        if expense.status != ExpenseStatus.PENDING or expense.has_been_acted_on:
            raise InvalidStateError(
                "Only pending expenses that no approver has acted on can be updated",
                details={"expense_id": expense_id, "status": expense.status.value}
            )

        updates = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None}
        if not updates:
            raise ValidationError("No updatable fields given", details={"allowed": list(UPDATABLE_FIELDS)})

        errors = self.validate_expense_data(updates, partial=True)
        if errors:
            raise ValidationError("Invalid expense data", details={"errors": errors})

        updated_fields = sorted(updates)
        if "amount" in updates or "currency" in updates:
            amount = updates.get("amount", expense.amount)
            currency = updates.get("currency", expense.currency).upper()
            converted_amount, rate = self._convert(amount, currency, expense.company_id)

            expense.amount = amount
            expense.currency = currency
            if converted_amount != expense.converted_amount and expense.total_approval_steps:
                expense.approvals = []
                expense.total_approval_steps = 0
                expense.current_approval_step = 0
                updated_fields.append("approvals")
            expense.converted_amount = converted_amount
            expense.conversion_rate = rate
            updated_fields += ["converted_amount", "conversion_rate"]

        if "category" in updates:
            expense.category = ExpenseCategory(updates["category"])
        if "description" in updates:
            expense.description = updates["description"].strip()
        if "date" in updates:
            expense.date = self._parse_date(updates["date"])
        if "receipt_url" in updates:
            expense.receipt_url = updates["receipt_url"]

        expense.updated_at = utc_now()
        saved = self.expense_repo.save_expense(expense)
        self.audit_writer.write_updated(saved, actor, updated_fields)
        return saved

    def cancel_expense(self, expense_id: str, actor: ActorContext) -> Expense:
        """
        Withdraw a PENDING expense no approver has acted on

        The record is kept with status CANCELLED.
        """
        expense = self.get_expense(expense_id, actor)
        if expense.status != ExpenseStatus.PENDING or expense.has_been_acted_on:
            raise InvalidStateError(
                "Only pending expenses that no approver has acted on can be cancelled",
                details={"expense_id": expense_id, "status": expense.status.value}
            )

        previous_status = expense.status
        now = utc_now()
        expense.status = ExpenseStatus.CANCELLED
        expense.final_action_at = now
        expense.updated_at = now

        saved = self.expense_repo.save_expense(expense)
        self.audit_writer.write_cancelled(saved, actor, previous_status)
        logger.info("Expense cancelled", extra={"expense_id": expense_id, "user_id": actor.user_id})
        return saved

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_expense_statistics(
        self,
        actor: ActorContext,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        category: Optional[ExpenseCategory] = None
    ) -> Dict[str, Any]:
        """Totals for the caller's expenses"""
        criteria = ExpenseFilter(
            company_id=actor.company_id,
            employee_id=actor.user_id,
            category=category,
            date_from=self._parse_filter_date(start_date, "start_date"),
            date_to=self._parse_filter_date(end_date, "end_date")
        )

        by_status = self.expense_repo.totals_by_status(criteria)
        by_category = self.expense_repo.totals_by_category(criteria)
        monthly = self.expense_repo.totals_by_month(criteria, limit=12)

        return {
            "total_expenses": sum(row["count"] for row in by_status),
            "total_amount": round(sum(row["total_amount"] for row in by_status), 2),
            "status_breakdown": {row["status"]: row["count"] for row in by_status},
            "category_breakdown": {
                row["category"]: {"count": row["count"], "total": round(row["total_amount"], 2)}
                for row in by_category
            },
            "monthly_trend": [
                {**row, "total_amount": round(row["total_amount"], 2)} for row in monthly
            ],
        }

    def get_expense_logs(self, expense_id: str, actor: ActorContext, limit: int = 50) -> List[ExpenseLog]:
        """Audit trail of one of the caller's expenses, newest first"""
        self.get_expense(expense_id, actor)
        return self.log_repo.get_logs_for_expense(expense_id, limit=limit)
