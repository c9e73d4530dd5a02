"""Expense Repository - Data access for expenses"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .mongo_client import get_collection, EXPENSES
from ..domain.models import Expense
from ..domain.enums import ApproverRole, ExpenseCategory, ExpenseStatus, StepStatus
from ..domain.errors import ConcurrencyError, ExpenseNotFoundError, PersistenceError
from ..utils.logger import get_logger

logger = get_logger(__name__)

SORTABLE_FIELDS = {"date", "amount", "converted_amount", "created_at", "updated_at", "status", "category"}

DATE_FIELDS = ("date", "created_at", "updated_at", "final_action_at")

MS_PER_DAY = 1000 * 60 * 60 * 24


class ExpenseFilter(BaseModel):
    """Criteria shared by list, count and aggregate queries"""
    company_id: Optional[str] = None
    employee_id: Optional[str] = None
    statuses: Optional[List[ExpenseStatus]] = None
    category: Optional[ExpenseCategory] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None
    approver_role: Optional[ApproverRole] = None
    has_pending_step: bool = False

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.company_id:
            query["company_id"] = self.company_id
        if self.employee_id:
            query["employee_id"] = self.employee_id
        if self.statuses:
            query["status"] = {"$in": [s.value for s in self.statuses]}
        if self.category:
            query["category"] = self.category.value
        if self.date_from or self.date_to:
            query["date"] = {}
            if self.date_from:
                query["date"]["$gte"] = self.date_from
            if self.date_to:
                query["date"]["$lte"] = self.date_to
        if self.amount_min is not None or self.amount_max is not None:
            query["converted_amount"] = {}
            if self.amount_min is not None:
                query["converted_amount"]["$gte"] = self.amount_min
            if self.amount_max is not None:
                query["converted_amount"]["$lte"] = self.amount_max
        if self.approver_role:
            query["approvals.approver_role"] = self.approver_role.value
        if self.has_pending_step:
            query["approvals.status"] = StepStatus.PENDING.value
        return query


class ExpenseRepository:
    """Repository for expense operations"""

    def __init__(self):
        self._expenses: Collection = get_collection(EXPENSES)

    # =========================================================================
    # Serialization
    # =========================================================================

    @staticmethod
    def _to_doc(expense: Expense) -> Dict[str, Any]:
        doc = expense.model_dump(mode="json")
        # top-level timestamps stay BSON dates for range queries and $subtract
        for field in DATE_FIELDS:
            doc[field] = getattr(expense, field)
        return doc

    @staticmethod
    def _from_doc(doc: Dict[str, Any]) -> Expense:
        doc.pop("_id", None)
        return Expense.model_validate(doc)

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_expense(self, expense: Expense) -> Expense:
        """Insert a new expense"""
        doc = self._to_doc(expense)
        doc["_id"] = expense.expense_id

        try:
            self._expenses.insert_one(doc)
        except DuplicateKeyError:
            raise PersistenceError(
                f"Expense {expense.expense_id} already exists",
                details={"expense_id": expense.expense_id}
            )
        except PyMongoError as e:
            logger.error(f"Failed to create expense: {e}", extra={"expense_id": expense.expense_id})
            raise PersistenceError("Failed to create expense", details={"reason": str(e)})

        logger.info(
            f"Created expense: {expense.expense_id}",
            extra={"expense_id": expense.expense_id, "user_id": expense.employee_id}
        )
        return expense

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        """Get expense by ID"""
        doc = self._expenses.find_one({"expense_id": expense_id})
        if doc:
            return self._from_doc(doc)
        return None

    def get_expense_or_raise(self, expense_id: str) -> Expense:
        """Get expense or raise ExpenseNotFoundError"""
        expense = self.get_expense(expense_id)
        if not expense:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def get_expense_for_owner(
        self,
        expense_id: str,
        employee_id: str,
        company_id: str
    ) -> Optional[Expense]:
        """Get expense only if it belongs to the employee in the company"""
        doc = self._expenses.find_one({
            "expense_id": expense_id,
            "employee_id": employee_id,
            "company_id": company_id
        })
        if doc:
            return self._from_doc(doc)
        return None

    def save_expense(self, expense: Expense) -> Expense:
        """
        Persist the whole aggregate with optimistic concurrency

        The write only lands if the stored version still equals
        expense.version; the stored version is then incremented.

        Raises:
            ConcurrencyError: Stored version moved on since the read
            ExpenseNotFoundError: Expense does not exist
            PersistenceError: Store failure, nothing was written
        """
        expected_version = expense.version
        updates = self._to_doc(expense)
        updates["version"] = expected_version + 1

        try:
            result = self._expenses.find_one_and_update(
                {"expense_id": expense.expense_id, "version": expected_version},
                {"$set": updates},
                return_document=True
            )
        except PyMongoError as e:
            logger.error(f"Failed to save expense: {e}", extra={"expense_id": expense.expense_id})
            raise PersistenceError("Failed to save expense", details={"reason": str(e)})

        if result is None:
            if self._expenses.find_one({"expense_id": expense.expense_id}, {"_id": 1}):
                raise ConcurrencyError(
                    f"Expense {expense.expense_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            raise ExpenseNotFoundError(f"Expense {expense.expense_id} not found")

        logger.info(
            f"Saved expense: {expense.expense_id}",
            extra={"expense_id": expense.expense_id, "status": expense.status.value}
        )
        return self._from_doc(result)

    # =========================================================================
    # Queries
    # =========================================================================

    def find_pending_for_role(self, company_id: str, role: ApproverRole) -> List[Expense]:
        """PENDING expenses whose active step is PENDING and held by the role"""
        cursor = self._expenses.find({
            "company_id": company_id,
            "status": ExpenseStatus.PENDING.value,
            "approvals": {"$elemMatch": {
                "approver_role": role.value,
                "status": StepStatus.PENDING.value
            }}
        }).sort("created_at", ASCENDING)

        # $elemMatch cannot address the cursor position; check it here
        return [
            expense for expense in (self._from_doc(doc) for doc in cursor)
            if expense.current_step
            and expense.current_step.status == StepStatus.PENDING
            and expense.current_step.approver_role == role
        ]

    def list_expenses(
        self,
        criteria: ExpenseFilter,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 50
    ) -> List[Expense]:
        """List expenses matching the filter"""
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "created_at"
        direction = ASCENDING if sort_order == "asc" else DESCENDING

        cursor = (
            self._expenses.find(criteria.to_query())
            .sort(sort_by, direction)
            .skip(skip)
            .limit(limit)
        )
        return [self._from_doc(doc) for doc in cursor]

    def count_expenses(self, criteria: ExpenseFilter) -> int:
        """Count expenses matching the filter"""
        return self._expenses.count_documents(criteria.to_query())

    # =========================================================================
    # Aggregations
    # =========================================================================

    def _group_totals(
        self,
        query: Dict[str, Any],
        group_id: Any,
        sort: Optional[Dict[str, int]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """count / total / average of converted amounts per group"""
        pipeline: List[Dict[str, Any]] = [
            {"$match": query},
            {"$group": {
                "_id": group_id,
                "count": {"$sum": 1},
                "total_amount": {"$sum": "$converted_amount"},
                "avg_amount": {"$avg": "$converted_amount"}
            }}
        ]
        if sort:
            pipeline.append({"$sort": sort})
        if limit:
            pipeline.append({"$limit": limit})
        return list(self._expenses.aggregate(pipeline))

    def totals_by_status(self, criteria: ExpenseFilter) -> List[Dict[str, Any]]:
        """[{status, count, total_amount, avg_amount}]"""
        rows = self._group_totals(criteria.to_query(), "$status", sort={"_id": 1})
        return [{"status": row.pop("_id"), **row} for row in rows]

    def totals_by_category(self, criteria: ExpenseFilter) -> List[Dict[str, Any]]:
        """[{category, count, total_amount, avg_amount}] largest total first"""
        rows = self._group_totals(criteria.to_query(), "$category", sort={"total_amount": -1})
        return [{"category": row.pop("_id"), **row} for row in rows]

    def totals_by_employee(self, criteria: ExpenseFilter, limit: int = 10) -> List[Dict[str, Any]]:
        """[{employee_id, count, total_amount, avg_amount}] largest total first"""
        rows = self._group_totals(
            criteria.to_query(), "$employee_id", sort={"total_amount": -1}, limit=limit
        )
        return [{"employee_id": row.pop("_id"), **row} for row in rows]

    def totals_by_month(
        self,
        criteria: ExpenseFilter,
        by_status: bool = False,
        newest_first: bool = True,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """[{year, month, [status], count, total_amount, avg_amount}]"""
        group_id: Dict[str, Any] = {"year": {"$year": "$date"}, "month": {"$month": "$date"}}
        if by_status:
            group_id["status"] = "$status"

        direction = -1 if newest_first else 1
        rows = self._group_totals(
            criteria.to_query(),
            group_id,
            sort={"_id.year": direction, "_id.month": direction},
            limit=limit
        )
        return [{**row.pop("_id"), **row} for row in rows]

    def processing_time_stats(self, criteria: ExpenseFilter) -> Dict[str, Any]:
        """avg/min/max days between creation and final action"""
        query = criteria.to_query()
        query["final_action_at"] = {"$ne": None}
        pipeline = [
            {"$match": query},
            {"$project": {
                "days": {"$divide": [{"$subtract": ["$final_action_at", "$created_at"]}, MS_PER_DAY]}
            }},
            {"$group": {
                "_id": None,
                "avg_days": {"$avg": "$days"},
                "min_days": {"$min": "$days"},
                "max_days": {"$max": "$days"},
                "count": {"$sum": 1}
            }}
        ]
        result = list(self._expenses.aggregate(pipeline))
        if not result:
            return {"avg_days": 0, "min_days": 0, "max_days": 0, "count": 0}
        row = result[0]
        row.pop("_id", None)
        return row
