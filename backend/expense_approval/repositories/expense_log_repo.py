"""Expense Log Repository - Data access for the expense audit trail"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING

from .mongo_client import get_collection, EXPENSE_LOGS
from ..domain.models import ExpenseLog
from ..domain.enums import ExpenseLogAction
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ExpenseLogRepository:
    """Repository for expense log operations (append-only)"""
    
    def __init__(self):
        self._logs: Collection = get_collection(EXPENSE_LOGS)
    
    def append(self, entry: ExpenseLog) -> ExpenseLog:
        """Append a log entry"""
        doc = entry.model_dump(mode="json")
        doc["_id"] = entry.log_id
        doc["timestamp"] = entry.timestamp
        
        self._logs.insert_one(doc)
        logger.info(
            f"Created expense log: {entry.action.value}",
            extra={
                "expense_id": entry.expense_id,
                "log_id": entry.log_id,
                "user_id": entry.performed_by
            }
        )
        return entry

    def get_logs_for_expense(
        self,
        expense_id: str,
        actions: Optional[List[ExpenseLogAction]] = None,
        ascending: bool = False,
        limit: int = 50
    ) -> List[ExpenseLog]:
        """Get log entries for an expense, newest first unless ascending"""
        query: Dict[str, Any] = {"expense_id": expense_id}
        if actions:
            query["action"] = {"$in": [a.value for a in actions]}
        
        direction = ASCENDING if ascending else DESCENDING
        cursor = self._logs.find(query).sort("timestamp", direction).limit(limit)
        
        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(ExpenseLog.model_validate(doc))
        return entries
