"""Audit Repository - Data access for expense history"""
from typing import List
from pymongo.collection import Collection
from pymongo import DESCENDING

from .mongo_client import get_collection
from ..domain.models import ExpenseHistoryEntry
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for expense history entries (append-only)"""

    def __init__(self):
        self._history: Collection = get_collection("expense_history")

    def create_entry(self, entry: ExpenseHistoryEntry) -> ExpenseHistoryEntry:
        """Append a history entry"""
        doc = entry.model_dump()
        doc["_id"] = entry.history_id

        self._history.insert_one(doc)
        logger.info(
            f"Recorded history: {entry.action_type.value}",
            extra={"expense_id": entry.expense_id, "actor_id": entry.user_id}
        )
        return entry

    def get_history_for_expense(self, expense_id: str, limit: int = 200) -> List[ExpenseHistoryEntry]:
        """History entries for an expense, newest first"""
        cursor = self._history.find({"expense_id": expense_id}).sort("created_at", DESCENDING).limit(limit)

        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(ExpenseHistoryEntry.model_validate(doc))
        return entries
