"""Expense Repository - Data access for expenses and comments"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import DESCENDING, ASCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import Expense, ExpenseComment
from ..domain.enums import ExpenseStatus
from ..domain.errors import ExpenseNotFoundError, ConflictError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class ExpenseRepository:
    """Repository for expense operations"""

    def __init__(self):
        self._expenses: Collection = get_collection("expenses")
        self._comments: Collection = get_collection("expense_comments")

    # =========================================================================
    # Expense CRUD
    # =========================================================================

    def create_expense(self, expense: Expense) -> Expense:
        """Create a new expense"""
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = expense.model_dump()
        doc["_id"] = expense.expense_id

        self._expenses.insert_one(doc)
        logger.info(
            f"Created expense: {expense.expense_id}",
            extra={"expense_id": expense.expense_id, "org_id": expense.org_id, "status": expense.status.value}
        )
        return expense

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        """Get expense by ID"""
        doc = self._expenses.find_one({"expense_id": expense_id})
        if doc:
            doc.pop("_id", None)
            return Expense.model_validate(doc)
        return None

    def get_expense_or_raise(self, expense_id: str) -> Expense:
        """Get expense by ID or raise error"""
        expense = self.get_expense(expense_id)
        if not expense:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def update_expense_status(
        self,
        expense_id: str,
        fields: Dict[str, Any],
        expected_status: ExpenseStatus
    ) -> Expense:
        """
        Compare-and-set update keyed by expense id and the prior status.

        Raises:
            ConflictError: The expense moved out of expected_status concurrently
            ExpenseNotFoundError: The expense does not exist
        """
        updates = dict(fields)
        updates["updated_at"] = utc_now()

        result = self._expenses.find_one_and_update(
            {"expense_id": expense_id, "status": expected_status.value},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            current = self._expenses.find_one({"expense_id": expense_id}, {"status": 1})
            if current:
                raise ConflictError(
                    f"Expense {expense_id} was modified. Please refresh and try again.",
                    details={"expected_status": expected_status.value, "current_status": current.get("status")}
                )
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")

        result.pop("_id", None)
        logger.info(
            f"Updated expense status: {expense_id}",
            extra={"expense_id": expense_id, "status": result.get("status")}
        )
        return Expense.model_validate(result)

    def update_expense_fields(
        self,
        expense_id: str,
        fields: Dict[str, Any],
        allowed_statuses: List[ExpenseStatus]
    ) -> Expense:
        """Update editable fields while the expense is still in one of allowed_statuses"""
        updates = dict(fields)
        updates["updated_at"] = utc_now()

        result = self._expenses.find_one_and_update(
            {"expense_id": expense_id, "status": {"$in": [s.value for s in allowed_statuses]}},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            if self._expenses.find_one({"expense_id": expense_id}, {"_id": 1}):
                raise ConflictError(
                    f"Expense {expense_id} was modified. Please refresh and try again.",
                    details={"allowed_statuses": [s.value for s in allowed_statuses]}
                )
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")

        result.pop("_id", None)
        logger.info(f"Updated expense: {expense_id}", extra={"expense_id": expense_id})
        return Expense.model_validate(result)

    def list_expenses(
        self,
        org_id: str,
        user_id: Optional[str] = None,
        approver_id: Optional[str] = None,
        statuses: Optional[List[ExpenseStatus]] = None,
        expense_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> List[Expense]:
        """List expenses in an org with filters"""
        query: Dict[str, Any] = {"org_id": org_id}

        if user_id:
            query["user_id"] = user_id
        if approver_id:
            query["approver_id"] = approver_id
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}
        if expense_type:
            query["expense_type"] = expense_type

        sort_direction = DESCENDING if sort_order == "desc" else ASCENDING
        if sort_by not in ("created_at", "updated_at", "amount", "expense_date"):
            sort_by = "created_at"

        cursor = self._expenses.find(query).sort(sort_by, sort_direction).skip(skip).limit(limit)

        expenses = []
        for doc in cursor:
            doc.pop("_id", None)
            expenses.append(Expense.model_validate(doc))
        return expenses

    def count_expenses(
        self,
        org_id: str,
        user_id: Optional[str] = None,
        approver_id: Optional[str] = None,
        statuses: Optional[List[ExpenseStatus]] = None,
        expense_type: Optional[str] = None
    ) -> int:
        """Count expenses matching the list filters"""
        query: Dict[str, Any] = {"org_id": org_id}
        if user_id:
            query["user_id"] = user_id
        if approver_id:
            query["approver_id"] = approver_id
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}
        if expense_type:
            query["expense_type"] = expense_type
        return self._expenses.count_documents(query)

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(self, comment: ExpenseComment) -> ExpenseComment:
        """Create a comment on an expense"""
        doc = comment.model_dump()
        doc["_id"] = comment.comment_id

        self._comments.insert_one(doc)
        logger.info(f"Added comment to expense: {comment.expense_id}", extra={"expense_id": comment.expense_id})
        return comment

    def list_comments(self, expense_id: str) -> List[ExpenseComment]:
        """Get comments for an expense, oldest first"""
        cursor = self._comments.find({"expense_id": expense_id}).sort("created_at", ASCENDING)

        comments = []
        for doc in cursor:
            doc.pop("_id", None)
            comments.append(ExpenseComment.model_validate(doc))
        return comments
