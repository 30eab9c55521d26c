"""Voucher Repository - Data access for expense vouchers"""
from typing import Any, Dict, Optional
from pymongo.collection import Collection
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Voucher
from ..domain.errors import VoucherNotFoundError, DuplicateError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class VoucherRepository:
    """Repository for voucher operations"""

    def __init__(self):
        self._vouchers: Collection = get_collection("vouchers")

    def create_voucher(self, voucher: Voucher) -> Voucher:
        """Create a voucher; an expense has at most one"""
        doc = voucher.model_dump()
        doc["_id"] = voucher.voucher_id

        try:
            self._vouchers.insert_one(doc)
        except DuplicateKeyError:
            raise DuplicateError(
                f"Expense {voucher.expense_id} already has a voucher",
                details={"expense_id": voucher.expense_id}
            )
        logger.info(
            f"Created voucher: {voucher.voucher_id}",
            extra={"voucher_id": voucher.voucher_id, "expense_id": voucher.expense_id}
        )
        return voucher

    def get_voucher(self, voucher_id: str) -> Optional[Voucher]:
        doc = self._vouchers.find_one({"voucher_id": voucher_id})
        if doc:
            doc.pop("_id", None)
            return Voucher.model_validate(doc)
        return None

    def get_voucher_or_raise(self, voucher_id: str) -> Voucher:
        voucher = self.get_voucher(voucher_id)
        if not voucher:
            raise VoucherNotFoundError(f"Voucher {voucher_id} not found")
        return voucher

    def get_voucher_for_expense(self, expense_id: str) -> Optional[Voucher]:
        doc = self._vouchers.find_one({"expense_id": expense_id})
        if doc:
            doc.pop("_id", None)
            return Voucher.model_validate(doc)
        return None

    def update_voucher(self, voucher_id: str, updates: Dict[str, Any]) -> Voucher:
        updates = dict(updates)
        updates["updated_at"] = utc_now()

        result = self._vouchers.find_one_and_update(
            {"voucher_id": voucher_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise VoucherNotFoundError(f"Voucher {voucher_id} not found")

        result.pop("_id", None)
        return Voucher.model_validate(result)
