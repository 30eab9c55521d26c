"""Notification Repository - Data access for notification outbox

Provides distributed locking for multi-server deployments using MongoDB
atomic operations, so no notification is processed twice.
"""
from typing import List, Optional
from datetime import datetime, timedelta
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now
from ..config.settings import settings

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification outbox operations"""

    def __init__(self):
        self._outbox: Collection = get_collection("notification_outbox")

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={
                "notification_id": notification.notification_id,
                "expense_id": notification.expense_id
            }
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        """Get notification by ID"""
        doc = self._outbox.find_one({"notification_id": notification_id})
        if doc:
            doc.pop("_id", None)
            return NotificationOutbox.model_validate(doc)
        return None

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """
        Get pending notifications ready for sending.

        Only returns notifications that:
        - Have PENDING status
        - Are not locked (or lock expired)
        - Are ready for retry (or first attempt)
        """
        now = utc_now()

        try:
            cursor = self._outbox.find({
                "status": NotificationStatus.PENDING.value,
                "$and": [
                    {"$or": [
                        {"next_retry_at": {"$lte": now}},
                        {"next_retry_at": None}
                    ]},
                    {"$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]}
                ]
            }).sort("created_at", ASCENDING).limit(limit)

            notifications = []
            for doc in cursor:
                doc.pop("_id", None)
                notifications.append(NotificationOutbox.model_validate(doc))
            return notifications

        except PyMongoError as e:
            logger.error(f"Database error fetching pending notifications: {e}")
            return []

    def acquire_lock(
        self,
        notification_id: str,
        lock_by: str,
        lock_duration_seconds: int = 60
    ) -> bool:
        """
        Try to acquire distributed lock on notification using atomic MongoDB operation.

        Args:
            notification_id: The notification to lock
            lock_by: Unique identifier for this locker (e.g., "host-pid")
            lock_duration_seconds: How long to hold the lock

        Returns:
            True if lock acquired, False otherwise
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        try:
            result = self._outbox.find_one_and_update(
                {
                    "notification_id": notification_id,
                    "status": NotificationStatus.PENDING.value,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {"$set": {"locked_until": lock_until, "locked_by": lock_by}},
                return_document=ReturnDocument.BEFORE
            )
        except PyMongoError as e:
            logger.error(
                f"Database error acquiring lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        if result is None:
            logger.debug(
                f"Could not acquire lock on notification {notification_id} - already locked or not found",
                extra={"notification_id": notification_id}
            )
            return False
        return True

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Release lock on notification, optionally only if held by lock_by"""
        query = {"notification_id": notification_id}
        if lock_by:
            query["locked_by"] = lock_by

        try:
            result = self._outbox.update_one(query, {"$set": {"locked_until": None, "locked_by": None}})
        except PyMongoError as e:
            logger.error(
                f"Database error releasing lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False
        return result.modified_count > 0

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """Clear locks left behind by crashed processes"""
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)

        try:
            result = self._outbox.update_many(
                {"locked_until": {"$lte": cutoff}, "locked_by": {"$ne": None}},
                {"$set": {"locked_until": None, "locked_by": None}}
            )
        except PyMongoError as e:
            logger.error(f"Error cleaning up stale locks: {e}")
            return 0

        if result.modified_count > 0:
            logger.warning(f"Cleaned up {result.modified_count} stale notification locks")
        return result.modified_count

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        """Mark notification as sent"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": NotificationStatus.SENT.value,
                    "sent_at": utc_now(),
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        result.pop("_id", None)
        logger.info(f"Notification sent: {notification_id}", extra={"notification_id": notification_id})
        return NotificationOutbox.model_validate(result)

    def mark_failed(
        self,
        notification_id: str,
        error: str,
        retry_at: Optional[datetime] = None
    ) -> NotificationOutbox:
        """Record a failed attempt; schedules a retry with exponential backoff until the limit"""
        notification = self.get_notification(notification_id)
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")

        new_retry_count = notification.retry_count + 1

        if new_retry_count >= settings.notification_max_retries:
            new_status = NotificationStatus.FAILED.value
            next_retry = None
        else:
            new_status = NotificationStatus.PENDING.value
            # Exponential backoff: 1, 2, 4, 8 minutes
            next_retry = retry_at or utc_now() + timedelta(minutes=2 ** notification.retry_count)

        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": new_status,
                    "retry_count": new_retry_count,
                    "last_error": error,
                    "next_retry_at": next_retry,
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        result.pop("_id", None)
        logger.warning(
            f"Notification failed: {notification_id} (attempt {new_retry_count})",
            extra={"notification_id": notification_id, "status": new_status}
        )
        return NotificationOutbox.model_validate(result)

    def get_notifications_for_expense(self, expense_id: str) -> List[NotificationOutbox]:
        """Get all notifications for an expense"""
        cursor = self._outbox.find({"expense_id": expense_id}).sort("created_at", ASCENDING)

        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(NotificationOutbox.model_validate(doc))
        return notifications
