import asyncio
from datetime import timedelta

import httpx
import pytest

from app.config.settings import settings
from app.domain.enums import NotificationStatus, NotificationTemplateKey
from app.repositories.notification_repo import NotificationRepository
from app.scheduler.outbox_scheduler import OutboxScheduler
from app.services.notification_service import NotificationService
from app.utils.time import utc_now


def enqueue(service: NotificationService, recipient: str):
    return service.enqueue_notification(
        template_key=NotificationTemplateKey.COMMENT_ADDED,
        recipients=[recipient],
        payload={"expense_type": "Buses", "amount": 300, "comment": "Receipt attached", "commenter_name": "Milo"},
        expense_id="exp-7",
    )


@pytest.fixture
def scheduler():
    repo = NotificationRepository()
    return OutboxScheduler(notification_repo=repo, notification_service=NotificationService(repo=repo))


async def test_process_outbox_sends_pending(scheduler):
    first = enqueue(scheduler.notification_service, "a@acme-corp.com")
    second = enqueue(scheduler.notification_service, "b@acme-corp.com")

    counts = await scheduler.process_outbox()

    assert counts == {"sent": 2, "failed": 0, "skipped": 0}
    for notification in (first, second):
        stored = scheduler.notification_repo.get_notification(notification.notification_id)
        assert stored.status == NotificationStatus.SENT
        assert stored.locked_by is None

    assert await scheduler.process_outbox() == {"sent": 0, "failed": 0, "skipped": 0}


async def test_locked_rows_are_not_picked_up(scheduler):
    notification = enqueue(scheduler.notification_service, "a@acme-corp.com")
    assert scheduler.notification_repo.acquire_lock(notification.notification_id, "other-server", 60)

    counts = await scheduler.process_outbox()

    assert counts["sent"] == 0
    stored = scheduler.notification_repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.PENDING
    assert stored.locked_by == "other-server"


async def test_failures_are_counted_and_lock_released(scheduler, monkeypatch):
    monkeypatch.setattr(settings, "mail_enabled", True)
    scheduler.notification_service = NotificationService(
        repo=scheduler.notification_repo,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )
    notification = enqueue(scheduler.notification_service, "a@acme-corp.com")

    counts = await scheduler.process_outbox()

    assert counts == {"sent": 0, "failed": 1, "skipped": 0}
    stored = scheduler.notification_repo.get_notification(notification.notification_id)
    assert stored.status == NotificationStatus.PENDING
    assert stored.retry_count == 1
    assert stored.locked_until is None

    # Not due again until the backoff has passed
    assert await scheduler.process_outbox() == {"sent": 0, "failed": 0, "skipped": 0}


async def test_cleanup_stale_locks(scheduler, mongo_db):
    notification = enqueue(scheduler.notification_service, "a@acme-corp.com")
    mongo_db["notification_outbox"].update_one(
        {"notification_id": notification.notification_id},
        {"$set": {"locked_by": "crashed-server", "locked_until": utc_now() - timedelta(hours=1)}},
    )

    assert await scheduler.cleanup_stale_locks() == 1
    assert scheduler.notification_repo.get_notification(notification.notification_id).locked_by is None


def test_start_and_stop_register_jobs(scheduler):
    async def run():
        scheduler.start()
        jobs = {job.id for job in scheduler.scheduler.get_jobs()}
        scheduler.stop()
        return jobs

    jobs = asyncio.run(run())

    assert jobs == {"process_notifications", "cleanup_stale_locks"}
    assert scheduler.is_running is False
