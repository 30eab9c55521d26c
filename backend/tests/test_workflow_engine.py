from datetime import date

import pytest

from app.domain.enums import ExpenseAction, ExpenseStatus, HistoryAction, NotificationTemplateKey, DecisionStage
from app.domain.errors import (
    ConflictError, ExpenseNotFoundError, ForbiddenError, InvalidTransitionError, ValidationError
)
from app.engine import AuditWriter, ExpenseWorkflowEngine
from app.repositories.expense_repo import ExpenseRepository
from app.repositories.notification_repo import NotificationRepository
from app.repositories.audit_repo import AuditRepository
from app.services.expense_service import ExpenseService
from app.services.notification_service import NotificationService
from app.services.voucher_service import VoucherService


class BrokenOutboxRepository(NotificationRepository):
    def create_notification(self, notification):
        raise RuntimeError("outbox unavailable")


class BrokenAuditRepository(AuditRepository):
    def create_entry(self, entry):
        raise RuntimeError("history unavailable")


def create_expense(ctx, approver_id, amount=1000.0, expense_type="Trains", status=ExpenseStatus.DRAFT):
    result = ExpenseService().create_expense(ctx, {
        "amount": amount,
        "expense_type": expense_type,
        "expense_date": date(2024, 7, 15),
        "description": "Client visit",
        "approver_id": approver_id,
        "status": status,
    })
    return result["expense"]


def outbox_for(expense_id):
    return NotificationRepository().get_notifications_for_expense(expense_id)


@pytest.fixture
def engine():
    return ExpenseWorkflowEngine()


@pytest.fixture
def submitted(member_ctx, manager, engine):
    expense = create_expense(member_ctx, manager.user_id)
    engine.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)
    return expense


def test_full_happy_path(engine, member_ctx, manager_ctx, finance_ctx, manager):
    expense = create_expense(member_ctx, manager.user_id)

    result = engine.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)
    assert result.expense.status == ExpenseStatus.SUBMITTED
    assert result.previous_status == ExpenseStatus.DRAFT

    result = engine.transition(manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE)
    assert result.expense.status == ExpenseStatus.APPROVED
    assert result.expense.approved_amount == 1000.0
    assert result.custom_amount is False
    assert result.stage == DecisionStage.MANAGER

    result = engine.transition(finance_ctx, expense.expense_id, ExpenseAction.FINANCE_APPROVE)
    assert result.expense.status == ExpenseStatus.FINANCE_APPROVED

    result = engine.transition(finance_ctx, expense.expense_id, ExpenseAction.MARK_PAYMENT_PROCESSED)
    assert result.expense.status == ExpenseStatus.PAYMENT_PROCESSED
    assert result.side_effects.ok

    history = AuditRepository().get_history_for_expense(expense.expense_id)
    assert {entry.action_type for entry in history} == {
        HistoryAction.CREATED, HistoryAction.SUBMITTED, HistoryAction.APPROVED,
        HistoryAction.FINANCE_APPROVED, HistoryAction.PAYMENT_PROCESSED,
    }

    keys = [n.template_key for n in outbox_for(expense.expense_id)]
    assert keys == [
        NotificationTemplateKey.APPROVAL_PENDING,
        NotificationTemplateKey.MANAGER_APPROVED,
        NotificationTemplateKey.FINANCE_APPROVED,
        NotificationTemplateKey.PAYMENT_PROCESSED,
    ]


def test_submission_notifies_the_approver(engine, submitted, manager):
    rows = outbox_for(submitted.expense_id)
    assert len(rows) == 1
    assert rows[0].recipients == [manager.email]
    assert rows[0].payload["creator_name"] == "Milo Member"
    assert rows[0].payload["org_slug"] == "acme-corp"


def test_rejection_requires_a_reason(engine, submitted, manager_ctx):
    for reason in (None, "", "   "):
        with pytest.raises(ValidationError, match="rejection reason is required"):
            engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_REJECT, reason=reason)

    assert ExpenseRepository().get_expense(submitted.expense_id).status == ExpenseStatus.SUBMITTED


def test_rejection_stores_the_reason(engine, submitted, manager_ctx, member):
    result = engine.transition(
        manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_REJECT, reason="  Missing receipt "
    )
    assert result.expense.status == ExpenseStatus.MANAGER_REJECTED
    assert result.expense.rejection_reason == "Missing receipt"

    row = outbox_for(submitted.expense_id)[-1]
    assert row.template_key == NotificationTemplateKey.MANAGER_REJECTED
    assert row.recipients == [member.email]
    assert row.payload["reason"] == "Missing receipt"


def test_custom_amount_is_flagged(engine, submitted, manager_ctx, finance_ctx):
    result = engine.transition(
        manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE, approved_amount=800
    )
    assert result.custom_amount is True
    assert result.expense.approved_amount == 800
    assert outbox_for(submitted.expense_id)[-1].payload["custom_amount"] is True

    # Finance keeps the manager's amount when it does not override
    result = engine.transition(finance_ctx, submitted.expense_id, ExpenseAction.FINANCE_APPROVE)
    assert result.expense.approved_amount == 800


def test_approved_amount_must_be_positive(engine, submitted, manager_ctx):
    with pytest.raises(ValidationError, match="greater than zero"):
        engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE, approved_amount=0)


def test_creator_cannot_approve_own_expense(engine, org_ctx, owner):
    expense = create_expense(org_ctx, owner.user_id)
    engine.transition(org_ctx, expense.expense_id, ExpenseAction.SUBMIT)

    with pytest.raises(ForbiddenError, match="cannot approve your own expense"):
        engine.transition(org_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE)


def test_authorization_is_checked_before_the_edge(engine, member_ctx, manager, finance_ctx):
    """A finance user asking for an illegal manager decision is told they lack permission"""
    expense = create_expense(member_ctx, manager.user_id)
    with pytest.raises(ForbiddenError):
        engine.transition(finance_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE)


def test_illegal_edge(engine, member_ctx, manager, manager_ctx):
    expense = create_expense(member_ctx, manager.user_id)
    with pytest.raises(InvalidTransitionError):
        engine.transition(manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE)


def test_concurrent_decision_loses_with_conflict(engine, submitted, manager_ctx, admin_ctx):
    stale = ExpenseRepository().get_expense(submitted.expense_id)
    engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE)

    racing = ExpenseWorkflowEngine()
    racing.expense_repo.get_expense = lambda expense_id: stale

    with pytest.raises(ConflictError):
        racing.transition(admin_ctx, submitted.expense_id, ExpenseAction.MANAGER_REJECT, reason="Too late")

    current = ExpenseRepository().get_expense(submitted.expense_id)
    assert current.status == ExpenseStatus.APPROVED
    assert current.rejection_reason is None


def test_side_effect_failures_do_not_fail_the_transition(submitted, manager_ctx):
    engine = ExpenseWorkflowEngine(
        notification_service=NotificationService(repo=BrokenOutboxRepository()),
        audit_writer=AuditWriter(repo=BrokenAuditRepository()),
    )

    result = engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE)

    assert result.expense.status == ExpenseStatus.APPROVED
    assert ExpenseRepository().get_expense(submitted.expense_id).status == ExpenseStatus.APPROVED
    assert not result.side_effects.ok
    assert any(f.startswith("history:") for f in result.side_effects.failures)
    assert any("outbox unavailable" in f for f in result.side_effects.failures)


def test_payment_not_processed(engine, submitted, manager_ctx, finance_ctx):
    engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE)
    engine.transition(finance_ctx, submitted.expense_id, ExpenseAction.FINANCE_APPROVE)

    with pytest.raises(ValidationError):
        engine.transition(finance_ctx, submitted.expense_id, ExpenseAction.MARK_PAYMENT_NOT_PROCESSED)

    result = engine.transition(
        finance_ctx, submitted.expense_id, ExpenseAction.MARK_PAYMENT_NOT_PROCESSED, reason="Bank details invalid"
    )
    assert result.expense.status == ExpenseStatus.PAYMENT_NOT_PROCESSED

    row = outbox_for(submitted.expense_id)[-1]
    assert row.template_key == NotificationTemplateKey.PAYMENT_NOT_PROCESSED
    assert row.payload["status_label"] == "Payment has been rejected"


def test_resubmit_clears_previous_decision(engine, submitted, manager_ctx, member_ctx, finance_ctx):
    engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE, approved_amount=700)
    engine.transition(finance_ctx, submitted.expense_id, ExpenseAction.FINANCE_REJECT, reason="Duplicate claim")

    result = engine.transition(member_ctx, submitted.expense_id, ExpenseAction.RESUBMIT)

    assert result.expense.status == ExpenseStatus.SUBMITTED
    assert result.expense.rejection_reason is None
    assert result.expense.approved_amount is None


def test_history_records_reason_and_amount(engine, submitted, manager_ctx):
    engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE, approved_amount=650)

    entries = AuditRepository().get_history_for_expense(submitted.expense_id)
    approved = next(e for e in entries if e.action_type == HistoryAction.APPROVED)
    assert approved.old_value == "submitted"
    assert approved.new_value == "approved: approved amount 650.00"
    assert approved.user_name == "Maya Manager"


def test_policy_warning_on_submit(engine, member_ctx, manager):
    expense = create_expense(member_ctx, manager.user_id, amount=6000, expense_type="Flights")
    result = engine.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)

    assert result.policy_warning is not None
    assert result.policy_warning.excess == 1000
    assert outbox_for(expense.expense_id)[-1].payload["policy_warning"] == result.policy_warning.message


def test_expense_from_another_org_is_not_found(engine, submitted, manager_ctx, outsider):
    from app.services.organization_service import OrganizationService

    other_ctx = OrganizationService().create_organization(outsider, "Globex")
    with pytest.raises(ExpenseNotFoundError):
        engine.transition(other_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE)


def test_manager_approval_requests_voucher_render(engine, submitted, member_ctx, manager_ctx):
    voucher = VoucherService().create_voucher(member_ctx, submitted.expense_id, credit_person="Accounts")

    result = engine.transition(manager_ctx, submitted.expense_id, ExpenseAction.MANAGER_APPROVE)
    assert result.voucher_id_to_render == voucher.voucher_id


def test_allowed_actions_depend_on_actor(engine, submitted, member_ctx, manager_ctx, finance_ctx):
    expense = ExpenseRepository().get_expense(submitted.expense_id)
    assert engine.allowed_actions(manager_ctx, expense) == [
        ExpenseAction.MANAGER_APPROVE, ExpenseAction.MANAGER_REJECT
    ]
    assert engine.allowed_actions(member_ctx, expense) == []
    assert engine.allowed_actions(finance_ctx, expense) == []
